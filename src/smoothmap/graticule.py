"""Grid lines drawn in a (possibly different) CRS over the map bbox."""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import numpy as np

from .classify import pretty
from .errors import GraticuleUnavailable
from .models import BoundingBox

_LOGGER = logging.getLogger("smoothmap.graticule")

DEFAULT_GRID_CRS = "EPSG:4326"
_DENSIFY_POINTS = 21
_LINE_SAMPLES = 64


@dataclass(frozen=True, slots=True, eq=False)
class GridLine:
    axis: str
    value: float
    coords: np.ndarray


def graticule_lines(
    bbox: BoundingBox,
    map_crs: str | None,
    *,
    grid_crs: str = DEFAULT_GRID_CRS,
    count: int = 5,
) -> tuple[GridLine, ...]:
    """Meridians/parallels (or plain x/y lines) projected onto the map.

    Without a map CRS the lines are straight in map units. When the bbox
    cannot be inverse-projected, a ``GraticuleUnavailable`` warning is
    emitted and no lines are returned.
    """
    if map_crs is None:
        return _straight_lines(bbox, count)

    proj_error = _require_proj_error()
    try:
        forward, inverse = _transformers(map_crs, grid_crs)
        gxmin, gymin, gxmax, gymax = inverse.transform_bounds(
            *bbox.bounds, densify_pts=_DENSIFY_POINTS
        )
        if not np.all(np.isfinite([gxmin, gymin, gxmax, gymax])):
            return _unavailable(f"bbox of {map_crs} has no finite extent in {grid_crs}")
        lines: list[GridLine] = []
        for value in _ticks(gxmin, gxmax, count):
            ys = np.linspace(gymin, gymax, _LINE_SAMPLES)
            xs = np.full_like(ys, value)
            lines.append(GridLine(axis="x", value=value, coords=_project(forward, xs, ys)))
        for value in _ticks(gymin, gymax, count):
            xs = np.linspace(gxmin, gxmax, _LINE_SAMPLES)
            ys = np.full_like(xs, value)
            lines.append(GridLine(axis="y", value=value, coords=_project(forward, xs, ys)))
    except proj_error as exc:
        return _unavailable(str(exc))

    if any(not np.all(np.isfinite(line.coords)) for line in lines):
        return _unavailable(f"grid lines in {grid_crs} do not project back to {map_crs}")
    _LOGGER.debug("Graticule: %d lines in %s", len(lines), grid_crs)
    return tuple(lines)


def _straight_lines(bbox: BoundingBox, count: int) -> tuple[GridLine, ...]:
    lines: list[GridLine] = []
    for value in _ticks(bbox.xmin, bbox.xmax, count):
        lines.append(GridLine(axis="x", value=value, coords=np.array([[value, bbox.ymin], [value, bbox.ymax]])))
    for value in _ticks(bbox.ymin, bbox.ymax, count):
        lines.append(GridLine(axis="y", value=value, coords=np.array([[bbox.xmin, value], [bbox.xmax, value]])))
    return tuple(lines)


def _ticks(lo: float, hi: float, count: int) -> list[float]:
    return [float(v) for v in pretty(lo, hi, max(count, 1)) if lo < v < hi]


def _project(transformer: Any, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
    px, py = transformer.transform(xs, ys)
    return np.column_stack((np.asarray(px, dtype=float), np.asarray(py, dtype=float)))


def _unavailable(reason: str) -> tuple[GridLine, ...]:
    message = f"Grid lines disabled: {reason}"
    _LOGGER.warning(message)
    warnings.warn(message, GraticuleUnavailable, stacklevel=3)
    return ()


@lru_cache(maxsize=8)
def _transformers(map_crs: str, grid_crs: str) -> tuple[Any, Any]:
    try:
        from pyproj import Transformer
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("pyproj is required for projected grid lines") from exc
    forward = Transformer.from_crs(grid_crs, map_crs, always_xy=True)
    inverse = Transformer.from_crs(map_crs, grid_crs, always_xy=True)
    return (forward, inverse)


def _require_proj_error() -> type[Exception]:
    try:
        from pyproj.exceptions import ProjError
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("pyproj is required for projected grid lines") from exc
    return ProjError
