"""Iso-line tracing with marching squares."""

from __future__ import annotations

import logging
from typing import Any, Sequence

import numpy as np
from scipy.ndimage import distance_transform_edt
from shapely.geometry import MultiLineString
from skimage import measure

from .errors import NoContoursFound, TooManyContours
from .models import ContourLine, IsoLine, Surface

_LOGGER = logging.getLogger("smoothmap.contour")

MAX_CONTOURS = 10_000


def trace_contours(
    surface: Surface,
    levels: Sequence[float],
    *,
    max_lines: int = MAX_CONTOURS,
) -> tuple[ContourLine, ...]:
    """Trace every connected iso-line of ``surface`` at each level.

    Missing cells take the nearest present value and the field is padded one
    cell past the grid edge, so open lines run beyond the grid boundary.
    """
    field, xs, ys = _prepare_field(surface)
    node_x = np.arange(len(xs))
    node_y = np.arange(len(ys))

    lines: list[ContourLine] = []
    for level in levels:
        for path in measure.find_contours(field, float(level)):
            if len(path) < 2:
                continue
            coords = np.column_stack(
                (np.interp(path[:, 1], node_x, xs), np.interp(path[:, 0], node_y, ys))
            )
            lines.append(ContourLine(level=float(level), coords=coords))
            if len(lines) > max_lines:
                raise TooManyContours(len(lines), max_lines)

    if not lines:
        raise NoContoursFound(
            "No iso lines found for levels: " + ", ".join(f"{lvl:.6g}" for lvl in levels)
        )
    _LOGGER.info(
        "Traced %d iso lines over %d levels (%s surface)",
        len(lines),
        len(levels),
        "smoothed" if surface.smoothed else "raw",
    )
    return tuple(lines)


def clip_to_cover(lines: Sequence[ContourLine], cover_polygon: Any) -> tuple[IsoLine, ...]:
    """Group lines by level and keep the parts inside the cover."""
    by_level: dict[float, list[np.ndarray]] = {}
    for line in lines:
        by_level.setdefault(line.level, []).append(line.coords)
    out: list[IsoLine] = []
    for level in sorted(by_level):
        geometry = MultiLineString([coords for coords in by_level[level]])
        clipped = geometry.intersection(cover_polygon)
        if clipped.is_empty:
            continue
        out.append(IsoLine(level=level, geometry=clipped))
    return tuple(out)


def _prepare_field(surface: Surface) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    values = np.asarray(surface.values, dtype=float)
    missing = ~np.isfinite(values)
    if missing.all():
        raise NoContoursFound(f"Surface '{surface.name}' has no values to contour")
    if missing.any():
        indices = distance_transform_edt(missing, return_distances=False, return_indices=True)
        values = values[tuple(indices)]

    grid = surface.grid
    field = np.pad(values, 1, mode="edge")
    xs = np.concatenate(([grid.x1[0] - grid.cell_width], grid.x1, [grid.x1[-1] + grid.cell_width]))
    ys = np.concatenate(([grid.x2[0] - grid.cell_height], grid.x2, [grid.x2[-1] + grid.cell_height]))
    return (field, xs, ys)
