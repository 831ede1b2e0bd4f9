"""Cover resolution: where contours and dasymetric regions are valid."""

from __future__ import annotations

import logging
from functools import reduce
from typing import Any

import numpy as np
from shapely.geometry import MultiPoint, Polygon
from shapely.ops import unary_union
from skimage import measure

from .density import embed_layer, presence_density
from .errors import UnsupportedGeometry
from .models import Cover, GridData, GridSpec, PointSet, PolygonSet, Shape
from .raster import mask_to_polygon, rasterize

_LOGGER = logging.getLogger("smoothmap.cover")

STRATEGY_ORIGINAL = "original"
STRATEGY_SMOOTH = "smooth"
STRATEGY_RECT = "rect"
STRATEGIES = (STRATEGY_ORIGINAL, STRATEGY_SMOOTH, STRATEGY_RECT)

REASON_EXPLICIT = "explicit_cover"
REASON_REQUESTED = "requested"
REASON_DEFAULT_POLYGONS = "default_polygons"
REASON_DEFAULT_POINTS = "default_points"
REASON_DEFAULT_GRID = "default_grid"
REASON_DEGENERATE_HULL = "degenerate_hull"


def resolve_strategy(shape: Shape, requested: str | None) -> tuple[str, str]:
    """Return ``(strategy, reason)`` for the cover to build."""
    if requested is not None:
        strategy = requested.strip().casefold()
        if strategy not in STRATEGIES:
            raise ValueError(
                f"Unknown cover strategy '{requested}'; expected one of: "
                + ", ".join(STRATEGIES)
            )
        return (strategy, REASON_REQUESTED)
    match shape:
        case PolygonSet():
            return (STRATEGY_ORIGINAL, REASON_DEFAULT_POLYGONS)
        case PointSet():
            return (STRATEGY_RECT, REASON_DEFAULT_POINTS)
        case GridData():
            return (STRATEGY_RECT, REASON_DEFAULT_GRID)
        case _:
            raise UnsupportedGeometry(f"Cannot build a cover for {type(shape).__name__}")


def resolve_cover(
    shape: Shape,
    grid: GridSpec,
    bandwidth: tuple[float, float],
    *,
    strategy: str | None = None,
    cover: Any | None = None,
    threshold: float = 0.6,
    variable: str | None = None,
) -> Cover:
    """Build the cover polygon and its grid-aligned mask.

    An explicit ``cover`` geometry wins over any strategy.
    """
    if cover is not None:
        polygon = unary_union(cover) if isinstance(cover, (list, tuple)) else unary_union([cover])
        result = Cover(
            polygon=polygon,
            mask=rasterize(polygon, grid),
            strategy="explicit",
            reason=REASON_EXPLICIT,
        )
        _log_cover(result)
        return result

    chosen, reason = resolve_strategy(shape, strategy)
    if chosen == STRATEGY_RECT:
        result = rect_cover(grid, reason)
    elif chosen == STRATEGY_ORIGINAL:
        result = original_cover(shape, grid, reason, variable=variable)
    else:
        result = smooth_cover(
            shape,
            grid,
            bandwidth,
            threshold=threshold,
            reason=reason,
            variable=variable,
        )
    _log_cover(result)
    return result


def rect_cover(grid: GridSpec, reason: str) -> Cover:
    return Cover(
        polygon=grid.bbox.to_polygon(),
        mask=np.ones(grid.shape, dtype=bool),
        strategy=STRATEGY_RECT,
        reason=reason,
    )


def original_cover(
    shape: Shape,
    grid: GridSpec,
    reason: str,
    *,
    variable: str | None = None,
) -> Cover:
    match shape:
        case PointSet():
            hull = MultiPoint([tuple(p) for p in shape.coords]).convex_hull
            if hull.geom_type != "Polygon" or hull.area <= 0.0:
                _LOGGER.warning(
                    "Convex hull of %d points has no area; falling back to rect cover",
                    len(shape),
                )
                return rect_cover(grid, REASON_DEGENERATE_HULL)
            polygon = hull
            mask = rasterize(polygon, grid)
        case PolygonSet():
            polygon = unary_union(list(shape.geometries))
            mask = rasterize(polygon, grid)
        case GridData():
            _, layer = shape.variable(variable)
            mask = np.isfinite(embed_layer(layer, shape.grid, grid))
            polygon = mask_to_polygon(mask, grid)
        case _:
            raise UnsupportedGeometry(f"Cannot build a cover for {type(shape).__name__}")
    return Cover(polygon=polygon, mask=mask, strategy=STRATEGY_ORIGINAL, reason=reason)


def smooth_cover(
    shape: Shape,
    grid: GridSpec,
    bandwidth: tuple[float, float],
    *,
    threshold: float,
    reason: str,
    variable: str | None = None,
) -> Cover:
    """Cover bounded by the ``threshold * max`` contour of the presence density."""
    if not 0.0 < threshold < 1.0:
        raise ValueError(f"cover threshold must be in (0, 1), got {threshold}")
    density = presence_density(shape, grid, bandwidth, variable=variable)
    peak = float(density.max())
    if peak <= 0.0:
        raise UnsupportedGeometry("Shape has no data to derive a smooth cover from")
    level = threshold * peak
    mask = density >= level
    polygon = threshold_polygon(density, grid, level)
    return Cover(polygon=polygon, mask=mask, strategy=STRATEGY_SMOOTH, reason=reason)


def threshold_polygon(values: np.ndarray, grid: GridSpec, level: float) -> Any:
    """Polygon of the area where ``values >= level``.

    The field is padded with a zero border so every contour ring closes;
    rings are combined with even-odd nesting so islands inside holes survive.
    """
    padded = np.pad(np.asarray(values, dtype=float), 1, mode="constant", constant_values=0.0)
    xs = np.concatenate(([grid.x1[0] - grid.cell_width], grid.x1, [grid.x1[-1] + grid.cell_width]))
    ys = np.concatenate(([grid.x2[0] - grid.cell_height], grid.x2, [grid.x2[-1] + grid.cell_height]))
    rings: list[Polygon] = []
    for contour in measure.find_contours(padded, level):
        if len(contour) < 4:
            continue
        ring_x = np.interp(contour[:, 1], np.arange(len(xs)), xs)
        ring_y = np.interp(contour[:, 0], np.arange(len(ys)), ys)
        ring = Polygon(np.column_stack((ring_x, ring_y)))
        if not ring.is_valid:
            ring = ring.buffer(0)
        if ring.is_empty or ring.area <= 0.0:
            continue
        rings.append(ring)
    if not rings:
        return Polygon()
    rings.sort(key=lambda item: -item.area)
    return reduce(lambda acc, ring: acc.symmetric_difference(ring), rings[1:], rings[0])


def _log_cover(cover: Cover) -> None:
    parts = getattr(cover.polygon, "geoms", None)
    _LOGGER.info(
        "Cover resolved: strategy=%s reason=%s parts=%d cells=%d",
        cover.strategy,
        cover.reason,
        len(parts) if parts is not None else (0 if cover.polygon.is_empty else 1),
        int(cover.mask.sum()),
    )
