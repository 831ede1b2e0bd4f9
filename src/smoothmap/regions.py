"""Dasymetric region building: cut the cover with iso-lines and classify the pieces."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
import shapely
from shapely import STRtree
from shapely.geometry import MultiLineString, Polygon
from shapely.ops import unary_union

from .classify import band_labels
from .errors import AllHoles
from .models import BoundingBox, ContourLine, Region, RegionSet, Surface
from .raster import extract_values, rasterize

_LOGGER = logging.getLogger("smoothmap.regions")

VALUE_GRID = "grid"
VALUE_FULL = "full"
VALUE_SINGLE = "single"
VALUE_METHODS = (VALUE_GRID, VALUE_FULL, VALUE_SINGLE)

_SAMPLE_DIMS = 10


@dataclass(frozen=True, slots=True, eq=False)
class RingPart:
    """One ring of the cut cover, as a polygon, flagged solid or hole."""

    polygon: Polygon
    is_hole: bool


def buffer_width(bbox: BoundingBox) -> float:
    return (bbox.width + bbox.height) / 1e9


def cut_cover(cover_polygon: Any, lines: Sequence[ContourLine]) -> Any:
    """Subtract thinly buffered iso-lines from the (equally buffered) cover."""
    if cover_polygon is None or cover_polygon.is_empty:
        raise AllHoles("Cover is empty; there is no solid polygon to cut")
    width = buffer_width(BoundingBox.from_bounds(cover_polygon.bounds))
    cover = cover_polygon.buffer(width)
    if not lines:
        return cover
    seams = MultiLineString([line.coords for line in lines]).buffer(width)
    return cover.difference(seams)


def split_parts(geometry: Any) -> list[RingPart]:
    parts: list[RingPart] = []
    for polygon in explode_polygons(geometry):
        parts.append(RingPart(polygon=Polygon(polygon.exterior), is_hole=False))
        for interior in polygon.interiors:
            parts.append(RingPart(polygon=Polygon(interior), is_hole=True))
    return parts


def assign_parents(parts: Sequence[RingPart]) -> list[int | None]:
    """Map each hole to the index of its parent solid; solids map to None.

    The parent is the smallest solid that covers the hole, which nests
    holes-in-islands-in-holes correctly.
    """
    solid_ids = [idx for idx, part in enumerate(parts) if not part.is_hole]
    if not solid_ids:
        raise AllHoles("All polygons are holes.")
    solids = [parts[idx].polygon for idx in solid_ids]
    areas = np.array([solid.area for solid in solids])
    tree = STRtree(solids)

    parents: list[int | None] = [None] * len(parts)
    for idx, part in enumerate(parts):
        if not part.is_hole:
            continue
        candidates = np.sort(tree.query(part.polygon, predicate="covered_by"))
        if candidates.size == 0:
            _LOGGER.warning("Hole %d has no enclosing solid; dropped", idx)
            continue
        best = candidates[int(np.argmin(areas[candidates]))]
        parents[idx] = solid_ids[int(best)]
    return parents


def regroup(parts: Sequence[RingPart], parents: Sequence[int | None]) -> list[Polygon]:
    """One polygon per solid, carrying its assigned holes."""
    holes_by_parent: dict[int, list[Any]] = {}
    for idx, parent in enumerate(parents):
        if parent is not None:
            holes_by_parent.setdefault(parent, []).append(parts[idx].polygon.exterior.coords)
    out: list[Polygon] = []
    for idx, part in enumerate(parts):
        if part.is_hole:
            continue
        out.append(Polygon(part.polygon.exterior.coords, holes_by_parent.get(idx, [])))
    return out


def aggregate_value(polygon: Any, surface: Surface, method: str = VALUE_GRID) -> float:
    """Mean surface value over ``polygon``; NaN when nothing can be sampled."""
    if method not in VALUE_METHODS:
        raise ValueError(
            f"Unknown region value method '{method}'; expected one of: " + ", ".join(VALUE_METHODS)
        )
    if method == VALUE_FULL:
        mask = rasterize(polygon, surface.grid)
        if mask.any():
            return _nanmean(surface.values[mask])
        method = VALUE_GRID

    point = polygon.representative_point()
    if method == VALUE_SINGLE:
        return _nanmean(extract_values(surface, [point.x], [point.y]))

    xmin, ymin, xmax, ymax = polygon.bounds
    step_x = (xmax - xmin) / _SAMPLE_DIMS
    step_y = (ymax - ymin) / _SAMPLE_DIMS
    xs, ys = np.meshgrid(
        xmin + (np.arange(_SAMPLE_DIMS) + 0.5) * step_x,
        ymin + (np.arange(_SAMPLE_DIMS) + 0.5) * step_y,
    )
    inside = shapely.intersects_xy(polygon, xs, ys)
    sample_x = np.append(xs[inside], point.x)
    sample_y = np.append(ys[inside], point.y)
    return _nanmean(extract_values(surface, sample_x, sample_y))


def bucket(values: np.ndarray, breaks: Sequence[float]) -> np.ndarray:
    """Band index per value: ``[b_i, b_i+1)``, last band closed, ends clamped."""
    edges = np.asarray(breaks, dtype=float)
    idx = np.searchsorted(edges, np.asarray(values, dtype=float), side="right") - 1
    return np.clip(idx, 0, len(edges) - 2)


def build_regions(
    cover_polygon: Any,
    lines: Sequence[ContourLine],
    surface: Surface,
    breaks: Sequence[float],
    *,
    value_method: str = VALUE_GRID,
) -> RegionSet:
    """Partition the cover into one merged region per level band."""
    edges = [float(b) for b in breaks]
    if len(edges) == 1:
        edges = [float("-inf"), edges[0], float("inf")]
    if len(edges) < 2:
        raise ValueError("build_regions requires at least one break")

    cut = cut_cover(cover_polygon, lines)
    parts = split_parts(cut)
    parents = assign_parents(parts)
    polygons = regroup(parts, parents)

    values = np.array([aggregate_value(p, surface, value_method) for p in polygons], dtype=float)
    missing = ~np.isfinite(values)
    if missing.any():
        _LOGGER.debug("%d regions without samples default to the lowest break", int(missing.sum()))
        values[missing] = edges[0]

    labels = band_labels(edges)
    band_ids = bucket(values, edges)
    regions: list[Region] = []
    for band in range(len(labels)):
        members = [idx for idx in range(len(polygons)) if band_ids[idx] == band]
        if not members:
            continue
        geometry = unary_union([polygons[idx] for idx in members])
        weights = np.array([polygons[idx].area for idx in members])
        member_values = values[members]
        value = (
            float(np.average(member_values, weights=weights))
            if weights.sum() > 0.0
            else float(member_values.mean())
        )
        regions.append(Region(band_index=band, label=labels[band], value=value, geometry=geometry))

    _LOGGER.info(
        "Built %d regions from %d polygons (%d holes) over %d bands",
        len(regions),
        len(polygons),
        sum(1 for part in parts if part.is_hole),
        len(labels),
    )
    return RegionSet(regions=tuple(regions), band_labels=labels, breaks=tuple(edges))


def _nanmean(values: np.ndarray) -> float:
    finite = np.asarray(values, dtype=float)
    finite = finite[np.isfinite(finite)]
    if finite.size == 0:
        return float("nan")
    return float(finite.mean())


def explode_polygons(geometry: Any) -> list[Any]:
    if geometry is None or geometry.is_empty:
        return []
    geom_type = getattr(geometry, "geom_type", "")
    if geom_type == "Polygon":
        return [geometry]
    if geom_type in {"MultiPolygon", "GeometryCollection"}:
        out: list[Any] = []
        for part in geometry.geoms:
            out.extend(explode_polygons(part))
        return out
    return []
