"""Grid helpers: polygon rasterization, cell extraction and mask vectorization."""

from __future__ import annotations

import math
from typing import Any, Sequence

import numpy as np
import shapely
from shapely.geometry import box
from shapely.ops import unary_union

from .models import GridSpec, Surface


def rasterize(geometry: Any, grid: GridSpec) -> np.ndarray:
    """Boolean mask of the cells whose centers fall in ``geometry``."""
    mask = np.zeros(grid.shape, dtype=bool)
    if geometry is None or geometry.is_empty:
        return mask
    window = _cell_window(geometry.bounds, grid)
    if window is None:
        return mask
    r0, r1, c0, c1 = window
    xs, ys = np.meshgrid(grid.x1[c0:c1], grid.x2[r0:r1])
    shapely.prepare(geometry)
    mask[r0:r1, c0:c1] = shapely.intersects_xy(geometry, xs, ys)
    return mask


def polygon_values_to_grid(
    geometries: Sequence[Any],
    values: np.ndarray,
    grid: GridSpec,
    *,
    apportion: bool,
) -> np.ndarray:
    """Rasterize per-polygon values onto ``grid``.

    With ``apportion`` the value is treated as a total and split evenly over
    the polygon's cells, so the grid sum equals the sum of the input values.
    Polygons too small to hold a cell center put their whole value in the
    cell under their representative point. Without it every covered cell
    takes the polygon's value and uncovered cells stay NaN.
    """
    if apportion:
        out = np.zeros(grid.shape, dtype=float)
    else:
        out = np.full(grid.shape, np.nan, dtype=float)

    for geometry, value in zip(geometries, values):
        if geometry is None or geometry.is_empty:
            continue
        value = float(value)
        if apportion and not math.isfinite(value):
            continue
        mask = rasterize(geometry, grid)
        count = int(mask.sum())
        if not apportion:
            out[mask] = value
            continue
        if count > 0:
            out[mask] += value / count
            continue
        point = geometry.representative_point()
        rows, cols, inside = grid.cell_index([point.x], [point.y])
        if bool(inside[0]):
            out[rows[0], cols[0]] += value
    return out


def extract_values(surface: Surface, xs: Any, ys: Any) -> np.ndarray:
    """Value of the cell containing each point; NaN outside the grid."""
    rows, cols, inside = surface.grid.cell_index(xs, ys)
    out = np.full(rows.shape, np.nan, dtype=float)
    out[inside] = surface.values[rows[inside], cols[inside]]
    return out


def mask_to_polygon(mask: np.ndarray, grid: GridSpec) -> Any:
    """Union of the True cells, built from row runs to keep the union small."""
    mask = np.asarray(mask, dtype=bool)
    cw = grid.cell_width
    ch = grid.cell_height
    xmin = grid.bbox.xmin
    ymin = grid.bbox.ymin
    boxes: list[Any] = []
    for row in range(grid.nrows):
        line = mask[row]
        if not line.any():
            continue
        padded = np.concatenate(([False], line, [False])).astype(np.int8)
        edges = np.flatnonzero(np.diff(padded))
        for start, stop in zip(edges[::2], edges[1::2]):
            boxes.append(
                box(
                    xmin + start * cw,
                    ymin + row * ch,
                    xmin + stop * cw,
                    ymin + (row + 1) * ch,
                )
            )
    if not boxes:
        return shapely.Polygon()
    return unary_union(boxes)


def _cell_window(
    bounds: Sequence[float],
    grid: GridSpec,
) -> tuple[int, int, int, int] | None:
    bxmin, bymin, bxmax, bymax = (float(v) for v in bounds)
    c0 = max(int(math.floor((bxmin - grid.bbox.xmin) / grid.cell_width)), 0)
    c1 = min(int(math.ceil((bxmax - grid.bbox.xmin) / grid.cell_width)) + 1, grid.ncols)
    r0 = max(int(math.floor((bymin - grid.bbox.ymin) / grid.cell_height)), 0)
    r1 = min(int(math.ceil((bymax - grid.bbox.ymin) / grid.cell_height)) + 1, grid.nrows)
    if c1 <= c0 or r1 <= r0:
        return None
    return (r0, r1, c0, c1)
