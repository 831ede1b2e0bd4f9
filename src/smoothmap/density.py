"""2-D kernel density estimation over a regular grid.

Points are linearly binned onto cell centers; areal input is rasterized
first and its cell values act as the binned counts. The binned field is
convolved with a truncated Gaussian kernel and rescaled so the grid sums to
the input's total mass.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
from scipy.signal import fftconvolve

from .errors import UnsupportedGeometry
from .models import BoundingBox, GridData, GridSpec, PointSet, PolygonSet, Shape, Surface
from .raster import polygon_values_to_grid

_LOGGER = logging.getLogger("smoothmap.density")

# kernel support, in bandwidths, per axis
KERNEL_TRUNCATION = 3.4
BBOX_EXTENSION = 1.05
DEFAULT_TARGET_CELLS = 250_000

_POLYGONAL_TYPES = {"Polygon", "MultiPolygon"}


@dataclass(frozen=True, slots=True, eq=False)
class DensityEstimate:
    """Estimator output before the cover is applied."""

    surface: Surface
    bandwidth: tuple[float, float]
    mass: float
    kind: str

    @property
    def grid(self) -> GridSpec:
        return self.surface.grid


def resolve_grid(
    shape: Shape,
    *,
    rows: int | None = None,
    cols: int | None = None,
    target_cell_count: int = DEFAULT_TARGET_CELLS,
    cover_bbox: BoundingBox | None = None,
) -> GridSpec:
    """Pick the estimation grid for ``shape``.

    Point and polygon data get their bounding box extended by 5% and dims
    derived from ``target_cell_count`` and the box aspect ratio. Grid data
    keeps its native layout. An explicit cover bbox can only grow the box.
    """
    match shape:
        case PointSet() | PolygonSet():
            bbox = shape.bounding_box().extend(BBOX_EXTENSION)
            if cover_bbox is not None:
                bbox = bbox.union(cover_bbox)
            if rows is None or cols is None:
                if target_cell_count < 1:
                    raise ValueError("target_cell_count must be >= 1")
                nrows = max(int(round(math.sqrt(target_cell_count / bbox.aspect))), 1)
                ncols = max(int(round(target_cell_count / nrows)), 1)
            else:
                nrows, ncols = int(rows), int(cols)
            return GridSpec(bbox=bbox, nrows=nrows, ncols=ncols, crs=shape.crs)
        case GridData():
            grid = shape.grid
            if cover_bbox is None or grid.bbox.contains(cover_bbox):
                return grid
            return _grow_grid(grid, cover_bbox)
        case _:
            raise UnsupportedGeometry(
                "shape must be a PointSet, PolygonSet or GridData, "
                f"got {type(shape).__name__}"
            )


def resolve_bandwidth(
    bandwidth: float | Sequence[float] | None,
    grid: GridSpec,
) -> tuple[float, float]:
    if bandwidth is None:
        return (3.0 * grid.cell_width, 3.0 * grid.cell_height)
    if isinstance(bandwidth, (int, float)):
        pair = (float(bandwidth), float(bandwidth))
    else:
        values = [float(v) for v in bandwidth]
        if len(values) == 1:
            pair = (values[0], values[0])
        elif len(values) == 2:
            pair = (values[0], values[1])
        else:
            raise ValueError(f"bandwidth must have one or two values, got {len(values)}")
    if pair[0] <= 0.0 or pair[1] <= 0.0:
        raise ValueError(f"bandwidth must be positive, got {pair}")
    return pair


def estimate_density(
    shape: Shape,
    grid: GridSpec,
    bandwidth: tuple[float, float],
    *,
    variable: str | None = None,
    smooth: bool = True,
    point_weight: float = 1.0,
) -> DensityEstimate:
    """Estimate the surface of ``shape`` on ``grid``.

    Smoothing is always applied to points. Areal input with ``smooth=False``
    returns the raw cell values, unnormalized.
    """
    match shape:
        case PointSet():
            binned = bin_points(shape.coords, grid)
            mass = len(shape) * float(point_weight)
            values = normalize(kernel_smooth(binned, grid, bandwidth), mass)
            surface = Surface(grid=grid, values=values, name="count", smoothed=True)
            kind = "points"
        case PolygonSet():
            _require_polygonal(shape)
            name, column = shape.variable(variable)
            if smooth:
                cells = polygon_values_to_grid(shape.geometries, column, grid, apportion=True)
                mass = float(np.nansum(column))
                values = normalize(kernel_smooth(cells, grid, bandwidth), mass)
            else:
                values = polygon_values_to_grid(shape.geometries, column, grid, apportion=False)
                mass = float(np.nansum(values))
            surface = Surface(grid=grid, values=values, name=name, smoothed=smooth)
            kind = "polygons"
        case GridData():
            name, layer = shape.variable(variable)
            layer = embed_layer(layer, shape.grid, grid)
            if smooth:
                mass = float(np.nansum(layer))
                binned = np.nan_to_num(layer, nan=0.0)
                values = normalize(kernel_smooth(binned, grid, bandwidth), mass)
            else:
                values = layer
                mass = float(np.nansum(layer))
            surface = Surface(grid=grid, values=values, name=name, smoothed=smooth)
            kind = "grid"
        case _:
            raise UnsupportedGeometry(
                "shape must be a PointSet, PolygonSet or GridData, "
                f"got {type(shape).__name__}"
            )

    _LOGGER.debug(
        "Estimated %s surface '%s' on %dx%d grid (bandwidth=%.6g,%.6g, mass=%.6g, smoothed=%s)",
        kind,
        surface.name,
        grid.nrows,
        grid.ncols,
        bandwidth[0],
        bandwidth[1],
        mass,
        surface.smoothed,
    )
    return DensityEstimate(surface=surface, bandwidth=bandwidth, mass=mass, kind=kind)


def presence_density(
    shape: Shape,
    grid: GridSpec,
    bandwidth: tuple[float, float],
    *,
    variable: str | None = None,
) -> np.ndarray:
    """Unnormalized smoothed presence: binned points, or 1 where data exists."""
    match shape:
        case PointSet():
            binned = bin_points(shape.coords, grid)
        case PolygonSet():
            _require_polygonal(shape)
            _, column = shape.variable(variable)
            cells = polygon_values_to_grid(shape.geometries, column, grid, apportion=False)
            binned = np.isfinite(cells).astype(float)
        case GridData():
            _, layer = shape.variable(variable)
            binned = np.isfinite(embed_layer(layer, shape.grid, grid)).astype(float)
        case _:
            raise UnsupportedGeometry(
                "shape must be a PointSet, PolygonSet or GridData, "
                f"got {type(shape).__name__}"
            )
    return kernel_smooth(binned, grid, bandwidth)


def bin_points(coords: np.ndarray, grid: GridSpec, weight: float = 1.0) -> np.ndarray:
    """Linear binning: each point's weight is split over its 4 nearest centers."""
    coords = np.asarray(coords, dtype=float).reshape(-1, 2)
    binned = np.zeros(grid.shape, dtype=float)
    if coords.shape[0] == 0:
        return binned

    fx = (coords[:, 0] - grid.x1[0]) / grid.cell_width
    fy = (coords[:, 1] - grid.x2[0]) / grid.cell_height
    keep = (
        (coords[:, 0] >= grid.bbox.xmin)
        & (coords[:, 0] <= grid.bbox.xmax)
        & (coords[:, 1] >= grid.bbox.ymin)
        & (coords[:, 1] <= grid.bbox.ymax)
    )
    fx = np.clip(fx[keep], 0.0, grid.ncols - 1)
    fy = np.clip(fy[keep], 0.0, grid.nrows - 1)

    i0 = np.minimum(np.floor(fx).astype(int), max(grid.ncols - 2, 0))
    j0 = np.minimum(np.floor(fy).astype(int), max(grid.nrows - 2, 0))
    tx = fx - i0
    ty = fy - j0
    i1 = np.minimum(i0 + 1, grid.ncols - 1)
    j1 = np.minimum(j0 + 1, grid.nrows - 1)

    np.add.at(binned, (j0, i0), weight * (1.0 - tx) * (1.0 - ty))
    np.add.at(binned, (j0, i1), weight * tx * (1.0 - ty))
    np.add.at(binned, (j1, i0), weight * (1.0 - tx) * ty)
    np.add.at(binned, (j1, i1), weight * tx * ty)
    return binned


def gaussian_kernel(grid: GridSpec, bandwidth: tuple[float, float]) -> np.ndarray:
    bx, by = bandwidth
    lx = min(int(math.floor(KERNEL_TRUNCATION * bx / grid.cell_width)), grid.ncols - 1)
    ly = min(int(math.floor(KERNEL_TRUNCATION * by / grid.cell_height)), grid.nrows - 1)
    offsets_x = np.arange(-lx, lx + 1) * grid.cell_width / bx
    offsets_y = np.arange(-ly, ly + 1) * grid.cell_height / by
    kx = np.exp(-0.5 * offsets_x**2)
    ky = np.exp(-0.5 * offsets_y**2)
    kernel = np.outer(ky, kx)
    return kernel / kernel.sum()


def kernel_smooth(
    binned: np.ndarray,
    grid: GridSpec,
    bandwidth: tuple[float, float],
) -> np.ndarray:
    kernel = gaussian_kernel(grid, bandwidth)
    smoothed = fftconvolve(np.asarray(binned, dtype=float), kernel, mode="same")
    # FFT round-off leaves tiny negatives where the field is empty
    return np.maximum(smoothed, 0.0)


def normalize(values: np.ndarray, mass: float) -> np.ndarray:
    total = float(np.nansum(values))
    if total <= 0.0:
        return np.asarray(values, dtype=float)
    return np.asarray(values, dtype=float) * (mass / total)


def embed_layer(layer: np.ndarray, source: GridSpec, target: GridSpec) -> np.ndarray:
    """Place ``layer`` (laid out on ``source``) into the larger ``target`` grid."""
    if source == target:
        return np.asarray(layer, dtype=float)
    left = int(round((source.bbox.xmin - target.bbox.xmin) / source.cell_width))
    bottom = int(round((source.bbox.ymin - target.bbox.ymin) / source.cell_height))
    out = np.full(target.shape, np.nan, dtype=float)
    out[bottom : bottom + source.nrows, left : left + source.ncols] = layer
    return out


def _grow_grid(grid: GridSpec, cover_bbox: BoundingBox) -> GridSpec:
    cw = grid.cell_width
    ch = grid.cell_height
    left = max(int(math.ceil((grid.bbox.xmin - cover_bbox.xmin) / cw - 1e-9)), 0)
    right = max(int(math.ceil((cover_bbox.xmax - grid.bbox.xmax) / cw - 1e-9)), 0)
    bottom = max(int(math.ceil((grid.bbox.ymin - cover_bbox.ymin) / ch - 1e-9)), 0)
    top = max(int(math.ceil((cover_bbox.ymax - grid.bbox.ymax) / ch - 1e-9)), 0)
    _LOGGER.debug(
        "Growing grid to include cover: left=%d bottom=%d right=%d top=%d cells",
        left,
        bottom,
        right,
        top,
    )
    return grid.padded(left=left, bottom=bottom, right=right, top=top)


def _require_polygonal(shape: PolygonSet) -> None:
    for geometry in shape.geometries:
        geom_type = getattr(geometry, "geom_type", "")
        if geom_type not in _POLYGONAL_TYPES:
            raise UnsupportedGeometry(
                f"PolygonSet holds a {geom_type or type(geometry).__name__}; "
                "only polygons and multipolygons are supported"
            )
