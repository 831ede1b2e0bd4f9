"""Domain models shared across pipeline modules.

Arrays held by these models are copied on construction and flagged
read-only, so every stage returns new values instead of mutating its inputs.
Two-dimensional grids are stored as ``(nrows, ncols)`` with row 0 being the
southern-most row, i.e. ``values[j, i]`` sits at ``(x1[i], x2[j])``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence, Union

import numpy as np
import shapely
from shapely.geometry import box

# fraction of a cell treated as lying on the max edge
_EDGE_TOLERANCE = 1e-9


def _frozen_array(value: Any, *, dtype: Any = float) -> np.ndarray:
    arr = np.array(value, dtype=dtype, copy=True)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, slots=True)
class BoundingBox:
    xmin: float
    ymin: float
    xmax: float
    ymax: float

    def __post_init__(self) -> None:
        if not all(math.isfinite(v) for v in (self.xmin, self.ymin, self.xmax, self.ymax)):
            raise ValueError("Bounding box coordinates must be finite")
        if self.xmax < self.xmin or self.ymax < self.ymin:
            raise ValueError(
                f"Invalid bounding box: ({self.xmin}, {self.ymin}, {self.xmax}, {self.ymax})"
            )

    @classmethod
    def from_bounds(cls, bounds: Sequence[float]) -> BoundingBox:
        xmin, ymin, xmax, ymax = (float(v) for v in bounds)
        return cls(xmin=xmin, ymin=ymin, xmax=xmax, ymax=ymax)

    @property
    def width(self) -> float:
        return self.xmax - self.xmin

    @property
    def height(self) -> float:
        return self.ymax - self.ymin

    @property
    def aspect(self) -> float:
        """Width over height; degenerate boxes count as square."""
        if self.width <= 0.0 or self.height <= 0.0:
            return 1.0
        return self.width / self.height

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        return (self.xmin, self.ymin, self.xmax, self.ymax)

    def extend(self, factor: float) -> BoundingBox:
        """Grow the shortest side by ``factor - 1`` of its length.

        The longest side grows by the same absolute amount, so a 5% margin
        on a long thin shape does not balloon along its long axis. Degenerate
        (zero-extent) sides fall back to a unit-relative pad.
        """
        shortest = min(self.width, self.height)
        if shortest <= 0.0:
            shortest = max(self.width, self.height)
        if shortest <= 0.0:
            shortest = max(abs(self.xmin), abs(self.ymin), 1.0)
        pad = shortest * (factor - 1.0) / 2.0
        return BoundingBox(
            xmin=self.xmin - pad,
            ymin=self.ymin - pad,
            xmax=self.xmax + pad,
            ymax=self.ymax + pad,
        )

    def union(self, other: BoundingBox) -> BoundingBox:
        return BoundingBox(
            xmin=min(self.xmin, other.xmin),
            ymin=min(self.ymin, other.ymin),
            xmax=max(self.xmax, other.xmax),
            ymax=max(self.ymax, other.ymax),
        )

    def contains(self, other: BoundingBox) -> bool:
        return (
            self.xmin <= other.xmin
            and self.ymin <= other.ymin
            and self.xmax >= other.xmax
            and self.ymax >= other.ymax
        )

    def to_polygon(self) -> Any:
        return box(self.xmin, self.ymin, self.xmax, self.ymax)


@dataclass(frozen=True, slots=True)
class GridSpec:
    """Regular raster layout: bounding box, dims and coordinate reference."""

    bbox: BoundingBox
    nrows: int
    ncols: int
    crs: str | None = None

    def __post_init__(self) -> None:
        if self.nrows < 1 or self.ncols < 1:
            raise ValueError(f"Grid dims must be >= 1, got {self.nrows}x{self.ncols}")
        if self.bbox.width <= 0.0 or self.bbox.height <= 0.0:
            raise ValueError("Grid bounding box must have a positive extent")

    @property
    def size(self) -> int:
        return self.nrows * self.ncols

    @property
    def shape(self) -> tuple[int, int]:
        return (self.nrows, self.ncols)

    @property
    def cell_width(self) -> float:
        return self.bbox.width / self.ncols

    @property
    def cell_height(self) -> float:
        return self.bbox.height / self.nrows

    @property
    def x1(self) -> np.ndarray:
        return self.bbox.xmin + (np.arange(self.ncols) + 0.5) * self.cell_width

    @property
    def x2(self) -> np.ndarray:
        return self.bbox.ymin + (np.arange(self.nrows) + 0.5) * self.cell_height

    def cell_centers(self) -> tuple[np.ndarray, np.ndarray]:
        return np.meshgrid(self.x1, self.x2)

    def cell_index(self, xs: Any, ys: Any) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Return ``(rows, cols, inside)`` for the cells containing each point."""
        xs = np.asarray(xs, dtype=float)
        ys = np.asarray(ys, dtype=float)
        cols = np.floor((xs - self.bbox.xmin) / self.cell_width).astype(int)
        rows = np.floor((ys - self.bbox.ymin) / self.cell_height).astype(int)
        # points on the max edge belong to the last cell
        on_east = np.abs(xs - self.bbox.xmax) <= _EDGE_TOLERANCE * self.cell_width
        on_north = np.abs(ys - self.bbox.ymax) <= _EDGE_TOLERANCE * self.cell_height
        cols = np.where(on_east, self.ncols - 1, cols)
        rows = np.where(on_north, self.nrows - 1, rows)
        inside = (cols >= 0) & (cols < self.ncols) & (rows >= 0) & (rows < self.nrows)
        return (rows, cols, inside)

    def padded(self, *, left: int = 0, bottom: int = 0, right: int = 0, top: int = 0) -> GridSpec:
        """Grow the grid by whole cells, keeping the cell size."""
        cw = self.cell_width
        ch = self.cell_height
        return GridSpec(
            bbox=BoundingBox(
                xmin=self.bbox.xmin - left * cw,
                ymin=self.bbox.ymin - bottom * ch,
                xmax=self.bbox.xmax + right * cw,
                ymax=self.bbox.ymax + top * ch,
            ),
            nrows=self.nrows + bottom + top,
            ncols=self.ncols + left + right,
            crs=self.crs,
        )


@dataclass(frozen=True, slots=True, eq=False)
class PointSet:
    coords: np.ndarray
    crs: str | None = None

    def __post_init__(self) -> None:
        coords = np.asarray(self.coords, dtype=float).reshape(-1, 2)
        if coords.shape[0] == 0:
            raise ValueError("PointSet requires at least one point")
        object.__setattr__(self, "coords", _frozen_array(coords))

    @classmethod
    def from_xy(cls, points: Iterable[Sequence[float]], crs: str | None = None) -> PointSet:
        return cls(coords=np.array([(float(x), float(y)) for x, y in points]), crs=crs)

    def __len__(self) -> int:
        return int(self.coords.shape[0])

    def bounding_box(self) -> BoundingBox:
        mins = self.coords.min(axis=0)
        maxs = self.coords.max(axis=0)
        return BoundingBox(float(mins[0]), float(mins[1]), float(maxs[0]), float(maxs[1]))

    def representative_points(self) -> np.ndarray:
        return self.coords


@dataclass(frozen=True, slots=True, eq=False)
class PolygonSet:
    """Areal features with one or more numeric variables."""

    geometries: tuple[Any, ...]
    values: Mapping[str, np.ndarray] = field(default_factory=dict)
    crs: str | None = None

    def __post_init__(self) -> None:
        geometries = tuple(self.geometries)
        if not geometries:
            raise ValueError("PolygonSet requires at least one geometry")
        frozen: dict[str, np.ndarray] = {}
        for name, column in self.values.items():
            arr = _frozen_array(column)
            if arr.shape != (len(geometries),):
                raise ValueError(
                    f"Variable '{name}' has {arr.shape[0] if arr.ndim else 0} values "
                    f"for {len(geometries)} geometries"
                )
            frozen[name] = arr
        object.__setattr__(self, "geometries", geometries)
        object.__setattr__(self, "values", frozen)

    def __len__(self) -> int:
        return len(self.geometries)

    def bounding_box(self) -> BoundingBox:
        return BoundingBox.from_bounds(shapely.total_bounds(np.asarray(self.geometries, dtype=object)))

    def representative_points(self) -> np.ndarray:
        return np.array(
            [(p.x, p.y) for p in (g.representative_point() for g in self.geometries)],
            dtype=float,
        )

    def variable(self, name: str | None) -> tuple[str, np.ndarray]:
        return _pick_variable(self.values, name)


@dataclass(frozen=True, slots=True, eq=False)
class GridData:
    """Gridded input: one 2-D array per variable, NaN for missing cells."""

    grid: GridSpec
    values: Mapping[str, np.ndarray] = field(default_factory=dict)

    def __post_init__(self) -> None:
        frozen: dict[str, np.ndarray] = {}
        for name, layer in self.values.items():
            arr = _frozen_array(layer)
            if arr.shape != self.grid.shape:
                raise ValueError(
                    f"Layer '{name}' has shape {arr.shape}, expected {self.grid.shape}"
                )
            frozen[name] = arr
        object.__setattr__(self, "values", frozen)

    @property
    def crs(self) -> str | None:
        return self.grid.crs

    def bounding_box(self) -> BoundingBox:
        return self.grid.bbox

    def representative_points(self) -> np.ndarray:
        xs, ys = self.grid.cell_centers()
        return np.column_stack((xs.ravel(), ys.ravel()))

    def variable(self, name: str | None) -> tuple[str, np.ndarray]:
        return _pick_variable(self.values, name)


Shape = Union[PointSet, PolygonSet, GridData]


def _pick_variable(values: Mapping[str, np.ndarray], name: str | None) -> tuple[str, np.ndarray]:
    if not values:
        raise ValueError("Shape carries no variables")
    if name is None:
        # first variable, like a data frame's first column
        name = next(iter(values))
    if name not in values:
        raise ValueError(
            f"Unknown variable '{name}'; available: {', '.join(sorted(values))}"
        )
    return (name, values[name])


@dataclass(frozen=True, slots=True, eq=False)
class Surface:
    """Gridded scalar field; NaN marks missing cells."""

    grid: GridSpec
    values: np.ndarray
    name: str
    smoothed: bool = True

    def __post_init__(self) -> None:
        arr = _frozen_array(self.values)
        if arr.shape != self.grid.shape:
            raise ValueError(f"Surface values have shape {arr.shape}, expected {self.grid.shape}")
        object.__setattr__(self, "values", arr)

    @property
    def x1(self) -> np.ndarray:
        return self.grid.x1

    @property
    def x2(self) -> np.ndarray:
        return self.grid.x2

    def finite_values(self) -> np.ndarray:
        return self.values[np.isfinite(self.values)]

    def total(self) -> float:
        return float(np.nansum(self.values))

    def masked(self, mask: np.ndarray) -> Surface:
        """Return a copy with cells outside ``mask`` set to NaN."""
        values = np.where(np.asarray(mask, dtype=bool), self.values, np.nan)
        return Surface(grid=self.grid, values=values, name=self.name, smoothed=self.smoothed)

    def to_grid_data(self) -> GridData:
        return GridData(grid=self.grid, values={self.name: self.values})


@dataclass(frozen=True, slots=True, eq=False)
class Cover:
    """Valid extent for contours, as a polygon and a grid-aligned mask."""

    polygon: Any
    mask: np.ndarray
    strategy: str
    reason: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "mask", _frozen_array(self.mask, dtype=bool))

    @property
    def bbox(self) -> BoundingBox:
        return BoundingBox.from_bounds(self.polygon.bounds)


@dataclass(frozen=True, slots=True)
class LevelSet:
    breaks: tuple[float, ...]
    style: str

    @property
    def interior(self) -> tuple[float, ...]:
        """Breaks strictly inside the outer pair; these are the traced levels."""
        return self.breaks[1:-1]

    @property
    def band_count(self) -> int:
        return max(len(self.breaks) - 1, 1)


@dataclass(frozen=True, slots=True, eq=False)
class ContourLine:
    level: float
    coords: np.ndarray

    def __post_init__(self) -> None:
        object.__setattr__(self, "coords", _frozen_array(np.asarray(self.coords).reshape(-1, 2)))


@dataclass(frozen=True, slots=True, eq=False)
class IsoLine:
    """All contour pieces of one level, clipped to the cover."""

    level: float
    geometry: Any


@dataclass(frozen=True, slots=True, eq=False)
class Region:
    band_index: int
    label: str
    value: float
    geometry: Any


@dataclass(frozen=True, slots=True, eq=False)
class RegionSet:
    regions: tuple[Region, ...]
    band_labels: tuple[str, ...]
    breaks: tuple[float, ...]

    def __len__(self) -> int:
        return len(self.regions)

    def __iter__(self):
        return iter(self.regions)

    @property
    def labels(self) -> tuple[str, ...]:
        return tuple(region.label for region in self.regions)
