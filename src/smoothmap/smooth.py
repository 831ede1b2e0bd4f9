"""``smooth_surface``: density, cover, levels, iso-lines and dasymetric regions."""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from shapely.ops import unary_union

from .contour import MAX_CONTOURS, clip_to_cover, trace_contours
from .cover import resolve_cover
from .density import DEFAULT_TARGET_CELLS, DensityEstimate, estimate_density, resolve_bandwidth, resolve_grid
from .errors import UnknownOutputFormat
from .levels import ClassificationSpec, select_levels
from .models import BoundingBox, ContourLine, Cover, IsoLine, LevelSet, RegionSet, Shape, Surface
from .regions import VALUE_GRID, build_regions

_LOGGER = logging.getLogger("smoothmap.smooth")

OUTPUT_RASTER = "raster"
OUTPUT_CONTOUR = "contour"
OUTPUT_REGIONS = "regions"
OUTPUTS = (OUTPUT_RASTER, OUTPUT_CONTOUR, OUTPUT_REGIONS)
OUTPUT_ALIASES = {"iso": OUTPUT_CONTOUR, "dasy": OUTPUT_REGIONS}


@dataclass(frozen=True, slots=True, eq=False)
class SmoothResult:
    """Every intermediate of one pipeline run.

    Stages not needed for the requested outputs are left as ``None``.
    """

    density: DensityEstimate
    cover: Cover
    surface: Surface
    levels: LevelSet | None = None
    lines: tuple[ContourLine, ...] | None = None
    isolines: tuple[IsoLine, ...] | None = None
    regions: RegionSet | None = None

    def artifact(self, name: str, *, raster_as_native_grid: bool = False) -> Any:
        if name == OUTPUT_RASTER:
            return self.surface.to_grid_data() if raster_as_native_grid else self.surface
        if name == OUTPUT_CONTOUR:
            return self.isolines
        if name == OUTPUT_REGIONS:
            return self.regions
        raise KeyError(name)


def resolve_outputs(outputs: str | Iterable[str]) -> tuple[str, ...]:
    """Canonical output names in request order; unknown keys warn and drop."""
    if isinstance(outputs, str):
        outputs = (outputs,)
    resolved: list[str] = []
    for key in outputs:
        text = str(key).strip().casefold()
        name = OUTPUT_ALIASES.get(text, text)
        if name not in OUTPUTS:
            warnings.warn(
                f"Unknown output '{key}'; expected one of: " + ", ".join(OUTPUTS),
                UnknownOutputFormat,
                stacklevel=3,
            )
            continue
        if name not in resolved:
            resolved.append(name)
    return tuple(resolved)


def run_pipeline(
    shape: Shape,
    *,
    variable: str | None = None,
    rows: int | None = None,
    cols: int | None = None,
    target_cell_count: int = DEFAULT_TARGET_CELLS,
    smooth: bool = True,
    classification: ClassificationSpec | None = None,
    bandwidth: float | Sequence[float] | None = None,
    cover_strategy: str | None = None,
    cover: Any | None = None,
    cover_threshold: float = 0.6,
    point_weight: float = 1.0,
    outputs: Sequence[str] = OUTPUTS,
    region_value_method: str = VALUE_GRID,
    max_lines: int = MAX_CONTOURS,
) -> SmoothResult:
    """Run the stages needed for ``outputs`` (canonical names only)."""
    spec = classification or ClassificationSpec.resolve()
    need_lines = OUTPUT_CONTOUR in outputs or OUTPUT_REGIONS in outputs

    cover_bbox = None
    if cover is not None:
        cover_geom = unary_union(list(cover) if isinstance(cover, (list, tuple)) else [cover])
        cover_bbox = BoundingBox.from_bounds(cover_geom.bounds)
        cover = cover_geom

    grid = resolve_grid(
        shape,
        rows=rows,
        cols=cols,
        target_cell_count=target_cell_count,
        cover_bbox=cover_bbox,
    )
    bw = resolve_bandwidth(bandwidth, grid)
    _LOGGER.info(
        "Grid %dx%d over (%.6g, %.6g, %.6g, %.6g); bandwidth=(%.6g, %.6g)",
        grid.nrows,
        grid.ncols,
        *grid.bbox.bounds,
        *bw,
    )

    density = estimate_density(
        shape,
        grid,
        bw,
        variable=variable,
        smooth=smooth,
        point_weight=point_weight,
    )
    resolved_cover = resolve_cover(
        shape,
        grid,
        bw,
        strategy=cover_strategy,
        cover=cover,
        threshold=cover_threshold,
        variable=variable,
    )
    surface = density.surface.masked(resolved_cover.mask)
    if not need_lines:
        return SmoothResult(density=density, cover=resolved_cover, surface=surface)

    levels = select_levels(surface, spec)
    if levels.interior:
        lines = trace_contours(density.surface, levels.interior, max_lines=max_lines)
    else:
        # a single band covers the whole cover
        _LOGGER.info("Level set has no interior breaks; skipping iso-line tracing")
        lines = ()
    isolines = clip_to_cover(lines, resolved_cover.polygon) if OUTPUT_CONTOUR in outputs else None
    regions = None
    if OUTPUT_REGIONS in outputs:
        regions = build_regions(
            resolved_cover.polygon,
            lines,
            surface,
            levels.breaks,
            value_method=region_value_method,
        )
    return SmoothResult(
        density=density,
        cover=resolved_cover,
        surface=surface,
        levels=levels,
        lines=lines,
        isolines=isolines,
        regions=regions,
    )


def smooth_surface(
    shape: Shape,
    variable: str | None = None,
    rows: int | None = None,
    cols: int | None = None,
    target_cell_count: int = DEFAULT_TARGET_CELLS,
    smooth: bool = True,
    level_count: int = 5,
    style: str | None = None,
    breaks: Sequence[float] | None = None,
    bandwidth: float | Sequence[float] | None = None,
    cover_strategy: str | None = None,
    cover: Any | None = None,
    cover_threshold: float = 0.6,
    point_weight: float = 1.0,
    outputs: str | Iterable[str] = OUTPUTS,
    raster_as_native_grid: bool = False,
    region_value_method: str = VALUE_GRID,
) -> Any:
    """Smooth ``shape`` into a surface and derive iso-lines and regions.

    Returns the single artifact when exactly one valid output is requested,
    otherwise a dict keyed by ``raster``, ``contour`` and ``regions``.
    ``iso`` and ``dasy`` are accepted as aliases of the last two.
    """
    spec = ClassificationSpec.resolve(level_count=level_count, style=style, breaks=breaks)
    wanted = resolve_outputs(outputs)
    if not wanted:
        return {}

    result = run_pipeline(
        shape,
        variable=variable,
        rows=rows,
        cols=cols,
        target_cell_count=target_cell_count,
        smooth=smooth,
        classification=spec,
        bandwidth=bandwidth,
        cover_strategy=cover_strategy,
        cover=cover,
        cover_threshold=cover_threshold,
        point_weight=point_weight,
        outputs=wanted,
        region_value_method=region_value_method,
    )
    artifacts = {
        name: result.artifact(name, raster_as_native_grid=raster_as_native_grid) for name in wanted
    }
    if len(artifacts) == 1:
        return next(iter(artifacts.values()))
    return artifacts
