"""Config-driven pipeline runs that write raster, contour and region artifacts."""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from .config import AppConfig
from .errors import SmoothMapError, UnknownOutputFormat
from .io_data import load_shape, write_contours, write_raster, write_regions
from .levels import ClassificationSpec
from .models import Shape
from .smooth import OUTPUT_CONTOUR, OUTPUT_RASTER, OUTPUT_REGIONS, SmoothResult, resolve_outputs, run_pipeline
from .util import sha256_file, write_json

_LOGGER = logging.getLogger("smoothmap.export")

RASTER_FILE = "raster.npz"
CONTOURS_FILE = "contours.geojson"
REGIONS_FILE = "regions.geojson"
MANIFEST_FILE = "manifest.json"


@dataclass(slots=True)
class ExportReport:
    output_dir: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)
    summary: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


def run_configured_pipeline(
    cfg: AppConfig,
    shape: Shape,
    *,
    variable: str | None,
    outputs: Sequence[str],
) -> SmoothResult:
    """``run_pipeline`` with every knob taken from the config."""
    smoothing = cfg.smoothing
    spec = ClassificationSpec.resolve(
        level_count=cfg.levels.count,
        style=cfg.levels.style,
        breaks=cfg.levels.breaks,
    )
    return run_pipeline(
        shape,
        variable=variable,
        rows=smoothing.rows,
        cols=smoothing.cols,
        target_cell_count=smoothing.target_cell_count,
        smooth=smoothing.smooth,
        classification=spec,
        bandwidth=smoothing.bandwidth,
        cover_strategy=cfg.cover.strategy,
        cover_threshold=cfg.cover.threshold,
        point_weight=smoothing.point_weight,
        outputs=outputs,
        region_value_method=cfg.regions.value_method,
    )


def run_export(
    cfg: AppConfig,
    *,
    input_path: Path,
    variable: str | None = None,
    output_dir: Path | None = None,
    outputs: Sequence[str] | None = None,
) -> ExportReport:
    """Smooth one input file and write the requested artifacts."""
    target_dir = output_dir or cfg.paths.output_dir
    report = ExportReport(output_dir=target_dir)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", UnknownOutputFormat)
        wanted = resolve_outputs(outputs if outputs else cfg.regions.outputs)
    for item in caught:
        report.add_warning(str(item.message))
    if not wanted:
        report.add_error("No valid outputs requested.")
        return report

    try:
        shape = load_shape(input_path, variable=variable)
    except (OSError, ValueError, RuntimeError) as exc:
        report.add_error(f"Failed loading input '{input_path}': {exc}")
        return report
    report.add_info(f"Loaded {type(shape).__name__} from {input_path}")

    try:
        result = run_configured_pipeline(cfg, shape, variable=variable, outputs=wanted)
    except SmoothMapError as exc:
        report.add_error(f"{type(exc).__name__}: {exc}")
        return report

    grid = result.density.grid
    report.add_info(
        f"Grid {grid.nrows}x{grid.ncols}, cover={result.cover.strategy} ({result.cover.reason})"
    )
    artifacts: dict[str, str] = {}
    if OUTPUT_RASTER in wanted:
        artifacts[OUTPUT_RASTER] = str(write_raster(target_dir / RASTER_FILE, result.surface))
    if OUTPUT_CONTOUR in wanted and result.isolines:
        artifacts[OUTPUT_CONTOUR] = str(
            write_contours(target_dir / CONTOURS_FILE, result.isolines, grid.crs)
        )
    elif OUTPUT_CONTOUR in wanted:
        report.add_warning("No iso-lines inside the cover; contour file not written")
    if OUTPUT_REGIONS in wanted and result.regions is not None:
        artifacts[OUTPUT_REGIONS] = str(
            write_regions(target_dir / REGIONS_FILE, result.regions, grid.crs)
        )
    for name, path in artifacts.items():
        report.add_info(f"Wrote {name} to {path}")

    report.summary = {
        "grid_rows": grid.nrows,
        "grid_cols": grid.ncols,
        "cover_reason": result.cover.reason,
        "levels": list(result.levels.breaks) if result.levels is not None else [],
        "contour_lines": len(result.lines) if result.lines is not None else 0,
        "regions": len(result.regions) if result.regions is not None else 0,
    }
    write_json(
        target_dir / MANIFEST_FILE,
        {
            "input": str(input_path),
            "input_sha256": sha256_file(input_path),
            "config_sha256": sha256_file(cfg.source_path),
            "artifacts": artifacts,
            "summary": report.summary,
        },
    )
    _LOGGER.debug("Manifest written to %s", target_dir / MANIFEST_FILE)
    return report


def format_export_lines(report: ExportReport) -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Smoothing completed with no errors.")
    return lines
