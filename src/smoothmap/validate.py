"""Validation layer for config and input data."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from .config import AppConfig
from .errors import SmoothMapError
from .io_data import load_shape
from .levels import ClassificationSpec


@dataclass(slots=True)
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


class Validator:
    """Config and input sanity checks that run without smoothing anything."""

    def __init__(self, cfg: AppConfig) -> None:
        self.cfg = cfg

    def run(self, *, input_path: Path | None = None) -> ValidationReport:
        report = ValidationReport()
        report.add_info(f"Config loaded from {self.cfg.source_path}")
        self._validate_levels(report)
        self._validate_render(report)
        if input_path is not None:
            self._validate_input(report, input_path)
        return report

    def _validate_levels(self, report: ValidationReport) -> None:
        levels = self.cfg.levels
        try:
            spec = ClassificationSpec.resolve(
                level_count=levels.count,
                style=levels.style,
                breaks=levels.breaks,
            )
        except SmoothMapError as exc:
            report.add_error(f"Invalid levels config: {exc}")
            return
        report.add_info(f"Classification: style={spec.style}, bands={spec.level_count}")
        if levels.breaks is not None and levels.style not in (None, "fixed"):
            report.add_warning(
                f"levels.style '{levels.style}' is ignored because explicit breaks are given"
            )

    def _validate_render(self, report: ValidationReport) -> None:
        render = self.cfg.render
        try:
            import matplotlib
        except ImportError:
            report.add_error("matplotlib is not installed; maps cannot be rendered")
        else:
            if render.palette.colormap not in matplotlib.colormaps:
                report.add_error(f"Unknown colormap: {render.palette.colormap}")

        logo = render.layout.logo
        if logo is not None and not logo.is_file():
            report.add_warning(f"Logo file not found; it will be skipped: {logo}")

        if render.grid.show:
            try:
                from pyproj import CRS
                from pyproj.exceptions import CRSError
            except ImportError:
                report.add_error("pyproj is not installed; grid lines cannot be projected")
                return
            try:
                CRS.from_user_input(render.grid.crs)
            except CRSError as exc:
                report.add_error(f"Invalid render.grid.crs '{render.grid.crs}': {exc}")

    def _validate_input(self, report: ValidationReport, input_path: Path) -> None:
        if not input_path.exists():
            report.add_error(f"Missing input file: {input_path}")
            return
        try:
            shape = load_shape(input_path)
        except (OSError, ValueError, RuntimeError) as exc:
            report.add_error(f"Failed parsing input '{input_path}': {exc}")
            return
        report.add_info(f"Input {input_path} holds a {type(shape).__name__}")


def format_report_lines(report: ValidationReport) -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Validation passed.")
    return lines
