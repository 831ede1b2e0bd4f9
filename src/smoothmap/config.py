"""Typed configuration loader for `config.yaml`."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, TypeVar, cast

import yaml

from .classify import STYLES
from .cover import STRATEGIES
from .layout import LEGEND_POSITIONS, LayoutOptions
from .regions import VALUE_METHODS
from .smooth import OUTPUT_ALIASES, OUTPUTS

_T = TypeVar("_T")


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _int(value: Any, field_name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"Expected integer for '{field_name}'")
    return value


def _float(value: Any, field_name: str) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise ValueError(f"Expected float for '{field_name}'")


def _bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"Expected bool for '{field_name}'")
    return value


def _str_list(value: Any, field_name: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ValueError(f"Expected list for '{field_name}'")
    out: list[str] = []
    for idx, item in enumerate(value):
        out.append(_str(item, f"{field_name}[{idx}]"))
    return tuple(out)


def _float_list(value: Any, field_name: str) -> tuple[float, ...]:
    if not isinstance(value, list):
        raise ValueError(f"Expected list for '{field_name}'")
    return tuple(_float(item, f"{field_name}[{idx}]") for idx, item in enumerate(value))


def _optional(
    value: Any,
    parse: Callable[[Any, str], _T],
    field_name: str,
) -> _T | None:
    if value is None:
        return None
    return parse(value, field_name)


def _choice(value: str, allowed: tuple[str, ...], field_name: str) -> str:
    chosen = value.casefold()
    if chosen not in allowed:
        raise ValueError(f"{field_name} must be one of: " + ", ".join(allowed))
    return chosen


def _path_from_cfg(value: Any, field_name: str, root_dir: Path) -> Path:
    raw = _str(value, field_name)
    p = Path(raw)
    return p if p.is_absolute() else root_dir / p


@dataclass(frozen=True, slots=True)
class PathsConfig:
    output_dir: Path
    logs_dir: Path

    @property
    def build_directories(self) -> tuple[Path, ...]:
        return (self.output_dir, self.logs_dir)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> PathsConfig:
        return cls(
            output_dir=_path_from_cfg(raw.get("output_dir"), "paths.output_dir", root_dir),
            logs_dir=_path_from_cfg(raw.get("logs_dir"), "paths.logs_dir", root_dir),
        )


@dataclass(frozen=True, slots=True)
class SmoothingConfig:
    target_cell_count: int
    rows: int | None
    cols: int | None
    bandwidth: tuple[float, ...] | None
    smooth: bool
    point_weight: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> SmoothingConfig:
        target = _int(raw.get("target_cell_count", 250_000), "smoothing.target_cell_count")
        rows = _optional(raw.get("rows"), _int, "smoothing.rows")
        cols = _optional(raw.get("cols"), _int, "smoothing.cols")
        if target < 1:
            raise ValueError("smoothing.target_cell_count must be >= 1")
        if (rows is None) != (cols is None):
            raise ValueError("smoothing.rows and smoothing.cols must be given together")
        if rows is not None and cols is not None and (rows < 1 or cols < 1):
            raise ValueError("smoothing.rows and smoothing.cols must be >= 1")

        bandwidth_raw = raw.get("bandwidth")
        bandwidth: tuple[float, ...] | None
        if bandwidth_raw is None:
            bandwidth = None
        elif isinstance(bandwidth_raw, list):
            bandwidth = _float_list(bandwidth_raw, "smoothing.bandwidth")
            if len(bandwidth) not in (1, 2):
                raise ValueError("smoothing.bandwidth must have one or two values")
        else:
            bandwidth = (_float(bandwidth_raw, "smoothing.bandwidth"),)
        if bandwidth is not None and any(v <= 0 for v in bandwidth):
            raise ValueError("smoothing.bandwidth must be > 0")

        return cls(
            target_cell_count=target,
            rows=rows,
            cols=cols,
            bandwidth=bandwidth,
            smooth=_bool(raw.get("smooth", True), "smoothing.smooth"),
            point_weight=_float(raw.get("point_weight", 1.0), "smoothing.point_weight"),
        )


@dataclass(frozen=True, slots=True)
class LevelsConfig:
    count: int
    style: str | None
    breaks: tuple[float, ...] | None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> LevelsConfig:
        count = _int(raw.get("count", 5), "levels.count")
        if count < 1:
            raise ValueError("levels.count must be >= 1")
        style = _optional(raw.get("style"), _str, "levels.style")
        return cls(
            count=count,
            style=None if style is None else _choice(style, STYLES, "levels.style"),
            breaks=_optional(raw.get("breaks"), _float_list, "levels.breaks"),
        )


@dataclass(frozen=True, slots=True)
class CoverConfig:
    strategy: str | None
    threshold: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> CoverConfig:
        strategy = _optional(raw.get("strategy"), _str, "cover.strategy")
        threshold = _float(raw.get("threshold", 0.6), "cover.threshold")
        if not 0.0 < threshold < 1.0:
            raise ValueError("cover.threshold must be in (0, 1)")
        return cls(
            strategy=None if strategy is None else _choice(strategy, STRATEGIES, "cover.strategy"),
            threshold=threshold,
        )


@dataclass(frozen=True, slots=True)
class RegionsConfig:
    value_method: str
    outputs: tuple[str, ...]

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> RegionsConfig:
        method = _str(raw.get("value_method", "grid"), "regions.value_method")
        outputs = _str_list(raw.get("outputs", list(OUTPUTS)), "regions.outputs")
        allowed = OUTPUTS + tuple(OUTPUT_ALIASES)
        for idx, item in enumerate(outputs):
            _choice(item, allowed, f"regions.outputs[{idx}]")
        return cls(
            value_method=_choice(method, VALUE_METHODS, "regions.value_method"),
            outputs=outputs,
        )


@dataclass(frozen=True, slots=True)
class RenderImageConfig:
    width_px: int
    height_px: int
    dpi: int
    background: str
    format: str

    @property
    def size_inches(self) -> tuple[float, float]:
        return (self.width_px / self.dpi, self.height_px / self.dpi)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> RenderImageConfig:
        width_px = _int(raw.get("width_px"), "render.image.width_px")
        height_px = _int(raw.get("height_px"), "render.image.height_px")
        dpi = _int(raw.get("dpi"), "render.image.dpi")
        if width_px < 1 or height_px < 1 or dpi < 1:
            raise ValueError("render.image width_px, height_px and dpi must be >= 1")
        return cls(
            width_px=width_px,
            height_px=height_px,
            dpi=dpi,
            background=_str(raw.get("background"), "render.image.background"),
            format=_str(raw.get("format"), "render.image.format"),
        )


@dataclass(frozen=True, slots=True)
class PaletteConfig:
    colormap: str
    region_alpha: float
    region_edge_color: str
    region_edge_width: float
    contour_color: str
    contour_width: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> PaletteConfig:
        alpha = _float(raw.get("region_alpha", 1.0), "render.palette.region_alpha")
        if not 0.0 <= alpha <= 1.0:
            raise ValueError("render.palette.region_alpha must be in [0, 1]")
        return cls(
            colormap=_str(raw.get("colormap"), "render.palette.colormap"),
            region_alpha=alpha,
            region_edge_color=_str(raw.get("region_edge_color"), "render.palette.region_edge_color"),
            region_edge_width=_float(raw.get("region_edge_width"), "render.palette.region_edge_width"),
            contour_color=_str(raw.get("contour_color"), "render.palette.contour_color"),
            contour_width=_float(raw.get("contour_width"), "render.palette.contour_width"),
        )


@dataclass(frozen=True, slots=True)
class LayoutConfig:
    frame: str | None
    frame_lwd: float
    frame_double_line: bool
    inner_margins: tuple[float, float, float, float]
    bg_color: str
    design_mode: bool
    legend_position: str
    legend_only: bool
    legend_title: str
    credits: str | None
    logo: Path | None
    scale_bar: bool
    compass: bool

    def to_options(self, *, title: str = "") -> LayoutOptions:
        return LayoutOptions(
            frame=self.frame,
            frame_lwd=self.frame_lwd,
            frame_double_line=self.frame_double_line,
            inner_margins=self.inner_margins,
            bg_color=self.bg_color,
            design_mode=self.design_mode,
            legend_position=self.legend_position,
            legend_only=self.legend_only,
            title=title,
            credits=self.credits,
            logo=str(self.logo) if self.logo is not None else None,
            scale_bar=self.scale_bar,
            compass=self.compass,
        )

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> LayoutConfig:
        margins = _float_list(raw.get("inner_margins", [0.02, 0.02, 0.02, 0.02]), "render.layout.inner_margins")
        if len(margins) != 4:
            raise ValueError("render.layout.inner_margins must have 4 values (bottom, left, top, right)")
        if any(m < 0.0 for m in margins) or margins[0] + margins[2] >= 1.0 or margins[1] + margins[3] >= 1.0:
            raise ValueError("render.layout.inner_margins leave no room for the map")
        frame_lwd = _float(raw.get("frame_lwd", 1.0), "render.layout.frame_lwd")
        if frame_lwd <= 0.0:
            raise ValueError("render.layout.frame_lwd must be > 0")
        position = _str(raw.get("legend_position", "bottom-right"), "render.layout.legend_position")
        logo = raw.get("logo")
        return cls(
            frame=_optional(raw.get("frame", "black"), _str, "render.layout.frame"),
            frame_lwd=frame_lwd,
            frame_double_line=_bool(raw.get("frame_double_line", False), "render.layout.frame_double_line"),
            inner_margins=(margins[0], margins[1], margins[2], margins[3]),
            bg_color=_str(raw.get("bg_color", "white"), "render.layout.bg_color"),
            design_mode=_bool(raw.get("design_mode", False), "render.layout.design_mode"),
            legend_position=_choice(position, LEGEND_POSITIONS, "render.layout.legend_position"),
            legend_only=_bool(raw.get("legend_only", False), "render.layout.legend_only"),
            legend_title=str(raw.get("legend_title", "") or ""),
            credits=_optional(raw.get("credits"), _str, "render.layout.credits"),
            logo=None if logo is None else _path_from_cfg(logo, "render.layout.logo", root_dir),
            scale_bar=_bool(raw.get("scale_bar", False), "render.layout.scale_bar"),
            compass=_bool(raw.get("compass", False), "render.layout.compass"),
        )


@dataclass(frozen=True, slots=True)
class GridLinesConfig:
    show: bool
    crs: str
    count: int

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> GridLinesConfig:
        count = _int(raw.get("count", 5), "render.grid.count")
        if count < 1:
            raise ValueError("render.grid.count must be >= 1")
        return cls(
            show=_bool(raw.get("show", False), "render.grid.show"),
            crs=_str(raw.get("crs", "EPSG:4326"), "render.grid.crs"),
            count=count,
        )

    @classmethod
    def default(cls) -> GridLinesConfig:
        return cls(show=False, crs="EPSG:4326", count=5)


@dataclass(frozen=True, slots=True)
class RenderConfig:
    image: RenderImageConfig
    palette: PaletteConfig
    layout: LayoutConfig
    grid: GridLinesConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> RenderConfig:
        grid_raw = raw.get("grid")
        grid = (
            GridLinesConfig.default()
            if grid_raw is None
            else GridLinesConfig.from_mapping(_mapping(grid_raw, "render.grid"))
        )
        return cls(
            image=RenderImageConfig.from_mapping(_mapping(raw.get("image"), "render.image")),
            palette=PaletteConfig.from_mapping(_mapping(raw.get("palette"), "render.palette")),
            layout=LayoutConfig.from_mapping(_mapping(raw.get("layout", {}), "render.layout"), root_dir),
            grid=grid,
        )


@dataclass(frozen=True, slots=True)
class AppConfig:
    source_path: Path
    paths: PathsConfig
    smoothing: SmoothingConfig
    levels: LevelsConfig
    cover: CoverConfig
    regions: RegionsConfig
    render: RenderConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path) -> AppConfig:
        root_dir = source_path.parent.resolve()
        return cls(
            source_path=source_path.resolve(),
            paths=PathsConfig.from_mapping(_mapping(raw.get("paths"), "paths"), root_dir),
            smoothing=SmoothingConfig.from_mapping(_mapping(raw.get("smoothing", {}), "smoothing")),
            levels=LevelsConfig.from_mapping(_mapping(raw.get("levels", {}), "levels")),
            cover=CoverConfig.from_mapping(_mapping(raw.get("cover", {}), "cover")),
            regions=RegionsConfig.from_mapping(_mapping(raw.get("regions", {}), "regions")),
            render=RenderConfig.from_mapping(_mapping(raw.get("render"), "render"), root_dir),
        )


def load_config(path: str | Path) -> AppConfig:
    """Load and validate the YAML config file into typed settings."""
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level config must be a YAML mapping")
    return AppConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path)
