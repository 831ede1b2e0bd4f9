"""Map rendering: draw the composed scene tree of a smoothed map with matplotlib."""

from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from .config import AppConfig, RenderConfig
from .errors import GraticuleUnavailable, SmoothMapError
from .export import run_configured_pipeline
from .graticule import graticule_lines
from .io_data import load_shape
from .layout import ComposedLayout, LegendItem, LegendSpec, SceneNode, compose_layout
from .models import BoundingBox, RegionSet
from .regions import explode_polygons
from .smooth import OUTPUT_CONTOUR, OUTPUT_REGIONS, SmoothResult

_LOGGER = logging.getLogger("smoothmap.render")

_Box = tuple[float, float, float, float]


@dataclass(frozen=True, slots=True)
class _LegendPolicy:
    swatch_width: float
    swatch_gap: float
    font_size: float
    title_size: float


@dataclass(frozen=True, slots=True)
class _DecorPolicy:
    graticule_color: str
    graticule_width: float
    graticule_style: tuple[Any, ...]
    scale_bar_fill: float
    scale_bar_width: float
    compass_width: float
    font_size: float
    title_size: float


_LEGEND_POLICY = _LegendPolicy(swatch_width=0.14, swatch_gap=0.06, font_size=8.0, title_size=9.0)
_DECOR_POLICY = _DecorPolicy(
    graticule_color="#888888",
    graticule_width=0.5,
    graticule_style=(0, (2.0, 2.0)),
    scale_bar_fill=0.8,
    scale_bar_width=1.2,
    compass_width=0.25,
    font_size=8.0,
    title_size=13.0,
)


@dataclass(frozen=True, slots=True)
class RenderRequest:
    result: SmoothResult
    output_path: Path
    title: str = ""


@dataclass(slots=True)
class _DrawState:
    """Facts gathered while drawing that later nodes depend on."""

    map_extent: BoundingBox | None = None
    map_fig_width: float = 0.0
    skipped: list[str] = field(default_factory=list)


@dataclass(slots=True)
class RenderMapReport:
    output_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)
    summary: dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


class MapRenderer:
    """Deterministic renderer for one smoothed map PNG."""

    def __init__(self, cfg: RenderConfig) -> None:
        self.cfg = cfg
        self.skipped: list[str] = []

    def band_colors(self, count: int) -> tuple[str, ...]:
        _, mpl = _require_matplotlib()
        cmap = mpl.colormaps[self.cfg.palette.colormap]
        if count == 1:
            return (mpl.colors.to_hex(cmap(0.5)),)
        return tuple(mpl.colors.to_hex(cmap(i / (count - 1))) for i in range(count))

    def legend_for(self, regions: RegionSet | None) -> LegendSpec | None:
        if regions is None or not regions.band_labels:
            return None
        colors = self.band_colors(len(regions.band_labels))
        items = tuple(
            LegendItem(label=label, color=color)
            for label, color in zip(regions.band_labels, colors)
        )
        return LegendSpec(title=self.cfg.layout.legend_title, items=items)

    def compose(self, req: RenderRequest) -> ComposedLayout:
        image = self.cfg.image
        width_in, height_in = image.size_inches
        extent = req.result.density.grid.bbox
        has_body = req.result.regions is not None or req.result.isolines is not None
        body = SceneNode(name="map", kind="map") if has_body else None
        return compose_layout(
            body,
            self.legend_for(req.result.regions),
            device_aspect=width_in / height_in,
            shape_aspect=extent.aspect,
            options=self.cfg.layout.to_options(title=req.title),
            device_size=(width_in, height_in),
        )

    def render(self, req: RenderRequest) -> Path:
        plt, mpl = _require_matplotlib()
        image = self.cfg.image
        layout = self.compose(req)

        fig = plt.figure(figsize=image.size_inches, dpi=image.dpi)
        state = _DrawState()
        try:
            _apply_background(fig=fig, background=image.background)
            if layout.node is not None:
                self._draw_node(fig, mpl, layout.node, (0.0, 0.0, 1.0, 1.0), req, state)
            else:
                _LOGGER.warning("Nothing to draw for %s; writing an empty canvas", req.output_path)

            req.output_path.parent.mkdir(parents=True, exist_ok=True)
            fig.savefig(
                req.output_path,
                dpi=image.dpi,
                format=image.format,
                transparent=image.background.casefold() == "transparent",
            )
            return req.output_path
        finally:
            plt.close(fig)
            self.skipped = list(state.skipped)

    def _draw_node(
        self,
        fig: Any,
        mpl: Any,
        node: SceneNode,
        parent: _Box,
        req: RenderRequest,
        state: _DrawState,
    ) -> None:
        box = _absolute_box(node, parent)
        kind = node.kind
        if kind == "group":
            for child in node.children:
                self._draw_node(fig, mpl, child, box, req, state)
        elif kind == "rect":
            _draw_rect(fig, mpl, box, node.style)
        elif kind == "map":
            self._draw_map(fig, box, req, state)
        elif kind == "legend":
            self._draw_legend(fig, mpl, box, node.style)
        elif kind == "text":
            _draw_text(fig, box, node.style)
        elif kind == "scale_bar":
            self._draw_scale_bar(fig, mpl, box, state)
        elif kind == "compass":
            _draw_compass(fig, mpl, box)
        elif kind == "logo":
            self._draw_logo(fig, box, node.style, state)
        else:
            raise ValueError(f"Unknown scene node kind '{kind}' ({node.name})")

    def _draw_map(self, fig: Any, box: _Box, req: RenderRequest, state: _DrawState) -> None:
        result = req.result
        extent = result.density.grid.bbox
        ax = fig.add_axes(box)
        _configure_map_axes(ax=ax, extent=extent)
        state.map_extent = extent
        state.map_fig_width = box[2]

        palette = self.cfg.palette
        if result.regions is not None:
            colors = self.band_colors(len(result.regions.band_labels))
            for region in result.regions:
                _fill_geometry(
                    ax=ax,
                    geometry=region.geometry,
                    color=colors[region.band_index],
                    alpha=palette.region_alpha,
                )
                _draw_geometry_outline(
                    ax=ax,
                    geometry=region.geometry,
                    color=palette.region_edge_color,
                    line_width=palette.region_edge_width,
                    zorder=2,
                )
        if result.isolines is not None:
            for isoline in result.isolines:
                for coords in _iter_line_coords(isoline.geometry):
                    ax.plot(
                        coords[0],
                        coords[1],
                        color=palette.contour_color,
                        linewidth=palette.contour_width,
                        zorder=3,
                        solid_joinstyle="round",
                        solid_capstyle="round",
                    )

        grid_cfg = self.cfg.grid
        if grid_cfg.show:
            lines = graticule_lines(
                extent,
                result.density.grid.crs,
                grid_crs=grid_cfg.crs,
                count=grid_cfg.count,
            )
            for line in lines:
                ax.plot(
                    line.coords[:, 0],
                    line.coords[:, 1],
                    color=_DECOR_POLICY.graticule_color,
                    linewidth=_DECOR_POLICY.graticule_width,
                    linestyle=_DECOR_POLICY.graticule_style,
                    zorder=1,
                )
            # projected lines overshoot the map box
            ax.set_xlim(extent.xmin, extent.xmax)
            ax.set_ylim(extent.ymin, extent.ymax)

    def _draw_legend(self, fig: Any, mpl: Any, box: _Box, style: Any) -> None:
        x, y, width, height = box
        items: Sequence[LegendItem] = style.get("items", ())
        title = str(style.get("title", "") or "")
        rows = len(items) + (1 if title else 0)
        if rows == 0:
            return
        line = height / rows
        top = y + height
        if title:
            fig.text(x, top - line / 2.0, title, ha="left", va="center", fontsize=_LEGEND_POLICY.title_size, weight="bold")
            top -= line
        swatch_w = width * _LEGEND_POLICY.swatch_width
        for idx, item in enumerate(items):
            row_y = top - (idx + 1) * line
            fig.add_artist(
                mpl.patches.Rectangle(
                    (x, row_y + line * 0.15),
                    swatch_w,
                    line * 0.7,
                    transform=fig.transFigure,
                    facecolor=item.color,
                    edgecolor=self.cfg.palette.region_edge_color,
                    linewidth=0.5,
                )
            )
            fig.text(
                x + swatch_w + width * _LEGEND_POLICY.swatch_gap,
                row_y + line / 2.0,
                item.label,
                ha="left",
                va="center",
                fontsize=_LEGEND_POLICY.font_size,
            )

    def _draw_scale_bar(self, fig: Any, mpl: Any, box: _Box, state: _DrawState) -> None:
        if state.map_extent is None or state.map_fig_width <= 0.0:
            state.skipped.append("scale bar (no map body drawn)")
            return
        x, y, width, height = box
        units_per_fig = state.map_extent.width / state.map_fig_width
        length = nice_length(width * _DECOR_POLICY.scale_bar_fill * units_per_fig)
        if length <= 0.0:
            state.skipped.append("scale bar (map has no width)")
            return
        bar = length / units_per_fig
        base_y = y + height * 0.35
        fig.add_artist(
            mpl.lines.Line2D(
                [x, x + bar],
                [base_y, base_y],
                transform=fig.transFigure,
                color="black",
                linewidth=_DECOR_POLICY.scale_bar_width,
            )
        )
        for tick_x in (x, x + bar):
            fig.add_artist(
                mpl.lines.Line2D(
                    [tick_x, tick_x],
                    [base_y, base_y + height * 0.25],
                    transform=fig.transFigure,
                    color="black",
                    linewidth=_DECOR_POLICY.scale_bar_width,
                )
            )
        fig.text(x + bar / 2.0, base_y + height * 0.3, f"{length:,g}", ha="center", va="bottom", fontsize=_DECOR_POLICY.font_size)

    def _draw_logo(self, fig: Any, box: _Box, style: Any, state: _DrawState) -> None:
        plt, _ = _require_matplotlib()
        path = Path(str(style.get("path", "")))
        if not path.is_file():
            state.skipped.append(f"logo (file not found: {path})")
            return
        ax = fig.add_axes(box)
        ax.imshow(plt.imread(path))
        ax.axis("off")


def run_render_map(
    cfg: AppConfig,
    *,
    input_path: Path,
    variable: str | None = None,
    output_path: Path | None = None,
    title: str = "",
) -> RenderMapReport:
    """Smooth one input file and render it as a map image."""
    target = output_path or cfg.paths.output_dir / f"map.{cfg.render.image.format}"
    report = RenderMapReport(output_path=target)
    try:
        shape = load_shape(input_path, variable=variable)
    except (OSError, ValueError, RuntimeError) as exc:
        report.add_error(f"Failed loading input '{input_path}': {exc}")
        return report
    report.add_info(f"Loaded {type(shape).__name__} from {input_path}")

    try:
        result = run_configured_pipeline(
            cfg,
            shape,
            variable=variable,
            outputs=(OUTPUT_CONTOUR, OUTPUT_REGIONS),
        )
    except SmoothMapError as exc:
        report.add_error(f"{type(exc).__name__}: {exc}")
        return report

    renderer = MapRenderer(cfg.render)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", GraticuleUnavailable)
        try:
            renderer.render(RenderRequest(result=result, output_path=target, title=title))
        except Exception as exc:
            report.add_error(f"Render failed for {target}: {exc}")
            _LOGGER.exception("Render failed for %s", target)
    for item in caught:
        if issubclass(item.category, GraticuleUnavailable):
            report.add_warning(str(item.message))
    for what in renderer.skipped:
        report.add_warning(f"Skipped {what}")

    regions = result.regions
    report.summary = {
        "bands": len(regions.band_labels) if regions is not None else 0,
        "regions": len(regions) if regions is not None else 0,
        "isolines": len(result.isolines) if result.isolines is not None else 0,
        "contour_lines": len(result.lines) if result.lines is not None else 0,
    }
    report.add_info(
        "Render summary: "
        + ", ".join(f"{key}={value}" for key, value in report.summary.items())
    )
    if report.ok:
        report.add_info(f"Map written to {target}")
    return report


def format_render_lines(report: RenderMapReport) -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Map rendering completed with no errors.")
    return lines


def nice_length(limit: float) -> float:
    """Largest 1, 2 or 5 times a power of ten not above ``limit``."""
    if not math.isfinite(limit) or limit <= 0.0:
        return 0.0
    base = 10.0 ** math.floor(math.log10(limit))
    for step in (5.0, 2.0, 1.0):
        if step * base <= limit:
            return step * base
    return base


def _absolute_box(node: SceneNode, parent: _Box) -> _Box:
    px, py, pw, ph = parent
    return (px + node.x * pw, py + node.y * ph, node.width * pw, node.height * ph)


def _configure_map_axes(*, ax: Any, extent: BoundingBox) -> None:
    ax.set_xlim(extent.xmin, extent.xmax)
    ax.set_ylim(extent.ymin, extent.ymax)
    ax.set_aspect("equal", adjustable="box")
    ax.axis("off")


def _draw_rect(fig: Any, mpl: Any, box: _Box, style: Any) -> None:
    x, y, width, height = box
    fig.add_artist(
        mpl.patches.Rectangle(
            (x, y),
            width,
            height,
            transform=fig.transFigure,
            facecolor=style.get("facecolor") or "none",
            edgecolor=style.get("edgecolor") or "none",
            linewidth=float(style.get("linewidth", 0.0)),
            joinstyle="miter",
            capstyle="projecting",
        )
    )


def _draw_text(fig: Any, box: _Box, style: Any) -> None:
    x, y, width, height = box
    ha = str(style.get("ha", "left"))
    anchor_x = x + width if ha == "right" else (x + width / 2.0 if ha == "center" else x)
    fig.text(
        anchor_x,
        y + height / 2.0,
        str(style.get("text", "")),
        ha=ha,
        va="center",
        fontsize=style.get("size", _DECOR_POLICY.title_size),
        weight=style.get("weight", "normal"),
    )


def _draw_compass(fig: Any, mpl: Any, box: _Box) -> None:
    x, y, width, height = box
    center = x + width / 2.0
    fig.add_artist(
        mpl.patches.FancyArrow(
            center,
            y,
            0.0,
            height * 0.7,
            width=width * _DECOR_POLICY.compass_width,
            length_includes_head=True,
            head_width=width * 0.6,
            head_length=height * 0.3,
            transform=fig.transFigure,
            color="black",
        )
    )
    fig.text(center, y + height, "N", ha="center", va="bottom", fontsize=_DECOR_POLICY.font_size, weight="bold")


def _fill_geometry(*, ax: Any, geometry: Any, color: str, alpha: float) -> None:
    _, mpl = _require_matplotlib()
    for polygon in explode_polygons(geometry):
        vertices: list[tuple[float, float]] = []
        codes: list[int] = []
        for ring in [polygon.exterior, *polygon.interiors]:
            coords = [(float(x), float(y)) for x, y in ring.coords]
            if len(coords) < 3:
                continue
            vertices.extend(coords)
            codes.extend([mpl.path.Path.MOVETO] + [mpl.path.Path.LINETO] * (len(coords) - 2) + [mpl.path.Path.CLOSEPOLY])
        if not vertices:
            continue
        ax.add_patch(
            mpl.patches.PathPatch(
                mpl.path.Path(vertices, codes),
                facecolor=color,
                edgecolor="none",
                alpha=alpha,
                zorder=1,
            )
        )


def _draw_geometry_outline(
    *,
    ax: Any,
    geometry: Any,
    color: str,
    line_width: float,
    alpha: float = 1.0,
    zorder: int = 1,
) -> None:
    if line_width <= 0.0:
        return
    for ring in _iter_linear_rings(geometry):
        if len(ring) < 2:
            continue
        ax.plot(
            [point[0] for point in ring],
            [point[1] for point in ring],
            color=color,
            linewidth=line_width,
            alpha=alpha,
            zorder=zorder,
            solid_joinstyle="round",
            solid_capstyle="round",
        )


def _iter_linear_rings(geometry: Any) -> Sequence[Sequence[tuple[float, float]]]:
    rings: list[Sequence[tuple[float, float]]] = []
    for polygon in explode_polygons(geometry):
        rings.append([(float(x), float(y)) for x, y in polygon.exterior.coords])
        for interior in polygon.interiors:
            rings.append([(float(x), float(y)) for x, y in interior.coords])
    return rings


def _iter_line_coords(geometry: Any) -> list[tuple[list[float], list[float]]]:
    geom_type = getattr(geometry, "geom_type", "")
    if geom_type in {"LineString", "LinearRing"}:
        xs, ys = geometry.xy
        return [(list(xs), list(ys))]
    if geom_type in {"MultiLineString", "GeometryCollection"}:
        out: list[tuple[list[float], list[float]]] = []
        for part in geometry.geoms:
            out.extend(_iter_line_coords(part))
        return out
    return []


def _apply_background(*, fig: Any, background: str) -> None:
    if background.casefold() == "transparent":
        fig.patch.set_facecolor("white")
        fig.patch.set_alpha(0.0)
    else:
        fig.patch.set_facecolor(background)


def _require_matplotlib() -> tuple[Any, Any]:
    try:
        import matplotlib

        matplotlib.use("Agg", force=False)
        import matplotlib.colors
        import matplotlib.lines
        import matplotlib.patches
        import matplotlib.path
        import matplotlib.pyplot as plt
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for map rendering") from exc
    return (plt, matplotlib)
