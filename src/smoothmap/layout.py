"""Layout compositor: place map body, frame and meta elements in a scene tree.

All positions are normalized to the parent viewport: ``(x, y)`` is the
lower-left corner and ``(width, height)`` the extent, each in ``[0, 1]``.
The tree is pure data; ``smoothmap.render`` turns it into matplotlib
artists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Iterator, Mapping

_LOGGER = logging.getLogger("smoothmap.layout")

_POINTS_PER_INCH = 72.0

LEGEND_POSITIONS = ("top-left", "top-right", "bottom-left", "bottom-right")


@dataclass(frozen=True, slots=True, eq=False)
class SceneNode:
    name: str
    kind: str
    x: float = 0.0
    y: float = 0.0
    width: float = 1.0
    height: float = 1.0
    children: tuple[SceneNode, ...] = ()
    style: Mapping[str, Any] = field(default_factory=dict)

    def walk(self) -> Iterator[SceneNode]:
        yield self
        for child in self.children:
            yield from child.walk()

    def find(self, name: str) -> SceneNode | None:
        for node in self.walk():
            if node.name == name:
                return node
        return None


@dataclass(frozen=True, slots=True)
class LegendItem:
    label: str
    color: str


@dataclass(frozen=True, slots=True)
class LegendSpec:
    title: str
    items: tuple[LegendItem, ...]


@dataclass(frozen=True, slots=True)
class LayoutOptions:
    frame: str | None = "black"
    frame_lwd: float = 1.0
    frame_double_line: bool = False
    # bottom, left, top, right
    inner_margins: tuple[float, float, float, float] = (0.02, 0.02, 0.02, 0.02)
    bg_color: str = "white"
    design_mode: bool = False
    legend_position: str = "bottom-right"
    legend_only: bool = False
    title: str = ""
    credits: str | None = None
    logo: str | None = None
    scale_bar: bool = False
    compass: bool = False


@dataclass(frozen=True, slots=True)
class ComposedLayout:
    node: SceneNode | None
    meta_x: float
    meta_y: float


@dataclass(frozen=True, slots=True)
class _MetaPolicy:
    line_height_in: float
    legend_width: float
    title_height: float
    credits_height: float
    logo_size: float
    scale_bar_width: float
    scale_bar_height: float
    compass_size: float
    pad: float


_META_POLICY = _MetaPolicy(
    line_height_in=0.22,
    legend_width=0.30,
    title_height=0.07,
    credits_height=0.04,
    logo_size=0.10,
    scale_bar_width=0.25,
    scale_bar_height=0.04,
    compass_size=0.09,
    pad=0.01,
)


def points_to_npc(points: float, device_inches: float) -> float:
    return points / _POINTS_PER_INCH / device_inches


def map_viewport(
    device_aspect: float,
    shape_aspect: float,
    inner_margins: tuple[float, float, float, float],
) -> tuple[float, float, float, float]:
    """``(x, y, width, height)`` of the largest undistorted map box inside the margins."""
    if device_aspect <= 0.0 or shape_aspect <= 0.0:
        raise ValueError("device and shape aspect ratios must be positive")
    bottom, left, top, right = inner_margins
    avail_w = 1.0 - left - right
    avail_h = 1.0 - bottom - top
    if avail_w <= 0.0 or avail_h <= 0.0:
        raise ValueError(f"inner margins leave no room for the map: {inner_margins}")
    npc_aspect = shape_aspect / device_aspect
    if avail_w / avail_h > npc_aspect:
        height = avail_h
        width = avail_h * npc_aspect
    else:
        width = avail_w
        height = avail_w / npc_aspect
    x = left + (avail_w - width) / 2.0
    y = bottom + (avail_h - height) / 2.0
    return (x, y, width, height)


def frame_insets(options: LayoutOptions, device_size: tuple[float, float]) -> tuple[float, float]:
    """Horizontal and vertical npc inset that keeps meta elements off the frame."""
    if options.frame is None:
        return (0.0, 0.0)
    p_w = points_to_npc(options.frame_lwd, device_size[0])
    p_h = points_to_npc(options.frame_lwd, device_size[1])
    if options.frame_double_line:
        return (4.5 * p_w, 4.5 * p_h)
    return (p_w / 2.0, p_h / 2.0)


def frame_nodes(options: LayoutOptions, device_size: tuple[float, float]) -> tuple[SceneNode, ...]:
    if options.frame is None:
        return ()
    lwd = options.frame_lwd
    p_w = points_to_npc(lwd, device_size[0])
    p_h = points_to_npc(lwd, device_size[1])
    if not options.frame_double_line:
        return (
            SceneNode(
                name="frame",
                kind="rect",
                style={"edgecolor": options.frame, "facecolor": None, "linewidth": lwd},
            ),
        )
    return (
        SceneNode(
            name="frame_bg",
            kind="rect",
            x=2.0 * p_w,
            y=2.0 * p_h,
            width=1.0 - 4.0 * p_w,
            height=1.0 - 4.0 * p_h,
            style={"edgecolor": options.bg_color, "facecolor": None, "linewidth": 5.0 * lwd},
        ),
        SceneNode(
            name="frame_outer",
            kind="rect",
            style={"edgecolor": options.frame, "facecolor": None, "linewidth": 3.0 * lwd},
        ),
        SceneNode(
            name="frame_inner",
            kind="rect",
            x=4.0 * p_w,
            y=4.0 * p_h,
            width=1.0 - 8.0 * p_w,
            height=1.0 - 8.0 * p_h,
            style={"edgecolor": options.frame, "facecolor": None, "linewidth": lwd},
        ),
    )


def background_nodes(options: LayoutOptions) -> tuple[SceneNode, ...]:
    if options.design_mode:
        bottom, left, top, right = options.inner_margins
        return (
            SceneNode(
                name="map_bg",
                kind="rect",
                style={"facecolor": "blue", "edgecolor": "blue"},
            ),
            SceneNode(
                name="asp_rect",
                kind="rect",
                x=left,
                y=bottom,
                width=1.0 - left - right,
                height=1.0 - bottom - top,
                style={"facecolor": "red", "edgecolor": "red"},
            ),
        )
    if options.frame is not None:
        return (
            SceneNode(
                name="map_bg",
                kind="rect",
                style={"facecolor": options.bg_color, "edgecolor": None},
            ),
        )
    return ()


def meta_nodes(
    legend: LegendSpec | None,
    options: LayoutOptions,
    device_size: tuple[float, float],
) -> tuple[SceneNode, ...]:
    """Legend, title, credits, logo, scale bar and compass in meta-layer npc."""
    policy = _META_POLICY
    pad = policy.pad
    nodes: list[SceneNode] = []

    top_edge = 1.0 - pad
    if options.title.strip():
        nodes.append(
            SceneNode(
                name="title",
                kind="text",
                x=pad,
                y=top_edge - policy.title_height,
                width=1.0 - 2.0 * pad,
                height=policy.title_height,
                style={"text": options.title.strip(), "ha": "left", "weight": "bold"},
            )
        )

    if options.compass:
        size_w = policy.compass_size * device_size[1] / device_size[0]
        nodes.append(
            SceneNode(
                name="compass",
                kind="compass",
                x=1.0 - pad - size_w,
                y=top_edge - policy.compass_size,
                width=size_w,
                height=policy.compass_size,
            )
        )

    if legend is not None and legend.items:
        line = policy.line_height_in / device_size[1]
        height = min(line * (len(legend.items) + 1), 1.0 - 2.0 * pad)
        position = options.legend_position
        if position not in LEGEND_POSITIONS:
            raise ValueError(
                f"Unknown legend position '{position}'; expected one of: "
                + ", ".join(LEGEND_POSITIONS)
            )
        x = pad if position.endswith("left") else 1.0 - pad - policy.legend_width
        if position.startswith("top"):
            below_title = policy.title_height if options.title.strip() else 0.0
            y = top_edge - below_title - height
        else:
            y = pad + (policy.credits_height if options.credits else 0.0)
        nodes.append(
            SceneNode(
                name="legend",
                kind="legend",
                x=x,
                y=y,
                width=policy.legend_width,
                height=height,
                style={"title": legend.title, "items": legend.items},
            )
        )

    bottom_edge = pad
    if options.credits:
        nodes.append(
            SceneNode(
                name="credits",
                kind="text",
                x=pad,
                y=bottom_edge,
                width=1.0 - 2.0 * pad,
                height=policy.credits_height,
                style={"text": options.credits, "ha": "right", "size": "small"},
            )
        )
        bottom_edge += policy.credits_height

    if options.logo:
        size_w = policy.logo_size * device_size[1] / device_size[0]
        nodes.append(
            SceneNode(
                name="logo",
                kind="logo",
                x=pad,
                y=bottom_edge,
                width=size_w,
                height=policy.logo_size,
                style={"path": options.logo},
            )
        )
        bottom_edge += policy.logo_size

    if options.scale_bar:
        nodes.append(
            SceneNode(
                name="scale_bar",
                kind="scale_bar",
                x=pad,
                y=bottom_edge,
                width=policy.scale_bar_width,
                height=policy.scale_bar_height,
            )
        )
    return tuple(nodes)


def compose_layout(
    map_body: SceneNode | None,
    legend: LegendSpec | None,
    device_aspect: float,
    shape_aspect: float,
    options: LayoutOptions,
    device_size: tuple[float, float],
) -> ComposedLayout:
    """Build the scene tree for one map panel.

    Without a map body, or with ``legend_only`` set, only the meta layer is
    built and the node is ``None`` when there is nothing to show.
    """
    frame_x, frame_y = frame_insets(options, device_size)
    legend_only = options.legend_only or map_body is None

    if legend_only:
        meta_x = meta_y = 0.0
        children = meta_nodes(legend, options, device_size)
        if not children:
            _LOGGER.debug("Legend-only layout has no meta elements")
            return ComposedLayout(node=None, meta_x=meta_x, meta_y=meta_y)
        node = SceneNode(
            name="meta_with_bg",
            kind="group",
            x=frame_x,
            y=frame_y,
            width=1.0 - 2.0 * frame_x,
            height=1.0 - 2.0 * frame_y,
            children=children,
        )
        return ComposedLayout(node=node, meta_x=meta_x, meta_y=meta_y)

    x, y, width, height = map_viewport(device_aspect, shape_aspect, options.inner_margins)
    meta_x, meta_y = x, y
    body = replace(map_body, x=x, y=y, width=width, height=height)

    children_list: list[SceneNode] = [*background_nodes(options), body, *frame_nodes(options, device_size)]
    meta = meta_nodes(legend, options, device_size)
    if meta:
        children_list.append(
            SceneNode(
                name="meta_with_bg",
                kind="group",
                x=meta_x + frame_x,
                y=meta_y + frame_y,
                width=width - 2.0 * frame_x,
                height=height - 2.0 * frame_y,
                children=meta,
            )
        )
    _LOGGER.debug(
        "Map viewport x=%.4f y=%.4f w=%.4f h=%.4f (meta elements: %d)",
        x,
        y,
        width,
        height,
        len(meta),
    )
    node = SceneNode(name="BG", kind="group", children=tuple(children_list))
    return ComposedLayout(node=node, meta_x=meta_x, meta_y=meta_y)
