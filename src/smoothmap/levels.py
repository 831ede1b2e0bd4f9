"""Level selection: resolve the classification and compute the level set."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from .classify import STYLE_FIXED, STYLE_PRETTY, STYLES, num2breaks, validate_breaks
from .errors import InvalidBreaks
from .models import LevelSet, Surface

_LOGGER = logging.getLogger("smoothmap.levels")


@dataclass(frozen=True, slots=True)
class ClassificationSpec:
    """Classification settings resolved once per call.

    Explicit breaks force ``style="fixed"``; without breaks the style
    defaults to ``pretty``.
    """

    style: str
    level_count: int
    breaks: tuple[float, ...] | None = None

    @classmethod
    def resolve(
        cls,
        *,
        level_count: int = 5,
        style: str | None = None,
        breaks: Sequence[float] | None = None,
    ) -> ClassificationSpec:
        if breaks is not None:
            resolved_breaks = validate_breaks(breaks)
            if style is not None and style != STYLE_FIXED:
                _LOGGER.debug("Explicit breaks given; style '%s' replaced by 'fixed'", style)
            return cls(style=STYLE_FIXED, level_count=len(resolved_breaks) - 1, breaks=resolved_breaks)
        chosen = (style or STYLE_PRETTY).strip().casefold()
        if chosen not in STYLES:
            raise InvalidBreaks(
                f"Unknown classification style '{style}'; expected one of: " + ", ".join(STYLES)
            )
        if chosen == STYLE_FIXED:
            raise InvalidBreaks("style 'fixed' requires explicit breaks")
        if level_count < 1:
            raise InvalidBreaks(f"level_count must be >= 1, got {level_count}")
        return cls(style=chosen, level_count=int(level_count))


def select_levels(surface: Surface, spec: ClassificationSpec) -> LevelSet:
    """Break the surface's non-missing values into bands."""
    breaks = num2breaks(
        surface.finite_values(),
        spec.level_count,
        style=spec.style,
        breaks=spec.breaks,
    )
    levels = LevelSet(breaks=breaks, style=spec.style)
    _LOGGER.info(
        "Level set (%s, %d bands): %s",
        levels.style,
        levels.band_count,
        ", ".join(f"{b:.6g}" for b in levels.breaks),
    )
    return levels
