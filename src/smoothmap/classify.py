"""Break-point classification of numeric values into bands."""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np
from scipy.cluster.vq import kmeans2

from .errors import InvalidBreaks

STYLE_EQUAL = "equal"
STYLE_QUANTILE = "quantile"
STYLE_PRETTY = "pretty"
STYLE_KMEANS = "kmeans"
STYLE_FIXED = "fixed"
STYLES = (STYLE_EQUAL, STYLE_QUANTILE, STYLE_PRETTY, STYLE_KMEANS, STYLE_FIXED)


def num2breaks(
    values: np.ndarray,
    n: int,
    *,
    style: str,
    breaks: Sequence[float] | None = None,
) -> tuple[float, ...]:
    """Return strictly increasing breaks that bracket ``values``."""
    if style == STYLE_FIXED:
        if breaks is None:
            raise InvalidBreaks("style 'fixed' requires explicit breaks")
        return validate_breaks(breaks)

    finite = np.asarray(values, dtype=float)
    finite = finite[np.isfinite(finite)]
    if finite.size == 0:
        raise InvalidBreaks("No finite values to classify")
    if n < 1:
        raise InvalidBreaks(f"Number of levels must be >= 1, got {n}")

    if style == STYLE_EQUAL:
        lo, hi = float(finite.min()), float(finite.max())
        result = np.linspace(lo, hi, n + 1)
    elif style == STYLE_QUANTILE:
        result = np.quantile(finite, np.linspace(0.0, 1.0, n + 1))
    elif style == STYLE_PRETTY:
        result = pretty(float(finite.min()), float(finite.max()), n)
    elif style == STYLE_KMEANS:
        result = kmeans_breaks(finite, n)
    else:
        raise InvalidBreaks(
            f"Unknown classification style '{style}'; expected one of: " + ", ".join(STYLES)
        )
    return validate_breaks(np.unique(np.asarray(result, dtype=float)))


def validate_breaks(breaks: Sequence[float]) -> tuple[float, ...]:
    values = tuple(float(b) for b in breaks)
    if len(values) < 2:
        raise InvalidBreaks(f"At least 2 breaks are required, got {len(values)}")
    if any(math.isnan(b) for b in values):
        raise InvalidBreaks("Breaks must not contain NaN")
    for left, right in zip(values, values[1:]):
        if not right > left:
            raise InvalidBreaks(f"Breaks must be strictly increasing: {values}")
    return values


def pretty(lo: float, hi: float, n: int) -> np.ndarray:
    """Round-number breaks covering ``[lo, hi]`` in about ``n`` steps.

    Classic pretty-breaks unit selection: the cell size ``(hi - lo) / n`` is
    rounded to 1, 2, 5 or 10 times a power of ten, with the usual bias
    towards the larger unit.
    """
    high_bias = 1.5
    five_bias = 0.5 + 1.5 * high_bias
    dx = hi - lo
    if dx == 0.0:
        cell = max(abs(lo), 1.0)
        n = 1
    else:
        cell = max(abs(lo), abs(hi))
        cell = dx / n if dx / n > cell * 1e-10 else cell * 1e-10
    base = 10.0 ** math.floor(math.log10(cell))
    unit = base
    if 2.0 * base - cell < high_bias * (cell - unit):
        unit = 2.0 * base
        if 5.0 * base - cell < five_bias * (cell - unit):
            unit = 5.0 * base
            if 10.0 * base - cell < high_bias * (cell - unit):
                unit = 10.0 * base
    start = math.floor(lo / unit + 1e-7)
    stop = math.ceil(hi / unit - 1e-7)
    if stop <= start:
        stop = start + 1
    return np.arange(start, stop + 1) * unit


def kmeans_breaks(values: np.ndarray, n: int) -> np.ndarray:
    """Breaks halfway between sorted 1-D k-means centers, plus the range ends."""
    distinct = np.unique(values)
    k = min(n, distinct.size)
    lo, hi = float(values.min()), float(values.max())
    if k < 2:
        return np.array([lo, hi])
    centers, _ = kmeans2(
        values.reshape(-1, 1),
        distinct[np.linspace(0, distinct.size - 1, k).astype(int)].reshape(-1, 1),
        minit="matrix",
    )
    centers = np.sort(np.unique(centers.ravel()))
    inner = (centers[:-1] + centers[1:]) / 2.0
    return np.concatenate(([lo], inner, [hi]))


def band_labels(breaks: Sequence[float]) -> tuple[str, ...]:
    """Human readable labels for each interval between consecutive breaks."""
    values = [float(b) for b in breaks]
    finite = [b for b in values if math.isfinite(b)]
    digits = _label_digits(finite)
    labels: list[str] = []
    for lo, hi in zip(values, values[1:]):
        if math.isinf(lo):
            labels.append(f"less than {_format_number(hi, digits)}")
        elif math.isinf(hi):
            labels.append(f"{_format_number(lo, digits)} or more")
        else:
            labels.append(f"{_format_number(lo, digits)} to {_format_number(hi, digits)}")
    return tuple(labels)


def _label_digits(values: Sequence[float], max_digits: int = 6) -> int:
    for digits in range(max_digits + 1):
        formatted = [_format_number(v, digits) for v in values]
        if len(set(formatted)) == len(formatted) and all(
            math.isclose(float(text.replace(",", "")), v, rel_tol=1e-9, abs_tol=10.0 ** -(digits + 3))
            for text, v in zip(formatted, values)
        ):
            return digits
    for digits in range(max_digits + 1):
        formatted = [_format_number(v, digits) for v in values]
        if len(set(formatted)) == len(formatted):
            return digits
    return max_digits


def _format_number(value: float, digits: int) -> str:
    text = f"{value:,.{digits}f}"
    if float(text.replace(",", "")) == 0.0:
        text = text.lstrip("-")
    return text
