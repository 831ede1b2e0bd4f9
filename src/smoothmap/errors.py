"""Error taxonomy for the smoothing and contouring pipeline."""

from __future__ import annotations


class SmoothMapError(ValueError):
    """Base class for deterministic pipeline failures caused by bad input."""


class UnsupportedGeometry(SmoothMapError):
    pass


class InvalidBreaks(SmoothMapError):
    pass


class NoContoursFound(SmoothMapError):
    pass


class TooManyContours(SmoothMapError):
    def __init__(self, count: int, limit: int) -> None:
        super().__init__(f"Number of iso lines over {limit}: {count}")
        self.count = count
        self.limit = limit


class AllHoles(SmoothMapError):
    pass


class UnknownOutputFormat(UserWarning):
    """Requested output key is not one of raster, contour, regions."""


class GraticuleUnavailable(UserWarning):
    """Grid lines could not be projected and were dropped from the layout."""
