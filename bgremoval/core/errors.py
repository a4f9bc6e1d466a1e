from __future__ import annotations


class AppError(RuntimeError):
    """Base application error."""


class BadRequest(AppError):
    """Invalid request data."""


class InvalidColorFormat(BadRequest):
    """Color string matches no supported grammar or is out of range."""


class DecodeError(BadRequest):
    """Input bytes are not a decodable image."""


class OutOfBoundsError(BadRequest):
    """Rectangle violates the image bounds or has a non-positive size."""

    def __init__(self, message: str, *, index: int, bound: str) -> None:
        super().__init__(message)
        self.index = index
        self.bound = bound


class OutOfBoundsRegion(OutOfBoundsError):
    """Crop region rejected before any pixel work."""


class OutOfBoundsBox(OutOfBoundsError):
    """Detected box rejected after conversion to absolute pixels."""


class EncodeError(AppError):
    """Raster could not be serialized."""


class DependencyError(AppError):
    """External dependency failed (e.g., vision or segmentation provider)."""


class UpstreamTimeout(DependencyError):
    """External dependency did not answer in time."""
