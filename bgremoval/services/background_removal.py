from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from loguru import logger

from bgremoval.core.errors import BadRequest
from bgremoval.models.domain import RGBColor
from bgremoval.services.raster import ALPHA, CHANNELS, PixelBuffer, RasterCodec
from bgremoval.utils.timing import timed


@dataclass
class BackgroundRemovalService:
    """
    Color-keyed background removal.

    Every pixel whose RGB matches the target color gets alpha 0; all other
    pixels (including their existing alpha) are left untouched. No flood
    fill, no neighbour interaction, no edge feathering.

    - tolerance == 0: exact match on R, G and B
    - tolerance > 0: Euclidean RGB distance <= tolerance (inclusive)
    """
    codec: RasterCodec

    def remove_background(self, image_bytes: bytes, target: RGBColor, tolerance: int = 0) -> bytes:
        if not isinstance(tolerance, int) or isinstance(tolerance, bool) or not 0 <= tolerance <= 255:
            raise BadRequest(f"Tolerance must be an integer between 0-255, got {tolerance!r}")

        logger.info(
            f"Starting background removal (target=rgb({target.r}, {target.g}, {target.b}), "
            f"tolerance={tolerance})"
        )

        with timed("Decode", level="DEBUG"):
            buffer = self.codec.decode(image_bytes)
        logger.info(f"Extracted {buffer.width}x{buffer.height} pixels ({CHANNELS} channels)")

        with timed("Color scan"):
            removed = clear_matching_pixels(buffer, target, tolerance)

        total = buffer.pixel_count
        percentage = (removed / total * 100) if total else 0.0
        logger.info(f"Removed {removed}/{total} pixels ({percentage:.2f}%)")

        with timed("Encode", level="DEBUG"):
            return self.codec.encode(buffer)


def match_mask(buffer: PixelBuffer, target: RGBColor, tolerance: int) -> np.ndarray:
    """Boolean mask (one entry per pixel) of pixels matching ``target``."""
    pixels = buffer.data.reshape(-1, CHANNELS)
    rgb = pixels[:, :ALPHA].astype(np.int32)
    key = np.array([target.r, target.g, target.b], dtype=np.int32)

    if tolerance == 0:
        return np.all(rgb == key, axis=1)

    # Integer squared distance: sqrt(d) <= t  <=>  d <= t*t for d, t >= 0
    diff = rgb - key
    return np.einsum("ij,ij->i", diff, diff) <= tolerance * tolerance


def clear_matching_pixels(buffer: PixelBuffer, target: RGBColor, tolerance: int) -> int:
    """Set alpha to 0 in place for every matching pixel; returns how many matched."""
    matched = match_mask(buffer, target, tolerance)
    pixels = buffer.data.reshape(-1, CHANNELS)
    pixels[matched, ALPHA] = 0
    return int(np.count_nonzero(matched))
