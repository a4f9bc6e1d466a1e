from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO

import numpy as np
from PIL import Image, UnidentifiedImageError
from loguru import logger

from bgremoval.core.errors import DecodeError, EncodeError
from bgremoval.models.domain import RasterInfo

CHANNELS = 4  # RGBA
ALPHA = 3

_DECODE_ERRORS = (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError)


@dataclass
class PixelBuffer:
    """Flat, writable RGBA bytes (row-major, 4 bytes per pixel) plus dimensions."""
    data: np.ndarray
    width: int
    height: int

    def grid(self) -> np.ndarray:
        """(height, width, 4) view sharing memory with ``data``."""
        return self.data.reshape(self.height, self.width, CHANNELS)

    def copy(self) -> "PixelBuffer":
        return PixelBuffer(data=self.data.copy(), width=self.width, height=self.height)

    @property
    def pixel_count(self) -> int:
        return self.width * self.height


def pixel_offset(buffer: PixelBuffer, x: int, y: int) -> int:
    """Index of the first (red) byte of pixel (x, y) in ``buffer.data``."""
    if not (0 <= x < buffer.width and 0 <= y < buffer.height):
        raise IndexError(
            f"Pixel ({x}, {y}) outside {buffer.width}x{buffer.height} raster"
        )
    return (y * buffer.width + x) * CHANNELS


@dataclass
class RasterCodec:
    """
    Pillow-backed codec between compressed image bytes and PixelBuffers.

    decode() always yields RGBA (alpha synthesized as 255 when the source has
    none); encode() always writes PNG, the only common format with lossless
    alpha.
    """
    png_compression_level: int = 9

    def decode(self, data: bytes) -> PixelBuffer:
        try:
            with Image.open(BytesIO(data)) as img:
                img.load()
                source_mode = img.mode
                rgba = img.convert("RGBA")
        except _DECODE_ERRORS as e:
            raise DecodeError(f"Invalid or corrupted image file: {e}") from e

        width, height = rgba.size
        pixels = np.frombuffer(rgba.tobytes(), dtype=np.uint8).copy()
        logger.debug(f"Decoded {width}x{height} raster (source mode {source_mode})")
        return PixelBuffer(data=pixels, width=width, height=height)

    def encode(self, buffer: PixelBuffer) -> bytes:
        expected = buffer.pixel_count * CHANNELS
        if buffer.data.size != expected:
            raise EncodeError(
                f"Pixel buffer holds {buffer.data.size} bytes, "
                f"expected {expected} for {buffer.width}x{buffer.height} RGBA"
            )
        try:
            img = Image.frombytes("RGBA", (buffer.width, buffer.height), buffer.data.tobytes())
            out = BytesIO()
            img.save(out, format="PNG", compress_level=self.png_compression_level)
        except (OSError, ValueError) as e:
            raise EncodeError(f"Failed to encode PNG: {e}") from e
        return out.getvalue()

    def window(self, buffer: PixelBuffer, x: int, y: int, w: int, h: int) -> PixelBuffer:
        """
        Copy the [x, x+w) x [y, y+h) window row by row out of the flat buffer.

        Raises IndexError when the first or last pixel of the window falls
        outside the raster.
        """
        start = pixel_offset(buffer, x, y)
        pixel_offset(buffer, x + w - 1, y + h - 1)

        stride = buffer.width * CHANNELS
        row_bytes = w * CHANNELS
        rows = [buffer.data[start + r * stride:start + r * stride + row_bytes] for r in range(h)]
        return PixelBuffer(data=np.concatenate(rows), width=w, height=h)

    def describe(self, data: bytes) -> RasterInfo:
        """Read the image header without decoding the pixel data."""
        try:
            with Image.open(BytesIO(data)) as img:
                width, height = img.size
                has_alpha = img.mode in ("RGBA", "LA", "PA", "La", "RGBa") or (
                    img.mode == "P" and "transparency" in img.info
                )
                fmt = img.format
        except _DECODE_ERRORS as e:
            raise DecodeError(f"Invalid or corrupted image file: {e}") from e
        return RasterInfo(width=width, height=height, has_alpha=has_alpha, format=fmt)
