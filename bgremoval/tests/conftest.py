from __future__ import annotations

import asyncio
from io import BytesIO

import pytest
from PIL import Image

from bgremoval.core.config import Settings
from bgremoval.services.raster import RasterCodec


def encode_image(img: Image.Image, fmt: str = "PNG") -> bytes:
    out = BytesIO()
    img.save(out, format=fmt)
    return out.getvalue()


def open_png(data: bytes) -> Image.Image:
    img = Image.open(BytesIO(data))
    img.load()
    return img


@pytest.fixture
def make_image():
    """Solid-color image bytes: make_image(w, h, color, mode="RGBA", fmt="PNG")."""
    def _make(width, height, color=(255, 255, 255, 255), mode="RGBA", fmt="PNG"):
        if mode == "RGB" and len(color) == 4:
            color = color[:3]
        return encode_image(Image.new(mode, (width, height), color), fmt)
    return _make


@pytest.fixture
def codec() -> RasterCodec:
    return RasterCodec(png_compression_level=1)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        APP_ENV="test",
        LOG_LEVEL="WARNING",
        TOLERANCE=0,
        GEMINI_API_KEY="test-gemini-key",
        REPLICATE_API_TOKEN="test-replicate-token",
        REPLICATE_INITIAL_BACKOFF_SECONDS=0,
        _env_file=None,
    )


@pytest.fixture
def read_png():
    return open_png


@pytest.fixture
def to_bytes():
    """Encode an in-memory PIL image: to_bytes(img, fmt="PNG")."""
    return encode_image


def on_event_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


@pytest.fixture
def record_loop_use(monkeypatch):
    """
    record_loop_use(obj, "name", ...) wraps the named callables and returns a
    list that gets one bool per call: True when the call ran on the event loop.
    """
    def _record(obj, *names):
        seen = []
        for name in names:
            original = getattr(obj, name)

            def wrapper(*args, _original=original, **kwargs):
                seen.append(on_event_loop())
                return _original(*args, **kwargs)

            monkeypatch.setattr(obj, name, wrapper)
        return seen
    return _record
