"""Pytest configuration.

Shared fixtures build small in-memory images with Pillow/numpy so no test
depends on files on disk. Metrics are process-global, so they are reset
around every test.
"""

from __future__ import annotations

from collections.abc import Callable

import numpy as np
import piexif
import pytest
from PIL import Image

from image_transcoder.engine.metrics import metrics
from image_transcoder.settings_manager import SETTINGS_ENV

from helpers import encode


@pytest.fixture(autouse=True)
def _isolate_state(monkeypatch):
    monkeypatch.delenv(SETTINGS_ENV, raising=False)
    metrics.reset()
    yield
    metrics.reset()


def _noise_rgb(width: int, height: int, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    # Gradient plus noise: compressible enough to react to quality, never trivial.
    xs = np.linspace(0, 255, width, dtype=np.float64)[None, :, None]
    ys = np.linspace(0, 255, height, dtype=np.float64)[:, None, None]
    base = np.concatenate([np.broadcast_to(xs, (height, width, 1)), np.broadcast_to(ys, (height, width, 1))], axis=2)
    base = np.concatenate([base, ((base[..., :1] + base[..., 1:]) / 2)], axis=2)
    noise = rng.normal(0, 24, size=(height, width, 3))
    return np.clip(base + noise, 0, 255).astype(np.uint8)


@pytest.fixture
def make_rgb_image() -> Callable[..., Image.Image]:
    def _make(width: int = 64, height: int = 48, seed: int = 0) -> Image.Image:
        return Image.fromarray(_noise_rgb(width, height, seed))

    return _make


@pytest.fixture
def png_bytes(make_rgb_image) -> Callable[..., bytes]:
    def _make(width: int = 64, height: int = 48, seed: int = 0, alpha: bool = False) -> bytes:
        img = make_rgb_image(width, height, seed)
        if alpha:
            img = img.convert("RGBA")
            a = np.full((height, width), 255, dtype=np.uint8)
            a[: height // 2, :] = 0
            img.putalpha(Image.fromarray(a))
        return encode(img, "PNG")

    return _make


@pytest.fixture
def jpeg_bytes(make_rgb_image) -> Callable[..., bytes]:
    def _make(
        width: int = 64,
        height: int = 48,
        seed: int = 0,
        quality: int = 90,
        orientation: int | None = None,
        make: bytes | None = None,
    ) -> bytes:
        img = make_rgb_image(width, height, seed)
        params: dict = {"quality": quality}
        if orientation is not None or make is not None:
            zeroth: dict = {}
            if orientation is not None:
                zeroth[piexif.ImageIFD.Orientation] = orientation
            if make is not None:
                zeroth[piexif.ImageIFD.Make] = make
            exif = {
                "0th": zeroth,
                "Exif": {
                    piexif.ExifIFD.PixelXDimension: width,
                    piexif.ExifIFD.PixelYDimension: height,
                    piexif.ExifIFD.DateTimeOriginal: b"2024:05:01 10:00:00",
                },
            }
            params["exif"] = piexif.dump(exif)
        return encode(img, "JPEG", **params)

    return _make


@pytest.fixture
def animated_gif_bytes() -> bytes:
    red = Image.new("RGB", (16, 16), (255, 0, 0))
    blue = Image.new("RGB", (16, 16), (0, 0, 255))
    return encode(red, "GIF", save_all=True, append_images=[blue], duration=100, loop=0)
