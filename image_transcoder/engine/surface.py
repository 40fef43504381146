"""Raster surfaces: drawable, encodable 2D pixel buffers.

A surface is created per call, drawn into once, optionally has its pixels
rewritten, and is then encoded by one or more strategies. The two encode
operations are deliberately independent code paths that need not agree on
output size.
"""

from __future__ import annotations

import base64
import io
from abc import ABC, abstractmethod
from collections.abc import Callable

import numpy as np
from PIL import Image

from image_transcoder.logger import get_logger

from . import formats
from .decoder import DecodedRaster, register_heif_plugin

_logger = get_logger("surface")

_RGBA_DIMS = 3
_RGBA_CHANNELS = 4
_BLACK = (0, 0, 0)


class RasterSurface(ABC):
    """Abstract drawable/encodable canvas."""

    @property
    @abstractmethod
    def width(self) -> int: ...

    @property
    @abstractmethod
    def height(self) -> int: ...

    @abstractmethod
    def draw(
        self,
        decoded: DecodedRaster,
        dst_w: int,
        dst_h: int,
        crop_box: tuple[float, float, float, float] | None = None,
    ) -> None:
        """Scale (and optionally source-crop) the decoded image onto the surface."""

    @abstractmethod
    def encode(self, mime: str, quality: float) -> bytes:
        """Streamed binary encode. Returns b"" when the encoder produces nothing."""

    @abstractmethod
    def encode_alt(self, mime: str, quality: float) -> bytes:
        """Data-URL round-trip encode. Returns b"" when the encoder produces nothing."""

    @abstractmethod
    def read_pixels(self) -> np.ndarray:
        """Copy of the surface as an (H, W, 4) uint8 RGBA array."""

    @abstractmethod
    def write_pixels(self, pixels: np.ndarray) -> None:
        """Replace the surface content with an (H, W, 4) uint8 RGBA array."""


SurfaceFactory = Callable[..., RasterSurface]


def _quality_to_int(quality: float) -> int:
    return max(1, min(100, int(round(float(quality) * 100))))


def _flatten(img: Image.Image, background: tuple[int, int, int] = _BLACK) -> Image.Image:
    """Composite transparency onto a solid background, like an opaque canvas."""
    if img.mode in ("RGBA", "LA", "PA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        base = Image.new("RGB", rgba.size, background)
        base.paste(rgba, mask=rgba.getchannel("A"))
        return base
    if img.mode not in ("RGB", "L", "CMYK"):
        return img.convert("RGB")
    return img


def _for_format(img: Image.Image, pil_format: str) -> Image.Image:
    if pil_format == "JPEG":
        return _flatten(img)
    if pil_format == "PNG":
        if img.mode in ("1", "L", "LA", "P", "RGB", "RGBA", "I", "I;16"):
            return img
        return img.convert("RGBA")
    if pil_format == "GIF":
        return img if img.mode in ("P", "L") else img.convert("RGBA")
    if pil_format == "BMP":
        return img if img.mode in ("1", "L", "P", "RGB") else _flatten(img)
    # WEBP, TIFF, HEIF, AVIF
    if img.mode in ("RGB", "RGBA"):
        return img
    has_alpha = img.mode in ("LA", "PA") or (img.mode == "P" and "transparency" in img.info)
    return img.convert("RGBA" if has_alpha else "RGB")


def _save_params(pil_format: str, quality: float, max_effort: bool) -> dict:
    q = _quality_to_int(quality)
    if pil_format == "JPEG":
        if max_effort:
            return {"quality": q, "optimize": True, "progressive": True}
        return {"quality": q, "optimize": False}
    if pil_format == "WEBP":
        return {"quality": q, "method": 6 if max_effort else 4}
    if pil_format == "PNG":
        return {"optimize": True} if max_effort else {"compress_level": 6}
    if pil_format in ("AVIF", "HEIF"):
        return {"quality": q}
    return {}


def encode_pillow_image(img: Image.Image, mime: str, quality: float, *, max_effort: bool = False) -> bytes:
    """Encode a Pillow image as ``mime``; raises on encoder errors."""
    pil_format = formats.PIL_FORMATS.get(formats.normalize_mime(mime) or "")
    if pil_format is None:
        raise ValueError(f"no encoder for {mime}")
    if pil_format == "HEIF":
        register_heif_plugin()
    prepared = _for_format(img, pil_format)
    buf = io.BytesIO()
    prepared.save(buf, format=pil_format, **_save_params(pil_format, quality, max_effort))
    return buf.getvalue()


def to_data_url(data: bytes, mime: str) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def data_url_to_bytes(data_url: str) -> bytes:
    """Decode the payload of a base64 data URL; b"" for an empty/invalid one."""
    header, sep, payload = data_url.partition(",")
    if not sep or not header.startswith("data:") or ";base64" not in header:
        return b""
    return base64.b64decode(payload, validate=True)


class PillowSurface(RasterSurface):
    """Surface backed by a Pillow image.

    ``alpha=False`` behaves like an opaque canvas: transparency is composited
    onto black when drawing. ``native_mode=True`` keeps the decoded image's
    own pixel mode (palette, greyscale, ...) instead of normalising to RGBA.
    """

    def __init__(self, *, alpha: bool = True, native_mode: bool = False) -> None:
        self.alpha = alpha
        self.native_mode = native_mode
        self._image: Image.Image | None = None

    @property
    def image(self) -> Image.Image:
        if self._image is None:
            raise RuntimeError("surface has not been drawn")
        return self._image

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    def draw(
        self,
        decoded: DecodedRaster,
        dst_w: int,
        dst_h: int,
        crop_box: tuple[float, float, float, float] | None = None,
    ) -> None:
        src = decoded.image
        if not self.native_mode:
            src = src.convert("RGBA") if self.alpha else _flatten(src).convert("RGB")
        elif src.mode not in ("1", "L", "LA", "P", "RGB", "RGBA"):
            src = src.convert("RGBA")

        full_box = (0, 0, decoded.width, decoded.height)
        if (dst_w, dst_h) == src.size and crop_box in (None, full_box):
            self._image = src.copy()
            return
        if src.mode in ("1", "P"):
            # Palette images cannot be resampled directly.
            src = src.convert("RGBA")
        self._image = src.resize((int(dst_w), int(dst_h)), Image.Resampling.LANCZOS, box=crop_box)

    def encode(self, mime: str, quality: float) -> bytes:
        try:
            return encode_pillow_image(self.image, mime, quality)
        except Exception as e:
            _logger.debug("stream encode %s failed: %s", mime, e)
            return b""

    def encode_alt(self, mime: str, quality: float) -> bytes:
        try:
            raw = encode_pillow_image(self.image, mime, quality, max_effort=True)
            return data_url_to_bytes(to_data_url(raw, mime))
        except Exception as e:
            _logger.debug("data-url encode %s failed: %s", mime, e)
            return b""

    def read_pixels(self) -> np.ndarray:
        return np.array(self.image.convert("RGBA"), dtype=np.uint8)

    def write_pixels(self, pixels: np.ndarray) -> None:
        arr = np.ascontiguousarray(pixels, dtype=np.uint8)
        if arr.ndim != _RGBA_DIMS or arr.shape[2] != _RGBA_CHANNELS:
            raise ValueError(f"expected (H, W, 4) RGBA pixels, got shape {arr.shape}")
        img = Image.fromarray(arr)
        self._image = img if self.alpha else img.convert("RGB")


def pillow_surface_factory(*, alpha: bool = True, native_mode: bool = False) -> RasterSurface:
    return PillowSurface(alpha=alpha, native_mode=native_mode)
