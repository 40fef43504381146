"""Image decoding: Pillow for standard formats, backend chains for exotic ones.

HEIC/HEIF, AVIF and TIFF each get an independent decoder that tries its
backends in order (pillow-heif, Pillow's native plugins, pyvips). A failing
backend only moves on to the next one; a decoder with no working backend
raises ``DecodeFailure``. Animated containers are reduced to their first
frame.
"""

from __future__ import annotations

import contextlib
import io
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np
from PIL import Image, ImageOps

from image_transcoder.logger import get_logger

from . import formats
from .errors import DecodeFailure

_logger = get_logger("decoder")

_RGB_CHANNELS = 3
_RGBA_CHANNELS = 4


@dataclass(frozen=True)
class DecodedRaster:
    width: int
    height: int
    image: Image.Image
    source_mime: str

    @property
    def has_alpha(self) -> bool:
        img = self.image
        if img.mode in ("RGBA", "LA", "PA"):
            return True
        return img.mode == "P" and "transparency" in img.info


def _from_pillow(img: Image.Image, source_mime: str) -> DecodedRaster:
    with contextlib.suppress(EOFError, AttributeError):
        img.seek(0)
    img.load()
    upright = ImageOps.exif_transpose(img)
    # Detach from the source buffer; only the first frame is kept.
    frame = upright.copy() if upright is img else upright
    w, h = frame.size
    if w <= 0 or h <= 0:
        raise DecodeFailure(f"zero-size image: {w}x{h}")
    return DecodedRaster(width=w, height=h, image=frame, source_mime=source_mime)


def decode_with_pillow(data: bytes, source_mime: str) -> DecodedRaster:
    try:
        with Image.open(io.BytesIO(data)) as img:
            return _from_pillow(img, source_mime)
    except DecodeFailure:
        raise
    except Exception as e:
        raise DecodeFailure(f"pillow could not decode {source_mime}: {e}") from e


# --- pyvips backend --------------------------------------------------------

_pyvips: Any | None = None
_heif_registered = False
_heif_lock = threading.Lock()


def _get_pyvips_module() -> Any:
    global _pyvips
    if _pyvips is None:
        import pyvips  # type: ignore

        _pyvips = pyvips
    return _pyvips


def _decode_with_pyvips_from_buffer(data: bytes, source_mime: str) -> DecodedRaster:
    """Decode the first page of an image buffer into an RGB(A) Pillow image."""
    pyvips = _get_pyvips_module()
    # Configure pyvips caches to avoid memory growth
    with contextlib.suppress(Exception):
        pyvips.cache_set_max(0)
        pyvips.cache_set_max_mem(0)
        pyvips.cache_set_max_files(0)

    image = pyvips.Image.new_from_buffer(data, "", access="sequential")
    with contextlib.suppress(Exception):
        image = image.autorot()
    with contextlib.suppress(Exception):
        image = image.colourspace("srgb")
    if image.format != "uchar":
        image = image.cast("uchar")
    has_alpha = image.hasalpha()
    wanted = _RGBA_CHANNELS if has_alpha else _RGB_CHANNELS
    if image.bands > wanted:
        image = image.extract_band(0, n=wanted)
    elif image.bands < _RGB_CHANNELS:
        grey = image.extract_band(0)
        image = grey.bandjoin([grey, grey])

    mem = image.write_to_memory()
    array = np.frombuffer(mem, dtype=np.uint8).reshape(image.height, image.width, image.bands).copy()
    with contextlib.suppress(Exception):
        del image
    channels = array.shape[2]
    if channels not in (_RGB_CHANNELS, _RGBA_CHANNELS):
        raise DecodeFailure(f"unsupported band count after conversion: {channels}")
    h, w = array.shape[0], array.shape[1]
    return DecodedRaster(width=w, height=h, image=Image.fromarray(array), source_mime=source_mime)


# --- pillow-heif backend ---------------------------------------------------


def register_heif_plugin() -> bool:
    """Register pillow-heif's opener/saver with Pillow once; False if unavailable."""
    global _heif_registered
    with _heif_lock:
        if _heif_registered:
            return True
        try:
            import pillow_heif  # type: ignore

            pillow_heif.register_heif_opener()
        except Exception as e:
            _logger.debug("pillow-heif unavailable: %s", e)
            return False
        _heif_registered = True
        return True


def _decode_with_pillow_heif(data: bytes, source_mime: str) -> DecodedRaster:
    if not register_heif_plugin():
        raise DecodeFailure("pillow-heif is not installed")
    return decode_with_pillow(data, source_mime)


# --- decoders --------------------------------------------------------------

Backend = Callable[[bytes, str], DecodedRaster]


class ExoticDecoder(ABC):
    """Decoder for one container family that Pillow alone may not draw."""

    name: str = "exotic"
    mime_types: frozenset[str] = frozenset()

    @abstractmethod
    def backends(self) -> Sequence[tuple[str, Backend]]:
        """Backends to try in order, as (name, callable) pairs."""

    def handles(self, mime: str) -> bool:
        return mime in self.mime_types

    def decode(self, data: bytes, source_mime: str) -> DecodedRaster:
        errors: list[str] = []
        for backend_name, backend in self.backends():
            try:
                raster = backend(data, source_mime)
                _logger.debug("%s decoded via %s: %dx%d", self.name, backend_name, raster.width, raster.height)
                return raster
            except Exception as e:
                _logger.debug("%s backend %s failed: %s", self.name, backend_name, e)
                errors.append(f"{backend_name}: {e}")
        raise DecodeFailure(f"{self.name} decode failed ({'; '.join(errors) or 'no backends'})")


class HeicDecoder(ExoticDecoder):
    name = "heic"
    mime_types = frozenset({formats.HEIC, formats.HEIF})

    def backends(self) -> Sequence[tuple[str, Backend]]:
        return (("pillow-heif", _decode_with_pillow_heif), ("pyvips", _decode_with_pyvips_from_buffer))


class AvifDecoder(ExoticDecoder):
    name = "avif"
    mime_types = frozenset({formats.AVIF})

    def backends(self) -> Sequence[tuple[str, Backend]]:
        return (("pillow", decode_with_pillow), ("pyvips", _decode_with_pyvips_from_buffer))


class TiffDecoder(ExoticDecoder):
    name = "tiff"
    mime_types = frozenset({formats.TIFF})

    def backends(self) -> Sequence[tuple[str, Backend]]:
        return (("pyvips", _decode_with_pyvips_from_buffer), ("pillow", decode_with_pillow))


def default_decoders() -> tuple[ExoticDecoder, ...]:
    return (HeicDecoder(), AvifDecoder(), TiffDecoder())


def decode_image(data: bytes, source_mime: str, decoders: Iterable[ExoticDecoder] | None = None) -> DecodedRaster:
    """Decode ``data`` sniffed as ``source_mime`` into its first frame.

    Raises DecodeFailure; nothing else escapes.
    """
    if not data:
        raise DecodeFailure("empty input")
    if source_mime in formats.EXOTIC_MIME_TYPES:
        for decoder in decoders if decoders is not None else default_decoders():
            if decoder.handles(source_mime):
                return decoder.decode(data, source_mime)
        raise DecodeFailure(f"no decoder registered for {source_mime}")
    if source_mime == formats.SVG:
        raise DecodeFailure("vector input is not rasterised")
    return decode_with_pillow(data, source_mime)
