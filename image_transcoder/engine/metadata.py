"""EXIF carry-over for JPEG re-encodes.

The block is read from the source JPEG with piexif, its orientation tags are
dropped (decoding already rotated the pixels upright) and it is written into
the freshly encoded JPEG. Every failure surfaces as ``MetadataFailure`` so
the caller can keep the metadata-free result.
"""

from __future__ import annotations

import copy
import io
from typing import Any

import piexif

from image_transcoder.logger import get_logger

from .errors import MetadataFailure

_logger = get_logger("metadata")

MetadataBlock = dict[str, Any]

_IFD_NAMES = ("0th", "Exif", "GPS", "Interop", "1st")


def _is_empty(block: MetadataBlock) -> bool:
    return not any(block.get(name) for name in _IFD_NAMES) and not block.get("thumbnail")


def extract_metadata(jpeg_bytes: bytes) -> MetadataBlock | None:
    """EXIF block of a JPEG, or None when it carries no EXIF."""
    try:
        block = piexif.load(jpeg_bytes)
    except Exception as e:
        raise MetadataFailure(f"exif extraction failed: {e}") from e
    if not isinstance(block, dict) or _is_empty(block):
        return None
    return block


def strip_orientation(block: MetadataBlock) -> MetadataBlock:
    """Copy of ``block`` without any Orientation tag."""
    cleaned = copy.deepcopy(block)
    for name in ("0th", "1st"):
        ifd = cleaned.get(name)
        if isinstance(ifd, dict):
            ifd.pop(piexif.ImageIFD.Orientation, None)
    return cleaned


def update_dimensions(block: MetadataBlock, width: int, height: int) -> MetadataBlock:
    """Point PixelXDimension/PixelYDimension at the re-encoded size, when present."""
    exif_ifd = block.get("Exif")
    if isinstance(exif_ifd, dict):
        if piexif.ExifIFD.PixelXDimension in exif_ifd:
            exif_ifd[piexif.ExifIFD.PixelXDimension] = int(width)
        if piexif.ExifIFD.PixelYDimension in exif_ifd:
            exif_ifd[piexif.ExifIFD.PixelYDimension] = int(height)
    return block


def inject_metadata(jpeg_bytes: bytes, block: MetadataBlock) -> bytes:
    """Return ``jpeg_bytes`` with ``block`` (orientation removed) written in."""
    cleaned = strip_orientation(block)
    try:
        exif_bytes = piexif.dump(cleaned)
        out = io.BytesIO()
        piexif.insert(exif_bytes, jpeg_bytes, out)
        result = out.getvalue()
    except Exception as e:
        raise MetadataFailure(f"exif injection failed: {e}") from e
    if not result.startswith(b"\xff\xd8"):
        raise MetadataFailure("exif injection produced an invalid JPEG")
    _logger.debug("exif injected: %d -> %d bytes", len(jpeg_bytes), len(result))
    return result

