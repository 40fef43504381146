"""Format sniffing: magic bytes first, then declared/cached/extension hints.

``detect_mime`` never raises; when nothing identifies the bytes it returns
``UNKNOWN`` and the engine passes the input through unchanged.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from image_transcoder.logger import get_logger

from .types import TargetFormat

_logger = get_logger("formats")

UNKNOWN = "unknown"

JPEG = "image/jpeg"
PNG = "image/png"
WEBP = "image/webp"
GIF = "image/gif"
BMP = "image/bmp"
TIFF = "image/tiff"
HEIC = "image/heic"
HEIF = "image/heif"
AVIF = "image/avif"
SVG = "image/svg+xml"

SUPPORTED_MIME_TYPES = frozenset({JPEG, PNG, WEBP, HEIC, HEIF, AVIF, TIFF, BMP, SVG, GIF})

# Formats the standard decoder cannot draw directly.
EXOTIC_MIME_TYPES = frozenset({HEIC, HEIF, AVIF, TIFF})

_MIME_ALIASES = {
    "image/jpg": JPEG,
    "image/pjpeg": JPEG,
    "image/tif": TIFF,
    "image/x-tiff": TIFF,
    "image/x-ms-bmp": BMP,
    "image/x-png": PNG,
    "image/svg": SVG,
}

EXTENSION_TO_MIME: dict[str, tuple[str, ...]] = {
    "jpg": (JPEG,),
    "jpeg": (JPEG,),
    "png": (PNG,),
    "webp": (WEBP,),
    "heic": (HEIC, HEIF),
    "heif": (HEIC, HEIF),
    "avif": (AVIF,),
    "tif": (TIFF,),
    "tiff": (TIFF,),
    "bmp": (BMP,),
    "svg": (SVG,),
    "gif": (GIF,),
}

# Pillow format names used for encoding a given MIME type.
PIL_FORMATS = {
    JPEG: "JPEG",
    PNG: "PNG",
    WEBP: "WEBP",
    GIF: "GIF",
    BMP: "BMP",
    TIFF: "TIFF",
    HEIC: "HEIF",
    HEIF: "HEIF",
    AVIF: "AVIF",
}

_PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
_HEIC_BRANDS = frozenset({"heic", "heix", "hevc", "hevx", "mif1", "msf1"})
_AVIF_BRANDS = frozenset({"avif", "avis"})
_SNIFF_LEN = 12


def normalize_mime(mime: str | None) -> str | None:
    if not mime or not isinstance(mime, str):
        return None
    value = mime.split(";", 1)[0].strip().lower()
    if not value:
        return None
    return _MIME_ALIASES.get(value, value)


def is_supported_mime(mime: str | None) -> bool:
    return normalize_mime(mime) in SUPPORTED_MIME_TYPES


def _extension(filename: str | None) -> str | None:
    if not filename or "." not in filename:
        return None
    ext = filename.rsplit(".", 1)[-1].strip().lower()
    return ext or None


def is_supported(mime: str | None = None, filename: str | None = None) -> bool:
    """Checks mime type first, then the filename extension."""
    if is_supported_mime(mime):
        return True
    ext = _extension(filename)
    return ext is not None and ext in EXTENSION_TO_MIME


def extensions_for_mime(mime: str) -> list[str] | None:
    norm = normalize_mime(mime)
    exts = [ext for ext, mimes in EXTENSION_TO_MIME.items() if norm in mimes]
    return exts or None


def _ftyp_brand(head: bytes) -> str | None:
    # ISO-BMFF: 4-byte box size, b"ftyp", then the 4-byte major brand.
    if len(head) < _SNIFF_LEN or head[4:8] != b"ftyp":
        return None
    try:
        return head[8:12].decode("ascii").strip().lower()
    except UnicodeDecodeError:
        return None


def sniff_magic(data: bytes) -> str | None:
    """Match a known signature against the byte prefix, or return None."""
    head = bytes(data[:_SNIFF_LEN])
    if head.startswith(_PNG_SIGNATURE):
        return PNG
    if head.startswith(b"\xff\xd8\xff"):
        return JPEG
    if head.startswith(b"GIF8"):
        return GIF
    if head.startswith(b"BM"):
        return BMP
    if head.startswith(b"II") or head.startswith(b"MM"):
        return TIFF
    if head.startswith(b"RIFF") and head[8:12] == b"WEBP":
        return WEBP
    brand = _ftyp_brand(head)
    if brand in _HEIC_BRANDS:
        return HEIC
    if brand in _AVIF_BRANDS:
        return AVIF
    return None


def mime_from_cache(cached_hint: Mapping[str, Any] | str | None) -> str | None:
    """Supported MIME from a metadata-cache hint, or None.

    A mapping is read like document frontmatter: ``mime`` first, then a
    sibling ``type`` field. Values are only trusted when they name a
    supported type on their own.
    """
    if cached_hint is None:
        return None
    if isinstance(cached_hint, str):
        candidates = [cached_hint]
    elif isinstance(cached_hint, Mapping):
        candidates = [cached_hint.get("mime"), cached_hint.get("type")]
    else:
        return None
    for value in candidates:
        norm = normalize_mime(value) if isinstance(value, str) else None
        if norm in SUPPORTED_MIME_TYPES:
            return norm
    return None


def mime_from_filename(filename: str | None) -> str | None:
    ext = _extension(filename)
    if ext is None:
        return None
    mimes = EXTENSION_TO_MIME.get(ext)
    return mimes[0] if mimes else None


def detect_mime(
    data: bytes,
    declared_type: str | None = None,
    filename: str | None = None,
    cached_hint: Mapping[str, Any] | str | None = None,
) -> str:
    try:
        sniffed = sniff_magic(data or b"")
        if sniffed:
            return sniffed
        declared = normalize_mime(declared_type)
        if declared in SUPPORTED_MIME_TYPES:
            return declared
        cached = mime_from_cache(cached_hint)
        if cached:
            return cached
        guessed = mime_from_filename(filename)
        if guessed:
            return guessed
    except Exception as e:
        _logger.debug("mime detection failed: %s", e)
    return UNKNOWN


def matches_mime(data: bytes, mime: str) -> bool:
    """True when ``data`` carries the signature expected for ``mime``."""
    expected = normalize_mime(mime)
    found = sniff_magic(data)
    if expected in (HEIC, HEIF):
        return found == HEIC
    return found is not None and found == expected


def mime_for_target(target: TargetFormat, source_mime: str) -> str | None:
    """Output MIME for a target format; ORIGINAL and NONE keep the source's."""
    if target is TargetFormat.WEBP:
        return WEBP
    if target is TargetFormat.JPEG:
        return JPEG
    if target in (TargetFormat.PNG, TargetFormat.PNGQUANT):
        return PNG
    if target is TargetFormat.AVIF:
        return AVIF
    norm = normalize_mime(source_mime)
    return norm if norm in SUPPORTED_MIME_TYPES else None
