"""Small image helpers shared by the test modules."""

from __future__ import annotations

import io

import piexif
from PIL import Image


def encode(img: Image.Image, fmt: str, **params) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt, **params)
    return buf.getvalue()


def open_image(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def size_of(data: bytes) -> tuple[int, int]:
    with Image.open(io.BytesIO(data)) as img:
        return img.size


def fake_webp(n: int) -> bytes:
    """RIFF/WEBP-signed buffer of exactly ``n`` bytes (not decodable)."""
    head = b"RIFF" + (n - 8).to_bytes(4, "little") + b"WEBP"
    return head + b"\x00" * (n - len(head))


def orientation_of(jpeg_bytes: bytes) -> int | None:
    """Orientation tag of a JPEG, or None when absent or unreadable."""
    try:
        block = piexif.load(jpeg_bytes)
    except Exception:
        return None
    value = block.get("0th", {}).get(piexif.ImageIFD.Orientation)
    return int(value) if value is not None else None
