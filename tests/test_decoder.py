from __future__ import annotations

from collections.abc import Sequence

import pytest
from PIL import Image

from image_transcoder.engine import decoder, formats
from image_transcoder.engine.decoder import (
    Backend,
    DecodedRaster,
    ExoticDecoder,
    HeicDecoder,
    TiffDecoder,
    decode_image,
    default_decoders,
)
from image_transcoder.engine.errors import DecodeFailure

from helpers import encode


def test_decode_png(png_bytes):
    raster = decode_image(png_bytes(30, 20), formats.PNG)
    assert (raster.width, raster.height) == (30, 20)
    assert raster.source_mime == formats.PNG
    assert not raster.has_alpha


def test_decode_png_with_alpha(png_bytes):
    raster = decode_image(png_bytes(8, 8, alpha=True), formats.PNG)
    assert raster.has_alpha


def test_decode_applies_exif_orientation(jpeg_bytes):
    # Orientation 6 means the stored pixels must be rotated 90 degrees.
    raster = decode_image(jpeg_bytes(40, 20, orientation=6), formats.JPEG)
    assert (raster.width, raster.height) == (20, 40)


def test_animated_gif_decodes_first_frame(animated_gif_bytes):
    raster = decode_image(animated_gif_bytes, formats.GIF)
    assert raster.image.convert("RGB").getpixel((4, 4)) == (255, 0, 0)


def test_empty_and_vector_input_fail():
    with pytest.raises(DecodeFailure):
        decode_image(b"", formats.PNG)
    with pytest.raises(DecodeFailure):
        decode_image(b"<svg xmlns='http://www.w3.org/2000/svg'/>", formats.SVG)


def test_corrupt_input_raises_decode_failure(png_bytes):
    data = png_bytes(16, 16)
    with pytest.raises(DecodeFailure):
        decode_image(data[:40], formats.PNG)


def test_tiff_decodes_through_backend_chain(make_rgb_image):
    data = encode(make_rgb_image(12, 9), "TIFF")
    raster = decode_image(data, formats.TIFF)
    assert (raster.width, raster.height) == (12, 9)


def test_broken_heic_fails_cleanly():
    data = b"\x00\x00\x00\x18ftypheic\x00\x00\x00\x00" + b"\x00" * 64
    with pytest.raises(DecodeFailure):
        decode_image(data, formats.HEIC)


class _ChainDecoder(ExoticDecoder):
    name = "chain"
    mime_types = frozenset({formats.TIFF})

    def __init__(self, backends: Sequence[tuple[str, Backend]]):
        self._backends = backends

    def backends(self) -> Sequence[tuple[str, Backend]]:
        return self._backends


def test_exotic_decoder_falls_through_to_next_backend():
    calls: list[str] = []

    def broken(data: bytes, mime: str) -> DecodedRaster:
        calls.append("broken")
        raise RuntimeError("boom")

    def working(data: bytes, mime: str) -> DecodedRaster:
        calls.append("working")
        return DecodedRaster(width=2, height=3, image=Image.new("RGB", (2, 3)), source_mime=mime)

    dec = _ChainDecoder([("broken", broken), ("working", working)])
    raster = decode_image(b"II*\x00", formats.TIFF, [dec])
    assert (raster.width, raster.height) == (2, 3)
    assert calls == ["broken", "working"]


def test_exotic_decoder_all_backends_fail():
    def broken(data: bytes, mime: str) -> DecodedRaster:
        raise OSError("nope")

    with pytest.raises(DecodeFailure, match="nope"):
        decode_image(b"II*\x00", formats.TIFF, [_ChainDecoder([("a", broken), ("b", broken)])])


def test_no_decoder_for_exotic_mime():
    with pytest.raises(DecodeFailure):
        decode_image(b"II*\x00", formats.TIFF, [HeicDecoder()])


def test_default_decoders_cover_exotic_types():
    handled = {m for d in default_decoders() for m in d.mime_types}
    assert handled == set(formats.EXOTIC_MIME_TYPES)
    assert [name for name, _ in TiffDecoder().backends()] == ["pyvips", "pillow"]
    assert [name for name, _ in HeicDecoder().backends()] == ["pillow-heif", "pyvips"]


def test_pyvips_backend_decodes_tiff(make_rgb_image):
    pyvips = pytest.importorskip("pyvips")
    assert pyvips is decoder._get_pyvips_module()
    data = encode(make_rgb_image(10, 7), "TIFF")
    raster = decoder._decode_with_pyvips_from_buffer(data, formats.TIFF)
    assert (raster.width, raster.height) == (10, 7)
    assert raster.image.mode == "RGB"


def test_pillow_heif_registration_is_idempotent():
    pytest.importorskip("pillow_heif")
    assert decoder.register_heif_plugin() is True
    assert decoder.register_heif_plugin() is True
