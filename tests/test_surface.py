from __future__ import annotations

import numpy as np
import pytest
from PIL import Image

from image_transcoder.engine import formats
from image_transcoder.engine.decoder import DecodedRaster
from image_transcoder.engine.surface import (
    PillowSurface,
    data_url_to_bytes,
    encode_pillow_image,
    pillow_surface_factory,
    to_data_url,
)

from helpers import open_image


def _decoded(img: Image.Image, mime: str = formats.PNG) -> DecodedRaster:
    return DecodedRaster(width=img.width, height=img.height, image=img, source_mime=mime)


def _half_transparent(w: int = 20, h: int = 10) -> Image.Image:
    arr = np.zeros((h, w, 4), dtype=np.uint8)
    arr[..., 0] = 200
    arr[..., 1] = 100
    arr[..., 2] = 50
    arr[:, : w // 2, 3] = 255
    return Image.fromarray(arr)


def test_draw_scales_to_requested_size(make_rgb_image):
    surface = PillowSurface()
    surface.draw(_decoded(make_rgb_image(64, 48)), 32, 24)
    assert (surface.width, surface.height) == (32, 24)
    assert surface.image.mode == "RGBA"


def test_draw_with_crop_box_uses_source_rectangle():
    arr = np.zeros((10, 30, 3), dtype=np.uint8)
    arr[:, :20] = (255, 0, 0)
    arr[:, 20:] = (0, 255, 0)  # green right third
    surface = PillowSurface()
    surface.draw(_decoded(Image.fromarray(arr)), 5, 5, crop_box=(20, 0, 30, 10))
    px = surface.read_pixels()
    assert px.shape == (5, 5, 4)
    # Without the crop the centre would be red.
    assert px[2, 2, 1] > 240
    assert px[2, 2, 0] < 15


def test_opaque_surface_flattens_onto_black():
    surface = PillowSurface(alpha=False)
    surface.draw(_decoded(_half_transparent()), 20, 10)
    out = open_image(surface.encode(formats.PNG, 1.0)).convert("RGB")
    assert out.getpixel((15, 5)) == (0, 0, 0)
    assert out.getpixel((2, 5)) == (200, 100, 50)


def test_native_mode_keeps_palette_image_at_same_size():
    pal = Image.new("P", (8, 8), 3)
    surface = PillowSurface(native_mode=True)
    surface.draw(_decoded(pal, formats.GIF), 8, 8)
    assert surface.image.mode == "P"


@pytest.mark.parametrize("mime", [formats.PNG, formats.JPEG, formats.WEBP])
def test_both_encoders_produce_valid_output(make_rgb_image, mime):
    surface = PillowSurface(alpha=mime != formats.JPEG)
    surface.draw(_decoded(make_rgb_image(40, 30)), 40, 30)
    stream = surface.encode(mime, 0.8)
    alt = surface.encode_alt(mime, 0.8)
    assert formats.matches_mime(stream, mime)
    assert formats.matches_mime(alt, mime)
    assert open_image(alt).size == (40, 30)


def test_encode_unknown_mime_returns_empty(make_rgb_image):
    surface = PillowSurface()
    surface.draw(_decoded(make_rgb_image(8, 8)), 8, 8)
    assert surface.encode("image/x-unknown", 0.5) == b""
    assert surface.encode_alt(formats.SVG, 0.5) == b""


def test_encode_before_draw_returns_empty():
    assert PillowSurface().encode(formats.PNG, 1.0) == b""


def test_pixels_round_trip(make_rgb_image):
    surface = PillowSurface()
    surface.draw(_decoded(make_rgb_image(6, 4)), 6, 4)
    px = surface.read_pixels()
    px[..., 0] = 0
    surface.write_pixels(px)
    assert np.array_equal(surface.read_pixels(), px)


def test_write_pixels_rejects_wrong_shape():
    surface = PillowSurface()
    with pytest.raises(ValueError):
        surface.write_pixels(np.zeros((4, 4, 3), dtype=np.uint8))


def test_data_url_helpers():
    url = to_data_url(b"\x00\x01abc", "image/png")
    assert url.startswith("data:image/png;base64,")
    assert data_url_to_bytes(url) == b"\x00\x01abc"
    assert data_url_to_bytes("data:,") == b""
    assert data_url_to_bytes("not a url") == b""


def test_encode_pillow_image_quality_param(make_rgb_image):
    img = make_rgb_image(64, 64)
    hi = encode_pillow_image(img, formats.JPEG, 0.95)
    lo = encode_pillow_image(img, formats.JPEG, 0.3)
    assert len(lo) < len(hi)


def test_factory_builds_independent_surfaces():
    a = pillow_surface_factory()
    b = pillow_surface_factory(alpha=False)
    assert a is not b
    assert isinstance(a, PillowSurface) and isinstance(b, PillowSurface)
    assert b.alpha is False
