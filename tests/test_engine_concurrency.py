from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from image_transcoder.engine import formats
from image_transcoder.engine.engine import TranscodeEngine, process_image, transcode_many
from image_transcoder.engine.types import EncodeRequest, ImageBytes, TargetFormat

from helpers import size_of


def test_concurrent_calls_are_independent(png_bytes, jpeg_bytes):
    png = png_bytes(100, 100, seed=1)
    jpeg = jpeg_bytes(200, 200, seed=2)
    engine = TranscodeEngine()

    with ThreadPoolExecutor(max_workers=4) as pool:
        futures = []
        for _ in range(8):
            futures.append((100, pool.submit(process_image, png, None, "WEBP", 0.7, engine=engine)))
            futures.append((200, pool.submit(process_image, jpeg, None, "WEBP", 0.7, engine=engine)))
        for side, fut in futures:
            out = fut.result(timeout=60)
            assert formats.sniff_magic(out) == formats.WEBP
            assert size_of(out) == (side, side)


def test_transcode_many_keeps_submission_order(png_bytes, jpeg_bytes):
    jobs = [
        (ImageBytes(png_bytes(100, 100)), EncodeRequest(target=TargetFormat.WEBP)),
        (ImageBytes(jpeg_bytes(200, 200)), EncodeRequest(target=TargetFormat.PNG)),
        (ImageBytes(b"not an image"), EncodeRequest(target=TargetFormat.JPEG)),
        (ImageBytes(png_bytes(30, 10)), EncodeRequest(target=TargetFormat.JPEG)),
    ]
    results = transcode_many(jobs, max_workers=3)

    assert [r.source_mime for r in results] == [formats.PNG, formats.JPEG, formats.UNKNOWN, formats.PNG]
    assert [r.size for r in results] == [(100, 100), (200, 200), None, (30, 10)]
    assert results[2].data == b"not an image"
    assert formats.sniff_magic(results[1].data) == formats.PNG


def test_transcode_many_empty():
    assert transcode_many([]) == []
