"""Command line front end: ``python -m image_transcoder INPUT OUTPUT [options]``.

This is the only place that reads or writes files; the engine itself works
on bytes.
"""

from __future__ import annotations

import argparse
import math
import os
import sys
from pathlib import Path

from image_transcoder.engine import ExternalEncoderPreset, TranscodeEngine, build_request
from image_transcoder.engine.types import ImageBytes
from image_transcoder.logger import setup_logger
from image_transcoder.settings_manager import SettingsManager


def _format_size(size_bytes: int) -> str:
    if size_bytes == 0:
        return "0B"
    if size_bytes < 0:
        raise ValueError("size_bytes must be non-negative")
    size_name = ("B", "KB", "MB", "GB", "TB")
    i = min(len(size_name) - 1, math.floor(math.log(size_bytes, 1024)))
    p = math.pow(1024, i)
    s = round(size_bytes / p, 2)
    return f"{s} {size_name[i]}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="image_transcoder", description="Convert, resize and recompress an image")
    parser.add_argument("input", type=Path, help="Source image")
    parser.add_argument("output", type=Path, help="Destination file")
    parser.add_argument(
        "--format",
        default="WEBP",
        help="WEBP, JPEG, PNG, ORIGINAL, NONE, PNGQUANT or AVIF (default: WEBP)",
    )
    parser.add_argument("--quality", type=float, default=0.75, help="Encoder quality in [0, 1]")
    parser.add_argument("--color-depth", type=float, default=1.0, help="PNG color depth in (0, 1]")
    parser.add_argument(
        "--resize",
        default="None",
        help="None, Fit, Fill, LongestEdge, ShortestEdge, Width or Height",
    )
    parser.add_argument("--width", type=float, default=0)
    parser.add_argument("--height", type=float, default=0)
    parser.add_argument("--edge", type=float, default=0, help="Edge length for LongestEdge/ShortestEdge")
    parser.add_argument("--scale", default="Auto", help="Auto, Reduce or Enlarge")
    parser.add_argument(
        "--no-larger",
        action="store_true",
        help="Keep the original bytes when the result would be larger",
    )
    parser.add_argument("--pngquant", default=None, help="Path to the pngquant executable")
    parser.add_argument("--pngquant-quality", default=None, help="pngquant --quality range, e.g. 65-80")
    parser.add_argument("--ffmpeg", default=None, help="Path to the ffmpeg executable")
    parser.add_argument("--crf", type=int, default=None, help="ffmpeg CRF for AVIF output")
    parser.add_argument("--preset", dest="ffmpeg_preset", default=None, help="ffmpeg preset for AVIF output")
    parser.add_argument("--settings", default=None, help="JSON settings file")
    parser.add_argument("--log-level", help="Set log level")
    parser.add_argument("--log-cats", help="Set log categories")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.log_level:
        os.environ["IMAGE_TRANSCODER_LOG_LEVEL"] = args.log_level
    if args.log_cats:
        os.environ["IMAGE_TRANSCODER_LOG_CATS"] = args.log_cats
    setup_logger()

    try:
        request = build_request(
            args.format,
            args.quality,
            args.color_depth,
            args.resize,
            args.width,
            args.height,
            args.edge,
            args.scale,
            not args.no_larger,
        )
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    try:
        data = args.input.read_bytes()
    except OSError as e:
        print(f"error: cannot read {args.input}: {e}", file=sys.stderr)
        return 1

    preset = ExternalEncoderPreset(
        pngquant_executable_path=args.pngquant,
        pngquant_quality=args.pngquant_quality,
        ffmpeg_executable_path=args.ffmpeg,
        ffmpeg_crf=args.crf,
        ffmpeg_preset=args.ffmpeg_preset,
    )
    engine = TranscodeEngine(settings=SettingsManager(args.settings))
    result = engine.transcode(ImageBytes(data, filename=args.input.name), request, preset)

    out = result.data
    if not request.allow_larger_files and len(out) > len(data):
        print(f"[ ] Larger than original, keeping input: {args.input.name}")
        out = data

    try:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_bytes(out)
    except OSError as e:
        print(f"error: cannot write {args.output}: {e}", file=sys.stderr)
        return 1

    mark = "✓" if result.transcoded else " "
    detail = result.strategy or result.error or "unchanged"
    print(
        f"[{mark}] {args.input.name} -> {args.output.name} "
        f"({_format_size(len(data))} -> {_format_size(len(out))}, {detail})"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
