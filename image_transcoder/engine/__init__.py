"""Transcode engine - decoding, resizing and re-encoding of raster images.

This package provides the whole conversion pipeline:
- Format sniffing (formats)
- Exotic container decoding (decoder)
- Resize geometry (geometry)
- Raster surfaces and encode strategies (surface, candidates)
- EXIF carry-over and PNG color-depth reduction (metadata, color_depth)
- Subprocess encoders for pngquant and AVIF (external)

Usage:
    from image_transcoder.engine import process_image

    webp = process_image(data, "image/jpeg", "WEBP", quality=0.8,
                         resize_mode="Fit", width=1600, height=1200)
"""

from .engine import TranscodeEngine, build_request, default_engine, process_image, transcode_many
from .errors import (
    DecodeFailure,
    EncodeFailure,
    ExternalToolFailure,
    MetadataFailure,
    ResizeError,
    TranscodeError,
)
from .types import (
    EncodeRequest,
    ExternalEncoderPreset,
    ImageBytes,
    ResizeMode,
    ResizeSpec,
    ScalePolicy,
    TargetFormat,
    TranscodeResult,
)

__all__ = [
    "DecodeFailure",
    "EncodeFailure",
    "EncodeRequest",
    "ExternalEncoderPreset",
    "ExternalToolFailure",
    "ImageBytes",
    "MetadataFailure",
    "ResizeError",
    "ResizeMode",
    "ResizeSpec",
    "ScalePolicy",
    "TargetFormat",
    "TranscodeEngine",
    "TranscodeError",
    "TranscodeResult",
    "build_request",
    "default_engine",
    "process_image",
    "transcode_many",
]
