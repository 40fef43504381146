"""Image transcoding: format conversion, resizing and recompression of raster images."""

from .engine import (
    EncodeRequest,
    ExternalEncoderPreset,
    ImageBytes,
    TargetFormat,
    TranscodeEngine,
    TranscodeResult,
    process_image,
    transcode_many,
)

__version__ = "0.1.0"

__all__ = [
    "EncodeRequest",
    "ExternalEncoderPreset",
    "ImageBytes",
    "TargetFormat",
    "TranscodeEngine",
    "TranscodeResult",
    "process_image",
    "transcode_many",
]
