"""Plain value types shared across the engine.

Everything here is immutable and free of imaging dependencies so that the
request/response model can be imported without Pillow or pyvips.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ResizeMode(Enum):
    NONE = "None"
    FIT = "Fit"
    FILL = "Fill"
    LONGEST_EDGE = "LongestEdge"
    SHORTEST_EDGE = "ShortestEdge"
    WIDTH = "Width"
    HEIGHT = "Height"

    @classmethod
    def parse(cls, value: "ResizeMode | str | None") -> "ResizeMode":
        if isinstance(value, ResizeMode):
            return value
        if value is None:
            return cls.NONE
        key = str(value).strip().replace("_", "").replace("-", "").lower()
        for member in cls:
            if member.value.lower() == key:
                return member
        raise ValueError(f"unknown resize mode: {value!r}")


class ScalePolicy(Enum):
    AUTO = "Auto"
    REDUCE = "Reduce"
    ENLARGE = "Enlarge"

    @classmethod
    def parse(cls, value: "ScalePolicy | str | None") -> "ScalePolicy":
        if isinstance(value, ScalePolicy):
            return value
        if value is None:
            return cls.AUTO
        key = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == key:
                return member
        raise ValueError(f"unknown scale policy: {value!r}")


class TargetFormat(Enum):
    WEBP = "WEBP"
    JPEG = "JPEG"
    PNG = "PNG"
    ORIGINAL = "ORIGINAL"
    NONE = "NONE"
    PNGQUANT = "PNGQUANT"
    AVIF = "AVIF"

    @classmethod
    def parse(cls, value: "TargetFormat | str | None") -> "TargetFormat":
        if isinstance(value, TargetFormat):
            return value
        if value is None:
            return cls.NONE
        key = str(value).strip().upper()
        if key == "JPG":
            key = "JPEG"
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"unknown target format: {value!r}") from None

    @property
    def is_external(self) -> bool:
        return self in (TargetFormat.PNGQUANT, TargetFormat.AVIF)


@dataclass(frozen=True)
class ResizeSpec:
    """Resize mode plus the numeric parameters it may need.

    Only the fields the active mode reads are looked at; the rest are
    ignored rather than validated.
    """

    mode: ResizeMode = ResizeMode.NONE
    width: float = 0
    height: float = 0
    edge: float = 0

    @property
    def is_none(self) -> bool:
        return self.mode is ResizeMode.NONE


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, float(value)))


@dataclass(frozen=True)
class EncodeRequest:
    target: TargetFormat = TargetFormat.WEBP
    quality: float = 0.75
    color_depth: float = 1.0
    resize: ResizeSpec = field(default_factory=ResizeSpec)
    scale_policy: ScalePolicy = ScalePolicy.AUTO
    # Advisory for the caller only; candidate selection ignores it.
    allow_larger_files: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "quality", _clamp(self.quality, 0.0, 1.0))
        depth = _clamp(self.color_depth, 0.0, 1.0)
        object.__setattr__(self, "color_depth", depth if depth > 0 else 1.0)


@dataclass(frozen=True)
class ImageBytes:
    data: bytes
    declared_mime: str | None = None
    filename: str | None = None
    cached_hint: Mapping[str, Any] | str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.data, bytes):
            object.__setattr__(self, "data", bytes(self.data))

    def __len__(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class ExternalEncoderPreset:
    """Per-call settings for the subprocess encoders.

    ``None`` means "not set"; unset fields fall back to the engine settings.
    """

    pngquant_executable_path: str | None = None
    pngquant_quality: str | None = None
    ffmpeg_executable_path: str | None = None
    ffmpeg_crf: int | None = None
    ffmpeg_preset: str | None = None

    def merged_over(self, base: "ExternalEncoderPreset") -> "ExternalEncoderPreset":
        return ExternalEncoderPreset(
            pngquant_executable_path=_pick(self.pngquant_executable_path, base.pngquant_executable_path),
            pngquant_quality=_pick(self.pngquant_quality, base.pngquant_quality),
            ffmpeg_executable_path=_pick(self.ffmpeg_executable_path, base.ffmpeg_executable_path),
            ffmpeg_crf=_pick(self.ffmpeg_crf, base.ffmpeg_crf),
            ffmpeg_preset=_pick(self.ffmpeg_preset, base.ffmpeg_preset),
        )


def _pick(value: Any, fallback: Any) -> Any:
    if value is None or (isinstance(value, str) and not value.strip()):
        return fallback
    return value


@dataclass(frozen=True)
class Candidate:
    strategy: str
    mime: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


STREAM_ENCODE = "stream-encode"
DATA_URL_ENCODE = "data-url-encode"
ORIGINAL_RECOMPRESS = "original-recompress"
EXTERNAL_PROCESS = "external-process"


@dataclass(frozen=True)
class TranscodeResult:
    """Outcome of one transcode call.

    ``state`` is ``"transcoded"`` or ``"original"``; ``error`` names the
    recovered failure kind when the original bytes were returned because a
    stage failed.
    """

    data: bytes
    state: str
    source_mime: str = "unknown"
    strategy: str | None = None
    error: str | None = None
    size: tuple[int, int] | None = None
    metadata_carried: bool = False

    @property
    def transcoded(self) -> bool:
        return self.state == "transcoded"
