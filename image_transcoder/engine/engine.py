"""Transcode orchestrator.

``TranscodeEngine.transcode`` runs one image through
sniff -> decode -> resize/draw -> candidates -> select -> metadata and
reports how it ended. ``process_image`` wraps it as a total function that
always hands back bytes.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any

from image_transcoder.logger import get_logger
from image_transcoder.settings_manager import SettingsManager

from . import formats
from .candidates import EncodeContext, candidate_strategies, generate_candidates, select_smallest
from .color_depth import reduce_color_depth
from .decoder import DecodedRaster, ExoticDecoder, decode_image
from .errors import EncodeFailure, ExternalToolFailure, MetadataFailure, TranscodeError
from .external import FfmpegAvifEncoder, PngquantEncoder, ProcessEncoder, Runner
from .geometry import canvas_size, fill_crop_box
from .metadata import extract_metadata, inject_metadata, update_dimensions
from .metrics import metrics
from .surface import SurfaceFactory, pillow_surface_factory
from .types import (
    EXTERNAL_PROCESS,
    EncodeRequest,
    ExternalEncoderPreset,
    ImageBytes,
    ResizeMode,
    ResizeSpec,
    ScalePolicy,
    TargetFormat,
    TranscodeResult,
)

_logger = get_logger("engine")

ORIGINAL = "original"
TRANSCODED = "transcoded"


class TranscodeEngine:
    """Stateless image transcoder.

    Instances only hold configuration (settings, the surface factory, the
    exotic decoders and the subprocess runner), so one engine can serve any
    number of concurrent ``transcode`` calls.
    """

    def __init__(
        self,
        settings: SettingsManager | None = None,
        surface_factory: SurfaceFactory = pillow_surface_factory,
        decoders: Sequence[ExoticDecoder] | None = None,
        runner: Runner | None = None,
    ) -> None:
        self.settings = settings if settings is not None else SettingsManager()
        self.surface_factory = surface_factory
        self.decoders = tuple(decoders) if decoders is not None else None
        self.runner = runner

    # -- public -------------------------------------------------------------

    def transcode(
        self,
        image: ImageBytes,
        request: EncodeRequest,
        preset: ExternalEncoderPreset | None = None,
    ) -> TranscodeResult:
        metrics.inc("transcode.calls")
        source_mime = formats.detect_mime(image.data, image.declared_mime, image.filename, image.cached_hint)
        with metrics.timed("transcode.duration"):
            try:
                return self._run(image, request, preset, source_mime)
            except TranscodeError as e:
                return self._fallback(image, source_mime, e.kind, e)
            except Exception as e:
                _logger.exception("unexpected transcode failure")
                return self._fallback(image, source_mime, "unexpected", e)

    # -- pipeline -----------------------------------------------------------

    def _run(
        self,
        image: ImageBytes,
        request: EncodeRequest,
        preset: ExternalEncoderPreset | None,
        source_mime: str,
    ) -> TranscodeResult:
        data = image.data
        target = request.target
        if not data:
            return self._original(image, source_mime, "empty input")
        if source_mime == formats.UNKNOWN:
            return self._original(image, source_mime, "unknown format")
        if target is TargetFormat.NONE and request.resize.is_none:
            return self._original(image, source_mime, "no conversion requested")

        out_mime = formats.mime_for_target(target, source_mime)
        if out_mime is None or out_mime not in formats.PIL_FORMATS:
            return self._original(image, source_mime, f"no encoder for {out_mime or source_mime}")
        if self._is_noop(request, source_mime, out_mime):
            return self._original(image, source_mime, "already in requested form")

        decoded = decode_image(data, source_mime, self.decoders)
        dst_w, dst_h = canvas_size(decoded.width, decoded.height, request.resize, request.scale_policy)
        crop_box = None
        if request.resize.mode is ResizeMode.FILL:
            crop_box = fill_crop_box(decoded.width, decoded.height, dst_w, dst_h)
        _logger.debug(
            "%s %dx%d -> %s %dx%d (q=%.2f)",
            source_mime,
            decoded.width,
            decoded.height,
            out_mime,
            dst_w,
            dst_h,
            request.quality,
        )

        if target.is_external:
            out = self._encode_external(image, request, preset, decoded, source_mime, dst_w, dst_h, crop_box)
            return TranscodeResult(
                data=out,
                state=TRANSCODED,
                source_mime=source_mime,
                strategy=EXTERNAL_PROCESS,
                size=(dst_w, dst_h),
            )

        surface = self.surface_factory(alpha=out_mime != formats.JPEG)
        surface.draw(decoded, dst_w, dst_h, crop_box)
        if out_mime == formats.PNG and request.color_depth < 1.0:
            surface.write_pixels(reduce_color_depth(surface.read_pixels(), request.color_depth))

        ctx = EncodeContext(
            surface=surface,
            decoded=decoded,
            mime=out_mime,
            quality=request.quality,
            dst_w=dst_w,
            dst_h=dst_h,
            crop_box=crop_box,
            surface_factory=self.surface_factory,
        )
        best = select_smallest(generate_candidates(candidate_strategies(target, source_mime), ctx))

        out = best.data
        carried = False
        if out_mime == formats.JPEG and source_mime == formats.JPEG:
            out, carried = self._carry_metadata(data, out, dst_w, dst_h)

        _logger.debug("transcoded %d -> %d bytes via %s", len(data), len(out), best.strategy)
        return TranscodeResult(
            data=out,
            state=TRANSCODED,
            source_mime=source_mime,
            strategy=best.strategy,
            size=(dst_w, dst_h),
            metadata_carried=carried,
        )

    @staticmethod
    def _is_noop(request: EncodeRequest, source_mime: str, out_mime: str) -> bool:
        if request.target.is_external or out_mime != source_mime:
            return False
        if request.quality < 1.0 or not request.resize.is_none:
            return False
        return out_mime != formats.PNG or request.color_depth >= 1.0

    def _carry_metadata(self, source: bytes, encoded: bytes, width: int, height: int) -> tuple[bytes, bool]:
        try:
            block = extract_metadata(source)
            if block is None:
                return encoded, False
            return inject_metadata(encoded, update_dimensions(block, width, height)), True
        except MetadataFailure as e:
            metrics.inc("metadata.failures")
            _logger.warning("metadata not carried: %s", e)
            return encoded, False

    # -- external encoders ----------------------------------------------------

    def _resolve_preset(self, preset: ExternalEncoderPreset | None) -> ExternalEncoderPreset:
        base = self.settings.default_preset()
        return preset.merged_over(base) if preset is not None else base

    def _external_encoder(self, target: TargetFormat, preset: ExternalEncoderPreset) -> ProcessEncoder:
        timeout = self.settings.external_timeout
        if target is TargetFormat.PNGQUANT:
            return PngquantEncoder(
                preset.pngquant_executable_path or "",
                preset.pngquant_quality or "65-80",
                timeout=timeout,
                runner=self.runner,
            )
        return FfmpegAvifEncoder(
            preset.ffmpeg_executable_path or "",
            preset.ffmpeg_crf if preset.ffmpeg_crf is not None else 23,
            preset.ffmpeg_preset or "medium",
            timeout=timeout,
            runner=self.runner,
        )

    def _encode_external(
        self,
        image: ImageBytes,
        request: EncodeRequest,
        preset: ExternalEncoderPreset | None,
        decoded: DecodedRaster,
        source_mime: str,
        dst_w: int,
        dst_h: int,
        crop_box: tuple[float, float, float, float] | None,
    ) -> bytes:
        encoder = self._external_encoder(request.target, self._resolve_preset(preset))
        if not encoder.configured:
            # Skipped without spawning anything.
            raise ExternalToolFailure(f"{encoder.tool} executable path is not configured")

        reduce_depth = request.color_depth < 1.0
        if source_mime == formats.PNG and request.resize.is_none and not reduce_depth:
            png = image.data
        else:
            surface = self.surface_factory(alpha=True)
            surface.draw(decoded, dst_w, dst_h, crop_box)
            if reduce_depth:
                surface.write_pixels(reduce_color_depth(surface.read_pixels(), request.color_depth))
            png = surface.encode(formats.PNG, 1.0)
            if not png:
                raise EncodeFailure(f"could not prepare PNG input for {encoder.tool}")

        out_mime = formats.mime_for_target(request.target, source_mime) or formats.PNG
        try:
            out = encoder.encode(png, has_alpha=decoded.has_alpha)
            if not formats.matches_mime(out, out_mime):
                raise ExternalToolFailure(f"{encoder.tool} output is not {out_mime}")
        except ExternalToolFailure:
            metrics.inc(f"external.{encoder.tool}.failures")
            raise
        metrics.inc("candidates.external-process.ok")
        return out

    # -- outcomes -------------------------------------------------------------

    def _original(self, image: ImageBytes, source_mime: str, reason: str) -> TranscodeResult:
        _logger.debug("returning original (%s)", reason)
        return TranscodeResult(data=image.data, state=ORIGINAL, source_mime=source_mime)

    def _fallback(self, image: ImageBytes, source_mime: str, kind: str, error: Exception) -> TranscodeResult:
        metrics.inc("transcode.fallbacks")
        metrics.inc(f"transcode.fallback.{kind}")
        _logger.info("falling back to original %s (%s): %s", source_mime, kind, error)
        return TranscodeResult(data=image.data, state=ORIGINAL, source_mime=source_mime, error=kind)


# --- module-level entry points ---------------------------------------------

_default_engine: TranscodeEngine | None = None
_default_engine_lock = threading.Lock()


def default_engine() -> TranscodeEngine:
    global _default_engine
    with _default_engine_lock:
        if _default_engine is None:
            _default_engine = TranscodeEngine()
        return _default_engine


def build_request(
    target_format: TargetFormat | str | None = "WEBP",
    quality: float = 0.75,
    color_depth: float = 1.0,
    resize_mode: ResizeMode | str | None = "None",
    width: float = 0,
    height: float = 0,
    edge: float = 0,
    scale_policy: ScalePolicy | str | None = "Auto",
    allow_larger_files: bool = True,
) -> EncodeRequest:
    """EncodeRequest from loosely typed arguments; raises ValueError on bad tags."""
    return EncodeRequest(
        target=TargetFormat.parse(target_format),
        quality=float(quality),
        color_depth=float(color_depth),
        resize=ResizeSpec(
            mode=ResizeMode.parse(resize_mode),
            width=float(width or 0),
            height=float(height or 0),
            edge=float(edge or 0),
        ),
        scale_policy=ScalePolicy.parse(scale_policy),
        allow_larger_files=bool(allow_larger_files),
    )


def process_image(
    data: bytes,
    declared_mime: str | None = None,
    target_format: TargetFormat | str | None = "WEBP",
    quality: float = 0.75,
    color_depth: float = 1.0,
    resize_mode: ResizeMode | str | None = "None",
    width: float = 0,
    height: float = 0,
    edge: float = 0,
    scale_policy: ScalePolicy | str | None = "Auto",
    allow_larger_files: bool = True,
    preset: ExternalEncoderPreset | None = None,
    *,
    filename: str | None = None,
    cached_hint: Mapping[str, Any] | str | None = None,
    engine: TranscodeEngine | None = None,
) -> bytes:
    """Transcode ``data`` and return the result, or ``data`` itself on failure.

    Never raises. ``allow_larger_files`` is passed through for the caller's
    own revert decision; the engine always returns its smallest candidate.
    """
    try:
        original = bytes(data or b"")
    except (TypeError, ValueError):
        _logger.warning("process_image called with non-bytes input: %r", type(data))
        return b""
    try:
        request = build_request(
            target_format,
            quality,
            color_depth,
            resize_mode,
            width,
            height,
            edge,
            scale_policy,
            allow_larger_files,
        )
        image = ImageBytes(original, declared_mime=declared_mime, filename=filename, cached_hint=cached_hint)
        return (engine or default_engine()).transcode(image, request, preset).data
    except Exception as e:
        _logger.warning("process_image returning input unchanged: %s", e)
        return original


def transcode_many(
    jobs: Iterable[tuple[ImageBytes, EncodeRequest]],
    max_workers: int | None = None,
    engine: TranscodeEngine | None = None,
    preset: ExternalEncoderPreset | None = None,
) -> list[TranscodeResult]:
    """Transcode several images on a thread pool; results keep submission order."""
    job_list = list(jobs)
    if not job_list:
        return []
    eng = engine or default_engine()
    results: list[TranscodeResult | None] = [None] * len(job_list)
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_index = {
            executor.submit(eng.transcode, image, request, preset): idx
            for idx, (image, request) in enumerate(job_list)
        }
        for future in as_completed(future_to_index):
            idx = future_to_index[future]
            results[idx] = future.result()
    return [r for r in results if r is not None]
