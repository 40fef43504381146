"""Candidate generation and smallest-output selection.

For one request every strategy in the target's table is run against the
drawn surface; invalid results are dropped and the smallest remaining
buffer wins, the earliest strategy on a tie.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from image_transcoder.logger import get_logger

from . import formats
from .decoder import DecodedRaster
from .errors import EncodeFailure
from .metrics import metrics
from .surface import RasterSurface, SurfaceFactory
from .types import DATA_URL_ENCODE, ORIGINAL_RECOMPRESS, STREAM_ENCODE, Candidate, TargetFormat

_logger = get_logger("candidates")


@dataclass(frozen=True)
class EncodeContext:
    """Everything a strategy may read; built once per call."""

    surface: RasterSurface
    decoded: DecodedRaster
    mime: str
    quality: float
    dst_w: int
    dst_h: int
    crop_box: tuple[float, float, float, float] | None
    surface_factory: SurfaceFactory


class CandidateStrategy(ABC):
    name = "candidate"

    @abstractmethod
    def produce(self, ctx: EncodeContext) -> bytes:
        """Encoded bytes for ``ctx.mime``, or b"" when nothing was produced."""


class StreamEncodeStrategy(CandidateStrategy):
    name = STREAM_ENCODE

    def produce(self, ctx: EncodeContext) -> bytes:
        return ctx.surface.encode(ctx.mime, ctx.quality)


class DataUrlEncodeStrategy(CandidateStrategy):
    name = DATA_URL_ENCODE

    def produce(self, ctx: EncodeContext) -> bytes:
        return ctx.surface.encode_alt(ctx.mime, ctx.quality)


class OriginalRecompressStrategy(CandidateStrategy):
    """Redraw the decoded source in its own pixel mode and stream-encode it."""

    name = ORIGINAL_RECOMPRESS

    def produce(self, ctx: EncodeContext) -> bytes:
        surface = ctx.surface_factory(alpha=ctx.mime != formats.JPEG, native_mode=True)
        surface.draw(ctx.decoded, ctx.dst_w, ctx.dst_h, ctx.crop_box)
        return surface.encode(ctx.mime, ctx.quality)


def candidate_strategies(target: TargetFormat, source_mime: str) -> list[CandidateStrategy]:
    """Strategies for ``target`` in table order."""
    if target is TargetFormat.WEBP:
        strategies: list[CandidateStrategy] = [StreamEncodeStrategy(), DataUrlEncodeStrategy()]
        if source_mime != formats.WEBP:
            strategies.append(OriginalRecompressStrategy())
        return strategies
    if target is TargetFormat.JPEG:
        strategies = [StreamEncodeStrategy(), DataUrlEncodeStrategy()]
        if source_mime != formats.JPEG:
            strategies.append(OriginalRecompressStrategy())
        return strategies
    if target is TargetFormat.PNG:
        return [StreamEncodeStrategy(), DataUrlEncodeStrategy()]
    if target in (TargetFormat.ORIGINAL, TargetFormat.NONE):
        return [StreamEncodeStrategy()]
    # PNGQUANT and AVIF go through external encoders instead.
    return []


def is_valid_candidate(data: bytes, mime: str) -> bool:
    return bool(data) and formats.matches_mime(data, mime)


def generate_candidates(strategies: Iterable[CandidateStrategy], ctx: EncodeContext) -> list[Candidate]:
    """Run each strategy once; failures and invalid buffers are dropped."""
    produced: list[Candidate] = []
    for strategy in strategies:
        try:
            data = strategy.produce(ctx)
        except Exception as e:
            _logger.debug("candidate %s raised: %s", strategy.name, e)
            data = b""
        if not is_valid_candidate(data, ctx.mime):
            metrics.inc(f"candidates.{strategy.name}.failed")
            _logger.debug("candidate %s produced no valid %s", strategy.name, ctx.mime)
            continue
        metrics.inc(f"candidates.{strategy.name}.ok")
        produced.append(Candidate(strategy=strategy.name, mime=ctx.mime, data=bytes(data)))
    return produced


def select_smallest(candidates: Sequence[Candidate]) -> Candidate:
    """Strictly smallest candidate; ``min`` keeps the first one on ties."""
    if not candidates:
        raise EncodeFailure("no encode strategy produced a valid result")
    best = min(candidates, key=lambda c: c.size)
    _logger.debug(
        "selected %s (%d bytes) from %s",
        best.strategy,
        best.size,
        ", ".join(f"{c.strategy}={c.size}" for c in candidates),
    )
    return best
