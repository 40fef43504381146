"""Lightweight in-process metrics for the transcoding pipeline.

Counters and timings recorded by the engine so callers and tests can see
how often conversions fall back, which candidate strategies win and how
long calls take. No external deps.

Usage:
    from image_transcoder.engine.metrics import metrics
    metrics.inc("transcode.fallbacks")
    with metrics.timed("transcode.duration"):
        ...
    metrics.summary("transcode.duration")  # {"count": 1, "total": ..., ...}
"""

from __future__ import annotations

import time
from collections import Counter, defaultdict
from collections.abc import Iterator
from contextlib import contextmanager
from threading import RLock
from typing import Any


class _Metrics:
    def __init__(self) -> None:
        self._counters: Counter[str] = Counter()
        self._timings: defaultdict[str, list[float]] = defaultdict(list)
        self._lock = RLock()

    def inc(self, key: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[key] += int(amount)

    def count(self, key: str) -> int:
        with self._lock:
            return self._counters[key]

    def observe(self, key: str, seconds: float) -> None:
        with self._lock:
            self._timings[key].append(float(seconds))

    @contextmanager
    def timed(self, key: str) -> Iterator[None]:
        """Record the wall time of the block, including when it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.observe(key, time.perf_counter() - start)

    def summary(self, key: str) -> dict[str, float]:
        with self._lock:
            samples = list(self._timings.get(key, ()))
        if not samples:
            return {"count": 0, "total": 0.0, "mean": 0.0, "max": 0.0}
        total = sum(samples)
        return {"count": len(samples), "total": total, "mean": total / len(samples), "max": max(samples)}

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": {k: v for k, v in self._counters.items() if v},
                "timings": {k: list(v) for k, v in self._timings.items()},
            }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._timings.clear()


metrics = _Metrics()
