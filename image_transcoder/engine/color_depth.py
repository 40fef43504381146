"""Per-channel color-depth reduction for PNG output."""

from __future__ import annotations

import numpy as np

_RGBA_CHANNELS = 4


def quantization_step(depth: float) -> float:
    """Spacing between representable channel values for ``depth`` in (0, 1].

    ``256 ** depth`` levels per channel (not necessarily an integer), so the
    step is ``256 / levels``.
    """
    levels = 256.0 ** float(depth)
    return 256.0 / levels


def reduce_color_depth(pixels: np.ndarray, depth: float) -> np.ndarray:
    """Snap R, G and B to the nearest multiple of the quantization step.

    ``pixels`` is an (H, W, 4) uint8 RGBA array; alpha is left untouched and
    results are clamped to 0-255. Depth of 1.0 or more returns a copy.
    """
    arr = np.asarray(pixels)
    if arr.ndim != 3 or arr.shape[2] != _RGBA_CHANNELS:
        raise ValueError(f"expected (H, W, 4) RGBA pixels, got shape {arr.shape}")
    out = np.array(arr, dtype=np.uint8, copy=True)
    if depth >= 1.0:
        return out
    if depth <= 0:
        raise ValueError(f"color depth must be in (0, 1], got {depth}")

    step = quantization_step(depth)
    rgb = out[..., :3].astype(np.float64)
    # np.round is half-to-even; floor(x + 0.5) rounds halves up.
    snapped = np.floor(rgb / step + 0.5) * step
    out[..., :3] = np.clip(np.rint(snapped), 0, 255).astype(np.uint8)
    return out
