"""Resize geometry: output size per resize mode and scale policy.

Pure functions, no imaging dependencies.
"""

from __future__ import annotations

import math

from .errors import ResizeError
from .types import ResizeMode, ResizeSpec, ScalePolicy


def _round_px(value: float) -> int:
    # Half rounds up, like Math.round; never below one pixel.
    return max(1, int(math.floor(value + 0.5)))


def _require(value: float, name: str, mode: ResizeMode) -> float:
    v = float(value or 0)
    if not math.isfinite(v) or v <= 0:
        raise ResizeError(f"{mode.value} resize needs a positive {name}, got {value!r}")
    return v


def target_size(src_w: int, src_h: int, spec: ResizeSpec) -> tuple[float, float]:
    """Unrounded, unclamped target size for ``spec``."""
    if src_w <= 0 or src_h <= 0:
        raise ResizeError(f"invalid source size {src_w}x{src_h}")

    mode = spec.mode
    aspect = src_w / src_h

    if mode is ResizeMode.NONE:
        return float(src_w), float(src_h)

    if mode in (ResizeMode.FIT, ResizeMode.FILL):
        tw = _require(spec.width, "width", mode)
        th = _require(spec.height, "height", mode)
        width_limits = aspect > tw / th
        if mode is ResizeMode.FILL:
            # Cover the box: the other dimension is the limiting one.
            width_limits = not width_limits
        if width_limits:
            return tw, tw / aspect
        return th * aspect, th

    if mode in (ResizeMode.LONGEST_EDGE, ResizeMode.SHORTEST_EDGE):
        edge = _require(spec.edge, "edge", mode)
        if mode is ResizeMode.LONGEST_EDGE:
            pin_width = src_w > src_h
        else:
            pin_width = src_w < src_h
        if pin_width:
            return edge, edge / aspect
        return edge * aspect, edge

    if mode is ResizeMode.WIDTH:
        tw = _require(spec.width, "width", mode)
        return tw, tw / aspect

    if mode is ResizeMode.HEIGHT:
        th = _require(spec.height, "height", mode)
        return th * aspect, th

    raise ResizeError(f"unsupported resize mode: {mode!r}")


def apply_scale_policy(w: int, h: int, src_w: int, src_h: int, policy: ScalePolicy) -> tuple[int, int]:
    """Clamp each axis independently.

    Per-axis clamping can change the aspect ratio when only one side
    crosses the source size; that is the established behaviour.
    """
    if policy is ScalePolicy.REDUCE:
        return min(w, src_w), min(h, src_h)
    if policy is ScalePolicy.ENLARGE:
        return max(w, src_w), max(h, src_h)
    return w, h


def compute_size(src_w: int, src_h: int, spec: ResizeSpec, policy: ScalePolicy = ScalePolicy.AUTO) -> tuple[int, int]:
    """Output (width, height) for resizing a ``src_w`` x ``src_h`` image."""
    if spec.is_none:
        if src_w <= 0 or src_h <= 0:
            raise ResizeError(f"invalid source size {src_w}x{src_h}")
        return int(src_w), int(src_h)
    tw, th = target_size(src_w, src_h, spec)
    return apply_scale_policy(_round_px(tw), _round_px(th), src_w, src_h, policy)


def fill_crop_box(src_w: int, src_h: int, dst_w: int, dst_h: int) -> tuple[float, float, float, float]:
    """Centred source rectangle whose aspect matches the destination box.

    Returns (left, top, right, bottom) in source pixels, suitable for
    ``PIL.Image.resize(box=...)``.
    """
    if src_w <= 0 or src_h <= 0 or dst_w <= 0 or dst_h <= 0:
        raise ResizeError(f"invalid crop geometry {src_w}x{src_h} -> {dst_w}x{dst_h}")
    scale = max(dst_w / src_w, dst_h / src_h)
    crop_w = min(src_w, dst_w / scale)
    crop_h = min(src_h, dst_h / scale)
    left = (src_w - crop_w) / 2
    top = (src_h - crop_h) / 2
    return left, top, left + crop_w, top + crop_h


def canvas_size(src_w: int, src_h: int, spec: ResizeSpec, policy: ScalePolicy = ScalePolicy.AUTO) -> tuple[int, int]:
    """Size of the drawn output.

    Same as ``compute_size`` except for Fill, whose covering size is cut
    down to the target box before the scale policy applies; the draw then
    centre-crops the source to match.
    """
    if spec.mode is not ResizeMode.FILL:
        return compute_size(src_w, src_h, spec, policy)
    tw, th = target_size(src_w, src_h, spec)
    w = min(_round_px(tw), _round_px(spec.width))
    h = min(_round_px(th), _round_px(spec.height))
    return apply_scale_policy(w, h, src_w, src_h, policy)
