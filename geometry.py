# geometry.py: coordinate-remapping filters (lens distortion, chromatic aberration)
# -----------------------------------------------------------------------------
# Both filters read from a snapshot of the buffer and write every output pixel
# once, so the result never depends on scan order.
#
#   lens distortion       barrel correction sampled bilinearly; samples that
#                         land outside the source stay transparent black
#   chromatic aberration  red pulled toward the centre, blue pushed away,
#                         nearest-pixel with clamped coordinates
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
import math
from typing import Tuple

import numpy as np

from pixels import PixelBuffer, to_uint8

log = logging.getLogger("refiner.geometry")

__all__ = ["correct_lens_distortion", "apply_chromatic_aberration"]


def _centered_grid(w: int, h: int) -> Tuple[np.ndarray, np.ndarray, float, float]:
    cx, cy = w / 2.0, h / 2.0
    yy, xx = np.mgrid[0:h, 0:w].astype(np.float64)
    return xx - cx, yy - cy, cx, cy


def _bilinear_sample(arr: np.ndarray, map_x: np.ndarray, map_y: np.ndarray) -> np.ndarray:
    """Bilinear resampling of an HxWxC array at float coordinates (x,y in pixel space)."""
    H, W, _ = arr.shape
    x0 = np.floor(map_x).astype(np.int64)
    y0 = np.floor(map_y).astype(np.int64)
    x1 = np.clip(x0 + 1, 0, W - 1)
    y1 = np.clip(y0 + 1, 0, H - 1)
    x0 = np.clip(x0, 0, W - 1)
    y0 = np.clip(y0, 0, H - 1)

    fx = (map_x - x0)[..., None]
    fy = (map_y - y0)[..., None]

    top = arr[y0, x0] * (1 - fx) + arr[y0, x1] * fx
    bottom = arr[y1, x0] * (1 - fx) + arr[y1, x1] * fx
    return top * (1 - fy) + bottom * fy


def correct_lens_distortion(buf: PixelBuffer, amount: float) -> PixelBuffer:
    """Radial correction ``f = 1 - amount*r^2`` around the image centre.

    Output pixels whose source falls outside the sampleable area keep the
    zero-initialised value (0,0,0,0) instead of a copy of the input.
    """
    W, H = buf.size
    dx, dy, cx, cy = _centered_grid(W, H)
    max_radius = math.hypot(cx, cy)

    r = np.sqrt(dx * dx + dy * dy) / max_radius
    f = 1.0 - amount * (r * r)
    src_x = cx + dx * f
    src_y = cy + dy * f

    # both bilinear neighbours must exist
    inside = (src_x >= 0) & (src_x < W - 1) & (src_y >= 0) & (src_y < H - 1)

    out = np.zeros_like(buf.channels)
    if inside.any():
        src = buf.channels.astype(np.float64)
        out[inside] = to_uint8(_bilinear_sample(src, src_x[inside], src_y[inside]))
    dropped = int(inside.size - inside.sum())
    if dropped:
        log.debug("Lens distortion left %d pixel(s) unsampled", dropped)
    buf.channels[...] = out
    return buf


def apply_chromatic_aberration(buf: PixelBuffer, amount: float) -> PixelBuffer:
    W, H = buf.size
    dx, dy, cx, cy = _centered_grid(W, H)
    max_dist = max(cx, cy)

    shift = (np.sqrt(dx * dx + dy * dy) / max_dist) * amount * 0.01
    xx = dx + cx
    yy = dy + cy

    r_x = np.clip(np.floor(xx - dx * shift), 0, W - 1).astype(np.int64)
    r_y = np.clip(np.floor(yy - dy * shift), 0, H - 1).astype(np.int64)
    b_x = np.clip(np.floor(xx + dx * shift), 0, W - 1).astype(np.int64)
    b_y = np.clip(np.floor(yy + dy * shift), 0, H - 1).astype(np.int64)

    src = buf.channels.copy()
    buf.channels[..., 0] = src[r_y, r_x, 0]
    buf.channels[..., 2] = src[b_y, b_x, 2]
    return buf
