# detail.py: frequency separation and convolution sharpening
# -----------------------------------------------------------------------------
# Low-frequency layer: three cascaded box blurs (horizontal then vertical pass
# each) whose widths approximate a Gaussian of the requested sigma. Every pass
# rounds back to 8 bits, so swapping in a true Gaussian kernel changes output.
#
# High-frequency layer: source - blurred, boosted by micro-contrast (all
# pixels) or clarity (midtones only).
# -----------------------------------------------------------------------------

from __future__ import annotations

import math
from typing import List

import numpy as np

from pixels import PixelBuffer, luminance

__all__ = [
    "MICRO_CONTRAST_SIGMA",
    "CLARITY_SIGMA",
    "SHARPEN_KERNEL",
    "gaussian_box_sizes",
    "box_blur",
    "fast_gaussian",
    "apply_micro_contrast",
    "apply_clarity",
    "sharpen",
]

MICRO_CONTRAST_SIGMA = 2
CLARITY_SIGMA = 5
CLARITY_LUMA_RANGE = (50.0, 200.0)

SHARPEN_KERNEL = np.array([[0, -1, 0], [-1, 5, -1], [0, -1, 0]], np.float64)


def gaussian_box_sizes(sigma: float, n: int = 3) -> List[int]:
    """Odd box widths whose n-fold cascade approximates a Gaussian of ``sigma``."""
    w_ideal = math.sqrt((12.0 * sigma * sigma / n) + 1.0)
    wl = int(math.floor(w_ideal))
    if wl % 2 == 0:
        wl -= 1
    wu = wl + 2
    m_ideal = (12.0 * sigma * sigma - n * wl * wl - 4 * n * wl - 3 * n) / (-4.0 * wl - 4.0)
    m = int(math.floor(m_ideal + 0.5))
    return [wl if i < m else wu for i in range(n)]


def _box_pass(arr: np.ndarray, r: int, axis: int) -> np.ndarray:
    """Sliding mean of width 2r+1 along ``axis`` with edge values replicated, rounded half up."""
    if r <= 0:
        return arr.copy()
    k = 2 * r + 1
    pad = [(0, 0)] * arr.ndim
    pad[axis] = (r, r)
    fp = np.pad(arr.astype(np.float64), pad, mode="edge")
    lead = [(0, 0)] * arr.ndim
    lead[axis] = (1, 0)
    c = np.pad(fp, lead, mode="constant").cumsum(axis=axis)
    n = arr.shape[axis]
    window = np.take(c, np.arange(k, k + n), axis=axis) - np.take(c, np.arange(0, n), axis=axis)
    return np.floor(window / k + 0.5)


def box_blur(rgb: np.ndarray, r: int) -> np.ndarray:
    """One box blur: horizontal pass, then vertical pass, on an HxWxC array."""
    return _box_pass(_box_pass(rgb, r, axis=1), r, axis=0)


def fast_gaussian(rgb: np.ndarray, sigma: float) -> np.ndarray:
    out = np.asarray(rgb, dtype=np.float64)
    for size in gaussian_box_sizes(sigma, 3):
        out = box_blur(out, (size - 1) // 2)
    return out


def apply_micro_contrast(buf: PixelBuffer, amount: float) -> PixelBuffer:
    rgb = buf.rgb()
    detail = rgb - fast_gaussian(rgb, MICRO_CONTRAST_SIGMA)
    buf.store_rgb(rgb + detail * (amount - 1.0))
    return buf


def apply_clarity(buf: PixelBuffer, amount: float) -> PixelBuffer:
    """Adds the luminance detail layer, scaled by ``amount``, to midtone pixels."""
    rgb = buf.rgb()
    lum = luminance(rgb)
    blur_lum = luminance(fast_gaussian(rgb, CLARITY_SIGMA))
    lo, hi = CLARITY_LUMA_RANGE
    mask = (lum > lo) & (lum < hi)
    boosted = rgb + ((lum - blur_lum) * amount)[..., None]
    buf.store_rgb(np.where(mask[..., None], boosted, rgb))
    return buf


def _convolve3x3(rgb: np.ndarray, kernel: np.ndarray) -> np.ndarray:
    # Replicated edges: a missing tap reads the centre value, which is the
    # same as dropping the tap together with its share of the centre weight.
    padded = np.pad(rgb, ((1, 1), (1, 1), (0, 0)), mode="edge")
    H, W = rgb.shape[:2]
    out = np.zeros_like(rgb, dtype=np.float64)
    for ky in range(3):
        for kx in range(3):
            weight = kernel[ky, kx]
            if weight:
                out += weight * padded[ky:ky + H, kx:kx + W]
    return out


def sharpen(buf: PixelBuffer, amount: float) -> PixelBuffer:
    """Blend a 3x3 sharpen convolution by ``amount - 1``; amount 1.0 is an exact identity."""
    if amount == 1.0:
        return buf
    rgb = buf.rgb()
    conv = _convolve3x3(rgb, SHARPEN_KERNEL)
    buf.store_rgb(rgb + (conv - rgb) * (amount - 1.0))
    return buf
