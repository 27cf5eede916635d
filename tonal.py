"""Per-pixel tone and colour adjustments.

All functions work on the R,G,B channels of a PixelBuffer in place and leave
alpha alone. Luminance gates use Rec.601 weights (see ``pixels.luminance``).
"""
from __future__ import annotations

import numpy as np

from pixels import PixelBuffer

__all__ = [
    "SHADOW_LUMA",
    "HIGHLIGHT_LUMA",
    "curve_steepness",
    "s_curve",
    "lift_shadows",
    "recover_highlights",
    "apply_tone_curve",
    "adjust_color",
]

SHADOW_LUMA = 80.0
HIGHLIGHT_LUMA = 180.0


def lift_shadows(buf: PixelBuffer, amount: float) -> PixelBuffer:
    rgb = buf.rgb()
    lum = buf.luminance()
    mask = lum < SHADOW_LUMA
    lift = (1.0 - lum / SHADOW_LUMA) * amount
    lifted = np.minimum(255.0, rgb + lift[..., None])
    buf.store_rgb(np.where(mask[..., None], lifted, rgb))
    return buf


def recover_highlights(buf: PixelBuffer, amount: float) -> PixelBuffer:
    """Adds ``((L-180)/75) * amount`` above L=180; negative amounts pull highlights down."""
    rgb = buf.rgb()
    lum = buf.luminance()
    mask = lum > HIGHLIGHT_LUMA
    recovery = ((lum - HIGHLIGHT_LUMA) / 75.0) * amount
    recovered = np.maximum(0.0, rgb + recovery[..., None])
    buf.store_rgb(np.where(mask[..., None], recovered, rgb))
    return buf


def curve_steepness(contrast: float) -> float:
    return (contrast - 1.0) * 10.0 + 4.0


def s_curve(x: np.ndarray, contrast: float) -> np.ndarray:
    """Logistic curve on [0,1]. Even contrast=1.0 gives k=4, not an identity."""
    k = curve_steepness(contrast)
    return 1.0 / (1.0 + np.exp(-k * (x - 0.5)))


def apply_tone_curve(buf: PixelBuffer, contrast: float) -> PixelBuffer:
    buf.store_rgb(s_curve(buf.rgb() / 255.0, contrast) * 255.0)
    return buf


def adjust_color(buf: PixelBuffer, brightness: float = 1.0, saturation: float = 1.0,
                 vibrance: float = 1.0) -> PixelBuffer:
    rgb = buf.rgb() * brightness

    if vibrance > 1.0:
        mx = rgb.max(axis=-1, keepdims=True)
        avg = rgb.mean(axis=-1, keepdims=True)
        # channels already at the max do not move
        amount = (np.abs(mx - avg) * 2.0 / 255.0) * (vibrance - 1.0)
        rgb = rgb + (mx - rgb) * amount

    sat_avg = rgb.mean(axis=-1, keepdims=True)
    rgb = np.clip(sat_avg + (rgb - sat_avg) * saturation, 0.0, 255.0)
    buf.store_rgb(rgb)
    return buf
