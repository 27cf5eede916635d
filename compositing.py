# compositing.py: overlays applied after the pixel filters
# -----------------------------------------------------------------------------
# Blend modes are plain functions over normalised [0,1] colours:
#
#   B(cb, cs)   cb = backdrop (image), cs = source (fill colour)
#
# and are composited source-over with the fill's alpha:
#
#   cs'  = (1 - ab) * cs + ab * B(cb, cs)
#   co   = as * cs' + (1 - as) * ab * cb        (premultiplied)
#   ao   = as + ab * (1 - as)
#
# Each fill is quantised back to 8 bits before the next one, matching how a
# 2D canvas stores its pixels between draw calls.
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Dict, Optional, Sequence, Tuple, Union

import numpy as np

from pixels import PixelBuffer, luminance, to_uint8
from presets import ColorGrade, Tint

log = logging.getLogger("refiner.compositing")

__all__ = [
    "BlendMode",
    "BLEND_FUNCS",
    "GRADE_LAYERS",
    "composite_fill",
    "apply_color_tints",
    "apply_color_grade",
    "apply_film_grain",
    "vignette_alpha",
    "apply_vignette",
]

GRAIN_AMPLITUDE = 5.0
VIGNETTE_INNER = 0.5
VIGNETTE_OUTER = 0.8
VIGNETTE_STRENGTH = 0.15


class BlendMode(Enum):
    NORMAL = "normal"
    MULTIPLY = "multiply"
    SCREEN = "screen"
    OVERLAY = "overlay"
    HARD_LIGHT = "hard-light"


def _normal(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return np.broadcast_to(cs, np.broadcast(cb, cs).shape)


def _multiply(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return cb * cs


def _screen(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return cb + cs - cb * cs


def _hard_light(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    return np.where(cs <= 0.5, _multiply(cb, 2.0 * cs), _screen(cb, 2.0 * cs - 1.0))


def _overlay(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    # overlay is hard-light with the layers swapped
    return _hard_light(cs, cb)


BLEND_FUNCS: Dict[BlendMode, Callable[[np.ndarray, np.ndarray], np.ndarray]] = {
    BlendMode.NORMAL: _normal,
    BlendMode.MULTIPLY: _multiply,
    BlendMode.SCREEN: _screen,
    BlendMode.OVERLAY: _overlay,
    BlendMode.HARD_LIGHT: _hard_light,
}

RGB = Tuple[int, int, int]

# (mode, fill colour, alpha) layers per grade, applied in order
GRADE_LAYERS: Dict[ColorGrade, Tuple[Tuple[BlendMode, RGB, float], ...]] = {
    ColorGrade.NONE: (),
    ColorGrade.TEAL_ORANGE: (
        (BlendMode.OVERLAY, (0, 100, 120), 0.15),
        (BlendMode.HARD_LIGHT, (255, 150, 0), 0.10),
    ),
    ColorGrade.NATURAL: (
        (BlendMode.OVERLAY, (255, 250, 245), 0.05),
    ),
    ColorGrade.VIBRANT: (),
}


def composite_fill(
    buf: PixelBuffer,
    color: Sequence[float],
    alpha: Union[float, np.ndarray],
    mode: BlendMode = BlendMode.NORMAL,
) -> PixelBuffer:
    """Composite a solid colour over the buffer. ``alpha`` may be a scalar or an HxW map."""
    blend = BLEND_FUNCS[mode]
    cb = buf.channels[..., :3].astype(np.float64) / 255.0
    ab = buf.channels[..., 3:4].astype(np.float64) / 255.0
    cs = np.asarray(color, dtype=np.float64).reshape(1, 1, 3) / 255.0
    a_s = np.asarray(alpha, dtype=np.float64)
    if a_s.ndim == 2:
        a_s = a_s[..., None]

    mixed = (1.0 - ab) * cs + ab * blend(cb, cs)
    co = a_s * mixed + (1.0 - a_s) * ab * cb
    ao = a_s + ab * (1.0 - a_s)
    with np.errstate(divide="ignore", invalid="ignore"):
        out = np.where(ao > 0, co / np.where(ao > 0, ao, 1.0), 0.0)

    buf.channels[..., :3] = to_uint8(out * 255.0)
    buf.channels[..., 3] = to_uint8(np.broadcast_to(ao, ab.shape)[..., 0] * 255.0)
    return buf


def apply_color_tints(buf: PixelBuffer, shadow_tint: Optional[Tint], highlight_tint: Optional[Tint]) -> PixelBuffer:
    """Mix dark pixels toward ``shadow_tint`` (max 10%) and bright ones toward ``highlight_tint`` (max 5%)."""
    rgb = buf.rgb()
    lum = luminance(rgb)
    strength = np.zeros_like(lum)
    target = np.zeros_like(rgb)

    if shadow_tint is not None:
        mask = lum < 80.0
        strength = np.where(mask, (80.0 - lum) / 80.0 * 0.1, strength)
        target[mask] = shadow_tint.as_tuple()
    if highlight_tint is not None:
        mask = lum > 200.0
        strength = np.where(mask, (lum - 200.0) / 55.0 * 0.05, strength)
        target[mask] = highlight_tint.as_tuple()

    s = strength[..., None]
    buf.store_rgb(rgb * (1.0 - s) + target * s)
    return buf


def apply_color_grade(buf: PixelBuffer, grade: ColorGrade) -> PixelBuffer:
    layers = GRADE_LAYERS[grade]
    log.debug("Colour grade %s: %d layer(s)", grade.value, len(layers))
    for mode, color, alpha in layers:
        composite_fill(buf, color, alpha, mode)
    return buf


def apply_film_grain(buf: PixelBuffer, rng: np.random.Generator,
                     amplitude: float = GRAIN_AMPLITUDE) -> PixelBuffer:
    """Uniform noise in [-amplitude, +amplitude), one draw per pixel shared by R, G and B."""
    noise = (rng.random((buf.height, buf.width, 1)) - 0.5) * (2.0 * amplitude)
    buf.store_rgb(buf.rgb() + noise)
    return buf


def vignette_alpha(width: int, height: int) -> np.ndarray:
    """Darkening alpha per pixel: 0 inside 50% of the short side, ramping to 0.15 at 80%."""
    cx, cy = width / 2.0, height / 2.0
    short = min(width, height)
    r0, r1 = short * VIGNETTE_INNER, short * VIGNETTE_OUTER
    # sampled at pixel centres
    yy, xx = np.mgrid[0:height, 0:width].astype(np.float64) + 0.5
    dist = np.sqrt((xx - cx) ** 2 + (yy - cy) ** 2)
    t = np.clip((dist - r0) / (r1 - r0), 0.0, 1.0)
    return t * VIGNETTE_STRENGTH


def apply_vignette(buf: PixelBuffer) -> PixelBuffer:
    return composite_fill(buf, (0, 0, 0), vignette_alpha(buf.width, buf.height), BlendMode.MULTIPLY)
