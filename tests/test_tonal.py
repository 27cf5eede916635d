import numpy as np
import pytest

from pixels import PixelBuffer
from tonal import (
    adjust_color,
    apply_tone_curve,
    curve_steepness,
    lift_shadows,
    recover_highlights,
    s_curve,
)


def _px(*rgb):
    return PixelBuffer.from_array(np.array([[list(rgb)]], dtype=np.uint8))


def test_curve_midpoint_is_fixed():
    assert s_curve(np.array(0.5), 1.0) == pytest.approx(0.5)
    assert s_curve(np.array(0.5), 1.7) == pytest.approx(0.5)
    assert curve_steepness(1.0) == 4.0
    assert curve_steepness(1.1) == pytest.approx(5.0)


def test_neutral_contrast_is_not_identity():
    buf = PixelBuffer.from_array(np.array([[[0, 128, 255]]], dtype=np.uint8))
    apply_tone_curve(buf, 1.0)
    # k=4 lifts black and pulls white in
    assert buf.channels[0, 0, :3].tolist() == [30, 128, 225]


def test_tone_curve_leaves_alpha(noisy_rgba):
    arr = noisy_rgba.copy()
    arr[..., 3] = 77
    buf = PixelBuffer.from_array(arr)
    apply_tone_curve(buf, 1.2)
    assert (buf.channels[..., 3] == 77).all()


def test_lift_shadows_scales_with_darkness():
    buf = PixelBuffer.from_array(np.array([[[0, 0, 0], [40, 40, 40], [100, 100, 100]]], dtype=np.uint8))
    lift_shadows(buf, 8)
    assert buf.channels[0, :, 0].tolist() == [8, 44, 100]


def test_recover_highlights_subtracts_for_negative_amount():
    buf = PixelBuffer.from_array(np.array([[[255, 255, 255], [150, 150, 150]]], dtype=np.uint8))
    recover_highlights(buf, -5)
    assert buf.channels[0, 0, :3].tolist() == [250, 250, 250]
    assert buf.channels[0, 1, :3].tolist() == [150, 150, 150]


def test_recover_highlights_floors_at_zero():
    # bright overall, but blue channel near zero
    buf = _px(255, 255, 2)
    recover_highlights(buf, -40)
    assert buf.channels[0, 0, 2] == 0


def test_vibrance_one_is_a_no_op(noisy_rgba):
    a = PixelBuffer.from_array(noisy_rgba)
    b = PixelBuffer.from_array(noisy_rgba)
    adjust_color(a, 1.0, 1.0, vibrance=1.0)
    adjust_color(b, 1.0, 1.0)
    assert np.array_equal(a.channels, noisy_rgba)
    assert np.array_equal(a.channels, b.channels)


def test_vibrance_pulls_channels_toward_max():
    buf = _px(200, 100, 50)
    adjust_color(buf, vibrance=1.5)
    assert buf.channels[0, 0, :3].tolist() == [200, 133, 99]


def test_saturation_does_not_touch_gray():
    buf = _px(128, 128, 128)
    adjust_color(buf, brightness=1.0, saturation=1.8, vibrance=1.3)
    assert buf.channels[0, 0, :3].tolist() == [128, 128, 128]


def test_saturation_zero_gives_gray():
    buf = _px(200, 100, 0)
    adjust_color(buf, saturation=0.0)
    assert buf.channels[0, 0, :3].tolist() == [100, 100, 100]


def test_brightness_clamps(noisy_rgba):
    buf = PixelBuffer.from_array(noisy_rgba)
    adjust_color(buf, brightness=3.0, saturation=2.0, vibrance=2.0)
    rgb = buf.channels[..., :3]
    assert rgb.min() >= 0 and rgb.max() <= 255
    assert (rgb == 255).any()
