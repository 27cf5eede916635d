import io

import numpy as np
import pytest
from PIL import Image

from pixels import PixelBuffer


def _png(arr: np.ndarray) -> bytes:
    out = io.BytesIO()
    Image.fromarray(arr).save(out, format="PNG")
    return out.getvalue()


@pytest.fixture
def png_bytes():
    """Encode an HxWx3/4 uint8 array as PNG."""
    return _png


@pytest.fixture
def noisy_rgba() -> np.ndarray:
    rng = np.random.default_rng(1234)
    arr = rng.integers(0, 256, size=(18, 24, 4), dtype=np.uint8)
    arr[..., 3] = 255
    return arr


@pytest.fixture
def scene_rgb() -> np.ndarray:
    """Dark floor, mid walls and a blown-out window, like a typical interior render."""
    h, w = 30, 40
    img = np.zeros((h, w, 3), dtype=np.uint8)
    img[:, :] = [120, 110, 100]
    img[int(h * 0.7):, :] = [40, 35, 30]
    img[3:12, 24:36] = [255, 255, 255]
    for x in range(w):
        img[12:20, x] = [x * 6, 90, 255 - x * 6]
    return img


@pytest.fixture
def flat_buffer():
    def make(width=8, height=6, rgba=(128, 128, 128, 255)) -> PixelBuffer:
        return PixelBuffer.filled(width, height, rgba)
    return make
