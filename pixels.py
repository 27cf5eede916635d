from __future__ import annotations

import base64
import binascii
import io
import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np
from PIL import Image

log = logging.getLogger("refiner.pixels")

__all__ = [
    "ImageDecodeError",
    "EncodeError",
    "PixelBuffer",
    "LOSSLESS_FORMATS",
    "to_uint8",
    "luminance",
    "decode",
    "encode",
    "decode_base64",
    "encode_base64",
]

LOSSLESS_FORMATS = ("PNG", "WEBP", "TIFF")

# Optional HEIC/AVIF input support
try:
    from pillow_heif import register_heif_opener
    register_heif_opener()
except ImportError:
    pass


class ImageDecodeError(ValueError):
    """Input bytes are empty, truncated or not a raster format Pillow can read."""


class EncodeError(RuntimeError):
    """A pixel buffer could not be written in the requested lossless format."""


def to_uint8(values: np.ndarray) -> np.ndarray:
    """Clamp to [0,255] and round half to even, like a clamped 8-bit store."""
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def luminance(rgb: np.ndarray) -> np.ndarray:
    rgb = np.asarray(rgb, dtype=np.float64)
    return 0.299 * rgb[..., 0] + 0.587 * rgb[..., 1] + 0.114 * rgb[..., 2]


@dataclass
class PixelBuffer:
    """RGBA8 raster. ``channels`` has shape (height, width, 4)."""
    width: int
    height: int
    channels: np.ndarray

    def __post_init__(self) -> None:
        if self.width < 1 or self.height < 1:
            raise ValueError(f"PixelBuffer needs positive dimensions, got {self.width}x{self.height}")
        if self.channels.dtype != np.uint8:
            raise ValueError(f"PixelBuffer channels must be uint8, got {self.channels.dtype}")
        if self.channels.shape != (self.height, self.width, 4):
            raise ValueError(
                f"PixelBuffer channels shape {self.channels.shape} does not match "
                f"{self.width}x{self.height} RGBA"
            )

    @classmethod
    def from_array(cls, arr: np.ndarray) -> "PixelBuffer":
        arr = np.asarray(arr)
        if arr.ndim != 3 or arr.shape[2] not in (3, 4):
            raise ValueError(f"Expected an HxWx3 or HxWx4 array, got shape {arr.shape}")
        if arr.dtype != np.uint8:
            raise ValueError(f"Expected uint8 pixels, got {arr.dtype}")
        h, w = arr.shape[:2]
        if arr.shape[2] == 3:
            rgba = np.empty((h, w, 4), np.uint8)
            rgba[..., :3] = arr
            rgba[..., 3] = 255
        else:
            rgba = np.array(arr, dtype=np.uint8, copy=True)
        return cls(width=w, height=h, channels=rgba)

    @classmethod
    def filled(cls, width: int, height: int, rgba: Tuple[int, int, int, int]) -> "PixelBuffer":
        arr = np.empty((height, width, 4), np.uint8)
        arr[...] = rgba
        return cls(width=width, height=height, channels=arr)

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def copy(self) -> "PixelBuffer":
        return PixelBuffer(self.width, self.height, self.channels.copy())

    def rgb(self) -> np.ndarray:
        """Float64 copy of the colour channels."""
        return self.channels[..., :3].astype(np.float64)

    def store_rgb(self, values: np.ndarray) -> None:
        self.channels[..., :3] = to_uint8(values)

    def luminance(self) -> np.ndarray:
        return luminance(self.channels[..., :3])


# =============== Decode / encode ===============
def _wide_gray_to_uint8(arr: np.ndarray) -> np.ndarray:
    """16-bit (or 32-bit integer) gray samples down to 8 bits by keeping the high byte."""
    return (np.clip(arr.astype(np.int64), 0, 65535) >> 8).astype(np.uint8)


def decode(raw: bytes) -> PixelBuffer:
    if not raw:
        raise ImageDecodeError("Failed to decode image: no data")
    try:
        img = Image.open(io.BytesIO(raw))
        img.load()
    except Exception as e:
        raise ImageDecodeError(f"Failed to decode image: {e}") from e

    log.debug("Decoded %s %s %dx%d", img.format, img.mode, img.width, img.height)
    if img.mode == "I" or img.mode.startswith("I;16"):
        # convert() would clip these to 8 bits instead of scaling
        img = Image.fromarray(_wide_gray_to_uint8(np.asarray(img)))
    if img.mode != "RGBA":
        img = img.convert("RGBA")
    return PixelBuffer.from_array(np.asarray(img, dtype=np.uint8))


def encode(buf: PixelBuffer, fmt: str = "PNG") -> bytes:
    fmt = fmt.strip().upper()
    if fmt not in LOSSLESS_FORMATS:
        raise EncodeError(f"Refusing lossy or unsupported output format '{fmt}'. Use one of: {', '.join(LOSSLESS_FORMATS)}")

    options = {}
    if fmt == "WEBP":
        # exact keeps RGB under fully transparent pixels
        options = {"lossless": True, "exact": True, "quality": 100}

    out = io.BytesIO()
    try:
        Image.fromarray(np.ascontiguousarray(buf.channels)).save(out, format=fmt, **options)
    except Exception as e:
        raise EncodeError(f"Failed to encode {buf.width}x{buf.height} image as {fmt}: {e}") from e
    return out.getvalue()


def decode_base64(text: str) -> PixelBuffer:
    """Decode a base64 payload, with or without a ``data:image/...;base64,`` prefix."""
    payload = text.strip()
    if payload.startswith("data:"):
        _, _, payload = payload.partition(",")
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Invalid base64 image payload: {e}") from e
    return decode(raw)


def encode_base64(buf: PixelBuffer, fmt: str = "PNG") -> str:
    return base64.b64encode(encode(buf, fmt)).decode("ascii")
