"""Pixel formats and conversions from raw camera frames to intensities."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

import numpy as np

LUM_TABLE_SIZE = 0x10000


class PixelFormat(Enum):
    """Layouts of raw camera frames that the tracker understands."""

    LUM = "lum"
    RGB565 = "rgb565"
    BGR = "bgr"
    RGB = "rgb"
    ABGR = "abgr"
    BGRA = "bgra"
    RGBA = "rgba"

    @property
    def size(self) -> int:
        """Number of bytes one pixel occupies."""
        return _PIXEL_SIZES[self]

    @property
    def is_colour(self) -> bool:
        """True for formats whose intensity is the sum of three channels."""
        return self not in (PixelFormat.LUM, PixelFormat.RGB565)


_PIXEL_SIZES = {
    PixelFormat.LUM: 1,
    PixelFormat.RGB565: 2,
    PixelFormat.BGR: 3,
    PixelFormat.RGB: 3,
    PixelFormat.ABGR: 4,
    PixelFormat.BGRA: 4,
    PixelFormat.RGBA: 4,
}

# Bytes summed to form the intensity of a colour pixel.
_INTENSITY_CHANNELS = {
    PixelFormat.BGR: (0, 1, 2),
    PixelFormat.RGB: (0, 1, 2),
    PixelFormat.ABGR: (1, 2, 3),
    PixelFormat.BGRA: (0, 1, 2),
    PixelFormat.RGBA: (0, 1, 2),
}

# Bytes copied, in order, into a BGR pattern sample.
_SAMPLE_CHANNELS = {
    PixelFormat.ABGR: (1, 2, 3),
    PixelFormat.BGRA: (0, 1, 2),
    PixelFormat.BGR: (0, 1, 2),
    PixelFormat.RGBA: (2, 1, 0),
    PixelFormat.RGB: (2, 1, 0),
}


def rgb565_to_rgb(pixel: int) -> tuple[int, int, int]:
    """Expand a 16-bit RGB565 pixel into 8-bit red, green and blue."""
    if not 0 <= pixel <= 0xFFFF:
        raise ValueError(f"RGB565 pixel out of range: {pixel}")
    red = (pixel & (0x1F << 11)) >> 8
    green = (pixel & (0x3F << 5)) >> 3
    blue = (pixel & 0x1F) << 3
    return red & 0xFF, green & 0xFF, blue & 0xFF


@lru_cache(maxsize=1)
def rgb565_luminance_table() -> np.ndarray:
    """Lookup table from every RGB565 value to an 8-bit luminance."""
    pixels = np.arange(LUM_TABLE_SIZE, dtype=np.uint32)
    red = (pixels & (0x1F << 11)) >> 8
    green = (pixels & (0x3F << 5)) >> 3
    blue = (pixels & 0x1F) << 3
    table = (((red << 1) + (green << 2) + green + blue) >> 3).astype(np.uint8)
    table.flags.writeable = False
    return table


def _as_bytes(image) -> np.ndarray:
    if isinstance(image, np.ndarray):
        if image.dtype == np.uint16:
            return np.ascontiguousarray(image, dtype="<u2").view(np.uint8).ravel()
        return np.ascontiguousarray(image, dtype=np.uint8).ravel()
    return np.frombuffer(image, dtype=np.uint8)


def to_intensity(image, width: int, height: int, pixel_format: PixelFormat) -> np.ndarray:
    """Return a (height, width) array of intensities used for thresholding.

    Colour formats give the sum of three channels, so their threshold must be
    three times that of a luminance image.
    """
    if width <= 0 or height <= 0:
        raise ValueError("image dimensions must be positive")
    data = _as_bytes(image)
    needed = width * height * pixel_format.size
    if data.size < needed:
        raise ValueError(f"image holds {data.size} bytes, {needed} needed")
    data = np.ascontiguousarray(data[:needed])

    if pixel_format is PixelFormat.LUM:
        return data.reshape(height, width).astype(np.int32)
    if pixel_format is PixelFormat.RGB565:
        values = data.view("<u2").reshape(height, width)
        return rgb565_luminance_table()[values].astype(np.int32)

    pixels = data.reshape(height, width, pixel_format.size).astype(np.int32)
    return pixels[..., list(_INTENSITY_CHANNELS[pixel_format])].sum(axis=2)


def sample_rgb(image, width: int, x: int, y: int, pixel_format: PixelFormat) -> tuple[int, int, int]:
    """Read one pixel as a BGR triple, grey formats giving three equal values."""
    data = _as_bytes(image)
    if x < 0 or y < 0 or x >= width:
        raise IndexError(f"pixel ({x}, {y}) outside the image")
    index = y * width + x
    size = pixel_format.size
    if (index + 1) * size > data.size:
        raise IndexError(f"pixel ({x}, {y}) outside the image")

    if pixel_format is PixelFormat.LUM:
        value = int(data[index])
        return value, value, value
    if pixel_format is PixelFormat.RGB565:
        pixel = int(data[2 * index]) | (int(data[2 * index + 1]) << 8)
        value = int(rgb565_luminance_table()[pixel])
        return value, value, value

    base = index * size
    first, second, third = (int(data[base + channel]) for channel in _SAMPLE_CHANNELS[pixel_format])
    return first, second, third