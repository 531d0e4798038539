"""Sampling of the marker interior into a small square pattern image."""

from __future__ import annotations

import numpy as np

from markertrack.pixels import PixelFormat, sample_rgb

ID_PATTERN_SIZE = 6

# Corners of the reference square that the marker outline is mapped onto.
_WORLD = ((100.0, 100.0), (110.0, 100.0), (110.0, 110.0), (100.0, 110.0))
_WORLD_LOW = 100.0
_WORLD_HIGH = 110.0


class SamplingError(Exception):
    """The marker interior could not be sampled or reduced."""


def compute_homography(world, vertex) -> np.ndarray:
    """Return the 3x3 projective map that takes the four ``world`` points to ``vertex``.

    The bottom-right element is fixed to 1.  Raises :class:`SamplingError`
    when the points do not determine a unique map.
    """
    world = [(float(x), float(y)) for x, y in world]
    vertex = [(float(x), float(y)) for x, y in vertex]
    if len(world) != 4 or len(vertex) != 4:
        raise ValueError("exactly four point pairs are needed")

    a = np.zeros((8, 8))
    b = np.zeros(8)
    for row, ((wx, wy), (vx, vy)) in enumerate(zip(world, vertex)):
        a[2 * row] = [wx, wy, 1.0, 0.0, 0.0, 0.0, -wx * vx, -wy * vx]
        a[2 * row + 1] = [0.0, 0.0, 0.0, wx, wy, 1.0, -wx * vy, -wy * vy]
        b[2 * row] = vx
        b[2 * row + 1] = vy

    try:
        c = np.linalg.solve(a, b)
    except np.linalg.LinAlgError as err:
        raise SamplingError("marker corners do not define a projection") from err
    if not np.all(np.isfinite(c)):
        raise SamplingError("marker corners do not define a projection")

    para = np.ones((3, 3))
    para.flat[:8] = c
    return para


def _squared_length(p, q) -> int:
    return int((p[0] - q[0]) ** 2 + (p[1] - q[1]) ** 2)


def _divisions(base: int, length_sq: int, sample_num: int, half: bool) -> int:
    scale = 4 if half else 1
    count = base
    while count * count * scale < length_sq // 4:
        count *= 2
    count = min(count, sample_num)
    # Keep whole samples per pattern cell so every sample lands inside the pattern.
    return (count // base) * base


def extract_pattern(
    image,
    width: int,
    height: int,
    pixel_format: PixelFormat,
    x_coord,
    y_coord,
    vertex,
    pattern_width: int = ID_PATTERN_SIZE,
    pattern_height: int = ID_PATTERN_SIZE,
    sample_num: int = ID_PATTERN_SIZE,
    border_width: float = 0.25,
    half: bool = False,
) -> np.ndarray:
    """Unproject the inside of a marker into a (height, width, 3) BGR pattern.

    ``vertex`` gives the contour indices of the four corners.  The border,
    ``border_width`` of the marker's side, is left out.  Larger markers are
    sampled more densely, up to ``sample_num`` samples per side, and the
    samples falling into one pattern cell are averaged.  Samples outside the
    image contribute nothing.
    """
    if pattern_width <= 0 or pattern_height <= 0:
        raise ValueError("pattern size must be positive")
    if sample_num < max(pattern_width, pattern_height):
        raise ValueError("sample_num must be at least the pattern size")
    corners = list(vertex)[:4]
    if len(corners) != 4:
        raise ValueError("four corner indices are needed")

    local = [(float(x_coord[v]), float(y_coord[v])) for v in corners]
    para = compute_homography(_WORLD, local)

    lx = max(_squared_length(local[0], local[1]), _squared_length(local[2], local[3]))
    ly = max(_squared_length(local[1], local[2]), _squared_length(local[3], local[0]))
    xdiv2 = _divisions(pattern_width, lx, sample_num, half)
    ydiv2 = _divisions(pattern_height, ly, sample_num, half)
    xdiv = xdiv2 // pattern_width
    ydiv = ydiv2 // pattern_height

    border = border_width * 10.0
    start = _WORLD_LOW + border
    step = (_WORLD_HIGH - border) - start
    xs = [start + step * (i + 0.5) / xdiv2 for i in range(xdiv2)]
    ys = [start + step * (j + 0.5) / ydiv2 for j in range(ydiv2)]

    (h00, h01, h02), (h10, h11, h12), (h20, h21, h22) = para.tolist()
    acc = np.zeros((pattern_height, pattern_width, 3), dtype=np.int64)
    for j, yw in enumerate(ys):
        row = j // ydiv
        for i, xw in enumerate(xs):
            d = h20 * xw + h21 * yw + h22
            if d == 0:
                raise SamplingError("sample point projects to infinity")
            xc = int((h00 * xw + h01 * yw + h02) / d)
            yc = int((h10 * xw + h11 * yw + h12) / d)
            if 0 <= xc < width and 0 <= yc < height:
                acc[row, i // xdiv] += sample_rgb(image, width, xc, yc, pixel_format)

    return (acc // (xdiv * ydiv)).astype(np.uint8)


def downsample_pattern(data, pattern_width: int, pattern_height: int) -> np.ndarray:
    """Reduce a BGR pattern of 6x6, 12x12 or 18x18 to a 6x6 grey image.

    Each pixel's grey value is (b + 2g + r) / 4; larger patterns average the
    grey values of each 2x2 or 3x3 cell.
    """
    if (pattern_width, pattern_height) not in ((6, 6), (12, 12), (18, 18)):
        raise SamplingError("pattern size must be 6x6, 12x12 or 18x18")
    pixels = np.asarray(data, dtype=np.int32).reshape(pattern_height, pattern_width, 3)
    grey = (pixels[..., 0] + (pixels[..., 1] << 1) + pixels[..., 2]) >> 2

    factor = pattern_width // ID_PATTERN_SIZE
    blocks = grey.reshape(ID_PATTERN_SIZE, factor, ID_PATTERN_SIZE, factor).sum(axis=(1, 3))
    return (blocks // (factor * factor)).astype(np.uint8)