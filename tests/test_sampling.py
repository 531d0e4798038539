import numpy as np
import pytest

from markertrack.pixels import PixelFormat
from markertrack.sampling import (
    SamplingError,
    compute_homography,
    downsample_pattern,
    extract_pattern,
)

WIDTH, HEIGHT = 320, 240
CORNER_X = [100, 160, 160, 100]
CORNER_Y = [80, 80, 140, 140]
VERTEX = (0, 1, 2, 3)


def _grid():
    return (np.arange(36).reshape(6, 6) * 7).astype(np.uint8)


def _lum_image(grid):
    img = np.full((HEIGHT, WIDTH), 255, dtype=np.uint8)
    img[80:141, 100:161] = 0
    for r in range(6):
        for c in range(6):
            img[115 + 5 * r : 120 + 5 * r, 115 + 5 * c : 120 + 5 * c] = grid[r, c]
    return img


def test_homography_identity():
    world = [(100, 100), (110, 100), (110, 110), (100, 110)]
    para = compute_homography(world, world)
    assert np.allclose(para, np.eye(3), atol=1e-9)


def test_homography_maps_world_to_vertex():
    world = [(100, 100), (110, 100), (110, 110), (100, 110)]
    quad = [(12.0, 30.0), (80.0, 25.0), (95.0, 90.0), (5.0, 70.0)]
    para = compute_homography(world, quad)
    assert para[2, 2] == 1.0
    for (wx, wy), (vx, vy) in zip(world, quad):
        p = para @ np.array([wx, wy, 1.0])
        assert p[0] / p[2] == pytest.approx(vx)
        assert p[1] / p[2] == pytest.approx(vy)


def test_homography_degenerate_world_raises():
    world = [(100, 100)] * 4
    quad = [(0, 0), (1, 0), (1, 1), (0, 1)]
    with pytest.raises(SamplingError):
        compute_homography(world, quad)


def test_extract_lum_pattern_reads_cells():
    grid = _grid()
    pattern = extract_pattern(
        _lum_image(grid), WIDTH, HEIGHT, PixelFormat.LUM, CORNER_X, CORNER_Y, VERTEX
    )
    assert pattern.shape == (6, 6, 3)
    for channel in range(3):
        assert np.array_equal(pattern[..., channel], grid)


def test_extract_denser_sampling_averages_same_cells():
    grid = _grid()
    pattern = extract_pattern(
        _lum_image(grid).tobytes(), WIDTH, HEIGHT, PixelFormat.LUM,
        CORNER_X, CORNER_Y, VERTEX, 6, 6, 12, 0.25, False,
    )
    assert np.array_equal(pattern[..., 0], grid)


def test_extract_rgb_gives_bgr_order():
    grid = _grid()
    lum = _lum_image(grid)
    rgb = np.stack([lum, lum // 2, 255 - lum], axis=2).astype(np.uint8)
    pattern = extract_pattern(rgb, WIDTH, HEIGHT, PixelFormat.RGB, CORNER_X, CORNER_Y, VERTEX)
    assert np.array_equal(pattern[..., 0], 255 - grid)
    assert np.array_equal(pattern[..., 1], grid // 2)
    assert np.array_equal(pattern[..., 2], grid)


def test_extract_outside_image_is_zero():
    img = np.full((HEIGHT, WIDTH), 200, dtype=np.uint8)
    xs = [-400, -300, -300, -400]
    ys = [-400, -400, -300, -300]
    pattern = extract_pattern(img, WIDTH, HEIGHT, PixelFormat.LUM, xs, ys, VERTEX)
    assert not pattern.any()


def test_extract_rejects_small_sample_num():
    img = np.zeros((HEIGHT, WIDTH), dtype=np.uint8)
    with pytest.raises(ValueError):
        extract_pattern(img, WIDTH, HEIGHT, PixelFormat.LUM, CORNER_X, CORNER_Y, VERTEX, 6, 6, 4)


def test_extract_then_downsample_recovers_grid():
    grid = _grid()
    pattern = extract_pattern(
        _lum_image(grid), WIDTH, HEIGHT, PixelFormat.LUM, CORNER_X, CORNER_Y, VERTEX
    )
    assert np.array_equal(downsample_pattern(pattern, 6, 6), grid)


@pytest.mark.parametrize("size", [6, 12, 18])
def test_downsample_uniform_grey(size):
    data = np.full((size, size, 3), 123, dtype=np.uint8)
    result = downsample_pattern(data, size, size)
    assert result.shape == (6, 6)
    assert np.all(result == 123)


@pytest.mark.parametrize("factor", [2, 3])
def test_downsample_blocks_map_to_cells(factor):
    grid = _grid()
    big = np.kron(grid, np.ones((factor, factor), dtype=np.uint8))
    data = np.repeat(big[..., None], 3, axis=2)
    size = 6 * factor
    assert np.array_equal(downsample_pattern(data.ravel(), size, size), grid)


def test_downsample_unsupported_size():
    data = np.zeros((8, 8, 3), dtype=np.uint8)
    with pytest.raises(SamplingError):
        downsample_pattern(data, 8, 8)