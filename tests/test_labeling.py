import numpy as np
import pytest

from markertrack.labeling import LabelingOverflow, Vignetting, label_image
from markertrack.pixels import PixelFormat


def white(height, width):
    return np.full((height, width), 255, dtype=np.uint8)


def resolved(result):
    out = np.zeros_like(result.labels)
    nonzero = result.labels > 0
    out[nonzero] = result.label_ref[result.labels[nonzero] - 1]
    return out


def test_single_square_statistics():
    img = white(12, 14)
    img[3:7, 4:9] = 0
    result = label_image(img, 14, 12, 100)
    mask = img <= 100
    ys, xs = np.nonzero(mask)
    assert result.label_num == 1
    assert result.area[0] == mask.sum()
    assert result.pos[0, 0] == pytest.approx(xs.mean())
    assert result.pos[0, 1] == pytest.approx(ys.mean())
    assert list(result.clip[0]) == [xs.min(), xs.max(), ys.min(), ys.max()]


def test_two_separate_regions():
    img = white(12, 20)
    img[2:5, 2:5] = 10
    img[6:10, 12:17] = 10
    result = label_image(img, 20, 12, 100)
    assert result.label_num == 2
    assert sorted(result.area.tolist()) == sorted([9, 20])
    assert set(np.unique(resolved(result)).tolist()) == {0, 1, 2}


def test_u_shape_is_merged_into_one_component():
    img = white(12, 12)
    img[2:9, 2] = 0
    img[2:9, 8] = 0
    img[8, 2:9] = 0
    result = label_image(img, 12, 12, 50)
    assert result.label_num == 1
    assert result.area[0] == (img <= 50).sum()
    final = resolved(result)
    assert set(np.unique(final[img <= 50]).tolist()) == {1}


def test_frame_pixels_are_never_labelled():
    img = np.zeros((8, 8), dtype=np.uint8)
    result = label_image(img, 8, 8, 100)
    assert result.label_num == 1
    assert not result.labels[0, :].any()
    assert not result.labels[-1, :].any()
    assert not result.labels[:, 0].any()
    assert not result.labels[:, -1].any()
    assert result.area[0] == 6 * 6


def test_blank_image_has_no_components():
    result = label_image(white(10, 10), 10, 10, 100)
    assert result.label_num == 0
    assert result.area.size == 0
    assert result.pos.shape == (0, 2)
    assert not result.labels.any()


def test_threshold_is_inclusive():
    img = white(10, 10)
    img[5, 5] = 80
    assert label_image(img, 10, 10, 80).label_num == 1
    assert label_image(img, 10, 10, 79).label_num == 0


def test_colour_threshold_is_tripled():
    img = np.full((10, 10, 3), 255, dtype=np.uint8)
    img[4, 4] = (50, 50, 50)
    assert label_image(img, 10, 10, 50, PixelFormat.RGB).label_num == 1
    assert label_image(img, 10, 10, 49, PixelFormat.RGB).label_num == 0


def test_abgr_ignores_alpha_byte():
    img = np.zeros((10, 10, 4), dtype=np.uint8)
    img[..., 1:] = 255
    img[4, 4] = (255, 50, 50, 50)
    result = label_image(img, 10, 10, 50, PixelFormat.ABGR)
    assert result.label_num == 1
    assert result.labels[4, 4] > 0


def test_half_resolution_uses_every_second_pixel():
    img = white(40, 40)
    img[10:20, 12:24] = 0
    result = label_image(img, 40, 40, 100, half=True)
    sampled = img[::2, ::2][:20, :20] <= 100
    ys, xs = np.nonzero(sampled)
    assert result.labels.shape == (20, 20)
    assert result.label_num == 1
    assert result.area[0] == sampled.sum()
    assert list(result.clip[0]) == [xs.min(), xs.max(), ys.min(), ys.max()]


def test_overflow_of_work_area():
    img = white(20, 20)
    img[2:17:2, 2:17:2] = 0
    with pytest.raises(LabelingOverflow):
        label_image(img, 20, 20, 100, work_size=10)
    result = label_image(img, 20, 20, 100, work_size=1000)
    assert result.label_num == (img <= 100).sum()


def test_vignetting_raises_threshold_at_corners():
    img = white(20, 20)
    img[1, 1] = 120
    img[10, 10] = 120
    plain = label_image(img, 20, 20, 100)
    assert plain.label_num == 0
    vig = Vignetting(enabled=True, corners=40)
    corrected = label_image(img, 20, 20, 100, vignetting=vig)
    assert corrected.label_num == 1
    assert corrected.labels[1, 1] > 0
    assert corrected.labels[10, 10] == 0


def test_disabled_vignetting_changes_nothing():
    img = white(20, 20)
    img[1, 1] = 120
    result = label_image(img, 20, 20, 100, vignetting=Vignetting(enabled=False, corners=40))
    assert result.label_num == 0


def test_random_image_invariants():
    rng = np.random.default_rng(7)
    img = np.where(rng.random((30, 40)) < 0.45, 0, 255).astype(np.uint8)
    result = label_image(img, 40, 30, 100)
    mask = img <= 100
    interior = mask[1:-1, 1:-1].sum()
    assert result.area.sum() == interior
    assert ((result.label_ref >= 1) & (result.label_ref <= result.label_num)).all()
    final = resolved(result)
    assert ((final > 0) == np.pad(mask[1:-1, 1:-1], 1)).all()
    ys, xs = np.nonzero(final)
    ks = final[ys, xs] - 1
    assert (result.clip[ks, 0] <= xs).all()
    assert (result.clip[ks, 1] >= xs).all()
    assert (result.clip[ks, 2] <= ys).all()
    assert (result.clip[ks, 3] >= ys).all()
    for k in range(result.label_num):
        assert result.area[k] == (final == k + 1).sum()


def test_too_small_image_rejected():
    with pytest.raises(ValueError):
        label_image(bytes(1), 1, 1, 100)


def test_short_buffer_rejected():
    with pytest.raises(ValueError):
        label_image(bytes(10), 10, 10, 100)