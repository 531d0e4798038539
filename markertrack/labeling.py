"""Connected-component labelling of dark regions in a camera frame."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from markertrack.pixels import PixelFormat, to_intensity

DEFAULT_WORK_SIZE = 1024 * 8
_SHIFT_BITS = 10


class LabelingOverflow(Exception):
    """More provisional labels were needed than the work area allows."""


@dataclass
class Vignetting:
    """Threshold correction that raises or lowers the threshold towards the edges.

    ``corners``, ``leftright`` and ``bottomtop`` are the threshold offsets at
    the image corners, at the middle of the left and right edges and at the
    middle of the top and bottom edges.
    """

    enabled: bool = False
    corners: int = 0
    leftright: int = 0
    bottomtop: int = 0


@dataclass(frozen=True, eq=False)
class LabelResult:
    """Outcome of labelling one frame.

    ``labels`` holds provisional label numbers per pixel (0 for background);
    ``label_ref`` maps a provisional label ``p`` to its final component
    number ``label_ref[p - 1]``.  ``area``, ``pos`` (centroid x, y) and
    ``clip`` (min x, max x, min y, max y) are indexed by final component
    number minus one.
    """

    labels: np.ndarray
    label_num: int
    area: np.ndarray
    pos: np.ndarray
    clip: np.ndarray
    label_ref: np.ndarray


def _cdiv(a: int, b: int) -> int:
    """Integer division truncating towards zero."""
    quotient = abs(a) // abs(b)
    return quotient if (a >= 0) == (b > 0) else -quotient


def _threshold_map(base: int, lxsize: int, lysize: int, vignetting: Vignetting, fact: int) -> np.ndarray:
    thresholds = np.full((lysize, lxsize), base, dtype=np.int64)
    i_half, j_half = lxsize // 2, lysize // 2

    corr_left = (vignetting.corners * fact) << _SHIFT_BITS
    d_left = _cdiv((vignetting.leftright - vignetting.corners * fact) << _SHIFT_BITS, j_half)
    corr_center = (vignetting.bottomtop * fact) << _SHIFT_BITS
    d_center = _cdiv(-corr_center, j_half)

    if lxsize <= 2:
        return thresholds

    for j in range(1, lysize - 1):
        corr_x = corr_left
        d_x = _cdiv(corr_center - corr_left, i_half)
        if j == j_half:
            d_left = -d_left
            d_center = -d_center
        corr_left += d_left
        corr_center += d_center

        steps = np.full(lxsize - 2, d_x, dtype=np.int64)
        steps[i_half - 1:] = -d_x
        thresholds[j, 1:lxsize - 1] = base + ((corr_x + np.cumsum(steps)) >> _SHIFT_BITS)
    return thresholds


def _merge(work: list[int], m: int, n: int) -> int:
    """Join two equivalence classes, keeping the smaller representative."""
    if m > n:
        work[:] = [n if w == m else w for w in work]
        return n
    if m < n:
        work[:] = [m if w == n else w for w in work]
    return m


def label_image(
    image,
    width: int,
    height: int,
    thresh: int,
    pixel_format: PixelFormat = PixelFormat.LUM,
    half: bool = False,
    vignetting: Vignetting | None = None,
    work_size: int = DEFAULT_WORK_SIZE,
) -> LabelResult:
    """Label 8-connected regions whose intensity is at or below ``thresh``.

    The one-pixel frame around the image is never labelled.  With ``half``
    every second pixel in both directions is used and all coordinates are
    in the half-resolution grid.  Raises :class:`LabelingOverflow` when more
    than ``work_size`` provisional labels are needed.
    """
    lxsize, lysize = (width // 2, height // 2) if half else (width, height)
    if lxsize < 2 or lysize < 2:
        raise ValueError("image too small to label")

    intensity = to_intensity(image, width, height, pixel_format)
    if half:
        intensity = intensity[::2, ::2][:lysize, :lxsize]

    fact = 3 if pixel_format.is_colour else 1
    threshold = thresh * fact
    if vignetting is not None and vignetting.enabled:
        thresholds = _threshold_map(threshold, lxsize, lysize, vignetting, fact)
    else:
        thresholds = threshold

    black = intensity <= thresholds
    black[0, :] = black[-1, :] = False
    black[:, 0] = black[:, -1] = False

    labels = [[0] * lxsize for _ in range(lysize)]
    work: list[int] = []
    stats: list[list[int]] = []

    for j in range(1, lysize - 1):
        above = labels[j - 1]
        row = labels[j]
        for i in np.flatnonzero(black[j]).tolist():
            up = above[i]
            if up > 0:
                label = up
                s = stats[label - 1]
                s[0] += 1
                s[1] += i
                s[2] += j
                s[6] = j
            elif above[i + 1] > 0:
                up_right = above[i + 1]
                up_left = above[i - 1]
                left = row[i - 1]
                if up_left > 0:
                    label = _merge(work, work[up_right - 1], work[up_left - 1])
                    s = stats[label - 1]
                    s[0] += 1
                    s[1] += i
                    s[2] += j
                    s[6] = j
                elif left > 0:
                    label = _merge(work, work[up_right - 1], work[left - 1])
                    s = stats[label - 1]
                    s[0] += 1
                    s[1] += i
                    s[2] += j
                else:
                    label = up_right
                    s = stats[label - 1]
                    s[0] += 1
                    s[1] += i
                    s[2] += j
                    if s[3] > i:
                        s[3] = i
                    s[6] = j
            elif above[i - 1] > 0:
                label = above[i - 1]
                s = stats[label - 1]
                s[0] += 1
                s[1] += i
                s[2] += j
                if s[4] < i:
                    s[4] = i
                s[6] = j
            elif row[i - 1] > 0:
                label = row[i - 1]
                s = stats[label - 1]
                s[0] += 1
                s[1] += i
                s[2] += j
                if s[4] < i:
                    s[4] = i
            else:
                if len(work) >= work_size:
                    raise LabelingOverflow(f"more than {work_size} provisional labels needed")
                label = len(work) + 1
                work.append(label)
                stats.append([1, i, j, i, i, j, j])
            row[i] = label

    next_label = 1
    for index, value in enumerate(work):
        if value == index + 1:
            work[index] = next_label
            next_label += 1
        else:
            work[index] = work[value - 1]
    label_num = next_label - 1

    area = np.zeros(label_num, dtype=np.int64)
    pos = np.zeros((label_num, 2), dtype=float)
    clip = np.tile(np.array([lxsize, 0, lysize, 0], dtype=np.int64), (label_num, 1))
    for final, s in zip(work, stats):
        k = final - 1
        area[k] += s[0]
        pos[k, 0] += s[1]
        pos[k, 1] += s[2]
        clip[k, 0] = min(clip[k, 0], s[3])
        clip[k, 1] = max(clip[k, 1], s[4])
        clip[k, 2] = min(clip[k, 2], s[5])
        clip[k, 3] = max(clip[k, 3], s[6])
    if label_num:
        pos /= area[:, None]

    return LabelResult(
        labels=np.array(labels, dtype=np.int32),
        label_num=label_num,
        area=area,
        pos=pos,
        clip=clip,
        label_ref=np.array(work, dtype=np.int64),
    )