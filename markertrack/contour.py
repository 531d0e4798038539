"""Contour tracing and square detection for labelled dark regions."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from markertrack.labeling import LabelResult

CHAIN_MAX = 10000
AREA_MAX = 100000
AREA_MIN = 70
MAX_VERTICES = 5

_XDIR = (0, 1, 1, 1, 0, -1, -1, -1)
_YDIR = (-1, -1, 0, 1, 1, 1, 0, -1)


class ContourError(Exception):
    """A region's contour could not be traced or is not a square."""


@dataclass
class MarkerCandidate:
    """A dark region whose outline looks like a quadrilateral.

    ``x_coord`` and ``y_coord`` form a closed contour (the last point repeats
    the first).  ``vertex`` holds five indices into the contour: the four
    corners and, last, the index of the closing point.
    """

    area: int
    pos: tuple[float, float]
    x_coord: list[int]
    y_coord: list[int]
    vertex: tuple[int, ...] = ()

    @property
    def corners(self) -> list[tuple[int, int]]:
        """The four corner points of the quadrilateral."""
        return [(self.x_coord[v], self.y_coord[v]) for v in self.vertex[:4]]


def _farthest(xs: list[int], ys: list[int], stop: int) -> int:
    """Index in ``1..stop-1`` farthest from the first point, 0 if none is apart."""
    sx, sy = xs[0], ys[0]
    best, best_dist = 0, 0
    for index in range(1, stop):
        dist = (xs[index] - sx) ** 2 + (ys[index] - sy) ** 2
        if dist > best_dist:
            best, best_dist = index, dist
    return best


def get_contour(limage, xsize: int, label_ref, label: int, clip):
    """Trace the outer contour of component ``label``.

    ``limage`` holds provisional labels, ``label_ref`` maps them to final
    component numbers and ``clip`` is (min x, max x, min y, max y).  Returns
    the closed contour as two lists, rotated so it starts at the point
    farthest from the first pixel found.
    """
    flat = np.asarray(limage).ravel()
    refs = np.asarray(label_ref).ravel()
    x_min, x_max, y_min = int(clip[0]), int(clip[1]), int(clip[2])

    row = flat[y_min * xsize + x_min : y_min * xsize + x_max + 1].tolist()
    start = next(
        (x_min + offset for offset, value in enumerate(row) if value > 0 and refs[value - 1] == label),
        None,
    )
    if start is None:
        raise ContourError(f"label {label} not found on its top row")

    sx, sy = start, y_min
    xs, ys = [sx], [sy]
    direction = 5
    while True:
        base = ys[-1] * xsize + xs[-1]
        direction = (direction + 5) % 8
        for _ in range(8):
            if flat[base + _YDIR[direction] * xsize + _XDIR[direction]] > 0:
                break
            direction = (direction + 1) % 8
        else:
            raise ContourError("isolated pixel has no neighbours")
        nx, ny = xs[-1] + _XDIR[direction], ys[-1] + _YDIR[direction]
        if nx == sx and ny == sy:
            break
        xs.append(nx)
        ys.append(ny)
        if len(xs) == CHAIN_MAX - 1:
            raise ContourError("contour too long")

    v1 = _farthest(xs, ys, len(xs))
    xs = xs[v1:] + xs[:v1]
    ys = ys[v1:] + ys[:v1]
    xs.append(xs[0])
    ys.append(ys[0])
    return xs, ys


def _collect_vertices(xs, ys, st: int, ed: int, thresh: float, found: list[int]) -> None:
    a = float(ys[ed] - ys[st])
    b = float(xs[st] - xs[ed])
    c = float(xs[ed] * ys[st] - ys[ed] * xs[st])
    dmax, v1 = 0.0, 0
    for index in range(st + 1, ed):
        d = a * xs[index] + b * ys[index] + c
        if d * d > dmax:
            dmax, v1 = d * d, index
    norm = a * a + b * b
    if norm == 0 or dmax / norm <= thresh:
        return
    _collect_vertices(xs, ys, st, v1, thresh, found)
    if len(found) > MAX_VERTICES:
        raise ContourError("too many vertices")
    found.append(v1)
    _collect_vertices(xs, ys, v1, ed, thresh, found)


def get_vertex(x_coord, y_coord, st: int, ed: int, thresh: float) -> list[int]:
    """Indices between ``st`` and ``ed`` where the contour bends more than ``thresh``."""
    found: list[int] = []
    _collect_vertices(x_coord, y_coord, st, ed, thresh, found)
    return found


def check_square(area: int, candidate: MarkerCandidate, factor: float = 1.0) -> tuple[int, ...]:
    """Find the four corners of a square contour, raising ContourError if it is not one."""
    xs, ys = candidate.x_coord, candidate.y_coord
    last = len(xs) - 1
    v1 = _farthest(xs, ys, last)
    thresh = (area / 0.75) * 0.01 * factor

    wv1 = get_vertex(xs, ys, 0, v1, thresh)
    wv2 = get_vertex(xs, ys, v1, last, thresh)

    if len(wv1) == 1 and len(wv2) == 1:
        corners = (wv1[0], v1, wv2[0])
    elif len(wv1) > 1 and not wv2:
        v2 = v1 // 2
        wv1 = get_vertex(xs, ys, 0, v2, thresh)
        wv2 = get_vertex(xs, ys, v2, v1, thresh)
        if len(wv1) != 1 or len(wv2) != 1:
            raise ContourError("contour is not a square")
        corners = (wv1[0], wv2[0], v1)
    elif not wv1 and len(wv2) > 1:
        v2 = (v1 + last) // 2
        wv1 = get_vertex(xs, ys, v1, v2, thresh)
        wv2 = get_vertex(xs, ys, v2, last, thresh)
        if len(wv1) != 1 or len(wv2) != 1:
            raise ContourError("contour is not a square")
        corners = (v1, wv1[0], wv2[0])
    else:
        raise ContourError("contour is not a square")

    return (0, *corners, last)


def detect_candidates(
    labels: LabelResult,
    width: int,
    height: int,
    area_min: int = AREA_MIN,
    area_max: int = AREA_MAX,
    factor: float = 1.0,
    max_markers: int = 8,
    half: bool = False,
) -> list[MarkerCandidate]:
    """Pick the labelled regions that look like square markers.

    Regions touching the image frame or outside the area limits are skipped,
    and of two regions whose centres nearly coincide the smaller is dropped.
    """
    if half:
        area_min //= 4
        area_max //= 4
        xsize, ysize = width // 2, height // 2
    else:
        xsize, ysize = width, height

    found: list[MarkerCandidate] = []
    for index in range(labels.label_num):
        area = int(labels.area[index])
        if area < area_min or area > area_max:
            continue
        clip = [int(v) for v in labels.clip[index]]
        if clip[0] == 1 or clip[1] == xsize - 2 or clip[2] == 1 or clip[3] == ysize - 2:
            continue
        try:
            xs, ys = get_contour(labels.labels, xsize, labels.label_ref, index + 1, clip)
            candidate = MarkerCandidate(
                area=area,
                pos=(float(labels.pos[index, 0]), float(labels.pos[index, 1])),
                x_coord=xs,
                y_coord=ys,
            )
            candidate.vertex = check_square(area, candidate, factor)
        except ContourError:
            continue
        found.append(candidate)
        if len(found) == max_markers:
            break

    for i, first in enumerate(found):
        for second in found[i + 1 :]:
            d = (first.pos[0] - second.pos[0]) ** 2 + (first.pos[1] - second.pos[1]) ** 2
            if first.area > second.area:
                if d < first.area // 4:
                    second.area = 0
            elif d < second.area // 4:
                first.area = 0

    # An entry shifted into a removed slot is not examined again.
    index = 0
    while index < len(found):
        if found[index].area == 0:
            del found[index]
        index += 1

    if half:
        for candidate in found:
            candidate.area *= 4
            candidate.pos = (candidate.pos[0] * 2.0, candidate.pos[1] * 2.0)
            candidate.x_coord = [x * 2 for x in candidate.x_coord]
            candidate.y_coord = [y * 2 for y in candidate.y_coord]

    return found