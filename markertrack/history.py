"""Marker bookkeeping across frames: confidence filtering and short-term history."""

from __future__ import annotations

from dataclasses import dataclass, replace

CONFIDENCE_THRESHOLD = 0.5
AREA_RATIO_MIN = 0.7
AREA_RATIO_MAX = 1.43
MAX_RELATIVE_DISTANCE = 0.5
MAX_AGE = 4


@dataclass
class MarkerInfo:
    """A detected marker: its region, corners, identity and confidence.

    ``vertex`` holds the four corners as (x, y) pairs; ``marker_id`` is -1
    for a marker that was not recognised.
    """

    area: int
    pos: tuple[float, float]
    vertex: tuple[tuple[float, float], ...]
    marker_id: int = -1
    dir: int = 0
    cf: float = 0.0
    line: tuple | None = None


@dataclass
class _Entry:
    marker: MarkerInfo
    count: int


def _relative_distance(previous: MarkerInfo, current: MarkerInfo) -> float | None:
    """Squared centre distance relative to area, or None if the areas differ too much."""
    if current.area == 0:
        return None
    ratio = previous.area / current.area
    if ratio < AREA_RATIO_MIN or ratio > AREA_RATIO_MAX:
        return None
    dx = current.pos[0] - previous.pos[0]
    dy = current.pos[1] - previous.pos[1]
    return (dx * dx + dy * dy) / current.area


def _is_close(previous: MarkerInfo, current: MarkerInfo) -> bool:
    rlen = _relative_distance(previous, current)
    return rlen is not None and rlen < MAX_RELATIVE_DISTANCE


def _matching_direction(previous: MarkerInfo, current: MarkerInfo) -> int:
    """Direction of ``current`` that best lines its corners up with ``previous``."""
    best_diff = 10000.0 * 10000.0
    best_dir = -1
    for shift in range(4):
        diff = sum(
            (px - current.vertex[(shift + k) % 4][0]) ** 2 + (py - current.vertex[(shift + k) % 4][1]) ** 2
            for k, (px, py) in enumerate(previous.vertex[:4])
        )
        if diff < best_diff:
            best_diff = diff
            best_dir = (previous.dir - shift + 4) % 4
    return best_dir


class MarkerHistory:
    """Remembers recognised markers for a few frames to bridge short dropouts."""

    def __init__(self, max_markers: int = 8):
        if max_markers <= 0:
            raise ValueError("max_markers must be positive")
        self.max_markers = max_markers
        self._entries: list[_Entry] = []

    @property
    def tracked(self) -> list[MarkerInfo]:
        """Copies of the markers currently remembered."""
        return [replace(entry.marker) for entry in self._entries]

    def clear(self) -> None:
        """Forget every remembered marker."""
        self._entries.clear()

    def update(self, markers) -> list[MarkerInfo]:
        """Merge one frame's detections with the history and return the result.

        A weak detection near a remembered marker takes over its identity and
        confidence; remembered markers with no detection nearby are added to
        the result until they are too old.  The input is not modified.
        """
        current = [replace(marker) for marker in markers]

        for entry in self._entries:
            previous = entry.marker
            best, best_len = None, 10.0
            for index, candidate in enumerate(current):
                rlen = _relative_distance(previous, candidate)
                if rlen is not None and rlen < MAX_RELATIVE_DISTANCE and rlen < best_len:
                    best, best_len = index, rlen
            if best is not None and current[best].cf < previous.cf:
                candidate = current[best]
                candidate.cf = previous.cf
                candidate.marker_id = previous.marker_id
                candidate.dir = _matching_direction(previous, candidate)

        for candidate in current:
            if candidate.cf < CONFIDENCE_THRESHOLD:
                candidate.marker_id = -1

        for entry in self._entries:
            entry.count += 1
        self._entries = [entry for entry in self._entries if entry.count < MAX_AGE]

        for candidate in current:
            if candidate.marker_id < 0:
                continue
            match = next((e for e in self._entries if e.marker.marker_id == candidate.marker_id), None)
            if match is not None:
                match.marker = replace(candidate)
                match.count = 1
            elif len(self._entries) < self.max_markers:
                self._entries.append(_Entry(replace(candidate), 1))

        for entry in self._entries:
            if any(_is_close(entry.marker, candidate) for candidate in current):
                continue
            if len(current) < self.max_markers:
                current.append(replace(entry.marker))

        return current


def drop_low_confidence(markers) -> list[MarkerInfo]:
    """Copies of the markers, unrecognised where the confidence is below 0.5."""
    return [
        replace(marker, marker_id=-1) if marker.cf < CONFIDENCE_THRESHOLD else replace(marker)
        for marker in markers
    ]


def select_best_marker(markers) -> MarkerInfo | None:
    """The recognised marker with the highest confidence, the first on ties."""
    best = None
    for marker in markers:
        if marker.marker_id == -1:
            continue
        if best is None or best.cf < marker.cf:
            best = marker
    return best