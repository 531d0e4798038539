"""Template patterns loaded from text files and matched against marker interiors."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

import numpy as np

EVEC_MAX = 10
PCA_VARIANCE = 0.90
_MIN_POWER = 0.0000001


class TemplateMatchingMode(Enum):
    """Whether patterns are compared per colour channel or as grey images."""

    COLOR = "color"
    MONO = "mono"


class PatternError(Exception):
    """A pattern could not be loaded or the pattern slot is not in use."""


@dataclass(frozen=True)
class MatchResult:
    """Best matching pattern slot, its rotation (0-3) and the correlation."""

    code: int
    dir: int
    cf: float


@dataclass
class _Pattern:
    color: np.ndarray
    power: np.ndarray
    mono: np.ndarray
    mono_power: np.ndarray
    active: bool = True

    @property
    def normalised(self) -> np.ndarray:
        return self.color / self.power[:, None]


def _power(vectors: np.ndarray) -> np.ndarray:
    power = np.sqrt((vectors.astype(np.float64) ** 2).sum(axis=1))
    power[power == 0.0] = _MIN_POWER
    return power


class PatternLibrary:
    """A fixed number of slots holding template patterns in four rotations.

    Pattern text holds, for each of the four rotations, the three colour
    channels as ``pattern_height`` rows of ``pattern_width`` integers.
    """

    def __init__(
        self,
        pattern_width: int = 16,
        pattern_height: int = 16,
        max_patterns: int = 50,
        binary_threshold: int | None = None,
        mode: TemplateMatchingMode = TemplateMatchingMode.COLOR,
        use_pca: bool = False,
    ):
        if pattern_width <= 0 or pattern_height <= 0:
            raise ValueError("pattern size must be positive")
        if max_patterns < 0:
            raise ValueError("max_patterns must not be negative")
        self.pattern_width = pattern_width
        self.pattern_height = pattern_height
        self.binary_threshold = binary_threshold
        self.mode = mode
        self.use_pca = use_pca
        self._slots: list[_Pattern | None] = [None] * max_patterns
        self._evec: np.ndarray | None = None

    @property
    def pattern_count(self) -> int:
        """Number of slots holding a pattern, active or not."""
        return sum(slot is not None for slot in self._slots)

    @property
    def eigenvector_dim(self) -> int:
        """Number of principal components in use, 0 when none are computed."""
        return 0 if self._evec is None else self._evec.shape[0]

    @property
    def _pixels(self) -> int:
        return self.pattern_width * self.pattern_height

    def load(self, path) -> int:
        """Load a pattern file into the first free slot and return the slot number."""
        try:
            with open(path, encoding="ascii") as stream:
                text = stream.read()
        except (OSError, UnicodeDecodeError) as err:
            raise PatternError(f"cannot read pattern file {path}") from err
        return self.load_text(text)

    def load_text(self, text: str) -> int:
        """Load a pattern from its text form into the first free slot."""
        try:
            patno = self._slots.index(None)
        except ValueError:
            raise PatternError("no free pattern slot") from None

        needed = 4 * 3 * self._pixels
        tokens = text.split()
        if len(tokens) < needed:
            raise PatternError("pattern data read error")
        try:
            values = np.array([int(token) for token in tokens[:needed]], dtype=np.int64)
        except ValueError as err:
            raise PatternError("pattern data read error") from err

        if self.binary_threshold is not None:
            values = np.where(values < self.binary_threshold, 0, 255)
        inverted = 255 - values

        raw = inverted.reshape(4, 3, self.pattern_height, self.pattern_width)
        color = raw.transpose(0, 2, 3, 1).reshape(4, self._pixels * 3)
        mono = raw.sum(axis=1).reshape(4, self._pixels) // 3

        mean = color.sum(axis=1) // (self._pixels * 3)
        color = color - mean[:, None]
        mono = mono - mean[:, None]

        self._slots[patno] = _Pattern(
            color=color,
            power=_power(color),
            mono=mono,
            mono_power=_power(mono),
        )
        return patno

    def _slot(self, patno: int) -> _Pattern:
        if not 0 <= patno < len(self._slots) or self._slots[patno] is None:
            raise PatternError(f"pattern slot {patno} is empty")
        return self._slots[patno]

    def free(self, patno: int) -> None:
        """Empty a slot and recompute the principal components."""
        self._slot(patno)
        self._slots[patno] = None
        self._generate_eigenvectors()

    def activate(self, patno: int) -> None:
        """Let a loaded pattern take part in matching again."""
        self._slot(patno).active = True

    def deactivate(self, patno: int) -> None:
        """Keep a loaded pattern out of matching without freeing it."""
        self._slot(patno).active = False

    def _generate_eigenvectors(self) -> None:
        loaded = [slot for slot in self._slots if slot is not None]
        if len(loaded) < 4:
            self._evec = None
            return
        data = np.vstack([slot.normalised for slot in loaded])
        try:
            _, singular, vt = np.linalg.svd(data, full_matrices=False)
        except np.linalg.LinAlgError:
            self._evec = None
            return
        variance = singular**2
        total = variance.sum()
        if total == 0.0:
            self._evec = None
            return
        fractions = np.cumsum(variance / total)
        dim = len(fractions)
        for index, cumulative in enumerate(fractions):
            if cumulative > PCA_VARIANCE or index == EVEC_MAX - 1:
                dim = index + 1
                break
        self._evec = vt[:dim]

    def match(self, data) -> MatchResult:
        """Find the active pattern and rotation that best match a BGR pattern image.

        A featureless input gives code 0, dir 0 and confidence -1; when no
        pattern correlates positively the code and dir are -1.
        """
        values = np.asarray(data, dtype=np.int64).reshape(-1)
        if values.size != self._pixels * 3:
            raise ValueError(f"pattern data must hold {self._pixels * 3} values")

        inverted = 255 - values
        ave = int(inverted.sum()) // (self._pixels * 3)
        if self.mode is TemplateMatchingMode.COLOR:
            vector = inverted - ave
        else:
            vector = inverted.reshape(self._pixels, 3).sum(axis=1) // 3 - ave

        datapow = math.sqrt(float((vector.astype(np.float64) ** 2).sum()))
        if datapow == 0.0:
            return MatchResult(code=0, dir=0, cf=-1.0)

        candidates = [(k, slot) for k, slot in enumerate(self._slots) if slot is not None and slot.active]

        if self.mode is TemplateMatchingMode.COLOR and self.use_pca and self._evec is not None:
            return self._match_pca(vector, datapow, candidates)

        best = MatchResult(code=-1, dir=-1, cf=0.0)
        for k, slot in candidates:
            if self.mode is TemplateMatchingMode.COLOR:
                sums, powers = slot.color @ vector, slot.power
            else:
                sums, powers = slot.mono @ vector, slot.mono_power
            for rotation in range(4):
                score = float(sums[rotation]) / float(powers[rotation]) / datapow
                if score > best.cf:
                    best = MatchResult(code=k, dir=rotation, cf=score)
        return best

    def _match_pca(self, vector: np.ndarray, datapow: float, candidates) -> MatchResult:
        projected = (self._evec @ vector) / datapow
        best_dist = 10000.0
        code, rotation = -1, -1
        for k, slot in candidates:
            epat = slot.normalised @ self._evec.T
            for r in range(4):
                dist = float(((projected - epat[r]) ** 2).sum())
                if dist < best_dist:
                    best_dist, code, rotation = dist, k, r
        if code < 0:
            return MatchResult(code=-1, dir=-1, cf=0.0)
        slot = self._slots[code]
        score = float(slot.color[rotation] @ vector) / float(slot.power[rotation]) / datapow
        return MatchResult(code=code, dir=rotation, cf=score)