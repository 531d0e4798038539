import numpy as np
import pytest

from markertrack.templates import (
    MatchResult,
    PatternError,
    PatternLibrary,
    TemplateMatchingMode,
)

SIZE = 6


def _orientations(seed):
    rng = np.random.default_rng(seed)
    return [rng.integers(0, 256, (SIZE, SIZE, 3)) for _ in range(4)]


def _pattern_text(orientations):
    lines = []
    for image in orientations:
        for channel in range(3):
            for row in image[:, :, channel]:
                lines.append(" ".join(str(int(v)) for v in row))
    return "\n".join(lines) + "\n"


def _library(**kwargs):
    return PatternLibrary(pattern_width=SIZE, pattern_height=SIZE, max_patterns=kwargs.pop("max_patterns", 8), **kwargs)


def test_slots_are_assigned_in_order():
    lib = _library()
    assert lib.load_text(_pattern_text(_orientations(1))) == 0
    assert lib.load_text(_pattern_text(_orientations(2))) == 1
    assert lib.pattern_count == 2


def test_full_library_raises():
    lib = _library(max_patterns=1)
    lib.load_text(_pattern_text(_orientations(1)))
    with pytest.raises(PatternError):
        lib.load_text(_pattern_text(_orientations(2)))


def test_truncated_text_raises():
    lib = _library()
    text = _pattern_text(_orientations(1))
    with pytest.raises(PatternError):
        lib.load_text(" ".join(text.split()[:-1]))


def test_non_numeric_text_raises():
    lib = _library()
    tokens = _pattern_text(_orientations(1)).split()
    tokens[5] = "abc"
    with pytest.raises(PatternError):
        lib.load_text(" ".join(tokens))


def test_load_from_file(tmp_path):
    orientations = _orientations(3)
    path = tmp_path / "marker.patt"
    path.write_text(_pattern_text(orientations))
    lib = _library()
    assert lib.load(path) == 0
    result = lib.match(orientations[2].astype(np.uint8))
    assert (result.code, result.dir) == (0, 2)


def test_missing_file_raises(tmp_path):
    with pytest.raises(PatternError):
        _library().load(tmp_path / "absent.patt")


@pytest.mark.parametrize("mode", list(TemplateMatchingMode))
def test_exact_pattern_matches_its_slot_and_rotation(mode):
    lib = _library(mode=mode)
    pats = [_orientations(seed) for seed in (10, 11, 12)]
    for p in pats:
        lib.load_text(_pattern_text(p))
    for code, p in enumerate(pats):
        for rotation in range(4):
            result = lib.match(p[rotation].astype(np.uint8))
            assert result.code == code
            assert result.dir == rotation
            assert result.cf == pytest.approx(1.0)


def test_featureless_input_gives_negative_confidence():
    lib = _library()
    lib.load_text(_pattern_text(_orientations(4)))
    result = lib.match(np.full((SIZE, SIZE, 3), 77, dtype=np.uint8))
    assert result == MatchResult(code=0, dir=0, cf=-1.0)


def test_wrong_data_size_raises():
    lib = _library()
    with pytest.raises(ValueError):
        lib.match(np.zeros(10, dtype=np.uint8))


def test_deactivated_pattern_is_skipped_and_can_return():
    lib = _library()
    p = _orientations(5)
    lib.load_text(_pattern_text(p))
    lib.deactivate(0)
    assert lib.match(p[0].astype(np.uint8)).code == -1
    lib.activate(0)
    assert lib.match(p[0].astype(np.uint8)).code == 0


def test_free_empties_slot_for_reuse():
    lib = _library()
    lib.load_text(_pattern_text(_orientations(6)))
    lib.load_text(_pattern_text(_orientations(7)))
    lib.free(0)
    assert lib.pattern_count == 1
    assert lib.load_text(_pattern_text(_orientations(8))) == 0


def test_operations_on_empty_slot_raise():
    lib = _library()
    with pytest.raises(PatternError):
        lib.free(0)
    with pytest.raises(PatternError):
        lib.activate(3)
    with pytest.raises(PatternError):
        lib.deactivate(100)


def test_binary_threshold_matches_thresholded_image():
    lib = _library(binary_threshold=128)
    p = _orientations(9)
    lib.load_text(_pattern_text(p))
    binary = np.where(p[1] < 128, 0, 255).astype(np.uint8)
    result = lib.match(binary)
    assert (result.code, result.dir) == (0, 1)
    assert result.cf == pytest.approx(1.0)


def test_eigenvectors_need_four_patterns():
    lib = _library()
    for seed in range(4):
        lib.load_text(_pattern_text(_orientations(20 + seed)))
    lib.free(3)
    assert lib.eigenvector_dim == 0


def test_pca_matching_finds_exact_pattern():
    lib = _library(use_pca=True)
    pats = [_orientations(30 + seed) for seed in range(5)]
    for p in pats:
        lib.load_text(_pattern_text(p))
    lib.free(4)
    assert 0 < lib.eigenvector_dim <= 10
    for code in range(4):
        result = lib.match(pats[code][3].astype(np.uint8))
        assert (result.code, result.dir) == (code, 3)
        assert result.cf == pytest.approx(1.0)