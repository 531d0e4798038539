# markertrack

Building blocks for detecting square fiducial markers in camera images, from a
raw frame to marker candidates with their corners and a template match.

## Modules

- **`markertrack.camera`**: `Camera` holds the image size, the camera matrix
  `mat` and the distortion coefficients.
  - `load_from_file` reads an OpenCV XML calibration when the path ends in
    `xml`, and a text calibration file otherwise. The two readers are also
    available as `load_opencv_calib` and `load_artk_calib`.
  - `observ_to_ideal` removes lens distortion from a pixel position.
  - `ideal_to_observ` applies the distortion and returns normalised camera
    coordinates.
  - `change_frame_size` rescales the intrinsics for a new frame width.
  - `clone` returns an independent copy.
  - `settings_text` describes the parameters in a few lines.

  Files that cannot be read raise `CalibrationError`.
- **`markertrack.pixels`**: the `PixelFormat` enum (LUM, RGB565, BGR, RGB,
  ABGR, BGRA, RGBA) and these helpers:
  - `rgb565_to_rgb` and `rgb565_luminance_table` for RGB565 frames;
  - `to_intensity` turns a frame into an intensity array; colour formats sum
    three channels.
  - `sample_rgb` reads one pixel as a BGR triple.
- **`markertrack.opengl`**: `transformation_to_opengl` turns a 3x4 pose into a
  16-element column-major model-view matrix. `projection_to_opengl` builds a
  column-major projection from already decomposed intrinsic and extrinsic
  camera matrices and near/far planes.
- **`markertrack.labeling`**: `label_image` thresholds a frame and labels
  8-connected dark regions. It returns a `LabelResult` with the label image,
  and the area, centroid and bounding box of each region. Options:
  - half-resolution processing;
  - `Vignetting` threshold correction.

  It raises `LabelingOverflow` when more than `work_size` provisional labels
  are needed.
- **`markertrack.contour`**: `detect_candidates` keeps labelled regions within
  the area limits that do not touch the frame. It traces each one with
  `get_contour` and finds four corners with `get_vertex` and `check_square`.
  Where two regions share nearly the same centre, it drops the smaller one.
  Results are `MarkerCandidate` objects; failures inside raise `ContourError`.
- **`markertrack.history`**: these work on `MarkerInfo` records.
  - `MarkerHistory.update` merges one frame's detections with markers
    remembered from the last few frames. A weak detection takes over a nearby
    remembered identity, and markers that briefly drop out are re-added.
  - `drop_low_confidence` marks detections below 0.5 confidence as
    unrecognised.
  - `select_best_marker` picks the recognised marker with the highest
    confidence.
- **`markertrack.sampling`**:
  - `compute_homography` maps four points onto four others.
  - `extract_pattern` unwarps the inside of a marker into a small BGR
    pattern. It leaves out the border and averages denser samples for larger
    markers.
  - `downsample_pattern` reduces a 6x6, 12x12 or 18x18 pattern to a 6x6 grey
    image.

  Failures raise `SamplingError`.
- **`markertrack.templates`**: `PatternLibrary` keeps template patterns in a
  fixed number of slots, each pattern in four rotations.
  - `load` and `load_text` read a pattern into the first free slot.
  - `free`, `activate` and `deactivate` manage slots.
  - `match` finds the best active pattern and rotation for an extracted
    pattern and returns a `MatchResult`.

  Matching can compare colour or grey (`TemplateMatchingMode`), optionally
  through principal components. Errors raise `PatternError`.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Example

```python
from markertrack.camera import Camera
from markertrack.contour import detect_candidates
from markertrack.labeling import label_image
from markertrack.pixels import PixelFormat
from markertrack.sampling import extract_pattern

camera = Camera()
camera.load_from_file("camera.cal")
camera.change_frame_size(320, 240)
print(camera.settings_text())

with open("frame.raw", "rb") as fh:
    frame = fh.read()

labels = label_image(frame, 320, 240, 150, PixelFormat.LUM)
for candidate in detect_candidates(labels, 320, 240):
    print(candidate.area, candidate.pos, candidate.corners)
    pattern = extract_pattern(
        frame, 320, 240, PixelFormat.LUM,
        candidate.x_coord, candidate.y_coord, candidate.vertex,
    )
```

### Text calibration format

A text calibration file is laid out as follows:

- Its first line starts with the header in `markertrack.camera.CALIB_HEADER`.
- Then come, separated by white space:
  - the image width and height;
  - the principal point;
  - the focal lengths;
  - six distortion coefficients;
  - the number of undistortion iterations, which is capped at 20.

## What it does not do

The package provides the separate detection steps, not a complete tracker.
- It has no single tracker object that runs the whole pipeline on a frame.
- It does not estimate the camera pose from the marker corners.
- It does not decode ID-coded markers from a sampled pattern.
- It has no command-line program.