"""Camera calibration: loading, lens distortion and frame-size changes."""

from __future__ import annotations

import copy
import os
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field

import numpy as np

CALIB_HEADER = "ARToolKitPlus_CamCal_Rev02"
MAX_UNDIST_ITERATIONS = 20


class CalibrationError(Exception):
    """A calibration file could not be read."""


@dataclass(eq=False)
class Camera:
    """Intrinsic camera parameters with a polynomial distortion model."""

    xsize: int = -1
    ysize: int = -1
    mat: np.ndarray = field(default_factory=lambda: np.zeros((3, 4)))
    cc: np.ndarray = field(default_factory=lambda: np.zeros(2))
    fc: np.ndarray = field(default_factory=lambda: np.zeros(2))
    kc: np.ndarray = field(default_factory=lambda: np.zeros(6))
    undist_iterations: int = 0
    file_name: str = ""

    def load_artk_calib(self, path) -> None:
        """Load a text calibration file that starts with the calibration header."""
        try:
            with open(path, encoding="utf-8") as stream:
                text = stream.read()
        except (OSError, UnicodeDecodeError) as err:
            raise CalibrationError(f"cannot read camera calibration file {path}") from err

        header, _, rest = text.partition("\n")
        if header[: len(CALIB_HEADER)] != CALIB_HEADER:
            raise CalibrationError(f"{path} is not a camera calibration file")

        tokens = rest.split()
        if len(tokens) < 13:
            raise CalibrationError("could not read camera calibration file")
        try:
            xsize, ysize = int(tokens[0]), int(tokens[1])
            cc = [float(v) for v in tokens[2:4]]
            fc = [float(v) for v in tokens[4:6]]
            kc = [float(v) for v in tokens[6:12]]
            iterations = int(tokens[12])
        except ValueError as err:
            raise CalibrationError("could not read camera calibration file") from err

        self.xsize, self.ysize = xsize, ysize
        self.cc = np.array(cc)
        self.fc = np.array(fc)
        self.kc = np.array(kc)
        self.undist_iterations = min(iterations, MAX_UNDIST_ITERATIONS)
        self.mat[0, 0] = fc[0]
        self.mat[1, 1] = fc[1]
        self.mat[0, 2] = cc[0]
        self.mat[1, 2] = cc[1]
        self.mat[2, 2] = 1.0
        self.file_name = os.fspath(path)

    def load_opencv_calib(self, path) -> None:
        """Load an OpenCV XML calibration (image size, camera matrix, distortion)."""
        try:
            root = ET.parse(path).getroot()
        except (OSError, ET.ParseError) as err:
            raise CalibrationError(f"could not read camera calibration file: {err}") from err
        if root.tag != "opencv_storage":
            raise CalibrationError("could not read camera calibration file: no opencv_storage")

        def text_of(tag: str) -> str:
            element = root.find(tag)
            if element is None or element.text is None:
                raise CalibrationError(f"could not read camera calibration file: no {tag}")
            return element.text

        try:
            xsize = int(text_of("image_width").strip())
            ysize = int(text_of("image_height").strip())
            dist = [float(v) for v in text_of("distortion_coefficients/data").split()]
            matrix = [float(v) for v in text_of("camera_matrix/data").split()]
        except ValueError as err:
            raise CalibrationError(f"could not read camera calibration file: {err}") from err
        if len(dist) < 4 or len(matrix) < 9:
            raise CalibrationError("could not read camera calibration file: too few values")

        self.xsize, self.ysize = xsize, ysize
        self.kc = np.array(dist[:4] + [0.0, 10.0])
        self.mat[:, :3] = np.array(matrix[:9]).reshape(3, 3)
        self.file_name = os.fspath(path)

    def load_from_file(self, path) -> None:
        """Load either format, choosing OpenCV XML by an "xml" suffix."""
        if os.fspath(path)[-3:] == "xml":
            self.load_opencv_calib(path)
        else:
            self.load_artk_calib(path)

    def observ_to_ideal(self, ox: float, oy: float) -> tuple[float, float]:
        """Remove lens distortion from an observed pixel position."""
        if self.undist_iterations <= 0:
            return ox, oy
        fc0, fc1 = float(self.fc[0]), float(self.fc[1])
        cc0, cc1 = float(self.cc[0]), float(self.cc[1])
        k1, k2, p1, p2, k3 = (float(self.kc[i]) for i in (0, 1, 2, 3, 4))

        xd0 = (ox - cc0) / fc0
        xd1 = (oy - cc1) / fc1
        x0, x1 = xd0, xd1
        for _ in range(self.undist_iterations):
            x0_sq = x0 * x0
            x1_sq = x1 * x1
            x0_x1 = x0 * x1
            r_2 = x0_sq + x1_sq
            r_2_sq = r_2 * r_2
            k_radial = 1 + k1 * r_2 + k2 * r_2_sq + k3 * (r_2 * r_2_sq)
            delta0 = 2 * p1 * x0_x1 + p2 * (r_2 + 2 * x0_sq)
            delta1 = p1 * (r_2 + 2 * x1_sq) + 2 * p2 * x0_x1
            x0 = (xd0 - delta0) / k_radial
            x1 = (xd1 - delta1) / k_radial
        return x0 * fc0 + cc0, x1 * fc1 + cc1

    def ideal_to_observ(self, ix: float, iy: float) -> tuple[float, float]:
        """Apply lens distortion; the result is in normalised camera coordinates."""
        xu0 = (ix - float(self.cc[0])) / float(self.fc[0])
        xu1 = (iy - float(self.cc[1])) / float(self.fc[1])
        kc = [float(v) for v in self.kc]

        r2 = xu0 * xu0 + xu1 * xu1
        r4 = r2 * r2
        r6 = r4 * r2
        cdist = 1 + kc[0] * r2 + kc[1] * r4 + kc[4] * r6
        a1 = 2 * xu0 * xu1
        a2 = r2 + 2 * (xu0 * xu0)
        a3 = r2 + 2 * (xu1 * xu1)
        return xu0 * cdist + (kc[2] * a1 + kc[3] * a2), xu1 * cdist + (kc[2] * a3 + kc[3] * a1)

    def clone(self) -> Camera:
        """Return an independent copy."""
        return copy.deepcopy(self)

    def change_frame_size(self, width: int, height: int) -> None:
        """Rescale the intrinsics for a frame of a different width."""
        if width <= 0 or height <= 0:
            raise ValueError("frame size must be positive")
        scale = width / self.xsize
        self.xsize = width
        self.ysize = height
        self.mat[0, :] *= scale
        self.mat[1, :] *= scale
        self.cc = self.cc * scale
        self.fc = self.fc * scale

    def settings_text(self) -> str:
        """Describe the camera parameters in a few readable lines."""
        kc = " ".join(f"{float(v):.4f}" for v in self.kc)
        return (
            f"CamSize {self.xsize} , {self.ysize}\n"
            f"cc = [{self.mat[0, 2]:.2f}  {self.mat[1, 2]:.2f}]  "
            f"fc = [{self.mat[0, 0]:.2f}  {self.mat[1, 1]:.2f}]\n"
            f"kc = [{kc}]\n"
            f"undist_iterations = {self.undist_iterations}"
        )