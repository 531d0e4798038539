"""Conversion of pose and camera matrices into OpenGL column-major form."""

from __future__ import annotations

import numpy as np


def transformation_to_opengl(para) -> np.ndarray:
    """Turn a 3x4 pose matrix into a 16-element column-major model-view matrix."""
    para = np.asarray(para, dtype=float)
    if para.shape != (3, 4):
        raise ValueError("pose matrix must be 3x4")
    gl = np.zeros((4, 4))
    gl[:, :3] = para.T
    gl[3, 3] = 1.0
    return gl.ravel()


def projection_to_opengl(icpara, trans, width: int, height: int, near: float, far: float) -> np.ndarray:
    """Build a column-major OpenGL projection from decomposed camera matrices.

    ``icpara`` holds the intrinsic part (its leading 3x3 block is used) and
    ``trans`` the 3x4 extrinsic part of the camera projection.
    """
    icpara = np.asarray(icpara, dtype=float)
    trans = np.asarray(trans, dtype=float)
    if icpara.shape[0] != 3 or icpara.shape[1] < 3:
        raise ValueError("intrinsic matrix must have at least 3x3 entries")
    if trans.shape != (3, 4):
        raise ValueError("extrinsic matrix must be 3x4")
    if width <= 0 or height <= 0:
        raise ValueError("frame size must be positive")
    if far == near:
        raise ValueError("near and far clip planes must differ")
    if icpara[2, 2] == 0:
        raise ValueError("intrinsic matrix is degenerate")

    p = icpara[:3, :3] / icpara[2, 2]
    q = np.array(
        [
            [2.0 * p[0, 0] / width, 2.0 * p[0, 1] / width, 2.0 * p[0, 2] / width - 1.0, 0.0],
            [0.0, 2.0 * p[1, 1] / height, 2.0 * p[1, 2] / height - 1.0, 0.0],
            [0.0, 0.0, (far + near) / (far - near), -2.0 * far * near / (far - near)],
            [0.0, 0.0, 1.0, 0.0],
        ]
    )
    projection = q[:, :3] @ trans
    projection[:, 3] += q[:, 3]
    return projection.T.ravel()