"""Camera calibration, labelling, square detection, pattern sampling and template matching for fiducial markers."""

__version__ = "0.1.0"

__all__ = [
    "camera",
    "contour",
    "history",
    "labeling",
    "opengl",
    "pixels",
    "sampling",
    "templates",
]