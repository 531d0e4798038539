[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "markertrack"
version = "0.1.0"
description = "Square fiducial marker detection: camera calibration, image labelling, contour and corner extraction, pattern sampling and template matching."
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = [
    "augmented reality",
    "fiducial markers",
    "marker detection",
    "computer vision",
    "camera calibration",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Recognition",
    "Topic :: Multimedia :: Graphics",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["markertrack"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
