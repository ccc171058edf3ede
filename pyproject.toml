[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "shelfbot"
version = "0.1.0"
description = "Pick-and-place workflow planning for a shelf-serving dual-arm robot: pose geometry, frame bookkeeping and pick/place/scan strategies."
requires-python = ">=3.10"
keywords = ["robotics", "pick and place", "transforms", "quaternion", "motion planning"]
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
    "Topic :: Scientific/Engineering",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["shelfbot"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
