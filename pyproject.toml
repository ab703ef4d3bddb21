[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sdfmap"
version = "0.1.0"
description = "Sparse voxel layers with Euclidean signed distance field propagation from TSDF or occupancy data, and ASCII PLY mesh export."
requires-python = ">=3.10"
keywords = ["esdf", "tsdf", "voxel", "signed distance field", "occupancy", "ply", "mapping"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Processing",
]
dependencies = [
    "numpy",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["sdfmap"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
