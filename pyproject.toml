[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "objectmapping"
version = "0.1.0"
description = "Gaussian object maps, mask overlap matching and object projection for object-level SLAM"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = [
    "slam",
    "object mapping",
    "instance matching",
    "gaussian object",
    "triangulation",
    "computer vision",
]
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
    "Topic :: Scientific/Engineering :: Image Recognition",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["objectmapping"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
