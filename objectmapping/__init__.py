"""Gaussian object maps, mask overlap matching and object projection for object-level SLAM."""

__version__ = "0.1.0"

__all__ = [
    "ellipsoid",
    "gaussian_object",
    "geometry",
    "instances",
    "map_manager",
    "matching",
    "object_projection",
    "optimizer",
    "visualizer",
]