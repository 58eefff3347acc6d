"""Image-space geometry for drawing Gaussian objects."""

from __future__ import annotations

import numpy as np

from objectmapping.ellipsoid import ellipsoid_points
from objectmapping.gaussian_object import Ellipse2D, GaussianObject


def projected_ellipse(obj: GaussianObject, k, rcw, tcw) -> Ellipse2D:
    """The ellipse to draw for ``obj`` in a camera: centre, semi-axes and angle."""
    return obj.project_2d(k, rcw, tcw)


def project_ellipsoid(
    obj: GaussianObject, k, r, t, scale: float = 1.0
) -> tuple[np.ndarray, np.ndarray]:
    """Project the object's centre and sampled ellipsoid surface into the image.

    Returns the centre pixel, shape (2,), and the outline polyline, shape (N, 2).
    """
    if obj.n_contour < 2:
        raise ValueError("the object needs at least two contour points")
    k = np.asarray(k, dtype=float).reshape(3, 3)
    r = np.asarray(r, dtype=float).reshape(3, 3)
    t = np.asarray(t, dtype=float).reshape(3)
    cov = obj.covariance / (obj.n_contour - 1)
    position = obj.position

    surface = ellipsoid_points(cov, position, scale)
    image = (surface @ r.T + t) @ k.T
    outline = image[:, :2] / image[:, 2:3]

    centre = k @ (r @ position + t)
    return centre[:2] / centre[2], outline