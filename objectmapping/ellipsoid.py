"""Sampling of points on the surface of a 3D covariance ellipsoid."""

from __future__ import annotations

from typing import Sequence

import numpy as np


def ellipsoid_points(
    covariance: Sequence[Sequence[float]],
    center: Sequence[float],
    scale: float = 1.0,
    resolution: int = 20,
) -> np.ndarray:
    """Return ``(resolution + 1) ** 2`` surface points of the ellipsoid, shape (N, 3).

    Points are ordered by polar angle first, then azimuth.
    """
    if resolution < 1:
        raise ValueError("resolution must be at least 1")
    cov = np.asarray(covariance, dtype=float)
    if cov.shape != (3, 3):
        raise ValueError("covariance must be a 3x3 matrix")
    values, vectors = np.linalg.eigh(cov)
    # Descending eigenvalues, with each eigenvector stored as a row.
    values = values[::-1]
    rows = vectors[:, ::-1].T
    transform = scale * rows @ np.diag(np.sqrt(values))

    theta = np.arange(resolution + 1) * (np.pi / resolution)
    phi = np.arange(resolution + 1) * (2.0 * np.pi / resolution)
    theta_grid, phi_grid = np.meshgrid(theta, phi, indexing="ij")
    unit = np.stack(
        [
            np.sin(theta_grid) * np.cos(phi_grid),
            np.sin(theta_grid) * np.sin(phi_grid),
            np.cos(theta_grid),
        ],
        axis=-1,
    ).reshape(-1, 3)
    return unit @ transform.T + np.asarray(center, dtype=float)