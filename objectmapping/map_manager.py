"""Creation and update of Gaussian objects from matched frame instances."""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

from objectmapping.gaussian_object import GaussianObject
from objectmapping.geometry import Rect
from objectmapping.instances import CameraView, FrameInstance

MIN_OBSERVATIONS = 2


def _view_of(instance: FrameInstance) -> CameraView:
    if instance.view is None:
        raise ValueError("the instance has no camera view")
    return instance.view


def point_to_ray(
    pt: Sequence[float], rwc, fx: float, fy: float, cx: float, cy: float
) -> np.ndarray:
    """Unit viewing ray of an image point, rotated into world coordinates."""
    ray = np.array([(pt[0] - cx) / fx, (pt[1] - cy) / fy, 1.0])
    ray = np.asarray(rwc, dtype=float).reshape(3, 3) @ ray
    return ray / np.linalg.norm(ray)


def triangulate_point(xn1, xn2, tcw1, tcw2) -> np.ndarray:
    """Linear triangulation of two normalised image points seen from two poses.

    Raises ValueError when the solution lies at infinity.
    """
    xn1 = np.asarray(xn1, dtype=float).reshape(-1)
    xn2 = np.asarray(xn2, dtype=float).reshape(-1)
    t1 = np.asarray(tcw1, dtype=float).reshape(4, 4)
    t2 = np.asarray(tcw2, dtype=float).reshape(4, 4)
    a = np.stack(
        [
            xn1[0] * t1[2] - t1[0],
            xn1[1] * t1[2] - t1[1],
            xn2[0] * t2[2] - t2[0],
            xn2[1] * t2[2] - t2[1],
        ]
    )
    _, _, vt = np.linalg.svd(a)
    x = vt[3]
    if abs(x[3]) <= 1e-12 * np.linalg.norm(x):
        raise ValueError("the point cannot be triangulated")
    return x[:3] / x[3]


def instance_covariance(
    instance: FrameInstance, tcw, rwo, mean, invfx: float, invfy: float
) -> tuple[np.ndarray, int]:
    """Covariance contribution of an instance's contour, with the contour size."""
    tcw = np.asarray(tcw, dtype=float).reshape(4, 4)
    rwo = np.asarray(rwo, dtype=float).reshape(3, 3)
    mean = np.asarray(mean, dtype=float).reshape(3)
    rcw = tcw[:3, :3]
    ow = -rcw.T @ tcw[:3, 3]
    depth = float(np.linalg.norm(mean - ow))

    diag = np.zeros(3)
    px, py = instance.pt
    for cx, cy in instance.contour:
        x = (cx - px) * invfx
        y = (cy - py) * invfy
        z = (x + y) / 2.0
        diag += (x * x, y * y, z * z)
    cov = depth * depth * rwo.T @ rcw.T @ np.diag(diag) @ rcw @ rwo
    return cov, len(instance.contour)


def rect_covariance(rect: Rect, mean, tcw, invfx: float, invfy: float) -> np.ndarray:
    """Covariance of a box seen at the object's depth, rotated into world axes."""
    tcw = np.asarray(tcw, dtype=float).reshape(4, 4)
    r = tcw[:3, :3]
    ow = -r.T @ tcw[:3, 3]
    depth = float(np.linalg.norm(np.asarray(mean, dtype=float).reshape(3) - ow))
    scale_x = rect.width * depth * invfx
    scale_y = rect.height * depth * invfy
    scale_z = (scale_x + scale_y) / 2.0
    cov = np.diag([scale_x**2 * 0.25, scale_y**2 * 0.25, scale_z**2 * 0.25])
    return r.T @ cov @ r


def projection_jacobian(r, x, fx: float, fy: float) -> np.ndarray:
    """Jacobian of the negated pixel projection with respect to a world point."""
    r = np.asarray(r, dtype=float).reshape(3, 3)
    px, py, pz = np.asarray(x, dtype=float).reshape(3)
    j = np.array([[fx, 0.0, -px / pz * fx], [0.0, fy, -py / pz * fy]])
    return -1.0 / pz * j @ r


def _normalised(instance: FrameInstance, view: CameraView) -> np.ndarray:
    x, y = instance.pt
    return np.array([(x - view.cx) / view.fx, (y - view.cy) / view.fy, 1.0])


def initialize_object(prev: FrameInstance, curr: FrameInstance) -> GaussianObject:
    """Create an object from the same instance matched in two frames."""
    v1 = _view_of(prev)
    v2 = _view_of(curr)
    mean = triangulate_point(_normalised(prev, v1), _normalised(curr, v2), v1.pose, v2.pose)
    rwo = v1.rotation.T
    cov1, n1 = instance_covariance(prev, v1.pose, rwo, mean, 1.0 / v1.fx, 1.0 / v1.fy)
    cov2, n2 = instance_covariance(curr, v2.pose, rwo, mean, 1.0 / v2.fx, 1.0 / v2.fy)
    obj = GaussianObject(mean, cov1 + cov2, rwo)
    obj.n_contour = n1 + n2
    obj.n_obs = MIN_OBSERVATIONS
    return obj


def update_object_incremental(obj: GaussianObject, curr: FrameInstance) -> None:
    """Add a new instance's contour to the object's accumulated covariance."""
    view = _view_of(curr)
    old_cov = obj.covariance
    ncov, count = instance_covariance(
        curr, view.pose, obj.rwo, obj.position, 1.0 / view.fx, 1.0 / view.fy
    )
    obj.n_contour += count
    obj.covariance = ncov + old_cov


def update_object_ekf(obj: GaussianObject, curr: FrameInstance) -> tuple[np.ndarray, np.ndarray]:
    """Compute the Kalman innovation and gain for a new instance.

    The state itself is left unchanged; only the observation count grows.
    Returns the innovation (2,) and the gain (3, 2).
    """
    view = _view_of(curr)
    u = obj.position
    cov = obj.covariance
    z = np.array(curr.pt, dtype=float)

    rcw = view.rotation
    p = rcw @ u + view.translation
    tmp = view.k @ p
    h = tmp[:2] / tmp[2]
    jac = projection_jacobian(rcw, p, view.fx, view.fy)

    noise = np.diag(
        [curr.rect.width * curr.rect.width * 0.25, curr.rect.height * curr.rect.height * 0.25]
    )
    innovation = z - h
    s = jac @ cov @ jac.T + noise
    gain = cov @ jac.T @ np.linalg.inv(s)
    obj.n_obs += 1
    return innovation, gain


__all__ = [
    "point_to_ray",
    "triangulate_point",
    "instance_covariance",
    "rect_covariance",
    "projection_jacobian",
    "initialize_object",
    "update_object_incremental",
    "update_object_ekf",
]

_ = math  # keeps the math import available for numeric helpers