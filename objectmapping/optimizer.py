"""Refinement of a Gaussian object's position from its image observations."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from objectmapping.gaussian_object import GaussianObject
from objectmapping.instances import FrameInstance

CHI2_THRESHOLD = 5.991
HUBER_DELTA = math.sqrt(CHI2_THRESHOLD)
ROUNDS = 4
ITERATIONS_PER_ROUND = 10
_MAX_TRIALS = 10
_TAU = 1e-5


@dataclass
class MonoObjectEdge:
    """Reprojection error of an object centre in one calibrated view."""

    measurement: np.ndarray
    pose: np.ndarray
    fx: float
    fy: float
    cx: float
    cy: float
    information: np.ndarray = field(default_factory=lambda: np.eye(2))

    def __post_init__(self) -> None:
        self.measurement = np.asarray(self.measurement, dtype=float).reshape(2)
        self.pose = np.asarray(self.pose, dtype=float).reshape(4, 4)
        self.information = np.asarray(self.information, dtype=float).reshape(2, 2)

    def _to_camera(self, position) -> np.ndarray:
        return self.pose[:3, :3] @ np.asarray(position, dtype=float).reshape(3) + self.pose[:3, 3]

    def project(self, pos_c) -> np.ndarray:
        """Pixel of a point given in camera coordinates."""
        x, y, z = np.asarray(pos_c, dtype=float).reshape(3)
        return np.array([self.fx * x / z + self.cx, self.fy * y / z + self.cy])

    def error(self, position) -> np.ndarray:
        """Measurement minus the projection of a world point."""
        return self.measurement - self.project(self._to_camera(position))

    def jacobian(self, position) -> np.ndarray:
        """Derivative of the error with respect to the world point, shape (2, 3)."""
        rot = self.pose[:3, :3]
        x, y, z = self._to_camera(position)
        z_sq = z * z
        return np.stack(
            [
                -self.fx * rot[0] / z + self.fx * x * rot[2] / z_sq,
                -self.fy * rot[1] / z + self.fy * y * rot[2] / z_sq,
            ]
        )

    def is_depth_positive(self, position) -> bool:
        """True when the point lies in front of the camera."""
        return bool(self._to_camera(position)[2] > 0.0)

    def chi2(self, position) -> float:
        err = self.error(position)
        return float(err @ self.information @ err)


def _huber_cost(s: float) -> float:
    d2 = HUBER_DELTA * HUBER_DELTA
    if s <= d2:
        return s
    return 2.0 * HUBER_DELTA * math.sqrt(s) - d2


def _huber_weight(s: float) -> float:
    if s <= HUBER_DELTA * HUBER_DELTA:
        return 1.0
    return HUBER_DELTA / math.sqrt(s)


def _total_cost(edges: list[MonoObjectEdge], x: np.ndarray) -> float:
    with np.errstate(divide="ignore", invalid="ignore"):
        total = sum(_huber_cost(edge.chi2(x)) for edge in edges)
    return total if math.isfinite(total) else math.inf


def _levenberg_marquardt(
    edges: list[MonoObjectEdge], start: np.ndarray, iterations: int
) -> np.ndarray:
    x = start.copy()
    lam: Optional[float] = None
    nu = 2.0
    for _ in range(iterations):
        hessian = np.zeros((3, 3))
        gradient = np.zeros(3)
        for edge in edges:
            err = edge.error(x)
            jac = edge.jacobian(x)
            weight = _huber_weight(float(err @ edge.information @ err))
            omega = weight * edge.information
            hessian += jac.T @ omega @ jac
            gradient += jac.T @ omega @ err
        if not (np.all(np.isfinite(hessian)) and np.all(np.isfinite(gradient))):
            break
        if lam is None:
            lam = _TAU * max(float(np.max(np.diag(hessian))), 1.0)
        cost = _total_cost(edges, x)
        accepted = False
        for _ in range(_MAX_TRIALS):
            try:
                step = np.linalg.solve(hessian + lam * np.eye(3), -gradient)
            except np.linalg.LinAlgError:
                lam *= nu
                nu *= 2.0
                continue
            candidate = x + step
            new_cost = _total_cost(edges, candidate)
            predicted = 0.5 * float(step @ (lam * step - gradient)) + 1e-3
            rho = (cost - new_cost) / predicted
            if math.isfinite(new_cost) and rho > 0.0:
                x = candidate
                lam *= max(1.0 / 3.0, 1.0 - (2.0 * rho - 1.0) ** 3)
                nu = 2.0
                accepted = True
                break
            lam *= nu
            nu *= 2.0
        if not accepted:
            break
    return x


def _edge_for(instance: FrameInstance) -> MonoObjectEdge:
    view = instance.view
    if view is None:
        raise ValueError("the observation has no camera view")
    rect = instance.rect
    if rect.width <= 0 or rect.height <= 0:
        raise ValueError("the observation has an empty rectangle")
    information = np.diag([2.0 / rect.width, 2.0 / rect.height])
    return MonoObjectEdge(
        measurement=np.array(instance.pt, dtype=float),
        pose=view.pose,
        fx=view.fx,
        fy=view.fy,
        cx=view.cx,
        cy=view.cy,
        information=information,
    )


def optimize_object_position(obj: GaussianObject) -> None:
    """Move the object's mean to best fit the centres of its observations.

    Objects seen fewer than twice are left unchanged.
    """
    edges = [_edge_for(instance) for instance in obj.observations().values()]
    if len(edges) < 2:
        return
    start = obj.position
    estimate = start
    for _ in range(ROUNDS):
        # Every round restarts from the stored position.
        estimate = _levenberg_marquardt(edges, start, ITERATIONS_PER_ROUND)
    obj.position = estimate