"""Objects modelled as 3D Gaussians and their projected 2D ellipses."""

from __future__ import annotations

import itertools
import math
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

import numpy as np

from objectmapping.geometry import Rect

if TYPE_CHECKING:
    from objectmapping.instances import FrameInstance, InstanceMask


@dataclass
class Ellipse2D:
    """An image ellipse: centre, 2D covariance, semi-axes and orientation."""

    center: np.ndarray
    cov2d: np.ndarray
    major: float
    minor: float
    angle_rad: float
    rect: Rect = field(default_factory=Rect)

    @property
    def angle_deg(self) -> float:
        return self.angle_rad * 180.0 / math.pi

    @property
    def axes(self) -> tuple[int, int]:
        """Semi-axes rounded to whole pixels."""
        return round(self.major), round(self.minor)

    def bounding_rect(self, chisq: float = 1.0) -> Rect:
        """Bounding box of the rotated ellipse with axes scaled by ``chisq``; stored in ``rect``."""
        x, y = float(self.center[0]), float(self.center[1])
        major = self.major * chisq
        minor = self.minor * chisq
        cos_t = math.cos(self.angle_rad)
        sin_t = math.sin(self.angle_rad)
        width = 2.0 * math.sqrt((major * cos_t) ** 2 + (minor * sin_t) ** 2)
        height = 2.0 * math.sqrt((major * sin_t) ** 2 + (minor * cos_t) ** 2)
        self.rect = Rect(
            int(x - width / 2.0), int(y - height / 2.0), int(width), int(height)
        )
        return self.rect

    def iou(self, other: "Ellipse2D") -> float:
        """Intersection over union of the two bounding rectangles."""
        inter = self.rect.intersection(other.rect)
        if inter.is_empty():
            return 0.0
        inter_area = inter.area()
        union = self.rect.area() + other.rect.area() - inter_area
        return inter_area / union


_next_id = itertools.count(1)
_id_lock = threading.Lock()


class GaussianObject:
    """An object map entry: mean position, accumulated covariance and observations."""

    def __init__(self, position, covariance, rwo) -> None:
        with _id_lock:
            self.id = next(_next_id)
        self.rwo = np.array(rwo, dtype=float).reshape(3, 3)
        self._lock = threading.Lock()
        self._mean = np.array(position, dtype=float).reshape(3)
        self._covariance = np.array(covariance, dtype=float).reshape(3, 3)
        self.n_obs = 0
        self.n_seg = 0
        self.n_contour = 0
        self._observations: dict["InstanceMask", "FrameInstance"] = {}

    @property
    def position(self) -> np.ndarray:
        """A copy of the mean position."""
        with self._lock:
            return self._mean.copy()

    @position.setter
    def position(self, value) -> None:
        with self._lock:
            self._mean = np.array(value, dtype=float).reshape(3)

    @property
    def covariance(self) -> np.ndarray:
        """A copy of the accumulated covariance (not yet divided by the contour count)."""
        with self._lock:
            return self._covariance.copy()

    @covariance.setter
    def covariance(self, value) -> None:
        with self._lock:
            self._covariance = np.array(value, dtype=float).reshape(3, 3)

    def _normalized_covariance(self) -> np.ndarray:
        if self.n_contour < 2:
            raise ValueError("the object needs at least two contour points")
        return self.covariance / (self.n_contour - 1)

    def project_2d(self, k, rcw, tcw) -> Ellipse2D:
        """Project the Gaussian into a camera with intrinsics ``k`` and pose (rcw, tcw)."""
        cov = self._normalized_covariance()
        k = np.asarray(k, dtype=float).reshape(3, 3)
        rcw = np.asarray(rcw, dtype=float).reshape(3, 3)
        tcw = np.asarray(tcw, dtype=float).reshape(3)

        xc = rcw @ self.position + tcw
        xi = k @ xc
        mu = xi[:2] / xi[2]

        fx, fy = k[0, 0], k[1, 1]
        x, y = xc[0], xc[1]
        invz = 1.0 / xc[2]
        invz2 = invz * invz
        jac = np.array(
            [[fx * invz, 0.0, -fx * x * invz2], [0.0, fy * invz, -fy * y * invz2]]
        )
        cov2d = jac @ rcw @ self.rwo @ cov @ self.rwo.T @ rcw.T @ jac.T

        values, vectors = np.linalg.eigh((cov2d + cov2d.T) / 2.0)
        major_vec = vectors[:, 1]
        angle = math.atan2(major_vec[1], major_vec[0])
        major = math.sqrt(max(values[1], 0.0))
        minor = math.sqrt(max(values[0], 0.0))
        return Ellipse2D(mu, cov2d, major, minor, angle)

    def add_observation(
        self,
        frame: "InstanceMask",
        observation: "FrameInstance",
        from_segmentation: bool = True,
    ) -> None:
        """Record that ``frame`` sees this object as ``observation``."""
        self._observations[frame] = observation
        if from_segmentation:
            self.n_seg += 1
        self.n_obs += 1

    def get_observation(self, frame: "InstanceMask") -> Optional["FrameInstance"]:
        return self._observations.get(frame)

    def observations(self) -> dict["InstanceMask", "FrameInstance"]:
        """A copy of all observations, keyed by frame."""
        return dict(self._observations)

    def distance_3d(self, other: "GaussianObject") -> float:
        """Mahalanobis distance between the means under the summed covariances."""
        diff = self.position - other.position
        combined = self.covariance + other.covariance
        inv = np.linalg.pinv(combined)
        return math.sqrt(float(diff @ inv @ diff))