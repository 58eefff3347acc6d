"""Frames, per-frame object instances, instance masks and association records."""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

import numpy as np

from objectmapping.geometry import Point, Rect

if TYPE_CHECKING:
    from objectmapping.gaussian_object import GaussianObject


class InstanceType(enum.Enum):
    """Where an instance came from."""

    SEG = 0
    SAM = 1
    RAFT = 2
    MAP = 3


@dataclass(eq=False)
class CameraView:
    """A calibrated camera at a pose: intrinsics ``k`` and world-to-camera ``pose``."""

    k: np.ndarray
    pose: np.ndarray
    width: int
    height: int

    def __post_init__(self) -> None:
        self.k = np.array(self.k, dtype=float).reshape(3, 3)
        self.pose = np.array(self.pose, dtype=float).reshape(4, 4)

    @property
    def rotation(self) -> np.ndarray:
        """World-to-camera rotation Rcw."""
        return self.pose[:3, :3].copy()

    @property
    def translation(self) -> np.ndarray:
        """World-to-camera translation tcw."""
        return self.pose[:3, 3].copy()

    @property
    def center(self) -> np.ndarray:
        """Camera centre in world coordinates."""
        return -self.rotation.T @ self.translation

    @property
    def fx(self) -> float:
        return float(self.k[0, 0])

    @property
    def fy(self) -> float:
        return float(self.k[1, 1])

    @property
    def cx(self) -> float:
        return float(self.k[0, 2])

    @property
    def cy(self) -> float:
        return float(self.k[1, 2])


@dataclass(eq=False)
class FrameInstance:
    """One object instance seen in one frame."""

    view: Optional[CameraView]
    type: InstanceType = InstanceType.SEG
    contour: list[Point] = field(default_factory=list)
    mask: Optional[np.ndarray] = None
    rect: Rect = field(default_factory=Rect)
    pt: Point = (0.0, 0.0)
    area: float = 0.0
    gaussian_object: Optional["GaussianObject"] = None
    descriptors: Optional[np.ndarray] = None
    keypoints: list[Any] = field(default_factory=list)
    map_points: set[Any] = field(default_factory=set)
    keypoint_ids: set[int] = field(default_factory=set)

    @classmethod
    def from_rect(
        cls,
        view: CameraView,
        rect: Rect,
        instance_type: InstanceType = InstanceType.MAP,
    ) -> "FrameInstance":
        """An instance whose mask is the filled rectangle, clipped to the image."""
        mask = np.zeros((view.height, view.width), dtype=np.uint8)
        if not rect.is_empty():
            x0, y0 = max(rect.x, 0), max(rect.y, 0)
            x1 = min(rect.x + rect.width, view.width)
            y1 = min(rect.y + rect.height, view.height)
            if x1 > x0 and y1 > y0:
                mask[y0:y1, x0:x1] = 255
        return cls(
            view=view,
            type=instance_type,
            contour=rect.to_contour(),
            mask=mask,
            rect=rect,
            pt=rect.center(),
            area=float(rect.area()),
        )


@dataclass(eq=False)
class AssoMatchRes:
    """Result of comparing one earlier instance with one current instance."""

    id1: int = -1
    id2: int = -1
    type1: InstanceType = InstanceType.SEG
    type2: InstanceType = InstanceType.SEG
    res: bool = False
    req: bool = False
    iou: float = 0.0

    def describe(self, fid: int, gid: int = 0) -> str:
        """One comma-separated line: ids, source, result, request flag, IoU and group id."""
        kind = " ,"
        if self.type1 is InstanceType.SEG:
            kind = "seg,"
        elif self.type1 is InstanceType.SAM:
            kind = "sam,"
        line = f"{self.id1}, {self.id2}, {kind}{int(self.res)}, {int(self.req)}, {self.iou:g}"
        if gid > 0:
            line += f", {gid}"
        return line


@dataclass(eq=False)
class InstanceMask:
    """A set of instances of one frame, with the objects they are linked to."""

    mask: Optional[np.ndarray] = None
    frame_instances: dict[int, FrameInstance] = field(default_factory=dict)
    map_instances: dict[int, Any] = field(default_factory=dict)
    gaussian_maps: dict[int, Optional["GaussianObject"]] = field(default_factory=dict)
    res_asso: list[AssoMatchRes] = field(default_factory=list)
    association_results: dict[int, AssoMatchRes] = field(default_factory=dict)
    initialized: bool = False
    request: bool = True
    trial: int = 0
    max_trial: int = 1
    object_points: list[Point] = field(default_factory=list)
    max_id: int = 0
    original_size: int = 0
    id1: int = -1
    id2: int = -1
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def next_id(self) -> int:
        """Hand out the current free id and advance it."""
        with self._lock:
            new_id = self.max_id
            self.max_id += 1
            return new_id


@dataclass(eq=False)
class BoxFrame:
    """A keyframe together with its image and named instance masks."""

    id: int
    view: Optional[CameraView] = None
    image: Optional[np.ndarray] = None
    masks: dict[str, InstanceMask] = field(default_factory=dict)
    prev: Optional["BoxFrame"] = None
    initialized: bool = False


def is_table(label: int) -> bool:
    return label in (160, 42)


def is_floor(label: int) -> bool:
    return label in (8, 43, 44)


def is_wall(label: int) -> bool:
    return label in (30, 31, 32, 33, 52)


def is_ceiling(label: int) -> bool:
    return label == 39


def is_static(label: int) -> bool:
    """True for labels of scene structure that never moves."""
    return is_floor(label) or is_ceiling(label) or is_wall(label) or is_table(label)