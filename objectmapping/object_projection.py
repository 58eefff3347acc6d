"""Gathering of nearby object maps and their projection into a frame."""

from __future__ import annotations

from typing import Iterable, Mapping, Optional

from objectmapping.gaussian_object import Ellipse2D, GaussianObject
from objectmapping.instances import CameraView, FrameInstance, InstanceMask, InstanceType


def _linked_objects(mask: InstanceMask) -> list[GaussianObject]:
    return [obj for obj in mask.gaussian_maps.values() if obj is not None]


def _neighbour_masks(
    objects: Iterable[GaussianObject], excluded: Iterable[InstanceMask]
) -> list[InstanceMask]:
    skip = {id(mask) for mask in excluded}
    seen: dict[int, InstanceMask] = {}
    for obj in objects:
        for frame in obj.observations():
            if id(frame) in skip:
                continue
            seen.setdefault(id(frame), frame)
    return list(seen.values())


def local_object_maps(mask: InstanceMask) -> dict[int, GaussianObject]:
    """Objects linked to ``mask`` and to every other mask that observes them, by id."""
    found: dict[int, GaussianObject] = {}
    own = _linked_objects(mask)
    for obj in own:
        found[obj.id] = obj
    for frame in _neighbour_masks(own, [mask]):
        for obj in _linked_objects(frame):
            found.setdefault(obj.id, obj)
    return found


def _project(obj: GaussianObject, view: CameraView) -> Ellipse2D:
    ellipse = obj.project_2d(view.k, view.rotation, view.translation)
    ellipse.bounding_rect()
    return ellipse


def project_object_maps(
    objects: Mapping[int, GaussianObject], view: CameraView
) -> dict[int, Ellipse2D]:
    """Project each object into ``view``, keyed by object id, with bounding boxes set."""
    return {obj.id: _project(obj, view) for obj in objects.values()}


def map_frame_instances(
    projections: Mapping[int, Ellipse2D], view: CameraView
) -> dict[int, FrameInstance]:
    """Turn projected ellipses into map instances filling their bounding boxes."""
    return {
        oid: FrameInstance.from_rect(view, ellipse.rect, InstanceType.MAP)
        for oid, ellipse in projections.items()
    }


def project_neighbour_objects(
    curr_mask: InstanceMask,
    prev_mask: InstanceMask,
    view: CameraView,
) -> dict[GaussianObject, FrameInstance]:
    """Project the objects of ``prev_mask`` and of its neighbouring masks into ``view``.

    Neighbours are the other masks observing the previous objects; the current
    and previous masks themselves are not used as neighbours. Each instance
    keeps a link to its object.
    """
    candidates: dict[int, GaussianObject] = {}
    own = _linked_objects(prev_mask)
    for obj in own:
        candidates.setdefault(id(obj), obj)
    for frame in _neighbour_masks(own, [curr_mask, prev_mask]):
        for obj in _linked_objects(frame):
            candidates.setdefault(id(obj), obj)

    result: dict[GaussianObject, FrameInstance] = {}
    for obj in candidates.values():
        ellipse: Optional[Ellipse2D] = _project(obj, view)
        instance = FrameInstance.from_rect(view, ellipse.rect, InstanceType.MAP)
        instance.gaussian_object = obj
        result[obj] = instance
    return result