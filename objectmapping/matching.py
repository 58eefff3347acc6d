"""Mask overlap scores between instances and checks for adding new instances."""

from __future__ import annotations

import math
from typing import Mapping

import numpy as np

from objectmapping.instances import AssoMatchRes, FrameInstance, InstanceMask

MATCH_THRESHOLD = 0.5


def _mask_of(instance: FrameInstance) -> np.ndarray:
    if instance.mask is None:
        raise ValueError("the instance has no mask")
    return np.asarray(instance.mask)


def _overlap(first: np.ndarray, second: np.ndarray) -> int:
    if first.shape != second.shape:
        raise ValueError("masks must have the same shape")
    return int(np.count_nonzero(np.bitwise_and(first, second)))


def mask_iou(first, second, background: bool = False) -> float:
    """Overlap score of two masks.

    Against a background mask the overlap is divided by the area of ``first``;
    otherwise by the area of the union. Masks that do not overlap score 0.
    """
    a = np.asarray(first)
    b = np.asarray(second)
    overlap = _overlap(a, b)
    if overlap == 0:
        return 0.0
    if background:
        return overlap / np.count_nonzero(a)
    return overlap / np.count_nonzero(np.bitwise_or(a, b))


def calculate_iou(
    prev_instances: Mapping[int, FrameInstance],
    curr_instances: Mapping[int, FrameInstance],
) -> dict[int, dict[int, AssoMatchRes]]:
    """Compare every earlier instance but the background with every current one.

    Current id 0 is the background and is scored against the earlier mask's
    own area; negative current ids score 0.
    """
    result: dict[int, dict[int, AssoMatchRes]] = {}
    for pid, prev in prev_instances.items():
        if pid == 0:
            continue
        pmask = _mask_of(prev)
        row = result.setdefault(pid, {})
        for cid, curr in curr_instances.items():
            ares = AssoMatchRes(pid, cid, prev.type, curr.type)
            if cid >= 0:
                ares.iou = mask_iou(pmask, _mask_of(curr), background=cid == 0)
            row[cid] = ares
    return result


def check_add_new_instance(
    instances: Mapping[int, FrameInstance], candidate: FrameInstance
) -> bool:
    """True when ``candidate`` lies mostly in the background and matches no instance."""
    new_mask = _mask_of(candidate)
    ious: dict[int, float] = {}
    for iid, instance in instances.items():
        cmask = _mask_of(instance)
        overlap = _overlap(new_mask, cmask)
        if overlap == 0:
            continue
        iou = 0.0
        if iid == 0:
            iou = overlap / candidate.area if candidate.area else math.inf
        elif iid > 0:
            iou = overlap / np.count_nonzero(np.bitwise_or(new_mask, cmask))
        ious[iid] = iou
    in_background = ious.get(0, 0.0) > MATCH_THRESHOLD
    unmatched = not any(
        iou > MATCH_THRESHOLD for iid, iou in ious.items() if iid != 0
    )
    return in_background and unmatched


def add_new_instance(mask: InstanceMask, candidate: FrameInstance) -> int:
    """Register ``candidate`` under a fresh id, with no linked object yet."""
    new_id = mask.next_id()
    mask.frame_instances[new_id] = candidate
    mask.gaussian_maps[new_id] = None
    return new_id