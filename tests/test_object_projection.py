import numpy as np
import pytest

from objectmapping.gaussian_object import GaussianObject
from objectmapping.instances import CameraView, FrameInstance, InstanceMask, InstanceType
from objectmapping.object_projection import (
    local_object_maps,
    map_frame_instances,
    project_neighbour_objects,
    project_object_maps,
)


def make_view():
    k = [[100.0, 0.0, 50.0], [0.0, 100.0, 50.0], [0.0, 0.0, 1.0]]
    return CameraView(k=k, pose=np.eye(4), width=100, height=100)


def make_object(x=0.0, y=0.0, z=5.0):
    obj = GaussianObject([x, y, z], np.diag([0.02, 0.08, 0.02]), np.eye(3))
    obj.n_contour = 3
    return obj


def link(mask, key, obj, view):
    instance = FrameInstance(view=view)
    mask.gaussian_maps[key] = obj
    mask.frame_instances[key] = instance
    if obj is not None:
        obj.add_observation(mask, instance)


def test_local_object_maps_collects_neighbours():
    view = make_view()
    a, b, c = InstanceMask(), InstanceMask(), InstanceMask()
    go1, go2, go3 = make_object(), make_object(0.1), make_object(0.2)
    link(a, 1, go1, view)
    link(a, 2, None, view)
    link(b, 1, go1, view)
    link(b, 2, go2, view)
    link(c, 1, go3, view)
    found = local_object_maps(a)
    assert set(found) == {go1.id, go2.id}
    assert found[go2.id] is go2


def test_local_object_maps_empty_mask():
    assert local_object_maps(InstanceMask()) == {}


def test_project_object_maps_keys_and_rects():
    view = make_view()
    go1, go2 = make_object(), make_object(0.5, 0.0, 6.0)
    projections = project_object_maps({10: go1, 11: go2}, view)
    assert set(projections) == {go1.id, go2.id}
    expected = go1.project_2d(view.k, view.rotation, view.translation).bounding_rect()
    assert projections[go1.id].rect == expected
    assert np.allclose(projections[go1.id].center, [50.0, 50.0])


def test_project_object_maps_rejects_unnormalisable_object():
    view = make_view()
    obj = GaussianObject([0, 0, 5], np.eye(3), np.eye(3))
    obj.n_contour = 1
    with pytest.raises(ValueError):
        project_object_maps({0: obj}, view)


def test_map_frame_instances_fill_rectangles():
    view = make_view()
    obj = make_object()
    projections = project_object_maps({0: obj}, view)
    instances = map_frame_instances(projections, view)
    assert set(instances) == {obj.id}
    ins = instances[obj.id]
    rect = projections[obj.id].rect
    assert ins.type is InstanceType.MAP
    assert ins.rect == rect
    assert ins.contour == rect.to_contour()
    assert ins.pt == rect.center()
    assert ins.area == float(rect.area())
    assert np.count_nonzero(ins.mask) == rect.area()


def test_project_neighbour_objects_excludes_current_mask_objects():
    view = make_view()
    prev, curr, neighbour = InstanceMask(), InstanceMask(), InstanceMask()
    go1, go2, go3 = make_object(), make_object(0.3), make_object(-0.3)
    link(prev, 1, go1, view)
    link(curr, 1, go1, view)
    link(curr, 2, go3, view)
    link(neighbour, 1, go1, view)
    link(neighbour, 2, go2, view)
    result = project_neighbour_objects(curr, prev, view)
    assert set(result) == {go1, go2}
    for obj, instance in result.items():
        assert instance.gaussian_object is obj
        assert instance.type is InstanceType.MAP


def test_project_neighbour_objects_empty_previous():
    view = make_view()
    assert project_neighbour_objects(InstanceMask(), InstanceMask(), view) == {}