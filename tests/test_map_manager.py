import math

import numpy as np
import pytest

from objectmapping.gaussian_object import GaussianObject
from objectmapping.geometry import Rect
from objectmapping.instances import CameraView, FrameInstance
from objectmapping.map_manager import (
    initialize_object,
    instance_covariance,
    point_to_ray,
    projection_jacobian,
    rect_covariance,
    triangulate_point,
    update_object_ekf,
    update_object_incremental,
)

K = np.array([[500.0, 0.0, 320.0], [0.0, 500.0, 240.0], [0.0, 0.0, 1.0]])


def rot_y(angle):
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])


def make_pose(rotation, translation):
    pose = np.eye(4)
    pose[:3, :3] = rotation
    pose[:3, 3] = translation
    return pose


def make_view(rotation=None, translation=(0.0, 0.0, 0.0)):
    rotation = np.eye(3) if rotation is None else rotation
    return CameraView(K, make_pose(rotation, translation), 640, 480)


def project(view, point):
    pc = view.rotation @ np.asarray(point) + view.translation
    pi = view.k @ pc
    return (float(pi[0] / pi[2]), float(pi[1] / pi[2]))


def make_instance(view, point, half=20):
    cx, cy = project(view, point)
    contour = [(cx - half, cy - half), (cx + half, cy - half), (cx + half, cy + half), (cx - half, cy + half)]
    return FrameInstance(
        view=view,
        contour=contour,
        pt=(cx, cy),
        rect=Rect(int(cx - half), int(cy - half), 2 * half, 2 * half),
    )


def test_point_to_ray_is_unit_and_parallel():
    ray = point_to_ray((400.0, 100.0), np.eye(3), 500.0, 500.0, 320.0, 240.0)
    assert np.isclose(np.linalg.norm(ray), 1.0)
    direction = np.array([80.0 / 500.0, -140.0 / 500.0, 1.0])
    assert np.allclose(np.cross(ray, direction), 0.0)


def test_point_to_ray_at_principal_point_follows_rotation():
    rwc = rot_y(0.3)
    ray = point_to_ray((320.0, 240.0), rwc, 500.0, 500.0, 320.0, 240.0)
    assert np.allclose(ray, rwc[:, 2])


def test_triangulate_recovers_point():
    point = np.array([0.2, 0.1, 5.0])
    v1 = make_view()
    v2 = make_view(rot_y(0.1), (-1.0, 0.0, 0.0))
    xn = []
    for view in (v1, v2):
        pc = view.rotation @ point + view.translation
        xn.append(np.array([pc[0] / pc[2], pc[1] / pc[2], 1.0]))
    result = triangulate_point(xn[0], xn[1], v1.pose, v2.pose)
    assert np.allclose(result, point, atol=1e-9)


def test_triangulate_point_at_infinity_raises():
    pose = np.array(
        [[0.0, 0.0, 0.0, 1.0], [0.0, 1.0, 0.0, 0.0], [0.0, 0.0, 1.0, 0.0], [0.0, 0.0, 0.0, 1.0]]
    )
    with pytest.raises(ValueError):
        triangulate_point([0.0, 0.0, 1.0], [1.0, 1.0, 1.0], pose, pose)


def test_instance_covariance_counts_and_symmetry():
    view = make_view(rot_y(0.2))
    inst = make_instance(view, (0.0, 0.0, 3.0))
    cov, count = instance_covariance(inst, view.pose, rot_y(-0.4), (0.0, 0.0, 3.0), 0.002, 0.002)
    assert count == 4
    assert np.allclose(cov, cov.T)
    assert np.all(np.linalg.eigvalsh(cov) >= -1e-12)


def test_instance_covariance_scales_with_depth_squared():
    view = make_view()
    inst = make_instance(view, (0.0, 0.0, 2.0))
    near, _ = instance_covariance(inst, view.pose, np.eye(3), (0.0, 0.0, 2.0), 0.002, 0.002)
    far, _ = instance_covariance(inst, view.pose, np.eye(3), (0.0, 0.0, 4.0), 0.002, 0.002)
    assert np.allclose(far, 4.0 * near)


def test_instance_covariance_empty_contour():
    view = make_view()
    inst = FrameInstance(view=view, pt=(10.0, 10.0))
    cov, count = instance_covariance(inst, view.pose, np.eye(3), (0.0, 0.0, 2.0), 0.002, 0.002)
    assert count == 0
    assert np.allclose(cov, np.zeros((3, 3)))


def test_rect_covariance_rotation_keeps_eigenvalues():
    rect = Rect(0, 0, 40, 20)
    mean = (0.0, 0.0, 3.0)
    plain = rect_covariance(rect, mean, np.eye(4), 0.002, 0.002)
    rotated = rect_covariance(rect, mean, make_pose(rot_y(0.5), (0.0, 0.0, 0.0)), 0.002, 0.002)
    assert np.allclose(np.diag(np.diag(plain)), plain)
    assert np.allclose(np.linalg.eigvalsh(plain), np.linalg.eigvalsh(rotated))
    assert plain[0, 0] > plain[1, 1]


def test_projection_jacobian_matches_finite_differences():
    r = rot_y(0.3)
    t = np.array([0.1, -0.2, 0.5])
    xw = np.array([0.4, 0.2, 3.0])

    def neg_proj(p):
        pc = r @ p + t
        return -np.array([500.0 * pc[0] / pc[2], 400.0 * pc[1] / pc[2]])

    jac = projection_jacobian(r, r @ xw + t, 500.0, 400.0)
    eps = 1e-6
    numeric = np.column_stack(
        [(neg_proj(xw + eps * e) - neg_proj(xw - eps * e)) / (2 * eps) for e in np.eye(3)]
    )
    assert jac.shape == (2, 3)
    assert np.allclose(jac, numeric, atol=1e-4)


def test_initialize_object_triangulates_and_counts():
    point = np.array([0.3, -0.1, 4.0])
    v1 = make_view()
    v2 = make_view(rot_y(0.05), (-0.5, 0.0, 0.0))
    prev = make_instance(v1, point)
    curr = make_instance(v2, point)
    obj = initialize_object(prev, curr)
    assert isinstance(obj, GaussianObject)
    assert np.allclose(obj.position, point, atol=1e-6)
    assert obj.n_contour == len(prev.contour) + len(curr.contour)
    assert obj.n_obs == 2
    assert np.allclose(obj.rwo, v1.rotation.T)
    assert np.allclose(obj.covariance, obj.covariance.T)


def test_initialize_object_without_view_raises():
    view = make_view()
    with pytest.raises(ValueError):
        initialize_object(FrameInstance(view=None), make_instance(view, (0.0, 0.0, 3.0)))


def test_update_incremental_adds_contribution():
    point = np.array([0.0, 0.0, 3.0])
    v1 = make_view()
    v2 = make_view(translation=(-0.5, 0.0, 0.0))
    obj = initialize_object(make_instance(v1, point), make_instance(v2, point))
    before_cov = obj.covariance
    before_n = obj.n_contour
    v3 = make_view(rot_y(0.1), (0.3, 0.0, 0.0))
    inst = make_instance(v3, point, half=30)
    expected, count = instance_covariance(
        inst, v3.pose, obj.rwo, obj.position, 1.0 / v3.fx, 1.0 / v3.fy
    )
    update_object_incremental(obj, inst)
    assert obj.n_contour == before_n + count
    assert np.allclose(obj.covariance, before_cov + expected)


def test_update_ekf_counts_and_keeps_state():
    point = np.array([0.2, 0.1, 3.0])
    v1 = make_view()
    v2 = make_view(translation=(-0.5, 0.0, 0.0))
    obj = initialize_object(make_instance(v1, point), make_instance(v2, point))
    pos = obj.position
    cov = obj.covariance
    n_obs = obj.n_obs
    innovation, gain = update_object_ekf(obj, make_instance(make_view(translation=(0.4, 0.0, 0.0)), point))
    assert obj.n_obs == n_obs + 1
    assert np.allclose(obj.position, pos)
    assert np.allclose(obj.covariance, cov)
    assert np.allclose(innovation, 0.0, atol=1e-6)
    assert gain.shape == (3, 2)