import math

import pytest

from shelfbot.geometry import (
    Pose,
    Quaternion,
    Transform,
    Vector3,
    are_poses_closed,
    compose_pose_msg,
    cvt_g_to_pose,
    format_pose,
    get_g_from_pose,
    get_g_from_quat,
    get_g_from_rpy,
    pose_translation,
)


def assert_vec(actual, expected):
    assert list(actual) == pytest.approx(list(expected), abs=1e-9)


def test_from_rpy_is_unit():
    q = Quaternion.from_rpy(0.3, -1.1, 2.4)
    assert q.norm() == pytest.approx(1.0)


def test_zero_rpy_is_identity():
    assert Quaternion.from_rpy(0, 0, 0) == Quaternion()


def test_yaw_rotates_x_to_y():
    q = Quaternion.from_rpy(0, 0, math.pi / 2)
    assert_vec(q.rotate(Vector3(1, 0, 0)), (0, 1, 0))


def test_roll_rotates_y_to_z():
    q = Quaternion.from_rpy(math.pi / 2, 0, 0)
    assert_vec(q.rotate(Vector3(0, 1, 0)), (0, 0, 1))


def test_normalized_zero_quaternion_is_identity():
    assert Quaternion(0, 0, 0, 0).normalized() == Quaternion()


def test_normalized_has_unit_norm():
    assert Quaternion(1, 2, 3, 4).normalized().norm() == pytest.approx(1.0)


def test_angular_distance_ignores_sign():
    q = Quaternion.from_rpy(0.2, 0.4, 0.6)
    neg = Quaternion(-q.x, -q.y, -q.z, -q.w)
    assert q.angular_distance(neg) == pytest.approx(0.0, abs=1e-9)


def test_angular_distance_matches_yaw_difference():
    a = Quaternion.from_rpy(0, 0, 0.1)
    b = Quaternion.from_rpy(0, 0, 0.4)
    assert a.angular_distance(b) == pytest.approx(0.3)


def test_transform_inverse_composes_to_identity():
    g = get_g_from_rpy(1.0, -2.0, 0.5, 0.3, 0.2, 1.0)
    ident = g @ g.inverse()
    assert_vec(ident.origin, (0, 0, 0))
    assert ident.rotation.angular_distance(Quaternion()) == pytest.approx(0.0, abs=1e-9)


def test_composition_matches_sequential_apply():
    a = get_g_from_rpy(0.1, 0.2, 0.3, 0.4, 0.5, 0.6)
    b = get_g_from_quat(-1.0, 0.5, 2.0, 0.1, 0.2, 0.3, 0.9)
    p = Vector3(0.7, -0.3, 1.2)
    assert_vec((a @ b).apply(p), a.apply(b.apply(p)))


def test_get_g_from_quat_normalizes():
    g = get_g_from_quat(0, 0, 0, 0, 0, 2, 2)
    assert g.rotation.norm() == pytest.approx(1.0)


def test_pose_round_trip():
    pose = Pose(Vector3(1, 2, 3), Quaternion.from_rpy(0.1, 0.2, 0.3))
    back = cvt_g_to_pose(get_g_from_pose(pose))
    assert are_poses_closed(pose, back)


def test_compose_pose_msg_maps_fields():
    pose = compose_pose_msg([1, 2, 3, 0.1, 0.2, 0.3, 0.4])
    assert tuple(pose.position) == (1, 2, 3)
    assert tuple(pose.orientation) == (0.1, 0.2, 0.3, 0.4)


@pytest.mark.parametrize("values", [[], [1, 2, 3], [0] * 8])
def test_compose_pose_msg_rejects_wrong_size(values):
    with pytest.raises(ValueError):
        compose_pose_msg(values)


def test_pose_translation_identity_orientation_adds_offset():
    pose = Pose(Vector3(1, 2, 3))
    moved = pose_translation(pose, 0.5, -1.0, 2.0)
    assert_vec(moved.position, (1.5, 1.0, 5.0))
    assert moved.orientation == pose.orientation


def test_pose_translation_follows_orientation():
    q = Quaternion.from_rpy(0.3, 0.6, -0.9)
    pose = Pose(Vector3(1, 1, 1), q)
    moved = pose_translation(pose, 0.2, 0.3, 0.4)
    expected = get_g_from_pose(pose).apply(Vector3(0.2, 0.3, 0.4))
    assert_vec(moved.position, expected)


def test_are_poses_closed_detects_position_change():
    pose = Pose(Vector3(0, 0, 0))
    assert not are_poses_closed(pose, Pose(Vector3(0, 0, 1e-3)))
    assert are_poses_closed(pose, Pose(Vector3(0, 0, 1e-3)), pos_thd=1e-2)


def test_are_poses_closed_detects_rotation_change():
    a = Pose(orientation=Quaternion.from_rpy(0, 0, 0))
    b = Pose(orientation=Quaternion.from_rpy(0, 0, 0.01))
    assert not are_poses_closed(a, b)
    assert are_poses_closed(a, b, ori_thd=0.1)


def test_format_pose():
    pose = Pose(Vector3(1, 2, 3), Quaternion(0, 0, 0, 1))
    assert format_pose(pose) == (
        "[p.x: 1.000000, p.y: 2.000000, p.z: 3.000000, "
        "q.x: 0.000000, q.y: 0.000000, q.z: 0.000000, q.w: 1.000000]"
    )


def test_transform_stores_normalized_rotation():
    g = Transform(Vector3(), Quaternion(0, 0, 0, 5))
    assert g.rotation == Quaternion()