import time

import pytest

from shelfbot.geometry import Pose, Quaternion, Vector3, are_poses_closed
from shelfbot.messages import ObjectPose, PickPlanResult, PlacePlanResult, RackInfo, RobotStatus
from shelfbot.planner import RobotArm
from shelfbot.workflow_planner import (
    ChangeStateResponse,
    GetObjectPoseResponse,
    PickPlanResponse,
    PlacePlanResponse,
    Transition,
    WorkflowConfig,
    WorkflowPlanner,
    get_flat_link,
    get_place_link,
)


def fast_planner(config=None):
    return WorkflowPlanner(
        config, max_retries=0, wait_timeout=0.01, request_timeout=0.2
    )


def test_link_names():
    assert get_flat_link(1, 2) == "rack_1_shelf_2_flat_link"
    assert get_place_link(3, 1) == "table_3_place_1_link"


def test_initial_state_and_defaults():
    planner = WorkflowPlanner()
    assert planner.state == RobotStatus.IDLE
    assert planner.config.scan_distance == WorkflowConfig().scan_distance
    assert planner.tf_buf == []


def test_camera_transform_from_values():
    planner = WorkflowPlanner(
        WorkflowConfig(tcp_to_left_camera=[0.1, 0.2, 0.3, 0, 0, 0, 1])
    )
    g = planner.g_tcp__cam[RobotArm.LEFT]
    assert tuple(g.origin) == (0.1, 0.2, 0.3)
    assert tuple(g.rotation) == (0.0, 0.0, 0.0, 1.0)


def test_camera_transform_wrong_length_is_identity():
    planner = WorkflowPlanner()
    g = planner.setup_camera_transform(RobotArm.RIGHT, [1.0, 2.0])
    assert tuple(g.origin) == (0.0, 0.0, 0.0)
    assert tuple(g.rotation) == (0.0, 0.0, 0.0, 1.0)
    assert planner.g_tcp__cam[RobotArm.RIGHT] is g


def test_push_publish_and_clear_tf_buf():
    planner = WorkflowPlanner()
    pose = Pose(Vector3(0.5, -0.2, 1.0), Quaternion())
    planner.push_tf_buf((pose, "map", "thing"))
    assert planner.tf_buf == [(pose, "map", "thing")]
    planner.tf_pub_cb()
    stamped = planner.get_tf("map", "thing")
    assert tuple(stamped.transform.origin) == pytest.approx(tuple(pose.position))
    planner.clear_tf_buf()
    assert planner.tf_buf == []


def test_get_obj_poses_success_passes_request():
    planner = fast_planner()
    seen = []
    detections = [ObjectPose(Pose(Vector3(0, 0, 0.3)))]

    def handler(request):
        seen.append(request)
        return GetObjectPoseResponse(success=True, object_poses=detections)

    planner.get_obj_pose_tri_cli.bind(handler)
    assert planner.get_obj_poses(42, 7) == detections
    assert seen[0].target_object_id == 42
    assert seen[0].camera_id == 7


def test_get_obj_poses_failure_and_unavailable():
    planner = fast_planner()
    assert planner.get_obj_poses(1, 1) is None
    planner.get_obj_pose_tri_cli.bind(lambda req: GetObjectPoseResponse(success=False))
    assert planner.get_obj_poses(1, 1) is None


def test_get_obj_poses_timeout():
    planner = fast_planner()

    def slow(request):
        time.sleep(0.5)
        return GetObjectPoseResponse(success=True)

    planner.get_obj_pose_tri_cli.bind(slow)
    assert planner.get_obj_poses(1, 1) is None


def test_get_pick_plan():
    planner = fast_planner()
    plan = PickPlanResult(pre_pick_pose=Pose(Vector3(1, 2, 3)))
    seen = []

    def handler(request):
        seen.append(request)
        return PickPlanResponse(success=True, result=plan)

    planner.pick_plan_cli.bind(handler)
    rack = RackInfo(id=1, shelf_level=2, shelf_slot=3)
    assert planner.get_pick_plan(Pose(), rack, "flat") is plan
    assert seen[0].rack == rack
    assert seen[0].flat_frame == "flat"


def test_get_place_plan_success_and_failure():
    planner = fast_planner()
    plan = PlacePlanResult(pre_place_pose=Pose(Vector3(0, 1, 0)))
    planner.place_plan_cli.bind(lambda req: PlacePlanResponse(success=True, result=plan))
    assert planner.get_place_plan(Pose()) is plan
    planner.place_plan_cli.bind(lambda req: PlacePlanResponse(success=False, message="no"))
    assert planner.get_place_plan(Pose()) is None


def test_set_camera_lifecycle_uses_base_arm_camera():
    planner = fast_planner()
    transitions = []

    def handler(request):
        transitions.append(request.transition)
        return ChangeStateResponse(success=True)

    planner.camera_cli[RobotArm.LEFT].bind(handler)
    assert planner.set_camera_lifecycle(RobotArm.LEFT_ACTION, True) is True
    assert planner.set_camera_lifecycle(RobotArm.LEFT, False) is True
    assert transitions == [Transition.ACTIVATE, Transition.DEACTIVATE]
    # the right camera has no server
    assert planner.set_camera_lifecycle(RobotArm.RIGHT, True) is False


def test_set_camera_lifecycle_failure_response():
    planner = fast_planner()
    planner.camera_cli[RobotArm.RIGHT].bind(lambda req: ChangeStateResponse(success=False))
    assert planner.set_camera_lifecycle(RobotArm.RIGHT_ACTION, True) is False
    assert planner.set_camera_lifecycle(RobotArm.WHOLE, True) is False


def test_get_scan_pose_backs_off_along_slot_z():
    planner = WorkflowPlanner()
    slot = Pose(Vector3(1.0, 0.5, 0.0), Quaternion())
    planner.send_static_transform(slot, "base_footprint", "rack_1_shelf_2_slot_1_link")
    pose = planner.get_scan_pose(1, 2, 1)
    assert pose.position.x == pytest.approx(slot.position.x)
    assert pose.position.y == pytest.approx(slot.position.y)
    assert pose.position.z == pytest.approx(-planner.config.scan_distance)


def test_get_scan_pose_missing_frame():
    planner = WorkflowPlanner()
    assert planner.get_scan_pose(9, 9, 9) is None


def test_extract_object_pose_empty_and_missing_tcp():
    planner = WorkflowPlanner()
    assert planner.extract_object_pose(RobotArm.LEFT, []) is None
    detections = [ObjectPose(Pose(Vector3(0, 0, 0.3)))]
    assert planner.extract_object_pose(RobotArm.LEFT, detections) is None
    assert planner.tf_buf == []


def test_extract_object_pose_round_trip():
    planner = WorkflowPlanner()
    tcp = Pose(Vector3(0.4, 0.1, 0.9), Quaternion.from_rpy(0.1, 0.2, 0.3))
    planner.send_static_transform(tcp, "base_footprint", "left_tcp")
    detected = Pose(Vector3(0.05, -0.02, 0.3), Quaternion())
    result = planner.extract_object_pose(RobotArm.LEFT, [ObjectPose(detected)])
    assert [(parent, child) for _, parent, child in planner.tf_buf] == [
        ("base_footprint", "object_pose"),
        ("left_camera_color_optical_frame", "detected_pose"),
    ]
    planner.tf_pub_cb()
    in_tcp = planner.get_tf("left_tcp", "object_pose")
    back = Pose(in_tcp.transform.origin, in_tcp.transform.rotation)
    assert are_poses_closed(back, detected, 1e-9, 1e-6)
    in_base = planner.get_tf("base_footprint", "object_pose")
    assert are_poses_closed(
        Pose(in_base.transform.origin, in_base.transform.rotation), result, 1e-9, 1e-6
    )


def test_extract_object_pose_prefers_lowest_valid_z():
    planner = WorkflowPlanner()
    planner.send_static_transform(Pose(), "base_footprint", "left_tcp")
    detections = [
        ObjectPose(Pose(Vector3(0, 0, 0.5))),
        ObjectPose(Pose(Vector3(0, 0, 0.2))),
        ObjectPose(Pose(Vector3(0, 0, 0.005))),
    ]
    result = planner.extract_object_pose(RobotArm.LEFT, detections)
    assert result.position.z == pytest.approx(detections[1].pose.position.z)


def test_extract_object_pose_action_arm_uses_left_calibration():
    cam = [0.0, 0.0, 0.1, 0, 0, 0, 1]
    planner = WorkflowPlanner(WorkflowConfig(tcp_to_left_camera=cam))
    planner.send_static_transform(Pose(), "base_footprint", "right_tcp")
    detected = Pose(Vector3(0, 0, 0.3))
    result = planner.extract_object_pose(RobotArm.RIGHT_ACTION, [ObjectPose(detected)])
    assert result.position.z == pytest.approx(detected.position.z + cam[2])
    assert planner.tf_buf[1][1] == "left_camera_color_optical_frame"


def test_extract_object_pose_right_arm_uses_right_optical_frame():
    planner = WorkflowPlanner()
    planner.send_static_transform(Pose(), "base_footprint", "right_tcp")
    detected = Pose(Vector3(0, 0, 0.3))
    result = planner.extract_object_pose(RobotArm.RIGHT, [ObjectPose(detected)])
    assert are_poses_closed(result, detected, 1e-9, 1e-6)
    assert planner.tf_buf[1][1] == "right_camera_color_optical_frame"