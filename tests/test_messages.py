from shelfbot.geometry import Pose, Vector3
from shelfbot.messages import (
    ObjectPose,
    PickGoal,
    PickPlanResult,
    PickResult,
    PickTask,
    PlaceGoal,
    PlacePlanResult,
    PlaceResult,
    PlaceTask,
    RackInfo,
    RobotStatus,
    TableInfo,
)


def test_pick_task_unpacks_in_field_order():
    rack = RackInfo(id=1, shelf_level=2, shelf_slot=3)
    arm_id, camera_id, sku_id, got_rack, dimension = PickTask(5, 6, 7, rack, [0.1])
    assert (arm_id, camera_id, sku_id) == (5, 6, 7)
    assert got_rack is rack
    assert dimension == [0.1]


def test_place_task_unpacks_in_field_order():
    table = TableInfo(id=4, index=2)
    arm_id, sku_id, height, got_table, dimension = PlaceTask(1, 9, 0.25, table)
    assert (arm_id, sku_id, height) == (1, 9, 0.25)
    assert got_table == table
    assert dimension == []


def test_default_lists_are_independent():
    a, b = PickGoal(), PickGoal()
    a.tasks.append(PickTask())
    assert b.tasks == []
    p, q = PlaceGoal(), PlaceGoal()
    p.tasks.append(PlaceTask())
    assert q.tasks == []


def test_results_default_to_failure():
    assert PickResult(arm_id=1).success is False
    assert PlaceResult(arm_id=1).message == ""


def test_results_are_mutable():
    msg = PickResult(arm_id=3)
    msg.success = True
    msg.height = 0.5
    assert msg == PickResult(arm_id=3, success=True, message="", height=0.5)


def test_plan_results_hold_poses():
    pose = Pose(Vector3(1, 2, 3))
    pick = PickPlanResult(pre_pick_pose=pose, pick_poses=[pose, pose])
    place = PlacePlanResult(place_poses=[pose])
    assert len(pick.pick_poses) == 2
    assert place.place_poses[0].position == Vector3(1, 2, 3)
    assert place.pre_place_pose == Pose()


def test_object_pose_default_is_identity_pose():
    assert ObjectPose().pose == Pose()


def test_idle_status_is_zero():
    assert RobotStatus(0) is RobotStatus.IDLE