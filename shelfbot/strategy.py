"""Pick, place, scan and elevation strategies run by the workflow planner."""

from __future__ import annotations

import math
import time
from typing import TYPE_CHECKING

from shelfbot.geometry import (
    Pose,
    Quaternion,
    Vector3,
    cvt_g_to_pose,
    get_g_from_rpy,
)
from shelfbot.messages import ObjectPose, RackInfo, TableInfo
from shelfbot.planner import RobotArm
from shelfbot.workflow_planner import get_flat_link, get_place_link

if TYPE_CHECKING:
    from shelfbot.workflow_planner import WorkflowPlanner

SETTLE_DELAY = 0.2
"""Seconds to wait for the frame tree or the image stream to settle."""

ACTION_SPEED = 100.0
MANIPULATION_SPEED = 50.0
ELEVATION_DEADBAND = 0.01

_ELEVATOR_Y = -0.00665

# Elevator (x, z) for each shelf level when picking.
_PICK_ELEVATION = {
    2: (-0.1, 0.75),
    3: (-0.15, 0.85),
    4: (-0.08, 0.99),
}

# Detections are currently replaced by a fixed target in front of the camera.
_FIXED_DETECTION = cvt_g_to_pose(get_g_from_rpy(0.08, 0, 0.28, 0, 0, 0))

_TCP_FRAMES = {
    RobotArm.LEFT: "left_tcp",
    RobotArm.LEFT_ACTION: "left_tcp",
    RobotArm.RIGHT: "right_tcp",
    RobotArm.RIGHT_ACTION: "right_tcp",
}


def _settle(planner: WorkflowPlanner) -> None:
    time.sleep(getattr(planner, "settle_delay", SETTLE_DELAY))


def rescan_offsets(step: float, count: int) -> list[float]:
    """Sideways offsets tried when rescanning: -step, +step, -2*step, +2*step, ..."""
    return [((i % 2) * 2 - 1) * (i // 2 + 1) * step for i in range(count)]


def optimal_pick_elevation(planner: WorkflowPlanner, rack: RackInfo) -> bool:
    """Turn the elevator to the front and raise it to the rack's shelf level."""
    driver = planner.fold_elev_driver
    if not driver.rotate_to_abs_front():
        return False
    _settle(planner)

    try:
        x, z = _PICK_ELEVATION[rack.shelf_level]
    except KeyError:
        planner.logger.warning("unknown shelf_level %s", rack.shelf_level)
        return False

    waypoint = Pose(Vector3(x, _ELEVATOR_Y, z), Quaternion(0.0, 0.0, 0.0, 1.0))
    planner.logger.info("elevating the fold elevator for the pick action")
    return bool(driver.exec_wps([waypoint]))


def optimal_place_elevation(planner: WorkflowPlanner, table: TableInfo) -> bool:
    """Raise or lower the elevator to the height of a table's placing position."""
    place_link = get_place_link(table.id, table.index)

    base_to_table = planner.get_tf(planner.BASE_FOOTPRINT, place_link)
    if base_to_table is None:
        return False
    base_to_plane = planner.get_tf(planner.BASE_FOOTPRINT, planner.ELEV_FLAT_LINK)
    if base_to_plane is None:
        return False
    if planner.get_tf(planner.ELEV_FLAT_LINK, place_link) is None:
        return False

    target_z = abs(base_to_table.transform.origin.z) + planner.config.table_height_offset
    curr_z = abs(base_to_plane.transform.origin.z)
    z = target_z - curr_z
    if abs(z) < ELEVATION_DEADBAND:
        z = 0.0

    x = yaw = 0.0
    planner.logger.info(
        "elevating the fold elevator for the place action: x=%.3f z=%.3f yaw=%.3f", x, z, yaw
    )
    return bool(planner.fold_elev_driver.elevate(x, z, yaw))


def try_to_pick_up(
    planner: WorkflowPlanner,
    arm: RobotArm,
    sku_id: int,
    camera_id: int,
    rack: RackInfo,
) -> float | None:
    """Pick an item from a rack slot; return its height above the shelf, or None."""
    flat_frame = get_flat_link(rack.id, rack.shelf_level)
    success = False

    for attempt in range(1, planner.config.max_pick_attempt + 1):
        planner.logger.info("Attempt [%d]: try to pick up item %d", attempt, sku_id)

        scan_pose = planner.get_scan_pose(rack.id, rack.shelf_level, rack.shelf_slot)
        if scan_pose is None:
            planner.logger.error("Get scan pose failed")
            continue

        try_to_scan(planner, arm, sku_id, camera_id, scan_pose)
        poses_in_camera = [ObjectPose(pose=_FIXED_DETECTION)]

        object_pose = planner.extract_object_pose(arm, poses_in_camera)
        if object_pose is None:
            planner.logger.info("object pose has no value")
            return None

        plan = planner.get_pick_plan(object_pose, rack, flat_frame)
        if plan is None:
            return None

        planner.push_tf_buf((plan.pre_pick_pose, planner.ARM_REF_FRAME, "pre_pick_pose"))
        for i, pose in enumerate(plan.pick_poses):
            planner.push_tf_buf((pose, planner.ARM_REF_FRAME, f"pick_poses_{i}"))

        if planner.motion_planner.pick(arm, plan, MANIPULATION_SPEED):
            success = True
            break
        planner.logger.error("attempt [%d]: failed to pick up item %d", attempt, sku_id)

    if not success:
        return None

    planner.tf_pub_cb()
    object_in_flat = planner.get_tf(flat_frame, planner.OBJECT_POSE)
    if object_in_flat is None:
        return None
    height = abs(object_in_flat.transform.origin.z)
    planner.logger.info(
        "height: %.6f above [rack: %d, shelf level: %d, shelf slot: %d]",
        height, rack.id, rack.shelf_level, rack.shelf_slot,
    )
    return height


def try_to_place_down(
    planner: WorkflowPlanner, arm: RobotArm, height: float, table: TableInfo
) -> bool:
    """Place the held item at a table position, `height` above its surface."""
    place_frame = get_place_link(table.id, table.index)

    map_to_place = planner.get_tf(planner.MAP_FRAME, place_frame)
    if map_to_place is None:
        planner.logger.info("frame [%s] has no value", place_frame)
        return False

    z = abs(height + planner.config.place_offset)
    g_pf__pp = get_g_from_rpy(0, 0, z, 0, -math.pi / 2, -math.pi / 2)

    map_to_base = planner.get_tf(planner.MAP_FRAME, planner.ARM_REF_FRAME)
    if map_to_base is None:
        planner.logger.info("frame [%s] has no value", planner.ARM_REF_FRAME)
        return False

    g_b__pp = map_to_base.transform.inverse() @ map_to_place.transform @ g_pf__pp
    place_pose = cvt_g_to_pose(g_b__pp)
    planner.push_tf_buf((place_pose, planner.ARM_REF_FRAME, "place_pose"))

    plan = planner.get_place_plan(place_pose)
    if plan is None:
        return False
    return bool(planner.motion_planner.place(arm, plan, MANIPULATION_SPEED))


def try_to_scan(
    planner: WorkflowPlanner,
    arm: RobotArm,
    sku_id: int,
    camera_id: int,
    scan_pose: Pose,
) -> list[ObjectPose] | None:
    """Move to the scan pose and look for the item, shifting sideways on failure."""
    threshold = planner.config.valid_z_threshold
    motion = planner.motion_planner

    def scan_and_check(attempt: int) -> list[ObjectPose] | None:
        _settle(planner)
        poses = planner.get_obj_poses(sku_id, camera_id)
        if poses is None:
            planner.logger.info("attempt [%d]: no detections", attempt)
            return None
        planner.logger.info("attempt [%d]: pose length: %d", attempt, len(poses))
        if any(p.pose.position.z >= threshold for p in poses):
            return poses
        return None

    if not motion.move_to_action_pose(arm, ACTION_SPEED):
        planner.logger.error("Failed to move to action pose")
        return None
    if not motion.move_to(arm, scan_pose, ACTION_SPEED):
        planner.logger.error("Failed to move to SKU [%d] position", sku_id)
        return None

    result = scan_and_check(1)
    if result is not None:
        return result

    tcp = _TCP_FRAMES.get(arm, "")
    base_to_tcp = planner.get_tf(planner.ARM_REF_FRAME, tcp)
    if base_to_tcp is None:
        return None

    offsets = rescan_offsets(planner.config.re_scan_translation, planner.config.max_scan_attempt)
    for attempt, offset in enumerate(offsets, start=2):
        planner.logger.info("translate offset: %.4f", offset)
        target = cvt_g_to_pose(base_to_tcp.transform @ get_g_from_rpy(0, offset, 0, 0, 0, 0))
        if not motion.move_to(arm, target, ACTION_SPEED):
            planner.logger.error("Failed to move to offset position")
            continue
        result = scan_and_check(attempt)
        if result is not None:
            return result

    planner.logger.error("Failed to scan")
    return None