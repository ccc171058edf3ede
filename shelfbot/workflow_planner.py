"""The workflow planner: camera calibration, vision and planning requests, object frames."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Iterable, Sequence

from shelfbot.geometry import (
    Pose,
    Transform,
    cvt_g_to_pose,
    get_g_from_pose,
    get_g_from_quat,
    get_g_from_rpy,
)
from shelfbot.messages import (
    ObjectPose,
    PickPlanResult,
    PlacePlanResult,
    RackInfo,
    RobotStatus,
)
from shelfbot.node_base import ServiceClient, ServiceError
from shelfbot.planner import PlannerBase, RobotArm

FrameTf = tuple[Pose, str, str]


def get_flat_link(rack_id: int, shelf_level: int) -> str:
    """Name of the flat frame of a rack shelf."""
    return f"rack_{rack_id}_shelf_{shelf_level}_flat_link"


def get_place_link(table_id: int, index: int) -> str:
    """Name of a placing position frame on a table."""
    return f"table_{table_id}_place_{index}_link"


class Transition(IntEnum):
    """Lifecycle transitions used to switch cameras on and off."""

    ACTIVATE = 3
    DEACTIVATE = 4


@dataclass
class GetObjectPoseRequest:
    target_object_id: int
    camera_id: int


@dataclass
class GetObjectPoseResponse:
    success: bool = False
    message: str = ""
    object_poses: list[ObjectPose] = field(default_factory=list)


@dataclass
class PickPlanRequest:
    object_pose: Pose
    rack: RackInfo
    flat_frame: str


@dataclass
class PickPlanResponse:
    success: bool = False
    message: str = ""
    result: PickPlanResult = field(default_factory=PickPlanResult)


@dataclass
class PlacePlanRequest:
    place_pose: Pose


@dataclass
class PlacePlanResponse:
    success: bool = False
    message: str = ""
    result: PlacePlanResult = field(default_factory=PlacePlanResult)


@dataclass
class ChangeStateRequest:
    transition: Transition


@dataclass
class ChangeStateResponse:
    success: bool = False


@dataclass
class WorkflowConfig:
    """Tunable parameters of the workflow planner."""

    valid_z_threshold: float = 0.01
    max_pick_attempt: int = 0
    max_scan_attempt: int = 0
    re_scan_translation: float = 0.05
    place_offset: float = 0.02
    scan_distance: float = 0.25
    optimal_arm_flat_height_distance: float = 0.2
    optimal_arm_flat_front_distance: float = 0.5
    table_front_offset: float = 0.5
    table_height_offset: float = 0.0
    poses_file: str = ""
    tcp_to_left_camera: Sequence[float] = ()
    tcp_to_right_camera: Sequence[float] = ()


_TCP_FRAMES = {
    RobotArm.LEFT: "left_tcp",
    RobotArm.LEFT_ACTION: "left_tcp",
    RobotArm.RIGHT: "right_tcp",
    RobotArm.RIGHT_ACTION: "right_tcp",
}

# Both action arms read the left camera calibration.
_CALIBRATION_ARM = {
    RobotArm.LEFT_ACTION: RobotArm.LEFT,
    RobotArm.RIGHT_ACTION: RobotArm.LEFT,
}

_CAMERA_ARM = {
    RobotArm.LEFT_ACTION: RobotArm.LEFT,
    RobotArm.RIGHT_ACTION: RobotArm.RIGHT,
}


class WorkflowPlanner(PlannerBase):
    """Coordinates cameras, vision, planning services and the frames they produce."""

    PUBLISH_PERIOD = 0.02

    def __init__(
        self,
        config: WorkflowConfig | None = None,
        *,
        fold_elev_driver: Any = None,
        motion_planner: Any = None,
        node_name: str = "workflow_planner",
        **options: Any,
    ):
        super().__init__(node_name, **options)
        self.config = config if config is not None else WorkflowConfig()
        self.fold_elev_driver = fold_elev_driver
        self.motion_planner = motion_planner
        self.state = RobotStatus.IDLE

        self._tf_lock = threading.Lock()
        self._tf_buf: list[FrameTf] = []
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

        self.g_tcp__cam: dict[RobotArm, Transform] = {}
        self.setup_camera_transform(RobotArm.LEFT, self.config.tcp_to_left_camera)
        self.setup_camera_transform(RobotArm.RIGHT, self.config.tcp_to_right_camera)

        self.camera_cli: dict[RobotArm, ServiceClient] = {
            RobotArm.LEFT: ServiceClient("/left_camera/realsense/change_state"),
            RobotArm.RIGHT: ServiceClient("/right_camera/realsense/change_state"),
        }
        self.get_slot_state_tri_cli = ServiceClient("get_slot_state_trigger")
        self.get_obj_pose_tri_cli = ServiceClient("get_object_pose_trigger")
        self.pick_plan_cli = ServiceClient("pick_plan")
        self.place_plan_cli = ServiceClient("place_plan")
        self.logger.info("Workflow Planner is up.")

    # ---------------------------------------------------------------- frames

    def setup_camera_transform(self, arm: RobotArm, values: Iterable[float]) -> Transform:
        """Store the tcp-to-camera transform of an arm from [px, py, pz, qx, qy, qz, qw]."""
        vals = [float(v) for v in values]
        if len(vals) == 7:
            g = get_g_from_quat(*vals)
            self.logger.info("camera transform of %s taken from configuration", arm.label)
        else:
            g = get_g_from_quat(0, 0, 0, 0, 0, 0, 0)
            self.logger.warning("camera transform of %s not defined, using identity", arm.label)
        self.g_tcp__cam[arm] = g
        return g

    @property
    def tf_buf(self) -> list[FrameTf]:
        with self._tf_lock:
            return list(self._tf_buf)

    def push_tf_buf(self, tf: FrameTf) -> None:
        with self._tf_lock:
            self._tf_buf.append(tf)

    def clear_tf_buf(self) -> None:
        with self._tf_lock:
            self._tf_buf.clear()

    def tf_pub_cb(self) -> None:
        """Send every buffered frame once."""
        with self._tf_lock:
            for tf in self._tf_buf:
                self.send_transform(*tf)

    def start(self, period: float | None = None) -> None:
        """Publish the buffered frames periodically in a background thread."""
        if self._thread is not None:
            return
        interval = self.PUBLISH_PERIOD if period is None else period
        self._stop.clear()

        def loop() -> None:
            while not self._stop.wait(interval):
                self.tf_pub_cb()

        self._thread = threading.Thread(target=loop, name="workflow-tf", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join()
        self._thread = None

    def __enter__(self) -> WorkflowPlanner:
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()

    # -------------------------------------------------------------- services

    def set_camera_lifecycle(self, arm: RobotArm, activate: bool) -> bool:
        """Activate or deactivate the camera of an arm; True on success."""
        camera_arm = _CAMERA_ARM.get(arm, arm)
        client = self.camera_cli.get(camera_arm)
        srv_name = "change_state"
        if client is None:
            self.logger.error("No camera for arm %s", arm.label)
            return False
        if not self.cli_wait_for_srv(client, srv_name):
            return False

        transition = Transition.ACTIVATE if activate else Transition.DEACTIVATE
        try:
            response = client.call(ChangeStateRequest(transition), self.request_timeout)
        except TimeoutError:
            self.logger.info("Failed to call service %s, status: timeout", srv_name)
            return False
        except Exception as exc:
            self.logger.info("Failed to call service %s: %s", srv_name, exc)
            return False

        if not response.success:
            self.logger.info("Service %s call failed", srv_name)
            return False
        return True

    def get_obj_poses(self, sku_id: int, camera_id: int) -> list[ObjectPose] | None:
        """Ask the vision service for the poses of an item, in camera coordinates."""
        request = GetObjectPoseRequest(target_object_id=sku_id, camera_id=camera_id)
        try:
            response = self.send_sync_req(
                self.get_obj_pose_tri_cli, request, "get_object_pose_trigger"
            )
        except ServiceError as exc:
            self.logger.error("Sent GetObjectPoseTrigger request failed: %s", exc)
            return None
        return list(response.object_poses)

    def get_pick_plan(
        self, object_pose: Pose, rack: RackInfo, flat_frame: str
    ) -> PickPlanResult | None:
        request = PickPlanRequest(object_pose=object_pose, rack=rack, flat_frame=flat_frame)
        try:
            response = self.send_sync_req(self.pick_plan_cli, request, "pick_plan")
        except ServiceError as exc:
            self.logger.error("Sent PickPlan request failed: %s", exc)
            return None
        return response.result

    def get_place_plan(self, place_pose: Pose) -> PlacePlanResult | None:
        request = PlacePlanRequest(place_pose=place_pose)
        try:
            response = self.send_sync_req(self.place_plan_cli, request, "place_plan")
        except ServiceError as exc:
            self.logger.error("Sent PlacePlan request failed: %s", exc)
            return None
        return response.result

    # ------------------------------------------------------------- geometry

    def get_scan_pose(self, rack_id: int, shelf_level: int, shelf_slot: int) -> Pose | None:
        """The pose at scan distance in front of a shelf slot, in the arm frame."""
        frame = f"rack_{rack_id}_shelf_{shelf_level}_slot_{shelf_slot}_link"
        self.logger.info("Target scan slot: %s", frame)
        stamped = self.get_tf(self.ARM_REF_FRAME, frame)
        if stamped is None:
            return None
        g_slot__scan = get_g_from_rpy(0, 0, -self.config.scan_distance, 0, 0, 0)
        return cvt_g_to_pose(stamped.transform @ g_slot__scan)

    def _select_object(self, poses_in_camera: Sequence[ObjectPose]) -> ObjectPose | None:
        threshold = self.config.valid_z_threshold
        chosen: ObjectPose | None = None
        for candidate in poses_in_camera:
            if chosen is None:
                chosen = candidate
                continue
            z = candidate.pose.position.z
            if z >= threshold and z < chosen.pose.position.z:
                chosen = candidate
        return chosen

    def extract_object_pose(
        self, arm: RobotArm, poses_in_camera: Sequence[ObjectPose]
    ) -> Pose | None:
        """Turn the nearest valid detection into a pose in the arm frame and publish it."""
        chosen = self._select_object(poses_in_camera)
        if chosen is None:
            self.logger.error("Failed to find object with minimum Z")
            return None

        g_cam__obj = get_g_from_pose(chosen.pose)
        tcp = _TCP_FRAMES.get(arm, "")
        stamped = self.get_tf(self.ARM_REF_FRAME, tcp)
        if stamped is None:
            self.logger.error("Failed to get current pose")
            return None

        calibration_arm = _CALIBRATION_ARM.get(arm, arm)
        g_tcp__cam = self.g_tcp__cam.get(calibration_arm)
        if g_tcp__cam is None:
            return None

        g_b__obj = stamped.transform @ g_tcp__cam @ g_cam__obj
        object_pose = cvt_g_to_pose(g_b__obj)
        self.push_tf_buf((object_pose, self.ARM_REF_FRAME, self.OBJECT_POSE))

        optical_frame = (
            "left_camera_color_optical_frame"
            if calibration_arm == RobotArm.LEFT
            else "right_camera_color_optical_frame"
        )
        self.push_tf_buf((cvt_g_to_pose(g_cam__obj), optical_frame, "detected_pose"))
        return object_pose