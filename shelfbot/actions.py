"""Action servers of the workflow planner: pick, place, scan and replenish goals."""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, Sequence

from shelfbot.messages import (
    PickGoal,
    PickResult,
    PlaceGoal,
    PlaceResult,
    ReplenishGoal,
    RobotStatus,
    ScanSkuGoal,
)
from shelfbot.planner import RobotArm
from shelfbot.strategy import (
    ACTION_SPEED,
    SETTLE_DELAY,
    optimal_pick_elevation,
    optimal_place_elevation,
    try_to_pick_up,
    try_to_place_down,
)

logger = logging.getLogger(__name__)

PLACE_HEIGHT_MARGIN = 0.04
"""Extra clearance added to an item's height before it is placed."""

FEEDBACK_PERIOD = 1.0


class GoalResponse(Enum):
    REJECT = 1
    ACCEPT_AND_EXECUTE = 2
    ACCEPT_AND_DEFER = 3


class CancelResponse(Enum):
    REJECT = 1
    ACCEPT = 2


class GoalStatus(Enum):
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    ABORTED = "aborted"


@dataclass
class ActionFeedback:
    running: bool = False
    state: int = 0


@dataclass
class PickActionResult:
    results: list[PickResult] = field(default_factory=list)


@dataclass
class PlaceActionResult:
    results: list[PlaceResult] = field(default_factory=list)


@dataclass
class ScanSkuResult:
    success: bool = False


@dataclass
class ReplenishResult:
    info: list[Any] = field(default_factory=list)


class GoalHandle:
    """Tracks one accepted goal: its feedback, its outcome and its result."""

    def __init__(self, goal: Any):
        self.goal = goal
        self.status = GoalStatus.EXECUTING
        self.result: Any = None
        self.feedback: list[Any] = []
        self._lock = threading.Lock()
        self._done = threading.Event()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def publish_feedback(self, feedback: Any) -> None:
        """Record a snapshot of the feedback."""
        snapshot = dataclasses.replace(feedback) if dataclasses.is_dataclass(feedback) else feedback
        with self._lock:
            self.feedback.append(snapshot)

    def _finish(self, status: GoalStatus, result: Any) -> None:
        with self._lock:
            if self._done.is_set():
                raise RuntimeError(f"goal already finished as {self.status.value}")
            self.status = status
            self.result = result
            self._done.set()

    def succeed(self, result: Any) -> None:
        self._finish(GoalStatus.SUCCEEDED, result)

    def abort(self, result: Any) -> None:
        self._finish(GoalStatus.ABORTED, result)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the goal finishes; False if the timeout ran out first."""
        return self._done.wait(timeout)


class WorkflowActions:
    """Accepts, runs and reports the goals handled by a workflow planner."""

    def __init__(self, planner: Any, feedback_period: float = FEEDBACK_PERIOD):
        self.planner = planner
        self.feedback_period = feedback_period

    # ----------------------------------------------------------- helpers

    def _settle(self) -> None:
        time.sleep(getattr(self.planner, "settle_delay", SETTLE_DELAY))

    def _is_idle(self) -> bool:
        if self.planner.state != RobotStatus.IDLE:
            logger.info("Robot is not idle")
            return False
        return True

    @staticmethod
    def _tasks_valid(tasks: Sequence[Any]) -> bool:
        if not tasks or len(tasks) > 2:
            logger.info("Invalid task size: %d. Must be 1 or 2.", len(tasks))
            return False
        if len(tasks) == 2 and tasks[0].arm_id == tasks[1].arm_id:
            logger.info("Task arm_ids are not distinct!")
            return False
        return True

    @staticmethod
    def _arm(arm_id: int) -> RobotArm | None:
        try:
            return RobotArm(arm_id)
        except ValueError:
            logger.error("Unknown arm id %s", arm_id)
            return None

    @contextmanager
    def _feedback_timer(
        self, goal_handle: GoalHandle, make_feedback: Callable[[], Any]
    ) -> Iterator[None]:
        stop = threading.Event()

        def loop() -> None:
            while not stop.wait(self.feedback_period):
                goal_handle.publish_feedback(make_feedback())

        thread = threading.Thread(target=loop, name="action-feedback", daemon=True)
        thread.start()
        try:
            yield
        finally:
            stop.set()
            thread.join()

    def _finish(self, goal_handle: GoalHandle, result: Any) -> None:
        if self.planner.ok:
            self.planner.clear_tf_buf()
            goal_handle.succeed(result)
            logger.info("Goal succeeded")

    def _start(self, target: Callable[[GoalHandle], Any], goal_handle: GoalHandle) -> threading.Thread:
        thread = threading.Thread(target=target, args=(goal_handle,), daemon=True)
        thread.start()
        return thread

    # -------------------------------------------------------------- pick

    def pick_goal_cb(self, goal: PickGoal) -> GoalResponse:
        if not self._is_idle() or not self._tasks_valid(goal.tasks):
            return GoalResponse.REJECT
        logger.info("Received goal request with order: %s", goal.order_id)
        return GoalResponse.ACCEPT_AND_EXECUTE

    def pick_cancel_cb(self, goal_handle: GoalHandle) -> CancelResponse:
        logger.debug("Received request to cancel goal")
        return CancelResponse.ACCEPT

    def pick_accepted(self, goal_handle: GoalHandle) -> threading.Thread:
        return self._start(self.pick_execution, goal_handle)

    def pick_execution(self, goal_handle: GoalHandle) -> PickActionResult:
        """Pick every task's item with its arm and report one result per step."""
        planner = self.planner
        goal: PickGoal = goal_handle.goal
        feedback = ActionFeedback()
        result = PickActionResult()

        with self._feedback_timer(goal_handle, lambda: feedback):
            planner.clear_tf_buf()
            logger.info("Starting Pick action sequence with %d tasks", len(goal.tasks))

            for arm_id, camera_id, sku_id, rack, _dimension in goal.tasks:
                msg = PickResult(arm_id=arm_id)
                arm = self._arm(arm_id)
                if arm is None:
                    msg.message = "Unknown arm"
                    result.results.append(msg)
                    continue

                if not planner.set_camera_lifecycle(arm, True):
                    logger.error("Failed to activate camera")
                    msg.message = "Failed to activate camera"
                    result.results.append(msg)
                    continue

                self._settle()

                if not optimal_pick_elevation(planner, rack):
                    logger.error(
                        "Failed to elevate to rack id: [%d], shelf level: %d",
                        rack.id, rack.shelf_level,
                    )
                    msg.message = "Failed to elevate to rack"
                    result.results.append(msg)
                    continue

                height = try_to_pick_up(planner, arm, sku_id, camera_id, rack)
                if height is not None:
                    planner.clear_tf_buf()
                    msg.success = True
                    msg.height = height
                    feedback.state += 1
                    logger.info("Successfully picked up SKU %d using %s", sku_id, arm.label)
                else:
                    msg.message = "Failed to pick up item"
                    logger.error("Failed to pick up SKU %d using %s", sku_id, arm.label)
                result.results.append(msg)

                if height is not None:
                    planner.motion_planner.move_to_holding_pose(arm, ACTION_SPEED)

                if not planner.set_camera_lifecycle(arm, False):
                    logger.error("Failed to deactivate camera")
                    result.results.append(
                        dataclasses.replace(
                            msg, success=False, message="Failed to deactivate camera"
                        )
                    )
                    continue

        logger.info("Pick action completed, final state=%d", feedback.state)
        self._finish(goal_handle, result)
        return result

    # ------------------------------------------------------------- place

    def place_goal_cb(self, goal: PlaceGoal) -> GoalResponse:
        if not self._is_idle() or not self._tasks_valid(goal.tasks):
            return GoalResponse.REJECT
        logger.info("Received goal request with order: %s", goal.order_id)
        return GoalResponse.ACCEPT_AND_EXECUTE

    def place_cancel_cb(self, goal_handle: GoalHandle) -> CancelResponse:
        logger.info("Received request to cancel goal")
        return CancelResponse.ACCEPT

    def place_accepted(self, goal_handle: GoalHandle) -> threading.Thread:
        return self._start(self.place_execution, goal_handle)

    def place_execution(self, goal_handle: GoalHandle) -> PlaceActionResult:
        """Place every task's item on its table and report one result per step."""
        planner = self.planner
        goal: PlaceGoal = goal_handle.goal
        feedback = ActionFeedback()
        result = PlaceActionResult()
        place_offset = planner.config.place_offset

        with self._feedback_timer(goal_handle, lambda: feedback):
            planner.clear_tf_buf()
            logger.info("Starting Place action sequence with %d tasks", len(goal.tasks))

            for arm_id, sku_id, height, table, _dimension in goal.tasks:
                msg = PlaceResult(arm_id=arm_id)
                arm = self._arm(arm_id)
                if arm is None:
                    msg.message = "Unknown arm"
                    result.results.append(msg)
                    continue

                if height <= place_offset:
                    logger.warning(
                        "Height (%.4f) should not be less than or equal to place offset (%.4f)",
                        height, place_offset,
                    )
                    msg.message = "Invalid height - below safety threshold"
                    result.results.append(msg)
                    continue

                self._settle()

                if not optimal_place_elevation(planner, table):
                    logger.error(
                        "Failed to elevate to Table id: [%d], index: %d", table.id, table.index
                    )
                    msg.message = "Failed to elevate to Table"
                    result.results.append(msg)
                    continue

                if not planner.motion_planner.move_to_action_pose(arm, ACTION_SPEED):
                    logger.error("Failed to move to action pose")
                    msg.message = "Placement operation failed"
                    result.results.append(msg)
                    continue

                success = try_to_place_down(planner, arm, height + PLACE_HEIGHT_MARGIN, table)
                planner.clear_tf_buf()

                if success:
                    if not planner.motion_planner.move_to_action_pose(arm, ACTION_SPEED):
                        logger.error("Failed to move to action pose")
                        msg.message = "Placement operation failed"
                        result.results.append(msg)
                        continue
                    msg.success = True
                    feedback.state += 1
                    logger.info("Successfully placed down SKU %d using %s", sku_id, arm.label)
                else:
                    msg.message = "Placement operation failed"
                    logger.warning("Failed to place down SKU %d using %s", sku_id, arm.label)
                result.results.append(msg)

        logger.info("Place action completed, final state=%d", feedback.state)
        self._finish(goal_handle, result)
        return result

    # ---------------------------------------------------------- scan sku

    def scan_sku_goal_cb(self, goal: ScanSkuGoal) -> GoalResponse:
        if not self._is_idle():
            return GoalResponse.REJECT
        logger.info("Received goal request with order %s", goal.order_id)
        return GoalResponse.ACCEPT_AND_EXECUTE

    def scan_sku_cancel_cb(self, goal_handle: GoalHandle) -> CancelResponse:
        logger.info("Received request to cancel goal")
        return CancelResponse.ACCEPT

    def scan_sku_accepted(self, goal_handle: GoalHandle) -> threading.Thread:
        return self._start(self.scan_sku_execution, goal_handle)

    def scan_sku_execution(self, goal_handle: GoalHandle) -> ScanSkuResult:
        feedback = ActionFeedback()
        result = ScanSkuResult()

        def current() -> ActionFeedback:
            if self.planner.ok:
                feedback.state = 1
                feedback.running = True
            return feedback

        with self._feedback_timer(goal_handle, current):
            self.planner.clear_tf_buf()
            result.success = True

        self._finish(goal_handle, result)
        return result

    # --------------------------------------------------------- replenish

    def replenish_goal_cb(self, goal: ReplenishGoal) -> GoalResponse:
        if not self._is_idle():
            return GoalResponse.REJECT
        logger.info("Received goal request with order %s", goal.order_id)
        return GoalResponse.ACCEPT_AND_EXECUTE

    def replenish_cancel_cb(self, goal_handle: GoalHandle) -> CancelResponse:
        logger.info("Received request to cancel goal")
        return CancelResponse.ACCEPT

    def replenish_accepted(self, goal_handle: GoalHandle) -> threading.Thread:
        return self._start(self.replenish_execution, goal_handle)

    def replenish_execution(self, goal_handle: GoalHandle) -> ReplenishResult:
        result = ReplenishResult()
        self._finish(goal_handle, result)
        return result