"""Robot arms, a local transform tree and the base class for planners."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable

from shelfbot.geometry import Pose, Quaternion, Transform, Vector3
from shelfbot.node_base import ServiceCaller


class RobotArm(IntEnum):
    LEFT = 1
    LEFT_ACTION = 2
    RIGHT = 3
    RIGHT_ACTION = 4
    WHOLE = 5

    @property
    def label(self) -> str:
        """The arm's canonical name, e.g. ``left_arm``."""
        return _ARM_LABELS[self]


_ARM_LABELS = {
    RobotArm.LEFT: "left_arm",
    RobotArm.LEFT_ACTION: "left_action_arm",
    RobotArm.RIGHT: "right_arm",
    RobotArm.RIGHT_ACTION: "right_action_arm",
    RobotArm.WHOLE: "whole_arm",
}

_ARM_ALIASES = {
    "left": RobotArm.LEFT,
    "left_arm": RobotArm.LEFT,
    "left_action_arm": RobotArm.LEFT_ACTION,
    "right": RobotArm.RIGHT,
    "right_arm": RobotArm.RIGHT,
    "right_action_arm": RobotArm.RIGHT_ACTION,
    "whole": RobotArm.WHOLE,
    "whole_arm": RobotArm.WHOLE,
}


def parse_arm(name: str) -> RobotArm:
    """Map an arm name such as ``left`` or ``right_action_arm`` to its arm."""
    try:
        return _ARM_ALIASES[name]
    except KeyError:
        raise ValueError(f"unknown robot arm: {name!r}") from None


@dataclass
class TransformStamped:
    """The pose of ``child_frame_id`` expressed in ``frame_id``."""

    frame_id: str
    child_frame_id: str
    transform: Transform = field(default_factory=Transform)
    stamp: float = 0.0


class TransformLookupError(LookupError):
    """A transform between two frames could not be resolved."""


class TransformBuffer:
    """A thread-safe tree of frames connected by rigid transforms."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_child: dict[str, TransformStamped] = {}
        self._static: set[str] = set()

    def set_transform(self, transform: TransformStamped, static: bool = False) -> None:
        """Store the transform from its parent frame to its child frame."""
        if transform.frame_id == transform.child_frame_id:
            raise ValueError(f"frame {transform.frame_id!r} cannot be its own parent")
        with self._lock:
            self._by_child[transform.child_frame_id] = transform
            if static:
                self._static.add(transform.child_frame_id)
            else:
                self._static.discard(transform.child_frame_id)

    def _known(self, frame: str) -> bool:
        return frame in self._by_child or any(
            t.frame_id == frame for t in self._by_child.values()
        )

    def _chain(self, frame: str) -> tuple[str, Transform, float]:
        g = Transform()
        stamp = 0.0
        seen: set[str] = set()
        current = frame
        while current in self._by_child:
            if current in seen:
                raise TransformLookupError(f"frame {frame!r} lies on a cycle")
            seen.add(current)
            link = self._by_child[current]
            g = link.transform @ g
            stamp = max(stamp, link.stamp)
            current = link.frame_id
        return current, g, stamp

    def lookup_transform(self, target_frame: str, source_frame: str) -> TransformStamped:
        """Return the pose of ``source_frame`` expressed in ``target_frame``."""
        with self._lock:
            for frame in (target_frame, source_frame):
                if not self._known(frame):
                    raise TransformLookupError(f"frame {frame!r} does not exist")
            target_root, g_root_target, t_stamp = self._chain(target_frame)
            source_root, g_root_source, s_stamp = self._chain(source_frame)
        if target_root != source_root:
            raise TransformLookupError(
                f"frames {target_frame!r} and {source_frame!r} are not connected"
            )
        return TransformStamped(
            frame_id=target_frame,
            child_frame_id=source_frame,
            transform=g_root_target.inverse() @ g_root_source,
            stamp=max(t_stamp, s_stamp),
        )


class PlannerBase(ServiceCaller):
    """Common frames, arm names and transform broadcasting for planners."""

    BASE_LINK = "base_link"
    BASE_FOOTPRINT = "base_footprint"
    OBJECT_POSE = "object_pose"
    ARM_REF_FRAME = "base_footprint"
    ELEV_FLAT_JOINT = "joint4"
    ELEV_FLAT_LINK = "link4"
    MAP_FRAME = "map"

    all_arms = tuple(RobotArm)

    def __init__(
        self,
        node_name: str,
        *,
        tf_buffer: TransformBuffer | None = None,
        clock: Callable[[], float] | None = None,
        **caller_options: float,
    ):
        super().__init__(**caller_options)
        self.node_name = node_name
        self.tf_buffer = tf_buffer if tf_buffer is not None else TransformBuffer()
        self.clock = clock if clock is not None else time.time
        self.logger = logging.getLogger(f"shelfbot.{node_name}")

    def create_transform(
        self, pose: Pose, parent_frame: str, child_frame: str
    ) -> TransformStamped:
        return TransformStamped(
            frame_id=parent_frame,
            child_frame_id=child_frame,
            transform=Transform(
                Vector3(*pose.position), Quaternion(*pose.orientation)
            ),
            stamp=self.clock(),
        )

    def send_transform(self, pose: Pose, parent_frame: str, child_frame: str) -> None:
        self.tf_buffer.set_transform(
            self.create_transform(pose, parent_frame, child_frame), static=False
        )

    def send_static_transform(
        self, pose: Pose, parent_frame: str, child_frame: str
    ) -> None:
        self.tf_buffer.set_transform(
            self.create_transform(pose, parent_frame, child_frame), static=True
        )

    def get_tf(self, to_frame: str, from_frame: str) -> TransformStamped | None:
        """Look up a transform, returning None when it cannot be resolved."""
        try:
            stamped = self.tf_buffer.lookup_transform(to_frame, from_frame)
        except TransformLookupError as exc:
            self.logger.error(
                "Could not transform %s to %s: %s", to_frame, from_frame, exc
            )
            return None
        self.logger.debug("get_tf OK! to_frame: %s, from_frame: %s", to_frame, from_frame)
        return stamped