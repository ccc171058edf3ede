"""Message types exchanged by the workflow planner."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import IntEnum
from typing import Any, Iterator

from shelfbot.geometry import Pose


class RobotStatus(IntEnum):
    IDLE = 0
    BUSY = 1


class _Unpackable:
    """Lets a message be unpacked into its fields in declaration order."""

    def __iter__(self) -> Iterator[Any]:
        for f in fields(self):  # type: ignore[arg-type]
            yield getattr(self, f.name)


@dataclass
class RackInfo:
    id: int = 0
    shelf_level: int = 0
    shelf_slot: int = 0


@dataclass
class TableInfo:
    id: int = 0
    index: int = 0


@dataclass
class ObjectPose:
    pose: Pose = field(default_factory=Pose)


@dataclass
class PickPlanResult:
    pre_pick_pose: Pose = field(default_factory=Pose)
    pick_poses: list[Pose] = field(default_factory=list)


@dataclass
class PlacePlanResult:
    pre_place_pose: Pose = field(default_factory=Pose)
    place_poses: list[Pose] = field(default_factory=list)


@dataclass
class PickTask(_Unpackable):
    arm_id: int = 0
    camera_id: int = 0
    sku_id: int = 0
    rack: RackInfo = field(default_factory=RackInfo)
    dimension: list[float] = field(default_factory=list)


@dataclass
class PlaceTask(_Unpackable):
    arm_id: int = 0
    sku_id: int = 0
    height: float = 0.0
    table: TableInfo = field(default_factory=TableInfo)
    dimension: list[float] = field(default_factory=list)


@dataclass
class PickResult:
    arm_id: int = 0
    success: bool = False
    message: str = ""
    height: float = 0.0


@dataclass
class PlaceResult:
    arm_id: int = 0
    success: bool = False
    message: str = ""


@dataclass
class PickGoal:
    order_id: int = 0
    tasks: list[PickTask] = field(default_factory=list)


@dataclass
class PlaceGoal:
    order_id: int = 0
    tasks: list[PlaceTask] = field(default_factory=list)


@dataclass
class ScanSkuGoal:
    order_id: int = 0


@dataclass
class ReplenishGoal:
    order_id: int = 0