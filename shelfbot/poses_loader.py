"""Reading poses, keyed pose sets and waypoint lists from YAML documents."""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Any

import yaml

from shelfbot.geometry import Pose, Quaternion, Vector3

logger = logging.getLogger(__name__)


class PoseFormatError(ValueError):
    """A YAML node does not describe a valid pose."""


def _floats(values: Any, count: int, what: str) -> list[float]:
    if not isinstance(values, (list, tuple)) or len(values) != count:
        raise PoseFormatError(f"{what} must have {count} elements")
    try:
        return [float(v) for v in values]
    except (TypeError, ValueError) as exc:
        raise PoseFormatError(f"Failed to parse pose: {exc}") from exc


def _int(node: Any, key: str) -> int:
    try:
        return int(node[key])
    except (KeyError, TypeError, ValueError) as exc:
        raise PoseFormatError(f"Failed to parse {key!r}: {exc}") from exc


def parse_pose(node: Any) -> Pose:
    """Build a pose from ``position`` and either ``rpy`` or ``orientation``."""
    if not isinstance(node, Mapping) or "position" not in node:
        raise PoseFormatError("The pose node is empty")

    position = Vector3(*_floats(node["position"], 3, "Position (x, y, z)"))

    if "rpy" in node:
        roll, pitch, yaw = _floats(node["rpy"], 3, "roll, pitch, yaw (r, p, y)")
        orientation = Quaternion.from_rpy(roll, pitch, yaw).normalized()
    elif "orientation" in node:
        orientation = Quaternion(*_floats(node["orientation"], 4, "Orientation (x, y, z, w)"))
    else:
        raise PoseFormatError("Quaternion is not defined")

    norm = orientation.norm()
    if not math.isclose(norm, 1.0, abs_tol=1e-3):
        logger.warning(
            "%s: quaternion is not normalized (norm = %f). Consider normalizing.",
            "rpy" if "rpy" in node else "quaternion",
            norm,
        )
    return Pose(position, orientation)


def _section(node: Any, name: str) -> Any:
    if not isinstance(node, Mapping) or name not in node:
        raise PoseFormatError(f"Invalid name: {name}")
    return node[name]


def load_pose(node: Any, name: str) -> Pose:
    """Parse the pose stored under ``name``."""
    try:
        return parse_pose(_section(node, name))
    except PoseFormatError as exc:
        raise PoseFormatError(f"Invalid {name}: {exc}") from exc


def load_poses(node: Any, name: str) -> dict[int, Pose]:
    """Map each entry's ``sku_id`` to its pose, skipping invalid poses."""
    poses: dict[int, Pose] = {}
    for entry in _section(node, name) or ():
        sku_id = _int(entry, "sku_id")
        try:
            poses[sku_id] = parse_pose(entry.get("pose"))
        except PoseFormatError as exc:
            logger.error("Invalid pose for item %d: %s", sku_id, exc)
    return poses


def load_ordered_poses(
    node: Any, name: str
) -> tuple[dict[int, Pose], list[tuple[int, int]]]:
    """Return poses by ``sku_id`` and (scan_order, sku_id) pairs sorted by order."""
    poses: dict[int, Pose] = {}
    order: list[tuple[int, int]] = []
    for entry in _section(node, name) or ():
        scan_order = _int(entry, "scan_order")
        sku_id = _int(entry, "sku_id")
        try:
            poses[sku_id] = parse_pose(entry.get("pose"))
        except PoseFormatError as exc:
            logger.error(
                "Invalid pose for item %d (scan_order %d): %s", sku_id, scan_order, exc
            )
            continue
        order.append((scan_order, sku_id))
    order.sort(key=lambda pair: pair[0])
    return poses, order


def load_waypoints(node: Any, name: str) -> list[Pose]:
    """Return the waypoints under ``name`` sorted by their ``order`` field."""
    ordered: list[tuple[int, Pose]] = []
    for entry in _section(node, name) or ():
        if not isinstance(entry, Mapping) or "order" not in entry or "pose" not in entry:
            logger.error("Waypoint missing 'order' or 'pose'")
            continue
        order = _int(entry, "order")
        try:
            ordered.append((order, parse_pose(entry["pose"])))
        except PoseFormatError as exc:
            logger.error("Invalid pose in %s (order %d): %s", name, order, exc)
    ordered.sort(key=lambda pair: pair[0])
    return [pose for _, pose in ordered]


def parse_yaml(file_path: str) -> Any:
    """Load a YAML file; raise PoseFormatError if it cannot be parsed."""
    if not file_path:
        raise FileNotFoundError("file does not exist")
    logger.info("Path: %s", file_path)
    with open(file_path, encoding="utf-8") as stream:
        try:
            return yaml.safe_load(stream)
        except yaml.YAMLError as exc:
            raise PoseFormatError(f"Failed to parse YAML file: {exc}") from exc