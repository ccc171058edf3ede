"""Rigid-body geometry: vectors, quaternions, poses and homogeneous transforms."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, Iterator


@dataclass(frozen=True)
class Vector3:
    """A 3-D vector or point."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __iter__(self) -> Iterator[float]:
        yield self.x
        yield self.y
        yield self.z

    def __add__(self, other: Vector3) -> Vector3:
        return Vector3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: Vector3) -> Vector3:
        return Vector3(self.x - other.x, self.y - other.y, self.z - other.z)

    def __neg__(self) -> Vector3:
        return Vector3(-self.x, -self.y, -self.z)

    def __mul__(self, scalar: float) -> Vector3:
        return Vector3(self.x * scalar, self.y * scalar, self.z * scalar)

    __rmul__ = __mul__

    def dot(self, other: Vector3) -> float:
        return self.x * other.x + self.y * other.y + self.z * other.z

    def cross(self, other: Vector3) -> Vector3:
        return Vector3(
            self.y * other.z - self.z * other.y,
            self.z * other.x - self.x * other.z,
            self.x * other.y - self.y * other.x,
        )

    def norm(self) -> float:
        return math.sqrt(self.dot(self))


@dataclass(frozen=True)
class Quaternion:
    """A quaternion (x, y, z, w); the default is the identity rotation."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    w: float = 1.0

    @classmethod
    def from_rpy(cls, roll: float, pitch: float, yaw: float) -> Quaternion:
        """Build a rotation from fixed-axis roll, pitch and yaw angles."""
        hr, hp, hy = roll * 0.5, pitch * 0.5, yaw * 0.5
        cr, sr = math.cos(hr), math.sin(hr)
        cp, sp = math.cos(hp), math.sin(hp)
        cy, sy = math.cos(hy), math.sin(hy)
        return cls(
            sr * cp * cy - cr * sp * sy,
            cr * sp * cy + sr * cp * sy,
            cr * cp * sy - sr * sp * cy,
            cr * cp * cy + sr * sp * sy,
        )

    def __iter__(self) -> Iterator[float]:
        yield self.x
        yield self.y
        yield self.z
        yield self.w

    @property
    def vec(self) -> Vector3:
        return Vector3(self.x, self.y, self.z)

    def norm(self) -> float:
        return math.sqrt(self.x**2 + self.y**2 + self.z**2 + self.w**2)

    def normalized(self) -> Quaternion:
        """Unit quaternion; a zero quaternion yields the identity."""
        n = self.norm()
        if n == 0.0:
            return Quaternion()
        return Quaternion(self.x / n, self.y / n, self.z / n, self.w / n)

    def conjugate(self) -> Quaternion:
        return Quaternion(-self.x, -self.y, -self.z, self.w)

    def __mul__(self, other: Quaternion) -> Quaternion:
        return Quaternion(
            self.w * other.x + self.x * other.w + self.y * other.z - self.z * other.y,
            self.w * other.y - self.x * other.z + self.y * other.w + self.z * other.x,
            self.w * other.z + self.x * other.y - self.y * other.x + self.z * other.w,
            self.w * other.w - self.x * other.x - self.y * other.y - self.z * other.z,
        )

    def angular_distance(self, other: Quaternion) -> float:
        """Angle between two rotations, insensitive to quaternion sign."""
        d = self * other.conjugate()
        return 2.0 * math.atan2(d.vec.norm(), abs(d.w))

    def rotate(self, vector: Vector3) -> Vector3:
        """Rotate a vector by the normalised rotation."""
        q = self.normalized()
        qv = q.vec
        t = qv.cross(vector) * 2.0
        return vector + t * q.w + qv.cross(t)


@dataclass(frozen=True)
class Pose:
    """A position and orientation."""

    position: Vector3 = field(default_factory=Vector3)
    orientation: Quaternion = field(default_factory=Quaternion)


@dataclass(frozen=True)
class Transform:
    """A rigid transform; the rotation is always stored normalised."""

    origin: Vector3 = field(default_factory=Vector3)
    rotation: Quaternion = field(default_factory=Quaternion)

    def __post_init__(self) -> None:
        object.__setattr__(self, "rotation", self.rotation.normalized())

    def __matmul__(self, other: Transform) -> Transform:
        return Transform(self.apply(other.origin), self.rotation * other.rotation)

    def inverse(self) -> Transform:
        inv = self.rotation.conjugate()
        return Transform(-inv.rotate(self.origin), inv)

    def apply(self, point: Vector3) -> Vector3:
        return self.rotation.rotate(point) + self.origin


def get_g_from_pose(pose: Pose) -> Transform:
    return Transform(pose.position, pose.orientation)


def get_g_from_rpy(
    px: float, py: float, pz: float, roll: float, pitch: float, yaw: float
) -> Transform:
    return Transform(Vector3(px, py, pz), Quaternion.from_rpy(roll, pitch, yaw))


def get_g_from_quat(
    px: float, py: float, pz: float, qx: float, qy: float, qz: float, qw: float
) -> Transform:
    return Transform(Vector3(px, py, pz), Quaternion(qx, qy, qz, qw))


def cvt_g_to_pose(g: Transform) -> Pose:
    return Pose(g.origin, g.rotation)


def compose_pose_msg(pose_vec: Iterable[float]) -> Pose:
    """Build a pose from [px, py, pz, qx, qy, qz, qw]."""
    values = [float(v) for v in pose_vec]
    if len(values) != 7:
        raise ValueError(f"Invalid dimensions for pose, vector size: {len(values)}")
    px, py, pz, qx, qy, qz, qw = values
    return Pose(Vector3(px, py, pz), Quaternion(qx, qy, qz, qw))


def pose_translation(pose: Pose, x: float, y: float, z: float) -> Pose:
    """Translate a pose along its own axes, keeping its orientation."""
    offset = pose.orientation.rotate(Vector3(x, y, z))
    return Pose(pose.position + offset, pose.orientation)


def are_poses_closed(
    pose_1: Pose, pose_2: Pose, pos_thd: float = 1e-5, ori_thd: float = 1e-5
) -> bool:
    """True when positions and orientations lie within the thresholds."""
    if (pose_1.position - pose_2.position).norm() > pos_thd:
        return False
    return pose_1.orientation.angular_distance(pose_2.orientation) < ori_thd


def format_pose(pose: Pose) -> str:
    p, q = pose.position, pose.orientation
    return (
        f"[p.x: {p.x:.6f}, p.y: {p.y:.6f}, p.z: {p.z:.6f}, "
        f"q.x: {q.x:.6f}, q.y: {q.y:.6f}, q.z: {q.z:.6f}, q.w: {q.w:.6f}]"
    )