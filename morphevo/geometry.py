"""Small rigid-transform toolkit built on numpy.

Quaternions are stored as ``(x, y, z, w)`` tuples so that every geometric value
that ends up inside a pydantic model stays JSON-serialisable.
"""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict

Vec2 = tuple[float, float]
Vec3 = tuple[float, float, float]
Quat = tuple[float, float, float, float]

IDENTITY_QUAT: Quat = (0.0, 0.0, 0.0, 1.0)
UNIT_X: Vec3 = (1.0, 0.0, 0.0)
UNIT_Y: Vec3 = (0.0, 1.0, 0.0)
UNIT_Z: Vec3 = (0.0, 0.0, 1.0)
ONE: Vec3 = (1.0, 1.0, 1.0)
ZERO: Vec3 = (0.0, 0.0, 0.0)

_EPS = 1e-8


def vec3(v: Sequence[float]) -> Vec3:
    return (float(v[0]), float(v[1]), float(v[2]))


def quat(q: Sequence[float]) -> Quat:
    return (float(q[0]), float(q[1]), float(q[2]), float(q[3]))


def quat_normalize(q: Sequence[float]) -> Quat:
    arr = np.asarray(q, dtype=np.float64)
    norm = np.linalg.norm(arr)
    if norm < _EPS:
        return IDENTITY_QUAT
    return quat(arr / norm)


def quat_mul(a: Sequence[float], b: Sequence[float]) -> Quat:
    """Hamilton product ``a * b`` (apply ``b`` first, then ``a``)."""
    ax, ay, az, aw = a
    bx, by, bz, bw = b
    return (
        aw * bx + ax * bw + ay * bz - az * by,
        aw * by - ax * bz + ay * bw + az * bx,
        aw * bz + ax * by - ay * bx + az * bw,
        aw * bw - ax * bx - ay * by - az * bz,
    )


def quat_conjugate(q: Sequence[float]) -> Quat:
    return (-q[0], -q[1], -q[2], q[3])


def quat_rotate(q: Sequence[float], v: Sequence[float]) -> np.ndarray:
    u = np.asarray(q[:3], dtype=np.float64)
    w = float(q[3])
    v = np.asarray(v, dtype=np.float64)
    t = 2.0 * np.cross(u, v)
    return v + w * t + np.cross(u, t)


def quat_from_axis_angle(axis: Sequence[float], angle: float) -> Quat:
    axis = np.asarray(axis, dtype=np.float64)
    norm = np.linalg.norm(axis)
    if norm < _EPS:
        return IDENTITY_QUAT
    axis = axis / norm
    s = math.sin(angle / 2.0)
    return (axis[0] * s, axis[1] * s, axis[2] * s, math.cos(angle / 2.0))


def quat_to_axis_angle(q: Sequence[float]) -> tuple[Vec3, float]:
    x, y, z, w = quat_normalize(q)
    if w < 0.0:
        x, y, z, w = -x, -y, -z, -w
    angle = 2.0 * math.acos(min(1.0, w))
    s = math.sqrt(max(0.0, 1.0 - w * w))
    if s < 1e-6:
        return UNIT_X, 0.0
    return (x / s, y / s, z / s), angle


def quat_to_scaled_axis(q: Sequence[float]) -> np.ndarray:
    axis, angle = quat_to_axis_angle(q)
    if angle > math.pi:
        angle -= 2.0 * math.pi
    return np.asarray(axis) * angle


def quat_from_rotation_arc(start: Sequence[float], end: Sequence[float]) -> Quat:
    """Shortest rotation taking unit vector ``start`` onto unit vector ``end``."""
    a = np.asarray(start, dtype=np.float64)
    b = np.asarray(end, dtype=np.float64)
    d = float(np.dot(a, b))
    if d < -1.0 + 1e-6:
        # antiparallel: rotate half a turn about any perpendicular axis
        return quat_from_axis_angle(perpendicular(a), math.pi)
    c = np.cross(a, b)
    return quat_normalize((c[0], c[1], c[2], 1.0 + d))


def quat_from_euler_yxz(yaw: float, pitch: float, roll: float) -> Quat:
    """Intrinsic Y, then X, then Z rotation."""
    return quat_mul(
        quat_mul(quat_from_axis_angle(UNIT_Y, yaw), quat_from_axis_angle(UNIT_X, pitch)),
        quat_from_axis_angle(UNIT_Z, roll),
    )


def quat_slerp(a: Sequence[float], b: Sequence[float], t: float) -> Quat:
    qa = np.asarray(quat_normalize(a))
    qb = np.asarray(quat_normalize(b))
    d = float(np.dot(qa, qb))
    if d < 0.0:
        qb, d = -qb, -d
    if d > 0.9995:
        return quat_normalize(qa + t * (qb - qa))
    theta = math.acos(d)
    sin_theta = math.sin(theta)
    out = (math.sin((1.0 - t) * theta) * qa + math.sin(t * theta) * qb) / sin_theta
    return quat_normalize(out)


def perpendicular(u: Sequence[float]) -> np.ndarray:
    """Any vector perpendicular to ``u`` (zeroes the smallest component)."""
    x, y, z = (float(c) for c in u)
    ax, ay, az = abs(x), abs(y), abs(z)
    if ax <= ay and ax <= az:
        return np.array([0.0, -z, y])
    if ay <= az:
        return np.array([-z, 0.0, x])
    return np.array([-y, x, 0.0])


class Transform(BaseModel):
    """Translation, rotation and (half-extent) scale of a box in world space."""

    translation: Vec3 = ZERO
    rotation: Quat = IDENTITY_QUAT
    scale: Vec3 = ONE

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_xyz(cls, x: float, y: float, z: float) -> Transform:
        return cls(translation=(x, y, z))

    def with_scale(self, scale: Sequence[float]) -> Transform:
        return self.model_copy(update={"scale": vec3(scale)})

    def with_translation(self, translation: Sequence[float]) -> Transform:
        return self.model_copy(update={"translation": vec3(translation)})

    def with_rotation(self, rotation: Sequence[float]) -> Transform:
        return self.model_copy(update={"rotation": quat(rotation)})

    def transform_point(self, local: Sequence[float]) -> np.ndarray:
        """Map a point in the unit-scaled local frame into world space."""
        return quat_rotate(self.rotation, local) + np.asarray(self.translation)

    def corners(self) -> np.ndarray:
        """World-space corners of the box (8 x 3)."""
        sx, sy, sz = self.scale
        local = np.array(
            [[x * sx, y * sy, z * sz] for x in (-1, 1) for y in (-1, 1) for z in (-1, 1)],
            dtype=np.float64,
        )
        return np.array([self.transform_point(p) for p in local])

    def volume(self) -> float:
        sx, sy, sz = self.scale
        return 8.0 * abs(sx * sy * sz)
