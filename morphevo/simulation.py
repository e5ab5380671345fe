"""Physics boundary of the training loop.

The evolution engine only talks to a :class:`PhysicsSimulator`. Any rigid-body
engine can be plugged in behind it; :class:`HeadlessSimulator` is a small
deterministic numpy integrator so that training runs and tests need nothing
beyond this package.
"""

from __future__ import annotations

import math
from typing import Protocol, Sequence

import numpy as np
from loguru import logger
from pydantic import BaseModel, Field

from morphevo.geometry import (
    Transform,
    quat_conjugate,
    quat_mul,
    quat_normalize,
    quat_rotate,
    quat_to_scaled_axis,
    vec3,
)
from morphevo.morphology.builder import BuildResult
from morphevo.morphology.joint import JOINT_AXES

EffectorOutputs = Sequence[Sequence[float]]

_AXES = np.eye(3)


class LimbState(BaseModel):
    """Per-step physics state of one spawned limb."""

    transform: Transform
    linvel: tuple[float, float, float] = (0.0, 0.0, 0.0)
    angvel: tuple[float, float, float] = (0.0, 0.0, 0.0)
    contacts: tuple[bool, bool, bool, bool, bool, bool] = (False,) * 6

    def volume(self) -> float:
        return self.transform.volume()

    def lowest_point(self) -> float:
        return float(self.transform.corners()[:, 1].min())

    def highest_point(self) -> float:
        return float(self.transform.corners()[:, 1].max())


class PhysicsSnapshot(BaseModel):
    """Everything a fitness function or controller may observe after one step."""

    limbs: list[LimbState] = Field(default_factory=list)
    time: float = 0.0

    def lowest_point(self) -> float:
        if not self.limbs:
            return 0.0
        return min(limb.lowest_point() for limb in self.limbs)

    def highest_point(self) -> float:
        if not self.limbs:
            return 0.0
        return max(limb.highest_point() for limb in self.limbs)

    def centroid(self) -> np.ndarray:
        """Volume-weighted centre of all limbs."""
        if not self.limbs:
            return np.zeros(3)
        weights = np.array([limb.volume() for limb in self.limbs])
        points = np.array([limb.transform.translation for limb in self.limbs])
        total = weights.sum()
        if total <= 0.0:
            return points.mean(axis=0)
        return (points * weights[:, None]).sum(axis=0) / total

    def horizontal_extent(self) -> float:
        """Diagonal of the XZ bounding rectangle of every limb corner."""
        if not self.limbs:
            return 0.0
        corners = np.concatenate([limb.transform.corners() for limb in self.limbs])
        span = corners.max(axis=0) - corners.min(axis=0)
        return float(math.hypot(span[0], span[2]))

    def max_speed(self) -> float:
        if not self.limbs:
            return 0.0
        return max(float(np.linalg.norm(limb.linvel)) for limb in self.limbs)


class PhysicsSimulator(Protocol):
    """What the evolution engine needs from a physics backend."""

    def spawn(self, build: BuildResult) -> PhysicsSnapshot: ...

    def despawn(self) -> None: ...

    def step(self, effector_outputs: EffectorOutputs) -> PhysicsSnapshot: ...

    def snapshot(self) -> PhysicsSnapshot: ...

    def set_settling(self, settling: bool) -> None: ...


class HeadlessConfig(BaseModel):
    """Tuning of the reference integrator."""

    dt: float = Field(default=1.0 / 60.0, gt=0)
    substeps: int = Field(default=4, ge=1)
    gravity: float = Field(default=-9.81, description="Vertical acceleration")
    ground_height: float = 0.0
    joint_stiffness: float = Field(default=400.0, ge=0)
    joint_damping: float = Field(default=20.0, ge=0)
    angular_stiffness: float = Field(default=60.0, ge=0)
    angular_damping: float = Field(default=0.5, ge=0, description="Per-second angular velocity decay")
    linear_damping: float = Field(default=0.05, ge=0, description="Per-second linear velocity decay")
    max_linvel: float = Field(default=30.0, gt=0)
    max_angvel: float = Field(default=20.0, gt=0)
    contact_epsilon: float = Field(default=0.02, ge=0)


class _Body:
    __slots__ = (
        "translation", "rotation", "scale", "linvel", "angvel",
        "inv_mass", "inv_inertia", "friction", "restitution", "contacts",
    )

    def __init__(self, transform: Transform, density: float, friction: float, restitution: float):
        self.translation = np.asarray(transform.translation, dtype=np.float64)
        self.rotation = transform.rotation
        self.scale = np.asarray(transform.scale, dtype=np.float64)
        self.linvel = np.zeros(3)
        self.angvel = np.zeros(3)
        mass = max(density, 1e-3) * max(transform.volume(), 1e-6)
        self.inv_mass = 1.0 / mass
        self.inv_inertia = 3.0 / (mass * max(float(np.dot(self.scale, self.scale)), 1e-6))
        self.friction = friction
        self.restitution = restitution
        self.contacts = [False] * 6

    def transform(self) -> Transform:
        return Transform(translation=vec3(self.translation), rotation=self.rotation, scale=vec3(self.scale))

    def world_point(self, local: np.ndarray) -> np.ndarray:
        return quat_rotate(self.rotation, local) + self.translation

    def apply_impulse(self, impulse: np.ndarray, arm: np.ndarray) -> None:
        self.linvel = self.linvel + impulse * self.inv_mass
        self.angvel = self.angvel + np.cross(arm, impulse) * self.inv_inertia

    def state(self) -> LimbState:
        return LimbState(
            transform=self.transform(),
            linvel=vec3(self.linvel),
            angvel=vec3(self.angvel),
            contacts=tuple(self.contacts),
        )


class _Joint:
    __slots__ = ("parent", "child", "parent_anchor", "child_anchor", "locked", "limits", "rest")

    def __init__(self, parent: int, child: int, parent_anchor, child_anchor, locked, limits, rest):
        self.parent = parent
        self.child = child
        self.parent_anchor = np.asarray(parent_anchor, dtype=np.float64)
        self.child_anchor = np.asarray(child_anchor, dtype=np.float64)
        self.locked = locked
        self.limits = limits
        self.rest = rest


class HeadlessSimulator:
    """Deterministic rigid-box integrator with a ground plane and spring joints.

    Joints are soft: anchors are pulled together by a spring-damper and each
    angular degree of freedom is held at its rest angle when locked, or
    pushed back inside its limits when free. Effector outputs act as impulses
    along the child limb's axes, with the opposite impulse on the parent.

    While settling, effectors are ignored and ground contacts have neither
    restitution nor friction, so the creature comes to rest under gravity
    alone.
    """

    def __init__(self, config: HeadlessConfig | None = None):
        self.config = config or HeadlessConfig()
        self.bodies: list[_Body] = []
        self.joints: list[_Joint] = []
        self.time = 0.0
        self.settling = False

    def spawn(self, build: BuildResult) -> PhysicsSnapshot:
        self.despawn()
        for limb in build.limbs:
            self.bodies.append(_Body(limb.transform, limb.density, limb.friction, limb.restitution))
        for joint in build.joints:
            if not (0 <= joint.parent < len(self.bodies) and 0 <= joint.child < len(self.bodies)):
                logger.warning(
                    "[HeadlessSimulator] Skipping joint with invalid limbs {} -> {}",
                    joint.parent,
                    joint.child,
                )
                continue
            parent = self.bodies[joint.parent].rotation
            child = self.bodies[joint.child].rotation
            self.joints.append(
                _Joint(
                    joint.parent,
                    joint.child,
                    joint.parent_anchor,
                    joint.child_anchor,
                    joint.locked_axes,
                    joint.limit_axes,
                    quat_mul(quat_conjugate(parent), child),
                )
            )
        self._update_contacts()
        return self.snapshot()

    def despawn(self) -> None:
        self.bodies = []
        self.joints = []
        self.time = 0.0

    def set_settling(self, settling: bool) -> None:
        self.settling = settling

    def snapshot(self) -> PhysicsSnapshot:
        return PhysicsSnapshot(limbs=[body.state() for body in self.bodies], time=self.time)

    def step(self, effector_outputs: EffectorOutputs = ()) -> PhysicsSnapshot:
        cfg = self.config
        h = cfg.dt / cfg.substeps
        if not self.settling:
            self._apply_effectors(effector_outputs)
        for _ in range(cfg.substeps):
            for body in self.bodies:
                body.linvel = body.linvel + np.array([0.0, cfg.gravity * h, 0.0])
            for joint in self.joints:
                self._solve_joint(joint, h)
            for body in self.bodies:
                self._integrate(body, h)
            self._resolve_ground()
        self._update_contacts()
        self.time += cfg.dt
        return self.snapshot()

    # ------------------------------------------------------------------
    def _apply_effectors(self, outputs: EffectorOutputs) -> None:
        for joint, values in zip(self.joints, outputs):
            parent, child = self.bodies[joint.parent], self.bodies[joint.child]
            for axis, value in zip(JOINT_AXES, values):
                if value == 0.0 or not math.isfinite(value):
                    continue
                direction = quat_rotate(child.rotation, _AXES[axis.to_index() % 3]) * value
                if axis.is_angular:
                    child.angvel = child.angvel + direction * child.inv_inertia
                    parent.angvel = parent.angvel - direction * parent.inv_inertia
                else:
                    child.linvel = child.linvel + direction * child.inv_mass
                    parent.linvel = parent.linvel - direction * parent.inv_mass

    def _solve_joint(self, joint: _Joint, h: float) -> None:
        cfg = self.config
        parent, child = self.bodies[joint.parent], self.bodies[joint.child]

        arm_p = quat_rotate(parent.rotation, joint.parent_anchor)
        arm_c = quat_rotate(child.rotation, joint.child_anchor)
        error = (parent.translation + arm_p) - (child.translation + arm_c)
        rel_vel = (parent.linvel + np.cross(parent.angvel, arm_p)) - (
            child.linvel + np.cross(child.angvel, arm_c)
        )
        k = cfg.joint_stiffness * (0.1 if self.settling else 1.0)
        reduced = 1.0 / (parent.inv_mass + child.inv_mass)
        impulse = (k * error + cfg.joint_damping * rel_vel) * h * reduced
        child.apply_impulse(impulse, arm_c)
        parent.apply_impulse(-impulse, arm_p)

        # angular deviation from the rest pose, in the child's rest frame
        current = quat_mul(quat_conjugate(parent.rotation), child.rotation)
        deviation = quat_to_scaled_axis(quat_mul(quat_conjugate(joint.rest), current))
        excess = np.zeros(3)
        for i, axis in enumerate(JOINT_AXES[3:]):
            if joint.locked.is_locked(axis):
                excess[i] = deviation[i]
            else:
                lo, hi = joint.limits[axis.to_index()]
                excess[i] = deviation[i] - min(hi, max(lo, deviation[i]))
        if not excess.any():
            return
        torque = quat_rotate(child.rotation, excess) * cfg.angular_stiffness * h
        rel_ang = child.angvel - parent.angvel
        torque = torque + rel_ang * cfg.joint_damping * h * 0.1
        inv_sum = parent.inv_inertia + child.inv_inertia
        child.angvel = child.angvel - torque * child.inv_inertia / inv_sum
        parent.angvel = parent.angvel + torque * parent.inv_inertia / inv_sum

    def _integrate(self, body: _Body, h: float) -> None:
        cfg = self.config
        body.linvel = _clamp_norm(body.linvel * max(0.0, 1.0 - cfg.linear_damping * h), cfg.max_linvel)
        body.angvel = _clamp_norm(body.angvel * max(0.0, 1.0 - cfg.angular_damping * h), cfg.max_angvel)
        body.translation = body.translation + body.linvel * h
        wx, wy, wz = body.angvel
        spin = quat_mul((wx, wy, wz, 0.0), body.rotation)
        body.rotation = quat_normalize(
            [q + 0.5 * h * s for q, s in zip(body.rotation, spin)]
        )

    def _resolve_ground(self) -> None:
        cfg = self.config
        for body in self.bodies:
            corners = body.transform().corners()
            low = float(corners[:, 1].min())
            penetration = cfg.ground_height - low
            if penetration <= 0.0:
                continue
            body.translation = body.translation + np.array([0.0, penetration, 0.0])
            vy = body.linvel[1]
            if vy < 0.0:
                restitution = 0.0 if self.settling else body.restitution
                friction = 0.0 if self.settling else body.friction
                normal_impulse = -vy * (1.0 + restitution)
                horizontal = np.array([body.linvel[0], 0.0, body.linvel[2]])
                speed = float(np.linalg.norm(horizontal))
                if speed > 0.0:
                    drop = min(speed, friction * normal_impulse)
                    horizontal = horizontal * (1.0 - drop / speed)
                body.linvel = np.array([horizontal[0], vy + normal_impulse, horizontal[2]])
                body.angvel = body.angvel * (1.0 - min(1.0, friction * 0.5))

    def _update_contacts(self) -> None:
        cfg = self.config
        threshold = cfg.ground_height + cfg.contact_epsilon
        signs = np.array([[x, y, z] for x in (-1, 1) for y in (-1, 1) for z in (-1, 1)])
        for body in self.bodies:
            contacts = [False] * 6
            corners = body.transform().corners()
            for sign, corner in zip(signs, corners):
                if corner[1] > threshold:
                    continue
                for axis in range(3):
                    # face order is +X, -X, +Y, -Y, +Z, -Z
                    contacts[2 * axis + (0 if sign[axis] > 0 else 1)] = True
            body.contacts = contacts


def _clamp_norm(v: np.ndarray, limit: float) -> np.ndarray:
    if not np.all(np.isfinite(v)):
        return np.zeros(3)
    norm = float(np.linalg.norm(v))
    if norm > limit:
        return v * (limit / norm)
    return v
