from __future__ import annotations

import math

import numpy as np
from pydantic import Field

from morphevo.geometry import quat_from_axis_angle, quat_rotate, quat_slerp, quat_to_axis_angle, perpendicular
from morphevo.morphology.joint import JOINT_AXES
from morphevo.morphology.models import LimbConnection
from morphevo.morphology.placement import LimbAttachFace
from morphevo.mutation.params import MutateFieldParams, ScalableParams, chance


class MutateEdgeParams(ScalableParams):
    placement_face_freq: float = Field(default=0.1, ge=0.0)
    placement_pos: MutateFieldParams = Field(
        default_factory=lambda: MutateFieldParams(freq=0.25, std_dev=0.05, clamp=(-1.0, 1.0))
    )
    placement_rot: MutateFieldParams = Field(
        default_factory=lambda: MutateFieldParams(freq=0.2, std_dev=0.1)
    )
    placement_scale: MutateFieldParams = Field(
        default_factory=lambda: MutateFieldParams(freq=0.2, std_dev=0.075)
    )
    min_scale: float = Field(default=0.05, gt=0.0, description="Smallest relative half extent")
    limit_axes: MutateFieldParams = Field(
        default_factory=lambda: MutateFieldParams(freq=0.1, std_dev=0.03)
    )
    lock_toggle_freq: float = Field(
        default=0.02, ge=0.0, description="Probability of flipping one angular axis lock"
    )

    def set_scale(self, scale: float) -> None:
        self.placement_face_freq *= scale
        self.placement_pos.set_scale(scale)
        self.placement_rot.set_scale(scale)
        self.placement_scale.set_scale(scale)
        self.limit_axes.set_scale(scale)
        self.lock_toggle_freq *= scale


class MutateEdge:
    """Perturbs the placement, limits and locks of one joint in place."""

    def __init__(self, edge: LimbConnection, rng: np.random.Generator, params: MutateEdgeParams):
        self.edge = edge
        self.rng = rng
        self.params = params

    def mutate(self) -> LimbConnection:
        self._mutate_placement()
        self._mutate_limits()
        self._mutate_locks()
        return self.edge

    def _mutate_placement(self) -> None:
        placement, rng, params = self.edge.placement, self.rng, self.params

        if chance(rng, params.placement_face_freq):
            placement.attach_face = LimbAttachFace.from_index(int(rng.integers(0, 6)))

        if params.placement_pos.change(rng):
            x, y = placement.attach_position
            placement.attach_position = (
                params.placement_pos.mutate(rng, x),
                params.placement_pos.mutate(rng, y),
            )

        if params.placement_rot.change(rng):
            # slerp a bounded amount towards a rotation a quarter turn away about
            # a random axis perpendicular to the current one
            from_axis, from_angle = quat_to_axis_angle(placement.orientation)
            sign = 1.0 if rng.random() < 0.5 else -1.0
            to_angle = (from_angle + sign * math.pi / 2.0) % (2.0 * math.pi)
            swing = quat_from_axis_angle(from_axis, float(rng.uniform(0.0, 2.0 * math.pi)))
            to_axis = quat_rotate(swing, perpendicular(from_axis))
            target = quat_from_axis_angle(to_axis, to_angle)
            amount = min(abs(params.placement_rot.sample(rng)), 1.0)
            placement.orientation = quat_slerp(placement.orientation, target, amount)

        scale = list(placement.scale)
        for i in range(3):
            if params.placement_scale.change(rng):
                scale[i] = max(params.min_scale, params.placement_scale.mutate(rng, scale[i]))
        placement.scale = tuple(scale)

    def _mutate_limits(self) -> None:
        limits = [list(pair) for pair in self.edge.limit_axes]
        for pair in limits:
            for j in range(2):
                if self.params.limit_axes.change(self.rng):
                    pair[j] = self.params.limit_axes.mutate(self.rng, pair[j])
        self.edge.limit_axes = tuple((lo, hi) for lo, hi in limits)

    def _mutate_locks(self) -> None:
        if not chance(self.rng, self.params.lock_toggle_freq):
            return
        axis = JOINT_AXES[3 + int(self.rng.integers(0, 3))]
        if self.edge.locked_axes.is_locked(axis):
            self.edge.locked_axes = self.edge.locked_axes & ~axis.mask
        else:
            # a locked axis cannot keep its effector
            self.edge.effectors = self.edge.effectors.with_effector(axis, None)
            self.edge.locked_axes = self.edge.locked_axes | axis.mask
