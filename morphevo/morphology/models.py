from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from morphevo.expr.nodes import CreatureJointEffectors
from morphevo.morphology.joint import JOINT_AXES, JointAxesMask
from morphevo.morphology.placement import LimbRelativePlacement

AxisLimits = tuple[float, float]


class LimbNode(BaseModel):
    """One limb archetype of a creature's body plan."""

    name: str | None = Field(default=None, description="Optional display name")
    density: float = Field(default=1.0, description="Mass density of the limb")
    friction: float = Field(default=0.3, ge=0.0)
    restitution: float = Field(default=0.0, ge=0.0)
    terminal_only: bool = Field(
        default=False,
        description="Only instantiate this limb on the deepest permitted recursion",
    )
    recursive_limit: int = Field(
        default=1, ge=1, description="How many times a path may pass through this node"
    )

    model_config = ConfigDict(validate_assignment=True)


class LimbConnection(BaseModel):
    """A joint connecting a parent limb archetype to a child limb archetype."""

    placement: LimbRelativePlacement = Field(default_factory=LimbRelativePlacement)
    locked_axes: JointAxesMask = JointAxesMask.LIN_AXES
    limit_axes: tuple[
        AxisLimits, AxisLimits, AxisLimits, AxisLimits, AxisLimits, AxisLimits
    ] = ((0.0, 0.0),) * 6
    effectors: CreatureJointEffectors = Field(default_factory=CreatureJointEffectors)

    model_config = ConfigDict(validate_assignment=True)

    @field_validator("locked_axes", mode="before")
    @classmethod
    def coerce_mask(cls, v):
        return JointAxesMask(int(v))

    @field_validator("limit_axes")
    @classmethod
    def order_limits(cls, v):
        return tuple((min(lo, hi), max(lo, hi)) for lo, hi in v)

    @model_validator(mode="after")
    def effectors_only_on_free_axes(self):
        for axis in JOINT_AXES:
            if self.locked_axes.is_locked(axis) and self.effectors[axis] is not None:
                raise ValueError(f"Effector assigned to locked axis {axis.value}")
        return self
