"""Addressable physics state read by behaviour expressions.

An expression never has to be fully local: a ``GlobalJoint`` value may read a
sensor on any other joint of the creature. When the addressed joint does not
exist (it was removed by a mutation, or the creature simply has fewer joints)
the lookup resolves to ``FALLBACK_VALUE`` instead of failing.
"""

from __future__ import annotations

from typing import Annotated, Literal, Sequence, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from morphevo.geometry import Transform, quat_conjugate, quat_mul, quat_rotate, quat_to_scaled_axis
from morphevo.morphology.joint import JointAxis
from morphevo.morphology.placement import LimbAttachFace

FALLBACK_VALUE = 0.0

_FROZEN = ConfigDict(frozen=True)


# ------------------------------- joint-local elements -------------------------------


class ParentContact(BaseModel):
    kind: Literal["ParentContact"] = "ParentContact"
    face: LimbAttachFace

    model_config = _FROZEN


class ChildContact(BaseModel):
    kind: Literal["ChildContact"] = "ChildContact"
    face: LimbAttachFace

    model_config = _FROZEN


class JointAxisElement(BaseModel):
    kind: Literal["JointAxis"] = "JointAxis"
    axis: JointAxis

    model_config = _FROZEN


JointContextElement = Annotated[
    Union[ParentContact, ChildContact, JointAxisElement], Field(discriminator="kind")
]


# ------------------------------- creature-wide addressing -------------------------------


class LocalJoint(BaseModel):
    kind: Literal["LocalJoint"] = "LocalJoint"
    element: JointContextElement

    model_config = _FROZEN


class GlobalJoint(BaseModel):
    kind: Literal["GlobalJoint"] = "GlobalJoint"
    element: JointContextElement
    joint: int = Field(ge=0)

    model_config = _FROZEN


class Time(BaseModel):
    kind: Literal["Time"] = "Time"

    model_config = _FROZEN


CreatureContextElement = Annotated[
    Union[LocalJoint, GlobalJoint, Time], Field(discriminator="kind")
]


# ------------------------------- snapshots -------------------------------


class JointContext:
    """Sensor snapshot of one joint for a single physics step."""

    __slots__ = ("parent_contacts", "child_contacts", "joint_axes")

    def __init__(
        self,
        parent_contacts: Sequence[bool] = (False,) * 6,
        child_contacts: Sequence[bool] = (False,) * 6,
        joint_axes: Sequence[float] = (0.0,) * 6,
    ):
        self.parent_contacts = tuple(bool(c) for c in parent_contacts)
        self.child_contacts = tuple(bool(c) for c in child_contacts)
        self.joint_axes = tuple(float(a) for a in joint_axes)

    @classmethod
    def from_transforms(
        cls,
        parent_contacts: Sequence[bool],
        child_contacts: Sequence[bool],
        parent: Transform,
        child: Transform,
    ) -> JointContext:
        """Deviation of the child from the parent, expressed in the parent frame."""
        inv_parent = quat_conjugate(parent.rotation)
        offset = np.asarray(child.translation) - np.asarray(parent.translation)
        linear = quat_rotate(inv_parent, offset)
        angular = quat_to_scaled_axis(quat_mul(inv_parent, child.rotation))
        return cls(parent_contacts, child_contacts, (*linear, *angular))

    def get(self, element: JointContextElement) -> float:
        if isinstance(element, ParentContact):
            return _contact_value(self.parent_contacts, element.face)
        if isinstance(element, ChildContact):
            return _contact_value(self.child_contacts, element.face)
        if isinstance(element, JointAxisElement):
            index = element.axis.to_index()
            if index >= len(self.joint_axes):
                return FALLBACK_VALUE
            return self.joint_axes[index]
        return FALLBACK_VALUE


def _contact_value(contacts: tuple[bool, ...], face: LimbAttachFace) -> float:
    index = face.to_index()
    if index >= len(contacts):
        return FALLBACK_VALUE
    return 1.0 if contacts[index] else -1.0


class CreatureContext:
    """Per-step context of a whole creature, rebuilt from physics state every step."""

    def __init__(self, joints: Sequence[JointContext] = (), time: float = 0.0):
        self.joints: list[JointContext] = list(joints)
        self.time = float(time)
        self.current_joint = 0

    def __len__(self) -> int:
        return len(self.joints)

    def add_joint(self, joint: JointContext) -> None:
        self.joints.append(joint)

    def set_time(self, time: float) -> None:
        self.time = float(time)

    def set_current_joint(self, index: int) -> None:
        self.current_joint = index

    def get(self, element: CreatureContextElement) -> float:
        if isinstance(element, Time):
            return self.time
        if isinstance(element, LocalJoint):
            return self._joint_value(self.current_joint, element.element)
        if isinstance(element, GlobalJoint):
            return self._joint_value(element.joint, element.element)
        return FALLBACK_VALUE

    def _joint_value(self, index: int, element: JointContextElement) -> float:
        if not 0 <= index < len(self.joints):
            return FALLBACK_VALUE
        return self.joints[index].get(element)
