from __future__ import annotations

from enum import Enum
from typing import Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

from morphevo.geometry import (
    IDENTITY_QUAT,
    ONE,
    UNIT_Y,
    Quat,
    Transform,
    Vec2,
    Vec3,
    quat_from_rotation_arc,
    quat_mul,
    quat_normalize,
    quat_rotate,
    vec3,
)


class LimbAttachFace(str, Enum):
    """Face of a parent limb's box that a child limb is attached to."""

    POS_X = "PosX"
    NEG_X = "NegX"
    POS_Y = "PosY"
    NEG_Y = "NegY"
    POS_Z = "PosZ"
    NEG_Z = "NegZ"

    @classmethod
    def from_index(cls, index: int) -> LimbAttachFace:
        if not 0 <= index < 6:
            raise IndexError(f"Cannot index into LimbAttachFace with index {index}")
        return _FACES[index]

    @classmethod
    def from_point(cls, p: Sequence[float]) -> LimbAttachFace:
        """Face whose outward axis dominates the point ``p``."""
        x, y, z = (float(c) for c in p)
        if max(x, y, z) > abs(min(x, y, z)):
            if x > y and x > z:
                return cls.POS_X
            return cls.POS_Y if y > z else cls.POS_Z
        if x < y and x < z:
            return cls.NEG_X
        return cls.NEG_Y if y < z else cls.NEG_Z

    def to_index(self) -> int:
        return _FACES.index(self)

    def direction(self) -> np.ndarray:
        return np.asarray(_DIRECTIONS[self], dtype=np.float64)

    def on_tangent_plane(self, p: Sequence[float]) -> np.ndarray:
        """Embed a 2D face coordinate into the face's plane (local frame)."""
        u, v = float(p[0]), float(p[1])
        if self in (LimbAttachFace.POS_X, LimbAttachFace.NEG_X):
            return np.array([0.0, u, v])
        if self in (LimbAttachFace.POS_Y, LimbAttachFace.NEG_Y):
            return np.array([u, 0.0, v])
        return np.array([u, v, 0.0])

    def orientation(self) -> Quat:
        """Rotation taking the limb's +Y axis onto this face's normal."""
        if self is LimbAttachFace.POS_Y:
            return IDENTITY_QUAT
        return quat_from_rotation_arc(UNIT_Y, _DIRECTIONS[self])


_FACES: list[LimbAttachFace] = [
    LimbAttachFace.POS_X,
    LimbAttachFace.NEG_X,
    LimbAttachFace.POS_Y,
    LimbAttachFace.NEG_Y,
    LimbAttachFace.POS_Z,
    LimbAttachFace.NEG_Z,
]

_DIRECTIONS: dict[LimbAttachFace, Vec3] = {
    LimbAttachFace.POS_X: (1.0, 0.0, 0.0),
    LimbAttachFace.NEG_X: (-1.0, 0.0, 0.0),
    LimbAttachFace.POS_Y: (0.0, 1.0, 0.0),
    LimbAttachFace.NEG_Y: (0.0, -1.0, 0.0),
    LimbAttachFace.POS_Z: (0.0, 0.0, 1.0),
    LimbAttachFace.NEG_Z: (0.0, 0.0, -1.0),
}


class LimbPosition(BaseModel):
    """World placement of a child limb plus the joint anchors in both local frames."""

    transform: Transform
    parent_local_anchor: Vec3
    local_anchor: Vec3


class LimbRelativePlacement(BaseModel):
    """The relative translation, orientation, and scale of a limb in comparison to its parent."""

    attach_face: LimbAttachFace = LimbAttachFace.POS_Y
    attach_position: Vec2 = Field(
        default=(0.0, 0.0),
        description="Position along the attach face, each component in [-1, 1]",
    )
    orientation: Quat = Field(
        default=IDENTITY_QUAT, description="Orientation relative to the attach face"
    )
    scale: Vec3 = Field(default=ONE, description="Half extents relative to the parent")

    model_config = ConfigDict(validate_assignment=True)

    @field_validator("attach_position")
    @classmethod
    def clamp_attach_position(cls, v: Vec2) -> Vec2:
        return (min(1.0, max(-1.0, v[0])), min(1.0, max(-1.0, v[1])))

    @field_validator("orientation")
    @classmethod
    def normalize_orientation(cls, v: Quat) -> Quat:
        # leave unit quaternions untouched so reloading a record is exact
        if abs(sum(c * c for c in v) - 1.0) < 1e-12:
            return v
        return quat_normalize(v)

    def create_transform(self, parent: Transform) -> LimbPosition:
        face = self.attach_face
        actual_orientation = quat_mul(face.orientation(), self.orientation)
        orientation = quat_normalize(quat_mul(parent.rotation, actual_orientation))

        parent_scale = np.asarray(parent.scale)
        child_scale = parent_scale * np.asarray(self.scale)

        attach_point = parent_scale * (
            face.direction() + face.on_tangent_plane(self.attach_position)
        )
        local_anchor = child_scale * np.array([0.0, -1.0, 0.0])

        global_attach_point = quat_rotate(parent.rotation, attach_point) + np.asarray(
            parent.translation
        )
        to_body_mid = quat_rotate(orientation, UNIT_Y)
        global_translation = global_attach_point + to_body_mid * child_scale[1]

        return LimbPosition(
            transform=Transform(
                translation=vec3(global_translation),
                rotation=orientation,
                scale=vec3(child_scale),
            ),
            parent_local_anchor=vec3(attach_point),
            local_anchor=vec3(local_anchor),
        )
