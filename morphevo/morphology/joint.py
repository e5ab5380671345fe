from __future__ import annotations

from enum import Enum, IntFlag


class JointAxis(str, Enum):
    """One of the six degrees of freedom of a joint."""

    X = "X"
    Y = "Y"
    Z = "Z"
    ANG_X = "AngX"
    ANG_Y = "AngY"
    ANG_Z = "AngZ"

    @classmethod
    def from_index(cls, index: int) -> JointAxis:
        if not 0 <= index < 6:
            raise IndexError(f"Cannot index into JointAxis with index {index}")
        return JOINT_AXES[index]

    def to_index(self) -> int:
        return JOINT_AXES.index(self)

    @property
    def is_angular(self) -> bool:
        return self in (JointAxis.ANG_X, JointAxis.ANG_Y, JointAxis.ANG_Z)

    @property
    def mask(self) -> JointAxesMask:
        return JointAxesMask(1 << self.to_index())


JOINT_AXES: list[JointAxis] = [
    JointAxis.X,
    JointAxis.Y,
    JointAxis.Z,
    JointAxis.ANG_X,
    JointAxis.ANG_Y,
    JointAxis.ANG_Z,
]


class JointAxesMask(IntFlag):
    """Bitmask of locked joint axes; bit ``i`` matches ``JointAxis.from_index(i)``."""

    NONE = 0
    X = 1 << 0
    Y = 1 << 1
    Z = 1 << 2
    ANG_X = 1 << 3
    ANG_Y = 1 << 4
    ANG_Z = 1 << 5
    LIN_AXES = X | Y | Z
    ANG_AXES = ANG_X | ANG_Y | ANG_Z
    ALL = LIN_AXES | ANG_AXES

    def is_locked(self, axis: JointAxis) -> bool:
        return bool(self & axis.mask)

    def unlocked_axes(self) -> list[JointAxis]:
        return [axis for axis in JOINT_AXES if not self.is_locked(axis)]
