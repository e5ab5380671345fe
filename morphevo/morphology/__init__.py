from morphevo.morphology.joint import JOINT_AXES, JointAxesMask, JointAxis
from morphevo.morphology.placement import (
    LimbAttachFace,
    LimbPosition,
    LimbRelativePlacement,
)

__all__ = [
    "JOINT_AXES",
    "JointAxesMask",
    "JointAxis",
    "LimbAttachFace",
    "LimbPosition",
    "LimbRelativePlacement",
]
