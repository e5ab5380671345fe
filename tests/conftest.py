"""
Shared pytest fixtures for the test suite.
Provides seeded randomness, sample morphologies and a scripted simulator.
"""

import math

import numpy as np
import pytest

from morphevo.expr.context import JointAxisElement, LocalJoint
from morphevo.expr.nodes import BinaryOpNode, ConstantNode, CreatureJointEffectors, Expr, ValueNode
from morphevo.expr.ops import ExprBinaryOp
from morphevo.geometry import Transform, quat_from_euler_yxz
from morphevo.morphology.builder import BuildResult
from morphevo.morphology.graph import MorphologyGraph
from morphevo.morphology.joint import JointAxesMask, JointAxis
from morphevo.morphology.models import LimbConnection, LimbNode
from morphevo.morphology.placement import LimbAttachFace, LimbRelativePlacement
from morphevo.simulation import LimbState, PhysicsSnapshot


# ===== Randomness =====

@pytest.fixture
def rng():
    """Seeded generator so every test run draws the same numbers."""
    return np.random.default_rng(1234)


# ===== Morphologies =====

@pytest.fixture
def arm_graph():
    """Body with two arms, each ending in a hand: five limbs, four joints."""
    graph = MorphologyGraph(creature=7, root_scale=(1.0, 1.5, 1.0))

    body = graph.add_node(LimbNode(name="body", recursive_limit=1))
    arm = graph.add_node(LimbNode(name="arm", recursive_limit=2))
    hand = graph.add_node(LimbNode(name="hand", recursive_limit=2))

    swing = Expr(
        root=BinaryOpNode(
            op=ExprBinaryOp.MUL,
            a=ConstantNode(value=1.0),
            b=ValueNode(value=LocalJoint(element=JointAxisElement(axis=JointAxis.ANG_X))),
        )
    )
    arm_locks = JointAxesMask.LIN_AXES | JointAxesMask.ANG_X | JointAxesMask.ANG_Y
    arm_limits = ((0.0, 0.0),) * 5 + ((-1.0, 1.0),)

    graph.add_edge(
        LimbConnection(
            placement=LimbRelativePlacement(
                attach_face=LimbAttachFace.POS_X,
                attach_position=(0.4, 0.9),
                orientation=quat_from_euler_yxz(0.0, 0.2, 0.2),
                scale=(0.4, 0.8, 0.6),
            ),
            locked_axes=arm_locks,
            limit_axes=arm_limits,
        ),
        body,
        arm,
    )
    graph.add_edge(
        LimbConnection(
            placement=LimbRelativePlacement(
                attach_face=LimbAttachFace.POS_X,
                attach_position=(0.4, -0.9),
                orientation=quat_from_euler_yxz(0.0, -0.2, 0.2),
                scale=(0.4, 0.8, 0.6),
            ),
            locked_axes=arm_locks,
            limit_axes=arm_limits,
        ),
        body,
        arm,
    )
    graph.add_edge(
        LimbConnection(
            placement=LimbRelativePlacement(
                attach_face=LimbAttachFace.POS_Y,
                orientation=quat_from_euler_yxz(0.0, math.pi / 2.0, -math.pi / 2.0),
                scale=(1.0, 0.7, 1.0),
            ),
            locked_axes=JointAxesMask.LIN_AXES | JointAxesMask.ANG_Z | JointAxesMask.ANG_Y,
            limit_axes=((0.0, 0.0),) * 3 + ((-1.0, 1.0),) + ((0.0, 0.0),) * 2,
            effectors=CreatureJointEffectors(effectors=(None, None, None, swing)),
        ),
        arm,
        hand,
    )
    graph.set_root(body)
    return graph


# ===== Physics =====

def snapshot_at(*heights, time=0.0):
    """Snapshot of unit boxes centred at ``(0, h, 0)`` for each height."""
    return PhysicsSnapshot(
        limbs=[LimbState(transform=Transform.from_xyz(0.0, h, 0.0)) for h in heights],
        time=time,
    )


class ScriptedSimulator:
    """Moves every spawned limb up by ``lift`` per step; settles instantly."""

    def __init__(self, lift=0.1):
        self.lift = lift
        self.limbs = []
        self.time = 0.0
        self.settling = False
        self.spawned = 0
        self.despawned = 0
        self.steps = 0
        self.settle_calls = []

    def spawn(self, build: BuildResult) -> PhysicsSnapshot:
        self.limbs = [LimbState(transform=limb.transform) for limb in build.limbs]
        self.time = 0.0
        self.spawned += 1
        return self.snapshot()

    def despawn(self) -> None:
        self.limbs = []
        self.despawned += 1

    def set_settling(self, settling: bool) -> None:
        self.settling = settling
        self.settle_calls.append(settling)

    def snapshot(self) -> PhysicsSnapshot:
        return PhysicsSnapshot(limbs=list(self.limbs), time=self.time)

    def step(self, effector_outputs=()) -> PhysicsSnapshot:
        self.steps += 1
        self.time += 1.0 / 60.0
        if not self.settling:
            self.limbs = [
                LimbState(
                    transform=limb.transform.with_translation(
                        (
                            limb.transform.translation[0],
                            limb.transform.translation[1] + self.lift,
                            limb.transform.translation[2],
                        )
                    )
                )
                for limb in self.limbs
            ]
        return self.snapshot()


@pytest.fixture
def make_snapshot():
    """Factory for stacked unit-box snapshots."""
    return snapshot_at


@pytest.fixture
def scripted_simulator():
    return ScriptedSimulator()
