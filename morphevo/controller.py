from __future__ import annotations

from morphevo.expr.context import CreatureContext, JointContext
from morphevo.morphology.builder import BuildResult
from morphevo.simulation import PhysicsSnapshot


class JointController:
    """Evaluates every joint's effectors against the latest physics snapshot."""

    def __init__(self, build: BuildResult, max_force: float):
        self.joints = build.joints
        self.max_force = max_force

    def context(self, snapshot: PhysicsSnapshot) -> CreatureContext:
        context = CreatureContext(time=snapshot.time)
        limbs = snapshot.limbs
        for joint in self.joints:
            if joint.parent >= len(limbs) or joint.child >= len(limbs):
                context.add_joint(JointContext())
                continue
            parent, child = limbs[joint.parent], limbs[joint.child]
            context.add_joint(
                JointContext.from_transforms(
                    parent.contacts, child.contacts, parent.transform, child.transform
                )
            )
        return context

    def outputs(self, snapshot: PhysicsSnapshot) -> list[tuple[float, ...]]:
        context = self.context(snapshot)
        limit = self.max_force
        result = []
        for index, joint in enumerate(self.joints):
            context.set_current_joint(index)
            result.append(
                tuple(
                    0.0 if expr is None else min(limit, max(-limit, expr.evaluate(context)))
                    for expr in joint.effectors
                )
            )
        return result
