"""Expression trees driving joint effectors.

Trees are immutable and every child is owned by exactly one parent. Mutation
never edits a tree in place; it rebuilds the affected path bottom-up and
returns the new root, so a tree is well formed by construction.
"""

from __future__ import annotations

from typing import Annotated, Iterator, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from morphevo.expr.context import CreatureContext, CreatureContextElement
from morphevo.expr.ops import ExprBinaryOp, ExprTernaryOp, ExprUnaryOp
from morphevo.morphology.joint import JOINT_AXES, JointAxis

_FROZEN = ConfigDict(frozen=True)


class ValueNode(BaseModel):
    kind: Literal["Value"] = "Value"
    value: CreatureContextElement

    model_config = _FROZEN

    def children(self) -> tuple[ExprNode, ...]:
        return ()


class ConstantNode(BaseModel):
    kind: Literal["Constant"] = "Constant"
    value: float

    model_config = _FROZEN

    def children(self) -> tuple[ExprNode, ...]:
        return ()


class UnaryOpNode(BaseModel):
    kind: Literal["UnaryOp"] = "UnaryOp"
    op: ExprUnaryOp
    child: ExprNode

    model_config = _FROZEN

    def children(self) -> tuple[ExprNode, ...]:
        return (self.child,)


class BinaryOpNode(BaseModel):
    kind: Literal["BinaryOp"] = "BinaryOp"
    op: ExprBinaryOp
    a: ExprNode
    b: ExprNode

    model_config = _FROZEN

    def children(self) -> tuple[ExprNode, ...]:
        return (self.a, self.b)


class TernaryOpNode(BaseModel):
    kind: Literal["TernaryOp"] = "TernaryOp"
    op: ExprTernaryOp
    a: ExprNode
    b: ExprNode
    c: ExprNode

    model_config = _FROZEN

    def children(self) -> tuple[ExprNode, ...]:
        return (self.a, self.b, self.c)


ExprNode = Annotated[
    Union[ValueNode, ConstantNode, UnaryOpNode, BinaryOpNode, TernaryOpNode],
    Field(discriminator="kind"),
]

UnaryOpNode.model_rebuild()
BinaryOpNode.model_rebuild()
TernaryOpNode.model_rebuild()

ARITY: dict[type, int] = {
    ValueNode: 0,
    ConstantNode: 0,
    UnaryOpNode: 1,
    BinaryOpNode: 2,
    TernaryOpNode: 3,
}


def iter_nodes(node: ExprNode) -> Iterator[ExprNode]:
    """Pre-order walk over every node of a tree."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children()))


def tree_size(node: ExprNode) -> int:
    return sum(1 for _ in iter_nodes(node))


def tree_depth(node: ExprNode) -> int:
    children = node.children()
    if not children:
        return 1
    return 1 + max(tree_depth(child) for child in children)


def is_well_formed(node: ExprNode) -> bool:
    """Every operator has the arity its tag requires and every leaf is a Value or Constant."""
    for current in iter_nodes(node):
        expected = ARITY.get(type(current))
        if expected is None or len(current.children()) != expected:
            return False
    return True


class Expr(BaseModel):
    root: ExprNode

    model_config = _FROZEN

    def evaluate(self, context: CreatureContext) -> float:
        from morphevo.expr.interpreter import evaluate

        return evaluate(self.root, context)

    def size(self) -> int:
        return tree_size(self.root)

    def depth(self) -> int:
        return tree_depth(self.root)


class CreatureJointEffectors(BaseModel):
    """Exactly six optional effectors, one per joint degree of freedom."""

    effectors: tuple[
        Optional[Expr],
        Optional[Expr],
        Optional[Expr],
        Optional[Expr],
        Optional[Expr],
        Optional[Expr],
    ] = (None, None, None, None, None, None)

    @field_validator("effectors", mode="before")
    @classmethod
    def pad_to_six(cls, v):
        v = tuple(v)
        if len(v) > 6:
            raise ValueError(f"A joint has at most 6 effectors, got {len(v)}")
        return v + (None,) * (6 - len(v))

    def __getitem__(self, axis: JointAxis) -> Expr | None:
        return self.effectors[axis.to_index()]

    def __iter__(self) -> Iterator[Expr | None]:
        return iter(self.effectors)

    def items(self) -> Iterator[tuple[JointAxis, Expr]]:
        for axis, expr in zip(JOINT_AXES, self.effectors):
            if expr is not None:
                yield axis, expr

    def active_count(self) -> int:
        return sum(1 for expr in self.effectors if expr is not None)

    def with_effector(self, axis: JointAxis, expr: Expr | None) -> CreatureJointEffectors:
        slots = list(self.effectors)
        slots[axis.to_index()] = expr
        return CreatureJointEffectors(effectors=tuple(slots))
