"""Random generation and mutation of effector expression trees.

Mutation is bottom-up: children are mutated first, then the operator node
holding them is either kept, swapped for another operator of the same arity,
promoted to the next arity (appending a freshly generated subtree) or demoted
to the previous one (dropping trailing children). With `op_del_freq` an operator
node is replaced by one of its mutated children. Every rebuilt node is a new
object, so the input tree is never modified.
"""

from __future__ import annotations

import numpy as np
from pydantic import BaseModel, Field, model_validator

from morphevo.expr.context import (
    ChildContact,
    CreatureContextElement,
    GlobalJoint,
    JointAxisElement,
    JointContextElement,
    LocalJoint,
    ParentContact,
    Time,
)
from morphevo.expr.nodes import (
    BinaryOpNode,
    ConstantNode,
    Expr,
    ExprNode,
    TernaryOpNode,
    UnaryOpNode,
    ValueNode,
    tree_size,
)
from morphevo.expr.ops import ExprBinaryOp, ExprTernaryOp, ExprUnaryOp
from morphevo.morphology.joint import JOINT_AXES
from morphevo.morphology.placement import LimbAttachFace
from morphevo.mutation.params import MutateFieldParams, ScalableParams, chance

NODE_WEIGHT = 100
_UNARY_CUTOFF = 40
_BINARY_CUTOFF = 80


class RandomExprParams(BaseModel):
    """Shape of freshly generated expression trees."""

    value_weight: int = Field(default=20, ge=0, description="Relative weight of Value leaves")
    const_weight: int = Field(default=20, ge=0, description="Relative weight of Constant leaves")
    const_range: tuple[float, float] = (-10.0, 10.0)
    min_depth: int = Field(default=1, ge=0)
    max_depth: int = Field(default=3, ge=0)
    joint_count: int = Field(default=1, ge=0, description="Joints addressable by GlobalJoint values")

    @model_validator(mode="after")
    def _consistent(self):
        if self.min_depth > self.max_depth:
            raise ValueError(f"min_depth {self.min_depth} exceeds max_depth {self.max_depth}")
        if self.value_weight + self.const_weight == 0:
            raise ValueError("value_weight and const_weight cannot both be zero")
        return self

    def with_joint_count(self, count: int) -> RandomExprParams:
        return self.model_copy(update={"joint_count": count})

    def build_expr(self, rng: np.random.Generator) -> Expr:
        return Expr(root=self.build(rng, 0))

    def build(self, rng: np.random.Generator, depth: int = 0) -> ExprNode:
        range_min = NODE_WEIGHT if depth >= self.max_depth else 0
        leaves_allowed = depth >= self.min_depth
        value_weight = (self.value_weight if leaves_allowed else 0) + NODE_WEIGHT
        const_weight = (self.const_weight if leaves_allowed else 0) + value_weight

        r = int(rng.integers(range_min, const_weight))
        if r < _UNARY_CUTOFF:
            return UnaryOpNode(op=ExprUnaryOp.rand_field(rng), child=self.build(rng, depth + 1))
        if r < _BINARY_CUTOFF:
            return BinaryOpNode(
                op=ExprBinaryOp.rand_field(rng),
                a=self.build(rng, depth + 1),
                b=self.build(rng, depth + 1),
            )
        if r < NODE_WEIGHT:
            return TernaryOpNode(
                op=ExprTernaryOp.rand_field(rng),
                a=self.build(rng, depth + 1),
                b=self.build(rng, depth + 1),
                c=self.build(rng, depth + 1),
            )
        if r < value_weight:
            return ValueNode(value=self.random_value(rng))
        lo, hi = self.const_range
        return ConstantNode(value=float(rng.uniform(lo, hi)))

    def random_value(self, rng: np.random.Generator) -> CreatureContextElement:
        kind = int(rng.integers(0, 3))
        if kind == 0:
            return LocalJoint(element=random_element(rng))
        if kind == 1:
            return GlobalJoint(element=random_element(rng), joint=self.random_joint(rng))
        return Time()

    def random_joint(self, rng: np.random.Generator) -> int:
        return int(rng.integers(0, max(self.joint_count, 1)))


def random_face(rng: np.random.Generator) -> LimbAttachFace:
    return LimbAttachFace.from_index(int(rng.integers(0, 6)))


def random_element(rng: np.random.Generator) -> JointContextElement:
    kind = int(rng.integers(0, 3))
    if kind == 0:
        return ParentContact(face=random_face(rng))
    if kind == 1:
        return ChildContact(face=random_face(rng))
    return JointAxisElement(axis=JOINT_AXES[int(rng.integers(0, 6))])


def mutate_element(rng: np.random.Generator, element: JointContextElement) -> JointContextElement:
    """Reselect the addressed face or axis, keeping the element kind."""
    if isinstance(element, ParentContact):
        return ParentContact(face=random_face(rng))
    if isinstance(element, ChildContact):
        return ChildContact(face=random_face(rng))
    return JointAxisElement(axis=JOINT_AXES[int(rng.integers(0, 6))])


class MutateExprParams(ScalableParams):
    op_change_freq: float = Field(default=0.2, ge=0.0)
    op_change_type_freq: float = Field(default=0.1, ge=0.0)
    value_change_freq: float = Field(default=0.2, ge=0.0)
    value_change_type_freq: float = Field(default=0.15, ge=0.0)
    op_add_freq: float = Field(default=0.03, ge=0.0)
    op_del_freq: float = Field(default=0.1, ge=0.0)
    constant: MutateFieldParams = Field(
        default_factory=lambda: MutateFieldParams(freq=0.25, mean=0.0, std_dev=0.25)
    )
    new_expr: RandomExprParams = Field(
        default_factory=lambda: RandomExprParams(
            value_weight=100, const_weight=100, max_depth=1, min_depth=0
        )
    )

    def set_scale(self, scale: float) -> None:
        self.op_change_freq *= scale
        self.op_change_type_freq *= scale
        self.value_change_freq *= scale
        self.value_change_type_freq *= scale
        self.op_add_freq *= scale
        self.op_del_freq *= scale
        self.constant.set_scale(scale)


class MutateExpr:
    """Mutates one expression, scaling every probability by the tree's size."""

    def __init__(
        self,
        expr: Expr,
        rng: np.random.Generator,
        params: MutateExprParams,
        joint_count: int | None = None,
    ):
        self.expr = expr
        self.rng = rng
        self.params = params
        if joint_count is not None:
            self.params = params.model_copy(
                update={"new_expr": params.new_expr.with_joint_count(joint_count)}
            )

    def mutate(self) -> Expr:
        size = tree_size(self.expr.root)
        base = self.params
        self.params = base.scaled(1.0 / size)
        try:
            self.expr = Expr(root=self.mutate_node(self.expr.root))
        finally:
            self.params = base
        return self.expr

    def mutate_node(self, node: ExprNode) -> ExprNode:
        rng, params = self.rng, self.params
        change_type = chance(rng, params.op_change_type_freq)

        if isinstance(node, ValueNode):
            return self._maybe_wrap(self._mutate_value(node))
        if isinstance(node, ConstantNode):
            if params.constant.change(rng):
                node = ConstantNode(value=params.constant.mutate(rng, node.value))
            return self._maybe_wrap(node)

        if isinstance(node, UnaryOpNode):
            inner = self.mutate_node(node.child)
            if chance(rng, params.op_del_freq):
                return inner
            if change_type and chance(rng, 0.5):
                return BinaryOpNode(
                    op=ExprBinaryOp.rand_field(rng), a=inner, b=params.new_expr.build(rng)
                )
            if chance(rng, params.op_change_freq):
                return UnaryOpNode(op=ExprUnaryOp.rand_field(rng), child=inner)
            return UnaryOpNode(op=node.op, child=inner)

        if isinstance(node, BinaryOpNode):
            a = self.mutate_node(node.a)
            b = self.mutate_node(node.b)
            if chance(rng, params.op_del_freq):
                return (a, b)[int(rng.integers(2))]
            if change_type:
                if chance(rng, 0.5):
                    return UnaryOpNode(op=ExprUnaryOp.rand_field(rng), child=a)
                return TernaryOpNode(
                    op=ExprTernaryOp.rand_field(rng), a=a, b=b, c=params.new_expr.build(rng)
                )
            if chance(rng, params.op_change_freq):
                return BinaryOpNode(op=ExprBinaryOp.rand_field(rng), a=a, b=b)
            return BinaryOpNode(op=node.op, a=a, b=b)

        if isinstance(node, TernaryOpNode):
            a = self.mutate_node(node.a)
            b = self.mutate_node(node.b)
            c = self.mutate_node(node.c)
            if chance(rng, params.op_del_freq):
                return (a, b, c)[int(rng.integers(3))]
            if change_type and chance(rng, 0.5):
                return BinaryOpNode(op=ExprBinaryOp.rand_field(rng), a=a, b=b)
            if chance(rng, params.op_change_freq):
                return TernaryOpNode(op=ExprTernaryOp.rand_field(rng), a=a, b=b, c=c)
            return TernaryOpNode(op=node.op, a=a, b=b, c=c)

        return node

    def _maybe_wrap(self, leaf: ExprNode) -> ExprNode:
        if chance(self.rng, self.params.op_add_freq):
            return UnaryOpNode(op=ExprUnaryOp.rand_field(self.rng), child=leaf)
        return leaf

    def _mutate_value(self, node: ValueNode) -> ValueNode:
        rng, params = self.rng, self.params
        if not chance(rng, params.value_change_freq):
            return node

        value = node.value
        new_expr = params.new_expr
        if chance(rng, params.value_change_type_freq):
            # retype the addressing mode
            coin = chance(rng, 0.5)
            if isinstance(value, LocalJoint):
                if coin:
                    return ValueNode(
                        value=GlobalJoint(element=value.element, joint=new_expr.random_joint(rng))
                    )
                return ValueNode(value=Time())
            if isinstance(value, GlobalJoint):
                if coin:
                    return ValueNode(value=LocalJoint(element=value.element))
                return ValueNode(value=Time())
            if coin:
                return ValueNode(value=LocalJoint(element=random_element(rng)))
            return ValueNode(
                value=GlobalJoint(element=random_element(rng), joint=new_expr.random_joint(rng))
            )

        if isinstance(value, LocalJoint):
            return ValueNode(value=LocalJoint(element=mutate_element(rng, value.element)))
        if isinstance(value, GlobalJoint):
            return ValueNode(
                value=GlobalJoint(
                    element=mutate_element(rng, value.element), joint=new_expr.random_joint(rng)
                )
            )
        return node
