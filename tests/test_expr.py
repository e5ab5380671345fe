"""
Tests for the expression interpreter and creature context.
"""

import math

import pytest

from morphevo.expr import (
    BinaryOpNode,
    ChildContact,
    ConstantNode,
    CreatureContext,
    Expr,
    ExprBinaryOp,
    ExprTernaryOp,
    ExprUnaryOp,
    GlobalJoint,
    JointAxisElement,
    JointContext,
    LocalJoint,
    ParentContact,
    TernaryOpNode,
    Time,
    UnaryOpNode,
    ValueNode,
    evaluate,
)
from morphevo.expr.nodes import CreatureJointEffectors, is_well_formed, tree_depth, tree_size
from morphevo.geometry import Transform, quat_from_axis_angle
from morphevo.morphology.joint import JointAxis
from morphevo.morphology.placement import LimbAttachFace


def const(x):
    return ConstantNode(value=x)


@pytest.fixture
def context():
    first = JointContext(
        parent_contacts=(True, False, False, False, False, False),
        joint_axes=(0.0, 0.0, 0.0, 0.5, -0.25, 0.0),
    )
    second = JointContext(child_contacts=(False, False, False, True, False, False))
    ctx = CreatureContext([first, second], time=2.5)
    ctx.set_current_joint(0)
    return ctx


class TestInterpreter:
    """Tests for evaluate."""

    def test_division_by_zero_falls_back(self, context):
        node = BinaryOpNode(op=ExprBinaryOp.DIV, a=const(2.0), b=const(0.0))
        assert evaluate(node, context) == 0.0

    @pytest.mark.parametrize(
        "op, x",
        [(ExprUnaryOp.LOG, 0.0), (ExprUnaryOp.LOG, -1.0), (ExprUnaryOp.EXP, 1e4)],
    )
    def test_degenerate_unary_falls_back(self, context, op, x):
        assert evaluate(UnaryOpNode(op=op, child=const(x)), context) == 0.0

    def test_non_finite_constant_falls_back(self, context):
        assert evaluate(const(math.inf), context) == 0.0
        assert evaluate(const(math.nan), context) == 0.0

    def test_fallback_is_local_to_the_failing_node(self, context):
        failing = BinaryOpNode(op=ExprBinaryOp.DIV, a=const(1.0), b=const(0.0))
        node = BinaryOpNode(op=ExprBinaryOp.ADD, a=failing, b=const(3.0))
        assert evaluate(node, context) == 3.0

    @pytest.mark.parametrize(
        "op, a, b, expected",
        [
            (ExprBinaryOp.ADD, 2.0, 3.0, 5.0),
            (ExprBinaryOp.SUB, 2.0, 3.0, -1.0),
            (ExprBinaryOp.MUL, 2.0, 3.0, 6.0),
            (ExprBinaryOp.DIV, 3.0, 2.0, 1.5),
            (ExprBinaryOp.GREATER, 3.0, 2.0, 1.0),
            (ExprBinaryOp.GREATER, 2.0, 3.0, -1.0),
            (ExprBinaryOp.MIN, 2.0, 3.0, 2.0),
            (ExprBinaryOp.MAX, 2.0, 3.0, 3.0),
        ],
    )
    def test_binary_ops(self, context, op, a, b, expected):
        assert evaluate(BinaryOpNode(op=op, a=const(a), b=const(b)), context) == expected

    def test_ternary_ops(self, context):
        if_else = TernaryOpNode(op=ExprTernaryOp.IF_ELSE, a=const(-1.0), b=const(1.0), c=const(2.0))
        lerp = TernaryOpNode(op=ExprTernaryOp.LERP, a=const(0.25), b=const(0.0), c=const(4.0))

        assert evaluate(if_else, context) == 2.0
        assert evaluate(lerp, context) == 1.0

    def test_sigmoid(self, context):
        node = UnaryOpNode(op=ExprUnaryOp.SIGMOID, child=const(0.0))
        assert evaluate(node, context) == pytest.approx(0.5)


class TestContext:
    """Tests for context lookups."""

    def test_time(self, context):
        assert evaluate(ValueNode(value=Time()), context) == 2.5

    def test_local_joint_axis(self, context):
        node = ValueNode(value=LocalJoint(element=JointAxisElement(axis=JointAxis.ANG_X)))
        assert evaluate(node, context) == 0.5

    def test_contacts_are_signed(self, context):
        touching = ValueNode(value=LocalJoint(element=ParentContact(face=LimbAttachFace.POS_X)))
        free = ValueNode(value=LocalJoint(element=ParentContact(face=LimbAttachFace.NEG_X)))

        assert evaluate(touching, context) == 1.0
        assert evaluate(free, context) == -1.0

    def test_global_joint(self, context):
        node = ValueNode(
            value=GlobalJoint(element=ChildContact(face=LimbAttachFace.NEG_Y), joint=1)
        )
        assert evaluate(node, context) == 1.0

    def test_missing_global_joint_falls_back(self, context):
        node = ValueNode(
            value=GlobalJoint(element=JointAxisElement(axis=JointAxis.X), joint=12)
        )
        assert evaluate(node, context) == 0.0

    def test_short_joint_axes_fall_back(self):
        ctx = CreatureContext([JointContext(joint_axes=(0.1, 0.2, 0.3))])
        ctx.set_current_joint(0)
        missing = ValueNode(value=LocalJoint(element=JointAxisElement(axis=JointAxis.ANG_Z)))
        present = ValueNode(value=LocalJoint(element=JointAxisElement(axis=JointAxis.Z)))

        assert evaluate(missing, ctx) == 0.0
        assert evaluate(present, ctx) == pytest.approx(0.3)

    def test_joint_context_from_transforms(self):
        parent = Transform()
        child = Transform(
            translation=(0.0, 2.0, 0.0),
            rotation=quat_from_axis_angle((1.0, 0.0, 0.0), 0.3),
        )
        joint = JointContext.from_transforms((False,) * 6, (False,) * 6, parent, child)

        assert joint.joint_axes[:3] == pytest.approx((0.0, 2.0, 0.0))
        assert joint.joint_axes[3:] == pytest.approx((0.3, 0.0, 0.0))


class TestTrees:
    """Tests for tree structure helpers."""

    def test_size_and_depth(self):
        tree = BinaryOpNode(
            op=ExprBinaryOp.ADD,
            a=UnaryOpNode(op=ExprUnaryOp.ABS, child=const(1.0)),
            b=const(2.0),
        )
        assert tree_size(tree) == 4
        assert tree_depth(tree) == 3
        assert is_well_formed(tree)

    def test_expr_json_round_trip(self):
        expr = Expr(
            root=TernaryOpNode(
                op=ExprTernaryOp.LERP,
                a=ValueNode(value=Time()),
                b=const(1.0),
                c=ValueNode(value=LocalJoint(element=ParentContact(face=LimbAttachFace.NEG_Z))),
            )
        )
        assert Expr.model_validate_json(expr.model_dump_json()) == expr

    def test_effectors_are_padded_to_six(self):
        effectors = CreatureJointEffectors(effectors=(None, Expr(root=const(1.0))))

        assert len(effectors.effectors) == 6
        assert effectors[JointAxis.Y] is not None
        assert effectors.active_count() == 1

    def test_too_many_effectors_rejected(self):
        from pydantic import ValidationError

        with pytest.raises(ValidationError):
            CreatureJointEffectors(effectors=(None,) * 7)
