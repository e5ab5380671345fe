from morphevo.expr.context import (
    ChildContact,
    CreatureContext,
    GlobalJoint,
    JointAxisElement,
    JointContext,
    LocalJoint,
    ParentContact,
    Time,
)
from morphevo.expr.interpreter import evaluate
from morphevo.expr.nodes import (
    BinaryOpNode,
    ConstantNode,
    CreatureJointEffectors,
    Expr,
    TernaryOpNode,
    UnaryOpNode,
    ValueNode,
)
from morphevo.expr.ops import ExprBinaryOp, ExprTernaryOp, ExprUnaryOp

__all__ = [
    "BinaryOpNode",
    "ChildContact",
    "ConstantNode",
    "CreatureContext",
    "CreatureJointEffectors",
    "Expr",
    "ExprBinaryOp",
    "ExprTernaryOp",
    "ExprUnaryOp",
    "GlobalJoint",
    "JointAxisElement",
    "JointContext",
    "LocalJoint",
    "ParentContact",
    "TernaryOpNode",
    "Time",
    "UnaryOpNode",
    "ValueNode",
    "evaluate",
]
