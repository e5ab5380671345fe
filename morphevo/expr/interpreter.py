from __future__ import annotations

import math

from morphevo.expr.context import FALLBACK_VALUE, CreatureContext
from morphevo.expr.nodes import (
    BinaryOpNode,
    ConstantNode,
    ExprNode,
    TernaryOpNode,
    UnaryOpNode,
    ValueNode,
)

__all__ = ["evaluate"]


def evaluate(node: ExprNode, context: CreatureContext) -> float:
    """Evaluate an expression tree against a creature context.

    Total: never raises and never returns NaN or infinity. A degenerate
    operator result (division by zero, overflow, domain error) collapses to
    ``FALLBACK_VALUE`` at the node where it occurs.
    """
    if isinstance(node, ValueNode):
        return _finite(context.get(node.value))
    if isinstance(node, ConstantNode):
        return _finite(node.value)
    if isinstance(node, UnaryOpNode):
        x = evaluate(node.child, context)
        return _guard(node.op.apply, x)
    if isinstance(node, BinaryOpNode):
        a = evaluate(node.a, context)
        b = evaluate(node.b, context)
        return _guard(node.op.apply, a, b)
    if isinstance(node, TernaryOpNode):
        a = evaluate(node.a, context)
        b = evaluate(node.b, context)
        c = evaluate(node.c, context)
        return _guard(node.op.apply, a, b, c)
    return FALLBACK_VALUE


def _guard(fn, *args: float) -> float:
    try:
        return _finite(fn(*args))
    except (ArithmeticError, ValueError):
        return FALLBACK_VALUE


def _finite(value: float) -> float:
    value = float(value)
    return value if math.isfinite(value) else FALLBACK_VALUE
