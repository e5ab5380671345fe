"""Numeric operators available to behaviour expressions.

Operators may produce non-finite values or raise on degenerate input
(``log(0)``, ``exp(1e4)``, ``x / 0``); the interpreter maps every such case to
the fallback value.
"""

from __future__ import annotations

from enum import Enum
import math
from typing import Callable

import numpy as np


class ExprUnaryOp(str, Enum):
    SIGN = "Sign"
    ABS = "Abs"
    SIN = "Sin"
    COS = "Cos"
    LOG = "Log"
    EXP = "Exp"
    SIGMOID = "Sigmoid"

    @classmethod
    def rand_field(cls, rng: np.random.Generator) -> ExprUnaryOp:
        return _pick(rng, list(cls))

    def apply(self, x: float) -> float:
        return _UNARY[self](x)


class ExprBinaryOp(str, Enum):
    ADD = "Add"
    SUB = "Sub"
    MUL = "Mul"
    DIV = "Div"
    MOD = "Mod"
    GREATER = "Greater"
    MIN = "Min"
    MAX = "Max"
    ATAN2 = "Atan2"

    @classmethod
    def rand_field(cls, rng: np.random.Generator) -> ExprBinaryOp:
        return _pick(rng, list(cls))

    def apply(self, a: float, b: float) -> float:
        return _BINARY[self](a, b)


class ExprTernaryOp(str, Enum):
    IF_ELSE = "IfElse"
    LERP = "Lerp"

    @classmethod
    def rand_field(cls, rng: np.random.Generator) -> ExprTernaryOp:
        return _pick(rng, list(cls))

    def apply(self, a: float, b: float, c: float) -> float:
        return _TERNARY[self](a, b, c)


def _pick(rng: np.random.Generator, options: list):
    return options[int(rng.integers(0, len(options)))]


def _sigmoid(x: float) -> float:
    return 1.0 / (1.0 + math.exp(-x))


_UNARY: dict[ExprUnaryOp, Callable[[float], float]] = {
    ExprUnaryOp.SIGN: lambda x: math.copysign(1.0, x),
    ExprUnaryOp.ABS: abs,
    ExprUnaryOp.SIN: math.sin,
    ExprUnaryOp.COS: math.cos,
    ExprUnaryOp.LOG: math.log,
    ExprUnaryOp.EXP: math.exp,
    ExprUnaryOp.SIGMOID: _sigmoid,
}

_BINARY: dict[ExprBinaryOp, Callable[[float, float], float]] = {
    ExprBinaryOp.ADD: lambda a, b: a + b,
    ExprBinaryOp.SUB: lambda a, b: a - b,
    ExprBinaryOp.MUL: lambda a, b: a * b,
    ExprBinaryOp.DIV: lambda a, b: a / b,
    ExprBinaryOp.MOD: math.fmod,
    ExprBinaryOp.GREATER: lambda a, b: 1.0 if a > b else -1.0,
    ExprBinaryOp.MIN: min,
    ExprBinaryOp.MAX: max,
    ExprBinaryOp.ATAN2: math.atan2,
}

_TERNARY: dict[ExprTernaryOp, Callable[[float, float, float], float]] = {
    ExprTernaryOp.IF_ELSE: lambda a, b, c: b if a >= 0.0 else c,
    ExprTernaryOp.LERP: lambda a, b, c: b + (c - b) * a,
}
