from __future__ import annotations

from typing import Callable

from morphevo.evolution.fitness.base import FitnessEvaluator
from morphevo.evolution.fitness.jump import JumpConfig, JumpFitnessEval
from morphevo.evolution.fitness.walk import WalkConfig, WalkFitnessEval

FITNESS_EVALUATORS: dict[str, Callable[[], FitnessEvaluator]] = {
    JumpFitnessEval.name: JumpFitnessEval,
    WalkFitnessEval.name: WalkFitnessEval,
}

__all__ = [
    "FITNESS_EVALUATORS",
    "FitnessEvaluator",
    "JumpConfig",
    "JumpFitnessEval",
    "WalkConfig",
    "WalkFitnessEval",
]
