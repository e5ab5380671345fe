from __future__ import annotations

from pydantic import BaseModel, Field

from morphevo.evolution.fitness.base import FitnessEvaluator
from morphevo.simulation import PhysicsSnapshot


class JumpConfig(BaseModel):
    relative_to_start: bool = Field(
        default=True, description="Measure height above the settled starting height"
    )
    initial_height: float = Field(default=-1.0, description="Score before any step is seen")


class JumpFitnessEval(FitnessEvaluator):
    """Highest clearance reached by the creature's lowest point during the test."""

    name = "jump"

    def __init__(self, config: JumpConfig | None = None):
        self.config = config or JumpConfig()
        self.baseline = 0.0
        self.max_height = self.config.initial_height

    def eval_start(self, initial: PhysicsSnapshot) -> None:
        if self.config.relative_to_start:
            self.baseline = initial.lowest_point()

    def eval_continuous(self, state: PhysicsSnapshot) -> None:
        self.max_height = max(self.max_height, state.lowest_point() - self.baseline)

    def final_eval(self, final: PhysicsSnapshot) -> float:
        return self.max_height
