from __future__ import annotations

import math

from pydantic import BaseModel, Field

from morphevo.evolution.fitness.base import FitnessEvaluator
from morphevo.simulation import PhysicsSnapshot


class WalkConfig(BaseModel):
    max_height_gain: float = Field(
        default=1.0, ge=0, description="Peak height above the start allowed before penalising"
    )
    max_extent_change: float = Field(
        default=1.0, ge=0, description="Horizontal extent growth allowed before penalising"
    )
    penalty_weight: float = Field(default=4.0, ge=0)


class WalkFitnessEval(FitnessEvaluator):
    """Net horizontal displacement of the creature's centroid.

    Throwing the body upwards or sprawling outwards is not walking: the part
    of the peak height gain or extent growth above its threshold is
    subtracted quadratically.
    """

    name = "walk"

    def __init__(self, config: WalkConfig | None = None):
        self.config = config or WalkConfig()
        self.start_xz: tuple[float, float] | None = None
        self.start_height = 0.0
        self.start_extent = 0.0
        self.peak_height = 0.0
        self.peak_extent = 0.0

    def eval_start(self, initial: PhysicsSnapshot) -> None:
        centroid = initial.centroid()
        self.start_xz = (float(centroid[0]), float(centroid[2]))
        self.start_height = initial.highest_point()
        self.start_extent = initial.horizontal_extent()
        self.peak_height = self.start_height
        self.peak_extent = self.start_extent

    def eval_continuous(self, state: PhysicsSnapshot) -> None:
        if self.start_xz is None:
            self.eval_start(state)
        self.peak_height = max(self.peak_height, state.highest_point())
        self.peak_extent = max(self.peak_extent, state.horizontal_extent())

    def final_eval(self, final: PhysicsSnapshot) -> float:
        if self.start_xz is None:
            return 0.0
        centroid = final.centroid()
        distance = math.hypot(centroid[0] - self.start_xz[0], centroid[2] - self.start_xz[1])

        cfg = self.config
        height_excess = max(0.0, self.peak_height - self.start_height - cfg.max_height_gain)
        extent_excess = max(0.0, self.peak_extent - self.start_extent - cfg.max_extent_change)
        penalty = cfg.penalty_weight * (height_excess**2 + extent_excess**2)
        return float(distance - penalty)
