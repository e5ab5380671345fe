from __future__ import annotations

from collections import deque
from datetime import datetime

from pydantic import BaseModel, Field, computed_field


class EngineMetrics(BaseModel):
    """Running totals of a training run."""

    total_generations: int = Field(default=0, description="Generations tested and written")
    creatures_tested: int = Field(default=0, description="Creatures scored so far")
    physics_steps: int = Field(default=0, description="Physics steps driven, settling included")
    non_finite_scores: int = Field(
        default=0, description="Scores replaced by the sentinel because they were NaN or infinite"
    )
    last_generation_time: datetime | None = Field(
        default=None, description="Timestamp of the last written generation"
    )
    generation_best: deque = Field(
        default_factory=lambda: deque(maxlen=5),
        description="Rolling window of each generation's best fitness",
    )

    @computed_field
    @property
    def avg_generation_best(self) -> float:
        """Average best fitness over the rolling window."""
        return sum(self.generation_best) / max(1, len(self.generation_best))

    model_config = {"arbitrary_types_allowed": True}
