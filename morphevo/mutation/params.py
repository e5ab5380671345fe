from __future__ import annotations

from typing import TypeVar

import numpy as np
from pydantic import BaseModel, Field, model_validator

_P = TypeVar("_P", bound="ScalableParams")


class MutateFieldParams(BaseModel):
    """How often a single field changes, and by how much."""

    freq: float = Field(ge=0.0, description="Probability of changing the field per pass")
    mean: float = Field(default=0.0, description="Mean of the Gaussian perturbation")
    std_dev: float = Field(default=0.1, ge=0.0, description="Std-dev of the Gaussian perturbation")
    clamp: tuple[float, float] | None = Field(
        default=None, description="Optional inclusive range the mutated value is clamped to"
    )

    @model_validator(mode="after")
    def _ordered_clamp(self):
        if self.clamp is not None and self.clamp[0] > self.clamp[1]:
            raise ValueError(f"clamp lower bound exceeds upper bound: {self.clamp}")
        return self

    def change(self, rng: np.random.Generator) -> bool:
        return chance(rng, self.freq)

    def sample(self, rng: np.random.Generator) -> float:
        return float(rng.normal(self.mean, self.std_dev))

    def mutate(self, rng: np.random.Generator, value: float) -> float:
        value = value + self.sample(rng)
        if self.clamp is not None:
            value = min(self.clamp[1], max(self.clamp[0], value))
        return value

    def set_scale(self, scale: float) -> None:
        self.freq *= scale


class ScalableParams(BaseModel):
    """A bundle of mutation probabilities that can be normalised by structure size."""

    def set_scale(self, scale: float) -> None:
        raise NotImplementedError

    def scaled(self: _P, scale: float) -> _P:
        """Copy of this bundle with every probability multiplied by ``scale``."""
        copy = self.model_copy(deep=True)
        copy.set_scale(scale)
        return copy


def chance(rng: np.random.Generator, p: float) -> bool:
    """Bernoulli trial; probabilities outside ``[0, 1]`` saturate."""
    if p <= 0.0:
        return False
    if p >= 1.0:
        return True
    return bool(rng.random() < p)
