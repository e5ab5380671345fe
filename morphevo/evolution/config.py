from __future__ import annotations

import math
import os
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

DATA_DIR_ENV = "MORPHEVO_DATA_DIR"


def default_data_dir() -> Path:
    """Training data root: ``$MORPHEVO_DATA_DIR`` or ``~/.local/share/morphevo/training``."""
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".local" / "share" / "morphevo" / "training"


def portion(fraction: float, total: int) -> int:
    """``ceil(fraction * total)``, ignoring floating point noise in the product."""
    return math.ceil(round(fraction * total, 9))


class PopulatorConfig(BaseModel):
    """How each generation is assembled from the previous one."""

    elitism: float = Field(
        default=0.3, ge=0.0, le=1.0, description="Share of the population retained as elites"
    )
    rand_percent: float = Field(
        default=0.2, ge=0.0, le=1.0, description="Share of the population spawned fresh"
    )
    pop_size: int = Field(default=10, gt=0, description="Creatures per generation")
    max_mutations: int = Field(
        default=20, ge=1, description="Mutation passes applied to the last offspring"
    )
    mutation_curve: float = Field(
        default=2.0, gt=0.0, description="Exponent of the offspring mutation-intensity curve"
    )

    @model_validator(mode="after")
    def _fits_population(self):
        retained = portion(self.elitism, self.pop_size)
        spawned = portion(self.rand_percent, self.pop_size)
        if retained < 1:
            raise ValueError("elitism must retain at least one creature")
        if retained + spawned > self.pop_size:
            raise ValueError(
                f"retained ({retained}) + random ({spawned}) exceeds pop_size ({self.pop_size})"
            )
        return self

    @property
    def retained(self) -> int:
        return portion(self.elitism, self.pop_size)

    @property
    def spawned(self) -> int:
        return portion(self.rand_percent, self.pop_size)

    @property
    def offspring(self) -> int:
        return self.pop_size - self.retained - self.spawned


class TestingConfig(BaseModel):
    """How a single creature is tested."""

    __test__ = False

    test_time: int = Field(default=180, gt=0, description="Scored physics steps per creature")
    session: str = Field(default="default-session", min_length=1)
    wait_for_fall: bool = Field(
        default=True, description="Let the creature settle under gravity before scoring"
    )
    settle_timeout: int = Field(default=300, ge=0, description="Most settle steps before scoring anyway")
    settle_velocity: float = Field(
        default=0.05, gt=0.0, description="Settled once every limb is slower than this"
    )
    max_force: float = Field(default=0.05, gt=0.0, description="Clamp on each effector output")
    max_limbs: int | None = Field(
        default=64, gt=0, description="Cap on limbs spawned per creature (None = unlimited)"
    )
    ground_height: float = 0.0


class TrainConfig(BaseModel):
    """Options of ``morphevo train``."""

    session: str = Field(min_length=1)
    data_dir: Path = Field(default_factory=default_data_dir)
    test_time: int = Field(default=180, gt=0)
    population: int = Field(default=250, gt=0)
    elitism: float = Field(default=0.25, ge=0.0, le=1.0)
    rand_percent: float = Field(default=0.03, ge=0.0, le=1.0)
    max_mutations: int = Field(default=20, ge=1)
    fitness: str = "jump"
    seed: int | None = None
    generations: int | None = Field(default=None, gt=0)
    visual: bool = False
    silent: bool = False

    @field_validator("fitness")
    @classmethod
    def known_fitness(cls, v: str) -> str:
        from morphevo.evolution.fitness import FITNESS_EVALUATORS

        if v not in FITNESS_EVALUATORS:
            raise ValueError(
                f"unknown fitness '{v}', expected one of {sorted(FITNESS_EVALUATORS)}"
            )
        return v

    @field_validator("session")
    @classmethod
    def plain_name(cls, v: str) -> str:
        if "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError(f"session name must be a plain directory name, got '{v}'")
        return v

    def populator(self) -> PopulatorConfig:
        return PopulatorConfig(
            elitism=self.elitism,
            rand_percent=self.rand_percent,
            pop_size=self.population,
            max_mutations=self.max_mutations,
        )

    def testing(self) -> TestingConfig:
        return TestingConfig(test_time=self.test_time, session=self.session)
