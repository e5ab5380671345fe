from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class EvolutionState(str, Enum):
    BEGIN_TRAINING_SESSION = "BeginTrainingSession"
    POPULATING_GENERATION = "PopulatingGeneration"
    EVALUATING_CREATURE = "EvaluatingCreature"
    TESTING_CREATURE = "TestingCreature"
    WRITING_GENERATION = "WritingGeneration"


class TrainingEventKind(str, Enum):
    STARTED_GENERATION = "StartedGeneration"
    FINISHED_TESTING_CREATURE = "FinishedTestingCreature"
    FINISHED_TESTING_GENERATION = "FinishedTestingGeneration"
    WROTE_GENERATION = "WroteGeneration"


class TrainingEvent(BaseModel):
    """Progress notification emitted by the engine; drained by the caller."""

    kind: TrainingEventKind
    generation: int
    creature: int | None = None
    fitness: float | None = None
