from morphevo.evolution.config import PopulatorConfig, TestingConfig, TrainConfig
from morphevo.evolution.engine import EvolutionEngine
from morphevo.evolution.population import (
    FITNESS_SENTINEL,
    GenerationPopulator,
    Member,
    PopulateFlag,
    Population,
)
from morphevo.evolution.session import SessionData, SessionStore
from morphevo.evolution.state import EvolutionState, TrainingEvent, TrainingEventKind

__all__ = [
    "FITNESS_SENTINEL",
    "EvolutionEngine",
    "EvolutionState",
    "GenerationPopulator",
    "Member",
    "PopulateFlag",
    "Population",
    "PopulatorConfig",
    "SessionData",
    "SessionStore",
    "TestingConfig",
    "TrainConfig",
    "TrainingEvent",
    "TrainingEventKind",
]
