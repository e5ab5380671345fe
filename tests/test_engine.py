"""
End-to-end tests for the step-driven training loop.

Purpose:
    Drive the engine state machine through whole generations with a
    scripted simulator, then once with the headless integrator.
"""

import math

import numpy as np
import pytest

from morphevo.evolution.config import PopulatorConfig, TestingConfig
from morphevo.evolution.engine import EvolutionEngine
from morphevo.evolution.fitness import FitnessEvaluator, JumpFitnessEval
from morphevo.evolution.population import FITNESS_SENTINEL, GenerationPopulator, PopulateFlag
from morphevo.evolution.session import SessionStore
from morphevo.evolution.state import EvolutionState, TrainingEventKind
from morphevo.simulation import HeadlessSimulator


def _engine(simulator, store=None, seed=0, max_generations=None, fitness=JumpFitnessEval, **testing):
    testing.setdefault("test_time", 5)
    return EvolutionEngine(
        simulator=simulator,
        populator=GenerationPopulator(PopulatorConfig(pop_size=10, elitism=0.3, rand_percent=0.2)),
        fitness=fitness,
        testing=TestingConfig(**testing),
        store=store,
        rng=np.random.default_rng(seed),
        max_generations=max_generations,
    )


class _NaNFitness(FitnessEvaluator):
    def eval_continuous(self, state):
        pass

    def final_eval(self, final):
        return math.nan


class TestStateMachine:
    """Tests for individual transitions."""

    def test_first_steps(self, scripted_simulator):
        engine = _engine(scripted_simulator)

        assert engine.step() is EvolutionState.POPULATING_GENERATION
        assert engine.step() is EvolutionState.EVALUATING_CREATURE
        assert len(engine.population) == 10
        assert engine.step() is EvolutionState.TESTING_CREATURE
        assert scripted_simulator.spawned == 1

    def test_settles_before_scoring(self, scripted_simulator):
        engine = _engine(scripted_simulator)
        for _ in range(3):
            engine.step()

        engine.step()

        # the scripted simulator reports zero velocity, so one step settles
        assert scripted_simulator.settle_calls == [True, False]

    def test_one_creature_at_a_time(self, scripted_simulator):
        engine = _engine(scripted_simulator, wait_for_fall=False)
        engine.run_generation()

        assert scripted_simulator.spawned == 10
        assert scripted_simulator.despawned == 10
        assert scripted_simulator.steps == 10 * 5

    def test_events(self, scripted_simulator):
        engine = _engine(scripted_simulator)
        engine.run_generation()
        kinds = [event.kind for event in engine.drain_events()]

        assert kinds[0] is TrainingEventKind.STARTED_GENERATION
        assert kinds.count(TrainingEventKind.FINISHED_TESTING_CREATURE) == 10
        assert kinds[-2:] == [
            TrainingEventKind.FINISHED_TESTING_GENERATION,
            TrainingEventKind.WROTE_GENERATION,
        ]
        assert engine.drain_events() == []

    def test_non_finite_scores_use_sentinel(self, scripted_simulator):
        engine = _engine(scripted_simulator, fitness=_NaNFitness)
        engine.run_generation()

        assert engine.population.fitnesses() == [FITNESS_SENTINEL] * 10
        assert engine.metrics.non_finite_scores == 10

    def test_max_generations(self, scripted_simulator):
        engine = _engine(scripted_simulator, max_generations=2)
        engine.run()

        assert engine.finished
        assert engine.metrics.total_generations == 2
        assert engine.step() is engine.state


class TestGenerations:
    """Tests spanning populate, test and select."""

    def test_population_shares_and_ids(self, scripted_simulator):
        """
        Test pop_size=10, elitism=0.3, rand_percent=0.2.

        Workflow:
            1. Initial generation: ids 0..9, all spawned
            2. Test it and populate again
            3. Three retained top scorers, five mutated, two spawned, new ids from 10
        """
        engine = _engine(scripted_simulator)
        engine.run_generation()

        first = engine.population
        assert first.ids() == list(range(10))
        assert set(first.flags()) == {PopulateFlag.SPAWNED}
        assert all(f is not None for f in first.fitnesses())
        top3 = [m.creature for m in first.ranked()[:3]]

        while engine.state is not EvolutionState.EVALUATING_CREATURE:
            engine.step()

        nxt = engine.population
        assert nxt.flags() == (
            [PopulateFlag.RETAINED] * 3 + [PopulateFlag.MUTATED] * 5 + [PopulateFlag.SPAWNED] * 2
        )
        assert nxt.ids()[:3] == top3
        assert nxt.ids()[3:] == list(range(10, 17))

    def test_best_fitness_tracked(self, scripted_simulator):
        engine = _engine(scripted_simulator)
        engine.run_generation()
        scores = engine.population.fitnesses()

        assert engine.population.best_fitness == max(scores)
        assert engine.metrics.generation_best[-1] == max(scores)
        assert engine.metrics.creatures_tested == 10


class TestPersistence:
    """Tests for writing and resuming through a store."""

    def test_generation_written(self, scripted_simulator, tmp_path):
        store = SessionStore(tmp_path, "engine")
        engine = _engine(scripted_simulator, store=store)
        engine.run_generation()

        data = store.read_session()
        assert data.current_generation == 0
        assert data.current_id == 10
        generation, entries = store.read_roster()
        assert generation == 0
        assert [e.creature for e in entries] == list(range(10))

    def test_resume_continues(self, scripted_simulator, tmp_path):
        store = SessionStore(tmp_path, "engine")
        _engine(scripted_simulator, store=store).run_generation()

        resumed = _engine(scripted_simulator, store=store, seed=1)
        resumed.step()
        resumed.step()

        assert resumed.population.generation == 1
        assert resumed.population.ids()[3:] == list(range(10, 17))


class TestHeadless:
    """One generation on the reference integrator."""

    @pytest.mark.parametrize("wait_for_fall", [False, True])
    def test_generation_scores_are_finite(self, wait_for_fall):
        engine = _engine(
            HeadlessSimulator(),
            test_time=10,
            wait_for_fall=wait_for_fall,
            settle_timeout=20,
            max_limbs=16,
        )
        engine.run_generation()

        scores = engine.population.fitnesses()
        assert len(scores) == 10
        assert all(math.isfinite(s) for s in scores)
