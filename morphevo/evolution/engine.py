from __future__ import annotations

from datetime import datetime, timezone
import math
from typing import Callable

import numpy as np
from loguru import logger

from morphevo.controller import JointController
from morphevo.evolution.config import TestingConfig
from morphevo.evolution.fitness.base import FitnessEvaluator
from morphevo.evolution.metrics import EngineMetrics
from morphevo.evolution.population import FITNESS_SENTINEL, GenerationPopulator, Population
from morphevo.evolution.session import SessionStore
from morphevo.evolution.state import EvolutionState, TrainingEvent, TrainingEventKind
from morphevo.exceptions import MorphologyError
from morphevo.morphology.builder import BuildResult
from morphevo.morphology.graph import MorphologyGraph
from morphevo.simulation import PhysicsSimulator, PhysicsSnapshot

__all__ = ["EvolutionEngine"]


class EvolutionEngine:
    """Step-driven training loop.

    Every call to :meth:`step` performs at most one physics step, so an
    external fixed-step scheduler (a render loop, a test) stays in control.
    Exactly one creature is in the simulator at a time::

        BeginTrainingSession -> PopulatingGeneration
            -> {EvaluatingCreature <-> TestingCreature} -> WritingGeneration
            -> PopulatingGeneration -> ...
    """

    def __init__(
        self,
        simulator: PhysicsSimulator,
        populator: GenerationPopulator,
        fitness: Callable[[], FitnessEvaluator],
        testing: TestingConfig | None = None,
        store: SessionStore | None = None,
        rng: np.random.Generator | None = None,
        max_generations: int | None = None,
    ):
        self.simulator = simulator
        self.populator = populator
        self.fitness = fitness
        self.testing = testing or TestingConfig()
        self.store = store
        self.rng = rng if rng is not None else np.random.default_rng()
        self.max_generations = max_generations

        self.state = EvolutionState.BEGIN_TRAINING_SESSION
        self.population = Population()
        self.metrics = EngineMetrics()
        self.events: list[TrainingEvent] = []
        self.finished = False

        self.current_index: int | None = None
        self._evaluator: FitnessEvaluator | None = None
        self._controller: JointController | None = None
        self._snapshot: PhysicsSnapshot | None = None
        self._settling = False
        self._settle_steps = 0
        self._test_steps = 0

        logger.info(
            "[EvolutionEngine] Init | pop_size={}, test_time={}, session={}",
            self.populator.config.pop_size,
            self.testing.test_time,
            self.testing.session,
        )

    # ------------------------------------------------------------------
    def step(self) -> EvolutionState:
        """Advance the state machine by one tick and return the new state."""
        if self.finished:
            return self.state

        handler = {
            EvolutionState.BEGIN_TRAINING_SESSION: self._begin_session,
            EvolutionState.POPULATING_GENERATION: self._populate,
            EvolutionState.EVALUATING_CREATURE: self._evaluate,
            EvolutionState.TESTING_CREATURE: self._test,
            EvolutionState.WRITING_GENERATION: self._write,
        }[self.state]
        handler()
        return self.state

    def run_generation(self) -> Population:
        """Step until the current generation has been tested and written."""
        target = self.metrics.total_generations + 1
        while not self.finished and self.metrics.total_generations < target:
            self.step()
        return self.population

    def run(self) -> Population:
        while not self.finished:
            self.step()
        return self.population

    def drain_events(self) -> list[TrainingEvent]:
        events, self.events = self.events, []
        return events

    # ------------------------------------------------------------------ states
    def _begin_session(self) -> None:
        if self.store is not None:
            loaded = self.store.load()
            if loaded is not None:
                self.population = loaded
            else:
                self.store.initialize()
        self.state = EvolutionState.POPULATING_GENERATION

    def _populate(self) -> None:
        if self.max_generations is not None and self.metrics.total_generations >= self.max_generations:
            logger.info("[EvolutionEngine] Stop: max_generations={}", self.max_generations)
            self.finished = True
            return

        self.populator.populate(self.population, self.rng)
        for member in self.population.members:
            member.fitness = None
        self.current_index = None
        self._emit(TrainingEventKind.STARTED_GENERATION)
        self.state = EvolutionState.EVALUATING_CREATURE

    def _evaluate(self) -> None:
        index = 0 if self.current_index is None else self.current_index + 1
        self.current_index = index

        if index >= len(self.population):
            self.current_index = None
            self._emit(TrainingEventKind.FINISHED_TESTING_GENERATION)
            self.state = EvolutionState.WRITING_GENERATION
            return

        member = self.population.members[index]
        build = self._build(member.graph)
        self._snapshot = self.simulator.spawn(build)
        self._controller = JointController(build, self.testing.max_force)
        self._evaluator = self.fitness()
        self._test_steps = 0
        self._settle_steps = 0

        if self.testing.wait_for_fall:
            self._settling = True
            self.simulator.set_settling(True)
        else:
            self._settling = False
            self._evaluator.eval_start(self._snapshot)

        logger.debug(
            "[EvolutionEngine] Testing creature {} ({}/{}) | limbs={}, joints={}",
            member.creature,
            index + 1,
            len(self.population),
            len(build.limbs),
            len(build.joints),
        )
        self.state = EvolutionState.TESTING_CREATURE

    def _test(self) -> None:
        self.metrics.physics_steps += 1

        if self._settling:
            snapshot = self.simulator.step(())
            self._settle_steps += 1
            if (
                snapshot.max_speed() < self.testing.settle_velocity
                or self._settle_steps >= self.testing.settle_timeout
            ):
                self._settling = False
                self.simulator.set_settling(False)
                self._evaluator.eval_start(snapshot)
            self._snapshot = snapshot
            return

        outputs = self._controller.outputs(self._snapshot)
        snapshot = self.simulator.step(outputs)
        self._evaluator.eval_continuous(snapshot)
        self._snapshot = snapshot
        self._test_steps += 1

        if self._test_steps >= self.testing.test_time:
            self._finish_creature(snapshot)

    def _finish_creature(self, snapshot: PhysicsSnapshot) -> None:
        member = self.population.members[self.current_index]
        score = float(self._evaluator.final_eval(snapshot))
        if not math.isfinite(score):
            logger.warning(
                "[EvolutionEngine] Creature {} scored {}, using {}",
                member.creature,
                score,
                FITNESS_SENTINEL,
            )
            self.metrics.non_finite_scores += 1
            score = FITNESS_SENTINEL
        member.fitness = score

        self.simulator.despawn()
        self._evaluator = None
        self._controller = None
        self.metrics.creatures_tested += 1
        self._emit(TrainingEventKind.FINISHED_TESTING_CREATURE, member.creature, score)
        self.state = EvolutionState.EVALUATING_CREATURE

    def _write(self) -> None:
        if self.store is not None:
            self.store.write_generation(self.population)

        scores = [m.fitness for m in self.population.members if m.fitness is not None]
        best = max(scores) if scores else FITNESS_SENTINEL
        if scores and best > self.population.best_fitness:
            top = max(
                (m for m in self.population.members if m.fitness is not None),
                key=lambda m: m.fitness,
            )
            self.population.best_fitness = best
            self.population.best_creature = top.creature
        self.metrics.total_generations += 1
        self.metrics.generation_best.append(best)
        self.metrics.last_generation_time = datetime.now(timezone.utc)

        logger.info(
            "[EvolutionEngine] Generation {} done | best={:.4f}, mean={:.4f}, session_best={:.4f} (creature {})",
            self.population.generation,
            best,
            float(np.mean(scores)) if scores else FITNESS_SENTINEL,
            self.population.best_fitness,
            self.population.best_creature,
        )
        self._emit(TrainingEventKind.WROTE_GENERATION)
        self.state = EvolutionState.POPULATING_GENERATION

    # ------------------------------------------------------------------
    def _build(self, graph: MorphologyGraph) -> BuildResult:
        try:
            build = graph.evaluate(graph.root_transform(), max_limbs=self.testing.max_limbs)
        except MorphologyError as e:
            logger.warning("[EvolutionEngine] Creature {} cannot be built: {}", graph.creature, e)
            return BuildResult()
        return build.align_to_ground(self.testing.ground_height)

    def _emit(
        self, kind: TrainingEventKind, creature: int | None = None, fitness: float | None = None
    ) -> None:
        self.events.append(
            TrainingEvent(
                kind=kind,
                generation=self.population.generation,
                creature=creature,
                fitness=fitness,
            )
        )
