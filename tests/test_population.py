"""
Tests for generation assembly and elite selection.
"""

import math

import numpy as np
import pytest
from pydantic import ValidationError

from morphevo.evolution.config import PopulatorConfig, TrainConfig, portion
from morphevo.evolution.population import (
    FITNESS_SENTINEL,
    GenerationPopulator,
    Member,
    PopulateFlag,
    Population,
    mutation_passes,
)
from morphevo.exceptions import SelectionError
from morphevo.morphology.graph import MorphologyGraph
from morphevo.morphology.models import LimbNode


def _member(creature, fitness):
    graph = MorphologyGraph(creature=creature)
    graph.set_root(graph.add_node(LimbNode()))
    return Member(graph=graph, flag=PopulateFlag.SPAWNED, fitness=fitness)


@pytest.fixture
def populator():
    return GenerationPopulator(PopulatorConfig(pop_size=10, elitism=0.3, rand_percent=0.2))


class TestPopulatorConfig:
    """Tests for population shares."""

    def test_shares(self):
        config = PopulatorConfig(pop_size=10, elitism=0.3, rand_percent=0.2)
        assert (config.retained, config.offspring, config.spawned) == (3, 5, 2)

    def test_portion_ignores_float_noise(self):
        assert portion(0.3, 10) == 3
        assert portion(0.7, 10) == 7
        assert portion(0.25, 10) == 3

    def test_must_retain_someone(self):
        with pytest.raises(ValidationError):
            PopulatorConfig(pop_size=10, elitism=0.0)

    def test_shares_must_fit(self):
        with pytest.raises(ValidationError):
            PopulatorConfig(pop_size=10, elitism=0.6, rand_percent=0.5)

    def test_train_config_rejects_unknown_fitness(self):
        with pytest.raises(ValidationError):
            TrainConfig(session="s", fitness="swim")

    def test_train_config_rejects_path_like_session(self):
        with pytest.raises(ValidationError):
            TrainConfig(session="../escape")

    def test_train_config_maps_to_populator(self, tmp_path):
        config = TrainConfig(session="s", data_dir=tmp_path, population=20, elitism=0.5)
        populator = config.populator()

        assert populator.pop_size == 20
        assert populator.retained == 10
        assert config.testing().session == "s"


class TestMutationPasses:
    """Tests for the offspring mutation-intensity curve."""

    def test_endpoints(self):
        assert mutation_passes(0, 5, 20, 2.0) == 1
        assert mutation_passes(4, 5, 20, 2.0) == 20

    def test_monotonic(self):
        passes = [mutation_passes(i, 30, 20, 2.0) for i in range(30)]
        assert passes == sorted(passes)
        assert all(p >= 1 for p in passes)

    def test_single_offspring(self):
        assert mutation_passes(0, 1, 20, 2.0) == 1


class TestRanking:
    """Tests for Population.ranked."""

    def test_descending(self):
        population = Population(members=[_member(i, f) for i, f in enumerate([1.0, 3.0, 2.0])])
        assert [m.creature for m in population.ranked()] == [1, 2, 0]

    def test_nan_aborts(self):
        population = Population(members=[_member(0, 1.0), _member(1, math.nan)])
        with pytest.raises(SelectionError):
            population.ranked()

    def test_unscored_aborts(self):
        population = Population(members=[_member(0, 1.0), _member(1, None)])
        with pytest.raises(SelectionError):
            population.ranked()


class TestGenerationPopulator:
    """Tests for populate."""

    def test_initial_generation(self, populator, rng):
        population = populator.populate(Population(), rng)

        assert population.ids() == list(range(10))
        assert set(population.flags()) == {PopulateFlag.SPAWNED}
        assert population.current_id == 10
        assert population.generation == 0

    def test_next_generation(self, populator, rng):
        """
        Test one select-and-mutate step.

        Workflow:
            1. Spawn ten creatures and score them
            2. Populate again
            3. Top three are retained under their ids, five mutated and two
               spawned creatures take ids 10..16
        """
        population = populator.populate(Population(), rng)
        scores = [0.5, 9.0, -1.0, 4.0, 7.0, 0.0, 3.0, 8.0, 1.0, 2.0]
        for member, score in zip(population.members, scores):
            member.fitness = score

        population = populator.populate(population, rng)

        assert population.flags() == (
            [PopulateFlag.RETAINED] * 3 + [PopulateFlag.MUTATED] * 5 + [PopulateFlag.SPAWNED] * 2
        )
        assert population.ids() == [1, 7, 4] + list(range(10, 17))
        assert population.current_id == 17
        assert population.generation == 1
        assert population.best_creature == 1
        assert population.best_fitness == 9.0
        assert all(m.fitness is None for m in population.members)

    def test_retained_are_clones(self, populator, rng):
        population = populator.populate(Population(), rng)
        for i, member in enumerate(population.members):
            member.fitness = float(i)
        best = population.members[-1]

        population = populator.populate(population, rng)

        retained = population.members[0]
        assert retained.creature == best.creature
        assert retained.graph is not best.graph
        assert retained.graph.model_dump() == best.graph.model_dump()

    @pytest.mark.parametrize("seed", range(5))
    def test_elites_are_exactly_the_top_scores(self, seed):
        rng = np.random.default_rng(seed)
        config = PopulatorConfig(pop_size=12, elitism=0.25, rand_percent=0.1)
        populator = GenerationPopulator(config)
        population = populator.populate(Population(), rng)
        scores = rng.normal(size=12)
        for member, score in zip(population.members, scores):
            member.fitness = float(score)
        expected = {population.members[i].creature for i in np.argsort(-scores)[: config.retained]}

        population = populator.populate(population, rng)

        retained = {m.creature for m in population.members if m.flag is PopulateFlag.RETAINED}
        assert retained == expected

    def test_sentinel_scores_rank_last(self, populator, rng):
        population = populator.populate(Population(), rng)
        for i, member in enumerate(population.members):
            member.fitness = FITNESS_SENTINEL if i < 5 else float(i)

        population = populator.populate(population, rng)

        assert population.ids()[:3] == [9, 8, 7]

    def test_nan_aborts_populate(self, populator, rng):
        population = populator.populate(Population(), rng)
        for member in population.members:
            member.fitness = 1.0
        population.members[3].fitness = math.nan

        with pytest.raises(SelectionError):
            populator.populate(population, rng)
