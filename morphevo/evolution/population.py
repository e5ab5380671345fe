from __future__ import annotations

from enum import Enum
import math

import numpy as np
from loguru import logger
from pydantic import BaseModel, Field

from morphevo.evolution.config import PopulatorConfig
from morphevo.exceptions import SelectionError
from morphevo.morphology.graph import CreatureID, MorphologyGraph
from morphevo.mutation.morphology import (
    MutateMorphology,
    MutateMorphologyParams,
    RandomMorphologyParams,
)

FITNESS_SENTINEL = -1e12


class PopulateFlag(str, Enum):
    """How a creature entered its generation."""

    RETAINED = "Retained"
    MUTATED = "Mutated"
    SPAWNED = "Spawned"


class Member(BaseModel):
    graph: MorphologyGraph
    flag: PopulateFlag
    fitness: float | None = None

    @property
    def creature(self) -> CreatureID:
        return self.graph.creature


class Population(BaseModel):
    """One generation plus the session-wide counters that outlive it."""

    members: list[Member] = Field(default_factory=list)
    generation: int = Field(default=0, description="Index of the generation held in members")
    current_id: CreatureID = Field(default=0, description="Next unused creature id")
    best_fitness: float = FITNESS_SENTINEL
    best_creature: CreatureID = 0

    def __len__(self) -> int:
        return len(self.members)

    def is_empty(self) -> bool:
        return not self.members

    def ids(self) -> list[CreatureID]:
        return [m.creature for m in self.members]

    def flags(self) -> list[PopulateFlag]:
        return [m.flag for m in self.members]

    def fitnesses(self) -> list[float | None]:
        return [m.fitness for m in self.members]

    def next_id(self) -> CreatureID:
        creature = self.current_id
        self.current_id += 1
        return creature

    def ranked(self) -> list[Member]:
        """Members by descending fitness.

        Raises:
            SelectionError: If any member is unscored or scored NaN.
        """
        for member in self.members:
            if member.fitness is None or math.isnan(member.fitness):
                raise SelectionError(
                    f"Cannot rank generation {self.generation}: creature {member.creature} "
                    f"has fitness {member.fitness}"
                )
        return sorted(self.members, key=lambda m: -m.fitness)


def mutation_passes(index: int, offspring: int, max_mutations: int, curve: float) -> int:
    """Mutation passes for offspring ``index`` of ``offspring``, rising with the index."""
    x = index / (offspring - 1) if offspring > 1 else 0.0
    # floored at one: every offspring gets at least one pass
    return max(1, math.ceil(round(max_mutations * x**curve, 9)))


class GenerationPopulator:
    """Builds each generation: elites kept, mutated clones of them, and fresh randoms."""

    def __init__(
        self,
        config: PopulatorConfig | None = None,
        mutate_params: MutateMorphologyParams | None = None,
        rand_params: RandomMorphologyParams | None = None,
    ):
        self.config = config or PopulatorConfig()
        self.mutate_params = mutate_params or MutateMorphologyParams()
        self.rand_params = rand_params or RandomMorphologyParams()

    def populate(self, population: Population, rng: np.random.Generator) -> Population:
        if population.is_empty():
            return self._initial(population, rng)
        return self._next(population, rng)

    def _initial(self, population: Population, rng: np.random.Generator) -> Population:
        logger.info(
            "[GenerationPopulator] Spawning initial generation of {}", self.config.pop_size
        )
        population.members = [
            Member(
                graph=self.rand_params.build_morph(rng, population.next_id()),
                flag=PopulateFlag.SPAWNED,
            )
            for _ in range(self.config.pop_size)
        ]
        return population

    def _next(self, population: Population, rng: np.random.Generator) -> Population:
        cfg = self.config
        ranked = population.ranked()

        top = ranked[0]
        if top.fitness > population.best_fitness:
            logger.info(
                "[GenerationPopulator] New best creature {} | fitness={:.4f} (was {:.4f})",
                top.creature,
                top.fitness,
                population.best_fitness,
            )
            population.best_fitness = top.fitness
            population.best_creature = top.creature

        retained = min(cfg.retained, len(ranked))
        elites = ranked[:retained]
        members = [
            Member(graph=elite.graph.clone(), flag=PopulateFlag.RETAINED) for elite in elites
        ]

        offspring = cfg.pop_size - retained - cfg.spawned
        for i in range(offspring):
            parent = elites[i % retained]
            graph = parent.graph.clone(creature=population.next_id())
            passes = mutation_passes(i, offspring, cfg.max_mutations, cfg.mutation_curve)
            mutate = MutateMorphology(graph, rng, self.mutate_params)
            for _ in range(passes):
                mutate.mutate()
            members.append(Member(graph=graph, flag=PopulateFlag.MUTATED))

        for _ in range(cfg.spawned):
            members.append(
                Member(
                    graph=self.rand_params.build_morph(rng, population.next_id()),
                    flag=PopulateFlag.SPAWNED,
                )
            )

        population.members = members
        population.generation += 1
        logger.info(
            "[GenerationPopulator] Generation {} | retained={}, mutated={}, spawned={}",
            population.generation,
            retained,
            offspring,
            cfg.spawned,
        )
        return population
