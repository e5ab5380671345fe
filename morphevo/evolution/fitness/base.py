from __future__ import annotations

from abc import ABC, abstractmethod

from morphevo.simulation import PhysicsSnapshot


class FitnessEvaluator(ABC):
    """Scores one creature over one test.

    A fresh evaluator is created for every creature, so implementations may
    keep their running totals as plain attributes.
    """

    name: str = "base"

    def eval_start(self, initial: PhysicsSnapshot) -> None:
        """Record the settled baseline before scoring begins."""

    @abstractmethod
    def eval_continuous(self, state: PhysicsSnapshot) -> None:
        """Accumulate one scored physics step."""

    @abstractmethod
    def final_eval(self, final: PhysicsSnapshot) -> float:
        """Return the creature's score; higher is better."""
