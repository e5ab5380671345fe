from __future__ import annotations

import numpy as np
from pydantic import Field

from morphevo.morphology.models import LimbNode
from morphevo.mutation.params import MutateFieldParams, ScalableParams, chance


class MutateNodeParams(ScalableParams):
    density: MutateFieldParams = Field(
        default_factory=lambda: MutateFieldParams(freq=0.1, std_dev=0.1, clamp=(0.05, 10.0))
    )
    friction: MutateFieldParams = Field(
        default_factory=lambda: MutateFieldParams(freq=0.1, std_dev=0.1, clamp=(0.0, 1.0))
    )
    restitution: MutateFieldParams = Field(
        default_factory=lambda: MutateFieldParams(freq=0.1, std_dev=0.1, clamp=(0.0, 1.0))
    )
    recursive: MutateFieldParams = Field(
        default_factory=lambda: MutateFieldParams(freq=0.1, std_dev=0.75)
    )
    terminal_freq: float = Field(default=0.05, ge=0.0)

    def set_scale(self, scale: float) -> None:
        self.density.set_scale(scale)
        self.friction.set_scale(scale)
        self.restitution.set_scale(scale)
        self.recursive.set_scale(scale)
        self.terminal_freq *= scale


class MutateNode:
    def __init__(self, node: LimbNode, rng: np.random.Generator, params: MutateNodeParams):
        self.node = node
        self.rng = rng
        self.params = params

    def mutate(self) -> LimbNode:
        node, rng, params = self.node, self.rng, self.params

        if params.density.change(rng):
            node.density = params.density.mutate(rng, node.density)
        if params.friction.change(rng):
            node.friction = params.friction.mutate(rng, node.friction)
        if params.restitution.change(rng):
            node.restitution = params.restitution.mutate(rng, node.restitution)
        if params.recursive.change(rng):
            step = int(round(params.recursive.sample(rng)))
            node.recursive_limit = max(1, node.recursive_limit + step)
        if chance(rng, params.terminal_freq):
            node.terminal_only = not node.terminal_only
        return node
