"""Whole-creature random generation and structural mutation."""

from __future__ import annotations

import math

import numpy as np
from loguru import logger
from pydantic import BaseModel, Field, model_validator

from morphevo.geometry import quat_from_euler_yxz
from morphevo.morphology.graph import CreatureID, MorphologyGraph, NodeID
from morphevo.morphology.joint import JOINT_AXES, JointAxesMask
from morphevo.morphology.models import LimbConnection, LimbNode
from morphevo.morphology.placement import LimbAttachFace, LimbRelativePlacement
from morphevo.mutation.edge import MutateEdge, MutateEdgeParams
from morphevo.mutation.expr import MutateExpr, MutateExprParams, RandomExprParams
from morphevo.mutation.node import MutateNode, MutateNodeParams
from morphevo.mutation.params import MutateFieldParams, chance

Range = tuple[float, float]


class RandomMorphologyParams(BaseModel):
    """Distributions used to build brand new creatures and their parts."""

    min_nodes: int = Field(default=1, ge=1, description="Fewest non-root nodes")
    max_nodes: int = Field(default=4, ge=1, description="Most non-root nodes")
    max_extra_edges: int = Field(default=3, ge=0, description="Edges added beyond the spanning ones")
    density: Range = (0.5, 2.0)
    friction: Range = (0.2, 0.8)
    restitution: Range = (0.0, 0.3)
    recursive_limit: tuple[int, int] = (1, 3)
    terminal_freq: float = Field(default=0.15, ge=0.0, le=1.0)
    scale: Range = Field(default=(0.3, 1.0), description="Half extents relative to the parent")
    root_scale: Range = Field(default=(0.5, 1.5), description="Half extents of the root limb")
    lock_freq: float = Field(
        default=0.4, ge=0.0, le=1.0, description="Probability of locking each angular axis"
    )
    angular_limit: Range = (0.2, math.pi / 2.0)
    effector_freq: float = Field(default=0.8, ge=0.0, le=1.0)
    max_limbs: int = Field(default=64, ge=1, description="Limb cap when counting joints")
    expr: RandomExprParams = Field(default_factory=RandomExprParams)

    @model_validator(mode="after")
    def _ordered(self):
        if self.min_nodes > self.max_nodes:
            raise ValueError(f"min_nodes {self.min_nodes} exceeds max_nodes {self.max_nodes}")
        if self.recursive_limit[0] < 1 or self.recursive_limit[0] > self.recursive_limit[1]:
            raise ValueError(f"invalid recursive_limit range {self.recursive_limit}")
        return self

    def build_node(self, rng: np.random.Generator) -> LimbNode:
        lo, hi = self.recursive_limit
        return LimbNode(
            density=float(rng.uniform(*self.density)),
            friction=float(rng.uniform(*self.friction)),
            restitution=float(rng.uniform(*self.restitution)),
            terminal_only=chance(rng, self.terminal_freq),
            recursive_limit=int(rng.integers(lo, hi + 1)),
        )

    def build_edge(self, rng: np.random.Generator) -> LimbConnection:
        """Random placement and locks, without effectors."""
        placement = LimbRelativePlacement(
            attach_face=LimbAttachFace.from_index(int(rng.integers(0, 6))),
            attach_position=tuple(rng.uniform(-1.0, 1.0, size=2)),
            orientation=quat_from_euler_yxz(*rng.uniform(-math.pi / 4.0, math.pi / 4.0, size=3)),
            scale=tuple(rng.uniform(*self.scale, size=3)),
        )
        locked = JointAxesMask.LIN_AXES
        limits = [(0.0, 0.0)] * 6
        for axis in JOINT_AXES[3:]:
            if chance(rng, self.lock_freq):
                locked |= axis.mask
            else:
                limit = float(rng.uniform(*self.angular_limit))
                limits[axis.to_index()] = (-limit, limit)
        return LimbConnection(placement=placement, locked_axes=locked, limit_axes=tuple(limits))

    def add_effectors(
        self, rng: np.random.Generator, edge: LimbConnection, joint_count: int
    ) -> None:
        expr_params = self.expr.with_joint_count(joint_count)
        effectors = edge.effectors
        for axis in edge.locked_axes.unlocked_axes():
            if effectors[axis] is None and chance(rng, self.effector_freq):
                effectors = effectors.with_effector(axis, expr_params.build_expr(rng))
        edge.effectors = effectors

    def build_morph(self, rng: np.random.Generator, creature: CreatureID) -> MorphologyGraph:
        graph = MorphologyGraph(
            creature=creature, root_scale=tuple(rng.uniform(*self.root_scale, size=3))
        )
        root = graph.add_node(self.build_node(rng))
        graph.set_root(root)

        nodes = [root]
        for _ in range(int(rng.integers(self.min_nodes, self.max_nodes + 1))):
            node = graph.add_node(self.build_node(rng))
            # attach to an earlier node so everything starts out reachable
            parent = nodes[int(rng.integers(0, len(nodes)))]
            graph.add_edge(self.build_edge(rng), parent, node)
            nodes.append(node)

        for _ in range(int(rng.integers(0, self.max_extra_edges + 1))):
            from_id = nodes[int(rng.integers(0, len(nodes)))]
            to_id = nodes[int(rng.integers(0, len(nodes)))]
            graph.add_edge(self.build_edge(rng), from_id, to_id)

        joint_count = count_joints(graph, self.max_limbs)
        for edge in graph.edges.values():
            self.add_effectors(rng, edge.data, joint_count)

        graph.garbage_collect()
        return graph


def count_joints(graph: MorphologyGraph, max_limbs: int | None = None) -> int:
    if graph.root is None:
        return 0
    return len(graph.evaluate(max_limbs=max_limbs).joints)


class MutateMorphologyParams(BaseModel):
    node: MutateNodeParams = Field(default_factory=MutateNodeParams)
    edge: MutateEdgeParams = Field(default_factory=MutateEdgeParams)
    expr: MutateExprParams = Field(default_factory=MutateExprParams)
    random: RandomMorphologyParams = Field(default_factory=RandomMorphologyParams)

    rewire_freq: float = Field(default=0.1, ge=0.0, description="Per endpoint, divided by node count")
    del_edge_freq: float = Field(default=0.1, ge=0.0, description="Divided by edge count")
    new_edge_freq: float = Field(default=0.1, ge=0.0, description="Divided by node count")
    new_effector_freq: float = Field(default=0.1, ge=0.0, description="Divided by edge count")
    del_effector_freq: float = Field(default=0.05, ge=0.0, description="Divided by edge count")
    root_scale: MutateFieldParams | None = Field(
        default_factory=lambda: MutateFieldParams(freq=0.1, std_dev=0.1),
        description="Root half-extent perturbation at constant volume; None disables it",
    )
    min_root_scale: float = Field(default=0.1, gt=0.0)


class MutateMorphology:
    """Applies one full structural mutation pass to a live graph."""

    def __init__(
        self, graph: MorphologyGraph, rng: np.random.Generator, params: MutateMorphologyParams
    ):
        self.graph = graph
        self.rng = rng
        self.params = params

    def mutate(self) -> MorphologyGraph:
        if self.graph.root is None or self.graph.root not in self.graph.nodes:
            logger.warning(
                "[MutateMorphology] creature {} has no root, skipping mutation",
                self.graph.creature,
            )
            return self.graph

        self.mutate_nodes()
        self.graph.add_node(self.params.random.build_node(self.rng))
        self.mutate_edges()
        self.delete_edges()
        self.add_edges()
        self.graph.garbage_collect()
        self.mutate_effectors()
        self.mutate_root_scale()
        return self.graph

    # ------------------------------------------------------------------
    def mutate_nodes(self) -> None:
        nodes = list(self.graph.nodes.values())
        params = self.params.node.scaled(1.0 / len(nodes))
        for node in nodes:
            MutateNode(node.data, self.rng, params).mutate()

    def mutate_edges(self) -> None:
        graph, rng = self.graph, self.rng
        if not graph.edges:
            return
        params = self.params.edge.scaled(1.0 / len(graph.edges))
        rewire = self.params.rewire_freq / len(graph.nodes)
        node_ids = list(graph.nodes)

        for edge_id in list(graph.edges):
            edge = graph.edges[edge_id]
            MutateEdge(edge.data, rng, params).mutate()

            if chance(rng, rewire) and self._may_detach(edge_id):
                target = self._other_node(node_ids, edge.from_id)
                if target is not None:
                    graph.rewire_edge(edge_id, from_id=target)
            if chance(rng, rewire):
                target = self._other_node(node_ids, edge.to_id)
                if target is not None:
                    graph.rewire_edge(edge_id, to_id=target)

    def delete_edges(self) -> None:
        graph = self.graph
        if not graph.edges:
            return
        freq = self.params.del_edge_freq / len(graph.edges)
        for edge_id in list(graph.edges):
            if chance(self.rng, freq) and self._may_detach(edge_id):
                graph.remove_edge(edge_id)

    def add_edges(self) -> None:
        graph, rng = self.graph, self.rng
        node_ids = list(graph.nodes)
        freq = self.params.new_edge_freq / len(node_ids)
        for from_id in node_ids:
            if chance(rng, freq):
                to_id = node_ids[int(rng.integers(0, len(node_ids)))]
                graph.add_edge(self.params.random.build_edge(rng), from_id, to_id)

    def mutate_effectors(self) -> None:
        graph, rng, params = self.graph, self.rng, self.params
        if not graph.edges:
            return
        joint_count = count_joints(graph, params.random.max_limbs)
        expr_random = params.random.expr.with_joint_count(joint_count)
        new_freq = params.new_effector_freq / len(graph.edges)
        del_freq = params.del_effector_freq / len(graph.edges)

        for edge in graph.edges.values():
            conn = edge.data
            effectors = conn.effectors
            for axis in conn.locked_axes.unlocked_axes():
                current = effectors[axis]
                if current is None:
                    if chance(rng, new_freq):
                        effectors = effectors.with_effector(axis, expr_random.build_expr(rng))
                elif chance(rng, del_freq):
                    effectors = effectors.with_effector(axis, None)

            active = effectors.active_count()
            if active:
                expr_params = params.expr.scaled(1.0 / active)
                for axis, expr in list(effectors.items()):
                    mutated = MutateExpr(expr, rng, expr_params, joint_count=joint_count).mutate()
                    effectors = effectors.with_effector(axis, mutated)
            conn.effectors = effectors

    def mutate_root_scale(self) -> None:
        params = self.params.root_scale
        if params is None or not params.change(self.rng):
            return
        scale = list(self.graph.root_scale)
        volume = scale[0] * scale[1] * scale[2]
        axis = int(self.rng.integers(0, 3))
        companion = (axis + 1 + int(self.rng.integers(0, 2))) % 3
        third = 3 - axis - companion

        new_value = max(self.params.min_root_scale, params.mutate(self.rng, scale[axis]))
        new_companion = volume / (new_value * scale[third])
        if new_companion < self.params.min_root_scale:
            return
        scale[axis] = new_value
        scale[companion] = new_companion
        self.graph.root_scale = tuple(scale)

    # ------------------------------------------------------------------
    def _may_detach(self, edge_id: int) -> bool:
        """False if moving or deleting the edge would leave the root with no outgoing edge."""
        edge = self.graph.edges[edge_id]
        if edge.from_id != self.graph.root:
            return True
        return self.graph.out_degree(self.graph.root) > 1

    def _other_node(self, node_ids: list[NodeID], current: NodeID) -> NodeID | None:
        candidates = [n for n in node_ids if n != current and n in self.graph.nodes]
        if not candidates:
            return None
        return candidates[int(self.rng.integers(0, len(candidates)))]
