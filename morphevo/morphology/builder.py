"""Turn a morphology graph into concrete limb and joint spawn lists.

The traversal is a depth-first pre-order walk from the root. For every node
it keeps a stack of ``(transform, limb index)`` entries, one per currently
open instantiation on the walk, and one remaining-recursion counter shared by
the whole traversal. A node's counter starts at ``max(recursive_limit, 1) - 1``
on its first visit; a visit that finds the counter at zero is a terminal
visit. Terminal-only nodes are instantiated only on terminal visits, every
other node only on non-terminal ones.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from loguru import logger
from pydantic import BaseModel, Field

from morphevo.exceptions import MorphologyError
from morphevo.expr.nodes import CreatureJointEffectors
from morphevo.geometry import Transform, Vec3
from morphevo.morphology.joint import JointAxesMask
from morphevo.morphology.models import AxisLimits, LimbNode

if TYPE_CHECKING:
    from morphevo.morphology.graph import GraphEdge, MorphologyGraph, NodeID


class LimbSpawn(BaseModel):
    """A limb ready to be handed to the physics simulator."""

    transform: Transform
    density: float = 1.0
    friction: float = 0.3
    restitution: float = 0.0
    name: str | None = None

    @property
    def scale(self) -> Vec3:
        return self.transform.scale

    @classmethod
    def from_node(cls, transform: Transform, node: LimbNode) -> LimbSpawn:
        return cls(
            transform=transform,
            density=node.density,
            friction=node.friction,
            restitution=node.restitution,
            name=node.name,
        )


class JointSpawn(BaseModel):
    """A joint between two spawned limbs, referenced by their index in ``BuildResult.limbs``."""

    parent: int
    child: int
    parent_anchor: Vec3
    child_anchor: Vec3
    locked_axes: JointAxesMask
    limit_axes: tuple[AxisLimits, ...]
    effectors: CreatureJointEffectors


class BuildResult(BaseModel):
    limbs: list[LimbSpawn] = Field(default_factory=list)
    joints: list[JointSpawn] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.limbs)

    def bounding_extent(self) -> tuple[np.ndarray, np.ndarray]:
        """Axis-aligned ``(min, max)`` corners enclosing every limb."""
        if not self.limbs:
            zero = np.zeros(3)
            return zero, zero.copy()
        corners = np.concatenate([limb.transform.corners() for limb in self.limbs])
        return corners.min(axis=0), corners.max(axis=0)

    def align_to_ground(self, height: float = 0.0) -> BuildResult:
        """Shift every limb vertically so the lowest corner rests at ``height``."""
        if not self.limbs:
            return self
        low, _ = self.bounding_extent()
        dy = height - float(low[1])
        for limb in self.limbs:
            x, y, z = limb.transform.translation
            limb.transform = limb.transform.with_translation((x, y + dy, z))
        return self


class _Traversal:
    def __init__(self, graph: MorphologyGraph, max_limbs: int | None):
        self.graph = graph
        self.max_limbs = max_limbs
        self.result = BuildResult()
        self.history: dict[NodeID, list[tuple[Transform, int]]] = {}
        self.remaining: dict[NodeID, int] = {}

    def _full(self) -> bool:
        return self.max_limbs is not None and len(self.result.limbs) >= self.max_limbs

    def visit_root(self, node_id: NodeID, node: LimbNode, transform: Transform) -> tuple[Transform, int]:
        self.result.limbs.append(LimbSpawn.from_node(transform, node))
        entry = (transform, 0)
        self.history.setdefault(node_id, []).append(entry)
        self.remaining[node_id] = max(node.recursive_limit, 1) - 1
        return entry

    def visit(
        self,
        node_id: NodeID,
        node: LimbNode,
        edge: GraphEdge,
        anchor: tuple[Transform, int],
    ) -> tuple[Transform, int] | None:
        """Visit ``node_id`` through ``edge``; returns the anchor for its children, or ``None`` to stop."""
        remaining = self.remaining.get(node_id)
        is_terminal = remaining == 0
        if is_terminal and not node.terminal_only:
            return None

        parent_stack = self.history.get(edge.from_id)
        parent = parent_stack[-1] if parent_stack else anchor

        should_spawn = is_terminal == node.terminal_only
        child_anchor = anchor
        if should_spawn:
            if self._full():
                return None
            parent_transform, parent_index = parent
            position = edge.data.placement.create_transform(parent_transform)
            child_index = len(self.result.limbs)
            self.result.limbs.append(LimbSpawn.from_node(position.transform, node))
            self.result.joints.append(
                JointSpawn(
                    parent=parent_index,
                    child=child_index,
                    parent_anchor=position.parent_local_anchor,
                    child_anchor=position.local_anchor,
                    locked_axes=edge.data.locked_axes,
                    limit_axes=edge.data.limit_axes,
                    effectors=edge.data.effectors,
                )
            )
            child_anchor = (position.transform, child_index)
            if not node.terminal_only:
                self.history.setdefault(node_id, []).append(child_anchor)

        if is_terminal:
            return None

        if remaining is None:
            self.remaining[node_id] = max(node.recursive_limit, 1) - 1
        else:
            self.remaining[node_id] = remaining - 1
        return child_anchor

    def leave(self, node_id: NodeID) -> None:
        stack = self.history.get(node_id)
        if stack:
            stack.pop()

    def descend(self, node_id: NodeID, anchor: tuple[Transform, int]) -> None:
        for _, edge in list(self.graph.iter_edges_from(node_id)):
            graph_node = self.graph.nodes.get(edge.to_id)
            if graph_node is None:
                continue
            next_anchor = self.visit(edge.to_id, graph_node.data, edge, anchor)
            if next_anchor is None:
                continue
            self.descend(edge.to_id, next_anchor)
            self.leave(edge.to_id)


def evaluate(
    graph: MorphologyGraph, root_transform: Transform, max_limbs: int | None = None
) -> BuildResult:
    """Expand ``graph`` into spawn lists, with the root limb placed at ``root_transform``.

    Args:
        graph: Body plan to expand. Dangling edge ids and edges to missing
            nodes are skipped.
        root_transform: World transform (including half extents) of the root limb.
        max_limbs: Optional cap on the number of spawned limbs. Paths that
            would spawn past the cap are cut off.

    Raises:
        MorphologyError: If the graph has no root.
    """
    if graph.root is None:
        raise MorphologyError(f"Creature {graph.creature} has no root node set")

    root = graph.nodes.get(graph.root)
    if root is None:
        logger.warning(
            "[Evaluator] creature {}: root node {} does not exist", graph.creature, graph.root
        )
        return BuildResult()

    traversal = _Traversal(graph, max_limbs)
    anchor = traversal.visit_root(graph.root, root.data, root_transform)
    traversal.descend(graph.root, anchor)
    traversal.leave(graph.root)

    logger.trace(
        "[Evaluator] creature {}: {} limb(s), {} joint(s)",
        graph.creature,
        len(traversal.result.limbs),
        len(traversal.result.joints),
    )
    return traversal.result
