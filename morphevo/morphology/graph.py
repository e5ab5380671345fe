"""Directed morphology graph stored as a flat arena of integer handles.

Nodes and edges draw their ids from one monotonic counter. Removing a node or
an edge never cascades; dangling references are skipped during traversal and
cleaned up by :meth:`MorphologyGraph.garbage_collect`. Cycles are allowed and
are the way repeated body segments are expressed; recursion is bounded by each
node's ``recursive_limit`` during evaluation, not by forbidding cycles.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterator

from loguru import logger
from pydantic import BaseModel, Field

from morphevo.geometry import ONE, Transform, Vec3, vec3
from morphevo.morphology.models import LimbConnection, LimbNode

if TYPE_CHECKING:
    from morphevo.morphology.builder import BuildResult

NodeID = int
EdgeID = int
CreatureID = int


class GraphNode(BaseModel):
    outs: list[EdgeID] = Field(default_factory=list)
    data: LimbNode


class GraphEdge(BaseModel):
    from_id: NodeID
    to_id: NodeID
    data: LimbConnection


class MorphologyGraph(BaseModel):
    """A creature's body plan: limb archetypes connected by joints."""

    creature: CreatureID = 0
    root: NodeID | None = None
    nodes: dict[NodeID, GraphNode] = Field(default_factory=dict)
    edges: dict[EdgeID, GraphEdge] = Field(default_factory=dict)
    root_scale: Vec3 = Field(default=ONE, description="Half extents of the root limb")
    cur_id: int = 0

    # ------------------------------------------------------------------
    def add_node(self, node: LimbNode) -> NodeID:
        self.cur_id += 1
        self.nodes[self.cur_id] = GraphNode(data=node)
        return self.cur_id

    def add_edge(self, edge: LimbConnection, from_id: NodeID, to_id: NodeID) -> EdgeID | None:
        """Connect two nodes. Returns ``None`` when ``to_id`` does not exist."""
        self.cur_id += 1
        edge_id = self.cur_id
        if to_id not in self.nodes:
            return None

        from_node = self.nodes.get(from_id)
        if from_node is not None:
            from_node.outs.append(edge_id)

        self.edges[edge_id] = GraphEdge(from_id=from_id, to_id=to_id, data=edge)
        return edge_id

    def remove_node(self, node_id: NodeID) -> LimbNode | None:
        node = self.nodes.pop(node_id, None)
        return node.data if node is not None else None

    def remove_edge(self, edge_id: EdgeID) -> LimbConnection | None:
        edge = self.edges.pop(edge_id, None)
        if edge is None:
            return None
        from_node = self.nodes.get(edge.from_id)
        if from_node is not None and edge_id in from_node.outs:
            from_node.outs.remove(edge_id)
        return edge.data

    def set_root(self, node_id: NodeID) -> None:
        self.root = node_id

    def get_node(self, node_id: NodeID) -> GraphNode | None:
        return self.nodes.get(node_id)

    def get_edge(self, edge_id: EdgeID) -> GraphEdge | None:
        return self.edges.get(edge_id)

    # ------------------------------------------------------------------
    def rewire_edge(
        self, edge_id: EdgeID, from_id: NodeID | None = None, to_id: NodeID | None = None
    ) -> bool:
        """Move an edge's endpoints to other existing nodes."""
        edge = self.edges.get(edge_id)
        if edge is None:
            return False
        if from_id is not None and from_id not in self.nodes:
            return False
        if to_id is not None and to_id not in self.nodes:
            return False

        if from_id is not None and from_id != edge.from_id:
            old = self.nodes.get(edge.from_id)
            if old is not None and edge_id in old.outs:
                old.outs.remove(edge_id)
            self.nodes[from_id].outs.append(edge_id)
            edge.from_id = from_id
        if to_id is not None:
            edge.to_id = to_id
        return True

    def out_degree(self, node_id: NodeID) -> int:
        node = self.nodes.get(node_id)
        if node is None:
            return 0
        return sum(1 for e in node.outs if e in self.edges)

    def iter_edges_from(self, node_id: NodeID) -> Iterator[tuple[EdgeID, GraphEdge]]:
        node = self.nodes.get(node_id)
        if node is None:
            return
        for edge_id in node.outs:
            edge = self.edges.get(edge_id)
            if edge is not None:
                yield edge_id, edge

    def reachable_nodes(self) -> set[NodeID]:
        """Nodes reachable from the root through existing edges."""
        if self.root is None or self.root not in self.nodes:
            return set()
        seen = {self.root}
        frontier = [self.root]
        while frontier:
            current = frontier.pop()
            for _, edge in self.iter_edges_from(current):
                if edge.to_id in self.nodes and edge.to_id not in seen:
                    seen.add(edge.to_id)
                    frontier.append(edge.to_id)
        return seen

    def garbage_collect(self) -> tuple[int, int]:
        """Delete every node and edge not reachable from the root.

        Returns:
            ``(removed_nodes, removed_edges)``
        """
        keep = self.reachable_nodes()
        dead_nodes = [n for n in self.nodes if n not in keep]
        for node_id in dead_nodes:
            del self.nodes[node_id]

        dead_edges = [
            e
            for e, edge in self.edges.items()
            if edge.from_id not in self.nodes or edge.to_id not in self.nodes
        ]
        for edge_id in dead_edges:
            del self.edges[edge_id]

        for node in self.nodes.values():
            node.outs = [e for e in node.outs if e in self.edges]

        if dead_nodes or dead_edges:
            logger.debug(
                "[MorphologyGraph] creature {}: collected {} node(s), {} edge(s)",
                self.creature,
                len(dead_nodes),
                len(dead_edges),
            )
        return len(dead_nodes), len(dead_edges)

    # ------------------------------------------------------------------
    def root_transform(self, translation: Vec3 = (0.0, 0.0, 0.0)) -> Transform:
        return Transform(translation=vec3(translation), scale=self.root_scale)

    def evaluate(
        self, root_transform: Transform | None = None, max_limbs: int | None = None
    ) -> BuildResult:
        from morphevo.morphology.builder import evaluate

        if root_transform is None:
            root_transform = self.root_transform()
        return evaluate(self, root_transform, max_limbs=max_limbs)

    def clone(self, creature: CreatureID | None = None) -> MorphologyGraph:
        copy = self.model_copy(deep=True)
        if creature is not None:
            copy.creature = creature
        return copy
