"""
Tests for the morphology graph arena and its garbage collection.
"""

import numpy as np
import pytest

from morphevo.morphology.graph import MorphologyGraph
from morphevo.morphology.models import LimbConnection, LimbNode
from morphevo.morphology.serialization import dumps_creature, loads_creature
from morphevo.exceptions import SessionFormatError


def _chain(length):
    graph = MorphologyGraph()
    ids = [graph.add_node(LimbNode()) for _ in range(length)]
    for a, b in zip(ids, ids[1:]):
        graph.add_edge(LimbConnection(), a, b)
    graph.set_root(ids[0])
    return graph, ids


class TestMorphologyGraph:
    """Tests for adding, removing and rewiring."""

    def test_ids_are_shared_and_monotonic(self):
        graph = MorphologyGraph()
        a = graph.add_node(LimbNode())
        b = graph.add_node(LimbNode())
        e = graph.add_edge(LimbConnection(), a, b)
        c = graph.add_node(LimbNode())

        assert a < b < e < c

    def test_add_edge_to_missing_node_returns_none(self):
        graph = MorphologyGraph()
        a = graph.add_node(LimbNode())
        before = graph.cur_id

        assert graph.add_edge(LimbConnection(), a, 999) is None
        assert graph.edges == {}
        assert graph.nodes[a].outs == []
        assert graph.cur_id == before + 1

    def test_remove_edge_detaches_from_source(self):
        graph, ids = _chain(2)
        (edge_id,) = graph.edges

        assert graph.remove_edge(edge_id) is not None
        assert graph.nodes[ids[0]].outs == []
        assert graph.remove_edge(edge_id) is None

    def test_remove_node_does_not_cascade(self):
        graph, ids = _chain(2)
        graph.remove_node(ids[1])

        assert len(graph.edges) == 1
        assert graph.out_degree(ids[0]) == 1
        # dangling edge is skipped by evaluation
        assert len(graph.evaluate()) == 1

    def test_rewire_edge(self):
        graph, ids = _chain(3)
        edge_id = graph.nodes[ids[0]].outs[0]

        assert graph.rewire_edge(edge_id, from_id=ids[1], to_id=ids[0])
        edge = graph.edges[edge_id]
        assert (edge.from_id, edge.to_id) == (ids[1], ids[0])
        assert edge_id not in graph.nodes[ids[0]].outs
        assert edge_id in graph.nodes[ids[1]].outs

    def test_rewire_to_missing_node_is_refused(self):
        graph, ids = _chain(2)
        edge_id = graph.nodes[ids[0]].outs[0]

        assert not graph.rewire_edge(edge_id, to_id=12345)
        assert graph.edges[edge_id].to_id == ids[1]

    def test_clone_is_independent(self):
        graph, ids = _chain(3)
        copy = graph.clone(creature=42)
        copy.remove_node(ids[2])

        assert copy.creature == 42
        assert ids[2] in graph.nodes


class TestGarbageCollect:
    """Tests for reachability pruning."""

    def test_unreachable_nodes_and_edges_are_removed(self):
        graph, ids = _chain(3)
        orphan = graph.add_node(LimbNode())
        other = graph.add_node(LimbNode())
        graph.add_edge(LimbConnection(), orphan, other)
        graph.add_edge(LimbConnection(), orphan, ids[0])

        removed_nodes, removed_edges = graph.garbage_collect()

        assert (removed_nodes, removed_edges) == (2, 2)
        assert set(graph.nodes) == set(ids)
        assert len(graph.edges) == 2

    def test_cut_edge_prunes_subtree(self):
        graph, ids = _chain(4)
        graph.remove_edge(graph.nodes[ids[1]].outs[0])
        graph.garbage_collect()

        assert set(graph.nodes) == {ids[0], ids[1]}
        assert all(e in graph.edges for node in graph.nodes.values() for e in node.outs)

    @pytest.mark.parametrize("seed", range(5))
    def test_reachable_set_is_preserved(self, seed):
        """
        Test random add/remove sequences.

        Purpose:
            After collection, exactly the nodes reachable from the root remain.
        """
        rng = np.random.default_rng(seed)
        graph = MorphologyGraph()
        ids = [graph.add_node(LimbNode()) for _ in range(8)]
        graph.set_root(ids[0])
        for _ in range(20):
            a, b = rng.choice(ids, size=2)
            graph.add_edge(LimbConnection(), int(a), int(b))
        for edge_id in list(graph.edges):
            if rng.random() < 0.4:
                graph.remove_edge(edge_id)

        reachable = graph.reachable_nodes()
        graph.garbage_collect()

        assert set(graph.nodes) == reachable
        for edge in graph.edges.values():
            assert edge.from_id in graph.nodes and edge.to_id in graph.nodes

    def test_graph_without_root_collects_everything(self):
        graph = MorphologyGraph()
        graph.add_node(LimbNode())
        graph.garbage_collect()
        assert graph.nodes == {}


class TestSerialization:
    """Tests for creature records."""

    def test_round_trip(self, arm_graph):
        loaded = loads_creature(dumps_creature(arm_graph))

        assert loaded.root == arm_graph.root
        assert set(loaded.nodes) == set(arm_graph.nodes)
        assert set(loaded.edges) == set(arm_graph.edges)
        assert loaded.model_dump() == arm_graph.model_dump()

    def test_round_trip_builds_identically(self, arm_graph):
        loaded = loads_creature(dumps_creature(arm_graph))
        assert loaded.evaluate().model_dump() == arm_graph.evaluate().model_dump()

    def test_malformed_record(self):
        with pytest.raises(SessionFormatError):
            loads_creature('{"nodes": 3}')
