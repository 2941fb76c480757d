"""Tests for store-agnostic graph walks and level layering."""

import random

from catalograph.hierarchy.traversal import (
    closure,
    compute_levels,
    enumerate_paths,
    find_path,
    is_reachable,
)

# child -> parents
DIAMOND = {"A": set(), "B": {"A"}, "C": {"A"}, "D": {"B", "C"}}
CHILDREN = {"A": {"B", "C"}, "B": {"D"}, "C": {"D"}, "D": set()}


def parents(node_id):
    return DIAMOND.get(node_id, ())


def children(node_id):
    return CHILDREN.get(node_id, ())


class TestClosure:
    def test_descendants(self):
        assert closure(["A"], children, 100) == {"B", "C", "D"}
        assert closure(["A"], children, 100, include_start=True) == {"A", "B", "C", "D"}

    def test_depth_cap(self):
        assert closure(["A"], children, 1) == {"B", "C"}

    def test_cycle_terminates(self):
        ring = {"X": {"Y"}, "Y": {"Z"}, "Z": {"X"}}
        assert closure(["X"], ring.get, 100) == {"X", "Y", "Z"}


class TestFindPath:
    def test_shortest_path(self):
        assert find_path("A", "D", children, 100) in (["A", "B", "D"], ["A", "C", "D"])
        assert find_path("D", "A", children, 100) is None

    def test_self_cycle_detection(self):
        ring = {"X": {"Y"}, "Y": {"X"}}
        assert find_path("X", "X", ring.get, 100) == ["X", "Y", "X"]
        assert find_path("A", "A", children, 100) is None

    def test_is_reachable(self):
        assert is_reachable("A", "D", children, 100)
        assert not is_reachable("B", "C", children, 100)
        assert not is_reachable("A", "D", children, 1)


class TestEnumeratePaths:
    def test_one_path_per_route(self):
        assert enumerate_paths("D", parents, 100) == [["A", "B", "D"], ["A", "C", "D"]]

    def test_root_is_its_own_path(self):
        assert enumerate_paths("A", parents, 100) == [["A"]]

    def test_cyclic_routes_dropped(self):
        graph = {"A": set(), "B": {"A", "C"}, "C": {"B"}}
        assert enumerate_paths("C", graph.get, 100) == [["A", "B", "C"]]


class TestComputeLevels:
    def test_longest_path(self):
        result = compute_levels(DIAMOND, 20)
        assert result.levels == {"A": 0, "B": 1, "C": 1, "D": 2}
        assert result.iterations == 3
        assert result.converged

    def test_fixed_levels_for_out_of_scope_parents(self):
        scoped = {"B": {"A"}, "D": {"B", "C"}}
        result = compute_levels(scoped, 20, fixed_levels={"A": 4, "C": 9})
        assert result.levels == {"B": 5, "D": 10}

    def test_cycle_left_unresolved(self):
        graph = {"R": set(), "X": {"R", "Z"}, "Y": {"X"}, "Z": {"Y"}}
        result = compute_levels(graph, 20)
        assert result.levels == {"R": 0}
        assert result.unresolved == {"X", "Y", "Z"}
        assert not result.converged

    def test_ceiling(self):
        chain = {f"N{i}": ({f"N{i - 1}"} if i else set()) for i in range(10)}
        result = compute_levels(chain, 4)
        assert result.iterations == 4
        assert len(result.unresolved) == 6

    def test_random_dags(self):
        rng = random.Random(42)
        for _ in range(20):
            size = rng.randint(1, 40)
            graph = {
                f"n{i}": {f"n{j}" for j in range(i) if rng.random() < 0.15}
                for i in range(size)
            }
            result = compute_levels(graph, 100)
            assert result.converged
            for node_id, node_parents in graph.items():
                expected = 1 + max(result.levels[p] for p in node_parents) if node_parents else 0
                assert result.levels[node_id] == expected
