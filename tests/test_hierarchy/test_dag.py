"""Tests for the filter DAG engine."""

import random

import pytest

from catalograph.config import HierarchySettings
from catalograph.errors import (
    CycleWouldFormError,
    DuplicateSiblingNameError,
    HasChildrenError,
    HasProductsError,
    HierarchyKindMismatchError,
    NotFoundError,
)
from catalograph.hierarchy.dag import DagHierarchy
from catalograph.hierarchy.traversal import find_path
from catalograph.store.memory import MemoryGraphStore


def names(nodes):
    return [n.name for n in nodes]


def level_of(dag, node_id):
    return dag.get(node_id).level


def assert_levels_consistent(store, dag):
    for node in dag.nodes():
        parents = store.get_nodes(store.parents_of(node.id)).values()
        expected = 1 + max(p.level for p in parents) if parents else 0
        assert node.level == expected, f"{node.name}: {node.level} != {expected}"


class TestCreateNode:
    """Tests for filter creation."""

    def test_roots_and_multi_parent_level(self, dag, filters):
        assert level_of(dag, filters["winter"]) == 0
        assert level_of(dag, filters["sale"]) == 0
        assert level_of(dag, filters["wintersale"]) == 1
        assert level_of(dag, filters["coats"]) == 2

    def test_level_is_longest_path(self, dag, filters):
        deep = dag.create_node("Deep", [filters["sale"], filters["coats"]])
        assert deep.level == 3

    def test_unknown_parent(self, dag, store):
        with pytest.raises(NotFoundError):
            dag.create_node("Orphan", ["missing"])
        assert store.list_nodes() == []

    def test_category_parent_rejected(self, dag, tree):
        clothing = tree.create_node("Clothing", "ladies")
        with pytest.raises(HierarchyKindMismatchError):
            dag.create_node("Cotton", [clothing.id])

    def test_duplicate_sibling_names_tolerated_by_default(self, dag, filters):
        again = dag.create_node("Sale")
        assert again.id != filters["sale"]

    def test_duplicate_sibling_names_rejected_when_enforced(self, store, filters):
        strict = DagHierarchy(store, HierarchySettings(unique_sibling_names=True))
        with pytest.raises(DuplicateSiblingNameError):
            strict.create_node("wintersale", [filters["winter"]])
        with pytest.raises(DuplicateSiblingNameError):
            strict.create_node("Sale")

        coats = strict.create_node("Coats", [filters["sale"]])
        with pytest.raises(DuplicateSiblingNameError):
            strict.update_parents(coats.id, [filters["wintersale"]])
        assert store.parents_of(coats.id) == {filters["sale"]}


class TestCyclePrevention:
    """Tests for re-parenting and the no-cycle invariant."""

    def test_scenario_winter_under_wintersale(self, dag, store, filters):
        with pytest.raises(CycleWouldFormError) as exc_info:
            dag.update_parents(filters["winter"], {filters["wintersale"]})

        err = exc_info.value
        assert err.message == (
            'Cannot add "WinterSale" as parent of "Winter" because '
            '"Winter" is already an ancestor of "WinterSale"'
        )
        assert err.details["parent_id"] == filters["wintersale"]
        assert err.details["path"] == [filters["winter"], filters["wintersale"]]
        assert store.parents_of(filters["winter"]) == set()
        assert level_of(dag, filters["winter"]) == 0

    def test_self_parent_rejected(self, dag, filters):
        with pytest.raises(CycleWouldFormError) as exc_info:
            dag.update_parents(filters["sale"], [filters["sale"]])
        assert exc_info.value.message == 'Cannot add "Sale" as its own parent'

    def test_rejection_is_atomic(self, dag, store, filters):
        with pytest.raises(CycleWouldFormError) as exc_info:
            dag.update_parents(filters["winter"], [filters["sale"], filters["coats"]])
        assert exc_info.value.details["parent_id"] == filters["coats"]
        assert store.parents_of(filters["winter"]) == set()

    def test_would_create_cycle(self, dag, filters):
        assert dag.would_create_cycle(filters["winter"], filters["coats"]) is True
        assert dag.would_create_cycle(filters["winter"], filters["winter"]) is True
        assert dag.would_create_cycle(filters["coats"], filters["sale"]) is False

    def test_validate_parents_writes_nothing(self, dag, store, filters):
        parents = dag.validate_parents(filters["coats"], [filters["sale"]])
        assert names(parents) == ["Sale"]
        assert store.parents_of(filters["coats"]) == {filters["wintersale"]}

    def test_update_parents_relevels_descendants(self, dag, store, filters):
        dag.update_parents(filters["wintersale"], [])
        assert level_of(dag, filters["wintersale"]) == 0
        assert level_of(dag, filters["coats"]) == 1

        dag.update_parents(filters["sale"], [filters["coats"]])
        assert level_of(dag, filters["sale"]) == 2
        assert_levels_consistent(store, dag)

    def test_add_and_remove_parent(self, dag, store, filters):
        dag.add_parent(filters["coats"], filters["sale"])
        assert store.parents_of(filters["coats"]) == {filters["wintersale"], filters["sale"]}

        dag.remove_parent(filters["coats"], filters["wintersale"])
        assert store.parents_of(filters["coats"]) == {filters["sale"]}
        assert level_of(dag, filters["coats"]) == 1

        with pytest.raises(NotFoundError):
            dag.remove_parent(filters["coats"], filters["winter"])

    def test_random_operations_never_create_cycles(self, settings):
        store = MemoryGraphStore()
        dag = DagHierarchy(store, HierarchySettings(max_iterations=200))
        rng = random.Random(1234)

        ids = [dag.create_node(f"F{i}").id for i in range(25)]
        rejected = 0
        for _ in range(300):
            node_id = rng.choice(ids)
            parents = rng.sample(ids, rng.randint(0, 3))
            try:
                dag.update_parents(node_id, parents)
            except CycleWouldFormError:
                rejected += 1
            for candidate in ids:
                assert find_path(candidate, candidate, store.parents_of, 100) is None
            assert_levels_consistent(store, dag)

        assert rejected > 0
        result = dag.recompute_levels()
        assert result.converged
        assert result.changed == 0


class TestClosures:
    """Tests for closure and breadcrumb queries."""

    @pytest.fixture
    def diamond(self, dag):
        a = dag.create_node("A")
        b = dag.create_node("B", [a.id])
        c = dag.create_node("C", [a.id])
        d = dag.create_node("D", [b.id, c.id])
        return {"a": a.id, "b": b.id, "c": c.id, "d": d.id}

    def test_descendants_deduplicated(self, dag, diamond):
        assert dag.descendant_ids(diamond["a"]) == {diamond["b"], diamond["c"], diamond["d"]}
        assert names(dag.descendants_of(diamond["a"])) == ["B", "C", "D"]
        assert dag.descendant_ids(diamond["a"], include_self=True) == set(diamond.values())

    def test_ancestors_deduplicated(self, dag, diamond):
        assert names(dag.ancestors_of(diamond["d"])) == ["A", "B", "C"]

    def test_breadcrumbs_one_per_route(self, dag, diamond):
        routes = sorted(names(path) for path in dag.breadcrumbs(diamond["d"]))
        assert routes == [["A", "B", "D"], ["A", "C", "D"]]
        assert [names(p) for p in dag.breadcrumbs(diamond["a"])] == [["A"]]

    def test_breadcrumbs_for_many(self, dag, diamond):
        crumbs = dag.breadcrumbs_for([diamond["b"], diamond["d"]])
        assert len(crumbs[diamond["b"]]) == 1
        assert len(crumbs[diamond["d"]]) == 2

    def test_level_is_longest_path(self, dag, diamond):
        assert level_of(dag, diamond["d"]) == 2

    def test_as_tree_repeats_multi_parent_nodes(self, dag, filters):
        roots = dag.as_tree()
        assert [t.node.name for t in roots] == ["Sale", "Winter"]
        for root in roots:
            assert [t.node.name for t in root.children] == ["WinterSale"]
            assert [t.node.name for t in root.children[0].children] == ["Coats"]

    def test_roots_and_parent_ids(self, dag, filters):
        assert names(dag.roots()) == ["Sale", "Winter"]
        assert dag.parent_ids(filters["wintersale"]) == {filters["winter"], filters["sale"]}


class TestProductsUnder:
    """Tests for descendant-expanded product lookups."""

    def test_or_semantics_with_descendants(self, dag, filters):
        dag.attach_product("P1", filters["coats"])
        dag.attach_product("P2", filters["sale"])
        dag.attach_product("P3", filters["winter"])

        assert dag.products_under([filters["winter"]]) == {"P1", "P3"}
        assert dag.products_under([filters["sale"]]) == {"P1", "P2"}
        assert dag.products_under([filters["winter"], filters["sale"]]) == {"P1", "P2", "P3"}
        assert dag.products_under([filters["coats"]]) == {"P1"}

    def test_non_leaf_filters_accept_products(self, dag, filters):
        assert dag.attach_product("P1", filters["wintersale"]) is True
        assert dag.attach_product("P1", filters["wintersale"]) is False

    def test_unknown_filter(self, dag):
        with pytest.raises(NotFoundError):
            dag.products_under(["missing"])


class TestRecomputeLevels:
    """Tests for the global level repair."""

    def test_repairs_corrupted_levels(self, dag, store, filters):
        store.set_levels({node_id: 7 for node_id in filters.values()})

        result = dag.recompute_levels()

        assert result.converged
        assert result.iterations == 3
        assert result.changed == 4
        assert_levels_consistent(store, dag)

    def test_cycle_is_reported_not_resolved(self, dag, store, filters):
        store.add_edge(filters["winter"], filters["coats"])

        result = dag.recompute_levels()

        assert not result.converged
        assert set(result.unresolved) == {filters["winter"], filters["wintersale"], filters["coats"]}
        assert "possible cycle" in result.summary
        assert level_of(dag, filters["sale"]) == 0

    def test_iteration_ceiling(self, store):
        dag = DagHierarchy(store, HierarchySettings(max_iterations=2))
        parent = None
        for i in range(5):
            parent = dag.create_node(f"L{i}", [parent] if parent else []).id

        result = dag.recompute_levels()

        assert result.iterations == 2
        assert not result.converged
        assert len(result.unresolved) == 3

    def test_empty_dag(self, dag):
        result = dag.recompute_levels()
        assert result.total_nodes == 0
        assert result.summary == "No nodes found; nothing to recalculate"


class TestDeleteNode:
    """Tests for filter deletion."""

    def test_delete_with_children_rejected(self, dag, filters):
        with pytest.raises(HasChildrenError) as exc_info:
            dag.delete_node(filters["wintersale"])
        assert "1 child filter" in exc_info.value.message

    def test_delete_with_products_rejected(self, dag, filters):
        dag.attach_product("P1", filters["coats"])
        with pytest.raises(HasProductsError):
            dag.delete_node(filters["coats"])

    def test_delete_leaf_removes_edges(self, dag, store, filters):
        dag.delete_node(filters["coats"])
        assert store.children_of(filters["wintersale"]) == set()
