"""Tests for the product binding layer."""

import pytest

from catalograph.errors import NonLeafAttachmentError, NotFoundError
from catalograph.hierarchy.binding import ProductBinding


@pytest.fixture
def binding(store, settings):
    return ProductBinding(store, settings)


def names(nodes):
    return [n.name for n in nodes]


class TestAttach:
    """Tests for attach/detach dispatch by hierarchy kind."""

    def test_category_leaf(self, binding, catalog):
        assert binding.attach("P1", catalog["ladies/shirts"]) is True
        assert binding.attach("P1", catalog["ladies/shirts"]) is False

    def test_category_parent_rejected(self, binding, catalog):
        with pytest.raises(NonLeafAttachmentError):
            binding.attach("P1", catalog["ladies/clothing"])

    def test_filter_with_children_accepted(self, binding, filters):
        assert binding.attach("P1", filters["winter"]) is True

    def test_validate_for_attachment(self, binding, catalog, filters):
        assert binding.validate_for_attachment(catalog["ladies/tops"]).valid is False
        assert binding.validate_for_attachment(catalog["ladies/shirts"]).valid is True
        result = binding.validate_for_attachment(filters["winter"])
        assert result.valid is True
        assert result.child_count == 1

    def test_detach(self, binding, catalog):
        binding.attach("P1", catalog["ladies/shirts"])
        assert binding.detach("P1", catalog["ladies/shirts"]) is True

    def test_unknown_node(self, binding):
        with pytest.raises(NotFoundError):
            binding.attach("P1", "missing")


class TestAssignProduct:
    """Tests for replacing a product's attachment set."""

    def test_replaces_categories(self, binding, catalog):
        binding.assign_product("P1", [catalog["ladies/shirts"], catalog["ladies/blouses"]], "TREE")
        result = binding.assign_product("P1", [catalog["ladies/footwear"]], "TREE")

        assert result["added"] == [catalog["ladies/footwear"]]
        assert sorted(result["removed"]) == sorted([catalog["ladies/shirts"], catalog["ladies/blouses"]])
        assert names(binding.nodes_for_product("P1", "TREE")) == ["Footwear"]

    def test_non_leaf_target_rejects_whole_assignment(self, binding, catalog):
        binding.assign_product("P1", [catalog["ladies/shirts"]], "TREE")

        with pytest.raises(NonLeafAttachmentError):
            binding.assign_product("P1", [catalog["ladies/footwear"], catalog["ladies/tops"]], "TREE")

        assert names(binding.nodes_for_product("P1")) == ["Shirts"]

    def test_keeps_other_kind(self, binding, catalog, filters):
        binding.attach("P1", filters["sale"])
        binding.assign_product("P1", [catalog["gents/shirts"]], "TREE")

        assert names(binding.nodes_for_product("P1", "DAG")) == ["Sale"]
        assert names(binding.nodes_for_product("P1", "TREE")) == ["Shirts"]

    def test_filters_any_node(self, binding, filters):
        result = binding.assign_product("P1", [filters["winter"], filters["coats"]], "DAG")
        assert len(result["added"]) == 2


class TestLookups:
    """Tests for product lookups and counts."""

    def test_products_for(self, binding, catalog):
        binding.attach("P1", catalog["ladies/shirts"])
        binding.attach("P2", catalog["ladies/blouses"])

        assert binding.products_for([catalog["ladies/clothing"]]) == ["P1", "P2"]
        assert binding.products_for([catalog["ladies/clothing"]], include_descendants=False) == []

    def test_product_counts(self, binding, catalog):
        binding.attach("P1", catalog["ladies/shirts"])
        binding.attach("P2", catalog["ladies/shirts"])

        assert binding.product_count(catalog["ladies/tops"]) == 2
        assert binding.product_count(catalog["ladies/tops"], include_descendants=False) == 0
        counts = binding.product_counts([catalog["ladies/shirts"], catalog["ladies/blouses"]])
        assert counts == {catalog["ladies/shirts"]: 2, catalog["ladies/blouses"]: 0}

    def test_refresh_product_counts(self, binding, store, catalog):
        binding.attach("P1", catalog["ladies/shirts"])
        binding.attach("P2", catalog["ladies/blouses"])

        changed = binding.refresh_product_counts("TREE")

        assert changed == 4  # shirts, blouses, tops, clothing
        assert store.get_node(catalog["ladies/clothing"]).product_count == 2
        assert store.get_node(catalog["ladies/shirts"]).product_count == 1
        assert binding.refresh_product_counts("TREE") == 0


class TestMigrateProductToLeaf:
    """Tests for moving a product from a parent category to a leaf."""

    def test_moves_attachment(self, binding, store, catalog):
        store.attach("P1", catalog["ladies/tops"])

        result = binding.migrate_product_to_leaf("P1", catalog["ladies/tops"], catalog["ladies/shirts"])

        assert result["to"]["name"] == "Shirts"
        assert names(binding.nodes_for_product("P1")) == ["Shirts"]

    def test_target_must_be_leaf(self, binding, store, catalog):
        store.attach("P1", catalog["ladies/shirts"])
        with pytest.raises(NonLeafAttachmentError):
            binding.migrate_product_to_leaf("P1", catalog["ladies/shirts"], catalog["ladies/clothing"])
        assert names(binding.nodes_for_product("P1")) == ["Shirts"]

    def test_product_must_be_on_source(self, binding, catalog):
        with pytest.raises(NotFoundError):
            binding.migrate_product_to_leaf("P1", catalog["ladies/tops"], catalog["ladies/shirts"])
