"""Tests for the node repository."""

import pytest

from catalograph.config import HierarchySettings
from catalograph.errors import DuplicateSiblingNameError, HasChildrenError, NotFoundError
from catalograph.hierarchy.nodes import NodeRepository
from catalograph.models import HierarchyKind


@pytest.fixture
def repo(store, settings):
    return NodeRepository(store, settings)


class TestNodeRepository:
    """Tests for kind-independent CRUD."""

    def test_create_dispatches_by_kind(self, repo):
        clothing = repo.create("TREE", "Clothing", namespace="ladies")
        tops = repo.create(HierarchyKind.TREE, "Tops", namespace="ladies", parent_ids=[clothing.id])
        sale = repo.create("dag", "Sale")

        assert tops.level == 1
        assert tops.is_tree
        assert sale.is_dag
        assert sale.namespace is None

    def test_category_takes_one_parent(self, repo):
        a = repo.create("TREE", "A", namespace="ladies")
        b = repo.create("TREE", "B", namespace="ladies")
        with pytest.raises(ValueError):
            repo.create("TREE", "C", namespace="ladies", parent_ids=[a.id, b.id])

    def test_unknown_kind(self, repo):
        with pytest.raises(ValueError):
            repo.create("GRAPH", "X")

    def test_rename_regenerates_slug(self, repo, catalog):
        node = repo.rename(catalog["ladies/tops"], "Tops & Tees")
        assert node.name == "Tops & Tees"
        assert node.slug == "tops-tees"

    def test_flags(self, repo, catalog):
        repo.set_featured(catalog["ladies/tops"])
        repo.set_active(catalog["ladies/footwear"], False)

        assert [n.name for n in repo.featured("TREE")] == ["Tops"]
        active = repo.list("TREE", namespace="ladies", active_only=True)
        assert "Footwear" not in [n.name for n in active]

    def test_update_without_fields_is_noop(self, repo, catalog):
        before = repo.get(catalog["ladies/tops"])
        after = repo.update(catalog["ladies/tops"])
        assert after.updated_at == before.updated_at

    def test_update_rejects_empty_name(self, repo, catalog):
        with pytest.raises(ValueError):
            repo.update(catalog["ladies/tops"], name=" ")

    def test_update_unknown(self, repo):
        with pytest.raises(NotFoundError):
            repo.update("missing", is_active=False)

    def test_delete_dispatches_by_kind(self, repo, catalog, filters):
        with pytest.raises(HasChildrenError):
            repo.delete(catalog["ladies/clothing"])
        assert repo.delete(filters["coats"]).name == "Coats"
        assert repo.get(filters["coats"]) is None


class TestSiblingNamePolicy:
    """Renames follow the same sibling-name policy as creation."""

    @pytest.fixture
    def strict(self, store):
        return NodeRepository(store, HierarchySettings(unique_sibling_names=True))

    def test_rename_onto_sibling_rejected(self, strict, store, catalog):
        with pytest.raises(DuplicateSiblingNameError):
            strict.rename(catalog["ladies/blouses"], "shirts")
        assert store.get_node(catalog["ladies/blouses"]).name == "Blouses"

    def test_rename_root_onto_root_rejected(self, strict, catalog, filters):
        with pytest.raises(DuplicateSiblingNameError):
            strict.rename(catalog["ladies/footwear"], "Clothing")
        with pytest.raises(DuplicateSiblingNameError):
            strict.rename(filters["winter"], "Sale")

    def test_rename_keeping_own_name(self, strict, catalog):
        node = strict.rename(catalog["ladies/shirts"], "SHIRTS")
        assert node.name == "SHIRTS"

    def test_same_name_elsewhere_allowed(self, strict, catalog):
        # gents Shirts sits under a different parent
        node = strict.rename(catalog["ladies/blouses"], "Tops")
        assert node.name == "Tops"

    def test_tolerated_by_default(self, repo, catalog):
        node = repo.rename(catalog["ladies/blouses"], "Shirts")
        assert node.name == "Shirts"
