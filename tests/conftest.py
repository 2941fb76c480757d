"""Pytest configuration and shared fixtures."""

import tempfile
from pathlib import Path

import pytest

from catalograph.config import HierarchySettings
from catalograph.hierarchy.dag import DagHierarchy
from catalograph.hierarchy.tree import TreeHierarchy
from catalograph.store.memory import MemoryGraphStore
from catalograph.utils.neo4j import Neo4jConfig, check_connection


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings():
    """Engine settings independent of the environment."""
    return HierarchySettings(max_depth=100, max_iterations=20, unique_sibling_names=False)


@pytest.fixture
def store():
    """Empty in-memory graph store."""
    return MemoryGraphStore()


@pytest.fixture
def tree(store, settings):
    return TreeHierarchy(store, settings)


@pytest.fixture
def dag(store, settings):
    return DagHierarchy(store, settings)


@pytest.fixture
def catalog(tree):
    """
    Two category namespaces:

        ladies: Clothing > Tops > {Shirts, Blouses}, Footwear
        gents:  Clothing > Tops > Shirts

    Returns ids keyed by "<namespace>/<path>".
    """
    ids = {}
    for namespace in ("ladies", "gents"):
        clothing = tree.create_node("Clothing", namespace)
        tops = tree.create_node("Tops", namespace, clothing.id)
        shirts = tree.create_node("Shirts", namespace, tops.id)
        ids[f"{namespace}/clothing"] = clothing.id
        ids[f"{namespace}/tops"] = tops.id
        ids[f"{namespace}/shirts"] = shirts.id
    ids["ladies/blouses"] = tree.create_node("Blouses", "ladies", ids["ladies/tops"]).id
    ids["ladies/footwear"] = tree.create_node("Footwear", "ladies", featured=True).id
    return ids


@pytest.fixture
def filters(dag):
    """
    Winter and Sale as roots, WinterSale under both, Coats under WinterSale.

    Returns ids keyed by lower-case name.
    """
    winter = dag.create_node("Winter")
    sale = dag.create_node("Sale", featured=True)
    winter_sale = dag.create_node("WinterSale", [winter.id, sale.id])
    coats = dag.create_node("Coats", [winter_sale.id])
    return {
        "winter": winter.id,
        "sale": sale.id,
        "wintersale": winter_sale.id,
        "coats": coats.id,
    }


@pytest.fixture
def neo4j_config():
    """Neo4j configuration for testing."""
    return Neo4jConfig.from_env()


@pytest.fixture
def skip_without_neo4j(neo4j_config):
    """Skip test if Neo4j is not available."""
    if not check_connection(neo4j_config):
        pytest.skip("Neo4j not available")
