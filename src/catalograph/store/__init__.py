"""
GraphStore adapters.

- base: the abstract adapter contract the engines are written against
- memory: in-process dictionaries with snapshot/rollback transactions
- neo4j: Cypher over the Neo4j driver (imported lazily, needs the driver)
"""

from catalograph.store.base import GraphStore
from catalograph.store.memory import MemoryGraphStore

__all__ = ["GraphStore", "MemoryGraphStore", "open_store"]


def open_store(backend: str = "neo4j", **kwargs) -> GraphStore:
    """Create a store by backend name ("neo4j" or "memory")."""
    if backend == "memory":
        return MemoryGraphStore()
    if backend == "neo4j":
        from catalograph.store.neo4j import Neo4jGraphStore
        return Neo4jGraphStore(**kwargs)
    raise ValueError(f"Unknown store backend: {backend}")
