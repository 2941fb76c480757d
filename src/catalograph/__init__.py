"""
Catalograph - hierarchical classification engine for a storefront catalog.

This package provides:
- Category trees: single parent, one tree per namespace, products on leaves only
- Filter DAGs: multiple parents, cycle prevention, longest-path levels
- Product binding with descendant-expanded lookups
- An integrity auditor with level repair
- Neo4j and in-memory graph stores
"""

__version__ = "0.1.0"

from .errors import HierarchyError, NotFoundError, StructuralViolationError
from .models import HierarchyKind, HierarchyNode

__all__ = [
    "__version__",
    "HierarchyError",
    "HierarchyKind",
    "HierarchyNode",
    "NotFoundError",
    "StructuralViolationError",
]
