"""
Hierarchy engines and the services built on them.

- tree: TreeHierarchy (categories)
- dag: DagHierarchy (filters)
- nodes: NodeRepository
- binding: ProductBinding
- audit: IntegrityAuditor
- reports: duplicate names, statistics
- maintenance: parent-product cleanup, YAML seeding
"""

from .audit import IntegrityAuditor
from .binding import ProductBinding
from .dag import DagHierarchy
from .nodes import NodeRepository
from .reports import HierarchyReports
from .tree import TreeHierarchy

__all__ = [
    "DagHierarchy",
    "HierarchyReports",
    "IntegrityAuditor",
    "NodeRepository",
    "ProductBinding",
    "TreeHierarchy",
]
