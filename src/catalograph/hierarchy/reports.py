"""
Read-only reports over both hierarchies.

Usage:
    from catalograph.hierarchy.reports import HierarchyReports

    reports = HierarchyReports(store)
    reports.statistics()
    reports.duplicate_names(kind="TREE")
"""

from typing import Any, Dict, List

from catalograph.models import HierarchyKind, HierarchyNode
from catalograph.store.base import GraphStore


class HierarchyReports:
    """Duplicate-name report, aggregate statistics and level distribution."""

    def __init__(self, store: GraphStore):
        self.store = store

    def _nodes(self, kind=None) -> List[HierarchyNode]:
        kind = HierarchyKind.parse(kind) if kind is not None else None
        return self.store.list_nodes(kind=kind)

    def duplicate_names(self, kind=None) -> List[Dict[str, Any]]:
        """
        Names (case-insensitive) carried by more than one node.

        Duplicates are legal, e.g. "Shirts" under both ladies and gents;
        the report lets an operator decide whether they are intended.
        """
        groups: Dict[str, List[HierarchyNode]] = {}
        for node in self._nodes(kind):
            groups.setdefault(node.name.strip().lower(), []).append(node)

        duplicates = []
        for _, nodes in sorted(groups.items()):
            if len(nodes) < 2:
                continue
            duplicates.append({
                "name": nodes[0].name,
                "count": len(nodes),
                "nodes": [
                    {
                        "id": n.id,
                        "kind": n.kind.value,
                        "namespace": n.namespace,
                        "level": n.level,
                        "parents": sorted(self.store.parents_of(n.id)),
                    }
                    for n in nodes
                ],
            })
        duplicates.sort(key=lambda d: (-d["count"], d["name"].lower()))
        return duplicates

    def level_distribution(self, kind=None) -> Dict[int, int]:
        distribution: Dict[int, int] = {}
        for node in self._nodes(kind):
            distribution[node.level] = distribution.get(node.level, 0) + 1
        return dict(sorted(distribution.items()))

    def statistics(self) -> Dict[str, Any]:
        """Overall counts across both hierarchies."""
        nodes = self._nodes()
        with_products = set(self.store.attachment_counts())
        edges = self.store.edges()

        by_kind: Dict[str, int] = {kind.value: 0 for kind in HierarchyKind}
        by_namespace: Dict[str, int] = {}
        leaves = 0
        for node in nodes:
            by_kind[node.kind.value] += 1
            if node.is_tree:
                by_namespace[node.namespace] = by_namespace.get(node.namespace, 0) + 1
                if not self.store.children_of(node.id):
                    leaves += 1

        return {
            "total_nodes": len(nodes),
            "total_edges": len(edges),
            "by_kind": by_kind,
            "by_namespace": dict(sorted(by_namespace.items())),
            "by_level": {
                kind.value: self.level_distribution(kind) for kind in HierarchyKind
            },
            "featured": sum(1 for n in nodes if n.is_featured),
            "active": sum(1 for n in nodes if n.is_active),
            "inactive": sum(1 for n in nodes if not n.is_active),
            "with_products": sum(1 for n in nodes if n.id in with_products),
            "tree_leaves": leaves,
        }
