"""
Integrity auditor for both hierarchies.

Checks for:
- Cycles (a node that can walk its parent edges back to itself)
- DAG level mismatches (level != 1 + max(parent levels))
- Categories with more than one parent
- Edges that cross hierarchy kinds or category namespaces
- Category level mismatches (level != parent level + 1)
- Products attached to categories that have children
- Inactive nodes still holding products
- Siblings sharing a name (informational)

audit() never writes. repair() only recomputes levels; cycles and
structural errors are left for an operator to resolve with
update_parents / move_node.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from catalograph.config import HierarchySettings
from catalograph.hierarchy.dag import DagHierarchy
from catalograph.hierarchy.traversal import find_path
from catalograph.hierarchy.tree import TreeHierarchy
from catalograph.models import AuditFinding, AuditReport, HierarchyKind, HierarchyNode, Severity
from catalograph.store.base import GraphStore

logger = logging.getLogger(__name__)


class IntegrityAuditor:
    """Read-only diagnostic pass plus level repair."""

    def __init__(self, store: GraphStore, settings: Optional[HierarchySettings] = None):
        self.store = store
        self.settings = settings or HierarchySettings.from_env()
        self.findings: List[AuditFinding] = []
        self.stats: Dict[str, Any] = {}
        self._nodes: Dict[str, HierarchyNode] = {}
        self._parents: Dict[str, set] = {}

    def add_finding(self, node: HierarchyNode, severity: Severity, check: str,
                    message: str, **details) -> None:
        self.findings.append(AuditFinding(
            node_id=node.id,
            node_name=node.name,
            severity=severity,
            check=check,
            message=message,
            details=details,
        ))

    def _load(self) -> None:
        self._nodes = {n.id: n for n in self.store.list_nodes()}
        self._parents = {node_id: set() for node_id in self._nodes}
        for child_id, parent_id in self.store.edges():
            self._parents.setdefault(child_id, set()).add(parent_id)

    # =========================================================================
    # Checks
    # =========================================================================

    def check_cycles(self) -> int:
        """Flag every node that sits on a cycle of parent edges."""
        flagged = 0
        for node in self._nodes.values():
            cycle = find_path(node.id, node.id, lambda nid: self._parents.get(nid, ()),
                              self.settings.max_depth)
            if cycle:
                names = [self._nodes[nid].name if nid in self._nodes else nid for nid in cycle]
                self.add_finding(
                    node, Severity.ERROR, "cycle",
                    f'"{node.name}" is its own ancestor: {" -> ".join(names)}',
                    path=cycle,
                )
                flagged += 1
        self.stats["cycles"] = flagged
        return flagged

    def _expected_level(self, node: HierarchyNode) -> Optional[int]:
        parents = [self._nodes[pid] for pid in self._parents.get(node.id, ()) if pid in self._nodes]
        if not parents:
            return 0
        return 1 + max(p.level for p in parents)

    def check_levels(self, kind: HierarchyKind) -> int:
        """Compare stored levels with the level implied by current parents."""
        check = "dag_level" if kind is HierarchyKind.DAG else "tree_level"
        mismatched = 0
        for node in self._nodes.values():
            if node.kind is not kind:
                continue
            expected = self._expected_level(node)
            if expected != node.level:
                self.add_finding(
                    node, Severity.WARNING, check,
                    f'"{node.name}" has level {node.level}, expected {expected}',
                    stored=node.level, expected=expected,
                )
                mismatched += 1
        self.stats[f"{check}_mismatches"] = mismatched
        return mismatched

    def check_tree_parents(self) -> int:
        flagged = 0
        for node in self._nodes.values():
            parents = self._parents.get(node.id, set())
            if node.is_tree and len(parents) > 1:
                self.add_finding(
                    node, Severity.ERROR, "tree_multi_parent",
                    f'Category "{node.name}" has {len(parents)} parents',
                    parents=sorted(parents),
                )
                flagged += 1
        self.stats["tree_multi_parent"] = flagged
        return flagged

    def check_cross_edges(self) -> int:
        """Edges between TREE and DAG nodes, or between category namespaces."""
        flagged = 0
        for child_id, parents in self._parents.items():
            child = self._nodes.get(child_id)
            if child is None:
                continue
            for parent_id in sorted(parents):
                parent = self._nodes.get(parent_id)
                if parent is None:
                    continue
                if parent.kind is not child.kind:
                    message = (
                        f'"{child.name}" ({child.kind.value}) has parent '
                        f'"{parent.name}" ({parent.kind.value})'
                    )
                elif child.is_tree and parent.namespace != child.namespace:
                    message = (
                        f'Category "{child.name}" in \'{child.namespace}\' has parent '
                        f'"{parent.name}" in \'{parent.namespace}\''
                    )
                else:
                    continue
                self.add_finding(child, Severity.ERROR, "cross_edge", message, parent_id=parent_id)
                flagged += 1
        self.stats["cross_edges"] = flagged
        return flagged

    def check_attachments(self) -> int:
        """Products on categories with children, and products on inactive nodes."""
        counts = self.store.attachment_counts()
        flagged = 0
        children: Dict[str, int] = {}
        for parents in self._parents.values():
            for parent_id in parents:
                children[parent_id] = children.get(parent_id, 0) + 1

        for node_id, product_count in sorted(counts.items()):
            node = self._nodes.get(node_id)
            if node is None:
                continue
            child_count = children.get(node_id, 0)
            if node.is_tree and child_count:
                self.add_finding(
                    node, Severity.ERROR, "non_leaf_products",
                    f'Category "{node.name}" has {child_count} children and '
                    f"{product_count} directly assigned products",
                    child_count=child_count, product_count=product_count,
                )
                flagged += 1
            if not node.is_active:
                self.add_finding(
                    node, Severity.WARNING, "inactive_with_products",
                    f'Inactive {"category" if node.is_tree else "filter"} "{node.name}" '
                    f"still holds {product_count} products",
                    product_count=product_count,
                )
                flagged += 1
        self.stats["nodes_with_products"] = len(counts)
        return flagged

    def check_duplicate_siblings(self) -> int:
        groups: Dict[tuple, List[HierarchyNode]] = {}
        for node in self._nodes.values():
            parents = tuple(sorted(self._parents.get(node.id, ())))
            scope = parents or (node.kind.value, node.namespace)
            groups.setdefault((scope, node.name.strip().lower()), []).append(node)

        flagged = 0
        for nodes in groups.values():
            if len(nodes) < 2:
                continue
            ids = sorted(n.id for n in nodes)
            for node in nodes:
                self.add_finding(
                    node, Severity.INFO, "duplicate_sibling",
                    f'"{node.name}" shares its name with {len(nodes) - 1} sibling(s)',
                    duplicates=[i for i in ids if i != node.id],
                )
                flagged += 1
        self.stats["duplicate_siblings"] = flagged
        return flagged

    # =========================================================================
    # Entry points
    # =========================================================================

    def audit(self) -> AuditReport:
        """Run every check and return a structured report."""
        self.findings = []
        self.stats = {}
        self._load()

        self.stats["tree_nodes"] = sum(1 for n in self._nodes.values() if n.is_tree)
        self.stats["dag_nodes"] = sum(1 for n in self._nodes.values() if n.is_dag)
        self.stats["edges"] = sum(len(p) for p in self._parents.values())

        self.check_cycles()
        self.check_levels(HierarchyKind.DAG)
        self.check_tree_parents()
        self.check_cross_edges()
        self.check_levels(HierarchyKind.TREE)
        self.check_attachments()
        self.check_duplicate_siblings()

        report = AuditReport(
            timestamp=datetime.now(timezone.utc).isoformat(),
            findings=list(self.findings),
            stats=dict(self.stats),
        )
        if report.errors:
            logger.warning("Audit found %d errors and %d warnings",
                           len(report.errors), len(report.warnings))
        else:
            logger.info("Audit status %s (%d warnings)", report.status, len(report.warnings))
        return report

    def repair(self) -> Dict[str, Any]:
        """
        Recompute every level: the global DAG pass plus one top-down walk
        per category namespace. Cycles are reported, never broken.
        """
        dag_result = DagHierarchy(self.store, self.settings).recompute_levels()
        tree = TreeHierarchy(self.store, self.settings)
        tree_results = {ns: tree.recompute_levels(ns) for ns in tree.namespaces()}

        tree_changed = sum(r.changed for r in tree_results.values())
        summary = f"Filters: {dag_result.summary}. Categories: {tree_changed} levels updated"
        unresolved = sorted(dag_result.unresolved + [
            node_id for r in tree_results.values() for node_id in r.unresolved
        ])
        return {
            "iterations": dag_result.iterations,
            "changed": dag_result.changed + tree_changed,
            "converged": not unresolved,
            "unresolved": unresolved,
            "summary": summary,
            "dag": dag_result.to_dict(),
            "tree": {ns: r.to_dict() for ns, r in tree_results.items()},
        }
