"""
Product binding layer.

Products are opaque ids. Categories (TREE) take products on leaves only;
filters (DAG) take them anywhere. Lookups can expand a node to its whole
descendant closure so a parent category or a broad filter sees everything
filed below it.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from catalograph.config import HierarchySettings
from catalograph.errors import NonLeafAttachmentError, NotFoundError
from catalograph.hierarchy.dag import DagHierarchy
from catalograph.hierarchy.engine import HierarchyEngine
from catalograph.hierarchy.traversal import closure
from catalograph.hierarchy.tree import TreeHierarchy
from catalograph.models import HierarchyKind, HierarchyNode, LeafValidation
from catalograph.store.base import GraphStore

logger = logging.getLogger(__name__)


class ProductBinding:
    """Attach, detach and look up products across both hierarchies."""

    def __init__(self, store: GraphStore, settings: Optional[HierarchySettings] = None):
        self.store = store
        self.settings = settings or HierarchySettings.from_env()
        self.tree = TreeHierarchy(store, self.settings)
        self.dag = DagHierarchy(store, self.settings)

    def _resolve(self, node_id: str) -> HierarchyNode:
        node = self.store.get_node(node_id)
        if node is None:
            raise NotFoundError(f"Node {node_id} not found", details={"node_id": node_id})
        return node

    def _engine(self, node: HierarchyNode) -> HierarchyEngine:
        return self.tree if node.is_tree else self.dag

    def _scope(self, node_ids: Iterable[str], include_descendants: bool):
        node_ids = list(node_ids)
        for node_id in node_ids:
            self._resolve(node_id)
        if not include_descendants:
            return set(node_ids)
        return closure(node_ids, self.store.children_of, self.settings.max_depth,
                       include_start=True)

    # =========================================================================
    # Attach / detach
    # =========================================================================

    def validate_for_attachment(self, node_id: str) -> LeafValidation:
        node = self._resolve(node_id)
        if node.is_tree:
            return self.tree.validate_leaf_for_attachment(node_id)
        return LeafValidation(valid=True, node_id=node_id, node_name=node.name,
                              child_count=self.dag.child_count(node_id))

    def attach(self, product_id: str, node_id: str) -> bool:
        return self._engine(self._resolve(node_id)).attach_product(product_id, node_id)

    def detach(self, product_id: str, node_id: str) -> bool:
        return self._engine(self._resolve(node_id)).detach_product(product_id, node_id)

    def assign_product(self, product_id: str, node_ids: Iterable[str], kind) -> Dict[str, List[str]]:
        """
        Replace the product's whole attachment set for one hierarchy kind.

        Every target is validated before anything is written; a single
        non-leaf category rejects the whole assignment.
        """
        kind = HierarchyKind.parse(kind)
        engine = self.tree if kind is HierarchyKind.TREE else self.dag
        targets = sorted(set(node_ids))

        with self.store.transaction():
            for node_id in targets:
                engine.require(node_id)
                if kind is HierarchyKind.TREE:
                    validation = self.tree.validate_leaf_for_attachment(node_id)
                    if not validation.valid:
                        raise NonLeafAttachmentError(validation.error, details=validation.to_dict())

            current = {n.id for n in self.nodes_for_product(product_id, kind)}
            removed = sorted(current - set(targets))
            added = sorted(set(targets) - current)
            for node_id in removed:
                self.store.detach(product_id, node_id)
            for node_id in added:
                self.store.attach(product_id, node_id)

        logger.info("Assigned product %s to %d %s nodes (+%d / -%d)",
                    product_id, len(targets), kind.value, len(added), len(removed))
        return {"added": added, "removed": removed, "nodes": targets}

    # =========================================================================
    # Lookups
    # =========================================================================

    def products_for(self, node_ids: Iterable[str], include_descendants: bool = True) -> List[str]:
        return sorted(self.store.products_of(self._scope(node_ids, include_descendants)))

    def product_count(self, node_id: str, include_descendants: bool = True) -> int:
        return len(self.store.products_of(self._scope([node_id], include_descendants)))

    def product_counts(self, node_ids: Iterable[str],
                       include_descendants: bool = False) -> Dict[str, int]:
        """Count per node; ids without products report 0."""
        node_ids = list(node_ids)
        if include_descendants:
            return {nid: self.product_count(nid, include_descendants=True) for nid in node_ids}
        direct = self.store.attachment_counts(node_ids)
        return {nid: direct.get(nid, 0) for nid in node_ids}

    def nodes_for_product(self, product_id: str, kind=None) -> List[HierarchyNode]:
        kind = HierarchyKind.parse(kind) if kind is not None else None
        nodes = [
            n for n in self.store.get_nodes(self.store.nodes_of_product(product_id)).values()
            if kind is None or n.kind is kind
        ]
        nodes.sort(key=lambda n: (n.kind.value, n.namespace or "", n.level, n.name.lower()))
        return nodes

    # =========================================================================
    # Maintenance
    # =========================================================================

    def refresh_product_counts(self, kind=None) -> int:
        """Recompute cached product_count (distinct products in each closure)."""
        kind = HierarchyKind.parse(kind) if kind is not None else None
        with self.store.transaction():
            nodes = self.store.list_nodes(kind=kind)
            counts = {}
            for node in nodes:
                count = self.product_count(node.id, include_descendants=True)
                if count != node.product_count:
                    counts[node.id] = count
            if counts:
                self.store.set_product_counts(counts)
        logger.info("Refreshed product counts: %d of %d nodes changed", len(counts), len(nodes))
        return len(counts)

    def migrate_product_to_leaf(self, product_id: str, from_id: str, to_id: str) -> Dict[str, Any]:
        """Move one category attachment from from_id to the leaf category to_id."""
        with self.store.transaction():
            source = self.tree.require(from_id)
            target = self.tree.require(to_id)
            if from_id not in self.store.nodes_of_product(product_id):
                raise NotFoundError(
                    f'Product {product_id} is not assigned to "{source.name}"',
                    details={"product_id": product_id, "node_id": from_id},
                )
            validation = self.tree.validate_leaf_for_attachment(to_id)
            if not validation.valid:
                raise NonLeafAttachmentError(validation.error, details=validation.to_dict())
            self.store.detach(product_id, from_id)
            self.store.attach(product_id, to_id)

        logger.info("Migrated product %s from %s to %s", product_id, source.name, target.name)
        return {
            "product_id": product_id,
            "from": source.to_dict(),
            "to": target.to_dict(),
        }
