"""
Shared plumbing for the tree and DAG engines.

Both engines read and write through a GraphStore, resolve ids into nodes
of their own kind, and answer the same basic structural queries. The
kind-specific invariants live in tree.py and dag.py.
"""

import logging
from typing import Dict, Iterable, List, Optional, Set

from catalograph.config import HierarchySettings
from catalograph.errors import (
    DuplicateSiblingNameError,
    HasChildrenError,
    HasProductsError,
    HierarchyKindMismatchError,
    NotFoundError,
    plural,
)
from catalograph.hierarchy.traversal import closure
from catalograph.models import HierarchyKind, HierarchyNode
from catalograph.store.base import GraphStore
from catalograph.utils.slugs import utc_now

logger = logging.getLogger(__name__)


class HierarchyEngine:
    """Base class: node resolution, closures and listings for one hierarchy kind."""

    kind: HierarchyKind = None
    noun = "node"
    nouns = "nodes"

    def __init__(self, store: GraphStore, settings: Optional[HierarchySettings] = None):
        self.store = store
        self.settings = settings or HierarchySettings.from_env()

    # =========================================================================
    # Node resolution
    # =========================================================================

    def get(self, node_id: str) -> Optional[HierarchyNode]:
        node = self.store.get_node(node_id)
        if node is None or node.kind is not self.kind:
            return None
        return node

    def require(self, node_id: str, role: str = None) -> HierarchyNode:
        """Resolve an id into a node of this engine's kind or raise."""
        node = self.store.get_node(node_id)
        role = role or self.noun
        if node is None:
            raise NotFoundError(
                f"{role.capitalize()} {node_id} not found",
                details={"node_id": node_id},
            )
        if node.kind is not self.kind:
            raise HierarchyKindMismatchError(
                f'"{node.name}" is a {node.kind.value} node, expected a {self.kind.value} {role}',
                details={"node_id": node_id, "kind": node.kind.value},
            )
        return node

    def _nodes_sorted(self, node_ids: Iterable[str], active_only: bool = False) -> List[HierarchyNode]:
        nodes = [
            n for n in self.store.get_nodes(node_ids).values()
            if n.kind is self.kind and (n.is_active or not active_only)
        ]
        nodes.sort(key=lambda n: (n.name.lower(), n.id))
        return nodes

    # =========================================================================
    # Structural queries
    # =========================================================================

    def children(self, node_id: str, active_only: bool = False) -> List[HierarchyNode]:
        self.require(node_id)
        return self._nodes_sorted(self.store.children_of(node_id), active_only)

    def child_count(self, node_id: str) -> int:
        return len(self.store.children_of(node_id))

    def parents(self, node_id: str) -> List[HierarchyNode]:
        self.require(node_id)
        return self._nodes_sorted(self.store.parents_of(node_id))

    def ancestor_ids(self, node_id: str) -> Set[str]:
        """All ancestors (1..N hops), deduplicated."""
        self.require(node_id)
        return closure([node_id], self.store.parents_of, self.settings.max_depth)

    def descendant_ids(self, node_id: str, include_self: bool = False) -> Set[str]:
        """All descendants (1..N hops), deduplicated; optionally with the node itself."""
        self.require(node_id)
        return closure([node_id], self.store.children_of, self.settings.max_depth,
                       include_start=include_self)

    def ancestors_of(self, node_id: str) -> List[HierarchyNode]:
        return self._nodes_sorted(self.ancestor_ids(node_id))

    def descendants_of(self, node_id: str) -> List[HierarchyNode]:
        return self._nodes_sorted(self.descendant_ids(node_id))

    def nodes(self, active_only: bool = False, **filters) -> List[HierarchyNode]:
        nodes = self.store.list_nodes(kind=self.kind, **filters)
        return [n for n in nodes if n.is_active or not active_only]

    def featured(self) -> List[HierarchyNode]:
        """Featured and active nodes, ordered by level then name."""
        return [n for n in self.nodes(active_only=True) if n.is_featured]

    def with_product_counts(self, nodes: List[HierarchyNode],
                            rolled_up: bool = True) -> List[HierarchyNode]:
        """
        Fill product_count on the given nodes from live attachments.

        rolled_up counts distinct products anywhere in each node's closure,
        otherwise only the node's own attachments.
        """
        if not rolled_up:
            direct = self.store.attachment_counts([n.id for n in nodes])
            for node in nodes:
                node.product_count = direct.get(node.id, 0)
            return nodes
        for node in nodes:
            scope = closure([node.id], self.store.children_of, self.settings.max_depth,
                            include_start=True)
            node.product_count = len(self.store.products_of(scope))
        return nodes

    # =========================================================================
    # Mutation helpers
    # =========================================================================

    def _check_sibling_names(self, name: str, parent_ids: Iterable[str],
                             namespace: Optional[str] = None,
                             exclude_id: Optional[str] = None) -> None:
        """Enforce sibling-name uniqueness when the policy flag is on."""
        if not self.settings.unique_sibling_names:
            return
        wanted = name.strip().lower()
        parent_ids = list(parent_ids)
        if parent_ids:
            siblings: Set[str] = set()
            for parent_id in parent_ids:
                siblings |= self.store.children_of(parent_id)
            candidates = self.store.get_nodes(siblings).values()
        else:
            candidates = [
                n for n in self.store.list_nodes(kind=self.kind, namespace=namespace)
                if not self.store.parents_of(n.id)
            ]
        for sibling in candidates:
            if sibling.id != exclude_id and sibling.name.strip().lower() == wanted:
                raise DuplicateSiblingNameError(
                    f'A sibling named "{sibling.name}" already exists ({sibling.id})',
                    details={"name": name, "existing_id": sibling.id},
                )

    def _ensure_deletable(self, node: HierarchyNode) -> None:
        """Deletion requires a childless and productless node."""
        child_count = self.child_count(node.id)
        if child_count > 0:
            many = self.nouns if child_count != 1 else self.noun
            raise HasChildrenError(
                f'Cannot delete "{node.name}" because it has '
                f"{plural(child_count, 'child ' + self.noun, 'child ' + self.nouns)}. "
                f"Please delete the child {many} first.",
                details={"node_id": node.id, "node_name": node.name, "child_count": child_count},
            )
        product_count = self.store.attachment_counts([node.id]).get(node.id, 0)
        if product_count > 0:
            raise HasProductsError(
                f'Cannot delete "{node.name}" because it has '
                f"{plural(product_count, 'product')} assigned. "
                "Please remove or reassign the products first.",
                details={"node_id": node.id, "node_name": node.name, "product_count": product_count},
            )

    def delete_node(self, node_id: str) -> HierarchyNode:
        """Delete a childless, productless node together with its parent edges."""
        with self.store.transaction():
            node = self.require(node_id)
            self._ensure_deletable(node)
            self.store.delete_node(node_id)
        logger.info("Deleted %s %s (%s)", self.noun, node.name, node_id)
        return node

    def _write_levels(self, levels: Dict[str, int]) -> int:
        """Persist only the levels that differ from what is stored."""
        current = self.store.get_nodes(levels)
        changed = {
            node_id: level for node_id, level in levels.items()
            if node_id in current and current[node_id].level != level
        }
        if changed:
            self.store.set_levels(changed)
            now = utc_now()
            for node_id in changed:
                self.store.update_node(node_id, updated_at=now)
        return len(changed)
