"""
In-process GraphStore.

Holds nodes, CHILD_OF edges and product attachments in dictionaries.
Transactions take a snapshot on entry and restore it when the block
raises, so engine mutations are all-or-nothing exactly as they are on
Neo4j. A re-entrant lock serialises transactions and reads across
threads, so a reader never sees writes that may still be rolled back.
"""

import copy
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional, Set, Tuple

from catalograph.errors import NotFoundError
from catalograph.models import HierarchyKind, HierarchyNode
from catalograph.store.base import UPDATABLE_FIELDS, GraphStore


class MemoryGraphStore(GraphStore):
    """Dictionary-backed store used for embedding and tests."""

    def __init__(self):
        self._nodes: Dict[str, HierarchyNode] = {}
        self._parents: Dict[str, Set[str]] = {}
        self._children: Dict[str, Set[str]] = {}
        self._attachments: Dict[str, Set[str]] = {}  # node_id -> product ids
        self._lock = threading.RLock()
        self._depth = 0

    @contextmanager
    def transaction(self):
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            snapshot = self._snapshot()
            self._depth = 1
            try:
                yield self
            except BaseException:
                self._restore(snapshot)
                raise
            finally:
                self._depth = 0

    def _snapshot(self):
        return copy.deepcopy((self._nodes, self._parents, self._children, self._attachments))

    def _restore(self, snapshot) -> None:
        self._nodes, self._parents, self._children, self._attachments = snapshot

    # =========================================================================
    # Nodes
    # =========================================================================

    def get_node(self, node_id: str) -> Optional[HierarchyNode]:
        with self._lock:
            node = self._nodes.get(node_id)
            return copy.copy(node) if node is not None else None

    def list_nodes(self, kind: Optional[HierarchyKind] = None,
                   namespace: Optional[str] = None) -> List[HierarchyNode]:
        with self._lock:
            nodes = [
                copy.copy(n) for n in self._nodes.values()
                if (kind is None or n.kind is kind)
                and (namespace is None or n.namespace == namespace)
            ]
        nodes.sort(key=lambda n: (n.level, n.name, n.id))
        return nodes

    def create_node(self, node: HierarchyNode) -> HierarchyNode:
        with self._lock:
            if node.id in self._nodes:
                raise ValueError(f"Node {node.id} already exists")
            self._nodes[node.id] = copy.copy(node)
            self._parents[node.id] = set()
            self._children[node.id] = set()
            self._attachments[node.id] = set()
        return copy.copy(node)

    def update_node(self, node_id: str, **fields) -> Optional[HierarchyNode]:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                return None
            for key, value in fields.items():
                setattr(node, key, value)
            return copy.copy(node)

    def delete_node(self, node_id: str) -> bool:
        with self._lock:
            if node_id not in self._nodes:
                return False
            for parent_id in self._parents.pop(node_id, set()):
                self._children[parent_id].discard(node_id)
            for child_id in self._children.pop(node_id, set()):
                self._parents[child_id].discard(node_id)
            self._attachments.pop(node_id, None)
            del self._nodes[node_id]
            return True

    def set_levels(self, levels: Dict[str, int]) -> int:
        written = 0
        with self._lock:
            for node_id, level in levels.items():
                node = self._nodes.get(node_id)
                if node is not None:
                    node.level = level
                    written += 1
        return written

    def set_product_counts(self, counts: Dict[str, int]) -> int:
        written = 0
        with self._lock:
            for node_id, count in counts.items():
                node = self._nodes.get(node_id)
                if node is not None:
                    node.product_count = count
                    written += 1
        return written

    # =========================================================================
    # Edges
    # =========================================================================

    def _require(self, node_id: str) -> None:
        if node_id not in self._nodes:
            raise NotFoundError(f"Node {node_id} not found", details={"node_id": node_id})

    def parents_of(self, node_id: str) -> Set[str]:
        with self._lock:
            return set(self._parents.get(node_id, ()))

    def children_of(self, node_id: str) -> Set[str]:
        with self._lock:
            return set(self._children.get(node_id, ()))

    def add_edge(self, child_id: str, parent_id: str) -> bool:
        with self._lock:
            self._require(child_id)
            self._require(parent_id)
            if parent_id in self._parents[child_id]:
                return False
            self._parents[child_id].add(parent_id)
            self._children[parent_id].add(child_id)
            return True

    def remove_edge(self, child_id: str, parent_id: str) -> bool:
        with self._lock:
            if parent_id not in self._parents.get(child_id, ()):
                return False
            self._parents[child_id].discard(parent_id)
            self._children[parent_id].discard(child_id)
            return True

    def remove_parent_edges(self, child_id: str) -> int:
        with self._lock:
            parents = self._parents.get(child_id, set())
            for parent_id in parents:
                self._children[parent_id].discard(child_id)
            removed = len(parents)
            if child_id in self._parents:
                self._parents[child_id] = set()
            return removed

    def edges(self, kind: Optional[HierarchyKind] = None) -> List[Tuple[str, str]]:
        pairs = []
        with self._lock:
            for child_id, parents in self._parents.items():
                if kind is not None and self._nodes[child_id].kind is not kind:
                    continue
                pairs.extend((child_id, parent_id) for parent_id in parents)
        return sorted(pairs)

    # =========================================================================
    # Product attachments
    # =========================================================================

    def attach(self, product_id: str, node_id: str) -> bool:
        with self._lock:
            self._require(node_id)
            products = self._attachments[node_id]
            if product_id in products:
                return False
            products.add(product_id)
            return True

    def detach(self, product_id: str, node_id: str) -> bool:
        with self._lock:
            products = self._attachments.get(node_id)
            if not products or product_id not in products:
                return False
            products.discard(product_id)
            return True

    def products_of(self, node_ids: Iterable[str]) -> Set[str]:
        products: Set[str] = set()
        with self._lock:
            for node_id in node_ids:
                products |= self._attachments.get(node_id, set())
        return products

    def attachment_counts(self, node_ids: Optional[Iterable[str]] = None) -> Dict[str, int]:
        with self._lock:
            ids = list(self._attachments) if node_ids is None else node_ids
            return {
                node_id: len(self._attachments.get(node_id, ()))
                for node_id in ids
                if self._attachments.get(node_id)
            }

    def nodes_of_product(self, product_id: str) -> Set[str]:
        with self._lock:
            return {
                node_id for node_id, products in self._attachments.items()
                if product_id in products
            }
