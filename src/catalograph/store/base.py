"""
GraphStore adapter contract.

The hierarchy engines never talk to a database directly. They read and
write through this interface: nodes, CHILD_OF edges (child -> parent) and
product attachments. Every structural mutation in the engines runs inside
``store.transaction()`` so either all of its writes commit or none do.
"""

from abc import ABC, abstractmethod
from typing import ContextManager, Dict, Iterable, List, Optional, Set, Tuple

from catalograph.models import HierarchyKind, HierarchyNode

# Node fields that update_node() accepts.
UPDATABLE_FIELDS = frozenset({
    "name", "slug", "level", "is_active", "is_featured",
    "product_count", "updated_at",
})


class GraphStore(ABC):
    """Persistence substrate for hierarchy nodes, edges and attachments."""

    # =========================================================================
    # Transactions
    # =========================================================================

    @abstractmethod
    def transaction(self) -> ContextManager["GraphStore"]:
        """
        Open an atomic unit of work.

        Nested calls join the outermost transaction. An exception raised
        inside the block rolls back every write made within it.
        """

    def close(self) -> None:
        """Release any held connections."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # =========================================================================
    # Nodes
    # =========================================================================

    @abstractmethod
    def get_node(self, node_id: str) -> Optional[HierarchyNode]:
        ...

    def get_nodes(self, node_ids: Iterable[str]) -> Dict[str, HierarchyNode]:
        """Fetch several nodes at once; unknown ids are left out."""
        found = {}
        for node_id in node_ids:
            node = self.get_node(node_id)
            if node is not None:
                found[node_id] = node
        return found

    @abstractmethod
    def list_nodes(self, kind: Optional[HierarchyKind] = None,
                   namespace: Optional[str] = None) -> List[HierarchyNode]:
        """List nodes ordered by level then name."""

    @abstractmethod
    def create_node(self, node: HierarchyNode) -> HierarchyNode:
        ...

    @abstractmethod
    def update_node(self, node_id: str, **fields) -> Optional[HierarchyNode]:
        """Set the given fields; returns None when the node does not exist."""

    @abstractmethod
    def delete_node(self, node_id: str) -> bool:
        """Delete a node with all incident edges and attachments."""

    @abstractmethod
    def set_levels(self, levels: Dict[str, int]) -> int:
        """Persist levels in bulk; returns the number of nodes written."""

    @abstractmethod
    def set_product_counts(self, counts: Dict[str, int]) -> int:
        """Persist cached product counts in bulk."""

    # =========================================================================
    # Edges
    # =========================================================================

    @abstractmethod
    def parents_of(self, node_id: str) -> Set[str]:
        ...

    @abstractmethod
    def children_of(self, node_id: str) -> Set[str]:
        ...

    @abstractmethod
    def add_edge(self, child_id: str, parent_id: str) -> bool:
        """Create a CHILD_OF edge; returns False if it already existed."""

    @abstractmethod
    def remove_edge(self, child_id: str, parent_id: str) -> bool:
        ...

    @abstractmethod
    def remove_parent_edges(self, child_id: str) -> int:
        """Remove every outgoing CHILD_OF edge of a node."""

    @abstractmethod
    def edges(self, kind: Optional[HierarchyKind] = None) -> List[Tuple[str, str]]:
        """All (child_id, parent_id) pairs, optionally restricted by child kind."""

    def parent_map(self, kind: Optional[HierarchyKind] = None) -> Dict[str, Set[str]]:
        """Snapshot of child -> parents for every node of a kind."""
        parents: Dict[str, Set[str]] = {
            node.id: set() for node in self.list_nodes(kind=kind)
        }
        for child_id, parent_id in self.edges(kind):
            parents.setdefault(child_id, set()).add(parent_id)
        return parents

    # =========================================================================
    # Product attachments
    # =========================================================================

    @abstractmethod
    def attach(self, product_id: str, node_id: str) -> bool:
        """Attach a product; returns False when the attachment already existed."""

    @abstractmethod
    def detach(self, product_id: str, node_id: str) -> bool:
        ...

    @abstractmethod
    def products_of(self, node_ids: Iterable[str]) -> Set[str]:
        """Union of products attached directly to any of the nodes."""

    @abstractmethod
    def attachment_counts(self, node_ids: Optional[Iterable[str]] = None) -> Dict[str, int]:
        """Direct attachment count per node (nodes without products may be omitted)."""

    @abstractmethod
    def nodes_of_product(self, product_id: str) -> Set[str]:
        ...
