"""
Node repository: CRUD that does not depend on the hierarchy kind.

Creation and deletion are routed to the tree or DAG engine so their
structural rules apply; renames and flag toggles are plain property writes.
"""

import logging
from typing import Iterable, List, Optional

from catalograph.config import HierarchySettings
from catalograph.errors import NotFoundError
from catalograph.hierarchy.dag import DagHierarchy
from catalograph.hierarchy.engine import HierarchyEngine
from catalograph.hierarchy.tree import TreeHierarchy
from catalograph.models import HierarchyKind, HierarchyNode
from catalograph.store.base import GraphStore
from catalograph.utils.slugs import slugify, utc_now

logger = logging.getLogger(__name__)


class NodeRepository:
    """Create, read, update and delete nodes of either hierarchy."""

    def __init__(self, store: GraphStore, settings: Optional[HierarchySettings] = None):
        self.store = store
        self.settings = settings or HierarchySettings.from_env()
        self.tree = TreeHierarchy(store, self.settings)
        self.dag = DagHierarchy(store, self.settings)

    def engine_for(self, kind) -> HierarchyEngine:
        kind = HierarchyKind.parse(kind)
        return self.tree if kind is HierarchyKind.TREE else self.dag

    def create(self, kind, name: str, namespace: Optional[str] = None,
               parent_ids: Iterable[str] = (), featured: bool = False,
               active: bool = True) -> HierarchyNode:
        """Create a node; TREE nodes take at most one parent."""
        kind = HierarchyKind.parse(kind)
        parent_ids = list(parent_ids)
        if kind is HierarchyKind.TREE:
            if len(parent_ids) > 1:
                raise ValueError("A category can have at most one parent")
            return self.tree.create_node(
                name, namespace, parent_ids[0] if parent_ids else None,
                featured=featured, active=active,
            )
        return self.dag.create_node(name, parent_ids, featured=featured, active=active)

    def get(self, node_id: str) -> Optional[HierarchyNode]:
        return self.store.get_node(node_id)

    def require(self, node_id: str) -> HierarchyNode:
        node = self.store.get_node(node_id)
        if node is None:
            raise NotFoundError(f"Node {node_id} not found", details={"node_id": node_id})
        return node

    def list(self, kind=None, namespace: Optional[str] = None,
             active_only: bool = False) -> List[HierarchyNode]:
        kind = HierarchyKind.parse(kind) if kind is not None else None
        nodes = self.store.list_nodes(kind=kind, namespace=namespace)
        return [n for n in nodes if n.is_active or not active_only]

    def featured(self, kind=None) -> List[HierarchyNode]:
        return [n for n in self.list(kind, active_only=True) if n.is_featured]

    def update(self, node_id: str, name: Optional[str] = None,
               is_active: Optional[bool] = None,
               is_featured: Optional[bool] = None) -> HierarchyNode:
        """
        Apply whichever of name / is_active / is_featured are given.

        A new name goes through the same sibling-name policy as creation.
        """
        fields = {}
        if name is not None:
            if not name.strip():
                raise ValueError("Name must not be empty")
            fields["name"] = name.strip()
            fields["slug"] = slugify(name)
        if is_active is not None:
            fields["is_active"] = bool(is_active)
        if is_featured is not None:
            fields["is_featured"] = bool(is_featured)
        if not fields:
            return self.require(node_id)

        fields["updated_at"] = utc_now()
        with self.store.transaction():
            current = self.require(node_id)
            if name is not None:
                self.engine_for(current.kind)._check_sibling_names(
                    name, self.store.parents_of(node_id),
                    namespace=current.namespace, exclude_id=node_id,
                )
            node = self.store.update_node(node_id, **fields)
        logger.info("Updated node %s: %s", node_id, sorted(k for k in fields if k != "updated_at"))
        return node

    def rename(self, node_id: str, name: str) -> HierarchyNode:
        return self.update(node_id, name=name)

    def set_active(self, node_id: str, active: bool = True) -> HierarchyNode:
        return self.update(node_id, is_active=active)

    def set_featured(self, node_id: str, featured: bool = True) -> HierarchyNode:
        return self.update(node_id, is_featured=featured)

    def delete(self, node_id: str) -> HierarchyNode:
        """Delete a childless, productless node of either kind."""
        node = self.require(node_id)
        return self.engine_for(node.kind).delete_node(node_id)
