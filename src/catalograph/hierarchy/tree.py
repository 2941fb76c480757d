"""
Tree hierarchy engine (categories).

Categories form one strict single-parent tree per namespace:

    ladies (namespace)
      Clothing (L0)
        Tops (L1)
          Shirts (L2)
          Blouses (L2)
      Footwear (L0)
    gents (namespace)
      Clothing (L0)
        Tops (L1)
          Shirts (L2)   same name as under ladies, different node

Invariants:
- a category has zero or one parent, always in the same namespace
- level = parent.level + 1, roots are level 0
- products attach only to leaf categories (zero children)
"""

import logging
import uuid
from collections import deque
from typing import Dict, List, Optional, Set

from catalograph.errors import (
    CycleWouldFormError,
    HierarchyKindMismatchError,
    NonLeafAttachmentError,
    NotFoundError,
    plural,
)
from catalograph.hierarchy.engine import HierarchyEngine
from catalograph.models import (
    HierarchyKind,
    HierarchyNode,
    LeafValidation,
    LevelRepairResult,
    NodeTree,
)
from catalograph.utils.slugs import slugify, utc_now

logger = logging.getLogger(__name__)


class TreeHierarchy(HierarchyEngine):
    """Single-parent category trees scoped by namespace."""

    kind = HierarchyKind.TREE
    noun = "category"
    nouns = "categories"

    # =========================================================================
    # Mutations
    # =========================================================================

    def _require_parent(self, parent_id: str, namespace: str) -> HierarchyNode:
        parent = self.get(parent_id)
        if parent is None or parent.namespace != namespace:
            raise NotFoundError(
                f"Parent category {parent_id} not found in namespace '{namespace}'",
                code="PARENT_NOT_FOUND",
                details={"parent_id": parent_id, "namespace": namespace},
            )
        return parent

    def create_node(self, name: str, namespace: str, parent_id: Optional[str] = None,
                    featured: bool = False, active: bool = True) -> HierarchyNode:
        """Create a category under parent_id, or a namespace root when parent_id is None."""
        if not name or not name.strip():
            raise ValueError("Category name must not be empty")
        if not namespace:
            raise ValueError("Tree categories need a namespace")

        with self.store.transaction():
            level = 0
            if parent_id:
                parent = self._require_parent(parent_id, namespace)
                level = parent.level + 1
            self._check_sibling_names(name, [parent_id] if parent_id else [], namespace=namespace)

            now = utc_now()
            node = self.store.create_node(HierarchyNode(
                id=str(uuid.uuid4()),
                name=name.strip(),
                kind=self.kind,
                namespace=namespace,
                slug=slugify(name),
                level=level,
                is_active=active,
                is_featured=featured,
                created_at=now,
                updated_at=now,
            ))
            if parent_id:
                self.store.add_edge(node.id, parent_id)

        logger.info("Created category %s (%s) in %s at level %d", node.name, node.id, namespace, level)
        return node

    def move_node(self, node_id: str, new_parent_id: Optional[str]) -> HierarchyNode:
        """
        Re-parent a category (None makes it a namespace root).

        Levels of the moved category and its whole subtree are rewritten
        in the same transaction.
        """
        with self.store.transaction():
            node = self.require(node_id)
            new_level = 0
            if new_parent_id is not None:
                parent = self.get(new_parent_id)
                if parent is None:
                    raise NotFoundError(
                        f"New parent category {new_parent_id} not found",
                        code="PARENT_NOT_FOUND",
                        details={"parent_id": new_parent_id},
                    )
                if parent.namespace != node.namespace:
                    raise HierarchyKindMismatchError(
                        f'Cannot move "{node.name}" from namespace \'{node.namespace}\' '
                        f'under "{parent.name}" in namespace \'{parent.namespace}\'',
                        details={"node_id": node_id, "parent_id": new_parent_id},
                    )
                if new_parent_id == node_id or new_parent_id in self.descendant_ids(node_id):
                    raise CycleWouldFormError(
                        f'Cannot move "{node.name}" under "{parent.name}": '
                        f'"{parent.name}" is "{node.name}" itself or one of its descendants',
                        details={"node_id": node_id, "node_name": node.name,
                                 "parent_id": new_parent_id, "parent_name": parent.name},
                    )
                new_level = parent.level + 1
            self._check_sibling_names(
                node.name, [new_parent_id] if new_parent_id else [],
                namespace=node.namespace, exclude_id=node_id,
            )

            self.store.remove_parent_edges(node_id)
            if new_parent_id is not None:
                self.store.add_edge(node_id, new_parent_id)
            self.store.update_node(node_id, level=new_level, updated_at=utc_now())
            changed = self._relevel_subtree(node_id, new_level)
            moved = self.store.get_node(node_id)

        logger.info("Moved category %s under %s (%d descendant levels updated)",
                    node_id, new_parent_id or "<root>", changed)
        return moved

    def _relevel_subtree(self, root_id: str, root_level: int) -> int:
        """Top-down walk assigning depth-based levels below root_id."""
        levels: Dict[str, int] = {}
        seen: Set[str] = {root_id}
        frontier = deque([(root_id, root_level)])
        while frontier:
            current, level = frontier.popleft()
            if level - root_level >= self.settings.max_depth:
                continue
            for child_id in self.store.children_of(current):
                if child_id not in seen:
                    seen.add(child_id)
                    levels[child_id] = level + 1
                    frontier.append((child_id, level + 1))
        return self._write_levels(levels)

    def recompute_levels(self, namespace: Optional[str] = None) -> LevelRepairResult:
        """Rewrite every category level from its depth below the namespace root."""
        result = LevelRepairResult()
        with self.store.transaction():
            nodes = self.nodes(namespace=namespace) if namespace else self.nodes()
            result.total_nodes = len(nodes)
            levels: Dict[str, int] = {}
            roots = [n.id for n in nodes if not self.store.parents_of(n.id)]
            frontier = deque((root_id, 0) for root_id in roots)
            for root_id in roots:
                levels[root_id] = 0
            while frontier:
                current, level = frontier.popleft()
                result.iterations = max(result.iterations, level + 1)
                if level >= self.settings.max_depth:
                    continue
                for child_id in self.store.children_of(current):
                    if child_id not in levels:
                        levels[child_id] = level + 1
                        frontier.append((child_id, level + 1))
            result.unresolved = sorted(n.id for n in nodes if n.id not in levels)
            result.converged = not result.unresolved
            result.changed = self._write_levels(levels)
        logger.info("Tree level recompute: %s", result.summary)
        return result

    # =========================================================================
    # Product attachment
    # =========================================================================

    def validate_leaf_for_attachment(self, node_id: str) -> LeafValidation:
        """Check that a category has no children and can hold products."""
        node = self.require(node_id)
        child_count = self.child_count(node_id)
        if child_count > 0:
            return LeafValidation(
                valid=False,
                node_id=node_id,
                node_name=node.name,
                child_count=child_count,
                error=(
                    f'Cannot assign products to parent category "{node.name}". '
                    f"This category has {plural(child_count, 'child category', 'child categories')}. "
                    "Please assign to a leaf category (one without children)."
                ),
            )
        return LeafValidation(valid=True, node_id=node_id, node_name=node.name)

    def attach_product(self, product_id: str, node_id: str) -> bool:
        """
        Attach a product to a leaf category.

        Returns True when a new attachment was made, False when it already
        existed. Raises NonLeafAttachmentError without writing anything when
        the category has children.
        """
        with self.store.transaction():
            validation = self.validate_leaf_for_attachment(node_id)
            if not validation.valid:
                raise NonLeafAttachmentError(validation.error, details=validation.to_dict())
            created = self.store.attach(product_id, node_id)
        if created:
            logger.info("Attached product %s to category %s", product_id, node_id)
        return created

    def detach_product(self, product_id: str, node_id: str) -> bool:
        self.require(node_id)
        return self.store.detach(product_id, node_id)

    def descendant_products(self, node_id: str) -> Set[str]:
        """Products attached anywhere in the subtree rooted at node_id."""
        return self.store.products_of(self.descendant_ids(node_id, include_self=True))

    # =========================================================================
    # Queries
    # =========================================================================

    def namespaces(self) -> List[str]:
        return sorted({n.namespace for n in self.nodes() if n.namespace})

    def roots(self, namespace: Optional[str] = None, active_only: bool = False,
              with_counts: bool = False) -> List[HierarchyNode]:
        """Namespace roots; with_counts fills in rolled-up product counts."""
        nodes = self.nodes(active_only=active_only, namespace=namespace) if namespace \
            else self.nodes(active_only=active_only)
        roots = [n for n in nodes if not self.store.parents_of(n.id)]
        roots.sort(key=lambda n: (n.namespace or "", n.name.lower()))
        if with_counts:
            self.with_product_counts(roots)
        return roots

    def leaves(self, namespace: Optional[str] = None) -> List[HierarchyNode]:
        """Categories without children, the only valid product targets."""
        nodes = self.nodes(namespace=namespace) if namespace else self.nodes()
        leaves = [n for n in nodes if not self.store.children_of(n.id)]
        leaves.sort(key=lambda n: (n.namespace or "", n.level, n.name.lower()))
        return leaves

    def tree(self, namespace: Optional[str] = None,
             active_only: bool = False) -> Dict[str, List[NodeTree]]:
        """Full category tree grouped by namespace, built from one node listing."""
        nodes = self.nodes(active_only=active_only, namespace=namespace) if namespace \
            else self.nodes(active_only=active_only)
        by_id = {n.id: NodeTree(node=n) for n in nodes}
        grouped: Dict[str, List[NodeTree]] = {}

        for child_id, parent_id in self.store.edges(self.kind):
            if child_id in by_id and parent_id in by_id:
                by_id[parent_id].children.append(by_id[child_id])

        linked = {child_id for child_id, _ in self.store.edges(self.kind)}
        for item in by_id.values():
            item.children.sort(key=lambda t: t.node.name.lower())
            if item.node.id not in linked:
                grouped.setdefault(item.node.namespace, []).append(item)

        for roots in grouped.values():
            roots.sort(key=lambda t: t.node.name.lower())
        return grouped

    def path(self, node_id: str) -> List[HierarchyNode]:
        """Breadcrumb from the namespace root down to node_id."""
        node = self.require(node_id)
        trail = [node]
        seen = {node_id}
        current = node_id
        while len(trail) <= self.settings.max_depth:
            parents = sorted(self.store.parents_of(current))
            if not parents or parents[0] in seen:
                break
            current = parents[0]
            seen.add(current)
            parent = self.store.get_node(current)
            if parent is None:
                break
            trail.append(parent)
        return list(reversed(trail))

    def paths(self, node_ids: List[str]) -> Dict[str, List[HierarchyNode]]:
        return {node_id: self.path(node_id) for node_id in node_ids}
