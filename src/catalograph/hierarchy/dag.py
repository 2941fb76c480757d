"""
DAG hierarchy engine (filters).

Filters may have several parents. The graph must stay acyclic, so every
re-parent is checked against the node's descendant closure before any
edge is written. Levels are longest-path depths:

    Winter (L0)   Sale (L0)
         \\        /
        WinterSale (L1)
              |
      WinterSaleCoats (L2)

A node reachable through two parents has one breadcrumb per route.
"""

import logging
import uuid
from typing import Dict, Iterable, List, Optional, Set

from catalograph.errors import CycleWouldFormError, NotFoundError
from catalograph.hierarchy.engine import HierarchyEngine
from catalograph.hierarchy.traversal import (
    closure,
    compute_levels,
    enumerate_paths,
    find_path,
    is_reachable,
)
from catalograph.models import HierarchyKind, HierarchyNode, LevelRepairResult, NodeTree
from catalograph.utils.slugs import slugify, utc_now

logger = logging.getLogger(__name__)


class DagHierarchy(HierarchyEngine):
    """Multi-parent filter hierarchy with cycle prevention."""

    kind = HierarchyKind.DAG
    noun = "filter"
    nouns = "filters"

    # =========================================================================
    # Cycle checks
    # =========================================================================

    def would_create_cycle(self, node_id: str, candidate_parent_id: str) -> bool:
        """True when candidate_parent_id is node_id itself or one of its descendants."""
        if candidate_parent_id == node_id:
            return True
        return is_reachable(node_id, candidate_parent_id, self.store.children_of,
                            self.settings.max_depth)

    def validate_parents(self, node_id: str, parent_ids: Iterable[str]) -> List[HierarchyNode]:
        """
        Check a proposed parent set for node_id without writing anything.

        Returns the resolved parent nodes. Raises NotFoundError for an unknown
        parent, HierarchyKindMismatchError for a non-filter parent and
        CycleWouldFormError naming the first offending parent.
        """
        node = self.require(node_id)
        parents = [self.require(pid, role="parent filter") for pid in sorted(set(parent_ids))]

        descendants = None
        for parent in parents:
            if parent.id == node.id:
                raise CycleWouldFormError(
                    f'Cannot add "{node.name}" as its own parent',
                    details={"node_id": node.id, "parent_id": parent.id},
                )
            if descendants is None:
                descendants = self.descendant_ids(node.id)
            if parent.id in descendants:
                route = find_path(node.id, parent.id, self.store.children_of,
                                  self.settings.max_depth)
                raise CycleWouldFormError(
                    f'Cannot add "{parent.name}" as parent of "{node.name}" because '
                    f'"{node.name}" is already an ancestor of "{parent.name}"',
                    details={
                        "node_id": node.id,
                        "node_name": node.name,
                        "parent_id": parent.id,
                        "parent_name": parent.name,
                        "path": route or [],
                    },
                )
        logger.debug("Parent set %s for %s passes the cycle check",
                     [p.id for p in parents], node_id)
        return parents

    # =========================================================================
    # Mutations
    # =========================================================================

    def create_node(self, name: str, parent_ids: Iterable[str] = (),
                    featured: bool = False, active: bool = True) -> HierarchyNode:
        """Create a filter under every id in parent_ids (a root when empty)."""
        if not name or not name.strip():
            raise ValueError("Filter name must not be empty")
        parent_ids = sorted(set(parent_ids))

        with self.store.transaction():
            parents = [self.require(pid, role="parent filter") for pid in parent_ids]
            self._check_sibling_names(name, parent_ids)
            level = 1 + max(p.level for p in parents) if parents else 0

            now = utc_now()
            node = self.store.create_node(HierarchyNode(
                id=str(uuid.uuid4()),
                name=name.strip(),
                kind=self.kind,
                slug=slugify(name),
                level=level,
                is_active=active,
                is_featured=featured,
                created_at=now,
                updated_at=now,
            ))
            for parent in parents:
                self.store.add_edge(node.id, parent.id)

        logger.info("Created filter %s (%s) with %d parents at level %d",
                    node.name, node.id, len(parents), level)
        return node

    def update_parents(self, node_id: str, parent_ids: Iterable[str]) -> HierarchyNode:
        """
        Replace every parent edge of node_id with parent_ids.

        All-or-nothing: validation runs before any write, and the edge swap
        plus the level recompute of the node and its descendants share one
        transaction.
        """
        parent_ids = set(parent_ids)
        with self.store.transaction():
            node = self.require(node_id)
            self.validate_parents(node_id, parent_ids)
            self._check_sibling_names(node.name, parent_ids, exclude_id=node_id)

            removed = self.store.remove_parent_edges(node_id)
            for parent_id in sorted(parent_ids):
                self.store.add_edge(node_id, parent_id)
            self.store.update_node(node_id, updated_at=utc_now())
            changed = self._relevel_from(node_id)
            updated = self.store.get_node(node_id)

        logger.info("Re-parented filter %s: %d edges removed, %d added, %d levels updated",
                    node_id, removed, len(parent_ids), changed)
        return updated

    def add_parent(self, node_id: str, parent_id: str) -> HierarchyNode:
        with self.store.transaction():
            parents = self.store.parents_of(node_id)
            return self.update_parents(node_id, parents | {parent_id})

    def remove_parent(self, node_id: str, parent_id: str) -> HierarchyNode:
        with self.store.transaction():
            parents = self.store.parents_of(node_id)
            if parent_id not in parents:
                raise NotFoundError(
                    f"Filter {node_id} has no parent {parent_id}",
                    details={"node_id": node_id, "parent_id": parent_id},
                )
            return self.update_parents(node_id, parents - {parent_id})

    def _relevel_from(self, node_id: str) -> int:
        """Recompute levels for node_id and its descendant closure only."""
        scope = closure([node_id], self.store.children_of, self.settings.max_depth,
                        include_start=True)
        parent_map = {nid: self.store.parents_of(nid) for nid in scope}
        outside = {pid for parents in parent_map.values() for pid in parents} - scope
        fixed = {nid: n.level for nid, n in self.store.get_nodes(outside).items()}

        computed = compute_levels(parent_map, self.settings.max_depth + 1, fixed_levels=fixed)
        if not computed.converged:
            logger.warning("Scoped level recompute from %s left %d nodes unresolved",
                           node_id, len(computed.unresolved))
        return self._write_levels(computed.levels)

    def recompute_levels(self) -> LevelRepairResult:
        """Global longest-path level repair over every filter."""
        with self.store.transaction():
            parent_map = self.store.parent_map(self.kind)
            computed = compute_levels(parent_map, self.settings.max_iterations)
            changed = self._write_levels(computed.levels)

        result = LevelRepairResult(
            iterations=computed.iterations,
            changed=changed,
            total_nodes=len(parent_map),
            converged=computed.converged,
            unresolved=sorted(computed.unresolved),
        )
        if result.converged:
            logger.info("Filter level recompute: %s", result.summary)
        else:
            logger.warning("Filter level recompute: %s", result.summary)
        return result

    # =========================================================================
    # Product tagging
    # =========================================================================

    def attach_product(self, product_id: str, node_id: str) -> bool:
        """Tag a product with a filter; any filter may hold products."""
        self.require(node_id)
        created = self.store.attach(product_id, node_id)
        if created:
            logger.info("Tagged product %s with filter %s", product_id, node_id)
        return created

    def detach_product(self, product_id: str, node_id: str) -> bool:
        self.require(node_id)
        return self.store.detach(product_id, node_id)

    def products_under(self, node_ids: Iterable[str]) -> Set[str]:
        """Products tagged with any of the filters or any of their descendants."""
        node_ids = list(node_ids)
        for node_id in node_ids:
            self.require(node_id)
        scope = closure(node_ids, self.store.children_of, self.settings.max_depth,
                        include_start=True)
        return self.store.products_of(scope)

    # =========================================================================
    # Queries
    # =========================================================================

    def roots(self, active_only: bool = False) -> List[HierarchyNode]:
        roots = [n for n in self.nodes(active_only=active_only) if not self.store.parents_of(n.id)]
        roots.sort(key=lambda n: n.name.lower())
        return roots

    def parent_ids(self, node_id: str) -> Set[str]:
        self.require(node_id)
        return self.store.parents_of(node_id)

    def breadcrumbs(self, node_id: str) -> List[List[HierarchyNode]]:
        """One root-to-node path per distinct route."""
        self.require(node_id)
        routes = enumerate_paths(node_id, self.store.parents_of, self.settings.max_depth)
        ids = {nid for route in routes for nid in route}
        nodes = self.store.get_nodes(ids)
        return [[nodes[nid] for nid in route if nid in nodes] for route in routes]

    def breadcrumbs_for(self, node_ids: Iterable[str]) -> Dict[str, List[List[HierarchyNode]]]:
        return {node_id: self.breadcrumbs(node_id) for node_id in node_ids}

    def as_tree(self, active_only: bool = False) -> List[NodeTree]:
        """
        The whole DAG rendered as a tree of trees.

        A node with several parents appears under each of them, so the
        rendering can repeat subtrees.
        """
        nodes = {n.id: n for n in self.nodes(active_only=active_only)}
        children: Dict[str, List[str]] = {nid: [] for nid in nodes}
        for child_id, parent_id in self.store.edges(self.kind):
            if child_id in nodes and parent_id in nodes:
                children[parent_id].append(child_id)

        def build(node_id: str, trail: Set[str]) -> NodeTree:
            item = NodeTree(node=nodes[node_id])
            if len(trail) > self.settings.max_depth:
                return item
            for child_id in sorted(children[node_id], key=lambda c: nodes[c].name.lower()):
                if child_id not in trail:
                    item.children.append(build(child_id, trail | {child_id}))
            return item

        roots = [n for n in self.roots(active_only=active_only) if n.id in nodes]
        return [build(root.id, {root.id}) for root in roots]
