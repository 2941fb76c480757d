"""
Maintenance jobs: parent-category product cleanup and YAML seeding.

Usage:
    from catalograph.hierarchy.maintenance import cleanup_parent_products, seed_from_yaml

    plan = cleanup_parent_products(store)              # dry run
    plan = cleanup_parent_products(store, apply=True)  # apply the plan
    seed_from_yaml(store, "catalog.yaml")

Seed file format:
    tree:
      ladies:
        - name: Clothing
          featured: true
          children:
            - name: Tops
              children:
                - name: Shirts
    dag:
      - name: Winter
      - name: Sale
      - name: Winter Sale
        parents: [Winter, Sale]
        featured: true
"""

import logging
from typing import Any, Dict, List, Optional

import yaml

from catalograph.config import HierarchySettings
from catalograph.errors import NotFoundError
from catalograph.hierarchy.dag import DagHierarchy
from catalograph.hierarchy.tree import TreeHierarchy
from catalograph.models import HierarchyKind
from catalograph.store.base import GraphStore

logger = logging.getLogger(__name__)


# =============================================================================
# Parent-category product cleanup
# =============================================================================

def plan_parent_cleanup(store: GraphStore,
                        settings: Optional[HierarchySettings] = None) -> Dict[str, List[Dict]]:
    """
    Plan a fix for every product attached directly to a category with children.

    - drop: the product already sits on a leaf below the parent
    - move: the parent's subtree has exactly one leaf to move it to
    - manual_review: several candidate leaves and no way to choose
    """
    tree = TreeHierarchy(store, settings)
    plan = {"drop": [], "move": [], "manual_review": []}

    counts = store.attachment_counts()
    for node in tree.nodes():
        if node.id not in counts or not store.children_of(node.id):
            continue
        subtree = tree.descendant_ids(node.id)
        leaves = sorted(
            (n for n in store.get_nodes(subtree).values() if not store.children_of(n.id)),
            key=lambda n: n.name.lower(),
        )
        for product_id in sorted(store.products_of([node.id])):
            entry = {"product_id": product_id, "from_id": node.id, "from_name": node.name}
            on_leaves = sorted({leaf.id for leaf in leaves} & store.nodes_of_product(product_id))
            if on_leaves:
                plan["drop"].append({**entry, "kept_on": on_leaves})
            elif len(leaves) == 1:
                plan["move"].append({**entry, "to_id": leaves[0].id, "to_name": leaves[0].name})
            else:
                plan["manual_review"].append({
                    **entry,
                    "candidates": [{"id": leaf.id, "name": leaf.name} for leaf in leaves],
                })
    return plan


def cleanup_parent_products(store: GraphStore, apply: bool = False,
                            settings: Optional[HierarchySettings] = None) -> Dict[str, Any]:
    """Plan, and with apply=True carry out, the parent-category cleanup."""
    plan = plan_parent_cleanup(store, settings)
    result = {**plan, "applied": False}
    if not apply:
        return result

    with store.transaction():
        for item in plan["drop"]:
            store.detach(item["product_id"], item["from_id"])
        for item in plan["move"]:
            store.detach(item["product_id"], item["from_id"])
            store.attach(item["product_id"], item["to_id"])
    result["applied"] = True
    logger.info("Parent cleanup applied: %d dropped, %d moved, %d left for review",
                len(plan["drop"]), len(plan["move"]), len(plan["manual_review"]))
    return result


# =============================================================================
# Seeding
# =============================================================================

def _existing_child(tree: TreeHierarchy, name: str, namespace: str,
                    parent_id: Optional[str]) -> Optional[str]:
    if parent_id:
        candidates = tree.children(parent_id)
    else:
        candidates = tree.roots(namespace)
    for node in candidates:
        if node.name.lower() == name.strip().lower():
            return node.id
    return None


def _seed_tree_items(tree: TreeHierarchy, namespace: str, items: List[Dict],
                     parent_id: Optional[str], counts: Dict[str, int]) -> None:
    for item in items or []:
        name = item["name"]
        node_id = _existing_child(tree, name, namespace, parent_id)
        if node_id is None:
            node_id = tree.create_node(
                name, namespace, parent_id,
                featured=bool(item.get("featured", False)),
                active=bool(item.get("active", True)),
            ).id
            counts["created"] += 1
        else:
            counts["existing"] += 1
        _seed_tree_items(tree, namespace, item.get("children"), node_id, counts)


def seed(store: GraphStore, data: Dict[str, Any],
         settings: Optional[HierarchySettings] = None) -> Dict[str, Dict[str, int]]:
    """
    Create the categories and filters described by a seed document.

    Nodes that already exist (same name in the same place) are reused, so
    seeding the same document twice creates nothing the second time.
    """
    tree = TreeHierarchy(store, settings)
    dag = DagHierarchy(store, settings)
    summary = {
        HierarchyKind.TREE.value: {"created": 0, "existing": 0},
        HierarchyKind.DAG.value: {"created": 0, "existing": 0},
    }

    with store.transaction():
        for namespace, items in (data.get("tree") or {}).items():
            _seed_tree_items(tree, namespace, items, None, summary[HierarchyKind.TREE.value])

        by_name = {n.name.lower(): n.id for n in dag.nodes()}
        counts = summary[HierarchyKind.DAG.value]
        for item in data.get("dag") or []:
            key = item["name"].strip().lower()
            if key in by_name:
                counts["existing"] += 1
                continue
            parent_ids = []
            for parent_name in item.get("parents") or []:
                parent_id = by_name.get(parent_name.strip().lower())
                if parent_id is None:
                    raise NotFoundError(
                        f'Filter "{item["name"]}" lists unknown parent "{parent_name}"',
                        code="PARENT_NOT_FOUND",
                        details={"name": item["name"], "parent": parent_name},
                    )
                parent_ids.append(parent_id)
            node = dag.create_node(item["name"], parent_ids,
                                   featured=bool(item.get("featured", False)),
                                   active=bool(item.get("active", True)))
            by_name[key] = node.id
            counts["created"] += 1

    logger.info("Seeded hierarchies: %s", summary)
    return summary


def seed_from_yaml(store: GraphStore, path: str,
                   settings: Optional[HierarchySettings] = None) -> Dict[str, Dict[str, int]]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Seed file {path} must contain a mapping with 'tree' and/or 'dag'")
    return seed(store, data, settings)
