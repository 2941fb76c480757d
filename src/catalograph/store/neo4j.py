"""
Neo4j-backed GraphStore.

Graph layout:

    (:HierarchyNode:Category {kind: 'TREE', namespace, ...})   tree nodes
    (:HierarchyNode:Filter   {kind: 'DAG', ...})               DAG nodes
    (child)-[:CHILD_OF]->(parent)                               structure
    (:Product {id})-[:HAS_CATEGORY]->(:Category)                tree attachment
    (:Product {id})-[:TAGGED_WITH]->(:Filter)                   DAG attachment

Product nodes are owned by the storefront; this adapter only matches
them by id and never creates or edits them.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from neo4j.exceptions import ServiceUnavailable, SessionExpired, TransientError

from catalograph.errors import NotFoundError, TransientStoreError
from catalograph.models import HierarchyKind, HierarchyNode
from catalograph.store.base import UPDATABLE_FIELDS, GraphStore
from catalograph.utils.neo4j import Neo4jConfig, connect, open_session

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (ServiceUnavailable, SessionExpired, TransientError)

KIND_LABELS = {
    HierarchyKind.TREE: "Category",
    HierarchyKind.DAG: "Filter",
}

ATTACHMENT_TYPES = {
    HierarchyKind.TREE: "HAS_CATEGORY",
    HierarchyKind.DAG: "TAGGED_WITH",
}


CONSTRAINTS = [
    """
    CREATE CONSTRAINT hierarchy_node_id IF NOT EXISTS
    FOR (n:HierarchyNode) REQUIRE n.id IS UNIQUE
    """,
]

INDEXES = [
    # Namespace-scoped listings (roots, leaves, per-namespace trees)
    """
    CREATE INDEX hierarchy_node_kind_namespace IF NOT EXISTS
    FOR (n:HierarchyNode) ON (n.kind, n.namespace)
    """,
    # Duplicate-name reports
    """
    CREATE INDEX hierarchy_node_name IF NOT EXISTS
    FOR (n:HierarchyNode) ON (n.name)
    """,
]


class Neo4jGraphStore(GraphStore):
    """GraphStore over a Neo4j database, one explicit transaction per unit of work."""

    def __init__(self, driver=None, database: str = None, config: Neo4jConfig = None):
        self.config = config or Neo4jConfig.from_env()
        self.database = database or self.config.database
        self._driver = driver
        self._owns_driver = driver is None
        self._local = threading.local()

    @property
    def driver(self):
        if self._driver is None:
            self._driver = connect(self.config)
        return self._driver

    def close(self):
        if self._driver is not None and self._owns_driver:
            self._driver.close()
            self._driver = None

    # =========================================================================
    # Query execution
    # =========================================================================

    @property
    def _tx(self):
        return getattr(self._local, "tx", None)

    @contextmanager
    def transaction(self):
        if self._tx is not None:
            yield self
            return

        session = open_session(self.driver, self.database)
        tx = None
        try:
            tx = session.begin_transaction()
            self._local.tx = tx
            yield self
            tx.commit()
        except _TRANSIENT_ERRORS as exc:
            raise TransientStoreError(
                f"Neo4j transaction failed: {exc}",
                details={"database": self.database},
            ) from exc
        finally:
            self._local.tx = None
            if tx is not None and not tx.closed():
                tx.close()  # rolls back anything not committed
            session.close()

    def run_query(self, cypher: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a read query and return its records as dicts."""
        return self._execute(cypher, params or {}, write=False)

    def run_write(self, cypher: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a write query and return its records as dicts."""
        return self._execute(cypher, params or {}, write=True)

    def _execute(self, cypher: str, params: Dict[str, Any], write: bool) -> List[Dict[str, Any]]:
        try:
            tx = self._tx
            if tx is not None:
                return tx.run(cypher, params).data()

            def work(transaction):
                return transaction.run(cypher, params).data()

            with open_session(self.driver, self.database) as session:
                if write:
                    return session.execute_write(work)
                return session.execute_read(work)
        except _TRANSIENT_ERRORS as exc:
            raise TransientStoreError(
                f"Neo4j query failed: {exc}",
                details={"database": self.database},
            ) from exc

    def ensure_schema(self) -> None:
        """Create constraints and indexes (idempotent)."""
        for statement in CONSTRAINTS + INDEXES:
            self.run_write(statement.strip())
            logger.info("Applied schema statement: %s", statement.split("IF NOT EXISTS")[0].strip())

    # =========================================================================
    # Nodes
    # =========================================================================

    def get_node(self, node_id: str) -> Optional[HierarchyNode]:
        rows = self.run_query("""
            MATCH (n:HierarchyNode {id: $id})
            RETURN n {.*} AS node
        """, {"id": node_id})
        return HierarchyNode.from_record(rows[0]["node"]) if rows else None

    def get_nodes(self, node_ids: Iterable[str]) -> Dict[str, HierarchyNode]:
        rows = self.run_query("""
            UNWIND $ids AS id
            MATCH (n:HierarchyNode {id: id})
            RETURN n {.*} AS node
        """, {"ids": list(node_ids)})
        nodes = [HierarchyNode.from_record(r["node"]) for r in rows]
        return {node.id: node for node in nodes}

    def list_nodes(self, kind: Optional[HierarchyKind] = None,
                   namespace: Optional[str] = None) -> List[HierarchyNode]:
        rows = self.run_query("""
            MATCH (n:HierarchyNode)
            WHERE ($kind IS NULL OR n.kind = $kind)
              AND ($namespace IS NULL OR n.namespace = $namespace)
            RETURN n {.*} AS node
            ORDER BY n.level, n.name, n.id
        """, {"kind": kind.value if kind else None, "namespace": namespace})
        return [HierarchyNode.from_record(r["node"]) for r in rows]

    def create_node(self, node: HierarchyNode) -> HierarchyNode:
        label = KIND_LABELS[node.kind]
        props = node.to_dict()
        rows = self.run_write(f"""
            CREATE (n:HierarchyNode:{label})
            SET n = $props
            RETURN n {{.*}} AS node
        """, {"props": props})
        return HierarchyNode.from_record(rows[0]["node"])

    def update_node(self, node_id: str, **fields) -> Optional[HierarchyNode]:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")
        rows = self.run_write("""
            MATCH (n:HierarchyNode {id: $id})
            SET n += $fields
            RETURN n {.*} AS node
        """, {"id": node_id, "fields": fields})
        return HierarchyNode.from_record(rows[0]["node"]) if rows else None

    def delete_node(self, node_id: str) -> bool:
        rows = self.run_write("""
            MATCH (n:HierarchyNode {id: $id})
            DETACH DELETE n
            RETURN count(*) AS deleted
        """, {"id": node_id})
        return bool(rows and rows[0]["deleted"])

    def set_levels(self, levels: Dict[str, int]) -> int:
        if not levels:
            return 0
        rows = self.run_write("""
            UNWIND $rows AS row
            MATCH (n:HierarchyNode {id: row.id})
            SET n.level = row.level
            RETURN count(n) AS written
        """, {"rows": [{"id": k, "level": v} for k, v in levels.items()]})
        return rows[0]["written"] if rows else 0

    def set_product_counts(self, counts: Dict[str, int]) -> int:
        if not counts:
            return 0
        rows = self.run_write("""
            UNWIND $rows AS row
            MATCH (n:HierarchyNode {id: row.id})
            SET n.product_count = row.count
            RETURN count(n) AS written
        """, {"rows": [{"id": k, "count": v} for k, v in counts.items()]})
        return rows[0]["written"] if rows else 0

    # =========================================================================
    # Edges
    # =========================================================================

    def parents_of(self, node_id: str) -> Set[str]:
        rows = self.run_query("""
            MATCH (:HierarchyNode {id: $id})-[:CHILD_OF]->(p:HierarchyNode)
            RETURN p.id AS id
        """, {"id": node_id})
        return {r["id"] for r in rows}

    def children_of(self, node_id: str) -> Set[str]:
        rows = self.run_query("""
            MATCH (c:HierarchyNode)-[:CHILD_OF]->(:HierarchyNode {id: $id})
            RETURN c.id AS id
        """, {"id": node_id})
        return {r["id"] for r in rows}

    def add_edge(self, child_id: str, parent_id: str) -> bool:
        rows = self.run_query("""
            MATCH (c:HierarchyNode {id: $child_id})
            MATCH (p:HierarchyNode {id: $parent_id})
            OPTIONAL MATCH (c)-[r:CHILD_OF]->(p)
            RETURN count(r) AS existing
        """, {"child_id": child_id, "parent_id": parent_id})
        if not rows:
            raise NotFoundError(
                f"Cannot link {child_id} to {parent_id}: node not found",
                details={"child_id": child_id, "parent_id": parent_id},
            )
        if rows[0]["existing"]:
            return False
        self.run_write("""
            MATCH (c:HierarchyNode {id: $child_id})
            MATCH (p:HierarchyNode {id: $parent_id})
            CREATE (c)-[:CHILD_OF]->(p)
        """, {"child_id": child_id, "parent_id": parent_id})
        return True

    def remove_edge(self, child_id: str, parent_id: str) -> bool:
        rows = self.run_write("""
            MATCH (:HierarchyNode {id: $child_id})-[r:CHILD_OF]->(:HierarchyNode {id: $parent_id})
            DELETE r
            RETURN count(*) AS removed
        """, {"child_id": child_id, "parent_id": parent_id})
        return bool(rows and rows[0]["removed"])

    def remove_parent_edges(self, child_id: str) -> int:
        rows = self.run_write("""
            MATCH (:HierarchyNode {id: $id})-[r:CHILD_OF]->()
            DELETE r
            RETURN count(*) AS removed
        """, {"id": child_id})
        return rows[0]["removed"] if rows else 0

    def edges(self, kind: Optional[HierarchyKind] = None) -> List[Tuple[str, str]]:
        rows = self.run_query("""
            MATCH (c:HierarchyNode)-[:CHILD_OF]->(p:HierarchyNode)
            WHERE $kind IS NULL OR c.kind = $kind
            RETURN c.id AS child_id, p.id AS parent_id
            ORDER BY child_id, parent_id
        """, {"kind": kind.value if kind else None})
        return [(r["child_id"], r["parent_id"]) for r in rows]

    # =========================================================================
    # Product attachments
    # =========================================================================

    def _attachment_type(self, node_id: str) -> str:
        node = self.get_node(node_id)
        if node is None:
            raise NotFoundError(f"Node {node_id} not found", details={"node_id": node_id})
        return ATTACHMENT_TYPES[node.kind]

    def attach(self, product_id: str, node_id: str) -> bool:
        rel = self._attachment_type(node_id)
        rows = self.run_query(f"""
            MATCH (p:Product {{id: $product_id}})
            MATCH (n:HierarchyNode {{id: $node_id}})
            OPTIONAL MATCH (p)-[r:{rel}]->(n)
            RETURN count(r) AS existing
        """, {"product_id": product_id, "node_id": node_id})
        if not rows:
            raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
        if rows[0]["existing"]:
            return False
        self.run_write(f"""
            MATCH (p:Product {{id: $product_id}})
            MATCH (n:HierarchyNode {{id: $node_id}})
            CREATE (p)-[:{rel}]->(n)
        """, {"product_id": product_id, "node_id": node_id})
        return True

    def detach(self, product_id: str, node_id: str) -> bool:
        rows = self.run_write("""
            MATCH (:Product {id: $product_id})-[r:HAS_CATEGORY|TAGGED_WITH]->(:HierarchyNode {id: $node_id})
            DELETE r
            RETURN count(*) AS removed
        """, {"product_id": product_id, "node_id": node_id})
        return bool(rows and rows[0]["removed"])

    def products_of(self, node_ids: Iterable[str]) -> Set[str]:
        rows = self.run_query("""
            UNWIND $ids AS id
            MATCH (p:Product)-[:HAS_CATEGORY|TAGGED_WITH]->(:HierarchyNode {id: id})
            RETURN DISTINCT p.id AS product_id
        """, {"ids": list(node_ids)})
        return {r["product_id"] for r in rows}

    def attachment_counts(self, node_ids: Optional[Iterable[str]] = None) -> Dict[str, int]:
        rows = self.run_query("""
            MATCH (p:Product)-[:HAS_CATEGORY|TAGGED_WITH]->(n:HierarchyNode)
            WHERE $ids IS NULL OR n.id IN $ids
            RETURN n.id AS node_id, count(DISTINCT p) AS count
        """, {"ids": list(node_ids) if node_ids is not None else None})
        return {r["node_id"]: r["count"] for r in rows}

    def nodes_of_product(self, product_id: str) -> Set[str]:
        rows = self.run_query("""
            MATCH (:Product {id: $product_id})-[:HAS_CATEGORY|TAGGED_WITH]->(n:HierarchyNode)
            RETURN n.id AS id
        """, {"product_id": product_id})
        return {r["id"] for r in rows}
