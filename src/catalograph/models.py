"""
Data model for the classification hierarchies.

A HierarchyNode is either a TREE node (a category, scoped by a namespace
such as "ladies" or "gents") or a DAG node (a filter tag that may have
several parents). Edges and product attachments live in the store and are
not held on the node objects.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class HierarchyKind(str, Enum):
    """The two hierarchy structures maintained by the engine."""

    TREE = "TREE"
    DAG = "DAG"

    @classmethod
    def parse(cls, value: Any) -> "HierarchyKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValueError(f"Unknown hierarchy kind: {value!r} (expected TREE or DAG)")


@dataclass
class HierarchyNode:
    """One classification unit: a category or a filter tag."""

    id: str
    name: str
    kind: HierarchyKind
    namespace: Optional[str] = None
    slug: str = ""
    level: int = 0
    is_active: bool = True
    is_featured: bool = False
    product_count: int = 0
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_tree(self) -> bool:
        return self.kind is HierarchyKind.TREE

    @property
    def is_dag(self) -> bool:
        return self.kind is HierarchyKind.DAG

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "HierarchyNode":
        """Build a node from a property map returned by the store."""
        return cls(
            id=record["id"],
            name=record["name"],
            kind=HierarchyKind.parse(record["kind"]),
            namespace=record.get("namespace"),
            slug=record.get("slug") or "",
            level=int(record.get("level") or 0),
            is_active=bool(record.get("is_active", True)),
            is_featured=bool(record.get("is_featured", False)),
            product_count=int(record.get("product_count") or 0),
            created_at=str(record.get("created_at") or ""),
            updated_at=str(record.get("updated_at") or ""),
        )


@dataclass
class NodeTree:
    """A node with its children expanded, used for tree renderings."""

    node: HierarchyNode
    children: List["NodeTree"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = self.node.to_dict()
        data["children"] = [child.to_dict() for child in self.children]
        return data


@dataclass
class LeafValidation:
    """Outcome of a leaf check before attaching a product."""

    valid: bool
    node_id: str
    node_name: Optional[str] = None
    child_count: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LevelRepairResult:
    """Summary of one level recomputation run."""

    iterations: int = 0
    changed: int = 0
    total_nodes: int = 0
    converged: bool = True
    unresolved: List[str] = field(default_factory=list)

    @property
    def summary(self) -> str:
        if self.total_nodes == 0:
            return "No nodes found; nothing to recalculate"
        text = (
            f"Processed {self.total_nodes} nodes in {self.iterations} iterations, "
            f"updated {self.changed} levels"
        )
        if not self.converged:
            text += (
                f"; stopped before reaching a fixed point "
                f"({len(self.unresolved)} nodes unresolved, possible cycle)"
            )
        return text

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["summary"] = self.summary
        return data


class Severity(str, Enum):
    """Severity of an audit finding."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class AuditFinding:
    """One problem reported by the integrity auditor."""

    node_id: str
    node_name: str
    severity: Severity
    check: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "node_name": self.node_name,
            "severity": self.severity.value,
            "check": self.check,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class AuditReport:
    """Structured result of an audit pass."""

    timestamp: str
    findings: List[AuditFinding] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)

    def by_severity(self, severity: Severity) -> List[AuditFinding]:
        return [f for f in self.findings if f.severity is severity]

    @property
    def errors(self) -> List[AuditFinding]:
        return self.by_severity(Severity.ERROR)

    @property
    def warnings(self) -> List[AuditFinding]:
        return self.by_severity(Severity.WARNING)

    @property
    def status(self) -> str:
        if self.errors:
            return "unhealthy"
        if self.warnings:
            return "degraded"
        return "healthy"

    @property
    def summary(self) -> Dict[str, Any]:
        by_check: Dict[str, int] = {}
        for finding in self.findings:
            by_check[finding.check] = by_check.get(finding.check, 0) + 1
        return {
            "errors": len(self.errors),
            "warnings": len(self.warnings),
            "info": len(self.by_severity(Severity.INFO)),
            "by_check": by_check,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "summary": self.summary,
            "stats": self.stats,
            "findings": [f.to_dict() for f in self.findings],
        }
