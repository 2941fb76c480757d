"""
Exception taxonomy for hierarchy operations.

Every error carries a human-readable message, a machine-readable
UPPER_SNAKE_CASE code and a details dict with the ids, names and counts
needed to render a user-facing message without a second lookup.
"""

from typing import Any, Mapping, Optional


class HierarchyError(Exception):
    """
    Base exception for hierarchy errors.

    Attributes:
        message: Human-readable description.
        code: Machine-readable, UPPER_SNAKE_CASE error code.
        details: Additional machine context (node ids, names, counts).
    """

    default_code = "HIERARCHY_ERROR"

    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = dict(details or {})

    def __str__(self) -> str:
        return self.message or self.__class__.__name__

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class NotFoundError(HierarchyError):
    """A node, parent or product id does not resolve."""

    default_code = "NOT_FOUND"


class StructuralViolationError(HierarchyError):
    """An operation would break a hierarchy invariant."""

    default_code = "STRUCTURAL_VIOLATION"


class CycleWouldFormError(StructuralViolationError):
    """The requested edge would make a node its own ancestor."""

    default_code = "CYCLE_WOULD_FORM"


class HasChildrenError(StructuralViolationError):
    """The node still has child nodes."""

    default_code = "HAS_CHILDREN"


class HasProductsError(StructuralViolationError):
    """The node still holds product attachments."""

    default_code = "HAS_PRODUCTS"


class NonLeafAttachmentError(StructuralViolationError):
    """Products may only be attached to leaf categories."""

    default_code = "NON_LEAF_ATTACHMENT"


class DuplicateSiblingNameError(StructuralViolationError):
    """A sibling with the same name exists and uniqueness is enforced."""

    default_code = "DUPLICATE_SIBLING_NAME"


class HierarchyKindMismatchError(StructuralViolationError):
    """An operation mixes tree and DAG nodes, or two tree namespaces."""

    default_code = "HIERARCHY_KIND_MISMATCH"


class TransientStoreError(HierarchyError):
    """Underlying storage failure (connectivity, timeout, expired session)."""

    default_code = "TRANSIENT_STORE"


class UnauthorizedError(HierarchyError):
    """Raised by exposing layers before the engine is invoked."""

    default_code = "UNAUTHORIZED"


def plural(count: int, singular: str, many: Optional[str] = None) -> str:
    """Return ``"<count> <noun>"`` with the noun pluralised for count != 1."""
    if count == 1:
        return f"{count} {singular}"
    return f"{count} {many or singular + 's'}"
