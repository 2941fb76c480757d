"""
Engine settings loaded from environment variables.

    CATALOGRAPH_MAX_DEPTH        depth cap for closure/reachability walks (100)
    CATALOGRAPH_MAX_ITERATIONS   ceiling for level recomputation passes (20)
    CATALOGRAPH_UNIQUE_SIBLINGS  reject duplicate sibling names (off)
"""

import os
from dataclasses import dataclass

# Maximum depth for traversing CHILD_OF chains.
# Limits closure walks so corrupted (cyclic) data cannot run away.
MAX_TRAVERSAL_DEPTH = 100

# Maximum number of level recomputation passes before giving up.
MAX_LEVEL_ITERATIONS = 20

_TRUTHY = {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < 1:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class HierarchySettings:
    """Tunables shared by the tree and DAG engines."""

    max_depth: int = MAX_TRAVERSAL_DEPTH
    max_iterations: int = MAX_LEVEL_ITERATIONS
    unique_sibling_names: bool = False

    @classmethod
    def from_env(cls) -> "HierarchySettings":
        return cls(
            max_depth=_env_int("CATALOGRAPH_MAX_DEPTH", MAX_TRAVERSAL_DEPTH),
            max_iterations=_env_int("CATALOGRAPH_MAX_ITERATIONS", MAX_LEVEL_ITERATIONS),
            unique_sibling_names=os.environ.get(
                "CATALOGRAPH_UNIQUE_SIBLINGS", ""
            ).strip().lower() in _TRUTHY,
        )
