"""
Store-agnostic graph algorithms over CHILD_OF edges.

All walks take a ``neighbours(node_id) -> iterable of ids`` callable so the
same code runs over a live store (``store.parents_of`` / ``store.children_of``)
or over an in-memory snapshot (``parent_map.get``). Every walk is bounded by
``max_depth`` so corrupted, cyclic data cannot make it run forever.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set

Neighbours = Callable[[str], Iterable[str]]


def closure(start_ids: Iterable[str], neighbours: Neighbours, max_depth: int,
            include_start: bool = False) -> Set[str]:
    """
    Breadth-first closure: every node reachable in 1..max_depth hops.

    With include_start=True the start nodes themselves are part of the
    result (0..max_depth hops).
    """
    start = list(start_ids)
    seen: Set[str] = set(start)
    found: Set[str] = set(start) if include_start else set()
    frontier = deque((node_id, 0) for node_id in start)

    while frontier:
        node_id, depth = frontier.popleft()
        if depth >= max_depth:
            continue
        for nxt in neighbours(node_id) or ():
            if nxt not in found:
                found.add(nxt)
            if nxt not in seen:
                seen.add(nxt)
                frontier.append((nxt, depth + 1))
    return found


def find_path(source: str, target: str, neighbours: Neighbours,
              max_depth: int) -> Optional[List[str]]:
    """
    Shortest path from source to target (1..max_depth hops), or None.

    The returned list starts with source and ends with target. When source
    equals target this finds the shortest cycle through it.
    """
    previous: Dict[str, str] = {}
    seen: Set[str] = set()
    frontier = deque([(source, 0)])

    while frontier:
        node_id, depth = frontier.popleft()
        if depth >= max_depth:
            continue
        for nxt in neighbours(node_id) or ():
            if nxt == target:
                path = [target, node_id]
                while path[-1] != source:
                    path.append(previous[path[-1]])
                return list(reversed(path))
            if nxt not in seen and nxt != source:
                seen.add(nxt)
                previous[nxt] = node_id
                frontier.append((nxt, depth + 1))
    return None


def is_reachable(source: str, target: str, neighbours: Neighbours, max_depth: int) -> bool:
    return find_path(source, target, neighbours, max_depth) is not None


def enumerate_paths(node_id: str, parents: Neighbours, max_depth: int) -> List[List[str]]:
    """
    Every distinct root-to-node route, one list per route.

    A DAG node with two parents that share an ancestor yields two paths.
    Routes that would revisit a node (corrupted cyclic data) or exceed
    max_depth hops are dropped.
    """
    paths: List[List[str]] = []

    def walk(current: str, trail: List[str]) -> None:
        ups = [p for p in (parents(current) or ()) if p not in trail]
        if not ups:
            if not list(parents(current) or ()):
                paths.append(list(reversed(trail)))
            return
        if len(trail) > max_depth:
            return
        for parent_id in sorted(ups):
            trail.append(parent_id)
            walk(parent_id, trail)
            trail.pop()

    walk(node_id, [node_id])
    return paths


@dataclass
class LevelComputation:
    """Levels derived by topological layering."""

    levels: Dict[str, int] = field(default_factory=dict)
    iterations: int = 0
    unresolved: Set[str] = field(default_factory=set)

    @property
    def converged(self) -> bool:
        return not self.unresolved


def compute_levels(parent_map: Mapping[str, Iterable[str]], max_iterations: int,
                   fixed_levels: Optional[Mapping[str, int]] = None) -> LevelComputation:
    """
    Longest-path levels for every node in parent_map.

    level = 0 for a node without parents, else 1 + max(parent levels).
    Parents outside parent_map keep the level given in fixed_levels (the
    scoped recompute after a re-parent uses this for untouched ancestors).

    Nodes are processed in topological layers: a node is resolved in the
    pass after its last in-scope parent. Each pass is one iteration and
    max_iterations caps them. Nodes on a cycle never become ready and end
    up in ``unresolved`` together with anything cut off by the ceiling.
    """
    fixed_levels = fixed_levels or {}
    scope = set(parent_map)
    pending: Dict[str, int] = {}
    children: Dict[str, List[str]] = {node_id: [] for node_id in scope}

    for node_id, parents in parent_map.items():
        in_scope = [p for p in set(parents) if p in scope]
        pending[node_id] = len(in_scope)
        for parent_id in in_scope:
            children[parent_id].append(node_id)

    result = LevelComputation()
    layer = sorted(node_id for node_id, count in pending.items() if count == 0)

    while layer:
        if result.iterations >= max_iterations:
            break
        result.iterations += 1
        next_layer = []
        for node_id in layer:
            parent_levels = []
            for parent_id in parent_map[node_id]:
                if parent_id in result.levels:
                    parent_levels.append(result.levels[parent_id])
                elif parent_id in fixed_levels:
                    parent_levels.append(fixed_levels[parent_id])
            result.levels[node_id] = 1 + max(parent_levels) if parent_levels else 0
            for child_id in children[node_id]:
                pending[child_id] -= 1
                if pending[child_id] == 0:
                    next_layer.append(child_id)
        layer = sorted(next_layer)

    result.unresolved = scope - set(result.levels)
    return result
