"""
Cycle detection for the product composition graph.

An edge ``parent -> component`` means "parent contains component". Before
such an edge is stored, the graph must be checked so that no product ends up
(directly or indirectly) containing itself; recursive aggregation over a
cyclic graph would never terminate.

Two breadth-first reachability checks are run, either of which proves a
cycle:

- forward: walk the components of ``component`` recursively; reaching
  ``parent`` means the component already contains its prospective parent
- backward: walk the containers of ``parent`` recursively; reaching
  ``component`` means the component is already an ancestor of the parent

Neighbours are fetched one node at a time through the edge view, so only
the part of the graph reachable from the candidate edge is ever loaded.
Both walks keep a visited set and therefore terminate even if stored data
is already malformed.

This module never writes and never raises domain errors. Storage errors from
the edge view propagate unchanged; callers must treat them as "unknown, do
not proceed".
"""

from collections import deque
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from src.services.logging_utils import get_service_logger

logger = get_service_logger(__name__)


class EdgeView(Protocol):
    """Read-only access to a tenant's edges, one node at a time."""

    def children_of(self, product_id: int) -> List[int]:
        ...

    def parents_of(self, product_id: int) -> List[int]:
        ...


class InMemoryEdgeView:
    """
    EdgeView over an explicit list of (parent, component) pairs.

    With ``base`` set, the pairs are layered on top of another view; bulk
    imports use this to check each pending edge against the stored graph
    plus the edges accepted earlier in the same batch.
    """

    def __init__(self, edges: Iterable[Tuple[int, int]] = (), base: Optional[EdgeView] = None):
        self._base = base
        self._children: Dict[int, List[int]] = {}
        self._parents: Dict[int, List[int]] = {}
        for parent_id, component_id in edges:
            self.add(parent_id, component_id)

    def add(self, parent_id: int, component_id: int) -> None:
        self._children.setdefault(parent_id, []).append(component_id)
        self._parents.setdefault(component_id, []).append(parent_id)

    def children_of(self, product_id: int) -> List[int]:
        stored = self._base.children_of(product_id) if self._base is not None else []
        return stored + self._children.get(product_id, [])

    def parents_of(self, product_id: int) -> List[int]:
        stored = self._base.parents_of(product_id) if self._base is not None else []
        return stored + self._parents.get(product_id, [])


def _search(
    start: int,
    target: int,
    neighbours: Callable[[int], List[int]],
) -> Optional[List[int]]:
    """
    Breadth-first search from ``start`` to ``target``.

    Returns:
        Node path from start to target (inclusive), or None if unreachable
    """
    came_from: Dict[int, Optional[int]] = {start: None}
    queue = deque([start])

    while queue:
        current = queue.popleft()
        for nxt in neighbours(current):
            if nxt in came_from:
                continue
            came_from[nxt] = current
            if nxt == target:
                path = [nxt]
                while came_from[path[-1]] is not None:
                    path.append(came_from[path[-1]])
                path.reverse()
                return path
            queue.append(nxt)

    logger.debug(f"Visited {len(came_from)} products from {start} without reaching {target}")
    return None


def find_cycle_path(parent_id: int, component_id: int, edges: EdgeView) -> Optional[List[int]]:
    """
    Find the cycle that adding ``parent_id -> component_id`` would close.

    Args:
        parent_id: Prospective containing product
        component_id: Prospective component
        edges: Read-only view of the tenant's existing edges

    Returns:
        The closing path ``[parent_id, component_id, ..., parent_id]``, or
        None when the edge is safe to add. A self-reference yields
        ``[parent_id, parent_id]``.
    """
    if parent_id == component_id:
        return [parent_id, component_id]

    # Forward: does component already contain parent, at any depth?
    below = _search(component_id, parent_id, edges.children_of)
    if below is not None:
        return [parent_id] + below

    # Backward: is component already an ancestor of parent?
    above = _search(parent_id, component_id, edges.parents_of)
    if above is not None:
        # above runs parent -> ... -> component along "is contained by";
        # reversed it is component -> ... -> parent along "contains"
        return [parent_id] + list(reversed(above))

    return None


def would_create_cycle(parent_id: int, component_id: int, edges: EdgeView) -> bool:
    """
    Decide whether adding ``parent_id -> component_id`` would create a cycle.

    Args:
        parent_id: Prospective containing product
        component_id: Prospective component
        edges: Read-only view of the tenant's existing edges

    Returns:
        True to reject (self-reference or cycle), False to accept
    """
    return find_cycle_path(parent_id, component_id, edges) is not None


def find_existing_cycles(edges: Iterable[Tuple[int, int]]) -> List[List[int]]:
    """
    Report cycles already present in a set of stored edges.

    Iterative depth-first search with white/grey/black marking; each back
    edge found yields one cycle. Self-loops are reported as ``[n, n]``.

    Args:
        edges: (parent, component) pairs

    Returns:
        List of cycles, each a node path that starts and ends on the same node
    """
    adjacency: Dict[int, List[int]] = {}
    for parent_id, component_id in edges:
        adjacency.setdefault(parent_id, []).append(component_id)
        adjacency.setdefault(component_id, [])

    white, grey, black = 0, 1, 2
    colour: Dict[int, int] = {node: white for node in adjacency}
    cycles: List[List[int]] = []

    for root in sorted(adjacency):
        if colour[root] != white:
            continue
        colour[root] = grey
        stack: List[Tuple[int, Iterable[int]]] = [(root, iter(adjacency[root]))]
        on_path: List[int] = [root]

        while stack:
            node, children = stack[-1]
            advanced = False
            for child in children:
                if colour[child] == white:
                    colour[child] = grey
                    stack.append((child, iter(adjacency[child])))
                    on_path.append(child)
                    advanced = True
                    break
                if colour[child] == grey:
                    start = on_path.index(child)
                    cycles.append(on_path[start:] + [child])
            if not advanced:
                colour[node] = black
                stack.pop()
                on_path.pop()

    return cycles