"""
Cycle detection for workflow graphs.

Pure graph computation with no I/O, cheap enough to call on every
drag-to-connect gesture in the editor. Edges whose endpoints are not known
nodes are tolerated: an unknown id is simply a leaf with no outgoing edges.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Iterator, Protocol


class EdgeLike(Protocol):
    source: str
    target: str


class WorkflowCycleError(ValueError):
    """Raised when a graph submitted for execution or persistence contains a cycle."""

    def __init__(self, message: str = "Workflow contains cycles. Workflows must be acyclic (DAG)."):
        super().__init__(message)


class _CandidateEdge:
    __slots__ = ("source", "target")

    def __init__(self, source: str, target: str):
        self.source = source
        self.target = target


def _build_adjacency(edges: Iterable[EdgeLike]) -> dict[str, list[str]]:
    adjacency: dict[str, list[str]] = defaultdict(list)
    for edge in edges:
        adjacency[edge.source].append(edge.target)
    return adjacency


def has_cycle(edges: Iterable[EdgeLike]) -> bool:
    """
    True iff the edge set, viewed as a directed graph, contains a cycle.

    Iterative DFS from every unvisited source, tracking the nodes on the
    current path; reaching one of them again means a back edge. An explicit
    stack keeps long chains clear of the interpreter's recursion limit.
    """
    adjacency = _build_adjacency(edges)
    visited: set[str] = set()
    on_path: set[str] = set()

    for root in list(adjacency):
        if root in visited:
            continue
        visited.add(root)
        on_path.add(root)
        stack: list[tuple[str, Iterator[str]]] = [(root, iter(adjacency.get(root, ())))]
        while stack:
            node, neighbors = stack[-1]
            for neighbor in neighbors:
                if neighbor in on_path:
                    return True
                if neighbor not in visited:
                    visited.add(neighbor)
                    on_path.add(neighbor)
                    stack.append((neighbor, iter(adjacency.get(neighbor, ()))))
                    break
            else:
                on_path.discard(node)
                stack.pop()
    return False


def would_create_cycle(source_id: str, target_id: str, existing_edges: Iterable[EdgeLike]) -> bool:
    """Whether adding source_id -> target_id to the edge set would close a cycle."""
    candidate_edges: list[EdgeLike] = [*existing_edges, _CandidateEdge(source_id, target_id)]
    return has_cycle(candidate_edges)


def is_valid_connection(source_id: str, target_id: str, edges: Iterable[EdgeLike]) -> bool:
    if source_id == target_id:
        return False
    return not would_create_cycle(source_id, target_id, edges)


def get_nodes_that_would_create_cycle(
    source_id: str,
    existing_edges: Iterable[EdgeLike],
    all_node_ids: Iterable[str],
) -> set[str]:
    """Every node that cannot be a target for a new edge starting at source_id."""
    edges = list(existing_edges)
    return {
        node_id
        for node_id in all_node_ids
        if node_id != source_id and would_create_cycle(source_id, node_id, edges)
    }


def get_nodes_that_depend_on(target_id: str, existing_edges: Iterable[EdgeLike]) -> set[str]:
    """
    Nodes affected by target_id's incoming wiring, for "highlight affected" UI.

    Starts from the nodes feeding target_id directly and collects everything
    reachable downstream from them (target_id included when it is reachable).
    """
    edges = list(existing_edges)
    adjacency = _build_adjacency(edges)
    affected: set[str] = set()

    stack = [edge.source for edge in edges if edge.target == target_id]
    while stack:
        node = stack.pop()
        if node in affected:
            continue
        affected.add(node)
        stack.extend(n for n in adjacency.get(node, ()) if n not in affected)
    return affected


def ensure_acyclic(edges: Iterable[EdgeLike]) -> None:
    """Validation gate used before persisting or executing a graph."""
    if has_cycle(edges):
        raise WorkflowCycleError()
