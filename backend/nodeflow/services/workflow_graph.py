"""
Scheduling and input resolution over a node/edge graph.

Both schedulers use Kahn's algorithm and only count edges whose endpoints are
both in the given node subset, so "run selected nodes" does not wait on nodes
outside the selection. Ties between equally-ready nodes follow the order of
the input node list.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Mapping

from nodeflow.models.graph import HandleIds, WorkflowEdge, WorkflowNode

logger = logging.getLogger(__name__)


@dataclass
class ExecutionPlan:
    """A total order plus any nodes that could not be placed in it."""

    order: list[WorkflowNode] = field(default_factory=list)
    unscheduled: list[WorkflowNode] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.unscheduled


def _build_dependency_graph(
    nodes: list[WorkflowNode],
    edges: list[WorkflowEdge],
) -> tuple[dict[str, int], dict[str, list[str]]]:
    """
    Returns:
        in_degree: number of incoming in-subset edges per node
        adjacency: node -> downstream nodes, one entry per edge
    """
    in_degree: dict[str, int] = {n.id: 0 for n in nodes}
    adjacency: dict[str, list[str]] = {n.id: [] for n in nodes}

    for edge in edges:
        if edge.source not in in_degree or edge.target not in in_degree:
            continue
        adjacency[edge.source].append(edge.target)
        in_degree[edge.target] += 1

    return in_degree, adjacency


def plan_execution(nodes: list[WorkflowNode], edges: list[WorkflowEdge]) -> ExecutionPlan:
    """
    Kahn's algorithm with a FIFO queue seeded in node-list order.

    Nodes left with a positive in-degree when the queue drains (a cycle that
    slipped past validation) are reported in `unscheduled` instead of looping.
    """
    in_degree, adjacency = _build_dependency_graph(nodes, edges)
    node_by_id = {n.id: n for n in nodes}

    queue: deque[str] = deque(n.id for n in nodes if in_degree[n.id] == 0)
    order: list[WorkflowNode] = []
    placed: set[str] = set()

    while queue:
        node_id = queue.popleft()
        if node_id in placed:
            continue
        placed.add(node_id)
        order.append(node_by_id[node_id])
        for neighbor in adjacency[node_id]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)

    unscheduled = [n for n in nodes if n.id not in placed]
    return ExecutionPlan(order=order, unscheduled=unscheduled)


def build_execution_order(nodes: list[WorkflowNode], edges: list[WorkflowEdge]) -> list[WorkflowNode]:
    """Total order in which every edge u -> v has u before v."""
    plan = plan_execution(nodes, edges)
    if not plan.complete:
        logger.warning(
            "Execution order is partial; %d node(s) could not be scheduled: %s",
            len(plan.unscheduled),
            ", ".join(n.id for n in plan.unscheduled),
        )
    return plan.order


def build_execution_layers(
    nodes: list[WorkflowNode],
    edges: list[WorkflowEdge],
) -> list[list[WorkflowNode]]:
    """
    Partition nodes into layers that can each run concurrently.

    Layer k holds exactly the nodes whose in-subset dependencies all sit in
    layers 0..k-1. Production stops early if no remaining node is ready.
    """
    in_degree, adjacency = _build_dependency_graph(nodes, edges)
    remaining = list(nodes)
    layers: list[list[WorkflowNode]] = []

    while remaining:
        current = [n for n in remaining if in_degree[n.id] == 0]
        if not current:
            logger.warning(
                "Stopping layer production with %d node(s) unresolved: %s",
                len(remaining),
                ", ".join(n.id for n in remaining),
            )
            break

        layers.append(current)
        current_ids = {n.id for n in current}
        remaining = [n for n in remaining if n.id not in current_ids]
        for node in current:
            for neighbor in adjacency[node.id]:
                in_degree[neighbor] -= 1

    return layers


def get_node_inputs(
    node_id: str,
    nodes: list[WorkflowNode],
    edges: list[WorkflowEdge],
    prior_outputs: Mapping[str, Any],
) -> dict[str, Any]:
    """
    Resolve a node's inputs from upstream outputs, keyed by target handle.

    An edge without a target handle binds to the generic `input` key. Upstream
    nodes that have not produced an output (not yet run, failed, skipped) are
    left out; deciding whether that is fatal is the executor's job.
    """
    node_ids = {n.id for n in nodes}
    resolved: dict[str, Any] = {}

    for edge in edges:
        if edge.target != node_id:
            continue
        if edge.source not in node_ids:
            continue
        if edge.source not in prior_outputs:
            continue
        resolved[edge.target_handle or HandleIds.INPUT] = prior_outputs[edge.source]

    return resolved
