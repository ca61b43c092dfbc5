"""
Workflow runner.

Takes a node/edge graph, rejects cycles, orders the nodes, resolves each
node's inputs from upstream outputs, dispatches to the node executor and
returns every per-node result plus a rolled-up run status.

Key concepts:
- Node-level failures never abort a run; every requested node ends up with a
  result (success, failed or skipped).
- A node whose direct upstream dependency failed or was skipped is skipped
  without being executed. Running layers in order makes this transitive.
- Each call owns its outputs/status maps; nothing is shared between runs.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping
from uuid import uuid4

from nodeflow import config
from nodeflow.models.execution import (
    SKIPPED_DEPENDENCY_MESSAGE,
    UNSCHEDULED_MESSAGE,
    ExecutionResult,
    NodeStatus,
    RunStatus,
    WorkflowRunResult,
)
from nodeflow.models.graph import WorkflowEdge, WorkflowNode
from nodeflow.services.dag_validation import ensure_acyclic
from nodeflow.services.node_executor import execute_node
from nodeflow.services.workflow_graph import build_execution_layers, get_node_inputs, plan_execution

logger = logging.getLogger(__name__)

NODE_NOT_FOUND_MESSAGE = "Node not found"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def aggregate_run_status(results: Iterable[ExecutionResult]) -> RunStatus:
    """
    Roll per-node statuses up into a run status.

    success: every node succeeded (including an empty run)
    failed: no node succeeded
    partial: anything in between
    """
    statuses = [r.status for r in results]
    if all(s == "success" for s in statuses):
        return "success"
    if not any(s == "success" for s in statuses):
        return "failed"
    return "partial"


def _select_nodes(nodes: list[WorkflowNode], selected_node_ids: Iterable[str] | None) -> list[WorkflowNode]:
    if selected_node_ids is None:
        return list(nodes)
    selected = set(selected_node_ids)
    return [n for n in nodes if n.id in selected]


def _has_failed_dependency(node_id: str, edges: list[WorkflowEdge], statuses: Mapping[str, str]) -> bool:
    return any(
        statuses.get(e.source) in ("failed", "skipped")
        for e in edges
        if e.target == node_id
    )


def _immediate_result(
    node_id: str,
    node_type: str | None,
    status: NodeStatus,
    error: str,
    inputs: dict[str, Any] | None = None,
) -> ExecutionResult:
    now = _now()
    return ExecutionResult(
        node_id=node_id,
        node_type=node_type,
        status=status,
        input=inputs or {},
        error=error,
        duration_ms=0,
        started_at=now,
        completed_at=now,
    )


async def _run_node(
    node: WorkflowNode,
    nodes: list[WorkflowNode],
    edges: list[WorkflowEdge],
    outputs: Mapping[str, Any],
    statuses: Mapping[str, str],
) -> ExecutionResult:
    """Resolve inputs, apply the skip rule, then execute."""
    inputs = get_node_inputs(node.id, nodes, edges, outputs)

    if _has_failed_dependency(node.id, edges, statuses):
        logger.info("Skipping node %s: upstream dependency failed", node.id)
        return _immediate_result(node.id, node.type, "skipped", SKIPPED_DEPENDENCY_MESSAGE, inputs)

    started_at = _now()
    node_start = time.perf_counter()
    outcome = await execute_node(node, inputs)
    elapsed_ms = int((time.perf_counter() - node_start) * 1000)

    return ExecutionResult(
        node_id=node.id,
        node_type=node.type,
        status="success" if outcome.ok else "failed",
        input=inputs,
        output=outcome.output if outcome.ok else None,
        error=outcome.error,
        duration_ms=elapsed_ms,
        started_at=started_at,
        completed_at=_now(),
    )


def _record(result: ExecutionResult, outputs: dict[str, Any], statuses: dict[str, NodeStatus]) -> None:
    statuses[result.node_id] = result.status
    if result.status == "success":
        outputs[result.node_id] = result.output


def _unscheduled_results(unscheduled: list[WorkflowNode]) -> list[ExecutionResult]:
    if unscheduled:
        logger.warning(
            "%d node(s) could not be scheduled: %s",
            len(unscheduled),
            ", ".join(n.id for n in unscheduled),
        )
    return [
        _immediate_result(n.id, n.type, "failed", UNSCHEDULED_MESSAGE)
        for n in unscheduled
    ]


def _finish_run(
    run_id: str,
    node_results: list[ExecutionResult],
    started_at: datetime,
    run_start: float,
) -> WorkflowRunResult:
    result = WorkflowRunResult(
        run_id=run_id,
        status=aggregate_run_status(node_results),
        node_results=node_results,
        total_duration_ms=int((time.perf_counter() - run_start) * 1000),
        started_at=started_at,
        completed_at=_now(),
    )
    logger.info(
        "Run %s finished with status %s (%d node(s), %dms)",
        run_id,
        result.status,
        len(node_results),
        result.total_duration_ms,
    )
    return result


async def execute_workflow(
    nodes: list[WorkflowNode],
    edges: list[WorkflowEdge],
    selected_node_ids: Iterable[str] | None = None,
) -> WorkflowRunResult:
    """
    Run the (selected) nodes one at a time in topological order.

    Raises WorkflowCycleError before anything executes if the graph is cyclic.
    """
    ensure_acyclic(edges)

    run_id = str(uuid4())
    started_at = _now()
    run_start = time.perf_counter()

    to_run = _select_nodes(nodes, selected_node_ids)
    plan = plan_execution(to_run, edges)
    logger.info("Run %s: executing %d node(s) sequentially", run_id, len(plan.order))

    outputs: dict[str, Any] = {}
    statuses: dict[str, NodeStatus] = {}
    node_results: list[ExecutionResult] = []

    for node in plan.order:
        result = await _run_node(node, nodes, edges, outputs, statuses)
        _record(result, outputs, statuses)
        node_results.append(result)

    node_results.extend(_unscheduled_results(plan.unscheduled))
    return _finish_run(run_id, node_results, started_at, run_start)


async def execute_layer(
    nodes: list[WorkflowNode],
    edges: list[WorkflowEdge],
    layer_node_ids: list[str],
    prior_outputs: Mapping[str, Any] | None = None,
    prior_statuses: Mapping[str, str] | None = None,
) -> list[ExecutionResult]:
    """
    Run one layer of mutually independent nodes concurrently.

    `prior_outputs` / `prior_statuses` carry what earlier layers produced.
    Results come back in the order of `layer_node_ids`.
    """
    outputs = dict(prior_outputs or {})
    statuses = dict(prior_statuses or {})
    node_by_id = {n.id: n for n in nodes}
    semaphore = asyncio.Semaphore(config.max_parallel_nodes())

    async def run_one(node_id: str) -> ExecutionResult:
        node = node_by_id.get(node_id)
        if node is None:
            return _immediate_result(node_id, None, "failed", NODE_NOT_FOUND_MESSAGE)
        async with semaphore:
            return await _run_node(node, nodes, edges, outputs, statuses)

    return list(await asyncio.gather(*(run_one(node_id) for node_id in layer_node_ids)))


async def execute_workflow_layered(
    nodes: list[WorkflowNode],
    edges: list[WorkflowEdge],
    selected_node_ids: Iterable[str] | None = None,
) -> WorkflowRunResult:
    """Run the (selected) nodes layer by layer, each layer concurrently."""
    ensure_acyclic(edges)

    run_id = str(uuid4())
    started_at = _now()
    run_start = time.perf_counter()

    to_run = _select_nodes(nodes, selected_node_ids)
    layers = build_execution_layers(to_run, edges)
    logger.info(
        "Run %s: executing %d node(s) in %d layer(s)",
        run_id,
        sum(len(layer) for layer in layers),
        len(layers),
    )

    outputs: dict[str, Any] = {}
    statuses: dict[str, NodeStatus] = {}
    node_results: list[ExecutionResult] = []

    for index, layer in enumerate(layers):
        logger.debug("Run %s: layer %d = %s", run_id, index, [n.id for n in layer])
        layer_results = await execute_layer(nodes, edges, [n.id for n in layer], outputs, statuses)
        for result in layer_results:
            _record(result, outputs, statuses)
        node_results.extend(layer_results)

    layered_ids = {n.id for layer in layers for n in layer}
    node_results.extend(_unscheduled_results([n for n in to_run if n.id not in layered_ids]))
    return _finish_run(run_id, node_results, started_at, run_start)
