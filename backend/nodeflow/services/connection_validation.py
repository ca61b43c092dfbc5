"""
Interactive connection checks run while the user drags an edge.

Returns a human-readable reason for the first rule a connection breaks so the
editor can show it next to the cursor.
"""

from __future__ import annotations

from pydantic import BaseModel

from nodeflow.models.graph import HandleIds, WorkflowEdge, WorkflowNode
from nodeflow.models.node_registry import get_node_spec
from nodeflow.services.dag_validation import would_create_cycle


class ConnectionCheck(BaseModel):
    ok: bool
    reason: str | None = None


def _reject(reason: str) -> ConnectionCheck:
    return ConnectionCheck(ok=False, reason=reason)


def validate_connection(
    source: str | None,
    target: str | None,
    source_handle: str | None,
    target_handle: str | None,
    nodes: list[WorkflowNode],
    edges: list[WorkflowEdge],
) -> ConnectionCheck:
    source_handle = source_handle or HandleIds.OUTPUT
    target_handle = target_handle or HandleIds.INPUT

    if not source or not target:
        return _reject("Invalid connection")
    if source == target:
        return _reject("Can't connect a node to itself")

    # Every node kind exposes a single `output` handle.
    if source_handle != HandleIds.OUTPUT:
        return _reject("Start from an output handle")
    if target_handle == HandleIds.OUTPUT:
        return _reject("Can't connect into an output handle")

    already_connected = any(
        e.target == target and (e.target_handle or HandleIds.INPUT) == target_handle
        for e in edges
    )
    if already_connected:
        return _reject("That input is already connected")

    if would_create_cycle(source, target, edges):
        return _reject("That connection would create a cycle")

    node_by_id = {n.id: n for n in nodes}
    source_node = node_by_id.get(source)
    target_node = node_by_id.get(target)
    source_spec = get_node_spec(source_node.type if source_node else None)
    target_spec = get_node_spec(target_node.type if target_node else None)

    source_kind = source_spec.output_kind if source_spec else None
    target_kind = target_spec.input_kind(target_handle) if target_spec else None
    if source_kind is None or target_kind is None:
        return _reject("Incompatible connection")

    if target_kind == "number":
        # Numeric inputs are parsed from text produced upstream.
        if source_kind != "text":
            return _reject("This input expects a number")
        return ConnectionCheck(ok=True)

    if source_kind != target_kind:
        return _reject("Incompatible connection")
    return ConnectionCheck(ok=True)
