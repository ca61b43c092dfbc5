"""
Graph model: the node/edge shapes exchanged between the editor and the engine.

Nodes and edges are owned by the caller (editor state or a request payload).
The engine only reads them for the duration of one call and never mutates them.
Extra editor fields (position, style, selection flags) are kept untouched so a
graph survives an export/import round trip.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

WORKFLOW_VERSION = "1.0.0"


class HandleIds:
    INPUT = "input"
    OUTPUT = "output"
    PROMPT = "prompt"
    SYSTEM_PROMPT = "system_prompt"
    USER_MESSAGE = "user_message"
    IMAGES = "images"
    IMAGE = "image"
    IMAGE_1 = "image_1"
    IMAGE_URL = "image_url"
    VIDEO_URL = "video_url"
    X_PERCENT = "x_percent"
    Y_PERCENT = "y_percent"
    WIDTH_PERCENT = "width_percent"
    HEIGHT_PERCENT = "height_percent"
    TIMESTAMP = "timestamp"


class WorkflowNode(BaseModel):
    """
    A node on the canvas.

    `type` is kept as a free string rather than a closed set so a graph carrying
    an unknown kind can still be scheduled; the executor reports it as a
    node-level failure.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    type: str
    data: dict[str, Any] = Field(default_factory=dict)


class WorkflowEdge(BaseModel):
    """Directed data dependency: source's `source_handle` feeds target's `target_handle`."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    source: str
    target: str
    source_handle: str | None = Field(default=None, alias="sourceHandle")
    target_handle: str | None = Field(default=None, alias="targetHandle")


class WorkflowJSON(BaseModel):
    """Portable export format: `{nodes, edges, version}`."""

    nodes: list[WorkflowNode] = Field(default_factory=list)
    edges: list[WorkflowEdge] = Field(default_factory=list)
    version: str = WORKFLOW_VERSION

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def parse_nodes(raw_nodes: list[Any]) -> list[WorkflowNode]:
    return [
        n if isinstance(n, WorkflowNode) else WorkflowNode.model_validate(n)
        for n in raw_nodes
    ]


def parse_edges(raw_edges: list[Any]) -> list[WorkflowEdge]:
    return [
        e if isinstance(e, WorkflowEdge) else WorkflowEdge.model_validate(e)
        for e in raw_edges
    ]


def export_workflow(
    nodes: list[WorkflowNode],
    edges: list[WorkflowEdge],
    version: str = WORKFLOW_VERSION,
) -> WorkflowJSON:
    """Snapshot a graph into the portable format. Inputs are copied, not shared."""
    return WorkflowJSON(
        nodes=[n.model_copy(deep=True) for n in nodes],
        edges=[e.model_copy(deep=True) for e in edges],
        version=version,
    )


def import_workflow(payload: WorkflowJSON | dict[str, Any] | str) -> WorkflowJSON:
    """
    Parse an exported workflow.

    Accepts the model itself, a dict, or a JSON string. A missing version
    defaults to the current one. Cyclic graphs are rejected with
    WorkflowCycleError before they reach the caller.
    """
    from nodeflow.services.dag_validation import ensure_acyclic

    if isinstance(payload, str):
        payload = json.loads(payload)
    if isinstance(payload, dict):
        payload = {**payload}
        if not payload.get("version"):
            payload["version"] = WORKFLOW_VERSION
        workflow = WorkflowJSON.model_validate(payload)
    else:
        workflow = payload.model_copy(deep=True)

    ensure_acyclic(workflow.edges)
    return workflow
