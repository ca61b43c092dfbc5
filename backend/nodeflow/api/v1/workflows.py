"""
Workflow engine API endpoints.

Thin wrappers over the engine: graph validation and import, full/partial runs,
single-layer runs for interactive execution, and the connection checks the
editor calls while edges are drawn.

Persistence and authentication are handled by the caller; nothing here stores
workflows or runs.
"""

import logging
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field, model_validator

from nodeflow.models.execution import ExecutionResult, WorkflowRunResult
from nodeflow.models.graph import WorkflowEdge, WorkflowNode, import_workflow
from nodeflow.services.connection_validation import ConnectionCheck, validate_connection
from nodeflow.services.dag_validation import (
    WorkflowCycleError,
    ensure_acyclic,
    get_nodes_that_depend_on,
    get_nodes_that_would_create_cycle,
)
from nodeflow.services.workflow_graph import build_execution_layers
from nodeflow.services.workflow_runner import (
    execute_layer,
    execute_workflow,
    execute_workflow_layered,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflows", tags=["workflows"])


# Request/Response Models
class GraphRequest(BaseModel):
    nodes: List[WorkflowNode]
    edges: List[WorkflowEdge] = Field(default_factory=list)


class ValidateWorkflowResponse(BaseModel):
    valid: bool
    node_count: int
    edge_count: int
    layers: List[List[str]]


class ExecuteWorkflowRequest(GraphRequest):
    selected_node_ids: Optional[List[str]] = None
    scope: Literal["full", "partial", "single"] = "full"
    mode: Literal["sequential", "layered"] = "sequential"

    @model_validator(mode="after")
    def check_scope_matches_selection(self):
        """`partial` and `single` runs need a selection; `single` needs exactly one node."""
        if self.scope == "full":
            return self
        if not self.selected_node_ids:
            raise ValueError(f"scope '{self.scope}' requires selected_node_ids")
        if self.scope == "single" and len(self.selected_node_ids) != 1:
            raise ValueError("scope 'single' requires exactly one selected node id")
        return self


class ExecuteWorkflowResponse(WorkflowRunResult):
    scope: Literal["full", "partial", "single"]


class ExecuteLayerRequest(GraphRequest):
    layer_node_ids: List[str] = Field(..., min_length=1)
    prior_outputs: Dict[str, Any] = Field(default_factory=dict)
    prior_statuses: Dict[str, Literal["success", "failed", "skipped"]] = Field(default_factory=dict)


class ExecuteLayerResponse(BaseModel):
    node_results: List[ExecutionResult]


class ConnectionRequest(GraphRequest):
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None


class BlockedTargetsRequest(GraphRequest):
    source: str


class DependentsRequest(BaseModel):
    target: str
    edges: List[WorkflowEdge] = Field(default_factory=list)


class NodeIdsResponse(BaseModel):
    node_ids: List[str]


def _ordered(ids: set, nodes: List[WorkflowNode]) -> List[str]:
    order = {n.id: i for i, n in enumerate(nodes)}
    return sorted(ids, key=lambda node_id: (order.get(node_id, len(order)), node_id))


@router.post("/validate", response_model=ValidateWorkflowResponse)
async def validate_workflow(request: GraphRequest):
    """Gate a graph before it is saved: reject cycles, report the layer plan."""
    try:
        ensure_acyclic(request.edges)
    except WorkflowCycleError as e:
        raise HTTPException(status_code=400, detail=str(e))

    layers = build_execution_layers(request.nodes, request.edges)
    return ValidateWorkflowResponse(
        valid=True,
        node_count=len(request.nodes),
        edge_count=len(request.edges),
        layers=[[n.id for n in layer] for layer in layers],
    )


@router.post("/import")
async def import_workflow_json(payload: Dict[str, Any]):
    """Normalize an exported `{nodes, edges, version}` document."""
    try:
        workflow = import_workflow(payload)
    except WorkflowCycleError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid workflow: {e}")
    return workflow.to_dict()


@router.post("/execute", response_model=ExecuteWorkflowResponse)
async def execute_workflow_endpoint(request: ExecuteWorkflowRequest):
    run = execute_workflow_layered if request.mode == "layered" else execute_workflow
    try:
        result = await run(request.nodes, request.edges, request.selected_node_ids)
    except WorkflowCycleError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Workflow execution failed")
        raise HTTPException(status_code=500, detail="Failed to execute workflow") from e

    return ExecuteWorkflowResponse(scope=request.scope, **result.model_dump())


@router.post("/execute-layer", response_model=ExecuteLayerResponse)
async def execute_layer_endpoint(request: ExecuteLayerRequest):
    """Run one layer of nodes given the outputs and statuses of earlier layers."""
    try:
        results = await execute_layer(
            request.nodes,
            request.edges,
            request.layer_node_ids,
            request.prior_outputs,
            request.prior_statuses,
        )
    except Exception as e:
        logger.exception("Workflow layer execution failed")
        raise HTTPException(status_code=500, detail="Failed to execute workflow layer") from e

    return ExecuteLayerResponse(node_results=results)


@router.post("/connections/validate", response_model=ConnectionCheck)
async def validate_connection_endpoint(request: ConnectionRequest):
    return validate_connection(
        request.source,
        request.target,
        request.source_handle,
        request.target_handle,
        request.nodes,
        request.edges,
    )


@router.post("/connections/blocked-targets", response_model=NodeIdsResponse)
async def blocked_targets(request: BlockedTargetsRequest):
    """Nodes that cannot be connected from `source` without closing a cycle."""
    blocked = get_nodes_that_would_create_cycle(
        request.source, request.edges, [n.id for n in request.nodes]
    )
    return NodeIdsResponse(node_ids=_ordered(blocked, request.nodes))


@router.post("/dependents", response_model=NodeIdsResponse)
async def dependents(request: DependentsRequest):
    affected = get_nodes_that_depend_on(request.target, request.edges)
    return NodeIdsResponse(node_ids=sorted(affected))
