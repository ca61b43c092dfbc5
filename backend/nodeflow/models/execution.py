"""
Result models produced by the executor and the runner.

Everything here is plain JSON-serializable data; persisting a run is the
caller's job.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

NodeStatus = Literal["success", "failed", "skipped"]
RunStatus = Literal["success", "failed", "partial"]

SKIPPED_DEPENDENCY_MESSAGE = "Skipped due to failed dependency"
UNSCHEDULED_MESSAGE = "Node could not be scheduled: unresolved dependency or cycle"


class NodeOutcome(BaseModel):
    """What a single node execution produced: an output, or an error message."""

    output: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ExecutionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    node_id: str
    node_type: str | None = None
    status: NodeStatus
    input: dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    error: str | None = None
    duration_ms: int = 0
    started_at: datetime
    completed_at: datetime


class WorkflowRunResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    run_id: str
    status: RunStatus
    node_results: list[ExecutionResult]
    total_duration_ms: int
    started_at: datetime
    completed_at: datetime

    def outputs_by_node(self) -> dict[str, Any]:
        return {
            r.node_id: r.output for r in self.node_results if r.status == "success"
        }

    def statuses_by_node(self) -> dict[str, NodeStatus]:
        return {r.node_id: r.status for r in self.node_results}
