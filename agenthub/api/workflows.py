"""Workflow API routes."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from agenthub.api.routes import http_error
from agenthub.core.errors import OrchestrationError, WorkflowStepFailedError
from agenthub.orchestration.orchestrator import Orchestrator
from agenthub.runtime import get_orchestrator

router = APIRouter(prefix="/workflows", tags=["workflows"])


class WorkflowSummary(BaseModel):
    name: str
    description: str
    steps: List[str]


class WorkflowRunRequest(BaseModel):
    params: Dict[str, Any] = Field(default_factory=dict)


class StepErrorModel(BaseModel):
    step: str
    error: str
    error_type: str


class WorkflowRunResponse(BaseModel):
    workflow_id: str
    workflow_name: str
    success: Optional[bool]
    duration: Optional[float]
    results: Dict[str, Any]
    errors: List[StepErrorModel]


@router.get("", response_model=List[WorkflowSummary])
async def list_workflows(orchestrator: Orchestrator = Depends(get_orchestrator)) -> List[WorkflowSummary]:
    return [
        WorkflowSummary(
            name=definition.name,
            description=definition.description,
            steps=[step.name for step in definition.steps],
        )
        for definition in orchestrator.workflows.definitions()
    ]


@router.post("/{workflow_name}/runs", response_model=WorkflowRunResponse)
async def run_workflow(
    workflow_name: str,
    request: WorkflowRunRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> WorkflowRunResponse:
    """Execute a workflow synchronously and return its context."""
    try:
        context = await orchestrator.execute_workflow(workflow_name, request.params)
    except WorkflowStepFailedError as exc:
        step_errors = exc.context.errors if exc.context else []
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "message": str(exc),
                "step": exc.step_name,
                "errors": [
                    {"step": e.step, "error": e.error, "error_type": e.error_type}
                    for e in step_errors
                ],
            },
        ) from exc
    except OrchestrationError as exc:
        raise http_error(exc) from exc
    data = context.to_dict()
    return WorkflowRunResponse(
        workflow_id=data["workflow_id"],
        workflow_name=data["workflow_name"],
        success=data["success"],
        duration=data["duration"],
        results=data["results"],
        errors=data["errors"],
    )
