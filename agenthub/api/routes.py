"""HTTP API exposing agent registration, task routing and statistics."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from agenthub.core.errors import (
    DuplicateAgentError,
    NoAvailableAgentError,
    OrchestrationError,
    RemoteTaskError,
    RequestTimeoutError,
    TransportError,
    UnknownWorkflowError,
    UnroutableActionError,
    WorkflowCancelledError,
    WorkflowStepFailedError,
)
from agenthub.core.models import Task
from agenthub.orchestration.orchestrator import Orchestrator, describe_agent
from agenthub.orchestration.registry import AgentHandle
from agenthub.runtime import get_orchestrator, spawn_agent, terminate_agent

router = APIRouter(prefix="/agents", tags=["agents"])
tasks_router = APIRouter(prefix="/tasks", tags=["tasks"])
stats_router = APIRouter(prefix="/stats", tags=["stats"])


class AgentCreateRequest(BaseModel):
    name: str = Field(..., description="Logical agent name")
    role: str = Field(..., description="Catalog role to instantiate")
    agent_type: Optional[str] = Field(None, description="Routing type, defaults to the role")
    capabilities: List[str] = Field(default_factory=list)


class AgentResponse(BaseModel):
    agent_id: str
    name: str
    agent_type: str
    state: str
    capabilities: List[str]

    @classmethod
    def from_agent(cls, agent: AgentHandle) -> "AgentResponse":
        info = describe_agent(agent)
        return cls(
            agent_id=info["id"],
            name=info["name"],
            agent_type=info["type"],
            state=info["state"],
            capabilities=info["capabilities"],
        )


class TaskRequest(BaseModel):
    action: str = Field(..., description="Action verb used to pick an agent type")
    payload: Dict[str, Any] = Field(default_factory=dict)
    priority: Optional[int] = None
    timeout: Optional[float] = Field(None, gt=0, description="Seconds to wait for the agent")


class TaskResponse(BaseModel):
    action: str
    result: Any = None


def http_error(exc: OrchestrationError) -> HTTPException:
    """Map orchestration errors onto HTTP status codes."""
    if isinstance(exc, UnroutableActionError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, UnknownWorkflowError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, DuplicateAgentError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, NoAvailableAgentError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(exc, RequestTimeoutError):
        code = status.HTTP_504_GATEWAY_TIMEOUT
    elif isinstance(exc, WorkflowCancelledError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, (RemoteTaskError, TransportError, WorkflowStepFailedError)):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(exc))


@router.post("", response_model=AgentResponse, status_code=status.HTTP_201_CREATED)
async def create_agent(
    request: AgentCreateRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> AgentResponse:
    try:
        agent = await spawn_agent(
            request.role,
            request.name,
            agent_type=request.agent_type,
            capabilities=request.capabilities,
            orchestrator=orchestrator,
        )
    except KeyError as exc:
        detail = exc.args[0] if exc.args else str(exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail) from exc
    except OrchestrationError as exc:
        raise http_error(exc) from exc
    return AgentResponse.from_agent(agent)


@router.get("", response_model=List[AgentResponse])
async def list_agents(orchestrator: Orchestrator = Depends(get_orchestrator)) -> List[AgentResponse]:
    return [AgentResponse.from_agent(agent) for agent in orchestrator.list_agents()]


@router.get("/{agent_id}", response_model=AgentResponse)
async def get_agent(agent_id: str, orchestrator: Orchestrator = Depends(get_orchestrator)) -> AgentResponse:
    agent = orchestrator.get_agent(agent_id)
    if agent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown agent")
    return AgentResponse.from_agent(agent)


@router.delete("/{agent_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_agent(agent_id: str, orchestrator: Orchestrator = Depends(get_orchestrator)) -> None:
    if not await terminate_agent(agent_id, orchestrator=orchestrator):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown agent")


@tasks_router.post("", response_model=TaskResponse)
async def route_task(
    request: TaskRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> TaskResponse:
    task = Task(
        action=request.action,
        payload=request.payload,
        priority=request.priority,
        timeout=request.timeout,
    )
    try:
        result = await orchestrator.route_task(task)
    except OrchestrationError as exc:
        raise http_error(exc) from exc
    return TaskResponse(action=request.action, result=result)


@tasks_router.get("/actions", response_model=Dict[str, str])
async def list_actions(orchestrator: Orchestrator = Depends(get_orchestrator)) -> Dict[str, str]:
    """Action verbs the router can resolve, with their agent types."""
    return orchestrator.router.actions.as_dict()


@stats_router.get("")
async def get_stats(orchestrator: Orchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return orchestrator.stats()
