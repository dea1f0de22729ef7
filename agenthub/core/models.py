"""Core data models shared across orchestrator components."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

DEFAULT_PRIORITY = 5
DEFAULT_TIMEOUT = 30.0

# Load scores used to rank candidate agents.
BUSY_LOAD = 100
UNREACHABLE_LOAD = 1000


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class AgentState(str, Enum):
    """States an agent reports to the orchestrator."""

    IDLE = "idle"
    BUSY = "busy"
    ERROR = "error"
    STOPPED = "stopped"

    @property
    def is_unhealthy(self) -> bool:
        return self in (AgentState.ERROR, AgentState.STOPPED)


@dataclass(slots=True)
class AgentDescriptor:
    """Identity and bookkeeping for an agent instance."""

    agent_id: str
    name: str
    agent_type: str
    capabilities: FrozenSet[str] = frozenset()
    state: AgentState = AgentState.STOPPED
    task_count: int = 0
    error_count: int = 0
    last_error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.capabilities = frozenset(self.capabilities)


class MessageType(str, Enum):
    REQUEST = "request"
    RESPONSE = "response"


@dataclass(slots=True)
class Envelope:
    """Addressed, correlated unit exchanged over the message bus."""

    message_type: MessageType
    sender_id: str
    recipient_id: Optional[str]
    payload: Any = None
    correlation_id: Optional[str] = None
    priority: int = DEFAULT_PRIORITY
    requires_ack: bool = False
    timeout: float = DEFAULT_TIMEOUT
    error: Optional[str] = None
    message_id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=_now)

    @classmethod
    def request(
        cls,
        *,
        sender_id: str,
        recipient_id: str,
        payload: Any,
        priority: int = DEFAULT_PRIORITY,
        timeout: float = DEFAULT_TIMEOUT,
        requires_ack: bool = True,
    ) -> Envelope:
        return cls(
            message_type=MessageType.REQUEST,
            sender_id=sender_id,
            recipient_id=recipient_id,
            payload=payload,
            correlation_id=new_id(),
            priority=priority,
            requires_ack=requires_ack,
            timeout=timeout,
        )

    @classmethod
    def reply_to(
        cls,
        request: Envelope,
        *,
        sender_id: str,
        payload: Any = None,
        error: Optional[str] = None,
    ) -> Envelope:
        """Build the response correlated with ``request``."""
        return cls(
            message_type=MessageType.RESPONSE,
            sender_id=sender_id,
            recipient_id=request.sender_id,
            payload=None if error is not None else payload,
            correlation_id=request.correlation_id,
            priority=request.priority,
            error=error,
        )


@dataclass(slots=True)
class Task:
    """A unit of work routed to a single agent."""

    action: str
    payload: Dict[str, Any] = field(default_factory=dict)
    priority: Optional[int] = None
    timeout: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Task:
        fields = dict(data)
        action = fields.pop("action", None)
        if not action:
            raise ValueError("Task requires an 'action'")
        priority = fields.pop("priority", None)
        timeout = fields.pop("timeout", None)
        return cls(action=action, payload=fields, priority=priority, timeout=timeout)

    def to_payload(self) -> Dict[str, Any]:
        return {"action": self.action, **self.payload}


@dataclass(slots=True)
class HealthSnapshot:
    """Point-in-time health report returned by an agent."""

    agent_id: str
    state: AgentState
    queue_size: int = 0
    timestamp: datetime = field(default_factory=_now)
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def load(self) -> int:
        if self.state is AgentState.BUSY:
            return BUSY_LOAD
        return self.queue_size or 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "state": self.state.value,
            "load": self.load,
            "queue_size": self.queue_size,
            "timestamp": self.timestamp.isoformat(),
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HealthSnapshot:
        return cls(
            agent_id=data["agent_id"],
            state=AgentState(data["state"]),
            queue_size=data.get("queue_size") or 0,
            timestamp=datetime.fromisoformat(data["timestamp"]),
            details=dict(data.get("details") or {}),
        )


@dataclass(frozen=True, slots=True)
class WorkflowStep:
    name: str
    action: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    optional: bool = False


@dataclass(frozen=True, slots=True)
class WorkflowDefinition:
    """Named, ordered list of steps registered once and run many times."""

    name: str
    steps: Tuple[WorkflowStep, ...]
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))
        seen = set()
        for step in self.steps:
            if not step.action:
                raise ValueError(f"Step '{step.name}' of workflow '{self.name}' has no action")
            if step.name in seen:
                raise ValueError(f"Duplicate step name '{step.name}' in workflow '{self.name}'")
            seen.add(step.name)

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any]) -> WorkflowDefinition:
        steps: Iterable[Mapping[str, Any]] = data.get("steps", [])
        return cls(
            name=name,
            description=data.get("description", ""),
            steps=tuple(
                WorkflowStep(
                    name=step["name"],
                    action=step["action"],
                    payload=step.get("payload", {}),
                    optional=bool(step.get("optional", False)),
                )
                for step in steps
            ),
        )


@dataclass(slots=True)
class StepError:
    step: str
    error: str
    error_type: str = "Exception"


@dataclass(slots=True)
class WorkflowContext:
    """Mutable state of one workflow run."""

    workflow_id: str
    workflow_name: str
    params: Dict[str, Any] = field(default_factory=dict)
    results: Dict[str, Any] = field(default_factory=dict)
    errors: List[StepError] = field(default_factory=list)
    start_time: datetime = field(default_factory=_now)
    end_time: Optional[datetime] = None
    duration: Optional[float] = None
    success: Optional[bool] = None
    error: Optional[str] = None
    cancel_requested: bool = False

    def finish(self, success: bool, error: Optional[str] = None) -> None:
        self.end_time = _now()
        self.duration = (self.end_time - self.start_time).total_seconds()
        self.success = success
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "workflow_name": self.workflow_name,
            "params": self.params,
            "results": self.results,
            "errors": [
                {"step": e.step, "error": e.error, "error_type": e.error_type}
                for e in self.errors
            ],
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration": self.duration,
            "success": self.success,
            "error": self.error,
        }
