"""Exception taxonomy raised by the orchestration core."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import WorkflowContext


class OrchestrationError(Exception):
    """Base class for every error raised by the orchestration core."""


class DuplicateAgentError(OrchestrationError):
    """An agent with the same id is already registered."""

    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Agent already registered: {agent_id}")
        self.agent_id = agent_id


class UnroutableActionError(OrchestrationError):
    """No agent type is mapped to the task's action."""

    def __init__(self, action: Optional[str]) -> None:
        super().__init__(f"No agent type found for task action: {action}")
        self.action = action


class NoAvailableAgentError(OrchestrationError):
    """No registered agent can take a task of the resolved type."""

    def __init__(self, agent_type: str, reason: str = "no agent registered") -> None:
        super().__init__(f"No available agent of type '{agent_type}': {reason}")
        self.agent_type = agent_type
        self.reason = reason


class UnknownWorkflowError(OrchestrationError):
    def __init__(self, workflow_name: str) -> None:
        super().__init__(f"Unknown workflow: {workflow_name}")
        self.workflow_name = workflow_name


class WorkflowStepFailedError(OrchestrationError):
    """A required workflow step failed and the run was aborted."""

    def __init__(
        self,
        step_name: str,
        cause: BaseException,
        context: Optional["WorkflowContext"] = None,
    ) -> None:
        super().__init__(f"Workflow failed at step {step_name}: {cause}")
        self.step_name = step_name
        self.cause = cause
        self.context = context


class WorkflowCancelledError(OrchestrationError):
    """A run was cancelled before its next step was scheduled."""

    def __init__(self, workflow_id: str, context: Optional["WorkflowContext"] = None) -> None:
        super().__init__(f"Workflow run cancelled: {workflow_id}")
        self.workflow_id = workflow_id
        self.context = context


class TransportError(OrchestrationError):
    """Failure reported by the message bus while delivering a request."""


class DeliveryError(TransportError):
    def __init__(self, recipient_id: Optional[str]) -> None:
        super().__init__(f"Target participant not found: {recipient_id}")
        self.recipient_id = recipient_id


class RequestTimeoutError(TransportError):
    def __init__(self, recipient_id: Optional[str], timeout: float) -> None:
        super().__init__(f"Message to {recipient_id} timed out after {timeout}s")
        self.recipient_id = recipient_id
        self.timeout = timeout


class RemoteTaskError(TransportError):
    """The recipient answered the request with an error response."""

    def __init__(self, sender_id: Optional[str], message: str) -> None:
        super().__init__(message)
        self.sender_id = sender_id
