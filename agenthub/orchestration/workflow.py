"""Sequential workflow execution with variable substitution between steps."""
from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

from agenthub.core import events as ev
from agenthub.core.errors import (
    UnknownWorkflowError,
    WorkflowCancelledError,
    WorkflowStepFailedError,
)
from agenthub.core.events import EventHub
from agenthub.core.models import (
    StepError,
    Task,
    WorkflowContext,
    WorkflowDefinition,
    WorkflowStep,
    new_id,
)
from agenthub.logging_config import get_logger

logger = get_logger(__name__)

SIGIL = "$"


class Router(Protocol):
    async def route(self, task: Task) -> Any: ...


def resolve_reference(path: str, context: WorkflowContext) -> Any:
    """Resolve ``params.a.b`` or ``results.step.field``; unknown paths give None."""
    root, *segments = path.split(".")
    value: Any
    if root == "params":
        value = context.params
    elif root == "results":
        value = context.results
    else:
        return None

    for segment in segments:
        value = _lookup(value, segment)
        if value is None:
            return None
    return value


def _lookup(value: Any, segment: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(segment)
    if isinstance(value, (list, tuple)) and segment.lstrip("-").isdigit():
        index = int(segment)
        if -len(value) <= index < len(value):
            return value[index]
    return None


def resolve_payload(value: Any, context: WorkflowContext) -> Any:
    """Substitute ``$``-references depth-first through mappings and sequences."""
    if isinstance(value, str):
        if value.startswith(SIGIL):
            return resolve_reference(value[len(SIGIL):], context)
        return value
    if isinstance(value, Mapping):
        return {key: resolve_payload(item, context) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_payload(item, context) for item in value]
    if isinstance(value, tuple):
        return tuple(resolve_payload(item, context) for item in value)
    return value


def load_workflow_definitions(path: Union[str, Path]) -> List[WorkflowDefinition]:
    """Read ``{"name": {"description": ..., "steps": [...]}}`` from a JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return [WorkflowDefinition.from_dict(name, body) for name, body in data.items()]


class WorkflowEngine:
    """Run registered workflows step by step through a task router."""

    def __init__(self, router: Router, events: Optional[EventHub] = None) -> None:
        self._router = router
        self._events = events
        self._workflows: Dict[str, WorkflowDefinition] = {}
        self.active_runs: Dict[str, WorkflowContext] = {}

    def register(self, definition: WorkflowDefinition) -> None:
        self._workflows[definition.name] = definition
        logger.info("Workflow registered: %s", definition.name)

    def get(self, name: str) -> Optional[WorkflowDefinition]:
        return self._workflows.get(name)

    def definitions(self) -> List[WorkflowDefinition]:
        return list(self._workflows.values())

    def cancel(self, workflow_id: str) -> bool:
        """Stop scheduling further steps of an active run.

        The step currently in flight is not interrupted.
        """
        context = self.active_runs.get(workflow_id)
        if context is None:
            return False
        context.cancel_requested = True
        return True

    async def execute(
        self, workflow_name: str, params: Optional[Mapping[str, Any]] = None
    ) -> WorkflowContext:
        """Run ``workflow_name`` and return its finished context.

        Raises:
            UnknownWorkflowError: no workflow registered under that name.
            WorkflowStepFailedError: a required step failed; the partially
                filled context is attached to the error.
            WorkflowCancelledError: the run was cancelled between steps.
        """
        definition = self._workflows.get(workflow_name)
        if definition is None:
            raise UnknownWorkflowError(workflow_name)

        context = WorkflowContext(
            workflow_id=new_id(),
            workflow_name=workflow_name,
            params=dict(params or {}),
        )
        self.active_runs[context.workflow_id] = context
        logger.info("Executing workflow: %s (%s)", workflow_name, context.workflow_id)
        await self._emit(ev.WORKFLOW_STARTED, context)

        try:
            await self._run_steps(definition, context)
        except (WorkflowStepFailedError, WorkflowCancelledError) as exc:
            context.finish(success=False, error=str(exc))
            logger.error("Workflow failed: %s: %s", workflow_name, exc)
            await self._emit(ev.WORKFLOW_FAILED, context)
            raise
        except asyncio.CancelledError:
            context.finish(success=False, error="cancelled")
            raise
        else:
            context.finish(success=True)
            logger.info("Workflow completed: %s (%.3fs)", workflow_name, context.duration)
            await self._emit(ev.WORKFLOW_COMPLETED, context)
            return context
        finally:
            self.active_runs.pop(context.workflow_id, None)

    async def _run_steps(self, definition: WorkflowDefinition, context: WorkflowContext) -> None:
        total = len(definition.steps)
        for index, step in enumerate(definition.steps, start=1):
            if context.cancel_requested:
                raise WorkflowCancelledError(context.workflow_id, context)

            logger.info("Executing workflow step %d/%d: %s", index, total, step.name)
            try:
                result = await self._execute_step(step, context)
            except Exception as exc:
                context.errors.append(
                    StepError(step=step.name, error=str(exc), error_type=type(exc).__name__)
                )
                if step.optional:
                    logger.warning("Optional step %s failed, continuing: %s", step.name, exc)
                    continue
                raise WorkflowStepFailedError(step.name, exc, context) from exc
            context.results[step.name] = result

    async def _execute_step(self, step: WorkflowStep, context: WorkflowContext) -> Any:
        resolved = resolve_payload(step.payload, context)
        if not isinstance(resolved, Mapping):
            resolved = {}
        task = Task.from_dict(
            {
                "action": step.action,
                **resolved,
                "workflow_id": context.workflow_id,
                "step_name": step.name,
            }
        )
        return await self._router.route(task)

    async def _emit(self, event: str, context: WorkflowContext) -> None:
        if self._events:
            await self._events.publish(event, context.to_dict())
