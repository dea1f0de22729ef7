"""Tests for workflow execution and variable resolution."""
from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Dict, List, Mapping, Optional

import pytest

from agenthub.core import events as ev
from agenthub.core.errors import (
    UnknownWorkflowError,
    WorkflowCancelledError,
    WorkflowStepFailedError,
)
from agenthub.core.events import EventHub
from agenthub.core.models import Task, WorkflowContext, WorkflowDefinition, WorkflowStep
from agenthub.orchestration.workflow import (
    WorkflowEngine,
    load_workflow_definitions,
    resolve_payload,
    resolve_reference,
)


class ScriptedRouter:
    """Router double answering each action with a handler."""

    def __init__(self, handlers: Dict[str, Callable[[Task], Any]]) -> None:
        self.handlers = handlers
        self.tasks: List[Task] = []

    async def route(self, task: Task) -> Any:
        self.tasks.append(task)
        outcome = self.handlers[task.action](task)
        if asyncio.iscoroutine(outcome):
            outcome = await outcome
        return outcome


def _fail(message: str) -> Callable[[Task], Any]:
    def handler(task: Task) -> Any:
        raise RuntimeError(message)

    return handler


def _context(params: Optional[Mapping[str, Any]] = None, results: Optional[Mapping[str, Any]] = None) -> WorkflowContext:
    return WorkflowContext(
        workflow_id="wf-1",
        workflow_name="test",
        params=dict(params or {}),
        results=dict(results or {}),
    )


def test_references_resolve_against_params_and_results() -> None:
    context = _context(
        params={"table": "incident", "filters": {"state": "open"}},
        results={"s1": {"sysId": "abc123", "rows": [{"id": 7}]}},
    )

    assert resolve_reference("params.table", context) == "incident"
    assert resolve_reference("params.filters.state", context) == "open"
    assert resolve_reference("results.s1.sysId", context) == "abc123"
    assert resolve_reference("results.s1.rows.0.id", context) == 7
    assert resolve_reference("results.s2.sysId", context) is None
    assert resolve_reference("results.s1.rows.5", context) is None
    assert resolve_reference("env.HOME", context) is None


def test_payload_resolution_recurses_into_containers() -> None:
    context = _context(params={"table": "incident"}, results={"s1": {"sysId": "abc"}})
    payload = {
        "table": "$params.table",
        "literal": "no sigil here",
        "nested": {"ids": ["$results.s1.sysId", "$results.missing"], "count": 3},
    }

    assert resolve_payload(payload, context) == {
        "table": "incident",
        "literal": "no sigil here",
        "nested": {"ids": ["abc", None], "count": 3},
    }


def test_definition_rejects_duplicate_step_names() -> None:
    with pytest.raises(ValueError, match="Duplicate step"):
        WorkflowDefinition(
            name="dup",
            steps=(WorkflowStep("s1", "a"), WorkflowStep("s1", "b")),
        )


@pytest.mark.anyio
async def test_optional_step_failure_does_not_abort_run() -> None:
    router = ScriptedRouter(
        {
            "ok": lambda task: {"step": task.payload["step_name"]},
            "flaky": _fail("transient"),
        }
    )
    engine = WorkflowEngine(router)
    engine.register(
        WorkflowDefinition(
            name="three-steps",
            steps=(
                WorkflowStep("s1", "ok"),
                WorkflowStep("s2", "flaky", optional=True),
                WorkflowStep("s3", "ok"),
            ),
        )
    )

    context = await engine.execute("three-steps")

    assert context.success is True
    assert list(context.results) == ["s1", "s3"]
    assert [(e.step, e.error, e.error_type) for e in context.errors] == [("s2", "transient", "RuntimeError")]
    assert context.end_time is not None and context.duration is not None


@pytest.mark.anyio
async def test_required_step_failure_aborts_remaining_steps() -> None:
    router = ScriptedRouter({"boom": _fail("kaput"), "ok": lambda task: "done"})
    engine = WorkflowEngine(router)
    engine.register(
        WorkflowDefinition(name="abort", steps=(WorkflowStep("s1", "boom"), WorkflowStep("s2", "ok")))
    )

    with pytest.raises(WorkflowStepFailedError) as info:
        await engine.execute("abort")

    assert str(info.value) == "Workflow failed at step s1: kaput"
    assert info.value.step_name == "s1"
    assert info.value.context.success is False
    assert info.value.context.results == {}
    assert [t.action for t in router.tasks] == ["boom"]
    assert engine.active_runs == {}


@pytest.mark.anyio
async def test_steps_see_params_and_previous_results() -> None:
    router = ScriptedRouter(
        {
            "lookup": lambda task: {"sysId": f"id-of-{task.payload['table']}"},
            "store": lambda task: {"stored": task.payload["source"]},
        }
    )
    engine = WorkflowEngine(router)
    engine.register(
        WorkflowDefinition(
            name="chain",
            steps=(
                WorkflowStep("s1", "lookup", {"table": "$params.table"}),
                WorkflowStep("s2", "store", {"source": "$results.s1.sysId", "missing": "$results.s9.x"}),
            ),
        )
    )

    context = await engine.execute("chain", {"table": "incident"})

    assert context.results["s2"] == {"stored": "id-of-incident"}
    store_task = router.tasks[1]
    assert store_task.payload["missing"] is None
    assert store_task.payload["workflow_id"] == context.workflow_id
    assert store_task.payload["step_name"] == "s2"


@pytest.mark.anyio
async def test_step_payload_can_set_task_priority_and_timeout() -> None:
    router = ScriptedRouter({"ok": lambda task: None})
    engine = WorkflowEngine(router)
    engine.register(
        WorkflowDefinition(name="urgent", steps=(WorkflowStep("s1", "ok", {"priority": 1, "timeout": 3}),))
    )

    await engine.execute("urgent")

    assert router.tasks[0].priority == 1
    assert router.tasks[0].timeout == 3
    assert "priority" not in router.tasks[0].payload


@pytest.mark.anyio
async def test_unknown_workflow_is_rejected() -> None:
    engine = WorkflowEngine(ScriptedRouter({}))

    with pytest.raises(UnknownWorkflowError):
        await engine.execute("nope")


@pytest.mark.anyio
async def test_concurrent_runs_keep_separate_contexts() -> None:
    async def slow_echo(task: Task) -> Any:
        await asyncio.sleep(0.01)
        return task.payload["value"]

    engine = WorkflowEngine(ScriptedRouter({"echo": slow_echo}))
    engine.register(
        WorkflowDefinition(
            name="echo-twice",
            steps=(
                WorkflowStep("first", "echo", {"value": "$params.value"}),
                WorkflowStep("second", "echo", {"value": "$results.first"}),
            ),
        )
    )

    left, right = await asyncio.gather(
        engine.execute("echo-twice", {"value": "left"}),
        engine.execute("echo-twice", {"value": "right"}),
    )

    assert left.workflow_id != right.workflow_id
    assert left.results == {"first": "left", "second": "left"}
    assert right.results == {"first": "right", "second": "right"}


@pytest.mark.anyio
async def test_cancel_stops_before_next_step() -> None:
    engine: WorkflowEngine

    def cancel_self(task: Task) -> str:
        assert engine.cancel(task.payload["workflow_id"]) is True
        return "finished anyway"

    router = ScriptedRouter({"cancel": cancel_self, "ok": lambda task: "never"})
    engine = WorkflowEngine(router)
    engine.register(
        WorkflowDefinition(name="cancellable", steps=(WorkflowStep("s1", "cancel"), WorkflowStep("s2", "ok")))
    )

    with pytest.raises(WorkflowCancelledError) as info:
        await engine.execute("cancellable")

    assert info.value.context.results == {"s1": "finished anyway"}
    assert [t.action for t in router.tasks] == ["cancel"]
    assert engine.cancel(info.value.workflow_id) is False


@pytest.mark.anyio
async def test_lifecycle_events_are_published() -> None:
    hub = EventHub()
    seen: List[str] = []

    async def record(event: str, data: Mapping[str, Any]) -> None:
        seen.append(event)

    for name in (ev.WORKFLOW_STARTED, ev.WORKFLOW_COMPLETED, ev.WORKFLOW_FAILED):
        hub.subscribe(name, record)

    engine = WorkflowEngine(ScriptedRouter({"ok": lambda task: 1, "boom": _fail("x")}), hub)
    engine.register(WorkflowDefinition(name="good", steps=(WorkflowStep("s1", "ok"),)))
    engine.register(WorkflowDefinition(name="bad", steps=(WorkflowStep("s1", "boom"),)))

    await engine.execute("good")
    with pytest.raises(WorkflowStepFailedError):
        await engine.execute("bad")

    assert seen == [
        ev.WORKFLOW_STARTED,
        ev.WORKFLOW_COMPLETED,
        ev.WORKFLOW_STARTED,
        ev.WORKFLOW_FAILED,
    ]


def test_definitions_load_from_json(tmp_path) -> None:
    path = tmp_path / "workflows.json"
    path.write_text(
        json.dumps(
            {
                "incident-intake": {
                    "description": "Look up a table and store a record",
                    "steps": [
                        {"name": "lookup", "action": "lookup", "payload": {"table": "$params.table"}},
                        {"name": "notify", "action": "notify", "optional": True},
                    ],
                }
            }
        ),
        encoding="utf-8",
    )

    (definition,) = load_workflow_definitions(path)

    assert definition.name == "incident-intake"
    assert definition.description == "Look up a table and store a record"
    assert [s.name for s in definition.steps] == ["lookup", "notify"]
    assert definition.steps[1].optional is True
    assert definition.steps[0].payload == {"table": "$params.table"}
