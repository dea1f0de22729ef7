"""Orchestrator composing registry, router, health monitor and workflow engine."""
from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union

from agenthub.config import OrchestratorConfig
from agenthub.core import events as ev
from agenthub.core.errors import UnroutableActionError
from agenthub.core.events import EventHub
from agenthub.core.message_bus import MessageBus
from agenthub.core.models import Envelope, MessageType, Task, WorkflowContext, WorkflowDefinition
from agenthub.core.state_store import StateStore
from agenthub.logging_config import get_logger
from agenthub.orchestration.health import HealthMonitor
from agenthub.orchestration.registry import AgentHandle, AgentRegistry
from agenthub.orchestration.router import (
    ActionTable,
    DegradedFallback,
    FallbackPolicy,
    StrictFallback,
    TaskRouter,
)
from agenthub.orchestration.workflow import WorkflowEngine

logger = get_logger(__name__)

CONTROL_ACTIONS = (
    "register-agent",
    "unregister-agent",
    "route-task",
    "execute-workflow",
    "get-agents",
    "get-stats",
)


def describe_agent(agent: AgentHandle) -> Dict[str, Any]:
    return {
        "id": agent.agent_id,
        "name": agent.name,
        "type": agent.agent_type,
        "state": agent.state.value,
        "capabilities": sorted(agent.capabilities),
    }


class Orchestrator:
    """Coordinate agent registration, task routing and workflow execution.

    Agents are created and destroyed by the caller; the orchestrator only
    tracks them.
    """

    def __init__(
        self,
        *,
        bus: MessageBus,
        state_store: StateStore,
        events: Optional[EventHub] = None,
        config: Optional[OrchestratorConfig] = None,
        action_map: Optional[Mapping[str, str]] = None,
        fallback: Optional[FallbackPolicy] = None,
    ) -> None:
        self.config = config or OrchestratorConfig()
        self.id = self.config.orchestrator_id
        self._bus = bus
        self.events = events or EventHub()

        if fallback is None:
            fallback = DegradedFallback() if self.config.fallback_to_unhealthy else StrictFallback()

        self.registry = AgentRegistry(state_store, self.events)
        self.health = HealthMonitor(
            self.registry,
            state_store,
            self.events,
            interval=self.config.health_check_interval,
            snapshot_ttl=self.config.health_snapshot_ttl,
        )
        self.router = TaskRouter(
            self.registry,
            bus,
            self.health,
            sender_id=self.id,
            action_table=ActionTable(action_map),
            fallback=fallback,
            default_priority=self.config.default_task_priority,
            default_timeout=self.config.default_task_timeout,
            fresh_health_checks=self.config.fresh_health_checks,
        )
        self.workflows = WorkflowEngine(self.router, self.events)

        self._started_at: Optional[float] = None
        self._runner: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()
        self._started_event = asyncio.Event()
        self._handlers: Set[asyncio.Task[None]] = set()

    # Lifecycle

    @property
    def running(self) -> bool:
        return self._runner is not None

    @property
    def bus(self) -> MessageBus:
        return self._bus

    async def start(self) -> None:
        """Start health monitoring and serve control messages on the bus."""
        if self._runner is not None:
            return
        logger.info("Starting orchestrator")
        self._started_at = time.monotonic()
        self._stop_event.clear()
        self._started_event.clear()
        self._runner = asyncio.create_task(self._serve())
        await self._started_event.wait()
        await self.health.start()
        await self.events.publish(ev.ORCHESTRATOR_STARTED, {"orchestrator_id": self.id})

    async def stop(self) -> None:
        """Stop health monitoring and the control loop. Agents keep running."""
        if self._runner is None:
            return
        logger.info("Stopping orchestrator")
        await self.health.stop()
        self._stop_event.set()
        await self._runner
        self._runner = None
        if self._handlers:
            await asyncio.gather(*self._handlers, return_exceptions=True)
        await self.events.publish(ev.ORCHESTRATOR_STOPPED, {"orchestrator_id": self.id})

    async def _serve(self) -> None:
        async with self._bus.deliver(self.id) as inbox:
            self._started_event.set()
            while not self._stop_event.is_set():
                try:
                    message = await asyncio.wait_for(inbox.get(), timeout=0.5)
                except asyncio.TimeoutError:
                    continue
                # Control requests may themselves wait on agents; never block the inbox.
                handler = asyncio.create_task(self.handle_message(message))
                self._handlers.add(handler)
                handler.add_done_callback(self._handlers.discard)

    # Agent management

    async def register_agent(self, agent: AgentHandle) -> None:
        await self.registry.register(agent)

    async def unregister_agent(self, agent_id: str) -> bool:
        return await self.registry.unregister(agent_id)

    def get_agent(self, agent_id: str) -> Optional[AgentHandle]:
        return self.registry.get(agent_id)

    def list_agents(self) -> Iterable[AgentHandle]:
        return self.registry.all()

    def register_action(self, action: str, agent_type: str) -> None:
        self.router.actions.register(action, agent_type)

    # Routing and workflows

    async def route_task(self, task: Union[Task, Mapping[str, Any]]) -> Any:
        return await self.router.route(task)

    def register_workflow(self, definition: WorkflowDefinition) -> None:
        self.workflows.register(definition)

    async def execute_workflow(
        self, workflow_name: str, params: Optional[Mapping[str, Any]] = None
    ) -> WorkflowContext:
        return await self.workflows.execute(workflow_name, params)

    # Control messages

    async def handle_message(self, message: Envelope) -> None:
        """Serve a control request addressed to the orchestrator."""
        if message.message_type is not MessageType.REQUEST:
            return
        payload = message.payload or {}
        try:
            result = await self._dispatch_control(payload)
        except Exception as exc:  # noqa: BLE001
            action = payload.get("action") if isinstance(payload, Mapping) else None
            logger.error("Error handling message %s: %s", action, exc)
            if message.requires_ack:
                await self._bus.send(Envelope.reply_to(message, sender_id=self.id, error=str(exc)))
            return
        if message.requires_ack:
            await self._bus.send(Envelope.reply_to(message, sender_id=self.id, payload=result))

    async def _dispatch_control(self, payload: Any) -> Any:
        if not isinstance(payload, Mapping):
            raise UnroutableActionError(None)
        action = payload.get("action")
        if action not in CONTROL_ACTIONS:
            raise UnroutableActionError(action)
        if action == "register-agent":
            agent_id = payload.get("agent_id")
            # Agent objects cannot travel over the bus; acknowledge known ids only.
            return {"success": agent_id in self.registry, "agent_id": agent_id}
        if action == "unregister-agent":
            removed = await self.unregister_agent(payload["agent_id"])
            return {"success": removed, "agent_id": payload["agent_id"]}
        if action == "route-task":
            return await self.route_task(payload["task"])
        if action == "execute-workflow":
            context = await self.execute_workflow(payload["workflow_name"], payload.get("params"))
            return context.to_dict()
        if action == "get-agents":
            return self.agents_list()
        if action == "get-stats":
            return self.stats()
        raise UnroutableActionError(action)

    # Introspection

    def agents_list(self) -> List[Dict[str, Any]]:
        return [describe_agent(agent) for agent in self.registry]

    def stats(self) -> Dict[str, Any]:
        uptime = time.monotonic() - self._started_at if self._started_at is not None else 0.0
        return {
            "uptime": round(uptime, 3),
            "agents": {
                "total": len(self.registry),
                "by_type": self.registry.type_counts(),
                "registered": self.registry.registered_total,
                "unregistered": self.registry.unregistered_total,
            },
            "tasks": self.router.stats.to_dict(),
            "workflows": {
                "registered": len(self.workflows.definitions()),
                "active": len(self.workflows.active_runs),
            },
        }
