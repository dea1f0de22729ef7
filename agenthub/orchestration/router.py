"""Route tasks to the least loaded agent of the matching type."""
from __future__ import annotations

import abc
import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

from agenthub.core.errors import NoAvailableAgentError, UnroutableActionError
from agenthub.core.message_bus import MessageBus
from agenthub.core.models import DEFAULT_PRIORITY, DEFAULT_TIMEOUT, AgentState, Envelope, Task
from agenthub.logging_config import get_logger
from agenthub.orchestration.health import HealthMonitor
from agenthub.orchestration.registry import AgentHandle, AgentRegistry

logger = get_logger(__name__)


# Built-in action verbs; entries from configuration override these.
DEFAULT_ACTIONS: Dict[str, str] = {
    "create-record": "record-ops",
    "update-record": "record-ops",
    "delete-record": "record-ops",
    "validate-record": "validation",
    "get-schema": "schema",
    "get-fields": "schema",
    "track-dependency": "dependency",
    "analyze-impact": "dependency",
    "get-config": "config",
    "update-config": "config",
}


class ActionTable:
    """Static, extendable mapping from task action to agent type."""

    def __init__(self, mappings: Optional[Mapping[str, str]] = None) -> None:
        self._mappings: Dict[str, str] = {**DEFAULT_ACTIONS, **(mappings or {})}

    def register(self, action: str, agent_type: str) -> None:
        self._mappings[action] = agent_type

    def resolve(self, action: Optional[str]) -> Optional[str]:
        if action is None:
            return None
        return self._mappings.get(action)

    def as_dict(self) -> Dict[str, str]:
        return dict(self._mappings)


@dataclass(slots=True)
class Candidate:
    agent: AgentHandle
    load: int
    state: AgentState


class FallbackPolicy(abc.ABC):
    """Decides what to do when every candidate reports an unhealthy state."""

    @abc.abstractmethod
    def fallback(self, candidates: List[Candidate]) -> List[Candidate]:
        """Return the candidates still eligible for selection."""


class DegradedFallback(FallbackPolicy):
    """Keep routing to unhealthy agents rather than failing the call."""

    def fallback(self, candidates: List[Candidate]) -> List[Candidate]:
        logger.warning(
            "No healthy agent among %d candidates, falling back to unfiltered set",
            len(candidates),
        )
        return list(candidates)


class StrictFallback(FallbackPolicy):
    """Refuse to dispatch to agents known to be in error or stopped."""

    def fallback(self, candidates: List[Candidate]) -> List[Candidate]:
        return []


@dataclass(slots=True)
class RouterStats:
    routed: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def success_rate(self) -> Optional[float]:
        if not self.routed:
            return None
        return round(self.completed / self.routed * 100, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "routed": self.routed,
            "completed": self.completed,
            "failed": self.failed,
            "success_rate": self.success_rate,
        }


class TaskRouter:
    """Resolve, select and dispatch tasks over the message bus."""

    def __init__(
        self,
        registry: AgentRegistry,
        bus: MessageBus,
        health: HealthMonitor,
        *,
        sender_id: str = "orchestrator",
        action_table: Optional[ActionTable] = None,
        fallback: Optional[FallbackPolicy] = None,
        default_priority: int = DEFAULT_PRIORITY,
        default_timeout: float = DEFAULT_TIMEOUT,
        fresh_health_checks: bool = True,
    ) -> None:
        self._registry = registry
        self._bus = bus
        self._health = health
        self.sender_id = sender_id
        self.actions = action_table if action_table is not None else ActionTable()
        self.fallback = fallback if fallback is not None else DegradedFallback()
        self.default_priority = default_priority
        self.default_timeout = default_timeout
        self.fresh_health_checks = fresh_health_checks
        self.stats = RouterStats()

    async def route(self, task: Union[Task, Mapping[str, Any]]) -> Any:
        """Route ``task`` to an agent and return the agent's response payload."""
        self.stats.routed += 1
        try:
            if not isinstance(task, Task):
                task = _coerce_task(task)
            logger.info("Routing task: %s", task.action)
            agent_type = self.resolve_agent_type(task.action)
            agent = await self.select_agent(agent_type)
            result = await self.dispatch(agent, task)
        except Exception as exc:
            self.stats.failed += 1
            logger.error("Task routing failed: %s", exc)
            raise
        self.stats.completed += 1
        return result

    def resolve_agent_type(self, action: Optional[str]) -> str:
        agent_type = self.actions.resolve(action)
        if agent_type is None:
            raise UnroutableActionError(action)
        return agent_type

    async def select_agent(self, agent_type: str) -> AgentHandle:
        """Pick the least loaded eligible agent of ``agent_type``."""
        agents = self._registry.by_type(agent_type)
        if not agents:
            raise NoAvailableAgentError(agent_type)
        if len(agents) == 1:
            return agents[0]

        candidates = await self.rank(agents)
        # Agents unregistered while their health checks were in flight drop out.
        candidates = [c for c in candidates if c.agent.agent_id in self._registry]
        if not candidates:
            raise NoAvailableAgentError(agent_type)
        eligible = [c for c in candidates if not c.state.is_unhealthy]
        if not eligible:
            eligible = self.fallback.fallback(candidates)
            if not eligible:
                raise NoAvailableAgentError(agent_type, "all agents are unhealthy")

        # sorted() is stable: equal loads keep registration order.
        return sorted(eligible, key=lambda c: c.load)[0].agent

    async def rank(self, agents: List[AgentHandle]) -> List[Candidate]:
        assessments = await asyncio.gather(
            *(self._health.assess(agent, fresh=self.fresh_health_checks) for agent in agents)
        )
        return [
            Candidate(agent=agent, load=load, state=state)
            for agent, (load, state) in zip(agents, assessments)
        ]

    async def dispatch(self, agent: AgentHandle, task: Task) -> Any:
        """Send ``task`` to ``agent`` as a correlated request and await the reply."""
        logger.info("Sending task %s to agent %s", task.action, agent.name)
        message = Envelope.request(
            sender_id=self.sender_id,
            recipient_id=agent.agent_id,
            payload=task.to_payload(),
            priority=task.priority if task.priority is not None else self.default_priority,
            timeout=task.timeout if task.timeout is not None else self.default_timeout,
        )
        return await self._bus.request(message)


def _coerce_task(data: Mapping[str, Any]) -> Task:
    try:
        return Task.from_dict(data)
    except ValueError as exc:
        raise UnroutableActionError(data.get("action")) from exc
