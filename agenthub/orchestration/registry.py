"""Agent registry indexed by id, type and capability."""
from __future__ import annotations

import time
from typing import Dict, FrozenSet, Iterator, List, Optional, Protocol, runtime_checkable

from agenthub.core import events as ev
from agenthub.core.errors import DuplicateAgentError
from agenthub.core.events import EventHub
from agenthub.core.models import AgentState, HealthSnapshot
from agenthub.core.state_store import StateStore
from agenthub.logging_config import get_logger

logger = get_logger(__name__)

STATE_NAMESPACE = "orchestrator"


@runtime_checkable
class AgentHandle(Protocol):
    """What the orchestrator needs from an agent it tracks."""

    @property
    def agent_id(self) -> str: ...

    @property
    def name(self) -> str: ...

    @property
    def agent_type(self) -> str: ...

    @property
    def capabilities(self) -> FrozenSet[str]: ...

    @property
    def state(self) -> AgentState: ...

    async def health_check(self) -> HealthSnapshot: ...


def agent_key(agent_id: str) -> str:
    return f"agent:{agent_id}"


class AgentRegistry:
    """In-memory indices of registered agents, mirrored to a state store.

    Index updates never await, so a routing decision sees an agent either in
    every index or in none of them. Indices keep registration order.
    """

    def __init__(self, state_store: StateStore, events: Optional[EventHub] = None) -> None:
        self._state_store = state_store
        self._events = events
        self._by_id: Dict[str, AgentHandle] = {}
        self._by_type: Dict[str, Dict[str, AgentHandle]] = {}
        self._by_capability: Dict[str, Dict[str, AgentHandle]] = {}
        self.registered_total = 0
        self.unregistered_total = 0

    async def register(self, agent: AgentHandle) -> None:
        """Add an agent to every index; raise DuplicateAgentError on id clash."""
        if agent.agent_id in self._by_id:
            raise DuplicateAgentError(agent.agent_id)

        self._by_id[agent.agent_id] = agent
        self._by_type.setdefault(agent.agent_type, {})[agent.agent_id] = agent
        for capability in agent.capabilities:
            self._by_capability.setdefault(capability, {})[agent.agent_id] = agent
        self.registered_total += 1
        logger.info("Agent registered: %s (%s)", agent.name, agent.agent_type)

        await self._persist(agent)
        if self._events:
            await self._events.publish(ev.AGENT_REGISTERED, {"agent_id": agent.agent_id, "agent": agent})

    async def unregister(self, agent_id: str) -> bool:
        """Remove an agent from every index. Returns False if it was not registered."""
        agent = self._by_id.pop(agent_id, None)
        if agent is None:
            logger.warning("Agent not found: %s", agent_id)
            return False

        _discard(self._by_type, agent.agent_type, agent_id)
        for capability in agent.capabilities:
            _discard(self._by_capability, capability, agent_id)
        self.unregistered_total += 1
        logger.info("Agent unregistered: %s", agent.name)

        try:
            await self._state_store.delete(agent_key(agent_id), namespace=STATE_NAMESPACE)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to remove persisted record of %s", agent_id)
        if self._events:
            await self._events.publish(ev.AGENT_UNREGISTERED, {"agent_id": agent_id})
        return True

    async def _persist(self, agent: AgentHandle) -> None:
        record = {
            "id": agent.agent_id,
            "name": agent.name,
            "type": agent.agent_type,
            "capabilities": sorted(agent.capabilities),
            "registered_at": time.time(),
        }
        try:
            await self._state_store.set(agent_key(agent.agent_id), record, namespace=STATE_NAMESPACE)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to persist registry record of %s", agent.agent_id)

    def get(self, agent_id: str) -> Optional[AgentHandle]:
        return self._by_id.get(agent_id)

    def by_type(self, agent_type: str) -> List[AgentHandle]:
        return list(self._by_type.get(agent_type, {}).values())

    def by_capability(self, capability: str) -> List[AgentHandle]:
        return list(self._by_capability.get(capability, {}).values())

    def all(self) -> List[AgentHandle]:
        return list(self._by_id.values())

    def type_counts(self) -> Dict[str, int]:
        return {agent_type: len(agents) for agent_type, agents in self._by_type.items()}

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._by_id

    def __iter__(self) -> Iterator[AgentHandle]:
        return iter(self.all())


def _discard(index: Dict[str, Dict[str, AgentHandle]], key: str, agent_id: str) -> None:
    bucket = index.get(key)
    if bucket is None:
        return
    bucket.pop(agent_id, None)
    if not bucket:
        del index[key]
