"""Shared fixtures for orchestrator tests."""
from __future__ import annotations

import asyncio
from typing import Callable, FrozenSet, Iterable, Optional

import pytest

from agenthub.core.events import EventHub
from agenthub.core.message_bus import InMemoryMessageBus
from agenthub.core.models import AgentState, HealthSnapshot
from agenthub.core.state_store import InMemoryStateStore
from agenthub.orchestration.health import HealthMonitor
from agenthub.orchestration.registry import AgentRegistry


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class StubAgent:
    """Agent handle with scripted health reports and no message loop."""

    def __init__(
        self,
        agent_id: str,
        agent_type: str = "worker",
        capabilities: Iterable[str] = (),
        state: AgentState = AgentState.IDLE,
        queue_size: int = 0,
        fail_health: bool = False,
        name: Optional[str] = None,
        health_delay: float = 0.0,
    ) -> None:
        self.agent_id = agent_id
        self.name = name or agent_id
        self.agent_type = agent_type
        self.capabilities: FrozenSet[str] = frozenset(capabilities)
        self.state = state
        self.queue_size = queue_size
        self.fail_health = fail_health
        self.health_delay = health_delay
        self.health_calls = 0

    async def health_check(self) -> HealthSnapshot:
        self.health_calls += 1
        if self.health_delay:
            await asyncio.sleep(self.health_delay)
        if self.fail_health:
            raise RuntimeError(f"{self.agent_id} unreachable")
        return HealthSnapshot(agent_id=self.agent_id, state=self.state, queue_size=self.queue_size)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def make_agent() -> Callable[..., StubAgent]:
    return StubAgent


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bus() -> InMemoryMessageBus:
    return InMemoryMessageBus()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryStateStore:
    return InMemoryStateStore(clock=clock)


@pytest.fixture
def events() -> EventHub:
    return EventHub()


@pytest.fixture
def registry(store: InMemoryStateStore, events: EventHub) -> AgentRegistry:
    return AgentRegistry(store, events)


@pytest.fixture
def monitor(registry: AgentRegistry, store: InMemoryStateStore, events: EventHub) -> HealthMonitor:
    return HealthMonitor(registry, store, events, interval=0.01, snapshot_ttl=30.0)
