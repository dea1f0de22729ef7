"""Periodic health supervision of registered agents."""
from __future__ import annotations

import asyncio
from typing import List, Optional, Tuple

from agenthub.core import events as ev
from agenthub.core.events import EventHub
from agenthub.core.models import UNREACHABLE_LOAD, AgentState, HealthSnapshot
from agenthub.core.state_store import StateStore
from agenthub.logging_config import get_logger
from agenthub.orchestration.registry import STATE_NAMESPACE, AgentHandle, AgentRegistry

logger = get_logger(__name__)


def health_key(agent_id: str) -> str:
    return f"agent:{agent_id}:health"


class HealthMonitor:
    """Poll agent health on an interval and keep short-lived snapshots.

    Snapshots are stored with a time-to-live; once expired an agent is
    ranked as unreachable until the next successful check.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        state_store: StateStore,
        events: Optional[EventHub] = None,
        *,
        interval: float = 10.0,
        snapshot_ttl: float = 30.0,
        check_timeout: float = 5.0,
    ) -> None:
        self._registry = registry
        self._state_store = state_store
        self._events = events
        self.interval = interval
        self.snapshot_ttl = snapshot_ttl
        self.check_timeout = check_timeout
        self.ticks = 0
        self._runner: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._runner is not None

    async def check_agent(self, agent: AgentHandle) -> Optional[HealthSnapshot]:
        """Run one health check; failures are logged and yield None."""
        try:
            snapshot = await asyncio.wait_for(agent.health_check(), timeout=self.check_timeout)
        except Exception as exc:  # noqa: BLE001
            logger.error("Health check failed for %s: %s", agent.name, exc)
            return None

        try:
            await self._state_store.set(
                health_key(agent.agent_id),
                snapshot.to_dict(),
                namespace=STATE_NAMESPACE,
                ttl=self.snapshot_ttl,
            )
        except Exception:  # noqa: BLE001
            logger.exception("Failed to persist health snapshot of %s", agent.agent_id)
        return snapshot

    async def perform_health_check(self) -> List[HealthSnapshot]:
        """Check every registered agent and publish one aggregate report."""
        agents = self._registry.all()
        results = await asyncio.gather(*(self.check_agent(agent) for agent in agents))
        reports = [snapshot for snapshot in results if snapshot is not None]

        if self._events:
            await self._events.publish(
                ev.HEALTH_CHECK_COMPLETED,
                {"agents": [snapshot.to_dict() for snapshot in reports]},
            )
        return reports

    async def latest(self, agent_id: str) -> Optional[HealthSnapshot]:
        """Most recent unexpired snapshot for ``agent_id``."""
        try:
            data = await self._state_store.get(health_key(agent_id), namespace=STATE_NAMESPACE)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to read health snapshot of %s", agent_id)
            return None
        if not data:
            return None
        return HealthSnapshot.from_dict(data)

    async def assess(self, agent: AgentHandle, *, fresh: bool = True) -> Tuple[int, AgentState]:
        """Return ``(load, state)`` used to rank ``agent`` for routing."""
        if fresh:
            snapshot = await self.check_agent(agent)
        else:
            snapshot = await self.latest(agent.agent_id)
        if snapshot is None:
            return UNREACHABLE_LOAD, agent.state
        return snapshot.load, snapshot.state

    async def start(self) -> None:
        """Start the background monitoring loop."""
        if self._runner is not None:
            return
        self._stop_event.clear()
        self._runner = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop scheduling ticks; an in-flight tick is allowed to finish."""
        if self._runner is None:
            return
        self._stop_event.set()
        await self._runner
        self._runner = None

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.perform_health_check()
            except Exception:  # noqa: BLE001
                logger.exception("Health check tick failed")
            self.ticks += 1
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
