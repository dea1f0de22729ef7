"""Publish/subscribe hub for advisory orchestrator events."""
from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Mapping

from agenthub.logging_config import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[str, Mapping[str, Any]], Awaitable[None]]

AGENT_REGISTERED = "agent-registered"
AGENT_UNREGISTERED = "agent-unregistered"
HEALTH_CHECK_COMPLETED = "health-check-completed"
ORCHESTRATOR_STARTED = "orchestrator-started"
ORCHESTRATOR_STOPPED = "orchestrator-stopped"
WORKFLOW_STARTED = "workflow-started"
WORKFLOW_COMPLETED = "workflow-completed"
WORKFLOW_FAILED = "workflow-failed"


class EventHub:
    """In-memory pub/sub for observers such as dashboards.

    Events are advisory: a failing subscriber is logged and never affects
    the publisher.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[EventHandler]] = defaultdict(list)

    def subscribe(self, event: str, handler: EventHandler) -> None:
        self._subscribers[event].append(handler)

    def unsubscribe(self, event: str, handler: EventHandler) -> None:
        handlers = self._subscribers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    async def publish(self, event: str, data: Mapping[str, Any]) -> None:
        """Call every subscriber of ``event`` concurrently."""
        handlers = list(self._subscribers.get(event, ()))
        if not handlers:
            return

        results = await asyncio.gather(
            *(handler(event, data) for handler in handlers),
            return_exceptions=True,
        )
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                logger.error("Error in '%s' subscriber %r: %s", event, handler, result)
