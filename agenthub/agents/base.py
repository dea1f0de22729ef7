"""Base agent definition used by the orchestrator."""
from __future__ import annotations

import abc
import asyncio
from typing import Any, Dict, FrozenSet, Optional

from agenthub.core.message_bus import MessageBus
from agenthub.core.models import (
    AgentDescriptor,
    AgentState,
    Envelope,
    HealthSnapshot,
    MessageType,
)
from agenthub.logging_config import get_logger

logger = get_logger(__name__)


class Agent(abc.ABC):
    """Abstract agent encapsulating lifecycle hooks and task handling."""

    error_threshold = 5

    def __init__(self, descriptor: AgentDescriptor, bus: MessageBus) -> None:
        self.descriptor = descriptor
        self._bus = bus
        self._inbox: Optional[asyncio.Queue[Envelope]] = None
        self._runner: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()
        self._started_event = asyncio.Event()

    @property
    def agent_id(self) -> str:
        return self.descriptor.agent_id

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def agent_type(self) -> str:
        return self.descriptor.agent_type

    @property
    def capabilities(self) -> FrozenSet[str]:
        return self.descriptor.capabilities

    @property
    def state(self) -> AgentState:
        return self.descriptor.state

    async def start(self) -> None:
        """Start the agent's background loop."""
        if self._runner is not None:
            return
        self._stop_event.clear()
        self._started_event.clear()
        self._runner = asyncio.create_task(self._run_safe())
        await self._started_event.wait()

    async def stop(self) -> None:
        """Signal the agent to stop and wait for completion."""
        if self._runner is None:
            return
        self._stop_event.set()
        await self._runner
        self._runner = None

    async def _run_safe(self) -> None:
        """Wrap the main loop to handle exceptions gracefully."""
        try:
            async with self._bus.deliver(self.agent_id) as inbox:
                self._inbox = inbox
                self.descriptor.state = AgentState.IDLE
                self._started_event.set()
                await self.on_start()
                while not self._stop_event.is_set():
                    try:
                        message = await asyncio.wait_for(inbox.get(), timeout=0.5)
                    except asyncio.TimeoutError:
                        await self.on_idle()
                        continue
                    await self._handle_message(message)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Agent %s loop crashed", self.name)
            self.descriptor.state = AgentState.ERROR
            self.descriptor.last_error = str(exc)
            self._started_event.set()
        else:
            self.descriptor.state = AgentState.STOPPED
            self._started_event.set()
        finally:
            self._inbox = None
            await self.on_stop()

    async def _handle_message(self, message: Envelope) -> None:
        if message.message_type is not MessageType.REQUEST:
            logger.debug("Agent %s ignoring %s", self.name, message.message_type.value)
            return

        self.descriptor.state = AgentState.BUSY
        result: Any = None
        error: Optional[str] = None
        try:
            result = await self.process_task(message.payload or {})
        except Exception as exc:  # noqa: BLE001
            error = str(exc) or exc.__class__.__name__
            self.descriptor.error_count += 1
            self.descriptor.last_error = error
            logger.warning("Agent %s task failed: %s", self.name, error)
        finally:
            self.descriptor.task_count += 1
            if self.descriptor.error_count >= self.error_threshold:
                self.descriptor.state = AgentState.ERROR
            elif not self._stop_event.is_set():
                self.descriptor.state = AgentState.IDLE

        if message.requires_ack:
            await self.send(
                Envelope.reply_to(message, sender_id=self.agent_id, payload=result, error=error)
            )

    async def send(self, message: Envelope) -> None:
        """Send a message via the shared bus."""
        await self._bus.send(message)

    async def health_check(self) -> HealthSnapshot:
        """Report current state and mailbox depth."""
        return HealthSnapshot(
            agent_id=self.agent_id,
            state=self.descriptor.state,
            queue_size=self._inbox.qsize() if self._inbox is not None else 0,
            details=self.health_details(),
        )

    def health_details(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.agent_type,
            "task_count": self.descriptor.task_count,
            "error_count": self.descriptor.error_count,
        }

    @abc.abstractmethod
    async def process_task(self, payload: Dict[str, Any]) -> Any:
        """Perform the work described by a task payload and return its result."""

    async def on_start(self) -> None:
        """Hook executed once the agent loop begins."""
        return None

    async def on_stop(self) -> None:
        """Hook executed when the agent loop exits."""
        return None

    async def on_idle(self) -> None:
        """Hook invoked when no messages were received during the idle window."""
        return None
