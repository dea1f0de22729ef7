"""In-memory message bus with mailbox delivery and request/response correlation."""
from __future__ import annotations

import asyncio
from collections import deque
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Deque, Dict, List, Protocol

from agenthub.logging_config import get_logger

from .errors import DeliveryError, RemoteTaskError, RequestTimeoutError
from .models import Envelope, MessageType

logger = get_logger(__name__)


class MessageBus(Protocol):
    """Contract the orchestrator relies on for envelope delivery."""

    async def register(self, participant_id: str) -> None:
        ...

    async def unregister(self, participant_id: str) -> None:
        ...

    def deliver(self, participant_id: str) -> Any:
        """Async context manager yielding the participant's mailbox."""
        ...

    async def send(self, message: Envelope) -> None:
        ...

    async def request(self, message: Envelope) -> Any:
        """Send ``message`` and return the payload of its correlated response."""
        ...


class InMemoryMessageBus:
    """Async message hub for orchestrator and agents living in one process."""

    def __init__(self, history_size: int = 1000) -> None:
        self._mailboxes: Dict[str, asyncio.Queue[Envelope]] = {}
        self._pending: Dict[str, asyncio.Future[Envelope]] = {}
        self._history: Deque[Envelope] = deque(maxlen=history_size)
        self._lock = asyncio.Lock()

    async def register(self, participant_id: str) -> None:
        """Ensure a mailbox exists for the participant."""
        async with self._lock:
            self._mailboxes.setdefault(participant_id, asyncio.Queue())

    async def unregister(self, participant_id: str) -> None:
        """Remove the mailbox to stop further deliveries."""
        async with self._lock:
            self._mailboxes.pop(participant_id, None)

    def is_registered(self, participant_id: str) -> bool:
        return participant_id in self._mailboxes

    async def send(self, message: Envelope) -> None:
        """Deliver a message to its recipient, or broadcast when no recipient is set."""
        self._history.append(message)

        if message.message_type is MessageType.RESPONSE and message.correlation_id:
            future = self._pending.get(message.correlation_id)
            if future is None or future.done():
                logger.warning(
                    "Dropping response %s with no outstanding request",
                    message.correlation_id,
                )
                return
            future.set_result(message)
            return

        if message.recipient_id:
            queue = self._mailboxes.get(message.recipient_id)
            if queue is None:
                if message.message_type is MessageType.REQUEST:
                    raise DeliveryError(message.recipient_id)
                logger.debug("No mailbox for %s, message dropped", message.recipient_id)
                return
            await queue.put(message)
            return

        # Broadcast to all registered mailboxes except the sender.
        for participant_id, queue in list(self._mailboxes.items()):
            if participant_id == message.sender_id:
                continue
            await queue.put(message)

    async def request(self, message: Envelope) -> Any:
        """Send a request and wait for the correlated response."""
        if not message.correlation_id:
            raise ValueError("Request envelopes need a correlation_id")

        future: asyncio.Future[Envelope] = asyncio.get_running_loop().create_future()
        self._pending[message.correlation_id] = future
        try:
            await self.send(message)
            response = await asyncio.wait_for(future, timeout=message.timeout)
        except asyncio.TimeoutError as exc:
            raise RequestTimeoutError(message.recipient_id, message.timeout) from exc
        finally:
            self._pending.pop(message.correlation_id, None)

        if response.error is not None:
            raise RemoteTaskError(response.sender_id, response.error)
        return response.payload

    @asynccontextmanager
    async def deliver(self, participant_id: str) -> AsyncIterator[asyncio.Queue[Envelope]]:
        """Context manager yielding the participant's mailbox queue."""
        await self.register(participant_id)
        try:
            yield self._mailboxes[participant_id]
        finally:
            await self.unregister(participant_id)

    def history(self, limit: int = 100) -> List[Envelope]:
        """Most recent envelopes, oldest first."""
        if limit <= 0:
            return []
        return list(self._history)[-limit:]

    def stats(self) -> Dict[str, int]:
        return {
            "participants": len(self._mailboxes),
            "pending_requests": len(self._pending),
            "history_size": len(self._history),
        }
