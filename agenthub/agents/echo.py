"""Simple agent that echoes task payloads back to the sender."""
from __future__ import annotations

import asyncio
from typing import Any, Dict

from agenthub.agents.base import Agent


class EchoAgent(Agent):
    """Agent that echoes incoming tasks to demonstrate routing and workflows.

    A ``delay`` field simulates work; a truthy ``fail`` field makes the task fail.
    """

    async def process_task(self, payload: Dict[str, Any]) -> Any:
        delay = float(payload.get("delay", 0) or 0)
        if delay:
            await asyncio.sleep(delay)  # Simulate work
        fail = payload.get("fail")
        if fail:
            raise RuntimeError(fail if isinstance(fail, str) else "echo failure")
        return {
            "agent_id": self.agent_id,
            "echo": f"{self.name} heard {payload.get('action', '')}",
            "payload": dict(payload),
        }
