"""Tests for the agent registry indices."""
from __future__ import annotations

from typing import Any, Dict, List, Mapping

import pytest

from agenthub.core import events as ev
from agenthub.core.errors import DuplicateAgentError
from agenthub.core.events import EventHub
from agenthub.core.state_store import InMemoryStateStore
from agenthub.orchestration.registry import STATE_NAMESPACE, AgentRegistry, agent_key


class BrokenStore(InMemoryStateStore):
    async def set(self, key, value, *, namespace="", ttl=None) -> None:
        raise ConnectionError("store offline")

    async def delete(self, key, *, namespace="") -> bool:
        raise ConnectionError("store offline")


@pytest.mark.anyio
async def test_register_indexes_by_id_type_and_capability(registry: AgentRegistry, make_agent) -> None:
    agent = make_agent("a1", agent_type="schema", capabilities={"read", "describe"})

    await registry.register(agent)

    assert registry.get("a1") is agent
    assert registry.by_type("schema") == [agent]
    assert registry.by_capability("read") == [agent]
    assert registry.by_capability("describe") == [agent]
    assert "a1" in registry
    assert len(registry) == 1


@pytest.mark.anyio
async def test_unregister_removes_agent_from_every_index(registry: AgentRegistry, make_agent) -> None:
    keep = make_agent("a1", agent_type="schema", capabilities={"read"})
    drop = make_agent("a2", agent_type="schema", capabilities={"read", "write"})
    await registry.register(keep)
    await registry.register(drop)

    assert await registry.unregister("a2") is True

    assert registry.get("a2") is None
    assert registry.by_type("schema") == [keep]
    assert registry.by_capability("read") == [keep]
    assert registry.by_capability("write") == []
    assert registry.type_counts() == {"schema": 1}


@pytest.mark.anyio
async def test_unregister_unknown_id_returns_false(registry: AgentRegistry) -> None:
    assert await registry.unregister("ghost") is False
    assert registry.unregistered_total == 0


@pytest.mark.anyio
async def test_duplicate_id_is_rejected_without_touching_indices(registry: AgentRegistry, make_agent) -> None:
    first = make_agent("a1", agent_type="schema")
    await registry.register(first)

    with pytest.raises(DuplicateAgentError):
        await registry.register(make_agent("a1", agent_type="records"))

    assert registry.get("a1") is first
    assert registry.by_type("records") == []
    assert registry.registered_total == 1


@pytest.mark.anyio
async def test_type_index_keeps_registration_order(registry: AgentRegistry, make_agent) -> None:
    agents = [make_agent(f"a{i}") for i in range(4)]
    for agent in agents:
        await registry.register(agent)

    assert registry.by_type("worker") == agents
    assert [a.agent_id for a in registry] == ["a0", "a1", "a2", "a3"]


@pytest.mark.anyio
async def test_registration_is_mirrored_to_state_store(
    registry: AgentRegistry, store: InMemoryStateStore, make_agent
) -> None:
    await registry.register(make_agent("a1", agent_type="schema", capabilities={"write", "read"}))

    record = await store.get(agent_key("a1"), namespace=STATE_NAMESPACE)
    assert record["id"] == "a1"
    assert record["type"] == "schema"
    assert record["capabilities"] == ["read", "write"]

    await registry.unregister("a1")
    assert await store.get(agent_key("a1"), namespace=STATE_NAMESPACE) is None


@pytest.mark.anyio
async def test_store_failures_do_not_block_registration(make_agent) -> None:
    registry = AgentRegistry(BrokenStore())

    await registry.register(make_agent("a1"))
    assert registry.get("a1") is not None

    assert await registry.unregister("a1") is True
    assert registry.get("a1") is None


@pytest.mark.anyio
async def test_registry_events_survive_failing_subscriber(
    registry: AgentRegistry, events: EventHub, make_agent
) -> None:
    seen: List[Dict[str, Any]] = []

    async def record(event: str, data: Mapping[str, Any]) -> None:
        seen.append({"event": event, "agent_id": data["agent_id"]})

    async def explode(event: str, data: Mapping[str, Any]) -> None:
        raise RuntimeError("subscriber bug")

    events.subscribe(ev.AGENT_REGISTERED, explode)
    events.subscribe(ev.AGENT_REGISTERED, record)
    events.subscribe(ev.AGENT_UNREGISTERED, record)

    await registry.register(make_agent("a1"))
    await registry.unregister("a1")

    assert seen == [
        {"event": ev.AGENT_REGISTERED, "agent_id": "a1"},
        {"event": ev.AGENT_UNREGISTERED, "agent_id": "a1"},
    ]


@pytest.mark.anyio
async def test_unsubscribed_handler_stops_receiving(
    registry: AgentRegistry, events: EventHub, make_agent
) -> None:
    seen: List[str] = []

    async def record(event: str, data: Mapping[str, Any]) -> None:
        seen.append(data["agent_id"])

    events.subscribe(ev.AGENT_REGISTERED, record)
    await registry.register(make_agent("a1"))
    events.unsubscribe(ev.AGENT_REGISTERED, record)
    await registry.register(make_agent("a2"))

    assert seen == ["a1"]
