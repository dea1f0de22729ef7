"""Application runtime composition helpers."""
from __future__ import annotations

import uuid
from functools import lru_cache
from typing import Dict, Iterable, Optional, Type

from agenthub.agents.base import Agent
from agenthub.agents.echo import EchoAgent
from agenthub.config import config
from agenthub.core.events import EventHub
from agenthub.core.message_bus import InMemoryMessageBus
from agenthub.core.models import AgentDescriptor
from agenthub.core.state_store import InMemoryStateStore, SqliteStateStore, StateStore
from agenthub.logging_config import get_logger
from agenthub.orchestration.orchestrator import Orchestrator
from agenthub.orchestration.workflow import load_workflow_definitions

logger = get_logger(__name__)

_AGENT_CATALOG: Dict[str, Type[Agent]] = {
    "echo": EchoAgent,
}

# Agents started by this process, keyed by id.
_SPAWNED: Dict[str, Agent] = {}


@lru_cache
def get_bus() -> InMemoryMessageBus:
    return InMemoryMessageBus()


@lru_cache
def get_events() -> EventHub:
    return EventHub()


@lru_cache
def get_state_store() -> StateStore:
    if config.state_backend == "sqlite":
        return SqliteStateStore(config.database_path)
    if config.state_backend != "memory":
        raise ValueError(f"Unknown state backend: {config.state_backend}")
    return InMemoryStateStore()


@lru_cache
def get_orchestrator() -> Orchestrator:
    orchestrator = Orchestrator(
        bus=get_bus(),
        state_store=get_state_store(),
        events=get_events(),
        config=config.orchestrator,
        action_map=config.action_map,
    )
    if config.workflows_file:
        for definition in load_workflow_definitions(config.workflows_file):
            orchestrator.register_workflow(definition)
    return orchestrator


async def initialize_runtime() -> Orchestrator:
    """Open the state store and start the orchestrator."""
    store = get_state_store()
    if isinstance(store, SqliteStateStore):
        await store.init()
    orchestrator = get_orchestrator()
    await orchestrator.start()
    return orchestrator


async def shutdown_runtime() -> None:
    """Stop spawned agents, the orchestrator and the state store."""
    orchestrator = get_orchestrator()
    for agent_id in list(_SPAWNED):
        await terminate_agent(agent_id)
    await orchestrator.stop()
    store = get_state_store()
    if isinstance(store, SqliteStateStore):
        await store.close()


def reset_runtime() -> None:
    """Forget cached components so the next call builds fresh ones."""
    _SPAWNED.clear()
    for provider in (get_orchestrator, get_state_store, get_events, get_bus):
        provider.cache_clear()


def resolve_agent_class(role: str) -> Type[Agent]:
    if role not in _AGENT_CATALOG:
        raise KeyError(f"No agent registered for role '{role}'")
    return _AGENT_CATALOG[role]


async def spawn_agent(
    role: str,
    name: str,
    *,
    agent_type: Optional[str] = None,
    capabilities: Iterable[str] = (),
    orchestrator: Optional[Orchestrator] = None,
) -> Agent:
    """Create an agent from the catalog, start it and register it."""
    agent_cls = resolve_agent_class(role)
    orchestrator = orchestrator or get_orchestrator()
    descriptor = AgentDescriptor(
        agent_id=str(uuid.uuid4()),
        name=name,
        agent_type=agent_type or role,
        capabilities=frozenset(capabilities),
        metadata={"role": role},
    )
    agent = agent_cls(descriptor, orchestrator.bus)
    await agent.start()
    try:
        await orchestrator.register_agent(agent)
    except Exception:
        await agent.stop()
        raise
    _SPAWNED[agent.agent_id] = agent
    return agent


async def terminate_agent(agent_id: str, orchestrator: Optional[Orchestrator] = None) -> bool:
    """Unregister an agent and stop it when this process started it."""
    orchestrator = orchestrator or get_orchestrator()
    removed = await orchestrator.unregister_agent(agent_id)
    agent = _SPAWNED.pop(agent_id, None)
    if agent is not None:
        await agent.stop()
    return removed
