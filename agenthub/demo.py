"""CLI demonstration of task routing and a two-step workflow."""
from __future__ import annotations

import asyncio
from typing import NoReturn

from agenthub.agents.echo import EchoAgent
from agenthub.core.events import EventHub
from agenthub.core.message_bus import InMemoryMessageBus
from agenthub.core.models import AgentDescriptor, Task, WorkflowDefinition, WorkflowStep
from agenthub.core.state_store import InMemoryStateStore
from agenthub.logging_config import setup_logging
from agenthub.orchestration.orchestrator import Orchestrator


async def main() -> None:
    bus = InMemoryMessageBus()
    orchestrator = Orchestrator(
        bus=bus,
        state_store=InMemoryStateStore(),
        events=EventHub(),
        action_map={"lookup": "schema", "store": "records"},
    )
    await orchestrator.start()

    agents = [
        EchoAgent(AgentDescriptor("schema-1", "schema-one", "schema", {"read"}), bus),
        EchoAgent(AgentDescriptor("schema-2", "schema-two", "schema", {"read"}), bus),
        EchoAgent(AgentDescriptor("records-1", "records", "records", {"write"}), bus),
    ]
    for agent in agents:
        await agent.start()
        await orchestrator.register_agent(agent)
    print(f"Registered {len(agents)} agents")

    result = await orchestrator.route_task(Task(action="lookup", payload={"table": "incident"}))
    print(f"Routed lookup -> {result['echo']}")

    orchestrator.register_workflow(
        WorkflowDefinition(
            name="lookup-and-store",
            steps=(
                WorkflowStep("lookup", "lookup", {"table": "$params.table"}),
                WorkflowStep("store", "store", {"source": "$results.lookup.agent_id"}),
            ),
        )
    )
    context = await orchestrator.execute_workflow("lookup-and-store", {"table": "incident"})
    print(f"Workflow {context.workflow_id} success={context.success} steps={list(context.results)}")
    print(f"Stats: {orchestrator.stats()}")

    for agent in agents:
        await orchestrator.unregister_agent(agent.agent_id)
        await agent.stop()
    await orchestrator.stop()
    print("Orchestrator stopped")


def run() -> NoReturn:
    setup_logging(log_level="WARNING")
    asyncio.run(main())
    raise SystemExit(0)


if __name__ == "__main__":
    run()
