"""FastAPI entry-point exposing orchestrator controls."""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from agenthub.api.routes import router as agents_router
from agenthub.api.routes import stats_router, tasks_router
from agenthub.api.workflows import router as workflows_router
from agenthub.logging_config import setup_logging
from agenthub.runtime import initialize_runtime, shutdown_runtime


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for FastAPI application."""
    setup_logging()
    await initialize_runtime()
    yield
    # Shutdown: stop spawned agents, then the orchestrator
    await shutdown_runtime()


app = FastAPI(title="Agent Orchestrator", lifespan=lifespan)
app.include_router(agents_router)
app.include_router(tasks_router)
app.include_router(workflows_router)
app.include_router(stats_router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
