"""Configuration management for the orchestrator."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from agenthub.core.models import DEFAULT_PRIORITY, DEFAULT_TIMEOUT


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_action_map(raw: Optional[str]) -> Dict[str, str]:
    """Parse ``"action=type,action=type"`` into a mapping."""
    mapping: Dict[str, str] = {}
    if not raw:
        return mapping
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        action, sep, agent_type = item.partition("=")
        if not sep or not action.strip() or not agent_type.strip():
            raise ValueError(f"Invalid action mapping entry: '{item}'")
        mapping[action.strip()] = agent_type.strip()
    return mapping


@dataclass(frozen=True)
class OrchestratorConfig:
    """Tuning knobs for routing and health supervision (seconds)."""

    orchestrator_id: str = "orchestrator"
    health_check_interval: float = 10.0
    health_snapshot_ttl: float = 30.0
    default_task_timeout: float = DEFAULT_TIMEOUT
    default_task_priority: int = DEFAULT_PRIORITY
    fresh_health_checks: bool = True
    fallback_to_unhealthy: bool = True


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment variables."""

    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    environment: str = "development"
    log_level: str = "INFO"
    log_file: Optional[str] = None
    state_backend: str = "memory"
    database_path: str = "agenthub.db"
    action_map: Dict[str, str] = field(default_factory=dict)
    workflows_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables."""
        orchestrator = OrchestratorConfig(
            orchestrator_id=os.getenv("AGENTHUB_ORCHESTRATOR_ID", "orchestrator"),
            health_check_interval=float(os.getenv("AGENTHUB_HEALTH_INTERVAL", "10")),
            health_snapshot_ttl=float(os.getenv("AGENTHUB_HEALTH_TTL", "30")),
            default_task_timeout=float(os.getenv("AGENTHUB_TASK_TIMEOUT", str(DEFAULT_TIMEOUT))),
            default_task_priority=int(os.getenv("AGENTHUB_TASK_PRIORITY", str(DEFAULT_PRIORITY))),
            fresh_health_checks=_env_bool("AGENTHUB_FRESH_HEALTH_CHECKS", True),
            fallback_to_unhealthy=_env_bool("AGENTHUB_UNHEALTHY_FALLBACK", True),
        )

        return cls(
            orchestrator=orchestrator,
            environment=os.getenv("AGENTHUB_ENVIRONMENT", "development"),
            log_level=os.getenv("AGENTHUB_LOG_LEVEL", "INFO"),
            log_file=os.getenv("AGENTHUB_LOG_FILE") or None,
            state_backend=os.getenv("AGENTHUB_STATE_BACKEND", "memory"),
            database_path=os.getenv("AGENTHUB_DATABASE_PATH", "agenthub.db"),
            action_map=parse_action_map(os.getenv("AGENTHUB_ACTION_MAP")),
            workflows_file=os.getenv("AGENTHUB_WORKFLOWS_FILE") or None,
        )


# Global config instance
config = Config.from_env()
