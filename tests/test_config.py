"""Tests for environment configuration and log formatting."""
from __future__ import annotations

import json
import logging

import pytest

from agenthub.config import Config, parse_action_map
from agenthub.logging_config import JSONFormatter


def test_action_map_parsing() -> None:
    assert parse_action_map("lookup=schema, store = records,") == {"lookup": "schema", "store": "records"}
    assert parse_action_map(None) == {}

    with pytest.raises(ValueError):
        parse_action_map("lookup")


def test_config_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AGENTHUB_HEALTH_INTERVAL", "2.5")
    monkeypatch.setenv("AGENTHUB_UNHEALTHY_FALLBACK", "false")
    monkeypatch.setenv("AGENTHUB_STATE_BACKEND", "sqlite")
    monkeypatch.setenv("AGENTHUB_ACTION_MAP", "lookup=schema")

    config = Config.from_env()

    assert config.orchestrator.health_check_interval == 2.5
    assert config.orchestrator.health_snapshot_ttl == 30.0
    assert config.orchestrator.fallback_to_unhealthy is False
    assert config.state_backend == "sqlite"
    assert config.action_map == {"lookup": "schema"}


def test_json_formatter_includes_context() -> None:
    record = logging.LogRecord("agenthub.test", logging.INFO, __file__, 10, "routed %s", ("lookup",), None)
    record.context = {"agent_id": "s1"}

    data = json.loads(JSONFormatter().format(record))

    assert data["message"] == "routed lookup"
    assert data["level"] == "INFO"
    assert data["context"] == {"agent_id": "s1"}
