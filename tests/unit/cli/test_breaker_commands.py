"""Tests for breaker CLI commands."""

import json
import time
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from tandem.cli.main import cli
from tandem.infrastructure.resilience import (
    CircuitMetrics,
    CircuitState,
    CircuitStateRecord,
    FileStateStore,
)


@pytest.fixture
def config_file(temp_dir):
    path = temp_dir / "tandem.toml"
    path.write_text(
        "[state_store]\n"
        'backend = "file"\n'
        f'path = "{(temp_dir / "breakers").as_posix()}"\n'
        "\n"
        "[breakers.overrides.slow]\n"
        "reset_timeout = 5.0\n"
    )
    return path


@pytest.fixture
def store(temp_dir):
    return FileStateStore(temp_dir / "breakers")


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch("tandem.cli.main.setup_logging"):
        yield


def record(name, state=CircuitState.OPEN, age=0.0, ttl=86400):
    now = time.time()
    return CircuitStateRecord(
        name=name,
        state=state,
        metrics=CircuitMetrics(failures=4, total_requests=5, consecutive_failures=4),
        last_state_change=now - age,
        ttl=now + ttl,
    )


class TestBreakerCommands:
    """Test cases for breaker CLI commands."""

    def setup_method(self):
        self.runner = CliRunner()

    def invoke(self, config_file, *args):
        return self.runner.invoke(cli, ["--config", str(config_file), "breaker", *args])

    def test_trip_persists_open_state(self, config_file, store):
        result = self.invoke(config_file, "trip", "payments")

        assert result.exit_code == 0, result.output
        assert "Circuit breaker 'payments' forced OPEN" in result.output
        saved = store.get("payments")
        assert saved.state == CircuitState.OPEN
        assert saved.ttl > saved.last_state_change

    def test_reset_closes_and_zeroes(self, config_file, store):
        store.put(record("payments"))

        result = self.invoke(config_file, "reset", "payments")

        assert result.exit_code == 0, result.output
        assert "Circuit breaker 'payments' reset to CLOSED" in result.output
        saved = store.get("payments")
        assert saved.state == CircuitState.CLOSED
        assert saved.metrics == CircuitMetrics()

    def test_status_json(self, config_file, store):
        store.put(record("payments"))
        store.put(record("slow", age=30))
        store.put(record("expired", ttl=-1))

        result = self.invoke(config_file, "status", "--format", "json")

        assert result.exit_code == 0, result.output
        payload = {entry["name"]: entry for entry in json.loads(result.output)}
        assert payload["payments"]["status"] == "live"
        assert payload["payments"]["state"] == "OPEN"
        assert payload["payments"]["metrics"]["error_rate"] == 80.0
        # Override: 2 * 5s reset timeout
        assert payload["slow"]["status"] == "stale"
        assert payload["expired"]["status"] == "expired"

    def test_status_single_breaker(self, config_file, store):
        store.put(record("payments"))
        store.put(record("other"))

        result = self.invoke(config_file, "status", "payments", "--format", "json")

        assert [entry["name"] for entry in json.loads(result.output)] == ["payments"]

    def test_status_table(self, config_file, store):
        store.put(record("pay", state=CircuitState.HALF_OPEN))

        result = self.invoke(config_file, "status")

        assert result.exit_code == 0, result.output
        assert "Circuit Breaker Status" in result.output
        assert "pay" in result.output

    def test_status_empty(self, config_file):
        result = self.invoke(config_file, "status")

        assert result.exit_code == 0
        assert "No persisted breaker state found" in result.output

    def test_status_unknown_breaker(self, config_file):
        result = self.invoke(config_file, "status", "ghost")
        assert "No persisted state for breaker: ghost" in result.output

    def test_memory_backend_is_rejected(self, temp_dir):
        config_file = temp_dir / "tandem.toml"
        config_file.write_text('[state_store]\nbackend = "memory"\n')

        result = self.invoke(config_file, "trip", "payments")

        assert result.exit_code != 0
        assert "shared state store" in result.output

    def test_trip_requires_name(self, config_file):
        result = self.invoke(config_file, "trip")
        assert result.exit_code == 2
