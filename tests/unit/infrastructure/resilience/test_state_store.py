"""
Unit tests for breaker state stores.
"""

import json
import os

import pytest

from tandem.exceptions import StateStoreError
from tandem.infrastructure.resilience import (
    CircuitMetrics,
    CircuitState,
    CircuitStateRecord,
    FileStateStore,
    InMemoryStateStore,
    StateStore,
)


def make_record(name="payments", state=CircuitState.OPEN):
    return CircuitStateRecord(
        name=name,
        state=state,
        metrics=CircuitMetrics(failures=3, total_requests=4, consecutive_failures=3),
        last_state_change=1_700_000_000.0,
        correlation_id="corr-1",
        ttl=1_700_086_400.0,
    )


@pytest.mark.unit
class TestCircuitStateRecord:
    def test_dict_round_trip(self):
        record = make_record()
        record.metrics.recompute_error_rate()

        restored = CircuitStateRecord.from_dict(record.to_dict())

        assert restored == record
        assert restored.metrics.error_rate == 75.0

    def test_is_expired(self):
        record = make_record()
        assert not record.is_expired(record.ttl - 1)
        assert record.is_expired(record.ttl)

    def test_record_without_ttl_never_expires(self):
        record = CircuitStateRecord(name="x", state=CircuitState.CLOSED)
        assert not record.is_expired(10**12)


@pytest.mark.unit
class TestInMemoryStateStore:
    def test_satisfies_protocol(self):
        assert isinstance(InMemoryStateStore(), StateStore)

    def test_get_missing(self):
        assert InMemoryStateStore().get("nope") is None

    def test_put_get_returns_copy(self):
        store = InMemoryStateStore()
        record = make_record()
        store.put(record)

        loaded = store.get("payments")
        loaded.metrics.failures = 100

        assert store.get("payments").metrics.failures == 3

    def test_last_writer_wins(self):
        store = InMemoryStateStore()
        store.put(make_record(state=CircuitState.OPEN))
        store.put(make_record(state=CircuitState.CLOSED))
        assert store.get("payments").state == CircuitState.CLOSED

    def test_list_and_clear(self):
        store = InMemoryStateStore()
        store.put(make_record("a"))
        store.put(make_record("b"))
        assert {r.name for r in store.list_records()} == {"a", "b"}

        store.clear()
        assert store.list_records() == []


@pytest.mark.unit
class TestFileStateStore:
    def test_satisfies_protocol(self, temp_dir):
        assert isinstance(FileStateStore(temp_dir), StateStore)

    def test_put_creates_directory_and_round_trips(self, temp_dir):
        store = FileStateStore(temp_dir / "nested" / "breakers")
        record = make_record()

        store.put(record)

        assert store.get("payments") == CircuitStateRecord.from_dict(record.to_dict())

    def test_file_is_json_document(self, temp_dir):
        store = FileStateStore(temp_dir)
        store.put(make_record())

        data = json.loads((temp_dir / "payments.json").read_text())
        assert data["state"] == "OPEN"
        assert data["metrics"]["failures"] == 3
        assert data["correlation_id"] == "corr-1"

    def test_unsafe_names_are_sanitized(self, temp_dir):
        store = FileStateStore(temp_dir)
        store.put(make_record("svc/../graphql api"))

        assert store.get("svc/../graphql api").name == "svc/../graphql api"
        assert [p.parent for p in temp_dir.glob("*.json")] == [temp_dir]

    def test_get_missing_returns_none(self, temp_dir):
        assert FileStateStore(temp_dir).get("nope") is None

    def test_malformed_file_raises_state_store_error(self, temp_dir):
        (temp_dir / "payments.json").write_text("{not json")

        with pytest.raises(StateStoreError) as exc_info:
            FileStateStore(temp_dir).get("payments")

        assert exc_info.value.code == "STATE_STORE_ERROR"

    def test_record_missing_fields_raises(self, temp_dir):
        (temp_dir / "payments.json").write_text(json.dumps({"state": "OPEN"}))

        with pytest.raises(StateStoreError):
            FileStateStore(temp_dir).get("payments")

    def test_failed_write_keeps_previous_record(self, temp_dir, monkeypatch):
        store = FileStateStore(temp_dir)
        store.put(make_record(state=CircuitState.OPEN))

        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", broken_replace)

        with pytest.raises(StateStoreError):
            store.put(make_record(state=CircuitState.CLOSED))

        assert store.get("payments").state == CircuitState.OPEN
        assert list(temp_dir.glob("*.tmp")) == []

    def test_list_records_skips_unreadable(self, temp_dir):
        store = FileStateStore(temp_dir)
        store.put(make_record("b"))
        store.put(make_record("a"))
        (temp_dir / "broken.json").write_text("garbage")

        assert [r.name for r in store.list_records()] == ["a", "b"]

    def test_list_records_missing_directory(self, temp_dir):
        assert FileStateStore(temp_dir / "missing").list_records() == []
