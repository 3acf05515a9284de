"""
Unit tests for CorrelationTracker.

Covers context creation and inheritance, task-scoped propagation across
concurrent call chains, failure handling and transport propagation.
"""

import asyncio
import contextvars
import threading

import pytest

from tandem.core.correlation import (
    CorrelationTracker,
    get_correlation_tracker,
    set_correlation_tracker,
)
from tandem.exceptions import TandemError


@pytest.mark.unit
class TestStartCorrelation:
    def test_root_context(self, tracker):
        context = tracker.start_correlation("op", {"k": "v"})

        assert context.parent_id is None
        assert context.service == "test-service"
        assert context.operation == "op"
        assert context.metadata == {"k": "v"}

    def test_start_does_not_activate(self, tracker):
        tracker.start_correlation("op")
        assert tracker.get_current_context() is None

    def test_nested_inherits_lineage(self, tracker):
        with tracker.correlation_scope("outer", {"tenant": "acme"}) as outer:
            tracker.set_user_id("user-1")
            nested = tracker.start_correlation("inner", {"step": 2})

        assert nested.correlation_id == outer.correlation_id
        assert nested.trace_id == outer.trace_id
        assert nested.span_id != outer.span_id
        assert nested.parent_id == outer.span_id
        assert nested.user_id == "user-1"
        assert nested.metadata == {"tenant": "acme", "step": 2}

    def test_new_correlation_inside_trace(self, tracker):
        with tracker.correlation_scope("outer") as outer:
            nested = tracker.start_correlation("inner", new_correlation=True)

        assert nested.correlation_id != outer.correlation_id
        assert nested.trace_id == outer.trace_id
        assert nested.parent_id == outer.span_id

    def test_service_name_from_environment(self, monkeypatch):
        monkeypatch.setenv("TANDEM_SERVICE_NAME", "from-env")
        assert CorrelationTracker().service_name == "from-env"


@pytest.mark.unit
class TestRunWithCorrelation:
    @pytest.mark.asyncio
    async def test_context_active_inside_and_detached_after(self, tracker):
        seen = {}

        async def work():
            await asyncio.sleep(0)
            seen["context"] = tracker.get_current_context()
            return "done"

        result = await tracker.run_with_correlation("op", work)

        assert result == "done"
        assert seen["context"].operation == "op"
        assert tracker.get_current_context() is None
        assert tracker.get_active_contexts() == []

    @pytest.mark.asyncio
    async def test_accepts_sync_callable(self, tracker):
        result = await tracker.run_with_correlation("op", lambda: tracker.get_current_correlation_id())
        assert result is not None

    @pytest.mark.asyncio
    async def test_concurrent_calls_get_distinct_correlations(self, tracker):
        started = asyncio.Event()
        release = asyncio.Event()
        ids = []

        async def first():
            started.set()
            await release.wait()
            ids.append(tracker.get_current_correlation_id())

        async def second():
            await started.wait()
            ids.append(tracker.get_current_correlation_id())
            release.set()

        await asyncio.gather(
            tracker.run_with_correlation("op", first),
            tracker.run_with_correlation("op", second),
        )

        assert len(ids) == 2
        assert ids[0] != ids[1]
        assert None not in ids

    @pytest.mark.asyncio
    async def test_nested_run_creates_child_span(self, tracker):
        captured = {}

        async def inner():
            captured["inner"] = tracker.get_current_context()

        async def outer():
            captured["outer"] = tracker.get_current_context()
            await tracker.run_with_correlation("inner", inner)
            captured["after"] = tracker.get_current_context()

        await tracker.run_with_correlation("outer", outer)

        outer_ctx, inner_ctx = captured["outer"], captured["inner"]
        assert inner_ctx.trace_id == outer_ctx.trace_id
        assert inner_ctx.correlation_id == outer_ctx.correlation_id
        assert inner_ctx.span_id != outer_ctx.span_id
        assert inner_ctx.parent_id == outer_ctx.span_id
        assert captured["after"] is outer_ctx

    @pytest.mark.asyncio
    async def test_child_tasks_inherit_context(self, tracker):
        async def child():
            await asyncio.sleep(0)
            return tracker.get_current_correlation_id()

        async def parent():
            results = await asyncio.gather(child(), asyncio.create_task(child()))
            return tracker.get_current_correlation_id(), results

        own_id, child_ids = await tracker.run_with_correlation("fan-out", parent)
        assert child_ids == [own_id, own_id]

    @pytest.mark.asyncio
    async def test_failure_is_reraised_unchanged_and_detached(self, tracker):
        error = ValueError("boom")

        async def failing():
            raise error

        with pytest.raises(ValueError) as exc_info:
            await tracker.run_with_correlation("op", failing)

        assert exc_info.value is error
        assert tracker.get_current_context() is None
        assert tracker.get_active_contexts() == []

    @pytest.mark.asyncio
    async def test_tandem_error_gets_correlation_context(self, tracker):
        captured = {}

        async def failing():
            captured["id"] = tracker.get_current_correlation_id()
            raise TandemError("broken")

        with pytest.raises(TandemError) as exc_info:
            await tracker.run_with_correlation("op", failing)

        assert exc_info.value.context["correlation_id"] == captured["id"]


@pytest.mark.unit
class TestScopeAndMutation:
    def test_scope_requires_operation_or_context(self, tracker):
        with pytest.raises(ValueError):
            with tracker.correlation_scope():
                pass

    def test_scope_restores_previous_context(self, tracker):
        with tracker.correlation_scope("outer") as outer:
            with tracker.correlation_scope("inner"):
                pass
            assert tracker.get_current_context() is outer
        assert tracker.get_current_context() is None

    def test_active_contexts_registry(self, tracker):
        with tracker.correlation_scope("outer") as outer:
            with tracker.correlation_scope("inner") as inner:
                active = {c.span_id for c in tracker.get_active_contexts()}
                assert active == {outer.span_id, inner.span_id}
        assert tracker.get_active_contexts() == []

    def test_clear_all(self, tracker):
        with tracker.correlation_scope("op"):
            tracker.clear_all()
            assert tracker.get_active_contexts() == []

    def test_set_user_id_and_add_metadata(self, tracker):
        with tracker.correlation_scope("op", {"a": 1}):
            tracker.set_user_id("user-7")
            tracker.add_metadata(b=2)
            context = tracker.get_current_context()

        assert context.user_id == "user-7"
        assert context.metadata == {"a": 1, "b": 2}

    def test_mutators_are_noops_outside_scope(self, tracker):
        tracker.set_user_id("user-7")
        tracker.add_metadata(b=2)
        assert tracker.get_current_context() is None

    def test_create_child_span(self, tracker):
        with tracker.correlation_scope("parent") as parent:
            tracker.set_user_id("u1")
            child = tracker.create_child_span("child")

        assert child.correlation_id == parent.correlation_id
        assert child.trace_id == parent.trace_id
        assert child.user_id == "u1"
        assert child.parent_id == parent.span_id
        assert child.span_id != parent.span_id

    def test_create_child_span_without_parent(self, tracker):
        child = tracker.create_child_span("orphan")
        assert child.parent_id is None
        assert child.operation == "orphan"

    def test_threads_see_context_only_when_copied(self, tracker):
        results = {}

        with tracker.correlation_scope("op") as context:
            plain = threading.Thread(
                target=lambda: results.setdefault("plain", tracker.get_current_context())
            )
            copied_ctx = contextvars.copy_context()
            copied = threading.Thread(
                target=copied_ctx.run,
                args=(lambda: results.setdefault("copied", tracker.get_current_context()),),
            )
            plain.start()
            copied.start()
            plain.join()
            copied.join()

        assert results["plain"] is None
        assert results["copied"] is context

    def test_trackers_are_independent(self):
        first = CorrelationTracker(service_name="a")
        second = CorrelationTracker(service_name="b")

        with first.correlation_scope("op"):
            assert second.get_current_context() is None


@pytest.mark.unit
class TestPropagation:
    def test_extract_from_headers_case_insensitive(self, tracker):
        event = {
            "headers": {
                "X-Correlation-Id": "corr-9",
                "X-Trace-Id": "1-00000001-aaaaaaaaaaaaaaaaaaaaaaaa",
                "X-Span-Id": "upstream-span",
            },
            "operation": "refund",
        }

        context = tracker.extract_from_incoming(event)

        assert context.correlation_id == "corr-9"
        assert context.trace_id == "1-00000001-aaaaaaaaaaaaaaaaaaaaaaaa"
        assert context.parent_id == "upstream-span"
        assert context.operation == "refund"
        assert context.service == "test-service"

    def test_extract_amzn_trace_header(self, tracker):
        event = {
            "headers": {
                "x-amzn-trace-id": "Root=1-5759e988-bd862e3fe1be46a994272793;Parent=53995c3f42cd8ad8;Sampled=1"
            }
        }

        context = tracker.extract_from_incoming(event)

        assert context.trace_id == "1-5759e988-bd862e3fe1be46a994272793"
        assert context.parent_id == "53995c3f42cd8ad8"
        assert context.correlation_id

    def test_extract_from_event_fields(self, tracker):
        context = tracker.extract_from_incoming(
            {"correlationId": "corr-1", "userId": "u1", "metadata": {"src": "queue"}}
        )

        assert context.correlation_id == "corr-1"
        assert context.user_id == "u1"
        assert context.metadata == {"src": "queue"}
        assert context.operation == "inbound-request"

    @pytest.mark.parametrize("event", [None, {}, {"headers": {"content-type": "json"}}])
    def test_extract_returns_none_without_identifiers(self, tracker, event):
        assert tracker.extract_from_incoming(event) is None

    def test_extracted_context_can_be_activated(self, tracker):
        extracted = tracker.extract_from_incoming({"headers": {"x-correlation-id": "corr-5"}})

        with tracker.correlation_scope(context=extracted):
            nested = tracker.start_correlation("downstream")

        assert nested.correlation_id == "corr-5"
        assert nested.parent_id == extracted.span_id

    def test_inject_into_headers(self, tracker):
        original = {"content-type": "application/json"}

        with tracker.correlation_scope("op") as context:
            headers = tracker.inject_into_headers(original)

        assert original == {"content-type": "application/json"}
        assert headers["content-type"] == "application/json"
        assert headers["x-correlation-id"] == context.correlation_id
        assert headers["x-trace-id"] == context.trace_id
        assert headers["x-span-id"] == context.span_id
        assert headers["x-service"] == "test-service"
        assert "x-parent-id" in headers

    def test_inject_outside_scope_copies_headers(self, tracker):
        assert tracker.inject_into_headers({"a": "b"}) == {"a": "b"}
        assert tracker.inject_into_headers() == {}

    def test_round_trip_through_headers(self, tracker):
        downstream = CorrelationTracker(service_name="downstream")

        with tracker.correlation_scope("op") as upstream:
            headers = tracker.inject_into_headers()

        extracted = downstream.extract_from_incoming({"headers": headers})
        assert extracted.correlation_id == upstream.correlation_id
        assert extracted.trace_id == upstream.trace_id
        assert extracted.parent_id == upstream.span_id
        assert extracted.service == "downstream"

    def test_format_log_entry(self, tracker):
        with tracker.correlation_scope("op") as context:
            entry = tracker.format_log_entry("INFO", "hello", amount=10)

        assert entry["message"] == "hello"
        assert entry["correlation_id"] == context.correlation_id
        assert entry["span_id"] == context.span_id
        assert entry["amount"] == 10

    def test_format_log_entry_outside_scope(self, tracker):
        entry = tracker.format_log_entry("WARNING", "no context")
        assert entry["correlation_id"] is None
        assert entry["service"] == "test-service"


@pytest.mark.unit
class TestDefaultTracker:
    def test_default_tracker_is_shared(self):
        assert get_correlation_tracker() is get_correlation_tracker()

    def test_set_correlation_tracker(self, tracker):
        set_correlation_tracker(tracker)
        assert get_correlation_tracker() is tracker
