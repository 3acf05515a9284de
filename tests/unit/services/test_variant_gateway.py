"""
Tests for VariantGateway, the end-to-end call path.
"""

import asyncio

import pytest

from tandem.core.models import Variant
from tandem.infrastructure.metrics import PerformanceTracker
from tandem.infrastructure.resilience import CircuitBreaker, CircuitBreakerConfig, CircuitState
from tandem.services import VariantBackend, VariantGateway


class UpstreamError(Exception):
    code = "UPSTREAM_DOWN"


@pytest.fixture
def performance(metrics_sink, tracker, clock):
    return PerformanceTracker(sink=metrics_sink, tracker=tracker, auto_flush=False, clock=clock)


@pytest.fixture
def breaker(state_store, tracker, clock):
    return CircuitBreaker(
        "getUser", CircuitBreakerConfig(failure_threshold=2, timeout=0.05), state_store, tracker, clock
    )


def make_gateway(breaker, performance, tracker, primary, fallback=None):
    return VariantGateway(
        "getUser",
        primary=VariantBackend(Variant.GRAPHQL, primary),
        breaker=breaker,
        performance=performance,
        fallback=VariantBackend(Variant.HTTP, fallback) if fallback else None,
        tracker=tracker,
    )


async def graphql_ok(user_id):
    return {"data": {"id": user_id}}


async def graphql_down(user_id):
    raise UpstreamError("graphql down")


async def http_ok(user_id):
    return {"statusCode": 200, "body": '{"id": "%s"}' % user_id}


@pytest.mark.unit
class TestVariantGateway:
    @pytest.mark.asyncio
    async def test_success_is_normalized_and_recorded(self, breaker, performance, tracker):
        gateway = make_gateway(breaker, performance, tracker, graphql_ok)

        response = await gateway.call("u-1")

        assert response.success is True
        assert response.data == {"id": "u-1"}
        assert response.metadata.source_variant == "graphql"
        assert response.metadata.correlation_id is not None

        [metric] = performance.get_metrics_buffer()
        assert metric.variant == "graphql"
        assert metric.success is True
        assert metric.correlation_id == response.metadata.correlation_id

    @pytest.mark.asyncio
    async def test_upstream_failure_becomes_envelope(self, breaker, performance, tracker):
        gateway = make_gateway(breaker, performance, tracker, graphql_down)

        response = await gateway.call("u-1")

        assert response.success is False
        assert response.error.code == "UPSTREAM_DOWN"
        assert response.error.message == "graphql down"
        [metric] = performance.get_metrics_buffer()
        assert metric.success is False
        assert metric.error_kind == "UPSTREAM_DOWN"
        assert breaker.get_status().metrics.failures == 1

    @pytest.mark.asyncio
    async def test_timeout_becomes_timeout_envelope(self, breaker, performance, tracker):
        async def hang(user_id):
            await asyncio.sleep(10)

        gateway = make_gateway(breaker, performance, tracker, hang)

        response = await gateway.call("u-1")

        assert response.error.code == "TIMEOUT"

    @pytest.mark.asyncio
    async def test_fallback_answers_once_circuit_opens(self, breaker, performance, tracker):
        gateway = make_gateway(breaker, performance, tracker, graphql_down, http_ok)

        first = await gateway.call("u-1")
        second = await gateway.call("u-1")
        third = await gateway.call("u-1")

        assert first.success is False
        # Second failure opens the circuit and the fallback answers
        assert second.success is True
        assert second.metadata.source_variant == "http"
        assert second.data == {"id": "u-1"}
        assert third.metadata.source_variant == "http"
        assert breaker.state == CircuitState.OPEN

        variants = [(m.variant, m.success) for m in performance.get_metrics_buffer()]
        assert variants == [
            ("graphql", False),
            ("graphql", False),
            ("http", True),
            ("http", True),
        ]

    @pytest.mark.asyncio
    async def test_primary_failure_counted_when_fallback_answers(
        self, state_store, performance, tracker, clock
    ):
        breaker = CircuitBreaker(
            "getUser", CircuitBreakerConfig(failure_threshold=1), state_store, tracker, clock
        )
        gateway = make_gateway(breaker, performance, tracker, graphql_down, http_ok)

        response = await gateway.call("u-1")

        assert response.success is True
        assert response.metadata.source_variant == "http"
        graphql = performance.get_stats("getUser", variant=Variant.GRAPHQL)
        assert graphql.count == 1
        assert graphql.failure_count == 1
        [failed, answered] = performance.get_metrics_buffer()
        assert failed.error_kind == "UPSTREAM_DOWN"
        assert answered.variant == "http"
        assert answered.success is True

    @pytest.mark.asyncio
    async def test_primary_timeout_counted_when_fallback_answers(
        self, state_store, performance, tracker, clock
    ):
        async def hang(user_id):
            await asyncio.sleep(10)

        breaker = CircuitBreaker(
            "getUser",
            CircuitBreakerConfig(failure_threshold=1, timeout=0.05),
            state_store,
            tracker,
            clock,
        )
        gateway = make_gateway(breaker, performance, tracker, hang, http_ok)

        response = await gateway.call("u-1")

        assert response.success is True
        recorded = [(m.variant, m.success, m.error_kind) for m in performance.get_metrics_buffer()]
        assert recorded == [("graphql", False, "TIMEOUT"), ("http", True, None)]

    @pytest.mark.asyncio
    async def test_open_circuit_without_fallback(self, breaker, performance, tracker):
        await breaker.trip()
        gateway = make_gateway(breaker, performance, tracker, graphql_ok)

        response = await gateway.call("u-1")

        assert response.success is False
        assert response.error.code == "CIRCUIT_OPEN"
        assert "getUser" in response.error.message
        assert performance.get_metrics_buffer() == []

    @pytest.mark.asyncio
    async def test_graphql_errors_recorded_as_failure(self, breaker, performance, tracker):
        async def graphql_errors(user_id):
            return {"errors": [{"message": "not found", "extensions": {"code": "NOT_FOUND"}}]}

        gateway = make_gateway(breaker, performance, tracker, graphql_errors)

        response = await gateway.call("u-1")

        assert response.error.code == "NOT_FOUND"
        [metric] = performance.get_metrics_buffer()
        assert metric.success is False
        assert metric.error_kind == "NOT_FOUND"
        # The transport call itself succeeded
        assert breaker.get_status().metrics.successes == 1

    @pytest.mark.asyncio
    async def test_metadata_reaches_correlation(self, breaker, performance, tracker):
        seen = {}

        async def capture(user_id):
            seen.update(tracker.get_current_context().metadata)
            return {"data": {}}

        gateway = make_gateway(breaker, performance, tracker, capture)

        await gateway.call("u-1", metadata={"tenant": "acme"})

        assert seen == {"tenant": "acme"}
        assert tracker.get_current_context() is None
