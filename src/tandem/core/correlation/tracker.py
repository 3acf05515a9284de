"""
Correlation tracking across concurrent call chains.

The active context lives in a ``contextvars.ContextVar`` owned by each
tracker instance. asyncio tasks copy the current context when they are
created, so a context activated by a caller is visible inside every task it
spawns, while sibling tasks and unrelated requests never see each other's
contexts. Threads only inherit it when started through
``contextvars.copy_context().run``.
"""

import inspect
import os
import threading
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Mapping, Optional, TypeVar, Union

from tandem.logging import get_logger

from .context import (
    HEADER_AMZN_TRACE_ID,
    HEADER_CORRELATION_ID,
    HEADER_SPAN_ID,
    HEADER_TRACE_ID,
    CorrelationContext,
    generate_id,
    generate_trace_id,
)

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_SERVICE_NAME = "tandem"
SERVICE_NAME_ENV = "TANDEM_SERVICE_NAME"


def _resolve_service_name(service_name: Optional[str]) -> str:
    return service_name or os.environ.get(SERVICE_NAME_ENV) or DEFAULT_SERVICE_NAME


def _lower_keys(headers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if not headers:
        return {}
    return {str(k).lower(): v for k, v in headers.items()}


def _parse_amzn_trace_header(value: str) -> Dict[str, str]:
    """Split ``Root=1-...;Parent=...;Sampled=1`` into its fields.

    A bare trace ID without ``key=value`` pairs is returned as the root.
    """
    if "=" not in value:
        return {"root": value.strip()}
    fields = {}
    for part in value.split(";"):
        key, sep, val = part.partition("=")
        if sep:
            fields[key.strip().lower()] = val.strip()
    return fields


class CorrelationTracker:
    """
    Creates, propagates and exposes correlation contexts.

    Each instance owns its own context variable, so trackers injected into
    different components stay independent. ``get_correlation_tracker()``
    returns a process default for code that is not handed one explicitly.
    """

    def __init__(self, service_name: Optional[str] = None):
        self.service_name = _resolve_service_name(service_name)
        self._current: ContextVar[Optional[CorrelationContext]] = ContextVar(
            f"tandem_correlation_{id(self)}", default=None
        )
        self._active: Dict[str, CorrelationContext] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Reading the active context
    # ------------------------------------------------------------------

    def get_current_context(self) -> Optional[CorrelationContext]:
        return self._current.get()

    def get_current_correlation_id(self) -> Optional[str]:
        context = self._current.get()
        return context.correlation_id if context else None

    # ------------------------------------------------------------------
    # Creating contexts
    # ------------------------------------------------------------------

    def start_correlation(
        self,
        operation: str,
        metadata: Optional[Dict[str, Any]] = None,
        new_correlation: bool = False,
    ) -> CorrelationContext:
        """
        Build a context for a new unit of work without activating it.

        Inherits trace_id, user_id and metadata from the active context, if
        any. The correlation_id is inherited when nested unless
        ``new_correlation`` asks for a fresh one inside the same trace.
        """
        parent = self.get_current_context()

        merged: Dict[str, Any] = dict(parent.metadata) if parent else {}
        if metadata:
            merged.update(metadata)

        if parent is None:
            return CorrelationContext(
                correlation_id=generate_id(),
                trace_id=generate_trace_id(),
                span_id=generate_id(),
                service=self.service_name,
                operation=operation,
                metadata=merged,
            )

        return CorrelationContext(
            correlation_id=generate_id() if new_correlation else parent.correlation_id,
            trace_id=parent.trace_id,
            span_id=generate_id(),
            parent_id=parent.span_id,
            service=parent.service,
            operation=operation,
            user_id=parent.user_id,
            metadata=merged,
        )

    def create_child_span(self, operation: str) -> CorrelationContext:
        """Derive a child of the active span, sharing its correlation and trace."""
        parent = self.get_current_context()
        if parent is None:
            return CorrelationContext(
                correlation_id=generate_id(),
                trace_id=generate_trace_id(),
                span_id=generate_id(),
                service=self.service_name,
                operation=operation,
            )
        return CorrelationContext(
            correlation_id=parent.correlation_id,
            trace_id=parent.trace_id,
            span_id=generate_id(),
            parent_id=parent.span_id,
            service=parent.service,
            operation=operation,
            user_id=parent.user_id,
            metadata=dict(parent.metadata),
        )

    # ------------------------------------------------------------------
    # Scoping
    # ------------------------------------------------------------------

    @contextmanager
    def correlation_scope(
        self,
        operation: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        context: Optional[CorrelationContext] = None,
    ) -> Iterator[CorrelationContext]:
        """
        Make a context active for the dynamic extent of the ``with`` block.

        Either builds a new context for ``operation`` or activates the given
        ``context`` (for example one returned by ``extract_from_incoming``).
        Logs start, completion and failure; exceptions are re-raised as-is.
        """
        if context is None:
            if operation is None:
                raise ValueError("correlation_scope needs an operation or a context")
            context = self.start_correlation(operation, metadata)

        token = self._current.set(context)
        self._register(context)
        start = time.perf_counter()

        logger.info(
            "Started correlation",
            **context.to_log_fields(),
        )

        try:
            yield context
        except Exception as e:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.error(
                "Operation failed",
                correlation_id=context.correlation_id,
                trace_id=context.trace_id,
                span_id=context.span_id,
                operation=context.operation,
                duration_ms=duration_ms,
                error_type=type(e).__name__,
                error=str(e),
            )
            if hasattr(e, "add_context"):
                e.add_context(correlation_id=context.correlation_id)
            raise
        else:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.info(
                "Operation completed",
                correlation_id=context.correlation_id,
                trace_id=context.trace_id,
                span_id=context.span_id,
                operation=context.operation,
                duration_ms=duration_ms,
                success=True,
            )
        finally:
            self._unregister(context)
            self._current.reset(token)

    async def run_with_correlation(
        self,
        operation: str,
        fn: Callable[[], Union[Awaitable[T], T]],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> T:
        """
        Run ``fn`` with a new correlation context active.

        ``fn`` may be a coroutine function or a plain callable. Tasks created
        inside ``fn`` inherit the context.
        """
        with self.correlation_scope(operation, metadata):
            result = fn()
            if inspect.isawaitable(result):
                result = await result
            return result

    # ------------------------------------------------------------------
    # Mutating the active context
    # ------------------------------------------------------------------

    def set_user_id(self, user_id: str) -> None:
        """Attach a user ID to the active context (no-op outside a scope)."""
        context = self._current.get()
        if context is not None:
            self._replace_active(context, context.with_user_id(user_id))

    def add_metadata(self, **metadata) -> None:
        """Merge metadata into the active context (no-op outside a scope)."""
        context = self._current.get()
        if context is not None:
            self._replace_active(context, context.with_metadata(**metadata))

    def _replace_active(self, old: CorrelationContext, new: CorrelationContext) -> None:
        # The scope's reset token still restores the pre-scope value on exit.
        self._current.set(new)
        with self._lock:
            if self._active.get(old.span_id) is old:
                self._active[new.span_id] = new

    # ------------------------------------------------------------------
    # Transport propagation
    # ------------------------------------------------------------------

    def extract_from_incoming(self, event: Optional[Mapping[str, Any]]) -> Optional[CorrelationContext]:
        """
        Rebuild a context from inbound transport metadata.

        Looks at (case-insensitive) headers first, then top-level event
        fields. Returns None when no correlation or trace ID was propagated.
        The returned context is not activated.
        """
        if not event:
            return None

        headers = _lower_keys(event.get("headers"))

        correlation_id = (
            headers.get(HEADER_CORRELATION_ID)
            or event.get("correlationId")
            or event.get("correlation_id")
        )

        trace_id = headers.get(HEADER_TRACE_ID) or event.get("traceId") or event.get("trace_id")
        parent_id = headers.get(HEADER_SPAN_ID)

        amzn = headers.get(HEADER_AMZN_TRACE_ID)
        if amzn:
            fields = _parse_amzn_trace_header(str(amzn))
            trace_id = trace_id or fields.get("root")
            parent_id = parent_id or fields.get("parent")

        if not correlation_id and not trace_id:
            return None

        metadata = event.get("metadata") or {}
        context = CorrelationContext(
            correlation_id=correlation_id or generate_id(),
            trace_id=trace_id or generate_trace_id(),
            span_id=generate_id(),
            parent_id=parent_id or None,
            service=self.service_name,
            operation=event.get("operation") or "inbound-request",
            user_id=event.get("userId") or event.get("user_id"),
            metadata=dict(metadata),
        )

        logger.debug(
            "Extracted correlation from inbound request",
            correlation_id=context.correlation_id,
            trace_id=context.trace_id,
            parent_id=context.parent_id,
        )
        return context

    def inject_into_headers(self, headers: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """Return a copy of ``headers`` with the active context's identifiers added."""
        result = dict(headers or {})
        context = self._current.get()
        if context is not None:
            result.update(context.to_headers())
        return result

    def format_log_entry(self, level: str, message: str, **data) -> Dict[str, Any]:
        """Build a structured log entry stamped with the active identifiers."""
        context = self._current.get()
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "message": message,
            "correlation_id": context.correlation_id if context else None,
            "trace_id": context.trace_id if context else None,
            "span_id": context.span_id if context else None,
            "service": context.service if context else self.service_name,
            "operation": context.operation if context else None,
            "user_id": context.user_id if context else None,
        }
        entry.update(data)
        return entry

    # ------------------------------------------------------------------
    # Active context registry
    # ------------------------------------------------------------------

    def _register(self, context: CorrelationContext) -> None:
        with self._lock:
            self._active[context.span_id] = context

    def _unregister(self, context: CorrelationContext) -> None:
        with self._lock:
            self._active.pop(context.span_id, None)

    def get_active_contexts(self) -> List[CorrelationContext]:
        """Contexts currently inside a scope, across all call chains."""
        with self._lock:
            return list(self._active.values())

    def clear_all(self) -> None:
        with self._lock:
            self._active.clear()


# Process default tracker
_default_tracker: Optional[CorrelationTracker] = None
_default_lock = threading.Lock()


def get_correlation_tracker() -> CorrelationTracker:
    """Get the process default tracker (created on first use)."""
    global _default_tracker

    if _default_tracker is None:
        with _default_lock:
            if _default_tracker is None:
                _default_tracker = CorrelationTracker()

    return _default_tracker


def set_correlation_tracker(tracker: Optional[CorrelationTracker]) -> None:
    """Replace the process default tracker (None recreates it lazily)."""
    global _default_tracker
    with _default_lock:
        _default_tracker = tracker
