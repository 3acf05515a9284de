"""
Correlation decorators for automatic context management.
"""

import functools
import inspect
from typing import Callable, Optional

from .tracker import CorrelationTracker, get_correlation_tracker


def with_correlation(
    operation: Optional[str] = None,
    tracker: Optional[CorrelationTracker] = None,
    **metadata,
):
    """
    Decorator to run a function inside a correlation scope.

    Works on both plain functions and coroutine functions. The tracker is
    resolved at call time so the process default can be swapped in tests.

    Args:
        operation: Name of the operation (defaults to function name)
        tracker: Tracker to use (defaults to the process tracker)
        **metadata: Metadata merged into the new context
    """

    def decorator(func: Callable) -> Callable:
        op_name = operation or func.__name__

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                active = tracker or get_correlation_tracker()
                with active.correlation_scope(op_name, metadata or None):
                    return await func(*args, **kwargs)

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            active = tracker or get_correlation_tracker()
            with active.correlation_scope(op_name, metadata or None):
                return func(*args, **kwargs)

        return wrapper

    return decorator
