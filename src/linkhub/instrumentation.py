"""
Timing for network operations.

``timed_async`` wraps transport coroutines, logs their duration (warning above
LINKHUB_PERF_THRESHOLD_MS) and can be switched off with LINKHUB_PERF_TRACKING.
"""

from __future__ import annotations

import functools
import time
from collections.abc import Callable, Coroutine
from typing import Any, ParamSpec, TypeVar

__all__ = [
    "measure_time",
    "timed_async",
]

P = ParamSpec("P")
T = TypeVar("T")


def measure_time(start_time: float) -> float:
    """Milliseconds elapsed since ``start_time`` (a ``time.perf_counter()`` value)."""
    return (time.perf_counter() - start_time) * 1000


def timed_async(
    operation_name: str | None = None,
) -> Callable[[Callable[P, Coroutine[Any, Any, T]]], Callable[P, Coroutine[Any, Any, T]]]:
    """
    Decorator timing an async operation.

    Args:
        operation_name: Name for the operation (defaults to function name)

    Example:
        @timed_async("linkplay_command")
        async def send_command(self, command):
            ...
    """

    def decorator(func: Callable[P, Coroutine[Any, Any, T]]) -> Callable[P, Coroutine[Any, Any, T]]:
        op_name = operation_name or func.__name__

        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            from linkhub.const import LINKHUB_PERF_THRESHOLD_MS, LINKHUB_PERF_TRACKING  # noqa: PLC0415

            if not LINKHUB_PERF_TRACKING:
                return await func(*args, **kwargs)

            start_time = time.perf_counter()
            try:
                return await func(*args, **kwargs)
            finally:
                _log_timing(op_name, measure_time(start_time), LINKHUB_PERF_THRESHOLD_MS)

        return wrapper

    return decorator


def _log_timing(operation_name: str, elapsed_ms: float, threshold_ms: int) -> None:
    from linkhub.logging_abstraction import get_logger  # noqa: PLC0415

    logger = get_logger(__name__)
    context = {
        "operation": operation_name,
        "duration_ms": round(elapsed_ms, 2),
        "threshold_ms": threshold_ms,
    }
    if elapsed_ms > threshold_ms:
        logger.warning(
            "⏱️ [%s] completed in %.1fms (threshold: %dms)",
            operation_name,
            elapsed_ms,
            threshold_ms,
            extra={**context, "exceeded_threshold": True},
        )
    else:
        logger.debug("⏱️ [%s] completed in %.1fms", operation_name, elapsed_ms, extra=context)
