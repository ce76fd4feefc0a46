"""
Correlation IDs for tracing one poll tick, push event or command through the logs.

IDs live in a ``contextvars.ContextVar`` so every asyncio task sees its own value.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Generator
from contextlib import contextmanager

__all__ = [
    "correlation_context",
    "ensure_correlation_id",
    "generate_correlation_id",
    "get_correlation_id",
    "set_correlation_id",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "linkhub_correlation_id",
    default=None,
)


def generate_correlation_id(prefix: str = "") -> str:
    """
    Generate a new correlation ID.

    Args:
        prefix: Optional short tag (e.g. "poll", "push") prepended as ``tag-``

    Returns:
        UUID4 hex, optionally prefixed
    """
    value = uuid.uuid4().hex
    return f"{prefix}-{value}" if prefix else value


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id.set(correlation_id)


@contextmanager
def correlation_context(
    correlation_id: str | None = None,
    prefix: str = "",
) -> Generator[str]:
    """
    Scope a correlation ID to a block, restoring the previous one on exit.

    Args:
        correlation_id: ID to use; generated when None
        prefix: Tag for generated IDs

    Yields:
        The correlation ID in effect inside the block

    Example:
        with correlation_context(prefix="poll") as corr_id:
            logger.info("fetching status")
    """
    correlation_id = correlation_id or generate_correlation_id(prefix)
    token = _correlation_id.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _correlation_id.reset(token)


def ensure_correlation_id() -> str:
    """
    Return the current correlation ID, creating one if the context has none.

    Used at task entry points that are not wrapped in ``correlation_context``.
    """
    current_id = get_correlation_id()
    if current_id is None:
        current_id = generate_correlation_id()
        set_correlation_id(current_id)
    return current_id
