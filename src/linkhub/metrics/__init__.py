"""Metrics module."""

from . import registry
from .registry import (
    record_connectivity,
    record_group_fanout,
    record_poll,
    record_push_event,
    record_request_error,
    start_metrics_server,
)

__all__ = [
    "record_connectivity",
    "record_group_fanout",
    "record_poll",
    "record_push_event",
    "record_request_error",
    "registry",
    "start_metrics_server",
]
