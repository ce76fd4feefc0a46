"""Prometheus metrics registry for device communication."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

# Polling
linkhub_poll_total: Final = Counter(  # type: ignore[assignment]
    "linkhub_poll_total",
    "Total poll ticks",
    ["device_id", "cadence", "outcome"],
)

linkhub_request_latency_seconds: Final = Histogram(  # type: ignore[assignment]
    "linkhub_request_latency_seconds",
    "Transport request latency in seconds",
    ["device_id"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
)

linkhub_request_errors_total: Final = Counter(  # type: ignore[assignment]
    "linkhub_request_errors_total",
    "Total failed transport requests",
    ["device_id", "kind"],
)

# Session
linkhub_session_login_total: Final = Counter(  # type: ignore[assignment]
    "linkhub_session_login_total",
    "Total login attempts",
    ["outcome"],
)

linkhub_keepalive_total: Final = Counter(  # type: ignore[assignment]
    "linkhub_keepalive_total",
    "Total keepalive requests",
    ["outcome"],
)

linkhub_session_state: Final = Gauge(  # type: ignore[assignment]
    "linkhub_session_state",
    "Current session state",
    ["state"],
)

# Push
linkhub_push_events_total: Final = Counter(  # type: ignore[assignment]
    "linkhub_push_events_total",
    "Total push events received",
    ["service", "outcome"],
)

linkhub_push_subscriptions: Final = Gauge(  # type: ignore[assignment]
    "linkhub_push_subscriptions",
    "Active push subscriptions",
    ["device_id"],
)

# Connectivity / state
linkhub_connectivity_state: Final = Gauge(  # type: ignore[assignment]
    "linkhub_connectivity_state",
    "1 when the device is online, 0 when offline",
    ["device_id"],
)

linkhub_state_changes_total: Final = Counter(  # type: ignore[assignment]
    "linkhub_state_changes_total",
    "Total changed fields forwarded to the sink",
    ["device_id", "source"],
)

# Multiroom
linkhub_group_fanout_total: Final = Counter(  # type: ignore[assignment]
    "linkhub_group_fanout_total",
    "Total group fan-out commands per target",
    ["kind", "outcome"],
)

_server_state = {"started": False}
_server_lock = threading.Lock()

_SESSION_STATES = ("logged_out", "logging_in", "authenticated", "expired")


def start_metrics_server(port: int = 9400) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_poll(device_id: str, cadence: str, outcome: str) -> None:
    """Record one poll tick."""
    linkhub_poll_total.labels(device_id=device_id, cadence=cadence, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_request_latency(device_id: str, latency_seconds: float) -> None:
    linkhub_request_latency_seconds.labels(device_id=device_id).observe(latency_seconds)  # type: ignore[no-untyped-call]


def record_request_error(device_id: str, kind: str) -> None:
    linkhub_request_errors_total.labels(device_id=device_id, kind=kind).inc()  # type: ignore[no-untyped-call]


def record_login(outcome: str) -> None:
    linkhub_session_login_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_keepalive(outcome: str) -> None:
    linkhub_keepalive_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_session_state(state: str) -> None:
    """Record session state change."""
    # Set gauge to 1 for current state, 0 for all others
    for s in _SESSION_STATES:
        linkhub_session_state.labels(state=s).set(1 if s == state else 0)  # type: ignore[no-untyped-call]


def record_push_event(service: str, outcome: str) -> None:
    linkhub_push_events_total.labels(service=service, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_push_subscriptions(device_id: str, count: int) -> None:
    linkhub_push_subscriptions.labels(device_id=device_id).set(count)  # type: ignore[no-untyped-call]


def record_connectivity(device_id: str, online: bool) -> None:
    linkhub_connectivity_state.labels(device_id=device_id).set(1 if online else 0)  # type: ignore[no-untyped-call]


def record_state_changes(device_id: str, source: str, count: int) -> None:
    """Record fields forwarded to the sink after a reconciliation pass."""
    if count:
        linkhub_state_changes_total.labels(device_id=device_id, source=source).inc(count)  # type: ignore[no-untyped-call]


def record_group_fanout(kind: str, outcome: str) -> None:
    linkhub_group_fanout_total.labels(kind=kind, outcome=outcome).inc()  # type: ignore[no-untyped-call]
