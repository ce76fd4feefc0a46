"""Shared fixtures for unit tests.

This module provides reusable fakes for the sink, the LinkPlay transport and
typical device payloads.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from linkhub.health import CommunicationHealthTracker
from linkhub.sink import ConnectivityDetail, ConnectivityStatus
from linkhub.state.reconciler import StateReconciler
from linkhub.transport.types import CommandResult

JSONDict = dict[str, object]


class RecordingSink:
    """StateSink that remembers every call in order."""

    def __init__(self) -> None:
        self.states: list[tuple[str, object]] = []
        self.connectivity: list[tuple[ConnectivityStatus, ConnectivityDetail, str]] = []

    def update_state(self, channel: str, value: object) -> None:
        self.states.append((channel, value))

    def update_connectivity(self, status: ConnectivityStatus, detail: ConnectivityDetail, message: str) -> None:
        self.connectivity.append((status, detail, message))

    def channels(self) -> list[str]:
        return [channel for channel, _ in self.states]

    def last(self, channel: str) -> object:
        for name, value in reversed(self.states):
            if name == channel:
                return value
        msg = f"{channel} was never updated"
        raise KeyError(msg)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now: float = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def reconciler(sink: RecordingSink) -> StateReconciler:
    return StateReconciler(sink, "kitchen", udn="uuid:AAAA-1111", ip="10.0.0.1")


@pytest.fixture
def health(sink: RecordingSink) -> CommunicationHealthTracker:
    return CommunicationHealthTracker(sink, "kitchen", threshold=3)


@pytest.fixture
def mock_transport() -> MagicMock:
    """Mock LinkPlayTransport for 10.0.0.1 that accepts every command.

    Returns a MagicMock whose ``send_command`` is an AsyncMock returning an OK result.
    """
    transport: MagicMock = MagicMock()
    transport.host = "10.0.0.1"
    transport.send_command = AsyncMock(return_value=CommandResult.ok("OK"))
    transport.close = AsyncMock()
    return transport


@pytest.fixture
def player_status_payload() -> JSONDict:
    """getPlayerStatus body as LinkPlay firmware sends it (strings throughout)."""
    return {
        "type": "0",
        "ch": "0",
        "mode": "10",
        "loop": "0",
        "eq": "0",
        "status": "play",
        "curpos": "61500",
        "offset_pts": "0",
        "totlen": "215000",
        "Title": "48656c6c6f",
        "Artist": "576f726c64",
        "Album": "",
        "vol": "35",
        "mute": "0",
    }


@pytest.fixture
def extended_status_factory() -> Callable[..., JSONDict]:
    """Build getStatusEx bodies; keyword arguments override defaults."""

    def _make(**overrides: object) -> JSONDict:
        payload: JSONDict = {
            "DeviceName": "Kitchen",
            "GroupName": "Kitchen",
            "group": "0",
            "uuid": "AAAA-1111",
            "upnp_uuid": "uuid:AAAA-1111",
            "MAC": "00:22:6C:11:22:33",
            "firmware": "4.6.415145",
            "RSSI": "-60",
            "apcli0": "10.0.0.1",
            "eth2": "0.0.0.0",
        }
        payload.update(overrides)
        return payload

    return _make


class FakeResponse:
    """Minimal aiohttp response usable as ``async with``."""

    def __init__(self, status: int = 200, text: str = "", headers: dict[str, str] | None = None) -> None:
        self.status: int = status
        self._text: str = text
        self.headers: dict[str, str] = headers or {}

    async def text(self) -> str:
        return self._text

    async def read(self) -> bytes:
        return self._text.encode()

    async def __aenter__(self) -> FakeResponse:
        # yield once like a real request so concurrent callers interleave
        await asyncio.sleep(0)
        return self

    async def __aexit__(self, *_exc: object) -> None:
        return None


class FakeSession:
    """Scripted aiohttp.ClientSession stand-in; responses are served in order.

    An exception in the script is raised when its request is made.
    """

    def __init__(self, responses: list[FakeResponse | BaseException]) -> None:
        self.responses: list[FakeResponse | BaseException] = list(responses)
        self.calls: list[tuple[str, str, JSONDict]] = []
        self.closed: bool = False

    def _next(self, method: str, url: str, kwargs: JSONDict) -> FakeResponse:
        self.calls.append((method, url, kwargs))
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def get(self, url: str, **kwargs: object) -> FakeResponse:
        return self._next("GET", url, kwargs)

    def post(self, url: str, **kwargs: object) -> FakeResponse:
        return self._next("POST", url, kwargs)

    def request(self, method: str, url: str, **kwargs: object) -> FakeResponse:
        return self._next(method, url, kwargs)

    async def close(self) -> None:
        self.closed = True
