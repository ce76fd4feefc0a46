"""Unit tests for the LinkPlay HTTP transport and error mapping."""

from __future__ import annotations

import aiohttp
import pytest
from conftest import FakeResponse, FakeSession

from linkhub.transport.exceptions import (
    InvalidResponseError,
    LinkHubError,
    RateLimitError,
    SessionExpiredError,
    TransportError,
)
from linkhub.transport.http import LinkPlayTransport, decode_body, error_for_status
from linkhub.transport.retry_policy import RetryPolicy
from linkhub.transport.types import CommandResult


def make_transport(responses) -> tuple[LinkPlayTransport, FakeSession]:
    session = FakeSession(responses)
    return LinkPlayTransport("10.0.0.1", session=session), session  # type: ignore[arg-type]


class TestSendCommand:
    """Tests for LinkPlayTransport.send_command."""

    @pytest.mark.asyncio
    async def test_plain_ok(self):
        """Test a plain-text OK body."""
        transport, session = make_transport([FakeResponse(200, "OK")])
        result = await transport.send_command("setPlayerCmd:vol:40")
        assert result.success
        assert result.text == "OK"
        method, url, kwargs = session.calls[0]
        assert url == "https://10.0.0.1/httpapi.asp?command=setPlayerCmd:vol:40"
        assert kwargs["ssl"] is False
        assert isinstance(kwargs["timeout"], aiohttp.ClientTimeout)

    @pytest.mark.asyncio
    async def test_json_body(self):
        """Test that JSON bodies are parsed."""
        transport, _ = make_transport([FakeResponse(200, '{"status": "play"}')])
        result = await transport.send_command("getPlayerStatus")
        assert result.json_object() == {"status": "play"}

    @pytest.mark.asyncio
    async def test_peer_host(self):
        """Test addressing another device through the same transport."""
        transport, session = make_transport([FakeResponse(200, "")])
        result = await transport.send_command("multiroom/leave", host="10.0.0.2")
        assert result.success
        assert session.calls[0][1].startswith("https://10.0.0.2/")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", ["unknown command", "Failed"])
    async def test_rejection_bodies(self, body):
        """Test firmware rejection strings."""
        transport, _ = make_transport([FakeResponse(200, body)])
        result = await transport.send_command("bogus")
        assert not result.success
        assert isinstance(result.error, InvalidResponseError)

    @pytest.mark.asyncio
    async def test_timeout_is_a_transport_failure(self):
        """Test that a timeout is reported, not raised."""
        transport, _ = make_transport([TimeoutError()])
        result = await transport.send_command("getStatusEx")
        assert not result.success
        assert isinstance(result.error, TransportError)
        with pytest.raises(TransportError):
            _ = result.unwrap()

    @pytest.mark.asyncio
    async def test_malformed_json(self):
        """Test a truncated JSON body."""
        transport, _ = make_transport([FakeResponse(200, '{"status": ')])
        result = await transport.send_command("getPlayerStatus")
        assert isinstance(result.error, InvalidResponseError)

    @pytest.mark.asyncio
    async def test_close_leaves_injected_session_open(self):
        """Test that a session passed in is owned by the caller."""
        transport, session = make_transport([])
        await transport.close()
        assert not session.closed


class TestStatusMapping:
    """Tests for error_for_status and decode_body."""

    def test_ok(self):
        """Test 200."""
        assert error_for_status(200, "u") is None

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_statuses(self, status):
        """Test that 401/403 mean an expired session."""
        assert isinstance(error_for_status(status, "u"), SessionExpiredError)

    def test_rate_limit_uses_retry_after(self):
        """Test 429 with and without a usable header."""
        error = error_for_status(429, "u", "42")
        assert isinstance(error, RateLimitError)
        assert error.retry_after == 42
        fallback = error_for_status(429, "u", "soon")
        assert isinstance(fallback, RateLimitError)
        assert fallback.retry_after == 300

    def test_server_error(self):
        """Test 5xx."""
        assert isinstance(error_for_status(503, "u"), TransportError)

    def test_decode_body(self):
        """Test JSON detection."""
        assert decode_body(" OK \n") == "OK"
        assert decode_body("[1, 2]") == [1, 2]


class TestValueTypes:
    """Tests for CommandResult, RetryPolicy and the exception hierarchy."""

    def test_failed_result_without_payload_text(self):
        """Test CommandResult helpers."""
        result = CommandResult.failed(TransportError("x"))
        assert result.text == ""
        with pytest.raises(TransportError):
            _ = result.json_object()

    def test_json_object_requires_dict(self):
        """Test json_object on a list payload."""
        with pytest.raises(InvalidResponseError):
            _ = CommandResult.ok([1]).json_object()

    def test_retry_policy_caps_delay(self):
        """Test exponential growth and the cap."""
        policy = RetryPolicy(base_delay_seconds=10, max_delay_seconds=60, jitter_factor=0)
        assert [policy.get_delay(n) for n in range(4)] == [10, 20, 40, 60]

    def test_all_errors_share_a_base(self):
        """Test the hierarchy."""
        for error in (
            SessionExpiredError("x"),
            TransportError("x"),
            RateLimitError(1),
            InvalidResponseError("x", "y" * 500),
        ):
            assert isinstance(error, LinkHubError)
        assert len(InvalidResponseError("x", "y" * 500).body) == 200
