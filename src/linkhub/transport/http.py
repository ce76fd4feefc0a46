"""HTTP transport for LinkPlay speakers and shared aiohttp error mapping.

Every call carries an explicit ``aiohttp.ClientTimeout`` and returns a
:class:`CommandResult`; a timed-out call is reported the same way as any other
transport failure.
"""

from __future__ import annotations

import json
import time

import aiohttp

from linkhub.const import LINKPLAY_COMMAND_PATH, LINKPLAY_REQUEST_TIMEOUT, RATE_LIMIT_BACKOFF
from linkhub.instrumentation import timed_async
from linkhub.logging_abstraction import get_logger
from linkhub.metrics import registry
from linkhub.transport.exceptions import (
    InvalidResponseError,
    LinkHubError,
    RateLimitError,
    SessionExpiredError,
    TransportError,
)
from linkhub.transport.types import CommandResult

logger = get_logger(__name__)

HTTP_OK = 200
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_TOO_MANY_REQUESTS = 429

# Plain-text bodies LinkPlay firmware uses to reject a command
_LINKPLAY_FAILURE_BODIES = ("unknown command", "failed", "fail")


def map_client_error(exc: BaseException, url: str) -> TransportError:
    """Translate aiohttp/asyncio failures into a TransportError with a readable reason."""
    if isinstance(exc, TimeoutError):
        return TransportError("request timed out", url)
    if isinstance(exc, aiohttp.ClientSSLError):
        return TransportError(f"TLS error: {exc}", url)
    if isinstance(exc, aiohttp.ClientConnectorError):
        return TransportError(f"connection failed: {exc.os_error}", url)
    return TransportError(f"{type(exc).__name__}: {exc}", url)


def error_for_status(status: int, url: str, retry_after: str | None = None) -> LinkHubError | None:
    """Map a non-success HTTP status to an error kind (None for 200)."""
    if status == HTTP_OK:
        return None
    if status in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN):
        return SessionExpiredError(f"HTTP {status}", status)
    if status == HTTP_TOO_MANY_REQUESTS:
        try:
            wait = float(retry_after) if retry_after else RATE_LIMIT_BACKOFF
        except ValueError:
            wait = RATE_LIMIT_BACKOFF
        return RateLimitError(wait, url)
    return TransportError(f"unexpected HTTP status {status}", url)


def decode_body(text: str) -> object:
    """Return parsed JSON when the body is JSON, otherwise the stripped text."""
    stripped = text.strip()
    if stripped[:1] in ("{", "["):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError as e:
            raise InvalidResponseError(f"malformed JSON: {e.msg}", stripped) from e
    return stripped


class LinkPlayTransport:
    """Sends ``httpapi.asp`` commands to a LinkPlay device and its group peers.

    One aiohttp session per device manager; ``host`` on :meth:`send_command`
    lets the group coordinator address a peer through the same session.
    """

    lp: str = "LinkPlayTransport"

    def __init__(
        self,
        host: str,
        *,
        timeout: float = LINKPLAY_REQUEST_TIMEOUT,
        scheme: str = "https",
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.host: str = host
        self.timeout: float = timeout
        self.scheme: str = scheme
        self.http_session: aiohttp.ClientSession | None = session
        self._owns_session: bool = session is None
        self.lp = f"{self.lp}[{host}]"

    async def _check_session(self) -> aiohttp.ClientSession:
        if not self.http_session or self.http_session.closed:
            logger.debug("%s:_check_session: Creating new aiohttp ClientSession", self.lp)
            self.http_session = aiohttp.ClientSession()
            self._owns_session = True
        return self.http_session

    async def close(self) -> None:
        lp = f"{self.lp}:close:"
        if self._owns_session and self.http_session and not self.http_session.closed:
            logger.debug("%s Closing aiohttp ClientSession", lp)
            await self.http_session.close()
        self.http_session = None

    def command_url(self, command: str, host: str | None = None) -> str:
        return f"{self.scheme}://{host or self.host}{LINKPLAY_COMMAND_PATH}?command={command}"

    @timed_async("linkplay_command")
    async def send_command(self, command: str, host: str | None = None) -> CommandResult:
        """Send one command and return its outcome; never raises for transport problems."""
        lp = f"{self.lp}:send_command:"
        target = host or self.host
        url = self.command_url(command, target)
        session = await self._check_session()
        started = time.perf_counter()
        try:
            async with session.get(
                url,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                ssl=False,
            ) as resp:
                text = await resp.text()
                status_error = error_for_status(resp.status, url, resp.headers.get("Retry-After"))
        except (aiohttp.ClientError, TimeoutError) as e:
            error = map_client_error(e, url)
            registry.record_request_error(target, "transport")
            logger.debug("%s %s -> %s", lp, command, error.reason, extra={"host": target, "command": command})
            return CommandResult.failed(error)
        finally:
            registry.record_request_latency(target, time.perf_counter() - started)

        if status_error is not None:
            registry.record_request_error(target, type(status_error).__name__)
            logger.debug("%s %s -> %s", lp, command, status_error, extra={"host": target})
            return CommandResult.failed(status_error, text)

        try:
            payload = decode_body(text)
        except InvalidResponseError as e:
            registry.record_request_error(target, "invalid_response")
            return CommandResult.failed(e, text)

        if isinstance(payload, str) and payload.casefold() in _LINKPLAY_FAILURE_BODIES:
            error = InvalidResponseError(f"device rejected command {command!r}", payload)
            return CommandResult.failed(error, payload)
        return CommandResult.ok(payload)
