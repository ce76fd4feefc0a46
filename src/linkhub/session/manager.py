"""Authenticated session to a cloud portal that silently expires sessions.

States: ``LOGGED_OUT -> LOGGING_IN -> AUTHENTICATED -> (EXPIRED | LOGGED_OUT)``.

``execute_with_retry`` is the only way protected operations should run: it
refreshes a stale session before the operation and, when the operation itself
reports expiry, logs in once more and retries it exactly once.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

import aiohttp

from linkhub.const import (
    TCC_BASE_URL,
    TCC_FAILURE_MARKER,
    TCC_KEEPALIVE_INTERVAL,
    TCC_REQUEST_TIMEOUT,
    TCC_SESSION_TIMEOUT,
    TCC_TIME_OFFSET,
)
from linkhub.correlation import correlation_context
from linkhub.instrumentation import timed_async
from linkhub.logging_abstraction import get_logger
from linkhub.metrics import registry
from linkhub.transport.exceptions import (
    AuthError,
    InvalidResponseError,
    LinkHubError,
    RateLimitError,
    SessionExpiredError,
)
from linkhub.transport.http import HTTP_OK, decode_body, error_for_status, map_client_error
from linkhub.transport.types import CommandResult

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_HEADERS: Mapping[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "X-Requested-With": "XMLHttpRequest",
    "Connection": "keep-alive",
}


class SessionStatus(Enum):
    """Session state enumeration."""

    LOGGED_OUT = "logged_out"
    LOGGING_IN = "logging_in"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"


@dataclass
class SessionState:
    """Mutable session bookkeeping, only touched under SessionManager's lock.

    Attributes:
        authenticated: True while the portal accepts our cookies
        last_auth_time: Clock reading of the last successful login/keepalive (0.0 = never)
        session_timeout: Seconds after which the session is assumed stale

    """

    authenticated: bool = False
    last_auth_time: float = 0.0
    session_timeout: float = TCC_SESSION_TIMEOUT


class SessionManager:
    """Login, keepalive and single-retry recovery for one portal account.

    **Locking**: ``_state_lock`` guards every transition of ``status`` and
    ``state``; it is never held across network I/O. ``_login_lock`` serializes
    logins so concurrent callers that all see an expired session trigger one
    credential POST, not one each.
    """

    lp: str = "SessionManager"

    def __init__(
        self,
        username: str | None,
        password: str | None,
        *,
        base_url: str = TCC_BASE_URL,
        session_timeout: float = TCC_SESSION_TIMEOUT,
        keepalive_interval: float = TCC_KEEPALIVE_INTERVAL,
        request_timeout: float = TCC_REQUEST_TIMEOUT,
        keepalive_path: str = "",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the session manager.

        Args:
            username: Portal account user name
            password: Portal account password
            base_url: Portal root; relative request paths are appended to it
            session_timeout: Idle time after which the next operation re-validates
            keepalive_interval: Period of the background keepalive (<= 0 disables it)
            request_timeout: Total timeout for every request
            keepalive_path: Path requested by keepalive (portal root by default)
            clock: Monotonic clock, injectable for tests

        """
        self.username: str | None = username
        self.password: str | None = password
        self.base_url: str = base_url.rstrip("/")
        self.keepalive_interval: float = keepalive_interval
        self.request_timeout: float = request_timeout
        self.keepalive_path: str = keepalive_path
        self._clock: Callable[[], float] = clock

        self.state: SessionState = SessionState(session_timeout=session_timeout)
        self.status: SessionStatus = SessionStatus.LOGGED_OUT
        self._state_lock: asyncio.Lock = asyncio.Lock()
        self._login_lock: asyncio.Lock = asyncio.Lock()
        self._auth_generation: int = 0

        self.http_session: aiohttp.ClientSession | None = None
        self.keepalive_task: asyncio.Task[None] | None = None
        self._referer: str = self.base_url

    # ------------------------------------------------------------------
    # aiohttp session

    async def _check_session(self) -> aiohttp.ClientSession:
        if not self.http_session or self.http_session.closed:
            logger.debug("%s:_check_session: Creating new aiohttp ClientSession", self.lp)
            self.http_session = aiohttp.ClientSession(
                headers=dict(DEFAULT_HEADERS),
                cookie_jar=aiohttp.CookieJar(),
            )
        return self.http_session

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}{path}"

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(total=self.request_timeout)

    # ------------------------------------------------------------------
    # state transitions

    async def _set_status(self, status: SessionStatus, *, authenticated_now: bool = False) -> None:
        async with self._state_lock:
            previous = self.status
            self.status = status
            self.state.authenticated = status == SessionStatus.AUTHENTICATED
            if authenticated_now:
                self.state.last_auth_time = self._clock()
                self._auth_generation += 1
        registry.record_session_state(status.value)
        if previous != status:
            logger.debug("%s:_set_status: %s -> %s", self.lp, previous.value, status.value)

    @property
    def is_authenticated(self) -> bool:
        return self.status == SessionStatus.AUTHENTICATED

    def session_age(self) -> float:
        """Seconds since the last successful login or keepalive."""
        return self._clock() - self.state.last_auth_time

    def needs_refresh(self) -> bool:
        return not self.is_authenticated or self.session_age() > self.state.session_timeout

    # ------------------------------------------------------------------
    # public operations

    @timed_async("session_login")
    async def login(self) -> None:
        """Seed cookies with a GET, then POST the credential form.

        Raises:
            AuthError: Credentials missing or rejected
            TransportError: The portal could not be reached
            RateLimitError: The portal throttled the login

        """
        lp = f"{self.lp}:login:"
        generation = self._auth_generation
        async with self._login_lock:
            if self._auth_generation != generation and self.is_authenticated:
                logger.debug("%s session was re-established while waiting, skipping login", lp)
                return

            if not self.username or not self.password:
                registry.record_login("no_credentials")
                await self._set_status(SessionStatus.LOGGED_OUT)
                msg = "username or password not configured"
                raise AuthError(msg)

            await self._set_status(SessionStatus.LOGGING_IN)
            try:
                await self._do_login()
            except LinkHubError as e:
                registry.record_login("failure")
                await self._set_status(SessionStatus.LOGGED_OUT)
                logger.error("%s login failed: %s", lp, e, extra={"error_type": type(e).__name__})
                raise

            await self._set_status(SessionStatus.AUTHENTICATED, authenticated_now=True)
            registry.record_login("success")
            logger.info("%s login successful", lp, extra={"user": self.username})
            self.start_keepalive()

    async def _do_login(self) -> None:
        session = await self._check_session()
        url = self.base_url
        form = {
            "UserName": self.username or "",
            "Password": self.password or "",
            "RememberMe": "false",
            "timeOffset": str(TCC_TIME_OFFSET),
        }
        try:
            async with session.get(url, timeout=self._timeout()) as seed:
                _ = await seed.read()
                seed_error = error_for_status(seed.status, url, seed.headers.get("Retry-After"))
            if isinstance(seed_error, RateLimitError):
                raise seed_error
            async with session.post(
                url,
                data=form,
                headers={"Referer": url},
                timeout=self._timeout(),
            ) as resp:
                body = await resp.text()
                status = resp.status
                retry_after = resp.headers.get("Retry-After")
        except (aiohttp.ClientError, TimeoutError) as e:
            raise map_client_error(e, url) from e

        if TCC_FAILURE_MARKER in body:
            raise AuthError(TCC_FAILURE_MARKER, status)
        status_error = error_for_status(status, url, retry_after)
        if isinstance(status_error, RateLimitError):
            raise status_error
        if status != HTTP_OK:
            raise AuthError(f"login returned HTTP {status}", status)
        self._referer = url

    @timed_async("session_keepalive")
    async def keepalive(self) -> None:
        """Touch the portal to keep (and verify) the session.

        Raises:
            SessionExpiredError: The portal no longer accepts the session
            TransportError: The portal could not be reached

        """
        lp = f"{self.lp}:keepalive:"
        if self.status in (SessionStatus.LOGGED_OUT, SessionStatus.LOGGING_IN):
            registry.record_keepalive("not_logged_in")
            msg = f"no session ({self.status.value})"
            raise SessionExpiredError(msg)

        session = await self._check_session()
        url = self._url(self.keepalive_path)
        try:
            async with session.get(url, headers={"Referer": self._referer}, timeout=self._timeout()) as resp:
                _ = await resp.read()
                status = resp.status
        except (aiohttp.ClientError, TimeoutError) as e:
            registry.record_keepalive("transport_error")
            raise map_client_error(e, url) from e

        if status != HTTP_OK:
            registry.record_keepalive("expired")
            await self._set_status(SessionStatus.EXPIRED)
            logger.info("%s keepalive returned HTTP %d, session expired", lp, status)
            msg = f"keepalive returned HTTP {status}"
            raise SessionExpiredError(msg, status)

        await self._set_status(SessionStatus.AUTHENTICATED, authenticated_now=True)
        registry.record_keepalive("success")
        logger.debug("%s session refreshed", lp)

    async def execute_with_retry(self, op: Callable[[], Awaitable[T]], operation: str = "operation") -> T:
        """Run ``op`` inside a valid session.

        Before ``op``: a stale or unauthenticated session is checked with
        keepalive, and a keepalive that reports expiry is followed by login.
        After ``op`` fails with SessionExpiredError: one login and one retry.
        A second failure propagates; AuthError is never retried.
        """
        lp = f"{self.lp}:execute_with_retry:"
        if self.needs_refresh():
            logger.debug(
                "%s session needs refresh before %s (status=%s, age=%.0fs)",
                lp,
                operation,
                self.status.value,
                self.session_age(),
            )
            try:
                await self.keepalive()
            except SessionExpiredError:
                await self.login()

        try:
            return await op()
        except SessionExpiredError as e:
            logger.info("%s session expired during %s (%s), logging in and retrying once", lp, operation, e.reason)
            await self._set_status(SessionStatus.EXPIRED)
            await self.login()
            return await op()

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        data: Mapping[str, str] | None = None,
        json_body: object = None,
    ) -> CommandResult:
        """One authenticated request; the outcome is returned, never raised.

        401/403 mark the session expired so the next ``execute_with_retry``
        re-authenticates.
        """
        lp = f"{self.lp}:request:"
        session = await self._check_session()
        url = self._url(path)
        started = time.perf_counter()
        try:
            async with session.request(
                method,
                url,
                params=params,
                data=data,
                json=json_body,
                headers={"Referer": self._referer},
                timeout=self._timeout(),
            ) as resp:
                text = await resp.text()
                status = resp.status
                retry_after = resp.headers.get("Retry-After")
        except (aiohttp.ClientError, TimeoutError) as e:
            registry.record_request_error("cloud", "transport")
            return CommandResult.failed(map_client_error(e, url))
        finally:
            registry.record_request_latency("cloud", time.perf_counter() - started)

        status_error = error_for_status(status, url, retry_after)
        if status_error is not None:
            registry.record_request_error("cloud", type(status_error).__name__)
            if isinstance(status_error, SessionExpiredError):
                await self._set_status(SessionStatus.EXPIRED)
            logger.debug("%s %s %s -> %s", lp, method, path, status_error)
            return CommandResult.failed(status_error, text)

        try:
            payload = decode_body(text)
        except InvalidResponseError as e:
            registry.record_request_error("cloud", "invalid_response")
            return CommandResult.failed(e, text)
        return CommandResult.ok(payload)

    # ------------------------------------------------------------------
    # background keepalive

    def start_keepalive(self) -> None:
        if self.keepalive_interval <= 0:
            return
        if self.keepalive_task and not self.keepalive_task.done():
            return
        self.keepalive_task = asyncio.create_task(self._keepalive_loop(), name=f"{self.lp}:keepalive")

    async def _keepalive_loop(self) -> None:
        lp = f"{self.lp}:_keepalive_loop:"
        while True:
            await asyncio.sleep(self.keepalive_interval)
            if not self.is_authenticated:
                continue
            with correlation_context(prefix="keepalive"):
                try:
                    await self.keepalive()
                except LinkHubError as e:
                    logger.warning("%s background keepalive failed: %s", lp, e)

    async def stop_keepalive(self) -> None:
        task = self.keepalive_task
        self.keepalive_task = None
        if task and not task.done():
            _ = task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def close(self) -> None:
        """Stop keepalive, close the HTTP session and forget the login. Idempotent."""
        lp = f"{self.lp}:close:"
        await self.stop_keepalive()
        if self.http_session and not self.http_session.closed:
            logger.debug("%s Closing aiohttp ClientSession", lp)
            await self.http_session.close()
        self.http_session = None
        await self._set_status(SessionStatus.LOGGED_OUT)
