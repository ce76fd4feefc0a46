"""Fast/slow periodic polling with failure accounting.

Two independent cadences per device: a fast one for playback status and a
slow one for identity, network and group data. Each tick fetches a parsed
payload, hands it to the cadence's consumer and reports the outcome to the
:class:`CommunicationHealthTracker`. Fetch errors never escape a tick.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from linkhub.const import POLL_INITIAL_DELAY, RATE_LIMIT_BACKOFF
from linkhub.correlation import correlation_context
from linkhub.health import CommunicationHealthTracker
from linkhub.logging_abstraction import get_logger
from linkhub.metrics import registry
from linkhub.transport.exceptions import LinkHubError, RateLimitError
from linkhub.transport.retry_policy import RetryPolicy

logger = get_logger(__name__)

FAST = "fast"
SLOW = "slow"

Fetch = Callable[[], Awaitable[Any]]
Consume = Callable[[Any], Awaitable[object]]


@dataclass
class _Cadence:
    name: str
    fetch: Fetch | None
    consume: Consume | None
    interval: float = 0.0
    task: asyncio.Task[None] | None = None
    rate_limited: int = 0
    retry_after: float = 0.0

    @property
    def configured(self) -> bool:
        return self.fetch is not None and self.consume is not None


class Poller:
    """Runs the fast and slow poll loops for one device."""

    lp: str = "Poller"

    def __init__(
        self,
        device_id: str,
        health: CommunicationHealthTracker,
        *,
        fast_fetch: Fetch | None = None,
        on_fast: Consume | None = None,
        slow_fetch: Fetch | None = None,
        on_slow: Consume | None = None,
        initial_delay: float = POLL_INITIAL_DELAY,
        rate_limit_policy: RetryPolicy | None = None,
    ) -> None:
        self.device_id: str = device_id
        self.health: CommunicationHealthTracker = health
        self.initial_delay: float = initial_delay
        self.rate_limit_policy: RetryPolicy = rate_limit_policy or RetryPolicy(
            base_delay_seconds=RATE_LIMIT_BACKOFF,
            max_delay_seconds=RATE_LIMIT_BACKOFF * 6,
        )
        self.lp = f"{self.lp}[{device_id}]"
        self._cadences: dict[str, _Cadence] = {
            FAST: _Cadence(FAST, fast_fetch, on_fast),
            SLOW: _Cadence(SLOW, slow_fetch, on_slow),
        }

    @property
    def running(self) -> bool:
        return any(c.task is not None and not c.task.done() for c in self._cadences.values())

    async def start_polling(self, fast_interval: float, slow_interval: float) -> None:
        """(Re)start both cadences; an interval <= 0 leaves that cadence off."""
        lp = f"{self.lp}:start_polling:"
        await self.stop_polling()
        for cadence, interval in ((self._cadences[FAST], fast_interval), (self._cadences[SLOW], slow_interval)):
            cadence.interval = interval
            cadence.rate_limited = 0
            if interval <= 0 or not cadence.configured:
                logger.debug("%s %s polling disabled", lp, cadence.name)
                continue
            cadence.task = asyncio.create_task(self._run(cadence), name=f"{self.lp}:{cadence.name}")
        logger.info(
            "%s polling started",
            lp,
            extra={"fast_interval": fast_interval, "slow_interval": slow_interval},
        )

    async def stop_polling(self) -> None:
        """Cancel both loops. Safe to call repeatedly and before start."""
        tasks: list[asyncio.Task[None]] = []
        for cadence in self._cadences.values():
            if cadence.task is not None:
                tasks.append(cadence.task)
                cadence.task = None
        for task in tasks:
            if not task.done():
                _ = task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if tasks:
            logger.debug("%s:stop_polling: polling stopped", self.lp)

    async def poll_now(self, cadence: str = FAST) -> bool:
        """Run one tick of ``cadence`` outside the schedule.

        Returns:
            True when the fetch succeeded

        """
        entry = self._cadences.get(cadence)
        if entry is None:
            msg = f"unknown cadence {cadence!r}"
            raise ValueError(msg)
        if not entry.configured:
            return False
        return await self._tick(entry)

    async def _run(self, cadence: _Cadence) -> None:
        delay = self.initial_delay
        while True:
            await asyncio.sleep(delay)
            ok = await self._tick(cadence)
            delay = cadence.interval
            if not ok and cadence.rate_limited:
                delay = max(
                    delay,
                    cadence.retry_after,
                    self.rate_limit_policy.get_delay(cadence.rate_limited - 1),
                )

    async def _tick(self, cadence: _Cadence) -> bool:
        lp = f"{self.lp}:{cadence.name}:"
        fetch, consume = cadence.fetch, cadence.consume
        if fetch is None or consume is None:
            logger.debug("%s cadence not configured, skipping", lp)
            return False
        with correlation_context(prefix=f"poll-{cadence.name}"):
            try:
                payload = await fetch()
            except RateLimitError as e:
                cadence.rate_limited += 1
                cadence.retry_after = e.retry_after
                registry.record_poll(self.device_id, cadence.name, "rate_limited")
                logger.warning(
                    "%s rate limited, backing off",
                    lp,
                    extra={"retry_after": e.retry_after, "attempt": cadence.rate_limited},
                )
                self.health.record_failure(str(e))
                return False
            except LinkHubError as e:
                registry.record_poll(self.device_id, cadence.name, "failure")
                logger.warning("%s poll failed: %s", lp, e, extra={"error_type": type(e).__name__})
                self.health.record_failure(str(e))
                return False

            cadence.rate_limited = 0
            _ = await consume(payload)
            registry.record_poll(self.device_id, cadence.name, "success")
            self.health.record_success()
            return True
