"""UPnP event subscriptions feeding pushed state into the reconciler.

The listener owns the subscription bookkeeping only; the actual GENA
transport is supplied as a :class:`PushSubscriptionService` (typically the
host's UPnP stack), which reports events back through :meth:`PushListener.on_event`.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable
from typing import Protocol

from linkhub.const import (
    PUSH_RENEWAL_CHECK_INTERVAL,
    PUSH_RENEWAL_PERIOD,
    PUSH_RETRY_DELAY,
    PUSH_SUBSCRIPTION_DURATION,
    PUSH_SUBSCRIPTION_EXPIRY,
    SERVICE_AVTRANSPORT,
    SERVICE_RENDERING_CONTROL,
)
from linkhub.correlation import correlation_context
from linkhub.logging_abstraction import get_logger
from linkhub.metrics import registry
from linkhub.state.codecs import (
    control_for_transport_state,
    parse_bool,
    parse_didl_metadata,
    parse_last_change,
    parse_upnp_duration,
)
from linkhub.state.reconciler import StateReconciler
from linkhub.transport.exceptions import InvalidResponseError, LinkHubError

logger = get_logger(__name__)

PUSH_SERVICES = (SERVICE_AVTRANSPORT, SERVICE_RENDERING_CONTROL)

# Values UPnP renderers send when a variable has nothing to report
_EMPTY_VALUES = frozenset({"", "NOT_IMPLEMENTED"})


class PushSubscriptionService(Protocol):
    """GENA subscribe/unsubscribe for one device."""

    async def subscribe(self, service: str, duration: int) -> bool: ...

    async def unsubscribe(self, service: str) -> None: ...


def _short(service: str) -> str:
    """``urn:schemas-upnp-org:service:AVTransport:1`` -> ``AVTransport``."""
    parts = service.split(":")
    return parts[-2] if len(parts) >= 2 else service


class PushListener:
    """Subscribes to AVTransport and RenderingControl and decodes their events."""

    lp: str = "PushListener"

    def __init__(
        self,
        reconciler: StateReconciler,
        service: PushSubscriptionService,
        device_id: str,
        *,
        retry_delay: float = PUSH_RETRY_DELAY,
        max_subscribe_retries: int = 3,
        renewal_period: float = PUSH_RENEWAL_PERIOD,
        renewal_check_interval: float = PUSH_RENEWAL_CHECK_INTERVAL,
        subscription_expiry: float = PUSH_SUBSCRIPTION_EXPIRY,
        duration: int = PUSH_SUBSCRIPTION_DURATION,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.reconciler: StateReconciler = reconciler
        self.service: PushSubscriptionService = service
        self.device_id: str = device_id
        self.retry_delay: float = retry_delay
        self.max_subscribe_retries: int = max_subscribe_retries
        self.renewal_period: float = renewal_period
        self.renewal_check_interval: float = renewal_check_interval
        self.subscription_expiry: float = subscription_expiry
        self.duration: int = duration
        self._clock: Callable[[], float] = clock
        self.lp = f"{self.lp}[{device_id}]"

        # service -> clock reading of the last successful (re)subscription
        self.subscriptions: dict[str, float] = {}
        self._retry_counts: dict[str, int] = {}
        self._retry_tasks: dict[str, asyncio.Task[None]] = {}
        self._renewal_task: asyncio.Task[None] | None = None
        self._stopped: bool = True

    @property
    def active(self) -> bool:
        return bool(self.subscriptions)

    async def start(self) -> None:
        """Subscribe to both services and start the renewal loop."""
        lp = f"{self.lp}:start:"
        self._stopped = False
        for service in PUSH_SERVICES:
            await self._subscribe(service)
        if self._renewal_task is None or self._renewal_task.done():
            self._renewal_task = asyncio.create_task(self._renewal_loop(), name=f"{self.lp}:renewal")
        logger.info("%s push listener started (%d/%d subscribed)", lp, len(self.subscriptions), len(PUSH_SERVICES))

    async def stop(self) -> None:
        """Cancel renewal and pending retries, unsubscribe and hand control back to polling. Idempotent."""
        lp = f"{self.lp}:stop:"
        self._stopped = True
        tasks = list(self._retry_tasks.values())
        self._retry_tasks.clear()
        if self._renewal_task is not None:
            tasks.append(self._renewal_task)
            self._renewal_task = None
        for task in tasks:
            if not task.done():
                _ = task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        for service in list(self.subscriptions):
            try:
                await self.service.unsubscribe(service)
            except LinkHubError as e:
                logger.debug("%s unsubscribe from %s failed: %s", lp, _short(service), e)
        self.subscriptions.clear()
        self._retry_counts.clear()
        self.reconciler.set_push_active(False)
        registry.record_push_subscriptions(self.device_id, 0)

    async def _subscribe(self, service: str) -> None:
        lp = f"{self.lp}:_subscribe:"
        try:
            ok = await self.service.subscribe(service, self.duration)
        except LinkHubError as e:
            logger.warning("%s subscribe to %s failed: %s", lp, _short(service), e)
            ok = False
        self.on_subscribed(service, ok)

    def on_subscribed(self, service: str, success: bool) -> None:
        """Record a subscription outcome; failures schedule one bounded retry."""
        lp = f"{self.lp}:on_subscribed:"
        if self._stopped:
            return
        if success:
            self.subscriptions[service] = self._clock()
            self._retry_counts.pop(service, None)
            self.reconciler.set_push_active(True)
            registry.record_push_subscriptions(self.device_id, len(self.subscriptions))
            logger.debug("%s subscribed to %s", lp, _short(service))
            return

        _ = self.subscriptions.pop(service, None)
        registry.record_push_subscriptions(self.device_id, len(self.subscriptions))
        if not self.subscriptions:
            self.reconciler.set_push_active(False)
        self._schedule_retry(service)

    def _schedule_retry(self, service: str) -> None:
        lp = f"{self.lp}:_schedule_retry:"
        pending = self._retry_tasks.get(service)
        if pending is not None and not pending.done():
            return
        attempts = self._retry_counts.get(service, 0)
        if attempts >= self.max_subscribe_retries:
            logger.warning(
                "%s giving up on %s after %d retries, relying on polling",
                lp,
                _short(service),
                attempts,
            )
            return
        self._retry_counts[service] = attempts + 1
        logger.info("%s retrying %s in %.0fs", lp, _short(service), self.retry_delay)
        self._retry_tasks[service] = asyncio.create_task(
            self._retry(service),
            name=f"{self.lp}:retry:{_short(service)}",
        )

    async def _retry(self, service: str) -> None:
        await asyncio.sleep(self.retry_delay)
        _ = self._retry_tasks.pop(service, None)
        if not self._stopped:
            await self._subscribe(service)

    async def _renewal_loop(self) -> None:
        # subscriptions fall due at their own times, not on loop boundaries
        while True:
            await asyncio.sleep(self.renewal_check_interval)
            with correlation_context(prefix="push-renew"):
                await self.renew_subscriptions()

    async def renew_subscriptions(self) -> None:
        """Drop expired subscriptions and renew those past the renewal period."""
        lp = f"{self.lp}:renew_subscriptions:"
        now = self._clock()
        for service, since in list(self.subscriptions.items()):
            age = now - since
            if age > self.subscription_expiry:
                logger.warning("%s subscription to %s expired %.0fs ago, removing", lp, _short(service), age)
                del self.subscriptions[service]
            elif age >= self.renewal_period:
                logger.debug("%s renewing %s", lp, _short(service))
                await self._subscribe(service)
        if not self.subscriptions:
            self.reconciler.set_push_active(False)
        registry.record_push_subscriptions(self.device_id, len(self.subscriptions))

    async def on_event(self, variable: str, value: str, service: str) -> None:
        """Decode one evented variable and push it into the reconciler."""
        lp = f"{self.lp}:on_event:"
        short = _short(service)
        with correlation_context(prefix="push"):
            try:
                fields = self._decode(variable, value, service)
            except (InvalidResponseError, ValueError) as e:
                registry.record_push_event(short, "invalid")
                logger.warning("%s dropping %s.%s: %s", lp, short, variable, e)
                return
            if fields is None:
                registry.record_push_event(short, "ignored")
                logger.debug("%s ignoring %s.%s", lp, short, variable)
                return
            registry.record_push_event(short, "applied")
            if fields:
                _ = await self.reconciler.apply_pushed(fields)

    def _decode(self, variable: str, value: str, service: str) -> dict[str, object] | None:
        """Field dict for a recognised variable, None for anything else."""
        if variable == "LastChange":
            return self._decode_last_change(value, service)
        if service == SERVICE_AVTRANSPORT:
            return self._decode_av_transport(variable, value)
        if service == SERVICE_RENDERING_CONTROL:
            return self._decode_rendering_control(variable, value)
        return None

    def _decode_last_change(self, value: str, service: str) -> dict[str, object]:
        fields: dict[str, object] = {}
        for name, val in parse_last_change(value).items():
            decoded = self._decode(name, val, service) if name != "LastChange" else None
            if decoded:
                fields.update(decoded)
        return fields

    @staticmethod
    def _decode_av_transport(variable: str, value: str) -> dict[str, object] | None:
        match variable:
            case "TransportState":
                return {"transport_state": value, "control": control_for_transport_state(value)}
            case "CurrentTrackMetaData":
                if value in _EMPTY_VALUES:
                    return {}
                return dict(parse_didl_metadata(value))
            case "CurrentTrackDuration":
                if value in _EMPTY_VALUES:
                    return {}
                return {"duration": parse_upnp_duration(value)}
            case _:
                return None

    @staticmethod
    def _decode_rendering_control(variable: str, value: str) -> dict[str, object] | None:
        match variable:
            case "Volume":
                return {"volume": int(value)}
            case "Mute":
                return {"mute": parse_bool(value)}
            case _:
                return None
