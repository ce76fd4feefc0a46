"""Unit tests for PushListener."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from linkhub.const import SERVICE_AVTRANSPORT, SERVICE_RENDERING_CONTROL
from linkhub.push.listener import PushListener
from linkhub.sink import Channel
from linkhub.state.codecs import ControlState
from linkhub.transport.exceptions import TransportError

DIDL = (
    '<DIDL-Lite xmlns:dc="http://purl.org/dc/elements/1.1/" '
    'xmlns:upnp="urn:schemas-upnp-org:metadata-1-0/upnp/" '
    'xmlns="urn:schemas-upnp-org:metadata-1-0/DIDL-Lite/">'
    "<item><dc:title>So What</dc:title><upnp:artist>Miles Davis</upnp:artist></item></DIDL-Lite>"
)

AV_LAST_CHANGE = (
    '<Event xmlns="urn:schemas-upnp-org:metadata-1-0/AVT/"><InstanceID val="0">'
    '<TransportState val="PLAYING"/><CurrentTrackDuration val="0:09:22"/>'
    '<NumberOfTracks val="1"/>'
    "</InstanceID></Event>"
)


@pytest.fixture
def service() -> MagicMock:
    """Mock PushSubscriptionService that accepts every subscription."""
    svc: MagicMock = MagicMock()
    svc.subscribe = AsyncMock(return_value=True)
    svc.unsubscribe = AsyncMock()
    return svc


@pytest.fixture
def listener(reconciler, service, clock) -> PushListener:
    return PushListener(reconciler, service, "kitchen", retry_delay=0.01, clock=clock)


class TestSubscriptions:
    """Tests for subscribe, retry, renewal and stop."""

    @pytest.mark.asyncio
    async def test_start_subscribes_both_services(self, listener, service, reconciler):
        """Test that start activates push."""
        await listener.start()
        try:
            assert set(listener.subscriptions) == {SERVICE_AVTRANSPORT, SERVICE_RENDERING_CONTROL}
            assert reconciler.push_active
            service.subscribe.assert_any_await(SERVICE_AVTRANSPORT, 1800)
        finally:
            await listener.stop()

    @pytest.mark.asyncio
    async def test_failure_schedules_one_retry(self, listener, service, reconciler):
        """Test that a failed subscription is retried after the delay."""
        service.subscribe.side_effect = [False, True, True]
        listener._stopped = False

        await listener._subscribe(SERVICE_AVTRANSPORT)
        assert not reconciler.push_active
        # a second failure report while the retry is pending schedules nothing new
        listener.on_subscribed(SERVICE_AVTRANSPORT, False)
        assert len(listener._retry_tasks) == 1

        await asyncio.sleep(0.05)
        assert SERVICE_AVTRANSPORT in listener.subscriptions
        assert reconciler.push_active
        assert service.subscribe.await_count == 2
        await listener.stop()

    @pytest.mark.asyncio
    async def test_retries_are_bounded(self, reconciler, service, clock):
        """Test that retries stop after max_subscribe_retries."""
        service.subscribe.side_effect = TransportError("refused")
        listener = PushListener(reconciler, service, "kitchen", retry_delay=0.001, max_subscribe_retries=2, clock=clock)
        listener._stopped = False

        await listener._subscribe(SERVICE_RENDERING_CONTROL)
        await asyncio.sleep(0.05)

        assert service.subscribe.await_count == 3
        assert not listener.active
        await listener.stop()

    @pytest.mark.asyncio
    async def test_renewal_drops_expired_and_renews_due(self, listener, service, clock, reconciler):
        """Test the renewal pass."""
        listener._stopped = False
        listener.on_subscribed(SERVICE_AVTRANSPORT, True)
        clock.advance(1000)
        listener.on_subscribed(SERVICE_RENDERING_CONTROL, True)
        clock.advance(1600)
        # AVTransport is 2600s old (expired), RenderingControl 1600s (due)

        await listener.renew_subscriptions()

        assert SERVICE_AVTRANSPORT not in listener.subscriptions
        service.subscribe.assert_awaited_once_with(SERVICE_RENDERING_CONTROL, 1800)
        assert listener.subscriptions[SERVICE_RENDERING_CONTROL] == clock.now
        assert reconciler.push_active

    @pytest.mark.asyncio
    async def test_retry_made_mid_period_is_renewed_before_expiry(self, listener, service, clock):
        """Test a subscription that is not aligned with earlier ones."""
        listener._stopped = False
        listener.on_subscribed(SERVICE_RENDERING_CONTROL, True)
        clock.advance(10)
        listener.on_subscribed(SERVICE_AVTRANSPORT, True)

        # step the clock the way the renewal loop does, for a full hour
        for _ in range(60):
            clock.advance(listener.renewal_check_interval)
            await listener.renew_subscriptions()
            for since in listener.subscriptions.values():
                assert clock.now - since < listener.renewal_period + listener.renewal_check_interval

        assert set(listener.subscriptions) == {SERVICE_AVTRANSPORT, SERVICE_RENDERING_CONTROL}
        assert service.subscribe.await_count == 4

    @pytest.mark.asyncio
    async def test_renewal_loop_keeps_unaligned_subscription(self, reconciler, service):
        """Test the running loop renews a subscription made after start."""
        listener = PushListener(
            reconciler,
            service,
            "kitchen",
            renewal_period=0.1,
            subscription_expiry=0.3,
            renewal_check_interval=0.02,
        )
        await listener.start()
        try:
            await asyncio.sleep(0.05)
            listener.on_subscribed(SERVICE_AVTRANSPORT, True)
            await asyncio.sleep(0.5)
            assert set(listener.subscriptions) == {SERVICE_AVTRANSPORT, SERVICE_RENDERING_CONTROL}
            assert service.subscribe.await_count >= 6
        finally:
            await listener.stop()
        assert reconciler.push_active

    @pytest.mark.asyncio
    async def test_stop_unsubscribes_and_is_idempotent(self, listener, service, reconciler):
        """Test stop."""
        await listener.start()
        await listener.stop()
        await listener.stop()
        assert service.unsubscribe.await_count == 2
        assert not reconciler.push_active
        assert listener.subscriptions == {}


class TestEvents:
    """Tests for event decoding."""

    @pytest.mark.asyncio
    async def test_transport_state(self, listener, reconciler):
        """Test TransportState."""
        await listener.on_event("TransportState", "PLAYING", SERVICE_AVTRANSPORT)
        state = reconciler.snapshot()
        assert state.transport_state == "PLAYING"
        assert state.control == ControlState.PLAY

    @pytest.mark.asyncio
    async def test_track_metadata(self, listener, reconciler, sink):
        """Test DIDL-Lite metadata."""
        await listener.on_event("CurrentTrackMetaData", DIDL, SERVICE_AVTRANSPORT)
        assert reconciler.snapshot().title == "So What"
        assert sink.last(Channel.ARTIST) == "Miles Davis"

    @pytest.mark.asyncio
    async def test_rendering_control_volume_and_mute(self, listener, reconciler):
        """Test Volume and Mute."""
        await listener.on_event("Volume", "27", SERVICE_RENDERING_CONTROL)
        await listener.on_event("Mute", "1", SERVICE_RENDERING_CONTROL)
        state = reconciler.snapshot()
        assert (state.volume, state.mute) == (27, True)

    @pytest.mark.asyncio
    async def test_last_change_is_expanded(self, listener, reconciler):
        """Test that LastChange variables are decoded like individual events."""
        await listener.on_event("LastChange", AV_LAST_CHANGE, SERVICE_AVTRANSPORT)
        state = reconciler.snapshot()
        assert state.control == ControlState.PLAY
        assert state.duration == 562

    @pytest.mark.asyncio
    async def test_unknown_variable_is_ignored(self, listener, sink):
        """Test that unrecognised pairs change nothing."""
        await listener.on_event("PresetNameList", "FactoryDefaults", SERVICE_RENDERING_CONTROL)
        assert sink.states == []

    @pytest.mark.asyncio
    async def test_decode_error_drops_event(self, listener, sink):
        """Test that malformed values are dropped."""
        await listener.on_event("Volume", "loud", SERVICE_RENDERING_CONTROL)
        await listener.on_event("CurrentTrackMetaData", "<DIDL-Lite>", SERVICE_AVTRANSPORT)
        assert sink.states == []
