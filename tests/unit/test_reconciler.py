"""Unit tests for StateReconciler."""

from __future__ import annotations

import pytest

from linkhub.multiroom.topology import GroupTopology
from linkhub.sink import Channel
from linkhub.state.codecs import ControlState
from linkhub.state.models import GroupRole, parse_extended_status, parse_player_status

EXPECTED_VOLUME = 35


class TestApplyPolled:
    """Tests for polled payloads."""

    @pytest.mark.asyncio
    async def test_player_status_conventions(self, reconciler, sink, player_status_payload):
        """Test ms -> s, hex decoding, loop table, mode and status mapping."""
        changes = await reconciler.apply_polled(parse_player_status(player_status_payload))

        state = reconciler.snapshot()
        assert state.volume == EXPECTED_VOLUME
        assert state.position == 61
        assert state.duration == 215
        assert state.title == "Hello"
        assert state.artist == "World"
        assert (state.repeat, state.shuffle, state.loop_once) == (True, False, False)
        assert state.source == "WIFI"
        assert state.control == ControlState.PLAY
        assert "volume" in changes
        assert sink.last(Channel.CONTROL) == "PLAY"

    @pytest.mark.asyncio
    async def test_unchanged_values_are_not_notified(self, reconciler, sink, player_status_payload):
        """Test that a repeated identical poll produces no sink calls."""
        status = parse_player_status(player_status_payload)
        _ = await reconciler.apply_polled(status)
        calls = len(sink.states)

        changes = await reconciler.apply_polled(status)
        assert changes == {}
        assert len(sink.states) == calls

    @pytest.mark.asyncio
    async def test_extended_status_with_topology(self, reconciler, sink, extended_status_factory):
        """Test identity, signal and group fields."""
        status = parse_extended_status(extended_status_factory(RSSI="-75"))
        topology = GroupTopology(GroupRole.MASTER, "", ("10.0.0.2", "10.0.0.3"))
        _ = await reconciler.apply_polled(status, topology)

        state = reconciler.snapshot()
        assert state.name == "Kitchen"
        assert state.signal_strength == 50
        assert state.role == GroupRole.MASTER
        assert sink.last(Channel.ROLE) == "master"
        assert sink.last(Channel.SLAVE_IPS) == "10.0.0.2,10.0.0.3"


class TestPushPrecedence:
    """Tests for the push/poll precedence rule."""

    @pytest.mark.asyncio
    async def test_push_covered_field_is_not_overwritten_by_poll(self, reconciler, player_status_payload):
        """Test that while push is active a polled volume does not replace the pushed one."""
        reconciler.set_push_active(True)
        _ = await reconciler.apply_pushed({"volume": 60})

        changes = await reconciler.apply_polled(parse_player_status(player_status_payload))

        state = reconciler.snapshot()
        assert state.volume == 60
        assert "volume" not in changes
        assert state.position == 61
        assert "position" in changes

    @pytest.mark.asyncio
    async def test_polled_duration_applies_while_push_active(self, reconciler, sink, player_status_payload):
        """Test that track length still comes from polling when push is active."""
        reconciler.set_push_active(True)
        _ = await reconciler.apply_polled(parse_player_status(player_status_payload))
        assert reconciler.snapshot().duration == 215
        assert sink.last(Channel.DURATION) == 215

    @pytest.mark.asyncio
    async def test_poll_applies_everything_when_push_inactive(self, reconciler, player_status_payload):
        """Test that without push the poll owns every field."""
        _ = await reconciler.apply_pushed({"volume": 60})
        _ = await reconciler.apply_polled(parse_player_status(player_status_payload))
        assert reconciler.snapshot().volume == EXPECTED_VOLUME

    @pytest.mark.asyncio
    async def test_pushed_fields_are_filtered_and_clamped(self, reconciler, sink):
        """Test unknown/topology fields are dropped and volume clamped."""
        changes = await reconciler.apply_pushed({"volume": 150, "bogus": 1, "role": GroupRole.MASTER})
        assert changes == {"volume": 100}
        assert reconciler.snapshot().role == GroupRole.STANDALONE
        assert sink.states == [(Channel.VOLUME, 100)]


class TestLifecycle:
    """Tests for snapshots, aggregates and disposal."""

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self, reconciler):
        """Test that mutating a snapshot does not touch the state."""
        snap = reconciler.snapshot()
        snap.volume = 99
        assert reconciler.snapshot().volume == 0

    @pytest.mark.asyncio
    async def test_group_aggregate(self, reconciler, sink):
        """Test group volume and mute publication."""
        _ = await reconciler.apply_group_aggregate(70, True)
        assert sink.last(Channel.GROUP_VOLUME) == 70
        assert sink.last(Channel.GROUP_MUTE) is True

    @pytest.mark.asyncio
    async def test_metadata_artwork_applies_while_push_active(self, reconciler, sink):
        """Test that looked-up artwork is published even when push owns the field."""
        reconciler.set_push_active(True)
        assert await reconciler.apply_metadata("https://img/front.jpg") == {"album_art_uri": "https://img/front.jpg"}
        assert sink.last(Channel.ALBUM_ART) == "https://img/front.jpg"

    @pytest.mark.asyncio
    async def test_updates_after_dispose_are_discarded(self, reconciler, sink):
        """Test that late results are dropped once disposed."""
        reconciler.dispose()
        assert await reconciler.apply_pushed({"volume": 10}) == {}
        assert sink.states == []
