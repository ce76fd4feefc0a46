"""Unit tests for LinkPlay payload models and DeviceState."""

from __future__ import annotations

import pytest

from linkhub.state.models import DeviceState, GroupRole, parse_extended_status, parse_player_status
from linkhub.transport.exceptions import InvalidResponseError

EXPECTED_POSITION_MS = 61500
EXPECTED_VOLUME = 35


class TestParsePlayerStatus:
    """Tests for getPlayerStatus parsing."""

    def test_string_values_are_coerced(self, player_status_payload):
        """Test that firmware string values become typed fields."""
        status = parse_player_status(player_status_payload)
        assert status.status == "play"
        assert status.volume == EXPECTED_VOLUME
        assert status.mute is False
        assert status.position_ms == EXPECTED_POSITION_MS
        assert status.mode == 10
        assert status.title == "48656c6c6f"

    def test_blank_numbers_become_none(self, player_status_payload):
        """Test that empty strings are treated as missing."""
        player_status_payload.update({"vol": "", "curpos": "", "loop": ""})
        status = parse_player_status(player_status_payload)
        assert status.volume is None
        assert status.position_ms is None
        assert status.loop is None

    def test_missing_status_is_invalid(self, player_status_payload):
        """Test that the required status field is enforced."""
        del player_status_payload["status"]
        with pytest.raises(InvalidResponseError, match="status"):
            parse_player_status(player_status_payload)

    def test_non_object_is_invalid(self):
        """Test that a plain-text body is rejected."""
        with pytest.raises(InvalidResponseError):
            parse_player_status("unknown command")


class TestParseExtendedStatus:
    """Tests for getStatusEx parsing."""

    def test_required_fields(self, extended_status_factory):
        """Test a complete payload."""
        status = parse_extended_status(extended_status_factory())
        assert status.device_name == "Kitchen"
        assert status.rssi == -60
        assert status.ip == "10.0.0.1"

    @pytest.mark.parametrize("missing", ["group", "DeviceName"])
    def test_missing_required_field_is_invalid(self, extended_status_factory, missing):
        """Test that group and DeviceName are required."""
        payload = extended_status_factory()
        del payload[missing]
        with pytest.raises(InvalidResponseError):
            parse_extended_status(payload)

    def test_ethernet_address_used_without_wifi(self, extended_status_factory):
        """Test IP selection when the WiFi interface is down."""
        status = parse_extended_status(extended_status_factory(apcli0="0.0.0.0", eth2="10.0.0.9"))
        assert status.ip == "10.0.0.9"

    def test_non_list_slave_list_is_ignored(self, extended_status_factory):
        """Test that a malformed slave_list does not fail parsing."""
        status = parse_extended_status(extended_status_factory(slave_list="0"))
        assert status.slave_list == []


class TestDeviceStateInvariants:
    """Tests for group field consistency."""

    def test_defaults_are_consistent(self):
        """Test a fresh state."""
        assert DeviceState().check_group_invariants()

    def test_slave_needs_master_address(self):
        """Test the slave invariant."""
        state = DeviceState(role=GroupRole.SLAVE)
        assert not state.check_group_invariants()
        state.master_address = "10.0.0.5"
        assert state.check_group_invariants()

    def test_master_has_no_master_address(self):
        """Test the master invariant."""
        assert not DeviceState(role=GroupRole.MASTER, master_address="10.0.0.5").check_group_invariants()

    def test_standalone_has_no_slaves(self):
        """Test the standalone invariant."""
        assert not DeviceState(slave_addresses=("10.0.0.2",)).check_group_invariants()
