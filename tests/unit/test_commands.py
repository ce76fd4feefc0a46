"""Unit tests for LinkPlay command builders."""

from __future__ import annotations

import pytest

from linkhub.devices import commands
from linkhub.state.codecs import ControlState


class TestPlaybackCommands:
    """Tests for playback command strings."""

    @pytest.mark.parametrize(("level", "expected"), [(40, "40"), (-5, "0"), (150, "100")])
    def test_volume_is_clamped(self, level, expected):
        """Test volume range clamping."""
        assert commands.volume(level) == f"setPlayerCmd:vol:{expected}"

    def test_mute(self):
        """Test mute flag encoding."""
        assert commands.mute(True) == "setPlayerCmd:mute:1"
        assert commands.mute(False) == "setPlayerCmd:mute:0"

    def test_control_accepts_names_and_enum(self):
        """Test that both spellings map to the same command."""
        assert commands.control(" previous ") == "setPlayerCmd:prev"
        assert commands.control(ControlState.PAUSE) == "setPlayerCmd:pause"
        assert commands.control("toggle") == "setPlayerCmd:onepause"

    def test_control_rejects_unknown(self):
        """Test that LOAD is not something a user can request."""
        with pytest.raises(ValueError, match="control action"):
            _ = commands.control(ControlState.LOAD)

    def test_seek_never_negative(self):
        """Test seek clamping."""
        assert commands.seek(-3) == "setPlayerCmd:seek:0"

    def test_loop_mode_uses_table(self):
        """Test loop mode encoding, including the fallback code."""
        assert commands.loop_mode(True, False) == "setPlayerCmd:loopmode:0"
        assert commands.loop_mode(False, True) == "setPlayerCmd:loopmode:3"
        assert commands.loop_mode(False, True, True) == "setPlayerCmd:loopmode:4"

    def test_switch_source(self):
        """Test selectable sources."""
        assert commands.switch_source("line-in") == "setPlayerCmd:switchmode:line-in"
        with pytest.raises(ValueError, match="cannot be selected"):
            _ = commands.switch_source("AIRPLAY")

    @pytest.mark.parametrize("number", [0, 10])
    def test_preset_bounds(self, number):
        """Test the inclusive preset range."""
        assert commands.preset(number) == f"MCUKeyShortClick:{number}"


class TestMultiroomCommands:
    """Tests for multiroom command strings."""

    def test_join_and_kick(self):
        """Test addressed membership commands."""
        assert commands.join("10.0.0.5") == "multiroom/join?master=10.0.0.5"
        assert commands.kick(" 10.0.0.6 ") == "multiroom/kickout?slave=10.0.0.6"

    @pytest.mark.parametrize("address", ["kitchen.local", "10.0.0", ""])
    def test_join_requires_ipv4(self, address):
        """Test address validation."""
        with pytest.raises(ValueError, match="IPv4"):
            _ = commands.join(address)
