"""LinkPlay ``httpapi.asp`` command strings."""

from __future__ import annotations

from typing import Final

from linkhub.multiroom.topology import is_ipv4
from linkhub.state.codecs import SWITCHABLE_SOURCES, ControlState, encode_loop_mode

GET_PLAYER_STATUS: Final = "getPlayerStatus"
GET_STATUS_EX: Final = "getStatusEx"
GET_SLAVE_LIST: Final = "multiroom:getSlaveList"

PRESET_MIN: Final = 0
PRESET_MAX: Final = 10

# Remote-control style playback commands accepted on the control channel
PLAYER_ACTIONS: Final = {
    "PLAY": "resume",
    "PAUSE": "pause",
    "STOP": "stop",
    "NEXT": "next",
    "PREVIOUS": "prev",
    "TOGGLE": "onepause",
}


def _require_ipv4(value: str) -> str:
    value = value.strip()
    if not is_ipv4(value):
        msg = f"not an IPv4 address: {value!r}"
        raise ValueError(msg)
    return value


def _percent(value: int) -> int:
    return max(0, min(100, int(value)))


def volume(level: int) -> str:
    return f"setPlayerCmd:vol:{_percent(level)}"


def mute(muted: bool) -> str:
    return f"setPlayerCmd:mute:{int(muted)}"


def control(action: str | ControlState) -> str:
    key = action.value if isinstance(action, ControlState) else action.strip().upper()
    try:
        return f"setPlayerCmd:{PLAYER_ACTIONS[key]}"
    except KeyError as e:
        msg = f"unsupported control action {action!r}"
        raise ValueError(msg) from e


def seek(seconds: int) -> str:
    return f"setPlayerCmd:seek:{max(0, int(seconds))}"


def loop_mode(repeat: bool, shuffle: bool, loop_once: bool = False) -> str:
    return f"setPlayerCmd:loopmode:{encode_loop_mode(repeat, shuffle, loop_once)}"


def switch_source(source: str) -> str:
    try:
        return f"setPlayerCmd:switchmode:{SWITCHABLE_SOURCES[source.strip().upper()]}"
    except KeyError as e:
        msg = f"source {source!r} cannot be selected"
        raise ValueError(msg) from e


def preset(number: int) -> str:
    """Preset 0 is accepted and ignored by firmware; 1-10 select a stored preset."""
    if not PRESET_MIN <= number <= PRESET_MAX:
        msg = f"preset must be {PRESET_MIN}-{PRESET_MAX}, got {number}"
        raise ValueError(msg)
    return f"MCUKeyShortClick:{number}"


def join(master_ip: str) -> str:
    return f"multiroom/join?master={_require_ipv4(master_ip)}"


def leave() -> str:
    return "multiroom/leave"


def ungroup() -> str:
    return "multiroom/ungroup"


def kick(slave_ip: str) -> str:
    return f"multiroom/kickout?slave={_require_ipv4(slave_ip)}"
