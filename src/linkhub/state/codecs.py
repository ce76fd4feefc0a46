"""Conversions from device-native encodings to canonical DeviceState values.

Covers the LinkPlay loop-mode table, play-mode source codes, status strings,
RSSI, hex-encoded metadata and the UPnP XML bodies (DIDL-Lite track metadata
and ``LastChange`` event documents).
"""

from __future__ import annotations

import binascii
import re
from collections.abc import Mapping
from enum import Enum
from typing import cast
from xml.parsers.expat import ExpatError

import xmltodict

from linkhub.transport.exceptions import InvalidResponseError

__all__ = [
    "ControlState",
    "LOOP_MODE_TABLE",
    "decode_hex_text",
    "decode_loop_mode",
    "encode_loop_mode",
    "ms_to_seconds",
    "parse_bool",
    "parse_didl_metadata",
    "parse_last_change",
    "parse_upnp_duration",
    "rssi_to_percent",
    "source_for_mode",
    "control_for_status",
    "control_for_transport_state",
]


class ControlState(Enum):
    PLAY = "PLAY"
    PAUSE = "PAUSE"
    STOP = "STOP"
    LOAD = "LOAD"


# code -> (repeat, shuffle, loop_once)
LOOP_MODE_TABLE: Mapping[int, tuple[bool, bool, bool]] = {
    0: (True, False, False),
    1: (True, False, True),
    2: (True, True, False),
    3: (False, True, False),
    4: (False, False, False),
    5: (True, True, True),
}
_LOOP_DISABLED = (False, False, False)
_LOOP_DISABLED_CODE = 4

_SOURCES: Mapping[int, str] = {
    -1: "IDLE",
    0: "IDLE",
    1: "BLUETOOTH",
    2: "LINE-IN",
    3: "OPTICAL",
    4: "COAXIAL",
    10: "WIFI",
    11: "SPOTIFY",
    12: "AIRPLAY",
    13: "DLNA",
    14: "MULTIROOM",
    15: "USB",
    16: "TF_CARD",
    17: "TIDAL",
    18: "AMAZON",
    19: "QPLAY",
    20: "QOBUZ",
    21: "DEEZER",
    22: "NAPSTER",
    23: "TUNEIN",
    24: "IHEARTRADIO",
    25: "CUSTOM",
}
UNKNOWN_SOURCE = "UNKNOWN"

# names accepted by setPlayerCmd:switchmode
SWITCHABLE_SOURCES: Mapping[str, str] = {
    "WIFI": "wifi",
    "LINE-IN": "line-in",
    "BLUETOOTH": "bluetooth",
    "OPTICAL": "optical",
    "COAXIAL": "co-axial",
    "USB": "udisk",
}

RSSI_FLOOR = -100
RSSI_CEILING = -50

_HEX_RE = re.compile(r"^(?:[0-9A-Fa-f]{2})+$")


def decode_loop_mode(code: int | None) -> tuple[bool, bool, bool]:
    """Return (repeat, shuffle, loop_once); unknown codes mean everything off."""
    if code is None:
        return _LOOP_DISABLED
    return LOOP_MODE_TABLE.get(code, _LOOP_DISABLED)


def encode_loop_mode(repeat: bool, shuffle: bool, loop_once: bool = False) -> int:
    """Inverse of :func:`decode_loop_mode`; combinations not in the table fall back to 4."""
    wanted = (repeat, shuffle, loop_once)
    for code, triple in LOOP_MODE_TABLE.items():
        if triple == wanted:
            return code
    return _LOOP_DISABLED_CODE


def source_for_mode(mode: int | None) -> str:
    if mode is None:
        return UNKNOWN_SOURCE
    return _SOURCES.get(mode, UNKNOWN_SOURCE)


def control_for_status(status: str | None) -> ControlState:
    """Map getPlayerStatus ``status`` (play/pause/stop/load/none) to a control state."""
    match (status or "").strip().casefold():
        case "play":
            return ControlState.PLAY
        case "stop":
            return ControlState.STOP
        case "load":
            return ControlState.LOAD
        case _:
            return ControlState.PAUSE


def control_for_transport_state(state: str | None) -> ControlState:
    """Map a UPnP AVTransport TransportState value to a control state."""
    match (state or "").strip().upper():
        case "PLAYING":
            return ControlState.PLAY
        case "STOPPED" | "NO_MEDIA_PRESENT":
            return ControlState.STOP
        case "TRANSITIONING":
            return ControlState.LOAD
        case _:
            return ControlState.PAUSE


def rssi_to_percent(rssi: int | None) -> int:
    """Linear map of -100..-50 dBm to 0..100 %."""
    value = RSSI_FLOOR if rssi is None else rssi
    if value <= RSSI_FLOOR:
        return 0
    if value >= RSSI_CEILING:
        return 100
    return 2 * (value + 100)


def parse_bool(value: object) -> bool:
    """Boolean from the "1"/"true"/"on" strings devices and hosts send."""
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "on", "yes")
    return bool(value)


def ms_to_seconds(value: int | None) -> int:
    return 0 if value is None or value < 0 else value // 1000


def decode_hex_text(value: str | None) -> str:
    """Decode LinkPlay hex-encoded UTF-8 metadata; plain text is returned as is."""
    if not value:
        return ""
    compact = "".join(value.split())
    if not _HEX_RE.match(compact):
        return value
    try:
        decoded = binascii.unhexlify(compact).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return value
    if not decoded.isprintable():
        return value
    return decoded


def parse_upnp_duration(value: str) -> int:
    """Parse an ``H+:MM:SS[.F]`` duration into whole seconds."""
    parts = value.strip().split(":")
    if len(parts) != 3:
        raise InvalidResponseError("duration is not H:MM:SS", value)
    try:
        hours, minutes = int(parts[0]), int(parts[1])
        seconds = float(parts[2])
    except ValueError as e:
        raise InvalidResponseError("duration is not numeric", value) from e
    return hours * 3600 + minutes * 60 + int(seconds)


def _parse_xml(xml: str, what: str) -> dict[str, object]:
    try:
        doc = xmltodict.parse(xml, disable_entities=True)
    except ExpatError as e:
        raise InvalidResponseError(f"malformed {what} XML: {e}", xml) from e
    if not isinstance(doc, dict):
        raise InvalidResponseError(f"empty {what} document", xml)
    return cast("dict[str, object]", doc)


def _text(node: object) -> str:
    """Element text whether xmltodict returned a string or a dict with ``#text``."""
    if isinstance(node, list):
        node = node[0] if node else ""
    if isinstance(node, dict):
        node = cast("dict[str, object]", node).get("#text", "")
    return str(node).strip() if node is not None else ""


def parse_didl_metadata(xml: str) -> dict[str, str]:
    """Extract title/artist/album/album_art_uri from a DIDL-Lite document.

    Empty values are left out so a partial document never blanks a field.
    """
    if not xml.strip():
        return {}
    doc = _parse_xml(xml, "DIDL-Lite")
    root = doc.get("DIDL-Lite")
    if not isinstance(root, dict):
        raise InvalidResponseError("missing DIDL-Lite root", xml)
    item = cast("dict[str, object]", root).get("item")
    if isinstance(item, list):
        item = item[0] if item else None
    if not isinstance(item, dict):
        return {}
    item_map = cast("dict[str, object]", item)

    fields = {
        "title": _text(item_map.get("dc:title")),
        "artist": _text(item_map.get("upnp:artist")) or _text(item_map.get("dc:creator")),
        "album": _text(item_map.get("upnp:album")),
        "album_art_uri": _text(item_map.get("upnp:albumArtURI")),
    }
    return {k: v for k, v in fields.items() if v}


def parse_last_change(xml: str) -> dict[str, str]:
    """Flatten a UPnP ``LastChange`` event into ``{variable: value}``.

    For variables reported per channel (Volume, Mute) the Master channel wins.
    """
    doc = _parse_xml(xml, "LastChange")
    event = doc.get("Event")
    if not isinstance(event, dict):
        raise InvalidResponseError("missing Event root", xml)
    instance = cast("dict[str, object]", event).get("InstanceID")
    if isinstance(instance, list):
        instance = instance[0] if instance else None
    if not isinstance(instance, dict):
        return {}

    values: dict[str, str] = {}
    for name, node in cast("dict[str, object]", instance).items():
        if name.startswith("@"):
            continue
        entries = node if isinstance(node, list) else [node]
        chosen: str | None = None
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            attrs = cast("dict[str, object]", entry)
            val = attrs.get("@val")
            if val is None:
                continue
            channel = attrs.get("@channel")
            if chosen is None or channel == "Master":
                chosen = str(val)
        if chosen is not None:
            values[name] = chosen
    return values
