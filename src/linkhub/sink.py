"""Interface between the core and whatever host renders device state.

The core only calls the two methods on :class:`StateSink`; it never subclasses
host types. Channel identifiers are plain strings grouped as ``group#channel``.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol, runtime_checkable


class ConnectivityStatus(Enum):
    """Connectivity verdict reported to the sink."""

    ONLINE = "online"
    OFFLINE = "offline"
    UNKNOWN = "unknown"


class ConnectivityDetail(Enum):
    """Reason code accompanying a connectivity change."""

    NONE = "none"
    COMMUNICATION_ERROR = "communication_error"
    CONFIGURATION_ERROR = "configuration_error"
    AUTHENTICATION_ERROR = "authentication_error"


@runtime_checkable
class StateSink(Protocol):
    """Callback surface the core reports to. Both calls must tolerate repeats."""

    def update_state(self, channel: str, value: object) -> None: ...

    def update_connectivity(self, status: ConnectivityStatus, detail: ConnectivityDetail, message: str) -> None: ...


class Channel:
    """Channel identifiers published by the device managers."""

    # playback
    CONTROL = "playback#control"
    TRANSPORT_STATE = "playback#transport-state"
    TITLE = "playback#title"
    ARTIST = "playback#artist"
    ALBUM = "playback#album"
    ALBUM_ART = "playback#album-art"
    POSITION = "playback#position"
    DURATION = "playback#duration"
    VOLUME = "playback#volume"
    MUTE = "playback#mute"
    REPEAT = "playback#repeat"
    SHUFFLE = "playback#shuffle"
    LOOP_ONCE = "playback#loop-once"
    SOURCE = "playback#source"
    SEEK = "playback#seek"
    PRESET = "playback#preset"

    # device
    NAME = "device#name"
    MAC = "device#mac"
    FIRMWARE = "device#firmware"
    UDN = "device#udn"
    IP = "network#ip"
    RSSI = "network#rssi"
    SIGNAL_STRENGTH = "network#signal-strength"

    # multiroom
    ROLE = "multiroom#role"
    MASTER_IP = "multiroom#master-ip"
    SLAVE_IPS = "multiroom#slave-ips"
    GROUP_NAME = "multiroom#group-name"
    GROUP_VOLUME = "multiroom#group-volume"
    GROUP_MUTE = "multiroom#group-mute"
    JOIN = "multiroom#join"
    LEAVE = "multiroom#leave"
    UNGROUP = "multiroom#ungroup"
    KICK = "multiroom#kick"

    # thermostat
    INDOOR_TEMPERATURE = "thermostat#indoor-temperature"
    INDOOR_HUMIDITY = "thermostat#indoor-humidity"
    OUTDOOR_TEMPERATURE = "thermostat#outdoor-temperature"
    OUTDOOR_HUMIDITY = "thermostat#outdoor-humidity"
    HEAT_SETPOINT = "thermostat#heat-setpoint"
    COOL_SETPOINT = "thermostat#cool-setpoint"
    SYSTEM_MODE = "thermostat#system-mode"
    FAN_MODE = "thermostat#fan-mode"
    FAN_RUNNING = "thermostat#fan-running"
    EQUIPMENT_STATUS = "thermostat#equipment-status"
    HOLD_STATUS = "thermostat#hold-status"
    TEMPERATURE_UNIT = "thermostat#temperature-unit"
    LAST_UPDATE = "thermostat#last-update"
