"""Single writer of DeviceState, merging polled snapshots with pushed events.

**Precedence**: while the push channel is active, polled values for fields the
push channel also reports are dropped, so the two sources cannot flip a field
between two representations of the same physical value. Identity, network and
group fields are never pushed and always follow the poll.

**Change detection**: every write is compared against the current value and
only real changes reach the sink. Sink calls are made after the lock is
released, in the order the fields were applied.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from enum import Enum
from typing import Final

from linkhub.logging_abstraction import get_logger
from linkhub.metrics import registry
from linkhub.multiroom.topology import GroupTopology
from linkhub.sink import Channel, StateSink
from linkhub.state.codecs import (
    control_for_status,
    decode_hex_text,
    decode_loop_mode,
    ms_to_seconds,
    rssi_to_percent,
    source_for_mode,
)
from linkhub.state.models import DeviceState, ExtendedStatus, PlayerStatus

logger = get_logger(__name__)

PUSH_COVERED_FIELDS: Final = frozenset(
    {
        "volume",
        "mute",
        "control",
        "transport_state",
        "title",
        "artist",
        "album",
        "album_art_uri",
    },
)

FIELD_CHANNELS: Final[Mapping[str, str]] = {
    "name": Channel.NAME,
    "mac": Channel.MAC,
    "firmware": Channel.FIRMWARE,
    "udn": Channel.UDN,
    "ip": Channel.IP,
    "rssi": Channel.RSSI,
    "signal_strength": Channel.SIGNAL_STRENGTH,
    "volume": Channel.VOLUME,
    "mute": Channel.MUTE,
    "control": Channel.CONTROL,
    "transport_state": Channel.TRANSPORT_STATE,
    "title": Channel.TITLE,
    "artist": Channel.ARTIST,
    "album": Channel.ALBUM,
    "album_art_uri": Channel.ALBUM_ART,
    "position": Channel.POSITION,
    "duration": Channel.DURATION,
    "repeat": Channel.REPEAT,
    "shuffle": Channel.SHUFFLE,
    "loop_once": Channel.LOOP_ONCE,
    "source": Channel.SOURCE,
    "role": Channel.ROLE,
    "master_address": Channel.MASTER_IP,
    "slave_addresses": Channel.SLAVE_IPS,
    "group_name": Channel.GROUP_NAME,
    "group_volume": Channel.GROUP_VOLUME,
    "group_mute": Channel.GROUP_MUTE,
}

_TOPOLOGY_FIELDS: Final = ("role", "master_address", "slave_addresses")


def _sink_value(value: object) -> object:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, tuple):
        return ",".join(str(v) for v in value)
    return value


def _clamp_percent(value: int) -> int:
    return max(0, min(100, value))


class StateReconciler:
    """Owns one DeviceState and the lock that guards it."""

    lp: str = "StateReconciler"

    def __init__(self, sink: StateSink, device_id: str, *, udn: str = "", ip: str = "") -> None:
        self.sink: StateSink = sink
        self.device_id: str = device_id
        self.lp = f"{self.lp}[{device_id}]"
        self._state: DeviceState = DeviceState(udn=udn, ip=ip)
        self._lock: asyncio.Lock = asyncio.Lock()
        self._push_active: bool = False
        self._disposed: bool = False

    @property
    def push_active(self) -> bool:
        return self._push_active

    def set_push_active(self, active: bool) -> None:
        if active != self._push_active:
            logger.debug("%s:set_push_active: push channel %s", self.lp, "active" if active else "inactive")
        self._push_active = active

    def snapshot(self) -> DeviceState:
        """Deep copy of the current state; safe to hold across awaits."""
        return self._state.model_copy(deep=True)

    def dispose(self) -> None:
        """Stop accepting updates; results of in-flight calls are discarded from here on."""
        self._disposed = True

    async def apply_polled(
        self,
        payload: PlayerStatus | ExtendedStatus,
        topology: GroupTopology | None = None,
    ) -> dict[str, object]:
        """Apply a polled payload, honouring push precedence.

        Returns:
            The fields that changed, with their new values

        """
        if isinstance(payload, PlayerStatus):
            fields = self._fields_from_player_status(payload)
        else:
            fields = self._fields_from_extended_status(payload, topology)

        if self._push_active:
            skipped = [k for k in fields if k in PUSH_COVERED_FIELDS]
            if skipped:
                logger.debug("%s:apply_polled: push active, skipping %s", self.lp, ", ".join(skipped))
            fields = {k: v for k, v in fields.items() if k not in PUSH_COVERED_FIELDS}
        return await self._apply(fields, "poll")

    async def apply_pushed(self, fields: Mapping[str, object]) -> dict[str, object]:
        """Apply a partial update from the push channel. Always wins."""
        known = {k: v for k, v in fields.items() if k in DeviceState.model_fields and k not in _TOPOLOGY_FIELDS}
        unknown = set(fields) - set(known)
        if unknown:
            logger.warning("%s:apply_pushed: ignoring unknown fields %s", self.lp, sorted(unknown))
        if "volume" in known and isinstance(known["volume"], int):
            known["volume"] = _clamp_percent(known["volume"])
        return await self._apply(known, "push")

    async def apply_group_aggregate(self, volume: int, mute: bool) -> dict[str, object]:
        return await self._apply({"group_volume": _clamp_percent(volume), "group_mute": mute}, "group")

    async def apply_metadata(self, album_art_uri: str) -> dict[str, object]:
        """Apply artwork found by a metadata lookup."""
        return await self._apply({"album_art_uri": album_art_uri}, "metadata")

    async def apply_topology(self, topology: GroupTopology) -> dict[str, object]:
        """Apply a topology derived outside a status poll (e.g. after leaving a group)."""
        return await self._apply(self._topology_fields(topology), "group")

    @staticmethod
    def _topology_fields(topology: GroupTopology) -> dict[str, object]:
        return {
            "role": topology.role,
            "master_address": topology.master_address,
            "slave_addresses": topology.slave_addresses,
        }

    @staticmethod
    def _fields_from_player_status(status: PlayerStatus) -> dict[str, object]:
        repeat, shuffle, loop_once = decode_loop_mode(status.loop)
        fields: dict[str, object] = {
            "control": control_for_status(status.status),
            "title": decode_hex_text(status.title),
            "artist": decode_hex_text(status.artist),
            "album": decode_hex_text(status.album),
            "repeat": repeat,
            "shuffle": shuffle,
            "loop_once": loop_once,
            "source": source_for_mode(status.mode),
        }
        if status.volume is not None:
            fields["volume"] = _clamp_percent(status.volume)
        if status.mute is not None:
            fields["mute"] = status.mute
        if status.position_ms is not None:
            fields["position"] = ms_to_seconds(status.position_ms)
        if status.duration_ms is not None:
            fields["duration"] = ms_to_seconds(status.duration_ms)
        return fields

    def _fields_from_extended_status(
        self,
        status: ExtendedStatus,
        topology: GroupTopology | None,
    ) -> dict[str, object]:
        fields: dict[str, object] = {
            "name": status.device_name,
            "group_name": status.group_name,
            "signal_strength": rssi_to_percent(status.rssi),
        }
        if status.rssi is not None:
            fields["rssi"] = status.rssi
        if status.mac:
            fields["mac"] = status.mac
        if status.firmware:
            fields["firmware"] = status.firmware
        if status.uuid:
            fields["uuid"] = status.uuid
        if status.upnp_uuid and not self._state.udn:
            fields["udn"] = status.upnp_uuid
        if status.ip:
            fields["ip"] = status.ip
        if topology is not None:
            fields.update(self._topology_fields(topology))
        return fields

    async def _apply(self, fields: Mapping[str, object], source: str) -> dict[str, object]:
        lp = f"{self.lp}:_apply:"
        if self._disposed:
            logger.debug("%s disposed, discarding %d %s fields", lp, len(fields), source)
            return {}

        changes: dict[str, object] = {}
        async with self._lock:
            for name, value in fields.items():
                if getattr(self._state, name) != value:
                    setattr(self._state, name, value)
                    changes[name] = value
            if not self._state.check_group_invariants():
                logger.error(
                    "%s group fields inconsistent after %s update",
                    lp,
                    source,
                    extra={
                        "role": self._state.role.value,
                        "master_address": self._state.master_address,
                        "slaves": list(self._state.slave_addresses),
                    },
                )

        if changes:
            logger.debug("%s %s changed %s", lp, source, ", ".join(changes))
            registry.record_state_changes(self.device_id, source, len(changes))
        for name, value in changes.items():
            channel = FIELD_CHANNELS.get(name)
            if channel is not None:
                self.sink.update_state(channel, _sink_value(value))
        return changes
