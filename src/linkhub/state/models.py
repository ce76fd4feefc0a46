"""Canonical device state and the typed payloads parsed from LinkPlay responses.

Parsing is explicit: ``parse_player_status`` / ``parse_extended_status`` either
return a fully typed model or raise ``InvalidResponseError``. Field defaults
for optional keys live here, on the models.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from linkhub.state.codecs import ControlState
from linkhub.transport.exceptions import InvalidResponseError

__all__ = [
    "DeviceState",
    "ExtendedStatus",
    "GroupRole",
    "PlayerStatus",
    "parse_extended_status",
    "parse_player_status",
]


class GroupRole(Enum):
    STANDALONE = "standalone"
    MASTER = "master"
    SLAVE = "slave"


class DeviceState(BaseModel):
    """Canonical snapshot of one device. Written only by StateReconciler."""

    model_config = ConfigDict(validate_assignment=False)

    # identity
    name: str = ""
    mac: str = ""
    firmware: str = ""
    udn: str = ""
    uuid: str = ""

    # network
    ip: str = ""
    rssi: int = -100
    signal_strength: int = 0

    # playback / control
    volume: int = 0
    mute: bool = False
    control: ControlState = ControlState.PAUSE
    transport_state: str = ""
    title: str = ""
    artist: str = ""
    album: str = ""
    album_art_uri: str = ""
    position: int = 0
    duration: int = 0
    repeat: bool = False
    shuffle: bool = False
    loop_once: bool = False
    source: str = "UNKNOWN"

    # multiroom
    role: GroupRole = GroupRole.STANDALONE
    master_address: str = ""
    slave_addresses: tuple[str, ...] = ()
    group_name: str = ""
    group_volume: int = 0
    group_mute: bool = False

    def check_group_invariants(self) -> bool:
        """True when role, master address and slave list agree with each other."""
        match self.role:
            case GroupRole.SLAVE:
                return self.master_address != ""
            case GroupRole.MASTER:
                return self.master_address == ""
            case GroupRole.STANDALONE:
                return not self.slave_addresses


class _LinkPlayPayload(BaseModel):
    """LinkPlay firmware sends every value as a string; lax coercion handles that."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PlayerStatus(_LinkPlayPayload):
    """Parsed ``getPlayerStatus`` response (fast cadence)."""

    status: str
    volume: int | None = Field(default=None, alias="vol")
    mute: bool | None = None
    title: str = Field(default="", alias="Title")
    artist: str = Field(default="", alias="Artist")
    album: str = Field(default="", alias="Album")
    position_ms: int | None = Field(default=None, alias="curpos")
    duration_ms: int | None = Field(default=None, alias="totlen")
    loop: int | None = None
    mode: int | None = None

    @field_validator("volume", "mute", "position_ms", "duration_ms", "loop", "mode", mode="before")
    @classmethod
    def _blank_is_none(cls, v: object) -> object:
        return None if v == "" else v


class ExtendedStatus(_LinkPlayPayload):
    """Parsed ``getStatusEx`` response (slow cadence).

    ``group`` and ``DeviceName`` are required; their absence means the device
    answered with something other than a status document.
    """

    device_name: str = Field(alias="DeviceName")
    group: str
    uuid: str = ""
    upnp_uuid: str = ""
    mac: str = Field(default="", alias="MAC")
    firmware: str = ""
    rssi: int | None = Field(default=None, alias="RSSI")
    wifi_ip: str = Field(default="", alias="apcli0")
    eth_ip: str = Field(default="", alias="eth2")
    host_uuid: str = ""
    master_uuid: str = ""
    host_ip: str = ""
    master_ip: str = ""
    group_name: str = Field(default="", alias="GroupName")
    slave_list: list[object] = Field(default_factory=list)

    @field_validator("group", mode="before")
    @classmethod
    def _group_as_text(cls, v: object) -> object:
        return str(v) if isinstance(v, int) else v

    @field_validator("rssi", mode="before")
    @classmethod
    def _blank_rssi(cls, v: object) -> object:
        return None if v == "" else v

    @field_validator("slave_list", mode="before")
    @classmethod
    def _slave_list_must_be_list(cls, v: object) -> object:
        return v if isinstance(v, list) else []

    @property
    def ip(self) -> str:
        return self.wifi_ip if self.wifi_ip and self.wifi_ip != "0.0.0.0" else self.eth_ip  # noqa: S104


def _validation_reason(e: ValidationError) -> str:
    first = e.errors()[0]
    loc = ".".join(str(p) for p in first["loc"])
    return f"{loc}: {first['msg']}"


def parse_player_status(payload: object) -> PlayerStatus:
    if not isinstance(payload, dict):
        raise InvalidResponseError("getPlayerStatus did not return a JSON object", str(payload))
    try:
        return PlayerStatus.model_validate(payload)
    except ValidationError as e:
        raise InvalidResponseError(_validation_reason(e), str(payload)) from e


def parse_extended_status(payload: object) -> ExtendedStatus:
    if not isinstance(payload, dict):
        raise InvalidResponseError("getStatusEx did not return a JSON object", str(payload))
    try:
        return ExtendedStatus.model_validate(payload)
    except ValidationError as e:
        raise InvalidResponseError(_validation_reason(e), str(payload)) from e
