"""Models for Total Connect Comfort portal payloads."""

from __future__ import annotations

from enum import Enum
from typing import Final

from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field

from linkhub.transport.exceptions import InvalidResponseError

FAN_MODES: Final = ("auto", "on", "circulate", "follow schedule")
SYSTEM_MODES: Final = ("emheat", "heat", "off", "cool", "auto")
EQUIPMENT_STATUS: Final = ("off/fan", "heat", "cool")

SETPOINT_MIN_F: Final = 40.0
SETPOINT_MAX_F: Final = 90.0


class HoldStatus(Enum):
    NONE = 0
    TEMPORARY = 1
    PERMANENT = 2


class _PortalModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ThermostatInfo(_PortalModel):
    device_id: int = Field(alias="DeviceID")
    name: str = Field(alias="Name")
    mac_id: str | None = Field(default=None, alias="MacID")


class Location(_PortalModel):
    location_id: int = Field(alias="LocationID")
    name: str = Field(default="", alias="Name")
    devices: list[ThermostatInfo] = Field(default_factory=list, alias="Devices")


class UiData(_PortalModel):
    disp_temperature: float | None = Field(default=None, alias="DispTemperature")
    heat_setpoint: float | None = Field(default=None, alias="HeatSetpoint")
    cool_setpoint: float | None = Field(default=None, alias="CoolSetpoint")
    indoor_humidity: float | None = Field(default=None, alias="IndoorHumidity")
    outdoor_temperature: float | None = Field(default=None, alias="OutdoorTemperature")
    outdoor_temperature_available: bool = Field(default=False, alias="OutdoorTemperatureAvailable")
    outdoor_humidity: float | None = Field(default=None, alias="OutdoorHumidity")
    outdoor_humidity_available: bool = Field(default=False, alias="OutdoorHumidityAvailable")
    system_switch_position: int | None = Field(default=None, alias="SystemSwitchPosition")
    equipment_output_status: int | None = Field(default=None, alias="EquipmentOutputStatus")
    display_units: str | None = Field(default=None, alias="DisplayUnits")
    status_heat: int | None = Field(default=None, alias="StatusHeat")
    status_cool: int | None = Field(default=None, alias="StatusCool")


class FanData(_PortalModel):
    fan_mode: int | None = Field(default=None, alias="fanMode")
    fan_is_running: bool = Field(default=False, alias="fanIsRunning")


class ThermostatSnapshot(_PortalModel):
    """Parsed ``/Device/CheckDataSession/{id}`` response.

    Derived, human-readable values are exposed as computed fields so
    ``model_dump()`` gives the full set the device manager publishes.
    """

    device_live: bool = Field(default=True, alias="deviceLive")
    communication_lost: bool = Field(default=False, alias="communicationLost")
    ui_data: UiData = Field(alias="uiData")
    fan_data: FanData = Field(default_factory=FanData, alias="fanData")

    @computed_field
    @property
    def is_alive(self) -> bool:
        return self.device_live and not self.communication_lost

    @computed_field
    @property
    def system_mode(self) -> str | None:
        pos = self.ui_data.system_switch_position
        return SYSTEM_MODES[pos] if pos is not None and 0 <= pos < len(SYSTEM_MODES) else None

    @computed_field
    @property
    def fan_mode(self) -> str | None:
        mode = self.fan_data.fan_mode
        return FAN_MODES[mode] if mode is not None and 0 <= mode < len(FAN_MODES) else None

    @computed_field
    @property
    def equipment_status(self) -> str | None:
        status = self.ui_data.equipment_output_status
        if status is None:
            return None
        if status == 0:
            return "fan" if self.fan_data.fan_is_running else "off"
        return EQUIPMENT_STATUS[status] if 0 <= status < len(EQUIPMENT_STATUS) else None

    @computed_field
    @property
    def hold_status(self) -> str | None:
        raw = self.ui_data.status_heat if self.ui_data.status_heat is not None else self.ui_data.status_cool
        if raw is None:
            return None
        try:
            return HoldStatus(raw).name.lower()
        except ValueError:
            return None

    @property
    def outdoor_temperature(self) -> float | None:
        ui = self.ui_data
        return ui.outdoor_temperature if ui.outdoor_temperature_available else None

    @property
    def outdoor_humidity(self) -> float | None:
        ui = self.ui_data
        return ui.outdoor_humidity if ui.outdoor_humidity_available else None


def parse_thermostat_snapshot(payload: dict[str, object]) -> ThermostatSnapshot:
    """Flatten ``latestData`` next to the liveness flags and validate."""
    if not payload.get("success"):
        raise InvalidResponseError("CheckDataSession reported success=false", str(payload))
    latest = payload.get("latestData")
    if not isinstance(latest, dict):
        raise InvalidResponseError("CheckDataSession response has no latestData", str(payload))
    merged: dict[str, object] = {**latest}
    for key in ("deviceLive", "communicationLost"):
        if key in payload:
            merged[key] = payload[key]
    try:
        return ThermostatSnapshot.model_validate(merged)
    except ValidationError as e:
        raise InvalidResponseError(str(e.errors()[0]["msg"]), str(payload)) from e


def parse_locations(payload: object) -> list[Location]:
    if not isinstance(payload, list):
        raise InvalidResponseError("GetLocationListData did not return a list", str(payload))
    try:
        return [Location.model_validate(entry) for entry in payload]
    except ValidationError as e:
        raise InvalidResponseError(str(e.errors()[0]["msg"]), str(payload)) from e
