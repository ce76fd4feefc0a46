"""Honeywell Total Connect Comfort portal client.

Every call goes through :meth:`SessionManager.execute_with_retry`, so a stale
session is refreshed before the request and an expired one costs exactly one
re-login.
"""

from __future__ import annotations

from collections.abc import Mapping

from linkhub.cloud.models import (
    FAN_MODES,
    SETPOINT_MAX_F,
    SETPOINT_MIN_F,
    SYSTEM_MODES,
    HoldStatus,
    Location,
    ThermostatSnapshot,
    parse_locations,
    parse_thermostat_snapshot,
)
from linkhub.logging_abstraction import get_logger
from linkhub.session.manager import SessionManager
from linkhub.transport.exceptions import InvalidResponseError

logger = get_logger(__name__)

# Keys the portal expects in every SubmitControlScreenChanges body
_CHANGE_TEMPLATE: Mapping[str, object] = {
    "SystemSwitch": None,
    "HeatSetpoint": None,
    "CoolSetpoint": None,
    "HeatNextPeriod": None,
    "CoolNextPeriod": None,
    "StatusHeat": None,
    "StatusCool": None,
    "FanMode": None,
}


class TotalComfortClient:
    """Thermostat operations on top of a shared SessionManager."""

    lp: str = "TotalComfortClient"

    def __init__(self, session: SessionManager) -> None:
        self.session: SessionManager = session

    async def get_locations(self) -> list[Location]:
        async def _op() -> list[Location]:
            result = await self.session.request(
                "POST",
                "/Location/GetLocationListData",
                params={"page": "1", "filter": ""},
            )
            return parse_locations(result.unwrap())

        locations = await self.session.execute_with_retry(_op, "get_locations")
        logger.debug(
            "%s:get_locations: %d locations, %d thermostats",
            self.lp,
            len(locations),
            sum(len(loc.devices) for loc in locations),
        )
        return locations

    async def get_thermostat_data(self, device_id: int | str) -> ThermostatSnapshot:
        async def _op() -> ThermostatSnapshot:
            result = await self.session.request("GET", f"/Device/CheckDataSession/{device_id}")
            return parse_thermostat_snapshot(result.json_object())

        return await self.session.execute_with_retry(_op, f"get_thermostat_data({device_id})")

    async def submit_control_changes(self, device_id: int | str, changes: Mapping[str, object]) -> None:
        """POST a change set; unspecified settings are sent as null so the portal keeps them."""
        lp = f"{self.lp}:submit_control_changes:"
        body: dict[str, object] = {**_CHANGE_TEMPLATE, **changes, "DeviceID": int(device_id)}

        async def _op() -> None:
            result = await self.session.request("POST", "/Device/SubmitControlScreenChanges", json_body=body)
            response = result.json_object()
            if response.get("success") != 1:
                msg = "portal rejected thermostat settings"
                raise InvalidResponseError(msg, str(response))

        logger.info("%s device %s <- %s", lp, device_id, dict(changes))
        await self.session.execute_with_retry(_op, f"submit_control_changes({device_id})")

    @staticmethod
    def _check_setpoint(value: float) -> float:
        if not SETPOINT_MIN_F <= value <= SETPOINT_MAX_F:
            msg = f"setpoint {value} outside {SETPOINT_MIN_F:.0f}-{SETPOINT_MAX_F:.0f}"
            raise ValueError(msg)
        return value

    async def set_heat_setpoint(self, device_id: int | str, value: float) -> None:
        """Set the heat setpoint as a temporary hold."""
        await self.submit_control_changes(
            device_id,
            {
                "HeatSetpoint": self._check_setpoint(value),
                "StatusHeat": HoldStatus.TEMPORARY.value,
                "StatusCool": HoldStatus.TEMPORARY.value,
            },
        )

    async def set_cool_setpoint(self, device_id: int | str, value: float) -> None:
        """Set the cool setpoint as a temporary hold."""
        await self.submit_control_changes(
            device_id,
            {
                "CoolSetpoint": self._check_setpoint(value),
                "StatusHeat": HoldStatus.TEMPORARY.value,
                "StatusCool": HoldStatus.TEMPORARY.value,
            },
        )

    async def set_system_mode(self, device_id: int | str, mode: str) -> None:
        mode = mode.strip().lower()
        if mode not in SYSTEM_MODES:
            msg = f"unknown system mode {mode!r}, expected one of {', '.join(SYSTEM_MODES)}"
            raise ValueError(msg)
        await self.submit_control_changes(device_id, {"SystemSwitch": SYSTEM_MODES.index(mode)})

    async def set_fan_mode(self, device_id: int | str, mode: str) -> None:
        mode = mode.strip().lower()
        if mode not in FAN_MODES:
            msg = f"unknown fan mode {mode!r}, expected one of {', '.join(FAN_MODES)}"
            raise ValueError(msg)
        await self.submit_control_changes(device_id, {"FanMode": FAN_MODES.index(mode)})

    async def set_hold(self, device_id: int | str, hold: str) -> None:
        try:
            status = HoldStatus[hold.strip().upper()]
        except KeyError as e:
            msg = f"unknown hold {hold!r}"
            raise ValueError(msg) from e
        await self.submit_control_changes(device_id, {"StatusHeat": status.value, "StatusCool": status.value})
