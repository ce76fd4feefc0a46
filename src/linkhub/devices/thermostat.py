"""Device manager for one Honeywell Total Connect Comfort thermostat."""

from __future__ import annotations

import datetime
from collections.abc import Awaitable, Callable, Mapping

from linkhub.cloud.models import ThermostatSnapshot
from linkhub.cloud.tcc_client import TotalComfortClient
from linkhub.config import ThermostatConfig
from linkhub.const import LOCAL_TZ
from linkhub.correlation import correlation_context
from linkhub.health import CommunicationHealthTracker
from linkhub.logging_abstraction import get_logger
from linkhub.polling.poller import FAST, Poller
from linkhub.sink import Channel, StateSink
from linkhub.transport.exceptions import CommunicationFailure, LinkHubError

logger = get_logger(__name__)


def _snapshot_values(snapshot: ThermostatSnapshot) -> dict[str, object]:
    ui = snapshot.ui_data
    return {
        Channel.INDOOR_TEMPERATURE: ui.disp_temperature,
        Channel.INDOOR_HUMIDITY: ui.indoor_humidity,
        Channel.OUTDOOR_TEMPERATURE: snapshot.outdoor_temperature,
        Channel.OUTDOOR_HUMIDITY: snapshot.outdoor_humidity,
        Channel.HEAT_SETPOINT: ui.heat_setpoint,
        Channel.COOL_SETPOINT: ui.cool_setpoint,
        Channel.SYSTEM_MODE: snapshot.system_mode,
        Channel.FAN_MODE: snapshot.fan_mode,
        Channel.FAN_RUNNING: snapshot.fan_data.fan_is_running,
        Channel.EQUIPMENT_STATUS: snapshot.equipment_status,
        Channel.HOLD_STATUS: snapshot.hold_status,
        Channel.TEMPERATURE_UNIT: ui.display_units,
    }


class ThermostatDevice:
    """Polls one thermostat through a shared portal session and publishes its readings.

    The SessionManager behind ``client`` is shared between thermostats of the
    same account, so ``dispose()`` leaves it open.
    """

    lp: str = "ThermostatDevice"

    def __init__(self, config: ThermostatConfig, client: TotalComfortClient, sink: StateSink) -> None:
        self.config: ThermostatConfig = config
        self.client: TotalComfortClient = client
        self.sink: StateSink = sink
        self.device_id: str = str(config.device_id)
        self.lp = f"{self.lp}[{config.name or self.device_id}]"
        self.health: CommunicationHealthTracker = CommunicationHealthTracker(sink, self.device_id)
        self.poller: Poller = Poller(
            self.device_id,
            self.health,
            fast_fetch=self.fetch_snapshot,
            on_fast=self.publish,
        )
        self._published: dict[str, object] = {}
        self._disposed: bool = False
        self._command_handlers: Mapping[str, Callable[[object], Awaitable[None]]] = {
            Channel.HEAT_SETPOINT: lambda v: self.client.set_heat_setpoint(self.config.device_id, float(v)),  # type: ignore[arg-type]
            Channel.COOL_SETPOINT: lambda v: self.client.set_cool_setpoint(self.config.device_id, float(v)),  # type: ignore[arg-type]
            Channel.SYSTEM_MODE: lambda v: self.client.set_system_mode(self.config.device_id, str(v)),
            Channel.FAN_MODE: lambda v: self.client.set_fan_mode(self.config.device_id, str(v)),
            Channel.HOLD_STATUS: lambda v: self.client.set_hold(self.config.device_id, str(v)),
        }

    async def initialize(self) -> None:
        self._disposed = False
        await self.poller.start_polling(self.config.poll_interval, 0)
        logger.info("%s:initialize: thermostat polling started", self.lp)

    async def dispose(self) -> None:
        self._disposed = True
        await self.poller.stop_polling()
        logger.info("%s:dispose: thermostat polling stopped", self.lp)

    async def fetch_snapshot(self) -> ThermostatSnapshot:
        """Fetch current readings; a thermostat the portal cannot reach counts as a failure."""
        snapshot = await self.client.get_thermostat_data(self.config.device_id)
        if not snapshot.is_alive:
            msg = "thermostat is not communicating with the portal"
            raise CommunicationFailure(msg, self.health.consecutive_failures + 1)
        return snapshot

    async def publish(self, snapshot: ThermostatSnapshot) -> dict[str, object]:
        """Send changed readings to the sink and stamp the update time."""
        if self._disposed:
            return {}
        changes: dict[str, object] = {}
        for channel, value in _snapshot_values(snapshot).items():
            if value is None or self._published.get(channel) == value:
                continue
            self._published[channel] = value
            changes[channel] = value
        for channel, value in changes.items():
            self.sink.update_state(channel, value)
        self.sink.update_state(Channel.LAST_UPDATE, datetime.datetime.now(LOCAL_TZ).isoformat())
        if changes:
            logger.debug("%s:publish: %d channels changed", self.lp, len(changes))
        return changes

    async def handle_command(self, channel: str, value: object) -> bool:
        """Submit a setting change, then re-poll so the sink sees the result.

        Raises:
            ValueError: ``value`` is out of range or unknown for ``channel``

        """
        lp = f"{self.lp}:handle_command:"
        handler = self._command_handlers.get(channel)
        if handler is None:
            logger.warning("%s channel %s does not accept commands", lp, channel)
            return False
        with correlation_context(prefix="cmd"):
            try:
                await handler(value)
            except LinkHubError as e:
                logger.warning("%s %s <- %r failed: %s", lp, channel, value, e, extra={"error_type": type(e).__name__})
                return False
            _ = await self.poller.poll_now(FAST)
            return True
