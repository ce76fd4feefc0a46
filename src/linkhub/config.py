"""Per-device configuration models and YAML loading."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import cast

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from linkhub.const import (
    DEFAULT_FAST_POLL_INTERVAL,
    DEFAULT_SLOW_POLL_INTERVAL,
    LINKPLAY_REQUEST_TIMEOUT,
    PUSH_RETRY_DELAY,
)
from linkhub.logging_abstraction import get_logger
from linkhub.multiroom.topology import is_ipv4

logger = get_logger(__name__)


class DeviceConfig(BaseModel):
    """One LinkPlay speaker."""

    model_config = ConfigDict(extra="ignore")

    ip: str
    udn: str = ""
    name: str = ""
    fast_poll_interval: float = DEFAULT_FAST_POLL_INTERVAL
    slow_poll_interval: float = DEFAULT_SLOW_POLL_INTERVAL
    request_timeout: float = Field(default=LINKPLAY_REQUEST_TIMEOUT, gt=0)
    push_retry_delay: float = Field(default=PUSH_RETRY_DELAY, ge=0)
    scheme: str = "https"

    @field_validator("ip")
    @classmethod
    def _ip_must_be_ipv4(cls, v: str) -> str:
        v = v.strip()
        if not is_ipv4(v):
            msg = f"not an IPv4 address: {v!r}"
            raise ValueError(msg)
        return v

    @property
    def device_id(self) -> str:
        return self.name or self.ip


class ThermostatConfig(BaseModel):
    """One Total Connect Comfort thermostat."""

    model_config = ConfigDict(extra="ignore")

    device_id: int
    location_id: int | None = None
    name: str = ""
    poll_interval: float = DEFAULT_SLOW_POLL_INTERVAL


def _entries(raw: Mapping[str, object], key: str) -> list[object]:
    section = raw.get(key)
    if section is None:
        return []
    if not isinstance(section, list):
        logger.warning("config: '%s' must be a list, ignoring it", key)
        return []
    return cast("list[object]", section)


def load_device_configs(path: str | Path) -> tuple[list[DeviceConfig], list[ThermostatConfig]]:
    """Read the ``linkplay`` and ``thermostats`` lists from a YAML file.

    Invalid entries are logged and skipped; an unreadable or malformed file raises.

    Raises:
        OSError: The file cannot be read
        yaml.YAMLError: The file is not valid YAML

    """
    config_file = Path(path)
    logger.debug("Parsing config file: %s", config_file)
    try:
        with config_file.open() as f:
            raw_obj = cast("Mapping[str, object] | None", yaml.safe_load(f))
    except (OSError, yaml.YAMLError):
        logger.exception("Failed to parse config file: %s", config_file)
        raise

    if not isinstance(raw_obj, Mapping):
        logger.warning("Invalid config structure: expected mapping at root")
        return [], []

    devices: list[DeviceConfig] = []
    for entry in _entries(raw_obj, "linkplay"):
        try:
            devices.append(DeviceConfig.model_validate(entry))
        except ValidationError as e:
            logger.warning("Skipping invalid linkplay entry %r: %s", entry, e.errors()[0]["msg"])

    thermostats: list[ThermostatConfig] = []
    for entry in _entries(raw_obj, "thermostats"):
        try:
            thermostats.append(ThermostatConfig.model_validate(entry))
        except ValidationError as e:
            logger.warning("Skipping invalid thermostat entry %r: %s", entry, e.errors()[0]["msg"])

    logger.info("Parsed config: %d speakers, %d thermostats", len(devices), len(thermostats))
    return devices, thermostats
