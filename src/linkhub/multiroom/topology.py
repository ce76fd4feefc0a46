"""Multiroom topology derived from a device's own ``getStatusEx`` payload."""

from __future__ import annotations

import ipaddress
from collections.abc import Iterable
from dataclasses import dataclass

from linkhub.logging_abstraction import get_logger
from linkhub.state.models import ExtendedStatus, GroupRole

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class GroupTopology:
    """Role, master address and slave addresses; recomputed on every status fetch."""

    role: GroupRole = GroupRole.STANDALONE
    master_address: str = ""
    slave_addresses: tuple[str, ...] = ()

    @property
    def is_master(self) -> bool:
        return self.role == GroupRole.MASTER


STANDALONE = GroupTopology()


def normalize_uuid(value: str) -> str:
    """Compare UUIDs without the ``uuid:`` prefix UPnP UDNs carry, and without case."""
    value = value.strip()
    if value.lower().startswith("uuid:"):
        value = value[5:]
    return value.lower()


def is_ipv4(value: str) -> bool:
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        return False
    return True


def parse_slave_list(entries: Iterable[object]) -> tuple[str, ...]:
    """IPs from ``slave_list`` entries shaped ``{"ip": "..."}``; anything else is skipped."""
    lp = "topology:parse_slave_list:"
    slaves: list[str] = []
    for entry in entries:
        ip = entry.get("ip") if isinstance(entry, dict) else None
        if not isinstance(ip, str) or not is_ipv4(ip.strip()):
            logger.debug("%s skipping malformed slave entry: %r", lp, entry)
            continue
        ip = ip.strip()
        if ip not in slaves:
            slaves.append(ip)
    return tuple(slaves)


def derive_topology(status: ExtendedStatus, own_uuid: str = "") -> GroupTopology:
    """Derive the device's role from its self-reported identifiers.

    * host UUID empty: standalone
    * host UUID equals own UUID: master, slaves from ``slave_list``
    * otherwise: slave of ``host_ip`` (or ``master_ip``)

    ``own_uuid`` (e.g. a configured UDN) is used when the payload has no ``uuid``.
    """
    lp = "topology:derive_topology:"
    host_uuid = normalize_uuid(status.host_uuid or status.master_uuid)
    if not host_uuid:
        return STANDALONE

    mine = normalize_uuid(status.uuid or own_uuid or status.upnp_uuid)
    if host_uuid == mine:
        return GroupTopology(GroupRole.MASTER, "", parse_slave_list(status.slave_list))

    master_ip = (status.host_ip or status.master_ip).strip()
    if not master_ip:
        logger.warning(
            "%s device reports host %s but no host address; treating as standalone",
            lp,
            host_uuid,
            extra={"device_name": status.device_name},
        )
        return STANDALONE
    return GroupTopology(GroupRole.SLAVE, master_ip, ())
