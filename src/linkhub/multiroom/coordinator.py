"""Multiroom group commands and group-wide aggregates.

The coordinator reads topology from the reconciler's snapshot and issues
transport calls; it never writes DeviceState itself except through the
reconciler's group-aggregate entry point.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from linkhub.correlation import correlation_context
from linkhub.devices import commands
from linkhub.health import CommunicationHealthTracker
from linkhub.logging_abstraction import get_logger
from linkhub.metrics import registry
from linkhub.multiroom.topology import GroupTopology, derive_topology
from linkhub.state.codecs import parse_bool
from linkhub.state.models import ExtendedStatus, GroupRole
from linkhub.state.reconciler import StateReconciler
from linkhub.transport.http import LinkPlayTransport
from linkhub.transport.types import CommandResult

logger = get_logger(__name__)


class GroupCommand(Enum):
    JOIN = "join"
    LEAVE = "leave"
    UNGROUP = "ungroup"
    KICK = "kick"
    GROUP_VOLUME = "group_volume"
    GROUP_MUTE = "group_mute"


_MEMBERSHIP_COMMANDS = frozenset({GroupCommand.JOIN, GroupCommand.LEAVE, GroupCommand.UNGROUP, GroupCommand.KICK})


@dataclass
class FanOutResult:
    """Per-target outcome of one group command, keyed by target address."""

    command: GroupCommand
    results: dict[str, CommandResult] = field(default_factory=dict)

    @property
    def all_succeeded(self) -> bool:
        return all(r.success for r in self.results.values())

    @property
    def failed_targets(self) -> list[str]:
        return [target for target, r in self.results.items() if not r.success]


class GroupCoordinator:
    """Derives topology and fans group commands out to every member."""

    lp: str = "GroupCoordinator"

    def __init__(
        self,
        transport: LinkPlayTransport,
        reconciler: StateReconciler,
        refresh: Callable[[], Awaitable[object]],
        *,
        own_uuid: str = "",
        health: CommunicationHealthTracker | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            transport: Transport of the local device; peers are addressed through it
            reconciler: Source of the current topology and sink for group aggregates
            refresh: Re-fetches the status payload topology is derived from
            own_uuid: Configured UDN, used when the payload carries no ``uuid``
            health: Tracker told about commands sent to this device

        """
        self.transport: LinkPlayTransport = transport
        self.reconciler: StateReconciler = reconciler
        self.refresh: Callable[[], Awaitable[object]] = refresh
        self.own_uuid: str = own_uuid
        self.health: CommunicationHealthTracker | None = health
        self.lp = f"{self.lp}[{transport.host}]"

    def derive(self, status: ExtendedStatus) -> GroupTopology:
        return derive_topology(status, self.own_uuid)

    async def handle_group_command(self, kind: GroupCommand, value: object = None) -> FanOutResult:
        """Run one group command.

        Membership commands go to this device and are always followed by a
        topology refresh. Volume and mute reach every member when this device
        is master, and only this device otherwise.

        Raises:
            ValueError: ``value`` is not valid for ``kind``

        """
        with correlation_context(prefix="group"):
            if kind in _MEMBERSHIP_COMMANDS:
                return await self._membership(kind, value)
            if kind == GroupCommand.GROUP_VOLUME:
                level = int(value)  # type: ignore[arg-type]
                return await self._fan_out(kind, commands.volume(level))
            return await self._fan_out(kind, commands.mute(parse_bool(value)))

    async def _membership(self, kind: GroupCommand, value: object) -> FanOutResult:
        lp = f"{self.lp}:{kind.value}:"
        match kind:
            case GroupCommand.JOIN:
                command = commands.join(str(value))
            case GroupCommand.KICK:
                command = commands.kick(str(value))
            case GroupCommand.LEAVE:
                command = commands.leave()
            case _:
                command = commands.ungroup()

        outcome = FanOutResult(kind)
        try:
            outcome.results[self.transport.host] = await self._send(kind, self.transport.host, command)
        finally:
            logger.debug("%s refreshing topology", lp)
            _ = await self.refresh()
        return outcome

    async def _fan_out(self, kind: GroupCommand, command: str) -> FanOutResult:
        lp = f"{self.lp}:{kind.value}:"
        state = self.reconciler.snapshot()
        outcome = FanOutResult(kind)
        if state.role != GroupRole.MASTER:
            logger.debug("%s role is %s, applying to this device only", lp, state.role.value)
            outcome.results[self.transport.host] = await self._send(kind, self.transport.host, command)
            return outcome

        targets = [*state.slave_addresses, self.transport.host]
        results = await asyncio.gather(*(self._send(kind, target, command) for target in targets))
        outcome.results = dict(zip(targets, results, strict=True))
        if not outcome.all_succeeded:
            logger.warning(
                "%s %d/%d targets failed",
                lp,
                len(outcome.failed_targets),
                len(targets),
                extra={"failed": outcome.failed_targets},
            )
        return outcome

    async def _send(self, kind: GroupCommand, target: str, command: str) -> CommandResult:
        """Send ``command`` to ``target``; outcomes for this device also feed the health tracker."""
        lp = f"{self.lp}:_send:"
        result = await self.transport.send_command(command, host=target)
        if self.health is not None and target == self.transport.host:
            if result.success:
                self.health.record_success()
            else:
                self.health.record_failure(str(result.error))
        registry.record_group_fanout(kind.value, "success" if result.success else "failure")
        if not result.success:
            logger.warning(
                "%s %s for %s failed: %s",
                lp,
                command,
                target,
                result.error,
                extra={"target": target, "command": command},
            )
        return result

    async def refresh_group_aggregate(self) -> dict[str, object]:
        """Publish group volume (loudest member) and group mute (every member muted)."""
        lp = f"{self.lp}:refresh_group_aggregate:"
        state = self.reconciler.snapshot()
        volumes = [state.volume]
        mutes = [state.mute]
        if state.role == GroupRole.MASTER and state.slave_addresses:
            result = await self.transport.send_command(commands.GET_SLAVE_LIST)
            payload = result.payload if result.success else None
            entries = payload.get("slave_list", []) if isinstance(payload, dict) else []
            if not result.success:
                logger.debug("%s slave list unavailable: %s", lp, result.error)
            for entry in entries if isinstance(entries, list) else []:
                if not isinstance(entry, dict):
                    continue
                try:
                    volumes.append(int(entry.get("volume", 0)))
                except (TypeError, ValueError):
                    continue
                mutes.append(parse_bool(entry.get("mute", 0)))
        return await self.reconciler.apply_group_aggregate(max(volumes), all(mutes))
