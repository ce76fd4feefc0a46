"""Device manager for one LinkPlay/WiiM speaker."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Final

from linkhub.config import DeviceConfig
from linkhub.const import ENABLE_EXPORTER, EXPORTER_PORT, METADATA_LOOKUP
from linkhub.correlation import correlation_context
from linkhub.devices import commands
from linkhub.health import CommunicationHealthTracker
from linkhub.logging_abstraction import get_logger
from linkhub.metrics import start_metrics_server
from linkhub.multiroom.coordinator import FanOutResult, GroupCommand, GroupCoordinator
from linkhub.polling.poller import FAST, SLOW, Poller
from linkhub.push.listener import PushListener, PushSubscriptionService
from linkhub.sink import Channel, StateSink
from linkhub.state.codecs import parse_bool
from linkhub.state.metadata import MetadataService
from linkhub.state.models import ExtendedStatus, PlayerStatus, parse_extended_status, parse_player_status
from linkhub.state.reconciler import StateReconciler
from linkhub.transport.http import LinkPlayTransport
from linkhub.transport.types import CommandResult

logger = get_logger(__name__)

GROUP_CHANNELS: Final[Mapping[str, GroupCommand]] = {
    Channel.JOIN: GroupCommand.JOIN,
    Channel.LEAVE: GroupCommand.LEAVE,
    Channel.UNGROUP: GroupCommand.UNGROUP,
    Channel.KICK: GroupCommand.KICK,
    Channel.GROUP_VOLUME: GroupCommand.GROUP_VOLUME,
    Channel.GROUP_MUTE: GroupCommand.GROUP_MUTE,
}


class LinkPlayDevice:
    """Wires transport, polling, push, reconciliation, health and grouping for one speaker.

    ``initialize()`` starts polling (and push when a subscription service is
    given); ``dispose()`` tears everything down and is safe after a partial
    initialize.
    """

    lp: str = "LinkPlayDevice"

    def __init__(
        self,
        config: DeviceConfig,
        sink: StateSink,
        *,
        push_service: PushSubscriptionService | None = None,
        transport: LinkPlayTransport | None = None,
        metadata: MetadataService | None = None,
    ) -> None:
        self.config: DeviceConfig = config
        self.sink: StateSink = sink
        self.device_id: str = config.device_id
        self.lp = f"{self.lp}[{self.device_id}]"

        self.transport: LinkPlayTransport = transport or LinkPlayTransport(
            config.ip,
            timeout=config.request_timeout,
            scheme=config.scheme,
        )
        self.reconciler: StateReconciler = StateReconciler(sink, self.device_id, udn=config.udn, ip=config.ip)
        self.health: CommunicationHealthTracker = CommunicationHealthTracker(sink, self.device_id)
        self.poller: Poller = Poller(
            self.device_id,
            self.health,
            fast_fetch=self.fetch_player_status,
            on_fast=self._on_player_status,
            slow_fetch=self.fetch_extended_status,
            on_slow=self._on_extended_status,
        )
        self.coordinator: GroupCoordinator = GroupCoordinator(
            self.transport,
            self.reconciler,
            refresh=lambda: self.poller.poll_now(SLOW),
            own_uuid=config.udn,
            health=self.health,
        )
        self.push: PushListener | None = None
        if push_service is not None:
            self.push = PushListener(
                self.reconciler,
                push_service,
                self.device_id,
                retry_delay=config.push_retry_delay,
            )
        self.metadata: MetadataService | None = metadata
        if self.metadata is None and METADATA_LOOKUP:
            self.metadata = MetadataService()
        self._art_task: asyncio.Task[None] | None = None
        # (artist, title) last looked up, and the artwork that lookup applied
        self._art_track: tuple[str, str] | None = None
        self._enriched_art: str = ""

    async def initialize(self) -> None:
        lp = f"{self.lp}:initialize:"
        if ENABLE_EXPORTER:
            start_metrics_server(EXPORTER_PORT)
        await self.poller.start_polling(self.config.fast_poll_interval, self.config.slow_poll_interval)
        if self.push is not None:
            await self.push.start()
        logger.info("%s device manager started", lp, extra={"ip": self.config.ip, "push": self.push is not None})

    async def dispose(self) -> None:
        """Stop everything; results of calls still in flight are discarded."""
        lp = f"{self.lp}:dispose:"
        self.reconciler.dispose()
        await self.poller.stop_polling()
        if self._art_task is not None and not self._art_task.done():
            _ = self._art_task.cancel()
        if self.push is not None:
            await self.push.stop()
        await self.transport.close()
        if self.metadata is not None:
            await self.metadata.close()
        logger.info("%s device manager stopped", lp)

    # ------------------------------------------------------------------
    # polling

    async def fetch_player_status(self) -> PlayerStatus:
        result = await self.transport.send_command(commands.GET_PLAYER_STATUS)
        return parse_player_status(result.unwrap())

    async def fetch_extended_status(self) -> ExtendedStatus:
        result = await self.transport.send_command(commands.GET_STATUS_EX)
        return parse_extended_status(result.unwrap())

    async def _on_player_status(self, status: PlayerStatus) -> None:
        _ = await self.reconciler.apply_polled(status)
        self._maybe_lookup_art()

    def _maybe_lookup_art(self) -> None:
        """Start a background artwork lookup when the current track has none of its own."""
        if self.metadata is None or (self._art_task is not None and not self._art_task.done()):
            return
        state = self.reconciler.snapshot()
        track = (state.artist, state.title)
        if not state.title or not state.artist or track == self._art_track:
            return
        # artwork from the device or the push channel is never replaced
        if state.album_art_uri and state.album_art_uri != self._enriched_art:
            return
        self._art_track = track
        self._art_task = asyncio.create_task(
            self._lookup_art(self.metadata, track),
            name=f"{self.device_id}-album-art",
        )

    async def _lookup_art(self, metadata: MetadataService, track: tuple[str, str]) -> None:
        lp = f"{self.lp}:_lookup_art:"
        with correlation_context(prefix="art"):
            url = await metadata.album_art(*track)
            state = self.reconciler.snapshot()
            if (state.artist, state.title) != track:
                logger.debug("%s track changed during lookup, dropping result", lp)
                return
            if state.album_art_uri and state.album_art_uri != self._enriched_art:
                return
            # artwork found for the previous track is cleared when nothing matches this one
            art = url or ""
            self._enriched_art = art
            _ = await self.reconciler.apply_metadata(art)

    async def _on_extended_status(self, status: ExtendedStatus) -> None:
        topology = self.coordinator.derive(status)
        _ = await self.reconciler.apply_polled(status, topology)
        _ = await self.coordinator.refresh_group_aggregate()

    # ------------------------------------------------------------------
    # commands

    async def handle_command(self, channel: str, value: object) -> CommandResult | FanOutResult | None:
        """Translate a channel write into device commands, then refresh playback state.

        Returns:
            The command outcome, or None for channels that take no commands

        Raises:
            ValueError: ``value`` is not valid for ``channel``

        """
        lp = f"{self.lp}:handle_command:"
        with correlation_context(prefix="cmd"):
            group_command = GROUP_CHANNELS.get(channel)
            if group_command is not None:
                outcome = await self.coordinator.handle_group_command(group_command, value)
                if group_command in (GroupCommand.GROUP_VOLUME, GroupCommand.GROUP_MUTE):
                    _ = await self.poller.poll_now(FAST)
                    _ = await self.coordinator.refresh_group_aggregate()
                return outcome

            command = self._command_for(channel, value)
            if command is None:
                logger.warning("%s channel %s does not accept commands", lp, channel)
                return None

            logger.debug("%s %s <- %r", lp, channel, value, extra={"command": command})
            result = await self.transport.send_command(command)
            if not result.success:
                logger.warning("%s %s failed: %s", lp, command, result.error)
            _ = await self.poller.poll_now(FAST)
            return result

    def _command_for(self, channel: str, value: object) -> str | None:
        state = self.reconciler.snapshot()
        match channel:
            case Channel.VOLUME:
                return commands.volume(int(value))  # type: ignore[call-overload]
            case Channel.MUTE:
                return commands.mute(parse_bool(value))
            case Channel.CONTROL:
                return commands.control(str(value))
            case Channel.SEEK | Channel.POSITION:
                return commands.seek(int(value))  # type: ignore[call-overload]
            case Channel.REPEAT:
                return commands.loop_mode(parse_bool(value), state.shuffle, state.loop_once)
            case Channel.SHUFFLE:
                return commands.loop_mode(state.repeat, parse_bool(value), state.loop_once)
            case Channel.LOOP_ONCE:
                return commands.loop_mode(state.repeat, state.shuffle, parse_bool(value))
            case Channel.SOURCE:
                return commands.switch_source(str(value))
            case Channel.PRESET:
                return commands.preset(int(value))  # type: ignore[call-overload]
            case _:
                return None
