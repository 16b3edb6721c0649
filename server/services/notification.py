from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from services.actions import DeviceRef
from services.didl import generate_metadata
from services.player import SonosPlayer
from services.snapshot import (
    MemberState,
    PlaybackSnapshot,
    RestoreReport,
    SnapshotService,
    StepResult,
    hhmmss_to_seconds,
)


log = logging.getLogger("sonoscue.notify")

DEFAULT_DURATION = "00:00:05"
DEFAULT_DURATION_MARGIN = 2.0


@dataclass
class DurationPolicy:
    automatic: bool = False
    duration: str = DEFAULT_DURATION


@dataclass
class NotificationOptions:
    uri: str
    metadata: Optional[str] = None
    volume: int = -1
    same_volume: bool = False
    duration_policy: DurationPolicy = field(default_factory=DurationPolicy)


@dataclass
class NotificationReport:
    variant: str
    was_playing: bool
    resumed: bool
    waited_seconds: float
    restore: RestoreReport

    def to_dict(self) -> dict:
        return {
            "variant": self.variant,
            "was_playing": self.was_playing,
            "resumed": self.resumed,
            "waited_seconds": self.waited_seconds,
            "restore": self.restore.to_dict(),
        }


class NotificationService:
    """Interrupts a group (or one member) for a short clip and puts things back.

    Nothing guards against another controller changing the players between
    capture and restore.
    """

    def __init__(
        self,
        *,
        snapshots: SnapshotService,
        duration_margin: float = DEFAULT_DURATION_MARGIN,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        self._snapshots = snapshots
        self._duration_margin = float(duration_margin)
        self._stop_event = stop_event

    @staticmethod
    def _prepare(options: NotificationOptions) -> tuple[str, float]:
        if not options.uri:
            raise ValueError("Notification URI is missing")
        if options.volume != -1 and not 0 <= options.volume <= 100:
            raise ValueError(f"Notification volume must be -1 or 0..100, got {options.volume}")
        seconds = hhmmss_to_seconds(options.duration_policy.duration)
        if seconds is None:
            raise ValueError(f"Invalid notification duration {options.duration_policy.duration!r}")
        metadata = options.metadata if options.metadata is not None else generate_metadata(options.uri)
        return metadata, seconds

    async def _resolve_wait(self, player: SonosPlayer, options: NotificationOptions, fallback: float) -> float:
        if not options.duration_policy.automatic:
            return fallback
        position = await player.get_position_info()
        reported = hhmmss_to_seconds(position.get("TrackDuration"))
        if reported:
            return reported + self._duration_margin
        log.debug("Player %s reported no track duration; using %.1fs", player.device.hostname, fallback)
        return fallback

    async def _wait(self, seconds: float) -> None:
        if seconds <= 0:
            return
        if self._stop_event is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        log.info("Shutdown requested; ending notification wait early and restoring")

    async def play_group_notification(
        self,
        members: Sequence[DeviceRef],
        options: NotificationOptions,
    ) -> NotificationReport:
        """Play a clip on the whole group; members[0] must be the coordinator."""

        if not members:
            raise ValueError("Group notification needs at least the coordinator")
        metadata, duration = self._prepare(options)
        coordinator = self._snapshots.player(members[0])
        others = [self._snapshots.player(m) for m in members[1:]]

        snapshot = await self._snapshots.capture_playback(members[0])
        snapshot.members = [MemberState(hostname=m.hostname, port=m.port) for m in members]
        if options.volume != -1:
            snapshot.members[0].volume = await coordinator.get_volume()
        if options.same_volume:
            for state, player in zip(snapshot.members[1:], others):
                state.volume = await player.get_volume()
        log.info(
            "Group notification on %s (members=%d, was_playing=%s, uri=%s)",
            members[0].hostname,
            len(members),
            snapshot.was_playing,
            options.uri,
        )

        await coordinator.set_av_transport_uri(options.uri, metadata, only_set_uri=True)
        if options.volume != -1:
            await coordinator.set_volume(options.volume)
            if options.same_volume:
                for player in others:
                    await player.set_volume(options.volume)
        await coordinator.play()

        waited = await self._resolve_wait(coordinator, options, duration)
        await self._wait(waited)

        await self._snapshots.restore_levels(members, snapshot)
        report = await self._snapshots.restore_content(members[0], snapshot)
        resumed = False
        if snapshot.was_playing and report.restorable:
            await coordinator.play()
            resumed = True
        log.info(
            "Group notification on %s finished (%s, resumed=%s)",
            members[0].hostname,
            restore_summary(report),
            resumed,
        )
        return NotificationReport("group", snapshot.was_playing, resumed, waited, report)

    async def play_member_notification(
        self,
        coordinator: DeviceRef,
        member: DeviceRef,
        options: NotificationOptions,
    ) -> NotificationReport:
        """Play a clip on one non-coordinator member; it rejoins by getting its old URI back."""

        metadata, duration = self._prepare(options)
        player = self._snapshots.player(member)

        snapshot: PlaybackSnapshot = await self._snapshots.capture_playback(
            coordinator,
            media_source=member,
            with_position=False,
        )
        state = MemberState(hostname=member.hostname, port=member.port)
        if options.volume != -1:
            state.volume = await player.get_volume()
        snapshot.members = [state]
        log.info(
            "Member notification on %s (coordinator=%s, was_playing=%s, uri=%s)",
            member.hostname,
            coordinator.hostname,
            snapshot.was_playing,
            options.uri,
        )

        # The member leaves its group here.
        await player.set_av_transport_uri(options.uri, metadata, only_set_uri=True)
        await player.play()
        if options.volume != -1:
            await player.set_volume(options.volume)

        waited = await self._resolve_wait(player, options, duration)
        await self._wait(waited)

        await self._snapshots.restore_levels([member], snapshot)
        report = await self._snapshots.restore_content(member, snapshot, check_restorable=False, reposition=False)
        resumed = False
        if snapshot.was_playing:
            await player.play()
            resumed = True
        log.info(
            "Member notification on %s finished (%s, resumed=%s)",
            member.hostname,
            restore_summary(report),
            resumed,
        )
        return NotificationReport("member", snapshot.was_playing, resumed, waited, report)


def restore_summary(report: RestoreReport) -> str:
    if report.uri is StepResult.NOT_RESTORABLE:
        return "content not restorable"
    return ", ".join(f"{k}={v}" for k, v in report.to_dict().items())
