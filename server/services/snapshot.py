from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Iterable, Optional, Sequence

from services.actions import SONOS_PORT, ActionDispatcher, DeviceRef
from services.errors import SonosError
from services.player import PLAYING_STATES, SonosPlayer


log = logging.getLogger("sonoscue.snapshot")

DEFAULT_NON_RESTORABLE_MARKERS = ("x-sonos-vli",)
ZERO_DURATION = "0:00:00"


def hhmmss_to_seconds(value: Optional[str]) -> Optional[float]:
    """Parse ``H:MM:SS`` (optionally with fractional seconds); None when not a duration."""

    if not value:
        return None
    parts = value.strip().split(":")
    if len(parts) != 3:
        return None
    try:
        hours, minutes = int(parts[0]), int(parts[1])
        seconds = float(parts[2])
    except ValueError:
        return None
    if hours < 0 or minutes < 0 or seconds < 0:
        return None
    return hours * 3600 + minutes * 60 + seconds


class StepResult(str, Enum):
    RESTORED = "restored"
    UNSUPPORTED = "unsupported"
    NOT_NEEDED = "not_needed"
    NOT_RESTORABLE = "not_restorable"


@dataclass
class RestoreReport:
    uri: StepResult = StepResult.NOT_NEEDED
    track: StepResult = StepResult.NOT_NEEDED
    position: StepResult = StepResult.NOT_NEEDED

    @property
    def restorable(self) -> bool:
        return self.uri is not StepResult.NOT_RESTORABLE

    def to_dict(self) -> dict:
        return {"uri": self.uri.value, "track": self.track.value, "position": self.position.value}


@dataclass
class MemberState:
    hostname: str
    port: int = SONOS_PORT
    volume: int = -1
    mute: Optional[bool] = None

    @property
    def origin_url(self) -> str:
        return f"http://{self.hostname}:{self.port}"


@dataclass
class PlaybackSnapshot:
    was_playing: bool = False
    playback_state: str = ""
    current_uri: str = ""
    current_metadata: str = ""
    track_index: int = 0
    track_count: int = 0
    relative_time: str = ""
    track_duration: str = ""
    members: list[MemberState] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PlaybackSnapshot":
        members = [MemberState(**m) for m in data.get("members") or []]
        fields = {k: v for k, v in data.items() if k != "members" and k in cls.__dataclass_fields__}
        return cls(members=members, **fields)


def _to_int(value: object) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return 0


class SnapshotService:
    def __init__(
        self,
        *,
        dispatcher: ActionDispatcher,
        non_restorable_markers: Iterable[str] = DEFAULT_NON_RESTORABLE_MARKERS,
    ) -> None:
        self._dispatcher = dispatcher
        self._non_restorable_markers = tuple(m for m in non_restorable_markers if m)

    def player(self, device: DeviceRef) -> SonosPlayer:
        return SonosPlayer(self._dispatcher, device)

    def is_restorable(self, uri: Optional[str]) -> bool:
        if not uri:
            return True
        return not any(marker in uri for marker in self._non_restorable_markers)

    async def capture_playback(
        self,
        state_source: DeviceRef,
        media_source: Optional[DeviceRef] = None,
        *,
        with_position: bool = True,
    ) -> PlaybackSnapshot:
        # A non-coordinator reports its own transport state, not the group's.
        state = await self.player(state_source).get_current_state()
        media_player = self.player(media_source or state_source)
        media = await media_player.get_media_info()
        snapshot = PlaybackSnapshot(
            was_playing=state in PLAYING_STATES,
            playback_state=state,
            current_uri=media.get("CurrentURI") or "",
            current_metadata=media.get("CurrentURIMetaData") or "",
            track_count=_to_int(media.get("NrTracks")),
        )
        if with_position:
            position = await media_player.get_position_info()
            snapshot.track_index = _to_int(position.get("Track"))
            snapshot.relative_time = position.get("RelTime") or ""
            snapshot.track_duration = position.get("TrackDuration") or ""
        return snapshot

    async def capture(
        self,
        members: Sequence[DeviceRef],
        *,
        capture_volumes: bool = False,
        capture_mutes: bool = False,
    ) -> PlaybackSnapshot:
        if not members:
            raise ValueError("capture needs at least the coordinator")
        snapshot = await self.capture_playback(members[0])
        for member in members:
            state = MemberState(hostname=member.hostname, port=member.port)
            if capture_volumes:
                state.volume = await self.player(member).get_volume()
            if capture_mutes:
                state.mute = await self.player(member).get_mute()
            snapshot.members.append(state)
        log.debug(
            "Snapshot captured (coordinator=%s, state=%s, uri=%s, members=%d)",
            members[0].hostname,
            snapshot.playback_state,
            snapshot.current_uri,
            len(snapshot.members),
        )
        return snapshot

    async def restore_content(
        self,
        device: DeviceRef,
        snapshot: PlaybackSnapshot,
        *,
        check_restorable: bool = True,
        reposition: bool = True,
    ) -> RestoreReport:
        """Put the captured URI back without playing, then try track and position."""

        report = RestoreReport()
        if check_restorable and not self.is_restorable(snapshot.current_uri):
            log.info("Skipping content restore on %s: session-bound URI %s", device.hostname, snapshot.current_uri)
            report.uri = report.track = report.position = StepResult.NOT_RESTORABLE
            return report

        player = self.player(device)
        await player.set_av_transport_uri(snapshot.current_uri, snapshot.current_metadata, only_set_uri=True)
        report.uri = StepResult.RESTORED
        if not reposition:
            return report

        if snapshot.track_index > 1 and snapshot.track_count > 1:
            try:
                await player.select_track(snapshot.track_index)
                report.track = StepResult.RESTORED
            except SonosError as exc:
                log.warning(
                    "Reverting to track %s failed on %s (common for music services): %s",
                    snapshot.track_index,
                    device.hostname,
                    exc,
                )
                report.track = StepResult.UNSUPPORTED

        rel_seconds = hhmmss_to_seconds(snapshot.relative_time)
        if rel_seconds and snapshot.track_duration != ZERO_DURATION:
            try:
                await player.seek(snapshot.relative_time)
                report.position = StepResult.RESTORED
            except SonosError as exc:
                log.warning(
                    "Reverting to position %s failed on %s (common for radio/streams): %s",
                    snapshot.relative_time,
                    device.hostname,
                    exc,
                )
                report.position = StepResult.UNSUPPORTED
        return report

    @staticmethod
    def _check_members(members: Sequence[DeviceRef], snapshot: PlaybackSnapshot) -> None:
        if len(members) != len(snapshot.members):
            raise ValueError(
                f"Snapshot holds levels for {len(snapshot.members)} member(s), got {len(members)} to restore"
            )

    async def restore_levels(self, members: Sequence[DeviceRef], snapshot: PlaybackSnapshot) -> None:
        self._check_members(members, snapshot)
        for member, state in zip(members, snapshot.members):
            player = self.player(member)
            if state.volume != -1:
                await player.set_volume(state.volume)
            if state.mute is not None:
                await player.set_mute(state.mute)

    async def restore(self, members: Sequence[DeviceRef], snapshot: PlaybackSnapshot) -> RestoreReport:
        """Reapply a snapshot. Playback is not resumed; that is the caller's decision."""

        if not members:
            raise ValueError("restore needs at least the coordinator")
        self._check_members(members, snapshot)
        report = await self.restore_content(members[0], snapshot)
        await self.restore_levels(members, snapshot)
        return report
