from __future__ import annotations

from typing import Optional

from services.actions import ActionDispatcher, DeviceRef
from services.registry import AV_TRANSPORT, RENDERING_CONTROL


TRANSPORT_STATES = {
    "PLAYING": "playing",
    "TRANSITIONING": "transitioning",
    "PAUSED_PLAYBACK": "paused",
    "STOPPED": "stopped",
    "NO_MEDIA_PRESENT": "no_media",
}
PLAYING_STATES = frozenset({"playing", "transitioning"})


def clamp_volume(value: int) -> int:
    return max(0, min(100, int(value)))


class SonosPlayer:
    """Typed helpers for a single player on top of the generic dispatcher."""

    def __init__(self, dispatcher: ActionDispatcher, device: DeviceRef) -> None:
        self._dispatcher = dispatcher
        self.device = device

    def __repr__(self) -> str:
        return f"SonosPlayer({self.device.hostname}:{self.device.port})"

    async def get_current_state(self) -> str:
        info = await self._dispatcher.invoke(self.device, AV_TRANSPORT, "GetTransportInfo", {"InstanceID": 0})
        raw = (info.get("CurrentTransportState") or "").strip().upper()
        return TRANSPORT_STATES.get(raw, raw.lower())

    async def get_media_info(self) -> dict:
        return await self._dispatcher.invoke(self.device, AV_TRANSPORT, "GetMediaInfo", {"InstanceID": 0})

    async def get_position_info(self) -> dict:
        return await self._dispatcher.invoke(self.device, AV_TRANSPORT, "GetPositionInfo", {"InstanceID": 0})

    async def get_volume(self) -> int:
        value = await self._dispatcher.invoke(
            self.device,
            RENDERING_CONTROL,
            "GetVolume",
            {"InstanceID": 0, "Channel": "Master"},
        )
        return int(value)

    async def set_volume(self, percent: int) -> None:
        await self._dispatcher.invoke(
            self.device,
            RENDERING_CONTROL,
            "SetVolume",
            {"InstanceID": 0, "Channel": "Master", "DesiredVolume": clamp_volume(percent)},
        )

    async def get_mute(self) -> bool:
        value = await self._dispatcher.invoke(
            self.device,
            RENDERING_CONTROL,
            "GetMute",
            {"InstanceID": 0, "Channel": "Master"},
        )
        return str(value).strip() == "1"

    async def set_mute(self, muted: bool) -> None:
        await self._dispatcher.invoke(
            self.device,
            RENDERING_CONTROL,
            "SetMute",
            {"InstanceID": 0, "Channel": "Master", "DesiredMute": bool(muted)},
        )

    async def set_av_transport_uri(self, uri: str, metadata: Optional[str] = "", *, only_set_uri: bool = False) -> None:
        await self._dispatcher.invoke(
            self.device,
            AV_TRANSPORT,
            "SetAVTransportURI",
            {"InstanceID": 0, "CurrentURI": uri, "CurrentURIMetaData": metadata or ""},
        )
        if not only_set_uri:
            await self.play()

    async def play(self) -> None:
        await self._dispatcher.invoke(self.device, AV_TRANSPORT, "Play", {"InstanceID": 0, "Speed": 1})

    async def select_track(self, track_number: int) -> None:
        await self._dispatcher.invoke(
            self.device,
            AV_TRANSPORT,
            "Seek",
            {"InstanceID": 0, "Unit": "TRACK_NR", "Target": int(track_number)},
        )

    async def seek(self, rel_time: str) -> None:
        await self._dispatcher.invoke(
            self.device,
            AV_TRANSPORT,
            "Seek",
            {"InstanceID": 0, "Unit": "REL_TIME", "Target": rel_time},
        )
