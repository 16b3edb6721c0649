from __future__ import annotations

import dataclasses
import logging
from typing import Optional

from services.actions import ActionDispatcher, DeviceRef
from services.didl import DidlItem, get_upnp_class, item_metadata, parse_list
from services.errors import InvalidResponseError, ItemNotFoundError
from services.player import SonosPlayer
from services.registry import AV_TRANSPORT, CONTENT_DIRECTORY


log = logging.getLogger("sonoscue")

MY_SONOS_LIMIT = 200
PLAYLIST_LIMIT = 999
QUEUE_LIMIT = 200
LIBRARY_LIMIT = 999

LIBRARY_OBJECT_IDS = {
    "playlists": "A:PLAYLISTS:",
    "albums": "A:ALBUM:",
    "artists": "A:ARTIST:",
    "tracks": "A:TRACKS:",
}


class MySonosService:
    """My Sonos favorites, SONOS playlists, the Music Library and the queue of one player."""

    def __init__(self, *, dispatcher: ActionDispatcher) -> None:
        self._dispatcher = dispatcher

    async def _browse(self, device: DeviceRef, object_id: str, limit: int) -> dict:
        result = await self._dispatcher.invoke(
            device,
            CONTENT_DIRECTORY,
            "Browse",
            {
                "ObjectID": object_id,
                "BrowseFlag": "BrowseDirectChildren",
                "Filter": "*",
                "StartingIndex": 0,
                "RequestedCount": limit,
                "SortCriteria": "",
            },
        )
        if not (result.get("NumberReturned") or "").strip():
            raise InvalidResponseError(f"Browse {object_id} on {device.hostname}: NumberReturned is missing")
        return result

    @staticmethod
    def _absolute_art(item: DidlItem, device: DeviceRef) -> str:
        # Local album art comes back as a path on the player.
        if item.art_uri.startswith("/getaa"):
            return f"{device.origin_url}{item.art_uri}"
        return item.art_uri

    async def _browse_items(self, device: DeviceRef, object_id: str, tag: str, limit: int) -> list[DidlItem]:
        result = await self._browse(device, object_id, limit)
        if result["NumberReturned"].strip() == "0":
            return []
        if not (result.get("Result") or "").strip():
            raise InvalidResponseError(f"Browse {object_id} on {device.hostname}: Result is missing")
        items = parse_list(result["Result"], tag, registry=self._dispatcher.registry)
        return [
            dataclasses.replace(item, art_uri=self._absolute_art(item, device), handling_mode="queue")
            for item in items
        ]

    async def get_sonos_playlists(self, device: DeviceRef) -> list[DidlItem]:
        return await self._browse_items(device, "SQ:", "container", PLAYLIST_LIMIT)

    async def get_queue(self, device: DeviceRef) -> list[DidlItem]:
        return await self._browse_items(device, "Q:0", "item", QUEUE_LIMIT)

    async def get_library_items(self, device: DeviceRef, kind: str, search: str = "") -> list[DidlItem]:
        """Music Library playlists, albums, artists or tracks whose title matches ``search``."""

        object_id = LIBRARY_OBJECT_IDS.get(kind)
        if object_id is None:
            raise ValueError(f"Library kind must be one of {sorted(LIBRARY_OBJECT_IDS)}, got {kind!r}")
        tag = "item" if kind == "tracks" else "container"
        items = await self._browse_items(device, f"{object_id}{search}", tag, LIBRARY_LIMIT)
        # Titles with an apostrophe come back double escaped in the URI.
        return [dataclasses.replace(item, uri=item.uri.replace("&apos;", "'")) for item in items]

    async def export_library_item(self, device: DeviceRef, kind: str, search: str) -> dict:
        if not search:
            raise ValueError("Search string is missing")
        items = await self.get_library_items(device, kind, search)
        if not items:
            raise ItemNotFoundError(f"No Music Library {kind} matching {search!r}")
        item = items[0]
        return {"uri": item.uri, "metadata": item.raw_metadata or item_metadata(item), "queue": True}

    async def get_my_sonos(self, device: DeviceRef) -> list[DidlItem]:
        result = await self._browse(device, "FV:2", MY_SONOS_LIMIT)
        if result["NumberReturned"].strip() == "0":
            raise ItemNotFoundError("Could not find any My Sonos item (please add at least one)")

        registry = self._dispatcher.registry
        favorites: list[DidlItem] = []
        for item in parse_list(result.get("Result"), "item", registry=registry):
            # Favorites carry their own class; the playable class is in the embedded metadata.
            upnp_class = get_upnp_class(item.raw_metadata) or item.upnp_class
            mode = registry.handling_mode(upnp_class) or "unsupported"
            favorites.append(
                dataclasses.replace(
                    item,
                    art_uri=self._absolute_art(item, device),
                    upnp_class=upnp_class,
                    handling_mode=mode,
                )
            )
        return favorites + await self.get_sonos_playlists(device)

    async def find_item(self, device: DeviceRef, search: str, mode: Optional[str] = None) -> DidlItem:
        if not search:
            raise ValueError("Search string is missing")
        for item in await self.get_my_sonos(device):
            if search in item.title and (mode is None or item.handling_mode == mode):
                return item
        raise ItemNotFoundError(f"No My Sonos title matching {search!r}")

    async def export_item(self, device: DeviceRef, search: str) -> dict:
        item = await self.find_item(device, search)
        return {"uri": item.uri, "metadata": item.raw_metadata, "queue": item.handling_mode == "queue"}

    async def queue_item(self, device: DeviceRef, search: str) -> dict:
        item = await self.find_item(device, search, mode="queue")
        log.info("Queueing My Sonos item %r on %s", item.title, device.hostname)
        return await self._dispatcher.invoke(
            device,
            AV_TRANSPORT,
            "AddURIToQueue",
            {
                "InstanceID": 0,
                "EnqueuedURI": item.uri,
                "EnqueuedURIMetaData": item.raw_metadata,
                "DesiredFirstTrackNumberEnqueued": 0,
                "EnqueueAsNext": True,
            },
        )

    async def stream_item(self, device: DeviceRef, search: str, volume: int = -1) -> DidlItem:
        item = await self.find_item(device, search, mode="stream")
        player = SonosPlayer(self._dispatcher, device)
        log.info("Streaming My Sonos item %r on %s", item.title, device.hostname)
        await player.set_av_transport_uri(item.uri, item.raw_metadata, only_set_uri=True)
        if volume != -1:
            await player.set_volume(volume)
        await player.play()
        return item
