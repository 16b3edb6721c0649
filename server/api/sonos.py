import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from services.actions import SONOS_PORT, ActionDispatcher, DeviceRef
from services.errors import (
    ItemNotFoundError,
    MissingArgumentError,
    PlayerNotFoundError,
    SchemaError,
    SonosError,
)
from services.mysonos import MySonosService
from services.notification import DurationPolicy, NotificationOptions, NotificationService
from services.snapshot import PlaybackSnapshot, SnapshotService
from services.topology import TopologyResolver


log = logging.getLogger("sonoscue")

DURATION_PATTERN = r"^\d{1,2}:\d{2}:\d{2}$"


class NotificationPayload(BaseModel):
    uri: str = Field(min_length=1, max_length=2000)
    metadata: Optional[str] = None
    volume: int = Field(default=-1, ge=-1, le=100)
    same_volume: bool = False
    automatic_duration: bool = False
    duration: Optional[str] = Field(default=None, pattern=DURATION_PATTERN)
    player_name: Optional[str] = Field(default=None, max_length=200)
    host: Optional[str] = Field(default=None, max_length=255)


class SnapshotPayload(BaseModel):
    player_name: Optional[str] = Field(default=None, max_length=200)
    host: Optional[str] = Field(default=None, max_length=255)
    capture_volumes: bool = False
    capture_mutes: bool = False


class MemberStatePayload(BaseModel):
    hostname: str = Field(min_length=1, max_length=255)
    port: int = Field(default=SONOS_PORT, ge=1, le=65535)
    volume: int = Field(default=-1, ge=-1, le=100)
    mute: Optional[bool] = None


class SnapshotModel(BaseModel):
    was_playing: bool = False
    playback_state: str = ""
    current_uri: str = ""
    current_metadata: str = ""
    track_index: int = Field(default=0, ge=0)
    track_count: int = Field(default=0, ge=0)
    relative_time: str = ""
    track_duration: str = ""
    members: List[MemberStatePayload] = Field(default_factory=list)


class RestorePayload(BaseModel):
    snapshot: SnapshotModel
    resume: bool = False


class ActionPayload(BaseModel):
    endpoint: str = Field(min_length=1, max_length=200)
    action: str = Field(min_length=1, max_length=120)
    arguments: Dict[str, Any] = Field(default_factory=dict)
    host: Optional[str] = Field(default=None, max_length=255)


class MySonosItemPayload(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    volume: int = Field(default=-1, ge=-1, le=100)
    host: Optional[str] = Field(default=None, max_length=255)


def http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, (PlayerNotFoundError, ItemNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (SchemaError, MissingArgumentError, ValueError)):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=502, detail=str(exc))


def create_sonos_router(
    *,
    device: DeviceRef,
    dispatcher: ActionDispatcher,
    topology: TopologyResolver,
    snapshots: SnapshotService,
    notifications: NotificationService,
    my_sonos: MySonosService,
    default_duration: str,
) -> APIRouter:
    router = APIRouter()

    def _device(host: Optional[str]) -> DeviceRef:
        if not host:
            return device
        return DeviceRef(hostname=host, port=device.port)

    @router.get("/api/health")
    async def health() -> dict:
        return {"status": "ok", "player": device.origin_url}

    @router.get("/api/sonos/players")
    async def sonos_players(host: Optional[str] = Query(default=None)) -> dict:
        try:
            players = await topology.list_all_players(_device(host))
        except SonosError as exc:
            raise http_error(exc) from exc
        return {"players": [p.to_dict() for p in players]}

    @router.get("/api/sonos/group")
    async def sonos_group(
        host: Optional[str] = Query(default=None),
        player_name: Optional[str] = Query(default=None),
    ) -> dict:
        try:
            group = await topology.resolve_group_of(_device(host), player_name)
        except SonosError as exc:
            raise http_error(exc) from exc
        return group.to_dict()

    @router.post("/api/sonos/notify")
    async def sonos_notify(payload: NotificationPayload) -> dict:
        options = NotificationOptions(
            uri=payload.uri,
            metadata=payload.metadata,
            volume=payload.volume,
            same_volume=payload.same_volume,
            duration_policy=DurationPolicy(
                automatic=payload.automatic_duration,
                duration=payload.duration or default_duration,
            ),
        )
        try:
            group = await topology.resolve_group_of(_device(payload.host), payload.player_name)
            if group.player_index == 0:
                report = await notifications.play_group_notification(group.members, options)
            else:
                member = group.require_player()
                report = await notifications.play_member_notification(group.coordinator, member, options)
        except (SonosError, ValueError) as exc:
            raise http_error(exc) from exc
        return {"group": group.group_name, **report.to_dict()}

    @router.post("/api/sonos/snapshot")
    async def sonos_snapshot(payload: SnapshotPayload) -> dict:
        try:
            group = await topology.resolve_group_of(_device(payload.host), payload.player_name)
            snapshot = await snapshots.capture(
                group.members,
                capture_volumes=payload.capture_volumes,
                capture_mutes=payload.capture_mutes,
            )
        except SonosError as exc:
            raise http_error(exc) from exc
        return {"group": group.group_name, "snapshot": snapshot.to_dict()}

    @router.post("/api/sonos/snapshot/restore")
    async def sonos_snapshot_restore(payload: RestorePayload) -> dict:
        snapshot = PlaybackSnapshot.from_dict(payload.snapshot.model_dump())
        if not snapshot.members:
            raise HTTPException(status_code=400, detail="Snapshot has no members")
        members = [DeviceRef(hostname=m.hostname, port=m.port) for m in snapshot.members]
        try:
            report = await snapshots.restore(members, snapshot)
            resumed = payload.resume and snapshot.was_playing and report.restorable
            if resumed:
                await snapshots.player(members[0]).play()
        except (SonosError, ValueError) as exc:
            raise http_error(exc) from exc
        return {"restore": report.to_dict(), "resumed": resumed}

    @router.post("/api/sonos/action")
    async def sonos_action(payload: ActionPayload) -> dict:
        target = _device(payload.host)
        log.debug("Generic action %s %s on %s", payload.endpoint, payload.action, target.hostname)
        try:
            result = await dispatcher.invoke(target, payload.endpoint, payload.action, payload.arguments)
        except SonosError as exc:
            raise http_error(exc) from exc
        return {"result": result}

    @router.get("/api/sonos/mysonos")
    async def sonos_my_sonos(host: Optional[str] = Query(default=None)) -> dict:
        try:
            items = await my_sonos.get_my_sonos(_device(host))
        except SonosError as exc:
            raise http_error(exc) from exc
        return {"items": [item.to_dict() for item in items]}

    @router.get("/api/sonos/mysonos/export")
    async def sonos_my_sonos_export(
        title: str = Query(min_length=1, max_length=300),
        host: Optional[str] = Query(default=None),
    ) -> dict:
        try:
            return await my_sonos.export_item(_device(host), title)
        except SonosError as exc:
            raise http_error(exc) from exc

    @router.get("/api/sonos/queue")
    async def sonos_queue(host: Optional[str] = Query(default=None)) -> dict:
        try:
            items = await my_sonos.get_queue(_device(host))
        except SonosError as exc:
            raise http_error(exc) from exc
        return {"items": [item.to_dict() for item in items]}

    @router.post("/api/sonos/mysonos/queue")
    async def sonos_my_sonos_queue(payload: MySonosItemPayload) -> dict:
        try:
            result = await my_sonos.queue_item(_device(payload.host), payload.title)
        except (SonosError, ValueError) as exc:
            raise http_error(exc) from exc
        return {"ok": True, "result": result}

    @router.post("/api/sonos/mysonos/stream")
    async def sonos_my_sonos_stream(payload: MySonosItemPayload) -> dict:
        try:
            item = await my_sonos.stream_item(_device(payload.host), payload.title, payload.volume)
        except (SonosError, ValueError) as exc:
            raise http_error(exc) from exc
        return {"ok": True, "item": item.to_dict()}

    @router.get("/api/sonos/library/{kind}")
    async def sonos_library(
        kind: str,
        search: str = Query(default="", max_length=300),
        host: Optional[str] = Query(default=None),
    ) -> dict:
        try:
            items = await my_sonos.get_library_items(_device(host), kind, search)
        except (SonosError, ValueError) as exc:
            raise http_error(exc) from exc
        return {"items": [item.to_dict() for item in items]}

    @router.get("/api/sonos/library/{kind}/export")
    async def sonos_library_export(
        kind: str,
        search: str = Query(min_length=1, max_length=300),
        host: Optional[str] = Query(default=None),
    ) -> dict:
        try:
            return await my_sonos.export_library_item(_device(host), kind, search)
        except (SonosError, ValueError) as exc:
            raise http_error(exc) from exc

    return router
