from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from services.errors import SchemaError


AV_TRANSPORT = "/MediaRenderer/AVTransport/Control"
RENDERING_CONTROL = "/MediaRenderer/RenderingControl/Control"
CONTENT_DIRECTORY = "/MediaServer/ContentDirectory/Control"
ZONE_GROUP_TOPOLOGY = "/ZoneGroupTopology/Control"
DEVICE_PROPERTIES = "/DeviceProperties/Control"


@dataclass(frozen=True)
class ActionTemplate:
    endpoint: str
    action_name: str
    required_inputs: tuple[str, ...] = ()
    expected_outputs: tuple[str, ...] = ()


def _templates(endpoint: str, actions: dict[str, tuple[tuple[str, ...], tuple[str, ...]]]) -> dict:
    return {
        name: ActionTemplate(endpoint=endpoint, action_name=name, required_inputs=ins, expected_outputs=outs)
        for name, (ins, outs) in actions.items()
    }


# Keep these tables in sync with the actions the services actually invoke.
ACTION_TEMPLATES: Dict[str, Dict[str, ActionTemplate]] = {
    AV_TRANSPORT: _templates(
        AV_TRANSPORT,
        {
            "GetTransportInfo": (
                ("InstanceID",),
                ("CurrentTransportState", "CurrentTransportStatus", "CurrentSpeed"),
            ),
            "GetMediaInfo": (
                ("InstanceID",),
                (
                    "NrTracks",
                    "MediaDuration",
                    "CurrentURI",
                    "CurrentURIMetaData",
                    "NextURI",
                    "NextURIMetaData",
                    "PlayMedium",
                    "RecordMedium",
                    "WriteStatus",
                ),
            ),
            "GetPositionInfo": (
                ("InstanceID",),
                ("Track", "TrackDuration", "TrackMetaData", "TrackURI", "RelTime", "AbsTime", "RelCount", "AbsCount"),
            ),
            "GetTransportSettings": (("InstanceID",), ("PlayMode", "RecQualityMode")),
            "SetAVTransportURI": (("InstanceID", "CurrentURI", "CurrentURIMetaData"), ()),
            "SetPlayMode": (("InstanceID", "NewPlayMode"), ()),
            "Play": (("InstanceID", "Speed"), ()),
            "Pause": (("InstanceID",), ()),
            "Stop": (("InstanceID",), ()),
            "Next": (("InstanceID",), ()),
            "Previous": (("InstanceID",), ()),
            "Seek": (("InstanceID", "Unit", "Target"), ()),
            "AddURIToQueue": (
                ("InstanceID", "EnqueuedURI", "EnqueuedURIMetaData", "DesiredFirstTrackNumberEnqueued", "EnqueueAsNext"),
                ("FirstTrackNumberEnqueued", "NumTracksAdded", "NewQueueLength"),
            ),
            "RemoveAllTracksFromQueue": (("InstanceID",), ()),
            "BecomeCoordinatorOfStandaloneGroup": (
                ("InstanceID",),
                ("DelegatedGroupCoordinatorID", "NewGroupID"),
            ),
        },
    ),
    RENDERING_CONTROL: _templates(
        RENDERING_CONTROL,
        {
            "GetVolume": (("InstanceID", "Channel"), ("CurrentVolume",)),
            "SetVolume": (("InstanceID", "Channel", "DesiredVolume"), ()),
            "GetMute": (("InstanceID", "Channel"), ("CurrentMute",)),
            "SetMute": (("InstanceID", "Channel", "DesiredMute"), ()),
            "GetEQ": (("InstanceID", "EQType"), ("CurrentValue",)),
            "SetEQ": (("InstanceID", "EQType", "DesiredValue"), ()),
        },
    ),
    CONTENT_DIRECTORY: _templates(
        CONTENT_DIRECTORY,
        {
            "Browse": (
                ("ObjectID", "BrowseFlag", "Filter", "StartingIndex", "RequestedCount", "SortCriteria"),
                ("Result", "NumberReturned", "TotalMatches", "UpdateID"),
            ),
        },
    ),
    ZONE_GROUP_TOPOLOGY: _templates(
        ZONE_GROUP_TOPOLOGY,
        {
            "GetZoneGroupState": ((), ("ZoneGroupState",)),
            "GetZoneGroupAttributes": (
                (),
                ("CurrentZoneGroupName", "CurrentZoneGroupID", "CurrentZonePlayerUUIDsInGroup"),
            ),
        },
    ),
    DEVICE_PROPERTIES: _templates(
        DEVICE_PROPERTIES,
        {
            "GetZoneAttributes": ((), ("CurrentZoneName", "CurrentIcon", "CurrentConfiguration")),
            "GetLEDState": ((), ("CurrentLEDState",)),
            "SetLEDState": (("DesiredLEDState",), ()),
        },
    ),
}

MUSIC_SERVICES: Dict[str, str] = {
    "2": "Deezer",
    "9": "Spotify",
    "12": "Spotify",
    "31": "Qobuz",
    "144": "Calm Radio",
    "160": "SoundCloud",
    "174": "TIDAL",
    "181": "Mixcloud",
    "201": "Amazon Music",
    "203": "Napster",
    "204": "Apple Music",
    "211": "Pocket Casts",
    "212": "Plex",
    "239": "Audible",
    "254": "TuneIn",
    "284": "YouTube Music",
    "303": "Sonos Radio",
}

UPNP_CLASSES_STREAM = frozenset({"object.item.audioItem.audioBroadcast"})
UPNP_CLASSES_QUEUE = frozenset(
    {
        "object.container.album.musicAlbum",
        "object.container.playlistContainer",
        "object.item.audioItem.musicTrack",
        "object.container",
        "object.container.playlistContainer#playlistItem",
    }
)
UPNP_CLASSES_UNSUPPORTED = frozenset(
    {
        "object.container.podcast.#podcastContainer",
        "object.container.albumlist",
    }
)

UPNP_ERRORS: Dict[str, str] = {
    "400": "Bad request",
    "401": "Invalid action",
    "402": "Invalid args",
    "404": "Invalid var",
    "412": "Precondition failed",
    "501": "Action failed",
    "600": "Argument value invalid",
    "601": "Argument value out of range",
    "602": "Optional action not implemented",
    "603": "Out of memory",
    "604": "Human intervention required",
    "605": "String argument too long",
    "606": "Action not authorized",
    "607": "Signature failure",
    "608": "Signature missing",
    "609": "Not encrypted",
    "610": "Invalid sequence",
    "611": "Invalid control URL",
    "612": "No such session",
}

SERVICE_ERRORS: Dict[str, Dict[str, str]] = {
    "AVTransport": {
        "701": "Transition not available",
        "702": "No contents",
        "703": "Read error",
        "704": "Format not supported for playback",
        "705": "Transport is locked",
        "706": "Write error",
        "707": "Media is protected or not writeable",
        "708": "Format not supported for recording",
        "709": "Media is full",
        "710": "Seek mode not supported",
        "711": "Illegal seek target",
        "712": "Play mode not supported",
        "713": "Record quality not supported",
        "714": "Illegal MIME-Type",
        "715": "Content busy",
        "716": "Resource not found",
        "717": "Play speed not supported",
        "718": "Invalid InstanceID",
        "737": "No DNS Server",
        "738": "Bad Domain Name",
        "739": "Server Error",
        "800": "Command not supported or not a coordinator",
    },
    "RenderingControl": {
        "701": "Invalid Name",
        "702": "Invalid InstanceID",
    },
    "ContentDirectory": {
        "701": "No such object",
        "702": "Invalid CurrentTagValue",
        "703": "Invalid NewTagValue",
        "704": "Required tag",
        "705": "Read only tag",
        "706": "Parameter Mismatch",
        "708": "Unsupported or invalid search criteria",
        "709": "Unsupported or invalid sort criteria",
        "710": "No such container",
        "711": "Restricted object",
        "712": "Bad metadata",
        "713": "Restricted parent object",
        "714": "No such source resource",
        "715": "Resource access denied",
        "716": "Transfer busy",
        "717": "No such file transfer",
        "718": "No such destination resource",
        "719": "Destination resource access denied",
        "720": "Cannot process the request",
    },
}


@dataclass(frozen=True)
class Registry:
    """Read-only lookup tables shared by the Sonos services."""

    templates: Mapping[str, Mapping[str, ActionTemplate]] = field(
        default_factory=lambda: MappingProxyType(ACTION_TEMPLATES)
    )
    music_services: Mapping[str, str] = field(default_factory=lambda: MappingProxyType(MUSIC_SERVICES))
    stream_classes: frozenset = UPNP_CLASSES_STREAM
    queue_classes: frozenset = UPNP_CLASSES_QUEUE
    unsupported_classes: frozenset = UPNP_CLASSES_UNSUPPORTED

    def template(self, endpoint: str, action_name: str) -> ActionTemplate:
        actions = self.templates.get(endpoint)
        if actions is None:
            raise SchemaError(f"Unknown endpoint {endpoint}")
        template = actions.get(action_name)
        if template is None:
            raise SchemaError(f"Unknown action {action_name} for endpoint {endpoint}")
        return template

    def service_name(self, service_id: str) -> str:
        if not service_id:
            return ""
        return self.music_services.get(service_id, "")

    def handling_mode(self, upnp_class: str) -> str:
        if not upnp_class:
            return ""
        if upnp_class in self.unsupported_classes:
            return "unsupported"
        if upnp_class in self.stream_classes:
            return "stream"
        if upnp_class in self.queue_classes:
            return "queue"
        return "unsupported"

    @staticmethod
    def fault_message(service: str, code: Optional[str]) -> str:
        if not code:
            return "unknown error"
        message = SERVICE_ERRORS.get(service, {}).get(code) or UPNP_ERRORS.get(code)
        return message or "unknown error"
