from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Optional
from urllib.parse import unquote, urlparse
from xml.etree import ElementTree
from xml.sax.saxutils import escape as xml_escape

from services.errors import InvalidResponseError, MalformedItemError
from services.registry import Registry


DIDL_NS = "urn:schemas-upnp-org:metadata-1-0/DIDL-Lite/"
DC_NS = "http://purl.org/dc/elements/1.1/"
UPNP_NS = "urn:schemas-upnp-org:metadata-1-0/upnp/"
RINCON_NS = "urn:schemas-rinconnetworks-com:metadata-1-0/"

ITEM_TAGS = {"item", "container"}

AUDIO_MIME_TYPES = {
    ".mp3": "audio/mpeg",
    ".mp4": "audio/mp4",
    ".flac": "audio/flac",
    ".m4a": "audio/x-m4a",
    ".ogg": "application/ogg",
    ".wma": "audio/x-ms-wma",
}

STREAM_PREFIXES = ("x-sonosapi-stream:", "x-sonosapi-radio:", "x-rincon-mp3radio:", "x-sonosapi-hls:", "aac:")
SPOTIFY_REGION = "3079"


@dataclass(frozen=True)
class DidlItem:
    id: str
    title: str
    artist: str = ""
    uri: str = ""
    art_uri: str = ""
    art_uris: tuple[str, ...] = field(default_factory=tuple)
    raw_metadata: str = ""
    service_id: str = ""
    service_name: str = ""
    radio_id: str = ""
    upnp_class: str = ""
    handling_mode: str = ""

    def to_dict(self) -> dict:
        data = asdict(self)
        data["art_uris"] = list(self.art_uris)
        return data


def get_service_id(uri: Optional[str]) -> str:
    """Music service id between ``?sid=`` and ``&flags=``, or an empty string."""

    if not uri:
        return ""
    start = uri.find("?sid=")
    end = uri.find("&flags=")
    if start < 0 or end < 0:
        return ""
    start += len("?sid=")
    if end <= start:
        return ""
    return uri[start:end]


def get_radio_id(uri: Optional[str]) -> str:
    # TuneIn only: x-sonosapi-stream:s24903?sid=254&flags=8224&sn=0
    if not uri or not uri.startswith("x-sonosapi-stream:") or "sid=254" not in uri:
        return ""
    end = uri.find("?sid=254")
    if end < 0:
        return ""
    return uri[len("x-sonosapi-stream:") : end]


def get_upnp_class(metadata: Optional[str]) -> str:
    if not metadata:
        return ""
    match = re.search(r"<upnp:class>([^<]*)</upnp:class>", metadata)
    return match.group(1).strip() if match else ""


def _child_text(node: ElementTree.Element, tag: str) -> Optional[str]:
    child = node.find(tag)
    if child is None:
        return None
    return child.text or ""


def parse_list(raw_xml: Optional[str], item_tag: str, *, registry: Registry) -> list[DidlItem]:
    """Parse a DIDL-Lite document into one DidlItem per ``item``/``container`` child."""

    if item_tag not in ITEM_TAGS:
        raise ValueError(f"item tag must be one of {sorted(ITEM_TAGS)}, got {item_tag!r}")
    if not raw_xml or not raw_xml.strip():
        return []
    try:
        root = ElementTree.fromstring(raw_xml)
    except ElementTree.ParseError as exc:
        raise InvalidResponseError(f"DIDL-Lite is not well-formed: {exc}") from exc

    items: list[DidlItem] = []
    for node in root.findall(f"{{{DIDL_NS}}}{item_tag}"):
        item_id = node.get("id")
        if item_id is None:
            raise MalformedItemError(f"DIDL-Lite {item_tag} without id")
        title = _child_text(node, f"{{{DC_NS}}}title")
        if title is None:
            raise MalformedItemError(f"DIDL-Lite {item_tag} {item_id} without title")

        uri = _child_text(node, f"{{{DIDL_NS}}}res") or ""
        service_id = get_service_id(uri)
        upnp_class = (_child_text(node, f"{{{UPNP_NS}}}class") or "").strip()
        art_uris = tuple(el.text or "" for el in node.findall(f"{{{UPNP_NS}}}albumArtURI"))
        items.append(
            DidlItem(
                id=item_id,
                title=title,
                artist=_child_text(node, f"{{{DC_NS}}}creator") or "",
                uri=uri,
                art_uri=art_uris[0] if art_uris else "",
                art_uris=art_uris,
                raw_metadata=_child_text(node, f"{{{RINCON_NS}}}resMD") or "",
                service_id=service_id,
                service_name=registry.service_name(service_id),
                radio_id=get_radio_id(uri),
                upnp_class=upnp_class,
                handling_mode=registry.handling_mode(upnp_class),
            )
        )
    return items


def _didl(item_id: str, title: str, upnp_class: str, *, res: str = "", desc: str = "", parent_id: str = "-1") -> str:
    parts = [
        '<DIDL-Lite xmlns:dc="http://purl.org/dc/elements/1.1/" '
        'xmlns:upnp="urn:schemas-upnp-org:metadata-1-0/upnp/" '
        'xmlns:r="urn:schemas-rinconnetworks-com:metadata-1-0/" '
        'xmlns="urn:schemas-upnp-org:metadata-1-0/DIDL-Lite/">',
        f'<item id="{xml_escape(item_id)}" parentID="{xml_escape(parent_id)}" restricted="true">',
        f"<dc:title>{xml_escape(title)}</dc:title>",
        f"<upnp:class>{upnp_class}</upnp:class>",
    ]
    if res:
        parts.append(res)
    if desc:
        parts.append(f'<desc id="cdudn" nameSpace="urn:schemas-rinconnetworks-com:metadata-1-0/">{desc}</desc>')
    parts.append("</item></DIDL-Lite>")
    return "".join(parts)


def item_metadata(item: DidlItem) -> str:
    # Local library entries are served by the household, not a music service.
    parent_id = item.id.rsplit("/", 1)[0] if "/" in item.id else "-1"
    return _didl(
        item.id,
        item.title,
        item.upnp_class or "object.item",
        desc="RINCON_AssociatedZPUDN",
        parent_id=parent_id,
    )


def generate_metadata(uri: str, title: str = "") -> str:
    """Best-guess DIDL-Lite for a URI; empty string when nothing sensible can be said."""

    if not uri:
        return ""
    lowered = uri.lower()

    if lowered.startswith(STREAM_PREFIXES):
        return _didl("R:0/0/0", title or "Radio", "object.item.audioItem.audioBroadcast", desc="SA_RINCON65031_")

    if lowered.startswith("x-sonos-spotify:"):
        track = unquote(uri[len("x-sonos-spotify:") :].split("?", 1)[0])
        return _didl(
            f"00032020{track}",
            title or track,
            "object.item.audioItem.musicTrack",
            desc=f"SA_RINCON{SPOTIFY_REGION}_X_#Svc{SPOTIFY_REGION}-0-Token",
        )

    if lowered.startswith("x-rincon-cpcontainer:"):
        container = uri[len("x-rincon-cpcontainer:") :].split("?", 1)[0]
        return _didl(container, title or container, "object.container.playlistContainer")

    parsed = urlparse(uri)
    if parsed.scheme in {"http", "https", "x-file-cifs"}:
        path = unquote(parsed.path or "")
        for suffix, mime in AUDIO_MIME_TYPES.items():
            if path.lower().endswith(suffix):
                name = path.rsplit("/", 1)[-1]
                res = f'<res protocolInfo="http-get:*:{mime}:*">{xml_escape(uri)}</res>'
                return _didl("notification", title or name, "object.item.audioItem.musicTrack", res=res)
    return ""
