from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Optional
from xml.etree import ElementTree

from services.actions import ActionDispatcher, DeviceRef
from services.errors import InvalidResponseError, PlayerNotFoundError
from services.registry import ZONE_GROUP_TOPOLOGY


log = logging.getLogger("sonoscue.topology")


@dataclass(frozen=True)
class GroupMember(DeviceRef):
    friendly_name: str = ""
    uuid: str = ""
    is_visible: bool = True

    def to_dict(self) -> dict:
        data = asdict(self)
        data["origin_url"] = self.origin_url
        return data


@dataclass(frozen=True)
class PlayerEntry(GroupMember):
    is_coordinator: bool = False
    group_index: int = 0


@dataclass
class GroupTopology:
    members: list[GroupMember]
    group_id: str = ""
    group_name: str = ""
    player_index: int = -1

    @property
    def coordinator(self) -> GroupMember:
        return self.members[0]

    def require_player(self) -> GroupMember:
        if self.player_index < 0 or self.player_index >= len(self.members):
            raise PlayerNotFoundError(f"Player is not a visible member of group {self.group_name or self.group_id}")
        return self.members[self.player_index]

    def to_dict(self) -> dict:
        return {
            "group_id": self.group_id,
            "group_name": self.group_name,
            "player_index": self.player_index,
            "members": [m.to_dict() for m in self.members],
        }


@dataclass
class ZoneGroup:
    coordinator_uuid: str
    group_id: str
    members: list[GroupMember] = field(default_factory=list)


def _member_from_node(node: ElementTree.Element) -> GroupMember:
    try:
        device = DeviceRef.from_url(node.get("Location") or "")
    except ValueError as exc:
        raise InvalidResponseError(f"Zone group member {node.get('UUID')} has no usable Location") from exc
    return GroupMember(
        hostname=device.hostname,
        port=device.port,
        friendly_name=node.get("ZoneName") or "",
        uuid=node.get("UUID") or "",
        is_visible=(node.get("Invisible") or "0").strip() != "1",
    )


def parse_zone_group_state(xml_text: str) -> list[ZoneGroup]:
    """Parse the ZoneGroupState document into groups in household order.

    Both layouts are accepted: ``<ZoneGroupState><ZoneGroups>...`` (current
    firmware) and a bare ``<ZoneGroups>`` root (older firmware). Satellites nested
    inside a member are not members of their own.
    """
    if not xml_text or not xml_text.strip():
        raise InvalidResponseError("ZoneGroupState is empty")
    try:
        root = ElementTree.fromstring(xml_text)
    except ElementTree.ParseError as exc:
        raise InvalidResponseError(f"ZoneGroupState is not well-formed: {exc}") from exc

    groups: list[ZoneGroup] = []
    for group_node in root.iter("ZoneGroup"):
        groups.append(
            ZoneGroup(
                coordinator_uuid=group_node.get("Coordinator") or "",
                group_id=group_node.get("ID") or "",
                members=[_member_from_node(n) for n in group_node.findall("ZoneGroupMember")],
            )
        )
    return groups


def coordinator_first(group: ZoneGroup) -> list[GroupMember]:
    coordinator = next((m for m in group.members if m.uuid == group.coordinator_uuid), None)
    if coordinator is None:
        raise InvalidResponseError(f"Coordinator {group.coordinator_uuid} is not a member of group {group.group_id}")
    ordered = [coordinator] + [m for m in group.members if m is not coordinator]
    return [m for m in ordered if m.is_visible]


def group_display_name(members: list[GroupMember]) -> str:
    if not members:
        return ""
    name = members[0].friendly_name
    if len(members) > 1:
        name = f"{name} + {len(members) - 1}"
    return name


class TopologyResolver:
    def __init__(self, *, dispatcher: ActionDispatcher) -> None:
        self._dispatcher = dispatcher

    async def all_groups(self, device: DeviceRef) -> list[ZoneGroup]:
        xml_text = await self._dispatcher.invoke(device, ZONE_GROUP_TOPOLOGY, "GetZoneGroupState", {})
        return parse_zone_group_state(xml_text)

    async def resolve_group_of(self, device: DeviceRef, player_name: Optional[str] = None) -> GroupTopology:
        groups = await self.all_groups(device)
        search_by_name = bool(player_name)

        matched_group: Optional[ZoneGroup] = None
        matched_hostname = ""
        for group in groups:
            for member in group.members:
                if not member.is_visible:
                    continue
                if search_by_name:
                    hit = member.friendly_name == player_name
                else:
                    hit = member.hostname == device.hostname
                if hit:
                    matched_group = group
                    matched_hostname = member.hostname
                    break
            if matched_group is not None:
                break

        if matched_group is None:
            target = player_name if search_by_name else device.hostname
            raise PlayerNotFoundError(f"Could not find visible player {target} in any group")

        members = coordinator_first(matched_group)
        player_index = next((i for i, m in enumerate(members) if m.hostname == matched_hostname), -1)
        if player_index < 0:
            log.warning("Player %s matched group %s but was filtered out", matched_hostname, matched_group.group_id)
        return GroupTopology(
            members=members,
            group_id=matched_group.group_id,
            group_name=group_display_name(members),
            player_index=player_index,
        )

    async def list_all_players(self, device: DeviceRef) -> list[PlayerEntry]:
        groups = await self.all_groups(device)
        players: list[PlayerEntry] = []
        for group_index, group in enumerate(groups):
            for member in group.members:
                if not member.is_visible:
                    continue
                players.append(
                    PlayerEntry(
                        hostname=member.hostname,
                        port=member.port,
                        friendly_name=member.friendly_name,
                        uuid=member.uuid,
                        is_visible=True,
                        is_coordinator=member.uuid == group.coordinator_uuid,
                        group_index=group_index,
                    )
                )
        return players
