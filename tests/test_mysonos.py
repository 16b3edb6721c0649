import asyncio
from xml.sax.saxutils import escape

import pytest

from services.errors import ItemNotFoundError
from tests.mocks.fake_sonos import KITCHEN


DIDL_OPEN = (
    '<DIDL-Lite xmlns:dc="http://purl.org/dc/elements/1.1/" '
    'xmlns:upnp="urn:schemas-upnp-org:metadata-1-0/upnp/" '
    'xmlns:r="urn:schemas-rinconnetworks-com:metadata-1-0/" '
    'xmlns="urn:schemas-upnp-org:metadata-1-0/DIDL-Lite/">'
)


def _res_md(upnp_class: str) -> str:
    return (
        DIDL_OPEN
        + '<item id="x" parentID="y" restricted="true"><dc:title>t</dc:title>'
        + f"<upnp:class>{upnp_class}</upnp:class></item></DIDL-Lite>"
    )


def _favorite(item_id: str, title: str, uri: str, upnp_class: str, art: str = "") -> str:
    return (
        f'<item id="{item_id}" parentID="FV:2" restricted="false"><dc:title>{title}</dc:title>'
        "<upnp:class>object.itemobject.item.sonos-favorite</upnp:class>"
        f"<upnp:albumArtURI>{escape(art)}</upnp:albumArtURI>"
        f"<res>{escape(uri)}</res><r:resMD>{escape(_res_md(upnp_class))}</r:resMD></item>"
    )


FAVORITES = (
    DIDL_OPEN
    + _favorite(
        "FV:2/1",
        "Radio Paradise",
        "x-sonosapi-stream:s13606?sid=254&flags=8224&sn=0",
        "object.item.audioItem.audioBroadcast",
        "https://cdn-profiles.tunein.com/s13606/images/logoq.png",
    )
    + _favorite(
        "FV:2/2",
        "Kind of Blue",
        "x-rincon-cpcontainer:1004206calbum%3a123?sid=201&flags=8300&sn=14",
        "object.container.album.musicAlbum",
        "/getaa?s=1&u=x-file-cifs%3a%2f%2fnas%2fcover.jpg",
    )
    + _favorite(
        "FV:2/3",
        "Some Podcast",
        "x-rincon-cpcontainer:podcast?sid=254&flags=8300&sn=1",
        "object.container.podcast.#podcastContainer",
    )
    + "</DIDL-Lite>"
)

PLAYLISTS = (
    DIDL_OPEN
    + '<container id="SQ:3" parentID="SQ:" restricted="true"><dc:title>Dinner Jazz</dc:title>'
    + "<upnp:class>object.container.playlistContainer</upnp:class>"
    + "<res>file:///jffs/settings/savedqueues.rsq#3</res></container></DIDL-Lite>"
)

QUEUE = (
    DIDL_OPEN
    + '<item id="Q:0/1" parentID="Q:0" restricted="true"><dc:title>So What</dc:title>'
    + "<dc:creator>Miles Davis</dc:creator><upnp:albumArtURI>/getaa?s=1&amp;u=abc</upnp:albumArtURI>"
    + "<upnp:class>object.item.audioItem.musicTrack</upnp:class>"
    + "<res>x-sonos-http:track%3a1.mp4?sid=201&amp;flags=8224&amp;sn=14</res></item></DIDL-Lite>"
)

ALBUMS = (
    DIDL_OPEN
    + '<container id="A:ALBUM/Kind%20of%20Blue" parentID="A:ALBUM" restricted="true">'
    + "<dc:title>Kind of Blue</dc:title><dc:creator>Miles Davis</dc:creator>"
    + "<upnp:class>object.container.album.musicAlbum</upnp:class>"
    + "<upnp:albumArtURI>/getaa?u=x-file-cifs%3a%2f%2fnas%2fkob.flac</upnp:albumArtURI>"
    + "<res>x-rincon-playlist:RINCON_A#A:ALBUM/Kind%20of%20Blue</res></container></DIDL-Lite>"
)

TRACKS = (
    DIDL_OPEN
    + '<item id="S://nas/Music/Dont.flac" parentID="A:TRACKS" restricted="true">'
    + "<dc:title>Don't Know Why</dc:title><dc:creator>Norah Jones</dc:creator>"
    + "<upnp:class>object.item.audioItem.musicTrack</upnp:class>"
    + "<res>x-file-cifs://nas/Music/Don&amp;apos;t%20Know%20Why.flac</res></item></DIDL-Lite>"
)


@pytest.fixture
def library(household):
    household.browse["FV:2"] = (FAVORITES, 3)
    household.browse["SQ:"] = (PLAYLISTS, 1)
    household.browse["Q:0"] = (QUEUE, 1)
    household.browse["A:ALBUM:Blue"] = (ALBUMS, 1)
    household.browse["A:TRACKS:Don"] = (TRACKS, 1)
    return household


def test_get_my_sonos_rederives_class_and_mode(my_sonos, library):
    items = asyncio.run(my_sonos.get_my_sonos(KITCHEN))

    assert [i.title for i in items] == ["Radio Paradise", "Kind of Blue", "Some Podcast", "Dinner Jazz"]
    assert [i.handling_mode for i in items] == ["stream", "queue", "unsupported", "queue"]
    assert items[0].upnp_class == "object.item.audioItem.audioBroadcast"
    assert items[0].service_name == "TuneIn"
    assert items[1].service_name == "Amazon Music"
    assert [i.radio_id for i in items] == ["s13606", "", "", ""]
    assert items[1].art_uri == "http://192.168.1.10:1400/getaa?s=1&u=x-file-cifs%3a%2f%2fnas%2fcover.jpg"
    assert items[0].art_uri.startswith("https://cdn-profiles.tunein.com/")

    browse = [c.args for c in library.calls if c.action == "Browse"]
    assert [(b["ObjectID"], b["RequestedCount"]) for b in browse] == [("FV:2", "200"), ("SQ:", "999")]


def test_get_my_sonos_without_favorites(my_sonos, library):
    library.browse["FV:2"] = ("", 0)
    with pytest.raises(ItemNotFoundError):
        asyncio.run(my_sonos.get_my_sonos(KITCHEN))


def test_get_queue(my_sonos, library):
    items = asyncio.run(my_sonos.get_queue(KITCHEN))
    assert [(i.title, i.artist, i.handling_mode) for i in items] == [("So What", "Miles Davis", "queue")]
    assert items[0].art_uri == "http://192.168.1.10:1400/getaa?s=1&u=abc"


def test_empty_queue(my_sonos, library):
    library.browse["Q:0"] = ("", 0)
    assert asyncio.run(my_sonos.get_queue(KITCHEN)) == []


def test_export_item(my_sonos, library):
    exported = asyncio.run(my_sonos.export_item(KITCHEN, "Blue"))
    assert exported["uri"].startswith("x-rincon-cpcontainer:1004206calbum")
    assert exported["queue"] is True
    assert "musicAlbum" in exported["metadata"]


def test_export_item_no_match(my_sonos, library):
    with pytest.raises(ItemNotFoundError):
        asyncio.run(my_sonos.export_item(KITCHEN, "Nothing like this"))
    with pytest.raises(ValueError):
        asyncio.run(my_sonos.export_item(KITCHEN, ""))


def test_queue_item_enqueues_as_next(my_sonos, library):
    result = asyncio.run(my_sonos.queue_item(KITCHEN, "Dinner"))

    call = next(c for c in library.calls if c.action == "AddURIToQueue")
    assert call.args["EnqueuedURI"] == "file:///jffs/settings/savedqueues.rsq#3"
    assert call.args["EnqueueAsNext"] == "1"
    assert call.args["DesiredFirstTrackNumberEnqueued"] == "0"
    assert result["NewQueueLength"] == "1"


def test_queue_item_skips_stream_matches(my_sonos, library):
    with pytest.raises(ItemNotFoundError):
        asyncio.run(my_sonos.queue_item(KITCHEN, "Radio"))


def test_stream_item_plays_with_volume(my_sonos, library):
    item = asyncio.run(my_sonos.stream_item(KITCHEN, "Paradise", volume=12))

    kitchen = library.players[KITCHEN.hostname]
    assert item.title == "Radio Paradise"
    assert kitchen.uri == "x-sonosapi-stream:s13606?sid=254&flags=8224&sn=0"
    assert kitchen.volume == 12
    assert kitchen.state == "PLAYING"
    assert library.actions()[-3:] == ["SetAVTransportURI", "SetVolume", "Play"]


def test_stream_item_keeps_volume_by_default(my_sonos, library):
    asyncio.run(my_sonos.stream_item(KITCHEN, "Paradise"))
    assert "SetVolume" not in library.actions()


def test_library_albums_matching_search(my_sonos, library):
    items = asyncio.run(my_sonos.get_library_items(KITCHEN, "albums", "Blue"))

    assert [(i.title, i.artist, i.handling_mode) for i in items] == [("Kind of Blue", "Miles Davis", "queue")]
    assert items[0].uri == "x-rincon-playlist:RINCON_A#A:ALBUM/Kind%20of%20Blue"
    assert items[0].art_uri == "http://192.168.1.10:1400/getaa?u=x-file-cifs%3a%2f%2fnas%2fkob.flac"
    browse = next(c.args for c in library.calls if c.action == "Browse")
    assert (browse["ObjectID"], browse["RequestedCount"]) == ("A:ALBUM:Blue", "999")


def test_library_tracks_restore_apostrophes(my_sonos, library):
    items = asyncio.run(my_sonos.get_library_items(KITCHEN, "tracks", "Don"))
    assert items[0].title == "Don't Know Why"
    assert items[0].uri == "x-file-cifs://nas/Music/Don't%20Know%20Why.flac"


@pytest.mark.parametrize("kind,object_id", [("playlists", "A:PLAYLISTS:"), ("artists", "A:ARTIST:")])
def test_library_without_search_browses_the_whole_kind(my_sonos, library, kind, object_id):
    assert asyncio.run(my_sonos.get_library_items(KITCHEN, kind)) == []
    assert [c.args["ObjectID"] for c in library.calls] == [object_id]


def test_library_unknown_kind(my_sonos, library):
    with pytest.raises(ValueError):
        asyncio.run(my_sonos.get_library_items(KITCHEN, "songs"))
    assert library.calls == []


def test_export_library_item(my_sonos, library):
    exported = asyncio.run(my_sonos.export_library_item(KITCHEN, "albums", "Blue"))

    assert exported["uri"] == "x-rincon-playlist:RINCON_A#A:ALBUM/Kind%20of%20Blue"
    assert exported["queue"] is True
    assert "<dc:title>Kind of Blue</dc:title>" in exported["metadata"]
    assert "object.container.album.musicAlbum" in exported["metadata"]
    assert "RINCON_AssociatedZPUDN" in exported["metadata"]


def test_export_library_item_no_match(my_sonos, library):
    with pytest.raises(ItemNotFoundError):
        asyncio.run(my_sonos.export_library_item(KITCHEN, "albums", "Nothing"))
    with pytest.raises(ValueError):
        asyncio.run(my_sonos.export_library_item(KITCHEN, "albums", ""))
