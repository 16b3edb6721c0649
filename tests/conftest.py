"""
Pytest fixtures: a three-room household behind a mocked Sonos transport.
"""

import pytest

from services.actions import ActionDispatcher
from services.mysonos import MySonosService
from services.notification import NotificationService
from services.registry import Registry
from services.snapshot import SnapshotService
from services.soap import SoapTransport
from services.topology import TopologyResolver
from tests.mocks.fake_sonos import BATH, KITCHEN, LIVING, SUB, FakeGroup, FakePlayer, FakeSonos


@pytest.fixture
def household() -> FakeSonos:
    players = [
        FakePlayer(hostname=KITCHEN.hostname, uuid="RINCON_A", name="Kitchen", volume=20),
        FakePlayer(hostname=LIVING.hostname, uuid="RINCON_B", name="Living", volume=30),
        FakePlayer(hostname=BATH.hostname, uuid="RINCON_C", name="Bath", volume=15),
        FakePlayer(hostname=SUB.hostname, uuid="RINCON_D", name="Living", invisible=True),
    ]
    groups = [
        # Coordinator deliberately listed after a member.
        FakeGroup(coordinator="RINCON_A", members=["RINCON_B", "RINCON_A", "RINCON_D"]),
        FakeGroup(coordinator="RINCON_C", members=["RINCON_C"]),
    ]
    fake = FakeSonos(players, groups)
    # Members of a group point at their coordinator.
    fake.players[LIVING.hostname].uri = "x-rincon:RINCON_A"
    return fake


@pytest.fixture
def registry() -> Registry:
    return Registry()


@pytest.fixture
def dispatcher(household: FakeSonos, registry: Registry) -> ActionDispatcher:
    transport = SoapTransport(
        registry=registry,
        http_user_agent="SonosCue/Test",
        control_timeout=1.0,
        transport=household.transport(),
    )
    return ActionDispatcher(registry=registry, transport=transport)


@pytest.fixture
def topology(dispatcher: ActionDispatcher) -> TopologyResolver:
    return TopologyResolver(dispatcher=dispatcher)


@pytest.fixture
def snapshots(dispatcher: ActionDispatcher) -> SnapshotService:
    return SnapshotService(dispatcher=dispatcher)


@pytest.fixture
def notifications(snapshots: SnapshotService) -> NotificationService:
    return NotificationService(snapshots=snapshots, duration_margin=0)


@pytest.fixture
def my_sonos(dispatcher: ActionDispatcher) -> MySonosService:
    return MySonosService(dispatcher=dispatcher)
