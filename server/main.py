import asyncio
import logging
import os

from fastapi import FastAPI

from api.sonos import create_sonos_router
from services.actions import SONOS_PORT, ActionDispatcher, DeviceRef
from services.mysonos import MySonosService
from services.notification import DEFAULT_DURATION, DEFAULT_DURATION_MARGIN, NotificationService
from services.registry import Registry
from services.snapshot import DEFAULT_NON_RESTORABLE_MARKERS, SnapshotService
from services.soap import SoapTransport
from services.topology import TopologyResolver


logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
log = logging.getLogger("sonoscue")

SONOS_PLAYER_HOST = os.getenv("SONOS_PLAYER_HOST", "").strip()
SONOS_PLAYER_PORT = int(os.getenv("SONOS_PLAYER_PORT", str(SONOS_PORT)))
SONOS_HTTP_USER_AGENT = os.getenv("SONOS_HTTP_USER_AGENT", "SonosCue/Sonos").strip() or "SonosCue/Sonos"
SONOS_CONTROL_TIMEOUT = float(os.getenv("SONOS_CONTROL_TIMEOUT", "8.0"))
SONOS_NOTIFICATION_DURATION = os.getenv("SONOS_NOTIFICATION_DURATION", DEFAULT_DURATION).strip() or DEFAULT_DURATION
SONOS_DURATION_MARGIN = float(os.getenv("SONOS_DURATION_MARGIN", str(DEFAULT_DURATION_MARGIN)))
SONOS_NON_RESTORABLE_MARKERS = tuple(
    marker.strip()
    for marker in os.getenv("SONOS_NON_RESTORABLE_MARKERS", ",".join(DEFAULT_NON_RESTORABLE_MARKERS)).split(",")
    if marker.strip()
)

if not SONOS_PLAYER_HOST:
    log.warning("SONOS_PLAYER_HOST is not set; requests must name a host explicitly")

shutdown_event = asyncio.Event()

registry = Registry()
soap_transport = SoapTransport(
    registry=registry,
    http_user_agent=SONOS_HTTP_USER_AGENT,
    control_timeout=SONOS_CONTROL_TIMEOUT,
)
dispatcher = ActionDispatcher(registry=registry, transport=soap_transport)
topology = TopologyResolver(dispatcher=dispatcher)
snapshots = SnapshotService(dispatcher=dispatcher, non_restorable_markers=SONOS_NON_RESTORABLE_MARKERS)
notifications = NotificationService(
    snapshots=snapshots,
    duration_margin=SONOS_DURATION_MARGIN,
    stop_event=shutdown_event,
)
my_sonos = MySonosService(dispatcher=dispatcher)

app = FastAPI(title="SonosCue", version="0.1.0")

app.include_router(
    create_sonos_router(
        device=DeviceRef(hostname=SONOS_PLAYER_HOST or "localhost", port=SONOS_PLAYER_PORT),
        dispatcher=dispatcher,
        topology=topology,
        snapshots=snapshots,
        notifications=notifications,
        my_sonos=my_sonos,
        default_duration=SONOS_NOTIFICATION_DURATION,
    )
)


@app.on_event("startup")
async def _startup_events() -> None:
    shutdown_event.clear()
    log.info(
        "SonosCue ready (player=%s:%s, timeout=%.1fs, non_restorable=%s)",
        SONOS_PLAYER_HOST or "-",
        SONOS_PLAYER_PORT,
        SONOS_CONTROL_TIMEOUT,
        ",".join(SONOS_NON_RESTORABLE_MARKERS),
    )


@app.on_event("shutdown")
async def _shutdown_events() -> None:
    # Pending notification waits end now and restore immediately.
    shutdown_event.set()
