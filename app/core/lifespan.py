import contextlib
from contextlib import asynccontextmanager
import asyncio
import logging

from app.db.share_links import purge_expired_share_links
from app.db.store import close_connection, init_db
from app.services.payments import sweep_expired_subscriptions
from app.storage.object_store import LocalObjectStore, get_object_store

logger = logging.getLogger(__name__)

MAINTENANCE_INTERVAL_S = 3600


def run_maintenance() -> dict[str, int]:
    return {
        "share_links": purge_expired_share_links(),
        "subscriptions": sweep_expired_subscriptions(),
    }


@asynccontextmanager
async def lifespan(app):
    init_db()
    store = get_object_store()
    if isinstance(store, LocalObjectStore):
        store.ensure_root()

    stop_event = asyncio.Event()

    async def periodic_maintenance() -> None:
        while not stop_event.is_set():
            try:
                changed = run_maintenance()
                if any(changed.values()):
                    logger.info("maintenance_sweep changed=%s", changed)
            except Exception as exc:  # noqa: BLE001
                logger.warning("maintenance_sweep_failed: %s", exc, exc_info=True)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=MAINTENANCE_INTERVAL_S)
            except asyncio.TimeoutError:
                continue

    maintenance_task = asyncio.create_task(periodic_maintenance())
    yield
    stop_event.set()
    if not maintenance_task.done():
        maintenance_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await maintenance_task
    close_connection()
