import contextlib
from contextlib import asynccontextmanager
import asyncio
import logging

from prepkit.analytics.db import init_db as init_analytics_db
from prepkit.analytics.db import purge_old_records
from prepkit.core.rate_limit import purge_llm_rate_limit_events
from prepkit.services.llm import llm_enabled
from prepkit.store.db import init_db

logger = logging.getLogger(__name__)

PURGE_INTERVAL_SECONDS = 3600


def run_housekeeping() -> dict[str, int]:
    deleted = dict(purge_old_records())
    deleted["llm_rate_limit_events"] = purge_llm_rate_limit_events()
    return deleted


@asynccontextmanager
async def lifespan(app):
    init_db()
    init_analytics_db()
    if not llm_enabled():
        logger.warning("llm_disabled reason=missing_api_key")

    stop_event = asyncio.Event()

    async def periodic_housekeeping() -> None:
        while not stop_event.is_set():
            try:
                deleted = run_housekeeping()
                if any(deleted.values()):
                    logger.info("housekeeping_purge deleted=%s", deleted)
            except Exception as exc:  # pragma: no cover
                logger.warning("housekeeping_purge_failed: %s", exc)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=PURGE_INTERVAL_SECONDS)
            except asyncio.TimeoutError:
                continue

    purge_task = asyncio.create_task(periodic_housekeeping())
    yield
    stop_event.set()
    if not purge_task.done():
        purge_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await purge_task
