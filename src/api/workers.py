import asyncio
import logging
import os

from api import state
from scheduling.meeting_scheduler import MeetingScheduler

logger = logging.getLogger(__name__)

RECONCILE_INTERVAL_S = float(os.getenv("RECONCILE_INTERVAL_S", "300"))


async def _reconciliation_worker() -> None:
    """Periodically link meeting records to tasks that are still 'pending'.

    Covers the window where the calendar event was created but the task
    update was lost (crash, store error).
    """
    logger.info("Meeting reconciliation worker started")

    while True:
        await asyncio.sleep(RECONCILE_INTERVAL_S)

        if state.store is None or state.google_auth_store is None:
            continue

        try:
            scheduler = MeetingScheduler(state.store, state.google_auth_store)
            repaired = await scheduler.reconcile()
            if repaired > 0:
                logger.warning(f"Reconciled {repaired} meeting task(s)")
        except Exception as e:
            logger.error(f"Error in reconciliation worker: {e}")
