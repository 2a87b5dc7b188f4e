"""Periodic full reconciliation.

Failed background writes and failed stale-row purges are not retried on
their own; this job runs ``sync_all`` on an interval so they converge
without user action.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from searchedia.config import settings
from searchedia.sync.engine import ReconciliationEngine

logger = logging.getLogger(__name__)

RECONCILE_JOB_ID = "workspace_reconcile"

# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None


async def reconcile_workspace_job(engine: ReconciliationEngine) -> None:
    """Run one reconciliation pass if a signed-in session is ready."""
    if not engine.is_authenticated or not engine.is_ready:
        logger.debug("Periodic reconciliation skipped: no ready authenticated session")
        return

    try:
        report = await engine.sync_all()
    except Exception as e:
        logger.error(f"Periodic reconciliation failed: {e}")
        return

    logger.info(
        "Periodic reconciliation: folders %d upserted/%d purged, projects %d upserted/%d purged%s",
        report.folders.upserted,
        report.folders.purged,
        report.projects.upserted,
        report.projects.purged,
        "" if report.ok else " (with failures)",
    )


def start_reconciliation_scheduler(
    engine: ReconciliationEngine,
    interval_minutes: int | None = None,
) -> AsyncIOScheduler | None:
    """Start the periodic reconciliation job. Returns None when disabled."""
    global _scheduler

    minutes = settings.reconcile_interval_minutes if interval_minutes is None else interval_minutes
    if minutes <= 0:
        logger.info("Periodic reconciliation disabled")
        return None

    if _scheduler is not None:
        logger.warning("Reconciliation scheduler already running")
        return _scheduler

    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        reconcile_workspace_job,
        IntervalTrigger(minutes=minutes),
        args=[engine],
        id=RECONCILE_JOB_ID,
        name="Reconcile workspace with remote store",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    _scheduler.start()
    logger.info("Reconciliation scheduler started (every %d min)", minutes)
    return _scheduler


def stop_reconciliation_scheduler() -> None:
    """Stop the periodic reconciliation job."""
    global _scheduler

    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Reconciliation scheduler stopped")


def get_scheduler() -> AsyncIOScheduler | None:
    return _scheduler
