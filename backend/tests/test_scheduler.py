"""Tests for the periodic reconciliation job."""

from unittest.mock import AsyncMock, MagicMock

from searchedia.sync.engine import CollectionReport, SyncReport
from searchedia.sync.scheduler import (
    RECONCILE_JOB_ID,
    get_scheduler,
    reconcile_workspace_job,
    start_reconciliation_scheduler,
    stop_reconciliation_scheduler,
)


def _make_engine(authenticated: bool = True, ready: bool = True):
    engine = MagicMock()
    engine.is_authenticated = authenticated
    engine.is_ready = ready
    engine.sync_all = AsyncMock(
        return_value=SyncReport(CollectionReport("folders"), CollectionReport("projects"))
    )
    return engine


async def test_job_skips_without_authenticated_session():
    engine = _make_engine(authenticated=False)
    await reconcile_workspace_job(engine)
    engine.sync_all.assert_not_awaited()


async def test_job_skips_while_initial_load_pending():
    engine = _make_engine(ready=False)
    await reconcile_workspace_job(engine)
    engine.sync_all.assert_not_awaited()


async def test_job_runs_full_reconciliation():
    engine = _make_engine()
    await reconcile_workspace_job(engine)
    engine.sync_all.assert_awaited_once()


async def test_job_swallows_and_logs_failures(caplog):
    engine = _make_engine()
    engine.sync_all.side_effect = RuntimeError("boom")

    await reconcile_workspace_job(engine)

    assert "Periodic reconciliation failed: boom" in caplog.text


async def test_start_and_stop_scheduler():
    engine = _make_engine()

    assert start_reconciliation_scheduler(engine, interval_minutes=0) is None

    scheduler = start_reconciliation_scheduler(engine, interval_minutes=5)
    try:
        assert scheduler is get_scheduler()
        assert scheduler.get_job(RECONCILE_JOB_ID) is not None
        assert start_reconciliation_scheduler(engine, interval_minutes=5) is scheduler
    finally:
        stop_reconciliation_scheduler()

    assert get_scheduler() is None
