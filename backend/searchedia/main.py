"""Workspace entry point: logging, wiring, and lifecycle."""

import argparse
import asyncio
import logging
import os
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import redis

from searchedia.config import settings
from searchedia.db.database import create_engine, create_session_factory, init_db
from searchedia.sync.engine import Notifier, ReconciliationEngine
from searchedia.sync.identity import InvalidTokenError, TokenIdentityProvider
from searchedia.sync.local_cache import LocalCache, close_local_cache_client, get_local_cache_client
from searchedia.sync.remote_store import RemoteStore
from searchedia.sync.scheduler import start_reconciliation_scheduler, stop_reconciliation_scheduler
from searchedia.sync.state import StateStore

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Plain log lines in dev mode, one JSON object per line otherwise."""
    if not settings.dev_mode:
        logging.basicConfig(
            level=getattr(logging, settings.log_level.upper(), logging.INFO),
            format='{"time":"%(asctime)s","level":"%(levelname)s","name":"%(name)s","message":"%(message)s"}',
        )
    else:
        logging.basicConfig(
            level=getattr(logging, settings.log_level.upper(), logging.INFO),
            format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        )


@dataclass
class Workspace:
    state: StateStore
    identity: TokenIdentityProvider
    engine: ReconciliationEngine


@asynccontextmanager
async def open_workspace(
    database_url: str | None = None,
    cache_client: redis.Redis | None = None,
    identity: TokenIdentityProvider | None = None,
    notify: Notifier | None = None,
    reconcile_interval_minutes: int | None = None,
) -> AsyncIterator[Workspace]:
    """Wire stores and engine, start the session, and tear down on exit."""
    db_engine = create_engine(database_url)
    await init_db(db_engine)
    owns_cache_client = cache_client is None
    client = cache_client or get_local_cache_client()

    state = StateStore()
    identity = identity or TokenIdentityProvider()
    engine = ReconciliationEngine(
        state,
        LocalCache(client),
        RemoteStore(create_session_factory(db_engine)),
        identity,
        notify=notify,
    )
    await engine.start()
    start_reconciliation_scheduler(engine, reconcile_interval_minutes)
    try:
        yield Workspace(state=state, identity=identity, engine=engine)
    finally:
        stop_reconciliation_scheduler()
        await engine.stop()
        if owns_cache_client:
            close_local_cache_client()
        await db_engine.dispose()


async def _sync_once(token: str | None) -> int:
    async with open_workspace(reconcile_interval_minutes=0) as workspace:
        if token:
            try:
                workspace.identity.sign_in_with_token(token)
            except InvalidTokenError as e:
                logger.error(f"Sign-in failed: {e}")
                return 1
            await workspace.engine.wait_idle()
        if not workspace.engine.is_authenticated:
            logger.info("No session; local cache holds %d projects", len(workspace.state.snapshot().projects))
            return 0
        report = await workspace.engine.sync_all()
        return 0 if report.ok else 2


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Reconcile the local workspace with the remote store")
    parser.add_argument(
        "--token",
        default=os.environ.get("SEARCHEDIA_TOKEN"),
        help="Bearer token to sign in with (defaults to $SEARCHEDIA_TOKEN)",
    )
    args = parser.parse_args(argv)
    configure_logging()
    return asyncio.run(_sync_once(args.token))


if __name__ == "__main__":
    sys.exit(main())
