"""Shared test fixtures for the workspace sync tests."""

import pytest
import pytest_asyncio
import redis
from sqlalchemy import event

from searchedia.db.database import create_engine, create_session_factory, init_db
from searchedia.sync.engine import ReconciliationEngine
from searchedia.sync.identity import TokenIdentityProvider
from searchedia.sync.local_cache import LocalCache
from searchedia.sync.remote_store import RemoteStore
from searchedia.sync.state import StateStore


# Monkey-patch JSONB columns to render as JSON for SQLite tests.
from sqlalchemy.dialects.postgresql import JSONB as _JSONB  # noqa: E402


def _register_jsonb_for_sqlite():
    """Register a compilation rule so JSONB compiles to JSON on SQLite."""
    from sqlalchemy.ext.compiler import compiles

    @compiles(_JSONB, "sqlite")
    def _compile_jsonb_sqlite(element, compiler, **kw):
        return "JSON"


_register_jsonb_for_sqlite()


def _set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


class FakeRedis:
    """Dictionary-backed stand-in for the device Redis client."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.fail = False
        self.closed = False

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("cache offline")

    def get(self, key):
        self._check()
        return self.data.get(key)

    def set(self, key, value):
        self._check()
        self.data[key] = value
        return True

    def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    def close(self):
        self.closed = True


# A file-backed database gives every session its own connection, so
# concurrent background writes behave like they do against Postgres.
@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'remote.db'}")
    event.listen(engine.sync_engine, "connect", _set_sqlite_pragma)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def db(session_factory):
    """Yield a fresh async session for direct repository tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def remote(session_factory) -> RemoteStore:
    return RemoteStore(session_factory)


@pytest.fixture
def cache_client() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def local_cache(cache_client) -> LocalCache:
    return LocalCache(cache_client, prefix="test")


@pytest.fixture
def identity() -> TokenIdentityProvider:
    return TokenIdentityProvider()


@pytest.fixture
def state() -> StateStore:
    return StateStore()


@pytest.fixture
def notifications() -> list[tuple[str, str]]:
    return []


@pytest_asyncio.fixture
async def engine(state, local_cache, remote, identity, notifications):
    eng = ReconciliationEngine(
        state,
        local_cache,
        remote,
        identity,
        initial_load_timeout=0.5,
        sign_out_timeout=0.2,
        notify=lambda level, message: notifications.append((level, message)),
    )
    yield eng
    await eng.wait_idle()
