"""Tests for workspace wiring and configuration."""

import pytest

from searchedia.config import Settings
from searchedia.db.database import create_engine, create_session_factory
from searchedia.main import open_workspace
from searchedia.sync.identity import create_access_token
from searchedia.sync.remote_store import RemoteStore


def test_production_settings_reject_insecure_secret():
    with pytest.raises(ValueError, match="JWT_SECRET_KEY"):
        Settings(dev_mode=False, jwt_secret_key="secret")


def test_initial_load_timeout_must_be_positive():
    with pytest.raises(ValueError, match="INITIAL_LOAD_TIMEOUT_SECONDS"):
        Settings(initial_load_timeout_seconds=0)


async def test_open_workspace_persists_signed_in_edits(tmp_path, cache_client):
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'workspace.db'}"

    async with open_workspace(
        database_url=database_url,
        cache_client=cache_client,
        reconcile_interval_minutes=0,
    ) as workspace:
        assert workspace.engine.is_ready
        assert not workspace.engine.is_authenticated

        workspace.identity.sign_in_with_token(create_access_token("user-alice"))
        await workspace.engine.wait_idle()
        workspace.state.create_project("P1")
        project_id = workspace.state.snapshot().projects[0].id

    assert "searchedia:projects" in cache_client.data
    assert not cache_client.closed

    db_engine = create_engine(database_url)
    try:
        remote = RemoteStore(create_session_factory(db_engine))
        assert await remote.projects.list_ids("user-alice") == {project_id}
    finally:
        await db_engine.dispose()
