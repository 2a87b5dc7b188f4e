"""Tests for the device-local cache adapter."""

import json
import logging

from searchedia.models.workspace import Folder, Project
from searchedia.sync.local_cache import DATASETS, LocalCache


def test_collections_are_stored_as_whole_json_documents(local_cache: LocalCache, cache_client):
    folder = Folder(name="Recipes")
    project = Project(name="P1", folder_id=folder.id, items=[{"id": "a", "word": "egg"}])

    local_cache.save_folders([folder])
    local_cache.save_projects([project])

    stored = json.loads(cache_client.data["test:projects"])
    assert stored[0]["id"] == project.id
    assert stored[0]["folder_id"] == folder.id
    assert local_cache.load_folders() == [folder]
    assert local_cache.load_projects() == [project]


def test_clear_removes_every_dataset(local_cache: LocalCache, cache_client):
    local_cache.save_folders([Folder(name="Recipes")])
    local_cache.save_projects([Project(name="P1")])
    local_cache.save_preferences("p1", "bulk", {"f1"})
    cache_client.data["unrelated"] = "keep"

    local_cache.clear()

    assert all(f"test:{d}" not in cache_client.data for d in DATASETS)
    assert cache_client.data == {"unrelated": "keep"}


def test_preferences_round_trip(local_cache: LocalCache):
    local_cache.save_preferences("p1", "bulk", {"f2", "f1"})
    assert local_cache.load_preferences() == {
        "active_project_id": "p1",
        "view_mode": "bulk",
        "expanded_folders": ["f1", "f2"],
    }

    local_cache.save_preferences(None, "landing", set())
    assert local_cache.load_preferences()["active_project_id"] is None


def test_cache_outage_degrades_to_empty(local_cache: LocalCache, cache_client):
    local_cache.save_projects([Project(name="P1")])
    cache_client.fail = True

    assert local_cache.load_projects() == []
    local_cache.save_projects([Project(name="P2")])
    local_cache.clear()

    cache_client.fail = False
    assert [p.name for p in local_cache.load_projects()] == ["P1"]


def test_unreadable_cached_records_are_discarded(local_cache: LocalCache, cache_client, caplog):
    caplog.set_level(logging.WARNING)
    cache_client.data["test:folders"] = json.dumps([{"id": "f1"}])
    cache_client.data["test:projects"] = "not json"

    assert local_cache.load_folders() == []
    assert local_cache.load_projects() == []
    assert "unreadable cached folders" in caplog.text


def test_raw_dataset_access_uses_prefixed_json(local_cache: LocalCache, cache_client):
    local_cache.cache_set("viewMode", "bulk")
    assert cache_client.data["test:viewMode"] == '"bulk"'
    assert local_cache.cache_get("viewMode") == "bulk"

    local_cache.cache_delete("viewMode")
    assert local_cache.cache_get("viewMode") is None


def test_save_preferences_accepts_snapshot_frozenset(local_cache: LocalCache):
    local_cache.save_preferences(None, "landing", frozenset({"f1"}))
    assert local_cache.load_preferences()["expanded_folders"] == ["f1"]
