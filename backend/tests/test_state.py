"""Tests for the in-memory workspace state and its mutators."""

import pytest

from searchedia.sync.errors import HasChildFolders, PreconditionFailed
from searchedia.sync.state import (
    FOLDERS,
    PREFERENCES,
    PROJECTS,
    ChangeOrigin,
    EntityKind,
    StateStore,
)


def _folder_id(state: StateStore, name: str) -> str:
    return next(f.id for f in state.snapshot().folders if f.name == name)


def _project_id(state: StateStore, name: str) -> str:
    return next(p.id for p in state.snapshot().projects if p.name == name)


# -------------------------------------------------------------------
# Folders
# -------------------------------------------------------------------


def test_create_folder_appends_root_folder(state: StateStore):
    snap = state.create_folder("Recipes")

    assert len(snap.folders) == 1
    assert snap.folders[0].name == "Recipes"
    assert snap.folders[0].parent_id is None
    assert snap.folders[0].id


def test_create_folder_rejects_blank_name(state: StateStore):
    with pytest.raises(PreconditionFailed):
        state.create_folder("   ")
    assert state.snapshot().folders == ()


def test_delete_folder_with_child_folder_is_rejected(state: StateStore):
    state.create_folder("Recipes")
    recipes = _folder_id(state, "Recipes")
    state.create_folder("Breakfast", parent_id=recipes)
    state.create_project("P1", folder_id=recipes)
    before = state.snapshot()

    with pytest.raises(HasChildFolders) as exc_info:
        state.delete_folder(recipes)

    assert isinstance(exc_info.value, PreconditionFailed)
    assert exc_info.value.child_ids == [_folder_id(state, "Breakfast")]
    assert state.snapshot() == before


def test_delete_folder_cascades_one_level_only(state: StateStore):
    state.create_folder("Recipes")
    state.create_folder("Travel")
    recipes = _folder_id(state, "Recipes")
    travel = _folder_id(state, "Travel")
    state.create_project("P1", folder_id=recipes)
    state.create_project("P2", folder_id=recipes)
    state.create_project("Trip", folder_id=travel)
    state.create_project("Loose")

    snap = state.delete_folder(recipes)

    assert [f.name for f in snap.folders] == ["Travel"]
    assert [p.name for p in snap.projects] == ["Trip", "Loose"]


def test_delete_folder_resets_active_project_when_removed(state: StateStore):
    state.create_project("Keep")
    state.create_folder("Recipes")
    recipes = _folder_id(state, "Recipes")
    state.create_project("P1", folder_id=recipes)
    assert state.snapshot().active_project_id == _project_id(state, "P1")

    snap = state.delete_folder(recipes)

    assert snap.active_project_id == _project_id(state, "Keep")


def test_delete_folder_reports_preference_change(state: StateStore):
    state.create_folder("Recipes")
    recipes = _folder_id(state, "Recipes")
    state.toggle_folder_expanded(recipes)
    seen = []
    state.subscribe(lambda snap, change: seen.append(change))

    snap = state.delete_folder(recipes)

    assert snap.expanded_folders == frozenset()
    assert seen[0].collections == frozenset({FOLDERS, PROJECTS, PREFERENCES})


def test_delete_unknown_folder_is_noop(state: StateStore):
    state.create_folder("Recipes")
    before = state.snapshot()
    assert state.delete_folder("missing") == before


def test_toggle_folder_expanded(state: StateStore):
    state.create_folder("Recipes")
    recipes = _folder_id(state, "Recipes")

    assert recipes in state.toggle_folder_expanded(recipes).expanded_folders
    assert recipes not in state.toggle_folder_expanded(recipes).expanded_folders


# -------------------------------------------------------------------
# Projects
# -------------------------------------------------------------------


def test_create_project_becomes_active(state: StateStore):
    state.create_project("P1")
    snap = state.create_project("P2", items=[{"id": "a", "word": "apple"}])

    assert [p.name for p in snap.projects] == ["P1", "P2"]
    assert snap.active_project_id == snap.projects[1].id
    assert snap.projects[1].items == [{"id": "a", "word": "apple"}]


def test_rename_replaces_whole_record(state: StateStore):
    state.create_folder("Recipes")
    state.create_project("P1")
    folder_id = _folder_id(state, "Recipes")
    project_id = _project_id(state, "P1")
    original = state.snapshot().project(project_id)

    state.rename(EntityKind.FOLDER, folder_id, "Cooking")
    snap = state.rename(EntityKind.PROJECT, project_id, "Renamed")

    assert snap.folder(folder_id).name == "Cooking"
    renamed = snap.project(project_id)
    assert renamed.name == "Renamed"
    assert renamed is not original
    assert original.name == "P1"


def test_rename_unknown_id_is_noop(state: StateStore):
    state.create_project("P1")
    before = state.snapshot()
    assert state.rename(EntityKind.PROJECT, "missing", "X") == before


def test_move_project_between_folders(state: StateStore):
    state.create_folder("Recipes")
    recipes = _folder_id(state, "Recipes")
    state.create_project("P1")
    project_id = _project_id(state, "P1")

    assert state.move(project_id, recipes).project(project_id).folder_id == recipes
    assert state.move(project_id, None).project(project_id).folder_id is None


def test_duplicate_copies_items_with_fresh_ids(state: StateStore):
    state.create_folder("Recipes")
    recipes = _folder_id(state, "Recipes")
    items = [{"id": "i1", "word": "egg", "createdAt": 1, "history": [{"url": "x"}]}]
    state.create_project("P1", folder_id=recipes, items=items)
    source_id = _project_id(state, "P1")

    snap = state.duplicate(source_id, "P1 copy")

    clone = snap.project(snap.active_project_id)
    assert clone.id != source_id
    assert clone.name == "P1 copy"
    assert clone.folder_id == recipes
    assert clone.items[0]["word"] == "egg"
    assert clone.items[0]["id"] != "i1"
    assert clone.items[0]["createdAt"] > 1
    clone.items[0]["history"].append({"url": "y"})
    assert snap.project(source_id).items[0]["history"] == [{"url": "x"}]


def test_delete_project_moves_active_to_first_remaining(state: StateStore):
    state.create_project("P1")
    state.create_project("P2")
    p2 = _project_id(state, "P2")

    snap = state.delete_project(p2)

    assert [p.name for p in snap.projects] == ["P1"]
    assert snap.active_project_id == snap.projects[0].id

    snap = state.delete_project(snap.projects[0].id)
    assert snap.projects == ()
    assert snap.active_project_id is None


def test_append_items_defaults_to_active_project(state: StateStore):
    state.create_project("P1", items=[{"id": "a"}])
    snap = state.append_items(None, [{"id": "b"}, {"id": "c"}])

    assert [i["id"] for i in snap.projects[0].items] == ["a", "b", "c"]


def test_replace_items(state: StateStore):
    state.create_project("P1", items=[{"id": "a"}])
    project_id = _project_id(state, "P1")

    snap = state.replace_items(project_id, [{"id": "z"}])

    assert snap.project(project_id).items == [{"id": "z"}]


def test_set_view_mode_validates(state: StateStore):
    assert state.set_view_mode("bulk").view_mode == "bulk"
    with pytest.raises(PreconditionFailed):
        state.set_view_mode("grid")


# -------------------------------------------------------------------
# Change notifications
# -------------------------------------------------------------------


def test_listeners_see_mutation_and_load_origins(state: StateStore):
    seen = []
    unsubscribe = state.subscribe(lambda snap, change: seen.append(change))

    state.create_folder("Recipes")
    state.create_project("P1")
    state.load([], [])
    state.clear()
    unsubscribe()
    state.create_project("ignored")

    assert [c.origin for c in seen] == [
        ChangeOrigin.MUTATION,
        ChangeOrigin.MUTATION,
        ChangeOrigin.LOAD,
        ChangeOrigin.CLEAR,
    ]
    assert seen[0].collections == frozenset({FOLDERS})
    assert seen[1].collections == frozenset({PROJECTS, PREFERENCES})


def test_load_keeps_known_active_project(state: StateStore):
    state.create_project("P1")
    state.create_project("P2")
    projects = list(state.snapshot().projects)

    snap = state.load([], projects, active_project_id=projects[1].id)
    assert snap.active_project_id == projects[1].id

    snap = state.load([], projects, active_project_id="gone")
    assert snap.active_project_id == projects[0].id
