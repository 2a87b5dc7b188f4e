"""In-memory workspace state and its mutation API.

The ``StateStore`` is the single source of truth for a running session.
Every mutator applies synchronously, notifies listeners, and returns the
new snapshot; persistence is left to whoever listens (the reconciliation
engine). Records are immutable, so every change replaces the whole record.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from searchedia.models.workspace import (
    Folder,
    Project,
    WorkspaceSnapshot,
    copy_items_with_new_ids,
)
from searchedia.sync.errors import HasChildFolders, PreconditionFailed

logger = logging.getLogger(__name__)

FOLDERS = "folders"
PROJECTS = "projects"
PREFERENCES = "preferences"

VIEW_MODES = ("landing", "bulk")


class EntityKind(str, Enum):
    FOLDER = "folder"
    PROJECT = "project"


class ChangeOrigin(str, Enum):
    MUTATION = "mutation"  # caller-issued, must be persisted
    LOAD = "load"          # wholesale replace from a store
    CLEAR = "clear"        # teardown


@dataclass(frozen=True)
class StateChange:
    """What a single state transition touched."""

    origin: ChangeOrigin
    collections: frozenset[str]


StateListener = Callable[[WorkspaceSnapshot, StateChange], None]


class StateStore:
    """Folders, projects, and UI preferences for the current session."""

    def __init__(self) -> None:
        self._folders: dict[str, Folder] = {}
        self._projects: dict[str, Project] = {}  # insertion order is UI order
        self._active_project_id: str | None = None
        self._view_mode = "landing"
        self._expanded_folders: set[str] = set()
        self._listeners: list[StateListener] = []

    # ------------------------------------------------------------------
    # Reading and subscription
    # ------------------------------------------------------------------

    def snapshot(self) -> WorkspaceSnapshot:
        return WorkspaceSnapshot(
            folders=tuple(self._folders.values()),
            projects=tuple(self._projects.values()),
            active_project_id=self._active_project_id,
            view_mode=self._view_mode,
            expanded_folders=frozenset(self._expanded_folders),
        )

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, origin: ChangeOrigin, *collections: str) -> WorkspaceSnapshot:
        snap = self.snapshot()
        change = StateChange(origin=origin, collections=frozenset(collections))
        for listener in list(self._listeners):
            listener(snap, change)
        return snap

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def create_folder(self, name: str, parent_id: str | None = None) -> WorkspaceSnapshot:
        if not name or not name.strip():
            raise PreconditionFailed("Folder name must not be empty")
        folder = Folder(name=name.strip(), parent_id=parent_id)
        self._folders[folder.id] = folder
        logger.debug("Created folder %s (parent=%s)", folder.id, parent_id)
        return self._emit(ChangeOrigin.MUTATION, FOLDERS)

    def delete_folder(self, folder_id: str) -> WorkspaceSnapshot:
        """Remove a leaf folder and every project directly inside it.

        Raises ``HasChildFolders`` without touching state when any folder
        still names this one as its parent.
        """
        if folder_id not in self._folders:
            return self.snapshot()
        children = [f.id for f in self._folders.values() if f.parent_id == folder_id]
        if children:
            raise HasChildFolders(folder_id, children)

        del self._folders[folder_id]
        self._expanded_folders.discard(folder_id)
        removed = [pid for pid, p in self._projects.items() if p.folder_id == folder_id]
        for pid in removed:
            del self._projects[pid]
        if self._active_project_id in removed:
            self._reset_active_project()
        logger.debug("Deleted folder %s with %d project(s)", folder_id, len(removed))
        return self._emit(ChangeOrigin.MUTATION, FOLDERS, PROJECTS, PREFERENCES)

    def toggle_folder_expanded(self, folder_id: str) -> WorkspaceSnapshot:
        if folder_id not in self._folders:
            return self.snapshot()
        if folder_id in self._expanded_folders:
            self._expanded_folders.remove(folder_id)
        else:
            self._expanded_folders.add(folder_id)
        return self._emit(ChangeOrigin.MUTATION, PREFERENCES)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(
        self,
        name: str,
        folder_id: str | None = None,
        items: Iterable[dict[str, Any]] | None = None,
    ) -> WorkspaceSnapshot:
        project = Project(name=name, folder_id=folder_id, items=list(items or []))
        self._projects[project.id] = project
        self._active_project_id = project.id
        return self._emit(ChangeOrigin.MUTATION, PROJECTS, PREFERENCES)

    def rename(self, kind: EntityKind, record_id: str, new_name: str) -> WorkspaceSnapshot:
        if kind == EntityKind.FOLDER:
            folder = self._folders.get(record_id)
            if folder is None:
                return self.snapshot()
            if not new_name or not new_name.strip():
                raise PreconditionFailed("Folder name must not be empty")
            self._folders[record_id] = folder.model_copy(update={"name": new_name.strip()})
            return self._emit(ChangeOrigin.MUTATION, FOLDERS)

        project = self._projects.get(record_id)
        if project is None:
            return self.snapshot()
        self._projects[record_id] = project.model_copy(update={"name": new_name})
        return self._emit(ChangeOrigin.MUTATION, PROJECTS)

    def move(self, project_id: str, new_folder_id: str | None) -> WorkspaceSnapshot:
        project = self._projects.get(project_id)
        if project is None:
            return self.snapshot()
        self._projects[project_id] = project.model_copy(update={"folder_id": new_folder_id})
        return self._emit(ChangeOrigin.MUTATION, PROJECTS)

    def duplicate(self, project_id: str, new_name: str) -> WorkspaceSnapshot:
        source = self._projects.get(project_id)
        if source is None:
            return self.snapshot()
        clone = Project(
            name=new_name,
            folder_id=source.folder_id,
            items=copy_items_with_new_ids(source.items),
        )
        self._projects[clone.id] = clone
        self._active_project_id = clone.id
        return self._emit(ChangeOrigin.MUTATION, PROJECTS, PREFERENCES)

    def delete_project(self, project_id: str) -> WorkspaceSnapshot:
        if project_id not in self._projects:
            return self.snapshot()
        del self._projects[project_id]
        if self._active_project_id == project_id:
            self._reset_active_project()
        return self._emit(ChangeOrigin.MUTATION, PROJECTS, PREFERENCES)

    def replace_items(self, project_id: str, items: Iterable[dict[str, Any]]) -> WorkspaceSnapshot:
        project = self._projects.get(project_id)
        if project is None:
            return self.snapshot()
        self._projects[project_id] = project.model_copy(update={"items": list(items)})
        return self._emit(ChangeOrigin.MUTATION, PROJECTS)

    def append_items(
        self, project_id: str | None, items: Iterable[dict[str, Any]]
    ) -> WorkspaceSnapshot:
        """Append items to a project, defaulting to the active one."""
        target_id = project_id or self._active_project_id
        project = self._projects.get(target_id) if target_id else None
        if project is None:
            return self.snapshot()
        merged = [*project.items, *items]
        self._projects[project.id] = project.model_copy(update={"items": merged})
        return self._emit(ChangeOrigin.MUTATION, PROJECTS)

    def switch_active_project(self, project_id: str) -> WorkspaceSnapshot:
        if project_id not in self._projects:
            return self.snapshot()
        self._active_project_id = project_id
        return self._emit(ChangeOrigin.MUTATION, PREFERENCES)

    def set_view_mode(self, mode: str) -> WorkspaceSnapshot:
        if mode not in VIEW_MODES:
            raise PreconditionFailed(f"Unknown view mode '{mode}'")
        self._view_mode = mode
        return self._emit(ChangeOrigin.MUTATION, PREFERENCES)

    def _reset_active_project(self) -> None:
        self._active_project_id = next(iter(self._projects), None)

    # ------------------------------------------------------------------
    # Lifecycle (engine only)
    # ------------------------------------------------------------------

    def load(
        self,
        folders: Iterable[Folder],
        projects: Iterable[Project],
        active_project_id: str | None = None,
        view_mode: str | None = None,
        expanded_folders: Iterable[str] | None = None,
    ) -> WorkspaceSnapshot:
        """Replace folders and projects wholesale with a store's contents."""
        self._folders = {f.id: f for f in folders}
        self._projects = {p.id: p for p in projects}
        if active_project_id in self._projects:
            self._active_project_id = active_project_id
        else:
            self._reset_active_project()
        if view_mode in VIEW_MODES:
            self._view_mode = view_mode
        if expanded_folders is not None:
            self._expanded_folders = {fid for fid in expanded_folders if fid in self._folders}
        else:
            self._expanded_folders &= set(self._folders)
        return self._emit(ChangeOrigin.LOAD, FOLDERS, PROJECTS, PREFERENCES)

    def clear(self) -> WorkspaceSnapshot:
        self._folders = {}
        self._projects = {}
        self._active_project_id = None
        self._view_mode = "landing"
        self._expanded_folders = set()
        return self._emit(ChangeOrigin.CLEAR, FOLDERS, PROJECTS, PREFERENCES)
