"""Reconciliation engine keeping memory, device cache, and remote store aligned.

Lifecycle per identity session:

1. Initial load: the device cache is applied immediately, then the remote
   load races a short timeout. A non-empty remote result replaces memory and
   cache wholesale; otherwise cached data is uploaded in the background.
2. Write-through: once the load settles, every mutation is mirrored to the
   device cache and, when signed in, queued as whole-record upserts.
3. Full reconciliation (``sync_all``): remote rows missing from memory are
   purged, every in-memory record is upserted. Best effort, per record.
4. Teardown on sign-out: cache and memory cleared, session guard reset.

Every load is tagged with a generation number. A result that comes back for
an older generation (after a timeout, a sign-out, or a second sign-in) is
dropped instead of applied.
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from functools import partial
from typing import Any

from searchedia.config import settings
from searchedia.models.workspace import Folder, Project, WorkspaceSnapshot
from searchedia.sync.errors import LoadTimeout, Unreachable
from searchedia.sync.identity import AuthEvent, AuthEventType, IdentityProvider
from searchedia.sync.local_cache import LocalCache
from searchedia.sync.outbox import Outbox, OutboxKey
from searchedia.sync.remote_store import RemoteCollection, RemoteStore
from searchedia.sync.state import (
    FOLDERS,
    PREFERENCES,
    PROJECTS,
    ChangeOrigin,
    StateChange,
    StateStore,
)

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], None]


def _log_notification(level: str, message: str) -> None:
    logger.log(logging.WARNING if level in ("warning", "error") else logging.INFO, message)


@dataclass
class CollectionReport:
    """Outcome of reconciling one collection."""

    collection: str
    upserted: int = 0
    purged: int = 0
    failed_upserts: list[str] = field(default_factory=list)
    failed_purges: list[str] = field(default_factory=list)
    ids_unavailable: bool = False

    @property
    def ok(self) -> bool:
        return not (self.failed_upserts or self.failed_purges or self.ids_unavailable)


@dataclass
class SyncReport:
    """Outcome of a full reconciliation pass."""

    folders: CollectionReport
    projects: CollectionReport
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return not self.skipped and self.folders.ok and self.projects.ok

    @classmethod
    def skip(cls) -> "SyncReport":
        return cls(CollectionReport(FOLDERS), CollectionReport(PROJECTS), skipped=True)


class ReconciliationEngine:
    """Owns the session lifecycle of a ``StateStore`` and both persistence targets."""

    def __init__(
        self,
        state: StateStore,
        local_cache: LocalCache,
        remote: RemoteStore,
        identity: IdentityProvider,
        *,
        initial_load_timeout: float | None = None,
        sign_out_timeout: float | None = None,
        notify: Notifier | None = None,
    ) -> None:
        self.state = state
        self.local_cache = local_cache
        self.remote = remote
        self.identity = identity
        self.initial_load_timeout = initial_load_timeout or settings.initial_load_timeout_seconds
        self.sign_out_timeout = sign_out_timeout or settings.sign_out_timeout_seconds
        self._notify = notify or _log_notification

        self.outbox = Outbox(on_failure=self._on_write_failure)
        self._user_id: str | None = None
        self._session_ready = False
        self._generation = 0
        self._ready_event = asyncio.Event()
        self._background: set[asyncio.Task[Any]] = set()
        self._unsubscribe_auth: Callable[[], None] | None = None
        self._unsubscribe_state = state.subscribe(self._on_state_change)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def is_authenticated(self) -> bool:
        return self._user_id is not None

    @property
    def is_ready(self) -> bool:
        """True once the current session's initial load has settled."""
        return self._session_ready

    @property
    def generation(self) -> int:
        return self._generation

    async def wait_until_ready(self) -> None:
        await self._ready_event.wait()

    async def wait_idle(self) -> None:
        """Wait for scheduled loads, reconciliation passes, and queued writes."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await self.outbox.drain()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to identity events and load the current session."""
        self._unsubscribe_auth = self.identity.subscribe(self._on_auth_event)
        session = self.identity.get_current_session()
        if session is None:
            self._start_anonymous_session()
        else:
            await self.initial_load(session.user_id)

    async def stop(self) -> None:
        if self._unsubscribe_auth is not None:
            self._unsubscribe_auth()
            self._unsubscribe_auth = None
        await self.wait_idle()
        self._unsubscribe_state()

    def _on_auth_event(self, event: AuthEvent) -> None:
        self._spawn(self.handle_auth_event(event))

    async def handle_auth_event(self, event: AuthEvent) -> None:
        if event.type == AuthEventType.SIGNED_IN and event.session is not None:
            user_id = event.session.user_id
            if user_id == self._user_id:
                logger.debug("Ignoring repeated sign-in for %s", user_id)
                return
            if self._user_id is not None:
                self.teardown()
            await self.initial_load(user_id)
        elif event.type == AuthEventType.SIGNED_OUT:
            if self._user_id is None:
                return
            self.teardown()
            self._start_anonymous_session()

    def _start_anonymous_session(self) -> None:
        """Load the device cache with local-only write-through enabled."""
        self._generation += 1
        self._user_id = None
        self._apply_cached_snapshot()
        self._session_ready = True
        self._ready_event.set()
        logger.info("Started local-only session")

    async def initial_load(self, user_id: str) -> WorkspaceSnapshot:
        """Populate memory for ``user_id``; remote wins when reachable and non-empty."""
        self._generation += 1
        generation = self._generation
        self._user_id = user_id
        self._session_ready = False
        self._ready_event.clear()

        had_local = self._apply_cached_snapshot()
        preferences = self.local_cache.load_preferences()

        try:
            remote_task = asyncio.get_running_loop().create_task(self._load_remote(user_id))
            try:
                folders, projects = await self._race_remote(remote_task)
            except LoadTimeout as e:
                logger.warning("%s; keeping %s", e, "cached data" if had_local else "empty workspace")
                remote_task.add_done_callback(partial(self._discard_late_result, generation))
                folders, projects = [], []

            if generation != self._generation:
                logger.info("Initial load for %s superseded (generation %d)", user_id, generation)
                return self.state.snapshot()

            if folders or projects:
                self.state.load(
                    folders,
                    projects,
                    active_project_id=preferences["active_project_id"],
                    view_mode=preferences["view_mode"],
                    expanded_folders=preferences["expanded_folders"],
                )
                self._notify("success", f"Loaded {len(projects)} projects from cloud")
            elif had_local:
                logger.info("Remote store empty for %s, uploading cached workspace", user_id)
                self._enqueue_upload(self.state.snapshot(), user_id, (FOLDERS, PROJECTS))
                self._notify("success", "Syncing local projects to cloud")

            snapshot = self.state.snapshot()
            self._persist_local(snapshot, (FOLDERS, PROJECTS, PREFERENCES))
        finally:
            # A failed load still opens write-through for the current session.
            if generation == self._generation:
                self._session_ready = True
                self._ready_event.set()

        logger.info(
            "Initial load settled for %s: %d folders, %d projects",
            user_id, len(snapshot.folders), len(snapshot.projects),
        )
        return snapshot

    def teardown(self) -> None:
        """Forget the session: clear device cache and memory, reset the guard."""
        self._generation += 1
        self._session_ready = False
        self._ready_event.clear()
        previous = self._user_id
        self._user_id = None
        self.local_cache.clear()
        self.state.clear()
        logger.info("Tore down session for %s", previous)

    async def sign_out(self) -> None:
        """Sign out, forcing a local logout if the provider hangs or fails."""
        try:
            await asyncio.wait_for(self.identity.sign_out(), timeout=self.sign_out_timeout)
        except Exception as e:
            logger.warning("Sign-out failed or timed out, forcing local logout: %s", e)
        if self._user_id is not None:
            self.teardown()
            self._start_anonymous_session()
        self._notify("success", "Logged out successfully")

    # ------------------------------------------------------------------
    # Load helpers
    # ------------------------------------------------------------------

    def _apply_cached_snapshot(self) -> bool:
        folders = self.local_cache.load_folders()
        projects = self.local_cache.load_projects()
        if not folders and not projects:
            return False
        preferences = self.local_cache.load_preferences()
        self.state.load(folders, projects, **preferences)
        logger.info("Applied cached workspace: %d folders, %d projects", len(folders), len(projects))
        return True

    async def _load_remote(self, user_id: str) -> tuple[list[Folder], list[Project]]:
        try:
            folders, projects = await asyncio.gather(
                self.remote.folders.load_all(user_id),
                self.remote.projects.load_all(user_id),
            )
        except Unreachable as e:
            logger.warning("Remote initial load failed, treating as empty: %s", e)
            return [], []
        return folders, projects

    async def _race_remote(
        self, task: "asyncio.Task[tuple[list[Folder], list[Project]]]"
    ) -> tuple[list[Folder], list[Project]]:
        done, _ = await asyncio.wait({task}, timeout=self.initial_load_timeout)
        if not done:
            raise LoadTimeout(self.initial_load_timeout)
        return task.result()

    def _discard_late_result(self, generation: int, task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        if task.exception() is not None:
            logger.debug("Late remote load failed: %s", task.exception())
            return
        folders, projects = task.result()
        logger.info(
            "Discarding late remote load (generation %d, current %d): %d folders, %d projects",
            generation, self._generation, len(folders), len(projects),
        )

    # ------------------------------------------------------------------
    # Write-through
    # ------------------------------------------------------------------

    def _on_state_change(self, snapshot: WorkspaceSnapshot, change: StateChange) -> None:
        if change.origin != ChangeOrigin.MUTATION or not self._session_ready:
            return
        self._persist_local(snapshot, change.collections)
        if self._user_id is not None:
            self._enqueue_upload(snapshot, self._user_id, change.collections)

    def _persist_local(self, snapshot: WorkspaceSnapshot, collections: tuple[str, ...] | frozenset[str]) -> None:
        if FOLDERS in collections:
            self.local_cache.save_folders(snapshot.folders)
        if PROJECTS in collections:
            self.local_cache.save_projects(snapshot.projects)
        if PREFERENCES in collections:
            self.local_cache.save_preferences(
                snapshot.active_project_id, snapshot.view_mode, snapshot.expanded_folders
            )

    def _enqueue_upload(
        self,
        snapshot: WorkspaceSnapshot,
        user_id: str,
        collections: tuple[str, ...] | frozenset[str],
    ) -> None:
        if FOLDERS in collections:
            for folder in snapshot.folders:
                self.outbox.submit(
                    (FOLDERS, folder.id), partial(self.remote.folders.upsert, folder, user_id)
                )
        if PROJECTS in collections:
            for project in snapshot.projects:
                self.outbox.submit(
                    (PROJECTS, project.id), partial(self.remote.projects.upsert, project, user_id)
                )

    def _on_write_failure(self, key: OutboxKey, error: Exception) -> None:
        self._notify("warning", f"Could not save {key[0]} record {key[1]} to the cloud")

    # ------------------------------------------------------------------
    # Engine-level mutations
    # ------------------------------------------------------------------

    async def delete_project(self, project_id: str) -> WorkspaceSnapshot:
        """Delete a project, confirming the remote delete first when signed in.

        A failed remote delete raises ``Unreachable`` and leaves memory intact.
        """
        if self.state.snapshot().project(project_id) is None:
            logger.debug("delete_project: %s not present, nothing to do", project_id)
            return self.state.snapshot()
        if self._user_id is not None:
            try:
                await self.remote.projects.delete(project_id, self._user_id)
            except Unreachable:
                self._notify("error", "Failed to delete project from database")
                raise
        return self.state.delete_project(project_id)

    def delete_folder(self, folder_id: str) -> WorkspaceSnapshot:
        """Delete a leaf folder and its projects, then reconcile in the background."""
        if self.state.snapshot().folder(folder_id) is None:
            return self.state.snapshot()
        snapshot = self.state.delete_folder(folder_id)
        if self._user_id is not None and self._session_ready:
            self._spawn(self.sync_all())
        return snapshot

    # ------------------------------------------------------------------
    # Full reconciliation
    # ------------------------------------------------------------------

    async def sync_all(self) -> SyncReport:
        """Purge remote rows missing from memory, then upsert every record."""
        user_id = self._user_id
        if user_id is None or not self._session_ready:
            logger.info("Skipping full reconciliation: no ready authenticated session")
            return SyncReport.skip()

        # In-flight upserts must land before the purge, or a deleted record could reappear.
        await self.outbox.drain()
        snapshot = self.state.snapshot()

        logger.info(
            "Reconciling %d folders and %d projects for user %s",
            len(snapshot.folders), len(snapshot.projects), user_id,
        )
        folders = await self._reconcile(self.remote.folders, user_id)
        projects = await self._reconcile(self.remote.projects, user_id)
        report = SyncReport(folders=folders, projects=projects)
        if not report.ok:
            self._notify("warning", "Some changes could not be synced; they will be retried")
        return report

    def _records(self, collection: str) -> list[Any]:
        snapshot = self.state.snapshot()
        return list(snapshot.folders if collection == FOLDERS else snapshot.projects)

    async def _reconcile(
        self,
        collection: RemoteCollection[Any],
        user_id: str,
    ) -> CollectionReport:
        report = CollectionReport(collection.name)

        try:
            remote_ids = await collection.list_ids(user_id)
        except Unreachable as e:
            logger.warning("Could not list remote %s, skipping purge: %s", collection.name, e)
            report.ids_unavailable = True
            remote_ids = set()

        # Memory may have changed while listing; only ids absent right now are stale.
        records = self._records(collection.name)
        stale = sorted(remote_ids - {r.id for r in records})
        if stale:
            logger.info("Deleting %d %s no longer in local state", len(stale), collection.name)
            results = await asyncio.gather(
                *(collection.delete(record_id, user_id) for record_id in stale),
                return_exceptions=True,
            )
            for record_id, result in zip(stale, results):
                if isinstance(result, Exception):
                    logger.warning("Failed to purge %s %s: %s", collection.name, record_id, result)
                    report.failed_purges.append(record_id)
                else:
                    report.purged += 1

        results = await asyncio.gather(
            *(collection.upsert(record, user_id) for record in records),
            return_exceptions=True,
        )
        for record, result in zip(records, results):
            if isinstance(result, Exception):
                logger.warning("Failed to upsert %s %s: %s", collection.name, record.id, result)
                report.failed_upserts.append(record.id)
            else:
                report.upserted += 1

        logger.info("Synced %d/%d %s", report.upserted, len(records), collection.name)
        return report

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background sync task failed", exc_info=task.exception())
