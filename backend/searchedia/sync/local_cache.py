"""Device-local cache for the last known workspace snapshot.

Each logical dataset lives under its own key in a Redis database on the
device. Calls are synchronous and fail silently so a cache outage never
breaks the app: reads degrade to "no data", writes are dropped with a
debug log.
"""

import json
import logging
from typing import Any

import redis
from pydantic import ValidationError

from searchedia.config import settings
from searchedia.models.workspace import Folder, Project

logger = logging.getLogger(__name__)

FOLDERS_KEY = "folders"
PROJECTS_KEY = "projects"
ACTIVE_PROJECT_KEY = "activeProjectId"
VIEW_MODE_KEY = "viewMode"
EXPANDED_FOLDERS_KEY = "expandedFolders"

DATASETS = (FOLDERS_KEY, PROJECTS_KEY, ACTIVE_PROJECT_KEY, VIEW_MODE_KEY, EXPANDED_FOLDERS_KEY)

_client: redis.Redis | None = None


def get_local_cache_client() -> redis.Redis:
    """Get the device cache client (created on first call)."""
    global _client

    if _client is None:
        _client = redis.Redis.from_url(settings.local_cache_url, decode_responses=True)
        logger.info("Local cache client initialized")

    return _client


def close_local_cache_client() -> None:
    global _client

    if _client is not None:
        _client.close()
        _client = None
        logger.info("Local cache client closed")


class LocalCache:
    """Whole-collection JSON persistence, namespaced per dataset."""

    def __init__(self, client: redis.Redis, prefix: str | None = None):
        self.client = client
        self.prefix = prefix or settings.local_cache_prefix

    def _key(self, dataset: str) -> str:
        return f"{self.prefix}:{dataset}"

    # ------------------------------------------------------------------
    # Raw dataset access
    # ------------------------------------------------------------------

    def cache_get(self, dataset: str) -> Any | None:
        try:
            raw = self.client.get(self._key(dataset))
            if raw is None:
                return None
            return json.loads(raw)
        except Exception:
            logger.debug("Local cache miss/error for %s", dataset, exc_info=True)
            return None

    def cache_set(self, dataset: str, value: Any) -> None:
        try:
            self.client.set(self._key(dataset), json.dumps(value, default=str))
        except Exception:
            logger.debug("Local cache set failed for %s", dataset, exc_info=True)

    def cache_delete(self, dataset: str) -> None:
        try:
            self.client.delete(self._key(dataset))
        except Exception:
            logger.debug("Local cache delete failed for %s", dataset, exc_info=True)

    def clear(self) -> None:
        """Drop every dataset; used on sign-out."""
        try:
            self.client.delete(*(self._key(d) for d in DATASETS))
            logger.info("Local cache cleared")
        except Exception:
            logger.debug("Local cache clear failed", exc_info=True)

    # ------------------------------------------------------------------
    # Typed collections
    # ------------------------------------------------------------------

    def load_folders(self) -> list[Folder]:
        raw = self.cache_get(FOLDERS_KEY)
        if not isinstance(raw, list):
            return []
        try:
            return [Folder.model_validate(f) for f in raw]
        except ValidationError:
            logger.warning("Discarding unreadable cached folders", exc_info=True)
            return []

    def load_projects(self) -> list[Project]:
        raw = self.cache_get(PROJECTS_KEY)
        if not isinstance(raw, list):
            return []
        try:
            return [Project.model_validate(p) for p in raw]
        except ValidationError:
            logger.warning("Discarding unreadable cached projects", exc_info=True)
            return []

    def save_folders(self, folders: tuple[Folder, ...] | list[Folder]) -> None:
        self.cache_set(FOLDERS_KEY, [f.model_dump(mode="json") for f in folders])

    def save_projects(self, projects: tuple[Project, ...] | list[Project]) -> None:
        self.cache_set(PROJECTS_KEY, [p.model_dump(mode="json") for p in projects])

    def load_preferences(self) -> dict[str, Any]:
        expanded = self.cache_get(EXPANDED_FOLDERS_KEY)
        return {
            "active_project_id": self.cache_get(ACTIVE_PROJECT_KEY),
            "view_mode": self.cache_get(VIEW_MODE_KEY),
            "expanded_folders": expanded if isinstance(expanded, list) else None,
        }

    def save_preferences(
        self,
        active_project_id: str | None,
        view_mode: str,
        expanded_folders: frozenset[str] | set[str],
    ) -> None:
        if active_project_id:
            self.cache_set(ACTIVE_PROJECT_KEY, active_project_id)
        else:
            self.cache_delete(ACTIVE_PROJECT_KEY)
        self.cache_set(VIEW_MODE_KEY, view_mode)
        self.cache_set(EXPANDED_FOLDERS_KEY, sorted(expanded_folders))
