"""Remote store adapter over the owner-scoped ``folders``/``projects`` tables.

Each operation opens its own session, so concurrent calls never share a
transaction. A dropped connection is retried once. Any other database
failure, or a second dropped connection, surfaces as ``Unreachable``;
callers decide whether that degrades to "empty" or to a logged warning.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from pydantic import ValidationError
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from searchedia.db.database import session_scope
from searchedia.db.exceptions import ConnectionError, DatabaseError
from searchedia.db.repositories import folder_repo, project_repo
from searchedia.models.workspace import Folder, Project
from searchedia.sync.errors import Unreachable

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", Folder, Project)
ResultT = TypeVar("ResultT")


@retry(
    stop=stop_after_attempt(2),
    wait=wait_exponential(min=0.1, max=1),
    retry=retry_if_exception_type((ConnectionError, OperationalError)),
    reraise=True,
)
async def _in_session(
    session_factory: async_sessionmaker[AsyncSession],
    fn: Callable[[AsyncSession], Awaitable[ResultT]],
) -> ResultT:
    async with session_scope(session_factory) as db:
        return await fn(db)


class RemoteCollection(Generic[RecordT]):
    """load_all / list_ids / upsert / delete for one table."""

    name = ""
    model: type[RecordT]

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _run(
        self, operation: str, fn: Callable[[AsyncSession], Awaitable[ResultT]]
    ) -> ResultT:
        try:
            return await _in_session(self._session_factory, fn)
        except (DatabaseError, SQLAlchemyError, OSError) as e:
            logger.warning("Remote %s failed on %s: %s", operation, self.name, e)
            raise Unreachable(self.name, operation) from e

    def _validate_rows(self, rows: list[Any]) -> list[RecordT]:
        """Map rows to records, skipping any row that no longer validates."""
        records = []
        for row in rows:
            try:
                records.append(self.model.model_validate(row))
            except ValidationError as e:
                logger.warning("Skipping unreadable %s row %s: %s", self.name, row.id, e)
        return records

    async def load_all(self, user_id: str) -> list[RecordT]:
        raise NotImplementedError

    async def list_ids(self, user_id: str) -> set[str]:
        raise NotImplementedError

    async def upsert(self, record: RecordT, user_id: str) -> bool:
        raise NotImplementedError

    async def delete(self, record_id: str, user_id: str) -> bool:
        raise NotImplementedError


class FolderCollection(RemoteCollection[Folder]):
    name = "folders"
    model = Folder

    async def load_all(self, user_id: str) -> list[Folder]:
        rows = await self._run("load", lambda db: folder_repo.get_folders_by_user(db, user_id))
        return self._validate_rows(rows)

    async def list_ids(self, user_id: str) -> set[str]:
        return await self._run("list_ids", lambda db: folder_repo.get_folder_ids_by_user(db, user_id))

    async def upsert(self, record: Folder, user_id: str) -> bool:
        await self._run("upsert", lambda db: folder_repo.upsert_folder(db, user_id, record.model_dump()))
        return True

    async def delete(self, record_id: str, user_id: str) -> bool:
        return await self._run("delete", lambda db: folder_repo.delete_folder(db, record_id, user_id))


class ProjectCollection(RemoteCollection[Project]):
    name = "projects"
    model = Project

    async def load_all(self, user_id: str) -> list[Project]:
        rows = await self._run("load", lambda db: project_repo.get_projects_by_user(db, user_id))
        return self._validate_rows(rows)

    async def list_ids(self, user_id: str) -> set[str]:
        return await self._run("list_ids", lambda db: project_repo.get_project_ids_by_user(db, user_id))

    async def upsert(self, record: Project, user_id: str) -> bool:
        await self._run("upsert", lambda db: project_repo.upsert_project(db, user_id, record.model_dump()))
        return True

    async def delete(self, record_id: str, user_id: str) -> bool:
        return await self._run("delete", lambda db: project_repo.delete_project(db, record_id, user_id))


class RemoteStore:
    """Both collections behind one session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.folders = FolderCollection(session_factory)
        self.projects = ProjectCollection(session_factory)
