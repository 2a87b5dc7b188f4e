"""Project repository."""

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from searchedia.db.exceptions import ConnectionError, DatabaseError, DuplicateRecordError
from searchedia.db.models import Project

logger = logging.getLogger(__name__)


async def get_projects_by_user(db: AsyncSession, user_id: str) -> list[Project]:
    """Get all projects for a user ordered by creation time."""
    try:
        result = await db.execute(
            select(Project)
            .where(Project.user_id == user_id)
            .order_by(Project.created_at.asc())
        )
        return list(result.scalars().all())
    except OperationalError as e:
        logger.error(f"Database connection error in get_projects_by_user for user {user_id}: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting projects for user {user_id}: {e}")
        raise DatabaseError(f"Failed to get projects: {e}") from e


async def get_project_ids_by_user(db: AsyncSession, user_id: str) -> set[str]:
    """Get the ids of every project row owned by a user."""
    try:
        result = await db.execute(select(Project.id).where(Project.user_id == user_id))
        return set(result.scalars().all())
    except OperationalError as e:
        logger.error(f"Database connection error in get_project_ids_by_user for user {user_id}: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error listing project ids for user {user_id}: {e}")
        raise DatabaseError(f"Failed to list project ids: {e}") from e


async def get_project_by_id(db: AsyncSession, project_id: str, user_id: str) -> Project | None:
    """Get a single project by ID scoped to a user."""
    try:
        result = await db.execute(
            select(Project).where(Project.id == project_id, Project.user_id == user_id)
        )
        return result.scalar_one_or_none()
    except OperationalError as e:
        logger.error(f"Database connection error in get_project_by_id: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting project {project_id}: {e}")
        raise DatabaseError(f"Failed to get project: {e}") from e


async def upsert_project(db: AsyncSession, user_id: str, data: dict[str, Any]) -> Project:
    """Insert or fully replace a project row, stamping ``updated_at``."""
    try:
        existing = await db.get(Project, data["id"])
        if existing is not None and existing.user_id != user_id:
            raise DuplicateRecordError(f"Project {data['id']} already exists")
        now = datetime.now(UTC)
        if existing is None:
            project = Project(
                id=data["id"],
                user_id=user_id,
                name=data["name"],
                items=list(data.get("items") or []),
                folder_id=data.get("folder_id"),
                created_at=data.get("created_at") or now,
                updated_at=now,
            )
            db.add(project)
        else:
            project = existing
            project.name = data["name"]
            project.items = list(data.get("items") or [])
            project.folder_id = data.get("folder_id")
            project.updated_at = now
        await db.flush()
        return project
    except DuplicateRecordError:
        logger.error(f"Project {data['id']} is owned by another user, refusing upsert for {user_id}")
        raise
    except IntegrityError as e:
        logger.error(f"Duplicate project {data['id']} for user {user_id}: {e}")
        raise DuplicateRecordError(f"Project {data['id']} already exists") from e
    except OperationalError as e:
        logger.error(f"Database connection error in upsert_project: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error upserting project {data.get('id')}: {e}")
        raise DatabaseError(f"Failed to upsert project: {e}") from e


async def delete_project(db: AsyncSession, project_id: str, user_id: str) -> bool:
    """Delete a project. Returns True if deleted, False if absent or not owned."""
    try:
        result = await db.execute(
            delete(Project).where(Project.id == project_id, Project.user_id == user_id)
        )
        await db.flush()
        return bool(result.rowcount > 0)  # type: ignore[union-attr]
    except OperationalError as e:
        logger.error(f"Database connection error in delete_project: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error deleting project {project_id}: {e}")
        raise DatabaseError(f"Failed to delete project: {e}") from e
