"""Folder repository."""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from searchedia.db.exceptions import ConnectionError, DatabaseError, DuplicateRecordError
from searchedia.db.models import Folder

logger = logging.getLogger(__name__)


async def get_folders_by_user(db: AsyncSession, user_id: str) -> list[Folder]:
    """Get all folders for a user ordered by creation time."""
    try:
        result = await db.execute(
            select(Folder)
            .where(Folder.user_id == user_id)
            .order_by(Folder.created_at.asc())
        )
        return list(result.scalars().all())
    except OperationalError as e:
        logger.error(f"Database connection error in get_folders_by_user for user {user_id}: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting folders for user {user_id}: {e}")
        raise DatabaseError(f"Failed to get folders: {e}") from e


async def get_folder_ids_by_user(db: AsyncSession, user_id: str) -> set[str]:
    """Get the ids of every folder row owned by a user."""
    try:
        result = await db.execute(select(Folder.id).where(Folder.user_id == user_id))
        return set(result.scalars().all())
    except OperationalError as e:
        logger.error(f"Database connection error in get_folder_ids_by_user for user {user_id}: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error listing folder ids for user {user_id}: {e}")
        raise DatabaseError(f"Failed to list folder ids: {e}") from e


async def get_folder_by_id(db: AsyncSession, folder_id: str, user_id: str) -> Folder | None:
    """Get a single folder by ID scoped to a user."""
    try:
        result = await db.execute(
            select(Folder).where(Folder.id == folder_id, Folder.user_id == user_id)
        )
        return result.scalar_one_or_none()
    except OperationalError as e:
        logger.error(f"Database connection error in get_folder_by_id: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error getting folder {folder_id}: {e}")
        raise DatabaseError(f"Failed to get folder: {e}") from e


async def upsert_folder(db: AsyncSession, user_id: str, data: dict[str, Any]) -> Folder:
    """Insert or fully replace a folder row.

    Every column is overwritten from ``data``; nothing is merged with the
    stored row. A row with the same id owned by another user is never touched.
    """
    try:
        existing = await db.get(Folder, data["id"])
        if existing is not None and existing.user_id != user_id:
            raise DuplicateRecordError(f"Folder {data['id']} already exists")
        created_at: datetime = data["created_at"]
        if existing is None:
            folder = Folder(
                id=data["id"],
                user_id=user_id,
                name=data["name"],
                parent_id=data.get("parent_id"),
                created_at=created_at,
            )
            db.add(folder)
        else:
            folder = existing
            folder.name = data["name"]
            folder.parent_id = data.get("parent_id")
            folder.created_at = created_at
        await db.flush()
        return folder
    except DuplicateRecordError:
        logger.error(f"Folder {data['id']} is owned by another user, refusing upsert for {user_id}")
        raise
    except IntegrityError as e:
        logger.error(f"Duplicate folder {data['id']} for user {user_id}: {e}")
        raise DuplicateRecordError(f"Folder {data['id']} already exists") from e
    except OperationalError as e:
        logger.error(f"Database connection error in upsert_folder: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error upserting folder {data.get('id')}: {e}")
        raise DatabaseError(f"Failed to upsert folder: {e}") from e


async def delete_folder(db: AsyncSession, folder_id: str, user_id: str) -> bool:
    """Delete a folder. Returns True if deleted, False if absent or not owned."""
    try:
        result = await db.execute(
            delete(Folder).where(Folder.id == folder_id, Folder.user_id == user_id)
        )
        await db.flush()
        return bool(result.rowcount > 0)  # type: ignore[union-attr]
    except OperationalError as e:
        logger.error(f"Database connection error in delete_folder: {e}")
        raise ConnectionError("Database connection failed") from e
    except Exception as e:
        logger.error(f"Unexpected error deleting folder {folder_id}: {e}")
        raise DatabaseError(f"Failed to delete folder: {e}") from e
