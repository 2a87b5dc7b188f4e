"""Folder and project value models shared by every store."""

import copy
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


def generate_id() -> str:
    """Client-side id, unique without consulting any store."""
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Folder(BaseModel):
    """A named grouping container, optionally nested under another folder."""

    id: str = Field(default_factory=generate_id)
    name: str
    parent_id: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    class Config:
        from_attributes = True
        frozen = True


class Project(BaseModel):
    """A named container for an ordered, opaque list of content items."""

    id: str = Field(default_factory=generate_id)
    name: str
    folder_id: str | None = None
    items: list[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)

    class Config:
        from_attributes = True
        frozen = True


def copy_items_with_new_ids(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Deep-copy items, giving each a fresh ``id`` and ``createdAt`` (epoch ms)."""
    now_ms = int(time.time() * 1000)
    copied = []
    for item in items:
        clone = copy.deepcopy(item)
        clone["id"] = generate_id()
        clone["createdAt"] = now_ms
        copied.append(clone)
    return copied


@dataclass(frozen=True)
class WorkspaceSnapshot:
    """Immutable view of the in-memory folders, projects and preferences."""

    folders: tuple[Folder, ...] = ()
    projects: tuple[Project, ...] = ()
    active_project_id: str | None = None
    view_mode: str = "landing"
    expanded_folders: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        return not self.folders and not self.projects

    def folder(self, folder_id: str) -> Folder | None:
        return next((f for f in self.folders if f.id == folder_id), None)

    def project(self, project_id: str) -> Project | None:
        return next((p for p in self.projects if p.id == project_id), None)
