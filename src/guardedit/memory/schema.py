"""Typed records persisted by the project registry."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

SCHEMA_VERSION = 1


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def short_stamp(moment: datetime | None = None) -> str:
    """Return ``YYYYMMDD-HHMMSS`` for ``moment`` (local time by default)."""
    return (moment or datetime.now()).strftime("%Y%m%d-%H%M%S")


def new_project_id() -> str:
    return uuid.uuid4().hex


class RecordModel(BaseModel):
    """Base Pydantic model with strict field handling and camelCase on disk."""

    model_config = ConfigDict(
        extra="forbid",
        frozen=False,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class ProjectMeta(RecordModel):
    """A registered project: a display name bound to a canonical root."""

    id: str = Field(default_factory=new_project_id)
    name: str
    root: str
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    last_used_at: datetime = Field(default_factory=utc_now)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        name = value.strip()
        if not name:
            raise ValueError("project name must not be empty")
        return name

    @field_validator("root", mode="before")
    @classmethod
    def _canonical_root(cls, value: object) -> str:
        if not isinstance(value, (str, Path)) or not str(value).strip():
            raise ValueError("project root must be a path")
        return str(Path(value).expanduser().resolve())

    @property
    def root_path(self) -> Path:
        return Path(self.root)


class ProjectFile(RecordModel):
    """On-disk envelope for one project."""

    schema_version: int = SCHEMA_VERSION
    project: ProjectMeta


class ActivePointer(RecordModel):
    """Which project the CLI operates on by default."""

    project_id: str
    root: str
    selected_at: datetime = Field(default_factory=utc_now)
