"""File-backed registry of projects and the active-project pointer.

Layout under the base directory::

    projects/prj_<id>.json   one ProjectFile per registered project
    active                   ActivePointer JSON for the selected project
    trash/                   soft-deleted project files

Every write goes through :func:`atomic_write` so readers never observe a
partially written file.
"""

from __future__ import annotations

import logging
import os
import shutil
import time
from pathlib import Path
from typing import Any, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from ..structured import IoWarning
from .schema import ActivePointer, ProjectFile, ProjectMeta, utc_now

LOGGER = logging.getLogger(__name__)

HOME_ENV = "GUARDEDIT_HOME"
DEFAULT_HOME = Path("~/.guardedit")

__all__ = [
    "ProjectExistsError",
    "ProjectNotFoundError",
    "ProjectRegistry",
    "RegistryError",
    "atomic_write",
    "resolve_home",
]


class RegistryError(RuntimeError):
    """Raised when the registry cannot satisfy a request."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class ProjectExistsError(RegistryError):
    """A project with the same name is already registered."""


class ProjectNotFoundError(RegistryError):
    """No project matches the given id or name."""


def resolve_home(configured: str | os.PathLike[str] | None = None) -> Path:
    """Return the registry base directory.

    Precedence: explicit configuration, then ``GUARDEDIT_HOME``, then
    ``~/.guardedit``.
    """
    if configured:
        return Path(configured).expanduser()
    env_value = os.environ.get(HOME_ENV)
    if env_value:
        return Path(env_value).expanduser()
    return DEFAULT_HOME.expanduser()


def atomic_write(path: Path, text: str) -> IoWarning | None:
    """Replace ``path`` with ``text`` without exposing a partial file.

    The content is written to a sibling ``.tmp`` file, flushed and fsynced,
    then moved over the target.  A failed fsync is reported through the
    returned :class:`IoWarning` instead of aborting the write.  When the
    atomic replace itself raises, the temporary file is copied over the
    target and removed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    warning: IoWarning | None = None
    with tmp_path.open("w", encoding="utf-8") as handle:
        handle.write(text)
        handle.flush()
        try:
            os.fsync(handle.fileno())
        except OSError as error:
            warning = IoWarning("fsync", str(tmp_path), str(error))
            LOGGER.warning("fsync failed for %s: %s", tmp_path, error)
    try:
        os.replace(tmp_path, path)
    except OSError as error:
        LOGGER.debug("Atomic replace failed for %s, copying instead: %s", path, error)
        shutil.copyfile(tmp_path, path)
        tmp_path.unlink(missing_ok=True)
    return warning


class ProjectRegistry:
    """Create, look up, select, and soft-delete registered projects."""

    def __init__(self, base_dir: Path | str) -> None:
        self.base_dir = Path(base_dir).expanduser()
        self.projects_dir = self.base_dir / "projects"
        self.trash_dir = self.base_dir / "trash"
        self.active_path = self.base_dir / "active"
        self.warnings: List[IoWarning] = []

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "ProjectRegistry":
        paths = config.get("paths") if isinstance(config, Mapping) else None
        configured = paths.get("home") if isinstance(paths, Mapping) else None
        return cls(resolve_home(configured))

    # ------------------------------------------------------------------ paths
    def _project_path(self, project_id: str) -> Path:
        return self.projects_dir / f"prj_{project_id}.json"

    def _write(self, path: Path, text: str) -> None:
        warning = atomic_write(path, text)
        if warning is not None:
            self.warnings.append(warning)

    # ----------------------------------------------------------------- reads
    def _load(self, path: Path) -> ProjectMeta | None:
        try:
            record = ProjectFile.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError, ValueError) as error:
            LOGGER.warning("Skipping unreadable project file %s: %s", path, error)
            return None
        return record.project

    def list(self) -> List[ProjectMeta]:
        """Return every readable project sorted by name (case-insensitive)."""
        if not self.projects_dir.is_dir():
            return []
        projects = []
        for path in sorted(self.projects_dir.glob("prj_*.json")):
            meta = self._load(path)
            if meta is not None:
                projects.append(meta)
        return sorted(projects, key=lambda item: (item.name.lower(), item.id))

    def get_by_id(self, project_id: str) -> ProjectMeta | None:
        path = self._project_path(project_id)
        if not path.is_file():
            return None
        return self._load(path)

    def get_by_name(self, name: str) -> ProjectMeta | None:
        wanted = name.strip().lower()
        for meta in self.list():
            if meta.name.lower() == wanted:
                return meta
        return None

    def resolve(self, key: str) -> ProjectMeta | None:
        """Look ``key`` up as an id first and then as a name."""
        return self.get_by_id(key) or self.get_by_name(key)

    # ---------------------------------------------------------------- writes
    def create(self, name: str, root: Path | str) -> ProjectMeta:
        """Register ``root`` under ``name`` and make it the active project."""
        if self.get_by_name(name) is not None:
            raise ProjectExistsError(f"Project already exists: {name}", details={"name": name})
        meta = ProjectMeta(name=name, root=root)
        self._write(self._project_path(meta.id), ProjectFile(project=meta).to_json())
        LOGGER.info("Registered project %s (%s) at %s", meta.name, meta.id, meta.root)
        self.set_active(meta.id)
        return meta

    def save(self, meta: ProjectMeta) -> ProjectMeta:
        """Persist ``meta`` with a fresh ``updated_at``."""
        updated = meta.model_copy(update={"updated_at": utc_now()})
        self._write(self._project_path(updated.id), ProjectFile(project=updated).to_json())
        return updated

    def touch(self, project_id: str) -> ProjectMeta:
        """Record that the project was just used."""
        meta = self.get_by_id(project_id)
        if meta is None:
            raise ProjectNotFoundError(f"Unknown project: {project_id}", details={"id": project_id})
        return self.save(meta.model_copy(update={"last_used_at": utc_now()}))

    def set_active(self, project_id: str) -> ActivePointer:
        meta = self.get_by_id(project_id)
        if meta is None:
            raise ProjectNotFoundError(f"Unknown project: {project_id}", details={"id": project_id})
        pointer = ActivePointer(project_id=meta.id, root=meta.root)
        self._write(self.active_path, pointer.to_json())
        return pointer

    def get_active(self) -> Optional[Tuple[ProjectMeta, ActivePointer]]:
        """Return the active project, or ``None`` when unset, stale, or corrupt."""
        if not self.active_path.is_file():
            return None
        try:
            pointer = ActivePointer.model_validate_json(self.active_path.read_text(encoding="utf-8"))
        except (OSError, ValidationError, ValueError) as error:
            LOGGER.warning("Ignoring unreadable active pointer %s: %s", self.active_path, error)
            return None
        meta = self.get_by_id(pointer.project_id)
        if meta is None:
            return None
        return meta, pointer

    def soft_delete(self, project_id: str) -> bool:
        """Move the project file to the trash; ``False`` when it does not exist."""
        path = self._project_path(project_id)
        if not path.is_file():
            return False
        self.trash_dir.mkdir(parents=True, exist_ok=True)
        target = self.trash_dir / f"{path.name}.{int(time.time() * 1000)}.bak"
        shutil.move(str(path), str(target))
        LOGGER.info("Moved project %s to %s", project_id, target)

        if self.active_path.is_file():
            try:
                pointer = ActivePointer.model_validate_json(self.active_path.read_text(encoding="utf-8"))
            except (OSError, ValidationError, ValueError):
                pointer = None
            if pointer is None or pointer.project_id == project_id:
                self.active_path.unlink(missing_ok=True)
        return True
