from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from guardedit.memory.registry import (
    ProjectExistsError,
    ProjectNotFoundError,
    ProjectRegistry,
    atomic_write,
    resolve_home,
)
from guardedit.memory.schema import ProjectMeta


@pytest.fixture()
def registry(tmp_path: Path) -> ProjectRegistry:
    return ProjectRegistry(tmp_path / "home")


def _project_root(tmp_path: Path, name: str) -> Path:
    root = tmp_path / name
    root.mkdir()
    return root


def test_create_persists_camel_case_file_and_activates(registry: ProjectRegistry, tmp_path: Path) -> None:
    root = _project_root(tmp_path, "alpha")

    meta = registry.create("Alpha", root)

    path = registry.base_dir / "projects" / f"prj_{meta.id}.json"
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["schemaVersion"] == 1
    assert payload["project"]["name"] == "Alpha"
    assert payload["project"]["root"] == str(root.resolve())
    assert {"createdAt", "updatedAt", "lastUsedAt"} <= set(payload["project"])

    active = registry.get_active()
    assert active is not None
    assert active[0].id == meta.id
    assert active[1].root == meta.root
    pointer = json.loads((registry.base_dir / "active").read_text(encoding="utf-8"))
    assert pointer["projectId"] == meta.id


def test_names_are_unique_case_insensitively(registry: ProjectRegistry, tmp_path: Path) -> None:
    registry.create("Alpha", _project_root(tmp_path, "alpha"))

    with pytest.raises(ProjectExistsError):
        registry.create("ALPHA", _project_root(tmp_path, "other"))


def test_lookup_by_id_name_and_key(registry: ProjectRegistry, tmp_path: Path) -> None:
    meta = registry.create("Alpha", _project_root(tmp_path, "alpha"))

    assert registry.get_by_id(meta.id) == meta
    assert registry.get_by_name("alpha") == meta
    assert registry.resolve(meta.id) == meta
    assert registry.resolve("Alpha") == meta
    assert registry.resolve("missing") is None


def test_list_is_sorted_and_skips_corrupt_files(registry: ProjectRegistry, tmp_path: Path) -> None:
    registry.create("zeta", _project_root(tmp_path, "z"))
    registry.create("Beta", _project_root(tmp_path, "b"))
    (registry.base_dir / "projects" / "prj_broken.json").write_text("{nope", encoding="utf-8")

    assert [meta.name for meta in registry.list()] == ["Beta", "zeta"]


def test_root_is_canonicalised(tmp_path: Path) -> None:
    root = _project_root(tmp_path, "gamma")

    meta = ProjectMeta(name="gamma", root=str(root / "sub" / ".."))

    assert meta.root == str(root.resolve())


def test_save_and_touch_bump_timestamps(registry: ProjectRegistry, tmp_path: Path) -> None:
    meta = registry.create("Alpha", _project_root(tmp_path, "alpha"))

    touched = registry.touch(meta.id)

    assert touched.last_used_at >= meta.last_used_at
    assert touched.updated_at >= meta.updated_at
    assert registry.get_by_id(meta.id) == touched


def test_set_active_rejects_unknown_ids(registry: ProjectRegistry) -> None:
    with pytest.raises(ProjectNotFoundError):
        registry.set_active("does-not-exist")


def test_corrupt_active_pointer_reads_as_none(registry: ProjectRegistry, tmp_path: Path) -> None:
    registry.create("Alpha", _project_root(tmp_path, "alpha"))
    (registry.base_dir / "active").write_text("garbage", encoding="utf-8")

    assert registry.get_active() is None


def test_soft_delete_moves_to_trash_and_clears_pointer(registry: ProjectRegistry, tmp_path: Path) -> None:
    meta = registry.create("Alpha", _project_root(tmp_path, "alpha"))

    assert registry.soft_delete(meta.id)

    assert registry.get_by_id(meta.id) is None
    assert registry.get_active() is None
    assert not (registry.base_dir / "active").exists()
    trashed = list((registry.base_dir / "trash").iterdir())
    assert len(trashed) == 1
    assert trashed[0].name.startswith(f"prj_{meta.id}.json.")
    assert trashed[0].name.endswith(".bak")
    assert not registry.soft_delete(meta.id)


def test_soft_delete_keeps_pointer_for_other_project(registry: ProjectRegistry, tmp_path: Path) -> None:
    first = registry.create("Alpha", _project_root(tmp_path, "alpha"))
    second = registry.create("Beta", _project_root(tmp_path, "beta"))

    registry.soft_delete(first.id)

    active = registry.get_active()
    assert active is not None and active[0].id == second.id


def test_atomic_write_replaces_content(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "file.json"

    assert atomic_write(target, "one") is None
    assert atomic_write(target, "two") is None

    assert target.read_text(encoding="utf-8") == "two"
    assert not target.with_name("file.json.tmp").exists()


def test_atomic_write_reports_fsync_failure(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def _broken_fsync(fd: int) -> None:
        raise OSError("fsync unsupported")

    monkeypatch.setattr(os, "fsync", _broken_fsync)

    warning = atomic_write(tmp_path / "x.json", "data")

    assert warning is not None
    assert warning.operation == "fsync"
    assert (tmp_path / "x.json").read_text(encoding="utf-8") == "data"


def test_atomic_write_falls_back_to_copy(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def _broken_replace(src: object, dst: object) -> None:
        raise OSError("cross-device link")

    monkeypatch.setattr(os, "replace", _broken_replace)

    assert atomic_write(tmp_path / "y.json", "copied") is None
    assert (tmp_path / "y.json").read_text(encoding="utf-8") == "copied"
    assert not (tmp_path / "y.json.tmp").exists()


def test_resolve_home_precedence(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GUARDEDIT_HOME", str(tmp_path / "env-home"))

    assert resolve_home(str(tmp_path / "configured")) == tmp_path / "configured"
    assert resolve_home(None) == tmp_path / "env-home"

    monkeypatch.delenv("GUARDEDIT_HOME")
    assert resolve_home("") == Path("~/.guardedit").expanduser()


def test_from_config_uses_paths_home(tmp_path: Path) -> None:
    registry = ProjectRegistry.from_config({"paths": {"home": str(tmp_path / "cfg-home")}})

    assert registry.base_dir == tmp_path / "cfg-home"
