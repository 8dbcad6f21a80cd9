from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from guardedit.tools.patch import GitPatchApplier
from guardedit.tools.vcs import NO_HEAD, GitError, GitRepository, GitStatusProbe

from conftest import CALCULATOR_DOC_DIFF, TinyRepo


def test_git_repository_requires_git_dir(tmp_path: Path) -> None:
    with pytest.raises(GitError):
        GitRepository(tmp_path)


def test_status_probe_reports_clean_and_dirty(tiny_repo: TinyRepo) -> None:
    probe = GitStatusProbe()
    assert not probe.is_dirty(tiny_repo.root)

    (tiny_repo.root / "scratch.txt").write_text("wip\n", encoding="utf-8")

    assert probe.is_dirty(tiny_repo.root)
    assert GitRepository(tiny_repo.root).working_tree_changes() == [Path("scratch.txt")]


def test_status_probe_is_conservative_outside_git(tmp_path: Path) -> None:
    probe = GitStatusProbe()

    assert probe.is_dirty(tmp_path)
    assert probe.head_short(tmp_path) == NO_HEAD


def test_head_short_matches_git(tiny_repo: TinyRepo) -> None:
    expected = tiny_repo.git("rev-parse", "--short", "HEAD").stdout.strip()

    assert GitStatusProbe().head_short(tiny_repo.root) == expected


def test_applier_commits_on_new_branch(tiny_repo: TinyRepo, caplog: pytest.LogCaptureFixture) -> None:
    original_branch = tiny_repo.branch()
    applier = GitPatchApplier(commit_message="docs: describe add")

    with caplog.at_level(logging.INFO, logger="guardedit.telemetry"):
        assert applier.apply(tiny_repo.root, "guardedit/change-test", CALCULATOR_DOC_DIFF)

    assert tiny_repo.branch() == "guardedit/change-test"
    source = (tiny_repo.root / "src" / "calculator.py").read_text(encoding="utf-8")
    assert '"""Return the sum of both operands."""' in source
    assert tiny_repo.git("log", "-1", "--format=%s").stdout.strip() == "docs: describe add"
    assert GitRepository(tiny_repo.root).is_clean()
    assert original_branch in tiny_repo.branches()

    events = [json.loads(record.getMessage()) for record in caplog.records if record.name == "guardedit.telemetry"]
    assert events[-1]["event"] == "patch_applied"
    assert events[-1]["branch"] == "guardedit/change-test"


def test_applier_rolls_back_when_patch_does_not_apply(tiny_repo: TinyRepo) -> None:
    original_branch = tiny_repo.branch()
    broken = CALCULATOR_DOC_DIFF.replace("def add(left, right):", "def subtract(left, right):")

    assert not GitPatchApplier().apply(tiny_repo.root, "guardedit/change-broken", broken)

    assert tiny_repo.branch() == original_branch
    assert "guardedit/change-broken" not in tiny_repo.branches()
    source = (tiny_repo.root / "src" / "calculator.py").read_text(encoding="utf-8")
    assert "Return the sum" not in source


def test_applier_refuses_existing_branch(tiny_repo: TinyRepo) -> None:
    tiny_repo.git("branch", "guardedit/change-taken")

    assert not GitPatchApplier().apply(tiny_repo.root, "guardedit/change-taken", CALCULATOR_DOC_DIFF)
    assert "guardedit/change-taken" in tiny_repo.branches()


def test_applier_returns_false_outside_git(tmp_path: Path) -> None:
    assert not GitPatchApplier().apply(tmp_path, "guardedit/change-x", CALCULATOR_DOC_DIFF)


def test_failed_check_keeps_pending_edits(tiny_repo: TinyRepo) -> None:
    calculator = tiny_repo.root / "src" / "calculator.py"
    calculator.write_text(calculator.read_text(encoding="utf-8") + "# operator note\n", encoding="utf-8")
    broken = CALCULATOR_DOC_DIFF.replace("def add(left, right):", "def subtract(left, right):")

    assert not GitPatchApplier().apply(tiny_repo.root, "guardedit/change-x", broken)

    assert calculator.read_text(encoding="utf-8").endswith("# operator note\n")
    assert "guardedit/change-x" not in tiny_repo.branches()


def test_commit_holds_only_the_patched_files(tiny_repo: TinyRepo) -> None:
    readme = tiny_repo.root / "README.md"
    readme.write_text("# Tiny\n\nwork in progress\n", encoding="utf-8")
    (tiny_repo.root / "notes.txt").write_text("scratch\n", encoding="utf-8")

    assert GitPatchApplier().apply(tiny_repo.root, "guardedit/change-dirty", CALCULATOR_DOC_DIFF)

    committed = tiny_repo.git("show", "--name-only", "--format=", "HEAD").stdout.split()
    assert committed == ["src/calculator.py"]
    assert readme.read_text(encoding="utf-8").endswith("work in progress\n")
    changes = GitRepository(tiny_repo.root).working_tree_changes()
    assert changes == [Path("README.md"), Path("notes.txt")]


def test_rollback_after_apply_restores_pending_edits(tiny_repo: TinyRepo) -> None:
    original_branch = tiny_repo.branch()
    hook = tiny_repo.root / ".git" / "hooks" / "pre-commit"
    hook.parent.mkdir(parents=True, exist_ok=True)
    hook.write_text("#!/bin/sh\nexit 1\n", encoding="utf-8")
    hook.chmod(0o755)
    readme = tiny_repo.root / "README.md"
    readme.write_text("# Tiny\n\nwork in progress\n", encoding="utf-8")

    assert not GitPatchApplier().apply(tiny_repo.root, "guardedit/change-hooked", CALCULATOR_DOC_DIFF)

    assert tiny_repo.branch() == original_branch
    assert "guardedit/change-hooked" not in tiny_repo.branches()
    assert readme.read_text(encoding="utf-8").endswith("work in progress\n")
    source = (tiny_repo.root / "src" / "calculator.py").read_text(encoding="utf-8")
    assert "Return the sum" not in source


def test_commit_paths_ignores_unchanged_files(tiny_repo: TinyRepo) -> None:
    repo = GitRepository(tiny_repo.root)

    assert repo.commit_paths("nothing", ["README.md"]) is None
    assert repo.commit_paths("nothing", ["missing.txt"]) is None


def test_stash_create_is_none_on_clean_tree(tiny_repo: TinyRepo) -> None:
    repo = GitRepository(tiny_repo.root)

    assert repo.stash_create() is None
    (tiny_repo.root / "README.md").write_text("changed\n", encoding="utf-8")
    assert repo.stash_create()
    assert tiny_repo.git("stash", "list").stdout == ""
