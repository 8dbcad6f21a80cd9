"""Minimal git helpers
The helpers below provide just enough structure to inspect the working tree,
name backups after ``HEAD``, and create or discard the temporary branch an
edit is applied on.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Protocol, Sequence, Set

LOGGER = logging.getLogger(__name__)

NO_HEAD = "nohead"

_NOTHING_TO_COMMIT = ("nothing to commit", "nothing added to commit", "no changes added to commit")


class GitError(RuntimeError):
    """Raised when a git command fails or the repository cannot be used."""


class GitStatus(Protocol):
    """Read-only view of a working tree used by the edit pipeline."""

    def is_dirty(self, root: Path | str) -> bool: ...

    def head_short(self, root: Path | str) -> str: ...


class GitRepository:
    """Lightweight wrapper around ``git`` commands."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        if not (self.root / ".git").exists():
            raise GitError(f"Not a git repository: {self.root}")

    # ------------------------------------------------------------------ git IO
    def _run_git(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
        input_text: str | None = None,
    ) -> subprocess.CompletedProcess[str]:
        command = ["git", *args]
        process = subprocess.run(
            command,
            cwd=self.root,
            input=input_text.encode("utf-8") if input_text is not None else None,
            capture_output=True,
            text=False,
            check=False,
        )
        stdout = process.stdout.decode("utf-8", errors="replace") if process.stdout else ""
        stderr = process.stderr.decode("utf-8", errors="replace") if process.stderr else ""
        result = subprocess.CompletedProcess(process.args, process.returncode, stdout, stderr)
        if check and result.returncode != 0:
            message = result.stderr.strip() or result.stdout.strip() or "unknown git error"
            raise GitError(f"git {' '.join(args)} failed: {message}")
        return result

    def git(
        self,
        *args: str,
        check: bool = True,
        input_text: str | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Execute ``git`` with ``args`` relative to the repository root."""

        return self._run_git(list(args), check=check, input_text=input_text)

    # -------------------------------------------------------------- branches
    def current_branch(self) -> str | None:
        """Return the current branch name or ``None`` when detached."""

        result = self._run_git(["rev-parse", "--abbrev-ref", "HEAD"], check=False)
        if result.returncode != 0:
            return None
        branch = result.stdout.strip()
        if not branch or branch == "HEAD":
            return None
        return branch

    def create_branch(self, name: str) -> None:
        """Create ``name`` from the current ``HEAD`` and check it out."""

        self._run_git(["checkout", "-b", name], check=True)

    def checkout(self, ref: str) -> None:
        """Check out an existing branch or commit."""

        self._run_git(["checkout", ref], check=True)

    def delete_branch(self, name: str) -> None:
        """Force-delete the local branch ``name``."""

        self._run_git(["branch", "-D", name], check=True)

    def reset_hard(self) -> None:
        """Discard tracked changes in the index and working tree."""

        self._run_git(["reset", "--hard"], check=True)

    def head_short(self) -> str | None:
        """Return the abbreviated ``HEAD`` hash or ``None`` without commits."""

        result = self._run_git(["rev-parse", "--short", "HEAD"], check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    # ------------------------------------------------------------- repo status
    def _status_entries(self) -> List[tuple[str, Path]]:
        result = self._run_git(["status", "--porcelain"], check=True)
        entries: List[tuple[str, Path]] = []
        for line in result.stdout.splitlines():
            if not line:
                continue
            status = line[:2]
            raw_path = line[3:]
            if status[0] in {"R", "C"} and " -> " in raw_path:
                raw_path = raw_path.split(" -> ", 1)[1]
            status_clean = status.strip() or status
            entries.append((status_clean, Path(raw_path.strip())))
        return entries

    def working_tree_changes(self, *, include_untracked: bool = True) -> List[Path]:
        """Return the set of paths with pending modifications."""

        entries = self._status_entries()
        paths: Set[Path] = set()
        for status, path in entries:
            if status == "??" and not include_untracked:
                continue
            paths.add(path)
        return sorted(paths, key=lambda item: item.as_posix())

    def is_clean(self, *, include_untracked: bool = True) -> bool:
        """Return ``True`` when the working tree has no pending changes."""

        return not self.working_tree_changes(include_untracked=include_untracked)

    # ------------------------------------------------------------------- stash
    def stash_create(self) -> str | None:
        """Record tracked changes as a dangling stash commit and return its SHA.

        Unlike ``git stash push`` this leaves the working tree, the index and
        the stash list untouched.  ``None`` means there was nothing to record.
        """

        result = self._run_git(["stash", "create"], check=False)
        if result.returncode != 0:
            LOGGER.debug("git stash create failed: %s", result.stderr.strip())
            return None
        return result.stdout.strip() or None

    def stash_apply(self, ref: str) -> None:
        """Apply the stash commit ``ref``, restoring its index state as well."""

        result = self._run_git(["stash", "apply", "--index", ref], check=False)
        if result.returncode != 0:
            message = result.stderr.strip() or result.stdout.strip() or "unknown git error"
            raise GitError(f"git stash apply {ref} failed: {message}")

    # ------------------------------------------------------------- commits
    def commit_paths(self, message: str, paths: Sequence[str]) -> str | None:
        """Stage and commit only ``paths``, leaving other pending changes alone.

        Returns the new commit SHA, or ``None`` when ``paths`` had nothing to commit.
        """

        existing = [path for path in paths if (self.root / path).exists()]
        if not existing:
            return None
        self._run_git(["add", "--", *existing], check=True)
        commit = self._run_git(["commit", "-m", message, "--only", "--", *existing], check=False)
        if commit.returncode != 0:
            output = commit.stderr.strip() or commit.stdout.strip()
            if any(marker in output.lower() for marker in _NOTHING_TO_COMMIT):
                return None
            raise GitError(f"git commit failed: {output}")
        return self._run_git(["rev-parse", "HEAD"], check=True).stdout.strip()


class GitStatusProbe:
    """:class:`GitStatus` backed by the ``git`` executable.

    Failures are answered conservatively: an unreadable tree counts as dirty
    and an unknown ``HEAD`` is reported as ``nohead``.
    """

    def is_dirty(self, root: Path | str) -> bool:
        try:
            return not GitRepository(root).is_clean()
        except (GitError, OSError) as error:
            LOGGER.warning("Unable to read git status for %s; treating as dirty: %s", root, error)
            return True

    def head_short(self, root: Path | str) -> str:
        try:
            return GitRepository(root).head_short() or NO_HEAD
        except (GitError, OSError) as error:
            LOGGER.debug("Unable to read HEAD for %s: %s", root, error)
            return NO_HEAD


__all__ = ["GitError", "GitRepository", "GitStatus", "GitStatusProbe", "NO_HEAD"]
