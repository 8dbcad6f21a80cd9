"""Apply a proposed unified diff on a throwaway git branch."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Protocol

from .diff_inspector import header_paths
from .telemetry import emit_event
from .vcs import GitError, GitRepository

LOGGER = logging.getLogger(__name__)

DEFAULT_COMMIT_MESSAGE = "guardedit: apply proposed change"

__all__ = ["DEFAULT_COMMIT_MESSAGE", "GitPatchApplier", "PatchApplier", "PatchError"]


class PatchError(RuntimeError):
    """Raised when a patch fails validation or application."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class PatchApplier(Protocol):
    """Applies ``diff`` to the repository at ``root`` on a new ``branch``."""

    def apply(self, root: Path | str, branch: str, diff: str) -> bool: ...


def _with_trailing_newline(diff: str) -> str:
    # git apply rejects a final hunk line without a newline as corrupt.
    return diff if diff.endswith("\n") else diff + "\n"


class GitPatchApplier:
    """:class:`PatchApplier` that shells out to ``git``.

    The sequence is ``checkout -b``, ``apply --check``, ``apply`` (both with
    ``--whitespace=fix``) and a commit of the files the diff names.  The apply
    is strict: a diff whose context does not match the working tree fails the
    check instead of being merged.  Pending
    changes that are already in the tree are recorded with ``git stash create``
    first; they are never staged into the commit, and once the branch exists
    any failure returns to the previous branch, deletes the temporary branch
    and restores them.
    """

    def __init__(self, *, commit_message: str = DEFAULT_COMMIT_MESSAGE) -> None:
        self.commit_message = commit_message

    def apply(self, root: Path | str, branch: str, diff: str) -> bool:
        try:
            self._apply(root, branch, diff)
        except PatchError as error:
            LOGGER.warning("Patch not applied: %s", error)
            emit_event("patch_failed", root=Path(root), branch=branch, error=str(error), details=error.details)
            return False
        emit_event("patch_applied", root=Path(root), branch=branch)
        return True

    def _apply(self, root: Path | str, branch: str, diff: str) -> None:
        try:
            repo = GitRepository(root)
        except GitError as error:
            raise PatchError(str(error), details={"stage": "open"}) from error

        previous = repo.current_branch()
        snapshot = repo.stash_create()
        try:
            repo.create_branch(branch)
        except GitError as error:
            raise PatchError(str(error), details={"stage": "checkout"}) from error

        patch_text = _with_trailing_newline(diff)
        check = repo.git("apply", "--check", "--whitespace=fix", "-", check=False, input_text=patch_text)
        if check.returncode != 0:
            # Nothing was written yet, so the tree needs no reset.
            self._rollback(repo, branch, previous, snapshot=None, reset=False)
            raise PatchError(
                "git apply --check failed",
                details={"stage": "check", "stderr": check.stderr.strip()},
            )

        try:
            repo.git("apply", "--whitespace=fix", "-", input_text=patch_text)
            if repo.commit_paths(self.commit_message, header_paths(diff)) is None:
                LOGGER.info("Patch on %s produced no changes to commit", branch)
        except GitError as error:
            self._rollback(repo, branch, previous, snapshot=snapshot, reset=True)
            raise PatchError(str(error), details={"stage": "apply"}) from error

    def _rollback(
        self,
        repo: GitRepository,
        branch: str,
        previous: str | None,
        *,
        snapshot: str | None,
        reset: bool,
    ) -> None:
        steps = [
            ("checkout", repo.checkout, (previous or "-",)),
            ("delete-branch", repo.delete_branch, (branch,)),
        ]
        if reset:
            steps.insert(0, ("reset", repo.reset_hard, ()))
        for name, action, args in steps:
            try:
                action(*args)
            except GitError as error:
                LOGGER.warning("Rollback step %s failed: %s", name, error)
        if snapshot is None:
            return
        try:
            repo.stash_apply(snapshot)
        except GitError as error:
            LOGGER.warning("Pending changes not restored (%s); recover them with git stash apply %s", error, snapshot)
