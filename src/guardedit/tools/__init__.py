"""Tool integrations used by the edit pipeline."""

from .diff_inspector import DiffSummary, contains_blocked_paths, summarize
from .glob import glob_match, glob_to_regex
from .patch import GitPatchApplier, PatchApplier, PatchError
from .path_guard import is_blocked, is_under_root
from .telemetry import emit_event
from .vcs import GitError, GitRepository, GitStatus, GitStatusProbe

__all__ = [
    "DiffSummary",
    "GitError",
    "GitPatchApplier",
    "GitRepository",
    "GitStatus",
    "GitStatusProbe",
    "PatchApplier",
    "PatchError",
    "contains_blocked_paths",
    "emit_event",
    "glob_match",
    "glob_to_regex",
    "is_blocked",
    "is_under_root",
    "summarize",
]
