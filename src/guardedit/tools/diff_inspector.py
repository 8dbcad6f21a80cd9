"""Line-oriented inspection of unified diffs proposed by the model.

These helpers are deliberately textual: they look at line prefixes and file
headers only and never validate hunk structure. They accept arbitrary text
and never raise.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Iterable, Sequence, Tuple

from .path_guard import is_blocked

__all__ = [
    "DiffSummary",
    "blocked_paths",
    "contains_blocked_paths",
    "forbidden_operations",
    "header_paths",
    "summarize",
    "unsafe_paths",
]

_FORBIDDEN_MARKERS: Tuple[Tuple[str, str], ...] = (
    ("deleted file mode", "file deletion"),
    ("rename from ", "file rename"),
    ("rename to ", "file rename"),
    ("copy from ", "file copy"),
    ("GIT binary patch", "binary patch"),
    ("Binary files ", "binary patch"),
)


@dataclass(frozen=True, slots=True)
class DiffSummary:
    """Change statistics for one proposed diff."""

    changed_files: int = 0
    total_added: int = 0
    total_removed: int = 0

    @property
    def total_changed(self) -> int:
        return self.total_added + self.total_removed


def summarize(diff: str) -> DiffSummary:
    """Count touched files and added/removed lines by their diff markers."""
    files = added = removed = 0
    for line in diff.splitlines():
        if line.startswith("diff --git "):
            files += 1
        elif line.startswith("+") and not line.startswith("+++"):
            added += 1
        elif line.startswith("-") and not line.startswith("---"):
            removed += 1
    return DiffSummary(changed_files=files, total_added=added, total_removed=removed)


def _header_lines(diff: str) -> Iterable[str]:
    return (line for line in diff.splitlines() if line.startswith("+++ ") or line.startswith("--- "))


def _header_operand(line: str) -> str:
    operand = line[4:].strip()
    # git may append a tab and timestamp after the file name.
    return operand.split("\t", 1)[0]


def header_paths(diff: str) -> Tuple[str, ...]:
    """Return repository paths named by ``---``/``+++`` headers, in order."""
    seen: dict[str, None] = {}
    for line in _header_lines(diff):
        operand = _header_operand(line)
        if not operand or operand == "/dev/null":
            continue
        if operand.startswith("a/") or operand.startswith("b/"):
            operand = operand[2:]
        seen.setdefault(operand, None)
    return tuple(seen)


def contains_blocked_paths(diff: str, extra_globs: Sequence[str] = ()) -> bool:
    """Return ``True`` when a file header targets a guarded path.

    Header paths get the same denylist as files read from disk, so a nested
    manifest or a lockfile named in a timestamped header is caught too.
    """
    return bool(blocked_paths(diff, extra_globs))


def blocked_paths(diff: str, extra_globs: Sequence[str] = ()) -> Tuple[str, ...]:
    """Return the header paths that name guarded files."""
    return tuple(path for path in header_paths(diff) if is_blocked(path, extra_globs))


def unsafe_paths(diff: str) -> Tuple[str, ...]:
    """Return header paths that are absolute or climb out with ``..``."""
    flagged: list[str] = []
    for path in header_paths(diff):
        normalised = path.replace("\\", "/")
        if normalised.startswith("/") or re.match(r"^[A-Za-z]:/", normalised):
            flagged.append(path)
        elif ".." in PurePosixPath(normalised).parts:
            flagged.append(path)
    return tuple(flagged)


def forbidden_operations(diff: str) -> Tuple[str, ...]:
    """Return labels for deletions, renames, copies, and binary patches."""
    found: dict[str, None] = {}
    for line in diff.splitlines():
        for marker, label in _FORBIDDEN_MARKERS:
            if line.startswith(marker):
                found.setdefault(label, None)
    return tuple(found)
