"""Path predicates that keep edits inside the project and away from guarded files."""

from __future__ import annotations

import os
from pathlib import Path, PurePath
from typing import Iterable, Iterator, Sequence

from .glob import glob_match

__all__ = [
    "BLOCKED_FILE_NAMES",
    "BLOCKED_GLOBS",
    "is_blocked",
    "is_under_root",
    "to_unix",
]

# Dependency manifests and lockfiles that must never be edited by the model.
BLOCKED_FILE_NAMES: frozenset[str] = frozenset(
    {
        "pom.xml",
        "package.json",
        "package-lock.json",
        "pnpm-lock.yaml",
        "build.gradle",
        "build.gradle.kts",
        "settings.gradle",
        "settings.gradle.kts",
        "go.sum",
    }
)

BLOCKED_GLOBS: tuple[str, ...] = (
    ".git/**",
    "**/*.lock",
    "pom.xml",
    "build.gradle",
    "build.gradle.kts",
    "package.json",
    ".github/workflows/**",
)


def to_unix(path: Path | str) -> str:
    """Return ``path`` with forward slashes only."""
    return str(path).replace("\\", "/")


def _normalise(path: Path | str) -> PurePath:
    return PurePath(os.path.normpath(os.path.abspath(os.fspath(path))))


def is_under_root(abs_path: Path | str, root_abs: Path | str) -> bool:
    """Return ``True`` when ``abs_path`` is ``root_abs`` or lives beneath it.

    Both paths are normalised lexically; the filesystem is not consulted, so
    callers that care about symlinks should resolve ``abs_path`` first.
    """
    candidate = _normalise(abs_path)
    root = _normalise(root_abs)
    return candidate == root or root in candidate.parents


def _segment_suffixes(unix_path: str) -> Iterator[str]:
    """Yield ``a/b/c``, ``b/c`` and ``c`` for ``/a/b/c``."""
    segments = [segment for segment in unix_path.split("/") if segment]
    for start in range(len(segments)):
        yield "/".join(segments[start:])


def is_blocked(abs_path: Path | str, extra_globs: Sequence[str] | Iterable[str] = ()) -> bool:
    """Return ``True`` when ``abs_path`` names a guarded file."""
    unix = to_unix(abs_path)
    name = unix.rstrip("/").rsplit("/", 1)[-1]
    if name in BLOCKED_FILE_NAMES or name.endswith(".lock"):
        return True

    patterns = (*BLOCKED_GLOBS, *extra_globs)
    candidates = [unix, *_segment_suffixes(unix)]
    return any(glob_match(pattern, candidate) for pattern in patterns for candidate in candidates)
