"""Heuristic classifier deciding whether an instruction asks for a file edit."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Pattern, Tuple

__all__ = [
    "CODE_EXTENSIONS",
    "EDIT_VERBS",
    "Intent",
    "detect_intent",
    "extract_candidate_paths",
]

EDIT_VERBS: Tuple[str, ...] = (
    "add",
    "write",
    "update",
    "fix",
    "insert",
    "append",
    "document",
    "javadoc",
    "docstring",
    "comment",
    "refactor",
    "rename",
)
DOC_KEYWORDS: Tuple[str, ...] = ("javadoc", "docstring")
CODE_EXTENSIONS: Tuple[str, ...] = (
    ".kt",
    ".java",
    ".js",
    ".ts",
    ".py",
    ".rb",
    ".cpp",
    ".h",
    ".cs",
    ".go",
    ".rs",
    ".php",
    ".swift",
    ".scala",
)

_VERB_PATTERN: Pattern[str] = re.compile(r"\b(?:" + "|".join(EDIT_VERBS) + r")\b")
_PATH_TOKEN: Pattern[str] = re.compile(r"[A-Za-z0-9_\-./\\]+(?:\.[A-Za-z0-9_\-]+)")


@dataclass(frozen=True, slots=True)
class Intent:
    """Classification of a single instruction."""

    is_edit: bool
    reason: str = ""
    target_paths: Tuple[str, ...] = ()


def _word_start(text: str, index: int) -> int:
    while index > 0 and not text[index - 1].isspace():
        index -= 1
    return index


def extract_candidate_paths(instruction: str, *, allow_bare_code_files: bool = False) -> Tuple[str, ...]:
    """Return path-like tokens mentioned in ``instruction`` in order of appearance.

    A token qualifies when it has an extension and a path separator. With
    ``allow_bare_code_files`` a separator-less token is also accepted when it
    ends in a common source extension (``Main.kt``).
    """
    seen: dict[str, None] = {}
    for match in _PATH_TOKEN.finditer(instruction):
        token = match.group(0)
        if instruction[_word_start(instruction, match.start())] == ":":
            continue
        has_separator = "/" in token or "\\" in token
        if not has_separator:
            if not allow_bare_code_files:
                continue
            if not token.lower().endswith(CODE_EXTENSIONS):
                continue
        seen.setdefault(token.replace("\\", "/"), None)
    return tuple(seen)


def detect_intent(instruction: str, has_active_project: bool) -> Intent:
    """Classify ``instruction``; pure function of its inputs."""
    lowered = instruction.lower()
    verb = _VERB_PATTERN.search(lowered)
    doc_keyword = next((keyword for keyword in DOC_KEYWORDS if keyword in lowered), None)
    paths = extract_candidate_paths(instruction)

    if not has_active_project:
        return Intent(False, "no active project", paths)
    if verb is None and doc_keyword is None:
        return Intent(False, "no edit verb", paths)
    if not paths:
        return Intent(False, "no file path", paths)

    trigger = verb.group(0) if verb is not None else doc_keyword
    return Intent(True, f"verb+path detected ({trigger})", paths)
