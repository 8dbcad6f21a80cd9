"""Typed payloads that describe a single diff request sent to the model."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Tuple

EolStyle = Literal["LF", "CRLF", "MIXED"]


def detect_eol(text: str) -> EolStyle:
    """Return the line-ending style used by ``text``."""
    crlf = text.count("\r\n")
    if not crlf:
        return "LF"
    if text.count("\n") > crlf:
        return "MIXED"
    return "CRLF"


@dataclass(frozen=True, slots=True)
class SourceFile:
    """Snapshot of a project file taken when the request was assembled."""

    path: str
    eol: EolStyle
    text: str


@dataclass(frozen=True, slots=True)
class EnvProject:
    id: str
    display_root: str
    cwd: str
    created_at: str


@dataclass(frozen=True, slots=True)
class EnvConstraints:
    max_files: int
    max_changed_lines: int
    allow_dirty: bool


@dataclass(frozen=True, slots=True)
class EnvPolicy:
    edit_scope: str = "prefer-docs-only"
    no_build_file_edits: bool = True
    allow_binary_edits: bool = False


@dataclass(frozen=True, slots=True)
class EnvHeader:
    """Environment block embedded at the top of every diff prompt."""

    project: EnvProject
    constraints: EnvConstraints
    target_hints: Tuple[str, ...] = ()
    policy: EnvPolicy = field(default_factory=EnvPolicy)

    def to_dict(self) -> Dict[str, Any]:
        """Return the JSON-ready header using the key names the prompt documents."""
        return {
            "project": {
                "id": self.project.id,
                "root": self.project.display_root,
                "cwd": self.project.cwd,
                "createdAt": self.project.created_at,
            },
            "constraints": {
                "maxFiles": self.constraints.max_files,
                "maxChangedLines": self.constraints.max_changed_lines,
                "allowDirty": self.constraints.allow_dirty,
            },
            "targetHints": list(self.target_hints),
            "policy": {
                "editScope": self.policy.edit_scope,
                "noBuildFileEdits": self.policy.no_build_file_edits,
                "allowBinaryEdits": self.policy.allow_binary_edits,
            },
        }


@dataclass(frozen=True, slots=True)
class IoWarning:
    """A best-effort filesystem operation that did not succeed."""

    operation: str
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.operation} failed for {self.path}: {self.message}"


@dataclass(frozen=True, slots=True)
class DiffRequest:
    """Unit of work handed to the diff generator."""

    header: EnvHeader
    instruction: str
    files: Tuple[SourceFile, ...] = ()


__all__ = [
    "DiffRequest",
    "EnvConstraints",
    "EnvHeader",
    "EnvPolicy",
    "EnvProject",
    "EolStyle",
    "IoWarning",
    "SourceFile",
    "detect_eol",
]
