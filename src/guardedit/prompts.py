"""Prompt templates that ask the model for a single unified diff."""

from __future__ import annotations

import json
from dataclasses import dataclass

from .structured import DiffRequest, SourceFile

DIFF_SYSTEM_INSTRUCTION = (
    "You are a careful code editor.\n"
    "Given an ENV HEADER, one or more SOURCE FILES, and an INSTRUCTION,\n"
    "output a single git unified diff (multi-file allowed) with minimal, surgical changes.\n"
    "Rules:\n"
    "- Do not rename, move, or delete files.\n"
    "- Keep within the budget described in the header.\n"
    "- Preserve formatting and line endings.\n"
    "- For documentation tasks, edit only comments/docstrings unless told otherwise.\n"
    "- If unsure, produce a smaller diff or a no-op.\n"
    "Output: ONLY a git unified diff (no prose, no backticks)."
)

RESPONSE_FORMAT_LINES = (
    "- Return ONLY a git unified diff. No prose, no backticks, no Markdown fences.",
    "- Use headers: `diff --git a/<path> b/<path>`, then `--- a/<path>`, `+++ b/<path>`, and `@@` hunks.",
)


@dataclass(frozen=True, slots=True)
class BuiltPrompt:
    """System and user halves of a diff prompt."""

    system: str
    user: str

    def as_single_message(self) -> str:
        """Inline the system block ahead of the user text for single-prompt clients."""
        return f"SYSTEM INSTRUCTIONS\n```\n{self.system.strip()}\n```\n\n{self.user}"


def render_source_file(source: SourceFile) -> str:
    """Render ``source`` as a fenced block annotated with its path and EOL style."""
    body = source.text if source.text.endswith("\n") else f"{source.text}\n"
    return f"```file path={source.path} eol={source.eol}\n{body}```"


def build_prompt(request: DiffRequest) -> BuiltPrompt:
    """Render ``request`` into the exact text sent to the model."""
    header_json = json.dumps(request.header.to_dict(), separators=(",", ":"), ensure_ascii=False)

    sections = [
        "ENV HEADER (JSON)",
        "```json",
        header_json,
        "```",
        "",
        "INSTRUCTION",
        "```",
        request.instruction.strip(),
        "```",
        "",
        "SOURCE FILES",
        *(render_source_file(source) for source in request.files),
        "",
        "RESPONSE FORMAT",
        *RESPONSE_FORMAT_LINES,
    ]
    return BuiltPrompt(system=DIFF_SYSTEM_INSTRUCTION, user="\n".join(sections) + "\n")


__all__ = [
    "BuiltPrompt",
    "DIFF_SYSTEM_INSTRUCTION",
    "RESPONSE_FORMAT_LINES",
    "build_prompt",
    "render_source_file",
]
