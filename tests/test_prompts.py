from __future__ import annotations

import json

from guardedit.prompts import DIFF_SYSTEM_INSTRUCTION, build_prompt, render_source_file
from guardedit.structured import (
    DiffRequest,
    EnvConstraints,
    EnvHeader,
    EnvProject,
    SourceFile,
    detect_eol,
)


def _request(*files: SourceFile) -> DiffRequest:
    header = EnvHeader(
        project=EnvProject(id="abc123", display_root=".", cwd=".", created_at="2025-01-01T00:00:00+00:00"),
        constraints=EnvConstraints(max_files=3, max_changed_lines=300, allow_dirty=False),
        target_hints=tuple(source.path for source in files),
    )
    return DiffRequest(header=header, instruction="  Add a docstring to src/a.py  ", files=files)


def test_detect_eol_styles() -> None:
    assert detect_eol("a\nb\n") == "LF"
    assert detect_eol("a\r\nb\r\n") == "CRLF"
    assert detect_eol("a\r\nb\n") == "MIXED"
    assert detect_eol("") == "LF"


def test_render_source_file_appends_missing_newline() -> None:
    rendered = render_source_file(SourceFile("src/a.py", "LF", "x = 1"))

    assert rendered == "```file path=src/a.py eol=LF\nx = 1\n```"


def test_prompt_sections_are_ordered_and_header_is_compact_json() -> None:
    prompt = build_prompt(_request(SourceFile("src/a.py", "LF", "x = 1\n")))
    user = prompt.user

    order = [user.index(marker) for marker in ("ENV HEADER (JSON)", "INSTRUCTION", "SOURCE FILES", "RESPONSE FORMAT")]
    assert order == sorted(order)
    assert user.endswith("\n")
    assert "```\nAdd a docstring to src/a.py\n```" in user
    assert "diff --git a/<path> b/<path>" in user

    header_line = user.splitlines()[2]
    header = json.loads(header_line)
    assert " " not in header_line
    assert header["project"]["root"] == "."
    assert header["constraints"] == {"maxFiles": 3, "maxChangedLines": 300, "allowDirty": False}
    assert header["targetHints"] == ["src/a.py"]
    assert header["policy"]["editScope"] == "prefer-docs-only"


def test_single_message_inlines_system_block_first() -> None:
    message = build_prompt(_request()).as_single_message()

    assert message.startswith("SYSTEM INSTRUCTIONS\n```\n")
    assert message.index(DIFF_SYSTEM_INSTRUCTION) < message.index("ENV HEADER (JSON)")


def test_build_prompt_is_deterministic() -> None:
    request = _request(SourceFile("src/a.py", "CRLF", "x = 1\r\n"))

    assert build_prompt(request) == build_prompt(request)
