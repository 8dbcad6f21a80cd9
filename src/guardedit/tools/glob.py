"""Minimal unix-style glob matcher for repository paths.

Supported tokens:

``**``
    Any run of characters, path separators included (so ``**/`` may also
    match zero directories).
``*``
    Any run of characters within a single path segment.
``?``
    A single character other than ``/``.

Every other character is matched literally.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Pattern

__all__ = ["glob_match", "glob_to_regex"]


@lru_cache(maxsize=256)
def glob_to_regex(pattern: str) -> Pattern[str]:
    """Compile ``pattern`` into an anchored regular expression."""
    parts: list[str] = []
    index = 0
    length = len(pattern)
    while index < length:
        char = pattern[index]
        if char == "*":
            if pattern.startswith("**", index):
                index += 2
                if pattern.startswith("/", index):
                    # "**/" also covers the case where no directory is present.
                    parts.append("(?:.*/)?")
                    index += 1
                else:
                    parts.append(".*")
                continue
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(char))
        index += 1
    return re.compile("^" + "".join(parts) + "$")


def glob_match(pattern: str, path: str) -> bool:
    """Return ``True`` when the forward-slash ``path`` matches ``pattern``."""
    return glob_to_regex(pattern).match(path) is not None
