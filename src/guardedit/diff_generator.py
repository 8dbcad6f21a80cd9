"""Ask the text-generation service for a unified diff."""

from __future__ import annotations

import logging

from .models.llm_client import ModelError, StreamingClient
from .prompts import build_prompt
from .structured import DiffRequest

__all__ = ["DiffGenerator", "strip_markdown_fence"]

LOGGER = logging.getLogger(__name__)

_FENCE = "```"


def strip_markdown_fence(text: str) -> str:
    """Remove a Markdown code fence wrapping ``text`` if the model added one.

    Everything after the opening fence line is kept up to the last closing
    fence. A missing closing fence keeps the remainder as-is.
    """
    trimmed = text.strip()
    if not trimmed.startswith(_FENCE):
        return trimmed
    newline = trimmed.find("\n")
    after_fence = trimmed[newline + 1 :] if newline >= 0 else trimmed[len(_FENCE) :]
    end = after_fence.rfind(_FENCE)
    if end >= 0:
        after_fence = after_fence[:end]
    return after_fence.strip()


class DiffGenerator:
    """Build the diff prompt, stream the model answer, and clean it up."""

    def __init__(self, client: StreamingClient) -> None:
        self._client = client

    def generate_diff(self, request: DiffRequest) -> str:
        """Return the proposed diff text for ``request``.

        Raises :class:`ModelError` when the model call fails.
        """
        prompt = build_prompt(request).as_single_message()
        chunks: list[str] = []
        try:
            for chunk in self._client.stream(prompt):
                chunks.append(chunk)
        except ModelError:
            raise
        except Exception as error:
            raise ModelError(f"Model call failed: {error}") from error
        LOGGER.debug("Received %d chunk(s) from %s", len(chunks), getattr(self._client, "model", "model"))
        return strip_markdown_fence("".join(chunks))
