"""Base class shared by streaming text-generation integrations."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Mapping

__all__ = [
    "ModelError",
    "ModelResponseError",
    "ModelTransportError",
    "StreamingClient",
]

LOGGER = logging.getLogger(__name__)


class ModelError(RuntimeError):
    """Base error raised when the text-generation call fails."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class ModelTransportError(ModelError):
    """Raised when the underlying transport fails to return a response."""


class ModelResponseError(ModelError):
    """Raised when the service answers with a payload that cannot be read."""


class StreamingClient:
    """Prompt-in, chunks-out adapter around a text-generation service.

    Subclasses implement :meth:`_raw_stream`. :meth:`stream` preserves chunk
    order and normalises any failure into :class:`ModelError`.
    """

    def __init__(self, model: str) -> None:
        self._model = model

    @property
    def model(self) -> str:
        """Return the model name configured for this client."""
        return self._model

    def stream(self, prompt: str) -> Iterator[str]:
        """Yield partial response chunks for ``prompt`` in arrival order."""
        try:
            for chunk in self._raw_stream(prompt):
                if chunk:
                    yield chunk
        except ModelError:
            raise
        except Exception as error:
            LOGGER.debug("Streaming call to %s failed", self._model, exc_info=True)
            raise ModelTransportError(f"Model call failed: {error}") from error

    def complete(self, prompt: str) -> str:
        """Return the concatenated response for ``prompt``."""
        return "".join(self.stream(prompt))

    def _raw_stream(self, prompt: str) -> Iterable[str]:
        """Perform the transport call. Subclasses must implement."""
        raise NotImplementedError("Subclasses must implement _raw_stream().")
