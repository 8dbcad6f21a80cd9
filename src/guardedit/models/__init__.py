"""Convenience exports for guardedit text-generation clients."""

from .chat_completions import ChatCompletionsClient
from .llm_client import (
    ModelError,
    ModelResponseError,
    ModelTransportError,
    StreamingClient,
)

__all__ = [
    "ChatCompletionsClient",
    "ModelError",
    "ModelResponseError",
    "ModelTransportError",
    "StreamingClient",
]
