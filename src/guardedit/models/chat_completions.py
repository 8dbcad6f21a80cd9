"""Streaming client for OpenAI-compatible ``/chat/completions`` endpoints."""

from __future__ import annotations

import json
import os
from typing import Any, Callable, Dict, Iterable, Iterator, Optional

from .llm_client import ModelResponseError, ModelTransportError, StreamingClient

__all__ = ["ChatCompletionsClient"]


Transport = Callable[[Dict[str, Any]], Iterable[str]]

_DONE_MARKER = "[DONE]"


class ChatCompletionsClient(StreamingClient):
    """Thin adapter that reads server-sent events from a chat completions API."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: str = "https://api.openai.com/v1/chat/completions",
        model: str = "gpt-4o-mini",
        temperature: Optional[float] = 0.0,
        transport: Optional[Transport] = None,
        timeout: float = 120.0,
    ) -> None:
        super().__init__(model=model)
        self._api_key = api_key or os.getenv("GUARDEDIT_API_KEY") or os.getenv("OPENAI_API_KEY")
        self._base_url = base_url
        self._temperature = temperature
        timeout_override = os.getenv("GUARDEDIT_TIMEOUT")
        if timeout_override:
            try:
                parsed = float(timeout_override)
                if parsed > 0:
                    timeout = parsed
            except ValueError:
                pass
        self._timeout = timeout
        self._transport = transport or self._http_transport

        if transport is None and not self._api_key:
            raise ValueError("An API key is required when using the default transport.")

    def build_payload(self, prompt: str) -> Dict[str, Any]:
        """Return the request body for a single-message streaming completion."""
        payload: Dict[str, Any] = {
            "model": self.model,
            "stream": True,
            "messages": [{"role": "user", "content": prompt}],
        }
        if self._temperature is not None:
            payload["temperature"] = self._temperature
        return payload

    def _raw_stream(self, prompt: str) -> Iterator[str]:
        """Send the request and yield content deltas from the event stream."""
        for raw_line in self._transport(self.build_payload(prompt)):
            line = raw_line.strip()
            if not line or line.startswith(":"):
                continue
            if not line.startswith("data:"):
                continue
            data = line[len("data:") :].strip()
            if data == _DONE_MARKER:
                return
            try:
                event = json.loads(data)
            except json.JSONDecodeError as error:
                raise ModelResponseError(
                    "Model stream contained an invalid event.",
                    details={"event": data[:200]},
                ) from error
            error_payload = event.get("error") if isinstance(event, dict) else None
            if error_payload:
                message = error_payload.get("message") if isinstance(error_payload, dict) else error_payload
                raise ModelResponseError(f"Model reported an error: {message}")
            text = self._delta_text(event)
            if text:
                yield text

    def _http_transport(self, payload: Dict[str, Any]) -> Iterator[str]:
        """Default HTTP transport yielding decoded response lines."""
        import urllib.error
        import urllib.request

        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(
            self._base_url,
            data=data,
            headers={
                "Content-Type": "application/json",
                "Accept": "text/event-stream",
                "Authorization": f"Bearer {self._api_key}",
            },
            method="POST",
        )

        try:
            response = urllib.request.urlopen(request, timeout=self._timeout)
        except TimeoutError as error:  # pragma: no cover - network-dependent
            raise ModelTransportError("Model response timed out.") from error
        except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
            message = error.read().decode("utf-8", errors="ignore")
            raise ModelTransportError(f"HTTP {error.code}: {message}") from error
        except urllib.error.URLError as error:  # pragma: no cover - network-dependent
            raise ModelTransportError(f"Failed to reach model endpoint: {error.reason}") from error

        with response:  # pragma: no cover - network-dependent
            for raw in response:
                yield raw.decode("utf-8", errors="replace")

    @staticmethod
    def _delta_text(event: Any) -> Optional[str]:
        """Return the text carried by one streamed completion event."""
        if not isinstance(event, dict):
            return None
        choices = event.get("choices")
        if not isinstance(choices, list):
            return None
        for choice in choices:
            if not isinstance(choice, dict):
                continue
            delta = choice.get("delta")
            if isinstance(delta, dict):
                content = delta.get("content")
                if isinstance(content, str):
                    return content
            # Legacy completions stream plain ``text`` fields.
            text = choice.get("text")
            if isinstance(text, str):
                return text
        return None
