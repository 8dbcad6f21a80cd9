"""Structured telemetry events for the edit pipeline."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

TELEMETRY_LOGGER = logging.getLogger("guardedit.telemetry")

__all__ = ["TELEMETRY_LOGGER", "emit_event"]


def _serialise_event_value(value: Any) -> Any:
    """Convert telemetry payload values into JSON-friendly representations."""
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_serialise_event_value(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): _serialise_event_value(child) for key, child in value.items()}
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return _serialise_event_value(to_dict())
    return str(value)


def emit_event(event: str, **fields: Any) -> None:
    """Log one compact JSON object describing ``event``."""
    payload: dict[str, Any] = {"event": event, "timestamp": datetime.now(timezone.utc).isoformat()}
    for key, value in fields.items():
        payload[key] = _serialise_event_value(value)
    TELEMETRY_LOGGER.info(json.dumps(payload, separators=(",", ":"), ensure_ascii=True))
