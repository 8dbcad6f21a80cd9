"""Size budgets that bound a single proposed edit."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping

from ..tools.diff_inspector import DiffSummary

__all__ = ["BudgetViolation", "Budgets"]


@dataclass(frozen=True, slots=True)
class BudgetViolation:
    """One exceeded budget dimension."""

    kind: str
    actual: int
    limit: int

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "actual": self.actual, "limit": self.limit}


@dataclass(frozen=True, slots=True)
class Budgets:
    """Guardrail limits for an edit session."""

    max_files: int = 3
    max_changed_lines: int = 300
    allow_dirty: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "Budgets":
        """Build budgets from a config section, falling back to defaults."""
        if not isinstance(data, Mapping):
            return cls()
        defaults = cls()
        return cls(
            max_files=_as_positive_int(data.get("max_files"), defaults.max_files),
            max_changed_lines=_as_positive_int(data.get("max_changed_lines"), defaults.max_changed_lines),
            allow_dirty=_as_bool(data.get("allow_dirty"), defaults.allow_dirty),
        )

    def violations(self, summary: DiffSummary) -> List[BudgetViolation]:
        """Return every budget ``summary`` exceeds."""
        found: List[BudgetViolation] = []
        if summary.changed_files > self.max_files:
            found.append(BudgetViolation("files", summary.changed_files, self.max_files))
        if summary.total_changed > self.max_changed_lines:
            found.append(BudgetViolation("lines", summary.total_changed, self.max_changed_lines))
        return found

    def exceeded(self, summary: DiffSummary) -> bool:
        return bool(self.violations(summary))


def _as_positive_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1", "on"}:
            return True
        if lowered in {"false", "no", "0", "off"}:
            return False
    return default
