"""Drive one guarded edit from instruction to an applied temp branch.

The run is a strictly linear state machine::

    IDLE -> FILES_RESOLVED -> DIFF_GENERATED -> VALIDATED
         -> AWAITING_CONFIRMATION -> APPLYING -> APPLIED | FAILED

with ``ABORTED`` reachable from every non-terminal state.  Nothing is written
to the project before the operator confirms, and no exception escapes
:meth:`EditOrchestrator.run`.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import typer

from .diff_generator import DiffGenerator
from .intent import Intent, detect_intent, extract_candidate_paths
from .memory.schema import ProjectMeta, short_stamp
from .models.llm_client import ModelError
from .policy.budgets import Budgets
from .structured import (
    DiffRequest,
    EnvConstraints,
    EnvHeader,
    EnvPolicy,
    EnvProject,
    IoWarning,
    SourceFile,
    detect_eol,
)
from .tools import diff_inspector
from .tools.diff_inspector import DiffSummary
from .tools.patch import PatchApplier
from .tools.path_guard import is_blocked, is_under_root, to_unix
from .tools.telemetry import emit_event
from .tools.vcs import GitStatus

LOGGER = logging.getLogger(__name__)

Confirm = Callable[[str], bool]
Echo = Callable[[str], None]
Clock = Callable[[], datetime]

CONFIRM_PROMPT = "Apply changes on a temp branch? [y/N]: "
DEFAULT_BRANCH_PREFIX = "guardedit/change-"
DEFAULT_STATE_DIR = ".guardedit"


class EditState(str, Enum):
    """States of a single edit run."""

    IDLE = "IDLE"
    FILES_RESOLVED = "FILES_RESOLVED"
    DIFF_GENERATED = "DIFF_GENERATED"
    VALIDATED = "VALIDATED"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
    APPLYING = "APPLYING"
    APPLIED = "APPLIED"
    ABORTED = "ABORTED"
    FAILED = "FAILED"

    @property
    def terminal(self) -> bool:
        return self in {EditState.APPLIED, EditState.ABORTED, EditState.FAILED}


@dataclass(frozen=True, slots=True)
class SkippedPath:
    """A mentioned path that was not sent to the model, and why."""

    path: str
    reason: str


@dataclass(frozen=True, slots=True)
class BackupResult:
    """Where the backup patch was meant to go and whether writing it worked."""

    path: Path
    warning: IoWarning | None = None

    @property
    def written(self) -> bool:
        return self.warning is None


@dataclass(slots=True)
class EditOutcome:
    """Everything a caller needs to report on a finished run."""

    state: EditState = EditState.IDLE
    message: str = ""
    is_error: bool = False
    history: List[EditState] = field(default_factory=lambda: [EditState.IDLE])
    intent: Intent | None = None
    files: Tuple[SourceFile, ...] = ()
    skipped: List[SkippedPath] = field(default_factory=list)
    summary: DiffSummary | None = None
    diff: str = ""
    branch: str | None = None
    backup_path: Path | None = None
    warnings: List[IoWarning] = field(default_factory=list)

    @property
    def applied(self) -> bool:
        return self.state is EditState.APPLIED


def console_confirm(prompt: str) -> bool:
    """Ask on the terminal; only ``y``/``yes`` count as consent."""
    typer.echo(prompt, nl=False)
    answer = sys.stdin.readline()
    if not answer:
        return False
    return answer.strip().lower() in {"y", "yes"}


def always_confirm(prompt: str) -> bool:
    return True


def never_confirm(prompt: str) -> bool:
    return False


def render_preview(summary: DiffSummary, diff: str) -> str:
    return "\n".join(
        (
            f"Preview: {summary.changed_files} file(s), +{summary.total_added} / -{summary.total_removed} lines",
            "----- BEGIN DIFF -----",
            diff,
            "------ END DIFF ------",
        )
    )


def write_backup(path: Path, diff: str) -> BackupResult:
    """Write ``diff`` verbatim to ``path``; failures become a warning."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8", newline="") as handle:
            handle.write(diff)
    except OSError as error:
        LOGGER.warning("Could not write backup patch %s: %s", path, error)
        return BackupResult(path, IoWarning("backup", str(path), str(error)))
    return BackupResult(path)


def ignore_state_dir(state_path: Path) -> IoWarning | None:
    """Keep ``state_path`` out of ``git status`` with a catch-all ``.gitignore``."""
    marker = state_path / ".gitignore"
    if marker.exists():
        return None
    try:
        state_path.mkdir(parents=True, exist_ok=True)
        marker.write_text("*\n", encoding="utf-8")
    except OSError as error:
        LOGGER.warning("Could not write %s: %s", marker, error)
        return IoWarning("gitignore", str(marker), str(error))
    return None


class EditOrchestrator:
    """Coordinate intent, guards, generation, validation, and application."""

    def __init__(
        self,
        diff_generator: DiffGenerator,
        patch_applier: PatchApplier,
        git_status: GitStatus,
        *,
        budgets: Budgets | None = None,
        confirm: Confirm = console_confirm,
        echo: Echo = typer.echo,
        state_dir: str = DEFAULT_STATE_DIR,
        branch_prefix: str = DEFAULT_BRANCH_PREFIX,
        extra_blocked_globs: Sequence[str] = (),
        clock: Clock = datetime.now,
    ) -> None:
        self.diff_generator = diff_generator
        self.patch_applier = patch_applier
        self.git_status = git_status
        self.budgets = budgets or Budgets()
        self.confirm = confirm
        self.echo = echo
        self.state_dir = state_dir
        self.branch_prefix = branch_prefix
        self.extra_blocked_globs = tuple(extra_blocked_globs)
        self.clock = clock

    # ------------------------------------------------------------------ public
    def run(self, instruction: str, project: ProjectMeta, *, force: bool = False) -> EditOutcome:
        """Execute one edit for ``project``; ``force`` skips the intent gate."""
        outcome = EditOutcome()
        try:
            self._run(outcome, instruction, project, force=force)
        except Exception as error:
            LOGGER.debug("Edit run failed unexpectedly", exc_info=True)
            # Only a run that reached APPLYING may end FAILED.
            terminal = EditState.FAILED if outcome.state is EditState.APPLYING else EditState.ABORTED
            self._finish(outcome, terminal, f"Unexpected error: {error}", is_error=True)
        emit_event(
            "edit_finished",
            project=project.id,
            state=outcome.state.value,
            history=[state.value for state in outcome.history],
            files=[source.path for source in outcome.files],
            skipped=[{"path": item.path, "reason": item.reason} for item in outcome.skipped],
            branch=outcome.branch,
            backup=outcome.backup_path,
            warnings=[str(warning) for warning in outcome.warnings],
        )
        return outcome

    # -------------------------------------------------------------- pipeline
    def _run(self, outcome: EditOutcome, instruction: str, project: ProjectMeta, *, force: bool) -> None:
        root = project.root_path

        if force:
            candidates = extract_candidate_paths(instruction, allow_bare_code_files=True)
            outcome.intent = Intent(True, "forced", candidates)
        else:
            outcome.intent = detect_intent(instruction, True)
            if not outcome.intent.is_edit:
                self._finish(outcome, EditState.ABORTED, f"Not an edit request: {outcome.intent.reason}.")
                return
            candidates = outcome.intent.target_paths

        outcome.files = self._resolve_files(root, candidates, outcome)
        if not outcome.files:
            self._finish(outcome, EditState.ABORTED, "No eligible files to edit under project root.")
            return
        self._advance(outcome, EditState.FILES_RESOLVED)

        request = self._build_request(project, instruction, outcome.files)
        try:
            diff = self.diff_generator.generate_diff(request)
        except ModelError as error:
            LOGGER.debug("Model call failed", exc_info=True)
            self._finish(outcome, EditState.ABORTED, f"Model error: {error}", is_error=True)
            return
        if not diff.strip():
            self._finish(outcome, EditState.ABORTED, "No changes proposed.")
            return
        outcome.diff = diff
        self._advance(outcome, EditState.DIFF_GENERATED)

        summary = diff_inspector.summarize(diff)
        outcome.summary = summary
        rejection = self._validate(diff, summary)
        if rejection is not None:
            self._finish(outcome, EditState.ABORTED, rejection)
            return
        self._advance(outcome, EditState.VALIDATED)
        self.echo(render_preview(summary, diff))

        self._advance(outcome, EditState.AWAITING_CONFIRMATION)
        if not self.confirm(CONFIRM_PROMPT):
            self._finish(outcome, EditState.ABORTED, "Aborted.")
            return
        if not self.budgets.allow_dirty and self.git_status.is_dirty(root):
            self._finish(outcome, EditState.ABORTED, "Working tree dirty. Commit/stash or allow dirty.")
            return

        self._advance(outcome, EditState.APPLYING)
        self._apply(outcome, root, diff)

    def _resolve_files(
        self, root: Path, candidates: Sequence[str], outcome: EditOutcome
    ) -> Tuple[SourceFile, ...]:
        files: List[SourceFile] = []
        seen: set[Path] = set()
        for candidate in candidates:
            raw = Path(candidate)
            joined = raw if raw.is_absolute() else root / raw
            absolute = Path(os.path.normpath(joined))

            reason = self._skip_reason(absolute, root)
            text: Optional[str] = None
            if reason is None:
                try:
                    # Bytes keep CRLF intact for EOL detection.
                    text = absolute.read_bytes().decode("utf-8")
                except UnicodeDecodeError:
                    reason = "not UTF-8 text"
                except OSError as error:
                    reason = f"unreadable: {error}"
            if reason is not None:
                LOGGER.info("Skipping %s: %s", absolute, reason)
                outcome.skipped.append(SkippedPath(candidate, reason))
                continue

            canonical = absolute.resolve()
            if canonical in seen:
                continue
            seen.add(canonical)
            relative = to_unix(canonical.relative_to(root))
            files.append(SourceFile(relative, detect_eol(text or ""), text or ""))
        return tuple(files)

    def _skip_reason(self, absolute: Path, root: Path) -> str | None:
        if not is_under_root(absolute, root):
            return "outside project root"
        canonical = absolute.resolve()
        if not is_under_root(canonical, root):
            return "outside project root"
        if not canonical.is_file():
            return "not a regular file"
        if is_blocked(to_unix(canonical), self.extra_blocked_globs):
            return "guarded file"
        return None

    def _build_request(
        self, project: ProjectMeta, instruction: str, files: Tuple[SourceFile, ...]
    ) -> DiffRequest:
        header = EnvHeader(
            project=EnvProject(
                id=project.id,
                display_root=".",
                cwd=".",
                created_at=project.created_at.isoformat(),
            ),
            constraints=EnvConstraints(
                max_files=self.budgets.max_files,
                max_changed_lines=self.budgets.max_changed_lines,
                allow_dirty=self.budgets.allow_dirty,
            ),
            target_hints=tuple(source.path for source in files),
            policy=EnvPolicy(),
        )
        return DiffRequest(header=header, instruction=instruction, files=files)

    def _validate(self, diff: str, summary: DiffSummary) -> str | None:
        """Return the reason ``diff`` must not be applied, if any."""
        if self.budgets.exceeded(summary):
            return (
                f"Exceeds budget: {summary.changed_files} files, {summary.total_changed} lines "
                f"(max {self.budgets.max_files}/{self.budgets.max_changed_lines})."
            )
        if diff_inspector.contains_blocked_paths(diff, self.extra_blocked_globs):
            return "Diff touches guarded files (build/lock/CI)."
        unsafe = diff_inspector.unsafe_paths(diff)
        if unsafe:
            return f"Diff touches paths outside the project: {', '.join(unsafe)}."
        forbidden = diff_inspector.forbidden_operations(diff)
        if forbidden:
            return f"Diff contains forbidden operations: {', '.join(forbidden)}."
        return None

    def _apply(self, outcome: EditOutcome, root: Path, diff: str) -> None:
        stamp = short_stamp(self.clock())
        branch = f"{self.branch_prefix}{stamp}"
        head = self.git_status.head_short(root)
        state_path = root / self.state_dir
        ignore_warning = ignore_state_dir(state_path)
        if ignore_warning is not None:
            outcome.warnings.append(ignore_warning)
        backup = write_backup(state_path / "patches" / f"{stamp}-{head}.patch", diff)
        outcome.branch = branch
        outcome.backup_path = backup.path.absolute()
        if backup.warning is not None:
            outcome.warnings.append(backup.warning)

        try:
            applied = self.patch_applier.apply(root, branch, diff)
        except Exception as error:
            LOGGER.warning("Patch applier raised: %s", error, exc_info=True)
            applied = False
        if applied:
            self._finish(outcome, EditState.APPLIED, f"Applied on temp branch {branch}")
            if backup.written:
                self.echo(f"Backup patch: {outcome.backup_path}")
            else:
                self.echo(f"Backup patch not written: {backup.warning}")
            return
        self._finish(outcome, EditState.FAILED, f"Patch failed; see backup: {outcome.backup_path}", is_error=True)

    # ------------------------------------------------------------- bookkeeping
    def _advance(self, outcome: EditOutcome, state: EditState) -> None:
        LOGGER.debug("Edit state %s -> %s", outcome.state.value, state.value)
        outcome.state = state
        outcome.history.append(state)

    def _finish(self, outcome: EditOutcome, state: EditState, message: str, *, is_error: bool = False) -> None:
        self._advance(outcome, state)
        outcome.message = message
        outcome.is_error = is_error
        self.echo(message)


def with_allow_dirty(budgets: Budgets, allow_dirty: bool) -> Budgets:
    """Return ``budgets`` with ``allow_dirty`` forced on when requested."""
    return replace(budgets, allow_dirty=True) if allow_dirty else budgets


__all__ = [
    "BackupResult",
    "CONFIRM_PROMPT",
    "Confirm",
    "EditOrchestrator",
    "EditOutcome",
    "EditState",
    "SkippedPath",
    "always_confirm",
    "console_confirm",
    "ignore_state_dir",
    "never_confirm",
    "render_preview",
    "with_allow_dirty",
    "write_backup",
]
