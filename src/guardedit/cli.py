"""CLI commands for registering projects and running guarded edits."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List

import typer

from .config import (
    DEFAULT_CONFIG_NAME,
    ConfigError,
    branch_prefix,
    budgets_from_config,
    commit_message,
    copy_config_template,
    extra_blocked_globs,
    is_offline,
    load_config,
    model_settings,
    state_dir,
    write_config,
)
from .diff_generator import DiffGenerator
from .memory.registry import ProjectRegistry, RegistryError
from .memory.schema import ProjectMeta
from .models import ChatCompletionsClient, StreamingClient
from .orchestrator import (
    EditOrchestrator,
    EditOutcome,
    always_confirm,
    console_confirm,
    with_allow_dirty,
)
from .tools.patch import GitPatchApplier
from .tools.vcs import GitStatusProbe

APP_HELP = "Guarded, AI-assisted code edits applied on throwaway git branches."

LOGGER = logging.getLogger(__name__)

app = typer.Typer(help=APP_HELP)

CONFIG_OPTION_HELP = "Path to the guardedit configuration file."


class _OfflineClient(StreamingClient):
    """Local stub that never proposes a change."""

    def __init__(self) -> None:
        super().__init__("offline")

    def _raw_stream(self, prompt: str) -> Iterator[str]:
        return iter(())


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load(config: str) -> Dict[str, Any]:
    try:
        return load_config(Path(config))
    except ConfigError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error


def _registry(config_data: Dict[str, Any]) -> ProjectRegistry:
    return ProjectRegistry.from_config(config_data)


def _resolve_project(registry: ProjectRegistry, key: str) -> ProjectMeta:
    meta = registry.resolve(key)
    if meta is None:
        typer.echo(f"Project not found: {key}")
        raise typer.Exit(code=1)
    return meta


def _build_client(config_data: Dict[str, Any], *, offline: bool) -> StreamingClient:
    """Select either the chat completions client or the offline stub."""
    if offline or is_offline(config_data):
        typer.echo("Using offline stub client.")
        return _OfflineClient()
    try:
        return ChatCompletionsClient(**model_settings(config_data))
    except ValueError as error:
        if "api key" in str(error).lower():
            typer.echo(
                "No API key given. Set GUARDEDIT_API_KEY or OPENAI_API_KEY, "
                "or re-run with --offline to use the offline stub."
            )
        else:
            typer.echo(f"Failed to initialise model client: {error}")
        raise typer.Exit(code=1) from error


def _run_edit(
    words: List[str],
    *,
    config: str,
    yes: bool,
    allow_dirty: bool,
    offline: bool,
    force: bool,
) -> EditOutcome:
    instruction = " ".join(words).strip()
    if not instruction:
        typer.echo("Instruction must not be empty.")
        raise typer.Exit(code=1)

    config_data = _load(config)
    registry = _registry(config_data)
    active = registry.get_active()
    if active is None:
        typer.echo("No active project. Use create-project or use-project first.")
        raise typer.Exit(code=1)
    project, _ = active

    try:
        project = registry.touch(project.id)
    except RegistryError as error:
        LOGGER.warning("Could not record project use: %s", error)

    orchestrator = EditOrchestrator(
        DiffGenerator(_build_client(config_data, offline=offline)),
        GitPatchApplier(commit_message=commit_message(config_data)),
        GitStatusProbe(),
        budgets=with_allow_dirty(budgets_from_config(config_data), allow_dirty),
        confirm=always_confirm if yes else console_confirm,
        state_dir=state_dir(config_data),
        branch_prefix=branch_prefix(config_data),
        extra_blocked_globs=extra_blocked_globs(config_data),
    )
    outcome = orchestrator.run(instruction, project, force=force)
    for warning in outcome.warnings:
        typer.echo(f"Warning: {warning}")
    if outcome.is_error:
        raise typer.Exit(code=1)
    return outcome


@app.command()
def init(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file."),
) -> None:
    """Write the default configuration file."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"Config already exists: {config_path}")
        return
    write_config(config_path, copy_config_template())
    typer.echo(f"Wrote default configuration to {config_path}")


@app.command("create-project")
def create_project(
    name: str = typer.Argument(..., help="Display name for the project."),
    path: Path = typer.Argument(..., help="Project root directory."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Register a project root and make it active."""
    if not path.expanduser().is_dir():
        typer.echo(f"Not a directory: {path}")
        raise typer.Exit(code=1)
    registry = _registry(_load(config))
    try:
        meta = registry.create(name, path)
    except RegistryError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error
    typer.echo(f"Created project {meta.name} ({meta.id}) at {meta.root}; now active.")


@app.command()
def projects(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """List registered projects; the active one is marked with ``*``."""
    registry = _registry(_load(config))
    entries = registry.list()
    if not entries:
        typer.echo("No projects registered.")
        return
    active = registry.get_active()
    active_id = active[0].id if active else None
    for meta in entries:
        marker = "*" if meta.id == active_id else " "
        typer.echo(f"{marker} {meta.name} [{meta.id}] {meta.root}")


@app.command("use-project")
def use_project(
    key: str = typer.Argument(..., help="Project id or name."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Select the active project."""
    registry = _registry(_load(config))
    meta = _resolve_project(registry, key)
    registry.set_active(meta.id)
    typer.echo(f"Active project: {meta.name} ({meta.root})")


@app.command("delete-project")
def delete_project(
    key: str = typer.Argument(..., help="Project id or name."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Move a project's metadata to the trash."""
    registry = _registry(_load(config))
    meta = _resolve_project(registry, key)
    if not yes and not typer.confirm(f"Delete project {meta.name}?", default=False):
        typer.echo("Aborted.")
        return
    if registry.soft_delete(meta.id):
        typer.echo(f"Deleted project {meta.name} (moved to trash).")
    else:
        typer.echo(f"Project not found: {key}")
        raise typer.Exit(code=1)


@app.command()
def current(
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Show the active project."""
    active = _registry(_load(config)).get_active()
    if active is None:
        typer.echo("No active project.")
        return
    meta, pointer = active
    typer.echo(f"{meta.name} [{meta.id}] {meta.root} (selected {pointer.selected_at.isoformat()})")


@app.command()
def edit(
    instruction: List[str] = typer.Argument(..., help="What to change, naming the files involved."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Apply without asking for confirmation."),
    allow_dirty: bool = typer.Option(False, "--allow-dirty", help="Apply even if the working tree has changes."),
    offline: bool = typer.Option(False, "--offline", help="Use the offline stub client."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Propose, preview, and apply an edit when the instruction asks for one."""
    _run_edit(instruction, config=config, yes=yes, allow_dirty=allow_dirty, offline=offline, force=False)


@app.command()
def agent(
    instruction: List[str] = typer.Argument(..., help="What to change, naming the files involved."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Apply without asking for confirmation."),
    allow_dirty: bool = typer.Option(False, "--allow-dirty", help="Apply even if the working tree has changes."),
    offline: bool = typer.Option(False, "--offline", help="Use the offline stub client."),
    config: str = typer.Option(DEFAULT_CONFIG_NAME, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Run the edit pipeline without the edit-intent check."""
    _run_edit(instruction, config=config, yes=yes, allow_dirty=allow_dirty, offline=offline, force=True)


if __name__ == "__main__":
    app()
