# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Helpers shared by CLI commands: project context, exit codes, loading."""

from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn, Optional

import typer

from autogoals.config import ConfigurationError, find_goals_file, load_goals_config
from autogoals.schemas import ExecutionState, GoalsConfig
from autogoals.state import STATE_FILENAME, StateCorruptionError, StateStore

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_GOAL_FAILED = 2
EXIT_FATAL = 3


@dataclass
class ProjectContext:
    """Stored on ctx.obj by the root callback."""

    project_path: Path
    verbose: bool = False

    @property
    def goals_file(self) -> Path:
        return find_goals_file(self.project_path)

    @property
    def store(self) -> StateStore:
        return StateStore(self.project_path / STATE_FILENAME)


def get_project(ctx: typer.Context) -> ProjectContext:
    if isinstance(ctx.obj, ProjectContext):
        return ctx.obj
    return ProjectContext(project_path=Path.cwd())


def fail(message: str, code: int, hint: Optional[str] = None) -> NoReturn:
    """Print a one-line error (and the next step) and exit."""
    typer.echo(f"Error: {message}", err=True)
    if hint:
        typer.echo(hint, err=True)
    raise typer.Exit(code)


def load_config_or_exit(project: ProjectContext) -> GoalsConfig:
    try:
        return load_goals_config(project.goals_file)
    except ConfigurationError as e:
        fail(str(e), EXIT_CONFIG_ERROR)


def load_state_or_exit(project: ProjectContext) -> ExecutionState:
    """Load existing state; missing or corrupt state ends the command."""
    store = project.store
    try:
        state = store.load()
    except StateCorruptionError as e:
        fail(str(e), EXIT_FATAL, hint="Run 'autogoals restore' to recover from the backup.")
    if state is None:
        fail(
            f"no state file at {store.path}",
            EXIT_CONFIG_ERROR,
            hint="Run 'autogoals start' first.",
        )
    return state
