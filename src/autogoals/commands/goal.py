"""
Goal management commands: skip, reset, restore.

These edit the state file directly and are meant to be run while no
scheduler is running against the project.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

from typing import Optional

import typer

from autogoals.commands.common import (
    EXIT_CONFIG_ERROR,
    EXIT_FATAL,
    fail,
    get_project,
    load_config_or_exit,
    load_state_or_exit,
)
from autogoals.scheduler import InvalidTransitionError, reset_goal, skip_goal
from autogoals.state import GoalNotFoundError, StateCorruptionError, reconcile_state


def skip_command(
    ctx: typer.Context,
    goal_id: str = typer.Argument(..., help="Goal to mark completed"),
):
    """Mark a goal completed without running it.

    Goals that depend on it become eligible. Failed goals can be skipped too.

    Examples:
        autogoals skip setup-ci
    """
    project = get_project(ctx)
    config = load_config_or_exit(project)
    state = load_state_or_exit(project)

    try:
        reconcile_state(state, config)
        skip_goal(state, goal_id)
    except StateCorruptionError as e:
        fail(str(e), EXIT_FATAL, hint="Run 'autogoals restore' to recover from the backup.")
    except GoalNotFoundError as e:
        fail(str(e), EXIT_CONFIG_ERROR, hint=f"Known goals: {', '.join(config.goal_ids)}")
    except InvalidTransitionError as e:
        fail(str(e), EXIT_CONFIG_ERROR)

    project.store.save(state)
    typer.echo(f"Skipped {goal_id}")


def reset_command(
    ctx: typer.Context,
    goal_id: Optional[str] = typer.Argument(None, help="Goal to reset"),
    all_goals: bool = typer.Option(False, "--all", help="Reset every goal"),
):
    """Put a goal back to pending, clearing retries and errors.

    Examples:
        autogoals reset setup-ci
        autogoals reset --all
    """
    if not goal_id and not all_goals:
        fail("give a goal id or --all", EXIT_CONFIG_ERROR)

    project = get_project(ctx)
    config = load_config_or_exit(project)
    state = load_state_or_exit(project)

    targets = config.goal_ids if all_goals else [goal_id]
    try:
        reconcile_state(state, config)
        for target in targets:
            reset_goal(state, target)
    except StateCorruptionError as e:
        fail(str(e), EXIT_FATAL, hint="Run 'autogoals restore' to recover from the backup.")
    except GoalNotFoundError as e:
        fail(str(e), EXIT_CONFIG_ERROR, hint=f"Known goals: {', '.join(config.goal_ids)}")

    if all_goals:
        state.current_goal_id = config.goal_ids[0] if config.goal_ids else None
    project.store.save(state)
    typer.echo(f"Reset {len(targets)} goal(s) to pending")


def restore_command(ctx: typer.Context):
    """Replace the state file with its backup copy.

    Examples:
        autogoals restore
    """
    project = get_project(ctx)
    store = project.store
    try:
        state = store.restore_backup()
    except StateCorruptionError as e:
        fail(str(e), EXIT_FATAL, hint="Delete the state file and run 'autogoals start' to begin again.")

    typer.echo(f"Restored {store.path} from {store.backup_path}")
    typer.echo(f"  {len(state.goals_status)} goal(s), {len(state.execution_log)} log entries")
