# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Main CLI entry point for AutoGoals.

Loads goals.yaml, validates it, and runs the scheduler against the project.
All goal logic lives in the scheduler; commands only wire things up and
map errors to exit codes.
"""

import logging
import threading
from pathlib import Path
from typing import Optional

import typer

from autogoals import __version__
from autogoals.backends import BACKENDS, ExternalToolError, get_backend
from autogoals.commands import container, goal
from autogoals.commands.common import (
    EXIT_CONFIG_ERROR,
    EXIT_FATAL,
    ProjectContext,
    fail,
    get_project,
    load_config_or_exit,
)
from autogoals.config import ConfigurationError, write_goals_template
from autogoals.dependencies import DependencyError, validate_dependencies
from autogoals.env import is_env_ignored
from autogoals.event_client import EVENTS_LOG, EventClient
from autogoals.monitor import Monitor
from autogoals.scheduler import RunOutcome, RunResult, Scheduler, clear_pause, is_paused, request_pause
from autogoals.schemas import GoalsConfig, GoalState, GoalStatus
from autogoals.sessions import SessionManager
from autogoals.settings import load_settings
from autogoals.state import StateCorruptionError, display_status, summarize
from autogoals.workers import AgentWorker

app = typer.Typer(
    name="autogoals",
    help="Run an AI coding agent through a list of dependent goals",
    no_args_is_help=True,
)

STATUS_ICONS = {
    GoalState.COMPLETED.value: "✓",
    GoalState.FAILED.value: "✗",
}

OUTCOME_HINTS = {
    RunOutcome.FAILED: "Run 'autogoals status' for details, then 'autogoals reset <goal>' or 'autogoals skip <goal>'.",
    RunOutcome.PAUSED: "Run 'autogoals resume' to continue.",
    RunOutcome.STALLED: "Iteration limit reached. Run 'autogoals start' to continue.",
    RunOutcome.BLOCKED: "Remaining goals are waiting on dependencies.",
}


@app.callback()
def main_callback(
    ctx: typer.Context,
    project: Path = typer.Option(Path("."), "--project", "-p", help="Project directory containing goals.yaml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Run an AI coding agent through a list of dependent goals."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = ProjectContext(project_path=project.expanduser().resolve(), verbose=verbose)


def _goal_line(goal_id: str, title: str, goal_status: GoalStatus) -> str:
    icon = STATUS_ICONS.get(goal_status.status, "→")
    label = display_status(goal_status)
    if goal_status.skipped:
        label += " (skipped)"
    line = f"  {icon} {goal_id}: {title} [{label}]"
    if goal_status.retry_count:
        line += f" retries: {goal_status.retry_count}"
    return line


def _print_goals(config: GoalsConfig, result_state) -> None:
    for g in config.goals:
        goal_status = result_state.goals_status.get(g.id, GoalStatus())
        typer.echo(_goal_line(g.id, g.title, goal_status))
        if goal_status.status == GoalState.FAILED.value and goal_status.last_error:
            error = goal_status.last_error
            typer.echo(f"      last error: `{error.command}` exited {error.exit_code}")


def _run_with_monitor(scheduler: Scheduler, sessions: SessionManager) -> RunResult:
    """Run the scheduler in a thread while the monitor owns the terminal."""
    stop = threading.Event()
    outcome = {}

    def target():
        try:
            outcome["result"] = scheduler.run()
        except Exception as e:
            # Re-raised in the main thread below
            outcome["error"] = e
        finally:
            stop.set()

    thread = threading.Thread(target=target, name="autogoals-scheduler", daemon=True)
    thread.start()
    Monitor(sessions).run(stop)
    thread.join()

    if "error" in outcome:
        raise outcome["error"]
    return outcome["result"]


def _run_loop(
    ctx: typer.Context,
    backend: Optional[str],
    monitor: bool,
    worktrees: bool,
    goal_timeout: Optional[int],
) -> None:
    project = get_project(ctx)
    config = load_config_or_exit(project)

    try:
        settings = load_settings(project.project_path).merge(
            backend=backend,
            goal_timeout=goal_timeout,
            use_worktrees=True if worktrees else None,
        )
        worker = AgentWorker(
            get_backend(settings.backend, settings.image),
            agent_command=settings.agent_command,
            model=settings.model,
        )
    except (ConfigurationError, ValueError) as e:
        fail(str(e), EXIT_CONFIG_ERROR)

    try:
        validate_dependencies(config.goals)
    except DependencyError as e:
        fail(str(e), EXIT_CONFIG_ERROR)

    if (project.project_path / ".env").exists() and not is_env_ignored(project.project_path):
        typer.echo("Warning: .env is not listed in .gitignore", err=True)

    if not worker.health():
        fail(
            f"agent command '{worker.executable}' not found on PATH",
            EXIT_FATAL,
            hint="Install the agent CLI or set agent_command in .autogoals/config.yaml.",
        )

    sessions = SessionManager() if monitor else None
    scheduler = Scheduler(
        config,
        project.store,
        worker,
        project.project_path,
        sessions=sessions,
        events=EventClient.for_project(project.project_path),
        goal_timeout=settings.goal_timeout,
        max_iterations=settings.max_iterations,
        use_worktrees=settings.use_worktrees,
        main_branch=settings.main_branch,
    )

    typer.echo(f"Running {len(config.goals)} goal(s) with the {settings.backend} backend")
    try:
        result = _run_with_monitor(scheduler, sessions) if monitor else scheduler.run()
    except DependencyError as e:
        fail(str(e), EXIT_CONFIG_ERROR)
    except StateCorruptionError as e:
        fail(str(e), EXIT_FATAL, hint="Run 'autogoals restore' to recover from the backup.")
    except ExternalToolError as e:
        fail(str(e), EXIT_FATAL)

    typer.echo()
    typer.echo(f"Run {result.outcome.value} after {result.iterations} iteration(s)")
    _print_goals(config, result.state)
    hint = OUTCOME_HINTS.get(result.outcome)
    if hint:
        typer.echo(hint)
    raise typer.Exit(result.exit_code)


@app.command()
def init(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing goals.yaml"),
):
    """Create a starter goals.yaml in the project."""
    project = get_project(ctx)
    try:
        path = write_goals_template(project.goals_file, force=force)
    except ConfigurationError as e:
        fail(str(e), EXIT_CONFIG_ERROR)

    (project.project_path / EVENTS_LOG).parent.mkdir(parents=True, exist_ok=True)
    typer.echo(f"Created {path}")
    typer.echo("Edit the goals, then run 'autogoals validate' and 'autogoals start'.")


@app.command()
def validate(ctx: typer.Context):
    """Check goals.yaml and print the execution order."""
    project = get_project(ctx)
    config = load_config_or_exit(project)
    try:
        order = validate_dependencies(config.goals)
    except DependencyError as e:
        fail(str(e), EXIT_CONFIG_ERROR)

    typer.echo(f"{project.goals_file} is valid ({len(config.goals)} goal(s))")
    typer.echo()
    typer.echo("Execution order:")
    for i, goal_id in enumerate(order, 1):
        typer.echo(f"  {i}. {goal_id}")


@app.command()
def start(
    ctx: typer.Context,
    backend: Optional[str] = typer.Option(None, "--backend", "-b", help=f"Where commands run: {', '.join(BACKENDS)}"),
    monitor: bool = typer.Option(False, "--monitor", "-m", help="Show the live session monitor"),
    worktrees: bool = typer.Option(False, "--worktrees", help="Run goals with a branch_name in git worktrees"),
    goal_timeout: Optional[int] = typer.Option(None, "--goal-timeout", help="Seconds a goal may run"),
):
    """Run goals until none is eligible.

    Examples:
        autogoals start
        autogoals start --backend docker --monitor
    """
    _run_loop(ctx, backend, monitor, worktrees, goal_timeout)


@app.command()
def status(ctx: typer.Context):
    """Show per-goal status and overall progress."""
    project = get_project(ctx)
    config = load_config_or_exit(project)
    try:
        state = project.store.load()
    except StateCorruptionError as e:
        fail(str(e), EXIT_FATAL, hint="Run 'autogoals restore' to recover from the backup.")

    if state is None:
        typer.echo("No state yet. Run 'autogoals start' to begin.")
        return

    if config.project_name:
        typer.echo(f"Project: {config.project_name}")
    typer.echo("Goals:")
    _print_goals(config, state)

    summary = summarize(config, state)
    typer.echo()
    typer.echo(f"Progress: {summary.completed}/{summary.total} completed ({summary.percent_complete}%)")
    typer.echo(
        f"  failed: {summary.failed}  in progress: {summary.in_progress}  pending: {summary.pending}"
    )
    if is_paused(project.project_path):
        typer.echo("Paused. Run 'autogoals resume' to continue.")


@app.command()
def pause(ctx: typer.Context):
    """Stop a running scheduler before its next goal."""
    project = get_project(ctx)
    marker = request_pause(project.project_path)
    typer.echo(f"Pause requested ({marker})")


@app.command()
def resume(
    ctx: typer.Context,
    backend: Optional[str] = typer.Option(None, "--backend", "-b", help=f"Where commands run: {', '.join(BACKENDS)}"),
    monitor: bool = typer.Option(False, "--monitor", "-m", help="Show the live session monitor"),
    worktrees: bool = typer.Option(False, "--worktrees", help="Run goals with a branch_name in git worktrees"),
    goal_timeout: Optional[int] = typer.Option(None, "--goal-timeout", help="Seconds a goal may run"),
):
    """Clear a pause and continue running goals.

    Pass the same --worktrees and --goal-timeout as the paused start, or set
    them in .autogoals/config.yaml.
    """
    project = get_project(ctx)
    if clear_pause(project.project_path):
        typer.echo("Pause cleared")
    _run_loop(ctx, backend, monitor, worktrees, goal_timeout)


@app.command()
def version():
    """Show version information."""
    typer.echo(f"autogoals version {__version__}")


app.command("skip")(goal.skip_command)
app.command("reset")(goal.reset_command)
app.command("restore")(goal.restore_command)
app.add_typer(container.app, name="container")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
