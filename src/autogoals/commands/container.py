# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Container commands for AutoGoals.

Manage the per-workspace docker container used by the docker backend.
"""

import typer

from autogoals.backends import ContainerManager, ExternalToolError, container_name
from autogoals.commands.common import EXIT_CONFIG_ERROR, EXIT_FATAL, fail, get_project
from autogoals.config import ConfigurationError
from autogoals.settings import load_settings

app = typer.Typer(help="Manage the workspace docker container")


def _manager(ctx: typer.Context) -> ContainerManager:
    project = get_project(ctx)
    try:
        settings = load_settings(project.project_path)
    except ConfigurationError as e:
        fail(str(e), EXIT_CONFIG_ERROR)
    return ContainerManager(image=settings.image)


@app.command("status")
def status_command(ctx: typer.Context):
    """Show the container for this workspace."""
    project = get_project(ctx)
    manager = _manager(ctx)
    try:
        info = manager.status(project.project_path)
    except ExternalToolError as e:
        fail(str(e), EXIT_FATAL)

    if info is None:
        typer.echo(f"No container ({container_name(project.project_path)} does not exist)")
        return

    typer.echo(f"Container: {info.name}")
    typer.echo(f"  ID: {info.id[:12]}")
    typer.echo(f"  State: {info.state}")
    if info.created_at:
        typer.echo(f"  Created: {info.created_at}")
    state = manager.load_container_state(project.project_path)
    if state:
        typer.echo(f"  Last used: {state.last_used}")


@app.command("stop")
def stop_command(ctx: typer.Context):
    """Stop the container for this workspace."""
    project = get_project(ctx)
    try:
        stopped = _manager(ctx).stop(project.project_path)
    except ExternalToolError as e:
        fail(str(e), EXIT_FATAL)

    if stopped:
        typer.echo("Container stopped")
    else:
        typer.echo("No running container")


@app.command("remove")
def remove_command(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", "-f", help="Remove even if running"),
):
    """Remove the container for this workspace."""
    project = get_project(ctx)
    try:
        removed = _manager(ctx).remove(project.project_path, force=force)
    except ExternalToolError as e:
        fail(str(e), EXIT_FATAL, hint="Stop it first or pass --force.")

    if removed:
        typer.echo("Container removed")
    else:
        typer.echo("No container to remove")


@app.command("list")
def list_command(ctx: typer.Context):
    """List AutoGoals containers on this host."""
    try:
        containers = _manager(ctx).list_containers()
    except ExternalToolError as e:
        fail(str(e), EXIT_FATAL)

    if not containers:
        typer.echo("No AutoGoals containers")
        return

    for info in containers:
        typer.echo(f"  {info.name}  [{info.state}]")
        typer.echo(f"    {info.workspace or '(unknown workspace)'}")
