"""Shared fixtures: goal builders, a scripted worker and a fake backend."""

from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from autogoals.backends.base import CommandBackend
from autogoals.schemas import CommandResult, Goal, GoalsConfig
from autogoals.state import STATE_FILENAME, StateStore
from autogoals.workers.base import Outcome, Phase, Worker, WorkerContext


def make_goal(goal_id: str, dependencies: Optional[List[str]] = None, **kwargs) -> Goal:
    return Goal(
        id=goal_id,
        name=kwargs.pop("name", f"Goal {goal_id}"),
        dependencies=dependencies or [],
        **kwargs,
    )


def make_config(*goals: Goal) -> GoalsConfig:
    return GoalsConfig(version="1.0", goals=list(goals))


def failed_result(command: str = "pytest", exit_code: int = 1, stderr: str = "boom") -> CommandResult:
    return CommandResult(command=command, exit_code=exit_code, stdout="", stderr=stderr)


class FakeWorker(Worker):
    """Returns scripted outcomes per (goal_id, phase); succeeds otherwise."""

    def __init__(self, outcomes: Optional[Dict[Tuple[str, Phase], list]] = None):
        self.outcomes = outcomes or {}
        self.calls = []

    def invoke(self, phase: Phase, goal: Goal, workspace: Path, context: WorkerContext) -> Outcome:
        self.calls.append(
            {
                "phase": phase,
                "goal_id": goal.id,
                "workspace": workspace,
                "retry_count": context.retry_count,
                "last_error": context.last_error,
                "plan": context.plan,
            }
        )
        context.log(f"{phase.value} {goal.id}")
        queue = self.outcomes.get((goal.id, phase))
        if queue:
            item = queue.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return Outcome(success=True, message=f"{phase.value} ok")

    def phases_for(self, goal_id: str) -> List[Phase]:
        return [call["phase"] for call in self.calls if call["goal_id"] == goal_id]


class FakeBackend(CommandBackend):
    """Records commands; exit codes come from a prefix -> code map."""

    name = "fake"

    def __init__(self, exit_codes: Optional[Dict[str, int]] = None, stdout: str = ""):
        self.exit_codes = exit_codes or {}
        self.stdout = stdout
        self.commands = []

    def execute(self, workspace, command, env=None) -> CommandResult:
        self.commands.append({"workspace": workspace, "command": command, "env": env})
        exit_code = 0
        for prefix, code in self.exit_codes.items():
            if command.startswith(prefix):
                exit_code = code
        return CommandResult(
            command=command,
            exit_code=exit_code,
            stdout=self.stdout,
            stderr="failed" if exit_code else "",
        )


@pytest.fixture
def store(tmp_path):
    return StateStore(tmp_path / STATE_FILENAME)


@pytest.fixture
def worker():
    return FakeWorker()


@pytest.fixture
def goals_yaml(tmp_path):
    """Write a goals.yaml into tmp_path and return its path."""

    def write(content: str) -> Path:
        path = tmp_path / "goals.yaml"
        path.write_text(content)
        return path

    return write
