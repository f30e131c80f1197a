"""Tests for the autogoals CLI."""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from autogoals.backends.base import ExternalToolError
from autogoals.backends.docker import ContainerInfo
from autogoals.cli import app
from autogoals.state import STATE_FILENAME, StateStore
from autogoals.workers.base import Outcome, Phase

from conftest import FakeWorker, failed_result

runner = CliRunner()

GOALS = """\
version: "1.0"
project_name: demo
goals:
  - id: setup
    name: Set up
  - id: api
    name: Build API
    dependencies: [setup]
"""


@pytest.fixture
def project(tmp_path):
    (tmp_path / "goals.yaml").write_text(GOALS)
    return tmp_path


def invoke(project, *args):
    return runner.invoke(app, ["--project", str(project), *args])


def run_with(project, worker, *args):
    with patch("autogoals.cli.AgentWorker", lambda *a, **kw: worker):
        return invoke(project, "start", *args)


class TestInit:
    """Tests for autogoals init."""

    def test_creates_template(self, tmp_path):
        result = invoke(tmp_path, "init")

        assert result.exit_code == 0
        assert (tmp_path / "goals.yaml").exists()
        assert (tmp_path / ".autogoals" / "logs").is_dir()

    def test_refuses_existing(self, project):
        result = invoke(project, "init")
        assert result.exit_code == 1
        assert "--force" in result.output

    def test_force(self, project):
        assert invoke(project, "init", "--force").exit_code == 0
        assert "example-goal-1" in (project / "goals.yaml").read_text()


class TestValidate:
    """Tests for autogoals validate."""

    def test_prints_execution_order(self, project):
        result = invoke(project, "validate")

        assert result.exit_code == 0
        assert "1. setup" in result.output
        assert "2. api" in result.output

    def test_missing_goals_file(self, tmp_path):
        result = invoke(tmp_path, "validate")
        assert result.exit_code == 1
        assert "autogoals init" in result.output

    def test_cycle(self, tmp_path):
        (tmp_path / "goals.yaml").write_text(
            'version: "1.0"\ngoals:\n  - id: a\n    dependencies: [b]\n  - id: b\n    dependencies: [a]\n'
        )
        result = invoke(tmp_path, "validate")

        assert result.exit_code == 1
        assert "a -> b -> a" in result.output

    def test_unknown_dependency(self, tmp_path):
        (tmp_path / "goals.yaml").write_text('version: "1.0"\ngoals:\n  - id: a\n    dependencies: [ghost]\n')
        result = invoke(tmp_path, "validate")

        assert result.exit_code == 1
        assert "ghost" in result.output


class TestStart:
    """Tests for autogoals start."""

    def test_all_goals_complete(self, project):
        worker = FakeWorker()
        result = run_with(project, worker)

        assert result.exit_code == 0
        assert "Run completed" in result.output
        assert "✓ setup" in result.output
        assert len(worker.calls) == 6
        assert (project / ".autogoals" / "logs" / "events.jsonl").exists()

    def test_failed_goal_exit_code(self, project):
        worker = FakeWorker({("setup", Phase.PLANNING): [Outcome(False, "no plan", error=failed_result())]})
        result = run_with(project, worker)

        assert result.exit_code == 2
        assert "✗ setup" in result.output
        assert "autogoals reset" in result.output

    def test_corrupt_state(self, project):
        (project / STATE_FILENAME).write_text("{")
        result = run_with(project, FakeWorker())

        assert result.exit_code == 3
        assert "autogoals restore" in result.output

    def test_external_tool_failure(self, project):
        worker = FakeWorker({("setup", Phase.PLANNING): [ExternalToolError("Docker daemon not found")]})
        result = run_with(project, worker)

        assert result.exit_code == 3
        assert "Docker daemon not found" in result.output

    def test_unknown_backend(self, project):
        result = invoke(project, "start", "--backend", "vm")
        assert result.exit_code == 1
        assert "unknown backend" in result.output

    def test_missing_agent(self, project):
        with patch("autogoals.workers.agent.shutil.which", return_value=None):
            result = invoke(project, "start")

        assert result.exit_code == 3
        assert "not found on PATH" in result.output

    def test_env_not_ignored_warning(self, project):
        (project / ".env").write_text("TOKEN=x\n")
        result = run_with(project, FakeWorker())
        assert "Warning: .env is not listed in .gitignore" in result.output

    def test_monitor_mode(self, project):
        result = run_with(project, FakeWorker(), "--monitor")
        assert result.exit_code == 0
        assert "Run completed" in result.output


class TestStatus:
    """Tests for autogoals status."""

    def test_no_state(self, project):
        result = invoke(project, "status")
        assert result.exit_code == 0
        assert "autogoals start" in result.output

    def test_after_run(self, project):
        run_with(project, FakeWorker())
        result = invoke(project, "status")

        assert result.exit_code == 0
        assert "Project: demo" in result.output
        assert "[completed]" in result.output
        assert "2/2 completed (100.0%)" in result.output

    def test_retrying_label(self, project):
        invoke(project, "pause")
        run_with(project, FakeWorker())
        store = StateStore(project / STATE_FILENAME)
        state = store.load()
        state.goals_status["setup"].status = "ready_for_execution"
        state.goals_status["setup"].retry_count = 1
        store.save(state)

        result = invoke(project, "status")

        assert "[retrying]" in result.output
        assert "retries: 1" in result.output


class TestPauseResume:
    """Tests for autogoals pause and resume."""

    def test_pause_stops_start(self, project):
        assert invoke(project, "pause").exit_code == 0
        worker = FakeWorker()
        result = run_with(project, worker)

        assert result.exit_code == 0
        assert "Run paused" in result.output
        assert worker.calls == []
        assert "Paused" in invoke(project, "status").output

    def test_resume_clears_and_runs(self, project):
        invoke(project, "pause")
        worker = FakeWorker()
        with patch("autogoals.cli.AgentWorker", lambda *a, **kw: worker):
            result = invoke(project, "resume")

        assert result.exit_code == 0
        assert "Pause cleared" in result.output
        assert not (project / ".autogoals" / "PAUSED").exists()
        assert len(worker.calls) == 6

    def test_resume_accepts_start_options(self, project):
        """Worktree and timeout options carry over to the resumed run."""
        invoke(project, "pause")
        with patch("autogoals.cli.AgentWorker", lambda *a, **kw: FakeWorker()), patch(
            "autogoals.cli.Scheduler"
        ) as scheduler_cls:
            scheduler_cls.return_value.run.side_effect = ExternalToolError("stop here")
            result = invoke(project, "resume", "--worktrees", "--goal-timeout", "60")

        assert result.exit_code == 3
        kwargs = scheduler_cls.call_args[1]
        assert kwargs["use_worktrees"] is True
        assert kwargs["goal_timeout"] == 60


class TestGoalCommands:
    """Tests for skip, reset and restore."""

    def test_skip_requires_state(self, project):
        result = invoke(project, "skip", "setup")
        assert result.exit_code == 1
        assert "autogoals start" in result.output

    def test_skip(self, project):
        invoke(project, "pause")
        run_with(project, FakeWorker())

        result = invoke(project, "skip", "setup")

        assert result.exit_code == 0
        state = StateStore(project / STATE_FILENAME).load()
        assert state.goals_status["setup"].status == "completed"
        assert state.goals_status["setup"].skipped is True

    def test_skip_unknown_goal(self, project):
        invoke(project, "pause")
        run_with(project, FakeWorker())

        result = invoke(project, "skip", "ghost")

        assert result.exit_code == 1
        assert "Known goals: setup, api" in result.output

    def test_skip_completed_goal(self, project):
        run_with(project, FakeWorker())
        result = invoke(project, "skip", "setup")
        assert result.exit_code == 1
        assert "already completed" in result.output

    def test_reset_all(self, project):
        run_with(project, FakeWorker())

        result = invoke(project, "reset", "--all")

        assert result.exit_code == 0
        state = StateStore(project / STATE_FILENAME).load()
        assert {s.status for s in state.goals_status.values()} == {"pending"}

    def test_reset_needs_target(self, project):
        assert invoke(project, "reset").exit_code == 1

    def test_restore(self, project):
        run_with(project, FakeWorker())
        (project / STATE_FILENAME).write_text("{")

        result = invoke(project, "restore")

        assert result.exit_code == 0
        assert StateStore(project / STATE_FILENAME).load() is not None

    def test_restore_without_backup(self, project):
        result = invoke(project, "restore")
        assert result.exit_code == 3
        assert "no backup" in result.output


class TestContainerCommands:
    """Tests for autogoals container (manager mocked)."""

    def test_status(self, project):
        info = ContainerInfo(id="0123456789abcdef", name="autogoals-x", state="running")
        with patch("autogoals.commands.container.ContainerManager") as manager_cls:
            manager_cls.return_value.status.return_value = info
            manager_cls.return_value.load_container_state.return_value = None
            result = invoke(project, "container", "status")

        assert result.exit_code == 0
        assert "autogoals-x" in result.output
        assert "0123456789ab" in result.output

    def test_docker_unavailable(self, project):
        with patch("autogoals.commands.container.ContainerManager") as manager_cls:
            manager_cls.return_value.list_containers.side_effect = ExternalToolError("Docker daemon not found")
            result = invoke(project, "container", "list")

        assert result.exit_code == 3
        assert "Docker daemon not found" in result.output

    def test_remove_none(self, project):
        with patch("autogoals.commands.container.ContainerManager") as manager_cls:
            manager_cls.return_value.remove.return_value = False
            result = invoke(project, "container", "remove", "--force")

        assert result.exit_code == 0
        assert "No container to remove" in result.output
        manager_cls.return_value.remove.assert_called_once_with(project.resolve(), force=True)


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "autogoals version" in result.output
