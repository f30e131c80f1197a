"""Tests for runtime settings."""

import pytest

from autogoals.config import ConfigurationError
from autogoals.settings import SETTINGS_FILE, Settings, load_settings
from autogoals.workers import DEFAULT_AGENT_COMMAND


def write_settings(project, content):
    path = project / SETTINGS_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)


class TestLoadSettings:
    """Tests for load_settings precedence."""

    def test_defaults(self, tmp_path):
        settings = load_settings(tmp_path, environ={})

        assert settings == Settings()
        assert settings.backend == "local"
        assert settings.agent_command == DEFAULT_AGENT_COMMAND
        assert settings.max_iterations == 1000
        assert settings.goal_timeout is None

    def test_file_overrides_defaults(self, tmp_path):
        write_settings(tmp_path, "backend: docker\ngoal_timeout: 600\nuse_worktrees: true\n")

        settings = load_settings(tmp_path, environ={})

        assert settings.backend == "docker"
        assert settings.goal_timeout == 600
        assert settings.use_worktrees is True

    def test_environment_overrides_file(self, tmp_path):
        write_settings(tmp_path, "backend: docker\nmodel: opus\n")
        environ = {"AUTOGOALS_BACKEND": "local", "AUTOGOALS_USE_WORKTREES": "yes", "AUTOGOALS_MAX_ITERATIONS": "5"}

        settings = load_settings(tmp_path, environ=environ)

        assert settings.backend == "local"
        assert settings.model == "opus"
        assert settings.use_worktrees is True
        assert settings.max_iterations == 5

    def test_cli_overrides_via_merge(self, tmp_path):
        """merge() applies non-None overrides only."""
        settings = load_settings(tmp_path, environ={"AUTOGOALS_BACKEND": "docker"})
        merged = settings.merge(backend="local", goal_timeout=None)

        assert merged.backend == "local"
        assert merged.goal_timeout is None

    def test_unknown_key(self, tmp_path):
        write_settings(tmp_path, "colour: blue\n")
        with pytest.raises(ConfigurationError, match="unknown setting 'colour'"):
            load_settings(tmp_path, environ={})

    def test_invalid_yaml(self, tmp_path):
        write_settings(tmp_path, "backend: [docker\n")
        with pytest.raises(ConfigurationError, match="Failed to parse"):
            load_settings(tmp_path, environ={})

    def test_invalid_values(self, tmp_path):
        with pytest.raises(ConfigurationError, match="integer"):
            load_settings(tmp_path, environ={"AUTOGOALS_GOAL_TIMEOUT": "soon"})
        with pytest.raises(ConfigurationError, match="true or false"):
            load_settings(tmp_path, environ={"AUTOGOALS_USE_WORKTREES": "maybe"})
        with pytest.raises(ConfigurationError, match="unknown backend"):
            load_settings(tmp_path, environ={"AUTOGOALS_BACKEND": "vm"})

    def test_non_positive_timeout(self):
        with pytest.raises(ConfigurationError, match="goal_timeout"):
            Settings().merge(goal_timeout=0)
