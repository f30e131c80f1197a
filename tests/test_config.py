"""Tests for goals.yaml loading."""

import pytest

from autogoals.config import (
    GOALS_FILENAME,
    ConfigurationError,
    find_goals_file,
    load_goals_config,
    write_goals_template,
)
from autogoals.schemas import DEFAULT_MAX_RETRIES


VALID_GOALS = """\
version: "1.0"
project_name: demo
goals:
  - id: setup
    name: Set up project
    description: Create the skeleton
    acceptance_criteria:
      - pyproject exists
    verification_commands:
      - test -f pyproject.toml
  - id: api
    description: |
      Build the API
      with two endpoints
    dependencies: [setup]
    max_retries: 5
    branch_name: feature/api
"""


class TestLoadGoalsConfig:
    """Tests for load_goals_config."""

    def test_loads_valid_file(self, goals_yaml):
        """Goals are parsed in declaration order with their fields."""
        config = load_goals_config(goals_yaml(VALID_GOALS))

        assert config.version == "1.0"
        assert config.project_name == "demo"
        assert config.goal_ids == ["setup", "api"]

        setup = config.get("setup")
        assert setup.name == "Set up project"
        assert setup.acceptance_criteria == ["pyproject exists"]
        assert setup.verification_commands == ["test -f pyproject.toml"]
        assert setup.max_retries == DEFAULT_MAX_RETRIES
        assert setup.branch_name is None

        api = config.get("api")
        assert api.dependencies == ["setup"]
        assert api.max_retries == 5
        assert api.branch_name == "feature/api"

    def test_title_falls_back_to_description(self, goals_yaml):
        """A goal without a name is labelled by its first description line."""
        config = load_goals_config(goals_yaml(VALID_GOALS))
        assert config.get("api").title == "Build the API"

    def test_get_unknown_goal(self, goals_yaml):
        """get() returns None for undeclared ids."""
        config = load_goals_config(goals_yaml(VALID_GOALS))
        assert config.get("missing") is None

    def test_missing_file(self, tmp_path):
        """A missing file points at autogoals init."""
        with pytest.raises(ConfigurationError, match="autogoals init"):
            load_goals_config(tmp_path / "goals.yaml")

    def test_invalid_yaml(self, goals_yaml):
        """YAML syntax errors are reported as parse failures."""
        with pytest.raises(ConfigurationError, match="^Failed to parse goals.yaml"):
            load_goals_config(goals_yaml("version: [unclosed\ngoals: {"))

    def test_not_a_mapping(self, goals_yaml):
        """A top-level list is rejected."""
        with pytest.raises(ConfigurationError, match="mapping"):
            load_goals_config(goals_yaml("- id: a\n"))

    def test_missing_version(self, goals_yaml):
        """version is required."""
        with pytest.raises(ConfigurationError, match="Missing required field: version"):
            load_goals_config(goals_yaml("goals:\n  - id: a\n"))

    def test_missing_goals(self, goals_yaml):
        """goals is required."""
        with pytest.raises(ConfigurationError, match="Missing or invalid goals array"):
            load_goals_config(goals_yaml('version: "1.0"\n'))

    def test_goals_not_a_list(self, goals_yaml):
        """goals must be a list."""
        with pytest.raises(ConfigurationError, match="Missing or invalid goals array"):
            load_goals_config(goals_yaml('version: "1.0"\ngoals: {a: 1}\n'))

    def test_empty_goals_list(self, goals_yaml):
        """An empty goals list is valid."""
        config = load_goals_config(goals_yaml('version: "1.0"\ngoals: []\n'))
        assert config.goals == []

    def test_goal_without_id(self, goals_yaml):
        """Every goal needs an id."""
        with pytest.raises(ConfigurationError, match="missing required field: id"):
            load_goals_config(goals_yaml('version: "1.0"\ngoals:\n  - name: no id\n'))

    def test_duplicate_ids(self, goals_yaml):
        """Goal ids must be unique."""
        content = 'version: "1.0"\ngoals:\n  - id: a\n  - id: a\n'
        with pytest.raises(ConfigurationError, match="duplicate goal id: a"):
            load_goals_config(goals_yaml(content))

    def test_dependencies_must_be_list(self, goals_yaml):
        """A string where a list is expected is rejected."""
        content = 'version: "1.0"\ngoals:\n  - id: a\n    dependencies: b\n'
        with pytest.raises(ConfigurationError, match="dependencies must be a list"):
            load_goals_config(goals_yaml(content))

    @pytest.mark.parametrize("value", ["-1", "three", "true"])
    def test_invalid_max_retries(self, goals_yaml, value):
        """max_retries must be a non-negative integer."""
        content = f'version: "1.0"\ngoals:\n  - id: a\n    max_retries: {value}\n'
        with pytest.raises(ConfigurationError, match="max_retries"):
            load_goals_config(goals_yaml(content))


class TestGoalsTemplate:
    """Tests for write_goals_template."""

    def test_template_is_loadable(self, tmp_path):
        """The starter file parses into two dependent goals."""
        path = write_goals_template(find_goals_file(tmp_path))

        assert path.name == GOALS_FILENAME
        config = load_goals_config(path)
        assert config.goal_ids == ["example-goal-1", "example-goal-2"]
        assert config.get("example-goal-2").dependencies == ["example-goal-1"]

    def test_refuses_to_overwrite(self, tmp_path):
        """An existing file is kept unless forced."""
        path = tmp_path / "goals.yaml"
        path.write_text("keep me")

        with pytest.raises(ConfigurationError, match="--force"):
            write_goals_template(path)
        assert path.read_text() == "keep me"

    def test_force_overwrites(self, tmp_path):
        """force=True replaces the file."""
        path = tmp_path / "goals.yaml"
        path.write_text("old")

        write_goals_template(path, force=True)
        assert "example-goal-1" in path.read_text()
