"""Goal configuration loading and validation.

Parses goals.yaml into a GoalsConfig. Reference integrity between goals
(dependencies, cycles) is checked separately in autogoals.dependencies.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from autogoals.schemas import DEFAULT_MAX_RETRIES, Goal, GoalsConfig


GOALS_FILENAME = "goals.yaml"

GOALS_TEMPLATE = """\
version: "1.0"
project_name: "my-project"

goals:
  - id: "example-goal-1"
    name: "First goal"
    description: |
      Your first goal - describe what you want to build
    dependencies: []
    acceptance_criteria:
      - "Describe how you will know this goal is done"
    verification_commands:
      - "echo 'replace with a test command'"
    max_retries: 3

  - id: "example-goal-2"
    name: "Second goal"
    description: |
      Another goal - AutoGoals works through these in dependency order
    dependencies: ["example-goal-1"]
    acceptance_criteria: []
    verification_commands: []
    max_retries: 3

# Goal Status Lifecycle (tracked in .goals-state.json):
# - pending: Not started
# - ready_for_execution: Plan complete, ready to implement
# - in_progress: Currently being worked on
# - ready_for_verification: Implementation done, needs testing
# - completed: Done and verified
# - failed: Encountered errors
#
# Tips:
# 1. Be specific in your goal descriptions
# 2. Break large features into smaller goals
# 3. verification_commands prove a goal is done; the first failing one
#    is fed back to the agent on retry
# 4. Set branch_name to run a goal in its own git worktree (--worktrees)
"""


class ConfigurationError(Exception):
    """Raised when goals.yaml is missing, unparsable or invalid."""

    pass


def load_goals_config(path: Path) -> GoalsConfig:
    """Load and validate goals.yaml.

    Args:
        path: Path to the goals file.

    Returns:
        Parsed GoalsConfig.

    Raises:
        ConfigurationError: If the file is missing, not valid YAML, or
            missing required fields.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(
            f"goals file not found: {path}. Run 'autogoals init' to create one."
        )

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse goals.yaml: {e}")

    if not isinstance(data, dict):
        raise ConfigurationError(f"goals file {path} must contain a YAML mapping")

    if not data.get("version"):
        raise ConfigurationError("Missing required field: version")

    goals_raw = data.get("goals")
    if not isinstance(goals_raw, list):
        raise ConfigurationError("Missing or invalid goals array")

    goals = [_parse_goal(item, index) for index, item in enumerate(goals_raw)]

    seen = set()
    for goal in goals:
        if goal.id in seen:
            raise ConfigurationError(f"duplicate goal id: {goal.id}")
        seen.add(goal.id)

    project_name = data.get("project_name")
    return GoalsConfig(
        version=str(data["version"]),
        goals=goals,
        project_name=str(project_name) if project_name else None,
    )


def _parse_goal(raw: Any, index: int) -> Goal:
    """Build a Goal from one entry of the goals list."""
    if not isinstance(raw, dict):
        raise ConfigurationError(f"goal #{index + 1} must be a mapping")

    goal_id = raw.get("id")
    if goal_id is None or not str(goal_id).strip():
        raise ConfigurationError(f"goal #{index + 1} is missing required field: id")
    goal_id = str(goal_id).strip()

    max_retries = raw.get("max_retries", DEFAULT_MAX_RETRIES)
    if isinstance(max_retries, bool) or not isinstance(max_retries, int) or max_retries < 0:
        raise ConfigurationError(
            f"max_retries must be a non-negative integer in goal '{goal_id}', got: {max_retries}"
        )

    branch_name = raw.get("branch_name")

    return Goal(
        id=goal_id,
        name=str(raw.get("name") or ""),
        description=str(raw.get("description") or ""),
        dependencies=_string_list(raw, "dependencies", goal_id),
        acceptance_criteria=_string_list(raw, "acceptance_criteria", goal_id),
        verification_commands=_string_list(raw, "verification_commands", goal_id),
        max_retries=max_retries,
        branch_name=str(branch_name) if branch_name else None,
    )


def _string_list(raw: Dict[str, Any], field_name: str, goal_id: str) -> List[str]:
    """Read an optional list-of-strings field."""
    value = raw.get(field_name)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigurationError(
            f"{field_name} must be a list in goal '{goal_id}', got: {type(value).__name__}"
        )
    return [str(item) for item in value]


def write_goals_template(path: Path, force: bool = False) -> Path:
    """Write a starter goals.yaml.

    Args:
        path: Destination file.
        force: Overwrite an existing file.

    Returns:
        The written path.

    Raises:
        ConfigurationError: If the file exists and force is False.
    """
    path = Path(path)
    if path.exists() and not force:
        raise ConfigurationError(f"{path} already exists. Use --force to overwrite.")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(GOALS_TEMPLATE, encoding="utf-8")
    return path


def find_goals_file(project_path: Path, filename: Optional[str] = None) -> Path:
    """Resolve the goals file for a project directory."""
    return Path(project_path) / (filename or GOALS_FILENAME)
