"""Runtime settings.

Sources, lowest to highest precedence:
1. Defaults
2. <project>/.autogoals/config.yaml
3. AUTOGOALS_* environment variables
4. CLI options (applied by the caller via Settings.merge)

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from autogoals.backends import BACKENDS
from autogoals.backends.docker import DEFAULT_IMAGE
from autogoals.config import ConfigurationError
from autogoals.workers import DEFAULT_AGENT_COMMAND, DEFAULT_MODEL

SETTINGS_FILE = Path(".autogoals") / "config.yaml"
ENV_PREFIX = "AUTOGOALS_"
DEFAULT_MAX_ITERATIONS = 1000

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass
class Settings:
    backend: str = "local"
    image: str = DEFAULT_IMAGE
    agent_command: str = DEFAULT_AGENT_COMMAND
    model: str = DEFAULT_MODEL
    goal_timeout: Optional[int] = None  # seconds
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    use_worktrees: bool = False
    main_branch: str = "main"

    def merge(self, **overrides: Any) -> "Settings":
        """Copy with every non-None override applied."""
        settings = replace(self, **{k: v for k, v in overrides.items() if v is not None})
        settings.validate()
        return settings

    def validate(self) -> None:
        if self.backend not in BACKENDS:
            raise ConfigurationError(
                f"unknown backend '{self.backend}'. Valid backends: {', '.join(BACKENDS)}"
            )
        if self.goal_timeout is not None and self.goal_timeout <= 0:
            raise ConfigurationError("goal_timeout must be a positive number of seconds")
        if self.max_iterations <= 0:
            raise ConfigurationError("max_iterations must be positive")


def _coerce(name: str, value: Any, default: Any) -> Any:
    """Convert a raw file/env value to the type of the field."""
    if value is None:
        return None
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigurationError(f"{name} must be true or false, got: {value}")
    if isinstance(default, int) or name == "goal_timeout":
        if isinstance(value, bool):
            raise ConfigurationError(f"{name} must be an integer, got: {value}")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"{name} must be an integer, got: {value}")
    return str(value)


def _from_mapping(data: Mapping[str, Any], source: str) -> Dict[str, Any]:
    defaults = Settings()
    known = {f.name for f in fields(Settings)}
    values = {}
    for key, value in data.items():
        if key not in known:
            raise ConfigurationError(f"unknown setting '{key}' in {source}")
        values[key] = _coerce(key, value, getattr(defaults, key))
    return values


def load_settings(project_path: Path, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Load settings for a project.

    Args:
        project_path: Project root.
        environ: Environment to read AUTOGOALS_* from (default os.environ).

    Returns:
        Validated Settings.

    Raises:
        ConfigurationError: If the settings file or a variable is invalid.
    """
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}

    settings_file = Path(project_path) / SETTINGS_FILE
    if settings_file.exists():
        try:
            data = yaml.safe_load(settings_file.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse {settings_file}: {e}")
        if not isinstance(data, dict):
            raise ConfigurationError(f"{settings_file} must contain a mapping")
        values.update(_from_mapping(data, str(settings_file)))

    env_values = {
        f.name: environ[ENV_PREFIX + f.name.upper()]
        for f in fields(Settings)
        if ENV_PREFIX + f.name.upper() in environ
    }
    values.update(_from_mapping(env_values, "environment"))

    return Settings().merge(**values)
