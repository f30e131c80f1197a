"""Local command backend.

Runs commands with bash directly in the workspace directory.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, Optional, Union

from autogoals.backends.base import CommandBackend, ExternalToolError
from autogoals.schemas import CommandResult

# Exit code reported for commands killed by the timeout, as coreutils timeout does
TIMEOUT_EXIT_CODE = 124


def _as_text(value: Union[str, bytes, None]) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class LocalBackend(CommandBackend):
    """Executes commands on the host."""

    name = "local"

    def __init__(self, shell: str = "bash", timeout: Optional[float] = None):
        """
        Initialize local backend.

        Args:
            shell: Shell used to interpret commands
            timeout: Per-command timeout in seconds (None for no limit)
        """
        self.shell = shell
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    def execute(
        self,
        workspace: Path,
        command: str,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        full_env = os.environ.copy()
        full_env.update(env or {})

        if len(command) > 100:
            self.logger.info(f"Executing: {command[:100]}...")
        else:
            self.logger.info(f"Executing: {command}")

        try:
            result = subprocess.run(
                [self.shell, "-c", command],
                cwd=str(workspace),
                env=full_env,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise ExternalToolError(
                f"cannot run '{self.shell}' in {workspace}: {e}. Install {self.shell} or check the workspace path."
            )
        except subprocess.TimeoutExpired as e:
            self.logger.error(f"Command timed out after {self.timeout}s")
            return CommandResult(
                command=command,
                exit_code=TIMEOUT_EXIT_CODE,
                stdout=_as_text(e.stdout),
                stderr=_as_text(e.stderr) + f"\ncommand timed out after {self.timeout}s",
            )

        if result.returncode != 0:
            self.logger.warning(f"Command failed with exit code {result.returncode}")
        return CommandResult(
            command=command,
            exit_code=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )
