# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Command backend interface.

A backend runs one shell command for a workspace and reports
(stdout, stderr, exit code). The scheduler never talks to docker or
subprocess directly.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

from autogoals.schemas import CommandResult


class ExternalToolError(Exception):
    """Raised when a required external tool (docker, git, bash) is unavailable.

    Fatal for the run; the message says how to fix it.
    """

    pass


class CommandBackend(ABC):
    name: str

    @abstractmethod
    def execute(
        self,
        workspace: Path,
        command: str,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        raise NotImplementedError
