# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Environment for worker commands.

Host ANTHROPIC_API_KEY first, then the workspace .env file on top.
"""

import os
from pathlib import Path
from typing import Dict, Sequence

from dotenv import dotenv_values

PASSTHROUGH_VARS = ("ANTHROPIC_API_KEY",)


def load_environment(workspace: Path, passthrough: Sequence[str] = PASSTHROUGH_VARS) -> Dict[str, str]:
    """Load environment variables for a workspace.

    Priority: .env file > host environment.

    Args:
        workspace: Workspace directory that may contain a .env file.
        passthrough: Host variables copied when set.

    Returns:
        Variables to pass to worker commands.
    """
    env = {}
    for key in passthrough:
        value = os.environ.get(key)
        if value:
            env[key] = value

    env_file = Path(workspace) / ".env"
    if env_file.exists():
        # Keys declared without a value come back as None
        env.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})

    return env


def is_env_ignored(workspace: Path) -> bool:
    """Check whether .env is listed in the workspace .gitignore."""
    gitignore = Path(workspace) / ".gitignore"
    if not gitignore.exists():
        return False
    return any(
        line.strip() in (".env", "/.env")
        for line in gitignore.read_text(encoding="utf-8").splitlines()
    )
