"""Git worktree operations.

Goals that declare a branch_name can run in their own worktree under
<project>/.autogoals-worktrees/<goal_id>, then get merged back.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import logging
import re
import subprocess
from pathlib import Path
from typing import List

from autogoals.backends.base import ExternalToolError

logger = logging.getLogger(__name__)

WORKTREES_DIR = ".autogoals-worktrees"

# Alphanumeric, hyphens, underscores, slashes and dots
GIT_REF_PATTERN = re.compile(r"^[a-zA-Z0-9/_.-]+$")


class GitError(ExternalToolError):
    """Raised when a git operation fails."""

    pass


def validate_git_ref(ref: str) -> str:
    """Validate a branch or tag name.

    Raises:
        GitError: If the reference is empty or has disallowed characters.
    """
    if not isinstance(ref, str):
        raise GitError("Git reference must be a string")
    if not ref:
        raise GitError("Git reference cannot be empty")
    if not GIT_REF_PATTERN.match(ref) or ".." in ref or ref.startswith("-"):
        raise GitError(f"Invalid git reference: {ref}")
    return ref


def _git(args: List[str], cwd: Path) -> str:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=str(cwd),
            capture_output=True,
            text=True,
        )
    except FileNotFoundError:
        raise GitError("git command not found. Install git to use worktrees.")
    if result.returncode != 0:
        raise GitError(f"git {args[0]} failed: {result.stderr.strip() or result.stdout.strip()}")
    return result.stdout


def get_worktree_path(goal_id: str, project_path: Path) -> Path:
    """Worktree location for a goal."""
    return Path(project_path) / WORKTREES_DIR / goal_id


def create_worktree(goal_id: str, branch_name: str, project_path: Path) -> Path:
    """Create a worktree on a new branch for a goal.

    Returns:
        Worktree path.
    """
    validate_git_ref(branch_name)
    worktree_path = get_worktree_path(goal_id, project_path)
    worktree_path.parent.mkdir(parents=True, exist_ok=True)

    logger.info(f"Creating worktree {worktree_path} on branch {branch_name}")
    _git(["worktree", "add", str(worktree_path), "-b", branch_name], cwd=project_path)
    return worktree_path


def delete_worktree(worktree_path: Path, branch_name: str, project_path: Path) -> None:
    """Remove a worktree and delete its branch."""
    validate_git_ref(branch_name)
    _git(["worktree", "remove", str(worktree_path)], cwd=project_path)
    _git(["branch", "-D", branch_name], cwd=project_path)


def has_uncommitted_changes(repo_path: Path) -> bool:
    return bool(_git(["status", "--porcelain"], cwd=repo_path).strip())


def commit_changes(message: str, repo_path: Path, files: str = ".") -> str:
    """Stage and commit; returns the new commit hash."""
    _git(["add", files], cwd=repo_path)
    _git(["commit", "-m", message], cwd=repo_path)
    return _git(["rev-parse", "HEAD"], cwd=repo_path).strip()


def merge_branch(branch_name: str, project_path: Path, main_branch: str = "main") -> None:
    """Merge a goal branch into the main branch with a merge commit."""
    validate_git_ref(branch_name)
    validate_git_ref(main_branch)
    _git(["checkout", main_branch], cwd=project_path)
    _git(["merge", branch_name, "--no-ff", "-m", f"Merge {branch_name}"], cwd=project_path)
