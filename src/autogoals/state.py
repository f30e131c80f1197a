"""Execution state management.

Persists per-goal status in .goals-state.json, with a .backup copy of the
previous document written before every overwrite. Loads fail closed: a
document that does not parse raises StateCorruptionError instead of being
replaced by a fresh state.

Single writer: one scheduler process per state file.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import json
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from autogoals.schemas import (
    RETRYING_LABEL,
    STATUS_ALIASES,
    ExecutionState,
    Goal,
    GoalsConfig,
    GoalState,
    GoalStatus,
    LogEntry,
)

logger = logging.getLogger(__name__)

STATE_FILENAME = ".goals-state.json"

ACTIVE_STATUSES = frozenset(
    {
        GoalState.PENDING.value,
        GoalState.READY_FOR_EXECUTION.value,
        GoalState.READY_FOR_VERIFICATION.value,
    }
)
TERMINAL_STATUSES = frozenset({GoalState.COMPLETED.value, GoalState.FAILED.value})
IN_FLIGHT_STATUSES = frozenset({GoalState.IN_PROGRESS.value, *STATUS_ALIASES})


class StateCorruptionError(Exception):
    """Raised when the persisted state cannot be trusted."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class GoalNotFoundError(Exception):
    """Raised when a goal id is not present in the state."""

    pass


def initialize_state(goals: Sequence[Goal]) -> ExecutionState:
    """Create a fresh state with every goal pending.

    Args:
        goals: Goals in declaration order.

    Returns:
        New ExecutionState.
    """
    return ExecutionState(
        current_goal_id=goals[0].id if goals else None,
        goals_status={goal.id: GoalStatus() for goal in goals},
    )


class StateStore:
    """Load/save access to the persisted execution state document."""

    def __init__(self, path: Path):
        self.path = Path(path)

    @property
    def backup_path(self) -> Path:
        return self.path.with_name(self.path.name + ".backup")

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[ExecutionState]:
        """Load state from disk.

        Returns:
            ExecutionState, or None if no state file exists yet.

        Raises:
            StateCorruptionError: If the file exists but is not a valid
                state document.
        """
        if not self.path.exists():
            return None
        return self._read(self.path)

    def save(self, state: ExecutionState) -> None:
        """Back up the current document, then write the new one."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self.path.exists():
            shutil.copy2(self.path, self.backup_path)

        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(json.dumps(state.to_dict(), indent=2) + "\n", encoding="utf-8")
        os.replace(tmp_path, self.path)
        logger.debug(f"Saved state to {self.path}")

    def restore_backup(self) -> ExecutionState:
        """Replace the state file with its backup.

        The backup is validated before anything is overwritten.

        Returns:
            The restored state.

        Raises:
            StateCorruptionError: If there is no backup or it is corrupt too.
        """
        if not self.backup_path.exists():
            raise StateCorruptionError(
                f"no backup found at {self.backup_path}", path=self.backup_path
            )
        state = self._read(self.backup_path)
        shutil.copy2(self.backup_path, self.path)
        logger.info(f"Restored {self.path} from {self.backup_path}")
        return state

    def _read(self, path: Path) -> ExecutionState:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise StateCorruptionError(f"state file {path} is not valid JSON: {e}", path=path)

        try:
            return ExecutionState.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise StateCorruptionError(f"state file {path} is malformed: {e}", path=path)


def append_log(state: ExecutionState, goal_id: Optional[str], event: str, message: str) -> LogEntry:
    """Append an event to the execution log."""
    entry = LogEntry(goal_id=goal_id, event=event, message=message)
    state.execution_log.append(entry)
    return entry


def require_goal_status(state: ExecutionState, goal_id: str) -> GoalStatus:
    """Return a goal's status or raise GoalNotFoundError."""
    goal_status = state.goals_status.get(goal_id)
    if goal_status is None:
        raise GoalNotFoundError(f"goal not found: {goal_id}")
    return goal_status


def update_goal_status(
    state: ExecutionState,
    goal_id: str,
    status: GoalState,
    message: Optional[str] = None,
) -> None:
    """Set a goal's status and log the change."""
    goal_status = require_goal_status(state, goal_id)
    goal_status.status = GoalState(status).value
    append_log(state, goal_id, "status_changed", message or f"Status changed to {goal_status.status}")


def reconcile_state(state: ExecutionState, config: GoalsConfig) -> List[str]:
    """Bring a loaded state in line with the current goals config.

    - Ids in the state but not in the config mean the state belongs to a
      different goal list: StateCorruptionError.
    - Goals added to the config since the state was written start pending.
    - A goal left in_progress/executing by an interrupted run goes back to
      ready_for_execution.

    Args:
        state: Loaded state, modified in place.
        config: Current goals config.

    Returns:
        Ids of goals whose status was added or changed.
    """
    config_ids = config.goal_ids
    unknown = [goal_id for goal_id in state.goals_status if goal_id not in config_ids]
    if unknown:
        raise StateCorruptionError(
            f"state references goal ids not in goals.yaml: {', '.join(unknown)}"
        )

    changed = []
    for goal_id in config_ids:
        goal_status = state.goals_status.get(goal_id)
        if goal_status is None:
            state.goals_status[goal_id] = GoalStatus()
            append_log(state, goal_id, "goal_added", "Goal added to goals.yaml")
            changed.append(goal_id)
        elif goal_status.status in IN_FLIGHT_STATUSES:
            update_goal_status(
                state,
                goal_id,
                GoalState.READY_FOR_EXECUTION,
                f"Recovered interrupted {goal_status.status} goal",
            )
            changed.append(goal_id)

    # Keep goals_status in declaration order
    state.goals_status = {goal_id: state.goals_status[goal_id] for goal_id in config_ids}
    return changed


def can_execute(goal: Goal, state: ExecutionState) -> bool:
    """True iff every dependency of the goal is completed."""
    for dep in goal.dependencies:
        dep_status = state.goals_status.get(dep)
        if dep_status is None or dep_status.status != GoalState.COMPLETED.value:
            return False
    return True


def get_next_goal(goals: Sequence[Goal], state: ExecutionState) -> Optional[Goal]:
    """First goal, in declared order, that is active and eligible."""
    for goal in goals:
        goal_status = state.goals_status.get(goal.id)
        if goal_status is None or goal_status.status not in ACTIVE_STATUSES:
            continue
        if can_execute(goal, state):
            return goal
    return None


def has_pending_work(state: ExecutionState) -> bool:
    """True if any goal is neither completed nor failed."""
    return any(s.status not in TERMINAL_STATUSES for s in state.goals_status.values())


def display_status(goal_status: GoalStatus) -> str:
    """Status label for humans; 'retrying' is never stored."""
    if goal_status.status == GoalState.READY_FOR_EXECUTION.value and goal_status.retry_count > 0:
        return RETRYING_LABEL
    return STATUS_ALIASES.get(goal_status.status, goal_status.status)


@dataclass
class StatusSummary:
    """Goal counts for the status command."""

    total: int = 0
    completed: int = 0
    failed: int = 0
    in_progress: int = 0
    pending: int = 0

    @property
    def percent_complete(self) -> float:
        if not self.total:
            return 100.0
        return round(100.0 * self.completed / self.total, 1)


def summarize(config: GoalsConfig, state: ExecutionState) -> StatusSummary:
    """Count goals per bucket."""
    summary = StatusSummary(total=len(config.goals))
    for goal in config.goals:
        goal_status = state.goals_status.get(goal.id, GoalStatus())
        status = STATUS_ALIASES.get(goal_status.status, goal_status.status)
        if status == GoalState.COMPLETED.value:
            summary.completed += 1
        elif status == GoalState.FAILED.value:
            summary.failed += 1
        elif status == GoalState.PENDING.value:
            summary.pending += 1
        else:
            summary.in_progress += 1
    return summary
