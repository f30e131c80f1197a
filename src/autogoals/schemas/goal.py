# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Goal definition and execution state schemas for AutoGoals.

Two halves of a goal:
- Goal (YAML) → immutable for the run, loaded from goals.yaml
- GoalStatus (JSON) → mutable, persisted in .goals-state.json

ExecutionState is the whole persisted document.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


DEFAULT_MAX_RETRIES = 3
STATE_VERSION = "1.0"


def utc_now_iso() -> str:
    """Return current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp; values without an offset are UTC.

    Raises:
        TypeError: If value is not a string.
        ValueError: If value is not ISO 8601.
    """
    if not isinstance(value, str):
        raise TypeError(f"timestamp must be a string, got {type(value).__name__}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _optional_timestamp(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    parse_timestamp(value)
    return value


class GoalState(str, Enum):
    """Persisted goal statuses.

    pending → ready_for_execution → in_progress → ready_for_verification → completed
    failed is reachable from any in-progress state.
    """

    PENDING = "pending"
    READY_FOR_EXECUTION = "ready_for_execution"
    IN_PROGRESS = "in_progress"
    READY_FOR_VERIFICATION = "ready_for_verification"
    COMPLETED = "completed"
    FAILED = "failed"


# Older agents write "executing" for the same state
STATUS_ALIASES = {"executing": GoalState.IN_PROGRESS.value}

# Display-only label for a goal sent back to execution after a failed verification
RETRYING_LABEL = "retrying"

KNOWN_STATUSES = frozenset(s.value for s in GoalState) | frozenset(STATUS_ALIASES)


@dataclass
class Goal:
    """A unit of declared work from goals.yaml."""

    id: str
    name: str = ""
    description: str = ""
    dependencies: List[str] = field(default_factory=list)
    acceptance_criteria: List[str] = field(default_factory=list)
    verification_commands: List[str] = field(default_factory=list)
    max_retries: int = DEFAULT_MAX_RETRIES
    branch_name: Optional[str] = None

    @property
    def title(self) -> str:
        """Short label: name, else first description line, else id."""
        if self.name:
            return self.name
        description = self.description.strip()
        if description:
            return description.splitlines()[0]
        return self.id


@dataclass
class GoalsConfig:
    """Parsed goals.yaml document."""

    version: str
    goals: List[Goal]
    project_name: Optional[str] = None

    @property
    def goal_ids(self) -> List[str]:
        return [goal.id for goal in self.goals]

    def get(self, goal_id: str) -> Optional[Goal]:
        for goal in self.goals:
            if goal.id == goal_id:
                return goal
        return None


@dataclass
class CommandResult:
    """Outcome of a single shell command run by a worker or backend."""

    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    timestamp: str = field(default_factory=utc_now_iso)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def tail(self, limit: int = 4000) -> "CommandResult":
        """Copy with stdout/stderr trimmed to their last `limit` characters."""
        return replace(self, stdout=self.stdout[-limit:], stderr=self.stderr[-limit:])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "command": self.command,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommandResult":
        if not isinstance(data, dict):
            raise TypeError(f"command result must be a mapping, got {type(data).__name__}")
        return cls(
            command=str(data["command"]),
            exit_code=int(data["exit_code"]),
            stdout=data.get("stdout") or "",
            stderr=data.get("stderr") or "",
            timestamp=data.get("timestamp") or utc_now_iso(),
        )


@dataclass
class GoalStatus:
    """Mutable, persisted half of a goal."""

    status: str = GoalState.PENDING.value
    retry_count: int = 0
    last_error: Optional[CommandResult] = None
    started_at: Optional[str] = None  # ISO 8601 timestamp
    completed_at: Optional[str] = None  # ISO 8601 timestamp
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"status": self.status, "retry_count": self.retry_count}
        if self.last_error is not None:
            data["last_error"] = self.last_error.to_dict()
        if self.started_at:
            data["started_at"] = self.started_at
        if self.completed_at:
            data["completed_at"] = self.completed_at
        if self.skipped:
            data["skipped"] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GoalStatus":
        if not isinstance(data, dict):
            raise TypeError(f"goal status must be a mapping, got {type(data).__name__}")
        status = data["status"]
        if status not in KNOWN_STATUSES:
            raise ValueError(f"unknown goal status: {status}")
        last_error = data.get("last_error")
        return cls(
            status=status,
            retry_count=int(data.get("retry_count", 0)),
            last_error=CommandResult.from_dict(last_error) if last_error else None,
            started_at=_optional_timestamp(data.get("started_at")),
            completed_at=_optional_timestamp(data.get("completed_at")),
            skipped=bool(data.get("skipped", False)),
        )


@dataclass
class LogEntry:
    """One append-only execution log event."""

    goal_id: Optional[str]
    event: str
    message: str
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "goal_id": self.goal_id,
            "event": self.event,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogEntry":
        if not isinstance(data, dict):
            raise TypeError(f"log entry must be a mapping, got {type(data).__name__}")
        return cls(
            goal_id=data.get("goal_id"),
            event=str(data["event"]),
            message=str(data.get("message", "")),
            timestamp=str(data["timestamp"]),
        )


@dataclass
class ExecutionState:
    """The full persisted document.

    goals_status keys are exactly the goal ids of the loaded config;
    execution_log is only ever appended to.
    """

    version: str = STATE_VERSION
    current_goal_id: Optional[str] = None
    goals_status: Dict[str, GoalStatus] = field(default_factory=dict)
    execution_log: List[LogEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "current_goal_id": self.current_goal_id,
            "goals_status": {goal_id: s.to_dict() for goal_id, s in self.goals_status.items()},
            "execution_log": [entry.to_dict() for entry in self.execution_log],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionState":
        """Build state from a parsed JSON document.

        Raises:
            KeyError, TypeError, ValueError: If the document is structurally invalid.
        """
        if not isinstance(data, dict):
            raise TypeError(f"state document must be a mapping, got {type(data).__name__}")
        goals_status = data["goals_status"]
        if not isinstance(goals_status, dict):
            raise TypeError("goals_status must be a mapping")
        execution_log = data.get("execution_log", [])
        if not isinstance(execution_log, list):
            raise TypeError("execution_log must be a list")
        return cls(
            version=str(data.get("version", STATE_VERSION)),
            current_goal_id=data.get("current_goal_id"),
            goals_status={str(k): GoalStatus.from_dict(v) for k, v in goals_status.items()},
            execution_log=[LogEntry.from_dict(entry) for entry in execution_log],
        )
