# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""AutoGoals schemas."""

from autogoals.schemas.goal import (
    DEFAULT_MAX_RETRIES,
    RETRYING_LABEL,
    STATE_VERSION,
    STATUS_ALIASES,
    CommandResult,
    ExecutionState,
    Goal,
    GoalsConfig,
    GoalState,
    GoalStatus,
    LogEntry,
    parse_timestamp,
    utc_now_iso,
)

__all__ = [
    "DEFAULT_MAX_RETRIES",
    "RETRYING_LABEL",
    "STATE_VERSION",
    "STATUS_ALIASES",
    "CommandResult",
    "ExecutionState",
    "Goal",
    "GoalsConfig",
    "GoalState",
    "GoalStatus",
    "LogEntry",
    "parse_timestamp",
    "utc_now_iso",
]
