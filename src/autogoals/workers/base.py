# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Worker interface.

The scheduler hands one phase of one goal to a Worker and gets an Outcome
back. Workers never touch the state file.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from autogoals.schemas import CommandResult, Goal, GoalState


class Phase(str, Enum):
    PLANNING = "planning"
    EXECUTION = "execution"
    VERIFICATION = "verification"


_PHASE_BY_STATUS = {
    GoalState.PENDING.value: Phase.PLANNING,
    GoalState.READY_FOR_EXECUTION.value: Phase.EXECUTION,
    GoalState.READY_FOR_VERIFICATION.value: Phase.VERIFICATION,
}


def phase_for(status: str) -> Optional[Phase]:
    """Phase that advances a goal out of the given status, or None."""
    return _PHASE_BY_STATUS.get(status)


class WorkerError(Exception):
    """Raised by a worker when a phase could not be carried out.

    Counts as a failure of that phase, not of the run.
    """

    pass


@dataclass
class Outcome:
    """Result of one worker invocation."""

    success: bool
    message: str = ""
    command_results: List[CommandResult] = field(default_factory=list)
    error: Optional[CommandResult] = None


def _discard(line: str) -> None:
    pass


@dataclass
class WorkerContext:
    """What a worker knows about the goal's history."""

    last_error: Optional[CommandResult] = None
    retry_count: int = 0
    plan: Optional[str] = None
    log: Callable[[str], None] = _discard


class Worker(ABC):
    """Something that can carry out a goal phase."""

    @abstractmethod
    def invoke(
        self,
        phase: Phase,
        goal: Goal,
        workspace: Path,
        context: WorkerContext,
    ) -> Outcome:
        """Run one phase of a goal.

        Raises:
            WorkerError: If the phase could not be attempted.
            ExternalToolError: If a required tool is missing; ends the run.
        """
        raise NotImplementedError

    def health(self) -> bool:
        return True
