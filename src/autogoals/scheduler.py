"""Goal scheduler.

Drives each goal through its phases:

    pending --planning--> ready_for_execution --execution--> ready_for_verification
        --verification--> completed

A failed verification sends the goal back to ready_for_execution until its
retries are used up; any other failure is final. One goal is worked on at a
time, in declared order, and the state is persisted after every step.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from autogoals import git
from autogoals.backends.base import ExternalToolError
from autogoals.dependencies import validate_dependencies
from autogoals.event_client import EventClient
from autogoals.schemas import (
    CommandResult,
    ExecutionState,
    Goal,
    GoalsConfig,
    GoalState,
    GoalStatus,
    parse_timestamp,
    utc_now_iso,
)
from autogoals.sessions import COMPLETED, FAILED, SessionManager
from autogoals.state import (
    StateStore,
    append_log,
    get_next_goal,
    has_pending_work,
    initialize_state,
    reconcile_state,
    require_goal_status,
    update_goal_status,
)
from autogoals.workers.base import Outcome, Phase, Worker, WorkerContext, WorkerError, phase_for

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 1000
PAUSE_MARKER = Path(".autogoals") / "PAUSED"
PLANS_DIR = Path(".autogoals") / "plans"
TIMEOUT_EXIT_CODE = 124


def plan_path(project_path: Path, goal_id: str) -> Path:
    """Where the planning phase output of a goal is kept."""
    return Path(project_path) / PLANS_DIR / f"{goal_id}.md"


def read_plan(project_path: Path, goal_id: str) -> Optional[str]:
    path = plan_path(project_path, goal_id)
    if not path.exists():
        return None
    return path.read_text(encoding="utf-8")


class InvalidTransitionError(Exception):
    """Raised when a management command does not apply to a goal's status."""

    pass


class RunOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    BLOCKED = "blocked"
    PAUSED = "paused"
    STALLED = "stalled"


_EXIT_CODES = {
    RunOutcome.COMPLETED: 0,
    RunOutcome.PAUSED: 0,
    RunOutcome.BLOCKED: 0,
    RunOutcome.FAILED: 2,
    RunOutcome.STALLED: 2,
}


@dataclass
class RunResult:
    outcome: RunOutcome
    iterations: int
    state: ExecutionState

    @property
    def exit_code(self) -> int:
        return _EXIT_CODES[self.outcome]


# Pause marker


def pause_marker_path(project_path: Path) -> Path:
    return Path(project_path) / PAUSE_MARKER


def request_pause(project_path: Path) -> Path:
    """Ask a running scheduler to stop before its next goal."""
    marker = pause_marker_path(project_path)
    marker.parent.mkdir(parents=True, exist_ok=True)
    marker.write_text(utc_now_iso() + "\n", encoding="utf-8")
    return marker


def clear_pause(project_path: Path) -> bool:
    """Remove the pause marker. Returns True if one was present."""
    marker = pause_marker_path(project_path)
    if not marker.exists():
        return False
    marker.unlink()
    return True


def is_paused(project_path: Path) -> bool:
    return pause_marker_path(project_path).exists()


# Transitions


def _failure_error(phase: Phase, outcome: Outcome) -> CommandResult:
    if outcome.error is not None:
        return outcome.error
    return CommandResult(
        command=f"<{phase.value}>",
        exit_code=1,
        stderr=outcome.message or f"{phase.value} failed",
    )


def apply_outcome(state: ExecutionState, goal: Goal, phase: Phase, outcome: Outcome) -> GoalState:
    """Apply a worker outcome to a goal's status.

    Args:
        state: Execution state, modified in place.
        goal: Goal the outcome belongs to.
        phase: Phase that produced the outcome.
        outcome: Worker result.

    Returns:
        The goal's new status.
    """
    goal_status = require_goal_status(state, goal.id)

    if outcome.success:
        if phase == Phase.PLANNING:
            new_status = GoalState.READY_FOR_EXECUTION
        elif phase == Phase.EXECUTION:
            new_status = GoalState.READY_FOR_VERIFICATION
        else:
            new_status = GoalState.COMPLETED
            goal_status.completed_at = utc_now_iso()
        update_goal_status(state, goal.id, new_status, outcome.message or None)
        return new_status

    goal_status.last_error = _failure_error(phase, outcome)

    if phase != Phase.VERIFICATION:
        update_goal_status(
            state, goal.id, GoalState.FAILED, f"{phase.value} failed: {outcome.message}"
        )
        return GoalState.FAILED

    if goal_status.retry_count < goal.max_retries - 1:
        goal_status.retry_count += 1
        update_goal_status(
            state,
            goal.id,
            GoalState.READY_FOR_EXECUTION,
            f"Verification failed, retry {goal_status.retry_count} of {goal.max_retries - 1}",
        )
        return GoalState.READY_FOR_EXECUTION

    goal_status.retry_count += 1
    update_goal_status(
        state,
        goal.id,
        GoalState.FAILED,
        f"Verification failed after {goal_status.retry_count} attempt(s): {outcome.message}",
    )
    return GoalState.FAILED


# Management commands


def skip_goal(state: ExecutionState, goal_id: str) -> None:
    """Mark a goal completed without running it.

    Raises:
        GoalNotFoundError: If the goal is not in the state.
        InvalidTransitionError: If the goal is already completed.
    """
    goal_status = require_goal_status(state, goal_id)
    if goal_status.status == GoalState.COMPLETED.value:
        raise InvalidTransitionError(f"goal '{goal_id}' is already completed")
    goal_status.status = GoalState.COMPLETED.value
    goal_status.skipped = True
    goal_status.completed_at = utc_now_iso()
    append_log(state, goal_id, "skipped", "Goal skipped by user")


def reset_goal(state: ExecutionState, goal_id: str) -> None:
    """Put a goal back to pending with no history.

    Raises:
        GoalNotFoundError: If the goal is not in the state.
    """
    require_goal_status(state, goal_id)
    state.goals_status[goal_id] = GoalStatus()
    append_log(state, goal_id, "reset", "Goal reset to pending")


class Scheduler:
    """Runs goals one phase at a time until nothing is eligible."""

    def __init__(
        self,
        config: GoalsConfig,
        store: StateStore,
        worker: Worker,
        project_path: Path,
        sessions: Optional[SessionManager] = None,
        events: Optional[EventClient] = None,
        goal_timeout: Optional[int] = None,
        max_iterations: int = MAX_ITERATIONS,
        use_worktrees: bool = False,
        main_branch: str = "main",
    ):
        """
        Initialize scheduler.

        Args:
            config: Loaded goals config
            store: State file access
            worker: Carries out goal phases
            project_path: Project root (the default workspace)
            sessions: Registry that observers watch (optional)
            events: JSONL audit log (optional)
            goal_timeout: Seconds a goal may run, measured from started_at
            max_iterations: Hard cap on loop iterations
            use_worktrees: Run goals with a branch_name in their own worktree
            main_branch: Branch goal branches are merged into
        """
        self.config = config
        self.store = store
        self.worker = worker
        self.project_path = Path(project_path)
        self.sessions = sessions
        self.events = events
        self.goal_timeout = goal_timeout
        self.max_iterations = max_iterations
        self.use_worktrees = use_worktrees
        self.main_branch = main_branch

    def _event(self, event_type: str, status: str, goal_id: Optional[str] = None, **payload) -> None:
        if self.events is not None:
            self.events.log_event(event_type, status, goal_id=goal_id, payload=payload or None)

    def load_state(self) -> ExecutionState:
        """Load the persisted state, or start a fresh one, and save it.

        Raises:
            StateCorruptionError: If the state file is unreadable or
                belongs to a different goal list.
        """
        state = self.store.load()
        if state is None:
            state = initialize_state(self.config.goals)
            append_log(state, None, "initialized", f"Initialized state for {len(self.config.goals)} goal(s)")
            logger.info(f"Initialized state at {self.store.path}")
        else:
            changed = reconcile_state(state, self.config)
            if changed:
                logger.info(f"Reconciled state for: {', '.join(changed)}")
        self.store.save(state)
        return state

    def run(self) -> RunResult:
        """Run the loop until no goal is eligible, the run is paused, or the cap is hit.

        Raises:
            DependencyError: If the dependency graph is invalid.
            StateCorruptionError: If the state cannot be trusted.
            ExternalToolError: If a required tool fails; the run ends.
        """
        validate_dependencies(self.config.goals)
        state = self.load_state()
        self._event("run_started", "started", goals=len(self.config.goals))

        iterations = 0
        outcome = None
        while True:
            if is_paused(self.project_path):
                logger.info("Pause requested, stopping before next goal")
                outcome = RunOutcome.PAUSED
                break

            goal = get_next_goal(self.config.goals, state)
            if goal is None:
                break

            if iterations >= self.max_iterations:
                logger.warning(f"Stopping after {iterations} iterations")
                outcome = RunOutcome.STALLED
                break

            iterations += 1
            self.step(state, goal)

        return self._finish(state, iterations, outcome)

    def step(self, state: ExecutionState, goal: Goal) -> GoalState:
        """Run the next phase of one goal and persist the result."""
        goal_status = require_goal_status(state, goal.id)
        state.current_goal_id = goal.id
        if not goal_status.started_at:
            goal_status.started_at = utc_now_iso()

        phase = phase_for(goal_status.status)
        if phase is None:
            raise InvalidTransitionError(
                f"goal '{goal.id}' has no phase to run from status {goal_status.status}"
            )

        if self._timed_out(goal_status):
            self._fail_timeout(state, goal, phase)
            self.store.save(state)
            return GoalState.FAILED

        workspace = self._workspace_for(goal, phase)
        if phase == Phase.EXECUTION:
            update_goal_status(state, goal.id, GoalState.IN_PROGRESS, "Execution started")
        self.store.save(state)

        logger.info(f"[{goal.id}] {phase.value} (attempt {goal_status.retry_count + 1})")
        self._event("phase_started", "started", goal.id, phase=phase.value)

        session_id = None
        if self.sessions is not None:
            session_id = self.sessions.create_session(goal.id, goal.title, phase.value)

        context = WorkerContext(
            last_error=goal_status.last_error,
            retry_count=goal_status.retry_count,
            plan=read_plan(self.project_path, goal.id) if phase == Phase.EXECUTION else None,
            log=self._session_logger(session_id),
        )

        try:
            outcome = self.worker.invoke(phase, goal, workspace, context)
        except WorkerError as e:
            logger.error(f"[{goal.id}] worker error: {e}")
            outcome = Outcome(success=False, message=str(e))
        except ExternalToolError:
            if session_id is not None:
                self.sessions.update_status(session_id, FAILED)
            self._event("phase_finished", "error", goal.id, phase=phase.value)
            raise

        if phase == Phase.PLANNING and outcome.success:
            self._save_plan(goal, outcome)

        if session_id is not None:
            exit_code = outcome.error.exit_code if outcome.error else (0 if outcome.success else 1)
            self.sessions.update_status(
                session_id, COMPLETED if outcome.success else FAILED, exit_code=exit_code
            )

        new_status = apply_outcome(state, goal, phase, outcome)
        self.store.save(state)
        self._event(
            "phase_finished",
            "success" if outcome.success else "failed",
            goal.id,
            phase=phase.value,
            new_status=new_status.value,
            message=outcome.message,
        )

        if new_status == GoalState.COMPLETED:
            logger.info(f"[{goal.id}] completed")
            if self._uses_worktree(goal):
                self._merge_worktree(goal)
        elif new_status == GoalState.FAILED:
            logger.error(f"[{goal.id}] failed: {outcome.message}")
        return new_status

    def _save_plan(self, goal: Goal, outcome: Outcome) -> None:
        path = plan_path(self.project_path, goal.id)
        plan = "\n".join(r.stdout.strip() for r in outcome.command_results if r.stdout.strip())
        if not plan:
            # Drop a plan left by an earlier attempt
            if path.exists():
                path.unlink()
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(plan + "\n", encoding="utf-8")
        logger.info(f"[{goal.id}] plan saved to {path}")

    def _session_logger(self, session_id: Optional[int]):
        def log(line: str) -> None:
            logger.debug(line)
            if session_id is not None:
                self.sessions.append_log(session_id, line)

        return log

    def _timed_out(self, goal_status: GoalStatus) -> bool:
        if not self.goal_timeout or not goal_status.started_at:
            return False
        started = parse_timestamp(goal_status.started_at)
        elapsed = (datetime.now(timezone.utc) - started).total_seconds()
        return elapsed > self.goal_timeout

    def _fail_timeout(self, state: ExecutionState, goal: Goal, phase: Phase) -> None:
        goal_status = require_goal_status(state, goal.id)
        message = f"Goal exceeded timeout of {self.goal_timeout}s"
        goal_status.last_error = CommandResult(
            command=f"<{phase.value}>",
            exit_code=TIMEOUT_EXIT_CODE,
            stderr=message,
        )
        append_log(state, goal.id, "timeout", message)
        update_goal_status(state, goal.id, GoalState.FAILED, message)
        logger.error(f"[{goal.id}] {message}")
        self._event("goal_timeout", "failed", goal.id, timeout=self.goal_timeout)

    def _uses_worktree(self, goal: Goal) -> bool:
        return self.use_worktrees and bool(goal.branch_name)

    def _workspace_for(self, goal: Goal, phase: Phase) -> Path:
        if phase == Phase.PLANNING or not self._uses_worktree(goal):
            return self.project_path
        worktree = git.get_worktree_path(goal.id, self.project_path)
        if not worktree.exists():
            git.create_worktree(goal.id, goal.branch_name, self.project_path)
        return worktree

    def _merge_worktree(self, goal: Goal) -> None:
        worktree = git.get_worktree_path(goal.id, self.project_path)
        if not worktree.exists():
            return
        if git.has_uncommitted_changes(worktree):
            commit_hash = git.commit_changes(f"Complete goal {goal.id}: {goal.title}", worktree)
            logger.info(f"[{goal.id}] committed {commit_hash[:8]}")
        git.merge_branch(goal.branch_name, self.project_path, self.main_branch)
        git.delete_worktree(worktree, goal.branch_name, self.project_path)
        self._event("goal_merged", "success", goal.id, branch=goal.branch_name)

    def _finish(self, state: ExecutionState, iterations: int, outcome: Optional[RunOutcome]) -> RunResult:
        statuses = [s.status for s in state.goals_status.values()]
        if outcome is None:
            if GoalState.FAILED.value in statuses:
                outcome = RunOutcome.FAILED
            elif has_pending_work(state):
                outcome = RunOutcome.BLOCKED
            else:
                outcome = RunOutcome.COMPLETED

        self.store.save(state)
        self._event("run_finished", outcome.value, iterations=iterations)
        logger.info(f"Run {outcome.value} after {iterations} iteration(s)")
        return RunResult(outcome=outcome, iterations=iterations, state=state)
