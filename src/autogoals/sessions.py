# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""In-memory registry of worker sessions.

The scheduler registers each worker invocation here and streams its output
lines into a bounded buffer. Observers (the terminal monitor) read copies
via snapshot() and block in wait_for_change() instead of polling.
"""

import threading
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

DEFAULT_MAX_LINES = 1000

RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"


class LogBuffer:
    """Keeps the last max_lines lines."""

    def __init__(self, max_lines: int = DEFAULT_MAX_LINES):
        self.max_lines = max_lines
        self._lines = deque(maxlen=max_lines)

    def append(self, line: str) -> None:
        self._lines.append(line)

    def get_lines(self) -> List[str]:
        return list(self._lines)

    def clear(self) -> None:
        self._lines.clear()

    def __len__(self) -> int:
        return len(self._lines)


@dataclass
class AgentSession:
    """Snapshot of one worker invocation."""

    id: int
    goal_id: str
    goal_description: str
    phase: str
    status: str = RUNNING
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    ended_at: Optional[datetime] = None
    exit_code: Optional[int] = None
    log_lines: List[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> int:
        end = self.ended_at or datetime.now(timezone.utc)
        return int((end - self.started_at).total_seconds())


class SessionManager:
    """Thread-safe session store shared by the scheduler and observers."""

    def __init__(self, max_lines: int = DEFAULT_MAX_LINES):
        self.max_lines = max_lines
        self._sessions: Dict[int, AgentSession] = {}
        self._buffers: Dict[int, LogBuffer] = {}
        self._next_id = 1
        self._version = 0
        self._changed = threading.Condition()

    @property
    def version(self) -> int:
        with self._changed:
            return self._version

    def _bump(self) -> None:
        # Caller holds the lock
        self._version += 1
        self._changed.notify_all()

    def create_session(self, goal_id: str, goal_description: str, phase: str) -> int:
        with self._changed:
            session_id = self._next_id
            self._next_id += 1
            self._sessions[session_id] = AgentSession(
                id=session_id,
                goal_id=goal_id,
                goal_description=goal_description,
                phase=phase,
            )
            self._buffers[session_id] = LogBuffer(self.max_lines)
            self._bump()
            return session_id

    def append_log(self, session_id: int, line: str) -> None:
        with self._changed:
            buffer = self._buffers.get(session_id)
            if buffer is None:
                return
            for part in line.splitlines() or [""]:
                buffer.append(part)
            self._bump()

    def update_status(self, session_id: int, status: str, exit_code: Optional[int] = None) -> None:
        with self._changed:
            session = self._sessions.get(session_id)
            if session is None:
                return
            session.status = status
            if status in (COMPLETED, FAILED):
                session.ended_at = datetime.now(timezone.utc)
            if exit_code is not None:
                session.exit_code = exit_code
            self._bump()

    def _copy(self, session_id: int) -> AgentSession:
        session = self._sessions[session_id]
        return replace(session, log_lines=self._buffers[session_id].get_lines())

    def snapshot(self) -> List[AgentSession]:
        """Copies of all sessions, oldest first."""
        with self._changed:
            return [self._copy(session_id) for session_id in sorted(self._sessions)]

    def get(self, session_id: int) -> Optional[AgentSession]:
        with self._changed:
            if session_id not in self._sessions:
                return None
            return self._copy(session_id)

    def wait_for_change(self, since_version: int, timeout: Optional[float] = None) -> int:
        """Block until the version moves past since_version or timeout.

        Returns:
            The current version.
        """
        with self._changed:
            self._changed.wait_for(lambda: self._version != since_version, timeout=timeout)
            return self._version
