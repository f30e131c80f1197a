# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Read-only terminal monitor for a scheduler run.

Shows every agent session with its status, goal, phase and duration, plus
the log tail of the most recent session. Redraws when the session registry
changes; never writes to the state.
"""

import threading
from typing import List, Optional

from rich.console import Console, Group
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from autogoals.sessions import COMPLETED, FAILED, RUNNING, AgentSession, SessionManager

# Seconds between redraws when nothing changes, so durations keep ticking
FALLBACK_REFRESH = 1.0
LOG_TAIL_LINES = 20

STATUS_STYLES = {
    RUNNING: ("→", "yellow"),
    COMPLETED: ("✓", "green"),
    FAILED: ("✗", "red"),
}


def format_duration(seconds: int) -> str:
    """Format seconds as 42s, 3m 5s or 1h 2m."""
    if seconds < 60:
        return f"{seconds}s"
    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"


def select_session(sessions: List[AgentSession]) -> Optional[AgentSession]:
    """Newest running session, else the newest session."""
    running = [s for s in sessions if s.status == RUNNING]
    if running:
        return running[-1]
    return sessions[-1] if sessions else None


def render_sessions(sessions: List[AgentSession]) -> Table:
    counts = {status: sum(1 for s in sessions if s.status == status) for status in STATUS_STYLES}
    table = Table(
        title=(
            f"Sessions: {counts[RUNNING]} running, "
            f"{counts[COMPLETED]} completed, {counts[FAILED]} failed"
        ),
        header_style="bold",
    )
    table.add_column("#", justify="right")
    table.add_column("Status")
    table.add_column("Goal")
    table.add_column("Phase")
    table.add_column("Duration", justify="right")

    for session in sessions:
        icon, style = STATUS_STYLES.get(session.status, ("?", "white"))
        table.add_row(
            str(session.id),
            f"[{style}]{icon} {session.status}[/{style}]",
            escape(f"{session.goal_id}: {session.goal_description}"),
            session.phase,
            format_duration(session.duration_seconds),
        )
    return table


def render_log(session: Optional[AgentSession], lines: int = LOG_TAIL_LINES) -> Panel:
    if session is None:
        return Panel("No sessions yet", title="Log")
    tail = session.log_lines[-lines:]
    body = escape("\n".join(tail)) if tail else "[dim](no output)[/dim]"
    return Panel(body, title=escape(f"Log: {session.goal_id} ({session.phase})"))


def render(sessions: List[AgentSession]) -> Group:
    return Group(render_sessions(sessions), render_log(select_session(sessions)))


class Monitor:
    """Live view of a SessionManager until stopped."""

    def __init__(self, sessions: SessionManager, console: Optional[Console] = None):
        self.sessions = sessions
        self.console = console or Console()

    def run(self, stop: threading.Event) -> None:
        """Redraw on every registry change until stop is set."""
        version = self.sessions.version
        with Live(render(self.sessions.snapshot()), console=self.console, auto_refresh=False) as live:
            while not stop.is_set():
                version = self.sessions.wait_for_change(version, timeout=FALLBACK_REFRESH)
                live.update(render(self.sessions.snapshot()), refresh=True)
            live.update(render(self.sessions.snapshot()), refresh=True)
