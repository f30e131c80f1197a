"""Tests for the session registry."""

import threading

from autogoals.sessions import LogBuffer, SessionManager


class TestLogBuffer:
    """Tests for LogBuffer."""

    def test_keeps_last_lines(self):
        buffer = LogBuffer(max_lines=3)
        for i in range(5):
            buffer.append(f"line {i}")

        assert buffer.get_lines() == ["line 2", "line 3", "line 4"]
        assert len(buffer) == 3

    def test_default_capacity(self):
        buffer = LogBuffer()
        for i in range(1500):
            buffer.append(str(i))
        assert len(buffer) == 1000
        assert buffer.get_lines()[0] == "500"

    def test_clear(self):
        buffer = LogBuffer()
        buffer.append("x")
        buffer.clear()
        assert buffer.get_lines() == []


class TestSessionManager:
    """Tests for SessionManager."""

    def test_create_and_snapshot(self):
        manager = SessionManager()
        first = manager.create_session("a", "Goal A", "planning")
        second = manager.create_session("a", "Goal A", "execution")

        snapshot = manager.snapshot()

        assert (first, second) == (1, 2)
        assert [s.id for s in snapshot] == [1, 2]
        assert snapshot[0].status == "running"
        assert snapshot[0].ended_at is None

    def test_append_log_splits_lines(self):
        manager = SessionManager(max_lines=10)
        session_id = manager.create_session("a", "Goal A", "planning")

        manager.append_log(session_id, "one\ntwo")
        manager.append_log(session_id, "")

        assert manager.get(session_id).log_lines == ["one", "two", ""]

    def test_update_status_sets_end(self):
        manager = SessionManager()
        session_id = manager.create_session("a", "Goal A", "verification")

        manager.update_status(session_id, "failed", exit_code=2)

        session = manager.get(session_id)
        assert session.status == "failed"
        assert session.exit_code == 2
        assert session.ended_at is not None
        assert session.duration_seconds >= 0

    def test_snapshot_is_a_copy(self):
        """Mutating a snapshot does not affect the registry."""
        manager = SessionManager()
        session_id = manager.create_session("a", "Goal A", "planning")
        manager.append_log(session_id, "kept")

        snapshot = manager.get(session_id)
        snapshot.log_lines.append("not kept")
        snapshot.status = "failed"

        assert manager.get(session_id).log_lines == ["kept"]
        assert manager.get(session_id).status == "running"

    def test_unknown_session_ignored(self):
        manager = SessionManager()
        manager.append_log(99, "x")
        manager.update_status(99, "completed")
        assert manager.get(99) is None
        assert manager.version == 0

    def test_version_increments_on_change(self):
        manager = SessionManager()
        start = manager.version
        session_id = manager.create_session("a", "Goal A", "planning")
        manager.append_log(session_id, "x")
        assert manager.version == start + 2

    def test_wait_for_change_times_out(self):
        manager = SessionManager()
        assert manager.wait_for_change(manager.version, timeout=0.01) == 0

    def test_wait_for_change_wakes_on_update(self):
        """A waiting observer is woken by a change from another thread."""
        manager = SessionManager()
        version = manager.version
        woke = []

        def observer():
            woke.append(manager.wait_for_change(version, timeout=5))

        thread = threading.Thread(target=observer)
        thread.start()
        manager.create_session("a", "Goal A", "planning")
        thread.join(timeout=5)

        assert woke == [1]
