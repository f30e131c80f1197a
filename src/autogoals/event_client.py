# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""JSONL audit log for scheduler runs."""

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

EVENTS_LOG = Path(".autogoals") / "logs" / "events.jsonl"


def new_correlation_id() -> str:
    return f"run-{uuid.uuid4().hex[:12]}"


class EventClient:
    """Append-only JSONL event logger.

    Every event of one scheduler run shares a correlation id.
    """

    def __init__(self, log_path: Path, correlation_id: Optional[str] = None):
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self.correlation_id = correlation_id or new_correlation_id()

    @classmethod
    def for_project(cls, project_path: Path) -> "EventClient":
        return cls(Path(project_path) / EVENTS_LOG)

    def log_event(
        self,
        event_type: str,
        status: str,
        goal_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """Log an event to the JSONL file."""
        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "correlation_id": self.correlation_id,
            "status": status,
        }
        if goal_id:
            event["goal_id"] = goal_id
        if payload:
            event["payload"] = payload
        if error_message:
            event["error_message"] = error_message

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(event) + "\n")

    def read_events(self) -> List[Dict[str, Any]]:
        if not self.log_path.exists():
            return []
        with open(self.log_path, encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]
