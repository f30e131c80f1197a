# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Workers carry out goal phases for the scheduler."""

from autogoals.workers.agent import DEFAULT_AGENT_COMMAND, DEFAULT_MODEL, AgentWorker
from autogoals.workers.base import (
    Outcome,
    Phase,
    Worker,
    WorkerContext,
    WorkerError,
    phase_for,
)
from autogoals.workers.prompts import render_prompt

__all__ = [
    "DEFAULT_AGENT_COMMAND",
    "DEFAULT_MODEL",
    "AgentWorker",
    "Outcome",
    "Phase",
    "Worker",
    "WorkerContext",
    "WorkerError",
    "phase_for",
    "render_prompt",
]
