"""Coding-agent worker.

Runs an external agent CLI through a command backend, one invocation per
goal phase. Verification runs the goal's verification_commands directly
and only falls back to the agent when a goal declares none.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import logging
import shlex
import shutil
from pathlib import Path
from typing import Dict, List, Optional

from autogoals.backends.base import CommandBackend
from autogoals.env import load_environment
from autogoals.schemas import CommandResult, Goal
from autogoals.workers.base import Outcome, Phase, Worker, WorkerContext, WorkerError
from autogoals.workers.prompts import render_prompt

DEFAULT_AGENT_COMMAND = "claude -p {prompt} --model {model} --dangerously-skip-permissions"
DEFAULT_MODEL = "sonnet"

# Characters of command output kept in last_error
ERROR_TAIL = 4000

REDACTED_PROMPT = "<prompt>"


class AgentWorker(Worker):
    """Worker that shells out to a coding agent."""

    def __init__(
        self,
        backend: CommandBackend,
        agent_command: str = DEFAULT_AGENT_COMMAND,
        model: str = DEFAULT_MODEL,
        env: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize agent worker.

        Args:
            backend: Where commands run
            agent_command: Command template with {prompt} and optional {model}
            model: Model name substituted for {model}
            env: Extra environment; defaults to load_environment(workspace)
        """
        if "{prompt}" not in agent_command:
            raise ValueError("agent command must contain a {prompt} placeholder")
        self.backend = backend
        self.agent_command = agent_command
        self.model = model
        self.env = env
        self.logger = logging.getLogger(__name__)

    @property
    def executable(self) -> str:
        return shlex.split(self.agent_command)[0]

    def health(self) -> bool:
        # Only the host PATH can be checked from here
        if self.backend.name != "local":
            return True
        return shutil.which(self.executable) is not None

    def build_command(self, prompt: str) -> str:
        return self.agent_command.format(
            prompt=shlex.quote(prompt),
            model=shlex.quote(self.model),
        )

    def invoke(
        self,
        phase: Phase,
        goal: Goal,
        workspace: Path,
        context: WorkerContext,
    ) -> Outcome:
        env = self.env if self.env is not None else load_environment(workspace)

        if phase == Phase.VERIFICATION and goal.verification_commands:
            return self._run_verification_commands(goal, workspace, env, context)

        prompt = render_prompt(
            phase,
            goal,
            workspace,
            last_error=context.last_error,
            retry_count=context.retry_count,
            plan=context.plan,
        )
        self.logger.info(f"Invoking agent for {goal.id} ({phase.value})")
        context.log(f"$ {self.build_command(REDACTED_PROMPT)}")

        result = self._execute(workspace, self.build_command(prompt), env, context)
        # Keep the prompt out of the persisted state
        result.command = self.build_command(REDACTED_PROMPT)

        if result.ok:
            return Outcome(success=True, message=f"{phase.value} finished", command_results=[result])
        return Outcome(
            success=False,
            message=f"agent exited with code {result.exit_code} during {phase.value}",
            command_results=[result],
            error=result.tail(ERROR_TAIL),
        )

    def _run_verification_commands(
        self,
        goal: Goal,
        workspace: Path,
        env: Dict[str, str],
        context: WorkerContext,
    ) -> Outcome:
        results: List[CommandResult] = []
        for command in goal.verification_commands:
            context.log(f"$ {command}")
            result = self._execute(workspace, command, env, context)
            results.append(result)
            if not result.ok:
                return Outcome(
                    success=False,
                    message=f"verification command failed (exit {result.exit_code}): {command}",
                    command_results=results,
                    error=result.tail(ERROR_TAIL),
                )
        return Outcome(
            success=True,
            message=f"{len(results)} verification command(s) passed",
            command_results=results,
        )

    def _execute(
        self,
        workspace: Path,
        command: str,
        env: Dict[str, str],
        context: WorkerContext,
    ) -> CommandResult:
        try:
            result = self.backend.execute(workspace, command, env)
        except OSError as e:
            raise WorkerError(f"could not run command in {workspace}: {e}")

        for line in result.stdout.splitlines():
            context.log(line)
        for line in result.stderr.splitlines():
            context.log(line)
        return result
