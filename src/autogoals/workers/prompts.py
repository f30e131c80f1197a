# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Phase prompts handed to the coding agent."""

from pathlib import Path
from typing import List, Optional

from autogoals.schemas import CommandResult, Goal
from autogoals.workers.base import Phase

PLANNING_TEMPLATE = """\
You are planning goal '{goal_id}': {title}

{description}

Acceptance criteria:
{criteria}

Workspace: {workspace}

Inspect the workspace and reply with a short implementation plan for this
goal. Your reply is saved and handed to the execution phase. Do not change
any files yet.
"""

EXECUTION_TEMPLATE = """\
You are implementing goal '{goal_id}': {title}

{description}

Acceptance criteria:
{criteria}

Workspace: {workspace}

Make the changes needed to meet every acceptance criterion.
{plan}{retry}"""

PLAN_TEMPLATE = """
Follow the implementation plan written during planning:

{plan}
"""

VERIFICATION_TEMPLATE = """\
You are verifying goal '{goal_id}': {title}

Acceptance criteria:
{criteria}

Workspace: {workspace}

Check each acceptance criterion against the workspace. Exit with a non-zero
status if any criterion is not met.
"""

RETRY_TEMPLATE = """
This is attempt {attempt}. The previous verification failed:

Command: {command}
Exit code: {exit_code}

stdout:
{stdout}

stderr:
{stderr}

Fix the cause of this failure.
"""

_TEMPLATES = {
    Phase.PLANNING: PLANNING_TEMPLATE,
    Phase.EXECUTION: EXECUTION_TEMPLATE,
    Phase.VERIFICATION: VERIFICATION_TEMPLATE,
}


def _bullets(items: List[str]) -> str:
    if not items:
        return "- (none listed)"
    return "\n".join(f"- {item}" for item in items)


def render_prompt(
    phase: Phase,
    goal: Goal,
    workspace: Path,
    last_error: Optional[CommandResult] = None,
    retry_count: int = 0,
    plan: Optional[str] = None,
) -> str:
    """Render the agent prompt for a goal phase.

    Args:
        phase: Phase to prompt for.
        goal: Goal being worked on.
        workspace: Directory the agent works in.
        last_error: Failing command from the previous verification, if any.
        retry_count: Retries so far; the execution prompt numbers the attempt.
        plan: Plan text from the planning phase, embedded in the execution prompt.

    Returns:
        Prompt text.
    """
    plan_text = ""
    if phase == Phase.EXECUTION and plan and plan.strip():
        plan_text = PLAN_TEMPLATE.format(plan=plan.strip())

    retry = ""
    if phase == Phase.EXECUTION and last_error is not None:
        error = last_error.tail(2000)
        retry = RETRY_TEMPLATE.format(
            attempt=retry_count + 1,
            command=error.command,
            exit_code=error.exit_code,
            stdout=error.stdout.strip() or "(empty)",
            stderr=error.stderr.strip() or "(empty)",
        )

    return _TEMPLATES[Phase(phase)].format(
        goal_id=goal.id,
        title=goal.title,
        description=goal.description.strip(),
        criteria=_bullets(goal.acceptance_criteria),
        workspace=workspace,
        plan=plan_text,
        retry=retry,
    )
