# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Dependency validation for goals.

Checks that every dependency names a declared goal and produces a
topological execution order. The order is informational: the scheduler
still checks eligibility per goal at runtime.
"""

from typing import Dict, List, Sequence, Set

from autogoals.schemas import Goal


class DependencyError(Exception):
    """Base class for dependency graph problems."""

    pass


class UnknownDependencyError(DependencyError):
    """A goal depends on an id that is not declared."""

    def __init__(self, goal_id: str, dependency: str):
        self.goal_id = goal_id
        self.dependency = dependency
        super().__init__(f"Unknown dependency '{dependency}' in goal '{goal_id}'")


class CircularDependencyError(DependencyError):
    """The dependency graph contains a cycle."""

    def __init__(self, cycle: List[str]):
        self.cycle = cycle
        super().__init__(f"Circular dependency detected: {' -> '.join(cycle)}")


def validate_dependencies(goals: Sequence[Goal]) -> List[str]:
    """Validate the dependency graph and return goal ids in execution order.

    Depth-first traversal in declaration order; a goal is appended once all
    of its dependencies have been appended, so identical input always gives
    identical output.

    Args:
        goals: Goals in declaration order.

    Returns:
        Goal ids such that every dependency precedes its dependents.

    Raises:
        UnknownDependencyError: If a dependency is not a declared goal id.
        CircularDependencyError: If a cycle exists. The error carries the
            cycle path, first and last element being the same id.
    """
    by_id: Dict[str, Goal] = {goal.id: goal for goal in goals}

    for goal in goals:
        for dep in goal.dependencies:
            if dep not in by_id:
                raise UnknownDependencyError(goal.id, dep)

    ordered: List[str] = []
    visited: Set[str] = set()
    visiting: Set[str] = set()

    def visit(goal_id: str, path: List[str]) -> None:
        if goal_id in visiting:
            start = path.index(goal_id)
            raise CircularDependencyError(path[start:] + [goal_id])
        if goal_id in visited:
            return

        visiting.add(goal_id)
        for dep in by_id[goal_id].dependencies:
            visit(dep, path + [goal_id])
        visiting.discard(goal_id)

        visited.add(goal_id)
        ordered.append(goal_id)

    for goal in goals:
        visit(goal.id, [])

    return ordered
