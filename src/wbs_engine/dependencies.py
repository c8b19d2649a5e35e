from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Iterator, Sequence

from .hierarchy import project_items
from .item_models import ItemPatch, WorkItem

logger = logging.getLogger(__name__)

DONE_STATUS = "done"


@dataclass(frozen=True)
class Cycle:
    """Represents a detected dependency cycle path for error reporting."""

    path: list[str]

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return " -> ".join(self.path)


def would_create_dependency_cycle(items: Sequence[WorkItem], task_id: str, candidate_id: str) -> bool:
    """
    True if making `task_id` depend on `candidate_id` would close a cycle.

    A task may not depend on itself. Otherwise the prerequisites of the
    candidate are walked breadth-first; reaching `task_id` means the candidate
    already depends on the task, directly or transitively.
    """

    if task_id == candidate_id:
        return True

    by_id = {item.id: item for item in items}
    visited: set[str] = set()
    queue = deque([candidate_id])
    while queue:
        current_id = queue.popleft()
        if current_id in visited:
            continue
        visited.add(current_id)
        current = by_id.get(current_id)
        if current is None:
            continue
        if task_id in current.depends_on:
            return True
        queue.extend(current.depends_on)
    return False


def are_dependencies_complete(items: Sequence[WorkItem], task_id: str, done_status: str = DONE_STATUS) -> bool:
    """True when every prerequisite of `task_id` is done; unknown prerequisites count as not done."""

    by_id = {item.id: item for item in items}
    task = by_id.get(task_id)
    if task is None or not task.depends_on:
        return True
    for dep_id in task.depends_on:
        dep = by_id.get(dep_id)
        if dep is None or dep.status != done_status:
            return False
    return True


def get_blocking_dependencies(items: Sequence[WorkItem], task_id: str, done_status: str = DONE_STATUS) -> list[str]:
    """Prerequisite ids of `task_id` that are not done yet, in declaration order."""

    by_id = {item.id: item for item in items}
    task = by_id.get(task_id)
    if task is None:
        return []
    return [dep_id for dep_id in task.depends_on if dep_id not in by_id or by_id[dep_id].status != done_status]


def get_valid_dependency_options(
    items: Sequence[WorkItem], project_id: str, task_id: str | None = None
) -> list[WorkItem]:
    """Project items that `task_id` could depend on without creating a cycle."""

    candidates = list(project_items(items, project_id).values())
    if task_id is None:
        return candidates
    return [item for item in candidates if not would_create_dependency_cycle(items, task_id, item.id)]


def plan_add_dependency(items: Sequence[WorkItem], task_id: str, dependency_id: str) -> ItemPatch | None:
    """
    Patch adding `dependency_id` to the prerequisites of `task_id`.

    Returns None when the edge is rejected: unknown ids, different projects,
    an edge that already exists, or one that would close a cycle.
    """

    by_id = {item.id: item for item in items}
    task = by_id.get(task_id)
    dependency = by_id.get(dependency_id)
    if task is None or dependency is None:
        logger.debug("Dependency %s -> %s rejected: unknown item", task_id, dependency_id)
        return None
    if task.project_id != dependency.project_id:
        logger.debug("Dependency %s -> %s rejected: items belong to different projects", task_id, dependency_id)
        return None
    if dependency_id in task.depends_on:
        logger.debug("Dependency %s -> %s rejected: edge already present", task_id, dependency_id)
        return None
    if would_create_dependency_cycle(items, task_id, dependency_id):
        logger.debug("Dependency %s -> %s rejected: would create a cycle", task_id, dependency_id)
        return None
    return ItemPatch(task_id, {"depends_on": task.depends_on + (dependency_id,)})


def plan_remove_dependency(items: Sequence[WorkItem], task_id: str, dependency_id: str) -> ItemPatch | None:
    """Patch dropping `dependency_id` from `task_id`, or None if there is no such edge."""

    task = next((item for item in items if item.id == task_id), None)
    if task is None or dependency_id not in task.depends_on:
        return None
    return ItemPatch(task_id, {"depends_on": tuple(dep for dep in task.depends_on if dep != dependency_id)})


def find_dependency_cycle(items: Sequence[WorkItem], project_id: str) -> Cycle | None:
    """Depth-first search for any cycle in a project's dependency relation."""

    index = project_items(items, project_id)
    dependencies = {item_id: [dep for dep in item.depends_on if dep in index] for item_id, item in index.items()}

    state: dict[str, str] = {}
    stack: list[str] = []
    positions: dict[str, int] = {}
    pending: list[Iterator[str]] = []

    def enter(node_id: str) -> None:
        state[node_id] = "visiting"
        positions[node_id] = len(stack)
        stack.append(node_id)
        pending.append(iter(dependencies.get(node_id, [])))

    for start_id in index:
        if state.get(start_id) is not None:
            continue
        enter(start_id)
        while stack:
            dep_id = next(pending[-1], None)
            if dep_id is None:
                node_id = stack.pop()
                pending.pop()
                positions.pop(node_id, None)
                state[node_id] = "done"
                continue
            dep_state = state.get(dep_id)
            if dep_state == "visiting":
                return Cycle(stack[positions[dep_id] :] + [dep_id])
            if dep_state is None:
                enter(dep_id)
    return None
