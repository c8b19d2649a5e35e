from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

from .dependencies import DONE_STATUS
from .hierarchy import effective_parent_id, project_items
from .item_models import WorkItem


@dataclass(frozen=True)
class Rollup:
    """Bottom-up figures for one subtree."""

    item_id: str
    estimated_hours: float
    actual_hours: float
    planned_hours: float
    progress_percent: int
    completion_ratio: float
    leaf_count: int


class _Tree:
    """Parent -> children lookup over the project that owns `item_id`."""

    def __init__(self, items: Sequence[WorkItem], item_id: str) -> None:
        target = next((item for item in items if item.id == item_id), None)
        self.by_id: dict[str, WorkItem] = project_items(items, target.project_id) if target is not None else {}
        self.children: dict[str, list[WorkItem]] = {}
        for item in self.by_id.values():
            parent_id = effective_parent_id(item, self.by_id)
            if parent_id is not None and parent_id != item.id:
                self.children.setdefault(parent_id, []).append(item)

    def fold(self, item_id: str, leaf_value: Callable[[WorkItem], float]) -> float:
        """Sum `leaf_value` over the leaves below `item_id`; parents contribute nothing themselves."""

        if item_id not in self.by_id:
            return 0.0

        seen = {item_id}
        expanded: dict[str, list[WorkItem]] = {}
        totals: dict[str, float] = {}
        stack: list[tuple[str, bool]] = [(item_id, False)]
        while stack:
            current_id, children_done = stack.pop()
            if children_done:
                children = expanded[current_id]
                if children:
                    totals[current_id] = sum(totals[child.id] for child in children)
                else:
                    totals[current_id] = leaf_value(self.by_id[current_id])
                continue
            children = [child for child in self.children.get(current_id, []) if child.id not in seen]
            seen.update(child.id for child in children)
            expanded[current_id] = children
            stack.append((current_id, True))
            stack.extend((child.id, False) for child in children)
        return totals[item_id]

    def leaves(self, item_id: str) -> list[WorkItem]:
        found: list[WorkItem] = []
        seen: set[str] = set()
        stack = [item_id]
        while stack:
            current_id = stack.pop()
            if current_id in seen or current_id not in self.by_id:
                continue
            seen.add(current_id)
            children = self.children.get(current_id, [])
            if children:
                stack.extend(child.id for child in children)
            else:
                found.append(self.by_id[current_id])
        return found


def calculate_total_estimated_hours(items: Sequence[WorkItem], item_id: str) -> float:
    """Estimated effort of a subtree: the item's own value for a leaf, else the sum over its children."""
    return _Tree(items, item_id).fold(item_id, lambda item: item.estimated_hours or 0.0)


def calculate_total_actual_hours(items: Sequence[WorkItem], item_id: str) -> float:
    """Actual effort of a subtree, rolled up the same way as estimates."""
    return _Tree(items, item_id).fold(item_id, lambda item: item.actual_hours or 0.0)


def calculate_total_planned_hours(items: Sequence[WorkItem], item_id: str) -> float:
    return _Tree(items, item_id).fold(item_id, lambda item: item.planned_hours or 0.0)


def calculate_parent_progress(items: Sequence[WorkItem], parent_id: str, done_status: str = DONE_STATUS) -> int:
    """Percentage (rounded half up) of direct children that are done; 0 without children."""

    children = _Tree(items, parent_id).children.get(parent_id, [])
    if not children:
        return 0
    done = sum(1 for child in children if child.status == done_status)
    return int(done * 100 / len(children) + 0.5)


def calculate_completion_ratio(items: Sequence[WorkItem], item_id: str, done_status: str = DONE_STATUS) -> float:
    """Share of leaves under `item_id` that are done, between 0.0 and 1.0."""

    leaves = _Tree(items, item_id).leaves(item_id)
    if not leaves:
        return 0.0
    return sum(1 for leaf in leaves if leaf.status == done_status) / len(leaves)


def get_milestone_items(items: Sequence[WorkItem], project_id: str) -> list[WorkItem]:
    return [item for item in items if item.project_id == project_id and item.is_milestone]


def summarize_subtree(items: Sequence[WorkItem], item_id: str, done_status: str = DONE_STATUS) -> Rollup:
    """All roll-ups for one subtree, computed from a single lookup."""

    tree = _Tree(items, item_id)
    leaves = tree.leaves(item_id)
    done = sum(1 for leaf in leaves if leaf.status == done_status)
    return Rollup(
        item_id=item_id,
        estimated_hours=tree.fold(item_id, lambda item: item.estimated_hours or 0.0),
        actual_hours=tree.fold(item_id, lambda item: item.actual_hours or 0.0),
        planned_hours=tree.fold(item_id, lambda item: item.planned_hours or 0.0),
        progress_percent=calculate_parent_progress(items, item_id, done_status),
        completion_ratio=done / len(leaves) if leaves else 0.0,
        leaf_count=len(leaves),
    )
