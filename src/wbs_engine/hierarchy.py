from __future__ import annotations

import logging
from typing import Iterable, Sequence

from .item_models import HierarchyNode, WorkItem

logger = logging.getLogger(__name__)


def project_items(items: Iterable[WorkItem], project_id: str) -> dict[str, WorkItem]:
    """
    Index the items of one project by id, preserving input order.

    Duplicate ids keep the latest occurrence.
    """

    index: dict[str, WorkItem] = {}
    for item in items:
        if item.project_id != project_id:
            continue
        if item.id in index:
            logger.warning("Duplicate work item id %s in project %s; keeping latest", item.id, project_id)
        index[item.id] = item
    return index


def effective_parent_id(item: WorkItem, index: dict[str, WorkItem]) -> str | None:
    """Parent id as the forest sees it: dangling or cross-project parents read as None."""
    if item.parent_id is not None and item.parent_id in index:
        return item.parent_id
    return None


def code_sort_key(code: str | None) -> tuple:
    """Natural ordering for dotted codes so that "1.10" follows "1.9"; missing codes sort last."""
    if not code:
        return (1, ())
    parts = []
    for segment in code.split("."):
        if segment.isdigit():
            parts.append((0, int(segment), ""))
        else:
            parts.append((1, 0, segment))
    return (0, tuple(parts))


def sibling_sort_key(item: WorkItem) -> tuple:
    """Rank among siblings: explicit sort_order first, then the existing code."""
    if item.sort_order is None:
        return (1, 0, code_sort_key(item.hierarchy_code))
    return (0, item.sort_order, code_sort_key(item.hierarchy_code))


def children_index(index: dict[str, WorkItem]) -> dict[str | None, list[WorkItem]]:
    """Group project items by effective parent, each group ordered by sibling rank."""

    groups: dict[str | None, list[WorkItem]] = {}
    for item in index.values():
        groups.setdefault(effective_parent_id(item, index), []).append(item)
    for siblings in groups.values():
        siblings.sort(key=sibling_sort_key)
    return groups


def ordered_siblings(items: Sequence[WorkItem], project_id: str, parent_id: str | None) -> list[WorkItem]:
    """Current sibling group under `parent_id` (None for roots), in display order."""
    index = project_items(items, project_id)
    return children_index(index).get(parent_id, [])


def build_hierarchy(items: Iterable[WorkItem], project_id: str) -> list[HierarchyNode]:
    """
    Convert a flat item collection into a forest for one project.

    - Items whose parent is missing, belongs to another project, or is not in
      the collection become roots.
    - The forest is grown strictly parent -> children from the roots, so items
      caught in a parent cycle are never reached and are left out.
    """

    index = project_items(items, project_id)
    groups = children_index(index)

    dangling = [item.id for item in index.values() if item.parent_id is not None and item.parent_id not in index]
    if dangling:
        logger.warning(
            "Project %s: %d items reference a parent outside the project and are shown as roots: %s",
            project_id,
            len(dangling),
            ", ".join(dangling),
        )

    forest: list[HierarchyNode] = []
    visited: list[HierarchyNode] = []
    stack: list[tuple[WorkItem, int, tuple[str, ...], HierarchyNode | None]] = [
        (root, 0, (), None) for root in reversed(groups.get(None, []))
    ]
    while stack:
        item, level, path, parent = stack.pop()
        node = HierarchyNode(item=item, level=level, path=path)
        visited.append(node)
        if parent is None:
            forest.append(node)
        else:
            parent.children.append(node)
        child_path = path + (item.id,)
        stack.extend((child, level + 1, child_path, node) for child in reversed(groups.get(item.id, [])))

    # Pre-order reversed puts every child before its parent.
    for node in reversed(visited):
        node.descendant_count = sum(1 + child.descendant_count for child in node.children)

    if len(visited) != len(index):
        logger.warning(
            "Project %s: %d items are unreachable from any root (parent cycle?) and were omitted",
            project_id,
            len(index) - len(visited),
        )
    return forest


def walk_nodes(forest: Iterable[HierarchyNode]) -> Iterable[HierarchyNode]:
    """Pre-order walk over every node in the forest."""
    stack = list(reversed(list(forest)))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def get_ancestor_ids(items: Sequence[WorkItem], item_id: str) -> list[str]:
    """Parent chain of `item_id`, nearest first. Stops if the chain loops."""

    by_id = {item.id: item for item in items}
    ancestors: list[str] = []
    seen = {item_id}
    current = by_id.get(item_id)
    while current is not None and current.parent_id is not None and current.parent_id not in seen:
        ancestors.append(current.parent_id)
        seen.add(current.parent_id)
        current = by_id.get(current.parent_id)
    return ancestors


def get_descendant_ids(items: Sequence[WorkItem], item_id: str) -> list[str]:
    """All transitive children of `item_id` in pre-order."""

    groups: dict[str, list[WorkItem]] = {}
    for item in items:
        if item.parent_id is not None:
            groups.setdefault(item.parent_id, []).append(item)
    for siblings in groups.values():
        siblings.sort(key=sibling_sort_key)

    descendants: list[str] = []
    seen = {item_id}
    stack = list(reversed(groups.get(item_id, [])))
    while stack:
        child = stack.pop()
        if child.id in seen:
            continue
        seen.add(child.id)
        descendants.append(child.id)
        stack.extend(reversed(groups.get(child.id, [])))
    return descendants


def would_create_hierarchy_cycle(items: Sequence[WorkItem], item_id: str, new_parent_id: str) -> bool:
    """True if placing `item_id` under `new_parent_id` would close a loop in the parent chain."""

    if item_id == new_parent_id:
        return True

    by_id = {item.id: item for item in items}
    visited: set[str] = set()
    current: str | None = new_parent_id
    while current is not None:
        if current == item_id or current in visited:
            return True
        visited.add(current)
        parent = by_id.get(current)
        current = parent.parent_id if parent is not None else None
    return False


def get_valid_parent_options(items: Sequence[WorkItem], project_id: str, item_id: str | None = None) -> list[WorkItem]:
    """Project items that may become the parent of `item_id` (any item for a new one)."""

    candidates = list(project_items(items, project_id).values())
    if item_id is None:
        return candidates
    excluded = {item_id, *get_descendant_ids(items, item_id)}
    return [item for item in candidates if item.id not in excluded]
