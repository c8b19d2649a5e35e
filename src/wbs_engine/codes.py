from __future__ import annotations

from typing import Iterable

from .hierarchy import children_index, project_items
from .item_models import ItemPatch, WorkItem


def generate_hierarchy_codes(items: Iterable[WorkItem], project_id: str) -> dict[str, str]:
    """
    Derive the dotted hierarchy code of every reachable item in a project.

    Sibling groups are numbered 1..n from the roots down, ordered by
    sort_order and falling back to the existing code for unranked items.
    Items unreachable from a root get no code.
    """

    index = project_items(items, project_id)
    groups = children_index(index)
    codes: dict[str, str] = {}

    stack: list[tuple[str | None, str]] = [(None, "")]
    while stack:
        parent_id, prefix = stack.pop()
        for position, child in enumerate(groups.get(parent_id, []), start=1):
            code = f"{prefix}.{position}" if prefix else str(position)
            codes[child.id] = code
            stack.append((child.id, code))
    return codes


def plan_code_updates(items: Iterable[WorkItem], project_id: str) -> list[ItemPatch]:
    """Patches for the items whose stored code differs from the derived one."""

    snapshot = list(items)
    codes = generate_hierarchy_codes(snapshot, project_id)
    patches: list[ItemPatch] = []
    for item in project_items(snapshot, project_id).values():
        code = codes.get(item.id)
        if code is not None and code != item.hierarchy_code:
            patches.append(ItemPatch(item.id, {"hierarchy_code": code}))
    return patches
