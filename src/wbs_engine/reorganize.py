from __future__ import annotations

import logging
from typing import Literal, Sequence

from .hierarchy import (
    children_index,
    effective_parent_id,
    get_descendant_ids,
    project_items,
    would_create_hierarchy_cycle,
)
from .item_models import PLACEMENTS, ItemPatch, MovePatch, Placement, RemovalPatch, SortPatch, WorkItem

logger = logging.getLogger(__name__)

RemovalPolicy = Literal["reparent", "cascade"]
REMOVAL_POLICIES: tuple[RemovalPolicy, ...] = ("reparent", "cascade")


def plan_move(
    items: Sequence[WorkItem], moved_id: str, target_id: str, placement: Placement
) -> MovePatch | None:
    """
    Compute the structural delta of dropping `moved_id` relative to `target_id`.

    - before / after: the moved item becomes a sibling of the target, placed
      at the target's index or just behind it.
    - child: the moved item is appended to the target's children.

    Returns None for rejected moves (self moves, moves into the item's own
    subtree, cross-project moves, unknown ids and no-ops). Both affected
    sibling groups are renumbered 0..n-1. Codes are not touched; regenerate
    them for the whole project afterwards.
    """

    patch, reason = _evaluate_move(items, moved_id, target_id, placement)
    if patch is None:
        logger.debug("Move %s %s %s rejected: %s", moved_id, placement, target_id, reason)
    return patch


def move_rejection_reason(
    items: Sequence[WorkItem], moved_id: str, target_id: str, placement: Placement
) -> str | None:
    """Human readable reason `plan_move` would reject the move, or None if it is accepted."""
    return _evaluate_move(items, moved_id, target_id, placement)[1]


def _evaluate_move(
    items: Sequence[WorkItem], moved_id: str, target_id: str, placement: Placement
) -> tuple[MovePatch | None, str | None]:
    if placement not in PLACEMENTS:
        return None, f"unknown placement '{placement}'"
    if moved_id == target_id:
        return None, "an item cannot be dropped onto itself"

    by_id = {item.id: item for item in items}
    moved = by_id.get(moved_id)
    target = by_id.get(target_id)
    if moved is None or target is None:
        missing = moved_id if moved is None else target_id
        return None, f"unknown item '{missing}'"
    if moved.project_id != target.project_id:
        return None, "items belong to different projects"

    index = project_items(items, moved.project_id)
    groups = children_index(index)

    old_parent_id = effective_parent_id(moved, index)
    new_parent_id = target_id if placement == "child" else effective_parent_id(target, index)

    if new_parent_id is not None and would_create_hierarchy_cycle(list(index.values()), moved_id, new_parent_id):
        return None, f"'{new_parent_id}' lies inside the subtree of '{moved_id}'"

    old_group = groups.get(old_parent_id, [])
    destination = [item for item in groups.get(new_parent_id, []) if item.id != moved_id]
    if placement == "child":
        position = len(destination)
    else:
        target_index = next(idx for idx, item in enumerate(destination) if item.id == target_id)
        position = target_index + 1 if placement == "after" else target_index
    destination.insert(position, moved)

    parent_changed = new_parent_id != old_parent_id
    if not parent_changed and [item.id for item in destination] == [item.id for item in old_group]:
        return None, "item is already at that position"

    new_siblings = tuple(
        SortPatch(item.id, rank) for rank, item in enumerate(destination) if item.id != moved_id
    )
    old_siblings: tuple[SortPatch, ...] = ()
    if parent_changed:
        remaining = [item for item in old_group if item.id != moved_id]
        old_siblings = tuple(SortPatch(item.id, rank) for rank, item in enumerate(remaining))

    return (
        MovePatch(
            moved_id=moved_id,
            parent_id=new_parent_id,
            sort_order=position,
            new_siblings=new_siblings,
            old_siblings=old_siblings,
        ),
        None,
    )


def plan_removal(
    items: Sequence[WorkItem], item_id: str, policy: RemovalPolicy = "reparent"
) -> RemovalPatch | None:
    """
    Describe the deletion of `item_id`.

    With ``reparent`` the children take the deleted item's slot under its
    parent, keeping their order; with ``cascade`` the whole subtree goes. The
    affected sibling group is renumbered and removed ids are stripped from
    every remaining item's prerequisites.
    """

    if policy not in REMOVAL_POLICIES:
        raise ValueError(f"unknown removal policy '{policy}', expected one of {list(REMOVAL_POLICIES)}")

    item = next((candidate for candidate in items if candidate.id == item_id), None)
    if item is None:
        logger.debug("Removal of %s skipped: unknown item", item_id)
        return None

    index = project_items(items, item.project_id)
    groups = children_index(index)
    parent_id = effective_parent_id(item, index)

    if policy == "cascade":
        removed = [item_id, *get_descendant_ids(list(index.values()), item_id)]
        replacement: list[WorkItem] = []
    else:
        removed = [item_id]
        replacement = groups.get(item_id, [])

    regrouped: list[WorkItem] = []
    for sibling in groups.get(parent_id, []):
        if sibling.id == item_id:
            regrouped.extend(replacement)
        else:
            regrouped.append(sibling)

    changes: dict[str, dict] = {}
    adopted = {child.id for child in replacement}
    for rank, sibling in enumerate(regrouped):
        if sibling.id in adopted:
            changes.setdefault(sibling.id, {})["parent_id"] = parent_id
        if sibling.sort_order != rank or sibling.id in adopted:
            changes.setdefault(sibling.id, {})["sort_order"] = rank

    removed_set = set(removed)
    for other in items:
        if other.id in removed_set:
            continue
        if removed_set.intersection(other.depends_on):
            kept = tuple(dep for dep in other.depends_on if dep not in removed_set)
            changes.setdefault(other.id, {})["depends_on"] = kept

    return RemovalPatch(
        removed_ids=tuple(removed),
        patches=tuple(ItemPatch(patch_id, fields) for patch_id, fields in changes.items()),
    )


def next_sort_order(items: Sequence[WorkItem], project_id: str, parent_id: str | None) -> int:
    """Rank that appends a new item to the sibling group under `parent_id`."""

    index = project_items(items, project_id)
    group = children_index(index).get(parent_id, [])
    ranks = [sibling.sort_order + 1 for sibling in group if sibling.sort_order is not None]
    return max([len(group), *ranks])
