from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Iterable, Sequence

from .codes import plan_code_updates
from .config import EngineConfig
from .dependencies import plan_add_dependency, plan_remove_dependency
from .item_models import ItemPatch, MovePatch, Placement, RemovalPatch, WorkItem
from .reorganize import next_sort_order, plan_move, plan_removal

logger = logging.getLogger(__name__)

_STRUCTURAL_FIELDS = {"id", "project_id", "parent_id", "sort_order", "hierarchy_code", "depends_on"}


def apply_patches(items: Sequence[WorkItem], patches: Iterable[ItemPatch]) -> tuple[WorkItem, ...]:
    """Return a new snapshot with every patch applied; patches for unknown ids are ignored."""

    pending: dict[str, dict] = {}
    for patch in patches:
        pending.setdefault(patch.id, {}).update(patch.changes)
    return tuple(replace(item, **pending[item.id]) if item.id in pending else item for item in items)


class WorkItemStore:
    """
    In-memory holder of the authoritative item snapshot.

    Every mutation runs under one lock so structural changes are applied one
    at a time, and a move is only visible together with its regenerated codes.
    """

    def __init__(self, items: Iterable[WorkItem] = (), config: EngineConfig | None = None) -> None:
        self._items: tuple[WorkItem, ...] = tuple(items)
        self._lock = threading.Lock()
        self.config = config or EngineConfig()

    def snapshot(self) -> tuple[WorkItem, ...]:
        return self._items

    def get(self, item_id: str) -> WorkItem | None:
        return next((item for item in self._items if item.id == item_id), None)

    def apply(self, patches: Iterable[ItemPatch]) -> None:
        with self._lock:
            self._items = apply_patches(self._items, patches)

    def regenerate_codes(self, project_id: str) -> list[ItemPatch]:
        with self._lock:
            return self._regenerate_codes(project_id)

    def _regenerate_codes(self, project_id: str) -> list[ItemPatch]:
        patches = plan_code_updates(self._items, project_id)
        self._items = apply_patches(self._items, patches)
        return patches

    def move(self, moved_id: str, target_id: str, placement: Placement) -> MovePatch | None:
        """Apply a move and refresh the project's codes; None if the move was rejected."""

        with self._lock:
            patch = plan_move(self._items, moved_id, target_id, placement)
            if patch is None:
                return None
            self._items = apply_patches(self._items, patch.to_item_patches())
            moved = next(item for item in self._items if item.id == moved_id)
            self._regenerate_codes(moved.project_id)
            logger.info("Moved %s %s %s", moved_id, placement, target_id)
            return patch

    def add_item(self, item: WorkItem) -> WorkItem:
        """Append a new item to its sibling group and refresh codes."""

        with self._lock:
            if any(existing.id == item.id for existing in self._items):
                raise ValueError(f"item id '{item.id}' already exists")
            if item.parent_id is not None and not any(
                existing.id == item.parent_id and existing.project_id == item.project_id for existing in self._items
            ):
                raise ValueError(f"parent '{item.parent_id}' is not an item of project '{item.project_id}'")
            added = replace(item, sort_order=next_sort_order(self._items, item.project_id, item.parent_id))
            self._items = self._items + (added,)
            self._regenerate_codes(item.project_id)
            return self.get(item.id) or added

    def add_dependency(self, task_id: str, dependency_id: str) -> bool:
        with self._lock:
            patch = plan_add_dependency(self._items, task_id, dependency_id)
            if patch is None:
                return False
            self._items = apply_patches(self._items, [patch])
            return True

    def remove_dependency(self, task_id: str, dependency_id: str) -> bool:
        with self._lock:
            patch = plan_remove_dependency(self._items, task_id, dependency_id)
            if patch is None:
                return False
            self._items = apply_patches(self._items, [patch])
            return True

    def remove_item(self, item_id: str, policy: str | None = None) -> RemovalPatch | None:
        """Delete an item following the configured removal policy, then refresh codes."""

        with self._lock:
            item = next((candidate for candidate in self._items if candidate.id == item_id), None)
            if item is None:
                return None
            removal = plan_removal(self._items, item_id, policy or self.config.removal_policy)
            if removal is None:
                return None
            removed = set(removal.removed_ids)
            remaining = tuple(candidate for candidate in self._items if candidate.id not in removed)
            self._items = apply_patches(remaining, removal.patches)
            self._regenerate_codes(item.project_id)
            logger.info("Removed %s (%d items)", item_id, len(removal.removed_ids))
            return removal

    def update_item(self, item_id: str, **changes) -> WorkItem:
        """Edit leaf attributes such as status or hours; structure goes through move/remove."""

        structural = sorted(set(changes) & _STRUCTURAL_FIELDS)
        if structural:
            raise ValueError(f"fields {structural} can only change through structural operations")
        with self._lock:
            if not any(item.id == item_id for item in self._items):
                raise KeyError(item_id)
            self._items = apply_patches(self._items, [ItemPatch(item_id, changes)])
        return self.get(item_id)
