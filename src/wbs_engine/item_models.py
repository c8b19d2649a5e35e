from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal


Placement = Literal["before", "after", "child"]
"""Where a dragged item lands relative to the drop target."""

PLACEMENTS: tuple[Placement, ...] = ("before", "after", "child")

ItemStatus = Literal["todo", "in_progress", "blocked", "done"]
"""Completion states a work item moves through."""

ITEM_STATUSES: tuple[ItemStatus, ...] = ("todo", "in_progress", "blocked", "done")


class _ExpandAll:
    """Sentinel type telling the flattener to expand every node."""

    _instance: "_ExpandAll | None" = None

    def __new__(cls) -> "_ExpandAll":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return "EXPAND_ALL"


EXPAND_ALL = _ExpandAll()


@dataclass(frozen=True)
class WorkItem:
    """Unit of decomposition inside a project's work breakdown structure."""

    id: str
    project_id: str
    name: str = ""
    parent_id: str | None = None
    sort_order: int | None = None
    hierarchy_code: str | None = None
    depends_on: tuple[str, ...] = ()
    status: ItemStatus = "todo"
    is_milestone: bool = False
    estimated_hours: float = 0.0
    actual_hours: float = 0.0
    planned_hours: float | None = None
    meta: dict[str, Any] | None = field(default=None, compare=False, hash=False)


@dataclass
class HierarchyNode:
    """An item placed in the forest with its depth and ordered children."""

    item: WorkItem
    level: int = 0
    path: tuple[str, ...] = ()
    children: list["HierarchyNode"] = field(default_factory=list)
    descendant_count: int = 0  # transitive descendants, filled in by the builder

    @property
    def id(self) -> str:
        return self.item.id

    @property
    def has_children(self) -> bool:
        return bool(self.children)


@dataclass(frozen=True)
class FlatRow:
    """
    Linearised view of one node used by list renderers.

    Only what a row needs is kept: display position, indentation level, the
    item itself, and enough child information for expand toggles and
    "N subtasks" badges.
    """

    order: int
    level: int
    item: WorkItem
    has_children: bool
    is_expanded: bool
    descendant_count: int


@dataclass(frozen=True)
class ItemPatch:
    """Changed fields for a single item, as handed to the store."""

    id: str
    changes: dict[str, Any]


@dataclass(frozen=True)
class SortPatch:
    """New rank of an item inside its sibling group."""

    id: str
    sort_order: int


@dataclass(frozen=True)
class MovePatch:
    """Structural delta produced by moving one item relative to another."""

    moved_id: str
    parent_id: str | None
    sort_order: int
    new_siblings: tuple[SortPatch, ...] = ()
    old_siblings: tuple[SortPatch, ...] = ()

    def to_item_patches(self) -> list[ItemPatch]:
        """Flatten the delta into store patches, moved item first."""
        patches = [ItemPatch(self.moved_id, {"parent_id": self.parent_id, "sort_order": self.sort_order})]
        for sibling in (*self.new_siblings, *self.old_siblings):
            patches.append(ItemPatch(sibling.id, {"sort_order": sibling.sort_order}))
        return patches


@dataclass(frozen=True)
class RemovalPatch:
    """Items to drop from the store plus patches for the items left behind."""

    removed_ids: tuple[str, ...]
    patches: tuple[ItemPatch, ...] = ()
