from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

import yaml

from .item_models import ITEM_STATUSES, WorkItem
from .validation import WorkItemValidationError

_ITEM_KEYS = {
    "id",
    "project",
    "name",
    "parent",
    "sort_order",
    "code",
    "depends_on",
    "status",
    "milestone",
    "estimated_hours",
    "actual_hours",
    "planned_hours",
    "meta",
}


@dataclass(frozen=True)
class _Path:
    """Helper to produce readable YAML path strings like items[3].depends_on[0]."""

    parts: tuple[str, ...] = ()

    def child(self, segment: str) -> "_Path":
        return _Path(self.parts + (segment,))

    def __str__(self) -> str:  # pragma: no cover - trivial
        return ".".join(self.parts) if self.parts else "root"


@dataclass(frozen=True)
class ItemDocument:
    """Parsed snapshot file: the default project id and the flat item list."""

    project: str | None
    items: list[WorkItem]


def load_items(path: str) -> ItemDocument:
    """Load a work item snapshot from a YAML file at the given path."""

    with open(path, "r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)

    return parse_document(raw)


def parse_document(data: Any) -> ItemDocument:
    path = _Path()
    if not isinstance(data, dict):
        raise WorkItemValidationError(f"{path}: expected mapping at top level")
    _assert_allowed_keys(data, {"project", "items"}, path)

    project = data.get("project")
    if project is not None and (not isinstance(project, str) or not project.strip()):
        raise WorkItemValidationError(f"{path.child('project')}: expected non-empty string")

    items_raw = data.get("items")
    if items_raw is None:
        raise WorkItemValidationError(f"{path}: missing required field 'items'")
    if not isinstance(items_raw, list):
        raise WorkItemValidationError(f"{path}.items: expected list")

    ids: set[str] = set()
    items = [
        _parse_item(item_raw, path.child(f"items[{idx}]"), ids, default_project=project)
        for idx, item_raw in enumerate(items_raw)
    ]
    return ItemDocument(project=project, items=items)


def _parse_item(data: Any, path: _Path, ids: set[str], default_project: str | None) -> WorkItem:
    if not isinstance(data, dict):
        raise WorkItemValidationError(f"{path}: expected mapping for work item")
    _assert_allowed_keys(data, _ITEM_KEYS, path)

    item_id = _require_str(data, "id", path)
    if item_id in ids:
        raise WorkItemValidationError(f"{path.child('id')}: duplicate id '{item_id}'")
    ids.add(item_id)

    project_id = data.get("project", default_project)
    if not isinstance(project_id, str) or not project_id.strip():
        raise WorkItemValidationError(f"{path}: missing 'project' and no top-level default project")

    status = data.get("status", "todo")
    if status not in ITEM_STATUSES:
        raise WorkItemValidationError(f"{path.child('status')}: expected one of {list(ITEM_STATUSES)}")

    sort_order = data.get("sort_order")
    if sort_order is not None and (not isinstance(sort_order, int) or isinstance(sort_order, bool) or sort_order < 0):
        raise WorkItemValidationError(f"{path.child('sort_order')}: expected non-negative integer")

    milestone = data.get("milestone", False)
    if not isinstance(milestone, bool):
        raise WorkItemValidationError(f"{path.child('milestone')}: expected boolean")

    planned = data.get("planned_hours")
    return WorkItem(
        id=item_id,
        project_id=project_id,
        name=_optional_str(data, "name", path) or "",
        parent_id=_optional_str(data, "parent", path),
        sort_order=sort_order,
        hierarchy_code=_optional_str(data, "code", path),
        depends_on=_parse_depends_on(data.get("depends_on"), path.child("depends_on")),
        status=status,
        is_milestone=milestone,
        estimated_hours=_parse_hours(data.get("estimated_hours", 0), path.child("estimated_hours")),
        actual_hours=_parse_hours(data.get("actual_hours", 0), path.child("actual_hours")),
        planned_hours=None if planned is None else _parse_hours(planned, path.child("planned_hours")),
        meta=_parse_meta(data.get("meta"), path.child("meta")),
    )


def _parse_depends_on(value: Any, path: _Path) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise WorkItemValidationError(f"{path}: expected list of item ids")
    deps: list[str] = []
    for idx, dep in enumerate(value):
        if not isinstance(dep, str):
            raise WorkItemValidationError(f"{path}[{idx}]: expected string id")
        if dep not in deps:
            deps.append(dep)
    return tuple(deps)


def _parse_hours(value: Any, path: _Path) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise WorkItemValidationError(f"{path}: expected non-negative number")
    return float(value)


def _assert_allowed_keys(data: dict[str, Any], allowed: set[str], path: _Path) -> None:
    extras = sorted(set(data.keys()) - allowed)
    if extras:
        raise WorkItemValidationError(f"{path}: unexpected fields {extras}")


def _require_str(data: dict[str, Any], key: str, path: _Path) -> str:
    if key not in data:
        raise WorkItemValidationError(f"{path}: missing required field '{key}'")
    value = data[key]
    if not isinstance(value, str) or not value.strip():
        raise WorkItemValidationError(f"{path.child(key)}: expected non-empty string")
    return value


def _optional_str(data: dict[str, Any], key: str, path: _Path) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise WorkItemValidationError(f"{path.child(key)}: expected string")
    return value


def _parse_meta(value: Any, path: _Path) -> dict[str, Any] | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise WorkItemValidationError(f"{path}: expected mapping for meta")
    return value


def dump_items(items: Iterable[WorkItem], path: str, project: str | None = None) -> None:
    """Write a snapshot back to YAML in the same layout `load_items` reads."""

    with open(path, "w", encoding="utf-8") as fh:
        yaml.safe_dump(to_document(items, project), fh, sort_keys=False, allow_unicode=True)


def to_document(items: Iterable[WorkItem], project: str | None = None) -> dict[str, Any]:
    document: dict[str, Any] = {}
    if project is not None:
        document["project"] = project
    document["items"] = [_item_to_raw(item, project) for item in items]
    return document


def _item_to_raw(item: WorkItem, default_project: str | None) -> dict[str, Any]:
    raw: dict[str, Any] = {"id": item.id}
    if item.project_id != default_project:
        raw["project"] = item.project_id
    if item.name:
        raw["name"] = item.name
    if item.parent_id is not None:
        raw["parent"] = item.parent_id
    if item.sort_order is not None:
        raw["sort_order"] = item.sort_order
    if item.hierarchy_code is not None:
        raw["code"] = item.hierarchy_code
    if item.depends_on:
        raw["depends_on"] = list(item.depends_on)
    raw["status"] = item.status
    if item.is_milestone:
        raw["milestone"] = True
    if item.estimated_hours:
        raw["estimated_hours"] = item.estimated_hours
    if item.actual_hours:
        raw["actual_hours"] = item.actual_hours
    if item.planned_hours is not None:
        raw["planned_hours"] = item.planned_hours
    if item.meta is not None:
        raw["meta"] = item.meta
    return raw
