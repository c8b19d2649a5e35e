from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, replace
from typing import Literal, Sequence

from .dependencies import find_dependency_cycle
from .hierarchy import build_hierarchy, children_index, project_items, walk_nodes
from .item_models import WorkItem


class WorkItemValidationError(Exception):
    """Raised when an item collection is malformed (bad fields, broken references, cycles)."""


IssueKind = Literal[
    "duplicate_id",
    "dangling_parent",
    "cross_project_parent",
    "unreachable",
    "self_dependency",
    "unknown_dependency",
    "dependency_cycle",
    "sort_order_gap",
]


@dataclass(frozen=True)
class IntegrityIssue:
    """One structural problem found in a project snapshot."""

    kind: IssueKind
    item_id: str | None
    message: str

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return self.message


def check_integrity(items: Sequence[WorkItem], project_id: str) -> list[IntegrityIssue]:
    """
    Report every structural problem in one project, without raising.

    Checks duplicate ids, parent references, reachability from a root,
    dependency references and cycles, and contiguous sibling ranks.
    """

    issues: list[IntegrityIssue] = []
    scoped = [item for item in items if item.project_id == project_id]
    by_id_all = {item.id: item for item in items}

    for item_id, count in Counter(item.id for item in scoped).items():
        if count > 1:
            issues.append(IntegrityIssue("duplicate_id", item_id, f"Item id '{item_id}' appears {count} times"))

    index = project_items(scoped, project_id)

    for item in index.values():
        if item.parent_id is None or item.parent_id in index:
            continue
        other = by_id_all.get(item.parent_id)
        if other is not None:
            issues.append(
                IntegrityIssue(
                    "cross_project_parent",
                    item.id,
                    f"Item '{item.id}' has parent '{item.parent_id}' from project '{other.project_id}'",
                )
            )
        else:
            issues.append(
                IntegrityIssue("dangling_parent", item.id, f"Item '{item.id}' has unknown parent '{item.parent_id}'")
            )

    reached = {node.id for node in walk_nodes(build_hierarchy(index.values(), project_id))}
    for item_id in index:
        if item_id not in reached:
            issues.append(
                IntegrityIssue("unreachable", item_id, f"Item '{item_id}' is not reachable from a root (parent cycle)")
            )

    for item in index.values():
        if item.id in item.depends_on:
            issues.append(IntegrityIssue("self_dependency", item.id, f"Item '{item.id}' depends on itself"))
        for dep_id in item.depends_on:
            if dep_id != item.id and dep_id not in index:
                issues.append(
                    IntegrityIssue(
                        "unknown_dependency", item.id, f"Item '{item.id}' depends on unknown item '{dep_id}'"
                    )
                )

    # Self loops are already reported above.
    without_self = [
        item if item.id not in item.depends_on else _drop_self_dependency(item) for item in index.values()
    ]
    cycle = find_dependency_cycle(without_self, project_id)
    if cycle:
        issues.append(IntegrityIssue("dependency_cycle", cycle.path[0], f"Dependency cycle detected: {cycle}"))

    for parent_id, siblings in children_index(index).items():
        ranks = [sibling.sort_order for sibling in siblings]
        if ranks != list(range(len(siblings))):
            group = parent_id or "<root>"
            issues.append(
                IntegrityIssue(
                    "sort_order_gap", parent_id, f"Sibling group under {group} is not ranked 0..{len(siblings) - 1}"
                )
            )

    return issues


def assert_integrity(items: Sequence[WorkItem], project_id: str) -> None:
    """Raise WorkItemValidationError listing every integrity issue in the project."""

    issues = check_integrity(items, project_id)
    if issues:
        details = "; ".join(issue.message for issue in issues)
        raise WorkItemValidationError(f"Project '{project_id}' failed integrity checks: {details}")


def _drop_self_dependency(item: WorkItem) -> WorkItem:
    return replace(item, depends_on=tuple(dep for dep in item.depends_on if dep != item.id))
