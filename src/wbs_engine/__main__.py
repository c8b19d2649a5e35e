from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import yaml

from .aggregation import summarize_subtree
from .config import ConfigError, EngineConfig, load_config
from .dependencies import are_dependencies_complete
from .flatten import iter_flat_rows
from .hierarchy import build_hierarchy
from .item_models import EXPAND_ALL, PLACEMENTS, FlatRow
from .parse_items import ItemDocument, dump_items, load_items
from .reorganize import move_rejection_reason
from .store import WorkItemStore
from .validation import WorkItemValidationError, check_integrity

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_INVALID = 2
EXIT_REJECTED = 3


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wbs-engine",
        description="Work breakdown structure hierarchy engine",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("items", help="Path to work item YAML snapshot")
    parser.add_argument("--project", help="Project id; defaults to the snapshot's project")
    parser.add_argument("--config", help="Path to engine config YAML (default: $WBS_ENGINE_CONFIG)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output to stderr")

    sub = parser.add_subparsers(dest="command", required=True)

    tree = sub.add_parser("tree", help="Print the outline with hierarchy codes")
    tree.add_argument("--expand", action="append", default=[], metavar="ID", help="Expand only these items")
    tree.add_argument("--collapsed", action="store_true", help="Show root items only")

    codes = sub.add_parser("codes", help="Regenerate hierarchy codes")
    codes.add_argument("--write", action="store_true", help="Save the result back to the snapshot")

    move = sub.add_parser("move", help="Move an item relative to another one")
    move.add_argument("moved")
    move.add_argument("target")
    move.add_argument("placement", choices=PLACEMENTS)
    move.add_argument("--write", action="store_true", help="Save the result back to the snapshot")

    depend = sub.add_parser("depend", help="Add a prerequisite edge TASK -> PREREQ")
    depend.add_argument("task")
    depend.add_argument("prereq")
    depend.add_argument("--write", action="store_true", help="Save the result back to the snapshot")

    remove = sub.add_parser("remove", help="Delete an item")
    remove.add_argument("item")
    remove.add_argument("--cascade", action="store_true", help="Delete the whole subtree")
    remove.add_argument("--write", action="store_true", help="Save the result back to the snapshot")

    rollup = sub.add_parser("rollup", help="Show effort and completion roll-ups for a subtree")
    rollup.add_argument("item")

    sub.add_parser("check", help="Report integrity problems")
    return parser


def _resolve_project(document: ItemDocument, requested: str | None) -> str:
    if requested:
        return requested
    if document.project:
        return document.project
    projects = {item.project_id for item in document.items}
    if len(projects) == 1:
        return projects.pop()
    raise WorkItemValidationError(f"snapshot holds projects {sorted(projects)}; choose one with --project")


def _format_row(row: FlatRow) -> str:
    item = row.item
    marker = "-" if row.is_expanded else ("+" if row.has_children else " ")
    code = item.hierarchy_code or "?"
    text = f"{'  ' * row.level}{marker} {code} {item.name or item.id}"
    if row.has_children and not row.is_expanded:
        text += f" ({row.descendant_count} subtasks)"
    if item.is_milestone:
        text += " [milestone]"
    return f"{text}  <{item.status}>"


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    items_path = Path(args.items)

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_INVALID

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.logging_level,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        document = load_items(str(items_path))
        project_id = _resolve_project(document, args.project)
    except (yaml.YAMLError, WorkItemValidationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_INVALID
    except FileNotFoundError:
        print(f"Error: items file not found: {items_path}", file=sys.stderr)
        return EXIT_UNEXPECTED

    store = WorkItemStore(document.items, config)
    try:
        code = _run_command(args, store, project_id, config)
    except Exception as exc:  # Unexpected
        print(f"Unexpected error while running '{args.command}': {exc}", file=sys.stderr)
        return EXIT_UNEXPECTED

    if code == EXIT_OK and getattr(args, "write", False):
        dump_items(store.snapshot(), str(items_path), project=document.project)
    return code


def _run_command(args: argparse.Namespace, store: WorkItemStore, project_id: str, config: EngineConfig) -> int:
    if args.command == "tree":
        if args.collapsed:
            expanded = frozenset()
        elif args.expand:
            expanded = frozenset(args.expand)
        else:
            expanded = EXPAND_ALL if config.expand_all else frozenset()
        for row in iter_flat_rows(build_hierarchy(store.snapshot(), project_id), expanded):
            print(_format_row(row))
        return EXIT_OK

    if args.command == "codes":
        patches = store.regenerate_codes(project_id)
        for patch in patches:
            print(f"{patch.id}: {patch.changes['hierarchy_code']}")
        print(f"{len(patches)} codes updated")
        return EXIT_OK

    if args.command == "move":
        if store.move(args.moved, args.target, args.placement) is None:
            reason = move_rejection_reason(store.snapshot(), args.moved, args.target, args.placement)
            print(f"Move rejected: {reason or 'no change'}", file=sys.stderr)
            return EXIT_REJECTED
        moved = store.get(args.moved)
        print(f"{args.moved} is now {moved.hierarchy_code if moved else '?'}")
        return EXIT_OK

    if args.command == "depend":
        if not store.add_dependency(args.task, args.prereq):
            print(f"Dependency rejected: {args.task} -> {args.prereq}", file=sys.stderr)
            return EXIT_REJECTED
        ready = are_dependencies_complete(store.snapshot(), args.task, config.done_status)
        print(f"{args.task} now depends on {args.prereq} (prerequisites complete: {ready})")
        return EXIT_OK

    if args.command == "remove":
        removal = store.remove_item(args.item, "cascade" if args.cascade else None)
        if removal is None:
            print(f"Unknown item: {args.item}", file=sys.stderr)
            return EXIT_REJECTED
        print(f"Removed {', '.join(removal.removed_ids)}")
        return EXIT_OK

    if args.command == "rollup":
        if store.get(args.item) is None:
            print(f"Unknown item: {args.item}", file=sys.stderr)
            return EXIT_REJECTED
        rollup = summarize_subtree(store.snapshot(), args.item, config.done_status)
        print(f"estimated_hours: {rollup.estimated_hours:g}")
        print(f"actual_hours: {rollup.actual_hours:g}")
        print(f"planned_hours: {rollup.planned_hours:g}")
        print(f"progress: {rollup.progress_percent}%")
        print(f"completion: {rollup.completion_ratio:.0%} of {rollup.leaf_count} leaves")
        return EXIT_OK

    if args.command == "check":
        issues = check_integrity(store.snapshot(), project_id)
        for issue in issues:
            print(f"{issue.kind}: {issue.message}")
        if issues:
            return EXIT_INVALID
        print("OK")
        return EXIT_OK

    raise ValueError(f"unknown command {args.command}")  # pragma: no cover


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
