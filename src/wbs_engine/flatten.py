from __future__ import annotations

from typing import AbstractSet, Iterator, List, Union

from .item_models import EXPAND_ALL, FlatRow, HierarchyNode, _ExpandAll

Expansion = Union[AbstractSet[str], _ExpandAll]


def iter_flat_rows(forest: list[HierarchyNode], expanded: Expansion = EXPAND_ALL) -> Iterator[FlatRow]:
    """
    Lazily linearise a forest into display rows.

    Traversal is pre-order. A node's children follow it only when the node is
    expanded; collapsed nodes still report their descendant count. Calling it
    again with the same forest and expansion yields the same rows.
    """

    order = 0
    stack: List[HierarchyNode] = list(reversed(forest))
    while stack:
        node = stack.pop()
        is_expanded = node.has_children and _is_expanded(node.id, expanded)
        yield FlatRow(
            order=order,
            level=node.level,
            item=node.item,
            has_children=node.has_children,
            is_expanded=is_expanded,
            descendant_count=node.descendant_count,
        )
        order += 1
        if is_expanded:
            stack.extend(reversed(node.children))


def flatten_hierarchy(forest: list[HierarchyNode], expanded: Expansion = EXPAND_ALL) -> list[FlatRow]:
    """Materialised form of `iter_flat_rows`."""
    return list(iter_flat_rows(forest, expanded))


def _is_expanded(node_id: str, expanded: Expansion) -> bool:
    if isinstance(expanded, _ExpandAll):
        return True
    return node_id in expanded
