import logging

from wbs_engine.flatten import flatten_hierarchy, iter_flat_rows
from wbs_engine.codes import generate_hierarchy_codes
from wbs_engine.hierarchy import (
    build_hierarchy,
    get_ancestor_ids,
    get_descendant_ids,
    get_valid_parent_options,
    walk_nodes,
    would_create_hierarchy_cycle,
)
from wbs_engine.item_models import EXPAND_ALL, WorkItem
from wbs_engine.validation import check_integrity


def _item(item_id, parent=None, order=None, code=None, project="P"):
    return WorkItem(id=item_id, project_id=project, name=item_id, parent_id=parent, sort_order=order, hierarchy_code=code)


def _sample():
    return [
        _item("A", order=0),
        _item("B", parent="A", order=1),
        _item("C", parent="A", order=0),
        _item("D", parent="C", order=0),
        _item("E", order=1),
    ]


def test_builder_orders_children_and_sets_levels():
    forest = build_hierarchy(_sample(), "P")

    assert [node.id for node in forest] == ["A", "E"]
    a = forest[0]
    assert [child.id for child in a.children] == ["C", "B"]
    assert a.children[0].children[0].level == 2
    assert a.children[0].children[0].path == ("A", "C")
    assert a.has_children and not forest[1].has_children
    assert a.descendant_count == 3


def test_builder_falls_back_to_code_when_sort_order_missing():
    items = [_item("X", code="2"), _item("Y", code="1"), _item("Z", code="10")]

    forest = build_hierarchy(items, "P")

    assert [node.id for node in forest] == ["Y", "X", "Z"]


def test_builder_promotes_dangling_and_cross_project_parents_to_roots(caplog):
    items = [
        _item("A", order=0),
        _item("B", parent="missing", order=1),
        _item("C", parent="Q1", order=2),
        _item("Q1", project="Q"),
    ]

    with caplog.at_level(logging.WARNING):
        forest = build_hierarchy(items, "P")

    assert [node.id for node in forest] == ["A", "B", "C"]
    assert all(node.level == 0 for node in forest)
    assert "shown as roots" in caplog.text


def test_builder_terminates_and_omits_items_in_parent_cycle(caplog):
    items = [_item("A", order=0), _item("B", parent="C"), _item("C", parent="B"), _item("S", parent="S")]

    with caplog.at_level(logging.WARNING):
        forest = build_hierarchy(items, "P")

    assert [node.id for node in forest] == ["A"]
    assert "unreachable" in caplog.text


def test_flatten_all_expanded_is_preorder_with_descendant_counts():
    rows = flatten_hierarchy(build_hierarchy(_sample(), "P"), EXPAND_ALL)

    assert [row.item.id for row in rows] == ["A", "C", "D", "B", "E"]
    assert [row.order for row in rows] == [0, 1, 2, 3, 4]
    assert [row.level for row in rows] == [0, 1, 2, 1, 0]
    assert rows[0].descendant_count == 3
    assert rows[1].descendant_count == 1
    assert not rows[2].is_expanded


def test_flatten_collapsed_nodes_hide_children_but_keep_counts():
    forest = build_hierarchy(_sample(), "P")

    rows = flatten_hierarchy(forest, {"A"})

    assert [row.item.id for row in rows] == ["A", "C", "B", "E"]
    c_row = rows[1]
    assert c_row.has_children and not c_row.is_expanded
    assert c_row.descendant_count == 1

    collapsed = flatten_hierarchy(forest, frozenset())
    assert [row.item.id for row in collapsed] == ["A", "E"]
    assert collapsed[0].descendant_count == 3


def test_flatten_is_lazy_and_restartable():
    forest = build_hierarchy(_sample(), "P")

    rows = iter_flat_rows(forest)
    assert next(rows).item.id == "A"

    first = [row.item.id for row in iter_flat_rows(forest, {"A", "C"})]
    second = [row.item.id for row in iter_flat_rows(forest, {"A", "C"})]
    assert first == second


def test_ancestor_and_descendant_queries():
    items = _sample()

    assert get_ancestor_ids(items, "D") == ["C", "A"]
    assert get_descendant_ids(items, "A") == ["C", "D", "B"]
    assert get_descendant_ids(items, "E") == []


def test_hierarchy_cycle_check_walks_parent_chain():
    items = _sample()

    assert would_create_hierarchy_cycle(items, "A", "A")
    assert would_create_hierarchy_cycle(items, "A", "D")
    assert not would_create_hierarchy_cycle(items, "D", "E")
    assert not would_create_hierarchy_cycle(items, "C", "B")


def test_valid_parent_options_exclude_self_and_descendants():
    items = _sample()

    options = {item.id for item in get_valid_parent_options(items, "P", "C")}

    assert options == {"A", "B", "E"}
    assert len(get_valid_parent_options(items, "P")) == 5


def _chain(depth):
    return [_item("n0", order=0)] + [_item(f"n{i}", parent=f"n{i - 1}", order=0) for i in range(1, depth)]


def test_deep_parent_chain_builds_flattens_and_checks():
    items = _chain(1500)

    forest = build_hierarchy(items, "P")
    nodes = list(walk_nodes(forest))
    assert len(nodes) == 1500
    assert nodes[-1].level == 1499

    rows = flatten_hierarchy(forest)
    assert [row.descendant_count for row in rows[:2]] == [1499, 1498]
    assert rows[-1].descendant_count == 0

    assert check_integrity(items, "P") == []
    assert generate_hierarchy_codes(items, "P")["n2"] == "1.1.1"


def test_builder_fills_descendant_counts_once_per_node():
    forest = build_hierarchy(_sample(), "P")

    counts = {node.id: node.descendant_count for node in walk_nodes(forest)}

    assert counts == {"A": 3, "C": 1, "D": 0, "B": 0, "E": 0}
