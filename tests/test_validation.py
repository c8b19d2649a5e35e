import pytest

from wbs_engine.item_models import WorkItem
from wbs_engine.validation import WorkItemValidationError, assert_integrity, check_integrity


def _item(item_id, parent=None, order=0, depends_on=(), project="P"):
    return WorkItem(id=item_id, project_id=project, parent_id=parent, sort_order=order, depends_on=tuple(depends_on))


def _kinds(issues):
    return sorted(issue.kind for issue in issues)


def test_consistent_project_has_no_issues():
    items = [_item("A"), _item("B", parent="A"), _item("C", parent="A", order=1, depends_on=["B"])]

    assert check_integrity(items, "P") == []
    assert_integrity(items, "P")


def test_reports_parent_problems():
    items = [
        _item("A"),
        _item("B", parent="ghost", order=1),
        _item("C", parent="Q1", order=2),
        _item("Q1", project="Q"),
        _item("X", parent="Y"),
        _item("Y", parent="X"),
    ]

    kinds = _kinds(check_integrity(items, "P"))

    assert "dangling_parent" in kinds
    assert "cross_project_parent" in kinds
    assert kinds.count("unreachable") == 2


def test_reports_dependency_problems():
    items = [
        _item("A", depends_on=["A"]),
        _item("B", order=1, depends_on=["C", "missing"]),
        _item("C", order=2, depends_on=["B"]),
    ]

    kinds = _kinds(check_integrity(items, "P"))

    assert kinds == ["dependency_cycle", "self_dependency", "unknown_dependency"]


def test_reports_sort_order_gaps_and_duplicates():
    items = [_item("A", order=0), _item("B", order=2), _item("B", order=2)]

    kinds = _kinds(check_integrity(items, "P"))

    assert "duplicate_id" in kinds
    assert "sort_order_gap" in kinds


def test_assert_integrity_raises_with_every_message():
    items = [_item("A", depends_on=["A"]), _item("B", order=3)]

    with pytest.raises(WorkItemValidationError) as excinfo:
        assert_integrity(items, "P")

    assert "depends on itself" in str(excinfo.value)
    assert "not ranked" in str(excinfo.value)
