import textwrap

import pytest

from wbs_engine.__main__ import EXIT_INVALID, EXIT_OK, EXIT_REJECTED, main
from wbs_engine.parse_items import load_items


SNAPSHOT = textwrap.dedent(
    """
    project: P
    items:
      - id: A
        name: Plan
        sort_order: 0
      - id: B
        name: Research
        parent: A
        sort_order: 0
        estimated_hours: 5
        status: done
      - id: C
        name: Write up
        parent: A
        sort_order: 1
        estimated_hours: 3
      - id: D
        name: Launch
        sort_order: 1
        milestone: true
    """
)


@pytest.fixture
def snapshot(tmp_path, monkeypatch):
    monkeypatch.delenv("WBS_ENGINE_CONFIG", raising=False)
    path = tmp_path / "items.yaml"
    path.write_text(SNAPSHOT, encoding="utf-8")
    return path


def test_tree_prints_outline_with_codes(snapshot, capsys):
    assert main([str(snapshot), "codes", "--write"]) == EXIT_OK
    capsys.readouterr()

    assert main([str(snapshot), "tree"]) == EXIT_OK

    lines = capsys.readouterr().out.splitlines()
    assert lines[0].startswith("- 1 Plan")
    assert lines[1].strip().startswith("1.1 Research")
    assert "[milestone]" in lines[3]


def test_tree_collapsed_shows_subtask_badge(snapshot, capsys):
    assert main([str(snapshot), "tree", "--collapsed"]) == EXIT_OK

    out = capsys.readouterr().out
    assert "(2 subtasks)" in out
    assert "Research" not in out


def test_move_writes_reordered_snapshot(snapshot, capsys):
    assert main([str(snapshot), "move", "C", "B", "before", "--write"]) == EXIT_OK
    assert "C is now 1.1" in capsys.readouterr().out

    items = {item.id: item for item in load_items(str(snapshot)).items}
    assert (items["C"].sort_order, items["B"].sort_order) == (0, 1)
    assert items["B"].hierarchy_code == "1.2"


def test_rejected_move_exits_without_writing(snapshot, capsys):
    original = snapshot.read_text(encoding="utf-8")

    assert main([str(snapshot), "move", "A", "C", "child", "--write"]) == EXIT_REJECTED

    err = capsys.readouterr().err
    assert "Move rejected: 'C' lies inside the subtree of 'A'" in err
    assert "None" not in err
    assert snapshot.read_text(encoding="utf-8") == original

    assert main([str(snapshot), "move", "C", "B", "after"]) == EXIT_REJECTED
    assert "Move rejected: item is already at that position" in capsys.readouterr().err


def test_depend_and_cycle_rejection(snapshot, capsys):
    assert main([str(snapshot), "depend", "C", "B", "--write"]) == EXIT_OK
    assert "prerequisites complete: True" in capsys.readouterr().out

    assert main([str(snapshot), "depend", "B", "C"]) == EXIT_REJECTED


def test_rollup_and_remove(snapshot, capsys):
    assert main([str(snapshot), "rollup", "A"]) == EXIT_OK
    out = capsys.readouterr().out
    assert "estimated_hours: 8" in out
    assert "progress: 50%" in out

    assert main([str(snapshot), "remove", "A", "--write"]) == EXIT_OK
    ids = [item.id for item in load_items(str(snapshot)).items]
    assert ids == ["B", "C", "D"]


def test_check_reports_integrity_issues(snapshot, capsys):
    assert main([str(snapshot), "check"]) == EXIT_OK
    assert "OK" in capsys.readouterr().out

    snapshot.write_text(SNAPSHOT.replace("sort_order: 1\n    milestone", "sort_order: 4\n    milestone"), encoding="utf-8")
    assert main([str(snapshot), "check"]) == EXIT_INVALID
    assert "sort_order_gap" in capsys.readouterr().out


def test_invalid_snapshot_and_missing_file(tmp_path, capsys):
    bad = tmp_path / "bad.yaml"
    bad.write_text("items: nope\nproject: P\n", encoding="utf-8")

    assert main([str(bad), "tree"]) == EXIT_INVALID
    assert "expected list" in capsys.readouterr().err
    assert main([str(tmp_path / "absent.yaml"), "tree"]) == 1
