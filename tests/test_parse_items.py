import textwrap

import pytest

from wbs_engine.config import ConfigError, EngineConfig, load_config, parse_config
from wbs_engine.parse_items import dump_items, load_items, parse_document
from wbs_engine.validation import WorkItemValidationError


SNAPSHOT = textwrap.dedent(
    """
    project: P
    items:
      - id: A
        name: Design
        sort_order: 0
        code: "1"
      - id: B
        name: Build
        parent: A
        sort_order: 0
        depends_on: [C]
        estimated_hours: 8
        status: in_progress
        meta:
          owner: ops
      - id: C
        parent: A
        sort_order: 1
        milestone: true
        planned_hours: 2.5
        status: done
      - id: Z
        project: Other
    """
)


def test_load_items_reads_every_field(tmp_path):
    path = tmp_path / "items.yaml"
    path.write_text(SNAPSHOT, encoding="utf-8")

    document = load_items(str(path))

    assert document.project == "P"
    by_id = {item.id: item for item in document.items}
    assert by_id["A"].hierarchy_code == "1"
    assert by_id["B"].parent_id == "A"
    assert by_id["B"].depends_on == ("C",)
    assert by_id["B"].estimated_hours == 8.0
    assert by_id["B"].meta == {"owner": "ops"}
    assert by_id["C"].is_milestone and by_id["C"].planned_hours == 2.5
    assert by_id["Z"].project_id == "Other"


def test_dump_then_load_preserves_items(tmp_path):
    path = tmp_path / "items.yaml"
    path.write_text(SNAPSHOT, encoding="utf-8")
    document = load_items(str(path))

    out = tmp_path / "out.yaml"
    dump_items(document.items, str(out), project=document.project)

    assert load_items(str(out)).items == document.items


@pytest.mark.parametrize(
    "raw, message",
    [
        ([], "expected mapping at top level"),
        ({"project": "P"}, "missing required field 'items'"),
        ({"items": [{"id": "A"}]}, "no top-level default project"),
        ({"project": "P", "items": [{"id": "A"}, {"id": "A"}]}, "duplicate id 'A'"),
        ({"project": "P", "items": [{"id": "A", "status": "finished"}]}, "items[0].status"),
        ({"project": "P", "items": [{"id": "A", "depends_on": [1]}]}, "items[0].depends_on[0]"),
        ({"project": "P", "items": [{"id": "A", "sort_order": -1}]}, "items[0].sort_order"),
        ({"project": "P", "items": [{"id": "A", "colour": "red"}]}, "unexpected fields ['colour']"),
        ({"project": "P", "items": [{"id": "A", "estimated_hours": "lots"}]}, "items[0].estimated_hours"),
    ],
)
def test_parse_document_reports_yaml_path(raw, message):
    with pytest.raises(WorkItemValidationError) as excinfo:
        parse_document(raw)

    assert message in str(excinfo.value)


def test_config_defaults_and_overrides(tmp_path, monkeypatch):
    monkeypatch.delenv("WBS_ENGINE_CONFIG", raising=False)
    assert load_config() == EngineConfig()

    path = tmp_path / "wbs.yaml"
    path.write_text("removal_policy: cascade\nexpand_all: false\nlog_level: debug\n", encoding="utf-8")
    monkeypatch.setenv("WBS_ENGINE_CONFIG", str(path))

    config = load_config()
    assert config.removal_policy == "cascade"
    assert config.expand_all is False
    assert config.log_level == "DEBUG"
    assert config.done_status == "done"


@pytest.mark.parametrize(
    "raw",
    [
        ["not", "a", "mapping"],
        {"removal_policy": "shred"},
        {"done_status": "finished"},
        {"expand_all": "yes"},
        {"log_level": "LOUD"},
        {"colour": "red"},
    ],
)
def test_invalid_config_raises(raw):
    with pytest.raises(ConfigError):
        parse_config(raw)


def test_missing_config_file_raises(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "absent.yaml")
