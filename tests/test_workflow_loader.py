from __future__ import annotations

import json

import pytest
from conftest import make_workflow

from n8n_migrator.core.exceptions import WorkflowParseError
from n8n_migrator.services.workflow_loader import filter_by_tag, load_workflows


def _dump(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_single_workflow_file(tmp_path):
    path = _dump(tmp_path / "one.json", {"id": 7, "name": "Seven", "nodes": None, "connections": None})

    workflows = load_workflows(path)

    assert len(workflows) == 1
    assert workflows[0].id == "7"
    assert workflows[0].nodes == []
    assert workflows[0].connections == {}


def test_directory_reads_every_shape_in_name_order(tmp_path):
    _dump(tmp_path / "b.json", [{"id": "2", "name": "Two"}, {"id": "3", "name": "Three"}])
    _dump(tmp_path / "a.json", {"id": "1", "name": "One"})
    _dump(tmp_path / "c.json", {"data": [{"id": "4", "name": "Four"}], "nextCursor": None})
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    workflows = load_workflows(tmp_path)

    assert [wf.name for wf in workflows] == ["One", "Two", "Three", "Four"]


def test_unknown_fields_survive_loading(tmp_path):
    path = _dump(tmp_path / "wf.json", {"id": "1", "name": "One", "pinData": {"Start": []}, "versionId": "abc"})

    exported = load_workflows(path)[0].to_export()

    assert exported["pinData"] == {"Start": []}
    assert exported["versionId"] == "abc"


def test_invalid_json_names_the_file(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(WorkflowParseError) as excinfo:
        load_workflows(path)

    assert excinfo.value.source == str(path)
    assert "invalid JSON" in str(excinfo.value)


def test_workflow_without_name_is_rejected(tmp_path):
    path = _dump(tmp_path / "wf.json", [{"id": "1"}])

    with pytest.raises(WorkflowParseError, match="item 0"):
        load_workflows(path)


def test_non_object_item_is_rejected(tmp_path):
    path = _dump(tmp_path / "wf.json", ["just a string"])

    with pytest.raises(WorkflowParseError, match="not a workflow object"):
        load_workflows(path)


def test_missing_path(tmp_path):
    with pytest.raises(WorkflowParseError, match="does not exist"):
        load_workflows(tmp_path / "absent.json")


def test_filter_by_tag_is_case_insensitive():
    tagged = make_workflow("1", "Tagged", tags=[{"id": "t", "name": "Production"}])
    plain = make_workflow("2", "Plain", tags=["staging"])

    assert [wf.name for wf in filter_by_tag([tagged, plain], "production")] == ["Tagged"]
    assert [wf.name for wf in filter_by_tag([tagged, plain], "STAGING")] == ["Plain"]
    assert len(filter_by_tag([tagged, plain], None)) == 2
