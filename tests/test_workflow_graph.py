from __future__ import annotations

from conftest import make_workflow

from n8n_migrator.services.node_parameters import as_invocation_ref, find_references, walk
from n8n_migrator.services.workflow_graph import WorkflowGraph


def test_graph_indexes_by_id_and_name():
    graph = WorkflowGraph()
    graph.add_workflow(make_workflow("1", "Alpha"))
    graph.add_workflow(make_workflow("2", "Beta"))

    assert len(graph) == 2
    assert "1" in graph
    assert graph.get_id_by_name("Beta") == "2"
    assert graph.get_workflow("1").name == "Alpha"
    assert graph.get_workflow("missing") is None
    assert graph.get_dependencies("1") == []
    assert graph.get_dependents("unknown") == []


def test_duplicate_name_overwrites_name_index_and_is_reported():
    graph = WorkflowGraph()
    assert graph.add_workflow(make_workflow("1", "Shared")) is None
    assert graph.add_workflow(make_workflow("2", "Shared")) == "1"

    assert graph.get_id_by_name("Shared") == "2"
    assert len(graph) == 2


def test_add_dependency_is_deduplicated():
    graph = WorkflowGraph()
    graph.add_workflow(make_workflow("a", "A"))
    graph.add_workflow(make_workflow("b", "B"))

    assert graph.add_dependency("a", "b") is True
    assert graph.add_dependency("a", "b") is False

    assert graph.get_dependencies("a") == ["b"]
    assert graph.get_dependents("b") == ["a"]
    stats = graph.statistics()
    assert stats.total_dependencies == 1
    assert stats.max_dependencies == 1
    assert stats.workflows_without_dependencies == 1
    assert stats.avg_dependencies == 0.5


def test_to_dict_exports_edges_by_name():
    graph = WorkflowGraph()
    graph.add_workflow(make_workflow("a", "A"))
    graph.add_workflow(make_workflow("b", "B"))
    graph.add_dependency("a", "b")

    exported = graph.to_dict()
    assert exported["edges"] == [{"from": "A", "to": "B", "from_id": "a", "to_id": "b"}]
    assert {node["name"] for node in exported["nodes"]} == {"A", "B"}
    assert exported["statistics"]["total_workflows"] == 2


def test_walk_visits_nested_dicts_and_lists():
    seen = []
    visited = walk({"a": [{"b": 1}, {"c": {"d": 2}}], "e": "x"}, lambda obj, path: seen.append(path))

    assert visited == 4
    assert seen == [(), ("a", 0), ("a", 1), ("a", 1, "c")]


def test_find_references_reaches_nested_parameters():
    workflow = make_workflow("1", "Caller")
    workflow.nodes[0].parameters = {
        "rules": [{"branch": {"workflowId": {"value": "9", "cachedResultName": "Deep"}}}],
    }

    refs = list(find_references(workflow))
    assert len(refs) == 1
    assert refs[0].value == "9"
    assert refs[0].cached_result_name == "Deep"
    assert refs[0].node_name == "Start"
    assert refs[0].path == ("rules", 0, "branch", "workflowId")


def test_reference_variant_ignores_other_shapes():
    assert as_invocation_ref({"workflowId": "plain-string"}) is None
    assert as_invocation_ref({"workflowId": {"mode": "list"}}) is None
    assert as_invocation_ref({"other": {"value": "1"}}) is None

    ref = as_invocation_ref({"workflowId": {"value": "={{ $json.target }}", "mode": "id"}})
    assert ref is not None
    assert ref.is_dynamic
