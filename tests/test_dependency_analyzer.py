from __future__ import annotations

from conftest import make_workflow
from hypothesis import given, settings
from hypothesis import strategies as st

from n8n_migrator.services.dependency_analyzer import DependencyAnalyzer


def _names(result):
    return [wf.name for wf in result.ordered_workflows]


def test_chain_orders_dependencies_first():
    x = make_workflow("x", "X", [("y", "Y")])
    y = make_workflow("y", "Y", [("z", "Z")])
    z = make_workflow("z", "Z")

    result = DependencyAnalyzer().analyze([x, y, z])

    assert result.has_valid_order
    assert result.order == ["z", "y", "x"]
    assert _names(result) == ["Z", "Y", "X"]
    assert result.cycles == []
    assert result.statistics.total_dependencies == 2
    assert result.statistics.workflows_without_dependencies == 1


def test_two_workflow_cycle_is_reported_not_broken():
    x = make_workflow("x", "X", [("y", "Y")])
    y = make_workflow("y", "Y", [("x", "X")])

    result = DependencyAnalyzer().analyze([x, y])

    assert result.has_valid_order is False
    assert len(result.cycles) == 1
    assert sorted(result.cycles[0]) == ["X", "Y"]
    assert result.order == []
    assert result.upload_order() == []
    assert {wf.name for wf in result.upload_order(allow_cycles=True)} == {"X", "Y"}


def test_workflow_behind_cycle_is_blocked_not_a_cycle_member():
    x = make_workflow("x", "X", [("y", "Y")])
    y = make_workflow("y", "Y", [("x", "X")])
    w = make_workflow("w", "W", [("x", "X")])
    free = make_workflow("f", "Free")

    result = DependencyAnalyzer().analyze([w, x, y, free])

    assert not result.has_valid_order
    assert result.order == ["f"]
    assert [sorted(cycle) for cycle in result.cycles] == [["X", "Y"]]
    assert result.blocked == ["W"]


def test_name_takes_priority_over_stale_id():
    caller = make_workflow("c", "Caller", [("stale-id", "Target")])
    target = make_workflow("t", "Target")

    result = DependencyAnalyzer().analyze([caller, target])

    assert result.graph.get_dependencies("c") == ["t"]
    assert result.order == ["t", "c"]
    assert result.missing_references == []


def test_falls_back_to_id_when_name_unknown():
    caller = make_workflow("c", "Caller", [("t", None)])
    target = make_workflow("t", "Target")

    result = DependencyAnalyzer().analyze([caller, target])

    assert result.graph.get_dependencies("c") == ["t"]


def test_dangling_reference_is_a_warning():
    caller = make_workflow("c", "Caller", [("outside", "Lives Elsewhere")])

    result = DependencyAnalyzer().analyze([caller])

    assert result.has_valid_order
    assert result.order == ["c"]
    assert len(result.missing_references) == 1
    missing = result.missing_references[0]
    assert missing.workflow_name == "Caller"
    assert missing.referenced_name == "Lives Elsewhere"
    assert missing.referenced_id == "outside"


def test_self_reference_is_a_single_member_cycle():
    recursive = make_workflow("r", "Recursive", [("r", "Recursive")])
    caller = make_workflow("c", "Caller", [("r", "Recursive")])
    free = make_workflow("f", "Free")

    result = DependencyAnalyzer().analyze([caller, recursive, free])

    assert result.has_valid_order is False
    assert result.cycles == [["Recursive"]]
    assert result.blocked == ["Caller"]
    assert result.self_references == ["Recursive"]
    assert result.order == ["f"]
    assert result.statistics.total_dependencies == 2
    assert [wf.name for wf in result.upload_order(allow_cycles=True)] == ["Free", "Caller", "Recursive"]


def test_duplicate_names_last_definition_wins():
    first = make_workflow("1", "Shared")
    second = make_workflow("2", "Shared")
    caller = make_workflow("c", "Caller", [("1", "Shared")])

    result = DependencyAnalyzer().analyze([first, second, caller])

    assert result.duplicate_names == ["Shared"]
    assert result.graph.get_dependencies("c") == ["2"]
    assert len(result.order) == 3


def test_dynamic_references_are_ignored():
    caller = make_workflow("c", "Caller", [("={{ $json.workflow }}", None)])

    result = DependencyAnalyzer().analyze([caller])

    assert result.missing_references == []
    assert result.statistics.total_dependencies == 0


def test_duplicate_edges_counted_once():
    caller = make_workflow("c", "Caller", [("t", "Target"), ("t", "Target")])
    target = make_workflow("t", "Target")

    result = DependencyAnalyzer().analyze([caller, target])

    assert result.statistics.total_dependencies == 1


@st.composite
def acyclic_batches(draw):
    size = draw(st.integers(min_value=1, max_value=12))
    edges = {}
    for index in range(size):
        # Only call workflows with a lower index, so the batch is acyclic.
        targets = draw(st.lists(st.integers(min_value=0, max_value=max(index - 1, 0)), max_size=3)) if index else []
        edges[index] = sorted(set(targets))
    order = draw(st.permutations(list(range(size))))
    workflows = [
        make_workflow(f"id-{i}", f"WF {i}", [(f"id-{t}", f"WF {t}") for t in edges[i]])
        for i in order
    ]
    return workflows, edges


@given(acyclic_batches())
@settings(max_examples=60, deadline=None)
def test_order_is_topological_for_acyclic_batches(batch):
    workflows, edges = batch

    result = DependencyAnalyzer().analyze(workflows)

    assert result.has_valid_order
    assert sorted(result.order) == sorted(wf.id for wf in workflows)
    position = {wf_id: i for i, wf_id in enumerate(result.order)}
    for caller, targets in edges.items():
        for target in targets:
            assert position[f"id-{target}"] < position[f"id-{caller}"]


@given(st.integers(min_value=1, max_value=8), st.integers(min_value=0, max_value=4))
@settings(max_examples=30, deadline=None)
def test_every_ring_member_is_reported(ring_size, extra):
    ring = [
        make_workflow(f"r{i}", f"Ring {i}", [(f"r{(i + 1) % ring_size}", f"Ring {(i + 1) % ring_size}")])
        for i in range(ring_size)
    ]
    others = [make_workflow(f"o{i}", f"Other {i}") for i in range(extra)]

    result = DependencyAnalyzer().analyze([*others, *ring])

    assert result.has_valid_order is False
    reported = {name for cycle in result.cycles for name in cycle}
    assert reported == {wf.name for wf in ring}
    assert len(result.order) == extra
