from __future__ import annotations

import logging
from collections import deque
from typing import Iterable

from n8n_migrator.schemas.migration import AnalysisResult, MissingReference
from n8n_migrator.schemas.workflow import Workflow
from n8n_migrator.services.node_parameters import InvocationRef, find_references
from n8n_migrator.services.workflow_graph import WorkflowGraph

logger = logging.getLogger(__name__)


class DependencyAnalyzer:
    """Build the call graph of a workflow batch and compute a safe creation order."""

    def analyze(self, workflows: Iterable[Workflow]) -> AnalysisResult:
        workflows = list(workflows)
        graph = WorkflowGraph()

        logger.info("Indexing %d workflows", len(workflows))
        duplicate_names: list[str] = []
        for workflow in workflows:
            if workflow.id in graph:
                logger.warning("Duplicate workflow id %s (%s); later definition wins", workflow.id, workflow.name)
            previous = graph.add_workflow(workflow)
            if previous is not None:
                logger.warning(
                    "Duplicate workflow name %r (ids %s, %s); references by name resolve to %s",
                    workflow.name,
                    previous,
                    workflow.id,
                    workflow.id,
                )
                if workflow.name not in duplicate_names:
                    duplicate_names.append(workflow.name)

        logger.info("Extracting cross-workflow references")
        missing: list[MissingReference] = []
        self_references: list[str] = []
        for workflow in graph.workflows.values():
            for ref in find_references(workflow):
                if ref.is_dynamic:
                    logger.debug("%s: dynamic reference %s left as is", workflow.name, ref.value)
                    continue
                target_id = self._resolve_target(graph, ref)
                if target_id is None:
                    logger.warning(
                        "Reference not found in batch: %r (%s) called from %r",
                        ref.cached_result_name,
                        ref.value,
                        workflow.name,
                    )
                    missing.append(
                        MissingReference(
                            workflow_id=workflow.id,
                            workflow_name=workflow.name,
                            node_name=ref.node_name,
                            referenced_id=ref.value,
                            referenced_name=ref.cached_result_name,
                        )
                    )
                else:
                    if target_id == workflow.id and workflow.name not in self_references:
                        self_references.append(workflow.name)
                    if graph.add_dependency(workflow.id, target_id):
                        logger.debug("%r depends on %r", workflow.name, graph.name_of(target_id))

        logger.info("Computing creation order")
        order = self._kahn_order(graph)
        result = AnalysisResult(
            order=order,
            has_valid_order=len(order) == len(graph),
            missing_references=missing,
            duplicate_names=duplicate_names,
            self_references=self_references,
            statistics=graph.statistics(),
            ordered_workflows=[graph.workflows[wf_id] for wf_id in order],
            graph=graph,
        )

        if not result.has_valid_order:
            placed = set(order)
            unplaced = [wf_id for wf_id in graph.workflows if wf_id not in placed]
            components = self._strongly_connected(graph, unplaced)
            cyclic = {wf_id for component in components for wf_id in component}
            result.cycles = [[graph.name_of(wf_id) for wf_id in component] for component in components]
            result.blocked = [graph.name_of(wf_id) for wf_id in unplaced if wf_id not in cyclic]
            result.unplaced_workflows = [graph.workflows[wf_id] for wf_id in unplaced]
            logger.error("Dependency cycle detected among %d workflows", len(unplaced))
            for names in result.cycles:
                logger.warning("  cycle: %s", " -> ".join(names))
            for name in result.blocked:
                logger.warning("  blocked by cycle: %s", name)
        else:
            logger.info("Creation order computed for %d workflows", len(order))

        stats = result.statistics
        logger.info(
            "%d dependencies, %d workflows without dependencies, avg %.2f, max %d",
            stats.total_dependencies,
            stats.workflows_without_dependencies,
            stats.avg_dependencies,
            stats.max_dependencies,
        )
        return result

    @staticmethod
    def _resolve_target(graph: WorkflowGraph, ref: InvocationRef) -> str | None:
        if ref.cached_result_name:
            target_id = graph.get_id_by_name(ref.cached_result_name)
            if target_id is not None:
                return target_id
        if ref.value and ref.value in graph:
            return ref.value
        return None

    @staticmethod
    def _kahn_order(graph: WorkflowGraph) -> list[str]:
        indegree = {wf_id: len(graph.dependencies.get(wf_id, ())) for wf_id in graph.workflows}
        queue = deque([wf_id for wf_id, degree in indegree.items() if degree == 0])
        order: list[str] = []
        while queue:
            current = queue.popleft()
            order.append(current)
            for dependent in graph.get_dependents(current):
                indegree[dependent] -= 1
                if indegree[dependent] == 0:
                    queue.append(dependent)
        return order

    @staticmethod
    def _strongly_connected(graph: WorkflowGraph, candidates: list[str]) -> list[list[str]]:
        """Tarjan's algorithm restricted to ``candidates``; returns components that loop."""
        allowed = set(candidates)
        position = {wf_id: i for i, wf_id in enumerate(candidates)}
        index: dict[str, int] = {}
        low: dict[str, int] = {}
        stack: list[str] = []
        on_stack: set[str] = set()
        components: list[list[str]] = []
        counter = 0

        for root in candidates:
            if root in index:
                continue
            index[root] = low[root] = counter
            counter += 1
            stack.append(root)
            on_stack.add(root)
            work = [(root, iter(graph.get_dependencies(root)))]
            while work:
                node, children = work[-1]
                descended = False
                for child in children:
                    if child not in allowed:
                        continue
                    if child not in index:
                        index[child] = low[child] = counter
                        counter += 1
                        stack.append(child)
                        on_stack.add(child)
                        work.append((child, iter(graph.get_dependencies(child))))
                        descended = True
                        break
                    if child in on_stack:
                        low[node] = min(low[node], index[child])
                if descended:
                    continue
                work.pop()
                if work:
                    parent = work[-1][0]
                    low[parent] = min(low[parent], low[node])
                if low[node] == index[node]:
                    component: list[str] = []
                    while True:
                        member = stack.pop()
                        on_stack.discard(member)
                        component.append(member)
                        if member == node:
                            break
                    # a single workflow only loops when it calls itself
                    if len(component) > 1 or node in graph.dependencies.get(node, ()):
                        components.append(sorted(component, key=position.__getitem__))

        components.sort(key=lambda component: position[component[0]])
        return components
