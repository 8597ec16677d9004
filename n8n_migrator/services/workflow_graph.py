from __future__ import annotations

from typing import Any

from n8n_migrator.schemas.migration import GraphStatistics
from n8n_migrator.schemas.workflow import Workflow


class WorkflowGraph:
    """Directed graph of workflows; an edge ``a -> b`` means ``a`` calls ``b``."""

    def __init__(self) -> None:
        self.workflows: dict[str, Workflow] = {}
        self.name_to_id: dict[str, str] = {}
        # Insertion-ordered sets: id -> {id: None}
        self.dependencies: dict[str, dict[str, None]] = {}
        self.dependents: dict[str, dict[str, None]] = {}

    def __len__(self) -> int:
        return len(self.workflows)

    def __contains__(self, workflow_id: object) -> bool:
        return workflow_id in self.workflows

    def add_workflow(self, workflow: Workflow) -> str | None:
        """Register ``workflow`` by id and name.

        Returns the id previously indexed under the same name, if another
        workflow already used it. The name index then points at ``workflow``.
        """
        previous = self.name_to_id.get(workflow.name)
        self.workflows[workflow.id] = workflow
        self.name_to_id[workflow.name] = workflow.id
        self.dependencies.setdefault(workflow.id, {})
        self.dependents.setdefault(workflow.id, {})
        if previous is not None and previous != workflow.id:
            return previous
        return None

    def add_dependency(self, from_id: str, to_id: str) -> bool:
        """Record that ``from_id`` depends on ``to_id``; False if the edge already existed."""
        deps = self.dependencies.setdefault(from_id, {})
        if to_id in deps:
            return False
        deps[to_id] = None
        self.dependents.setdefault(to_id, {})[from_id] = None
        return True

    def get_id_by_name(self, name: str) -> str | None:
        return self.name_to_id.get(name)

    def get_workflow(self, workflow_id: str) -> Workflow | None:
        return self.workflows.get(workflow_id)

    def get_dependencies(self, workflow_id: str) -> list[str]:
        return list(self.dependencies.get(workflow_id, ()))

    def get_dependents(self, workflow_id: str) -> list[str]:
        return list(self.dependents.get(workflow_id, ()))

    def name_of(self, workflow_id: str) -> str:
        workflow = self.workflows.get(workflow_id)
        return workflow.name if workflow else workflow_id

    def statistics(self) -> GraphStatistics:
        counts = [len(self.dependencies.get(wf_id, ())) for wf_id in self.workflows]
        total = sum(counts)
        return GraphStatistics(
            total_workflows=len(self.workflows),
            total_dependencies=total,
            avg_dependencies=round(total / len(counts), 2) if counts else 0.0,
            max_dependencies=max(counts, default=0),
            workflows_without_dependencies=sum(1 for count in counts if count == 0),
        )

    def to_dict(self) -> dict[str, Any]:
        nodes = [
            {
                "id": wf_id,
                "name": workflow.name,
                "dependencies": len(self.dependencies.get(wf_id, ())),
                "dependents": len(self.dependents.get(wf_id, ())),
            }
            for wf_id, workflow in self.workflows.items()
        ]
        edges = [
            {"from": self.name_of(from_id), "to": self.name_of(to_id), "from_id": from_id, "to_id": to_id}
            for from_id, targets in self.dependencies.items()
            for to_id in targets
        ]
        return {"nodes": nodes, "edges": edges, "statistics": self.statistics().model_dump()}
