from __future__ import annotations

import logging
from typing import Any, Sequence

from n8n_migrator.integrations.n8n import WorkflowWriter
from n8n_migrator.schemas.migration import (
    UnresolvedReference,
    UpdateFailure,
    UpdateResult,
    UpdateStatistics,
)
from n8n_migrator.schemas.workflow import Workflow
from n8n_migrator.services.id_mapper import IdMapper
from n8n_migrator.services.node_parameters import collect_references, find_references

logger = logging.getLogger(__name__)


class ReferenceUpdater:
    """Rewrite cross-workflow references to destination ids and push the result."""

    def __init__(self, id_mapper: IdMapper, writer: WorkflowWriter | None = None):
        self.id_mapper = id_mapper
        self.writer = writer

    def update_workflow(
        self,
        workflow: Workflow,
        stats: UpdateStatistics | None = None,
        unresolved: list[UnresolvedReference] | None = None,
    ) -> Workflow:
        """Return a copy of ``workflow`` whose references point at destination ids."""
        stats = stats if stats is not None else UpdateStatistics()
        updated = workflow.model_copy(deep=True)

        for index, node in enumerate(updated.nodes):
            node_name = node.name or f"node[{index}]"
            refs, visited = collect_references(node.parameters, node_name)
            stats.parameter_objects_visited += visited
            for ref in refs:
                if ref.is_dynamic:
                    stats.references_dynamic += 1
                    continue
                new_id = self.id_mapper.resolve(ref.value, ref.cached_result_name)
                if new_id is None:
                    stats.references_unresolved += 1
                    logger.warning(
                        "  %s / %s: no mapping for %r (%s), left unchanged",
                        updated.name,
                        node_name,
                        ref.cached_result_name,
                        ref.value,
                    )
                    if unresolved is not None:
                        unresolved.append(
                            UnresolvedReference(
                                workflow_name=updated.name,
                                node_name=node_name,
                                referenced_id=ref.value,
                                referenced_name=ref.cached_result_name,
                            )
                        )
                    continue
                old_value = ref.value
                mapping = None if ref.cached_result_name else self.id_mapper.get_by_new_id(new_id)
                if ref.rewrite(new_id, mapping.name if mapping else None):
                    stats.references_updated += 1
                    logger.debug("  %s / %s: %s -> %s", updated.name, node_name, old_value, new_id)
                else:
                    stats.references_current += 1

        stats.workflows_processed += 1
        return updated

    async def update_batch(self, created_workflows: Sequence[Workflow], push: bool = True) -> UpdateResult:
        """Rewrite every workflow and issue one update call per workflow.

        ``created_workflows`` carry destination ids. A failed update is
        recorded and the batch moves on.
        """
        result = UpdateResult()
        stats = result.statistics
        logger.info("Updating references in %d workflows", len(created_workflows))

        for position, workflow in enumerate(created_workflows, start=1):
            logger.info("[%d/%d] %s", position, len(created_workflows), workflow.name)
            updated = self.update_workflow(workflow, stats, result.unresolved)
            result.workflows.append(updated)
            if not push:
                continue
            if self.writer is None:
                raise RuntimeError("ReferenceUpdater needs a writer to push updates")
            try:
                await self.writer.update_workflow(updated.id, updated.to_payload())
            except Exception as exc:
                stats.update_failures += 1
                error = str(exc) or type(exc).__name__
                result.failed.append(UpdateFailure(name=updated.name, workflow_id=updated.id, error=error))
                logger.error("  failed to update %r: %s", updated.name, exc)
            else:
                stats.updates_pushed += 1

        resolved = stats.references_updated + stats.references_current
        total = resolved + stats.references_unresolved
        stats.success_rate = round(resolved / total * 100, 2) if total else 100.0
        logger.info(
            "References: updated=%d current=%d unresolved=%d dynamic=%d (%.2f%% resolved), updates pushed=%d failed=%d",
            stats.references_updated,
            stats.references_current,
            stats.references_unresolved,
            stats.references_dynamic,
            stats.success_rate,
            stats.updates_pushed,
            stats.update_failures,
        )
        return result

    def validate_references(self, workflow: Workflow) -> list[dict[str, Any]]:
        """References whose value disagrees with the current name mapping."""
        issues: list[dict[str, Any]] = []
        for ref in find_references(workflow):
            if ref.is_dynamic or not ref.cached_result_name:
                continue
            mapping = self.id_mapper.get_by_name(ref.cached_result_name)
            if mapping is not None and ref.value != mapping.new_id:
                issues.append(
                    {
                        "node_name": ref.node_name,
                        "name": ref.cached_result_name,
                        "current_id": ref.value,
                        "expected_id": mapping.new_id,
                    }
                )
        return issues
