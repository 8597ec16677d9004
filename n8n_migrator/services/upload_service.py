from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from n8n_migrator.integrations.n8n import WorkflowReader, WorkflowWriter
from n8n_migrator.schemas.migration import (
    FollowUpFailure,
    SkipRecord,
    UploadFailure,
    UploadOptions,
    UploadResult,
    UploadStatistics,
    UploadSuccess,
)
from n8n_migrator.schemas.workflow import Workflow
from n8n_migrator.services.id_mapper import IdMapper

logger = logging.getLogger(__name__)


class WorkflowUploadService:
    """Create workflows at the destination one at a time, dependencies first."""

    def __init__(self, writer: WorkflowWriter, id_mapper: IdMapper, reader: WorkflowReader | None = None):
        self.writer = writer
        self.reader = reader
        self.id_mapper = id_mapper
        self._tag_ids: dict[str, str] | None = None

    async def upload_batch(
        self,
        ordered_workflows: Sequence[Workflow],
        options: UploadOptions | None = None,
    ) -> UploadResult:
        options = options or UploadOptions()
        result = UploadResult()
        stats = result.statistics
        logger.info(
            "%s %d workflows",
            "Simulating upload of" if options.dry_run else "Uploading",
            len(ordered_workflows),
        )

        existing = await self._existing_by_name(options)
        self._tag_ids = None

        for position, workflow in enumerate(ordered_workflows, start=1):
            logger.info("[%d/%d] %s", position, len(ordered_workflows), workflow.name)

            if options.skip_existing and workflow.name in existing:
                current = existing[workflow.name]
                self._record_skip(result, workflow, current, options)
                continue

            stats.attempted += 1
            try:
                if options.dry_run:
                    created = workflow.model_copy(update={"id": f"dry-run-{position}"}, deep=True)
                else:
                    created = await self.writer.create_workflow(workflow.to_payload())
            except Exception as exc:
                stats.failed += 1
                error = str(exc) or type(exc).__name__
                result.failed.append(
                    UploadFailure(name=workflow.name, old_id=workflow.id, error=error, workflow=workflow)
                )
                logger.error("  failed to create %r: %s", workflow.name, exc)
                if options.stop_on_error:
                    result.aborted = True
                    result.not_attempted = [wf.name for wf in ordered_workflows[position:]]
                    logger.error("Stopping upload after failure (%d workflows not attempted)", len(result.not_attempted))
                    break
            else:
                self.id_mapper.register(workflow.id, workflow.name, created.id, created)
                stats.succeeded += 1
                entry = UploadSuccess(
                    name=workflow.name,
                    old_id=workflow.id,
                    new_id=created.id,
                    dry_run=options.dry_run,
                    source_active=workflow.active,
                    workflow=created,
                )
                result.success.append(entry)
                logger.info("  created %r (%s -> %s)", workflow.name, workflow.id, created.id)
                # the create endpoint treats tags as read-only, they are attached separately
                if options.carry_tags and not options.dry_run and workflow.tag_names:
                    await self._apply_tags(result, entry, workflow.tag_names)

            if options.delay_seconds > 0 and not options.dry_run and position < len(ordered_workflows):
                await self._pause(options.delay_seconds)

        stats.success_rate = round(stats.succeeded / stats.attempted * 100, 2) if stats.attempted else 0.0
        self._log_statistics(stats)
        return result

    async def activate_batch(self, result: UploadResult) -> None:
        """Activate created workflows that were active at the source.

        Called after references are rewritten, so nothing goes live while it
        still points at source ids.
        """
        candidates = [entry for entry in result.success if entry.source_active and not entry.dry_run]
        logger.info("Activating %d workflows", len(candidates))
        for entry in candidates:
            try:
                await self.writer.activate_workflow(entry.new_id)
            except Exception as exc:
                self._record_follow_up(result, entry, "activate", exc)
            else:
                entry.activated = True
                result.statistics.activated += 1
                logger.info("  activated %r (%s)", entry.name, entry.new_id)

    async def _apply_tags(self, result: UploadResult, entry: UploadSuccess, names: list[str]) -> None:
        names = list(dict.fromkeys(names))
        try:
            if self._tag_ids is None:
                self._tag_ids = {str(tag["name"]): str(tag["id"]) for tag in await self.writer.list_tags()}
            tag_ids: list[str] = []
            for name in names:
                if name not in self._tag_ids:
                    tag = await self.writer.create_tag(name)
                    self._tag_ids[name] = str(tag["id"])
                    logger.info("  created tag %r", name)
                tag_ids.append(self._tag_ids[name])
            await self.writer.set_workflow_tags(entry.new_id, tag_ids)
        except Exception as exc:
            self._record_follow_up(result, entry, "tags", exc)
            return
        entry.tags = names
        result.statistics.tagged += 1

    async def _existing_by_name(self, options: UploadOptions) -> dict[str, Workflow]:
        if not options.skip_existing:
            return {}
        listing = options.existing_workflows
        if listing is None:
            if self.reader is None or options.dry_run:
                return {}
            try:
                listing = await self.reader.list_workflows()
            except Exception as exc:
                logger.warning("Could not list destination workflows, nothing will be skipped: %s", exc)
                return {}
        logger.info("%d workflows already at destination", len(listing))
        return {wf.name: wf for wf in listing}

    def _record_skip(
        self,
        result: UploadResult,
        workflow: Workflow,
        current: Workflow,
        options: UploadOptions,
    ) -> None:
        result.statistics.skipped += 1
        result.skipped.append(SkipRecord(name=workflow.name, old_id=workflow.id, existing_id=current.id))
        if options.map_skipped:
            self.id_mapper.register_existing(workflow.id, workflow.name, current.id, current)
            logger.warning("  %r already exists (%s), skipped and mapped", workflow.name, current.id)
        else:
            logger.warning("  %r already exists (%s), skipped", workflow.name, current.id)

    @staticmethod
    def _record_follow_up(result: UploadResult, entry: UploadSuccess, step: str, exc: Exception) -> None:
        error = str(exc) or type(exc).__name__
        result.statistics.follow_up_failures += 1
        result.follow_up_failed.append(FollowUpFailure(name=entry.name, workflow_id=entry.new_id, step=step, error=error))
        logger.error("  %s step failed for %r (%s): %s", step, entry.name, entry.new_id, exc)

    @staticmethod
    async def _pause(seconds: float) -> None:
        await asyncio.sleep(seconds)

    @staticmethod
    def _log_statistics(stats: UploadStatistics) -> None:
        logger.info(
            "Upload finished: attempted=%d succeeded=%d failed=%d skipped=%d tagged=%d success_rate=%.2f%%",
            stats.attempted,
            stats.succeeded,
            stats.failed,
            stats.skipped,
            stats.tagged,
            stats.success_rate,
        )
