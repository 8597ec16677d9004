from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from pydantic import BaseModel, Field

from n8n_migrator.config import Settings
from n8n_migrator.integrations.n8n import WorkflowReader, WorkflowWriter
from n8n_migrator.schemas.migration import MigrationReport, UploadOptions
from n8n_migrator.schemas.workflow import Workflow
from n8n_migrator.services.dependency_analyzer import DependencyAnalyzer
from n8n_migrator.services.id_mapper import IdMapper
from n8n_migrator.services.migration_verifier import MigrationVerifier
from n8n_migrator.services.reference_updater import ReferenceUpdater
from n8n_migrator.services.upload_service import WorkflowUploadService

logger = logging.getLogger(__name__)


class MigrationOptions(BaseModel):
    skip_existing: bool = True
    stop_on_error: bool = False
    dry_run: bool = False
    map_skipped: bool = False
    carry_tags: bool = True
    activate: bool = False
    allow_cycles: bool = False
    verify: bool = True
    delay_seconds: float = Field(default=0.5, ge=0)

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: object) -> "MigrationOptions":
        values = {
            "skip_existing": settings.skip_existing,
            "stop_on_error": settings.stop_on_error,
            "map_skipped": settings.map_skipped,
            "carry_tags": settings.carry_tags,
            "activate": settings.activate,
            "allow_cycles": settings.allow_cycles,
            "delay_seconds": settings.delay_seconds,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


class MigrationRunner:
    """Sequence analyze, upload, reference update and verification for one batch."""

    def __init__(self, reader: WorkflowReader, writer: WorkflowWriter, options: MigrationOptions | None = None):
        self.reader = reader
        self.writer = writer
        self.options = options or MigrationOptions()
        self.id_mapper = IdMapper()

    async def run(self, workflows: Sequence[Workflow]) -> MigrationReport:
        started = datetime.now(timezone.utc)
        options = self.options
        logger.info("=" * 50)
        logger.info("Migrating %d workflows%s", len(workflows), " (dry run)" if options.dry_run else "")

        analysis = DependencyAnalyzer().analyze(workflows)
        report = MigrationReport(
            started_at=started,
            options=options.model_dump(),
            analysis=analysis,
            graph=analysis.graph.to_dict() if analysis.graph is not None else {},
        )

        if not analysis.has_valid_order and not options.allow_cycles:
            report.aborted_reason = "dependency cycle detected; rerun with cycles allowed to proceed"
            logger.error("Aborting: %s", report.aborted_reason)
            return self._finish(report)

        upload_service = WorkflowUploadService(self.writer, self.id_mapper, self.reader)
        report.upload = await upload_service.upload_batch(
            analysis.upload_order(allow_cycles=options.allow_cycles),
            UploadOptions(
                skip_existing=options.skip_existing,
                stop_on_error=options.stop_on_error,
                dry_run=options.dry_run,
                map_skipped=options.map_skipped,
                carry_tags=options.carry_tags,
                delay_seconds=options.delay_seconds,
            ),
        )

        updater = ReferenceUpdater(self.id_mapper, self.writer)
        report.update = await updater.update_batch(report.upload.created_workflows, push=not options.dry_run)

        if options.activate and not options.dry_run:
            await upload_service.activate_batch(report.upload)

        if options.verify and not options.dry_run:
            verifier = MigrationVerifier(self.reader)
            report.verification = await verifier.verify(workflows, self.id_mapper, report.upload)
        else:
            logger.info("Verification skipped")

        return self._finish(report)

    def _finish(self, report: MigrationReport) -> MigrationReport:
        report.finished_at = datetime.now(timezone.utc)
        report.duration_seconds = round((report.finished_at - report.started_at).total_seconds(), 3)
        report.mappings = self.id_mapper.get_all_mappings()
        logger.info(
            "Migration %s in %.1fs",
            "succeeded" if report.succeeded else "finished with problems",
            report.duration_seconds,
        )
        return report


def save_report(report: MigrationReport, directory: str | Path = ".") -> Path:
    target_dir = Path(directory)
    target_dir.mkdir(parents=True, exist_ok=True)
    stamp = report.started_at.strftime("%Y-%m-%dT%H-%M-%S")
    path = target_dir / f"migration-report-{stamp}.json"
    path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
    logger.info("Report saved to %s", path)
    return path
