"""Post-migration integrity checks.

The verifier is read-only and advisory: it never raises for a failed check
or an unreachable destination, it reports.
"""
from __future__ import annotations

import logging
from typing import Sequence

from n8n_migrator.integrations.n8n import WorkflowReader
from n8n_migrator.schemas.migration import (
    CheckResult,
    UploadResult,
    VerificationIssue,
    VerificationResult,
    VerificationStatus,
    VerificationSummary,
)
from n8n_migrator.schemas.workflow import Workflow
from n8n_migrator.services.id_mapper import IdMapper
from n8n_migrator.services.node_parameters import find_references

logger = logging.getLogger(__name__)

MAX_ISSUES_LOGGED = 10


class MigrationVerifier:
    def __init__(self, reader: WorkflowReader):
        self.reader = reader

    async def verify(
        self,
        source_workflows: Sequence[Workflow],
        id_mapper: IdMapper,
        upload_result: UploadResult | None = None,
    ) -> VerificationResult:
        logger.info("Verifying migration of %d workflows", len(source_workflows))
        upload_result = upload_result or UploadResult()

        fetched = await self._fetch_created(id_mapper)
        checks = [
            self.check_count(source_workflows, id_mapper, upload_result),
            self.check_creation(source_workflows, id_mapper, upload_result),
            await self.check_references(id_mapper, fetched),
            self.check_node_counts(source_workflows, id_mapper, fetched),
        ]

        result = VerificationResult(checks={check.name: check for check in checks})
        for check in checks:
            result.issues.extend(check.issues)
        all_passed = all(check.passed for check in checks)
        result.status = VerificationStatus.PASSED if all_passed else VerificationStatus.FAILED
        result.summary = self._summarize(checks, result.issues)
        self._log_result(result)
        return result

    def check_count(
        self,
        source_workflows: Sequence[Workflow],
        id_mapper: IdMapper,
        upload_result: UploadResult,
    ) -> CheckResult:
        check = CheckResult(name="workflow_count")
        created = len(id_mapper.get_all_mappings("created"))
        skipped = len(upload_result.skipped)
        expected = len(source_workflows)
        check.details = {"source": expected, "created": created, "skipped": skipped}
        if created + skipped != expected:
            check.passed = False
            check.issues.append(
                VerificationIssue(
                    check=check.name,
                    severity="high",
                    message=f"Expected {expected} workflows, got {created} created + {skipped} skipped",
                )
            )
        return check

    def check_creation(
        self,
        source_workflows: Sequence[Workflow],
        id_mapper: IdMapper,
        upload_result: UploadResult,
    ) -> CheckResult:
        check = CheckResult(name="all_workflows_accounted")
        skipped = {record.old_id for record in upload_result.skipped}
        failed = {record.old_id for record in upload_result.failed}
        missing: list[str] = []
        for workflow in source_workflows:
            if id_mapper.has_old_id(workflow.id) or workflow.id in skipped or workflow.id in failed:
                continue
            missing.append(workflow.name)
            check.issues.append(
                VerificationIssue(
                    check=check.name,
                    severity="high",
                    message=f"Workflow was neither created, skipped nor recorded as failed: {workflow.name!r}",
                    workflow_name=workflow.name,
                )
            )
        check.passed = not missing
        check.details = {"missing": missing}
        return check

    async def check_references(self, id_mapper: IdMapper, fetched: dict[str, Workflow | Exception]) -> CheckResult:
        check = CheckResult(name="reference_integrity")
        try:
            destination_ids = {wf.id for wf in await self.reader.list_workflows()}
        except Exception as exc:
            check.passed = False
            check.issues.append(
                VerificationIssue(
                    check=check.name,
                    severity="critical",
                    message=f"Could not list destination workflows: {exc}",
                )
            )
            return check

        checked = 0
        broken: list[dict[str, str | None]] = []
        for new_id, workflow in fetched.items():
            mapping = id_mapper.get_by_new_id(new_id)
            name = mapping.name if mapping else new_id
            if isinstance(workflow, Exception):
                check.issues.append(
                    VerificationIssue(
                        check=check.name,
                        severity="critical",
                        message=f"Could not fetch {name!r} ({new_id}): {workflow}",
                        workflow_name=name,
                    )
                )
                continue
            for ref in find_references(workflow):
                if ref.is_dynamic:
                    continue
                checked += 1
                if ref.value and ref.value in destination_ids:
                    continue
                broken.append({"workflow": workflow.name, "node": ref.node_name, "value": ref.value})
                check.issues.append(
                    VerificationIssue(
                        check=check.name,
                        severity="critical",
                        message=(
                            f"Broken reference in {workflow.name!r} node {ref.node_name!r}: "
                            f"{ref.cached_result_name!r} -> {ref.value or '<empty>'}"
                        ),
                        workflow_name=workflow.name,
                    )
                )
        check.passed = not check.issues
        check.details = {"references_checked": checked, "broken": broken}
        return check

    def check_node_counts(
        self,
        source_workflows: Sequence[Workflow],
        id_mapper: IdMapper,
        fetched: dict[str, Workflow | Exception],
    ) -> CheckResult:
        check = CheckResult(name="node_count")
        mismatches: list[dict[str, str | int]] = []
        for source in source_workflows:
            mapping = id_mapper.get_by_old_id(source.id)
            if mapping is None or mapping.origin != "created":
                continue
            destination = fetched.get(mapping.new_id)
            if not isinstance(destination, Workflow):
                destination = mapping.created_snapshot
            if destination is None:
                continue
            if len(source.nodes) != len(destination.nodes):
                mismatches.append(
                    {"workflow": source.name, "source_nodes": len(source.nodes), "destination_nodes": len(destination.nodes)}
                )
                check.issues.append(
                    VerificationIssue(
                        check=check.name,
                        severity="medium",
                        message=f"{source.name!r}: {len(source.nodes)} source nodes, {len(destination.nodes)} at destination",
                        workflow_name=source.name,
                    )
                )
        check.passed = not mismatches
        check.details = {"mismatches": mismatches}
        return check

    async def _fetch_created(self, id_mapper: IdMapper) -> dict[str, Workflow | Exception]:
        fetched: dict[str, Workflow | Exception] = {}
        for mapping in id_mapper.get_all_mappings("created"):
            try:
                fetched[mapping.new_id] = await self.reader.get_workflow(mapping.new_id)
            except Exception as exc:
                logger.warning("Could not fetch %r (%s): %s", mapping.name, mapping.new_id, exc)
                fetched[mapping.new_id] = exc
        return fetched

    @staticmethod
    def _summarize(checks: Sequence[CheckResult], issues: Sequence[VerificationIssue]) -> VerificationSummary:
        summary = VerificationSummary(
            total_checks=len(checks),
            passed_checks=sum(1 for check in checks if check.passed),
            failed_checks=sum(1 for check in checks if not check.passed),
            total_issues=len(issues),
        )
        for issue in issues:
            summary.issues_by_severity[issue.severity] = summary.issues_by_severity.get(issue.severity, 0) + 1
        return summary

    @staticmethod
    def _log_result(result: VerificationResult) -> None:
        summary = result.summary
        if result.passed:
            logger.info("Verification PASSED: %d/%d checks, zero lost links", summary.passed_checks, summary.total_checks)
            return
        logger.error(
            "Verification FAILED: %d/%d checks failed, %d issues",
            summary.failed_checks,
            summary.total_checks,
            summary.total_issues,
        )
        for position, issue in enumerate(result.issues[:MAX_ISSUES_LOGGED], start=1):
            logger.warning("  %d. [%s] %s", position, issue.severity, issue.message)
        if len(result.issues) > MAX_ISSUES_LOGGED:
            logger.warning("  ... and %d more", len(result.issues) - MAX_ISSUES_LOGGED)
