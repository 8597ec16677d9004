from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from n8n_migrator.schemas.workflow import Workflow

Severity = Literal["critical", "high", "medium", "low"]


class GraphStatistics(BaseModel):
    total_workflows: int = 0
    total_dependencies: int = 0
    avg_dependencies: float = 0.0
    max_dependencies: int = 0
    workflows_without_dependencies: int = 0


class MissingReference(BaseModel):
    workflow_id: str
    workflow_name: str
    node_name: str | None = None
    referenced_id: str | None = None
    referenced_name: str | None = None


class AnalysisResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    order: list[str] = Field(default_factory=list)
    has_valid_order: bool = True
    cycles: list[list[str]] = Field(default_factory=list)
    blocked: list[str] = Field(default_factory=list)
    missing_references: list[MissingReference] = Field(default_factory=list)
    duplicate_names: list[str] = Field(default_factory=list)
    self_references: list[str] = Field(default_factory=list)
    statistics: GraphStatistics = Field(default_factory=GraphStatistics)

    ordered_workflows: list[Workflow] = Field(default_factory=list, exclude=True)
    unplaced_workflows: list[Workflow] = Field(default_factory=list, exclude=True)
    graph: Any = Field(default=None, exclude=True)

    def upload_order(self, allow_cycles: bool = False) -> list[Workflow]:
        """Workflows in creation order.

        Workflows caught in (or behind) a cycle are only appended, in input
        order, when the operator explicitly allows it.
        """
        if allow_cycles:
            return [*self.ordered_workflows, *self.unplaced_workflows]
        return list(self.ordered_workflows)


class IdMapping(BaseModel):
    old_id: str
    name: str
    new_id: str
    origin: Literal["created", "existing"] = "created"
    created_snapshot: Workflow | None = Field(default=None, exclude=True)


class UploadOptions(BaseModel):
    skip_existing: bool = True
    stop_on_error: bool = False
    dry_run: bool = False
    map_skipped: bool = False
    carry_tags: bool = True
    delay_seconds: float = Field(default=0.5, ge=0)
    existing_workflows: list[Workflow] | None = Field(default=None, exclude=True)


class UploadSuccess(BaseModel):
    name: str
    old_id: str
    new_id: str
    dry_run: bool = False
    source_active: bool = False
    tags: list[str] = Field(default_factory=list)
    activated: bool = False
    workflow: Workflow = Field(exclude=True)


class UploadFailure(BaseModel):
    name: str
    old_id: str
    error: str
    workflow: Workflow | None = Field(default=None, exclude=True)


class FollowUpFailure(BaseModel):
    """Workflow was created but tagging or activation failed afterwards."""

    name: str
    workflow_id: str
    step: Literal["tags", "activate"]
    error: str


class SkipRecord(BaseModel):
    name: str
    old_id: str
    existing_id: str | None = None
    reason: str = "already exists at destination"


class UploadStatistics(BaseModel):
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    tagged: int = 0
    activated: int = 0
    follow_up_failures: int = 0
    success_rate: float = 0.0


class UploadResult(BaseModel):
    success: list[UploadSuccess] = Field(default_factory=list)
    failed: list[UploadFailure] = Field(default_factory=list)
    skipped: list[SkipRecord] = Field(default_factory=list)
    follow_up_failed: list[FollowUpFailure] = Field(default_factory=list)
    not_attempted: list[str] = Field(default_factory=list)
    aborted: bool = False
    statistics: UploadStatistics = Field(default_factory=UploadStatistics)

    @property
    def created_workflows(self) -> list[Workflow]:
        return [entry.workflow for entry in self.success]


class UnresolvedReference(BaseModel):
    workflow_name: str
    node_name: str | None = None
    referenced_id: str | None = None
    referenced_name: str | None = None


class UpdateFailure(BaseModel):
    name: str
    workflow_id: str
    error: str


class UpdateStatistics(BaseModel):
    workflows_processed: int = 0
    parameter_objects_visited: int = 0
    references_updated: int = 0
    references_current: int = 0
    references_unresolved: int = 0
    references_dynamic: int = 0
    updates_pushed: int = 0
    update_failures: int = 0
    success_rate: float = 0.0


class UpdateResult(BaseModel):
    statistics: UpdateStatistics = Field(default_factory=UpdateStatistics)
    failed: list[UpdateFailure] = Field(default_factory=list)
    unresolved: list[UnresolvedReference] = Field(default_factory=list)
    workflows: list[Workflow] = Field(default_factory=list, exclude=True)


class VerificationStatus(str, Enum):
    PASSED = "PASSED"
    FAILED = "FAILED"


class VerificationIssue(BaseModel):
    check: str
    severity: Severity = "medium"
    message: str
    workflow_name: str | None = None


class CheckResult(BaseModel):
    name: str
    passed: bool = True
    issues: list[VerificationIssue] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)


class VerificationSummary(BaseModel):
    total_checks: int = 0
    passed_checks: int = 0
    failed_checks: int = 0
    total_issues: int = 0
    issues_by_severity: dict[str, int] = Field(
        default_factory=lambda: {"critical": 0, "high": 0, "medium": 0, "low": 0}
    )


class VerificationResult(BaseModel):
    status: VerificationStatus = VerificationStatus.FAILED
    checks: dict[str, CheckResult] = Field(default_factory=dict)
    issues: list[VerificationIssue] = Field(default_factory=list)
    summary: VerificationSummary = Field(default_factory=VerificationSummary)

    @property
    def passed(self) -> bool:
        return self.status == VerificationStatus.PASSED


class MigrationReport(BaseModel):
    started_at: datetime
    finished_at: datetime | None = None
    duration_seconds: float = 0.0
    options: dict[str, Any] = Field(default_factory=dict)
    analysis: AnalysisResult
    upload: UploadResult | None = None
    update: UpdateResult | None = None
    verification: VerificationResult | None = None
    mappings: list[IdMapping] = Field(default_factory=list)
    graph: dict[str, Any] = Field(default_factory=dict)
    aborted_reason: str | None = None

    @property
    def succeeded(self) -> bool:
        if self.aborted_reason:
            return False
        if self.upload is not None and (self.upload.failed or self.upload.aborted or self.upload.follow_up_failed):
            return False
        if self.update is not None and self.update.failed:
            return False
        if self.verification is not None and not self.verification.passed:
            return False
        return True
