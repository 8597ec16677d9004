"""Custom exception types for the migration engine and its integrations."""

from __future__ import annotations


class AppError(Exception):
    """Base app exception."""


class WorkflowParseError(AppError):
    """Workflow payload that cannot be parsed at all."""

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        super().__init__(f"{source}: {message}" if source else message)


class DuplicateMappingError(AppError):
    """Same source workflow registered twice in one run."""


class ConfigurationError(AppError):
    """Required setting missing or unusable at run time."""


class IntegrationError(AppError):
    """External n8n API call failure."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
