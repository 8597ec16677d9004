"""External integration adapters."""

from .n8n import N8NClient, WorkflowReader, WorkflowWriter

__all__ = [
    "N8NClient",
    "WorkflowReader",
    "WorkflowWriter",
]
