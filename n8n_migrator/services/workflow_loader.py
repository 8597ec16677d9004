from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable

from pydantic import ValidationError

from n8n_migrator.core.exceptions import WorkflowParseError
from n8n_migrator.schemas.workflow import Workflow

logger = logging.getLogger(__name__)


def load_workflows(path: str | Path) -> list[Workflow]:
    """Load workflow exports from a JSON file or every ``*.json`` file in a directory.

    A file may contain a single workflow, a list of workflows, or an API page
    shaped like ``{"data": [...]}``.
    """
    root = Path(path)
    if not root.exists():
        raise WorkflowParseError("path does not exist", str(root))
    files = sorted(root.glob("*.json")) if root.is_dir() else [root]

    workflows: list[Workflow] = []
    for file in files:
        workflows.extend(_load_file(file))
    logger.info("Loaded %d workflows from %s", len(workflows), root)
    return workflows


def _load_file(file: Path) -> list[Workflow]:
    try:
        data = json.loads(file.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise WorkflowParseError(f"invalid JSON: {exc}", str(file)) from exc

    if isinstance(data, dict) and isinstance(data.get("data"), list):
        items: list[Any] = data["data"]
    elif isinstance(data, list):
        items = data
    else:
        items = [data]

    workflows: list[Workflow] = []
    for position, item in enumerate(items):
        if not isinstance(item, dict):
            raise WorkflowParseError(f"item {position} is not a workflow object", str(file))
        try:
            workflows.append(Workflow.model_validate(item))
        except ValidationError as exc:
            raise WorkflowParseError(f"item {position} is not a valid workflow: {exc}", str(file)) from exc
    return workflows


def filter_by_tag(workflows: Iterable[Workflow], tag: str | None) -> list[Workflow]:
    if not tag:
        return list(workflows)
    wanted = tag.lower()
    return [wf for wf in workflows if any(name.lower() == wanted for name in wf.tag_names)]
