"""Generic walk over untyped node parameters and the invocation reference variant.

An "Execute Workflow" style node points at another workflow through a
resource locator stored under ``workflowId``::

    {"workflowId": {"__rl": true, "value": "<id>", "mode": "list",
                    "cachedResultName": "<name>"}}

Each parameter object is classified once: it either holds such a reference
(:class:`InvocationRef`) or it is treated as opaque data.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from n8n_migrator.schemas.workflow import Workflow

REFERENCE_KEY = "workflowId"

Path = tuple[Any, ...]
Visitor = Callable[[dict[str, Any], Path], None]


@dataclass
class InvocationRef:
    """Cross-workflow reference found inside a node's parameters."""

    locator: dict[str, Any] = field(repr=False)
    path: Path = ()
    node_name: str | None = None

    @property
    def value(self) -> str | None:
        raw = self.locator.get("value")
        return None if raw in (None, "") else str(raw)

    @property
    def cached_result_name(self) -> str | None:
        return self.locator.get("cachedResultName") or None

    @property
    def is_dynamic(self) -> bool:
        # n8n expressions start with "=" and are evaluated at run time.
        return bool(self.value and self.value.startswith("="))

    def rewrite(self, new_id: str, name: str | None = None) -> bool:
        """Point the reference at ``new_id``; returns False when nothing changed.

        ``name`` only fills a missing ``cachedResultName``, so later passes
        resolve by name instead of treating ``new_id`` as a source id.
        """
        changed = False
        if name and not self.cached_result_name:
            self.locator["cachedResultName"] = name
            changed = True
        if self.value != new_id:
            self.locator["value"] = new_id
            changed = True
        return changed


def walk(value: Any, visitor: Visitor, path: Path = ()) -> int:
    """Visit every dict below ``value`` depth-first and return how many were visited."""
    visited = 0
    if isinstance(value, dict):
        visitor(value, path)
        visited += 1
        for key, child in value.items():
            visited += walk(child, visitor, (*path, key))
    elif isinstance(value, list):
        for index, child in enumerate(value):
            visited += walk(child, visitor, (*path, index))
    return visited


def as_invocation_ref(obj: dict[str, Any], path: Path = (), node_name: str | None = None) -> InvocationRef | None:
    locator = obj.get(REFERENCE_KEY)
    if not isinstance(locator, dict):
        return None
    if not (locator.get("value") or locator.get("cachedResultName")):
        return None
    return InvocationRef(locator=locator, path=(*path, REFERENCE_KEY), node_name=node_name)


def collect_references(parameters: Any, node_name: str | None = None) -> tuple[list[InvocationRef], int]:
    """Return the references under ``parameters`` and the number of objects visited."""
    refs: list[InvocationRef] = []

    def visitor(obj: dict[str, Any], path: Path) -> None:
        ref = as_invocation_ref(obj, path, node_name)
        if ref is not None:
            refs.append(ref)

    visited = walk(parameters, visitor)
    return refs, visited


def find_references(workflow: Workflow) -> Iterator[InvocationRef]:
    for index, node in enumerate(workflow.nodes):
        refs, _ = collect_references(node.parameters, node.name or f"node[{index}]")
        yield from refs
