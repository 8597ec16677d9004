from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Literal

from n8n_migrator.core.exceptions import DuplicateMappingError
from n8n_migrator.schemas.migration import IdMapping
from n8n_migrator.schemas.workflow import Workflow

logger = logging.getLogger(__name__)


class IdMapper:
    """Translate source workflow identity (id or name) into destination ids.

    Names take priority over old ids when resolving: a name registered in this
    run always beats an id-based fallback.
    """

    def __init__(self) -> None:
        self._mappings: list[IdMapping] = []
        self._by_old_id: dict[str, IdMapping] = {}
        self._by_name: dict[str, IdMapping] = {}
        self._by_new_id: dict[str, IdMapping] = {}
        self.stats = {"resolved_by_name": 0, "resolved_by_id": 0, "not_found": 0}

    def __len__(self) -> int:
        return len(self._mappings)

    def register(
        self,
        old_id: str,
        name: str,
        new_id: str,
        created_snapshot: Workflow | None = None,
        origin: Literal["created", "existing"] = "created",
    ) -> IdMapping:
        if old_id in self._by_old_id:
            existing = self._by_old_id[old_id]
            raise DuplicateMappingError(
                f"Workflow {old_id} ({name}) already mapped to {existing.new_id} in this run"
            )
        mapping = IdMapping(
            old_id=old_id,
            name=name,
            new_id=new_id,
            origin=origin,
            created_snapshot=created_snapshot,
        )
        previous = self._by_name.get(name)
        if previous is not None:
            logger.warning(
                "Name %r already mapped to %s; now resolves to %s",
                name,
                previous.new_id,
                new_id,
            )
        self._mappings.append(mapping)
        self._by_old_id[old_id] = mapping
        self._by_name[name] = mapping
        self._by_new_id[new_id] = mapping
        logger.debug("Mapped %r: %s -> %s (%s)", name, old_id, new_id, origin)
        return mapping

    def register_existing(
        self,
        old_id: str,
        name: str,
        existing_id: str,
        snapshot: Workflow | None = None,
    ) -> IdMapping:
        """Map a skipped workflow onto the destination workflow that already holds its name."""
        return self.register(old_id, name, existing_id, snapshot, origin="existing")

    def resolve(self, old_id: str | None, name: str | None = None) -> str | None:
        if name:
            mapping = self._by_name.get(name)
            if mapping is not None:
                self.stats["resolved_by_name"] += 1
                return mapping.new_id
        if old_id:
            mapping = self._by_old_id.get(old_id)
            if mapping is not None:
                self.stats["resolved_by_id"] += 1
                return mapping.new_id
        self.stats["not_found"] += 1
        logger.debug("No mapping for %s (%s)", old_id, name or "no name")
        return None

    def has_name(self, name: str) -> bool:
        return name in self._by_name

    def has_old_id(self, old_id: str) -> bool:
        return old_id in self._by_old_id

    def get_by_name(self, name: str) -> IdMapping | None:
        return self._by_name.get(name)

    def get_by_old_id(self, old_id: str) -> IdMapping | None:
        return self._by_old_id.get(old_id)

    def get_by_new_id(self, new_id: str) -> IdMapping | None:
        return self._by_new_id.get(new_id)

    @property
    def new_ids(self) -> set[str]:
        return set(self._by_new_id)

    def get_all_mappings(self, origin: Literal["created", "existing"] | None = None) -> list[IdMapping]:
        if origin is None:
            return list(self._mappings)
        return [mapping for mapping in self._mappings if mapping.origin == origin]

    def statistics(self) -> dict[str, Any]:
        lookups = sum(self.stats.values())
        resolved = self.stats["resolved_by_name"] + self.stats["resolved_by_id"]
        return {
            "total_mapped": len(self._mappings),
            "created": len(self.get_all_mappings("created")),
            "existing": len(self.get_all_mappings("existing")),
            **self.stats,
            "resolve_rate": round(resolved / lookups * 100, 2) if lookups else 0.0,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "statistics": self.statistics(),
            "mappings": [mapping.model_dump() for mapping in self._mappings],
        }
