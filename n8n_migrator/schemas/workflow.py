from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Node(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: str = ""
    name: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)

    @field_validator("parameters", mode="before")
    @classmethod
    def default_parameters(cls, value: Any) -> Any:
        return {} if value is None else value


class Workflow(BaseModel):
    """n8n workflow definition; unknown fields are preserved verbatim."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    name: str
    nodes: list[Node] = Field(default_factory=list)
    connections: dict[str, Any] = Field(default_factory=dict)
    settings: dict[str, Any] | None = None
    static_data: Any = Field(default=None, alias="staticData")
    tags: list[Any] = Field(default_factory=list)
    active: bool = False
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        # Older n8n versions use integer ids.
        return str(value) if isinstance(value, int) else value

    @field_validator("nodes", "tags", mode="before")
    @classmethod
    def default_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("connections", mode="before")
    @classmethod
    def default_connections(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def tag_names(self) -> list[str]:
        names: list[str] = []
        for tag in self.tags:
            if isinstance(tag, str):
                names.append(tag)
            elif isinstance(tag, dict) and tag.get("name"):
                names.append(str(tag["name"]))
        return names

    def to_payload(self) -> dict[str, Any]:
        """Body for create/update calls.

        The n8n public API rejects anything beyond name, nodes, connections,
        settings and staticData, so ids, audit stamps, tags and the active
        flag are dropped here.
        """
        payload: dict[str, Any] = {
            "name": self.name,
            "nodes": [node.model_dump(by_alias=True, exclude_unset=True) for node in self.nodes],
            "connections": self.connections,
            "settings": self.settings or {},
        }
        if self.static_data is not None:
            payload["staticData"] = self.static_data
        return payload

    def to_export(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True)
