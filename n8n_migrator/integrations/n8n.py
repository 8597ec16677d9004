from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from n8n_migrator.config import Settings
from n8n_migrator.core.exceptions import ConfigurationError, IntegrationError
from n8n_migrator.schemas.workflow import Workflow

logger = logging.getLogger(__name__)


class WorkflowReader(Protocol):
    async def list_workflows(self) -> list[Workflow]: ...

    async def get_workflow(self, workflow_id: str) -> Workflow: ...


class WorkflowWriter(Protocol):
    async def create_workflow(self, payload: dict[str, Any]) -> Workflow: ...

    async def update_workflow(self, workflow_id: str, payload: dict[str, Any]) -> Workflow: ...

    async def list_tags(self) -> list[dict[str, Any]]: ...

    async def create_tag(self, name: str) -> dict[str, Any]: ...

    async def set_workflow_tags(self, workflow_id: str, tag_ids: list[str]) -> list[dict[str, Any]]: ...

    async def activate_workflow(self, workflow_id: str) -> Workflow: ...


class N8NClient:
    """Async client for the n8n public REST API (``/api/v1``)."""

    API_PREFIX = "/api/v1"
    PAGE_SIZE = 100

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError(f"n8n API key is not configured for {base_url}")
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}{self.API_PREFIX}",
            headers={
                "X-N8N-API-KEY": api_key,
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def target_from_settings(cls, settings: Settings) -> "N8NClient":
        return cls(settings.target_url, settings.target_api_key.get_secret_value(), settings.http_timeout)

    @classmethod
    def source_from_settings(cls, settings: Settings) -> "N8NClient":
        if not settings.source_url:
            raise ConfigurationError("N8N_SOURCE_URL is not configured")
        return cls(settings.source_url, settings.source_api_key.get_secret_value(), settings.http_timeout)

    async def __aenter__(self) -> "N8NClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("n8n %s %s failed: %s", method, path, exc)
            raise IntegrationError(f"{method} {path} failed: {exc}") from exc
        if not response.is_success:
            logger.error("n8n %s %s returned %s: %s", method, path, response.status_code, response.text)
            raise IntegrationError(
                f"{method} {path} returned {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise IntegrationError(f"{method} {path} returned invalid JSON", response.status_code) from exc

    async def _paginate(self, path: str) -> list[Any]:
        """Collect every item of a list endpoint, following ``nextCursor``."""
        items: list[Any] = []
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {"limit": self.PAGE_SIZE}
            if cursor:
                params["cursor"] = cursor
            body = await self._request("GET", path, params=params)
            if isinstance(body, list):
                items.extend(body)
                break
            items.extend(body.get("data", []) or [])
            cursor = body.get("nextCursor")
            if not cursor:
                break
        return items

    async def list_workflows(self) -> list[Workflow]:
        """Every workflow on the instance."""
        workflows = [Workflow.model_validate(item) for item in await self._paginate("/workflows")]
        logger.debug("Listed %d workflows from %s", len(workflows), self.base_url)
        return workflows

    async def get_workflow(self, workflow_id: str) -> Workflow:
        body = await self._request("GET", f"/workflows/{workflow_id}")
        return Workflow.model_validate(body)

    async def create_workflow(self, payload: dict[str, Any]) -> Workflow:
        body = await self._request("POST", "/workflows", json=payload)
        created = Workflow.model_validate(body)
        logger.debug("Created workflow %r with id %s", created.name, created.id)
        return created

    async def update_workflow(self, workflow_id: str, payload: dict[str, Any]) -> Workflow:
        body = await self._request("PUT", f"/workflows/{workflow_id}", json=payload)
        return Workflow.model_validate(body)

    async def list_tags(self) -> list[dict[str, Any]]:
        return await self._paginate("/tags")

    async def create_tag(self, name: str) -> dict[str, Any]:
        return await self._request("POST", "/tags", json={"name": name})

    async def set_workflow_tags(self, workflow_id: str, tag_ids: list[str]) -> list[dict[str, Any]]:
        """Replace the tags of a workflow; tags are referenced by destination id."""
        body = [{"id": tag_id} for tag_id in tag_ids]
        return await self._request("PUT", f"/workflows/{workflow_id}/tags", json=body)

    async def activate_workflow(self, workflow_id: str) -> Workflow:
        body = await self._request("POST", f"/workflows/{workflow_id}/activate")
        return Workflow.model_validate(body)
