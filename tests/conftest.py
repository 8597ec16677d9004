import os
import sys
from pathlib import Path
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault('N8N_TARGET_URL', 'http://n8n.test')
os.environ.setdefault('N8N_TARGET_API_KEY', 'x')

from n8n_migrator.core.exceptions import IntegrationError  # noqa: E402
from n8n_migrator.schemas.workflow import Workflow  # noqa: E402


def invocation_node(name: str, target_id: str | None, target_name: str | None = None) -> dict[str, Any]:
    locator: dict[str, Any] = {'__rl': True, 'mode': 'list'}
    if target_id is not None:
        locator['value'] = target_id
    if target_name is not None:
        locator['cachedResultName'] = target_name
    return {
        'name': name,
        'type': 'n8n-nodes-base.executeWorkflow',
        'parameters': {'workflowId': locator, 'options': {}},
    }


def make_workflow(wf_id: str, name: str, calls: list[tuple[str | None, str | None]] | None = None, **extra: Any) -> Workflow:
    nodes: list[dict[str, Any]] = [
        {'name': 'Start', 'type': 'n8n-nodes-base.manualTrigger', 'parameters': {}},
    ]
    for index, (target_id, target_name) in enumerate(calls or []):
        nodes.append(invocation_node(f'Call {index}', target_id, target_name))
    return Workflow.model_validate(
        {
            'id': wf_id,
            'name': name,
            'nodes': nodes,
            'connections': {},
            'settings': {'executionOrder': 'v1'},
            'createdAt': '2024-01-01T00:00:00.000Z',
            'updatedAt': '2024-01-02T00:00:00.000Z',
            'active': False,
            **extra,
        }
    )


class FakeN8N:
    """In-memory stand-in for the n8n Read/Write API."""

    def __init__(self, existing: list[Workflow] | None = None):
        self.store: dict[str, dict[str, Any]] = {}
        self.create_calls: list[dict[str, Any]] = []
        self.update_calls: list[tuple[str, dict[str, Any]]] = []
        self.fail_create: set[str] = set()
        self.fail_update: set[str] = set()
        self.fail_list = False
        self.drop_nodes: set[str] = set()
        self.tags: dict[str, dict[str, Any]] = {}
        self.tag_calls: list[tuple[str, list[str]]] = []
        self.activate_calls: list[str] = []
        self.fail_tags: set[str] = set()
        self.fail_activate: set[str] = set()
        self._counter = 0
        for workflow in existing or []:
            self.store[workflow.id] = workflow.to_export()

    async def __aenter__(self) -> 'FakeN8N':
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None

    async def list_workflows(self) -> list[Workflow]:
        if self.fail_list:
            raise IntegrationError('listing unavailable', status_code=503)
        return [Workflow.model_validate(data) for data in self.store.values()]

    async def get_workflow(self, workflow_id: str) -> Workflow:
        if workflow_id not in self.store:
            raise IntegrationError(f'workflow {workflow_id} not found', status_code=404)
        return Workflow.model_validate(self.store[workflow_id])

    async def create_workflow(self, payload: dict[str, Any]) -> Workflow:
        self.create_calls.append(payload)
        if payload['name'] in self.fail_create:
            raise IntegrationError('create rejected', status_code=400)
        self._counter += 1
        new_id = f'new-{self._counter}'
        data = {**payload, 'id': new_id, 'active': False}
        if payload['name'] in self.drop_nodes:
            data['nodes'] = payload['nodes'][:-1]
        self.store[new_id] = data
        return Workflow.model_validate(data)

    async def update_workflow(self, workflow_id: str, payload: dict[str, Any]) -> Workflow:
        self.update_calls.append((workflow_id, payload))
        if payload['name'] in self.fail_update:
            raise IntegrationError('update rejected', status_code=500)
        data = {**self.store[workflow_id], **payload, 'id': workflow_id}
        self.store[workflow_id] = data
        return Workflow.model_validate(data)

    async def list_tags(self) -> list[dict[str, Any]]:
        return list(self.tags.values())

    async def create_tag(self, name: str) -> dict[str, Any]:
        tag = {'id': f'tag-{len(self.tags) + 1}', 'name': name}
        self.tags[tag['id']] = tag
        return tag

    async def set_workflow_tags(self, workflow_id: str, tag_ids: list[str]) -> list[dict[str, Any]]:
        self.tag_calls.append((workflow_id, tag_ids))
        if self.store[workflow_id]['name'] in self.fail_tags:
            raise IntegrationError('tagging rejected', status_code=400)
        tags = [self.tags[tag_id] for tag_id in tag_ids]
        self.store[workflow_id]['tags'] = tags
        return tags

    async def activate_workflow(self, workflow_id: str) -> Workflow:
        self.activate_calls.append(workflow_id)
        data = self.store[workflow_id]
        if data['name'] in self.fail_activate:
            raise IntegrationError('activation rejected', status_code=400)
        data['active'] = True
        return Workflow.model_validate(data)


@pytest.fixture
def fake_n8n() -> FakeN8N:
    return FakeN8N()
