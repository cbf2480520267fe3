"""Shared fixtures: an in-memory VAPI platform behind httpx.MockTransport."""

import json
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock

import httpx
import pytest

from vapi_cloner.core.clone_orchestrator import CloneService
from vapi_cloner.core.credential_store import CredentialStore
from vapi_cloner.core.crypto import generate_master_key
from vapi_cloner.services.vapi_client import RetryPolicy, VAPIClient

VALID_KEY = "sk-user-valid-0001"
BASE_URL = "https://api.test.vapi"


class FakeVapiPlatform:
    """Minimal stand-in for the VAPI tool/assistant endpoints."""

    def __init__(self, api_key: str = VALID_KEY, plural_lists: bool = False):
        self.api_key = api_key
        self.plural_lists = plural_lists
        self.resources: Dict[str, List[Dict[str, Any]]] = {"tool": [], "assistant": []}
        self.requests: List[Tuple[str, str]] = []
        self.bodies: List[Tuple[str, str, Any]] = []
        self._failures: Dict[Tuple[str, str], List[Optional[int]]] = {}
        self._counter = 0

    def add(self, kind: str, resource_id: str, name: str, **fields) -> Dict[str, Any]:
        resource = {
            "id": resource_id,
            "orgId": "org_1",
            "name": name,
            "createdAt": "2024-01-01T00:00:00Z",
            "updatedAt": "2024-01-01T00:00:00Z",
            **fields
        }
        self.resources[kind].append(resource)
        return resource

    def fail(self, method: str, path: str, status: int, times: Optional[int] = None):
        """Answer ``method path`` with ``status``; ``times=None`` means always."""
        self._failures[(method, path)] = [status] * times if times else [status, None]

    def names(self, kind: str) -> List[str]:
        return [r["name"] for r in self.resources[kind]]

    def count(self, method: str, path: str) -> int:
        return sum(1 for request in self.requests if request == (method, path))

    def _injected_failure(self, key: Tuple[str, str]) -> Optional[int]:
        queue = self._failures.get(key)
        if not queue:
            return None
        if queue[-1] is None:
            return queue[0]
        return queue.pop(0)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.strip("/")
        method = request.method
        self.requests.append((method, path))

        if request.headers.get("Authorization") != f"Bearer {self.api_key}":
            return httpx.Response(401, json={"message": "Invalid Key. Hot tip, you may be using the public key"})

        status = self._injected_failure((method, path))
        if status is not None:
            return httpx.Response(status, json={"message": f"simulated {status}"})

        parts = path.split("/")
        collection = parts[0]

        if method == "GET" and len(parts) == 1:
            kind = collection.rstrip("s")
            if kind not in self.resources or (collection == kind) == self.plural_lists:
                return httpx.Response(404, json={"message": "Cannot GET"})
            return httpx.Response(200, json=list(self.resources[kind]))

        if collection not in self.resources:
            return httpx.Response(404, json={"message": "Not Found"})
        items = self.resources[collection]

        if method == "POST" and len(parts) == 1:
            body = json.loads(request.content)
            self.bodies.append((method, path, body))
            self._counter += 1
            created = {
                **body,
                "id": f"{collection}_new_{self._counter}",
                "orgId": "org_1",
                "createdAt": "2024-02-01T00:00:00Z",
                "updatedAt": "2024-02-01T00:00:00Z"
            }
            items.append(created)
            return httpx.Response(201, json=created)

        resource_id = parts[1]
        match = next((r for r in items if r["id"] == resource_id), None)
        if match is None:
            return httpx.Response(404, json={"message": f"{collection} not found"})

        if method == "GET":
            return httpx.Response(200, json=match)
        if method == "PATCH":
            body = json.loads(request.content)
            self.bodies.append((method, path, body))
            match.update(body)
            return httpx.Response(200, json=match)
        if method == "DELETE":
            items.remove(match)
            return httpx.Response(200)

        return httpx.Response(405, text="Method Not Allowed")


@pytest.fixture
def platform():
    return FakeVapiPlatform()


@pytest.fixture
def fake_sleep():
    return AsyncMock()


@pytest.fixture
def client_factory(platform, fake_sleep):
    def factory(api_key: str) -> VAPIClient:
        return VAPIClient(
            api_key,
            base_url=BASE_URL,
            retry_policy=RetryPolicy(max_attempts=3, base_delay=1.0, backoff_multiplier=2.0),
            sleep=fake_sleep,
            transport=httpx.MockTransport(platform.handler)
        )
    return factory


@pytest.fixture
def master_key():
    return generate_master_key()


@pytest.fixture
def store(master_key):
    with CredentialStore("sqlite://", master_key=master_key) as opened:
        yield opened


@pytest.fixture
def service(store, client_factory):
    return CloneService(store, client_factory=client_factory, clone_timeout=5.0)


@pytest.fixture
def tool_template():
    return {
        "type": "function",
        "name": "SendData_v1",
        "function": {
            "name": "sendData",
            "parameters": {
                "type": "object",
                "properties": {"role": {"type": "string"}}
            }
        },
        "server": {"url": "https://example.com/api/vapi/generate"}
    }


@pytest.fixture
def assistant_template():
    return {
        "name": "Interview Prep_v1",
        "firstMessage": "Hello!",
        "model": {"provider": "openai", "model": "gpt-4"},
        "voice": {"provider": "11labs", "voiceId": "sarah"}
    }
