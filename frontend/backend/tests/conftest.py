from __future__ import annotations

import json
from typing import Any

import httpx
import pytest
from chat_core import (
    ArtifactStore,
    ChatCompletionClient,
    GenerationOrchestrator,
    MemoryKeyValueStore,
    SessionRepository,
    Settings,
)
from chat_web_backend.dependencies import get_artifacts, get_orchestrator, get_repository
from chat_web_backend.main import app
from fastapi.testclient import TestClient


def sse_response(*contents: str) -> httpx.Response:
    """A streamed completion that emits each string as one content delta."""
    lines = [
        f"data: {json.dumps({'choices': [{'index': 0, 'delta': {'content': text}}]})}\n\n"
        for text in contents
    ]
    lines.append("data: [DONE]\n\n")
    return httpx.Response(200, headers={"content-type": "text/event-stream"}, text="".join(lines))


class FakeEndpoint:
    """Model endpoint double: serves queued responses and records request bodies."""

    def __init__(self) -> None:
        self.responses: list[httpx.Response] = []
        self.requests: list[dict[str, Any]] = []

    def queue(self, *responses: httpx.Response) -> None:
        self.responses.extend(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        if not self.responses:
            return httpx.Response(500, text="nothing queued")
        return self.responses.pop(0)


@pytest.fixture(autouse=True)
def _set_required_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_ENDPOINT_URL", "http://llm.test/v1")
    monkeypatch.delenv("MCP_SERVERS", raising=False)


@pytest.fixture
def endpoint() -> FakeEndpoint:
    return FakeEndpoint()


@pytest.fixture
def repository() -> SessionRepository:
    return SessionRepository(MemoryKeyValueStore())


@pytest.fixture
def orchestrator(repository: SessionRepository, endpoint: FakeEndpoint) -> GenerationOrchestrator:
    settings = Settings(endpoint_url="http://llm.test", model_id="test-model", title_generation_enabled=False)
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(endpoint), base_url="http://llm.test")
    return GenerationOrchestrator(
        repository,
        ChatCompletionClient("http://llm.test", http_client=http_client),
        settings,
        artifacts=ArtifactStore(repository),
    )


@pytest.fixture
def client(repository: SessionRepository, orchestrator: GenerationOrchestrator) -> TestClient:
    """Create a test client backed by an in-memory repository."""
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_artifacts] = lambda: ArtifactStore(repository)

    yield TestClient(app)

    # Clean up overrides after test
    app.dependency_overrides.clear()


@pytest.fixture
def make_sse_response():
    return sse_response
