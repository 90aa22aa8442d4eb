from __future__ import annotations

import json
from typing import Any

import httpx
import pytest
from chat_core.config import Settings
from chat_core.session import SessionRepository
from chat_core.storage import MemoryKeyValueStore


@pytest.fixture(autouse=True)
def _set_required_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_ENDPOINT_URL", "http://llm.test/v1")
    monkeypatch.setenv("LLM_MODEL_ID", "test-model")
    monkeypatch.setenv("TITLE_GENERATION_ENABLED", "false")
    monkeypatch.delenv("MCP_SERVERS", raising=False)
    monkeypatch.delenv("SYSTEM_PROMPT", raising=False)


@pytest.fixture
def settings() -> Settings:
    return Settings(endpoint_url="http://test", model_id="test-model", title_generation_enabled=False)


@pytest.fixture
def store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def repository(store: MemoryKeyValueStore) -> SessionRepository:
    return SessionRepository(store)


def sse_body(chunks: list[Any], *, done: bool = True) -> str:
    lines = []
    for chunk in chunks:
        data = chunk if isinstance(chunk, str) else json.dumps(chunk)
        lines.append(f"data: {data}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines)


def delta_chunk(**delta: Any) -> dict[str, Any]:
    return {"choices": [{"index": 0, "delta": delta}]}


def sse_response(chunks: list[Any]) -> httpx.Response:
    return httpx.Response(200, headers={"content-type": "text/event-stream"}, text=sse_body(chunks))


@pytest.fixture
def make_sse_response():
    return sse_response


@pytest.fixture
def make_delta():
    return delta_chunk
