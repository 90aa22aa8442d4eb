"""FastAPI dependency injection for shared services.

Each getter is cached so the app shares one repository, one model client and
one orchestrator. Tests replace them through ``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from chat_core import (
    ArtifactStore,
    ChatCompletionClient,
    CompositeToolExecutor,
    GenerationOrchestrator,
    SessionRepository,
    Settings,
    SQLiteKeyValueStore,
    load_settings,
)

logger = logging.getLogger(__name__)


@lru_cache
def get_settings() -> Settings:
    return load_settings()


@lru_cache
def get_repository() -> SessionRepository:
    """Open the session store and load every persisted session."""
    settings = get_settings()
    repository = SessionRepository(SQLiteKeyValueStore(settings.storage_path))
    repository.load()
    return repository


@lru_cache
def get_artifacts() -> ArtifactStore:
    return ArtifactStore(get_repository())


@lru_cache
def get_tool_executor() -> CompositeToolExecutor:
    return CompositeToolExecutor(get_artifacts(), get_settings().mcp_servers)


@lru_cache
def get_chat_client() -> ChatCompletionClient:
    settings = get_settings()
    return ChatCompletionClient(
        settings.endpoint_url,
        settings.api_key,
        timeout=settings.request_timeout,
    )


@lru_cache
def get_orchestrator() -> GenerationOrchestrator:
    return GenerationOrchestrator(
        get_repository(),
        get_chat_client(),
        get_settings(),
        tools=get_tool_executor(),
        artifacts=get_artifacts(),
    )


async def close_clients() -> None:
    """Close HTTP clients that were created during the app's lifetime."""
    if get_orchestrator.cache_info().currsize:
        await get_orchestrator().wait_for_background()
    if get_chat_client.cache_info().currsize:
        await get_chat_client().aclose()
    if get_tool_executor.cache_info().currsize:
        await get_tool_executor().aclose()
    logger.info("Closed outbound clients")
