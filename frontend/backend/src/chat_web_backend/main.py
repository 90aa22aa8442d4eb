"""Chat Web Backend - FastAPI application.

This module provides the main FastAPI application with routes for:
- Session management and branch navigation
- Chat turn streaming, regeneration and cancellation
- Artifacts produced by the model
- Health checks
"""

from __future__ import annotations

import logging
import os

from chat_core.logging_utils import get_session_id
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chat_web_backend.dependencies import close_clients, get_repository
from chat_web_backend.routes import chat_router, health_router, sessions_router
from chat_web_backend.services.request_context import get_request_id, request_id_middleware


def _allowed_origins() -> list[str]:
    allowed = os.getenv("WEB_ALLOWED_ORIGINS")
    if allowed:
        return [origin.strip() for origin in allowed.split(",") if origin.strip()]
    web_origin = os.getenv("WEB_ORIGIN")
    return [web_origin] if web_origin else []


class _RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        record.session_id = get_session_id() or "-"
        return True


def _configure_logging() -> logging.Logger:
    formatter = logging.Formatter(
        "%(name)s - %(levelname)s - %(request_id)s - %(session_id)s - %(message)s"
    )
    for name in ("chat_web_backend", "chat_core"):
        named = logging.getLogger(name)
        named.setLevel(logging.INFO)
        if not named.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(formatter)
            handler.addFilter(_RequestContextFilter())
            named.addHandler(handler)
    return logging.getLogger("chat_web_backend")


logger = _configure_logging()

# Create FastAPI app
app = FastAPI(title="Chat Web Backend", version="1.0.0")
app.middleware("http")(request_id_middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins(),
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event() -> None:
    """Load sessions early to surface configuration problems on boot."""
    logger.info("Starting Chat Web Backend...")
    try:
        get_repository()
    except (ValueError, OSError) as e:
        logger.warning("Session store bootstrap failed: %s", e)
    logger.info("Chat Web Backend startup complete")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await close_clients()


# Register routers
app.include_router(health_router)
app.include_router(sessions_router)
app.include_router(chat_router)
