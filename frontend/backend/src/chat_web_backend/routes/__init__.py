"""Routes package for the chat web backend API."""

from chat_web_backend.routes.chat import router as chat_router
from chat_web_backend.routes.health import router as health_router
from chat_web_backend.routes.sessions import router as sessions_router

__all__ = ["chat_router", "health_router", "sessions_router"]
