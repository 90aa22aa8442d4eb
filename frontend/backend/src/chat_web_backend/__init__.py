"""Chat web backend: HTTP surface over the chat_core engine."""
