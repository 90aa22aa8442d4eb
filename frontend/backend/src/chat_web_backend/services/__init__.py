"""Service helpers for the chat web backend."""
