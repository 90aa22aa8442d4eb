import logging

import pytest
from chat_core.config import load_settings
from chat_core.logging_utils import SessionContextFilter, install_session_log_filter, session_context


def test_load_settings_defaults() -> None:
    settings = load_settings()

    assert settings.endpoint_url == "http://llm.test/v1"
    assert settings.model_id == "test-model"
    assert settings.supports_function_calling is True
    assert settings.mcp_servers == []
    assert settings.sampler.temperature is None


def test_load_settings_parses_sampler_and_mcp_servers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_ENDPOINT_URL", "http://llm.test/v1/")
    monkeypatch.setenv("LLM_TEMPERATURE", "0.4")
    monkeypatch.setenv("LLM_TOP_K", "20")
    monkeypatch.setenv("LLM_SUPPORTS_TOOLS", "false")
    monkeypatch.setenv("MCP_SERVERS", "docs=http://docs.test/mcp, search=http://search.test/mcp")

    settings = load_settings()

    assert settings.endpoint_url == "http://llm.test/v1"
    assert settings.sampler.temperature == 0.4
    assert settings.sampler.top_k == 20
    assert settings.supports_function_calling is False
    assert [(s.id, s.url) for s in settings.mcp_servers] == [
        ("docs", "http://docs.test/mcp"),
        ("search", "http://search.test/mcp"),
    ]


def test_load_settings_requires_endpoint(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_ENDPOINT_URL", "")

    with pytest.raises(ValueError, match="LLM_ENDPOINT_URL"):
        load_settings()


def test_invalid_mcp_server_entry(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MCP_SERVERS", "just-a-url")

    with pytest.raises(ValueError, match="expected name=url"):
        load_settings()


def test_session_filter_tags_records() -> None:
    logger = logging.getLogger("chat_core.test_filter")
    install_session_log_filter([logger])
    install_session_log_filter([logger])
    records: list[logging.LogRecord] = []

    class _Collect(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            records.append(record)

    handler = _Collect()
    logger.addHandler(handler)
    try:
        with session_context("s-1"):
            logger.warning("inside")
        logger.warning("outside")
    finally:
        logger.removeHandler(handler)

    assert sum(isinstance(f, SessionContextFilter) for f in logger.filters) == 1
    assert [r.session_id for r in records] == ["s-1", "-"]
