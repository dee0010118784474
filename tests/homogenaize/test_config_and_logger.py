import importlib
import io
import json
import logging

import pytest


@pytest.fixture
def package_logger():
    from homogenaize import logger as log

    saved_handlers = list(log.logger.handlers)
    saved_level = log.logger.level
    try:
        yield log
    finally:
        log.logger.handlers[:] = saved_handlers
        log.logger.setLevel(saved_level)


def test_config_reads_environment(monkeypatch):
    import homogenaize.config as config

    monkeypatch.setenv("HOMOGENAIZE_LOG_LEVEL", "debug")
    monkeypatch.setenv("HOMOGENAIZE_TIMEOUT_S", "7.5")
    try:
        importlib.reload(config)
        assert config.LOGGING_LEVEL == "DEBUG"
        assert config.REQUEST_TIMEOUT_S == 7.5
        assert config.API_KEY_ENV["gemini"] == "GEMINI_API_KEY"
    finally:
        monkeypatch.delenv("HOMOGENAIZE_LOG_LEVEL")
        monkeypatch.delenv("HOMOGENAIZE_TIMEOUT_S")
        importlib.reload(config)


def test_sanitize_masks_secrets_but_keeps_ordinary_fields():
    from homogenaize.logger import REDACTED, sanitize

    data = {
        "api_key": "abc",
        "x-api-key": "abc",
        "Authorization": "Bearer abc",
        "max_tokens": 100,
        "messages": [{"role": "user", "content": "my key is sk-" + "a" * 24}],
    }
    clean = sanitize(data)

    assert clean["api_key"] == REDACTED
    assert clean["x-api-key"] == REDACTED
    assert clean["Authorization"] == REDACTED
    assert clean["max_tokens"] == 100
    assert clean["messages"][0]["content"] == f"my key is {REDACTED}"
    assert data["api_key"] == "abc"


def test_configure_logging_pretty_format(package_logger):
    stream = io.StringIO()
    package_logger.configure_logging(
        level="info", fmt="pretty", handler=logging.StreamHandler(stream)
    )

    package_logger.info("hello %s", "world")
    package_logger.debug("hidden")

    output = stream.getvalue()
    assert "[INFO]" in output
    assert "hello world" in output
    assert "hidden" not in output


def test_configure_logging_json_format_redacts(package_logger):
    stream = io.StringIO()
    package_logger.configure_logging(
        level="VERBOSE", fmt="json", handler=logging.StreamHandler(stream)
    )

    package_logger.get_logger("providers").debug("key=%s", "sk-" + "b" * 30)

    record = json.loads(stream.getvalue().strip())
    assert record["level"] == "DEBUG"
    assert record["logger"] == "homogenaize.providers"
    assert "sk-" not in record["message"]


def test_configure_logging_replaces_previous_handler(package_logger):
    first, second = io.StringIO(), io.StringIO()
    package_logger.configure_logging(level="INFO", handler=logging.StreamHandler(first))
    package_logger.configure_logging(level="INFO", handler=logging.StreamHandler(second))

    package_logger.warning("once")
    assert first.getvalue() == ""
    assert "once" in second.getvalue()


def test_get_logger_without_name_is_package_logger():
    from homogenaize.logger import get_logger, logger

    assert get_logger() is logger
    assert get_logger("x").parent is logger
