"""Tests for structlog setup."""
import pytest
import structlog

from ragdesk import config
from ragdesk.logging_config import configure_logging


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


def renderer():
    return structlog.get_config()["processors"][-1]


def test_unset_arguments_fall_back_to_config(monkeypatch):
    monkeypatch.setattr(config, "LOG_JSON", False)

    configure_logging(log_level=None, json_logs=None)

    assert isinstance(renderer(), structlog.dev.ConsoleRenderer)


def test_explicit_json_rendering():
    configure_logging(log_level="debug", json_logs=True)

    assert isinstance(renderer(), structlog.processors.JSONRenderer)
