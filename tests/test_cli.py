import logging
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from finbuddy.cli import app
from finbuddy.core.config import Settings
from finbuddy.core.logging import configure_logging

runner = CliRunner()


@pytest.fixture
def settings():
    test_settings = Settings(
        database_url="sqlite:///:memory:",
        generation_provider="mock",
        news_api_key=None,
        finnhub_api_key=None,
        hf_api_key=None,
    )
    with patch("finbuddy.cli.get_settings", return_value=test_settings):
        yield test_settings


def test_healthcheck_with_mock_provider(settings):
    result = runner.invoke(app, ["healthcheck"])
    assert result.exit_code == 0
    assert "[OK]  database reachable" in result.stdout
    assert "[WARN] no news provider key" in result.stdout
    assert "[OK]  generation provider=mock" in result.stdout


def test_healthcheck_warns_on_missing_hf_key(settings):
    settings.generation_provider = "huggingface"
    result = runner.invoke(app, ["healthcheck"])
    assert result.exit_code == 0
    assert "[WARN] missing HF_API_KEY" in result.stdout


def test_healthcheck_fails_when_database_unreachable(settings):
    with patch("finbuddy.cli.build_engine", side_effect=RuntimeError("no db")):
        result = runner.invoke(app, ["healthcheck"])
    assert result.exit_code == 1
    assert "[FAIL] database unreachable" in result.stdout


def test_ingest_news_once_uses_builtin_headlines(settings):
    result = runner.invoke(app, ["ingest-news-once"])
    assert result.exit_code == 0
    assert "inserted=5" in result.stdout


def test_ask_prints_answer(settings):
    result = runner.invoke(app, ["ask", "What is a mutual fund?", "--no-news"])
    assert result.exit_code == 0
    assert "What is a mutual fund?" in result.stdout


def test_ask_rejects_short_message(settings):
    result = runner.invoke(app, ["ask", "hi", "--no-news"])
    assert result.exit_code == 1
    assert "Message too short" in result.stdout


def test_configure_logging_quiets_http_client_loggers(settings):
    logging.getLogger("httpx").setLevel(logging.NOTSET)

    configure_logging(settings)

    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("httpcore").level == logging.WARNING
