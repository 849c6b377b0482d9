import logging

import pytest

import env_validation
from errors import ConfigurationError


def test_defaults_applied(monkeypatch):
    monkeypatch.setenv("PORT", "")
    monkeypatch.setenv("DB_PATH", "")
    monkeypatch.delenv("GEMINI_API_URL", raising=False)
    env_validation.validate_environment()
    assert env_validation.get_env_int("PORT", 0) == 3001
    assert env_validation.os.environ["DB_PATH"] == "database.sqlite"


def test_invalid_port_rejected(monkeypatch):
    monkeypatch.setenv("PORT", "eighty")
    with pytest.raises(ConfigurationError):
        env_validation.validate_environment()


def test_invalid_api_url_rejected(monkeypatch):
    monkeypatch.setenv("PORT", "3001")
    monkeypatch.setenv("GEMINI_API_URL", "ftp://example.com")
    with pytest.raises(ConfigurationError):
        env_validation.validate_environment()


def test_presence_logged_without_values(monkeypatch, caplog):
    monkeypatch.setenv("PORT", "3001")
    monkeypatch.delenv("GEMINI_API_URL", raising=False)
    monkeypatch.setenv("GEMINI_API_KEY", "super-secret")
    monkeypatch.delenv("FIREBASE_APP_ID", raising=False)

    with caplog.at_level(logging.INFO, logger="env_validation"):
        env_validation.validate_environment()

    assert "GEMINI_API_KEY: Loaded" in caplog.text
    assert "FIREBASE_APP_ID: NOT FOUND" in caplog.text
    assert "super-secret" not in caplog.text


@pytest.mark.parametrize("raw,expected", [("1", True), ("true", True), ("off", False), ("no", False)])
def test_get_env_bool(monkeypatch, raw, expected):
    monkeypatch.setenv("EXPOSE_GEMINI_API_KEY", raw)
    assert env_validation.get_env_bool("EXPOSE_GEMINI_API_KEY", not expected) is expected


def test_get_env_float_unset_is_none(monkeypatch):
    monkeypatch.delenv("GEMINI_TIMEOUT", raising=False)
    assert env_validation.get_env_float("GEMINI_TIMEOUT") is None
    monkeypatch.setenv("GEMINI_TIMEOUT", "2.5")
    assert env_validation.get_env_float("GEMINI_TIMEOUT") == 2.5
