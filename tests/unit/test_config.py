"""Unit tests for environment-driven settings."""

from agentdesk.api.config import Settings


def test_cors_origins_from_comma_separated_env(monkeypatch):
    monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test,")

    settings = Settings(_env_file=None)

    assert settings.cors_origins == ["http://a.test", "http://b.test"]


def test_empty_cors_origins_falls_back_to_defaults(monkeypatch):
    monkeypatch.setenv("CORS_ORIGINS", "")
    monkeypatch.setenv("FRONTEND_PORT", "3000")

    settings = Settings(_env_file=None)

    assert settings.cors_origins[0] == "http://localhost:3000"
    assert "http://localhost:5173" in settings.cors_origins
