"""Settings resolution and logging setup."""

import logging

from thrive import config
from thrive.logs import configure_logging


def test_load_settings_defaults(monkeypatch) -> None:
    for name in ("THRIVE_DATABASE_URL", "THRIVE_MODEL_DIR", "OPENAI_API_KEY", "SLACK_WEBHOOK_URL", "THRIVE_SECRET_KEY",
                 "THRIVE_OPENAI_MODEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config, "get_secret", lambda section, key: "")

    settings = config.load_settings()

    assert settings.database_url == config.DEFAULT_DATABASE_URL
    assert settings.model_dir == config.DEFAULT_MODEL_DIR
    assert settings.openai_api_key == ""
    assert settings.openai_endpoint == "https://api.openai.com/v1/chat/completions"
    assert settings.secret_key == "thrive-dev-secret"
    assert settings.openai_model == "gpt-4o"


def test_environment_wins_over_secrets(monkeypatch) -> None:
    monkeypatch.setenv("THRIVE_DATABASE_URL", "sqlite:///from-env.db")
    secrets = {("database", "url"): "sqlite:///from-secrets.db", ("openai", "api_key"): "sk-secret"}
    monkeypatch.setattr(config, "get_secret", lambda section, key: secrets.get((section, key), ""))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    settings = config.load_settings()

    assert settings.database_url == "sqlite:///from-env.db"
    assert settings.openai_api_key == "sk-secret"


def test_configure_logging_is_idempotent() -> None:
    logger = configure_logging("debug")
    configure_logging("debug")

    ours = [h for h in logger.handlers if getattr(h, "_thrive", False)]
    assert len(ours) == 1
    assert logger.level == logging.DEBUG
