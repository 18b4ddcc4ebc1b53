import os
from dataclasses import dataclass

import streamlit as st

DEFAULT_DATABASE_URL = "sqlite:///thrive.db"
DEFAULT_MODEL_DIR = ".thrive_models"
DEFAULT_OPENAI_MODEL = "gpt-4o"
OPENAI_API_ENDPOINT = "https://api.openai.com/v1/chat/completions"
NOTIFICATION_POLL_SECONDS = int(os.environ.get("THRIVE_POLL_SECONDS", "30"))


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    model_dir: str = DEFAULT_MODEL_DIR
    openai_api_key: str = ""
    openai_model: str = DEFAULT_OPENAI_MODEL
    openai_endpoint: str = OPENAI_API_ENDPOINT
    slack_webhook_url: str = ""
    secret_key: str = "thrive-dev-secret"
    log_level: str = "INFO"
    notification_poll_seconds: int = NOTIFICATION_POLL_SECONDS


def get_secret(section: str, key: str) -> str:
    try:
        return str(st.secrets[section][key])
    except Exception:
        return ""


def _pick(env_name: str, section: str, key: str, default: str) -> str:
    return os.environ.get(env_name) or get_secret(section, key) or default


def load_settings() -> Settings:
    return Settings(
        database_url=_pick("THRIVE_DATABASE_URL", "database", "url", DEFAULT_DATABASE_URL),
        model_dir=_pick("THRIVE_MODEL_DIR", "models", "dir", DEFAULT_MODEL_DIR),
        openai_api_key=_pick("OPENAI_API_KEY", "openai", "api_key", ""),
        openai_model=_pick("THRIVE_OPENAI_MODEL", "openai", "model", DEFAULT_OPENAI_MODEL),
        slack_webhook_url=_pick("SLACK_WEBHOOK_URL", "slack", "webhook_url", ""),
        secret_key=_pick("THRIVE_SECRET_KEY", "auth", "secret_key", "thrive-dev-secret"),
        log_level=os.environ.get("THRIVE_LOG_LEVEL", "INFO"),
    )
