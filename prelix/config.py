"""Application configuration — reads from environment variables and Docker Swarm secrets."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

_SECRET_FIELDS = ("supabase_url", "supabase_key", "openai_api_key", "llm_base_url")


def _read_secret(name: str) -> str | None:
    """Read a Docker Swarm secret from /run/secrets/."""
    secret_path = Path(f"/run/secrets/{name}")
    if secret_path.exists():
        return secret_path.read_text().strip()
    return None


class Settings(BaseSettings):
    """Application settings with env var and secret support."""

    supabase_url: str = ""
    supabase_key: str = ""

    openai_api_key: str = ""
    llm_base_url: str = "https://api.openai.com/v1"
    llm_model: str = "gpt-4o-mini"
    llm_timeout_seconds: float = 60.0
    llm_json_mode: bool = True

    max_clarification_rounds: int = 6
    context_max_chars: int = 4000
    chat_interface_limit: int = 5

    port: int = 8400
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Override with Docker Swarm secrets if available
        for name in _SECRET_FIELDS:
            if secret := _read_secret(name):
                setattr(self, name, secret)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
