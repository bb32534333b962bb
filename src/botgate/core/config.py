from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

DEV_JWT_SECRET = "your-secret-key-for-development-only"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")

    # `dev` is a backward-compatible alias of `local`.
    botgate_env: Literal["local", "dev", "test", "prod"] = "local"
    botgate_log_level: str = "INFO"
    botgate_request_id_header: str = "X-Request-ID"

    # Serve deterministic dummy data instead of calling the assistant provider
    # (offline builds, demos, UI development).
    botgate_offline_stubs: bool = False

    # Storage
    database_url: str | None = None

    # Session
    jwt_secret: str = DEV_JWT_SECRET
    jwt_algorithm: str = "HS256"
    session_ttl_hours: int = 24
    session_cookie_name: str = "token"

    # Assistant provider. The server key is only a fallback for users without their own.
    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_assistant_model: str = "gpt-4o"
    openai_timeout_seconds: float = 60.0
    vector_store_settle_seconds: float = 2.0

    # Run polling (shared by /invoke and the chat webhook)
    run_poll_interval_seconds: float = 1.0
    run_poll_max_attempts: int = 60
    thread_fallback_on_any_error: bool = True

    # Chat platform
    chat_api_url_template: str = "https://{app_id}.api-{region}.cometchat.io/v3"
    chat_timeout_seconds: float = 30.0

    @property
    def is_prod(self) -> bool:
        return self.botgate_env == "prod"


@lru_cache
def get_settings() -> Settings:
    return Settings()
