"""TaskPilot configuration — settings, model tiers, chat defaults."""

from typing import Literal

from pydantic_settings import BaseSettings

ModelTier = Literal["opus", "sonnet", "haiku"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Keys
    anthropic_api_key: str = ""

    # Database
    database_url: str = "sqlite:///data/taskpilot.db"

    # CORS (comma-separated origins)
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # Logging
    log_level: str = "INFO"

    # LLM defaults
    default_max_tokens: int = 4096
    default_temperature: float = 0.0
    llm_max_retries: int = 3
    llm_breaker_threshold: int = 5  # consecutive failures before failing fast
    llm_breaker_cooldown: float = 60.0  # seconds
    model_opus: str = "claude-opus-4-6"
    model_sonnet: str = "claude-sonnet-4-6"
    model_haiku: str = "claude-haiku-4-5-20251001"

    # Assistant chat
    chat_model_tier: ModelTier = "sonnet"
    chat_max_tokens: int = 1024
    chat_temperature: float = 0.7
    chat_history_limit: int = 50  # prior messages sent back to the model
    chat_stream_word_delay: float = 0.02  # seconds between streamed words

    # Demo data
    seed_on_startup: bool = True  # only seeds an empty database

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()


def get_model_map() -> dict[str, str]:
    """Resolve model map from settings (env-overridable)."""
    return {
        "opus": settings.model_opus,
        "sonnet": settings.model_sonnet,
        "haiku": settings.model_haiku,
    }


MODEL_MAP: dict[str, str] = get_model_map()
