"""
Bridge configuration.
"""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings from environment variables (and an optional .env file)."""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 3456
    version: str = "1.0.0"

    # LM Studio (OpenAI-compatible)
    lmstudio_url: str = "http://localhost:1234"
    lmstudio_model: str = "default"

    # Ollama
    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "llama3"

    # Gemini - only registered when a key is set
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_model: str = "gemini-pro"

    # Timeouts (seconds)
    status_timeout: float = 3.0
    chat_timeout: float = 60.0  # generation is slow
    send_timeout: float = 2.0

    # Status stream cadence
    broadcast_interval: float = 5.0

    # Chat defaults
    default_temperature: float = 0.7
    default_max_tokens: int = 2000
    default_provider: str = "lmstudio"

    # Comma separated, used by /llm/detect
    provider_priority: str = "lmstudio,ollama"

    # Logging
    log_level: str = "info"
    log_path: str = ""  # e.g. /var/log/luxrig-bridge.log

    # Filesystem bridge
    fs_bridge_port: int = 3457

    @property
    def priority_list(self) -> list[str]:
        return [p.strip() for p in self.provider_priority.split(",") if p.strip()]

    @property
    def is_gemini_configured(self) -> bool:
        return bool(self.gemini_api_key)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
