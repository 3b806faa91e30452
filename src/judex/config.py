"""Configuration management for judex.

Settings come from environment variables (case-insensitive) or a ``.env``
file in the working directory. Every field can be overridden by keyword
when constructing ``Settings`` directly, which is how tests configure it.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Literal["development", "staging", "production"] = "development"

    # HTTP surface
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_debug: bool = False
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed origins",
    )

    # LLM provider, any OpenAI-compatible chat-completion endpoint
    llm_api_key: str = Field(default="", repr=False)
    llm_base_url: str = "https://api.deepseek.com/v1"
    llm_model: str = "deepseek-chat"
    llm_temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    llm_max_tokens: int = Field(default=2000, gt=0)
    llm_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Hard bound on a single AI extraction call, independent of the HTTP client",
    )
    llm_max_input_chars: int = Field(
        default=2000,
        ge=100,
        description="Document prefix sent to the model per extraction call",
    )
    llm_max_retries: int = Field(
        default=0,
        ge=0,
        description="Retries on the interactive extraction path (fail fast)",
    )
    llm_batch_max_retries: int = Field(
        default=2,
        ge=0,
        description="Retries with backoff on the batch extraction path",
    )

    # Extraction and merge
    enable_ai_default: bool = True
    ai_default_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    merge_amount_tolerance: float = Field(
        default=0.005,
        ge=0.0,
        description="Relative difference under which two amounts are the same amount",
    )
    merge_text_similarity: float = Field(default=0.6, ge=0.0, le=1.0)

    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def ai_configured(self) -> bool:
        """Whether an LLM API key is available."""
        return bool(self.llm_api_key.strip())


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
