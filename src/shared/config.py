"""
Application configuration using Pydantic Settings.
Loads from environment variables and .env file.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Supabase
    supabase_url: str = Field(default="http://localhost:8000")
    supabase_anon_key: SecretStr = Field(default=SecretStr(""))
    supabase_service_key: SecretStr = Field(default=SecretStr(""))
    session_cookie_name: str = Field(default="sb-access-token")

    # AI providers
    openai_api_key: SecretStr = Field(default=SecretStr(""))
    openrouter_api_key: SecretStr = Field(default=SecretStr(""))
    requesty_api_key: SecretStr = Field(default=SecretStr(""))
    anthropic_api_key: SecretStr = Field(default=SecretStr(""))
    gemini_api_key: SecretStr = Field(default=SecretStr(""))

    openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1")
    requesty_base_url: str = Field(default="https://api.requesty.ai/v1")
    anthropic_base_url: str = Field(default="https://api.anthropic.com")

    ai_provider: str = Field(default="openrouter", description="Default provider")
    ai_model: str = Field(default="qwen/qwq-32b-preview")
    ai_fallback_model: Optional[str] = Field(
        default="anthropic/claude-sonnet-4",
        description="OpenRouter model used when the primary provider fails",
    )
    ai_temperature: float = Field(default=0.7)
    ai_max_tokens: int = Field(default=4000)
    ai_request_timeout: float = Field(default=120.0)

    # Matcher settings
    matcher_batch_size: int = Field(default=5, ge=1, description="Jobs per LLM prompt")
    matcher_match_floor: int = Field(
        default=50, ge=0, le=100, description="Minimum score kept after LLM scoring"
    )
    matcher_prompt_threshold: int = Field(
        default=60, ge=0, le=100, description="Threshold the model is asked to apply"
    )
    matcher_max_concurrency: int = Field(
        default=1, ge=1, le=3, description="Batches in flight at once"
    )
    matcher_batch_retries: int = Field(
        default=0, ge=0, description="Extra attempts for a failed batch"
    )
    matcher_retry_base_delay: float = Field(default=1.0, ge=0)
    matcher_use_upsert: bool = Field(
        default=False, description="Atomic upsert instead of delete-then-insert"
    )

    # API server
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8080)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    def api_key_for(self, provider: str) -> Optional[str]:
        """Return the API key configured for a provider, if any."""
        secret = {
            "openai": self.openai_api_key,
            "openrouter": self.openrouter_api_key,
            "requesty": self.requesty_api_key,
            "anthropic": self.anthropic_api_key,
            "gemini": self.gemini_api_key,
        }.get(provider)
        if secret is None:
            return None
        return secret.get_secret_value() or None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
