"""Application configuration via environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from policy_tldr.services.llm.request_builder import ProviderConfig, provider_config_for


class Settings(BaseSettings):
    """Typed application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="", case_sensitive=False)

    app_port: int = Field(8000, alias="APP_PORT")
    llm_provider: str = Field("xai", alias="LLM_PROVIDER")
    llm_model: str | None = Field(default=None, alias="LLM_MODEL")
    llm_endpoint: str | None = Field(default=None, alias="LLM_ENDPOINT")
    llm_api_key: str = Field("", alias="LLM_API_KEY")
    llm_temperature: float = Field(0.2, alias="LLM_TEMPERATURE")
    llm_max_tokens: int = Field(1024, alias="LLM_MAX_TOKENS")
    llm_timeout_seconds: float = Field(30.0, alias="LLM_TIMEOUT_SECONDS")
    summary_language: str = Field("en", alias="SUMMARY_LANGUAGE")
    summary_cache_path: Path = Field(
        default_factory=lambda: Path("data/summaries.json"), alias="SUMMARY_CACHE_PATH"
    )
    render_load_timeout_seconds: float = Field(15.0, alias="RENDER_LOAD_TIMEOUT_SECONDS")
    render_settle_seconds: float = Field(1.2, alias="RENDER_SETTLE_SECONDS")
    min_distilled_chars: int = Field(200, alias="MIN_DISTILLED_CHARS")
    fetch_user_agent: str = Field("policy-tldr/0.1 (+summaries)", alias="FETCH_USER_AGENT")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_format: str = Field("text", alias="LOG_FORMAT")

    @property
    def has_api_key(self) -> bool:
        """Return True if a provider API key is configured."""
        return bool(self.llm_api_key.strip())

    def provider_config(self) -> ProviderConfig:
        """Build the provider configuration used for summarization requests."""
        return provider_config_for(
            self.llm_provider,
            model=self.llm_model,
            endpoint=self.llm_endpoint,
            temperature=self.llm_temperature,
            max_tokens=self.llm_max_tokens,
            timeout_s=self.llm_timeout_seconds,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
