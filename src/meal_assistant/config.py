"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    openai_api_key: str | None = None
    openai_model: str = "gpt-4.1-mini"
    openai_reasoning_effort: str | None = None
    openai_store: bool = False
    openfoodfacts_base_url: str = "https://world.openfoodfacts.org"
    openfoodfacts_country_tag: str = "de"
    web_search_url: str = "https://duckduckgo.com/html/"
    http_user_agent: str = "meal-assistant/0.1 (nutrition lookup)"
    lookup_cache_ttl_seconds: int = 300
    reference_timezone: str = "Europe/Berlin"
    agent_enabled: bool = True
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def has_reasoning_backend(settings: Settings) -> bool:
    """Return whether a reasoning backend is configured."""
    if settings.openai_api_key is None:
        return False
    return settings.openai_api_key.strip() != ""
