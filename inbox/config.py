"""
Runtime configuration, loaded from the environment (and `.env`) via pydantic-settings.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EvolutionConfig(BaseSettings):
    """Evolution API instance this inbox talks through."""

    model_config = SettingsConfigDict(
        env_prefix="EVOLUTION_", env_file=".env", extra="ignore"
    )

    base_url: str = Field(default="http://localhost:8080")
    api_key: str = Field(default="")
    instance_name: str = Field(default="inbox")
    timeout: float = Field(default=15, gt=0)


class GeminiConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="GEMINI_", env_file=".env", extra="ignore"
    )

    api_key: str = Field(default="")  # empty disables smart replies
    model: str = Field(default="gemini-2.5-flash")
    base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta")
    timeout: float = Field(default=20, gt=0)


class InboxSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="INBOX_", env_file=".env", extra="ignore"
    )

    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)
    dry_run: bool = Field(
        default=False,
        description="Record outbound messages instead of calling the provider",
    )

    evolution: EvolutionConfig = Field(default_factory=EvolutionConfig)
    gemini: GeminiConfig = Field(default_factory=GeminiConfig)


@lru_cache
def get_settings() -> InboxSettings:
    return InboxSettings()
