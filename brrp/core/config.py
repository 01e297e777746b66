"""
Application configuration loaded from environment variables.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file = ".env",
        env_file_encoding = "utf-8",
        populate_by_name = True,
        extra = "ignore"
    )

    # Database
    database_url: str = Field(default="sqlite+aiosqlite:///./brrp.db", alias="DATABASE_URL")

    # Application
    app_name: str = Field(default="BRRP Carbon Credit Engine", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    port: int = Field(default=8000, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Pipeline defaults
    default_currency: str = Field(default="USD", alias="DEFAULT_CURRENCY")
    default_accounting_standard: str = Field(default="ACM0022", alias="DEFAULT_ACCOUNTING_STANDARD")

    # External systems (national carbon budget, Open Earth registry)
    national_budget_url: Optional[str] = Field(default=None, alias="NATIONAL_BUDGET_URL")
    registry_base_url: str = Field(default="https://openearth.org", alias="REGISTRY_BASE_URL")
    external_timeout_seconds: float = Field(default=30.0, alias="EXTERNAL_TIMEOUT_SECONDS")

    # Opaque identifier prefixes
    token_prefix: str = Field(default="BRRP-NFT", alias="TOKEN_PREFIX")
    registry_prefix: str = Field(default="OPENEARTH", alias="REGISTRY_PREFIX")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
