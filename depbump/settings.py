"""
depbump settings - configuration management using Pydantic Settings.

Loads configuration from environment variables and a .env file.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CACHE_PATH = Path.home() / ".cache" / "depbump" / "registry.json"


class DepbumpSettings(BaseSettings):
    """
    depbump configuration settings.

    Settings are loaded from:
    1. Environment variables (highest priority)
    2. .env file in current directory
    3. Default values (lowest priority)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="DEPBUMP_",
    )

    registry_url: str = Field(
        default="https://registry.npmjs.org",
        description="Base URL of the npm-compatible registry (env: DEPBUMP_REGISTRY_URL)",
    )

    timeout: float = Field(
        default=30.0,
        gt=0,
        description="Registry request timeout in seconds (env: DEPBUMP_TIMEOUT)",
    )

    max_concurrency: int = Field(
        default=10,
        ge=1,
        description="Maximum in-flight registry requests per package (env: DEPBUMP_MAX_CONCURRENCY)",
    )

    cache_ttl: float = Field(
        default=30 * 60,
        ge=0,
        description="Seconds a cached registry entry stays fresh (env: DEPBUMP_CACHE_TTL)",
    )

    cache_path: Path = Field(
        default=DEFAULT_CACHE_PATH,
        description="Location of the persisted registry cache (env: DEPBUMP_CACHE_PATH)",
    )

    log_level: str = Field(
        default="WARNING",
        description="Logging level (DEBUG, INFO, WARNING, ERROR) (env: DEPBUMP_LOG_LEVEL)",
    )


# Global settings instance
_settings: DepbumpSettings | None = None


def get_settings() -> DepbumpSettings:
    """
    Get the global settings instance.

    Creates the settings instance on first call, then returns cached instance.
    """
    global _settings
    if _settings is None:
        _settings = DepbumpSettings()
    return _settings


def reload_settings() -> DepbumpSettings:
    """Reload settings from environment/files."""
    global _settings
    _settings = DepbumpSettings()
    return _settings
