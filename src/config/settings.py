"""
Configuration Management for Offline Finance Sync

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.models.mutation import FailurePolicy


class SupabaseSettings(BaseSettings):
    """Hosted database (Supabase / PostgREST) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SUPABASE_",
        extra="ignore"
    )

    url: str = Field(
        ...,
        description="Project URL, e.g. https://xyz.supabase.co"
    )
    anon_key: str = Field(
        ...,
        description="Public anon key sent as the apikey header"
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout applied to every REST call"
    )

    @field_validator('url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalise the project URL so paths can be appended."""
        return v.rstrip("/")

    @property
    def rest_url(self) -> str:
        """PostgREST root."""
        return f"{self.url}/rest/v1"


class OfflineQueueSettings(BaseSettings):
    """Offline mutation queue configuration."""

    model_config = SettingsConfigDict(
        env_prefix="OFFLINE_QUEUE_",
        extra="ignore"
    )

    storage_dir: str = Field(
        default=".offline",
        description="Directory holding the persisted queue files"
    )
    storage_key: str = Field(
        default="offline_mutation_queue",
        description="Key under which pending mutations are persisted"
    )
    dead_letter_key: str = Field(
        default="offline_mutation_dead_letter",
        description="Key for mutations moved aside by the dead_letter policy"
    )
    placeholder_prefix: str = Field(
        default="offline_",
        min_length=1,
        description="Prefix of identifiers synthesized for records created offline"
    )
    replay_interval_seconds: float = Field(
        default=10.0,
        gt=0,
        description="How often the replay processor checks the queue"
    )
    failure_policy: FailurePolicy = Field(
        default=FailurePolicy.DISCARD,
        description="What happens to a mutation the server rejected during replay"
    )
    max_replay_attempts: int = Field(
        default=3,
        ge=1,
        le=50,
        description="Attempts before a retained mutation is dropped (retry policy)"
    )


class ConnectivitySettings(BaseSettings):
    """Network reachability probe configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CONNECTIVITY_",
        extra="ignore"
    )

    probe_url: Optional[str] = Field(
        default=None,
        description="URL requested to decide reachability (defaults to the Supabase REST root)"
    )
    probe_interval_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Delay between two reachability probes"
    )
    probe_timeout_seconds: float = Field(
        default=3.0,
        gt=0,
        description="A probe slower than this counts as unreachable"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level for the stdlib logging backend"
    )

    @field_validator('log_level')
    @classmethod
    def normalise_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def supabase(self) -> SupabaseSettings:
        return SupabaseSettings()

    @property
    def offline_queue(self) -> OfflineQueueSettings:
        return OfflineQueueSettings()

    @property
    def connectivity(self) -> ConnectivitySettings:
        return ConnectivitySettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    groups = {
        "supabase": lambda: settings.supabase,
        "offline_queue": lambda: settings.offline_queue,
        "connectivity": lambda: settings.connectivity,
        "app": lambda: settings.app,
    }

    for name, load in groups.items():
        try:
            load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
