"""Engine configuration, read from ``PRICACHE_*`` environment variables or ``.env``."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .cache_models import FetchPolicy, PriorityClass
from .registry import DEFAULT_REGISTRY_KEY


class CacheEngineSettings(BaseSettings):
    """pricache engine configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="PRICACHE_", env_file=".env", extra="ignore"
    )

    limit_bytes: int = Field(
        5 * 1024 * 1024, gt=0, description="Soft byte budget for priority entries."
    )
    max_entries: int | None = Field(
        None, gt=0, description="Optional cap on the number of priority entries."
    )
    default_ttl_minutes: float = Field(
        60.0, ge=0, description="TTL used when a caller doesn't specify one."
    )
    fetch_ttl_minutes: float = Field(
        10.0, ge=0, description="TTL for fetched responses without a strategy."
    )
    fetch_timeout_seconds: float = Field(
        10.0, gt=0, description="Abort network fetches after this many seconds."
    )
    maintenance_interval_seconds: float = Field(
        30 * 60, gt=0, description="Seconds between maintenance passes."
    )
    high_water_ratio: float = Field(
        0.75,
        gt=0,
        le=1,
        description="Usage fraction above which maintenance sheds low priorities.",
    )
    maintenance_threshold: PriorityClass = Field(
        PriorityClass.MEDIUM,
        description="Maintenance clears entries strictly below this priority.",
    )
    registry_storage_key: str = Field(
        DEFAULT_REGISTRY_KEY, description="Storage key holding the metadata registry."
    )
    persist_registry: bool = Field(
        True, description="Rewrite the registry to storage after every mutation."
    )
    coalesce_requests: bool = Field(
        False, description="Share one network request between concurrent misses."
    )
    bypass_patterns: tuple[str, ...] = Field(
        (), description="URL substrings that are always fetched uncached."
    )
    sqlite_path: Path | None = Field(
        None, description="Use a SQLite storage backend at this path."
    )
    log_level: str = Field("WARNING", description="Log level for the CLI log sink.")
    debug_scopes: tuple[str, ...] = Field(
        (), description="Engine modules whose DEBUG records bypass log_level."
    )

    @field_validator("maintenance_threshold", mode="before")
    @classmethod
    def _parse_priority(cls, value: object) -> object:
        if isinstance(value, str):
            return PriorityClass.parse(value)
        return value

    def default_fetch_policy(self) -> FetchPolicy:
        return FetchPolicy(ttl_minutes=self.fetch_ttl_minutes)
