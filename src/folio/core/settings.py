"""
Centralized settings for folio.

Manifesto:
    One validated, cached settings object. Every knob the engine reads
    (database URL, pool sizing, default site, logging) lives here and can
    be set through ``FOLIO_*`` environment variables or a ``.env`` file.

Examples:
    >>> from folio.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.default_site_id
    1

Tags:
    folio-core, configuration, settings, pydantic, caching, validation

Doc-Types:
    api-reference
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from folio.core.errors import ConfigError


class FolioSettings(BaseSettings):
    """Folio configuration.

    All fields can be set via ``FOLIO_*`` environment variables (e.g.
    ``FOLIO_DATABASE_URL=postgresql://...``).
    """

    model_config = SettingsConfigDict(
        env_prefix="FOLIO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Database ─────────────────────────────────────────────────
    database_url: str = Field(default="sqlite:///folio.db")
    database_echo: bool = Field(default=False)
    database_pool_size: int | None = Field(default=None)
    database_max_overflow: int | None = Field(default=None)
    database_pool_timeout: int | None = Field(default=None)

    # ── Content ──────────────────────────────────────────────────
    default_site_id: int = Field(default=1, description="Site used when callers pass none")
    sample_slug: str = Field(default="sample", description="Prefix of the install sample lookup key")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    service_name: str = Field(default="folio")

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        if value not in ("json", "console"):
            raise ValueError(f"log_format must be 'json' or 'console', got {value!r}")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log_level {value!r}")
        return level

    @field_validator("default_site_id")
    @classmethod
    def _check_site(cls, value: int) -> int:
        if value < 1:
            raise ValueError("default_site_id must be positive")
        return value

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def json_logs(self) -> bool:
        return self.log_format == "json"


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, FolioSettings] = {}


def get_settings(*, _force_reload: bool = False) -> FolioSettings:
    """Load, validate, and cache a :class:`FolioSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    try:
        settings = FolioSettings()
    except PydanticValidationError as exc:
        raise ConfigError(
            f"Invalid folio settings: {exc.error_count()} error(s)", cause=exc
        ) from exc
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = ["FolioSettings", "get_settings", "clear_settings_cache"]
