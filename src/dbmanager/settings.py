"""
Environment-driven settings for dbmanager.

Manifesto:
    Hosts (the CLI, services embedding a manager) configure the target
    database and the manager options from one validated place instead of
    parsing environment variables themselves. ``DbManagerSettings`` turns
    into ``DbManagerOptions`` for the manager and into a builder through
    ``DbManagerBuilder.from_settings``.

Examples:
    >>> import os
    >>> os.environ["DBMANAGER_DATABASE"] = "data/app.db"
    >>> settings = get_settings(_force_reload=True)
    >>> settings.to_options().version_table
    '_DatabaseSettings'

Tags:
    settings, configuration, pydantic, environment, dbmanager

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dbmanager.adapters.types import EngineType
from dbmanager.batches.types import IsolationLevel, TransactionRequirement
from dbmanager.options import DbManagerOptions


class DbManagerSettings(BaseSettings):
    """dbmanager configuration.

    All fields can be set via ``DBMANAGER_*`` environment variables (e.g.
    ``DBMANAGER_ENGINE=postgresql``) or a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="DBMANAGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Target ───────────────────────────────────────────────────
    engine: EngineType = Field(default=EngineType.SQLITE)
    database: str = Field(default="dbmanager.db", description="SQLite path or PostgreSQL database name")
    dsn: str | None = Field(default=None, description="PostgreSQL connection string")
    connect_timeout: float = Field(default=10.0)

    # ── Scripts ──────────────────────────────────────────────────
    script_dirs: list[Path] = Field(default_factory=list)
    record_version: bool = Field(default=False, description="Store the new version after every upgrade step")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    # ── Manager options ──────────────────────────────────────────
    version_table: str = Field(default="_DatabaseSettings")
    name_column: str = Field(default="Name")
    value_column: str = Field(default="Value")
    version_key: str = Field(default="Database.Version")
    version_detection_batch: str | None = None
    creation_batch: str | None = None
    cleanup_batch: str | None = None
    backup_preprocessing_batch: str | None = None
    backup_postprocessing_batch: str | None = None
    upgrade_name_format: str = Field(default=r".+?(?P<source_version>\d{4}).*")
    command_separator: str = Field(default="GO")
    default_isolation_level: IsolationLevel | None = Field(default=IsolationLevel.READ_COMMITTED)
    default_transaction_requirement: TransactionRequirement = Field(
        default=TransactionRequirement.REQUIRED
    )

    @field_validator("engine", mode="before")
    @classmethod
    def _parse_engine(cls, value: object) -> object:
        if isinstance(value, str) and value.lower() == "postgres":
            return EngineType.POSTGRESQL
        return value.lower() if isinstance(value, str) else value

    @field_validator("default_isolation_level", mode="before")
    @classmethod
    def _parse_isolation(cls, value: object) -> object:
        if value in (None, ""):
            return None
        return IsolationLevel.parse(value)

    @field_validator("default_transaction_requirement", mode="before")
    @classmethod
    def _parse_requirement(cls, value: object) -> object:
        return TransactionRequirement.parse(value)

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("console", "json"):
            raise ValueError(f"log_format must be 'console' or 'json', got {value!r}")
        return value

    @property
    def is_sqlite(self) -> bool:
        return self.engine is EngineType.SQLITE

    def adapter_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for the engine's adapter in the adapter registry."""
        if self.is_sqlite:
            return {"path": self.database, "timeout": self.connect_timeout}
        return {
            "dsn": self.dsn,
            "database": self.database,
            "connect_timeout": self.connect_timeout,
        }

    def to_options(self) -> DbManagerOptions:
        """Manager options carried by these settings."""
        return DbManagerOptions(
            version_table=self.version_table,
            name_column=self.name_column,
            value_column=self.value_column,
            version_key=self.version_key,
            version_detection_batch=self.version_detection_batch,
            creation_batch=self.creation_batch,
            cleanup_batch=self.cleanup_batch,
            backup_preprocessing_batch=self.backup_preprocessing_batch,
            backup_postprocessing_batch=self.backup_postprocessing_batch,
            upgrade_name_format=self.upgrade_name_format,
            command_separator=self.command_separator,
            default_isolation_level=self.default_isolation_level,
            default_transaction_requirement=self.default_transaction_requirement,
        )


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, DbManagerSettings] = {}


def get_settings(*, _force_reload: bool = False) -> DbManagerSettings:
    """Load, validate and cache the settings from the environment."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = DbManagerSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = [
    "DbManagerSettings",
    "get_settings",
    "clear_settings_cache",
]
