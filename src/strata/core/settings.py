"""Settings for strata.

``StrataSettings`` collects the knobs that used to be a module-level
config table: where the database file lives, where migrations are
discovered, what the tracking table is called and how chatty statement
logging is.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    The record layer never reads settings on its own; ``connect()`` and
    ``MigrationRunner`` accept them (or explicit arguments) from the caller.

Features:
    - **STRATA_ prefix:** ``STRATA_DATABASE_PATH``, ``STRATA_LOG_SQL``, ...
    - **.env file support:** Automatic loading via pydantic-settings
    - **Extra ignore:** Unknown env vars don't cause startup failures

Examples:
    >>> from strata.core.settings import StrataSettings
    >>> settings = StrataSettings(database_path=":memory:", log_sql=True)

Tags:
    settings, configuration, pydantic, environment, strata
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class StrataSettings(BaseSettings):
    """Settings shared by the database adapter and the migration runner.

    Fields
    ──────
    database_path   : SQLite file path, or ``:memory:``
    migrations_path : Directory scanned for ``<version>_<name>.py`` files
    schema_table    : Table recording applied migration versions
    timeout         : sqlite busy timeout in seconds
    foreign_keys    : Enable ``PRAGMA foreign_keys`` on connect
    journal_mode    : Journal mode applied to file databases
    log_level       : Level used by ``configure_logging()`` when none is passed
    log_sql         : Log every statement at DEBUG
    slow_query_ms   : Statements slower than this are logged at WARNING
    """

    model_config = SettingsConfigDict(
        env_prefix="STRATA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Storage ──────────────────────────────────────────────────
    database_path: str = "db/development.sqlite3"
    timeout: float = 5.0
    foreign_keys: bool = True
    journal_mode: str = "WAL"

    # ── Migrations ───────────────────────────────────────────────
    migrations_path: str = "db/migrate"
    schema_table: str = Field(
        default="schema_migrations",
        description="Table recording applied migration versions",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_sql: bool = False
    slow_query_ms: float = 1000.0

    @field_validator("schema_table")
    @classmethod
    def _check_identifier(cls, value: str) -> str:
        if not value.replace("_", "").isalnum():
            raise ValueError(f"schema_table must be a plain identifier, got {value!r}")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}, got {value!r}")
        return level

    @field_validator("journal_mode")
    @classmethod
    def _upper_journal_mode(cls, value: str) -> str:
        return value.upper()


@lru_cache(maxsize=1)
def get_settings() -> StrataSettings:
    """Retrieve a cached instance of settings to avoid repeated env parsing."""
    return StrataSettings()


__all__ = ["StrataSettings", "get_settings"]
