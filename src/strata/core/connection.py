"""Connection factory — build a connected database from settings.

This is the entry point applications use instead of instantiating
``SQLiteDatabase`` by hand: it resolves the path (explicit argument,
then ``StrataSettings.database_path``), creates the parent directory for
file databases and applies the configured pragmas.

Usage
-----
::

    from strata.core.connection import create_connection

    # From STRATA_* environment / .env
    db = create_connection()

    # Ephemeral
    db = create_connection(":memory:")

    # File-based, explicit settings
    db = create_connection(settings=StrataSettings(database_path="app.db", log_sql=True))
"""

from __future__ import annotations

from pathlib import Path

from strata.core.adapters.sqlite import SQLiteDatabase
from strata.core.logging import get_logger
from strata.core.settings import StrataSettings, get_settings

logger = get_logger(__name__)

_MEMORY_ALIASES = ("", "memory", ":memory:")


def _resolve_path(path: str) -> str:
    if path.startswith("sqlite:///"):
        path = path[len("sqlite:///"):]
    if path in _MEMORY_ALIASES:
        return ":memory:"
    if path.startswith("file:"):
        return path
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    return str(file_path.resolve())


def create_connection(
    path: str | None = None,
    *,
    settings: StrataSettings | None = None,
) -> SQLiteDatabase:
    """Create and connect a ``SQLiteDatabase``.

    Parameters
    ----------
    path:
        Database file, ``sqlite:///`` URL, or ``:memory:``.  Defaults to
        ``settings.database_path``.
    settings:
        Settings to read pragmas and logging options from.  Defaults to
        the cached ``get_settings()``.
    """
    settings = settings or get_settings()
    resolved = _resolve_path(path if path is not None else settings.database_path)

    db = SQLiteDatabase(
        resolved,
        timeout=settings.timeout,
        foreign_keys=settings.foreign_keys,
        journal_mode=settings.journal_mode,
        log_sql=settings.log_sql,
        slow_query_ms=settings.slow_query_ms,
    )
    db.connect()
    logger.info("database.opened", path=resolved)
    return db


__all__ = ["create_connection"]
