"""SQL dialect helpers for the single-file SQL engine.

The query builder, the record layer and the migration DSL never spell
placeholder syntax, type names or introspection queries inline: they ask
the dialect.  Only SQLite is shipped; the protocol exists so a test double
(or a future engine) can stand in without touching the callers.

Manifesto:
    - **One place for SQL fragments:** placeholders, DEFAULT literals,
      type normalization and catalog queries live here
    - **Engine quirks are named:** no native boolean (stored as INTEGER),
      no native drop-column (see ``SchemaOps.drop_column``)

Examples:
    >>> from strata.core.dialect import SQLiteDialect
    >>> d = SQLiteDialect()
    >>> d.placeholders(3)
    '?, ?, ?'
    >>> d.normalize_type("boolean")
    'INTEGER'
    >>> d.literal("draft")
    "'draft'"

Tags:
    dialect, sql, sqlite, strata
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Dialect(Protocol):
    """SQL fragment generator consumed by the ORM and migration layers."""

    @property
    def name(self) -> str: ...

    def placeholders(self, count: int) -> str: ...

    def quote_identifier(self, name: str) -> str: ...

    def literal(self, value: Any) -> str: ...

    def normalize_type(self, type_name: str) -> str: ...

    def auto_increment(self) -> str: ...

    def timestamp_default_now(self) -> str: ...

    def table_exists_query(self) -> str: ...

    def table_sql_query(self) -> str: ...

    def index_sql_query(self) -> str: ...


# Model schema type names → storage classes.
_TYPE_MAP: dict[str, str] = {
    "integer": "INTEGER",
    "int": "INTEGER",
    "text": "TEXT",
    "string": "TEXT",
    "real": "REAL",
    "float": "REAL",
    "boolean": "INTEGER",  # no native boolean
    "bool": "INTEGER",
    "datetime": "DATETIME",
    "date": "DATE",
    "blob": "BLOB",
    "numeric": "NUMERIC",
}


class SQLiteDialect:
    """SQLite dialect — ``?`` placeholders, ``CURRENT_TIMESTAMP``."""

    @property
    def name(self) -> str:
        return "sqlite"

    # -- Placeholders ------------------------------------------------------

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "?"

    def placeholders(self, count: int) -> str:
        return ", ".join("?" for _ in range(count))

    # -- Identifiers and literals -------------------------------------------

    def quote_identifier(self, name: str) -> str:
        return '"' + name.replace('"', '""') + '"'

    def literal(self, value: Any) -> str:
        """Render a DEFAULT literal."""
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, (int, float)):
            return repr(value)
        return "'" + str(value).replace("'", "''") + "'"

    # -- DDL ---------------------------------------------------------------

    def normalize_type(self, type_name: str) -> str:
        """Map a model schema type to a column type; unknown names pass through upper-cased."""
        return _TYPE_MAP.get(type_name.lower(), type_name.upper())

    def auto_increment(self) -> str:
        return "AUTOINCREMENT"

    def timestamp_default_now(self) -> str:
        return "DEFAULT CURRENT_TIMESTAMP"

    # -- Introspection -----------------------------------------------------

    def table_exists_query(self) -> str:
        return "SELECT name FROM sqlite_master WHERE type='table' AND name = ?"

    def table_sql_query(self) -> str:
        return "SELECT sql FROM sqlite_master WHERE type='table' AND name = ?"

    def index_sql_query(self) -> str:
        return (
            "SELECT name, sql FROM sqlite_master "
            "WHERE type='index' AND tbl_name = ? AND sql IS NOT NULL"
        )


_DIALECTS: dict[str, Dialect] = {
    "sqlite": SQLiteDialect(),
}


def get_dialect(db_type: str = "sqlite") -> Dialect:
    """Get a dialect by database type name.

    Raises:
        ValueError: If ``db_type`` is not recognised.
    """
    key = db_type.lower()
    if key not in _DIALECTS:
        raise ValueError(f"Unknown dialect '{db_type}'. Supported: {sorted(_DIALECTS)}")
    return _DIALECTS[key]


__all__ = [
    "Dialect",
    "SQLiteDialect",
    "get_dialect",
]
