"""Database value types and configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from strata.core.errors import DatabaseError


@dataclass
class DatabaseConfig:
    """
    Configuration for a SQLite database connection.

    Built from ``StrataSettings`` by ``connect()`` or passed directly.
    """

    path: str = ":memory:"
    timeout: float = 5.0
    foreign_keys: bool = True
    journal_mode: str | None = "WAL"
    readonly: bool = False

    # Statement logging
    log_sql: bool = False
    slow_query_ms: float = 1000.0

    # Extra options (driver-specific)
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def is_memory(self) -> bool:
        return self.path == ":memory:" or self.path.startswith("file::memory:")


@dataclass(frozen=True)
class ExecuteResult:
    """Outcome of a write statement.

    ``success`` is False when the engine rejected the row (constraint
    violation); ``error`` then carries the driver's exception.
    """

    success: bool
    affected_rows: int = 0
    last_insert_id: int | None = None
    error: DatabaseError | None = None


@dataclass(frozen=True)
class QueryResult:
    """Rows returned by a SELECT, each as a column → value dict."""

    rows: list[dict[str, Any]] = field(default_factory=list)
    columns: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.rows)

    def first(self) -> dict[str, Any] | None:
        return self.rows[0] if self.rows else None

    def scalar(self, default: Any = None) -> Any:
        """First column of the first row."""
        if not self.rows:
            return default
        return next(iter(self.rows[0].values()), default)


@dataclass(frozen=True)
class ColumnInfo:
    """One column as reported by ``PRAGMA table_info``."""

    name: str
    type: str
    not_null: bool = False
    default: Any = None
    primary_key: bool = False


__all__ = [
    "DatabaseConfig",
    "ExecuteResult",
    "QueryResult",
    "ColumnInfo",
]
