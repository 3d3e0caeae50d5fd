"""Database adapter base class.

Manifesto:
    The record layer and the migration engine depend on the ``Database``
    protocol, not on a driver. The abstract base class holds everything an
    adapter shares: statement instrumentation, slow-statement logging, the
    Result-returning ``transaction(fn)`` wrapper and catalog helpers built on
    ``query()``.

Features:
    - Abstract ``connect()``, ``disconnect()``, ``execute()``, ``query()``,
      ``transaction_scope()``
    - ``transaction(fn)`` returning ``Ok``/``Err`` around ``transaction_scope``
    - Statement listeners receiving ``(sql, params, elapsed_ms)``
    - Context-manager protocol for connection lifecycle

Tags:
    strata, database, abstract-base, adapter-pattern
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any, TypeVar

from strata.core.dialect import Dialect, get_dialect
from strata.core.logging import get_logger
from strata.core.protocols import StatementListener
from strata.core.result import Err, Ok, Result

from .types import ColumnInfo, DatabaseConfig, ExecuteResult, QueryResult

logger = get_logger(__name__)

T = TypeVar("T")


class DatabaseAdapter(ABC):
    """
    Abstract base class for database adapters.

    Provides common functionality and defines the interface
    that all adapters must implement.
    """

    db_type: str = "sqlite"

    def __init__(self, config: DatabaseConfig):
        self._config = config
        self._connected = False
        self._dialect: Dialect = get_dialect(self.db_type)
        self._listeners: list[StatementListener] = []

    @property
    def dialect(self) -> Dialect:
        """SQL dialect for this adapter's database type."""
        return self._dialect

    @property
    def config(self) -> DatabaseConfig:
        return self._config

    @property
    def is_connected(self) -> bool:
        """Whether adapter is connected."""
        return self._connected

    @abstractmethod
    def connect(self) -> None:
        """Establish connection to database."""
        ...

    @abstractmethod
    def disconnect(self) -> None:
        """Close connection to database."""
        ...

    @abstractmethod
    def execute(self, sql: str, params: Sequence[Any] = ()) -> ExecuteResult:
        """Execute a write statement."""
        ...

    @abstractmethod
    def query(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        """Execute a SELECT and return rows as dicts."""
        ...

    @abstractmethod
    @contextmanager
    def transaction_scope(self) -> Iterator[DatabaseAdapter]:
        """Context manager for a transaction; re-raises after rollback."""
        ...

    # -- Transactions ------------------------------------------------------

    def transaction(self, fn: Callable[[], T]) -> Result[T]:
        """Run ``fn`` inside one transaction.

        Returns ``Ok(fn())`` after COMMIT, or ``Err(exc)`` after ROLLBACK
        when ``fn`` raised.
        """
        try:
            with self.transaction_scope():
                value = fn()
        except Exception as exc:
            logger.debug("transaction.rolled_back", error=str(exc))
            return Err(exc)
        return Ok(value)

    # -- Instrumentation ---------------------------------------------------

    def add_listener(self, listener: StatementListener) -> None:
        """Register a callable notified after every statement."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StatementListener) -> None:
        self._listeners.remove(listener)

    def _observe(self, sql: str, params: Sequence[Any], started: float) -> None:
        elapsed_ms = (time.perf_counter() - started) * 1000
        if self._config.log_sql:
            logger.debug("statement", sql=sql, params=list(params), elapsed_ms=round(elapsed_ms, 3))
        if elapsed_ms > self._config.slow_query_ms:
            logger.warning("statement.slow", sql=sql, elapsed_ms=round(elapsed_ms, 3))
        for listener in self._listeners:
            listener(sql, params, elapsed_ms)

    # -- Catalog -----------------------------------------------------------

    def table_exists(self, name: str) -> bool:
        return self.query(self._dialect.table_exists_query(), (name,)).count > 0

    def get_table_schema(self, name: str) -> list[ColumnInfo]:
        """Columns of ``name`` in declaration order (empty if the table is missing)."""
        result = self.query(f"PRAGMA table_info({self._dialect.quote_identifier(name)})")
        return [
            ColumnInfo(
                name=row["name"],
                type=row["type"],
                not_null=bool(row["notnull"]),
                default=row["dflt_value"],
                primary_key=bool(row["pk"]),
            )
            for row in result.rows
        ]

    def get_table_sql(self, name: str) -> str | None:
        """The stored CREATE TABLE statement for ``name``."""
        row = self.query(self._dialect.table_sql_query(), (name,)).first()
        return row["sql"] if row else None

    def get_indexes(self, name: str) -> list[dict[str, str]]:
        """Explicitly created indexes on ``name`` as ``{"name", "sql"}`` dicts."""
        return [
            {"name": row["name"], "sql": row["sql"]}
            for row in self.query(self._dialect.index_sql_query(), (name,)).rows
        ]

    def get_index_columns(self, index_name: str) -> list[str]:
        result = self.query(f"PRAGMA index_info({self._dialect.quote_identifier(index_name)})")
        # Expression columns have no name.
        return [row["name"] for row in result.rows if row["name"] is not None]

    def __enter__(self) -> DatabaseAdapter:
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.disconnect()


__all__ = [
    "DatabaseAdapter",
]
