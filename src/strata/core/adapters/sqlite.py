"""SQLite database adapter."""

from __future__ import annotations

import sqlite3
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from strata.core.errors import DatabaseConnectionError, IntegrityError, QueryError
from strata.core.logging import get_logger

from .base import DatabaseAdapter
from .types import DatabaseConfig, ExecuteResult, QueryResult

logger = get_logger(__name__)


class SQLiteDatabase(DatabaseAdapter):
    """
    SQLite database adapter.

    Uses the built-in sqlite3 module in autocommit mode so that BEGIN,
    COMMIT and ROLLBACK are issued explicitly. Nested ``transaction_scope``
    calls become SAVEPOINTs: an inner failure undoes only the inner scope
    and the outer transaction decides for itself.

    Suitable for:
    - Development and testing (``:memory:``)
    - Single-process applications
    """

    db_type = "sqlite"

    def __init__(
        self,
        path: str = ":memory:",
        *,
        readonly: bool = False,
        timeout: float = 5.0,
        foreign_keys: bool = True,
        journal_mode: str | None = "WAL",
        log_sql: bool = False,
        slow_query_ms: float = 1000.0,
        **kwargs: Any,
    ):
        config = DatabaseConfig(
            path=path,
            timeout=timeout,
            foreign_keys=foreign_keys,
            journal_mode=journal_mode,
            readonly=readonly,
            log_sql=log_sql,
            slow_query_ms=slow_query_ms,
            options=kwargs,
        )
        super().__init__(config)
        self._conn: sqlite3.Connection | None = None
        self._depth = 0

    def connect(self) -> None:
        """Connect to SQLite database."""
        if self._conn is not None:
            return

        path = self._config.path
        uri = path.startswith("file:") or "?" in path

        try:
            self._conn = sqlite3.connect(
                path,
                timeout=self._config.timeout,
                isolation_level=None,
                check_same_thread=False,
                uri=uri,
            )
            self._conn.row_factory = sqlite3.Row

            if self._config.foreign_keys:
                self._conn.execute("PRAGMA foreign_keys = ON")

            if self._config.journal_mode and not self._config.is_memory:
                self._conn.execute(f"PRAGMA journal_mode = {self._config.journal_mode}")

            if self._config.readonly:
                self._conn.execute("PRAGMA query_only = ON")

            self._connected = True
            logger.debug("database.connected", path=path)

        except sqlite3.Error as e:
            raise DatabaseConnectionError(
                f"Failed to connect to SQLite: {e}",
                cause=e,
            ) from e

    def disconnect(self) -> None:
        """Close SQLite connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            self._connected = False
            self._depth = 0
            logger.debug("database.disconnected", path=self._config.path)

    def get_connection(self) -> sqlite3.Connection:
        """Get the SQLite connection, connecting on first use."""
        if self._conn is None:
            self.connect()
        assert self._conn is not None
        return self._conn

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    # -- Statements --------------------------------------------------------

    def execute(self, sql: str, params: Sequence[Any] = ()) -> ExecuteResult:
        """Execute a write statement.

        Constraint violations come back as ``success=False``; anything else
        the driver rejects raises ``QueryError``.
        """
        conn = self.get_connection()
        started = time.perf_counter()
        try:
            cursor = conn.execute(sql, tuple(params))
        except sqlite3.IntegrityError as e:
            self._observe(sql, params, started)
            logger.warning("statement.rejected", sql=sql, error=str(e))
            error = IntegrityError(f"Constraint violation: {e}", cause=e).with_context(sql=sql)
            return ExecuteResult(success=False, error=error)  # type: ignore[arg-type]
        except sqlite3.Error as e:
            raise QueryError(f"Failed to execute statement: {e}", cause=e).with_context(
                sql=sql
            ) from e

        self._observe(sql, params, started)
        return ExecuteResult(
            success=True,
            affected_rows=max(cursor.rowcount, 0),
            last_insert_id=cursor.lastrowid,
        )

    def query(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        """Execute query and return results as dicts."""
        conn = self.get_connection()
        started = time.perf_counter()
        try:
            cursor = conn.execute(sql, tuple(params))
            rows = [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise QueryError(f"Failed to run query: {e}", cause=e).with_context(sql=sql) from e

        self._observe(sql, params, started)
        columns = [desc[0] for desc in cursor.description] if cursor.description else []
        return QueryResult(rows=rows, columns=columns)

    # -- Transactions ------------------------------------------------------

    @contextmanager
    def transaction_scope(self) -> Iterator[SQLiteDatabase]:
        """Transaction context manager; nested scopes use savepoints."""
        conn = self.get_connection()
        savepoint = f"strata_sp_{self._depth}" if self._depth else None

        if savepoint:
            conn.execute(f"SAVEPOINT {savepoint}")
        else:
            conn.execute("BEGIN")
        self._depth += 1

        try:
            yield self
        except BaseException:
            self._depth -= 1
            if savepoint:
                conn.execute(f"ROLLBACK TO SAVEPOINT {savepoint}")
                conn.execute(f"RELEASE SAVEPOINT {savepoint}")
            elif conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        else:
            self._depth -= 1
            if savepoint:
                conn.execute(f"RELEASE SAVEPOINT {savepoint}")
            else:
                conn.execute("COMMIT")


__all__ = [
    "SQLiteDatabase",
]
