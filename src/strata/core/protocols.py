"""
Canonical protocol definitions for strata.

The record layer, the association resolver and the migration engine all
talk to storage through one narrow, synchronous collaborator. This module
is the single definition of that contract; ``SQLiteDatabase`` satisfies it
and so does any test double with the same shape.

Architecture:
    ::

        Database Protocol:
        ┌────────────────────────────────────────────────────────────┐
        │ execute(sql, params)   → ExecuteResult(success, affected,  │
        │                                        last_insert_id)     │
        │ query(sql, params)     → QueryResult(rows, count)          │
        │ transaction(fn)        → Ok(value) | Err(exc)              │
        │ table_exists(name)     → bool                              │
        │ get_table_schema(name) → list[ColumnInfo]                  │
        │ get_table_sql(name)    → CREATE TABLE text | None          │
        │ dialect                → Dialect                           │
        └────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ DON'T: Add async methods to this protocol
    ✅ DO: Keep every call blocking; the core has no suspension points

    ❌ DON'T: Add implementation logic to protocol classes
    ✅ DO: Keep protocols pure contracts — implementations go in adapters

Tags:
    protocol, database, contracts, strata
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

if TYPE_CHECKING:
    from strata.core.adapters.types import ColumnInfo, ExecuteResult, QueryResult
    from strata.core.dialect import Dialect
    from strata.core.result import Result

T = TypeVar("T")

StatementListener = Callable[[str, Sequence[Any], float], None]
"""Receives ``(sql, params, elapsed_ms)`` after every statement."""


@runtime_checkable
class Database(Protocol):
    """
    Minimal SYNCHRONOUS database collaborator.

    Write statements report constraint violations through
    ``ExecuteResult.success``; statements that cannot be prepared raise.
    ``transaction`` commits when ``fn`` returns and rolls back when it
    raises, handing the outcome back as a Result value.
    """

    @property
    def dialect(self) -> Dialect: ...

    def execute(self, sql: str, params: Sequence[Any] = ()) -> ExecuteResult: ...

    def query(self, sql: str, params: Sequence[Any] = ()) -> QueryResult: ...

    def transaction(self, fn: Callable[[], T]) -> Result[T]: ...

    def table_exists(self, name: str) -> bool: ...

    def get_table_schema(self, name: str) -> list[ColumnInfo]: ...

    def get_table_sql(self, name: str) -> str | None: ...

    def get_indexes(self, name: str) -> list[dict[str, str]]: ...

    def get_index_columns(self, index_name: str) -> list[str]: ...


__all__ = [
    "Database",
    "StatementListener",
]
