"""Database adapters -- the storage collaborator behind every record.

Manifesto:
    The record layer, the association resolver and the migration engine
    only ever see the ``Database`` protocol.  The adapter owns the driver,
    converts constraint violations into ``ExecuteResult(success=False)``,
    turns every other driver failure into ``QueryError`` and wraps
    transactions so callers receive a Result value.

Architecture::

    DatabaseAdapter (base.py)        Abstract base: listeners, transaction(fn),
        |                            catalog helpers
        |-- SQLiteDatabase           stdlib sqlite3 (sqlite.py)

    DatabaseConfig (types.py)        Connection parameters
    ExecuteResult / QueryResult      Statement outcomes
    ColumnInfo                       One PRAGMA table_info row

Guardrails:
    ❌ ``db.execute("SELECT * FROM t WHERE id=" + user_input)``
    ✅ ``db.execute("SELECT * FROM t WHERE id=?", [user_input])``

Tags:
    strata, database, adapters, sqlite
"""

from strata.core.adapters.base import DatabaseAdapter
from strata.core.adapters.sqlite import SQLiteDatabase
from strata.core.adapters.types import ColumnInfo, DatabaseConfig, ExecuteResult, QueryResult

__all__ = [
    "DatabaseAdapter",
    "SQLiteDatabase",
    "ColumnInfo",
    "DatabaseConfig",
    "ExecuteResult",
    "QueryResult",
]
