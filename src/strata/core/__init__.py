"""Strata Core -- database collaborator, errors, settings and migrations.

Manifesto:
    The record layer never talks to a driver directly.  ``strata.core``
    provides the narrow ``Database`` collaborator (statement execution,
    transactions, catalog introspection), the error hierarchy every layer
    raises, structured logging, settings, and the migration engine that
    evolves the schema the records live in.

    - **Sync-only:** every call blocks; there are no suspension points
    - **Result at the boundary:** ``transaction(fn)`` returns Ok/Err
    - **Protocol-first:** ``Database`` and ``Dialect`` are protocols

Architecture::

    Layer 1 -- Type System & Errors
        errors.py          StrataError hierarchy with categories and context
        result.py          Ok / Err values returned by transaction(fn)
        protocols.py       Database protocol, StatementListener

    Layer 2 -- Database
        dialect.py         SQLite placeholders, literals, type normalization
        adapters/          DatabaseAdapter base + SQLiteDatabase
        connection.py      create_connection() from settings

    Layer 3 -- Schema
        migrations/        MigrationRunner, SchemaOps DSL, file generator

    Layer 4 -- Cross-Cutting Concerns
        logging.py         structlog configuration
        settings.py        StrataSettings (STRATA_* environment)

Tags:
    strata, foundation, database, sqlite, migrations, sync-only

Doc-Types:
    package-overview, architecture-map, module-index
"""

from strata.core.adapters import (
    ColumnInfo,
    DatabaseAdapter,
    DatabaseConfig,
    ExecuteResult,
    QueryResult,
    SQLiteDatabase,
)
from strata.core.connection import create_connection
from strata.core.dialect import Dialect, SQLiteDialect, get_dialect
from strata.core.errors import (
    AssociationError,
    ConfigError,
    DatabaseConnectionError,
    DatabaseError,
    ErrorCategory,
    ErrorContext,
    IntegrityError,
    MigrationError,
    MigrationLoadError,
    QueryError,
    RecordError,
    RecordNotPersistedError,
    SchemaError,
    SchemaParseError,
    StrataError,
    UnknownAssociationError,
    UnknownAttributeError,
    UnknownRecordTypeError,
)
from strata.core.logging import configure_logging, get_logger
from strata.core.migrations import (
    Migration,
    MigrationResult,
    MigrationRunner,
    MigrationStatus,
    SchemaOps,
)
from strata.core.protocols import Database, StatementListener
from strata.core.result import Err, Ok, Result, try_result
from strata.core.settings import StrataSettings, get_settings

__all__ = [
    # adapters
    "ColumnInfo",
    "DatabaseAdapter",
    "DatabaseConfig",
    "ExecuteResult",
    "QueryResult",
    "SQLiteDatabase",
    "create_connection",
    # dialect
    "Dialect",
    "SQLiteDialect",
    "get_dialect",
    # errors
    "AssociationError",
    "ConfigError",
    "DatabaseConnectionError",
    "DatabaseError",
    "ErrorCategory",
    "ErrorContext",
    "IntegrityError",
    "MigrationError",
    "MigrationLoadError",
    "QueryError",
    "RecordError",
    "RecordNotPersistedError",
    "SchemaError",
    "SchemaParseError",
    "StrataError",
    "UnknownAssociationError",
    "UnknownAttributeError",
    "UnknownRecordTypeError",
    # logging
    "configure_logging",
    "get_logger",
    # migrations
    "Migration",
    "MigrationResult",
    "MigrationRunner",
    "MigrationStatus",
    "SchemaOps",
    # protocols
    "Database",
    "StatementListener",
    # result
    "Err",
    "Ok",
    "Result",
    "try_result",
    # settings
    "StrataSettings",
    "get_settings",
]
