"""Strata -- active-record persistence, query building and migrations for SQLite.

Quick start::

    from strata import Registry, SQLiteDatabase

    db = SQLiteDatabase(":memory:")
    registry = Registry(db)
    User = registry.define("User", validations={"email": {"format": "email"}})

    user = User.create({"name": "Alice", "email": "alice@example.com"})
    User.where({"name": "Alice"}).order("id", "DESC").first()
"""

from strata.core import (
    Err,
    MigrationRunner,
    Ok,
    SchemaOps,
    SQLiteDatabase,
    StrataError,
    StrataSettings,
    configure_logging,
    create_connection,
    get_logger,
    get_settings,
)
from strata.orm import (
    CollectionProxy,
    QueryBuilder,
    Record,
    RecordType,
    Registry,
)

__version__ = "0.1.0"

__all__ = [
    "CollectionProxy",
    "Err",
    "MigrationRunner",
    "Ok",
    "QueryBuilder",
    "Record",
    "RecordType",
    "Registry",
    "SQLiteDatabase",
    "SchemaOps",
    "StrataError",
    "StrataSettings",
    "configure_logging",
    "create_connection",
    "get_logger",
    "get_settings",
    "__version__",
]
