"""Versioned schema migrations for strata.

Manifesto:
    Schemas evolve through ordered, reversible units.  Each migration is a
    Python module with ``up(schema)`` and ``down(schema)``; the runner
    applies them in version order, one transaction per version, and records
    what has been applied in the ``schema_migrations`` table.

Modules
-------
runner     MigrationRunner with migrate() / rollback() / reset() / status()
schema     SchemaOps DSL and the CREATE TABLE parser behind drop_column()
generator  Timestamped migration file templates

Tags:
    strata, migrations, schema, database, DDL
"""

from strata.core.migrations.runner import (
    Migration,
    MigrationResult,
    MigrationRunner,
    MigrationStatus,
    load_migration,
)
from strata.core.migrations.schema import SchemaOps

__all__ = [
    "Migration",
    "MigrationResult",
    "MigrationRunner",
    "MigrationStatus",
    "SchemaOps",
    "load_migration",
]
