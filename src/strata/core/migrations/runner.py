"""Versioned migration runner.

Discovers ``<version>_<name>.py`` modules in the migrations directory,
tracks applied versions in the schema table and applies pending ones in
ascending version order.  Each ``up``/``down`` runs together with its
tracking-table write inside one transaction.
"""

from __future__ import annotations

import importlib.util
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from strata.core.errors import MigrationError, MigrationLoadError
from strata.core.logging import LogContext, get_logger

from .generator import generate_migration
from .schema import SchemaOps

if TYPE_CHECKING:
    from strata.core.protocols import Database
    from strata.core.settings import StrataSettings
    from strata.orm.registry import Registry

logger = get_logger(__name__)

DEFAULT_MIGRATIONS_PATH = "db/migrate"
DEFAULT_SCHEMA_TABLE = "schema_migrations"

_FILENAME = re.compile(r"^(\d+)(?:_(\w*))?\.py$")

MigrationFn = Callable[[SchemaOps], Any]


@dataclass(frozen=True)
class Migration:
    """One versioned, reversible schema change."""

    version: str
    name: str
    up: MigrationFn
    down: MigrationFn
    path: Path | None = None

    @property
    def basename(self) -> str:
        return f"{self.version}_{self.name}" if self.name else self.version


@dataclass(frozen=True)
class MigrationStatus:
    """Whether a discovered migration is currently applied."""

    version: str
    name: str
    applied: bool


@dataclass
class MigrationResult:
    """Result of a ``migrate()`` run."""

    applied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def load_migration(path: Path) -> Migration:
    """Import a migration module and read its ``up``/``down`` callables."""
    match = _FILENAME.match(path.name)
    if match is None:
        raise MigrationLoadError(f"Not a migration file name: {path.name}")
    version, name = match.group(1), match.group(2) or ""

    spec = importlib.util.spec_from_file_location(f"strata_migration_{version}", path)
    if spec is None or spec.loader is None:
        raise MigrationLoadError(f"Cannot load migration: {path}").with_context(version=version)
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise MigrationLoadError(
            f"Error importing migration {path.name}: {e}", cause=e
        ).with_context(version=version) from e

    functions = {}
    for direction in ("up", "down"):
        fn = getattr(module, direction, None)
        if not callable(fn):
            raise MigrationLoadError(
                f"Migration {path.name} must define a '{direction}' function"
            ).with_context(version=version)
        functions[direction] = fn
    return Migration(version=version, name=name, path=path, **functions)


class MigrationRunner:
    """Applies and reverts versioned migrations.

    Parameters
    ----------
    database
        Any object satisfying the ``Database`` protocol.
    migrations_path
        Directory scanned for migration modules.  Defaults to ``db/migrate``.
    schema_table
        Table recording applied versions.  Defaults to ``schema_migrations``.
    registry
        Record type registry handed to ``SchemaOps.model``.
    migrations
        In-memory ``Migration`` objects used instead of scanning a directory.

    Example::

        from strata.core.migrations import MigrationRunner

        runner = MigrationRunner(db, "db/migrate", registry=registry)
        result = runner.migrate()
        print(f"Applied {len(result.applied)} migrations")
    """

    def __init__(
        self,
        database: Database,
        migrations_path: str | Path | None = None,
        *,
        schema_table: str | None = None,
        registry: Registry | None = None,
        migrations: Iterable[Migration] | None = None,
    ) -> None:
        self._database = database
        self._migrations_path = Path(migrations_path or DEFAULT_MIGRATIONS_PATH)
        self._schema_table = schema_table or DEFAULT_SCHEMA_TABLE
        self._registry = registry
        self._migrations = list(migrations) if migrations is not None else None
        self._ensure_schema_table()

    @classmethod
    def from_settings(
        cls,
        database: Database,
        settings: StrataSettings,
        *,
        registry: Registry | None = None,
    ) -> MigrationRunner:
        return cls(
            database,
            settings.migrations_path,
            schema_table=settings.schema_table,
            registry=registry,
        )

    @property
    def migrations_path(self) -> Path:
        return self._migrations_path

    @property
    def schema_table(self) -> str:
        return self._schema_table

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def discover(self) -> list[Migration]:
        """All known migrations in ascending version order."""
        if self._migrations is not None:
            migrations = list(self._migrations)
        elif not self._migrations_path.is_dir():
            migrations = []
        else:
            migrations = [
                load_migration(path)
                for path in self._migrations_path.iterdir()
                if path.is_file() and _FILENAME.match(path.name)
            ]

        migrations.sort(key=lambda m: m.version)
        seen: set[str] = set()
        for migration in migrations:
            if migration.version in seen:
                raise MigrationLoadError(
                    f"Duplicate migration version {migration.version}"
                ).with_context(version=migration.version)
            seen.add(migration.version)
        return migrations

    def applied_versions(self) -> list[str]:
        result = self._database.query(
            f"SELECT version FROM {self._schema_table} ORDER BY version"
        )
        return [row["version"] for row in result.rows]

    def pending(self) -> list[Migration]:
        applied = set(self.applied_versions())
        return [m for m in self.discover() if m.version not in applied]

    def status(self) -> list[MigrationStatus]:
        applied = set(self.applied_versions())
        return [
            MigrationStatus(version=m.version, name=m.name, applied=m.version in applied)
            for m in self.discover()
        ]

    def migrate(self) -> MigrationResult:
        """Apply every pending migration, stopping at the first failure.

        Migrations applied before the failure stay applied; the failing one
        is rolled back and ``MigrationError`` is raised.
        """
        result = MigrationResult()
        applied = set(self.applied_versions())

        for migration in self.discover():
            if migration.version in applied:
                result.skipped.append(migration.version)
                continue
            try:
                self._run(migration, "up")
            except MigrationError as e:
                e.with_context(applied=list(result.applied))
                raise
            result.applied.append(migration.version)

        if not result.applied:
            logger.info("migration.none_pending", skipped=len(result.skipped))
        return result

    def rollback(self) -> str | None:
        """Revert the greatest applied version; ``None`` when nothing is applied."""
        versions = self.applied_versions()
        if not versions:
            logger.info("migration.nothing_to_rollback")
            return None
        version = versions[-1]
        self._run(self._find(version), "down")
        return version

    def reset(self) -> list[str]:
        """Revert every applied version, newest first, one transaction each."""
        rolled_back: list[str] = []
        for version in reversed(self.applied_versions()):
            try:
                self._run(self._find(version), "down")
            except MigrationError as e:
                e.with_context(rolled_back=list(rolled_back))
                raise
            rolled_back.append(version)
        return rolled_back

    def generate(self, name: str, directory: str | Path | None = None) -> Path:
        return generate_migration(name, directory or self._migrations_path)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_schema_table(self) -> None:
        self._database.execute(
            f"CREATE TABLE IF NOT EXISTS {self._schema_table} ("
            "version TEXT PRIMARY KEY, "
            "migrated_at DATETIME DEFAULT CURRENT_TIMESTAMP)"
        )

    def _find(self, version: str) -> Migration:
        for migration in self.discover():
            if migration.version == version:
                return migration
        raise MigrationError(
            f"Migration file not found for applied version {version}"
        ).with_context(version=version)

    def _record(self, version: str) -> None:
        outcome = self._database.execute(
            f"INSERT INTO {self._schema_table} (version) VALUES (?)", [version]
        )
        if not outcome.success:
            raise outcome.error or MigrationError(f"Could not record version {version}")

    def _forget(self, version: str) -> None:
        self._database.execute(f"DELETE FROM {self._schema_table} WHERE version = ?", [version])

    def _run(self, migration: Migration, direction: str) -> None:
        schema = SchemaOps(self._database, self._registry)

        def body() -> None:
            if direction == "up":
                migration.up(schema)
                self._record(migration.version)
            else:
                migration.down(schema)
                self._forget(migration.version)

        with LogContext(migration=migration.version, direction=direction):
            outcome = self._database.transaction(body)
        if outcome.is_err():
            error = outcome.error
            logger.error(
                "migration.failed",
                version=migration.version,
                name=migration.name,
                direction=direction,
                error=str(error),
            )
            raise MigrationError(
                f"Migration {migration.basename} failed ({direction}): {error}",
                cause=error,
            ).with_context(version=migration.version)

        event = "migration.applied" if direction == "up" else "migration.rolled_back"
        logger.info(event, version=migration.version, name=migration.name)


__all__ = [
    "Migration",
    "MigrationResult",
    "MigrationRunner",
    "MigrationStatus",
    "load_migration",
    "DEFAULT_MIGRATIONS_PATH",
    "DEFAULT_SCHEMA_TABLE",
]
