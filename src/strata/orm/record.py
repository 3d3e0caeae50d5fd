"""
Active-record core: record types, record instances and bulk insert.

Manifesto:
    A record type is a descriptor, not a class hierarchy.  ``RecordType``
    holds the table name, column schema, validation rules, callbacks and
    associations for one entity; ``Record`` is a plain attribute bag that
    points back at its type.  All reads and writes go through explicit
    ``get``/``set``/``read`` calls; there is no attribute interception.

    Saving writes as little as possible: inserts carry the non-null
    attributes, updates carry only the attributes that differ from the last
    persisted snapshot, and an update with nothing changed never reaches
    the database.

Architecture:
    ::

        Registry.define("User", schema=..., validations=...)
            │
            ▼
        RecordType ──query()──► QueryBuilder ──all()──► hydrate(row) ──► Record
            │                                                             │
            ├── callbacks {event: [fn, ...]}                              │
            ├── validators [fn, ...]          save(): before_* hooks      │
            ├── rules {field: RuleSet}                → valid()           │
            └── schema {field: Column}                → INSERT / UPDATE   │
                                                      → after_* hooks ◄───┘

    Record lifecycle:
        NEW ──save()──► PERSISTED ──destroy()──► DETACHED

Guardrails:
    ❌ DON'T: Expect ``save()`` to raise on a constraint violation
    ✅ DO: Check its boolean result and read ``get_errors()["base"]``

    ❌ DON'T: Rely on ``insert_all`` ids under concurrent writers
    ✅ DO: Run bulk inserts with exclusive access to the table

Tags:
    active-record, dirty-tracking, persistence, validation, strata
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from strata.core.adapters.types import ExecuteResult, QueryResult
from strata.core.dialect import Dialect
from strata.core.errors import (
    ConfigError,
    DatabaseError,
    RecordError,
    RecordNotPersistedError,
    UnknownAttributeError,
)
from strata.core.logging import get_logger
from strata.core.migrations.schema import column_definition
from strata.orm.associations import BELONGS_TO, HAS_MANY, HAS_ONE, Association
from strata.orm.query import QueryBuilder
from strata.orm.validation import RuleSet, evaluate

if TYPE_CHECKING:
    from strata.core.protocols import Database
    from strata.orm.registry import Registry

logger = get_logger(__name__)

CALLBACK_EVENTS = (
    "before_save",
    "after_save",
    "before_create",
    "after_create",
    "before_update",
    "after_update",
    "before_destroy",
    "after_destroy",
)

Callback = Callable[["Record"], Any]


# =============================================================================
# SCHEMA
# =============================================================================


@dataclass(frozen=True)
class Column:
    """One field of a record type's declared schema."""

    type: str = "text"
    primary_key: bool = False
    auto_increment: bool = False
    not_null: bool = False
    unique: bool = False
    default: Any = None

    @classmethod
    def from_definition(cls, name: str, definition: str | Mapping[str, Any] | Column) -> Column:
        """Accept ``"integer"`` shorthand or a mapping of column options."""
        if isinstance(definition, Column):
            return definition
        if isinstance(definition, str):
            return cls(type=definition)
        try:
            return cls(**definition)
        except TypeError as e:
            raise ConfigError(f"Invalid schema definition for {name!r}: {e}", cause=e) from e

    def definition(self, dialect: Dialect) -> str:
        """Column DDL after the column name, e.g. ``INTEGER PRIMARY KEY AUTOINCREMENT``."""
        return column_definition(
            dialect,
            self.type,
            primary_key=self.primary_key,
            auto_increment=self.auto_increment,
            not_null=self.not_null,
            unique=self.unique,
            default=self.default,
        )


@dataclass(frozen=True)
class BulkInsertResult:
    """Outcome of ``insert_all``.

    ``first_id`` is derived as ``last_id - inserted_count + 1`` and is only
    meaningful when the engine assigned the batch contiguous ids.
    """

    success: bool
    inserted_count: int = 0
    first_id: int | None = None
    last_id: int | None = None
    error: DatabaseError | None = None


# =============================================================================
# RECORD TYPE
# =============================================================================


class RecordType:
    """
    Descriptor for one modeled entity.

    Created through ``Registry.define``.  The table name is fixed at
    definition; schema, rules, callbacks and associations are registered
    up front and treated as read-only afterwards.
    """

    def __init__(
        self,
        registry: Registry,
        name: str,
        *,
        table_name: str | None = None,
        primary_key: str = "id",
        schema: Mapping[str, Any] | None = None,
        validations: Mapping[str, Mapping[str, Any]] | None = None,
    ):
        self.registry = registry
        self.name = name
        self._table_name = table_name or f"{name.lower()}s"
        self.primary_key = primary_key
        self.schema: dict[str, Column] = {
            field: Column.from_definition(field, definition)
            for field, definition in (schema or {}).items()
        }
        self.rules: dict[str, RuleSet] = {
            field: RuleSet.from_mapping(field, rules)
            for field, rules in (validations or {}).items()
        }
        self.callbacks: dict[str, list[Callback]] = {event: [] for event in CALLBACK_EVENTS}
        self.validators: list[Callback] = []

    @property
    def table_name(self) -> str:
        return self._table_name

    @property
    def database(self) -> Database:
        return self.registry.database

    def __repr__(self) -> str:
        return f"<RecordType {self.name} table={self._table_name}>"

    # -- Declarations ------------------------------------------------------

    def callback(self, event: str) -> Callable[[Callback], Callback]:
        """Decorator registering ``fn(record)`` for a lifecycle event.

        Example:
            >>> @User.callback("before_save")
            ... def normalize_email(user):
            ...     user.set("email", user.get("email").lower())
        """
        if event not in CALLBACK_EVENTS:
            raise ConfigError(f"Unknown callback event {event!r}; expected one of {CALLBACK_EVENTS}")

        def register(fn: Callback) -> Callback:
            self.callbacks[event].append(fn)
            return fn

        return register

    def validator(self, fn: Callback) -> Callback:
        """Decorator registering a custom validation run after the built-in rules."""
        self.validators.append(fn)
        return fn

    def run_callbacks(self, event: str, record: Record) -> None:
        for fn in self.callbacks[event]:
            fn(record)

    def belongs_to(self, name: str, **options: Any) -> Association:
        return self.registry.associations.register(self, BELONGS_TO, name, **options)

    def has_many(self, name: str, **options: Any) -> Association:
        return self.registry.associations.register(self, HAS_MANY, name, **options)

    def has_one(self, name: str, **options: Any) -> Association:
        return self.registry.associations.register(self, HAS_ONE, name, **options)

    # -- Construction ------------------------------------------------------

    def new(self, attributes: Mapping[str, Any] | None = None) -> Record:
        return Record(self, attributes)

    def hydrate(self, row: Mapping[str, Any]) -> Record:
        """Build a persisted record from a result row."""
        return Record(self, row, persisted=True)

    def create(self, attributes: Mapping[str, Any] | None = None) -> Record | None:
        """Build and save a record; ``None`` when validation or the insert fails."""
        record = self.new(attributes)
        return record if record.save() else None

    # -- Query entry points ------------------------------------------------

    def query(self) -> QueryBuilder:
        return QueryBuilder(self)

    def all(self) -> list[Record]:
        return self.query().all()

    def where(self, conditions: Mapping[str, Any] | str, params: Sequence[Any] = ()) -> QueryBuilder:
        return self.query().where(conditions, params)

    def or_where(self, conditions: Mapping[str, Any] | str, params: Sequence[Any] = ()) -> QueryBuilder:
        return self.query().or_where(conditions, params)

    def find(self, id: Any) -> Record | None:
        return self.query().find(id)

    def find_by(self, conditions: Mapping[str, Any]) -> Record | None:
        return self.query().find_by(conditions)

    def first(self) -> Record | None:
        return self.query().first()

    def last(self) -> Record | None:
        return self.query().last()

    def count(self) -> int:
        return self.query().count()

    def exists(self) -> bool:
        return self.query().exists()

    def order(self, column: str, direction: str = "ASC") -> QueryBuilder:
        return self.query().order(column, direction)

    def limit(self, count: int) -> QueryBuilder:
        return self.query().limit(count)

    def offset(self, count: int) -> QueryBuilder:
        return self.query().offset(count)

    def select(self, columns: str | Iterable[str]) -> QueryBuilder:
        return self.query().select(columns)

    def group(self, columns: str | Iterable[str]) -> QueryBuilder:
        return self.query().group(columns)

    def having(self, condition: str, params: Sequence[Any] = ()) -> QueryBuilder:
        return self.query().having(condition, params)

    def joins(self, table: str, condition: str | None = None) -> QueryBuilder:
        return self.query().joins(table, condition)

    def inner_join(self, table: str, condition: str | None = None) -> QueryBuilder:
        return self.query().inner_join(table, condition)

    def left_join(self, table: str, condition: str | None = None) -> QueryBuilder:
        return self.query().left_join(table, condition)

    def includes(self, *associations: str | Iterable[str]) -> QueryBuilder:
        return self.query().includes(*associations)

    def where_in(self, column: str, values: Iterable[Any]) -> QueryBuilder:
        return self.query().where_in(column, values)

    def where_not_in(self, column: str, values: Iterable[Any]) -> QueryBuilder:
        return self.query().where_not_in(column, values)

    def where_between(self, column: str, low: Any, high: Any) -> QueryBuilder:
        return self.query().where_between(column, low, high)

    def where_like(self, column: str, pattern: str) -> QueryBuilder:
        return self.query().where_like(column, pattern)

    def where_null(self, column: str) -> QueryBuilder:
        return self.query().where_null(column)

    def where_not_null(self, column: str) -> QueryBuilder:
        return self.query().where_not_null(column)

    def distinct(self) -> QueryBuilder:
        return self.query().distinct()

    def update_all(self, attributes: Mapping[str, Any]) -> ExecuteResult:
        return self.query().update_all(attributes)

    def destroy_all(self) -> ExecuteResult:
        return self.query().destroy_all()

    # -- Raw SQL -----------------------------------------------------------

    def query_sql(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        return self.database.query(sql, params)

    def execute_sql(self, sql: str, params: Sequence[Any] = ()) -> ExecuteResult:
        return self.database.execute(sql, params)

    # -- Bulk insert -------------------------------------------------------

    def insert_all(self, rows: Sequence[Mapping[str, Any]]) -> BulkInsertResult:
        """Insert ``rows`` with one multi-row INSERT.

        Rows may carry different keys; the column list is their union in
        first-seen order and missing values bind as NULL.
        """
        if not rows:
            return BulkInsertResult(success=True)

        columns = list(dict.fromkeys(column for row in rows for column in row))
        if not columns:
            raise RecordError(f"insert_all into {self._table_name} needs at least one column")

        dialect = self.database.dialect
        group = f"({dialect.placeholders(len(columns))})"
        sql = (
            f"INSERT INTO {self._table_name} ({', '.join(columns)}) "
            f"VALUES {', '.join([group] * len(rows))}"
        )
        params = [row.get(column) for row in rows for column in columns]

        result = self.database.execute(sql, params)
        if not result.success:
            logger.warning(
                "record.bulk_insert_failed",
                record_type=self.name,
                rows=len(rows),
                error=str(result.error),
            )
            return BulkInsertResult(success=False, error=result.error)

        inserted = result.affected_rows
        last_id = result.last_insert_id
        first_id = last_id - inserted + 1 if last_id is not None else None
        logger.debug(
            "record.bulk_inserted",
            record_type=self.name,
            inserted=inserted,
            first_id=first_id,
            last_id=last_id,
        )
        return BulkInsertResult(
            success=True, inserted_count=inserted, first_id=first_id, last_id=last_id
        )

    def create_all(self, rows: Sequence[Mapping[str, Any]]) -> list[Record] | None:
        """``insert_all`` then build persisted records, assigning ids in order."""
        result = self.insert_all(rows)
        if not result.success:
            return None
        if not rows:
            return []
        return [
            self.hydrate({**row, self.primary_key: result.first_id + offset})
            for offset, row in enumerate(rows)
        ]


# =============================================================================
# RECORD
# =============================================================================


class Record:
    """
    One row of a record type, new or persisted.

    ``changed_attributes`` maps each attribute written since the last save
    to ``{"old": <baseline>, "new": <current>}`` and is only kept while the
    record is persisted.  Writing a value equal to the baseline removes the
    entry again.
    """

    def __init__(
        self,
        record_type: RecordType,
        attributes: Mapping[str, Any] | None = None,
        *,
        persisted: bool = False,
    ):
        self.record_type = record_type
        self._attributes: dict[str, Any] = dict(attributes or {})
        self._original: dict[str, Any] = {}
        self._changes: dict[str, dict[str, Any]] = {}
        self._errors: dict[str, list[str]] = {}
        self._association_cache: dict[str, Any] = {}
        self._persisted = False

        if persisted:
            self._mark_clean()

    # -- Attributes --------------------------------------------------------

    def get(self, name: str, default: Any = None) -> Any:
        return self._attributes.get(name, default)

    def set(self, name: str, value: Any) -> None:
        previous = self._attributes.get(name)
        self._attributes[name] = value

        if self._persisted:
            baseline = self._original.get(name)
            if value == baseline:
                self._changes.pop(name, None)
            else:
                self._changes[name] = {"old": baseline, "new": value}

        if value != previous:
            self._bust_belongs_to(name)

    def _bust_belongs_to(self, foreign_key: str) -> None:
        associations = self.record_type.registry.associations.for_type(self.record_type)
        for association in associations.values():
            if association.kind == BELONGS_TO and association.foreign_key == foreign_key:
                self._association_cache.pop(association.name, None)

    def read(self, name: str) -> Any:
        """Attribute value, else association value, else ``UnknownAttributeError``."""
        if name in self._attributes or name in self.record_type.schema:
            return self._attributes.get(name)
        if self.record_type.registry.associations.has(self.record_type, name):
            return self.association(name)
        raise UnknownAttributeError(self.record_type.name, name)

    def __getitem__(self, name: str) -> Any:
        return self.read(name)

    def __setitem__(self, name: str, value: Any) -> None:
        self.set(name, value)

    def __contains__(self, name: object) -> bool:
        return name in self._attributes

    @property
    def id(self) -> Any:
        return self._attributes.get(self.record_type.primary_key)

    @property
    def attributes(self) -> dict[str, Any]:
        return dict(self._attributes)

    def to_dict(self, include: Iterable[str] = ()) -> dict[str, Any]:
        """Attributes plus the named associations, serialized recursively."""
        data = dict(self._attributes)
        for name in include:
            value = self.association(name)
            if value is None:
                data[name] = None
            elif isinstance(value, Record):
                data[name] = value.to_dict()
            else:
                data[name] = [item.to_dict() for item in value]
        return data

    # -- Associations ------------------------------------------------------

    def association(self, name: str) -> Any:
        return self.record_type.registry.associations.load(self, name)

    def reset_association(self, name: str | None = None) -> None:
        if name is None:
            self._association_cache.clear()
        else:
            self._association_cache.pop(name, None)

    # -- State -------------------------------------------------------------

    @property
    def persisted(self) -> bool:
        return self._persisted

    @property
    def new_record(self) -> bool:
        return not self._persisted

    @property
    def changed_attributes(self) -> dict[str, dict[str, Any]]:
        return {name: dict(change) for name, change in self._changes.items()}

    @property
    def changed(self) -> bool:
        return bool(self._changes)

    def _mark_clean(self) -> None:
        self._persisted = True
        self._changes.clear()
        self._original = dict(self._attributes)

    # -- Errors ------------------------------------------------------------

    @property
    def errors(self) -> dict[str, list[str]]:
        return {name: list(messages) for name, messages in self._errors.items()}

    def get_errors(self) -> dict[str, list[str]]:
        return self.errors

    def add_error(self, name: str, message: str) -> None:
        self._errors.setdefault(name, []).append(message)

    def clear_errors(self) -> None:
        self._errors.clear()

    def has_errors(self) -> bool:
        return bool(self._errors)

    # -- Validation --------------------------------------------------------

    def valid(self) -> bool:
        """Run the built-in rules, then every custom validator."""
        self.clear_errors()
        for name, rules in self.record_type.rules.items():
            evaluate(self, name, rules)
        for validator in self.record_type.validators:
            validator(self)
        return not self.has_errors()

    def invalid(self) -> bool:
        return not self.valid()

    # -- Persistence -------------------------------------------------------

    def save(self) -> bool:
        """Validate and write the record; ``False`` on validation or storage failure."""
        record_type = self.record_type
        creating = not self._persisted

        record_type.run_callbacks("before_save", self)
        record_type.run_callbacks("before_create" if creating else "before_update", self)

        if not self.valid():
            logger.debug("record.invalid", record_type=record_type.name, errors=self.errors)
            return False

        saved = self._insert() if creating else self._update()
        if not saved:
            return False

        record_type.run_callbacks("after_save", self)
        record_type.run_callbacks("after_create" if creating else "after_update", self)
        self._mark_clean()
        return True

    def _insert(self) -> bool:
        record_type = self.record_type
        pk = record_type.primary_key
        values = {name: value for name, value in self._attributes.items() if value is not None}

        if values:
            placeholders = record_type.database.dialect.placeholders(len(values))
            sql = (
                f"INSERT INTO {record_type.table_name} ({', '.join(values)}) "
                f"VALUES ({placeholders})"
            )
        else:
            sql = f"INSERT INTO {record_type.table_name} DEFAULT VALUES"

        result = record_type.database.execute(sql, list(values.values()))
        if not result.success:
            self._persistence_failed("insert", result)
            return False

        if self._attributes.get(pk) is None:
            self._attributes[pk] = result.last_insert_id
        return True

    def _update(self) -> bool:
        if not self._changes:
            return True

        record_type = self.record_type
        pk = record_type.primary_key
        assignments = ", ".join(f"{name} = ?" for name in self._changes)
        params = [self._attributes.get(name) for name in self._changes]
        params.append(self._original.get(pk, self.get(pk)))

        sql = f"UPDATE {record_type.table_name} SET {assignments} WHERE {pk} = ?"
        result = record_type.database.execute(sql, params)
        if not result.success:
            self._persistence_failed("update", result)
            return False
        return True

    def _persistence_failed(self, operation: str, result: ExecuteResult) -> None:
        error = result.error
        message = str(error.cause) if error is not None and error.cause else str(error)
        self.add_error("base", message)
        logger.warning(
            "record.persist_failed",
            record_type=self.record_type.name,
            table=self.record_type.table_name,
            operation=operation,
            error=message,
        )

    def update(self, attributes: Mapping[str, Any]) -> bool:
        for name, value in attributes.items():
            self.set(name, value)
        return self.save()

    def destroy(self) -> bool:
        """Delete the row; the instance stays usable but is no longer persisted."""
        if not self._persisted:
            return False

        record_type = self.record_type
        pk = record_type.primary_key
        record_type.run_callbacks("before_destroy", self)

        sql = f"DELETE FROM {record_type.table_name} WHERE {pk} = ?"
        result = record_type.database.execute(sql, [self._original.get(pk, self.get(pk))])
        if not result.success:
            self._persistence_failed("destroy", result)
            return False

        record_type.run_callbacks("after_destroy", self)
        self._persisted = False
        self._changes.clear()
        return True

    def reload(self) -> Record:
        """Re-read the row, discarding unsaved changes and cached associations."""
        record_type = self.record_type
        pk = record_type.primary_key
        key = self._original.get(pk, self.get(pk))
        if not self._persisted or key is None:
            raise RecordNotPersistedError(
                f"Cannot reload a {record_type.name} that has not been saved"
            ).with_context(record_type=record_type.name)

        row = record_type.query_sql(
            f"SELECT * FROM {record_type.table_name} WHERE {pk} = ? LIMIT 1", [key]
        ).first()
        if row is None:
            raise RecordNotPersistedError(
                f"{record_type.name} {key} no longer exists"
            ).with_context(record_type=record_type.name, table=record_type.table_name)

        self._attributes = dict(row)
        self._association_cache.clear()
        self.clear_errors()
        self._mark_clean()
        return self

    def __repr__(self) -> str:
        fields = " ".join(f"{name}={value!r}" for name, value in self._attributes.items())
        return f"<{self.record_type.name} {fields}>" if fields else f"<{self.record_type.name}>"


__all__ = [
    "BulkInsertResult",
    "CALLBACK_EVENTS",
    "Column",
    "Record",
    "RecordType",
]
