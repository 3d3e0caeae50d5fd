"""
Schema-mutation DSL handed to migration ``up``/``down`` functions.

Manifesto:
    Migration bodies describe schema changes, not SQL plumbing.  Each call
    here issues one or more statements against the database the runner was
    given; the runner wraps the whole body in a transaction, so a failure
    anywhere leaves the schema as it was.

    SQLite has no ``DROP COLUMN`` that works on every table shape, so
    ``drop_column`` rebuilds the table from its stored ``CREATE TABLE``
    text: every surviving column keeps its original type and constraint
    text byte for byte.

Architecture:
    ::

        drop_column("products", "legacy")
            │
            ├── get_table_sql ──► parse_create_table ──► split_definitions
            │                      (quote- and paren-aware: NUMERIC(10,2))
            ├── CREATE TABLE products_tmp (<surviving definitions>)
            ├── INSERT INTO products_tmp (cols) SELECT cols FROM products
            ├── DROP TABLE products
            ├── ALTER TABLE products_tmp RENAME TO products
            └── re-create indexes that did not cover "legacy"

        all inside database.transaction(...) (a SAVEPOINT under a migration)

Guardrails:
    ❌ DON'T: Drop a column named in a table-level PRIMARY KEY/UNIQUE/CHECK
    ✅ DO: Expect ``SchemaParseError``; rewrite the table explicitly instead

    ❌ DON'T: Run drop_column while another connection writes the table
    ✅ DO: Treat the rebuild as requiring exclusive access

Tags:
    migrations, ddl, drop-column, sqlite, strata
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from strata.core.adapters.types import ExecuteResult
from strata.core.errors import SchemaError, SchemaParseError
from strata.core.logging import get_logger

if TYPE_CHECKING:
    from strata.core.dialect import Dialect
    from strata.core.protocols import Database
    from strata.orm.record import RecordType
    from strata.orm.registry import Registry

logger = get_logger(__name__)

_QUOTES = {'"': '"', "'": "'", "`": "`", "[": "]"}

_CONSTRAINT_KEYWORDS = frozenset({"CONSTRAINT", "PRIMARY", "UNIQUE", "CHECK", "FOREIGN"})

_LEADING_NAME = re.compile(
    r'^\s*(?:"((?:[^"]|"")+)"|`([^`]+)`|\[([^\]]+)\]|([A-Za-z_][\w$]*))'
)

_FOREIGN_KEY_COLUMNS = re.compile(r"\bFOREIGN\s+KEY\s*\(([^)]*)\)", re.IGNORECASE)

TIMESTAMP_COLUMNS = ("created_at", "updated_at")


# =============================================================================
# CREATE TABLE PARSING
# =============================================================================


def _scan(text: str) -> list[tuple[int, str, int]]:
    """Structural characters outside quotes as ``(index, char, depth_before)``.

    Raises ``SchemaParseError`` on unbalanced parentheses or an
    unterminated quoted section.
    """
    found: list[tuple[int, str, int]] = []
    depth = 0
    closing: str | None = None
    for index, char in enumerate(text):
        if closing is not None:
            if char == closing:
                closing = None
            continue
        if char in _QUOTES:
            closing = _QUOTES[char]
        elif char == "(":
            found.append((index, char, depth))
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise SchemaParseError(f"Unbalanced ')' at offset {index}")
            found.append((index, char, depth))
        elif char == ",":
            found.append((index, char, depth))
    if closing is not None:
        raise SchemaParseError("Unterminated quoted identifier or literal")
    if depth != 0:
        raise SchemaParseError("Unbalanced '(' in table definition")
    return found


def split_definitions(body: str) -> list[str]:
    """Split a column list on top-level commas.

    Commas nested in parentheses (``NUMERIC(10,2)``, ``CHECK (a IN (1,2))``)
    or inside quotes do not split.
    """
    pieces: list[str] = []
    start = 0
    for index, char, depth in _scan(body):
        if char == "," and depth == 0:
            pieces.append(body[start:index].strip())
            start = index + 1
    pieces.append(body[start:].strip())
    if any(not piece for piece in pieces):
        raise SchemaParseError("Empty column definition in table body")
    return pieces


def parse_create_table(sql: str) -> tuple[str, list[str], str]:
    """Split ``CREATE TABLE`` text into (head, definitions, trailing options)."""
    structure = _scan(sql)
    opening = next((item for item in structure if item[1] == "(" and item[2] == 0), None)
    if opening is None:
        raise SchemaParseError(f"No column list in table definition: {sql!r}")
    closing = next(
        (item for item in structure if item[1] == ")" and item[2] == 0 and item[0] > opening[0]),
        None,
    )
    if closing is None:
        raise SchemaParseError(f"Unterminated column list in table definition: {sql!r}")
    head = sql[: opening[0]].strip()
    body = sql[opening[0] + 1 : closing[0]]
    tail = sql[closing[0] + 1 :].strip()
    return head, split_definitions(body), tail


def definition_name(definition: str) -> str:
    """Column name at the start of a column definition, unquoted."""
    match = _LEADING_NAME.match(definition)
    if match is None:
        raise SchemaParseError(f"Cannot read column name from {definition!r}")
    quoted, backticked, bracketed, bare = match.groups()
    if quoted is not None:
        return quoted.replace('""', '"')
    return backticked or bracketed or bare


def is_table_constraint(definition: str) -> bool:
    stripped = definition.lstrip()
    if stripped[:1] in _QUOTES:
        return False
    first = re.split(r"[\s(]", stripped, maxsplit=1)[0].upper()
    return first in _CONSTRAINT_KEYWORDS


def mentions_column(definition: str, column: str) -> bool:
    pattern = rf"(?<![\w$]){re.escape(column)}(?![\w$])"
    return re.search(pattern, definition, re.IGNORECASE) is not None


def constraint_mentions_column(definition: str, column: str) -> bool:
    """Whether a table constraint depends on the local ``column``.

    Only the local column list of a ``FOREIGN KEY`` counts; the columns
    after ``REFERENCES`` belong to the parent table.
    """
    foreign = _FOREIGN_KEY_COLUMNS.search(definition)
    if foreign is not None:
        return mentions_column(foreign.group(1), column)
    return mentions_column(definition, column)


def index_mentions_column(index_sql: str, column: str) -> bool:
    """Whether ``CREATE INDEX`` text uses ``column`` in its key or WHERE clause."""
    _, _, rest = index_sql.partition("(")
    return mentions_column(rest, column)


def column_definition(
    dialect: Dialect,
    type_name: str,
    *,
    primary_key: bool = False,
    auto_increment: bool = False,
    not_null: bool = False,
    unique: bool = False,
    default: Any = None,
) -> str:
    """Column DDL after the name, e.g. ``INTEGER PRIMARY KEY AUTOINCREMENT``.

    NOT NULL and UNIQUE are implied by PRIMARY KEY and left out for it.
    """
    parts = [dialect.normalize_type(type_name)]
    if primary_key:
        parts.append("PRIMARY KEY")
        if auto_increment:
            parts.append(dialect.auto_increment())
    else:
        if not_null:
            parts.append("NOT NULL")
        if unique:
            parts.append("UNIQUE")
    if default is not None:
        parts.append(f"DEFAULT {dialect.literal(default)}")
    return " ".join(parts)


# =============================================================================
# SCHEMA OPERATIONS
# =============================================================================


class SchemaOps:
    """
    Schema changes available to migration bodies.

    ``registry`` is optional; it is needed only by ``model(name)`` and so by
    migrations that look record types up by name.
    """

    def __init__(self, database: Database, registry: Registry | None = None):
        self._database = database
        self._registry = registry

    @property
    def database(self) -> Database:
        return self._database

    def _quote(self, name: str) -> str:
        return self._database.dialect.quote_identifier(name)

    def _run(self, sql: str, params: Sequence[Any] = ()) -> ExecuteResult:
        result = self._database.execute(sql, params)
        if not result.success:
            error = result.error
            raise SchemaError(
                f"Schema statement rejected: {error}", cause=error
            ).with_context(sql=sql)
        return result

    # -- Raw ---------------------------------------------------------------

    def execute(self, sql: str, params: Sequence[Any] = ()) -> ExecuteResult:
        return self._run(sql, params)

    # -- Introspection -----------------------------------------------------

    def table_exists(self, table: str) -> bool:
        return self._database.table_exists(table)

    def column_names(self, table: str) -> list[str]:
        return [column.name for column in self._database.get_table_schema(table)]

    # -- Tables ------------------------------------------------------------

    def create_table(
        self,
        table: str,
        columns: Mapping[str, str] | Iterable[tuple[str, str]],
        *,
        if_not_exists: bool = False,
    ) -> ExecuteResult:
        """``CREATE TABLE`` from ``{column: "TYPE CONSTRAINTS"}`` in insertion order."""
        items = columns.items() if isinstance(columns, Mapping) else columns
        definitions = [f"{name} {definition}".strip() for name, definition in items]
        if not definitions:
            raise SchemaError(f"create_table({table!r}) needs at least one column")
        guard = "IF NOT EXISTS " if if_not_exists else ""
        result = self._run(f"CREATE TABLE {guard}{table} ({', '.join(definitions)})")
        logger.debug("schema.table_created", table=table, columns=len(definitions))
        return result

    def drop_table(self, table: str) -> ExecuteResult:
        return self._run(f"DROP TABLE IF EXISTS {table}")

    def rename_table(self, old_name: str, new_name: str) -> ExecuteResult:
        return self._run(f"ALTER TABLE {old_name} RENAME TO {new_name}")

    # -- Columns -----------------------------------------------------------

    def add_column(self, table: str, column: str, definition: str) -> ExecuteResult:
        return self._run(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    def rename_column(self, table: str, old_name: str, new_name: str) -> ExecuteResult:
        return self._run(f"ALTER TABLE {table} RENAME COLUMN {old_name} TO {new_name}")

    def drop_column(self, table: str, column: str) -> None:
        """Remove ``column`` by rebuilding ``table``.

        Runs in its own transaction, which becomes a savepoint inside a
        migration; on failure the original table is left untouched and the
        error is re-raised.
        """
        self._database.transaction(lambda: self._rebuild_without(table, column)).unwrap()

    def _rebuild_without(self, table: str, column: str) -> None:
        original_sql = self._database.get_table_sql(table)
        if original_sql is None:
            raise SchemaError(f"Table not found: {table}").with_context(table=table)

        try:
            _, definitions, tail = parse_create_table(original_sql)
        except SchemaParseError as e:
            e.with_context(table=table, sql=original_sql)
            raise

        kept: list[str] = []
        kept_columns: list[str] = []
        dropped = False
        for definition in definitions:
            if is_table_constraint(definition):
                if constraint_mentions_column(definition, column):
                    raise SchemaParseError(
                        f"Cannot drop {table}.{column}: referenced by table constraint "
                        f"{definition!r}"
                    ).with_context(table=table, sql=original_sql)
                kept.append(definition)
                continue
            name = definition_name(definition)
            if name.lower() == column.lower():
                dropped = True
                continue
            kept.append(definition)
            kept_columns.append(name)

        if not dropped:
            raise SchemaError(f"Column not found: {table}.{column}").with_context(table=table)
        if not kept_columns:
            raise SchemaError(f"Cannot drop the only column of {table}").with_context(table=table)

        indexes = [
            index
            for index in self._database.get_indexes(table)
            if not index_mentions_column(index["sql"], column)
            and column.lower()
            not in (name.lower() for name in self._database.get_index_columns(index["name"]))
        ]

        temp = f"{table}_tmp"
        columns_sql = ", ".join(self._quote(name) for name in kept_columns)
        create_sql = f"CREATE TABLE {temp} ({', '.join(kept)})"
        if tail:
            create_sql = f"{create_sql} {tail}"

        logger.debug("schema.drop_column.rebuild", table=table, column=column, temp=temp)
        self._run(create_sql)
        self._run(f"INSERT INTO {temp} ({columns_sql}) SELECT {columns_sql} FROM {table}")
        self._run(f"DROP TABLE {table}")
        self._run(f"ALTER TABLE {temp} RENAME TO {table}")
        for index in indexes:
            self._run(index["sql"])
        logger.debug(
            "schema.drop_column.done", table=table, column=column, indexes=len(indexes)
        )

    # -- Indexes -----------------------------------------------------------

    def add_index(
        self,
        table: str,
        columns: str | Sequence[str],
        name: str | None = None,
        *,
        unique: bool = False,
    ) -> ExecuteResult:
        """``CREATE INDEX``; the name defaults to ``idx_<table>_<columns>``."""
        column_list = [columns] if isinstance(columns, str) else list(columns)
        name = name or f"idx_{table}_{'_'.join(column_list)}"
        kind = "UNIQUE INDEX" if unique else "INDEX"
        return self._run(f"CREATE {kind} {name} ON {table} ({', '.join(column_list)})")

    def remove_index(self, name: str) -> ExecuteResult:
        return self._run(f"DROP INDEX IF EXISTS {name}")

    # -- Record types ------------------------------------------------------

    def model(self, name: str) -> RecordType:
        """Look up a record type by name in the runner's registry."""
        if self._registry is None:
            raise SchemaError(f"No registry configured; cannot resolve record type {name!r}")
        return self._registry.get(name)

    def create_table_from_model(
        self, record_type: RecordType, *, timestamps: bool = True
    ) -> ExecuteResult:
        """Create ``record_type.table_name`` from its declared schema.

        ``created_at``/``updated_at`` columns are appended unless
        ``timestamps=False`` or the schema already declares them.
        """
        if not record_type.schema:
            raise SchemaError(f"{record_type.name} declares no schema").with_context(
                record_type=record_type.name
            )
        dialect = self._database.dialect
        columns = {
            name: column.definition(dialect) for name, column in record_type.schema.items()
        }
        if timestamps:
            for name in TIMESTAMP_COLUMNS:
                columns.setdefault(name, f"DATETIME {dialect.timestamp_default_now()}")
        return self.create_table(record_type.table_name, columns)

    def add_field_to_model(
        self,
        record_type: RecordType,
        field: str,
        field_type: str,
        *,
        not_null: bool = False,
        unique: bool = False,
        default: Any = None,
    ) -> ExecuteResult:
        definition = column_definition(
            self._database.dialect, field_type, not_null=not_null, unique=unique, default=default
        )
        return self.add_column(record_type.table_name, field, definition)

    def remove_field_from_model(self, record_type: RecordType, field: str) -> None:
        self.drop_column(record_type.table_name, field)

    def rename_field_in_model(
        self, record_type: RecordType, old_name: str, new_name: str
    ) -> ExecuteResult:
        return self.rename_column(record_type.table_name, old_name, new_name)


__all__ = [
    "SchemaOps",
    "parse_create_table",
    "split_definitions",
    "definition_name",
    "is_table_constraint",
    "constraint_mentions_column",
    "index_mentions_column",
    "column_definition",
]
