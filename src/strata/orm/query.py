"""
Immutable, chainable SELECT/UPDATE/DELETE assembler.

Manifesto:
    A partially built query is a value. ``base = Post.where({"published": 1})``
    can be branched into ``base.order("title")`` and ``base.limit(5)`` without
    either branch seeing the other's clauses. Nothing touches the database
    until a terminal method (``all``, ``first``, ``count``, ``exists``,
    ``pluck``, ``update_all``, ``destroy_all``) renders and runs it.

Architecture:
    ::

        RecordType.where(...) ──► QueryBuilder (frozen dataclass)
                                      │  .where / .order / .joins / ...
                                      │  each returns dataclasses.replace(...)
                                      ▼
                                 to_sql() + params
                                      │
              ┌───────────────────────┼──────────────────────┐
              ▼                       ▼                      ▼
          all() → hydrate        count() → scalar      update_all / destroy_all
              │                                        (WHERE state only)
              ▼
          eager_load(includes)

    Rendered clause order:
        SELECT <select> FROM <table> [JOIN ...] [WHERE ... AND ...]
        [GROUP BY ...] [HAVING ... AND ...] [ORDER BY ...] [LIMIT n] [OFFSET n]

    Parameters are WHERE params followed by HAVING params, matching the
    left-to-right order of ``?`` placeholders.

Guardrails:
    ❌ DON'T: Interpolate values into fragments
    ✅ DO: ``where("age > ?", [18])`` and let the driver bind

    ❌ DON'T: Expect ``update_all``/``destroy_all`` to honour ORDER/LIMIT/JOIN
    ✅ DO: Narrow the target rows with WHERE clauses only

Tags:
    query-builder, sql, immutable, strata
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from strata.core.adapters.types import ExecuteResult

if TYPE_CHECKING:
    from strata.orm.record import Record, RecordType

Conditions = Mapping[str, Any] | str

_DIRECTION = re.compile(r"\s+(ASC|DESC)\s*$", re.IGNORECASE)


def _as_list(value: str | Iterable[str]) -> list[str]:
    if isinstance(value, str):
        return [value]
    return list(value)


def _fragments(conditions: Conditions, params: Sequence[Any]) -> tuple[list[str], list[Any]]:
    """Turn a condition mapping or raw fragment into (fragments, params)."""
    if isinstance(conditions, Mapping):
        return [f"{column} = ?" for column in conditions], list(conditions.values())
    return [conditions], list(params)


def reverse_order(clause: str) -> str:
    """Flip the direction of one ORDER BY entry (no direction means ASC)."""
    match = _DIRECTION.search(clause)
    if match is None:
        return f"{clause} DESC"
    flipped = "ASC" if match.group(1).upper() == "DESC" else "DESC"
    return clause[: match.start()] + " " + flipped


@dataclass(frozen=True)
class QueryBuilder:
    """
    A query under construction against one record type.

    Every builder method returns a new instance; the receiver is never
    changed, so partial queries can be shared and branched freely.
    """

    record_type: RecordType
    select_clause: str = "*"
    where_clauses: tuple[str, ...] = ()
    where_params: tuple[Any, ...] = ()
    join_clauses: tuple[str, ...] = ()
    group_clauses: tuple[str, ...] = ()
    having_clauses: tuple[str, ...] = ()
    having_params: tuple[Any, ...] = ()
    order_clauses: tuple[str, ...] = ()
    limit_value: int | None = None
    offset_value: int | None = None
    include_names: tuple[str, ...] = ()

    @property
    def table_name(self) -> str:
        return self.record_type.table_name

    @property
    def database(self):
        return self.record_type.database

    # -- Projection --------------------------------------------------------

    def select(self, columns: str | Iterable[str]) -> QueryBuilder:
        return replace(self, select_clause=", ".join(_as_list(columns)))

    def distinct(self) -> QueryBuilder:
        if self.select_clause.upper().startswith("DISTINCT"):
            return self
        return replace(self, select_clause=f"DISTINCT {self.select_clause}")

    # -- Filtering ---------------------------------------------------------

    def where(self, conditions: Conditions, params: Sequence[Any] = ()) -> QueryBuilder:
        """AND a condition onto the query.

        A mapping becomes one ``column = ?`` fragment per key; a string is
        used verbatim with ``params`` bound in order.
        """
        fragments, values = _fragments(conditions, params)
        return replace(
            self,
            where_clauses=self.where_clauses + tuple(fragments),
            where_params=self.where_params + tuple(values),
        )

    def or_where(self, conditions: Conditions, params: Sequence[Any] = ()) -> QueryBuilder:
        """OR a condition with the most recent WHERE fragment."""
        if not self.where_clauses:
            return self.where(conditions, params)
        fragments, values = _fragments(conditions, params)
        last = self.where_clauses[-1]
        combined = f"({last} OR {' AND '.join(fragments)})"
        return replace(
            self,
            where_clauses=self.where_clauses[:-1] + (combined,),
            where_params=self.where_params + tuple(values),
        )

    def where_in(self, column: str, values: Iterable[Any]) -> QueryBuilder:
        values = list(values)
        if not values:
            return self.where("1=0")
        placeholders = self.database.dialect.placeholders(len(values))
        return self.where(f"{column} IN ({placeholders})", values)

    def where_not_in(self, column: str, values: Iterable[Any]) -> QueryBuilder:
        values = list(values)
        if not values:
            return self
        placeholders = self.database.dialect.placeholders(len(values))
        return self.where(f"{column} NOT IN ({placeholders})", values)

    def where_between(self, column: str, low: Any, high: Any) -> QueryBuilder:
        return self.where(f"{column} BETWEEN ? AND ?", [low, high])

    def where_like(self, column: str, pattern: str) -> QueryBuilder:
        return self.where(f"{column} LIKE ?", [pattern])

    def where_null(self, column: str) -> QueryBuilder:
        return self.where(f"{column} IS NULL")

    def where_not_null(self, column: str) -> QueryBuilder:
        return self.where(f"{column} IS NOT NULL")

    # -- Joins -------------------------------------------------------------

    def _default_join_condition(self, other_table: str) -> str:
        table = self.table_name
        singular = table[:-1] if table.endswith("s") else table
        pk = self.record_type.primary_key
        return f"{table}.{pk} = {other_table}.{singular}_id"

    def _join(self, kind: str, table: str, condition: str | None) -> QueryBuilder:
        condition = condition or self._default_join_condition(table)
        return replace(
            self, join_clauses=self.join_clauses + (f"{kind} JOIN {table} ON {condition}",)
        )

    def joins(self, table: str, condition: str | None = None) -> QueryBuilder:
        """INNER JOIN ``table``; the condition defaults to ``<table>.<owner>_id``."""
        return self._join("INNER", table, condition)

    def inner_join(self, table: str, condition: str | None = None) -> QueryBuilder:
        return self._join("INNER", table, condition)

    def left_join(self, table: str, condition: str | None = None) -> QueryBuilder:
        return self._join("LEFT", table, condition)

    def right_join(self, table: str, condition: str | None = None) -> QueryBuilder:
        return self._join("RIGHT", table, condition)

    # -- Grouping, ordering, paging ----------------------------------------

    def group(self, columns: str | Iterable[str]) -> QueryBuilder:
        return replace(self, group_clauses=self.group_clauses + tuple(_as_list(columns)))

    def having(self, condition: str, params: Sequence[Any] = ()) -> QueryBuilder:
        return replace(
            self,
            having_clauses=self.having_clauses + (condition,),
            having_params=self.having_params + tuple(params),
        )

    def order(self, column: str, direction: str = "ASC") -> QueryBuilder:
        """Append an ORDER BY entry.

        A column that already contains whitespace (``"created_at DESC"``) is
        taken verbatim.
        """
        clause = column if re.search(r"\s", column) else f"{column} {direction.upper()}"
        return replace(self, order_clauses=self.order_clauses + (clause,))

    def limit(self, count: int | None) -> QueryBuilder:
        return replace(self, limit_value=count)

    def offset(self, count: int | None) -> QueryBuilder:
        return replace(self, offset_value=count)

    def includes(self, *associations: str | Iterable[str]) -> QueryBuilder:
        """Eager-load the named associations when the query runs."""
        names: list[str] = []
        for item in associations:
            names.extend(_as_list(item))
        return replace(self, include_names=self.include_names + tuple(names))

    # -- Rendering ---------------------------------------------------------

    @property
    def params(self) -> list[Any]:
        """Bound values in placeholder order: WHERE first, then HAVING."""
        return [*self.where_params, *self.having_params]

    def _where_sql(self) -> str:
        if not self.where_clauses:
            return ""
        return " WHERE " + " AND ".join(self.where_clauses)

    def to_sql(self) -> str:
        parts = [f"SELECT {self.select_clause}", f"FROM {self.table_name}"]
        parts.extend(self.join_clauses)
        if self.where_clauses:
            parts.append("WHERE " + " AND ".join(self.where_clauses))
        if self.group_clauses:
            parts.append("GROUP BY " + ", ".join(self.group_clauses))
        if self.having_clauses:
            parts.append("HAVING " + " AND ".join(self.having_clauses))
        if self.order_clauses:
            parts.append("ORDER BY " + ", ".join(self.order_clauses))
        if self.limit_value is not None:
            parts.append(f"LIMIT {int(self.limit_value)}")
        if self.offset_value is not None:
            parts.append(f"OFFSET {int(self.offset_value)}")
        return " ".join(parts)

    def to_update_sql(self, attributes: Mapping[str, Any]) -> tuple[str, list[Any]]:
        """``UPDATE`` for the matching rows; SET params precede WHERE params."""
        assignments = ", ".join(f"{column} = ?" for column in attributes)
        sql = f"UPDATE {self.table_name} SET {assignments}{self._where_sql()}"
        return sql, [*attributes.values(), *self.where_params]

    def to_delete_sql(self) -> tuple[str, list[Any]]:
        return f"DELETE FROM {self.table_name}{self._where_sql()}", list(self.where_params)

    def __str__(self) -> str:
        return self.to_sql()

    # -- Execution ---------------------------------------------------------

    def all(self) -> list[Record]:
        """Run the SELECT and hydrate one persisted record per row."""
        result = self.database.query(self.to_sql(), self.params)
        records = [self.record_type.hydrate(row) for row in result.rows]
        if self.include_names and records:
            self.record_type.registry.associations.eager_load(records, self.include_names)
        return records

    def __iter__(self) -> Iterator[Record]:
        return iter(self.all())

    def first(self) -> Record | None:
        records = self.limit(1).all()
        return records[0] if records else None

    def last(self) -> Record | None:
        """The final row of the current ordering.

        Existing ORDER BY entries are reversed; without any, rows are
        ordered by primary key descending.
        """
        if self.order_clauses:
            flipped = tuple(reverse_order(clause) for clause in self.order_clauses)
            builder = replace(self, order_clauses=flipped)
        else:
            builder = self.order(self.record_type.primary_key, "DESC")
        records = builder.limit(1).all()
        return records[0] if records else None

    def count(self) -> int:
        builder = replace(
            self,
            select_clause="COUNT(*) as count",
            order_clauses=(),
            limit_value=None,
            offset_value=None,
        )
        row = self.database.query(builder.to_sql(), builder.params).first()
        return int(row["count"]) if row else 0

    def exists(self) -> bool:
        return self.count() > 0

    def find(self, id: Any) -> Record | None:
        return self.where({self.record_type.primary_key: id}).first()

    def find_by(self, conditions: Mapping[str, Any]) -> Record | None:
        return self.where(conditions).first()

    def pluck(self, column: str) -> list[Any]:
        """Values of a single column for every matching row."""
        builder = replace(self, select_clause=column, include_names=())
        result = self.database.query(builder.to_sql(), builder.params)
        if not result.columns:
            return []
        key = result.columns[0]
        return [row[key] for row in result.rows]

    def update_all(self, attributes: Mapping[str, Any]) -> ExecuteResult:
        sql, params = self.to_update_sql(attributes)
        return self.database.execute(sql, params)

    def destroy_all(self) -> ExecuteResult:
        sql, params = self.to_delete_sql()
        return self.database.execute(sql, params)


__all__ = ["QueryBuilder", "reverse_order"]
