"""Tests for strata.core.adapters.sqlite."""

from __future__ import annotations

import pytest

from strata.core.adapters.sqlite import SQLiteDatabase
from strata.core.adapters.types import DatabaseConfig
from strata.core.errors import DatabaseConnectionError, IntegrityError, QueryError
from strata.core.result import Err, Ok


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture()
def items(db: SQLiteDatabase) -> SQLiteDatabase:
    db.execute("CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT UNIQUE NOT NULL)")
    return db


# ── Statements ────────────────────────────────────────────────────────


class TestStatements:
    """Test execute and query against a live connection."""

    def test_execute_reports_insert_id_and_rowcount(self, items):
        """execute reports affected rows and the last insert id."""
        result = items.execute("INSERT INTO items (name) VALUES (?), (?)", ["a", "b"])
        assert result.success
        assert result.affected_rows == 2
        assert result.last_insert_id == 2

    def test_query_returns_dict_rows(self, items):
        """query returns rows as dicts keyed by column."""
        items.execute("INSERT INTO items (name) VALUES (?)", ["a"])
        result = items.query("SELECT id, name FROM items")
        assert result.rows == [{"id": 1, "name": "a"}]
        assert result.columns == ["id", "name"]
        assert result.count == 1
        assert result.first() == {"id": 1, "name": "a"}

    def test_scalar(self, items):
        """scalar returns the first column of the first row, or the default."""
        assert items.query("SELECT COUNT(*) FROM items").scalar() == 0
        assert items.query("SELECT name FROM items").scalar("none") == "none"

    def test_constraint_violation_is_a_result(self, items):
        """Constraint failures come back as an unsuccessful result, not an exception."""
        items.execute("INSERT INTO items (name) VALUES (?)", ["a"])
        result = items.execute("INSERT INTO items (name) VALUES (?)", ["a"])
        assert result.success is False
        assert isinstance(result.error, IntegrityError)
        assert "UNIQUE constraint failed" in str(result.error.cause)
        assert result.error.context.sql.startswith("INSERT INTO items")

    def test_bad_sql_raises(self, db):
        """Malformed statements raise QueryError carrying the SQL."""
        with pytest.raises(QueryError) as exc_info:
            db.execute("INSERT INTO missing (x) VALUES (1)")
        assert exc_info.value.context.sql == "INSERT INTO missing (x) VALUES (1)"

    def test_bad_query_raises(self, db):
        """query raises QueryError for a missing table."""
        with pytest.raises(QueryError):
            db.query("SELECT * FROM missing")


class TestListeners:
    """Test statement listeners."""

    def test_listener_sees_every_statement(self, items):
        """A listener sees each statement until it is removed."""
        seen = []
        listener = lambda sql, params, elapsed: seen.append((sql, list(params)))  # noqa: E731
        items.add_listener(listener)

        items.execute("INSERT INTO items (name) VALUES (?)", ["a"])
        items.query("SELECT * FROM items WHERE name = ?", ["a"])
        items.remove_listener(listener)
        items.query("SELECT 1")

        assert seen == [
            ("INSERT INTO items (name) VALUES (?)", ["a"]),
            ("SELECT * FROM items WHERE name = ?", ["a"]),
        ]

    def test_rejected_statements_are_observed(self, items, statements):
        """Statements rejected by a constraint are still observed."""
        items.execute("INSERT INTO items (name) VALUES (?)", ["a"])
        items.execute("INSERT INTO items (name) VALUES (?)", ["a"])
        assert len(statements.matching("INSERT")) == 2


# ── Transactions ──────────────────────────────────────────────────────


class TestTransactions:
    """Test transaction and savepoint handling."""

    def test_commit_returns_ok(self, items):
        """A successful body commits and returns Ok with its value."""
        result = items.transaction(
            lambda: items.execute("INSERT INTO items (name) VALUES (?)", ["a"]).affected_rows
        )
        assert result == Ok(1)
        assert items.query("SELECT COUNT(*) AS n FROM items").scalar() == 1

    def test_exception_rolls_back_and_returns_err(self, items):
        """An exception rolls back and comes back as Err."""
        def body():
            items.execute("INSERT INTO items (name) VALUES (?)", ["a"])
            raise RuntimeError("abort")

        result = items.transaction(body)
        assert isinstance(result, Err)
        assert str(result.error) == "abort"
        assert items.query("SELECT COUNT(*) FROM items").scalar() == 0
        assert not items.in_transaction

    def test_nested_failure_rolls_back_inner_only(self, items):
        """A failing nested transaction rolls back to its savepoint only."""
        def inner():
            items.execute("INSERT INTO items (name) VALUES (?)", ["inner"])
            raise RuntimeError("inner failed")

        def outer():
            items.execute("INSERT INTO items (name) VALUES (?)", ["outer"])
            assert items.transaction(inner).is_err()

        assert items.transaction(outer).is_ok()
        assert items.query("SELECT name FROM items").rows == [{"name": "outer"}]

    def test_inner_error_propagates_through_unwrap(self, items):
        """unwrap on an inner Err aborts the outer transaction too."""
        def outer():
            items.execute("INSERT INTO items (name) VALUES (?)", ["outer"])
            items.transaction(lambda: items.execute("INSERT INTO nowhere VALUES (1)")).unwrap()

        result = items.transaction(outer)
        assert isinstance(result.error, QueryError)
        assert items.query("SELECT COUNT(*) FROM items").scalar() == 0

    def test_transaction_scope_reraises(self, items):
        """transaction_scope rolls back and re-raises."""
        with pytest.raises(RuntimeError):
            with items.transaction_scope():
                items.execute("INSERT INTO items (name) VALUES (?)", ["a"])
                raise RuntimeError("boom")
        assert items.query("SELECT COUNT(*) FROM items").scalar() == 0


# ── Catalog ───────────────────────────────────────────────────────────


class TestCatalog:
    """Test catalog introspection."""

    def test_table_exists(self, items):
        """table_exists reports existing and missing tables."""
        assert items.table_exists("items")
        assert not items.table_exists("nothing")

    def test_table_schema(self, items):
        """get_table_schema lists columns in declaration order."""
        columns = items.get_table_schema("items")
        assert [c.name for c in columns] == ["id", "name"]
        assert columns[0].primary_key
        assert columns[1].not_null

    def test_table_sql(self, items):
        """get_table_sql returns the stored CREATE TABLE text."""
        assert items.get_table_sql("items").startswith("CREATE TABLE items")
        assert items.get_table_sql("nothing") is None

    def test_indexes(self, items):
        """get_indexes and get_index_columns describe explicit indexes."""
        items.execute("CREATE INDEX idx_items_name ON items (name)")
        assert [i["name"] for i in items.get_indexes("items")] == ["idx_items_name"]
        assert items.get_index_columns("idx_items_name") == ["name"]

    def test_index_columns_skip_expressions(self, items):
        """Expression columns are left out of get_index_columns."""
        items.execute("CREATE INDEX idx_items_mixed ON items (lower(name), name DESC)")
        assert items.get_index_columns("idx_items_mixed") == ["name"]


# ── Lifecycle ─────────────────────────────────────────────────────────


class TestLifecycle:
    """Test connect and disconnect."""

    def test_context_manager(self):
        """The context manager connects and disconnects."""
        with SQLiteDatabase(":memory:") as database:
            assert database.is_connected
        assert not database.is_connected

    def test_lazy_connect(self):
        """The first statement opens the connection."""
        database = SQLiteDatabase(":memory:")
        assert database.query("SELECT 1 AS one").scalar() == 1
        database.disconnect()

    def test_foreign_keys_enabled(self, db):
        """Foreign keys are enforced by default."""
        assert db.query("PRAGMA foreign_keys").scalar() == 1

    def test_file_database(self, tmp_path):
        """File databases use WAL journaling."""
        path = tmp_path / "app.db"
        with SQLiteDatabase(str(path)) as database:
            database.execute("CREATE TABLE t (x INTEGER)")
            assert database.query("PRAGMA journal_mode").scalar() == "wal"
        assert path.exists()

    def test_unopenable_path_raises(self, tmp_path):
        """An unopenable path raises DatabaseConnectionError."""
        database = SQLiteDatabase(str(tmp_path / "missing" / "app.db"))
        with pytest.raises(DatabaseConnectionError):
            database.connect()

    def test_config(self):
        """Constructor options are exposed as DatabaseConfig."""
        database = SQLiteDatabase(":memory:", log_sql=True)
        assert isinstance(database.config, DatabaseConfig)
        assert database.config.is_memory
        assert database.config.log_sql is True
