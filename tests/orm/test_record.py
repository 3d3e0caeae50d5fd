"""Tests for strata.orm.record — persistence, dirty tracking, hooks and bulk insert."""

from __future__ import annotations

import pytest

from strata.core.errors import (
    ConfigError,
    RecordError,
    RecordNotPersistedError,
    UnknownAttributeError,
)
from strata.orm.record import CALLBACK_EVENTS, Column


# ── Persistence ───────────────────────────────────────────────────────


class TestCreateAndFind:
    """Test create, new and find."""

    def test_round_trip(self, blog):
        """A created record reads back with the same attributes."""
        attrs = {"name": "Alice", "email": "alice@example.com", "age": 30}
        user = blog.User.create(attrs)
        assert user is not None
        assert user.persisted
        assert isinstance(user.id, int)

        found = blog.User.find(user.id)
        assert found.attributes == {**attrs, "id": user.id}

    def test_insert_skips_none_values(self, blog, statements):
        """None values are left out of the INSERT."""
        statements.clear()
        blog.User.create({"name": "Alice", "email": None, "age": 30})
        assert statements.statements == [
            ("INSERT INTO users (name, age) VALUES (?, ?)", ["Alice", 30])
        ]

    def test_insert_with_no_values_uses_defaults(self, blog, statements):
        """A record with no values inserts DEFAULT VALUES."""
        statements.clear()
        profile = blog.Profile.create()
        assert profile is not None
        assert statements.sql == ["INSERT INTO profiles DEFAULT VALUES"]
        assert profile.id == 1

    def test_explicit_primary_key_is_kept(self, blog):
        """An explicit primary key is written as given."""
        user = blog.User.create({"id": 42, "name": "Zed"})
        assert user.id == 42
        assert blog.User.find(42).get("name") == "Zed"

    def test_new_is_not_persisted(self, blog):
        """new builds a record without writing it."""
        user = blog.User.new({"name": "Alice"})
        assert user.new_record
        assert not user.persisted
        assert blog.User.count() == 0

    def test_constraint_violation_returns_false(self, blog):
        """A constraint failure makes save return False with a base error."""
        blog.User.create({"name": "Alice", "email": "same@example.com"})
        duplicate = blog.User.new({"name": "Bob", "email": "same@example.com"})

        assert duplicate.save() is False
        assert duplicate.new_record
        assert "UNIQUE constraint failed" in duplicate.get_errors()["base"][0]

    def test_create_returns_none_on_failure(self, blog):
        """create returns None when the insert fails."""
        assert blog.Post.create({"user_id": 1}) is None
        assert blog.Post.count() == 0


class TestDirtyTracking:
    """Test change tracking."""

    def test_update_touches_only_changed_columns(self, blog, statements):
        """save writes only the changed columns."""
        alice = blog.User.create({"name": "Alice", "email": "alice@example.com", "age": 30})
        alice.set("age", 31)
        statements.clear()

        assert alice.save() is True
        assert statements.statements == [
            ("UPDATE users SET age = ? WHERE id = ?", [31, alice.id])
        ]
        assert blog.User.find(alice.id).get("age") == 31

    def test_save_without_changes_issues_no_update(self, blog, statements):
        """save with no changes issues no UPDATE."""
        alice = blog.User.create({"name": "Alice", "age": 30})
        statements.clear()

        assert alice.save() is True
        assert statements.matching("UPDATE") == []

    def test_changes_are_old_new_pairs(self, blog):
        """Changes keep the original and the latest value."""
        alice = blog.User.create({"name": "Alice", "age": 30})
        alice.set("age", 31)
        alice.set("age", 32)
        assert alice.changed_attributes == {"age": {"old": 30, "new": 32}}

    def test_restoring_original_value_clears_change(self, blog, statements):
        """Setting the original value back clears the change."""
        alice = blog.User.create({"name": "Alice", "age": 30})
        alice.set("age", 31)
        alice.set("age", 30)
        assert not alice.changed

        statements.clear()
        alice.save()
        assert statements.count == 0

    def test_new_records_do_not_track_changes(self, blog):
        """Unsaved records track no changes."""
        user = blog.User.new({"name": "Alice"})
        user.set("age", 5)
        assert user.changed_attributes == {}

    def test_successful_save_clears_changes(self, blog):
        """A successful save clears changes."""
        alice = blog.User.create({"name": "Alice", "age": 30})
        alice.set("name", "Alicia")
        alice.save()
        assert not alice.changed

    def test_update_applies_and_saves(self, blog):
        """update sets attributes and saves."""
        alice = blog.User.create({"name": "Alice", "age": 30})
        assert alice.update({"name": "Alicia", "age": 31}) is True
        assert blog.User.find(alice.id).get("name") == "Alicia"

    def test_changing_primary_key_updates_by_original_key(self, blog):
        """A changed primary key updates the row by its old key."""
        alice = blog.User.create({"name": "Alice"})
        old_id = alice.id
        alice.set("id", 100)
        assert alice.save() is True
        assert blog.User.find(old_id) is None
        assert blog.User.find(100).get("name") == "Alice"

    def test_failed_update_keeps_changes(self, blog):
        """A failed update keeps pending changes."""
        blog.User.create({"name": "Alice", "email": "a@example.com"})
        bob = blog.User.create({"name": "Bob", "email": "b@example.com"})
        bob.set("email", "a@example.com")

        assert bob.save() is False
        assert bob.changed_attributes == {"email": {"old": "b@example.com", "new": "a@example.com"}}
        assert bob.get_errors()["base"]


class TestDestroyAndReload:
    """Test destroy and reload."""

    def test_destroy(self, blog):
        """destroy deletes the row and keeps attributes in memory."""
        alice = blog.User.create({"name": "Alice"})
        assert alice.destroy() is True
        assert not alice.persisted
        assert blog.User.find(alice.id) is None
        assert alice.get("name") == "Alice"

    def test_destroy_new_record_is_noop(self, blog, statements):
        """Destroying an unsaved record does nothing."""
        statements.clear()
        assert blog.User.new({"name": "Alice"}).destroy() is False
        assert statements.count == 0

    def test_reload_discards_unsaved_changes(self, blog):
        """reload replaces attributes with the stored row."""
        alice = blog.User.create({"name": "Alice", "age": 30})
        blog.User.where({"id": alice.id}).update_all({"age": 50})
        alice.set("name", "Changed")

        alice.reload()
        assert alice.get("name") == "Alice"
        assert alice.get("age") == 50
        assert not alice.changed

    def test_reload_requires_persisted_record(self, blog):
        """reload needs a saved record."""
        with pytest.raises(RecordNotPersistedError):
            blog.User.new({"name": "Alice"}).reload()

    def test_reload_of_deleted_row_raises(self, blog):
        """reload fails when the row is gone."""
        alice = blog.User.create({"name": "Alice"})
        blog.User.where({"id": alice.id}).destroy_all()
        with pytest.raises(RecordNotPersistedError, match="no longer exists"):
            alice.reload()


# ── Attribute access ──────────────────────────────────────────────────


class TestAttributeAccess:
    """Test attribute access."""

    def test_read_unknown_name_raises(self, blog):
        """Reading an unknown attribute raises UnknownAttributeError."""
        user = blog.User.new({"name": "Alice"})
        with pytest.raises(UnknownAttributeError) as exc_info:
            user.read("nickname")
        assert exc_info.value.name == "nickname"

    def test_schema_fields_read_as_none(self, registry, blog_tables):
        """Declared but unset fields read as None."""
        User = registry.define("User", schema={"name": "TEXT", "age": "INTEGER"})
        assert User.new().read("age") is None

    def test_item_access(self, blog):
        """Records support item access and membership."""
        user = blog.User.new({"name": "Alice"})
        user["age"] = 3
        assert user["age"] == 3
        assert "age" in user
        assert "email" not in user

    def test_attributes_is_a_copy(self, blog):
        """attributes returns a copy."""
        user = blog.User.new({"name": "Alice"})
        user.attributes["name"] = "Mallory"
        assert user.get("name") == "Alice"

    def test_repr(self, blog):
        """repr shows the type and attributes."""
        assert repr(blog.User.new({"name": "Alice"})) == "<User name='Alice'>"
        assert repr(blog.User.new()) == "<User>"


# ── Hooks and validation ──────────────────────────────────────────────


class TestCallbacks:
    """Test lifecycle hooks."""

    def test_create_order(self, blog):
        """Hooks run in order on create."""
        calls: list[str] = []
        for event in CALLBACK_EVENTS:
            blog.User.callback(event)(lambda record, event=event: calls.append(event))

        blog.User.create({"name": "Alice"})
        assert calls == ["before_save", "before_create", "after_save", "after_create"]

    def test_update_and_destroy_order(self, blog):
        """Hooks run in order on update and destroy."""
        alice = blog.User.create({"name": "Alice"})
        calls: list[str] = []
        for event in CALLBACK_EVENTS:
            blog.User.callback(event)(lambda record, event=event: calls.append(event))

        alice.update({"age": 2})
        alice.destroy()
        assert calls == [
            "before_save",
            "before_update",
            "after_save",
            "after_update",
            "before_destroy",
            "after_destroy",
        ]

    def test_before_save_runs_before_validation(self, registry, blog_tables):
        """before_save can fill in values that validation needs."""
        User = registry.define("User", validations={"email": {"required": True}})

        @User.callback("before_save")
        def default_email(user):
            if user.get("email") is None:
                user.set("email", f"{user.get('name').lower()}@example.com")

        user = User.create({"name": "Alice"})
        assert user is not None
        assert user.get("email") == "alice@example.com"

    def test_after_hooks_skipped_when_invalid(self, registry, blog_tables):
        """After hooks do not run for an invalid record."""
        User = registry.define("User", validations={"name": {"required": True}})
        calls: list[str] = []
        User.callback("after_save")(lambda record: calls.append("after_save"))

        assert User.create({"age": 3}) is None
        assert calls == []

    def test_unknown_event_raises(self, blog):
        """Unknown hook events raise ConfigError."""
        with pytest.raises(ConfigError):
            blog.User.callback("around_save")


class TestValidationOnSave:
    """Test validation during save."""

    def test_invalid_record_is_not_written(self, registry, blog_tables, statements):
        """An invalid record issues no SQL."""
        User = registry.define(
            "User",
            validations={
                "name": {"required": True, "min_length": 2},
                "age": {"type": "integer", "min": 0},
            },
        )
        user = User.new({"name": "A", "age": -1})
        statements.clear()

        assert user.save() is False
        assert user.get_errors() == {
            "name": ["must be at least 2 characters"],
            "age": ["must be at least 0"],
        }
        assert statements.count == 0

    def test_custom_validator_runs_after_rules(self, registry, blog_tables):
        """Custom validators can add errors."""
        User = registry.define("User", validations={"name": {"required": True}})

        @User.validator
        def no_admins(user):
            if user.get("name") == "admin":
                user.add_error("name", "is reserved")

        assert User.new({"name": "admin"}).invalid()
        assert User.new({"name": "Alice"}).valid()

        user = User.new({"name": "admin"})
        user.valid()
        assert user.errors == {"name": ["is reserved"]}

    def test_errors_reset_between_runs(self, registry, blog_tables):
        """Each validation run starts with no errors."""
        User = registry.define("User", validations={"name": {"required": True}})
        user = User.new()
        assert user.valid() is False
        user.set("name", "Alice")
        assert user.valid() is True
        assert user.errors == {}


# ── Bulk insert ───────────────────────────────────────────────────────


class TestBulkInsert:
    """Test insert_all and create_all."""

    def test_single_statement_with_contiguous_ids(self, blog, statements):
        """insert_all uses one statement and reports a contiguous id range."""
        statements.clear()
        result = blog.User.insert_all(
            [{"name": "A"}, {"name": "B"}, {"name": "C"}]
        )
        assert result.success
        assert result.inserted_count == 3
        assert result.last_id - result.first_id + 1 == 3
        assert statements.sql == ["INSERT INTO users (name) VALUES (?), (?), (?)"]
        assert blog.User.order("id").pluck("id") == list(range(result.first_id, result.last_id + 1))

    def test_column_union_binds_missing_as_null(self, blog, statements):
        """Columns missing from a row bind as NULL."""
        statements.clear()
        blog.User.insert_all([{"name": "A"}, {"age": 5, "name": "B"}])
        assert statements.statements == [
            ("INSERT INTO users (name, age) VALUES (?, ?), (?, ?)", ["A", None, "B", 5])
        ]

    def test_empty_input(self, blog, statements):
        """Empty input issues no SQL."""
        statements.clear()
        result = blog.User.insert_all([])
        assert result.success
        assert result.inserted_count == 0
        assert statements.count == 0

    def test_rows_without_columns_raise(self, blog):
        """Rows with no columns raise RecordError."""
        with pytest.raises(RecordError):
            blog.User.insert_all([{}, {}])

    def test_failure_inserts_nothing(self, blog):
        """A failing row rolls back the whole insert."""
        blog.User.create({"name": "X", "email": "dup@example.com"})
        result = blog.User.insert_all(
            [{"name": "A", "email": "new@example.com"}, {"name": "B", "email": "dup@example.com"}]
        )
        assert result.success is False
        assert result.error is not None
        assert blog.User.count() == 1

    def test_create_all_assigns_ids_in_order(self, blog):
        """create_all assigns ids in input order."""
        blog.User.create({"name": "First"})
        users = blog.User.create_all([{"name": "A"}, {"name": "B"}])

        assert [u.get("name") for u in users] == ["A", "B"]
        assert all(u.persisted for u in users)
        for user in users:
            assert blog.User.find(user.id).get("name") == user.get("name")

    def test_create_all_returns_none_on_failure(self, blog):
        """create_all returns None when the insert fails."""
        assert blog.Post.create_all([{"title": None, "user_id": 1}]) is None


# ── Columns ───────────────────────────────────────────────────────────


class TestColumn:
    """Test Column definitions."""

    def test_from_string(self):
        """A string is a bare type."""
        assert Column.from_definition("name", "TEXT") == Column(type="TEXT")

    def test_from_mapping(self):
        """A mapping sets column options."""
        column = Column.from_definition("email", {"type": "TEXT", "unique": True, "not_null": True})
        assert column.unique and column.not_null

    def test_bad_mapping_raises(self):
        """Unknown options raise ConfigError."""
        with pytest.raises(ConfigError):
            Column.from_definition("email", {"kind": "TEXT"})

    def test_definition(self, db):
        """definition renders NOT NULL and DEFAULT."""
        column = Column(type="INTEGER", not_null=True, default=0)
        assert column.definition(db.dialect) == "INTEGER NOT NULL DEFAULT 0"

    def test_primary_key_definition(self, db):
        """Primary keys leave out implied NOT NULL."""
        column = Column(type="INTEGER", primary_key=True, auto_increment=True, not_null=True)
        assert column.definition(db.dialect) == "INTEGER PRIMARY KEY AUTOINCREMENT"
