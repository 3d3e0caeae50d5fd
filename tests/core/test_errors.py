"""Tests for strata.core.errors."""

from __future__ import annotations

import sqlite3

from strata.core.errors import (
    ConfigError,
    DatabaseError,
    ErrorCategory,
    ErrorContext,
    IntegrityError,
    MigrationError,
    MigrationLoadError,
    QueryError,
    SchemaParseError,
    StrataError,
    UnknownAssociationError,
    UnknownAttributeError,
    UnknownRecordTypeError,
    categorize_error,
)


class TestErrorCategories:
    """Test error categories."""

    def test_defaults_per_branch(self):
        """Each branch of the hierarchy has its own default category."""
        assert ConfigError("x").category == ErrorCategory.CONFIG
        assert QueryError("x").category == ErrorCategory.DATABASE
        assert IntegrityError("x").category == ErrorCategory.DATABASE
        assert MigrationLoadError("x").category == ErrorCategory.MIGRATION
        assert SchemaParseError("x").category == ErrorCategory.SCHEMA
        assert StrataError("x").category == ErrorCategory.UNKNOWN

    def test_category_override(self):
        """category can be overridden at construction."""
        error = DatabaseError("x", category=ErrorCategory.INTERNAL)
        assert error.category == ErrorCategory.INTERNAL

    def test_hierarchy(self):
        """Specific errors subclass their branch."""
        assert issubclass(MigrationLoadError, MigrationError)
        assert issubclass(UnknownRecordTypeError, StrataError)
        assert isinstance(QueryError("x"), DatabaseError)


class TestErrorContext:
    """Test ErrorContext."""

    def test_to_dict_drops_empty_fields(self):
        """to_dict leaves out empty fields and flattens metadata."""
        context = ErrorContext(table="users", metadata={"rows": 3})
        assert context.to_dict() == {"table": "users", "rows": 3}

    def test_with_context_sets_known_fields_and_metadata(self):
        """Known keys set fields, others land in metadata."""
        error = MigrationError("boom").with_context(version="001", applied=["000"])
        assert error.context.version == "001"
        assert error.context.metadata == {"applied": ["000"]}

    def test_with_context_is_fluent(self):
        """with_context returns the error itself."""
        error = QueryError("bad")
        assert error.with_context(sql="SELECT 1") is error


class TestSerialization:
    """Test error serialization."""

    def test_to_dict(self):
        """to_dict includes type, category, context and cause."""
        cause = sqlite3.IntegrityError("UNIQUE constraint failed: users.email")
        error = IntegrityError("Constraint violation", cause=cause).with_context(table="users")

        assert error.to_dict() == {
            "error_type": "IntegrityError",
            "message": "Constraint violation",
            "category": "DATABASE",
            "context": {"table": "users"},
            "cause": "UNIQUE constraint failed: users.email",
        }
        assert error.__cause__ is cause

    def test_repr(self):
        """repr shows message and category."""
        assert repr(ConfigError("bad")) == "ConfigError('bad', category=CONFIG)"


class TestSpecificErrors:
    """Test lookup errors."""

    def test_unknown_association(self):
        """UnknownAssociationError names the owner and association."""
        error = UnknownAssociationError("User", "comments")
        assert str(error) == "Association not found: User.comments"
        assert error.context.association == "comments"

    def test_unknown_record_type_lists_available(self):
        """UnknownRecordTypeError lists the registered types."""
        error = UnknownRecordTypeError("Comment", available=["Post", "User"])
        assert str(error) == "Record type not found: Comment. Available: Post, User"

    def test_unknown_record_type_without_types(self):
        """An empty registry is reported as <none>."""
        assert "Available: <none>" in str(UnknownRecordTypeError("Comment"))

    def test_unknown_attribute(self):
        """UnknownAttributeError names the attribute and record type."""
        error = UnknownAttributeError("User", "nickname")
        assert "nickname" in str(error)
        assert error.record_type == "User"


class TestCategorize:
    """Test categorize_error."""

    def test_strata_error(self):
        """Strata errors keep their own category."""
        assert categorize_error(SchemaParseError("x")) == ErrorCategory.SCHEMA

    def test_builtin_errors(self):
        """Builtin errors map onto a category."""
        assert categorize_error(KeyError("x")) == ErrorCategory.CONFIG
        assert categorize_error(ValueError("x")) == ErrorCategory.UNKNOWN
