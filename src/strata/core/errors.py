"""
Structured error types for strata.

Provides a small hierarchy of typed errors carrying a category, structured
context and an optional chained cause, so a failure surfacing out of the
record layer or the migration engine can be logged with enough metadata
to find the model declaration or migration file at fault.

Manifesto:
    - **Typed Error Hierarchy:** One branch per subsystem (database,
      associations, records, migrations, configuration)
    - **Programmer errors raise:** Bad association names, malformed
      migrations and unparsable schemas are configuration defects
    - **Data outcomes do not raise:** Validation and persistence failures
      are boolean returns inspected by the caller, never exceptions
    - **Error Chaining:** The driver exception is kept as ``cause``

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                         StrataError                          │
        │              (category, context, cause)                      │
        ├──────────────────────────────────────────────────────────────┤
        │  ConfigError        DatabaseError          AssociationError  │
        │  (CONFIG)           (DATABASE)             (ASSOCIATION)     │
        │                          │                      │            │
        │                     DatabaseConnectionError UnknownAssociation│
        │                     QueryError             UnknownRecordType │
        │                     IntegrityError                           │
        │                                                              │
        │  RecordError        MigrationError         SchemaError       │
        │  (RECORD)           (MIGRATION)            (SCHEMA)          │
        │      │                   │                      │            │
        │  UnknownAttribute   MigrationLoadError     SchemaParseError  │
        │  RecordNotPersisted                                          │
        └──────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ DON'T: Raise for a record that failed validation
    ✅ DO: Return False from ``save()`` and fill ``record.errors``

    ❌ DON'T: Swallow the driver exception
    ✅ DO: Pass it as ``cause=`` for error chaining

Tags:
    error-handling, exception-hierarchy, error-context, strata
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and log routing."""

    DATABASE = "DATABASE"
    CONFIG = "CONFIG"
    ASSOCIATION = "ASSOCIATION"
    RECORD = "RECORD"
    MIGRATION = "MIGRATION"
    SCHEMA = "SCHEMA"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only the fields relevant to a failure are set; ``to_dict()`` drops the
    rest so log lines stay compact.

    Attributes:
        record_type: Name of the record type involved
        table: Table the statement targeted
        association: Association name being resolved
        version: Migration version being applied or reverted
        sql: Statement text that failed
        metadata: Additional key-value pairs
    """

    record_type: str | None = None
    table: str | None = None
    association: str | None = None
    version: str | None = None
    sql: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["record_type", "table", "association", "version", "sql"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class StrataError(Exception):
    """
    Base exception for all strata errors.

    Subclasses set ``default_category``; callers may still override the
    category per instance.
    """

    default_category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> StrataError:
        """
        Add context to this error (fluent API).

        Usage:
            raise QueryError("prepare failed").with_context(
                table="users", sql="SELECT ..."
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(StrataError):
    """
    Invalid settings or model declaration.

    Raised at definition time: unknown validation rules, unknown
    association kinds, duplicate record type names.
    """

    default_category = ErrorCategory.CONFIG


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseError(StrataError):
    """Database query or transaction error."""

    default_category = ErrorCategory.DATABASE


class DatabaseConnectionError(DatabaseError):
    """The database file could not be opened."""

    pass


class QueryError(DatabaseError):
    """A statement could not be prepared or executed."""

    pass


class IntegrityError(DatabaseError):
    """Database integrity constraint violation."""

    pass


# =============================================================================
# ASSOCIATION ERRORS
# =============================================================================


class AssociationError(StrataError):
    """Association metadata could not be resolved."""

    default_category = ErrorCategory.ASSOCIATION


class UnknownAssociationError(AssociationError):
    """No association with this name is registered on the record type."""

    def __init__(self, record_type: str, name: str):
        self.record_type = record_type
        self.association = name
        super().__init__(
            f"Association not found: {record_type}.{name}",
            context=ErrorContext(record_type=record_type, association=name),
        )


class UnknownRecordTypeError(AssociationError):
    """No record type with this name is defined in the registry."""

    def __init__(self, name: str, available: list[str] | None = None):
        self.record_type = name
        listing = ", ".join(available or []) or "<none>"
        super().__init__(
            f"Record type not found: {name}. Available: {listing}",
            context=ErrorContext(record_type=name),
        )


# =============================================================================
# RECORD ERRORS
# =============================================================================


class RecordError(StrataError):
    """Misuse of a record instance."""

    default_category = ErrorCategory.RECORD


class UnknownAttributeError(RecordError):
    """Neither an attribute nor an association matches the name."""

    def __init__(self, record_type: str, name: str):
        self.record_type = record_type
        self.name = name
        super().__init__(
            f"{record_type} has no attribute or association {name!r}",
            context=ErrorContext(record_type=record_type),
        )


class RecordNotPersistedError(RecordError):
    """The operation needs a record that exists in storage."""

    pass


# =============================================================================
# MIGRATION ERRORS
# =============================================================================


class MigrationError(StrataError):
    """A migration's up/down failed and its transaction was rolled back."""

    default_category = ErrorCategory.MIGRATION


class MigrationLoadError(MigrationError):
    """A migration file is malformed (missing ``up``/``down``, import error)."""

    pass


class SchemaError(StrataError):
    """A schema mutation could not be carried out."""

    default_category = ErrorCategory.SCHEMA


class SchemaParseError(SchemaError):
    """A stored table definition could not be split into column definitions."""

    pass


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, StrataError):
        return error.category
    if isinstance(error, (KeyError, AttributeError)):
        return ErrorCategory.CONFIG
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "StrataError",
    "ConfigError",
    "DatabaseError",
    "DatabaseConnectionError",
    "QueryError",
    "IntegrityError",
    "AssociationError",
    "UnknownAssociationError",
    "UnknownRecordTypeError",
    "RecordError",
    "UnknownAttributeError",
    "RecordNotPersistedError",
    "MigrationError",
    "MigrationLoadError",
    "SchemaError",
    "SchemaParseError",
    "categorize_error",
]
