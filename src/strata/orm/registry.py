"""
Record type registry.

Association targets are resolved by type name at load time, so every
record type lives in a ``Registry`` that is created explicitly and passed
around.  One registry owns one database and one ``AssociationResolver``;
tests build a fresh registry per case and ``clear()`` it on teardown.

Example::

    registry = Registry(SQLiteDatabase(":memory:"))
    User = registry.define("User", validations={"name": {"required": True}})
    Post = registry.define("Post")
    User.has_many("posts")
    Post.belongs_to("user")
    assert registry.get("Post") is Post
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

from strata.core.errors import ConfigError, UnknownRecordTypeError
from strata.core.logging import get_logger
from strata.core.protocols import Database
from strata.orm.associations import AssociationResolver
from strata.orm.record import RecordType

logger = get_logger(__name__)


class Registry:
    """Type name → ``RecordType`` for one database."""

    def __init__(self, database: Database):
        self._database = database
        self._types: dict[str, RecordType] = {}
        self.associations = AssociationResolver(self)

    @property
    def database(self) -> Database:
        return self._database

    def define(
        self,
        name: str,
        *,
        table_name: str | None = None,
        primary_key: str = "id",
        schema: Mapping[str, Any] | None = None,
        validations: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> RecordType:
        """Declare a record type; the table name defaults to ``name.lower() + "s"``."""
        if name in self._types:
            raise ConfigError(f"Record type already defined: {name}").with_context(
                record_type=name
            )
        record_type = RecordType(
            self,
            name,
            table_name=table_name,
            primary_key=primary_key,
            schema=schema,
            validations=validations,
        )
        self._types[name] = record_type
        logger.debug("record_type.defined", record_type=name, table=record_type.table_name)
        return record_type

    def get(self, name: str) -> RecordType:
        try:
            return self._types[name]
        except KeyError:
            raise UnknownRecordTypeError(name, available=self.names()) from None

    def names(self) -> list[str]:
        return sorted(self._types)

    def clear(self) -> None:
        """Forget every record type and association."""
        self._types.clear()
        self.associations.clear()

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __iter__(self) -> Iterator[RecordType]:
        return iter(list(self._types.values()))

    def __len__(self) -> int:
        return len(self._types)


__all__ = ["Registry"]
