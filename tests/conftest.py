"""
Shared pytest fixtures for strata tests.

This module provides:
- An in-memory ``SQLiteDatabase`` per test
- A fresh ``Registry`` bound to it (cleared on teardown)
- A statement recorder attached through ``add_listener``
- A small blog schema (users / posts / profiles) and its record types
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Any

import pytest

from strata.core.adapters.sqlite import SQLiteDatabase
from strata.orm.record import RecordType
from strata.orm.registry import Registry


# =============================================================================
# Database
# =============================================================================


@pytest.fixture()
def db() -> Iterator[SQLiteDatabase]:
    """Connected in-memory database."""
    database = SQLiteDatabase(":memory:", journal_mode=None)
    database.connect()
    yield database
    database.disconnect()


@pytest.fixture()
def registry(db: SQLiteDatabase) -> Iterator[Registry]:
    reg = Registry(db)
    yield reg
    reg.clear()


class StatementLog:
    """Listener recording every statement the database runs."""

    def __init__(self) -> None:
        self.statements: list[tuple[str, list[Any]]] = []

    def __call__(self, sql: str, params: Sequence[Any], elapsed_ms: float) -> None:
        self.statements.append((sql, list(params)))

    @property
    def count(self) -> int:
        return len(self.statements)

    @property
    def sql(self) -> list[str]:
        return [sql for sql, _ in self.statements]

    def matching(self, prefix: str) -> list[tuple[str, list[Any]]]:
        return [(sql, params) for sql, params in self.statements if sql.startswith(prefix)]

    def clear(self) -> None:
        self.statements.clear()


@pytest.fixture()
def statements(db: SQLiteDatabase) -> Iterator[StatementLog]:
    """Statement recorder; call ``statements.clear()`` before the part under test."""
    log = StatementLog()
    db.add_listener(log)
    yield log
    db.remove_listener(log)


# =============================================================================
# Blog schema
# =============================================================================


@pytest.fixture()
def blog_tables(db: SQLiteDatabase) -> SQLiteDatabase:
    db.execute(
        "CREATE TABLE users ("
        "id INTEGER PRIMARY KEY AUTOINCREMENT, "
        "name TEXT, "
        "email TEXT UNIQUE, "
        "age INTEGER)"
    )
    db.execute(
        "CREATE TABLE posts ("
        "id INTEGER PRIMARY KEY AUTOINCREMENT, "
        "user_id INTEGER, "
        "title TEXT NOT NULL, "
        "published INTEGER DEFAULT 0)"
    )
    db.execute(
        "CREATE TABLE profiles ("
        "id INTEGER PRIMARY KEY AUTOINCREMENT, "
        "user_id INTEGER, "
        "bio TEXT)"
    )
    return db


@dataclass
class Blog:
    User: RecordType
    Post: RecordType
    Profile: RecordType


@pytest.fixture()
def blog(registry: Registry, blog_tables: SQLiteDatabase) -> Blog:
    """User has_many posts / has_one profile; Post and Profile belong to a user."""
    User = registry.define("User")
    Post = registry.define("Post")
    Profile = registry.define("Profile")
    User.has_many("posts")
    User.has_one("profile")
    Post.belongs_to("user")
    Profile.belongs_to("user")
    return Blog(User=User, Post=Post, Profile=Profile)
