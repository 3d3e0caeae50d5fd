"""Built-in validation rules for record attributes.

Each field of a record type may declare a rule set::

    validations={
        "name": {"required": True, "min_length": 2, "max_length": 50},
        "email": {"required": True, "format": "email", "unique": True},
        "age": {"type": "integer", "min": 0, "max": 150},
        "status": {"inclusion": ["draft", "published"]},
    }

Rules are parsed once into a frozen ``RuleSet`` at definition time (an
unknown key is a ``ConfigError``) and evaluated independently, so a
single field can collect several messages in one pass.  The ``unique``
rule queries the table and therefore needs a connected database.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Any

from strata.core.errors import ConfigError

if TYPE_CHECKING:
    from strata.orm.record import Record

EMAIL_PATTERN = re.compile(r"^[\w.%+-]+@[\w.-]+\.[A-Za-z]+$")

_TYPE_CHECKS: dict[str, tuple[type, ...]] = {
    "integer": (int,),
    "string": (str,),
    "number": (int, float),
    "boolean": (bool,),
}

_TYPE_MESSAGES = {
    "integer": "must be an integer",
    "string": "must be a string",
    "number": "must be a number",
    "boolean": "must be a boolean",
}

_FORMATS = {"email": (EMAIL_PATTERN, "must be a valid email address")}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class RuleSet:
    """Validation rules declared for one field."""

    required: bool = False
    type: str | None = None
    min_length: int | None = None
    max_length: int | None = None
    min: float | None = None
    max: float | None = None
    format: str | None = None
    inclusion: tuple[Any, ...] | None = None
    unique: bool = False

    @classmethod
    def from_mapping(cls, field_name: str, rules: Mapping[str, Any] | RuleSet) -> RuleSet:
        """Parse a rule mapping, rejecting unknown rule names and values."""
        if isinstance(rules, RuleSet):
            return rules

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(rules) - known)
        if unknown:
            raise ConfigError(
                f"Unknown validation rule(s) for {field_name!r}: {', '.join(unknown)}"
            ).with_context(field=field_name)

        values = dict(rules)
        type_name = values.get("type")
        if type_name is not None and type_name not in _TYPE_CHECKS:
            raise ConfigError(
                f"Unknown type rule {type_name!r} for {field_name!r}; "
                f"expected one of {sorted(_TYPE_CHECKS)}"
            )
        format_name = values.get("format")
        if format_name is not None and format_name not in _FORMATS:
            raise ConfigError(f"Unknown format rule {format_name!r} for {field_name!r}")
        if values.get("inclusion") is not None:
            values["inclusion"] = tuple(values["inclusion"])
        return cls(**values)


def _check_type(type_name: str, value: Any) -> bool:
    if type_name in ("integer", "number") and isinstance(value, bool):
        return False
    return isinstance(value, _TYPE_CHECKS[type_name])


def evaluate(record: Record, field_name: str, rules: RuleSet) -> None:
    """Run every rule present in ``rules`` against ``record``'s value."""
    value = record.get(field_name)

    if rules.required and (value is None or value == ""):
        record.add_error(field_name, "is required")

    if value is None:
        return

    if rules.type and not _check_type(rules.type, value):
        record.add_error(field_name, _TYPE_MESSAGES[rules.type])

    if isinstance(value, str):
        if rules.min_length is not None and len(value) < rules.min_length:
            record.add_error(field_name, f"must be at least {rules.min_length} characters")
        if rules.max_length is not None and len(value) > rules.max_length:
            record.add_error(field_name, f"must be no more than {rules.max_length} characters")

    if _is_number(value):
        if rules.min is not None and value < rules.min:
            record.add_error(field_name, f"must be at least {rules.min}")
        if rules.max is not None and value > rules.max:
            record.add_error(field_name, f"must be no more than {rules.max}")

    if rules.format:
        pattern, message = _FORMATS[rules.format]
        if not isinstance(value, str) or not pattern.match(value):
            record.add_error(field_name, message)

    if rules.inclusion is not None and value not in rules.inclusion:
        allowed = ", ".join(str(v) for v in rules.inclusion)
        record.add_error(field_name, f"must be one of: {allowed}")

    if rules.unique:
        _check_unique(record, field_name, value)


def _check_unique(record: Record, field_name: str, value: Any) -> None:
    record_type = record.record_type
    pk = record_type.primary_key
    existing = record_type.where({field_name: value}).first()
    if existing is not None and existing.get(pk) != record.get(pk):
        record.add_error(field_name, "must be unique")


__all__ = ["RuleSet", "evaluate", "EMAIL_PATTERN"]
