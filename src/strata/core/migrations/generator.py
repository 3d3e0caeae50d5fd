"""Migration file generator.

Writes ``<version>_<name>.py`` where the version is a UTC timestamp down
to the microsecond (``%Y%m%d%H%M%S%f``).  A version is always bumped past
the newest one already in the directory, so lexical order is creation
order even when the clock repeats or runs backwards.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path

from strata.core.errors import MigrationError
from strata.core.logging import get_logger

logger = get_logger(__name__)

_VERSION = re.compile(r"^(\d+)_\w*\.py$")

TEMPLATE = '''"""{title}"""


def up(schema):
    # schema.create_table("users", {{
    #     "id": "INTEGER PRIMARY KEY AUTOINCREMENT",
    #     "name": "TEXT NOT NULL",
    # }})
    # schema.create_table_from_model(schema.model("User"))
    pass


def down(schema):
    # schema.drop_table("users")
    pass
'''


def migration_version(now: datetime | None = None, *, after: str | None = None) -> str:
    """Timestamp version that sorts after ``after`` when one is given."""
    now = now or datetime.now(timezone.utc)
    version = now.strftime("%Y%m%d%H%M%S%f")
    if after is not None and after >= version:
        bumped = str(int(after) + 1).zfill(len(after))
        version = bumped if len(bumped) == len(after) else f"{after}0"
    return version


def latest_version(directory: Path) -> str | None:
    versions = [
        match.group(1)
        for match in (_VERSION.match(path.name) for path in directory.glob("*.py"))
        if match is not None
    ]
    return max(versions, default=None)


def slugify(name: str) -> str:
    slug = re.sub(r"\W+", "_", name.strip().lower()).strip("_")
    if not slug:
        raise MigrationError(f"Invalid migration name: {name!r}")
    return slug


def generate_migration(name: str, directory: str | Path) -> Path:
    """Create a migration file with empty ``up``/``down`` and return its path."""
    slug = slugify(name)
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    version = migration_version(after=latest_version(directory))
    path = directory / f"{version}_{slug}.py"
    title = slug.replace("_", " ").capitalize()
    path.write_text(TEMPLATE.format(title=title), encoding="utf-8")
    logger.info("migration.generated", path=str(path))
    return path


__all__ = [
    "generate_migration",
    "latest_version",
    "migration_version",
    "slugify",
    "TEMPLATE",
]
