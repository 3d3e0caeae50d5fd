"""
Association metadata, lazy loaders and the batched eager loader.

Manifesto:
    Relationships are declared once by name and resolved by convention:
    ``Post.belongs_to("user")`` reads ``posts.user_id`` and looks up a
    ``User``; ``User.has_many("posts")`` reads ``posts.user_id`` pointing
    back at ``users.id``.  Every inferred piece can be overridden.

    Reading an association on one record costs one query.  Reading it on
    every record of a result set costs one query per association when the
    query was built with ``includes(...)``.

Architecture:
    ::

        AssociationResolver (one per Registry)
        ├── register(owner, kind, name, **options) → Association
        ├── load(record, name)          cache → load_<kind> → cache
        │     ├── belongs_to  target.find(fk)
        │     ├── has_one     target.find_by({fk: local_key})
        │     └── has_many    CollectionProxy (lazy, cached)
        └── eager_load(records, names)  one IN (...) query per name

    Naming conventions:
        belongs_to "author"   → target "Author", key "author_id" on owner
        has_many   "posts"    → target "Post",   key "<owner>_id" on target
        has_one    "profile"  → target "Profile", key "<owner>_id" on target

Guardrails:
    ❌ DON'T: Treat a misspelled association as "no rows"
    ✅ DO: Raise ``UnknownAssociationError`` / ``UnknownRecordTypeError``

    ❌ DON'T: Iterate a has_many proxy in a loop over owners
    ✅ DO: ``Owner.includes("posts").all()`` and read the preloaded proxies

Tags:
    associations, eager-loading, n-plus-one, strata
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from strata.core.errors import ConfigError, UnknownAssociationError
from strata.core.logging import get_logger

if TYPE_CHECKING:
    from strata.orm.query import QueryBuilder
    from strata.orm.record import Record, RecordType
    from strata.orm.registry import Registry

logger = get_logger(__name__)

BELONGS_TO = "belongs_to"
HAS_MANY = "has_many"
HAS_ONE = "has_one"
KINDS = (BELONGS_TO, HAS_MANY, HAS_ONE)

_OPTIONS = frozenset({"target", "foreign_key", "local_key"})


def infer_target(name: str, kind: str) -> str:
    """``posts`` → ``Post`` for has_many, ``author`` → ``Author`` otherwise."""
    if kind == HAS_MANY and name.endswith("s"):
        name = name[:-1]
    return name[:1].upper() + name[1:]


def infer_foreign_key(name: str, kind: str, owner_name: str) -> str:
    if kind == BELONGS_TO:
        return f"{name}_id"
    return f"{owner_name.lower()}_id"


@dataclass(frozen=True)
class Association:
    """Resolved metadata for one declared relationship."""

    owner: str
    name: str
    kind: str
    target: str
    foreign_key: str
    local_key: str


class AssociationResolver:
    """Holds association metadata per record type and loads related records."""

    def __init__(self, registry: Registry):
        self._registry = registry
        self._associations: dict[str, dict[str, Association]] = {}

    # -- Metadata ----------------------------------------------------------

    def register(self, owner: RecordType, kind: str, name: str, **options: Any) -> Association:
        """Declare ``name`` on ``owner``; re-registering a name replaces it."""
        if kind not in KINDS:
            raise ConfigError(f"Unknown association kind {kind!r}; expected one of {KINDS}")
        unknown = sorted(set(options) - _OPTIONS)
        if unknown:
            raise ConfigError(
                f"Unknown option(s) for {owner.name}.{name}: {', '.join(unknown)}"
            ).with_context(record_type=owner.name, association=name)

        association = Association(
            owner=owner.name,
            name=name,
            kind=kind,
            target=options.get("target") or infer_target(name, kind),
            foreign_key=options.get("foreign_key") or infer_foreign_key(name, kind, owner.name),
            local_key=options.get("local_key") or owner.primary_key,
        )
        self._associations.setdefault(owner.name, {})[name] = association
        return association

    def for_type(self, owner: RecordType) -> Mapping[str, Association]:
        return self._associations.get(owner.name, {})

    def get(self, owner: RecordType, name: str) -> Association:
        try:
            return self._associations[owner.name][name]
        except KeyError:
            raise UnknownAssociationError(owner.name, name) from None

    def has(self, owner: RecordType, name: str) -> bool:
        return name in self.for_type(owner)

    def target_of(self, association: Association) -> RecordType:
        return self._registry.get(association.target)

    def clear(self) -> None:
        self._associations.clear()

    # -- Lazy loading ------------------------------------------------------

    def load(self, record: Record, name: str) -> Any:
        """Return the cached value of ``name`` on ``record``, loading it once."""
        association = self.get(record.record_type, name)
        cache = record._association_cache
        if name not in cache:
            loader = {
                BELONGS_TO: self.load_belongs_to,
                HAS_MANY: self.load_has_many,
                HAS_ONE: self.load_has_one,
            }[association.kind]
            cache[name] = loader(record, name)
        return cache[name]

    def load_belongs_to(self, record: Record, name: str) -> Record | None:
        association = self.get(record.record_type, name)
        target = self.target_of(association)
        foreign_id = record.get(association.foreign_key)
        if foreign_id is None:
            return None
        return target.find(foreign_id)

    def load_has_many(self, record: Record, name: str) -> CollectionProxy:
        association = self.get(record.record_type, name)
        self.target_of(association)
        return CollectionProxy(self, record, association)

    def load_has_one(self, record: Record, name: str) -> Record | None:
        association = self.get(record.record_type, name)
        target = self.target_of(association)
        key = record.get(association.local_key)
        if key is None:
            return None
        return target.find_by({association.foreign_key: key})

    # -- Eager loading -----------------------------------------------------

    def eager_load(self, records: Sequence[Record], names: Iterable[str]) -> None:
        """Preload each association for all ``records`` with one query apiece."""
        if not records:
            return
        owner = records[0].record_type
        for name in names:
            association = self.get(owner, name)
            target = self.target_of(association)
            if association.kind == BELONGS_TO:
                loaded = self._eager_belongs_to(records, association, target)
            elif association.kind == HAS_MANY:
                loaded = self._eager_has_many(records, association, target)
            else:
                loaded = self._eager_has_one(records, association, target)
            logger.debug(
                "association.eager_loaded",
                record_type=owner.name,
                association=name,
                kind=association.kind,
                owners=len(records),
                loaded=loaded,
            )

    @staticmethod
    def _distinct(values: Iterable[Any]) -> list[Any]:
        return list(dict.fromkeys(v for v in values if v is not None))

    def _eager_belongs_to(
        self, records: Sequence[Record], association: Association, target: RecordType
    ) -> int:
        keys = self._distinct(r.get(association.foreign_key) for r in records)
        by_id: dict[Any, Record] = {}
        if keys:
            for related in target.query().where_in(target.primary_key, keys).all():
                by_id[related.get(target.primary_key)] = related
        for record in records:
            record._association_cache[association.name] = by_id.get(
                record.get(association.foreign_key)
            )
        return len(by_id)

    def _fetch_children(
        self, records: Sequence[Record], association: Association, target: RecordType
    ) -> tuple[dict[Any, list[Record]], int]:
        keys = self._distinct(r.get(association.local_key) for r in records)
        groups: dict[Any, list[Record]] = defaultdict(list)
        children: list[Record] = []
        if keys:
            children = target.query().where_in(association.foreign_key, keys).all()
        for child in children:
            groups[child.get(association.foreign_key)].append(child)
        return groups, len(children)

    def _eager_has_many(
        self, records: Sequence[Record], association: Association, target: RecordType
    ) -> int:
        groups, loaded = self._fetch_children(records, association, target)
        for record in records:
            key = record.get(association.local_key)
            preloaded = list(groups.get(key, [])) if key is not None else []
            record._association_cache[association.name] = CollectionProxy(
                self, record, association, records=preloaded
            )
        return loaded

    def _eager_has_one(
        self, records: Sequence[Record], association: Association, target: RecordType
    ) -> int:
        groups, loaded = self._fetch_children(records, association, target)
        for record in records:
            matches = groups.get(record.get(association.local_key)) or [None]
            record._association_cache[association.name] = matches[0]
        return loaded


class CollectionProxy:
    """
    Deferred has_many collection.

    Nothing is queried until the proxy is enumerated; the first
    materialization is cached until ``create`` or ``reload`` invalidates it.
    ``where`` and ``count`` on an unloaded proxy go straight to the database
    without populating the cache.
    """

    def __init__(
        self,
        resolver: AssociationResolver,
        owner: Record,
        association: Association,
        records: list[Record] | None = None,
    ):
        self._resolver = resolver
        self._owner = owner
        self._association = association
        self._records = records

    @property
    def association(self) -> Association:
        return self._association

    @property
    def target(self) -> RecordType:
        return self._resolver.target_of(self._association)

    @property
    def loaded(self) -> bool:
        return self._records is not None

    def scope(self) -> QueryBuilder:
        """Query for the owner's related rows."""
        key = self._owner.get(self._association.local_key)
        query = self.target.query()
        if key is None:
            return query.where_in(self._association.foreign_key, [])
        return query.where({self._association.foreign_key: key})

    def load(self) -> list[Record]:
        if self._records is None:
            self._records = self.scope().all()
        return self._records

    def all(self) -> list[Record]:
        return list(self.load())

    def where(self, conditions: Mapping[str, Any] | str, params: Sequence[Any] = ()) -> QueryBuilder:
        return self.scope().where(conditions, params)

    def count(self) -> int:
        if self._records is not None:
            return len(self._records)
        return self.scope().count()

    def create(self, attributes: Mapping[str, Any] | None = None) -> Record | None:
        """Create a related record with the foreign key filled in."""
        values = dict(attributes or {})
        values[self._association.foreign_key] = self._owner.get(self._association.local_key)
        record = self.target.create(values)
        self._records = None
        return record

    def reload(self) -> list[Record]:
        self._records = None
        return self.load()

    def __iter__(self) -> Iterator[Record]:
        return iter(self.load())

    def __len__(self) -> int:
        return len(self.load())

    def __getitem__(self, index: int) -> Record:
        return self.load()[index]

    def __repr__(self) -> str:
        state = f"{len(self._records)} loaded" if self._records is not None else "not loaded"
        return (
            f"<CollectionProxy {self._association.owner}.{self._association.name} ({state})>"
        )


__all__ = [
    "Association",
    "AssociationResolver",
    "CollectionProxy",
    "BELONGS_TO",
    "HAS_MANY",
    "HAS_ONE",
    "infer_target",
    "infer_foreign_key",
]
