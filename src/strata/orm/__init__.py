"""Record layer: record types, query builder, associations and validation.

Modules
-------
registry      Registry.define() / get() for record types
record        RecordType descriptor, Record instances, bulk insert
query         Immutable QueryBuilder
associations  belongs_to / has_many / has_one resolution and eager loading
validation    Built-in validation rules
"""

from strata.orm.associations import Association, AssociationResolver, CollectionProxy
from strata.orm.query import QueryBuilder
from strata.orm.record import BulkInsertResult, Column, Record, RecordType
from strata.orm.registry import Registry
from strata.orm.validation import RuleSet

__all__ = [
    "Association",
    "AssociationResolver",
    "BulkInsertResult",
    "CollectionProxy",
    "Column",
    "QueryBuilder",
    "Record",
    "RecordType",
    "Registry",
    "RuleSet",
]
