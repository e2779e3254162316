"""
Core database package for ClearMarkup.

This package provides the fluent query builder, the one-hop relation
resolver, the value transformation pipeline and the condition-map compiler
used by the database manager.
"""

from clearmarkup.core.database.protocols import DataAccessPrimitive
from clearmarkup.core.database.query_builder import (
    ConditionSet,
    Db,
    Projection,
    QueryBuilder,
    prepare_query,
)
from clearmarkup.core.database.relation import RelationDescriptor, RelationResolver
from clearmarkup.core.database.transforms import ValueTransformer, apply_operations

__all__ = [
    "ConditionSet",
    "DataAccessPrimitive",
    "Db",
    "Projection",
    "QueryBuilder",
    "RelationDescriptor",
    "RelationResolver",
    "ValueTransformer",
    "apply_operations",
    "prepare_query",
]
