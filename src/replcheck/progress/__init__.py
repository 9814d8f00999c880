"""Replication progress (GTID set) algebra."""

from .gtid import (
    EMPTY,
    ProgressRange,
    ProgressSet,
    cardinality,
    coalesce,
    most_recent_node,
    parse,
    union,
)

__all__ = [
    "EMPTY",
    "ProgressRange",
    "ProgressSet",
    "cardinality",
    "coalesce",
    "most_recent_node",
    "parse",
    "union",
]
