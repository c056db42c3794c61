from sqlbridge.constants.sql import (
    BASE_TABLE_ALIAS,
    NOW,
    AggregateFunction,
    FilterType,
    JoinMethod,
    SortDirection,
)

__all__ = [
    "BASE_TABLE_ALIAS",
    "NOW",
    "AggregateFunction",
    "FilterType",
    "JoinMethod",
    "SortDirection",
]
