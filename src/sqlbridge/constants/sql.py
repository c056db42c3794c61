"""SQL and query-related constants.

Enums and fixed values shared by the query builder, the statement
assembly of the data access facade and the connection pool.
"""

from enum import Enum
from typing import Optional

from sqlbridge.utils.casing import to_snake_case


def _normalize(name: str) -> str:
    name = name.strip()
    if name.isupper():
        name = name.lower()
    return to_snake_case(name).replace(" ", "_")


class FilterType(str, Enum):
    """Filter operators accepted in a query descriptor.

    Names are snake_case; camelCase spellings (``notEqual``) are accepted by
    ``FilterType.parse``.
    """

    EQUAL = "equal"
    NOT_EQUAL = "not_equal"
    GREATER = "greater"
    GREATER_OR_EQUAL = "greater_or_equal"
    LESSER = "lesser"
    LESSER_OR_EQUAL = "lesser_or_equal"
    SEARCH = "search"
    BETWEEN = "between"
    NOT_BETWEEN = "not_between"
    NULL = "null"
    NOT_NULL = "not_null"

    @classmethod
    def parse(cls, name: object) -> Optional["FilterType"]:
        if not isinstance(name, str):
            return None
        try:
            return cls(_normalize(name))
        except ValueError:
            return None


# Filter types that compare against a single scalar
SINGLE_VALUE_FILTERS = frozenset({
    FilterType.GREATER,
    FilterType.GREATER_OR_EQUAL,
    FilterType.LESSER,
    FilterType.LESSER_OR_EQUAL,
    FilterType.SEARCH,
})

RANGE_FILTERS = frozenset({FilterType.BETWEEN, FilterType.NOT_BETWEEN})

VALUELESS_FILTERS = frozenset({FilterType.NULL, FilterType.NOT_NULL})

SCALAR_OPERATORS = {
    FilterType.EQUAL: "=",
    FilterType.NOT_EQUAL: "!=",
    FilterType.GREATER: ">",
    FilterType.GREATER_OR_EQUAL: ">=",
    FilterType.LESSER: "<",
    FilterType.LESSER_OR_EQUAL: "<=",
    FilterType.SEARCH: "LIKE",
}


class JoinMethod(str, Enum):
    """Join kinds a model may declare."""

    LEFT = "left"
    RIGHT = "right"
    INNER = "inner"
    FULL_OUTER = "full_outer"
    CROSS = "cross"
    JOIN = "join"

    @property
    def keyword(self) -> str:
        return _JOIN_KEYWORDS[self]

    @classmethod
    def parse(cls, name: object) -> Optional["JoinMethod"]:
        if not isinstance(name, str):
            return None
        try:
            return cls(_normalize(name))
        except ValueError:
            return None


_JOIN_KEYWORDS = {
    JoinMethod.LEFT: "LEFT JOIN",
    JoinMethod.RIGHT: "RIGHT JOIN",
    JoinMethod.INNER: "INNER JOIN",
    JoinMethod.FULL_OUTER: "FULL OUTER JOIN",
    JoinMethod.CROSS: "CROSS JOIN",
    JoinMethod.JOIN: "JOIN",
}

# Operators allowed between two columns in a join condition
JOIN_OPERATORS = frozenset({"=", "!=", "<>", ">", ">=", "<", "<="})


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"

    @classmethod
    def parse(cls, name: object) -> Optional["SortDirection"]:
        if not isinstance(name, str):
            return None
        try:
            return cls(name.strip().upper())
        except ValueError:
            return None


class AggregateFunction(str, Enum):
    """Aggregate directives, in the order they are projected."""

    COUNT = "count"
    MIN = "min"
    MAX = "max"
    SUM = "sum"
    AVG = "avg"


class _Now:
    """Sentinel assigning ``NOW()`` to a datetime column on update."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOW"


NOW = _Now()

BASE_TABLE_ALIAS = "t"

# MySQL rejects OFFSET without LIMIT; this is the largest accepted row count
MAX_ROW_COUNT = 18446744073709551615

MAX_IDENTIFIER_LENGTH = 64

# Columns stamped by the facade and excluded from upsert assignments
DATE_CREATED_COLUMN = "date_created"
DATE_MODIFIED_COLUMN = "date_modified"
PRIMARY_KEY_COLUMN = "id"
NO_UPDATE_COLUMNS = frozenset({PRIMARY_KEY_COLUMN, DATE_CREATED_COLUMN})

DATETIME_TYPES = ("datetime", "timestamp")

# MySQL server error ER_CON_COUNT_ERROR
ER_CON_COUNT_ERROR = 1040
