"""INSERT, UPDATE, DELETE and SHOW COLUMNS assembly for the data access facade.

Mutation statements work on physical column names already checked against
the live table definition; column names are quoted as-is.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from sqlbridge.common.exceptions import invalid_data_error
from sqlbridge.constants.sql import NO_UPDATE_COLUMNS, NOW, PRIMARY_KEY_COLUMN
from sqlbridge.query_builder.nodes import (
    BooleanClause,
    Comparison,
    InList,
    JoinClause,
    Node,
    NullCheck,
    ParameterBag,
    RawExpression,
    combine,
    quote_identifier,
    quote_table,
)


@dataclass(frozen=True)
class Statement:
    sql: str
    parameters: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


def _column(name: str, table_alias: Optional[str] = None) -> str:
    quoted = quote_identifier(name, "column")
    if table_alias:
        return f"{quote_identifier(table_alias, 'alias')}.{quoted}"
    return quoted


def build_condition(
    column: str,
    value: Any,
    parameters: ParameterBag,
    table_alias: Optional[str] = None,
) -> Node:
    """Equality predicate for one column.

    ``None`` gives ``IS NULL``, a list gives ``IN (...)`` and a list holding
    ``None`` gives ``(col IS NULL OR col IN (...))``.
    """
    left = RawExpression(_column(column, table_alias))

    if value is None:
        return NullCheck(left)

    if not isinstance(value, (list, tuple, set, frozenset)):
        return Comparison(left, "=", parameters.bind(column, value))

    values = list(value)
    if not values:
        raise invalid_data_error(f"Filter on {column} requires at least one value", value=value)

    present = [item for item in values if item is not None]
    if not present:
        return NullCheck(left)

    in_list = InList(left, tuple(parameters.bind(column, item) for item in present))
    if len(present) == len(values):
        return in_list
    return BooleanClause("OR", (NullCheck(left), in_list))


def build_where(
    filters: Mapping[str, Any],
    parameters: ParameterBag,
    table_alias: Optional[str] = None,
) -> Optional[str]:
    predicate = combine(
        "AND",
        [build_condition(column, value, parameters, table_alias) for column, value in filters.items()],
    )
    return predicate.render() if predicate is not None else None


def build_upsert_clause(columns: Iterable[str], has_primary_key: bool) -> str:
    """``ON DUPLICATE KEY UPDATE`` assignments refreshing every updatable column.

    Empty when there is nothing to assign.
    """
    assignments: List[str] = []
    if has_primary_key:
        primary_key = _column(PRIMARY_KEY_COLUMN)
        assignments.append(f"{primary_key} = LAST_INSERT_ID({primary_key})")

    for column in columns:
        if column in NO_UPDATE_COLUMNS:
            continue
        quoted = _column(column)
        assignments.append(f"{quoted} = VALUES({quoted})")

    if not assignments:
        return ""
    return "ON DUPLICATE KEY UPDATE " + ", ".join(assignments)


def build_insert(
    table: str,
    row: Mapping[str, Any],
    upsert: bool = False,
    has_primary_key: bool = False,
) -> Statement:
    parameters = ParameterBag()
    columns = list(row)
    placeholders = [parameters.bind(column, row[column]).render() for column in columns]

    sql = (
        f"INSERT INTO {quote_table(table)} ({', '.join(_column(c) for c in columns)})"
        f" VALUES ({', '.join(placeholders)})"
    )
    upsert_clause = build_upsert_clause(columns, has_primary_key) if upsert else ""
    if upsert_clause:
        sql = f"{sql} {upsert_clause}"

    return Statement(sql, parameters.snapshot())


def build_multi_insert(
    table: str,
    rows: Sequence[Mapping[str, Any]],
    has_primary_key: bool = False,
) -> Statement:
    """One INSERT with a value tuple per row and a shared upsert clause.

    Columns are the sorted union across rows; a row lacking a column
    inserts ``DEFAULT`` for it.
    """
    columns = sorted({column for row in rows for column in row})
    parameters = ParameterBag()

    tuples: List[str] = []
    for index, row in enumerate(rows):
        values = [
            parameters.bind(f"{column}_{index}", row[column]).render() if column in row else "DEFAULT"
            for column in columns
        ]
        tuples.append(f"({', '.join(values)})")

    sql = (
        f"INSERT INTO {quote_table(table)} ({', '.join(_column(c) for c in columns)})"
        f" VALUES {', '.join(tuples)}"
    )
    upsert_clause = build_upsert_clause(columns, has_primary_key)
    if upsert_clause:
        sql = f"{sql} {upsert_clause}"
    return Statement(sql, parameters.snapshot())


def build_update(
    table: str,
    values: Mapping[str, Any],
    filters: Optional[Mapping[str, Any]] = None,
    datetime_columns: Iterable[str] = (),
) -> Statement:
    """``UPDATE ... SET col = :set_col`` with an optional equality WHERE.

    ``NOW`` (or ``True``) assigned to a datetime column renders ``NOW()``.
    """
    parameters = ParameterBag()
    datetime_columns = set(datetime_columns)

    assignments: List[str] = []
    for column, value in values.items():
        if column in datetime_columns and (value is NOW or value is True):
            assignments.append(f"{_column(column)} = NOW()")
        else:
            assignments.append(f"{_column(column)} = {parameters.bind(f'set_{column}', value).render()}")

    sql = f"UPDATE {quote_table(table)} SET {', '.join(assignments)}"

    where = build_where(filters or {}, parameters)
    if where:
        sql = f"{sql} WHERE {where}"

    return Statement(sql, parameters.snapshot())


def build_delete(
    table: str,
    filters: Mapping[str, Any],
    joins: Sequence[JoinClause] = (),
    table_alias: str = "t",
) -> Statement:
    parameters = ParameterBag()

    if joins:
        alias = quote_identifier(table_alias, "alias")
        sql = f"DELETE {alias} FROM {quote_table(table)} AS {alias} " + " ".join(j.render() for j in joins)
        where = build_where(filters, parameters, table_alias)
    else:
        sql = f"DELETE FROM {quote_table(table)}"
        where = build_where(filters, parameters)

    if where:
        sql = f"{sql} WHERE {where}"

    return Statement(sql, parameters.snapshot())


def build_show_columns(table: str) -> Statement:
    return Statement(f"SHOW COLUMNS FROM {quote_table(table)}")
