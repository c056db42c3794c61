"""Expression tree for compiled SELECT statements.

Every fragment of a compiled query is a node that renders itself to MySQL
text. Column references and bound parameters are distinct node types from
``RawExpression``; raw expressions are only ever built by the compilers from
validated identifiers and integers, never from caller values.
"""

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from sqlbridge.common.exceptions import query_validation_error
from sqlbridge.constants.sql import MAX_IDENTIFIER_LENGTH, MAX_ROW_COUNT, SortDirection
from sqlbridge.utils.casing import to_snake_case

_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")
_PARAM_UNSAFE = re.compile(r"\W")


def validate_identifier(identifier: str, identifier_type: str = "identifier") -> None:
    """Validate an identifier before it is placed in SQL text.

    Raises:
        QueryBuilderValidationError: If identifier is empty, too long or
            contains characters outside ``[A-Za-z0-9_$]``.
    """
    if not identifier:
        raise query_validation_error(f"Empty {identifier_type} name")

    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        raise query_validation_error(f"{identifier_type} name too long: {identifier}")

    if not _IDENTIFIER_PATTERN.match(identifier):
        raise query_validation_error(f"Invalid {identifier_type} name: {identifier}")


def quote_identifier(identifier: str, identifier_type: str = "identifier") -> str:
    """Validate and quote a physical identifier with backticks, keeping its spelling."""
    if not isinstance(identifier, str):
        raise query_validation_error(f"Invalid {identifier_type} name: {identifier!r}")
    identifier = identifier.strip()
    validate_identifier(identifier, identifier_type)
    return f"`{identifier}`"


def quote_alias(name: str) -> str:
    """Quote an output alias in its snake_case wire spelling (``isActive`` -> ```is_active```)."""
    if not isinstance(name, str):
        raise query_validation_error(f"Invalid alias name: {name!r}")
    return quote_identifier(to_snake_case(name.strip()), "alias")


def quote_table(reference: str) -> str:
    """Quote a ``table`` or ``database.table`` reference segment by segment."""
    if not isinstance(reference, str) or not reference:
        raise query_validation_error(f"Invalid table name: {reference!r}")
    return ".".join(quote_identifier(part, "table") for part in reference.split("."))


class Node:
    """Base class for renderable SQL fragments."""

    def render(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class ColumnRef(Node):
    table_alias: str
    column: str

    def render(self) -> str:
        return f"{quote_identifier(self.table_alias, 'alias')}.{quote_identifier(self.column, 'column')}"


@dataclass(frozen=True)
class Star(Node):
    table_alias: str

    def render(self) -> str:
        return f"{quote_identifier(self.table_alias, 'alias')}.*"


@dataclass(frozen=True)
class Param(Node):
    name: str

    def render(self) -> str:
        return f":{self.name}"


@dataclass(frozen=True)
class RawExpression(Node):
    sql: str

    def render(self) -> str:
        return self.sql


@dataclass(frozen=True)
class Projection(Node):
    expression: Node
    alias: Optional[str] = None

    def render(self) -> str:
        if self.alias is None:
            return self.expression.render()
        return f"{self.expression.render()} AS {quote_alias(self.alias)}"


@dataclass(frozen=True)
class Aggregate(Node):
    function: str
    column: Optional[ColumnRef]
    alias: str

    def render(self) -> str:
        target = self.column.render() if self.column is not None else "*"
        return f"{self.function.upper()}({target}) AS {quote_alias(self.alias)}"


@dataclass(frozen=True)
class Comparison(Node):
    """``left <op> right`` where right is a bound parameter or another column."""

    left: Node
    operator: str
    right: Node

    def render(self) -> str:
        return f"{self.left.render()} {self.operator} {self.right.render()}"


@dataclass(frozen=True)
class InList(Node):
    left: Node
    values: Tuple[Param, ...]
    negated: bool = False

    def render(self) -> str:
        keyword = "NOT IN" if self.negated else "IN"
        return f"{self.left.render()} {keyword} ({', '.join(v.render() for v in self.values)})"


@dataclass(frozen=True)
class NullCheck(Node):
    left: Node
    negated: bool = False

    def render(self) -> str:
        return f"{self.left.render()} IS {'NOT NULL' if self.negated else 'NULL'}"


@dataclass(frozen=True)
class Between(Node):
    left: Node
    low: Param
    high: Param
    negated: bool = False

    def render(self) -> str:
        keyword = "NOT BETWEEN" if self.negated else "BETWEEN"
        return f"{self.left.render()} {keyword} {self.low.render()} AND {self.high.render()}"


@dataclass(frozen=True)
class BooleanClause(Node):
    """Children joined by AND or OR. Nested compound children are parenthesized."""

    connector: str
    children: Tuple[Node, ...]

    def render(self) -> str:
        parts = []
        for child in self.children:
            text = child.render()
            if isinstance(child, BooleanClause) and len(child.children) > 1:
                text = f"({text})"
            parts.append(text)
        return f" {self.connector} ".join(parts)


def combine(connector: str, children) -> Optional[Node]:
    """Collapse a list of predicates into one node, or None when empty."""
    children = tuple(children)
    if not children:
        return None
    if len(children) == 1:
        return children[0]
    return BooleanClause(connector, children)


@dataclass(frozen=True)
class JoinClause(Node):
    keyword: str
    table: str
    alias: str
    conditions: Tuple[Comparison, ...]
    connector: str = "AND"

    def render(self) -> str:
        conditions = f" {self.connector} ".join(c.render() for c in self.conditions)
        return (
            f"{self.keyword} {quote_table(self.table)} AS {quote_identifier(self.alias, 'alias')}"
            f" ON {conditions}"
        )


@dataclass(frozen=True)
class OrderTerm(Node):
    expression: Node
    direction: SortDirection = SortDirection.ASC

    def render(self) -> str:
        return f"{self.expression.render()} {SortDirection(self.direction).value}"


class ParameterBag:
    """Allocates unique placeholder names and records their bound values."""

    def __init__(self) -> None:
        self._values: Dict[str, Any] = {}

    def bind(self, base_name: str, value: Any) -> Param:
        base = _PARAM_UNSAFE.sub("_", to_snake_case(base_name)) or "param"
        name = base
        suffix = 1
        while name in self._values:
            name = f"{base}_{suffix}"
            suffix += 1
        self._values[name] = value
        return Param(name)

    def snapshot(self) -> Mapping[str, Any]:
        return MappingProxyType(dict(self._values))


@dataclass(frozen=True)
class CompiledQuery:
    """An immutable SELECT statement and its bound parameters."""

    table: str
    alias: str
    projection: Tuple[Node, ...]
    joins: Tuple[JoinClause, ...] = ()
    where: Optional[Node] = None
    group: Tuple[Node, ...] = ()
    order: Tuple[OrderTerm, ...] = ()
    limit: Optional[int] = None
    offset: Optional[int] = None
    parameters: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def sql(self) -> str:
        parts = [
            "SELECT " + ", ".join(node.render() for node in self.projection),
            f"FROM {quote_table(self.table)} AS {quote_identifier(self.alias, 'alias')}",
        ]
        parts.extend(join.render() for join in self.joins)

        if self.where is not None:
            parts.append(f"WHERE {self.where.render()}")
        if self.group:
            parts.append("GROUP BY " + ", ".join(node.render() for node in self.group))
        if self.order:
            parts.append("ORDER BY " + ", ".join(term.render() for term in self.order))

        if self.limit is not None:
            parts.append(f"LIMIT {self.limit}")
        elif self.offset is not None:
            parts.append(f"LIMIT {MAX_ROW_COUNT}")
        if self.offset is not None:
            parts.append(f"OFFSET {self.offset}")

        return " ".join(parts)

    def __str__(self) -> str:
        return self.sql
