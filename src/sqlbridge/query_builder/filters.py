from typing import Any, List, Mapping, Optional

from sqlbridge.common.exceptions import query_validation_error
from sqlbridge.constants.sql import (
    RANGE_FILTERS,
    SCALAR_OPERATORS,
    SINGLE_VALUE_FILTERS,
    VALUELESS_FILTERS,
    FilterType,
)
from sqlbridge.logging import get_logger
from sqlbridge.query_builder.context import CompilationContext
from sqlbridge.query_builder.nodes import (
    Between,
    BooleanClause,
    Comparison,
    InList,
    Node,
    NullCheck,
    combine,
)
from sqlbridge.query_builder.schema import FieldDefinition, FlagDefinition, TypedField

logger = get_logger(__name__)


def _is_multiple(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


_LIKE_ESCAPES = str.maketrans({"\\": "\\\\", "%": "\\%", "_": "\\_"})


def contains_pattern(value: Any) -> str:
    """``50%`` -> ``%50\\%%``: the value matches literally anywhere in the column."""
    return f"%{str(value).translate(_LIKE_ESCAPES)}%"


class FilterCompiler:
    """Translates ``filters`` into a predicate tree with bound parameters.

    A mapping is one AND-ed branch; a list of mappings is OR-ed branches.
    Each entry is ``field: value`` or ``field: {"value": ..., "type": ...}``.
    Fields missing from the schema are skipped.
    """

    def __init__(self, context: CompilationContext):
        self.context = context
        self.schema = context.schema
        self.parameters = context.parameters

    def compile(self, params: Mapping[str, Any]) -> Optional[Node]:
        filters = params.get("filters")
        if filters is None:
            return None

        if isinstance(filters, Mapping):
            branches = [filters]
        elif isinstance(filters, (list, tuple)):
            if not all(isinstance(branch, Mapping) for branch in filters):
                raise query_validation_error(
                    "filters must be a mapping or a list of mappings", clause="filters", value=filters
                )
            branches = list(filters)
        else:
            raise query_validation_error(
                "filters must be a mapping or a list of mappings", clause="filters", value=filters
            )

        compiled = [combine("AND", self._compile_branch(branch)) for branch in branches]
        return combine("OR", [branch for branch in compiled if branch is not None])

    def _compile_branch(self, branch: Mapping[str, Any]) -> List[Node]:
        predicates: List[Node] = []

        for name, raw in branch.items():
            flag = self.schema.get_flag(name)
            if flag is not None:
                predicates.append(self._compile_flag(flag, raw))
                continue

            field = self.schema.get_field(name)
            if field is None:
                logger.debug("Ignoring filter on unknown field", extra={"field": name})
                continue

            predicates.append(self._compile_field(field, raw))

        return predicates

    def _compile_flag(self, flag: FlagDefinition, raw: Any) -> Comparison:
        value = raw.get("value") if isinstance(raw, Mapping) else raw
        if _is_multiple(value):
            raise query_validation_error(
                f"Flag filter {flag.name} does not accept multiple values", clause="filters", value=value
            )
        param = self.parameters.bind(flag.name, "1" if value else "0")
        return Comparison(self.context.flag_test(flag, "filters"), "=", param)

    def _compile_field(self, field: FieldDefinition, raw: Any) -> Node:
        default_type = field.default_filter_type if isinstance(field, TypedField) else FilterType.EQUAL

        if isinstance(raw, Mapping):
            value = raw.get("value")
            type_name = raw.get("type")
            filter_type = default_type if type_name is None else FilterType.parse(type_name)
            if filter_type is None:
                raise query_validation_error(
                    f"Invalid filter type {type_name!r} for {field.name}", clause="filters", value=type_name
                )
        else:
            value = raw
            filter_type = default_type

        if isinstance(value, Mapping):
            raise query_validation_error(f"Invalid filter value for {field.name}", clause="filters", value=value)

        column = self.context.column_ref(field, "filters")

        if filter_type in (FilterType.EQUAL, FilterType.NOT_EQUAL):
            return self._compile_equality(field, column, value, negated=filter_type is FilterType.NOT_EQUAL)

        if filter_type in VALUELESS_FILTERS:
            return NullCheck(column, negated=filter_type is FilterType.NOT_NULL)

        if filter_type in RANGE_FILTERS:
            if not _is_multiple(value):
                raise query_validation_error(
                    f"Filter {filter_type.value} on {field.name} requires multiple values",
                    clause="filters",
                    value=value,
                )
            values = list(value)
            if len(values) != 2:
                raise query_validation_error(
                    f"Filter {filter_type.value} on {field.name} requires exactly 2 values",
                    clause="filters",
                    value=value,
                )
            return Between(
                column,
                self.parameters.bind(field.name, values[0]),
                self.parameters.bind(field.name, values[1]),
                negated=filter_type is FilterType.NOT_BETWEEN,
            )

        if filter_type in SINGLE_VALUE_FILTERS:
            if _is_multiple(value):
                raise query_validation_error(
                    f"Filter {filter_type.value} on {field.name} does not accept multiple values",
                    clause="filters",
                    value=value,
                )
            if value is None:
                raise query_validation_error(
                    f"Filter {filter_type.value} on {field.name} requires a value", clause="filters"
                )
            if filter_type is FilterType.SEARCH:
                value = contains_pattern(value)
            return Comparison(column, SCALAR_OPERATORS[filter_type], self.parameters.bind(field.name, value))

        raise query_validation_error(  # pragma: no cover
            f"Unsupported filter type {filter_type}", clause="filters"
        )

    def _compile_equality(self, field: FieldDefinition, column: Node, value: Any, negated: bool) -> Node:
        if value is None:
            return NullCheck(column, negated=negated)

        if not _is_multiple(value):
            operator = SCALAR_OPERATORS[FilterType.NOT_EQUAL if negated else FilterType.EQUAL]
            return Comparison(column, operator, self.parameters.bind(field.name, value))

        values = list(value)
        if not values:
            raise query_validation_error(f"Filter on {field.name} requires at least one value", clause="filters")

        present = [item for item in values if item is not None]
        if not present:
            return NullCheck(column, negated=negated)

        in_list = InList(column, tuple(self.parameters.bind(field.name, item) for item in present), negated)
        if len(present) == len(values):
            return in_list

        if negated:
            return BooleanClause("AND", (NullCheck(column, negated=True), in_list))
        return BooleanClause("OR", (NullCheck(column), in_list))
