from typing import Any, List, Mapping, Optional, Tuple

from sqlbridge.common.exceptions import query_validation_error
from sqlbridge.constants.sql import AggregateFunction
from sqlbridge.query_builder.context import CompilationContext
from sqlbridge.query_builder.nodes import Aggregate, Node, Projection, RawExpression, Star, quote_alias
from sqlbridge.query_builder.schema import FlagDefinition
from sqlbridge.utils.casing import array_unique, to_snake_case

_MISSING = object()


class SelectCompiler:
    """Builds the projection: aggregates, columns and flag expansions.

    ``fields`` absent projects ``t.*`` plus every flag; an explicit list
    projects the listed columns plus the listed flags; ``False`` projects
    aggregates only. ``no_flags`` suppresses flag expansion.
    """

    def __init__(self, context: CompilationContext):
        self.context = context
        self.schema = context.schema

    def compile(self, params: Mapping[str, Any]) -> Tuple[Node, ...]:
        projection: List[Node] = list(self._compile_aggregates(params))
        fields = params.get("fields", _MISSING)
        no_flags = bool(params.get("no_flags", params.get("noFlags", False)))

        if fields is False:
            if not projection:
                raise query_validation_error(
                    "fields: False requires an aggregate function (count, min, max, sum, avg)",
                    clause="fields",
                )
            return tuple(projection)

        if fields is _MISSING or fields is None:
            if projection:
                return tuple(projection)
            projection.append(Star(self.context.base_alias))
            flags = list(self.schema.flags.values())
        else:
            flags = self._compile_field_list(fields, projection)

        if flags and not no_flags:
            projection.append(self._expand_flags(flags))

        if not projection:
            raise query_validation_error("Nothing to select", clause="fields", value=fields)

        return tuple(projection)

    def _compile_field_list(self, fields: Any, projection: List[Node]) -> List[FlagDefinition]:
        if not isinstance(fields, (list, tuple)):
            raise query_validation_error("fields must be a list of field names", clause="fields", value=fields)
        if not fields:
            raise query_validation_error("fields must not be empty", clause="fields")
        if not all(isinstance(name, str) for name in fields):
            raise query_validation_error("fields must contain field names", clause="fields", value=fields)

        flags: List[FlagDefinition] = []
        for name in array_unique(fields):
            flag = self.schema.get_flag(name)
            if flag is not None:
                flags.append(flag)
                continue

            field = self.schema.resolve_field(name, "fields")
            alias: Optional[str] = field.output_alias
            if to_snake_case(alias) == field.column:
                alias = None
            projection.append(Projection(self.context.column_ref(field, "fields"), alias))

        return flags

    def _expand_flags(self, flags: List[FlagDefinition]) -> RawExpression:
        expressions = [
            f"{self.context.flag_test(flag, 'fields').sql} AS {quote_alias(flag.name)}"
            for flag in flags
        ]
        return RawExpression(", ".join(expressions))

    def _compile_aggregates(self, params: Mapping[str, Any]):
        for function in AggregateFunction:
            directive = params.get(function.value)
            if directive is None or directive is False:
                continue
            yield self._compile_aggregate(function, directive)

    def _compile_aggregate(self, function: AggregateFunction, directive: Any) -> Aggregate:
        clause = function.value

        if directive is True:
            return Aggregate(function.value, None, function.value)

        if isinstance(directive, str):
            field = self.schema.resolve_field(directive, clause)
            return Aggregate(function.value, self.context.column_ref(field, clause), function.value)

        if isinstance(directive, Mapping):
            field_name = directive.get("field")
            alias = directive.get("alias", function.value)
            if not isinstance(alias, str) or not alias:
                raise query_validation_error(f"Invalid {clause} alias", clause=clause, value=alias)

            if field_name is None:
                return Aggregate(function.value, None, alias)

            field = self.schema.resolve_field(field_name, clause)
            return Aggregate(function.value, self.context.column_ref(field, clause), alias)

        raise query_validation_error(
            f"{clause} must be True, a field name or a mapping with field and alias",
            clause=clause,
            value=directive,
        )
