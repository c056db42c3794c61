from typing import Any, List, Mapping, Sequence, Tuple

from sqlbridge.common.exceptions import query_validation_error
from sqlbridge.constants.sql import JOIN_OPERATORS, JoinMethod
from sqlbridge.query_builder.context import CompilationContext
from sqlbridge.query_builder.nodes import ColumnRef, Comparison, JoinClause
from sqlbridge.utils.casing import array_unique


def _is_condition(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and bool(value) and isinstance(value[0], str)


class JoinCompiler:
    """Turns join names from the descriptor into JOIN clauses.

    Each name must be declared in the model's ``joins`` map with an
    ``alias``, an optional ``method`` and exactly one of ``on`` (conditions
    AND-ed) or ``or_on`` (conditions OR-ed). A condition is
    ``[left_field, right_field]`` or ``[left_field, operator, right_field]``;
    the right field is read from the joined table.
    """

    def __init__(self, context: CompilationContext):
        self.context = context
        self.schema = context.schema

    def compile(self, params: Mapping[str, Any]) -> Tuple[JoinClause, ...]:
        joins = params.get("joins")
        if joins is None:
            return ()

        if not isinstance(joins, (list, tuple)):
            raise query_validation_error("joins must be a list of join names", clause="joins", value=joins)
        if not all(isinstance(name, str) for name in joins):
            raise query_validation_error("joins must contain join names", clause="joins", value=joins)

        return tuple(self._compile_join(name) for name in array_unique(joins))

    def _compile_join(self, name: str) -> JoinClause:
        if name not in self.schema.joins:
            raise query_validation_error(f"Join {name} is not defined in the model", clause="joins", value=name)

        definition = self.schema.joins[name]
        if not isinstance(definition, Mapping):
            raise query_validation_error(f"Join {name} definition must be a mapping", clause="joins")

        alias = definition.get("alias")
        if not isinstance(alias, str) or not alias:
            raise query_validation_error(f"Join {name} requires an alias", clause="joins")

        method = JoinMethod.parse(definition.get("method", JoinMethod.LEFT.value))
        if method is None:
            raise query_validation_error(
                f"Invalid method for join {name}", clause="joins", value=definition.get("method")
            )

        or_on_key = "or_on" if "or_on" in definition else "orOn"
        has_on = "on" in definition
        has_or_on = or_on_key in definition
        if has_on == has_or_on:
            raise query_validation_error(f"Join {name} requires exactly one of on or or_on", clause="joins")

        table = definition.get("table", name)
        if not isinstance(table, str) or not table:
            raise query_validation_error(f"Invalid table for join {name}", clause="joins", value=table)

        self.context.register_join(name, alias)
        raw_conditions = definition["on"] if has_on else definition[or_on_key]

        return JoinClause(
            keyword=method.keyword,
            table=self.context.model.add_db_name(table),
            alias=alias,
            conditions=self._compile_conditions(name, alias, raw_conditions),
            connector="AND" if has_on else "OR",
        )

    def _compile_conditions(self, name: str, alias: str, raw: Any) -> Tuple[Comparison, ...]:
        if _is_condition(raw):
            conditions: Sequence[Any] = [raw]
        elif (
            isinstance(raw, (list, tuple))
            and raw
            and all(isinstance(condition, (list, tuple)) for condition in raw)
        ):
            conditions = raw
        else:
            raise query_validation_error(f"Invalid conditions for join {name}", clause="joins", value=raw)

        compiled: List[Comparison] = []
        for condition in conditions:
            compiled.append(self._compile_condition(name, alias, condition))
        return tuple(compiled)

    def _compile_condition(self, name: str, alias: str, condition: Sequence[Any]) -> Comparison:
        if len(condition) == 2:
            left, right = condition
            operator = "="
        elif len(condition) == 3:
            left, operator, right = condition
        else:
            raise query_validation_error(f"Invalid condition for join {name}", clause="joins", value=condition)

        if not all(isinstance(part, str) for part in (left, operator, right)):
            raise query_validation_error(f"Invalid condition for join {name}", clause="joins", value=condition)

        if operator not in JOIN_OPERATORS:
            raise query_validation_error(
                f"Invalid operator {operator} for join {name}", clause="joins", value=condition
            )

        left_field = self.schema.resolve_field(left, "joins")
        right_field = self.schema.resolve_field(right, "joins")

        return Comparison(
            self.context.column_ref(left_field, "joins"),
            operator,
            ColumnRef(alias, right_field.column),
        )
