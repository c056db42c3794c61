from typing import Any, Dict, Mapping, Union

from sqlbridge.common.exceptions import query_validation_error
from sqlbridge.constants.sql import BASE_TABLE_ALIAS
from sqlbridge.query_builder.nodes import ColumnRef, ParameterBag, RawExpression
from sqlbridge.query_builder.schema import FieldDefinition, FlagDefinition, ModelSchema


class CompilationContext:
    """State shared by the clause compilers during one ``build()`` call.

    Holds the resolved schema, the placeholder allocator and the aliases of
    the joins compiled so far.
    """

    def __init__(self, model: Any, schema: ModelSchema, params: Mapping[str, Any]):
        self.model = model
        self.schema = schema
        self.params = params
        self.parameters = ParameterBag()
        self.base_alias = BASE_TABLE_ALIAS
        self.join_aliases: Dict[str, str] = {}

    def register_join(self, name: str, alias: str) -> None:
        if alias == self.base_alias or alias in self.join_aliases.values():
            raise query_validation_error(f"Duplicated join alias {alias}", clause="joins", value=alias)
        self.join_aliases[name] = alias

    def _requested_join_alias(self, name: str) -> Any:
        # Projection is compiled before joins, so fall back to the declaration
        requested = self.params.get("joins")
        if not isinstance(requested, (list, tuple)) or name not in requested:
            return None
        definition = self.schema.joins.get(name)
        if isinstance(definition, Mapping) and isinstance(definition.get("alias"), str):
            return definition["alias"]
        return None

    def table_alias(self, definition: Union[FieldDefinition, FlagDefinition], clause: str) -> str:
        if definition.table is None:
            return self.base_alias

        alias = self.join_aliases.get(definition.table) or self._requested_join_alias(definition.table)
        if alias is None:
            raise query_validation_error(
                f"Field {definition.name} requires join {definition.table}",
                clause=clause,
                value=definition.name,
            )
        return alias

    def column_ref(self, field: FieldDefinition, clause: str) -> ColumnRef:
        return ColumnRef(self.table_alias(field, clause), field.column)

    def flag_mask(self, flag: FlagDefinition, clause: str) -> RawExpression:
        """``(`t`.`status` & 2)``"""
        column = ColumnRef(self.table_alias(flag, clause), flag.column).render()
        return RawExpression(f"({column} & {flag.bit})")

    def flag_test(self, flag: FlagDefinition, clause: str) -> RawExpression:
        """``((`t`.`status` & 2) = 2)``"""
        return RawExpression(f"({self.flag_mask(flag, clause).sql} = {flag.bit})")
