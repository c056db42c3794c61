from typing import Any, List, Mapping, Tuple

from sqlbridge.common.exceptions import query_validation_error
from sqlbridge.constants.sql import SortDirection
from sqlbridge.query_builder.context import CompilationContext
from sqlbridge.query_builder.nodes import Node, OrderTerm
from sqlbridge.utils.casing import array_unique


class OrderGroupCompiler:
    """Compiles ``order`` and ``group`` directives.

    Flag fields sort and group by their masked bit instead of a column.
    """

    def __init__(self, context: CompilationContext):
        self.context = context
        self.schema = context.schema

    def _expression(self, name: str, clause: str) -> Node:
        flag = self.schema.get_flag(name)
        if flag is not None:
            return self.context.flag_mask(flag, clause)
        field = self.schema.resolve_field(name, clause)
        return self.context.column_ref(field, clause)

    def compile_order(self, params: Mapping[str, Any]) -> Tuple[OrderTerm, ...]:
        order = params.get("order")
        if order is None:
            return ()

        if isinstance(order, str):
            return (OrderTerm(self._expression(order, "order"), SortDirection.ASC),)

        if not isinstance(order, Mapping):
            raise query_validation_error(
                "order must be a field name or a mapping of field to direction", clause="order", value=order
            )

        terms: List[OrderTerm] = []
        for name, raw_direction in order.items():
            direction = SortDirection.parse(raw_direction)
            if direction is None:
                raise query_validation_error(
                    f"Invalid order direction for {name}", clause="order", value=raw_direction
                )
            terms.append(OrderTerm(self._expression(name, "order"), direction))
        return tuple(terms)

    def compile_group(self, params: Mapping[str, Any]) -> Tuple[Node, ...]:
        group = params.get("group")
        if group is None or group is False:
            return ()

        if isinstance(group, str):
            names = [group]
        elif isinstance(group, (list, tuple)):
            if not group:
                raise query_validation_error("group must not be empty", clause="group")
            if not all(isinstance(name, str) for name in group):
                raise query_validation_error("group must contain field names", clause="group", value=group)
            names = array_unique(group)
        else:
            raise query_validation_error(
                "group must be a field name or a list of field names", clause="group", value=group
            )

        return tuple(self._expression(name, "group") for name in names)
