"""Query builder orchestrating the clause compilers.

A ``QueryBuilder`` compiles one query descriptor against one model into an
immutable ``CompiledQuery``. Clauses are compiled in a fixed order:

1. Select (aggregates, columns, flag expansion)
2. Joins (registers join aliases)
3. Filters
4. Order
5. Group
6. Limit / offset

Any invalid input raises ``QueryBuilderValidationError`` and no statement
is produced.

Example:
    >>> builder = QueryBuilder(orders, {"filters": {"id": 5}, "order": {"id": "desc"}})
    >>> compiled = builder.build()
    >>> compiled.sql
    'SELECT `t`.* FROM `shop`.`orders` AS `t` WHERE `t`.`id` = :id ORDER BY `t`.`id` DESC'
    >>> dict(compiled.parameters)
    {'id': 5}
"""

import copy
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlbridge.common.exceptions import ErrorCode, SQLBridgeError, invalid_model_error, query_validation_error
from sqlbridge.logging import get_logger
from sqlbridge.query_builder.context import CompilationContext
from sqlbridge.query_builder.filters import FilterCompiler
from sqlbridge.query_builder.joins import JoinCompiler
from sqlbridge.query_builder.nodes import CompiledQuery
from sqlbridge.query_builder.ordering import OrderGroupCompiler
from sqlbridge.query_builder.schema import ModelSchema
from sqlbridge.query_builder.select import SelectCompiler

logger = get_logger(__name__)


class BuilderState(str, Enum):
    CONSTRUCTED = "constructed"
    BUILT = "built"
    EXECUTED = "executed"


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def compile_pagination(params: Mapping[str, Any]) -> Tuple[Optional[int], Optional[int]]:
    """Validate ``limit``/``offset``/``page`` and return the effective limit and offset."""
    limit = params.get("limit")
    offset = params.get("offset")
    page = params.get("page")

    if limit is not None and (not _is_int(limit) or limit < 1):
        raise query_validation_error("limit must be a positive integer", clause="limit", value=limit)

    if offset is not None and (not _is_int(offset) or offset < 0):
        raise query_validation_error("offset must be a non-negative integer", clause="offset", value=offset)

    if page is not None:
        if not _is_int(page) or page < 1:
            raise query_validation_error("page must be a positive integer", clause="page", value=page)
        if limit is None:
            raise query_validation_error("page requires limit", clause="page", value=page)
        if offset is not None:
            raise query_validation_error("page and offset cannot be combined", clause="page", value=page)
        offset = (page - 1) * limit

    return limit, offset


class QueryBuilder:
    """Compiles a query descriptor for a model and runs it through a pool.

    Args:
        model: Model instance declaring ``table``, ``fields``,
            ``flags`` and ``joins``.
        params: Query descriptor. It is deep-copied; the caller's object is
            never modified.
        pool: Connection pool used by ``execute()``.
    """

    def __init__(self, model: Any, params: Optional[Mapping[str, Any]] = None, pool: Any = None):
        if model is None or not model.get_table():
            raise invalid_model_error("query")

        if params is not None and not isinstance(params, Mapping):
            raise query_validation_error("Query params must be a mapping", value=params)

        self.model = model
        self.table = model.get_table()
        self.params: Dict[str, Any] = copy.deepcopy(dict(params or {}))
        self.pool = pool
        self.compiled: Optional[CompiledQuery] = None
        self.state = BuilderState.CONSTRUCTED

    def build(self) -> CompiledQuery:
        """Compile the descriptor into a new ``CompiledQuery``.

        Raises:
            QueryBuilderValidationError: On any invalid field, join, filter,
                order, group or pagination input.
        """
        schema = ModelSchema.from_model(self.model)
        context = CompilationContext(self.model, schema, self.params)

        projection = SelectCompiler(context).compile(self.params)
        joins = JoinCompiler(context).compile(self.params)
        where = FilterCompiler(context).compile(self.params)
        ordering = OrderGroupCompiler(context)
        order = ordering.compile_order(self.params)
        group = ordering.compile_group(self.params)
        limit, offset = compile_pagination(self.params)

        compiled = CompiledQuery(
            table=self.model.add_db_name(self.table),
            alias=context.base_alias,
            projection=projection,
            joins=joins,
            where=where,
            group=group,
            order=order,
            limit=limit,
            offset=offset,
            parameters=context.parameters.snapshot(),
        )

        # Rendering validates every identifier before the query is handed out
        sql = compiled.sql
        logger.debug(
            "Query built",
            extra={"table": self.table, "query": sql, "parameter_count": len(compiled.parameters)},
        )

        self.compiled = compiled
        self.state = BuilderState.BUILT
        return compiled

    async def execute(self) -> List[Dict[str, Any]]:
        """Run the compiled query and return the raw rows."""
        if self.compiled is None:
            raise SQLBridgeError(
                "build() must be called before execute()",
                error_code=ErrorCode.INVALID_STATEMENT,
                details={"table": self.table},
            )
        if self.pool is None:
            raise SQLBridgeError(
                "QueryBuilder has no connection pool to execute on",
                error_code=ErrorCode.INVALID_STATEMENT,
                details={"table": self.table},
            )

        result = await self.pool.execute(self.compiled.sql, dict(self.compiled.parameters))
        self.state = BuilderState.EXECUTED
        return result.rows
