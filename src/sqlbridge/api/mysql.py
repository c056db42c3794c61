"""Data access facade over the query builder and the connection pool.

``MySQL`` is what application code talks to: reads go through
``QueryBuilder``, writes are assembled from the live column definitions of
the model's table. Every operation raises ``SQLBridgeError`` on failure;
nothing returns ``False`` or ``0`` to signal an error.

Example:
    >>> db = MySQL({"host": "db", "user": "app", "database": "shop"})
    >>> order_id = await db.insert(orders, {"customerId": 7, "status": 1})
    >>> rows = await db.get(orders, {"filters": {"customerId": 7}, "limit": 20, "page": 1})
    >>> totals = await db.get_totals(orders)
    >>> await db.end()
"""

import asyncio
import copy
import math
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Container, Dict, List, Mapping, Optional, Sequence, Union

from sqlbridge.common.exceptions import (
    PRECONDITION_CODES,
    ErrorCode,
    SQLBridgeError,
    empty_fields_error,
    invalid_data_error,
    invalid_model_error,
    operation_error,
)
from sqlbridge.constants.sql import (
    DATE_CREATED_COLUMN,
    DATE_MODIFIED_COLUMN,
    DATETIME_TYPES,
    PRIMARY_KEY_COLUMN,
)
from sqlbridge.logging import get_logger, operation_context
from sqlbridge.pool import ConnectionPool
from sqlbridge.query_builder.builder import QueryBuilder
from sqlbridge.query_builder.context import CompilationContext
from sqlbridge.query_builder.joins import JoinCompiler
from sqlbridge.query_builder.schema import ModelSchema
from sqlbridge.query_builder.statements import (
    Statement,
    build_delete,
    build_insert,
    build_multi_insert,
    build_show_columns,
    build_update,
)
from sqlbridge.settings import DatabaseSettings, validate_config
from sqlbridge.types.results import ExecutionResult, Totals
from sqlbridge.utils.casing import convert_keys_to_camel_case, to_snake_case
from sqlbridge.utils.decorators import traced

logger = get_logger(__name__)

ColumnDefinitions = Dict[str, Dict[str, Any]]


def _column_type(definition: Mapping[str, Any]) -> str:
    value = definition.get("Type") or ""
    if isinstance(value, bytes):
        value = value.decode("utf-8", "replace")
    return str(value).split("(", 1)[0].strip().lower()


def _is_datetime(definition: Mapping[str, Any]) -> bool:
    return _column_type(definition) in DATETIME_TYPES


class MySQL:
    """Async data access facade for models stored in MySQL.

    Args:
        config: Mapping of settings, a ``DatabaseSettings`` instance, or
            None to read ``MYSQL_*`` environment variables.
        pool: Connection pool to use instead of the shared pool for these
            settings.

    Raises:
        SQLBridgeError: ``CONFIG_*`` when the configuration is invalid.
    """

    def __init__(
        self,
        config: Union[DatabaseSettings, Mapping[str, Any], None] = None,
        pool: Optional[ConnectionPool] = None,
    ):
        self.settings = validate_config(config)
        self._pool = pool

    @property
    def pool(self) -> ConnectionPool:
        if self._pool is None:
            self._pool = ConnectionPool.for_settings(self.settings)
        return self._pool

    @staticmethod
    def _require_model(model: Any, operation: str) -> str:
        table = model.get_table() if model is not None and hasattr(model, "get_table") else None
        if not table:
            raise invalid_model_error(operation)
        return table

    @asynccontextmanager
    async def _operation(self, error_code: ErrorCode, table: str) -> AsyncIterator[None]:
        """Re-raise failures under the operation's own error code.

        Precondition errors and errors already carrying ``error_code`` pass
        through unchanged.
        """
        try:
            with operation_context(error_code.name.removeprefix("INVALID_").lower(), table):
                yield
        except SQLBridgeError as e:
            if e.error_code in PRECONDITION_CODES or e.error_code is error_code:
                raise
            raise operation_error(error_code, e, table) from e
        except Exception as e:
            raise operation_error(error_code, e, table) from e

    async def _run(self, statement: Statement) -> ExecutionResult:
        return await self.pool.execute(statement.sql, dict(statement.parameters))

    async def get_fields(self, model: Any) -> ColumnDefinitions:
        """Live column definitions of the model's table keyed by column name."""
        table = self._require_model(model, "get_fields")
        result = await self._run(build_show_columns(model.add_db_name(table)))
        return {row["Field"]: row for row in result.rows}

    def map_fields(
        self,
        model: Any,
        data: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]],
        columns: Optional[Container[str]] = None,
    ) -> Any:
        """Map item keys to column names.

        ``model.fields_map`` (``{column: alias | [aliases]}``) wins. A key that
        is already one of ``columns`` is kept as is; any other key is converted
        from camelCase to snake_case. Lists are mapped item by item.
        """
        if isinstance(data, (list, tuple)):
            return [self.map_fields(model, item, columns) for item in data]

        lookup: Dict[str, str] = {}
        for column, aliases in (getattr(model, "fields_map", None) or {}).items():
            for alias in aliases if isinstance(aliases, (list, tuple)) else [aliases]:
                lookup[alias] = column

        def column_for(key: str) -> str:
            if key in lookup:
                return lookup[key]
            if columns is not None and key in columns:
                return key
            return to_snake_case(key)

        return {column_for(key): value for key, value in data.items()}

    def _insertable(self, model: Any, item: Any, columns: ColumnDefinitions, now: int) -> Dict[str, Any]:
        if not isinstance(item, Mapping):
            return {}

        mapped = self.map_fields(model, item, columns)
        row = {column: value for column, value in mapped.items() if column in columns}
        if not row:
            return row

        if DATE_CREATED_COLUMN in columns:
            row[DATE_CREATED_COLUMN] = row.get(DATE_CREATED_COLUMN) or now
        if DATE_MODIFIED_COLUMN in columns:
            row[DATE_MODIFIED_COLUMN] = now
        return row

    def _resolve_filters(
        self,
        model: Any,
        filters: Any,
        columns: ColumnDefinitions,
        table: str,
    ) -> Dict[str, Any]:
        if not isinstance(filters, Mapping) or not filters:
            raise invalid_data_error(value=filters)

        mapped = self.map_fields(model, filters, columns)
        resolved = {column: value for column, value in mapped.items() if column in columns}
        if not resolved:
            raise invalid_data_error(f"Filters do not match any column of {table}", value=filters)
        return resolved

    @traced(span_name="sqlbridge.insert")
    async def insert(self, model: Any, item: Mapping[str, Any], allow_upsert: bool = False) -> Any:
        """Insert one row and return its identifier.

        With ``allow_upsert`` a duplicate key updates the existing row
        instead. Returns the generated id, or the supplied ``id`` when the
        server generated none.
        """
        table = self._require_model(model, "save" if allow_upsert else "insert")
        error_code = ErrorCode.INVALID_SAVE if allow_upsert else ErrorCode.INVALID_INSERT

        async with self._operation(error_code, table):
            if not isinstance(item, Mapping) or not item:
                raise empty_fields_error("Insert must have fields", table)

            columns = await self.get_fields(model)
            row = self._insertable(model, item, columns, int(time.time()))
            if not row:
                raise empty_fields_error("Insert must have fields", table)

            statement = build_insert(
                model.add_db_name(table),
                row,
                upsert=allow_upsert,
                has_primary_key=PRIMARY_KEY_COLUMN in columns,
            )
            result = await self._run(statement)

        logger.debug("Row inserted", extra={"table": table, "insert_id": result.insert_id, "upsert": allow_upsert})

        if result.insert_id is not None:
            return result.insert_id
        return row.get(PRIMARY_KEY_COLUMN)

    async def save(self, model: Any, item: Mapping[str, Any]) -> Any:
        """Insert or update ``item`` by its unique keys."""
        return await self.insert(model, item, allow_upsert=True)

    @traced(span_name="sqlbridge.update")
    async def update(
        self,
        model: Any,
        values: Mapping[str, Any],
        filters: Optional[Mapping[str, Any]] = None,
    ) -> int:
        """Update matching rows and return the affected-row count.

        ``NOW`` (or ``True``) assigned to a datetime column sets it to the
        server time. Without ``filters`` every row is updated.
        """
        table = self._require_model(model, "update")

        async with self._operation(ErrorCode.INVALID_UPDATE, table):
            if not isinstance(values, Mapping) or not values:
                raise empty_fields_error("Update must have fields", table)

            columns = await self.get_fields(model)
            mapped = self.map_fields(model, values, columns)
            assignments = {column: value for column, value in mapped.items() if column in columns}
            if not assignments:
                raise empty_fields_error("Update must have fields", table)

            where = self._resolve_filters(model, filters, columns, table) if filters is not None else None

            statement = build_update(
                model.add_db_name(table),
                assignments,
                where,
                datetime_columns=[column for column in assignments if _is_datetime(columns[column])],
            )
            result = await self._run(statement)

        return result.affected_rows

    async def _select(self, model: Any, params: Mapping[str, Any]) -> List[Dict[str, Any]]:
        builder = QueryBuilder(model, params, pool=self.pool)
        builder.build()
        return await builder.execute()

    @traced(span_name="sqlbridge.get")
    async def get(self, model: Any, params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a query descriptor and return camelCase rows.

        ``limit`` defaults to ``settings.default_limit``. The effective
        descriptor is kept on the model for ``get_totals``.
        """
        table = self._require_model(model, "get")

        async with self._operation(ErrorCode.INVALID_GET, table):
            effective = dict(params or {})

            if not effective.get("totals"):
                if not effective.get("limit"):
                    effective["limit"] = self.settings.default_limit
                model.totals_params = copy.deepcopy(effective)
            else:
                effective.pop("totals")

            rows = await self._select(model, effective)

        model.last_query_empty = not rows
        return [convert_keys_to_camel_case(row) for row in rows]

    @traced(span_name="sqlbridge.get_totals")
    async def get_totals(self, model: Any) -> Totals:
        """Pagination totals for the model's last ``get``.

        A last ``get`` without rows yields ``total=0, pages=0`` without
        querying. A requested page past the last one is clamped to it.
        """
        table = self._require_model(model, "get_totals")

        if getattr(model, "last_query_empty", False):
            return Totals(total=0, pages=0)

        params = dict(getattr(model, "totals_params", None) or {})
        count_params = {**params, "count": True, "fields": False, "page": 1, "limit": 1}
        for key in ("order", "offset", "totals"):
            count_params.pop(key, None)

        async with self._operation(ErrorCode.INVALID_GET, table):
            rows = await self._select(model, count_params)

        total = int(rows[0]["count"]) if rows else 0
        limit = params.get("limit")
        pages = math.ceil(total / limit) if limit else 1

        page = params.get("page") or 1
        if pages > 0 and page > pages:
            page = pages

        return Totals(
            total=total,
            page=page,
            page_size=limit or self.settings.default_limit,
            pages=pages,
        )

    @traced(span_name="sqlbridge.multi_insert")
    async def multi_insert(self, model: Any, items: Sequence[Mapping[str, Any]]) -> int:
        """Insert or update many rows with one statement.

        Returns:
            Affected-row count reported by the server
        """
        table = self._require_model(model, "multi_insert")

        async with self._operation(ErrorCode.INVALID_MULTI_INSERT, table):
            if not isinstance(items, (list, tuple)) or not items:
                raise empty_fields_error("Items are required", table)

            columns = await self.get_fields(model)
            now = int(time.time())

            rows: List[Dict[str, Any]] = []
            for item in items:
                row = self._insertable(model, item, columns, now)
                if not row:
                    raise empty_fields_error("Values cannot be empty", table)
                rows.append(row)

            statement = build_multi_insert(
                model.add_db_name(table),
                rows,
                has_primary_key=PRIMARY_KEY_COLUMN in columns,
            )
            result = await self._run(statement)

        logger.debug("Rows inserted", extra={"table": table, "rows": len(rows), "affected_rows": result.affected_rows})
        return result.affected_rows

    async def _remove(self, model: Any, table: str, filters: Any, joins: Optional[Sequence[str]]) -> int:
        if not isinstance(filters, Mapping) or not filters:
            raise invalid_data_error(value=filters)

        columns = await self.get_fields(model)
        where = self._resolve_filters(model, filters, columns, table)

        join_clauses = ()
        if joins:
            descriptor = {"joins": list(joins)}
            context = CompilationContext(model, ModelSchema.from_model(model), descriptor)
            join_clauses = JoinCompiler(context).compile(descriptor)
            statement = build_delete(model.add_db_name(table), where, join_clauses, context.base_alias)
        else:
            statement = build_delete(model.add_db_name(table), where)

        result = await self._run(statement)
        return result.affected_rows

    @traced(span_name="sqlbridge.remove")
    async def remove(
        self,
        model: Any,
        filters: Mapping[str, Any],
        joins: Optional[Sequence[str]] = None,
    ) -> int:
        """Delete rows matching ``filters`` and return the affected-row count.

        ``joins`` names joins declared on the model; filters then apply to
        the base table only.
        """
        table = self._require_model(model, "remove")

        async with self._operation(ErrorCode.INVALID_REMOVE, table):
            return await self._remove(model, table, filters, joins)

    @traced(span_name="sqlbridge.multi_remove")
    async def multi_remove(self, model: Any, filters_list: Sequence[Mapping[str, Any]]) -> int:
        """Run one delete per filter set concurrently and sum the affected rows.

        The first failure is raised; deletes already sent are not undone.
        """
        table = self._require_model(model, "multi_remove")

        async with self._operation(ErrorCode.INVALID_MULTI_REMOVE, table):
            if not isinstance(filters_list, (list, tuple)) or not filters_list:
                raise invalid_data_error("Filters must be a non-empty list of mappings", value=filters_list)

            results = await asyncio.gather(
                *(self._remove(model, table, filters, None) for filters in filters_list)
            )

        return sum(results)

    async def create_indexes(self) -> bool:
        """MySQL indexes are managed by migrations."""
        return True

    async def end(self) -> None:
        """Close the connection pool used by this facade."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
