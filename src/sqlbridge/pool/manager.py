import asyncio
import re
import time
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
from typing import Any, AsyncIterator, ClassVar, Dict, Mapping, Optional

from opentelemetry.trace import SpanKind
from pymysql.converters import escape_item
from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from sqlbridge.common.exceptions import (
    ErrorCode,
    SQLBridgeError,
    connection_error,
    pool_ended_error,
    query_execution_error,
    too_many_connections_error,
)
from sqlbridge.constants.sql import ER_CON_COUNT_ERROR
from sqlbridge.logging import get_logger
from sqlbridge.settings import DatabaseSettings
from sqlbridge.types.results import ExecutionResult
from sqlbridge.utils.decorators import retry_with_backoff, traced

logger = get_logger(__name__)

_PLACEHOLDER = re.compile(r"(?<![:\w]):(\w+)")


def _is_too_many_connections(error: DBAPIError) -> bool:
    args = getattr(error.orig, "args", ())
    return bool(args) and args[0] == ER_CON_COUNT_ERROR


def _is_pool_exhausted(error: Exception) -> bool:
    return isinstance(error, SQLBridgeError) and error.error_code is ErrorCode.TOO_MANY_CONNECTIONS


def _statement_attributes(pool: "ConnectionPool", sql: str, placeholders: Any = None) -> Dict[str, Any]:
    return {
        "db.system": "mysql",
        "db.name": pool.settings.database,
        "db.statement": sql[:500],
        "server.address": pool.settings.host,
    }


@dataclass
class ConnectionActivity:
    """Last use of one pooled DBAPI connection."""

    record: Any
    last_activity: float
    in_use: bool = False


class ConnectionPool:
    """Async MySQL connection pool built on a SQLAlchemy ``AsyncEngine``.

    One pool exists per configuration (see ``for_settings``). Connections
    are checked out per statement and returned as soon as it completes.

    Features:
        - One bounded retry after a fixed delay when the server reports
          too many connections or the pool is exhausted
        - Idle reaper task started with the first connection, destroying
          connections unused for ``max_idle_timeout`` seconds
        - ``:name`` placeholder formatting with driver escaping for logs

    Example:
        >>> pool = ConnectionPool.for_settings(DatabaseSettings(host="db", database="shop"))
        >>> result = await pool.execute("SELECT * FROM `orders` WHERE `id` = :id", {"id": 1})
        >>> result.rows
        [{'id': 1, 'status': 3}]
        >>> await pool.close()
    """

    _registry: ClassVar[Dict[tuple, "ConnectionPool"]] = {}

    def __init__(self, settings: DatabaseSettings, engine: Optional[AsyncEngine] = None):
        self.settings = settings
        self._engine = engine
        self._connections: Dict[int, ConnectionActivity] = {}
        self._reaper: Optional[asyncio.Task] = None
        self._closed = False

    @classmethod
    def for_settings(cls, settings: DatabaseSettings) -> "ConnectionPool":
        """Return the process-wide pool for these settings, creating it if needed."""
        pool = cls._registry.get(settings.pool_key)
        if pool is None or pool.closed:
            pool = cls(settings)
            cls._registry[settings.pool_key] = pool
        return pool

    @classmethod
    async def close_all(cls) -> None:
        for pool in list(cls._registry.values()):
            await pool.close()
        cls._registry.clear()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def engine(self) -> AsyncEngine:
        """Lazily create the SQLAlchemy engine."""
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    def _create_engine(self) -> AsyncEngine:
        try:
            engine = create_async_engine(
                self.settings.build_url(),
                pool_size=self.settings.connection_limit,
                max_overflow=0,
                pool_timeout=self.settings.pool_timeout,
                pool_pre_ping=True,
                echo=self.settings.echo,
            )
        except Exception as e:
            raise connection_error(
                f"Failed to create database engine: {e}",
                host=self.settings.host,
                cause=e,
            ) from e

        event.listen(engine.sync_engine, "checkout", self._on_checkout)
        event.listen(engine.sync_engine, "checkin", self._on_checkin)

        logger.info("Database engine created", extra=self.settings.get_connection_info())
        return engine

    def _on_checkout(self, dbapi_connection: Any, connection_record: Any, connection_proxy: Any) -> None:
        self._connections[id(connection_record)] = ConnectionActivity(
            record=connection_record,
            last_activity=time.time(),
            in_use=True,
        )

    def _on_checkin(self, dbapi_connection: Any, connection_record: Any) -> None:
        activity = self._connections.get(id(connection_record))
        if activity is None:
            return
        activity.last_activity = time.time()
        activity.in_use = False

    def should_destroy_connection(self, last_activity: Optional[float]) -> bool:
        """True when a connection has no recorded activity or has been idle too long."""
        if not last_activity:
            return True
        return time.time() - last_activity > self.settings.max_idle_timeout

    def close_idle_connections(self) -> int:
        """Destroy idle connections past the threshold. Failures are logged and skipped.

        Returns:
            Number of connections destroyed
        """
        destroyed = 0

        for key, activity in list(self._connections.items()):
            if activity.in_use or not self.should_destroy_connection(activity.last_activity):
                continue

            self._connections.pop(key, None)
            try:
                # Soft: the connection is replaced on its next checkout
                activity.record.invalidate(soft=True)
                destroyed += 1
            except Exception as exc:
                logger.warning(
                    "Failed to destroy idle connection",
                    extra={"connection_id": key, "error": str(exc)},
                )

        if destroyed:
            logger.debug("Idle connections destroyed", extra={"count": destroyed})
        return destroyed

    async def _reap_idle_connections(self) -> None:
        while True:
            await asyncio.sleep(self.settings.idle_check_interval)
            self.close_idle_connections()

    def _start_reaper(self) -> None:
        if self._reaper is None or self._reaper.done():
            self._reaper = asyncio.get_running_loop().create_task(self._reap_idle_connections())

    async def _acquire(self) -> AsyncConnection:
        if self._closed:
            raise pool_ended_error()

        try:
            return await self.engine.connect()
        except PoolTimeoutError as e:
            raise too_many_connections_error(host=self.settings.host, cause=e) from e
        except DBAPIError as e:
            if _is_too_many_connections(e):
                raise too_many_connections_error(host=self.settings.host, cause=e) from e
            raise connection_error(
                f"Failed to connect to database: {e.orig}",
                host=self.settings.host,
                cause=e,
            ) from e
        except (SQLAlchemyError, OSError) as e:
            raise connection_error(
                f"Failed to connect to database: {e}",
                host=self.settings.host,
                cause=e,
            ) from e

    @asynccontextmanager
    async def get_connection(self) -> AsyncIterator[AsyncConnection]:
        """Check out a connection for one unit of work.

        Raises:
            SQLBridgeError: ``TOO_MANY_CONNECTIONS`` once the retry is spent,
                ``CONNECTION_ERROR`` for any other connect failure,
                ``POOL_ENDED`` after ``close()``.
        """
        acquire = retry_with_backoff(
            max_retries=self.settings.max_connection_retries,
            initial_delay=self.settings.connection_retry_delay,
            exponential_base=1.0,
            retry_on=(SQLBridgeError,),
            retry_condition=_is_pool_exhausted,
        )(self._acquire)

        connection = await acquire()
        self._start_reaper()
        try:
            yield connection
        finally:
            await connection.close()

    @traced(
        span_name="sqlbridge.pool.execute",
        kind=SpanKind.CLIENT,
        attribute_getter=_statement_attributes,
    )
    async def execute(self, sql: str, placeholders: Optional[Mapping[str, Any]] = None) -> ExecutionResult:
        """Execute one statement with ``:name`` placeholders bound by the driver."""
        start_time = time.time()
        parameters = dict(placeholders or {})

        async with self.get_connection() as connection:
            try:
                result = await connection.execute(text(sql), parameters)
                rows = [dict(row) for row in result.mappings().all()] if result.returns_rows else []
                outcome = ExecutionResult(
                    rows=rows,
                    insert_id=result.lastrowid or None,
                    affected_rows=result.rowcount,
                )
                await connection.commit()
            except SQLAlchemyError as exc:
                duration = time.time() - start_time
                logger.error(
                    "Statement failed",
                    extra={
                        "query": self.format_query(sql, parameters)[:500],
                        "duration.seconds": f"{duration:.6f}",
                        "error": str(exc),
                    },
                )
                raise query_execution_error(sql, exc) from exc

        duration = time.time() - start_time
        logger.debug(
            "Statement executed",
            extra={
                "query": sql[:500],
                "row_count": len(outcome.rows),
                "affected_rows": outcome.affected_rows,
                "duration.seconds": f"{duration:.6f}",
            },
        )
        return outcome

    def escape(self, value: Any) -> str:
        """Render a value as an escaped MySQL literal."""
        return escape_item(value, "utf8mb4")

    def format_query(self, sql: str, values: Optional[Mapping[str, Any]]) -> str:
        """Replace ``:name`` tokens with escaped literals.

        Tokens without a matching key are left untouched; a missing or
        non-mapping ``values`` returns the statement unchanged.
        """
        if not values or not isinstance(values, Mapping):
            return sql

        def replace(match: "re.Match[str]") -> str:
            key = match.group(1)
            if key in values:
                return self.escape(values[key])
            return match.group(0)

        return _PLACEHOLDER.sub(replace, sql)

    def get_connection_info(self) -> Dict[str, Any]:
        return {
            **self.settings.get_connection_info(),
            "tracked_connections": len(self._connections),
            "closed": self._closed,
        }

    async def close(self) -> None:
        """Stop the idle reaper and dispose of every pooled connection."""
        self._closed = True

        if self._reaper is not None:
            self._reaper.cancel()
            with suppress(asyncio.CancelledError):
                await self._reaper
            self._reaper = None

        self._connections.clear()

        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None

        if ConnectionPool._registry.get(self.settings.pool_key) is self:
            del ConnectionPool._registry[self.settings.pool_key]

        logger.info("Connection pool closed", extra=self.settings.get_connection_info())
