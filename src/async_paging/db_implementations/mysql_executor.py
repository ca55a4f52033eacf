# src/async_paging/db_implementations/mysql_executor.py

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import (Any, AsyncGenerator, Dict, Iterable, List, Optional, Tuple,
                    Type, TypeVar)

# --- aiomysql Driver Import ---
import aiomysql

# --- Framework Imports ---
from async_paging.base.exceptions import ExecutionError, QueryError
from async_paging.base.interfaces import BoundArg, QueryExecutor, Row
from async_paging.base.rewriter import ParamStyle
from async_paging.base.utils import (coerce_record, prepare_bound_values,
                                     strip_terminator)

T = TypeVar("T")
DB_POOL_TYPE = aiomysql.Pool
DB_CURSOR_TYPE = aiomysql.DictCursor

# MySQL has no "offset only" form; the documented idiom is the largest LIMIT.
_MAX_LIMIT = 18446744073709551615

base_logger = logging.getLogger("async_paging.db_implementations.mysql_executor")


class MySQLExecutor(QueryExecutor):
    """
    Query executor for MySQL using aiomysql.

    Requires an aiomysql.Pool and handles connection acquisition/release
    internally. Uses DictCursor so rows come back keyed by column alias.
    Binds with `%s` (FORMAT) or `%(name)s` (PYFORMAT); literal `%` signs in
    a query with bound values must be written as `%%`.
    """

    _SUPPORTED_STYLES = (ParamStyle.FORMAT, ParamStyle.PYFORMAT)

    def __init__(
        self,
        db_pool: DB_POOL_TYPE,
        entity_types: Iterable[Type[Any]] = (),
        param_style: ParamStyle = ParamStyle.FORMAT,
    ):
        """
        Args:
            db_pool: An active aiomysql.Pool object.
            entity_types: Classes mapped natively (with type conversion).
            param_style: FORMAT (`%s`) or PYFORMAT (`%(name)s`).
        """
        if not isinstance(db_pool, aiomysql.Pool):
            raise TypeError("db_pool must be an instance of aiomysql.Pool")
        if param_style not in self._SUPPORTED_STYLES:
            raise ValueError(
                f"MySQL supports parameter styles {[s.value for s in self._SUPPORTED_STYLES]}, "
                f"got '{param_style.value}'"
            )
        super().__init__(entity_types)

        self._pool = db_pool
        self._param_style = param_style
        self._logger = base_logger.getChild(self.__class__.__name__)

    @property
    def param_style(self) -> ParamStyle:
        return self._param_style

    # --- Connection/Session Management ---
    @asynccontextmanager
    async def _get_session(self) -> AsyncGenerator[
        Tuple[aiomysql.Connection, aiomysql.DictCursor], None]:
        """Acquire a connection from the pool and create a DictCursor; release on exit."""
        conn = None
        cursor = None
        try:
            conn = await self._pool.acquire()
            self._logger.debug("Acquired connection from pool.")
            cursor = await conn.cursor(DB_CURSOR_TYPE)
            yield conn, cursor
        except Exception as e:
            self._logger.error(f"Error during connection handling: {e}", exc_info=True)
            raise
        finally:
            if cursor:
                await cursor.close()
            if conn:
                try:
                    self._pool.release(conn)
                    self._logger.debug("Released connection back to pool.")
                except Exception as release_error:
                    self._logger.error(
                        f"Error releasing connection: {release_error}", exc_info=True
                    )

    # --- Execution ---

    async def count(
        self, query: str, bound_values: BoundArg = None, timeout: Optional[float] = None
    ) -> int:
        params = prepare_bound_values(bound_values)
        self._logger.debug(f"Executing count query: SQL='{query}', Params={params}")
        try:
            row = await self._with_timeout(self._fetch_one(query, params), timeout)
            count_val = next(iter(row.values())) if row else 0
            return int(count_val or 0)
        except Exception as e:
            self._handle_db_error(e, "counting rows")
            raise  # pragma: no cover

    async def fetch(
        self,
        query: str,
        bound_values: BoundArg = None,
        offset: int = 0,
        limit: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        self._check_window(offset, limit)
        sql = self._windowed(query, offset, limit)
        params = prepare_bound_values(bound_values)
        self._logger.debug(f"Executing fetch query: SQL='{sql}', Params={params}")
        try:
            return await self._with_timeout(self._fetch_all(sql, params), timeout)
        except Exception as e:
            self._handle_db_error(e, "fetching rows")
            raise  # pragma: no cover

    async def _fetch_one(self, sql: str, params: Any) -> Optional[Dict[str, Any]]:
        async with self._get_session() as (conn, cursor):
            await cursor.execute(sql, params)
            return await cursor.fetchone()

    async def _fetch_all(self, sql: str, params: Any) -> List[Dict[str, Any]]:
        async with self._get_session() as (conn, cursor):
            await cursor.execute(sql, params)
            records = await cursor.fetchall()
        return [dict(record) for record in records]

    @staticmethod
    async def _with_timeout(coro, timeout: Optional[float]):
        if timeout is None:
            return await coro
        return await asyncio.wait_for(coro, timeout)

    @staticmethod
    def _windowed(query: str, offset: int, limit: Optional[int]) -> str:
        sql = strip_terminator(query)
        if limit is not None:
            sql += f" LIMIT {int(limit)}"
            if offset > 0:
                sql += f" OFFSET {int(offset)}"
        elif offset > 0:
            sql += f" LIMIT {_MAX_LIMIT} OFFSET {int(offset)}"
        return sql

    # --- Entity Mapping ---

    def row_to_entity(self, row: Row, shape: Type[T]) -> T:
        """
        Converts a MySQL record into `shape`. TINYINT(1) values become bool,
        JSON text is decoded and naive DATETIME values are read as UTC.
        """
        if row is None:
            raise ValueError("Cannot deserialize None record data.")
        processed = coerce_record(row, shape)
        for key, value in processed.items():
            if isinstance(value, datetime) and value.tzinfo is None:
                processed[key] = value.replace(tzinfo=timezone.utc)
        try:
            return shape(**processed)
        except Exception as e:
            self._logger.error(
                f"Failed to instantiate {shape.__name__} from processed data: {e}. "
                f"Data: {processed!r}",
                exc_info=True,
            )
            raise ValueError(f"Failed to create {shape.__name__} instance from record") from e

    # --- Error Handling ---

    def _handle_db_error(self, error: Exception, context: str = "") -> None:
        """
        Map aiomysql/pymysql errors to ExecutionError.

        Raises:
            ExecutionError: For MySQL and timeout errors, carrying the errno.
            QueryError, ValueError, TypeError: Re-raised unchanged.
        """
        log_message = f"Error during {context}: {error}"

        if isinstance(error, aiomysql.Error):
            self._logger.error(log_message, exc_info=True)
            errno = error.args[0] if error.args else None
            raise ExecutionError(
                f"MySQL error during {context} (errno {errno}): {error}"
            ) from error
        if isinstance(error, asyncio.TimeoutError):
            self._logger.error(log_message)
            raise ExecutionError(f"MySQL query timed out during {context}") from error
        if isinstance(error, (QueryError, ValueError, TypeError)):
            self._logger.error(log_message)
            raise error

        self._logger.error(log_message, exc_info=True)
        raise ExecutionError(
            f"An unexpected error occurred during {context}: {error}"
        ) from error
