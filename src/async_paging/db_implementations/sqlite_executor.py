# src/async_paging/db_implementations/sqlite_executor.py

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

# --- aiosqlite Driver Import ---
import aiosqlite

# --- Framework Imports ---
from async_paging.base.exceptions import ExecutionError, QueryError
from async_paging.base.interfaces import BoundArg, QueryExecutor, Row
from async_paging.base.rewriter import ParamStyle
from async_paging.base.utils import (coerce_record, prepare_bound_values,
                                     strip_terminator)

T = TypeVar("T")

base_logger = logging.getLogger("async_paging.db_implementations.sqlite_executor")


class SqliteExecutor(QueryExecutor):
    """
    Query executor for SQLite using aiosqlite.

    Expects an active `aiosqlite.Connection` owned by the caller; transaction
    boundaries (commit/rollback) stay with the caller. Rows are read through
    `aiosqlite.Row`, so the connection's row factory is set on init.

    Stored representations follow the usual SQLite fallbacks: booleans as
    0/1, datetime/date as ISO 8601 TEXT and complex values as JSON TEXT.
    They are converted back when rows are mapped onto entity types.
    """

    _SUPPORTED_STYLES = (ParamStyle.QMARK, ParamStyle.NAMED)

    def __init__(
        self,
        db_connection: aiosqlite.Connection,
        entity_types: Iterable[Type[Any]] = (),
        param_style: ParamStyle = ParamStyle.QMARK,
    ):
        """
        Args:
            db_connection: An active aiosqlite.Connection managed externally.
            entity_types: Classes mapped natively (with type conversion).
            param_style: QMARK (`?`) or NAMED (`:name`).
        """
        if not isinstance(db_connection, aiosqlite.Connection):
            raise TypeError("db_connection must be an instance of aiosqlite.Connection")
        if param_style not in self._SUPPORTED_STYLES:
            raise ValueError(
                f"SQLite supports parameter styles {[s.value for s in self._SUPPORTED_STYLES]}, "
                f"got '{param_style.value}'"
            )
        super().__init__(entity_types)

        self._conn = db_connection
        self._conn.row_factory = aiosqlite.Row
        self._param_style = param_style
        self._logger = base_logger.getChild(self.__class__.__name__)

    @property
    def param_style(self) -> ParamStyle:
        return self._param_style

    # --- Execution ---

    async def count(
        self, query: str, bound_values: BoundArg = None, timeout: Optional[float] = None
    ) -> int:
        params = prepare_bound_values(bound_values)
        self._logger.debug(f"Executing count query: SQL='{query}', Params={params}")
        try:
            row = await self._with_timeout(self._fetch_one(query, params), timeout)
            count_val = row[0] if row is not None else 0
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

    async def _fetch_one(self, sql: str, params: Any) -> Optional[aiosqlite.Row]:
        async with self._conn.execute(sql, params) as cursor:
            return await cursor.fetchone()

    async def _fetch_all(self, sql: str, params: Any) -> List[Dict[str, Any]]:
        async with self._conn.execute(sql, params) as cursor:
            return [dict(record) async for record in cursor]

    @staticmethod
    async def _with_timeout(coro, timeout: Optional[float]):
        if timeout is None:
            return await coro
        return await asyncio.wait_for(coro, timeout)

    @staticmethod
    def _windowed(query: str, offset: int, limit: Optional[int]) -> str:
        """Append LIMIT/OFFSET. SQLite needs a LIMIT before OFFSET; -1 means no limit."""
        sql = strip_terminator(query)
        if limit is not None:
            sql += f" LIMIT {int(limit)}"
            if offset > 0:
                sql += f" OFFSET {int(offset)}"
        elif offset > 0:
            sql += f" LIMIT -1 OFFSET {int(offset)}"
        return sql

    # --- Entity Mapping ---

    def row_to_entity(self, row: Row, shape: Type[T]) -> T:
        """Converts an aiosqlite row (dict-like) into `shape`, decoding stored types first."""
        if row is None:
            raise ValueError("Cannot deserialize None record data.")
        processed = coerce_record(row, shape)
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
        """Wraps driver errors in ExecutionError; errors from our own logic pass through."""
        log_message = f"Error during {context}: {error}"
        if isinstance(error, aiosqlite.Error):
            self._logger.error(log_message, exc_info=True)
            raise ExecutionError(
                f"SQLite error during {context}: {error}"
            ) from error
        if isinstance(error, asyncio.TimeoutError):
            self._logger.error(log_message)
            raise ExecutionError(f"SQLite query timed out during {context}") from error
        if isinstance(error, (QueryError, ValueError, TypeError)):
            self._logger.error(log_message)
            raise error
        self._logger.error(log_message, exc_info=True)
        raise ExecutionError(
            f"An unexpected error occurred during {context}: {error}"
        ) from error
