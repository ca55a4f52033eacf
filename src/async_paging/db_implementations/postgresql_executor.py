# src/async_paging/db_implementations/postgresql_executor.py

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import (Any, AsyncGenerator, Dict, Iterable, List, Mapping,
                    Optional, Set, Type, TypeVar)

# --- asyncpg Driver Import ---
import asyncpg

# --- Framework Imports ---
from async_paging.base.exceptions import ExecutionError, QueryError
from async_paging.base.interfaces import BoundArg, QueryExecutor, Row
from async_paging.base.rewriter import ParamStyle
from async_paging.base.utils import (coerce_record, prepare_bound_values,
                                     strip_terminator)

T = TypeVar("T")
DB_POOL_TYPE = asyncpg.Pool

base_logger = logging.getLogger("async_paging.db_implementations.postgresql_executor")

# Server PIDs of connections whose codecs are already registered.
_codec_set_conn_ids: Set[int] = set()
_codec_lock = asyncio.Lock()


def _encode_json(value: Any) -> str:
    # Bound values arrive already serialized by prepare_bound_values.
    return value if isinstance(value, str) else json.dumps(value)


async def _ensure_postgres_codecs(conn: asyncpg.Connection, logger: logging.Logger):
    """Registers JSON/JSONB codecs on a connection if not already tracked as set."""
    conn_id = conn.get_server_pid()
    if conn_id in _codec_set_conn_ids:
        return

    async with _codec_lock:
        if conn_id in _codec_set_conn_ids:
            return

        logger.debug(f"Setting JSON codecs for connection {conn} (ID: {conn_id})")
        try:
            for type_name in ("json", "jsonb"):
                await conn.set_type_codec(
                    type_name,
                    encoder=_encode_json,
                    decoder=json.loads,
                    schema="pg_catalog",
                    format="text",
                )
            _codec_set_conn_ids.add(conn_id)
        except Exception as e:
            logger.error(f"Failed to set JSON codecs on {conn}: {e}", exc_info=True)
            raise ExecutionError("Failed to configure necessary PostgreSQL codecs.") from e


class PostgresExecutor(QueryExecutor):
    """
    Query executor for PostgreSQL using asyncpg.

    Requires an asyncpg.Pool and acquires/releases one connection per call.
    asyncpg binds by position only (`$1`, `$2`, ...), so bound values must be
    a sequence; generated placeholders continue after the highest `$n`
    already present in the caller's query.
    """

    def __init__(
        self,
        db_pool: DB_POOL_TYPE,
        entity_types: Iterable[Type[Any]] = (),
    ):
        """
        Args:
            db_pool: An active asyncpg.Pool object.
            entity_types: Classes mapped natively (with type conversion).
        """
        if not isinstance(db_pool, asyncpg.Pool):
            raise TypeError("db_pool must be an instance of asyncpg.Pool")
        super().__init__(entity_types)

        self._pool = db_pool
        self._logger = base_logger.getChild(self.__class__.__name__)

    @property
    def param_style(self) -> ParamStyle:
        return ParamStyle.NUMERIC

    # --- Connection/Session Management ---
    @asynccontextmanager
    async def _get_session(self) -> AsyncGenerator[asyncpg.Connection, None]:
        """Acquire a connection from the pool, ensure codecs, and release."""
        conn: Optional[asyncpg.Connection] = None
        try:
            conn = await self._pool.acquire()
            self._logger.debug(f"Acquired connection {conn} from pool.")
            await _ensure_postgres_codecs(conn, self._logger)
            yield conn
        except Exception as e:
            self._logger.error(f"Error during connection handling: {e}", exc_info=True)
            raise
        finally:
            if conn:
                try:
                    await self._pool.release(conn)
                    self._logger.debug(f"Released connection {conn} back to pool.")
                except Exception as release_error:
                    self._logger.error(
                        f"Error releasing connection: {release_error}", exc_info=True
                    )

    # --- Execution ---

    async def count(
        self, query: str, bound_values: BoundArg = None, timeout: Optional[float] = None
    ) -> int:
        params = self._positional(bound_values)
        self._logger.debug(f"Executing count query: SQL='{query}', Params={params}")
        try:
            async with self._get_session() as conn:
                count_val = await conn.fetchval(query, *params, timeout=timeout)
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
        params = self._positional(bound_values)
        self._logger.debug(f"Executing fetch query: SQL='{sql}', Params={params}")
        try:
            async with self._get_session() as conn:
                records = await conn.fetch(sql, *params, timeout=timeout)
            return [dict(record) for record in records]
        except Exception as e:
            self._handle_db_error(e, "fetching rows")
            raise  # pragma: no cover

    @staticmethod
    def _positional(bound_values: BoundArg) -> List[Any]:
        if isinstance(bound_values, Mapping):
            raise TypeError("asyncpg binds by position; named bound values are not supported")
        return prepare_bound_values(bound_values)

    @staticmethod
    def _windowed(query: str, offset: int, limit: Optional[int]) -> str:
        sql = strip_terminator(query)
        if limit is not None:
            sql += f" LIMIT {int(limit)}"
        if offset > 0:
            sql += f" OFFSET {int(offset)}"
        return sql

    # --- Entity Mapping ---

    def row_to_entity(self, row: Row, shape: Type[T]) -> T:
        """Converts an asyncpg record into `shape`; JSON text columns are decoded."""
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
        """
        Map asyncpg errors to ExecutionError.

        Raises:
            ExecutionError: For PostgreSQL, connection and timeout errors.
            QueryError, ValueError, TypeError: Re-raised unchanged.
        """
        log_message = f"Error during {context}: {error}"

        if isinstance(error, asyncpg.PostgresError):
            self._logger.error(log_message, exc_info=True)
            sqlstate = getattr(error, "sqlstate", None)
            raise ExecutionError(
                f"PostgreSQL error during {context} (SQLSTATE {sqlstate}): {error}"
            ) from error
        if isinstance(error, asyncpg.InterfaceError):
            self._logger.error(log_message, exc_info=True)
            raise ExecutionError(
                f"PostgreSQL interface error during {context}: {error}"
            ) from error
        if isinstance(error, asyncio.TimeoutError):
            self._logger.error(log_message)
            raise ExecutionError(f"PostgreSQL query timed out during {context}") from error
        if isinstance(error, (QueryError, ValueError, TypeError)):
            self._logger.error(log_message)
            raise error

        self._logger.error(log_message, exc_info=True)
        raise ExecutionError(
            f"An unexpected error occurred during {context}: {error}"
        ) from error
