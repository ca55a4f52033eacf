# tests/conftest.py
import logging
import os
from typing import Any, Dict, List, Optional

import aiomysql
import aiosqlite
import asyncpg
import pytest
import pytest_asyncio
from pydantic import BaseModel

from async_paging.base.interfaces import QueryExecutor
from async_paging.base.rewriter import ParamStyle
from async_paging.db_implementations.mysql_executor import MySQLExecutor
from async_paging.db_implementations.postgresql_executor import PostgresExecutor
from async_paging.db_implementations.sqlite_executor import SqliteExecutor

# Silence verbose loggers
logging.getLogger("aiomysql").setLevel(logging.WARNING)


# --- Constants ---
# PostgreSQL and MySQL tests run only when these point at a reachable server.
POSTGRES_DSN = os.getenv("TEST_POSTGRES_DSN")

MYSQL_HOST = os.getenv("TEST_MYSQL_HOST")
MYSQL_PORT = int(os.getenv("TEST_MYSQL_PORT", "3306"))
MYSQL_USER = os.getenv("TEST_MYSQL_USER", "testuser")
MYSQL_PASSWORD = os.getenv("TEST_MYSQL_PASSWORD", "password")
MYSQL_DB = os.getenv("TEST_MYSQL_DB", "pytest_async_paging")

EXECUTOR_IMPLEMENTATIONS = ["sqlite", "postgresql", "mysql"]


# --- Test Records ---


class Person(BaseModel):
    """Row shape of the `people` test table."""

    id: int
    name: str
    city: Optional[str] = None
    age: int
    active: bool = True


# id, name, city, age, active
PEOPLE = [
    (1, "Alice", "Berlin", 34, True),
    (2, "Bob", "Paris", 27, False),
    (3, "Carol", "Berlin", 41, True),
    (4, "Dave", None, 19, True),
    (5, "Eve", "Rome", 52, False),
    (6, "Frank", "Paris", 38, True),
    (7, "Grace", "Berlin", 29, True),
    (8, "Heidi", "Madrid", 45, False),
    (9, "Ivan", None, 23, True),
    (10, "Judy", "Rome", 31, True),
    (11, "Mallory", "Berlin", 60, False),
]

PEOPLE_QUERY = "select id, name, city, age, active from people"


# --- Recording Executor ---


class RecordingExecutor(QueryExecutor):
    """
    In-process executor that records every call. fetch windows the canned
    rows the way a database would.
    """

    def __init__(
        self,
        total: int = 0,
        rows: Optional[List[Dict[str, Any]]] = None,
        style: ParamStyle = ParamStyle.QMARK,
        entity_types=(),
    ):
        super().__init__(entity_types)
        self.total = total
        self.rows = list(rows or [])
        self.style = style
        self.calls: List[tuple] = []

    @property
    def param_style(self) -> ParamStyle:
        return self.style

    async def count(self, query, bound_values=None, timeout=None) -> int:
        self.calls.append(("count", query, bound_values))
        return self.total

    async def fetch(self, query, bound_values=None, offset=0, limit=None, timeout=None):
        self._check_window(offset, limit)
        self.calls.append(("fetch", query, bound_values, offset, limit))
        end = None if limit is None else offset + limit
        return [dict(r) for r in self.rows[offset:end]]

    @property
    def kinds(self) -> List[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def recording_executor():
    """Factory for RecordingExecutor instances."""

    def _create(**kwargs) -> RecordingExecutor:
        return RecordingExecutor(**kwargs)

    return _create


# --- Logger Fixture ---


@pytest.fixture(scope="session")
def logger():
    """Create a test logger."""
    _logger = logging.getLogger("test_paging_logger")
    if not _logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.setLevel(logging.DEBUG)
        _logger.addHandler(handler)
        _logger.setLevel(logging.DEBUG)
        _logger.propagate = False
    return logging.LoggerAdapter(_logger, {})


@pytest.fixture
def package_caplog(caplog):
    """caplog wired to the package logger, which does not propagate to root."""
    package_logger = logging.getLogger("async_paging")
    package_logger.addHandler(caplog.handler)
    caplog.set_level(logging.DEBUG, logger="async_paging")
    try:
        yield caplog
    finally:
        package_logger.removeHandler(caplog.handler)


# --- Connection Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def sqlite_memory_db_conn():
    """Provides an in-memory aiosqlite database connection for testing."""
    conn = None
    try:
        conn = await aiosqlite.connect(":memory:")
        conn.row_factory = aiosqlite.Row
        yield conn
    finally:
        if conn:
            await conn.close()


@pytest_asyncio.fixture
async def postgres_pool():
    """Connection pool for TEST_POSTGRES_DSN; skips when unset or unreachable."""
    if not POSTGRES_DSN:
        pytest.skip("TEST_POSTGRES_DSN not set; skipping PostgreSQL tests.")
    try:
        pool = await asyncpg.create_pool(POSTGRES_DSN, min_size=1, max_size=2)
    except Exception as e:
        pytest.skip(f"PostgreSQL not reachable at TEST_POSTGRES_DSN: {e}")
    try:
        yield pool
    finally:
        await pool.close()


@pytest_asyncio.fixture
async def mysql_pool():
    """Connection pool for TEST_MYSQL_*; skips when unset or unreachable."""
    if not MYSQL_HOST:
        pytest.skip("TEST_MYSQL_HOST not set; skipping MySQL tests.")
    try:
        admin_conn = await aiomysql.connect(
            host=MYSQL_HOST,
            port=MYSQL_PORT,
            user=MYSQL_USER,
            password=MYSQL_PASSWORD,
            autocommit=True,
        )
    except Exception as e:
        pytest.skip(f"MySQL not reachable at {MYSQL_HOST}:{MYSQL_PORT}: {e}")

    try:
        async with admin_conn.cursor() as cursor:
            await cursor.execute(f"CREATE DATABASE IF NOT EXISTS `{MYSQL_DB}`")

        pool = await aiomysql.create_pool(
            host=MYSQL_HOST,
            port=MYSQL_PORT,
            user=MYSQL_USER,
            password=MYSQL_PASSWORD,
            db=MYSQL_DB,
            autocommit=True,
        )
        yield pool

        pool.close()
        await pool.wait_closed()
    finally:
        admin_conn.close()


# --- Seeded Executors ---


async def _seed_sqlite(conn: aiosqlite.Connection) -> None:
    await conn.execute("DROP TABLE IF EXISTS people")
    await conn.execute(
        "CREATE TABLE people (id INTEGER PRIMARY KEY, name TEXT NOT NULL, "
        "city TEXT, age INTEGER NOT NULL, active INTEGER NOT NULL)"
    )
    await conn.executemany(
        "INSERT INTO people (id, name, city, age, active) VALUES (?, ?, ?, ?, ?)",
        PEOPLE,
    )
    await conn.commit()


async def _seed_postgres(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        await conn.execute("DROP TABLE IF EXISTS people")
        await conn.execute(
            "CREATE TABLE people (id INTEGER PRIMARY KEY, name TEXT NOT NULL, "
            "city TEXT, age INTEGER NOT NULL, active BOOLEAN NOT NULL)"
        )
        await conn.executemany(
            "INSERT INTO people (id, name, city, age, active) VALUES ($1, $2, $3, $4, $5)",
            PEOPLE,
        )


async def _seed_mysql(pool: aiomysql.Pool) -> None:
    async with pool.acquire() as conn:
        async with conn.cursor() as cursor:
            await cursor.execute("DROP TABLE IF EXISTS people")
            await cursor.execute(
                "CREATE TABLE people (id INT PRIMARY KEY, name VARCHAR(64) NOT NULL, "
                "city VARCHAR(64), age INT NOT NULL, active TINYINT(1) NOT NULL)"
            )
            await cursor.executemany(
                "INSERT INTO people (id, name, city, age, active) VALUES (%s, %s, %s, %s, %s)",
                PEOPLE,
            )


@pytest_asyncio.fixture
async def sqlite_people_executor(sqlite_memory_db_conn):
    await _seed_sqlite(sqlite_memory_db_conn)
    return SqliteExecutor(sqlite_memory_db_conn, entity_types=(Person,))


@pytest_asyncio.fixture
async def postgresql_people_executor(postgres_pool):
    await _seed_postgres(postgres_pool)
    yield PostgresExecutor(postgres_pool, entity_types=(Person,))
    async with postgres_pool.acquire() as conn:
        await conn.execute("DROP TABLE IF EXISTS people")


@pytest_asyncio.fixture
async def mysql_people_executor(mysql_pool):
    await _seed_mysql(mysql_pool)
    yield MySQLExecutor(mysql_pool, entity_types=(Person,))
    async with mysql_pool.acquire() as conn:
        async with conn.cursor() as cursor:
            await cursor.execute("DROP TABLE IF EXISTS people")


@pytest.fixture(params=EXECUTOR_IMPLEMENTATIONS)
def people_executor(request):
    """Parametrized fixture: an executor over the seeded `people` table per backend."""
    impl_key = request.param
    if impl_key == "sqlite":
        return request.getfixturevalue("sqlite_people_executor")
    elif impl_key == "postgresql":
        return request.getfixturevalue("postgresql_people_executor")
    elif impl_key == "mysql":
        return request.getfixturevalue("mysql_people_executor")
    raise ValueError(f"Unknown executor implementation key: {impl_key}")


def placeholder(executor: QueryExecutor, position: int) -> str:
    """Positional placeholder for a hand-written query on `executor`."""
    style = executor.param_style
    if style == ParamStyle.NUMERIC:
        return f"${position}"
    if style in (ParamStyle.FORMAT, ParamStyle.PYFORMAT):
        return "%s"
    return "?"


@pytest.fixture
def ph():
    return placeholder
