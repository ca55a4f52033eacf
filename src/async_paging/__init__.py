# src/async_paging/__init__.py

"""
Async Paging Library Initialization.

This package pages through hand-written SQL queries on asynchronous database
drivers: it appends filter conditions and sort orders to the query text,
derives the matching count query and maps the fetched rows onto caller
types.

It initializes a logger with a NullHandler and makes the core components
(conditions, page requests, the rewriter, the pagination engine, the query
service, exceptions and backend executors) available at the top level.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
# Library logs are discarded unless the consuming application configures
# logging for "async_paging".
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False

# --------------------------------------------------------------------------
# Condition and Page Exports
# --------------------------------------------------------------------------
from .base.condition import Condition, MatchType, Order, Sort
from .base.pages import Pages, PageState

# --------------------------------------------------------------------------
# Query Building Exports
# --------------------------------------------------------------------------
from .base.predicate import Clause, Disjunction, Predicate, PredicateBuilder
from .base.rewriter import (CountMode, ParamStyle, QueryPlan, QueryRewriter,
                            TextQueryRewriter)

# --------------------------------------------------------------------------
# Execution Exports
# --------------------------------------------------------------------------
from .base.interfaces import QueryExecutor
from .base.materializer import ResultMaterializer
from .base.pagination import PaginationEngine
from .base.service import QueryService
from .base.exceptions import (
    DuplicateOrderByError,
    ExecutionError,
    MalformedQueryError,
    QueryError,
    UnsupportedCountQueryError,
    UnsupportedMatchTypeError,
)

# --------------------------------------------------------------------------
# Executor Implementation Exports
# --------------------------------------------------------------------------
from .db_implementations.sqlite_executor import SqliteExecutor
from .db_implementations.postgresql_executor import PostgresExecutor
from .db_implementations.mysql_executor import MySQLExecutor

__all__ = [
    # Conditions
    "Condition",
    "MatchType",
    "Order",
    "Sort",
    # Pages
    "Pages",
    "PageState",
    # Query building
    "Clause",
    "Disjunction",
    "Predicate",
    "PredicateBuilder",
    "CountMode",
    "ParamStyle",
    "QueryPlan",
    "QueryRewriter",
    "TextQueryRewriter",
    # Execution
    "QueryExecutor",
    "ResultMaterializer",
    "PaginationEngine",
    "QueryService",
    # Exceptions
    "QueryError",
    "MalformedQueryError",
    "UnsupportedCountQueryError",
    "DuplicateOrderByError",
    "UnsupportedMatchTypeError",
    "ExecutionError",
    # Implementations
    "SqliteExecutor",
    "PostgresExecutor",
    "MySQLExecutor",
    # Logging
    "logger",
]
