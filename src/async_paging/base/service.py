# src/async_paging/base/service.py
from logging import LoggerAdapter
from typing import (Any, Dict, Generic, Iterable, List, Mapping, Optional,
                    Sequence, Type, TypeVar, Union)

from .condition import Condition, MatchType, Sort, check_property
from .interfaces import QueryExecutor
from .materializer import ResultMaterializer
from .pages import Pages
from .pagination import PaginationEngine
from .predicate import ClauseList, Predicate, PredicateBuilder
from .rewriter import CountMode, QueryRewriter, TextQueryRewriter

T = TypeVar("T")
Values = Optional[Union[Sequence[Any], Mapping[str, Any]]]


class QueryService(Generic[T]):
    """
    Paging and finder operations over one executor.

    Composes a PredicateBuilder, a QueryRewriter, a PaginationEngine and a
    ResultMaterializer. Operations that take a `shape` default to the
    service's `entity_type`; pass `dict` to get plain mappings instead.
    """

    def __init__(
        self,
        executor: QueryExecutor,
        entity_type: Optional[Type[T]] = None,
        builder: Optional[PredicateBuilder] = None,
        rewriter: Optional[QueryRewriter] = None,
        materializer: Optional[ResultMaterializer] = None,
        engine: Optional[PaginationEngine] = None,
    ):
        if not isinstance(executor, QueryExecutor):
            raise TypeError("executor must be an instance of QueryExecutor")
        self._executor = executor
        self._entity_type = entity_type
        self.builder = builder or PredicateBuilder()
        self.rewriter = rewriter or TextQueryRewriter()
        self.materializer = materializer or ResultMaterializer()
        self.engine = engine or PaginationEngine(
            self.builder, self.rewriter, self.materializer
        )

    @property
    def executor(self) -> QueryExecutor:
        return self._executor

    @property
    def entity_type(self) -> Optional[Type[T]]:
        return self._entity_type

    def _shape(self, shape: Optional[Type[Any]]) -> Optional[Type[Any]]:
        return shape if shape is not None else self._entity_type

    # --- Paging ---

    async def find_page(
        self,
        pages: Pages,
        query: str,
        logger: LoggerAdapter,
        values: Values = None,
        shape: Optional[Type[Any]] = None,
        timeout: Optional[float] = None,
    ) -> Pages:
        """
        Page through a query, counting with a derived `select count(*)` form.
        Grouped queries need `pages.auto_count = False` or find_page_by_sql.
        """
        return await self.engine.paginate(
            pages,
            query,
            self._executor,
            logger,
            bound_values=values,
            shape=self._shape(shape),
            count_mode=CountMode.DERIVE,
            timeout=timeout,
        )

    async def find_page_by_sql(
        self,
        pages: Pages,
        sql: str,
        logger: LoggerAdapter,
        values: Values = None,
        shape: Optional[Type[Any]] = None,
        timeout: Optional[float] = None,
    ) -> Pages:
        """
        Page through native SQL, counting it as a derived table. Rows are
        returned as dicts unless a shape is given.
        """
        return await self.engine.paginate(
            pages,
            sql,
            self._executor,
            logger,
            bound_values=values,
            shape=shape,
            count_mode=CountMode.WRAP,
            timeout=timeout,
        )

    # --- Finders ---

    async def find(
        self,
        query: str,
        logger: LoggerAdapter,
        conditions: Iterable[Condition] = (),
        sort: Optional[Sort] = None,
        values: Values = None,
        shape: Optional[Type[Any]] = None,
    ) -> List[Any]:
        """All rows of a query, filtered by `conditions` and ordered by `sort`."""
        clauses = self.builder.build(list(conditions))
        return await self._run(query, clauses, logger, sort, values, self._shape(shape))

    async def find_by(
        self,
        query: str,
        logger: LoggerAdapter,
        prop: str,
        match_type: Union[MatchType, str],
        *values: Any,
        shape: Optional[Type[Any]] = None,
    ) -> List[Any]:
        """
        Rows matching a single predicate. A blank operand or an unknown match
        type drops the predicate, so every row of `query` matches.
        """
        predicate = self.builder.build_one(prop, match_type, *values)
        clauses: ClauseList = [predicate] if predicate is not None else []
        return await self._run(query, clauses, logger, shape=self._shape(shape))

    async def find_unique(
        self,
        query: str,
        logger: LoggerAdapter,
        values: Values = None,
        shape: Optional[Type[Any]] = None,
    ) -> Optional[Any]:
        """The first row of a query, or None when it returns nothing."""
        rows = await self._run(
            query, [], logger, values=values, shape=self._shape(shape), limit=1
        )
        return rows[0] if rows else None

    async def query_to_map(
        self, query: str, logger: LoggerAdapter, values: Values = None
    ) -> List[Dict[str, Any]]:
        """All rows of a query as dicts keyed by column alias."""
        return await self._run(query, [], logger, values=values, shape=dict)

    async def count(
        self,
        query: str,
        logger: LoggerAdapter,
        conditions: Iterable[Condition] = (),
        values: Values = None,
    ) -> int:
        """Number of rows a query returns once `conditions` are applied."""
        clauses = self.builder.build(list(conditions))
        plan = self.rewriter.plan(
            query,
            clauses,
            bound_values=values,
            param_style=self._executor.param_style,
            auto_count=True,
        )
        logger.debug(f"Executing count query: SQL='{plan.count_query_text}', Params={plan.bound_values}")
        total = await self._executor.count(plan.count_query_text, plan.bound_values)
        return int(total or 0)

    async def is_property_unique(
        self,
        query: str,
        logger: LoggerAdapter,
        prop: str,
        new_value: Any,
        old_value: Any = None,
    ) -> bool:
        """
        True when `new_value` is unchanged from `old_value` or no row of
        `query` has it in `prop`. The comparison is bound even if blank.
        """
        if new_value == old_value:
            return True
        check_property(prop)
        clauses: ClauseList = [Predicate(prop, MatchType.EQ, (new_value,))]
        rows = await self._run(query, clauses, logger, shape=dict, limit=1)
        return not rows

    async def _run(
        self,
        query: str,
        clauses: ClauseList,
        logger: LoggerAdapter,
        sort: Optional[Sort] = None,
        values: Values = None,
        shape: Optional[Type[Any]] = None,
        limit: Optional[int] = None,
    ) -> List[Any]:
        plan = self.rewriter.plan(
            query,
            clauses,
            sort=sort,
            bound_values=values,
            param_style=self._executor.param_style,
            auto_count=False,
        )
        logger.debug(f"Executing query: SQL='{plan.fetch_query_text}', Params={plan.bound_values}")
        rows = await self._executor.fetch(
            plan.fetch_query_text, plan.bound_values, offset=0, limit=limit
        )
        logger.debug(f"size: {len(rows)}")
        return self.materializer.materialize(rows, shape, self._executor)
