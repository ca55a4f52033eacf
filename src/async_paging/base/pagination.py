# src/async_paging/base/pagination.py
from logging import LoggerAdapter
from typing import Any, Mapping, Optional, Sequence, Type, Union

from .interfaces import QueryExecutor
from .materializer import ResultMaterializer
from .pages import Pages, PageState
from .predicate import PredicateBuilder
from .rewriter import CountMode, QueryRewriter, TextQueryRewriter


class PaginationEngine:
    """
    Runs one page request: count (optional), short-circuit on an empty count,
    windowed fetch, result assignment.

    The engine holds no per-call state, so one instance can serve concurrent
    requests as long as each brings its own executor. Executor errors abort
    the call unchanged; nothing is retried.
    """

    def __init__(
        self,
        builder: Optional[PredicateBuilder] = None,
        rewriter: Optional[QueryRewriter] = None,
        materializer: Optional[ResultMaterializer] = None,
    ):
        self.builder = builder or PredicateBuilder()
        self.rewriter = rewriter or TextQueryRewriter()
        self.materializer = materializer or ResultMaterializer()

    async def paginate(
        self,
        pages: Pages,
        query: str,
        executor: QueryExecutor,
        logger: LoggerAdapter,
        bound_values: Optional[Union[Sequence[Any], Mapping[str, Any]]] = None,
        shape: Optional[Type[Any]] = None,
        count_mode: CountMode = CountMode.DERIVE,
        timeout: Optional[float] = None,
    ) -> Pages:
        """
        Fill `pages` with the total count and the rows of its window.

        Args:
            pages: The page request; receives total_count, result and state.
            query: Base query text, with or without its own where clause.
            executor: Runs the count and fetch queries.
            logger: Logger adapter for recording the call.
            bound_values: Values bound by placeholders already in `query`.
            shape: Record type for the result rows; None yields dicts.
            count_mode: DERIVE rewrites the select list, WRAP counts the
                        query as a derived table (allows group by).
            timeout: Passed through to the executor.

        Returns:
            The same `pages` object.

        Raises:
            DuplicateOrderByError: `query` has an order by and `pages.sort` is set.
            MalformedQueryError: `query` has no from clause.
            UnsupportedCountQueryError: Derived count of a grouped query.
            ExecutionError: The executor failed.
        """
        if pages is None:
            raise ValueError("pages can not be None")

        clauses = self.builder.build(pages.conditions)
        plan = self.rewriter.plan(
            query,
            clauses,
            sort=pages.sort,
            bound_values=bound_values,
            param_style=executor.param_style,
            auto_count=pages.auto_count,
            count_mode=count_mode,
        )
        logger.debug(
            f"Paginating page {pages.page_number} (size {pages.page_size}): "
            f"SQL='{plan.fetch_query_text}', Params={plan.bound_values}"
        )

        if pages.auto_count:
            total = await executor.count(
                plan.count_query_text, plan.bound_values, timeout=timeout
            )
            pages.total_count = int(total or 0)
            pages.state = PageState.COUNTED
            logger.debug(f"Total: {pages.total_count}")
            if pages.total_count == 0:
                pages.result = []
                pages.state = PageState.DONE
                return pages
        else:
            pages.state = PageState.COUNT_SKIPPED

        rows = await executor.fetch(
            plan.fetch_query_text,
            plan.bound_values,
            offset=pages.offset,
            limit=pages.limit,
            timeout=timeout,
        )
        pages.state = PageState.FETCHED

        pages.result = self.materializer.materialize(rows, shape, executor)
        pages.state = PageState.DONE
        logger.info(
            f"Fetched {len(pages.result)} row(s) for page {pages.page_number} "
            f"of {pages.total_pages if pages.auto_count else 'uncounted'} page(s)."
        )
        return pages
