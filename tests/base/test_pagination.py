# tests/base/test_pagination.py

import pytest
from pydantic import BaseModel

from async_paging.base.condition import Condition, Sort
from async_paging.base.exceptions import (
    DuplicateOrderByError,
    MalformedQueryError,
    UnsupportedCountQueryError,
)
from async_paging.base.pages import Pages, PageState
from async_paging.base.pagination import PaginationEngine
from async_paging.base.rewriter import CountMode, ParamStyle


class Item(BaseModel):
    id: int
    name: str


ITEMS = [{"id": i, "name": f"item-{i}"} for i in range(1, 101)]


@pytest.fixture
def engine() -> PaginationEngine:
    return PaginationEngine()


async def test_page_window_is_passed_to_fetch(engine, recording_executor, logger):
    executor = recording_executor(total=100, rows=ITEMS)
    pages = Pages(page_number=3, page_size=20)

    await engine.paginate(pages, "select id, name from items", executor, logger)

    assert executor.kinds == ["count", "fetch"]
    _, query, values, offset, limit = executor.calls[1]
    assert (offset, limit) == (40, 20)
    assert query == "select id, name from items"
    assert values == []
    assert pages.total_count == 100
    assert pages.total_pages == 5
    assert [row["id"] for row in pages.result] == list(range(41, 61))
    assert pages.state is PageState.DONE


async def test_zero_count_short_circuits(engine, recording_executor, logger):
    executor = recording_executor(total=0, rows=ITEMS)
    pages = Pages(page_size=10)
    pages.result = ["stale"]

    returned = await engine.paginate(pages, "select id from items", executor, logger)

    assert returned is pages
    assert executor.kinds == ["count"]
    assert pages.total_count == 0
    assert pages.result == []
    assert pages.state is PageState.DONE


async def test_count_skipped(engine, recording_executor, logger):
    executor = recording_executor(total=999, rows=ITEMS)
    pages = Pages(page_number=2, page_size=10, auto_count=False)

    await engine.paginate(pages, "select id from items", executor, logger)

    assert executor.kinds == ["fetch"]
    assert pages.total_count == -1
    assert pages.total_pages == -1
    assert len(pages.result) == 10
    assert pages.state is PageState.DONE


async def test_unbounded_page(engine, recording_executor, logger):
    executor = recording_executor(total=100, rows=ITEMS)
    pages = Pages(page_number=4, page_size=0)

    await engine.paginate(pages, "select id from items", executor, logger)

    _, _, _, offset, limit = executor.calls[1]
    assert (offset, limit) == (0, None)
    assert len(pages.result) == 100


async def test_conditions_and_sort_reach_both_queries(engine, recording_executor, logger):
    executor = recording_executor(total=3, rows=ITEMS[:3])
    pages = Pages(
        sort=Sort.desc("name"),
        conditions=[Condition.contains("name", "item"), Condition.eq("kind", " ")],
    )

    await engine.paginate(
        pages, "select id, name from items where owner = ?", executor, logger, bound_values=["me"]
    )

    count_call, fetch_call = executor.calls
    assert count_call[1] == "select count(*) from items where (owner = ?) and (name like ?)"
    assert count_call[2] == ["me", "%item%"]
    assert fetch_call[1] == (
        "select id, name from items where (owner = ?) and (name like ?) order by name desc"
    )
    assert fetch_call[2] == ["me", "%item%"]


async def test_duplicate_order_by_fails_before_execution(engine, recording_executor, logger):
    executor = recording_executor(total=10, rows=ITEMS)
    pages = Pages(sort=Sort.asc("name"))

    with pytest.raises(DuplicateOrderByError):
        await engine.paginate(pages, "select id from items order by id", executor, logger)

    assert executor.calls == []
    assert pages.state is PageState.UNEXECUTED


async def test_order_by_in_query_without_sort_is_kept(engine, recording_executor, logger):
    executor = recording_executor(total=2, rows=ITEMS[:2])
    pages = Pages()

    await engine.paginate(pages, "select id from items order by id desc", executor, logger)

    assert executor.calls[0][1] == "select count(*) from items"
    assert executor.calls[1][1] == "select id from items order by id desc"


async def test_grouped_query_with_derived_count_fails(engine, recording_executor, logger):
    executor = recording_executor(total=10)
    with pytest.raises(UnsupportedCountQueryError):
        await engine.paginate(
            Pages(), "select name, count(*) from items group by name", executor, logger
        )
    assert executor.calls == []


async def test_grouped_query_with_wrapped_count(engine, recording_executor, logger):
    executor = recording_executor(total=2, rows=[{"name": "a", "n": 2}, {"name": "b", "n": 1}])
    pages = Pages()

    await engine.paginate(
        pages,
        "select name, count(*) as n from items group by name",
        executor,
        logger,
        count_mode=CountMode.WRAP,
    )

    assert executor.calls[0][1] == (
        "select count(1) as count from (select name, count(*) as n from items group by name) orgi"
    )
    assert pages.total_count == 2


async def test_grouped_query_without_count(engine, recording_executor, logger):
    executor = recording_executor(rows=[{"name": "a"}])
    pages = Pages(auto_count=False)
    await engine.paginate(pages, "select name from items group by name", executor, logger)
    assert executor.kinds == ["fetch"]


async def test_malformed_query(engine, recording_executor, logger):
    executor = recording_executor(total=1)
    with pytest.raises(MalformedQueryError):
        await engine.paginate(Pages(conditions=[Condition.eq("a", 1)]), "select 1", executor, logger)
    assert executor.calls == []


async def test_placeholders_follow_executor_style(engine, recording_executor, logger):
    executor = recording_executor(total=1, rows=ITEMS[:1], style=ParamStyle.NUMERIC)
    pages = Pages(conditions=[Condition.in_("id", [1, 2])])

    await engine.paginate(pages, "select id from items where owner = $1", executor, logger, bound_values=["me"])

    assert executor.calls[0][1] == "select count(*) from items where (owner = $1) and (id in ($2, $3))"
    assert executor.calls[0][2] == ["me", 1, 2]


async def test_repeated_requests_are_identical(engine, recording_executor, logger):
    executor = recording_executor(total=100, rows=ITEMS)
    query = "select id, name from items"

    first = Pages(page_number=2, page_size=15, sort=Sort.asc("id"), conditions=[Condition.gt("id", 0)])
    second = Pages(page_number=2, page_size=15, sort=Sort.asc("id"), conditions=[Condition.gt("id", 0)])
    await engine.paginate(first, query, executor, logger)
    await engine.paginate(second, query, executor, logger)

    assert executor.calls[:2] == executor.calls[2:]
    assert first.total_count == second.total_count
    assert first.result == second.result


async def test_entity_shape(engine, recording_executor, logger):
    executor = recording_executor(total=100, rows=ITEMS, entity_types=(Item,))
    pages = Pages(page_size=2)

    await engine.paginate(pages, "select id, name from items", executor, logger, shape=Item)

    assert pages.result == [Item(id=1, name="item-1"), Item(id=2, name="item-2")]


async def test_pages_is_required(engine, recording_executor, logger):
    with pytest.raises(ValueError):
        await engine.paginate(None, "select id from items", recording_executor(), logger)
