"""
Тесты состояния запросов: ApiResource, PaginatedQuery, InfiniteList,
OptimisticUpdate, Debouncer.
"""

import asyncio

import pytest
from hypothesis import given, settings as hypothesis_settings
from hypothesis import strategies as st

from statportal.api.exceptions import ApiError, NotFound, RequestCancelled, ServerError
from statportal.state import ApiResource, Debouncer, InfiniteList, OptimisticUpdate, PaginatedQuery
from tests.helpers import SleepRecorder, paginated


class Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class FlakyFetcher:
    """Первые `failures` вызовов падают с ServerError."""

    def __init__(self, failures: int = 0, result="ok") -> None:
        self.failures = failures
        self.result = result
        self.calls = []

    async def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))
        if len(self.calls) <= self.failures:
            raise ServerError("Server is down", 503)
        return self.result


# ============================================================================
# ApiResource
# ============================================================================

async def test_resource_retries_with_backoff():
    sleeps = SleepRecorder()
    fetcher = FlakyFetcher(failures=2, result={"value": 1})
    resource = ApiResource(fetcher, retry_attempts=3, retry_delay=0.5, sleep=sleeps)

    result = await resource.fetch("arg")

    assert result == {"value": 1}
    assert resource.data == {"value": 1}
    assert resource.error is None
    assert resource.loading is False
    assert sleeps.delays == [0.5, 1.0]
    assert fetcher.calls[0] == (("arg",), {})


async def test_resource_failure_sets_error_and_calls_callback():
    errors = []
    resource = ApiResource(
        FlakyFetcher(failures=10),
        retry_attempts=2,
        retry_delay=0.1,
        on_error=errors.append,
        sleep=SleepRecorder(),
    )

    with pytest.raises(ServerError):
        await resource.fetch()

    assert resource.error.status == 503
    assert resource.loading is False
    assert errors == [resource.error]
    assert resource.stats.requests[resource.name].failures == 3


async def test_resource_normalizes_unknown_errors():
    async def broken():
        raise ValueError("bad payload")

    resource = ApiResource(broken, retry_attempts=0)

    with pytest.raises(ApiError) as exc_info:
        await resource.fetch()

    assert exc_info.value.kind == "unknown_error"
    assert exc_info.value.message == "bad payload"
    assert isinstance(exc_info.value.__cause__, ValueError)


async def test_resource_does_not_retry_cancelled_requests():
    sleeps = SleepRecorder()
    calls = []

    async def cancelled():
        calls.append(True)
        raise RequestCancelled()

    resource = ApiResource(cancelled, retry_attempts=3, sleep=sleeps)

    with pytest.raises(RequestCancelled):
        await resource.fetch()

    assert calls == [True]
    assert sleeps.delays == []


async def test_resource_cache_respects_ttl():
    clock = Clock()
    fetcher = FlakyFetcher(result=[1, 2])
    successes = []
    resource = ApiResource(
        fetcher, cache_key="numbers", cache_duration=60, clock=clock, on_success=successes.append
    )

    await resource.fetch()
    await resource.fetch()
    assert len(fetcher.calls) == 1

    clock.now += 61
    await resource.fetch()
    assert len(fetcher.calls) == 2
    assert successes == [[1, 2], [1, 2]]


async def test_resource_clear_cache_forces_reload():
    fetcher = FlakyFetcher()
    resource = ApiResource(fetcher, cache_key="k")

    await resource.fetch()
    resource.clear_cache()
    await resource.refetch()

    assert len(fetcher.calls) == 2


async def test_new_fetch_supersedes_running_one():
    gate = asyncio.Event()

    async def fetcher(value):
        if value == "slow":
            await gate.wait()
        return value

    resource = ApiResource(fetcher, retry_attempts=0)
    first = asyncio.create_task(resource.fetch("slow"))
    await asyncio.sleep(0)

    assert await resource.fetch("fast") == "fast"
    with pytest.raises(RequestCancelled):
        await first
    assert resource.data == "fast"


async def test_cancel_stops_running_fetch():
    started = asyncio.Event()

    async def fetcher():
        started.set()
        await asyncio.Event().wait()

    resource = ApiResource(fetcher)
    task = asyncio.create_task(resource.fetch())
    await started.wait()
    assert resource.loading is True

    resource.cancel()

    with pytest.raises(RequestCancelled):
        await task
    assert resource.loading is False
    assert resource.attempt == 0
    assert resource.error is None


async def test_cancelled_caller_resets_loading():
    started = asyncio.Event()

    async def fetcher():
        started.set()
        await asyncio.Event().wait()

    resource = ApiResource(fetcher)
    task = asyncio.create_task(resource.fetch())
    await started.wait()

    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert resource.loading is False


# ============================================================================
# PaginatedQuery
# ============================================================================

class PageServer:
    """Отдаёт страницы из списка элементов и запоминает параметры запросов."""

    def __init__(self, total: int = 25) -> None:
        self.total = total
        self.requests = []

    async def __call__(self, params):
        self.requests.append(dict(params))
        per_page = params["per_page"]
        page = params["page"]
        items = list(range(self.total))[(page - 1) * per_page:page * per_page]
        last_page = max(1, -(-self.total // per_page))
        return paginated(items, page=page, last_page=last_page, per_page=per_page, total=self.total)


async def test_paginated_load_sets_totals():
    server = PageServer(total=25)
    query = PaginatedQuery(server, page_size=10)

    await query.load()

    assert query.items == list(range(10))
    assert query.total_pages == 3
    assert query.total_items == 25
    assert query.has_next_page
    assert not query.has_prev_page
    assert server.requests[0] == {
        "page": 1, "per_page": 10, "search": "", "sort_by": None, "sort_order": "asc",
    }


async def test_paginated_navigation_is_bounded():
    query = PaginatedQuery(PageServer(total=25), page_size=10)
    await query.load()

    await query.next_page()
    await query.next_page()
    assert query.page == 3
    assert query.items == list(range(20, 25))
    assert await query.next_page() is None
    assert query.page == 3

    assert await query.go_to_page(0) is None
    assert await query.go_to_page(4) is None
    await query.go_to_page(1)
    assert query.page == 1
    assert await query.prev_page() is None


async def test_paginated_pages_are_cached():
    server = PageServer()
    query = PaginatedQuery(server, page_size=10)

    await query.load()
    await query.next_page()
    await query.prev_page()
    assert len(server.requests) == 2

    await query.refetch()
    assert len(server.requests) == 3

    query.clear_cache()
    await query.next_page()
    assert len(server.requests) == 4


async def test_filters_and_sort_reset_page():
    server = PageServer(total=50)
    query = PaginatedQuery(server, page_size=10)
    await query.load()
    await query.go_to_page(3)

    await query.update_filters(category="Trade")
    assert query.page == 1
    assert server.requests[-1]["category"] == "Trade"

    await query.go_to_page(2)
    await query.update_sort("title", "desc")
    assert query.page == 1
    assert server.requests[-1]["sort_by"] == "title"
    assert server.requests[-1]["sort_order"] == "desc"

    await query.clear_filters()
    assert "category" not in server.requests[-1]
    assert server.requests[-1]["sort_by"] is None


async def test_debounced_search_uses_last_term():
    server = PageServer()
    query = PaginatedQuery(server, page_size=10, search_debounce_ms=10)
    await query.load()
    await query.go_to_page(2)

    query.set_search("c")
    query.set_search("ce")
    query.set_search("census")
    await query.wait_for_search()

    assert query.page == 1
    assert query.search_term == "census"
    assert [request["search"] for request in server.requests].count("census") == 1
    assert "ce" not in [request["search"] for request in server.requests]


async def test_immediate_search_cancels_pending_debounce():
    server = PageServer()
    query = PaginatedQuery(server, search_debounce_ms=50)

    query.set_search("typed")
    await query.search("submitted")

    assert query.search_term == "submitted"
    assert [request["search"] for request in server.requests] == ["submitted"]


async def test_paginated_error_is_exposed():
    async def failing(params):
        raise NotFound("Missing", 404)

    query = PaginatedQuery(failing, retry_attempts=0)

    with pytest.raises(NotFound):
        await query.load()

    assert query.error.status == 404
    assert query.items == []
    assert not query.loading


@hypothesis_settings(max_examples=50, deadline=None)
@given(
    total=st.integers(min_value=0, max_value=120),
    page_size=st.integers(min_value=1, max_value=25),
    target=st.integers(min_value=-5, max_value=30),
)
def test_go_to_page_stays_within_bounds(total, page_size, target):
    async def scenario():
        query = PaginatedQuery(PageServer(total=total), page_size=page_size, cache_pages=False)
        await query.load()
        await query.go_to_page(target)
        return query

    query = asyncio.run(scenario())

    assert 1 <= query.page <= max(1, query.total_pages)
    if 1 <= target <= query.total_pages:
        assert query.page == target
    else:
        assert query.page == 1


# ============================================================================
# InfiniteList
# ============================================================================

async def test_infinite_list_accumulates_until_short_page():
    server = PageServer(total=25)
    feed = InfiniteList(server, page_size=10)

    assert await feed.load_more() == list(range(10))
    await feed.load_more()
    last = await feed.load_more()

    assert last == list(range(20, 25))
    assert feed.items == list(range(25))
    assert feed.has_more is False
    assert await feed.load_more() == []
    assert len(server.requests) == 3


async def test_infinite_list_ignores_calls_while_loading():
    gate = asyncio.Event()

    async def slow(params):
        await gate.wait()
        return [1, 2]

    feed = InfiniteList(slow, page_size=2)
    first = asyncio.create_task(feed.load_more())
    await asyncio.sleep(0)

    assert feed.loading
    assert await feed.load_more() == []
    gate.set()
    assert await first == [1, 2]


async def test_infinite_list_error_and_reset():
    async def failing(params):
        raise ServerError("Server is down", 500)

    feed = InfiniteList(failing, page_size=5)

    assert await feed.load_more() == []
    assert feed.error.status == 500
    assert feed.page == 1

    feed.reset()
    assert feed.error is None
    assert feed.items == []
    assert feed.has_more


async def test_disabled_infinite_list_does_nothing():
    server = PageServer()
    feed = InfiniteList(server, enabled=False)
    assert await feed.load_more() == []
    assert server.requests == []


# ============================================================================
# OptimisticUpdate
# ============================================================================

async def test_optimistic_update_applies_server_result():
    async def save(title):
        return {"title": title, "saved": True}

    seen = []
    update = OptimisticUpdate(save, initial={"title": "old"}, on_success=seen.append)

    result = await update.mutate({"title": "new"}, "new")

    assert result == {"title": "new", "saved": True}
    assert update.data == result
    assert seen == [result]


async def test_optimistic_update_rolls_back_on_error():
    states = []

    async def save():
        states.append(update.data)
        raise ServerError("Server is down", 500)

    update = OptimisticUpdate(save, initial="old")

    with pytest.raises(ServerError):
        await update.mutate("new")

    assert states == ["new"]
    assert update.data == "old"
    assert update.error.status == 500
    assert update.loading is False


async def test_optimistic_update_without_rollback_keeps_value():
    async def save():
        raise ServerError("Server is down", 500)

    update = OptimisticUpdate(save, initial="old", rollback_on_error=False)

    with pytest.raises(ServerError):
        await update.mutate("new")

    assert update.data == "new"


# ============================================================================
# Debouncer
# ============================================================================

async def test_debouncer_fires_once_with_last_arguments():
    calls = []
    debounced = Debouncer(calls.append, delay_ms=10)

    debounced(1)
    debounced(2)
    debounced(3)
    assert debounced.pending
    await debounced.wait()

    assert calls == [3]
    assert not debounced.pending


async def test_debouncer_cancel():
    calls = []
    debounced = Debouncer(calls.append, delay_ms=10)

    debounced("x")
    debounced.cancel()
    await asyncio.sleep(0.03)

    assert calls == []


async def test_debouncer_awaits_coroutine_result():
    async def compute(value):
        return value * 2

    debounced = Debouncer(compute, delay_ms=5)
    debounced(21)

    assert await debounced.wait() == 42


async def test_debouncer_wait_returns_after_cancel():
    debounced = Debouncer(lambda value: value, delay_ms=60_000)
    debounced("x")

    waiter = asyncio.create_task(debounced.wait())
    await asyncio.sleep(0)
    assert not waiter.done()

    debounced.cancel()

    assert await asyncio.wait_for(waiter, timeout=1) is None


async def test_debouncer_wait_follows_rearmed_timer():
    calls = []
    debounced = Debouncer(calls.append, delay_ms=20)
    debounced("first")

    waiter = asyncio.create_task(debounced.wait())
    await asyncio.sleep(0)
    debounced("second")
    await asyncio.wait_for(waiter, timeout=1)

    assert calls == ["second"]
    assert not debounced.pending
