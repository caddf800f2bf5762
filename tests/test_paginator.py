"""Tests for incremental timeline pagination."""

import asyncio

import pytest

from readmyfeed.errors import RequestFailed
from readmyfeed.models import PaginationStatus, TimelineBatch, TimelineItem
from readmyfeed.paginator import FeedPaginator


def _item(tweet_id: str) -> TimelineItem:
    return TimelineItem(
        id=tweet_id,
        text=f"tweet {tweet_id}",
        created_at="",
        author_name="",
        author_handle="someone",
        url="",
    )


class ScriptedSource:
    """Returns pre-built batches in order and records requested cursors."""

    def __init__(self, batches):
        self.batches = list(batches)
        self.cursors: list[str | None] = []

    async def __call__(self, cursor):
        self.cursors.append(cursor)
        batch = self.batches.pop(0)
        if isinstance(batch, Exception):
            raise batch
        return batch


def _batch(ids, cursor):
    return TimelineBatch(items=[_item(i) for i in ids], next_cursor=cursor)


class TestFeedPaginator:
    def test_follows_cursors_until_exhausted(self):
        source = ScriptedSource(
            [
                _batch(["1", "2"], "c1"),
                _batch(["3"], "c2"),
                _batch(["4"], "c3"),
                _batch(["5"], None),
            ]
        )
        paginator = FeedPaginator(source)

        page = asyncio.run(paginator.load_all())

        assert source.cursors == [None, "c1", "c2", "c3"]
        assert page.status is PaginationStatus.EXHAUSTED
        assert page.pages == 4
        assert [item.id for item in page.items] == ["1", "2", "3", "4", "5"]

    def test_exhausted_feed_does_not_fetch_again(self):
        source = ScriptedSource([_batch(["1"], None)])
        paginator = FeedPaginator(source)

        async def go():
            await paginator.load_initial()
            return await paginator.load_next()

        page = asyncio.run(go())
        assert len(source.cursors) == 1
        assert page.status is PaginationStatus.EXHAUSTED

    def test_repeated_cursor_stalls(self):
        source = ScriptedSource([_batch(["1"], "c1"), _batch(["2"], "c1")])
        paginator = FeedPaginator(source)

        page = asyncio.run(paginator.load_all())

        assert page.status is PaginationStatus.STALLED
        assert source.cursors == [None, "c1"]
        assert page.cursor == "c1"

    def test_max_pages_reached(self):
        source = ScriptedSource([_batch(["1"], "c1"), _batch(["2"], "c2"), _batch(["3"], "c3")])
        paginator = FeedPaginator(source, max_pages=2)

        page = asyncio.run(paginator.load_all())

        assert page.status is PaginationStatus.MAX_PAGES_REACHED
        assert page.pages == 2
        assert page.cursor == "c2"
        assert len(source.cursors) == 2

    def test_dedupes_across_pages(self):
        source = ScriptedSource([_batch(["1", "2"], "c1"), _batch(["2", "3"], None)])
        paginator = FeedPaginator(source)

        page = asyncio.run(paginator.load_all())

        assert [item.id for item in page.items] == ["1", "2", "3"]
        assert page.items[1].text == "tweet 2"

    def test_empty_page_with_no_cursor(self):
        paginator = FeedPaginator(ScriptedSource([_batch([], None)]))

        page = asyncio.run(paginator.load_initial())

        assert page.items == []
        assert page.status is PaginationStatus.EXHAUSTED

    def test_load_all_sleeps_between_requests(self):
        source = ScriptedSource([_batch(["1"], "c1"), _batch(["2"], "c2"), _batch(["3"], None)])
        paginator = FeedPaginator(source)
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        asyncio.run(paginator.load_all(delay=1.5, sleep=fake_sleep))
        assert sleeps == [1.5, 1.5]

    def test_error_restores_previous_status(self):
        source = ScriptedSource([_batch(["1"], "c1"), RequestFailed("boom", status=500)])
        paginator = FeedPaginator(source)

        async def go():
            await paginator.load_initial()
            with pytest.raises(RequestFailed):
                await paginator.load_next()
            return paginator.snapshot()

        page = asyncio.run(go())
        assert page.status is PaginationStatus.HAS_MORE
        assert page.cursor == "c1"
        assert [item.id for item in page.items] == ["1"]

    def test_cancelled_fetch_can_be_retried(self):
        calls = []
        hang = True

        async def source(cursor):
            calls.append(cursor)
            if cursor is None:
                return _batch(["1"], "c1")
            if hang:
                await asyncio.Event().wait()
            return _batch(["2"], None)

        paginator = FeedPaginator(source)

        async def go():
            nonlocal hang
            await paginator.load_initial()
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(paginator.load_next(), 0.05)
            assert paginator.status is PaginationStatus.HAS_MORE
            hang = False
            return await paginator.load_next()

        page = asyncio.run(go())
        assert calls == [None, "c1", "c1"]
        assert page.status is PaginationStatus.EXHAUSTED
        assert [item.id for item in page.items] == ["1", "2"]

    def test_concurrent_load_next_shares_one_fetch(self):
        source = ScriptedSource([_batch(["1"], "c1"), _batch(["2"], None)])
        paginator = FeedPaginator(source)

        async def go():
            await paginator.load_initial()
            return await asyncio.gather(paginator.load_next(), paginator.load_next())

        first, second = asyncio.run(go())
        assert source.cursors == [None, "c1"]
        assert [item.id for item in first.items] == ["1", "2"]
        assert [item.id for item in second.items] == ["1", "2"]

    def test_reset_discards_in_flight_fetch(self):
        release = None
        calls = []

        async def slow_source(cursor):
            calls.append(cursor)
            await release.wait()
            return _batch(["stale"], "stale-cursor")

        paginator = FeedPaginator(slow_source)

        async def go():
            nonlocal release
            release = asyncio.Event()
            task = asyncio.ensure_future(paginator.load_initial())
            await asyncio.sleep(0)
            generation = paginator.generation
            paginator.reset()
            assert paginator.generation == generation + 1
            release.set()
            await task
            return paginator.snapshot()

        page = asyncio.run(go())
        assert calls == [None]
        assert page.items == []
        assert page.cursor is None
        assert page.status is PaginationStatus.EMPTY

    def test_load_initial_starts_over(self):
        source = ScriptedSource([_batch(["1"], "c1"), _batch(["9"], None)])
        paginator = FeedPaginator(source)

        async def go():
            await paginator.load_initial()
            return await paginator.load_initial()

        page = asyncio.run(go())
        assert source.cursors == [None, None]
        assert [item.id for item in page.items] == ["9"]
        assert page.pages == 1
