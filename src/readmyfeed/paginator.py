"""Incremental pagination over the Following timeline.

Pages are fetched strictly one at a time because each cursor comes from the
previous response. State moves EMPTY -> FETCHING -> HAS_MORE | EXHAUSTED |
STALLED | MAX_PAGES_REACHED; only HAS_MORE fetches again.

``reset()`` bumps a generation counter. A fetch that completes under an older
generation is discarded, which is how logout or a feed restart invalidates
requests already in flight.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from .models import FeedPage, PaginationStatus, TimelineBatch, TimelineItem

logger = logging.getLogger(__name__)

PageSource = Callable[[str | None], Awaitable[TimelineBatch]]


class FeedPaginator:
    def __init__(self, fetch_page: PageSource, max_pages: int | None = None):
        self._fetch_page = fetch_page
        self.max_pages = max_pages
        self._generation = 0
        self._inflight: asyncio.Task | None = None
        self._clear()

    def _clear(self) -> None:
        self._items: dict[str, TimelineItem] = {}
        self._cursor: str | None = None
        self._consumed: set[str] = set()
        self._pages = 0
        self.status = PaginationStatus.EMPTY

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def cursor(self) -> str | None:
        return self._cursor

    def snapshot(self) -> FeedPage:
        return FeedPage(
            items=list(self._items.values()),
            cursor=self._cursor,
            status=self.status,
            pages=self._pages,
        )

    def reset(self) -> None:
        """Drop all state; fetches still in flight will be ignored."""
        self._generation += 1
        self._inflight = None
        self._clear()

    async def load_initial(self) -> FeedPage:
        self.reset()
        return await self._start_fetch()

    async def load_next(self) -> FeedPage:
        if self._inflight is not None:
            # Coalesce with the fetch already running for this generation.
            return await asyncio.shield(self._inflight)
        if self.status is not PaginationStatus.HAS_MORE:
            return self.snapshot()
        return await self._start_fetch()

    async def load_all(
        self,
        delay: float = 0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> FeedPage:
        """Keep fetching until the feed stops yielding new pages."""
        page = await self.load_initial()
        while page.status is PaginationStatus.HAS_MORE:
            if delay > 0:
                logger.debug("Sleeping %.1fs before next request...", delay)
                await sleep(delay)
            page = await self.load_next()
        return page

    async def _start_fetch(self) -> FeedPage:
        previous = self.status
        self.status = PaginationStatus.FETCHING
        task = asyncio.ensure_future(
            self._fetch(self._generation, self._cursor, previous)
        )
        self._inflight = task
        return await task

    async def _fetch(
        self, generation: int, cursor: str | None, previous: PaginationStatus
    ) -> FeedPage:
        logger.info("Fetching page %d (cursor=%s)", self._pages + 1, bool(cursor))
        try:
            batch = await self._fetch_page(cursor)
        except asyncio.CancelledError:
            if generation == self._generation:
                self.status = previous
            raise
        except Exception:
            if generation != self._generation:
                logger.debug("Discarding failure from stale generation %d", generation)
                return self.snapshot()
            self.status = previous
            raise
        finally:
            if generation == self._generation:
                self._inflight = None

        if generation != self._generation:
            logger.debug("Discarding page from stale generation %d", generation)
            return self.snapshot()

        self._merge(batch, cursor)
        return self.snapshot()

    def _merge(self, batch: TimelineBatch, cursor: str | None) -> None:
        if cursor:
            self._consumed.add(cursor)

        added = 0
        for item in batch.items:
            if not item.id or item.id in self._items:
                continue
            self._items[item.id] = item
            added += 1

        self._pages += 1
        self._cursor = batch.next_cursor

        if not self._cursor:
            self.status = PaginationStatus.EXHAUSTED
        elif self.max_pages is not None and self._pages >= self.max_pages:
            self.status = PaginationStatus.MAX_PAGES_REACHED
        elif self._cursor in self._consumed:
            logger.warning("Cursor repeated after page %d; stopping.", self._pages)
            self.status = PaginationStatus.STALLED
        else:
            self.status = PaginationStatus.HAS_MORE

        logger.info(
            "Page %d: %d new tweets (total: %d, status: %s)",
            self._pages,
            added,
            len(self._items),
            self.status.value,
        )
