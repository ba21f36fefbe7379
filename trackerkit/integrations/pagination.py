"""Pagination over the remote's two paging styles.

Cursor style: the server returns an opaque ``nextPageToken`` and an
``isLast`` flag. Offset style: the client sends ``startAt``/``maxResults``
and the last page is taken from ``isLast`` when the server sends it, else
inferred from ``total`` or a page shorter than the echoed ``maxResults``.

Both are driven by one contract: a ``fetch_page(PageRequest) -> Page``
coroutine. Pages of one query are fetched strictly in order; separate
``paginate`` calls share no state.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

from trackerkit.config.client_config import DEFAULT_MAX_ITEMS, DEFAULT_PAGE_SIZE

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PaginationStyle(Enum):
    CURSOR = "cursor"
    OFFSET = "offset"


@dataclass(frozen=True)
class PageRequest:
    """Parameters for one page fetch.

    Cursor-style fetchers read ``cursor``; offset-style fetchers read
    ``start_at``. Both read ``page_size``.
    """

    page_size: int
    cursor: str | None = None
    start_at: int = 0


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of results as reported by the server."""

    items: Sequence[T] = field(default_factory=tuple)
    is_last: bool | None = None
    next_cursor: str | None = None
    total: int | None = None
    max_results: int | None = None


FetchPage = Callable[[PageRequest], Awaitable[Page[T]]]


class PaginationEngine:
    """Drive cursor or offset pagination with a hard item ceiling.

    Attributes:
        page_size: Items requested per page
        max_items: Safety ceiling; iteration stops (with a warning) once reached
    """

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE, max_items: int = DEFAULT_MAX_ITEMS) -> None:
        if page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {page_size}")
        if max_items < 1:
            raise ValueError(f"max_items must be >= 1, got {max_items}")
        self.page_size = page_size
        self.max_items = max_items

    def paginate(
        self,
        fetch_page: FetchPage[T],
        style: PaginationStyle = PaginationStyle.CURSOR,
        *,
        limit: int | None = None,
    ) -> AsyncIterator[T]:
        """Return a fresh lazy iterator over all items.

        Args:
            fetch_page: Coroutine fetching one page
            style: Cursor or offset paging
            limit: Caller cap on items; never above the safety ceiling
        """
        ceiling = self.max_items if limit is None else min(limit, self.max_items)
        if style is PaginationStyle.CURSOR:
            return self._iterate_cursor(fetch_page, ceiling, limit)
        return self._iterate_offset(fetch_page, ceiling, limit)

    async def collect(
        self,
        fetch_page: FetchPage[T],
        style: PaginationStyle = PaginationStyle.CURSOR,
        *,
        limit: int | None = None,
    ) -> list[T]:
        """Drain ``paginate`` into a list."""
        return [item async for item in self.paginate(fetch_page, style, limit=limit)]

    def _warn_ceiling(self, count: int, limit: int | None) -> None:
        if limit is None or limit > self.max_items:
            logger.warning(
                "Pagination stopped at safety ceiling of %d items (fetched %d); "
                "the server never reported the last page",
                self.max_items,
                count,
            )

    async def _iterate_cursor(
        self, fetch_page: FetchPage[T], ceiling: int, limit: int | None
    ) -> AsyncIterator[T]:
        count = 0
        cursor: str | None = None
        seen_cursors: set[str] = set()
        while True:
            page = await fetch_page(PageRequest(page_size=self.page_size, cursor=cursor))
            for item in page.items:
                if count >= ceiling:
                    self._warn_ceiling(count, limit)
                    return
                yield item
                count += 1

            if page.is_last:
                return
            if not page.items:
                logger.warning("Empty page without isLast; stopping pagination")
                return
            if page.next_cursor is None:
                logger.debug("No nextPageToken on a non-final page; stopping pagination")
                return
            if page.next_cursor in seen_cursors:
                logger.warning("Server repeated page token %r; stopping pagination", page.next_cursor)
                return
            if count >= ceiling:
                self._warn_ceiling(count, limit)
                return
            seen_cursors.add(page.next_cursor)
            cursor = page.next_cursor

    async def _iterate_offset(
        self, fetch_page: FetchPage[T], ceiling: int, limit: int | None
    ) -> AsyncIterator[T]:
        count = 0
        start_at = 0
        while True:
            page = await fetch_page(PageRequest(page_size=self.page_size, start_at=start_at))
            for item in page.items:
                if count >= ceiling:
                    self._warn_ceiling(count, limit)
                    return
                yield item
                count += 1

            start_at += len(page.items)
            if not page.items:
                return
            if page.is_last is not None:
                # An explicit flag wins over page-size inference
                if page.is_last:
                    return
            else:
                if page.total is not None and start_at >= page.total:
                    return
                # The server may cap maxResults below the requested size
                if len(page.items) < (page.max_results or self.page_size):
                    return
            if count >= ceiling:
                self._warn_ceiling(count, limit)
                return


__all__ = [
    "FetchPage",
    "Page",
    "PageRequest",
    "PaginationEngine",
    "PaginationStyle",
]
