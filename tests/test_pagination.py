"""Tests for trackerkit.integrations.pagination module."""

import logging

import pytest

from trackerkit.integrations.pagination import (
    Page,
    PageRequest,
    PaginationEngine,
    PaginationStyle,
)


class CursorServer:
    """Serves numbered items in cursor pages."""

    def __init__(self, total: int, page_size: int, *, report_last: bool = True) -> None:
        self.items = list(range(total))
        self.page_size = page_size
        self.report_last = report_last
        self.requests: list[PageRequest] = []

    async def __call__(self, request: PageRequest) -> Page[int]:
        self.requests.append(request)
        start = int(request.cursor or 0)
        chunk = self.items[start : start + self.page_size]
        end = start + len(chunk)
        is_last = end >= len(self.items)
        return Page(
            items=chunk,
            is_last=is_last if self.report_last else None,
            next_cursor=None if is_last and self.report_last else str(end),
        )


class OffsetServer:
    """Serves numbered items in offset pages."""

    def __init__(self, total: int, *, report_total: bool = True) -> None:
        self.items = list(range(total))
        self.report_total = report_total
        self.requests: list[PageRequest] = []

    async def __call__(self, request: PageRequest) -> Page[int]:
        self.requests.append(request)
        chunk = self.items[request.start_at : request.start_at + request.page_size]
        return Page(items=chunk, total=len(self.items) if self.report_total else None)


class TestEngineConstruction:
    def test_rejects_invalid_sizes(self):
        with pytest.raises(ValueError):
            PaginationEngine(page_size=0)
        with pytest.raises(ValueError):
            PaginationEngine(max_items=0)


class TestCursorPagination:
    """Cursor-style paging."""

    async def test_collects_all_pages_in_order(self):
        server = CursorServer(total=5, page_size=2)
        engine = PaginationEngine(page_size=2)

        items = await engine.collect(server, PaginationStyle.CURSOR)

        assert items == [0, 1, 2, 3, 4]
        assert [r.cursor for r in server.requests] == [None, "2", "4"]

    async def test_three_pages_of_fifty_fifty_ten(self):
        server = CursorServer(total=110, page_size=50)
        engine = PaginationEngine(page_size=50)

        items = await engine.collect(server, PaginationStyle.CURSOR)

        assert len(items) == 110
        assert len(server.requests) == 3

    async def test_respects_limit(self):
        server = CursorServer(total=10, page_size=3)
        engine = PaginationEngine(page_size=3)

        items = await engine.collect(server, PaginationStyle.CURSOR, limit=4)

        assert items == [0, 1, 2, 3]
        assert len(server.requests) == 2

    async def test_safety_ceiling_stops_runaway_server(self, caplog):
        async def endless(request: PageRequest) -> Page[int]:
            start = int(request.cursor or 0)
            return Page(items=[start, start + 1], is_last=False, next_cursor=str(start + 2))

        engine = PaginationEngine(page_size=2, max_items=6)

        with caplog.at_level(logging.WARNING):
            items = await engine.collect(endless, PaginationStyle.CURSOR)

        assert items == [0, 1, 2, 3, 4, 5]
        assert "safety ceiling" in caplog.text

    async def test_repeated_token_stops(self, caplog):
        async def stuck(request: PageRequest) -> Page[int]:
            return Page(items=[1], is_last=False, next_cursor="same")

        engine = PaginationEngine(page_size=1)
        with caplog.at_level(logging.WARNING):
            items = await engine.collect(stuck, PaginationStyle.CURSOR)

        assert items == [1, 1]
        assert "repeated page token" in caplog.text

    async def test_empty_page_without_is_last_stops(self):
        async def empty(request: PageRequest) -> Page[int]:
            return Page(items=[], is_last=False, next_cursor="next")

        engine = PaginationEngine()
        assert await engine.collect(empty, PaginationStyle.CURSOR) == []

    async def test_missing_token_stops(self):
        server = CursorServer(total=5, page_size=2, report_last=False)
        engine = PaginationEngine(page_size=2)

        items = await engine.collect(server, PaginationStyle.CURSOR)

        # Server never reports isLast; the final partial page has a token too
        assert items == [0, 1, 2, 3, 4]

    async def test_paginate_is_lazy(self):
        server = CursorServer(total=6, page_size=2)
        engine = PaginationEngine(page_size=2)

        iterator = engine.paginate(server, PaginationStyle.CURSOR)
        first = await iterator.__anext__()
        await iterator.aclose()

        assert first == 0
        assert len(server.requests) == 1

    async def test_each_call_is_independent(self):
        server = CursorServer(total=3, page_size=2)
        engine = PaginationEngine(page_size=2)

        first = await engine.collect(server, PaginationStyle.CURSOR)
        second = await engine.collect(server, PaginationStyle.CURSOR)

        assert first == second == [0, 1, 2]


class TestOffsetPagination:
    """Offset-style paging."""

    async def test_collects_all(self):
        server = OffsetServer(total=5)
        engine = PaginationEngine(page_size=2)

        items = await engine.collect(server, PaginationStyle.OFFSET)

        assert items == [0, 1, 2, 3, 4]
        assert [r.start_at for r in server.requests] == [0, 2, 4]

    async def test_total_stops_exact_multiple(self):
        server = OffsetServer(total=4)
        engine = PaginationEngine(page_size=2)

        await engine.collect(server, PaginationStyle.OFFSET)

        assert [r.start_at for r in server.requests] == [0, 2]

    async def test_short_page_stops_without_total(self):
        server = OffsetServer(total=3, report_total=False)
        engine = PaginationEngine(page_size=2)

        items = await engine.collect(server, PaginationStyle.OFFSET)

        assert items == [0, 1, 2]
        assert len(server.requests) == 2

    async def test_limit(self):
        server = OffsetServer(total=100)
        engine = PaginationEngine(page_size=10, max_items=50)

        items = await engine.collect(server, PaginationStyle.OFFSET, limit=15)

        assert items == list(range(15))
        assert len(server.requests) == 2

    async def test_ceiling(self):
        server = OffsetServer(total=100, report_total=False)
        engine = PaginationEngine(page_size=10, max_items=25)

        items = await engine.collect(server, PaginationStyle.OFFSET)

        assert len(items) == 25


class TestOffsetServerCappedPages:
    """Offset paging when the server returns fewer items than requested."""

    @staticmethod
    def capped_server(total: int, cap: int, *, report_last: bool):
        items = list(range(total))
        requests: list[PageRequest] = []

        async def fetch(request: PageRequest) -> Page[int]:
            requests.append(request)
            size = min(request.page_size, cap)
            chunk = items[request.start_at : request.start_at + size]
            end = request.start_at + len(chunk)
            return Page(
                items=chunk,
                is_last=end >= total if report_last else None,
                max_results=size,
            )

        return fetch, requests

    async def test_explicit_is_last_false_keeps_paging(self):
        fetch, requests = self.capped_server(70, cap=50, report_last=True)
        engine = PaginationEngine(page_size=100)

        items = await engine.collect(fetch, PaginationStyle.OFFSET)

        assert len(items) == 70
        assert [r.start_at for r in requests] == [0, 50]

    async def test_echoed_max_results_used_for_short_page(self):
        fetch, requests = self.capped_server(70, cap=50, report_last=False)
        engine = PaginationEngine(page_size=100)

        items = await engine.collect(fetch, PaginationStyle.OFFSET)

        assert items == list(range(70))
        assert len(requests) == 2

    async def test_explicit_is_last_true_stops_on_full_page(self):
        requests: list[PageRequest] = []

        async def fetch(request: PageRequest) -> Page[int]:
            requests.append(request)
            return Page(items=[1, 2], is_last=True, total=10)

        engine = PaginationEngine(page_size=2)

        assert await engine.collect(fetch, PaginationStyle.OFFSET) == [1, 2]
        assert len(requests) == 1

    async def test_empty_page_stops_even_when_not_last(self):
        async def fetch(request: PageRequest) -> Page[int]:
            return Page(items=[], is_last=False)

        engine = PaginationEngine(page_size=2)

        assert await engine.collect(fetch, PaginationStyle.OFFSET) == []
