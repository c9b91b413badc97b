"""Tests for the in-memory content source."""

from datetime import datetime, timedelta, timezone

import pytest
from signal_engine.signals.factory import parse_filter
from signal_engine.signals.models import Period
from signal_engine.sources.memory import InMemoryContentSource

T0 = datetime(2024, 3, 18, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def source(make_item):
    return InMemoryContentSource(
        [
            make_item("a", T0 - timedelta(minutes=30), source="nyt.com"),
            make_item("b", T0 - timedelta(hours=2), source="nyt.com"),
            make_item("c", T0 - timedelta(minutes=10), source="wsj.com"),
            make_item("d", T0, source="nyt.com"),
        ]
    )


class TestFindMatching:
    @pytest.mark.asyncio
    async def test_since_is_exclusive(self, source):
        items = await source.find_matching(None, T0 - timedelta(minutes=30))

        assert sorted(i.id for i in items) == ["c", "d"]

    @pytest.mark.asyncio
    async def test_filter(self, source):
        items = await source.find_matching(parse_filter({"source": "nyt.com"}), T0 - timedelta(days=1))

        assert sorted(i.id for i in items) == ["a", "b", "d"]

    @pytest.mark.asyncio
    async def test_add(self, source, make_item):
        source.add(make_item("e", T0 + timedelta(minutes=1)))

        items = await source.find_matching(None, T0)

        assert [i.id for i in items] == ["e"]


class TestCountInWindow:
    @pytest.mark.asyncio
    async def test_window_end_inclusive(self, source):
        assert await source.count_in_window(None, Period.HOUR, T0) == 3

    @pytest.mark.asyncio
    async def test_scope(self, source):
        scope = parse_filter({"source": "nyt.com"})

        assert await source.count_in_window(scope, Period.HOUR, T0) == 2
        assert await source.count_in_window(scope, Period.DAY, T0) == 3
