"""In-process content source.

Holds articles in memory and answers queries with the same filter evaluator
the engine uses. Intended for development and tests.

Usage:
    source = InMemoryContentSource()
    source.add(ContentItem(id="a1", published_at=now, source="nyt.com"))
    items = await source.find_matching(expr, since=now - timedelta(hours=1))
"""

from collections.abc import Iterable
from datetime import datetime

from signal_engine.signals.filters import matches
from signal_engine.signals.models import ContentItem, FilterExpression, Period


class InMemoryContentSource:
    """ContentSource backed by a list of ContentItem."""

    def __init__(self, items: Iterable[ContentItem] = ()):
        self._items: list[ContentItem] = list(items)

    def add(self, *items: ContentItem) -> None:
        self._items.extend(items)

    async def find_matching(
        self, filter_expr: FilterExpression | None, since: datetime
    ) -> list[ContentItem]:
        return [
            item
            for item in self._items
            if item.published_at > since and (filter_expr is None or matches(filter_expr, item))
        ]

    async def count_in_window(
        self, scope: FilterExpression | None, period: Period, end_time: datetime
    ) -> int:
        start = end_time - period.delta
        return sum(
            1
            for item in self._items
            if start < item.published_at <= end_time
            and (scope is None or matches(scope, item))
        )
