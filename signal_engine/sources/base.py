"""Interfaces of the collaborators the engine reads from."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from signal_engine.signals.models import ContentItem, FilterExpression, Period


@dataclass(frozen=True)
class Summary:
    """Digest returned by the summarization service."""

    digest: str
    cited_item_ids: list[str] = field(default_factory=list)


class ContentSource(Protocol):
    """Protocol for the content index."""

    async def find_matching(
        self, filter_expr: FilterExpression | None, since: datetime
    ) -> list[ContentItem]: ...

    async def count_in_window(
        self, scope: FilterExpression | None, period: Period, end_time: datetime
    ) -> int: ...


class Summarizer(Protocol):
    """Protocol for the relevance/summarization service."""

    async def summarize(self, items: list[ContentItem]) -> Summary: ...
