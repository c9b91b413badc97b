"""Selection of representative content for a notification.

Policies:
- LATEST: newest first by published_at
- MOST_RELEVANT: highest relevance first; falls back to LATEST ordering when
  no item carries a relevance score
- AI_NEWSLETTER_SUMMARY: digest from the summarization service plus the
  cited items; on failure falls back to LATEST and flags the result

Every policy returns at most SELECTION_LIMIT items. Ordering is always
deterministic (ties broken by item id).
"""

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from signal_engine.signals.models import ContentItem, SelectionPolicyType, SelectionResult

if TYPE_CHECKING:
    from signal_engine.sources.base import Summarizer

logger = logging.getLogger(__name__)

# Maximum items attached to one notification
SELECTION_LIMIT = 10


def latest(items: Sequence[ContentItem], limit: int = SELECTION_LIMIT) -> list[ContentItem]:
    """Newest items first."""
    ordered = sorted(items, key=lambda item: item.id)
    ordered.sort(key=lambda item: item.published_at, reverse=True)
    return ordered[:limit]


def most_relevant(
    items: Sequence[ContentItem], limit: int = SELECTION_LIMIT
) -> list[ContentItem]:
    """Highest relevance first; unscored items after scored ones in LATEST order."""
    if not any(item.relevance is not None for item in items):
        return latest(items, limit)

    ordered = latest(items, limit=len(items))
    ordered.sort(key=lambda item: item.relevance if item.relevance is not None else float("-inf"), reverse=True)
    return ordered[:limit]


class SelectionPolicyResolver:
    """Picks the content attached to a triggered signal's notification.

    Attributes:
        summarizer: Optional summarization service for AI_NEWSLETTER_SUMMARY
        limit: Maximum number of items per selection
    """

    def __init__(self, summarizer: "Summarizer | None" = None, limit: int = SELECTION_LIMIT):
        self.summarizer = summarizer
        self.limit = limit

    async def select(
        self, policy: SelectionPolicyType, items: Sequence[ContentItem]
    ) -> SelectionResult:
        """Select items according to the policy.

        Never raises for summarizer failures; those degrade to LATEST with
        summary_unavailable set.
        """
        if policy == SelectionPolicyType.LATEST:
            return SelectionResult(items=tuple(latest(items, self.limit)))

        if policy == SelectionPolicyType.MOST_RELEVANT:
            return SelectionResult(items=tuple(most_relevant(items, self.limit)))

        return await self._summarize(items)

    async def _summarize(self, items: Sequence[ContentItem]) -> SelectionResult:
        fallback = tuple(latest(items, self.limit))

        if self.summarizer is None:
            logger.warning("No summarizer configured, falling back to LATEST selection")
            return SelectionResult(items=fallback, summary_unavailable=True)

        try:
            summary = await self.summarizer.summarize(list(items))
        except Exception as e:
            logger.warning("Summarizer failed, falling back to LATEST selection: %s", e)
            return SelectionResult(items=fallback, summary_unavailable=True)

        by_id = {item.id: item for item in items}
        cited = [by_id[item_id] for item_id in dict.fromkeys(summary.cited_item_ids) if item_id in by_id]
        cited_ids = {item.id for item in cited}
        filler = [item for item in latest(items, len(items)) if item.id not in cited_ids]
        selected = (cited + filler)[: self.limit]

        return SelectionResult(items=tuple(selected), digest=summary.digest)
