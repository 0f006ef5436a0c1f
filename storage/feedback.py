"""
Feedback Ledger
Per-record vote counts, pre-aggregated for the lifecycle review
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from threading import Lock
from typing import Dict, Optional, Protocol

from core import FeedbackAggregate, FeedbackCategory


logger = logging.getLogger(__name__)


class FeedbackAggregateSource(Protocol):
    def aggregate(self, external_id: str) -> FeedbackAggregate:
        ...

    def aggregates(self) -> Dict[str, FeedbackAggregate]:
        ...


@dataclass
class _Tally:
    total: int = 0
    helpful: int = 0
    categories: Dict[FeedbackCategory, int] = field(default_factory=dict)

    def to_aggregate(self) -> FeedbackAggregate:
        ratio = self.helpful / self.total if self.total else 0.0
        return FeedbackAggregate(
            total_votes=self.total,
            helpful_ratio=ratio,
            category_counts=dict(self.categories),
        )


class InMemoryFeedbackLedger:
    """Records individual votes and serves their aggregates."""

    def __init__(self) -> None:
        self._tallies: Dict[str, _Tally] = {}
        self._lock = Lock()

    def record_vote(
        self,
        external_id: str,
        *,
        helpful: bool,
        category: Optional[FeedbackCategory] = None,
    ) -> FeedbackAggregate:
        """Add one vote. ``category`` qualifies an unhelpful vote."""
        with self._lock:
            tally = self._tallies.setdefault(external_id, _Tally())
            tally.total += 1
            if helpful:
                tally.helpful += 1
            if category is not None:
                key = FeedbackCategory(category)
                tally.categories[key] = tally.categories.get(key, 0) + 1
            return tally.to_aggregate()

    def aggregate(self, external_id: str) -> FeedbackAggregate:
        with self._lock:
            tally = self._tallies.get(external_id)
            return tally.to_aggregate() if tally else FeedbackAggregate()

    def aggregates(self) -> Dict[str, FeedbackAggregate]:
        with self._lock:
            return {external_id: tally.to_aggregate() for external_id, tally in self._tallies.items()}
