from __future__ import annotations

from typing import Dict

from config.settings import LifecycleSettings
from core import (
    ADVANCED_BELT_LEVELS,
    ALL_BELT_LEVELS,
    CurationRecord,
    FeedbackAggregate,
    FeedbackCategory,
    RecordStatus,
)
from curation.lifecycle import LifecycleManager, evaluate
from storage.feedback import InMemoryFeedbackLedger
from storage.records import InMemoryRecordStore
from utils.exceptions import StorageError


def _agg(total: int, helpful: float, **counts: int) -> FeedbackAggregate:
    return FeedbackAggregate(
        total_votes=total,
        helpful_ratio=helpful,
        category_counts={FeedbackCategory(key): value for key, value in counts.items()},
    )


def _record(external_id: str, feedback: FeedbackAggregate, status: RecordStatus = RecordStatus.ACTIVE) -> CurationRecord:
    return CurationRecord(external_id=external_id, title=external_id, target_entity="Marcelo Garcia", status=status, feedback=feedback)


class StaticFeedback:
    def __init__(self, aggregates: Dict[str, FeedbackAggregate]) -> None:
        self._aggregates = aggregates

    def aggregate(self, external_id: str) -> FeedbackAggregate:
        return self._aggregates.get(external_id, FeedbackAggregate())

    def aggregates(self) -> Dict[str, FeedbackAggregate]:
        return dict(self._aggregates)


SETTINGS = LifecycleSettings()


def test_promotes_well_rated_record() -> None:
    decision = evaluate(_record("a", _agg(120, 0.90)), SETTINGS)
    assert decision.status == RecordStatus.TOP_TIER
    assert decision.matched == ("promote_top_tier",)


def test_quality_issue_ratio_removes_regardless_of_helpfulness() -> None:
    decision = evaluate(_record("a", _agg(100, 0.95, video_quality_poor=30)), SETTINGS)
    assert decision.status == RecordStatus.REMOVED


def test_cold_start_guard_blocks_every_rule() -> None:
    decision = evaluate(_record("a", _agg(49, 0.0, video_quality_poor=49)), SETTINGS)
    assert decision.is_noop
    assert decision.matched == ()


def test_unhelpful_quality_complaints_remove() -> None:
    decision = evaluate(_record("a", _agg(60, 0.30, video_quality_poor=10, wrong_recommendation=5)), SETTINGS)
    assert decision.status == RecordStatus.REMOVED
    assert decision.matched == ("remove_unhelpful",)


def test_context_complaints_flag() -> None:
    decision = evaluate(_record("a", _agg(60, 0.45, video_quality_poor=5, wrong_recommendation=10)), SETTINGS)
    assert decision.status == RecordStatus.FLAGGED


def test_equal_quality_and_context_counts_change_nothing() -> None:
    decision = evaluate(_record("a", _agg(60, 0.30, video_quality_poor=8, wrong_recommendation=8)), SETTINGS)
    assert decision.status is None
    assert decision.is_noop


def test_too_advanced_retargets_alongside_flag() -> None:
    decision = evaluate(
        _record("a", _agg(100, 0.45, wrong_recommendation=20, video_quality_poor=5, too_advanced=45)),
        SETTINGS,
    )
    assert decision.status == RecordStatus.FLAGGED
    assert decision.belt_levels == ADVANCED_BELT_LEVELS
    assert decision.matched == ("flag_wrong_context", "retarget_advanced")


def test_too_advanced_not_applied_to_removed() -> None:
    decision = evaluate(_record("a", _agg(100, 0.95, video_quality_poor=30, too_advanced=50)), SETTINGS)
    assert decision.status == RecordStatus.REMOVED
    assert decision.belt_levels is None


def test_review_all_applies_rules_and_is_idempotent() -> None:
    records = InMemoryRecordStore(
        [
            _record("top", FeedbackAggregate()),
            _record("bad", FeedbackAggregate()),
            _record("cold", FeedbackAggregate()),
            _record("adv", FeedbackAggregate()),
        ]
    )
    feedback = StaticFeedback(
        {
            "top": _agg(120, 0.90),
            "bad": _agg(100, 0.95, video_quality_poor=30),
            "cold": _agg(10, 0.0, video_quality_poor=10),
            "adv": _agg(80, 0.70, too_advanced=40),
        }
    )
    manager = LifecycleManager(records, feedback, settings=SETTINGS)

    first = manager.review_all()
    assert (first.reviewed, first.removed, first.flagged, first.promoted, first.retargeted, first.errors) == (3, 1, 0, 1, 1, 0)
    assert records.get("top").status == RecordStatus.TOP_TIER
    assert records.get("bad").status == RecordStatus.REMOVED
    assert records.get("cold").status == RecordStatus.ACTIVE
    assert records.get("adv").belt_levels == ADVANCED_BELT_LEVELS
    assert records.get("top").belt_levels == ALL_BELT_LEVELS

    top_updated = records.get("top").updated_at
    second = manager.review_all()
    assert (second.promoted, second.retargeted, second.errors) == (1, 1, 0)
    assert second.removed == 0
    assert records.get("top").updated_at == top_updated
    assert records.get("bad").status == RecordStatus.REMOVED


def test_review_all_counts_store_failures_and_continues() -> None:
    class FlakyRecords(InMemoryRecordStore):
        def update_status(self, external_id, status):
            if external_id == "boom":
                raise StorageError("write failed")
            return super().update_status(external_id, status)

    records = FlakyRecords([_record("boom", _agg(120, 0.90)), _record("ok", _agg(120, 0.90))])
    manager = LifecycleManager(records, StaticFeedback({}), settings=SETTINGS)

    report = manager.review_all()

    assert report.errors == 1
    assert report.promoted == 1
    assert records.get("ok").status == RecordStatus.TOP_TIER
    assert records.get("boom").status == RecordStatus.ACTIVE


def test_review_all_survives_driver_errors_outside_hierarchy() -> None:
    class DroppedConnection(InMemoryRecordStore):
        def update_status(self, external_id, status):
            if external_id == "a":
                raise ConnectionError("db connection reset")
            return super().update_status(external_id, status)

    records = DroppedConnection(
        [
            _record("a", _agg(100, 0.95, video_quality_poor=30)),
            _record("b", _agg(100, 0.95, video_quality_poor=30)),
        ]
    )
    manager = LifecycleManager(records, StaticFeedback({}), settings=SETTINGS)

    report = manager.review_all()

    assert report.errors == 1
    assert report.removed == 1
    assert records.get("b").status == RecordStatus.REMOVED
    assert records.get("a").status == RecordStatus.ACTIVE


def test_feedback_sync_survives_driver_errors() -> None:
    class BrokenFeedbackWrites(InMemoryRecordStore):
        def update_feedback(self, external_id, feedback):
            if external_id == "a":
                raise OSError("disk unavailable")
            return super().update_feedback(external_id, feedback)

    records = BrokenFeedbackWrites([_record("a", FeedbackAggregate()), _record("b", FeedbackAggregate())])
    feedback = StaticFeedback({"a": _agg(120, 0.90), "b": _agg(120, 0.90)})

    report = LifecycleManager(records, feedback, settings=SETTINGS).review_all()

    assert report.errors == 1
    assert report.promoted == 1
    assert records.get("b").status == RecordStatus.TOP_TIER
    assert records.get("a").feedback.total_votes == 0


def test_review_all_reads_votes_from_ledger() -> None:
    records = InMemoryRecordStore([_record("v1", FeedbackAggregate())])
    ledger = InMemoryFeedbackLedger()
    for idx in range(60):
        if idx < 20:
            ledger.record_vote("v1", helpful=False, category=FeedbackCategory.VIDEO_QUALITY_POOR)
        else:
            ledger.record_vote("v1", helpful=True)

    report = LifecycleManager(records, ledger, settings=SETTINGS).review_all()

    assert report.removed == 1
    stored = records.get("v1")
    assert stored.status == RecordStatus.REMOVED
    assert stored.feedback.total_votes == 60
