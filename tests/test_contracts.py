from __future__ import annotations

import pytest
from pydantic import ValidationError

from core import (
    ALL_BELT_LEVELS,
    CandidateItem,
    CurationRecord,
    FeedbackAggregate,
    FeedbackCategory,
    IngestionRequest,
    ProgressEvent,
    QualityAssessment,
    RecordStatus,
    RunState,
    TranscriptAssessment,
)
from storage.feedback import InMemoryFeedbackLedger
from storage.records import InMemoryRecordStore
from utils.exceptions import DuplicateKeyError, StorageError


def test_ingestion_request_cleans_queries() -> None:
    req = IngestionRequest(target_entity="  Mikey Musumeci ", queries=["berimbolo", " Berimbolo ", "", "leg drag"])
    assert req.target_entity == "Mikey Musumeci"
    assert req.queries == ["berimbolo", "leg drag"]

    with pytest.raises(ValidationError):
        IngestionRequest(target_entity="Mikey", queries=[" "])


def test_transcript_delta_is_restricted() -> None:
    assert TranscriptAssessment(delta=5).delta == 5
    with pytest.raises(ValidationError):
        TranscriptAssessment(delta=4)


def test_assessment_requires_reasoning_and_is_frozen() -> None:
    with pytest.raises(ValidationError):
        QualityAssessment(is_instructional=True, matches_target=True, reasoning="  ")

    result = QualityAssessment(is_instructional=True, matches_target=True, final_score=71, reasoning="ok")
    assert result.transcript_delta == 0
    with pytest.raises(ValidationError):
        result.final_score = 10


def test_candidate_requires_external_id() -> None:
    with pytest.raises(ValidationError):
        CandidateItem(external_id=" ", title="x")


def test_progress_event_is_immutable() -> None:
    event = ProgressEvent(message="hello")
    with pytest.raises(ValidationError):
        event.message = "changed"


def test_run_state_terminality() -> None:
    assert RunState.RUNNING.is_terminal is False
    assert RunState.COMPLETE.is_terminal is True
    assert RunState.FAILED.is_terminal is True


def test_feedback_aggregate_ratios() -> None:
    agg = FeedbackAggregate(
        total_votes=40,
        helpful_ratio=0.5,
        category_counts={FeedbackCategory.VIDEO_QUALITY_POOR: 10, FeedbackCategory.TOO_ADVANCED: 4},
    )
    assert agg.quality_issue_ratio == 0.25
    assert agg.too_advanced_ratio == 0.1
    assert agg.context_issue_count == 0
    assert FeedbackAggregate().quality_issue_ratio == 0.0


def test_ledger_tallies_votes() -> None:
    ledger = InMemoryFeedbackLedger()
    ledger.record_vote("v1", helpful=True)
    ledger.record_vote("v1", helpful=False, category=FeedbackCategory.TOO_BASIC)
    agg = ledger.record_vote("v1", helpful=False, category="too_basic")

    assert agg.total_votes == 3
    assert agg.helpful_ratio == pytest.approx(1 / 3)
    assert agg.count(FeedbackCategory.TOO_BASIC) == 2
    assert ledger.aggregate("unknown").total_votes == 0
    assert set(ledger.aggregates()) == {"v1"}


def test_record_store_keeps_tombstones_and_rejects_duplicates() -> None:
    store = InMemoryRecordStore([CurationRecord(external_id="a", title="A", target_entity="x")])
    assert store.get("a").belt_levels == ALL_BELT_LEVELS

    with pytest.raises(DuplicateKeyError):
        store.insert(CurationRecord(external_id="a", title="again", target_entity="x"))

    store.update_status("a", RecordStatus.REMOVED)
    assert store.list_records() == []
    assert store.known_external_ids() == {"a"}
    assert store.exists_by_external_id("a") is True
    assert store.query_by_evidence(0) == []

    with pytest.raises(StorageError):
        store.update_status("missing", RecordStatus.FLAGGED)


def test_record_store_returns_copies() -> None:
    store = InMemoryRecordStore([CurationRecord(external_id="a", title="A", target_entity="x")])
    copy = store.get("a")
    copy.title = "mutated"
    assert store.get("a").title == "A"
