"""Canonical data contracts for ingestion, scoring, progress and lifecycle."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProgressEventType(str, Enum):
    """Machine-readable category of a progress event."""

    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"
    SEARCH = "search"
    ANALYZE = "analyze"
    ADDED = "added"
    SKIPPED = "skipped"


class RunState(str, Enum):
    """Ingestion run lifecycle. COMPLETE and FAILED are terminal."""

    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not RunState.RUNNING


class RecordStatus(str, Enum):
    """Persisted record status; REMOVED is a tombstone."""

    ACTIVE = "active"
    FLAGGED = "flagged"
    TOP_TIER = "top_tier"
    REMOVED = "removed"


class FeedbackCategory(str, Enum):
    """Negative-feedback reasons users can attach to a vote."""

    VIDEO_QUALITY_POOR = "video_quality_poor"
    WRONG_RECOMMENDATION = "wrong_recommendation"
    TOO_ADVANCED = "too_advanced"
    TOO_BASIC = "too_basic"


class BeltLevel(str, Enum):
    WHITE = "white"
    BLUE = "blue"
    PURPLE = "purple"
    BROWN = "brown"
    BLACK = "black"


ALL_BELT_LEVELS: List[BeltLevel] = list(BeltLevel)
ADVANCED_BELT_LEVELS: List[BeltLevel] = [BeltLevel.PURPLE, BeltLevel.BROWN, BeltLevel.BLACK]

TRANSCRIPT_DELTAS = (-3, 0, 3, 5)


class CandidateItem(BaseModel):
    """Catalog search result awaiting a decision."""

    external_id: str
    title: str = ""
    description: str = ""
    channel_title: str = ""
    published_at: Optional[datetime] = None
    thumbnail_url: str = ""
    duration_seconds: Optional[int] = None

    @field_validator("external_id", mode="before")
    @classmethod
    def _non_empty_id(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("external_id is required")
        return text


class TranscriptAssessment(BaseModel):
    """Transcript sub-score and the bounded delta it contributes."""

    model_config = ConfigDict(frozen=True)

    has_transcript: bool = False
    quality_score: int = Field(default=0, ge=0, le=100)
    delta: int = 0
    reason: str = "No transcript available"

    @field_validator("delta")
    @classmethod
    def _bounded_delta(cls, value: int) -> int:
        if value not in TRANSCRIPT_DELTAS:
            raise ValueError(f"transcript delta must be one of {TRANSCRIPT_DELTAS}")
        return value


class QualityAssessment(BaseModel):
    """Result of scoring one candidate. Computed once, never mutated."""

    model_config = ConfigDict(frozen=True)

    is_instructional: bool
    matches_target: bool
    technique: Optional[str] = None
    technique_type: Optional[str] = None
    position_category: Optional[str] = None
    rule_set: Optional[str] = None
    base_score: float = Field(default=0.0, ge=0.0, le=100.0)
    transcript: Optional[TranscriptAssessment] = None
    final_score: float = Field(default=0.0, ge=0.0, le=100.0)
    reasoning: str

    @field_validator("reasoning")
    @classmethod
    def _non_empty_reasoning(cls, value: str) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("reasoning is required")
        return text

    @property
    def transcript_delta(self) -> int:
        return self.transcript.delta if self.transcript else 0


class FeedbackAggregate(BaseModel):
    """Pre-aggregated vote counts for one record."""

    total_votes: int = Field(default=0, ge=0)
    helpful_ratio: float = Field(default=0.0, ge=0.0, le=1.0)
    category_counts: Dict[FeedbackCategory, int] = Field(default_factory=dict)

    def count(self, category: FeedbackCategory) -> int:
        return int(self.category_counts.get(category, 0) or 0)

    def _ratio(self, category: FeedbackCategory) -> float:
        if self.total_votes <= 0:
            return 0.0
        return self.count(category) / self.total_votes

    @property
    def quality_issue_count(self) -> int:
        return self.count(FeedbackCategory.VIDEO_QUALITY_POOR)

    @property
    def context_issue_count(self) -> int:
        return self.count(FeedbackCategory.WRONG_RECOMMENDATION)

    @property
    def too_advanced_count(self) -> int:
        return self.count(FeedbackCategory.TOO_ADVANCED)

    @property
    def quality_issue_ratio(self) -> float:
        return self._ratio(FeedbackCategory.VIDEO_QUALITY_POOR)

    @property
    def too_advanced_ratio(self) -> float:
        return self._ratio(FeedbackCategory.TOO_ADVANCED)


class CurationRecord(BaseModel):
    """Persisted, accepted catalog item."""

    external_id: str
    title: str
    target_entity: str
    technique: Optional[str] = None
    technique_type: Optional[str] = None
    position_category: Optional[str] = None
    rule_set: Optional[str] = None
    quality_score: float = Field(default=0.0, ge=0.0, le=100.0)
    duration_seconds: int = 0
    channel_title: str = ""
    thumbnail_url: str = ""
    status: RecordStatus = RecordStatus.ACTIVE
    belt_levels: List[BeltLevel] = Field(default_factory=lambda: list(ALL_BELT_LEVELS))
    feedback: FeedbackAggregate = Field(default_factory=FeedbackAggregate)
    source_run_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class ProgressEvent(BaseModel):
    """One entry in a run's append-only event log."""

    model_config = ConfigDict(frozen=True)

    seq: int = 0
    ts: datetime = Field(default_factory=_utcnow)
    icon: str = "•"
    message: str
    data: Optional[str] = None
    type: ProgressEventType = ProgressEventType.INFO
    item_title: Optional[str] = None
    target_entity: Optional[str] = None
    reason: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None


class AddedItem(BaseModel):
    title: str
    target_entity: str
    external_id: str


class RunSummary(BaseModel):
    """
    Counts reported when a run finishes (normally or not).

    Duplicates, including a lost insert race, appear only in
    ``skipped_duplicate``; ``analyzed`` is ``approved + rejected`` for a
    run that was not interrupted.
    """

    analyzed: int = 0
    approved: int = 0
    rejected: int = 0
    skipped_duplicate: int = 0
    quota_used: int = 0
    new_items: List[AddedItem] = Field(default_factory=list)


class RunSnapshot(BaseModel):
    """Observable state of one ingestion run."""

    run_id: str
    status: RunState = RunState.RUNNING
    target_entity: Optional[str] = None
    events: List[ProgressEvent] = Field(default_factory=list)
    summary: Optional[RunSummary] = None
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None


class IngestionRequest(BaseModel):
    """Caller-facing parameters of an ingestion run."""

    target_entity: str
    queries: List[str]
    min_quality: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    min_duration_seconds: Optional[int] = Field(default=None, ge=0)

    @field_validator("target_entity", mode="before")
    @classmethod
    def _non_empty_text(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("value is required")
        return text

    @field_validator("queries", mode="before")
    @classmethod
    def _clean_queries(cls, value: Any) -> List[str]:
        cleaned: List[str] = []
        seen = set()
        for item in list(value or []):
            query = str(item or "").strip()
            key = query.lower()
            if not query or key in seen:
                continue
            seen.add(key)
            cleaned.append(query)
        if not cleaned:
            raise ValueError("at least one query is required")
        return cleaned


class LifecycleReport(BaseModel):
    """Counts produced by one lifecycle review pass."""

    reviewed: int = 0
    removed: int = 0
    flagged: int = 0
    promoted: int = 0
    retargeted: int = 0
    errors: int = 0
