"""Core contracts and shared types."""

from .contracts import (
    ADVANCED_BELT_LEVELS,
    ALL_BELT_LEVELS,
    TRANSCRIPT_DELTAS,
    AddedItem,
    BeltLevel,
    CandidateItem,
    CurationRecord,
    FeedbackAggregate,
    FeedbackCategory,
    IngestionRequest,
    LifecycleReport,
    ProgressEvent,
    ProgressEventType,
    QualityAssessment,
    RecordStatus,
    RunSnapshot,
    RunState,
    RunSummary,
    TranscriptAssessment,
)

__all__ = [
    "ADVANCED_BELT_LEVELS",
    "ALL_BELT_LEVELS",
    "TRANSCRIPT_DELTAS",
    "AddedItem",
    "BeltLevel",
    "CandidateItem",
    "CurationRecord",
    "FeedbackAggregate",
    "FeedbackCategory",
    "IngestionRequest",
    "LifecycleReport",
    "ProgressEvent",
    "ProgressEventType",
    "QualityAssessment",
    "RecordStatus",
    "RunSnapshot",
    "RunState",
    "RunSummary",
    "TranscriptAssessment",
]
