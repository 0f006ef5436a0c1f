"""
Curation Module
Candidate assessment, ingestion runs and feedback-driven lifecycle review
"""
from .assessor import QualityAssessor, clamp_score, decide, rejection_reason, transcript_delta
from .lifecycle import LifecycleDecision, LifecycleManager, LifecycleRule, evaluate
from .pipeline import IngestionPipeline

__all__ = [
    "QualityAssessor",
    "clamp_score",
    "decide",
    "rejection_reason",
    "transcript_delta",
    "LifecycleDecision",
    "LifecycleManager",
    "LifecycleRule",
    "evaluate",
    "IngestionPipeline",
]
