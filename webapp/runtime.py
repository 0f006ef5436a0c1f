"""Shared runtime singletons for web and CLI entrypoints."""

from __future__ import annotations

from datetime import timedelta
from threading import Lock
from typing import Optional

from config import get_settings
from curation import IngestionPipeline, LifecycleManager, QualityAssessor
from intelligence import LLMTextClassifier, get_llm
from orchestrator.service import RunOrchestrator
from orchestrator.store import InMemoryRunStore
from sources import QuotaTracker, YouTubeCatalog, YouTubeTranscriptSource
from storage import InMemoryFeedbackLedger, InMemoryRecordStore


class CuratorRuntime:
    """Wires collaborators from settings into one orchestrator."""

    def __init__(self) -> None:
        settings = get_settings()
        self.store = InMemoryRunStore(retention=timedelta(hours=settings.progress.retention_hours))
        self.records = InMemoryRecordStore()
        self.feedback = InMemoryFeedbackLedger()

        # search, details and captions draw from one daily quota
        tracker = QuotaTracker(settings.youtube.daily_quota_units)
        self.catalog = YouTubeCatalog(settings=settings.youtube, tracker=tracker)
        self.transcripts = YouTubeTranscriptSource(settings=settings.youtube, tracker=tracker)
        self.classifier = LLMTextClassifier(get_llm())

        self.assessor = QualityAssessor(self.classifier, self.transcripts, settings=settings.curation)
        self.pipeline = IngestionPipeline(
            self.catalog,
            self.assessor,
            self.records,
            self.store,
            settings=settings.curation,
            youtube_settings=settings.youtube,
        )
        self.lifecycle = LifecycleManager(self.records, self.feedback, settings=settings.lifecycle)
        self.orchestrator = RunOrchestrator(
            pipeline=self.pipeline,
            store=self.store,
            lifecycle=self.lifecycle,
            review_at=settings.lifecycle.review_at,
            review_tz=settings.lifecycle.review_tz,
        )


_RUNTIME: Optional[CuratorRuntime] = None
_LOCK = Lock()


def get_runtime() -> CuratorRuntime:
    global _RUNTIME
    with _LOCK:
        if _RUNTIME is None:
            _RUNTIME = CuratorRuntime()
        return _RUNTIME


def get_orchestrator() -> RunOrchestrator:
    return get_runtime().orchestrator
