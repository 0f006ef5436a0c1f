"""Ingestion pipeline: search, dedup, assess and persist candidates for one target entity."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import List, Optional, Sequence, Set

from config import get_curation_settings, get_youtube_settings
from config.settings import CurationSettings, YouTubeSettings
from core import AddedItem, CandidateItem, CurationRecord, RecordStatus, RunSummary
from orchestrator.progress import ProgressReporter
from orchestrator.store import InMemoryRunStore, new_run_id
from sources.base import CatalogSearch
from storage.records import RecordStore
from utils.exceptions import (
    CuratorError,
    DuplicateKeyError,
    QuotaExceededError,
    RunCancelledError,
    TransientCollaboratorError,
)
from .assessor import QualityAssessor, decide, rejection_reason
from .prompts import format_duration


logger = logging.getLogger(__name__)


class _RunCounters:
    """Mutable tallies for one run; frozen into a RunSummary at the end."""

    def __init__(self) -> None:
        self.analyzed = 0
        self.approved = 0
        self.rejected = 0
        self.skipped_duplicate = 0
        self.searches = 0
        self.detail_lookups = 0
        self.new_items: List[AddedItem] = []

    def summary(self, *, search_cost: int, detail_cost: int) -> RunSummary:
        return RunSummary(
            analyzed=self.analyzed,
            approved=self.approved,
            rejected=self.rejected,
            skipped_duplicate=self.skipped_duplicate,
            quota_used=self.searches * search_cost + self.detail_lookups * detail_cost,
            new_items=list(self.new_items),
        )


class IngestionPipeline:
    """
    Runs one ingestion pass for a target entity.

    Every milestone is appended to the run store as a progress event. A quota
    error, cancellation or unexpected failure closes the run as failed with the
    partial summary; ``run_ingestion`` itself only re-raises task cancellation.
    """

    def __init__(
        self,
        catalog: CatalogSearch,
        assessor: QualityAssessor,
        records: RecordStore,
        store: InMemoryRunStore,
        *,
        settings: Optional[CurationSettings] = None,
        youtube_settings: Optional[YouTubeSettings] = None,
    ) -> None:
        self._catalog = catalog
        self._assessor = assessor
        self._records = records
        self._store = store
        self._settings = settings or get_curation_settings()
        self._youtube = youtube_settings or get_youtube_settings()

    async def run_ingestion(
        self,
        target_entity: str,
        queries: Sequence[str],
        min_quality_threshold: Optional[float] = None,
        min_duration_seconds: Optional[int] = None,
        *,
        run_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RunSummary:
        run_id = run_id or new_run_id()
        if self._store.get_snapshot(run_id) is None:
            self._store.start(run_id, target_entity=target_entity)

        threshold = float(self._settings.min_quality if min_quality_threshold is None else min_quality_threshold)
        min_duration = int(
            self._settings.min_duration_seconds if min_duration_seconds is None else min_duration_seconds
        )
        progress = ProgressReporter(self._store, run_id)
        counters = _RunCounters()

        def _summary() -> RunSummary:
            return counters.summary(
                search_cost=self._youtube.search_cost,
                detail_cost=self._youtube.detail_cost,
            )

        logger.info(
            "ingestion_start run_id=%s target=%s queries=%d threshold=%.0f min_duration=%d",
            run_id,
            target_entity,
            len(queries),
            threshold,
            min_duration,
        )
        progress.info(f"Starting curation for {target_entity}", data=f"{len(queries)} queries")

        try:
            await self._run_queries(
                progress,
                counters,
                target_entity=target_entity,
                queries=queries,
                threshold=threshold,
                min_duration=min_duration,
                cancel_event=cancel_event,
            )
        except QuotaExceededError as exc:
            summary = _summary()
            self._store.fail(run_id, exc.message or "QUOTA_EXCEEDED", summary=summary)
            logger.warning("ingestion_quota_exceeded run_id=%s source=%s", run_id, exc.source)
            return summary
        except RunCancelledError:
            summary = _summary()
            self._store.fail(run_id, "cancelled", summary=summary)
            logger.info("ingestion_cancelled run_id=%s", run_id)
            return summary
        except asyncio.CancelledError:
            self._store.fail(run_id, "cancelled", summary=_summary())
            logger.info("ingestion_cancelled run_id=%s", run_id)
            raise
        except Exception as exc:
            summary = _summary()
            self._store.fail(run_id, str(exc), summary=summary)
            logger.exception("ingestion_failed run_id=%s error=%s", run_id, exc)
            return summary

        summary = _summary()
        self._store.complete(run_id, summary)
        logger.info(
            "ingestion_completed run_id=%s analyzed=%d approved=%d rejected=%d duplicates=%d quota=%d",
            run_id,
            summary.analyzed,
            summary.approved,
            summary.rejected,
            summary.skipped_duplicate,
            summary.quota_used,
        )
        return summary

    async def _run_queries(
        self,
        progress: ProgressReporter,
        counters: _RunCounters,
        *,
        target_entity: str,
        queries: Sequence[str],
        threshold: float,
        min_duration: int,
        cancel_event: Optional[threading.Event],
    ) -> None:
        # tombstoned IDs are included so removed records never come back
        seen: Set[str] = set(self._records.known_external_ids())

        for query in queries:
            _checkpoint(cancel_event)
            progress.search(query)
            counters.searches += 1
            try:
                candidates = await self._catalog.search(query, max_results=self._youtube.max_results)
            except QuotaExceededError:
                raise
            except CuratorError as exc:
                progress.error(f'Search failed for "{query}"', data=exc.message)
                logger.warning("search_failed run_id=%s query=%r error=%s", progress.run_id, query, exc)
                continue

            progress.info(f"Found {len(candidates)} results", data=query)
            for candidate in candidates:
                await self._process_candidate(
                    progress,
                    counters,
                    candidate,
                    seen=seen,
                    target_entity=target_entity,
                    threshold=threshold,
                    min_duration=min_duration,
                    cancel_event=cancel_event,
                )

    async def _process_candidate(
        self,
        progress: ProgressReporter,
        counters: _RunCounters,
        candidate: CandidateItem,
        *,
        seen: Set[str],
        target_entity: str,
        threshold: float,
        min_duration: int,
        cancel_event: Optional[threading.Event],
    ) -> None:
        if candidate.external_id in seen:
            counters.skipped_duplicate += 1
            progress.skipped(candidate.title, "duplicate")
            return

        counters.analyzed += 1
        _checkpoint(cancel_event)
        counters.detail_lookups += 1
        try:
            duration = await self._catalog.get_duration(candidate.external_id)
        except QuotaExceededError:
            raise
        except TransientCollaboratorError as exc:
            counters.rejected += 1
            progress.skipped(candidate.title, "duration unavailable")
            logger.warning("duration_unavailable id=%s error=%s", candidate.external_id, exc)
            return

        candidate = candidate.model_copy(update={"duration_seconds": int(duration)})
        if candidate.duration_seconds < min_duration:
            counters.rejected += 1
            progress.skipped(
                candidate.title,
                f"too short ({format_duration(candidate.duration_seconds)} < {min_duration}s)",
            )
            return

        _checkpoint(cancel_event)
        progress.analyze(candidate.title)
        assessment = await self._assessor.assess(
            candidate,
            target_entity,
            candidate.duration_seconds,
            min_duration_seconds=min_duration,
        )

        if not decide(assessment, threshold):
            counters.rejected += 1
            progress.skipped(candidate.title, rejection_reason(assessment, target_entity, threshold) or "rejected")
            return

        _checkpoint(cancel_event)
        record = CurationRecord(
            external_id=candidate.external_id,
            title=candidate.title,
            target_entity=target_entity,
            technique=assessment.technique,
            technique_type=assessment.technique_type,
            position_category=assessment.position_category,
            rule_set=assessment.rule_set,
            quality_score=assessment.final_score,
            duration_seconds=candidate.duration_seconds,
            channel_title=candidate.channel_title,
            thumbnail_url=candidate.thumbnail_url,
            status=RecordStatus.ACTIVE,
            source_run_id=progress.run_id,
        )
        try:
            self._records.insert(record)
        except DuplicateKeyError:
            # inserted by a concurrent run since the dedup set was seeded
            seen.add(candidate.external_id)
            counters.analyzed -= 1
            counters.skipped_duplicate += 1
            progress.skipped(candidate.title, "duplicate")
            return

        seen.add(candidate.external_id)
        counters.approved += 1
        counters.new_items.append(
            AddedItem(title=candidate.title, target_entity=target_entity, external_id=candidate.external_id)
        )
        progress.added(candidate.title, target_entity, assessment.final_score)


def _checkpoint(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise RunCancelledError("cancelled")
