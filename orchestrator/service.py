"""Orchestrator service layer for on-demand ingestion runs and the daily lifecycle review."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import threading
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from core import IngestionRequest, LifecycleReport, RunSnapshot, RunSummary
from .store import InMemoryRunStore, Sink, new_run_id

if TYPE_CHECKING:
    from curation.lifecycle import LifecycleManager
    from curation.pipeline import IngestionPipeline


logger = logging.getLogger(__name__)


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass
class LifecycleSchedule:
    """Daily lifecycle review registration."""

    run_at: str = "03:00"
    tz: str = "UTC"
    created_at: str = field(default_factory=_utc_iso)
    last_triggered_on: Optional[str] = None


@dataclass
class _RunHandle:
    run_id: str
    request: IngestionRequest
    cancel_event: threading.Event = field(default_factory=threading.Event)
    thread: Optional[threading.Thread] = None
    loop: Optional[asyncio.AbstractEventLoop] = None
    task: Optional["asyncio.Task[RunSummary]"] = None
    summary: Optional[RunSummary] = None


class RunOrchestrator:
    """Central orchestrator for ingestion run lifecycle, cancellation and scheduled reviews."""

    def __init__(
        self,
        *,
        pipeline: "IngestionPipeline",
        store: InMemoryRunStore,
        lifecycle: Optional["LifecycleManager"] = None,
        review_at: str = "03:00",
        review_tz: str = "UTC",
    ) -> None:
        self._pipeline = pipeline
        self._store = store
        self._lifecycle = lifecycle
        self._handles: Dict[str, _RunHandle] = {}
        self._schedule = LifecycleSchedule(run_at=str(review_at).strip() or "03:00", tz=str(review_tz).strip() or "UTC")
        self._lock = threading.Lock()

    @property
    def store(self) -> InMemoryRunStore:
        return self._store

    def start_run(self, request: IngestionRequest, *, run_id: Optional[str] = None) -> str:
        """Register the run and execute it on a worker thread. Returns the run_id immediately."""
        run_id = run_id or new_run_id()
        self._store.start(run_id, target_entity=request.target_entity)
        handle = _RunHandle(run_id=run_id, request=request)
        handle.thread = threading.Thread(target=self._run_worker, args=(handle,), name=f"ingest-{run_id[-8:]}", daemon=True)
        with self._lock:
            self._handles[run_id] = handle
        logger.info("run_start run_id=%s target=%s queries=%d", run_id, request.target_entity, len(request.queries))
        handle.thread.start()
        return run_id

    async def run_to_completion(
        self,
        request: IngestionRequest,
        *,
        run_id: Optional[str] = None,
        sink: Optional[Sink] = None,
    ) -> Tuple[str, RunSummary]:
        """Execute a run in the caller's event loop, optionally streaming events into ``sink``."""
        run_id = run_id or new_run_id()
        self._store.start(run_id, target_entity=request.target_entity)
        if sink is not None:
            self._store.subscribe(run_id, sink)
        handle = _RunHandle(run_id=run_id, request=request)
        handle.loop = asyncio.get_running_loop()
        with self._lock:
            self._handles[run_id] = handle
        try:
            handle.summary = await self._execute(handle)
        finally:
            with self._lock:
                self._handles.pop(run_id, None)
        return run_id, handle.summary

    def wait(self, run_id: str, timeout: Optional[float] = None) -> Optional[RunSnapshot]:
        """Block until a worker-thread run finishes. Returns the final snapshot."""
        with self._lock:
            handle = self._handles.get(run_id)
        if handle is not None and handle.thread is not None:
            handle.thread.join(timeout)
        return self._store.get_snapshot(run_id)

    def cancel_run(self, run_id: str) -> bool:
        """Request cancellation. The run closes as failed with its partial summary."""
        with self._lock:
            handle = self._handles.get(run_id)
        if handle is None:
            return False
        snapshot = self._store.get_snapshot(run_id)
        if snapshot is None or snapshot.status.is_terminal:
            return False
        handle.cancel_event.set()
        loop, task = handle.loop, handle.task
        if loop is not None and task is not None and not loop.is_closed():
            # interrupts an in-flight collaborator call
            loop.call_soon_threadsafe(task.cancel)
        logger.info("run_cancel_requested run_id=%s", run_id)
        return True

    def get_snapshot(self, run_id: str) -> Optional[RunSnapshot]:
        return self._store.get_snapshot(run_id)

    def get_run_summary(self, run_id: str) -> Optional[RunSummary]:
        snapshot = self._store.get_snapshot(run_id)
        return snapshot.summary if snapshot else None

    def list_runs(self) -> List[RunSnapshot]:
        return self._store.list_runs()

    def subscribe(self, run_id: str, sink: Sink) -> bool:
        return self._store.subscribe(run_id, sink)

    def unsubscribe(self, run_id: str, sink: Sink) -> bool:
        return self._store.unsubscribe(run_id, sink)

    def trigger_lifecycle_review(self) -> Optional[LifecycleReport]:
        if self._lifecycle is None:
            return None
        return self._lifecycle.review_all()

    def trigger_due_review(self, *, now_utc: Optional[datetime] = None) -> Optional[LifecycleReport]:
        """Run the lifecycle review once per local day after run_at has passed."""
        now = now_utc or datetime.now(timezone.utc)
        with self._lock:
            schedule = LifecycleSchedule(**self._schedule.__dict__)

        try:
            tz = ZoneInfo(schedule.tz)
        except Exception:
            tz = ZoneInfo("UTC")
        local_now = now.astimezone(tz)
        run_hour, run_minute = _parse_run_at(schedule.run_at)
        target_minute = run_hour * 60 + run_minute
        current_minute = local_now.hour * 60 + local_now.minute
        local_date = local_now.date().isoformat()

        if current_minute < target_minute:
            return None
        if schedule.last_triggered_on == local_date:
            return None

        with self._lock:
            self._schedule.last_triggered_on = local_date
        logger.info("scheduled_review_due local_date=%s run_at=%s tz=%s", local_date, schedule.run_at, schedule.tz)
        return self.trigger_lifecycle_review()

    def tick(self, *, now_utc: Optional[datetime] = None) -> Tuple[Optional[LifecycleReport], int]:
        """Scheduler heartbeat: due lifecycle review plus expired run cleanup."""
        report = self.trigger_due_review(now_utc=now_utc)
        swept = self._store.sweep(now=now_utc)
        self._prune_handles()
        return report, swept

    def _run_worker(self, handle: _RunHandle) -> None:
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            with self._lock:
                handle.loop = loop
                handle.task = loop.create_task(self._execute(handle))
            handle.summary = loop.run_until_complete(handle.task)
        except asyncio.CancelledError:
            logger.info("run_canceled run_id=%s", handle.run_id)
        except Exception as exc:
            # the pipeline closes its own run; this only guards the worker boundary
            self._store.fail(handle.run_id, str(exc))
            logger.exception("run_failed run_id=%s error=%s", handle.run_id, exc)
        finally:
            asyncio.set_event_loop(None)
            loop.close()

    async def _execute(self, handle: _RunHandle) -> RunSummary:
        request = handle.request
        if handle.task is None:
            handle.task = asyncio.current_task()
        summary = await self._pipeline.run_ingestion(
            request.target_entity,
            request.queries,
            request.min_quality,
            request.min_duration_seconds,
            run_id=handle.run_id,
            cancel_event=handle.cancel_event,
        )
        snapshot = self._store.get_snapshot(handle.run_id)
        logger.info(
            "run_finished run_id=%s status=%s approved=%d",
            handle.run_id,
            snapshot.status.value if snapshot else "unknown",
            summary.approved,
        )
        return summary

    def _prune_handles(self) -> None:
        with self._lock:
            for run_id in list(self._handles):
                if self._store.get_snapshot(run_id) is None:
                    del self._handles[run_id]


def _parse_run_at(run_at: str) -> Tuple[int, int]:
    text = str(run_at or "").strip()
    parts = text.split(":")
    if len(parts) != 2:
        return 3, 0
    try:
        hour = max(0, min(23, int(parts[0])))
        minute = max(0, min(59, int(parts[1])))
        return hour, minute
    except Exception:
        return 3, 0
