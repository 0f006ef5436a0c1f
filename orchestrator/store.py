"""In-memory run store: per-run event logs with push fan-out to subscribers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from threading import Lock, RLock
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from core import ProgressEvent, ProgressEventType, RunSnapshot, RunState, RunSummary


logger = logging.getLogger(__name__)

Sink = Callable[[ProgressEvent], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_run_id() -> str:
    return f"run_{_utcnow().strftime('%Y%m%d_%H%M%S')}_{uuid4().hex[:8]}"


class _RunEntry:
    """Mutable state of one run. Every field is guarded by ``lock``."""

    def __init__(self, run_id: str, target_entity: Optional[str]) -> None:
        self.lock = RLock()
        self.run_id = run_id
        self.target_entity = target_entity
        self.status = RunState.RUNNING
        self.events: List[ProgressEvent] = []
        self.sinks: List[Sink] = []
        self.summary: Optional[RunSummary] = None
        self.error: Optional[str] = None
        self.started_at = _utcnow()
        self.finished_at: Optional[datetime] = None

    def snapshot(self) -> RunSnapshot:
        return RunSnapshot(
            run_id=self.run_id,
            status=self.status,
            target_entity=self.target_entity,
            events=list(self.events),
            summary=self.summary.model_copy(deep=True) if self.summary else None,
            error=self.error,
            started_at=self.started_at,
            finished_at=self.finished_at,
        )


class InMemoryRunStore:
    """
    Owner of all run state for this process.

    The registry lock only guards the run map. Each run has its own lock that
    serialises append, subscribe and the terminal transitions, so a subscriber
    always sees the backlog followed by live events with no gap or duplicate.
    Sinks are called while that lock is held and must not block.
    """

    def __init__(self, *, retention: timedelta = timedelta(hours=24)) -> None:
        self._runs: Dict[str, _RunEntry] = {}
        self._lock = Lock()
        self._retention = retention

    def _entry(self, run_id: str) -> Optional[_RunEntry]:
        with self._lock:
            return self._runs.get(run_id)

    def start(self, run_id: str, *, target_entity: Optional[str] = None) -> RunSnapshot:
        """Register a new running run."""
        with self._lock:
            if run_id in self._runs:
                raise ValueError(f"run already exists: {run_id}")
            entry = _RunEntry(run_id, target_entity)
            self._runs[run_id] = entry
        logger.info("run_registered run_id=%s target=%s", run_id, target_entity)
        return entry.snapshot()

    def append(self, run_id: str, event: ProgressEvent) -> Optional[ProgressEvent]:
        """Append and broadcast. Returns the stored event, or None for unknown/terminal runs."""
        entry = self._entry(run_id)
        if entry is None:
            logger.warning("append_unknown_run run_id=%s", run_id)
            return None
        with entry.lock:
            if entry.status.is_terminal:
                logger.warning("append_after_terminal run_id=%s status=%s", run_id, entry.status.value)
                return None
            return self._append_locked(entry, event)

    def subscribe(self, run_id: str, sink: Sink) -> bool:
        """Replay the backlog into ``sink`` then attach it to the live path, atomically."""
        entry = self._entry(run_id)
        if entry is None:
            return False
        with entry.lock:
            for event in entry.events:
                if not self._deliver(entry, sink, event):
                    return False
            if not entry.status.is_terminal:
                entry.sinks.append(sink)
        logger.debug("sink_subscribed run_id=%s backlog=%d", run_id, len(entry.events))
        return True

    def unsubscribe(self, run_id: str, sink: Sink) -> bool:
        entry = self._entry(run_id)
        if entry is None:
            return False
        with entry.lock:
            try:
                entry.sinks.remove(sink)
            except ValueError:
                return False
            return True

    def get_snapshot(self, run_id: str) -> Optional[RunSnapshot]:
        entry = self._entry(run_id)
        if entry is None:
            return None
        with entry.lock:
            return entry.snapshot()

    def list_runs(self) -> List[RunSnapshot]:
        with self._lock:
            entries = list(self._runs.values())
        snapshots = []
        for entry in entries:
            with entry.lock:
                snapshots.append(entry.snapshot())
        return snapshots

    def subscriber_count(self, run_id: str) -> int:
        entry = self._entry(run_id)
        if entry is None:
            return 0
        with entry.lock:
            return len(entry.sinks)

    def complete(self, run_id: str, summary: RunSummary) -> Optional[RunSnapshot]:
        """Mark run complete and emit the final event carrying the summary."""
        entry = self._entry(run_id)
        if entry is None:
            return None
        with entry.lock:
            if entry.status.is_terminal:
                return entry.snapshot()
            entry.summary = summary.model_copy(deep=True)
            done = ProgressEvent(
                icon="🎉",
                message=(
                    f"Curation complete: {summary.analyzed} analyzed, "
                    f"{summary.approved} added, {summary.rejected} skipped"
                ),
                type=ProgressEventType.SUCCESS,
                payload=summary.model_dump(mode="json"),
            )
            self._append_locked(entry, done)
            self._finish_locked(entry, RunState.COMPLETE)
            return entry.snapshot()

    def fail(self, run_id: str, error: str, *, summary: Optional[RunSummary] = None) -> Optional[RunSnapshot]:
        """Mark run failed, keeping whatever partial summary was accumulated."""
        entry = self._entry(run_id)
        if entry is None:
            return None
        with entry.lock:
            if entry.status.is_terminal:
                return entry.snapshot()
            entry.error = str(error or "").strip() or "run failed"
            if summary is not None:
                entry.summary = summary.model_copy(deep=True)
            failed = ProgressEvent(
                icon="❌",
                message=f"Error: {entry.error}",
                type=ProgressEventType.ERROR,
                payload=entry.summary.model_dump(mode="json") if entry.summary else None,
            )
            self._append_locked(entry, failed)
            self._finish_locked(entry, RunState.FAILED)
            return entry.snapshot()

    def sweep(self, *, now: Optional[datetime] = None) -> int:
        """Drop finished runs older than the retention window. Running runs are never removed."""
        cutoff = (now or _utcnow()) - self._retention
        removed = 0
        with self._lock:
            for run_id in list(self._runs):
                entry = self._runs[run_id]
                with entry.lock:
                    expired = (
                        entry.status.is_terminal
                        and entry.finished_at is not None
                        and entry.finished_at <= cutoff
                    )
                if expired:
                    del self._runs[run_id]
                    removed += 1
        if removed:
            logger.info("progress_sweep removed=%d", removed)
        return removed

    def _append_locked(self, entry: _RunEntry, event: ProgressEvent) -> ProgressEvent:
        stored = event.model_copy(update={"seq": len(entry.events) + 1})
        entry.events.append(stored)
        for sink in list(entry.sinks):
            self._deliver(entry, sink, stored)
        return stored

    def _finish_locked(self, entry: _RunEntry, status: RunState) -> None:
        entry.status = status
        entry.finished_at = _utcnow()
        # no further events will arrive for a terminal run
        entry.sinks.clear()

    def _deliver(self, entry: _RunEntry, sink: Sink, event: ProgressEvent) -> bool:
        try:
            sink(event)
            return True
        except Exception as exc:
            logger.warning("sink_detached run_id=%s seq=%d error=%s", entry.run_id, event.seq, exc)
            if sink in entry.sinks:
                entry.sinks.remove(sink)
            return False
