"""Run orchestration: run store, progress reporting and the run/scheduler service."""

from .progress import AsyncQueueSink, ProgressReporter
from .service import LifecycleSchedule, RunOrchestrator
from .store import InMemoryRunStore, Sink, new_run_id

__all__ = [
    "AsyncQueueSink",
    "ProgressReporter",
    "LifecycleSchedule",
    "RunOrchestrator",
    "InMemoryRunStore",
    "Sink",
    "new_run_id",
]
