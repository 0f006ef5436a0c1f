"""Run-scoped progress emitters and sink adapters."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from core import ProgressEvent, ProgressEventType
from .store import InMemoryRunStore


logger = logging.getLogger(__name__)


def _clip(text: str, limit: int) -> str:
    value = str(text or "")
    if len(value) <= limit:
        return value
    return value[:limit] + "..."


class ProgressReporter:
    """Formats pipeline milestones into progress events for one run."""

    def __init__(self, store: InMemoryRunStore, run_id: str) -> None:
        self._store = store
        self.run_id = run_id

    def emit(
        self,
        message: str,
        *,
        icon: str = "•",
        type: ProgressEventType = ProgressEventType.INFO,
        data: Optional[str] = None,
        item_title: Optional[str] = None,
        target_entity: Optional[str] = None,
        reason: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[ProgressEvent]:
        event = ProgressEvent(
            icon=icon,
            message=message,
            data=data,
            type=type,
            item_title=item_title,
            target_entity=target_entity,
            reason=reason,
            payload=payload,
        )
        stored = self._store.append(self.run_id, event)
        logger.debug("[%s] %s %s%s", self.run_id[-8:], icon, message, f" ({data})" if data else "")
        return stored

    def info(self, message: str, data: Optional[str] = None) -> Optional[ProgressEvent]:
        return self.emit(message, data=data)

    def search(self, query: str) -> Optional[ProgressEvent]:
        return self.emit(f'Searching catalog for: "{query}"', icon="🔍", type=ProgressEventType.SEARCH, data=query)

    def analyze(self, title: str) -> Optional[ProgressEvent]:
        return self.emit(
            f"Analyzing: {_clip(title, 60)}",
            icon="🎬",
            type=ProgressEventType.ANALYZE,
            item_title=title,
        )

    def added(self, title: str, target_entity: str, score: float) -> Optional[ProgressEvent]:
        return self.emit(
            f"Added: {_clip(title, 50)}",
            icon="✅",
            type=ProgressEventType.ADDED,
            data=f"by {target_entity} (Q:{score:.0f})",
            item_title=title,
            target_entity=target_entity,
        )

    def skipped(self, title: str, reason: str) -> Optional[ProgressEvent]:
        return self.emit(
            f"Skipped: {_clip(title, 40)}",
            icon="⏭️",
            type=ProgressEventType.SKIPPED,
            data=reason,
            item_title=title,
            reason=reason,
        )

    def error(self, message: str, data: Optional[str] = None) -> Optional[ProgressEvent]:
        return self.emit(message, icon="❌", type=ProgressEventType.ERROR, data=data)


class AsyncQueueSink:
    """
    Thread-safe sink that forwards events into an asyncio.Queue owned by ``loop``.

    Raises once the loop is closed so the store detaches it.
    """

    def __init__(self, queue: "asyncio.Queue[ProgressEvent]", loop: asyncio.AbstractEventLoop) -> None:
        self._queue = queue
        self._loop = loop

    def __call__(self, event: ProgressEvent) -> None:
        if self._loop.is_closed():
            raise RuntimeError("subscriber loop is closed")
        self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
