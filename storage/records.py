"""
Record Store
Durable curation records keyed by external ID
"""
from __future__ import annotations

from datetime import datetime, timezone
import logging
from threading import Lock
from typing import Dict, List, Optional, Protocol, Sequence, Set

from core import BeltLevel, CurationRecord, FeedbackAggregate, RecordStatus
from utils.exceptions import DuplicateKeyError, StorageError


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordStore(Protocol):
    """
    Record store contract.

    ``insert`` enforces a unique external ID and raises ``DuplicateKeyError``.
    Removed records stay in the store as tombstones.
    """

    def exists_by_external_id(self, external_id: str) -> bool:
        ...

    def known_external_ids(self) -> Set[str]:
        ...

    def insert(self, record: CurationRecord) -> CurationRecord:
        ...

    def get(self, external_id: str) -> Optional[CurationRecord]:
        ...

    def list_records(self, *, include_removed: bool = False) -> List[CurationRecord]:
        ...

    def query_by_evidence(self, min_votes: int) -> List[CurationRecord]:
        ...

    def update_status(self, external_id: str, status: RecordStatus) -> CurationRecord:
        ...

    def update_targeting(self, external_id: str, belt_levels: Sequence[BeltLevel]) -> CurationRecord:
        ...

    def update_feedback(self, external_id: str, feedback: FeedbackAggregate) -> CurationRecord:
        ...


class InMemoryRecordStore:
    """Thread-safe in-process RecordStore."""

    def __init__(self, records: Optional[Sequence[CurationRecord]] = None) -> None:
        self._records: Dict[str, CurationRecord] = {}
        self._lock = Lock()
        for record in records or []:
            self.insert(record)

    def exists_by_external_id(self, external_id: str) -> bool:
        with self._lock:
            return external_id in self._records

    def known_external_ids(self) -> Set[str]:
        with self._lock:
            return set(self._records)

    def insert(self, record: CurationRecord) -> CurationRecord:
        with self._lock:
            if record.external_id in self._records:
                raise DuplicateKeyError(record.external_id)
            stored = record.model_copy(deep=True)
            self._records[record.external_id] = stored
            return stored.model_copy(deep=True)

    def get(self, external_id: str) -> Optional[CurationRecord]:
        with self._lock:
            record = self._records.get(external_id)
            return record.model_copy(deep=True) if record else None

    def list_records(self, *, include_removed: bool = False) -> List[CurationRecord]:
        with self._lock:
            return [
                record.model_copy(deep=True)
                for record in self._records.values()
                if include_removed or record.status != RecordStatus.REMOVED
            ]

    def query_by_evidence(self, min_votes: int) -> List[CurationRecord]:
        with self._lock:
            return [
                record.model_copy(deep=True)
                for record in self._records.values()
                if record.status != RecordStatus.REMOVED and record.feedback.total_votes >= min_votes
            ]

    def _mutate(self, external_id: str, **changes) -> CurationRecord:
        with self._lock:
            record = self._records.get(external_id)
            if record is None:
                raise StorageError(f"record not found: {external_id}")
            updated = record.model_copy(update={**changes, "updated_at": _utcnow()}, deep=True)
            self._records[external_id] = updated
            return updated.model_copy(deep=True)

    def update_status(self, external_id: str, status: RecordStatus) -> CurationRecord:
        return self._mutate(external_id, status=RecordStatus(status))

    def update_targeting(self, external_id: str, belt_levels: Sequence[BeltLevel]) -> CurationRecord:
        return self._mutate(external_id, belt_levels=[BeltLevel(level) for level in belt_levels])

    def update_feedback(self, external_id: str, feedback: FeedbackAggregate) -> CurationRecord:
        return self._mutate(external_id, feedback=feedback.model_copy(deep=True))
