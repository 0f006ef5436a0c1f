"""Collaborator contracts for catalog search and transcripts."""

from __future__ import annotations

from typing import List, Optional, Protocol

from core import CandidateItem


class CatalogSearch(Protocol):
    """
    Catalog search capability.

    Both calls may raise ``QuotaExceededError``; ``get_duration`` raises
    ``TransientCollaboratorError`` when the duration cannot be resolved.
    """

    async def search(self, query: str, max_results: Optional[int] = None) -> List[CandidateItem]:
        ...

    async def get_duration(self, external_id: str) -> int:
        ...


class TranscriptSource(Protocol):
    async def has_captions(self, external_id: str) -> bool:
        ...

    async def fetch_transcript(self, external_id: str) -> str:
        ...
