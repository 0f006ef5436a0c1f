"""Catalog and transcript collaborators."""

from .base import CatalogSearch, TranscriptSource
from .youtube import (
    QuotaTracker,
    YouTubeCatalog,
    YouTubeTranscriptSource,
    parse_iso8601_duration,
    parse_timedtext,
)

__all__ = [
    "CatalogSearch",
    "TranscriptSource",
    "QuotaTracker",
    "YouTubeCatalog",
    "YouTubeTranscriptSource",
    "parse_iso8601_duration",
    "parse_timedtext",
]
