"""YouTube Data API adapters: catalog search, durations, captions and transcripts."""

from __future__ import annotations

from datetime import date, datetime, timezone
import html as html_lib
import logging
import re
from threading import Lock
from typing import Any, Dict, List, Optional
import xml.etree.ElementTree as ET

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import get_youtube_settings
from config.settings import YouTubeSettings
from core import CandidateItem
from utils.exceptions import ConfigurationError, QuotaExceededError, TransientCollaboratorError


logger = logging.getLogger(__name__)

_API_BASE = "https://www.googleapis.com/youtube/v3"
_TIMEDTEXT_URL = "https://www.youtube.com/api/timedtext"
_USER_AGENT = "TechniqueCurator/1.0"
_QUOTA_REASONS = ("quotaExceeded", "dailyLimitExceeded", "rateLimitExceeded", "userRateLimitExceeded")

_ISO_DURATION = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)


def parse_iso8601_duration(value: str) -> int:
    """``PT1H2M3S`` -> 3723. Unparseable input yields 0."""
    match = _ISO_DURATION.match(str(value or "").strip())
    if not match:
        return 0
    parts = {key: int(raw) for key, raw in match.groupdict().items() if raw}
    return (
        parts.get("days", 0) * 86400
        + parts.get("hours", 0) * 3600
        + parts.get("minutes", 0) * 60
        + parts.get("seconds", 0)
    )


def _parse_datetime(value: Any) -> Optional[datetime]:
    text = str(value or "").strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class QuotaTracker:
    """
    Local estimate of daily API units, reset on UTC day change.

    Once the budget is spent (or the API reports exhaustion) every call is
    refused until the next day.
    """

    def __init__(self, daily_limit: int = 10000) -> None:
        self.daily_limit = int(daily_limit)
        self._day = date.today()
        self._units = 0
        self._exceeded = False
        self._lock = Lock()

    def _roll(self) -> None:
        today = date.today()
        if today != self._day:
            logger.info("quota_reset previous_day=%s units=%d", self._day.isoformat(), self._units)
            self._day = today
            self._units = 0
            self._exceeded = False

    def charge(self, units: int) -> None:
        """Reserve units for a call; raises when the day's budget is already gone."""
        with self._lock:
            self._roll()
            if self._exceeded:
                raise QuotaExceededError("QUOTA_EXCEEDED: daily budget spent", source="youtube")
            self._units += int(units)
            if self._units >= self.daily_limit:
                self._exceeded = True

    def mark_exceeded(self) -> None:
        with self._lock:
            self._roll()
            self._exceeded = True

    @property
    def units_used(self) -> int:
        with self._lock:
            self._roll()
            return self._units

    @property
    def exceeded(self) -> bool:
        with self._lock:
            self._roll()
            return self._exceeded


def _is_quota_response(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    if response.status_code != 403:
        return False
    try:
        errors = response.json().get("error", {}).get("errors", [])
    except ValueError:
        return "quota" in response.text.lower()
    return any(str(item.get("reason", "")) in _QUOTA_REASONS for item in errors)


@retry(
    retry=retry_if_exception_type(httpx.TransportError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    reraise=True,
)
async def _fetch(url: str, params: Dict[str, Any], timeout: float) -> httpx.Response:
    async with httpx.AsyncClient(timeout=httpx.Timeout(timeout), follow_redirects=True) as client:
        return await client.get(url, params=params, headers={"User-Agent": _USER_AGENT})


async def _http_get(url: str, params: Dict[str, Any], *, timeout: float = 12.0) -> httpx.Response:
    """GET with quota detection. Transport failures become TransientCollaboratorError."""
    try:
        response = await _fetch(url, params, timeout)
    except httpx.TransportError as exc:
        raise TransientCollaboratorError(f"request failed: {exc}", source="youtube") from exc

    if _is_quota_response(response):
        raise QuotaExceededError(f"QUOTA_EXCEEDED: HTTP {response.status_code}", source="youtube")
    if response.status_code >= 400:
        raise TransientCollaboratorError(
            f"YouTube API error: {response.status_code}",
            source="youtube",
            status=response.status_code,
        )
    return response


async def _http_get_json(url: str, params: Dict[str, Any], *, timeout: float = 12.0) -> Dict[str, Any]:
    response = await _http_get(url, params, timeout=timeout)
    try:
        payload = response.json()
    except ValueError as exc:
        raise TransientCollaboratorError("invalid JSON from YouTube API", source="youtube") from exc
    return payload if isinstance(payload, dict) else {}


async def _http_get_text(url: str, params: Dict[str, Any], *, timeout: float = 12.0) -> str:
    response = await _http_get(url, params, timeout=timeout)
    return str(response.text or "")


class _YouTubeClient:
    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        settings: Optional[YouTubeSettings] = None,
        tracker: Optional[QuotaTracker] = None,
    ) -> None:
        self._settings = settings or get_youtube_settings()
        self._api_key = api_key or self._settings.api_key
        self._tracker = tracker or QuotaTracker(self._settings.daily_quota_units)

    @property
    def tracker(self) -> QuotaTracker:
        return self._tracker

    def _require_key(self) -> str:
        if not self._api_key:
            raise ConfigurationError("YOUTUBE_API_KEY not configured")
        return self._api_key

    async def _api(self, endpoint: str, params: Dict[str, Any], *, cost: int) -> Dict[str, Any]:
        key = self._require_key()
        self._tracker.charge(cost)
        try:
            return await _http_get_json(
                f"{_API_BASE}/{endpoint}",
                {**params, "key": key},
                timeout=self._settings.request_timeout,
            )
        except QuotaExceededError:
            self._tracker.mark_exceeded()
            logger.error("youtube_quota_exceeded endpoint=%s", endpoint)
            raise

    async def _content_details(self, external_id: str) -> Dict[str, Any]:
        payload = await self._api(
            "videos",
            {"part": "contentDetails", "id": external_id},
            cost=self._settings.detail_cost,
        )
        items = payload.get("items") or []
        if not items:
            raise TransientCollaboratorError(f"video not found: {external_id}", source="youtube")
        return dict(items[0].get("contentDetails") or {})


class YouTubeCatalog(_YouTubeClient):
    """CatalogSearch over ``search.list`` + ``videos.list``."""

    async def search(self, query: str, max_results: Optional[int] = None) -> List[CandidateItem]:
        limit = max(1, min(50, int(max_results or self._settings.max_results)))
        payload = await self._api(
            "search",
            {
                "part": "snippet",
                "q": query,
                "type": "video",
                "maxResults": limit,
                "order": "relevance",
                "relevanceLanguage": "en",
                "safeSearch": "strict",
            },
            cost=self._settings.search_cost,
        )

        candidates: List[CandidateItem] = []
        for item in payload.get("items") or []:
            video_id = str((item.get("id") or {}).get("videoId") or "").strip()
            if not video_id:
                continue
            snippet = item.get("snippet") or {}
            thumbs = snippet.get("thumbnails") or {}
            thumb = (thumbs.get("high") or thumbs.get("medium") or thumbs.get("default") or {}).get("url", "")
            candidates.append(
                CandidateItem(
                    external_id=video_id,
                    title=html_lib.unescape(str(snippet.get("title") or "")),
                    description=html_lib.unescape(str(snippet.get("description") or "")),
                    channel_title=str(snippet.get("channelTitle") or ""),
                    published_at=_parse_datetime(snippet.get("publishedAt")),
                    thumbnail_url=str(thumb or ""),
                )
            )
        logger.info("[YouTube] Search '%s' returned %d results", query, len(candidates))
        return candidates

    async def get_duration(self, external_id: str) -> int:
        details = await self._content_details(external_id)
        seconds = parse_iso8601_duration(str(details.get("duration") or ""))
        if seconds <= 0:
            raise TransientCollaboratorError(f"duration unavailable: {external_id}", source="youtube")
        return seconds


class YouTubeTranscriptSource(_YouTubeClient):
    """TranscriptSource: caption flag from ``videos.list``, text from the timedtext endpoint."""

    async def has_captions(self, external_id: str) -> bool:
        details = await self._content_details(external_id)
        return str(details.get("caption") or "").lower() == "true"

    async def fetch_transcript(self, external_id: str) -> str:
        xml_text = await _http_get_text(
            _TIMEDTEXT_URL,
            {"v": external_id, "lang": self._settings.caption_lang},
            timeout=self._settings.request_timeout,
        )
        return parse_timedtext(xml_text)


def parse_timedtext(xml_text: str) -> str:
    """Flatten a timedtext XML document into one line of text."""
    raw = str(xml_text or "").strip()
    if not raw:
        return ""
    try:
        root = ET.fromstring(raw)
    except ET.ParseError as exc:
        raise TransientCollaboratorError(f"invalid transcript XML: {exc}", source="youtube") from exc
    pieces = []
    for node in root.iter("text"):
        text = html_lib.unescape("".join(node.itertext())).strip()
        if text:
            pieces.append(re.sub(r"\s+", " ", text))
    return " ".join(pieces)
