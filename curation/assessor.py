"""Candidate quality assessment: duration gate, LLM classification, transcript sub-score."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from config import get_curation_settings
from config.settings import CurationSettings
from core import CandidateItem, QualityAssessment, TranscriptAssessment
from intelligence.classifier import TextClassifier
from sources.base import TranscriptSource
from utils.exceptions import ClassifierOutputError, CuratorError, QuotaExceededError, TransientCollaboratorError
from .prompts import (
    CLASSIFY_SYSTEM,
    TRANSCRIPT_SYSTEM,
    build_classification_prompt,
    build_transcript_prompt,
    format_duration,
)


logger = logging.getLogger(__name__)

_RULE_SETS = {
    "gi": "gi",
    "nogi": "nogi",
    "no-gi": "nogi",
    "no gi": "nogi",
    "both": "both",
}


def clamp_score(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


def transcript_delta(score: float) -> int:
    """Map a 0-100 transcript score to its delta. >=85 is checked before >=70."""
    if score >= 85:
        return 5
    if score >= 70:
        return 3
    if score < 50:
        return -3
    return 0


def decide(assessment: QualityAssessment, threshold: float) -> bool:
    """Accept iff instructional, target-matched and final score reaches the threshold."""
    return bool(
        assessment.is_instructional
        and assessment.matches_target
        and assessment.final_score >= float(threshold)
    )


def rejection_reason(assessment: QualityAssessment, target_entity: str, threshold: float) -> Optional[str]:
    """Why ``decide`` rejects, or None when it accepts."""
    if not assessment.is_instructional:
        return f"not instructional: {assessment.reasoning}"
    if not assessment.matches_target:
        return f"not {target_entity}"
    if assessment.final_score < float(threshold):
        return f"low quality ({assessment.final_score:.0f} < {float(threshold):.0f})"
    return None


def _as_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
        return value.strip().lower() == "true"
    raise ClassifierOutputError(f"field {field!r} is not a boolean")


def _as_score(value: Any, field: str) -> float:
    if isinstance(value, bool):
        raise ClassifierOutputError(f"field {field!r} is not a number")
    try:
        return clamp_score(float(value))
    except (TypeError, ValueError) as exc:
        raise ClassifierOutputError(f"field {field!r} is not a number") from exc


def _as_label(value: Any) -> Optional[str]:
    text = str(value or "").strip()
    if not text or text.lower() in {"null", "none", "n/a"}:
        return None
    return text


def _as_rule_set(value: Any) -> Optional[str]:
    label = _as_label(value)
    if label is None:
        return None
    return _RULE_SETS.get(label.lower())


class QualityAssessor:
    """
    Stateless scorer for one candidate.

    ``QuotaExceededError`` from the classifier or transcript source propagates;
    malformed classifier output and other transient failures are folded into
    the assessment instead of raising.
    """

    def __init__(
        self,
        classifier: TextClassifier,
        transcripts: Optional[TranscriptSource] = None,
        *,
        settings: Optional[CurationSettings] = None,
    ) -> None:
        self._classifier = classifier
        self._transcripts = transcripts
        self._settings = settings or get_curation_settings()

    async def assess(
        self,
        candidate: CandidateItem,
        target_entity: str,
        duration: int,
        *,
        min_duration_seconds: Optional[int] = None,
    ) -> QualityAssessment:
        min_duration = int(
            self._settings.min_duration_seconds if min_duration_seconds is None else min_duration_seconds
        )
        if int(duration) < min_duration:
            return QualityAssessment(
                is_instructional=False,
                matches_target=False,
                reasoning=f"too short ({format_duration(duration)} < {min_duration}s)",
            )

        prompt = build_classification_prompt(
            candidate,
            target_entity,
            int(duration),
            excerpt_chars=self._settings.description_excerpt_chars,
        )
        try:
            raw = await self._classifier.classify(prompt, system=CLASSIFY_SYSTEM)
            parsed = self._parse_classification(raw)
        except QuotaExceededError:
            raise
        except ClassifierOutputError as exc:
            logger.warning("classification_parse_error id=%s error=%s", candidate.external_id, exc)
            return self._unparsed(f"parse error: {exc.message}")
        except TransientCollaboratorError as exc:
            logger.warning("classification_failed id=%s error=%s", candidate.external_id, exc)
            return self._unparsed(f"classifier error: {exc.message}")

        transcript: Optional[TranscriptAssessment] = None
        if parsed["is_instructional"] and parsed["matches_target"]:
            transcript = await self.assess_transcript(candidate.external_id)

        delta = transcript.delta if transcript else 0
        reasoning = parsed.pop("reasoning") or "no rationale given"
        if transcript and transcript.has_transcript:
            reasoning = f"{reasoning} | transcript: {transcript.reason} ({delta:+d})"

        return QualityAssessment(
            **parsed,
            transcript=transcript,
            final_score=clamp_score(parsed["base_score"] + delta),
            reasoning=reasoning,
        )

    async def assess_transcript(self, external_id: str) -> TranscriptAssessment:
        """Transcript dimension. Absent captions or fetch failures contribute nothing."""
        if self._transcripts is None:
            return TranscriptAssessment()

        try:
            if not await self._transcripts.has_captions(external_id):
                return TranscriptAssessment()
            text = await self._transcripts.fetch_transcript(external_id)
        except QuotaExceededError:
            raise
        except CuratorError as exc:
            logger.warning("transcript_unavailable id=%s error=%s", external_id, exc)
            return TranscriptAssessment(reason=f"transcript unavailable: {exc.message}")

        text = str(text or "").strip()
        if not text:
            return TranscriptAssessment(reason="transcript unavailable")
        if len(text) < self._settings.transcript_min_chars:
            return TranscriptAssessment(
                has_transcript=True,
                quality_score=30,
                delta=-3,
                reason="too short, likely low-value",
            )

        try:
            raw = await self._classifier.classify(
                build_transcript_prompt(text, excerpt_chars=self._settings.transcript_excerpt_chars),
                system=TRANSCRIPT_SYSTEM,
            )
            score = _as_score(raw.get("quality_score"), "quality_score")
        except QuotaExceededError:
            raise
        except TransientCollaboratorError as exc:
            logger.warning("transcript_classification_failed id=%s error=%s", external_id, exc)
            return TranscriptAssessment(has_transcript=True, reason=f"transcript parse error: {exc.message}")

        return TranscriptAssessment(
            has_transcript=True,
            quality_score=int(round(score)),
            delta=transcript_delta(score),
            reason=_as_label(raw.get("reason")) or "transcript analyzed",
        )

    @staticmethod
    def _parse_classification(raw: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(raw, dict):
            raise ClassifierOutputError("classifier output is not an object")
        return {
            "is_instructional": _as_bool(raw.get("isInstructional"), "isInstructional"),
            "matches_target": _as_bool(raw.get("isTargetInstructor"), "isTargetInstructor"),
            "technique": _as_label(raw.get("technique")),
            "technique_type": _as_label(raw.get("techniqueType")),
            "position_category": _as_label(raw.get("positionCategory")),
            "rule_set": _as_rule_set(raw.get("giOrNogi")),
            "base_score": _as_score(raw.get("qualityScore"), "qualityScore"),
            "reasoning": _as_label(raw.get("reasoning")),
        }

    @staticmethod
    def _unparsed(reason: str) -> QualityAssessment:
        return QualityAssessment(is_instructional=False, matches_target=False, reasoning=reason)
