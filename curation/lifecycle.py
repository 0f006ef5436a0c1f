"""Feedback-driven lifecycle review of persisted records."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Callable, List, Optional, Tuple

from config import get_lifecycle_settings
from config.settings import LifecycleSettings
from core import ADVANCED_BELT_LEVELS, BeltLevel, CurationRecord, FeedbackAggregate, LifecycleReport, RecordStatus
from storage.feedback import FeedbackAggregateSource
from storage.records import RecordStore


logger = logging.getLogger(__name__)

Predicate = Callable[[FeedbackAggregate, LifecycleSettings], bool]


@dataclass(frozen=True)
class LifecycleRule:
    """
    One transition rule.

    Status rules are exclusive and evaluated in order; the first match wins.
    Targeting rules set belt levels and may fire alongside a status rule
    unless ``blocked_by`` names a rule that already matched.
    """

    name: str
    matches: Predicate
    status: Optional[RecordStatus] = None
    belt_levels: Optional[Tuple[BeltLevel, ...]] = None
    blocked_by: Tuple[str, ...] = ()


@dataclass(frozen=True)
class LifecycleDecision:
    status: Optional[RecordStatus] = None
    belt_levels: Optional[List[BeltLevel]] = None
    matched: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_noop(self) -> bool:
        return self.status is None and self.belt_levels is None


def _remove_poor_quality(agg: FeedbackAggregate, cfg: LifecycleSettings) -> bool:
    return agg.quality_issue_ratio > cfg.remove_quality_issue_ratio


def _remove_unhelpful(agg: FeedbackAggregate, cfg: LifecycleSettings) -> bool:
    # equal quality and context counts leave the status alone
    return agg.helpful_ratio < cfg.remove_helpful_ratio and agg.quality_issue_count > agg.context_issue_count


def _flag_wrong_context(agg: FeedbackAggregate, cfg: LifecycleSettings) -> bool:
    return agg.helpful_ratio < cfg.flag_helpful_ratio and agg.context_issue_count > agg.quality_issue_count


def _retarget_advanced(agg: FeedbackAggregate, cfg: LifecycleSettings) -> bool:
    return agg.too_advanced_ratio > cfg.too_advanced_ratio


def _promote_top_tier(agg: FeedbackAggregate, cfg: LifecycleSettings) -> bool:
    return agg.total_votes >= cfg.promote_min_votes and agg.helpful_ratio >= cfg.promote_helpful_ratio


STATUS_RULES: Tuple[LifecycleRule, ...] = (
    LifecycleRule("remove_poor_quality", _remove_poor_quality, status=RecordStatus.REMOVED),
    LifecycleRule("remove_unhelpful", _remove_unhelpful, status=RecordStatus.REMOVED),
    LifecycleRule("flag_wrong_context", _flag_wrong_context, status=RecordStatus.FLAGGED),
    LifecycleRule("promote_top_tier", _promote_top_tier, status=RecordStatus.TOP_TIER),
)

TARGETING_RULES: Tuple[LifecycleRule, ...] = (
    LifecycleRule(
        "retarget_advanced",
        _retarget_advanced,
        belt_levels=tuple(ADVANCED_BELT_LEVELS),
        blocked_by=("remove_poor_quality", "remove_unhelpful"),
    ),
)


def evaluate(
    record: CurationRecord,
    settings: Optional[LifecycleSettings] = None,
    *,
    feedback: Optional[FeedbackAggregate] = None,
) -> LifecycleDecision:
    """Pure rule evaluation for one record. Below the evidence floor nothing fires."""
    cfg = settings or get_lifecycle_settings()
    agg = feedback or record.feedback
    if agg.total_votes < cfg.min_evidence:
        return LifecycleDecision()

    matched: List[str] = []
    status: Optional[RecordStatus] = None
    for rule in STATUS_RULES:
        if rule.matches(agg, cfg):
            matched.append(rule.name)
            status = rule.status
            break

    belt_levels: Optional[List[BeltLevel]] = None
    for rule in TARGETING_RULES:
        if any(name in matched for name in rule.blocked_by):
            continue
        if rule.matches(agg, cfg):
            matched.append(rule.name)
            belt_levels = list(rule.belt_levels or ())

    return LifecycleDecision(status=status, belt_levels=belt_levels, matched=tuple(matched))


class LifecycleManager:
    """Applies lifecycle rules to every record with enough feedback evidence."""

    def __init__(
        self,
        records: RecordStore,
        feedback: FeedbackAggregateSource,
        *,
        settings: Optional[LifecycleSettings] = None,
    ) -> None:
        self._records = records
        self._feedback = feedback
        self._settings = settings or get_lifecycle_settings()

    def review_all(self) -> LifecycleReport:
        report = LifecycleReport()
        report.errors += self._sync_feedback()

        for record in self._records.query_by_evidence(self._settings.min_evidence):
            report.reviewed += 1
            decision = evaluate(record, self._settings)
            if decision.is_noop:
                continue
            try:
                self._apply(record, decision)
            except Exception as exc:
                report.errors += 1
                logger.exception("lifecycle_apply_failed id=%s error=%s", record.external_id, exc)
                continue

            if decision.status == RecordStatus.REMOVED:
                report.removed += 1
            elif decision.status == RecordStatus.FLAGGED:
                report.flagged += 1
            elif decision.status == RecordStatus.TOP_TIER:
                report.promoted += 1
            if decision.belt_levels is not None:
                report.retargeted += 1

        logger.info(
            "lifecycle_review reviewed=%d removed=%d flagged=%d promoted=%d retargeted=%d errors=%d",
            report.reviewed,
            report.removed,
            report.flagged,
            report.promoted,
            report.retargeted,
            report.errors,
        )
        return report

    def _apply(self, record: CurationRecord, decision: LifecycleDecision) -> None:
        # writes only on change so repeated reviews over the same data are no-ops
        if decision.belt_levels is not None and list(record.belt_levels) != decision.belt_levels:
            self._records.update_targeting(record.external_id, decision.belt_levels)
        if decision.status is not None and record.status != decision.status:
            self._records.update_status(record.external_id, decision.status)
            logger.info(
                "lifecycle_transition id=%s from=%s to=%s rules=%s",
                record.external_id,
                record.status.value,
                decision.status.value,
                ",".join(decision.matched),
            )

    def _sync_feedback(self) -> int:
        errors = 0
        for external_id, aggregate in self._feedback.aggregates().items():
            record = self._records.get(external_id)
            if record is None or record.status == RecordStatus.REMOVED:
                continue
            if record.feedback == aggregate:
                continue
            try:
                self._records.update_feedback(external_id, aggregate)
            except Exception as exc:
                errors += 1
                logger.exception("feedback_sync_failed id=%s error=%s", external_id, exc)
        return errors
