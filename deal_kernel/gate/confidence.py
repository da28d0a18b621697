"""
Confidence Gate — decides whether an assistant-drafted reply may be sent
without a human looking at it.

A draft is auto-sent only when every check passes:
- Auto-respond is enabled globally
- None of the draft's topics is on the always-review list
- The current time is outside the quiet-hours window
- Auto-send is enabled for the draft's situation
- The draft's confidence meets the situation's threshold

Anything else goes to the review queue, with every failing check listed.
"""

from datetime import datetime
from typing import Dict, List, Optional

import structlog
from croniter import croniter

from deal_kernel.config import Settings
from deal_kernel.models.confidence import (
    ConfidenceRecord,
    DraftResponse,
    GateDecision,
    GateVerdict,
)

logger = structlog.get_logger()

REASON_AUTO_RESPOND_DISABLED = "auto_respond_disabled"
REASON_ALWAYS_REVIEW_TOPIC = "always_review_topic"
REASON_QUIET_HOURS = "quiet_hours"
REASON_INVALID_SCHEDULE = "invalid_quiet_hours_schedule"
REASON_SITUATION_DISABLED = "situation_auto_send_disabled"
REASON_BELOW_THRESHOLD = "below_threshold"


def in_quiet_hours(schedule: str, current_time: datetime) -> bool:
    """True if ``current_time`` falls inside the cron-described window."""
    return croniter.match(schedule, current_time)


class SituationStore:
    """
    Per-situation confidence records.

    Situations nobody has configured fall back to the global defaults.
    Writes are last-writer-wins; only the feedback path writes here.
    """

    def __init__(
        self,
        default_threshold: float = 0.85,
        default_confidence: float = 0.6,
        default_auto_send: bool = True,
    ):
        self.default_threshold = default_threshold
        self.default_confidence = default_confidence
        self.default_auto_send = default_auto_send
        self._records: Dict[str, ConfidenceRecord] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "SituationStore":
        return cls(
            default_threshold=settings.default_threshold,
            default_confidence=settings.default_situation_confidence,
        )

    def get(self, situation: str) -> Optional[ConfidenceRecord]:
        return self._records.get(situation)

    def get_or_default(self, situation: str) -> ConfidenceRecord:
        record = self._records.get(situation)
        if record is not None:
            return record
        return ConfidenceRecord(
            situation=situation,
            confidence_score=self.default_confidence,
            threshold=self.default_threshold,
            auto_send_enabled=self.default_auto_send,
        )

    def all(self) -> List[ConfidenceRecord]:
        return list(self._records.values())

    def upsert(self, record: ConfidenceRecord) -> ConfidenceRecord:
        self._records[record.situation] = record
        return record

    def set_threshold(self, situation: str, threshold_percent: int) -> ConfidenceRecord:
        """Explicit threshold edit on the user-facing 0-100 scale."""
        if not 0 <= threshold_percent <= 100:
            raise ValueError(f"Threshold must be between 0 and 100, got {threshold_percent}")
        record = self.get_or_default(situation).model_copy(update={
            "threshold": threshold_percent / 100.0,
            "updated_at": datetime.utcnow(),
        })
        return self.upsert(record)

    def set_auto_send(self, situation: str, enabled: bool) -> ConfidenceRecord:
        record = self.get_or_default(situation).model_copy(update={
            "auto_send_enabled": enabled,
            "updated_at": datetime.utcnow(),
        })
        return self.upsert(record)


class ConfidenceGate:
    """Evaluates drafts against the configured auto-send policy."""

    def __init__(self, settings: Settings, situations: SituationStore):
        self.settings = settings
        self.situations = situations

    def evaluate(
        self,
        draft: DraftResponse,
        now: Optional[datetime] = None,
    ) -> GateDecision:
        now = now or datetime.utcnow()
        record = self.situations.get_or_default(draft.situation)
        reasons: List[str] = []

        if not self.settings.ai_auto_respond:
            reasons.append(REASON_AUTO_RESPOND_DISABLED)

        review_topics = set(self.settings.always_review_topics)
        for topic in draft.topics:
            if topic.strip().lower() in review_topics:
                reasons.append(f"{REASON_ALWAYS_REVIEW_TOPIC}:{topic.strip().lower()}")

        schedule = self.settings.quiet_hours_schedule
        if schedule:
            try:
                if in_quiet_hours(schedule, now):
                    reasons.append(REASON_QUIET_HOURS)
            except (ValueError, KeyError) as e:
                # An unreadable schedule must not open the gate.
                logger.warning("quiet_hours_schedule_invalid", schedule=schedule, error=str(e))
                reasons.append(REASON_INVALID_SCHEDULE)

        if not record.auto_send_enabled:
            reasons.append(REASON_SITUATION_DISABLED)

        if draft.confidence < record.threshold:
            reasons.append(REASON_BELOW_THRESHOLD)

        verdict = GateVerdict.REVIEW if reasons else GateVerdict.AUTO_SEND
        decision = GateDecision(
            draft_id=draft.id,
            verdict=verdict,
            situation=draft.situation,
            confidence=draft.confidence,
            threshold=record.threshold,
            reasons=reasons,
            evaluated_at=now,
        )

        logger.info(
            "gate_evaluated",
            draft_id=draft.id,
            situation=draft.situation,
            verdict=verdict.value,
            confidence=draft.confidence,
            threshold=record.threshold,
            reasons=reasons,
        )
        return decision
