"""
Review Queue — human approval for drafts the gate would not auto-send.

Every decision, human or automatic, is recorded as an OutcomeEvent through
the calibration engine. Items left pending past their expiry can no longer
be approved; the conversation has moved on.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

import structlog

from deal_kernel.gate.calibration import CalibrationEngine
from deal_kernel.gate.confidence import ConfidenceGate
from deal_kernel.models.confidence import (
    ConfidenceRecord,
    DraftResponse,
    EditSeverity,
    GateDecision,
    GateVerdict,
    OutcomeEvent,
    OutcomeKind,
    ReviewItem,
    ReviewStatus,
)

logger = structlog.get_logger()


class ReviewError(Exception):
    """Raised when a review decision cannot be made on an item."""
    pass


class ReviewItemNotFound(ReviewError):
    pass


class ReviewQueue:
    def __init__(
        self,
        gate: ConfidenceGate,
        calibration: CalibrationEngine,
        expiry_minutes: int = 60,
    ):
        self.gate = gate
        self.calibration = calibration
        self.expiry_minutes = expiry_minutes
        self._items: Dict[str, ReviewItem] = {}

    def submit(
        self,
        draft: DraftResponse,
        now: Optional[datetime] = None,
    ) -> Tuple[GateDecision, Optional[ReviewItem]]:
        """Run a draft through the gate; queue it unless it may be auto-sent."""
        now = now or datetime.utcnow()
        decision = self.gate.evaluate(draft, now=now)

        if decision.verdict == GateVerdict.AUTO_SEND:
            self._record(draft, OutcomeKind.AUTO_SENT, now)
            return decision, None

        if draft.expires_at is None:
            draft = draft.model_copy(update={
                "expires_at": draft.created_at + timedelta(minutes=self.expiry_minutes),
            })

        item = ReviewItem(id=f"rev_{uuid4().hex[:12]}", draft=draft, decision=decision)
        self._items[item.id] = item
        logger.info("review_queued", item_id=item.id, draft_id=draft.id, reasons=decision.reasons)
        return decision, item

    def get(self, item_id: str) -> ReviewItem:
        item = self._items.get(item_id)
        if item is None:
            raise ReviewItemNotFound(f"Review item {item_id} not found")
        return item

    def pending(self, now: Optional[datetime] = None) -> List[ReviewItem]:
        """Pending items, oldest draft first. Stale items are expired on the way."""
        self.expire_stale(now)
        items = [i for i in self._items.values() if i.status == ReviewStatus.PENDING]
        return sorted(items, key=lambda i: i.draft.created_at)

    def expire_stale(self, now: Optional[datetime] = None) -> List[ReviewItem]:
        now = now or datetime.utcnow()
        expired = []
        for item in list(self._items.values()):
            if item.status == ReviewStatus.PENDING and self._is_expired(item, now):
                expired.append(self._update(item, status=ReviewStatus.EXPIRED))
        if expired:
            logger.info("review_items_expired", count=len(expired))
        return expired

    def approve(
        self,
        item_id: str,
        reviewer: str,
        edited_response: Optional[str] = None,
        edit_severity: Optional[EditSeverity] = None,
        response_time_seconds: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> ReviewItem:
        """
        Approve a draft as-is, or with the reviewer's edits.

        An edited response counts as an edit (minor unless stated otherwise),
        which calibration weighs differently from a clean approval.
        """
        now = now or datetime.utcnow()
        item = self._require_pending(item_id, now)

        edited = edited_response is not None and edited_response != item.draft.suggested_response
        if edited:
            status = ReviewStatus.EDITED
            kind = OutcomeKind.EDITED
            severity = edit_severity or EditSeverity.MINOR
            final_response = edited_response
        else:
            status = ReviewStatus.APPROVED
            kind = OutcomeKind.APPROVED
            severity = EditSeverity.NONE
            final_response = item.draft.suggested_response

        item = self._update(
            item,
            status=status,
            final_response=final_response,
            reviewer=reviewer,
            reviewed_at=now,
        )
        self._record(
            item.draft, kind, now,
            edit_severity=severity,
            response_time_seconds=self._response_time(item, now, response_time_seconds),
            details={"reviewer": reviewer, "review_item_id": item.id},
        )
        logger.info("review_approved", item_id=item.id, reviewer=reviewer, edited=edited)
        return item

    def reject(
        self,
        item_id: str,
        reviewer: str,
        reason: Optional[str] = None,
        response_time_seconds: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> ReviewItem:
        now = now or datetime.utcnow()
        item = self._require_pending(item_id, now)

        item = self._update(
            item,
            status=ReviewStatus.REJECTED,
            reviewer=reviewer,
            reviewed_at=now,
        )
        self._record(
            item.draft, OutcomeKind.REJECTED, now,
            response_time_seconds=self._response_time(item, now, response_time_seconds),
            details={"reviewer": reviewer, "review_item_id": item.id, "reason": reason},
        )
        logger.info("review_rejected", item_id=item.id, reviewer=reviewer, reason=reason)
        return item

    def record_feedback(
        self,
        situation: str,
        draft_id: Optional[str],
        helpful: bool,
        now: Optional[datetime] = None,
    ) -> OutcomeEvent:
        """Thumbs up / thumbs down on a sent response."""
        event = OutcomeEvent(
            id=f"out_{uuid4().hex[:12]}",
            situation=situation,
            kind=OutcomeKind.THUMBS_UP if helpful else OutcomeKind.THUMBS_DOWN,
            draft_id=draft_id,
            recorded_at=now or datetime.utcnow(),
        )
        self.calibration.record(event)
        return event

    def set_threshold(
        self,
        situation: str,
        threshold_percent: int,
        user_id: Optional[str] = None,
    ) -> ConfidenceRecord:
        """Explicit threshold edit by the user, recorded like any other outcome."""
        situations = self.gate.situations
        before = situations.get_or_default(situation).threshold
        record = situations.set_threshold(situation, threshold_percent)
        self.calibration.record(OutcomeEvent(
            id=f"out_{uuid4().hex[:12]}",
            situation=situation,
            kind=OutcomeKind.THRESHOLD_EDIT,
            recorded_at=datetime.utcnow(),
            details={"before": before, "after": record.threshold, "user_id": user_id},
        ))
        return situations.get_or_default(situation)

    # --- Internal ---

    def _require_pending(self, item_id: str, now: datetime) -> ReviewItem:
        item = self.get(item_id)
        if item.status != ReviewStatus.PENDING:
            raise ReviewError(f"Review item {item_id} is already {item.status.value}")
        if self._is_expired(item, now):
            self._update(item, status=ReviewStatus.EXPIRED)
            raise ReviewError(f"Review item {item_id} has expired")
        return item

    @staticmethod
    def _is_expired(item: ReviewItem, now: datetime) -> bool:
        return item.draft.expires_at is not None and now >= item.draft.expires_at

    @staticmethod
    def _response_time(
        item: ReviewItem, now: datetime, given: Optional[float]
    ) -> float:
        if given is not None:
            return given
        return max((now - item.draft.created_at).total_seconds(), 0.0)

    def _update(self, item: ReviewItem, **fields) -> ReviewItem:
        updated = item.model_copy(update=fields)
        self._items[item.id] = updated
        return updated

    def _record(
        self,
        draft: DraftResponse,
        kind: OutcomeKind,
        now: datetime,
        **fields,
    ) -> OutcomeEvent:
        event = OutcomeEvent(
            id=f"out_{uuid4().hex[:12]}",
            situation=draft.situation,
            kind=kind,
            draft_id=draft.id,
            original_confidence=draft.confidence,
            recorded_at=now,
            **fields,
        )
        self.calibration.record(event)
        return event
