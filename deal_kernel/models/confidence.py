"""Confidence Gate models — drafts, verdicts, review items and outcome events."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ConfidenceRecord(BaseModel):
    """
    Per-situation calibration state.

    Only the feedback path writes this: calibration adjustments and explicit
    threshold edits by the user. Message generation never touches it.
    """

    situation: str                          # e.g., "motivated_seller", "general"
    confidence_score: float = Field(ge=0.0, le=1.0, default=0.6)
    threshold: float = Field(ge=0.0, le=1.0, default=0.85)
    auto_send_enabled: bool = False
    sample_count: int = 0
    updated_at: Optional[datetime] = None


class DraftResponse(BaseModel):
    """An assistant-drafted reply to a counterparty message."""

    id: str
    conversation_id: str
    situation: str
    confidence: float = Field(ge=0.0, le=1.0)
    suggested_response: str
    topics: List[str] = []                  # From the classification service
    created_at: datetime
    expires_at: Optional[datetime] = None


class GateVerdict(str, Enum):
    AUTO_SEND = "auto_send"
    REVIEW = "review"


class GateDecision(BaseModel):
    draft_id: str
    verdict: GateVerdict
    situation: str
    confidence: float
    threshold: float
    reasons: List[str] = []                 # Machine-readable review reasons
    evaluated_at: datetime


class ReviewStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    EDITED = "edited"
    REJECTED = "rejected"
    EXPIRED = "expired"


class EditSeverity(str, Enum):
    NONE = "none"
    MINOR = "minor"
    MAJOR = "major"


class ReviewItem(BaseModel):
    """A draft waiting for (or having received) a human decision."""

    id: str
    draft: DraftResponse
    decision: GateDecision
    status: ReviewStatus = ReviewStatus.PENDING
    final_response: Optional[str] = None
    reviewer: Optional[str] = None
    reviewed_at: Optional[datetime] = None


class OutcomeKind(str, Enum):
    APPROVED = "approved"
    EDITED = "edited"
    REJECTED = "rejected"
    AUTO_SENT = "auto_sent"
    THUMBS_UP = "thumbs_up"
    THUMBS_DOWN = "thumbs_down"
    THRESHOLD_EDIT = "threshold_edit"


class OutcomeEvent(BaseModel):
    """A recorded decision or feedback signal, consumed by calibration."""

    id: str
    situation: str
    kind: OutcomeKind
    draft_id: Optional[str] = None
    original_confidence: Optional[float] = None
    edit_severity: EditSeverity = EditSeverity.NONE
    response_time_seconds: Optional[float] = None
    recorded_at: datetime
    details: dict = {}
