"""
Calibration — turns recorded outcomes into per-situation confidence updates.

The engine owns the plumbing: every outcome is written to the ledger, and
once a situation has enough samples the configured policy is asked for an
updated ConfidenceRecord. How thresholds should move is the policy's call;
the default policy never moves them.
"""

from datetime import datetime
from typing import List, Optional, Protocol

import structlog

from deal_kernel.gate.confidence import SituationStore
from deal_kernel.gate.ledger import DecisionLedger
from deal_kernel.models.confidence import ConfidenceRecord, OutcomeEvent

logger = structlog.get_logger()


class CalibrationPolicy(Protocol):
    """Interface for pluggable calibration algorithms."""

    def adjust(
        self, record: ConfidenceRecord, events: List[OutcomeEvent]
    ) -> Optional[ConfidenceRecord]:
        """Return an updated record, or None to leave the situation as is."""
        ...


class NoCalibration:
    """Records outcomes but never adjusts anything."""

    def adjust(
        self, record: ConfidenceRecord, events: List[OutcomeEvent]
    ) -> Optional[ConfidenceRecord]:
        return None


class CalibrationEngine:
    def __init__(
        self,
        ledger: DecisionLedger,
        situations: SituationStore,
        policy: Optional[CalibrationPolicy] = None,
        min_samples: int = 10,
    ):
        self.ledger = ledger
        self.situations = situations
        self.policy = policy or NoCalibration()
        self.min_samples = min_samples

    def record(self, event: OutcomeEvent) -> Optional[ConfidenceRecord]:
        """
        Append an outcome and give the policy a chance to recalibrate.

        Returns the adjusted record when the policy changed something.
        """
        self.ledger.append(event)
        events = self.ledger.query_by_situation(event.situation)

        current = self.situations.get_or_default(event.situation).model_copy(
            update={"sample_count": len(events)}
        )

        if len(events) < self.min_samples:
            self.situations.upsert(current)
            return None

        adjusted = self.policy.adjust(current, events)
        if adjusted is None:
            self.situations.upsert(current)
            return None

        adjusted = adjusted.model_copy(update={
            "situation": event.situation,
            "sample_count": len(events),
            "updated_at": datetime.utcnow(),
        })
        self.situations.upsert(adjusted)
        logger.info(
            "situation_recalibrated",
            situation=event.situation,
            samples=len(events),
            threshold_before=current.threshold,
            threshold_after=adjusted.threshold,
            confidence_before=current.confidence_score,
            confidence_after=adjusted.confidence_score,
        )
        return adjusted
