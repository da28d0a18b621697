"""Tests for the calibration engine and its policy hook."""

from datetime import datetime
from typing import List, Optional

import pytest
from structlog.testing import capture_logs

from deal_kernel.gate.calibration import CalibrationEngine, NoCalibration
from deal_kernel.gate.confidence import SituationStore
from deal_kernel.gate.ledger import DecisionLedger
from deal_kernel.models.confidence import ConfidenceRecord, OutcomeEvent, OutcomeKind


def _make_event(event_id: str, situation: str = "general") -> OutcomeEvent:
    return OutcomeEvent(
        id=event_id,
        situation=situation,
        kind=OutcomeKind.APPROVED,
        draft_id=f"draft_{event_id}",
        original_confidence=0.7,
        recorded_at=datetime.utcnow(),
    )


class _LowerThresholdPolicy:
    """Drops the threshold by five points each time it is consulted."""

    def __init__(self):
        self.calls: List[int] = []

    def adjust(
        self, record: ConfidenceRecord, events: List[OutcomeEvent]
    ) -> Optional[ConfidenceRecord]:
        self.calls.append(len(events))
        return record.model_copy(update={
            "situation": "ignored",
            "threshold": round(record.threshold - 0.05, 2),
        })


class TestCalibrationEngine:
    def test_default_policy_never_adjusts(self):
        situations = SituationStore()
        engine = CalibrationEngine(DecisionLedger(), situations, min_samples=1)
        assert isinstance(engine.policy, NoCalibration)

        for i in range(3):
            assert engine.record(_make_event(f"out_{i}")) is None

        record = situations.get("general")
        assert record.threshold == pytest.approx(0.85)
        assert record.sample_count == 3

    def test_every_event_reaches_the_ledger(self):
        ledger = DecisionLedger()
        engine = CalibrationEngine(ledger, SituationStore())
        engine.record(_make_event("out_1", "general"))
        engine.record(_make_event("out_2", "pricing"))
        assert ledger.count() == 2
        assert ledger.verify_chain_integrity()

    def test_policy_waits_for_min_samples(self):
        policy = _LowerThresholdPolicy()
        engine = CalibrationEngine(DecisionLedger(), SituationStore(), policy=policy, min_samples=3)

        assert engine.record(_make_event("out_1")) is None
        assert engine.record(_make_event("out_2")) is None
        assert policy.calls == []

        adjusted = engine.record(_make_event("out_3"))
        assert policy.calls == [3]
        assert adjusted.threshold == pytest.approx(0.80)

    def test_adjusted_record_is_stored_for_the_event_situation(self):
        situations = SituationStore()
        engine = CalibrationEngine(
            DecisionLedger(), situations, policy=_LowerThresholdPolicy(), min_samples=1
        )
        with capture_logs() as logs:
            adjusted = engine.record(_make_event("out_1", "motivated_seller"))

        assert adjusted.situation == "motivated_seller"
        assert adjusted.sample_count == 1
        assert adjusted.updated_at is not None
        assert situations.get("motivated_seller") == adjusted
        assert situations.get("ignored") is None
        assert any(e["event"] == "situation_recalibrated" for e in logs)

    def test_sample_counts_are_per_situation(self):
        policy = _LowerThresholdPolicy()
        engine = CalibrationEngine(DecisionLedger(), SituationStore(), policy=policy, min_samples=2)
        engine.record(_make_event("out_1", "general"))
        engine.record(_make_event("out_2", "pricing"))
        assert policy.calls == []
