"""Tests for the confidence gate and situation store."""

from datetime import datetime

import pytest

from deal_kernel.config import Settings
from deal_kernel.gate.confidence import (
    REASON_AUTO_RESPOND_DISABLED,
    REASON_BELOW_THRESHOLD,
    REASON_INVALID_SCHEDULE,
    REASON_QUIET_HOURS,
    REASON_SITUATION_DISABLED,
    ConfidenceGate,
    SituationStore,
    in_quiet_hours,
)
from deal_kernel.models.confidence import DraftResponse, GateVerdict

NOON = datetime(2026, 1, 5, 12, 0)
LATE_NIGHT = datetime(2026, 1, 5, 23, 30)
QUIET_HOURS = "* 22-23,0-6 * * *"


def _make_draft(confidence: float = 0.9, situation: str = "general", **overrides) -> DraftResponse:
    fields = dict(
        id="draft_1",
        conversation_id="conv_1",
        situation=situation,
        confidence=confidence,
        suggested_response="Thanks, Tuesday at 3pm works for the walkthrough.",
        created_at=NOON,
    )
    fields.update(overrides)
    return DraftResponse(**fields)


def _make_gate(**settings_overrides) -> ConfidenceGate:
    settings = Settings(**settings_overrides)
    return ConfidenceGate(settings, SituationStore.from_settings(settings))


class TestThreshold:
    def test_confident_draft_is_auto_sent(self):
        decision = _make_gate().evaluate(_make_draft(0.95), now=NOON)
        assert decision.verdict == GateVerdict.AUTO_SEND
        assert decision.reasons == []
        assert decision.threshold == pytest.approx(0.85)

    def test_threshold_is_inclusive(self):
        decision = _make_gate().evaluate(_make_draft(0.85), now=NOON)
        assert decision.verdict == GateVerdict.AUTO_SEND

    def test_just_below_threshold_goes_to_review(self):
        decision = _make_gate().evaluate(_make_draft(0.84), now=NOON)
        assert decision.verdict == GateVerdict.REVIEW
        assert decision.reasons == [REASON_BELOW_THRESHOLD]

    def test_threshold_is_per_situation(self):
        gate = _make_gate()
        gate.situations.set_threshold("general", 50)

        assert gate.evaluate(_make_draft(0.7, "general"), now=NOON).verdict == GateVerdict.AUTO_SEND
        decision = gate.evaluate(_make_draft(0.7, "motivated_seller"), now=NOON)
        assert decision.verdict == GateVerdict.REVIEW
        assert REASON_BELOW_THRESHOLD in decision.reasons

    def test_configured_threshold(self):
        gate = _make_gate(confidence_threshold=60)
        assert gate.evaluate(_make_draft(0.65), now=NOON).verdict == GateVerdict.AUTO_SEND


class TestReviewRules:
    def test_auto_respond_disabled(self):
        decision = _make_gate(ai_auto_respond=False).evaluate(_make_draft(0.99), now=NOON)
        assert decision.verdict == GateVerdict.REVIEW
        assert decision.reasons == [REASON_AUTO_RESPOND_DISABLED]

    def test_always_review_topic(self):
        draft = _make_draft(0.99, topics=["scheduling", " Refund "])
        decision = _make_gate().evaluate(draft, now=NOON)
        assert decision.verdict == GateVerdict.REVIEW
        assert decision.reasons == ["always_review_topic:refund"]

    def test_custom_review_topics(self):
        gate = _make_gate(always_review_topics=["earnest_money"])
        assert gate.evaluate(_make_draft(0.99, topics=["refund"]), now=NOON).verdict == GateVerdict.AUTO_SEND
        assert gate.evaluate(_make_draft(0.99, topics=["earnest_money"]), now=NOON).verdict == GateVerdict.REVIEW

    def test_quiet_hours(self):
        gate = _make_gate(quiet_hours_schedule=QUIET_HOURS)
        late = gate.evaluate(_make_draft(0.99), now=LATE_NIGHT)
        assert late.verdict == GateVerdict.REVIEW
        assert late.reasons == [REASON_QUIET_HOURS]
        assert gate.evaluate(_make_draft(0.99), now=NOON).verdict == GateVerdict.AUTO_SEND

    def test_invalid_schedule_fails_closed(self):
        gate = _make_gate(quiet_hours_schedule="not a cron")
        decision = gate.evaluate(_make_draft(0.99), now=NOON)
        assert decision.verdict == GateVerdict.REVIEW
        assert decision.reasons == [REASON_INVALID_SCHEDULE]

    def test_situation_auto_send_disabled(self):
        gate = _make_gate()
        gate.situations.set_auto_send("general", False)
        decision = gate.evaluate(_make_draft(0.99), now=NOON)
        assert decision.reasons == [REASON_SITUATION_DISABLED]

    def test_every_failing_check_is_listed(self):
        gate = _make_gate(ai_auto_respond=False, quiet_hours_schedule=QUIET_HOURS)
        decision = gate.evaluate(_make_draft(0.4, topics=["complaint"]), now=LATE_NIGHT)
        assert decision.reasons == [
            REASON_AUTO_RESPOND_DISABLED,
            "always_review_topic:complaint",
            REASON_QUIET_HOURS,
            REASON_BELOW_THRESHOLD,
        ]

    def test_in_quiet_hours(self):
        assert in_quiet_hours(QUIET_HOURS, datetime(2026, 1, 6, 3, 15))
        assert not in_quiet_hours(QUIET_HOURS, datetime(2026, 1, 6, 7, 0))


class TestSituationStore:
    def test_unconfigured_situation_uses_defaults(self):
        store = SituationStore(default_threshold=0.8, default_confidence=0.5)
        record = store.get_or_default("new_situation")
        assert record.threshold == pytest.approx(0.8)
        assert record.confidence_score == pytest.approx(0.5)
        assert record.auto_send_enabled is True
        assert store.get("new_situation") is None

    def test_set_threshold_uses_percent_scale(self):
        store = SituationStore()
        record = store.set_threshold("general", 70)
        assert record.threshold == pytest.approx(0.70)
        assert record.updated_at is not None
        assert store.get("general").threshold == pytest.approx(0.70)

    @pytest.mark.parametrize("percent", [-1, 101])
    def test_set_threshold_rejects_out_of_range(self, percent):
        with pytest.raises(ValueError):
            SituationStore().set_threshold("general", percent)

    def test_set_threshold_bounds(self):
        store = SituationStore()
        assert store.set_threshold("a", 0).threshold == 0.0
        assert store.set_threshold("b", 100).threshold == 1.0

    def test_set_auto_send_keeps_threshold(self):
        store = SituationStore()
        store.set_threshold("general", 60)
        record = store.set_auto_send("general", False)
        assert record.auto_send_enabled is False
        assert record.threshold == pytest.approx(0.60)
        assert len(store.all()) == 1
