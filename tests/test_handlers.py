"""Tests for the individual action handlers."""

import json
from typing import Optional

import pytest

from deal_kernel.handlers.actions import (
    HANDLER_REGISTRY,
    SUMMARY_PLACEHOLDER,
    handle_add_note,
    handle_create_task,
    handle_draft_counter_text,
    handle_extract_facts,
    handle_generate_offer_packet,
    handle_generate_seller_report,
    handle_prepare_esign_envelope,
    handle_run_underwrite_check,
    handle_set_next_action,
    handle_summarize_event,
    handle_update_assumption,
    handle_update_stage,
)
from deal_kernel.models.actions import (
    ActionErrorKind,
    ActionFailure,
    ActionHandlerInput,
    ContentResult,
    HandlerContext,
    JobRequestResult,
    PatchSetResult,
)
from deal_kernel.models.deal import Deal, DealStage, Property
from deal_kernel.models.jobs import JobType
from deal_kernel.models.patchset import PatchEntity, PatchOpKind


def _make_context(
    stage: DealStage = DealStage.ANALYZING,
    prop: Optional[Property] = None,
    generator=None,
) -> HandlerContext:
    return HandlerContext(
        deal=Deal(id="deal_1", stage=stage, next_action="Old action", property_id="prop_1"),
        property=prop,
        user_id="user_1",
        generator=generator,
    )


def _make_input(action_id: str, **params) -> ActionHandlerInput:
    return ActionHandlerInput(action_id=action_id, deal_id="deal_1", params=params)


def _make_property(**overrides) -> Property:
    fields = dict(id="prop_1", arv=300000, repair_cost=45000, purchase_price=180000)
    fields.update(overrides)
    return Property(**fields)


class TestUpdateStage:
    def test_auto_suggests_first_next_stage(self):
        result = handle_update_stage(_make_input("update_stage"), _make_context(DealStage.NEW))
        assert isinstance(result, PatchSetResult)
        op = result.patch_set.ops[0]
        assert op.before == {"stage": "new"}
        assert op.after == {"stage": "contacted"}
        assert op.rationale == "Advancing deal to Contacted"

    def test_explicit_stage_and_rationale(self):
        result = handle_update_stage(
            _make_input("update_stage", new_stage="closed_lost", rationale="Seller sold elsewhere"),
            _make_context(DealStage.ANALYZING),
        )
        assert result.patch_set.ops[0].after == {"stage": "closed_lost"}
        assert result.patch_set.ops[0].rationale == "Seller sold elsewhere"

    def test_terminal_stage_fails(self):
        result = handle_update_stage(_make_input("update_stage"), _make_context(DealStage.CLOSED_WON))
        assert isinstance(result, ActionFailure)
        assert result.error == "Deal is already at final stage"
        assert result.error_kind == ActionErrorKind.PRECONDITION

    def test_non_standard_transition_is_allowed_but_flagged(self):
        result = handle_update_stage(
            _make_input("update_stage", new_stage="negotiating", rationale="Skipping ahead"),
            _make_context(DealStage.NEW),
        )
        assert isinstance(result, PatchSetResult)
        assert result.patch_set.ops[0].rationale == "Skipping ahead (non-standard transition)"

    def test_unknown_stage_is_a_validation_error(self):
        result = handle_update_stage(
            _make_input("update_stage", new_stage="teleported"), _make_context()
        )
        assert isinstance(result, ActionFailure)
        assert "required" in result.error
        assert result.error_kind == ActionErrorKind.VALIDATION


class TestRecordUpdates:
    def test_set_next_action_requires_text(self):
        result = handle_set_next_action(_make_input("set_next_action"), _make_context())
        assert isinstance(result, ActionFailure)
        assert "required" in result.error

    def test_set_next_action(self):
        result = handle_set_next_action(
            _make_input("set_next_action", next_action="Send comps", due_date="2026-01-05"),
            _make_context(),
        )
        ps = result.patch_set
        assert len(ps.ops) == 1
        assert ps.ops[0].op == PatchOpKind.UPDATE
        assert ps.ops[0].before == {"next_action": "Old action", "next_action_due": None}
        assert ps.ops[0].after == {"next_action": "Send comps", "next_action_due": "2026-01-05"}
        event = ps.will_create_timeline_events[0]
        assert event.type == "next_action_set"
        assert event.description == "Due: 2026-01-05"

    def test_set_next_action_without_due_date(self):
        result = handle_set_next_action(
            _make_input("set_next_action", next_action="Send comps"), _make_context()
        )
        assert result.patch_set.ops[0].after == {"next_action": "Send comps"}
        assert result.patch_set.will_create_timeline_events[0].description is None

    def test_create_task_requires_title(self):
        result = handle_create_task(_make_input("create_task", description="x"), _make_context())
        assert isinstance(result, ActionFailure)
        assert "required" in result.error

    def test_create_task(self):
        result = handle_create_task(
            _make_input("create_task", title="Order inspection", due_date="2026-02-01"),
            _make_context(),
        )
        op = result.patch_set.ops[0]
        assert op.op == PatchOpKind.CREATE
        assert op.entity == PatchEntity.TASK
        assert op.after["title"] == "Order inspection"
        assert op.after["deal_id"] == "deal_1"
        assert op.after["status"] == "pending"
        assert op.rationale == "Creating task for deal follow-up"

    def test_add_note_requires_content(self):
        result = handle_add_note(_make_input("add_note", content=""), _make_context())
        assert isinstance(result, ActionFailure)
        assert "required" in result.error

    def test_add_note(self):
        result = handle_add_note(_make_input("add_note", content="Seller is flexible"), _make_context())
        assert result.patch_set.will_create_timeline_events[0].title == "Seller is flexible"


class TestSummarizeEvent:
    def test_requires_event_id(self):
        result = handle_summarize_event(_make_input("summarize_event"), _make_context())
        assert isinstance(result, ActionFailure)
        assert "required" in result.error

    def test_placeholder_without_generator(self):
        result = handle_summarize_event(_make_input("summarize_event", event_id="evt_1"), _make_context())
        assert isinstance(result, ContentResult)
        assert result.content == SUMMARY_PLACEHOLDER

    def test_delegates_to_generator(self):
        calls = []

        def generator(kind, variables):
            calls.append((kind, variables))
            return "Seller wants to close fast."

        result = handle_summarize_event(
            _make_input("summarize_event", event_id="evt_1"), _make_context(generator=generator)
        )
        assert result.content == "Seller wants to close fast."
        assert calls == [("summarize_event", {"deal_id": "deal_1", "event_id": "evt_1"})]


class TestUnderwriteCheck:
    def _run(self, prop: Optional[Property]) -> dict:
        result = handle_run_underwrite_check(
            _make_input("run_underwrite_check"), _make_context(prop=prop)
        )
        assert isinstance(result, ContentResult)
        return json.loads(result.content)

    def test_missing_arv(self):
        content = self._run(_make_property(arv=None))
        assert "Missing ARV (After Repair Value)" in content["issues"]

    def test_missing_property_reports_everything(self):
        content = self._run(None)
        assert content["issue_count"] == 3
        assert content["issues"] == [
            "Missing ARV (After Repair Value)",
            "Missing repair cost estimate",
            "Missing purchase price",
        ]

    def test_zero_counts_as_missing(self):
        content = self._run(_make_property(repair_cost=0))
        assert "Missing repair cost estimate" in content["issues"]

    def test_purchase_price_too_high(self):
        content = self._run(_make_property(arv=300000, purchase_price=270000))
        assert any("% of ARV" in issue for issue in content["issues"])
        assert "Purchase price is 90% of ARV - typical max is 70-75%" in content["issues"]

    def test_repairs_too_high(self):
        content = self._run(_make_property(arv=200000, repair_cost=100000, purchase_price=100000))
        assert content["issues"] == ["Repairs are 50% of ARV - unusually high"]

    def test_ratios_at_limits_pass(self):
        content = self._run(_make_property(arv=100000, repair_cost=40000, purchase_price=85000))
        assert content["issue_count"] == 0

    def test_clean_numbers(self):
        content = self._run(_make_property())
        assert content == {
            "issue_count": 0,
            "issues": [],
            "suggestions": [],
            "recommendation": "Underwriting looks complete. Ready to proceed.",
        }

    def test_recommendation_counts_issues(self):
        content = self._run(_make_property(arv=None, purchase_price=None))
        assert content["recommendation"] == "Found 2 item(s) to review before proceeding."


class TestUpdateAssumption:
    def test_requires_field_and_value(self):
        result = handle_update_assumption(_make_input("update_assumption", field="arv"), _make_context())
        assert isinstance(result, ActionFailure)
        assert "required" in result.error

    def test_defaults(self):
        result = handle_update_assumption(
            _make_input("update_assumption", field="arv", new_value=310000), _make_context()
        )
        op = result.patch_set.ops[0]
        assert op.entity == PatchEntity.DEAL_ASSUMPTION
        assert op.before == {"value": 0}
        assert op.after == {"value": 310000}
        assert op.rationale == "Updating arv to 310000"
        assert op.source is None

    def test_zero_is_a_valid_new_value(self):
        result = handle_update_assumption(
            _make_input("update_assumption", field="holding_cost", new_value=0, old_value=1200),
            _make_context(),
        )
        assert result.patch_set.ops[0].after == {"value": 0}
        assert result.patch_set.ops[0].before == {"value": 1200}

    def test_evidence_reference(self):
        result = handle_update_assumption(
            _make_input(
                "update_assumption",
                field="repair_cost",
                new_value=52000,
                old_value=45000,
                rationale="Contractor walkthrough",
                source_event_id="evt_7",
            ),
            _make_context(),
        )
        assert result.patch_set.ops[0].source == "evt_7"


class TestLongRunningHandlers:
    def test_extract_facts(self):
        result = handle_extract_facts(
            _make_input("extract_facts", event_ids=["evt_1", "evt_2"]), _make_context()
        )
        assert isinstance(result, JobRequestResult)
        assert result.job.job_type == JobType.EXTRACT_FACTS
        assert result.job.input_json == {"deal_id": "deal_1", "event_ids": ["evt_1", "evt_2"]}

    def test_seller_report_needs_arv_and_price(self):
        for prop in [None, _make_property(arv=None), _make_property(purchase_price=None)]:
            result = handle_generate_seller_report(
                _make_input("generate_seller_report"), _make_context(prop=prop)
            )
            assert isinstance(result, ActionFailure)
            assert result.error == "Cannot generate seller report: missing ARV or purchase price"
            assert result.error_kind == ActionErrorKind.PRECONDITION

    def test_seller_report(self):
        result = handle_generate_seller_report(
            _make_input("generate_seller_report"), _make_context(prop=_make_property())
        )
        assert result.job.job_type == JobType.GENERATE_SELLER_REPORT
        assert result.job.deal_id == "deal_1"
        assert result.job.input_json["include_options"] == ["cash", "creative", "list"]
        assert result.job.input_json["arv"] == 300000

    def test_offer_packet_defaults_to_purchase_price(self):
        result = handle_generate_offer_packet(
            _make_input("generate_offer_packet"), _make_context(prop=_make_property())
        )
        assert result.job.input_json == {
            "deal_id": "deal_1",
            "offer_type": "cash",
            "offer_amount": 180000,
            "include_disclosures": True,
        }

    def test_offer_packet_explicit_terms(self):
        result = handle_generate_offer_packet(
            _make_input("generate_offer_packet", offer_type="creative", offer_amount=195000),
            _make_context(prop=None),
        )
        assert result.job.input_json["offer_type"] == "creative"
        assert result.job.input_json["offer_amount"] == 195000

    def test_offer_packet_needs_an_amount(self):
        result = handle_generate_offer_packet(
            _make_input("generate_offer_packet"), _make_context(prop=_make_property(purchase_price=None))
        )
        assert isinstance(result, ActionFailure)
        assert result.error == "Cannot generate offer packet: no offer amount specified"

    def test_esign_envelope(self):
        result = handle_prepare_esign_envelope(_make_input("prepare_esign_envelope"), _make_context())
        assert result.job.job_type == JobType.PREPARE_ESIGN_ENVELOPE
        assert result.job.input_json["document_type"] == "purchase_agreement"


class TestDraftCounterText:
    def test_template_with_amount(self):
        result = handle_draft_counter_text(
            _make_input("draft_counter_text", counter_amount=250000), _make_context()
        )
        assert isinstance(result, ContentResult)
        assert "we would like to counter at $250,000." in result.content
        assert "[RATIONALE]" in result.content

    def test_template_without_amount(self):
        result = handle_draft_counter_text(_make_input("draft_counter_text"), _make_context())
        assert "$[AMOUNT]" in result.content

    def test_uses_generator_when_available(self):
        result = handle_draft_counter_text(
            _make_input("draft_counter_text", counter_amount=210000, tone="warm"),
            _make_context(generator=lambda kind, v: f"{kind}:{v['tone']}:{v['counter_amount']}"),
        )
        assert result.content == "draft_counter_text:warm:210000"


class TestHandlerRegistry:
    def test_registry_is_read_only(self):
        with pytest.raises(TypeError):
            HANDLER_REGISTRY["extra"] = handle_add_note

    def test_handlers_do_not_touch_context(self):
        context = _make_context(prop=_make_property())
        before = context.model_dump()
        for action_id, handler in HANDLER_REGISTRY.items():
            handler(_make_input(action_id, content="n", title="t", next_action="a"), context)
        assert context.model_dump() == before
