"""
Action Handlers — one function per catalog action.

Each handler takes ``(input, context)`` and returns an ActionHandlerResult:
a PatchSet to confirm, a job to submit, inline content, or a failure. They
hold no state and never write records; committing a PatchSet is the
applier's job and running a job is the runner's.

Validation failures always mention "required" so callers can classify
them by message.
"""

import json
from types import MappingProxyType
from typing import Any, Callable, List, Mapping

from deal_kernel.models.actions import (
    ActionErrorKind,
    ActionFailure,
    ActionHandlerInput,
    ActionHandlerResult,
    ActionId,
    ContentResult,
    HandlerContext,
    JobRequestResult,
    PatchSetResult,
)
from deal_kernel.models.deal import DealStage, get_next_stages, stage_label
from deal_kernel.models.jobs import JobSubmission, JobType
from deal_kernel.models.patchset import (
    PatchConfidence,
    PatchEntity,
    PatchOperation,
    PatchOpKind,
    PendingTimelineEvent,
)
from deal_kernel.patchset.builder import (
    add_operation,
    add_timeline_event,
    build_add_note_patch_set,
    build_assumption_update_patch_set,
    build_stage_update_patch_set,
    create_empty_patch_set,
)

Handler = Callable[[ActionHandlerInput, HandlerContext], ActionHandlerResult]

# Underwriting sanity limits, as fractions of ARV.
MAX_PURCHASE_TO_ARV = 0.85
MAX_REPAIR_TO_ARV = 0.40

SUMMARY_PLACEHOLDER = (
    "AI summarization not yet implemented. This will generate a concise "
    "summary of the selected event."
)

COUNTER_TEMPLATE = (
    "Thank you for your offer on the property. After careful consideration, "
    "we would like to counter at ${amount}.\n\n"
    "This price reflects [RATIONALE].\n\n"
    "We remain committed to finding a solution that works for both parties "
    "and look forward to your response."
)


def _invalid(message: str) -> ActionFailure:
    return ActionFailure(error=message, error_kind=ActionErrorKind.VALIDATION)


def _precondition(message: str) -> ActionFailure:
    return ActionFailure(error=message, error_kind=ActionErrorKind.PRECONDITION)


def _percent(ratio: float) -> int:
    # Half-up, so 0.875 reads as 88%.
    return int(ratio * 100 + 0.5)


def _format_amount(amount: Any) -> str:
    if isinstance(amount, float) and amount.is_integer():
        amount = int(amount)
    if isinstance(amount, (int, float)):
        return f"{amount:,}"
    return str(amount)


# --- Record updates ---

def handle_update_stage(input: ActionHandlerInput, context: HandlerContext) -> ActionHandlerResult:
    deal = context.deal
    params = input.params

    next_stages = get_next_stages(deal.stage)
    requested = params.get("new_stage")
    if requested:
        try:
            new_stage = DealStage(requested)
        except ValueError:
            return _invalid(f"A valid stage is required, got {requested!r}")
    elif next_stages:
        new_stage = next_stages[0]
    else:
        return _precondition("Deal is already at final stage")

    rationale = params.get("rationale") or f"Advancing deal to {stage_label(new_stage)}"
    if new_stage not in next_stages and new_stage != deal.stage:
        rationale = f"{rationale} (non-standard transition)"

    patch_set = build_stage_update_patch_set(deal.id, deal.stage, new_stage, rationale)
    return PatchSetResult(patch_set=patch_set)


def handle_set_next_action(input: ActionHandlerInput, context: HandlerContext) -> ActionHandlerResult:
    deal = context.deal
    params = input.params

    next_action = params.get("next_action")
    due_date = params.get("due_date")
    if not next_action:
        return _invalid("Next action text is required")

    after = {"next_action": next_action}
    if due_date:
        after["next_action_due"] = due_date

    patch_set = create_empty_patch_set(
        f"Set next action: {next_action}",
        deal_id=deal.id,
        action_id=ActionId.SET_NEXT_ACTION.value,
        confidence=PatchConfidence.HIGH,
    )
    patch_set = add_operation(patch_set, PatchOperation(
        op=PatchOpKind.UPDATE,
        entity=PatchEntity.DEAL,
        id=deal.id,
        before={"next_action": deal.next_action, "next_action_due": deal.next_action_due},
        after=after,
        rationale=params.get("rationale") or "Setting next action for deal progression",
    ))
    patch_set = add_timeline_event(patch_set, PendingTimelineEvent(
        type="next_action_set",
        title=f"Next action: {next_action}",
        description=f"Due: {due_date}" if due_date else None,
    ))
    return PatchSetResult(patch_set=patch_set)


def handle_create_task(input: ActionHandlerInput, context: HandlerContext) -> ActionHandlerResult:
    deal = context.deal
    params = input.params

    title = params.get("title")
    if not title:
        return _invalid("Task title is required")

    patch_set = create_empty_patch_set(
        f"Create task: {title}",
        deal_id=deal.id,
        action_id=ActionId.CREATE_TASK.value,
        confidence=PatchConfidence.HIGH,
    )
    patch_set = add_operation(patch_set, PatchOperation(
        op=PatchOpKind.CREATE,
        entity=PatchEntity.TASK,
        after={
            "title": title,
            "description": params.get("description"),
            "due_date": params.get("due_date"),
            "deal_id": deal.id,
            "status": "pending",
        },
        rationale=params.get("rationale") or "Creating task for deal follow-up",
    ))
    return PatchSetResult(patch_set=patch_set)


def handle_add_note(input: ActionHandlerInput, context: HandlerContext) -> ActionHandlerResult:
    content = input.params.get("content")
    if not content:
        return _invalid("Note content is required")
    return PatchSetResult(patch_set=build_add_note_patch_set(context.deal.id, content))


def handle_summarize_event(input: ActionHandlerInput, context: HandlerContext) -> ActionHandlerResult:
    event_id = input.params.get("event_id")
    if not event_id:
        return _invalid("Event ID is required for summarization")

    if context.generator is None:
        return ContentResult(content=SUMMARY_PLACEHOLDER)

    summary = context.generator(
        ActionId.SUMMARIZE_EVENT.value,
        {"deal_id": context.deal.id, "event_id": event_id},
    )
    return ContentResult(content=summary)


def handle_extract_facts(input: ActionHandlerInput, context: HandlerContext) -> ActionHandlerResult:
    event_ids = input.params.get("event_ids") or []
    return JobRequestResult(job=JobSubmission(
        job_type=JobType.EXTRACT_FACTS,
        deal_id=context.deal.id,
        input_json={"deal_id": context.deal.id, "event_ids": list(event_ids)},
    ))


# --- Analysis ---

def underwrite_issues(context: HandlerContext) -> List[str]:
    """Advisory problems with the property's underwriting numbers."""
    prop = context.property
    issues: List[str] = []

    arv = prop.arv if prop else None
    repair_cost = prop.repair_cost if prop else None
    purchase_price = prop.purchase_price if prop else None

    if not arv:
        issues.append("Missing ARV (After Repair Value)")
    if not repair_cost:
        issues.append("Missing repair cost estimate")
    if not purchase_price:
        issues.append("Missing purchase price")

    if arv and purchase_price:
        ratio = purchase_price / arv
        if ratio > MAX_PURCHASE_TO_ARV:
            issues.append(
                f"Purchase price is {_percent(ratio)}% of ARV - typical max is 70-75%"
            )

    if arv and repair_cost:
        ratio = repair_cost / arv
        if ratio > MAX_REPAIR_TO_ARV:
            issues.append(f"Repairs are {_percent(ratio)}% of ARV - unusually high")

    return issues


def handle_run_underwrite_check(input: ActionHandlerInput, context: HandlerContext) -> ActionHandlerResult:
    issues = underwrite_issues(context)
    if issues:
        recommendation = f"Found {len(issues)} item(s) to review before proceeding."
    else:
        recommendation = "Underwriting looks complete. Ready to proceed."

    content = {
        "issue_count": len(issues),
        "issues": issues,
        "suggestions": [],
        "recommendation": recommendation,
    }
    return ContentResult(content=json.dumps(content, indent=2))


def handle_update_assumption(input: ActionHandlerInput, context: HandlerContext) -> ActionHandlerResult:
    params = input.params
    field = params.get("field")
    new_value = params.get("new_value")
    if not field or new_value is None:
        return _invalid("Field and new value are required")

    patch_set = build_assumption_update_patch_set(
        context.deal.id,
        field,
        params.get("old_value") or 0,
        new_value,
        params.get("rationale") or f"Updating {field} to {new_value}",
        source_event_id=params.get("source_event_id"),
    )
    return PatchSetResult(patch_set=patch_set)


# --- Offers ---

def handle_generate_seller_report(input: ActionHandlerInput, context: HandlerContext) -> ActionHandlerResult:
    prop = context.property
    if prop is None or not prop.arv or not prop.purchase_price:
        return _precondition("Cannot generate seller report: missing ARV or purchase price")

    return JobRequestResult(job=JobSubmission(
        job_type=JobType.GENERATE_SELLER_REPORT,
        deal_id=context.deal.id,
        input_json={
            "deal_id": context.deal.id,
            "property_id": prop.id,
            "include_options": ["cash", "creative", "list"],
            "arv": prop.arv,
            "repair_cost": prop.repair_cost,
            "purchase_price": prop.purchase_price,
        },
    ))


def handle_generate_offer_packet(input: ActionHandlerInput, context: HandlerContext) -> ActionHandlerResult:
    params = input.params
    offer_type = params.get("offer_type") or "cash"
    offer_amount = params.get("offer_amount") or (
        context.property.purchase_price if context.property else None
    )
    if not offer_amount:
        return _precondition("Cannot generate offer packet: no offer amount specified")

    return JobRequestResult(job=JobSubmission(
        job_type=JobType.GENERATE_OFFER_PACKET,
        deal_id=context.deal.id,
        input_json={
            "deal_id": context.deal.id,
            "offer_type": offer_type,
            "offer_amount": offer_amount,
            "include_disclosures": True,
        },
    ))


def handle_draft_counter_text(input: ActionHandlerInput, context: HandlerContext) -> ActionHandlerResult:
    params = input.params
    counter_amount = params.get("counter_amount")
    tone = params.get("tone") or "professional"

    if context.generator is not None:
        text = context.generator(
            ActionId.DRAFT_COUNTER_TEXT.value,
            {"deal_id": context.deal.id, "counter_amount": counter_amount, "tone": tone},
        )
        return ContentResult(content=text)

    amount = _format_amount(counter_amount) if counter_amount else "[AMOUNT]"
    return ContentResult(content=COUNTER_TEMPLATE.format(amount=amount))


# --- Documents ---

def handle_prepare_esign_envelope(input: ActionHandlerInput, context: HandlerContext) -> ActionHandlerResult:
    document_type = input.params.get("document_type") or "purchase_agreement"
    return JobRequestResult(job=JobSubmission(
        job_type=JobType.PREPARE_ESIGN_ENVELOPE,
        deal_id=context.deal.id,
        input_json={"deal_id": context.deal.id, "document_type": document_type},
    ))


HANDLER_REGISTRY: Mapping[str, Handler] = MappingProxyType({
    ActionId.UPDATE_STAGE.value: handle_update_stage,
    ActionId.SET_NEXT_ACTION.value: handle_set_next_action,
    ActionId.CREATE_TASK.value: handle_create_task,
    ActionId.ADD_NOTE.value: handle_add_note,
    ActionId.SUMMARIZE_EVENT.value: handle_summarize_event,
    ActionId.EXTRACT_FACTS.value: handle_extract_facts,
    ActionId.RUN_UNDERWRITE_CHECK.value: handle_run_underwrite_check,
    ActionId.UPDATE_ASSUMPTION.value: handle_update_assumption,
    ActionId.GENERATE_SELLER_REPORT.value: handle_generate_seller_report,
    ActionId.GENERATE_OFFER_PACKET.value: handle_generate_offer_packet,
    ActionId.DRAFT_COUNTER_TEXT.value: handle_draft_counter_text,
    ActionId.PREPARE_ESIGN_ENVELOPE.value: handle_prepare_esign_envelope,
})
