"""
PatchSet Builder — pure, copy-on-write construction of PatchSets.

Every function here returns a new PatchSet and leaves its input untouched,
so earlier versions stay valid for preview and undo diffing. Payload dicts
are deep-copied on the way in; a caller mutating its own dict afterwards
cannot reach into a PatchSet.
"""

import copy
from datetime import datetime
from typing import Any, List, Optional
from uuid import uuid4

from deal_kernel.models.deal import DealStage
from deal_kernel.models.patchset import (
    PatchConfidence,
    PatchEntity,
    PatchOperation,
    PatchOpKind,
    PatchSet,
    PatchSetValidation,
    PendingTimelineEvent,
)

NOTE_TITLE_MAX_LENGTH = 50


def generate_patch_set_id() -> str:
    """A process-unique id backed by 122 random bits from the OS."""
    return f"ps_{uuid4().hex}"


def create_empty_patch_set(
    summary: str,
    deal_id: Optional[str] = None,
    action_id: Optional[str] = None,
    confidence: PatchConfidence = PatchConfidence.MED,
) -> PatchSet:
    return PatchSet(
        patch_set_id=generate_patch_set_id(),
        summary=summary,
        confidence=confidence,
        action_id=action_id,
        deal_id=deal_id,
        created_at=datetime.utcnow(),
    )


def add_operation(patch_set: PatchSet, operation: PatchOperation) -> PatchSet:
    """Return a copy of ``patch_set`` with ``operation`` appended."""
    detached = operation.model_copy(update={
        "before": copy.deepcopy(operation.before),
        "after": copy.deepcopy(operation.after),
    })
    return patch_set.model_copy(update={"ops": patch_set.ops + (detached,)})


def add_timeline_event(patch_set: PatchSet, event: PendingTimelineEvent) -> PatchSet:
    """Return a copy of ``patch_set`` with ``event`` appended."""
    return patch_set.model_copy(update={
        "will_create_timeline_events": patch_set.will_create_timeline_events + (event,),
    })


# --- Domain builders ---

def build_stage_update_patch_set(
    deal_id: str,
    current_stage: DealStage,
    new_stage: DealStage,
    rationale: str,
) -> PatchSet:
    current_stage = DealStage(current_stage)
    new_stage = DealStage(new_stage)

    patch_set = create_empty_patch_set(
        f"Update deal stage from {current_stage.value} to {new_stage.value}",
        deal_id=deal_id,
        action_id="update_stage",
        confidence=PatchConfidence.HIGH,
    )
    patch_set = add_operation(patch_set, PatchOperation(
        op=PatchOpKind.UPDATE,
        entity=PatchEntity.DEAL,
        id=deal_id,
        before={"stage": current_stage.value},
        after={"stage": new_stage.value},
        rationale=rationale,
    ))
    return add_timeline_event(patch_set, PendingTimelineEvent(
        type="stage_change",
        title=f"Stage changed to {new_stage.value}",
    ))


def build_assumption_update_patch_set(
    deal_id: str,
    field: str,
    old_value: Any,
    new_value: Any,
    rationale: str,
    source_event_id: Optional[str] = None,
) -> PatchSet:
    """
    One DealAssumption update plus an ``assumption_updated`` event.

    Assumptions are stored per deal, so the deal id addresses the record and
    ``field_path`` selects the assumption inside it.
    """
    patch_set = create_empty_patch_set(
        f"Update {field} from {old_value} to {new_value}",
        deal_id=deal_id,
        action_id="update_assumption",
        confidence=PatchConfidence.MED,
    )
    patch_set = add_operation(patch_set, PatchOperation(
        op=PatchOpKind.UPDATE,
        entity=PatchEntity.DEAL_ASSUMPTION,
        id=deal_id,
        field_path=field,
        before={"value": old_value},
        after={"value": new_value},
        rationale=rationale,
        source=source_event_id,
    ))
    return add_timeline_event(patch_set, PendingTimelineEvent(
        type="assumption_updated",
        title=f"{field} updated to {new_value}",
        description=rationale,
    ))


def _note_title(content: str) -> str:
    if len(content) > NOTE_TITLE_MAX_LENGTH:
        return content[:NOTE_TITLE_MAX_LENGTH] + "..."
    return content


def build_add_note_patch_set(deal_id: str, note_content: str) -> PatchSet:
    """
    Notes are stored as deal evidence. The operation rationale keeps the
    full text; the timeline title is truncated.
    """
    patch_set = create_empty_patch_set(
        "Add note to timeline",
        deal_id=deal_id,
        action_id="add_note",
        confidence=PatchConfidence.HIGH,
    )
    patch_set = add_operation(patch_set, PatchOperation(
        op=PatchOpKind.CREATE,
        entity=PatchEntity.DEAL_EVIDENCE,
        after={"deal_id": deal_id, "kind": "note", "content": note_content},
        rationale=note_content,
    ))
    return add_timeline_event(patch_set, PendingTimelineEvent(
        type="note",
        title=_note_title(note_content),
        description=note_content,
    ))


# --- Validation ---

def validate_patch_set(patch_set: PatchSet) -> PatchSetValidation:
    """Check a PatchSet's structure, collecting every problem found."""
    errors: List[str] = []

    if not patch_set.patch_set_id:
        errors.append("PatchSet must have an ID")

    if not patch_set.ops:
        errors.append("PatchSet must have at least one operation")

    for i, op in enumerate(patch_set.ops):
        prefix = f"Operation {i}"
        if op.op == PatchOpKind.UPDATE and not op.id:
            errors.append(f"{prefix}: Update requires entity ID")
        if op.op == PatchOpKind.DELETE and not op.id:
            errors.append(f"{prefix}: Delete requires entity ID")
        if op.op in (PatchOpKind.CREATE, PatchOpKind.UPDATE) and op.after is None:
            errors.append(f"{prefix}: {op.op.value} requires 'after' value")
        if not op.rationale or not op.rationale.strip():
            errors.append(f"{prefix}: Missing rationale")

    for i, event in enumerate(patch_set.will_create_timeline_events):
        if not event.type:
            errors.append(f"Timeline event {i}: Missing event type")

    return PatchSetValidation(valid=len(errors) == 0, errors=errors)
