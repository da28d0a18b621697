"""
PatchSet Applier — commits an approved PatchSet to the record repository.

Behavioral Contract:
- Only the applier ever marks a PatchSet applied; handlers never do
- A PatchSet is applied at most once and must pass validation first
- Each operation fully applies or fails and is reported individually
- A retry skips operations that already landed
- Timeline events, and the "AI applied changes" entry, are created only
  when every operation succeeded
"""

from datetime import datetime
from typing import Iterable, List, Optional, Tuple

import structlog

from deal_kernel.models.patchset import (
    ApplyResult,
    PatchOperation,
    PatchSet,
    PendingTimelineEvent,
)
from deal_kernel.patchset.builder import validate_patch_set
from deal_kernel.records.store import RecordRepository

logger = structlog.get_logger()

APPLIED_EVENT_TYPE = "ai_action_applied"
APPLIED_EVENT_TITLE = "AI applied changes"


class PatchSetApplyError(Exception):
    """Raised when a PatchSet cannot be applied at all."""
    pass


class PatchSetApplier:
    """Applies PatchSets through a RecordRepository."""

    def __init__(self, repository: RecordRepository):
        self.repository = repository

    def apply(
        self,
        patch_set: PatchSet,
        completed_ops: Optional[Iterable[int]] = None,
    ) -> Tuple[PatchSet, ApplyResult]:
        """
        Apply every operation, then create the pending timeline events.

        Returns the applied copy of the PatchSet (the input is left as-is)
        and the repository's report. If any operation failed the PatchSet is
        returned unapplied and ``report.applied_op_indices`` says which
        operations landed. Pass those back as ``completed_ops`` to retry
        only the rest.

        GUARD: Never apply twice, never apply an invalid PatchSet.
        """
        if patch_set.applied:
            raise PatchSetApplyError(
                f"PatchSet {patch_set.patch_set_id} was already applied "
                f"at {patch_set.applied_at}"
            )

        validation = validate_patch_set(patch_set)
        if not validation.valid:
            raise PatchSetApplyError(
                f"PatchSet {patch_set.patch_set_id} is invalid: "
                + "; ".join(validation.errors)
            )

        done = set(completed_ops or ())
        updated_ids: List[str] = []
        errors: List[str] = []

        for index, op in enumerate(patch_set.ops):
            if index in done:
                continue
            result = self._apply_operation(index, op)
            if result["success"]:
                done.add(index)
                updated_ids.append(result["entity_id"])
            else:
                errors.append(result["error"])

        created_event_ids: List[str] = []
        if not errors:
            events = list(patch_set.will_create_timeline_events)
            events.append(PendingTimelineEvent(
                type=APPLIED_EVENT_TYPE,
                title=APPLIED_EVENT_TITLE,
                description=patch_set.summary,
            ))
            for event in events:
                created_event_ids.append(
                    self.repository.create_timeline_event(patch_set.deal_id, event)
                )

        success = len(errors) == 0
        report = ApplyResult(
            patch_set_id=patch_set.patch_set_id,
            success=success,
            applied_ops=len(updated_ids),
            failed_ops=len(errors),
            created_event_ids=created_event_ids,
            updated_entity_ids=updated_ids,
            applied_op_indices=sorted(done),
            errors=errors,
        )

        logger.info(
            "patch_set_applied" if success else "patch_set_partially_applied",
            patch_set_id=patch_set.patch_set_id,
            action_id=patch_set.action_id,
            deal_id=patch_set.deal_id,
            applied_ops=report.applied_ops,
            failed_ops=report.failed_ops,
            events=len(created_event_ids),
        )

        if not success:
            return patch_set, report

        applied = patch_set.model_copy(
            update={"applied": True, "applied_at": datetime.utcnow()}
        )
        return applied, report

    def _apply_operation(self, index: int, op: PatchOperation) -> dict:
        try:
            entity_id = self.repository.apply_operation(op)
            return {"success": True, "entity_id": entity_id}
        except Exception as e:
            logger.warning(
                "patch_operation_failed",
                index=index,
                op=op.op.value,
                entity=op.entity.value,
                entity_id=op.id,
                error=str(e),
            )
            return {
                "success": False,
                "error": f"Operation {index} ({op.op.value} {op.entity.value}): {e}",
            }
