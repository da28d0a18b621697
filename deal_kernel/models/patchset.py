"""
PatchSet — a named, immutable batch of proposed record mutations.

A PatchSet also lists the timeline entries that will be written once it is
applied. Nothing in a PatchSet exists in the record store until the
apply-executor commits it; the only field that ever changes after
construction is the applied/applied_at pair, and only the applier sets it.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict


class PatchOpKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class PatchEntity(str, Enum):
    DEAL = "Deal"
    DEAL_OFFER = "DealOffer"
    DEAL_ASSUMPTION = "DealAssumption"
    DEAL_EVIDENCE = "DealEvidence"
    DEAL_WALKTHROUGH = "DealWalkthrough"
    PROPERTY = "Property"
    LEAD = "Lead"
    TASK = "Task"


class PatchConfidence(str, Enum):
    HIGH = "high"
    MED = "med"
    LOW = "low"


class PatchOperation(BaseModel):
    """A single proposed mutation. Every operation must justify itself."""

    model_config = ConfigDict(frozen=True)

    op: PatchOpKind
    entity: PatchEntity
    id: Optional[str] = None                # Required for update/delete
    before: Optional[dict] = None
    after: Optional[dict] = None            # Required for create/update
    rationale: str
    source: Optional[str] = None            # Evidence reference, e.g. an event id
    field_path: Optional[str] = None        # Dotted path for partial updates


class PendingTimelineEvent(BaseModel):
    """A timeline entry that will be created once the PatchSet is applied."""

    model_config = ConfigDict(frozen=True)

    type: str                               # e.g., "stage_change", "note"
    title: str
    description: Optional[str] = None


class PatchSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    patch_set_id: str
    summary: str
    confidence: PatchConfidence = PatchConfidence.MED
    action_id: Optional[str] = None
    deal_id: Optional[str] = None
    ops: Tuple[PatchOperation, ...] = ()
    will_create_timeline_events: Tuple[PendingTimelineEvent, ...] = ()
    created_at: datetime
    applied: bool = False
    applied_at: Optional[datetime] = None


class PatchSetValidation(BaseModel):
    valid: bool
    errors: List[str] = []


class ApplyResult(BaseModel):
    """What the record repository reported for one PatchSet."""

    patch_set_id: str
    success: bool
    applied_ops: int
    failed_ops: int
    created_event_ids: List[str] = []
    updated_entity_ids: List[str] = []
    applied_op_indices: List[int] = []     # Every op applied so far, across retries
    errors: List[str] = []
