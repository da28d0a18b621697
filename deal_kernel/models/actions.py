"""
Action model — catalog entries, handler inputs and the handler result union.

An ActionHandlerResult is a tagged union on ``kind``. A successful result
carries exactly one payload (a PatchSet, a job submission or inline
content); a failure carries an error message and its classification.
"""

from enum import Enum
from typing import Annotated, Any, Callable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from deal_kernel.models.deal import Deal, DealStage, Property
from deal_kernel.models.jobs import JobSubmission, JobType
from deal_kernel.models.patchset import PatchSet


# Opaque text generation capability: (prompt_kind, variables) -> text.
ContentGenerator = Callable[[str, dict], str]


class ActionId(str, Enum):
    UPDATE_STAGE = "update_stage"
    SET_NEXT_ACTION = "set_next_action"
    CREATE_TASK = "create_task"
    ADD_NOTE = "add_note"
    SUMMARIZE_EVENT = "summarize_event"
    EXTRACT_FACTS = "extract_facts"
    RUN_UNDERWRITE_CHECK = "run_underwrite_check"
    UPDATE_ASSUMPTION = "update_assumption"
    GENERATE_SELLER_REPORT = "generate_seller_report"
    GENERATE_OFFER_PACKET = "generate_offer_packet"
    DRAFT_COUNTER_TEXT = "draft_counter_text"
    PREPARE_ESIGN_ENVELOPE = "prepare_esign_envelope"


class ActionCategory(str, Enum):
    RECORD_UPDATE = "record_update"
    ANALYSIS = "analysis"
    OFFER = "offer"
    DOCUMENT = "document"


class NextActionCategory(str, Enum):
    """Categories produced by the next-best-action engine."""
    CONTACT = "contact"
    FOLLOWUP = "followup"
    ANALYZE = "analyze"
    UNDERWRITE = "underwrite"
    OFFER = "offer"
    NEGOTIATE = "negotiate"
    CLOSE = "close"
    DOCUMENT = "document"


class PlanTier(str, Enum):
    STARTER = "starter"
    PRO = "pro"
    ELITE = "elite"

    @property
    def rank(self) -> int:
        return _PLAN_RANK[self]


_PLAN_RANK = {PlanTier.STARTER: 0, PlanTier.PRO: 1, PlanTier.ELITE: 2}


class ActionDefinition(BaseModel):
    """
    Catalog entry for one action the assistant can propose.

    Defined once at import time and never mutated. ``relevant_stages`` of
    None means the action applies at every stage.
    """

    model_config = ConfigDict(frozen=True)

    id: ActionId
    label: str
    description: str
    icon: str
    category: ActionCategory
    requires_confirmation: bool
    is_long_running: bool
    job_type: Optional[JobType] = None
    addresses_categories: List[NextActionCategory] = []
    relevant_stages: Optional[List[DealStage]] = None
    required_plan: PlanTier = PlanTier.STARTER


class ActionHandlerInput(BaseModel):
    """One invocation request. Params are validated by the handler, not here."""

    action_id: str                          # May be unknown; the dispatcher decides
    deal_id: str
    params: dict = {}


class HandlerContext(BaseModel):
    """Read-only snapshot handed to a handler for one invocation."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    deal: Deal
    property: Optional[Property] = None
    user_id: Optional[str] = None
    generator: Optional[Any] = None         # ContentGenerator, when available


class ActionErrorKind(str, Enum):
    VALIDATION = "validation"               # Required input missing or malformed
    PRECONDITION = "precondition"           # Record state cannot satisfy the action
    DISPATCH = "dispatch"                   # Unknown action id
    HANDLER = "handler"                     # Handler raised


class PatchSetResult(BaseModel):
    kind: Literal["patch_set"] = "patch_set"
    success: Literal[True] = True
    patch_set: PatchSet


class JobRequestResult(BaseModel):
    kind: Literal["job"] = "job"
    success: Literal[True] = True
    job: JobSubmission


class ContentResult(BaseModel):
    kind: Literal["content"] = "content"
    success: Literal[True] = True
    content: str


class ActionFailure(BaseModel):
    kind: Literal["failure"] = "failure"
    success: Literal[False] = False
    error: str
    error_kind: ActionErrorKind


ActionHandlerResult = Annotated[
    Union[PatchSetResult, JobRequestResult, ContentResult, ActionFailure],
    Field(discriminator="kind"),
]
