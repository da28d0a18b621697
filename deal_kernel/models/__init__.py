"""Deal Kernel data models."""

from deal_kernel.models.actions import (
    ActionCategory,
    ActionDefinition,
    ActionErrorKind,
    ActionFailure,
    ActionHandlerInput,
    ActionHandlerResult,
    ActionId,
    ContentResult,
    HandlerContext,
    JobRequestResult,
    NextActionCategory,
    PatchSetResult,
    PlanTier,
)
from deal_kernel.models.confidence import (
    ConfidenceRecord,
    DraftResponse,
    EditSeverity,
    GateDecision,
    GateVerdict,
    OutcomeEvent,
    OutcomeKind,
    ReviewItem,
    ReviewStatus,
)
from deal_kernel.models.deal import Deal, DealStage, Property, get_next_stages
from deal_kernel.models.jobs import (
    JOB_TYPE_CONFIG,
    Job,
    JobStatus,
    JobSubmission,
    JobType,
    JobTypeConfig,
    JobWatchState,
)
from deal_kernel.models.patchset import (
    ApplyResult,
    PatchConfidence,
    PatchEntity,
    PatchOperation,
    PatchOpKind,
    PatchSet,
    PatchSetValidation,
    PendingTimelineEvent,
)

__all__ = [
    "ActionCategory",
    "ActionDefinition",
    "ActionErrorKind",
    "ActionFailure",
    "ActionHandlerInput",
    "ActionHandlerResult",
    "ActionId",
    "ApplyResult",
    "ConfidenceRecord",
    "ContentResult",
    "Deal",
    "DealStage",
    "DraftResponse",
    "EditSeverity",
    "GateDecision",
    "GateVerdict",
    "HandlerContext",
    "JOB_TYPE_CONFIG",
    "Job",
    "JobRequestResult",
    "JobStatus",
    "JobSubmission",
    "JobType",
    "JobTypeConfig",
    "JobWatchState",
    "NextActionCategory",
    "OutcomeEvent",
    "OutcomeKind",
    "PatchConfidence",
    "PatchEntity",
    "PatchOperation",
    "PatchOpKind",
    "PatchSet",
    "PatchSetResult",
    "PatchSetValidation",
    "PendingTimelineEvent",
    "PlanTier",
    "Property",
    "ReviewItem",
    "ReviewStatus",
    "get_next_stages",
]
