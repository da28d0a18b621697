"""
Action Catalog — the closed set of actions the assistant may propose.

The catalog is built once at import time and exposed as a read-only
mapping. There is no registration API: new actions are added here, next to
their handler in ``deal_kernel.handlers.actions``.

All lookups are pure and deterministic.
"""

from types import MappingProxyType
from typing import List, Mapping, Optional

from deal_kernel.models.actions import (
    ActionCategory,
    ActionDefinition,
    ActionId,
    NextActionCategory,
    PlanTier,
)
from deal_kernel.models.deal import DealStage
from deal_kernel.models.jobs import JobType

MAX_RECOMMENDATIONS = 6

_S = DealStage
_N = NextActionCategory

_DEFINITIONS = [
    # --- Record updates ---
    ActionDefinition(
        id=ActionId.UPDATE_STAGE,
        label="Update Stage",
        description="Advance or change the deal pipeline stage",
        icon="git-branch",
        category=ActionCategory.RECORD_UPDATE,
        requires_confirmation=True,
        is_long_running=False,
        addresses_categories=[_N.CLOSE, _N.FOLLOWUP],
        relevant_stages=[
            _S.NEW, _S.CONTACTED, _S.APPOINTMENT_SET, _S.ANALYZING,
            _S.OFFER_SENT, _S.NEGOTIATING, _S.UNDER_CONTRACT,
        ],
    ),
    ActionDefinition(
        id=ActionId.SET_NEXT_ACTION,
        label="Set Next Action",
        description="Set or update the next action with optional due date",
        icon="target",
        category=ActionCategory.RECORD_UPDATE,
        requires_confirmation=True,
        is_long_running=False,
        addresses_categories=[_N.CONTACT, _N.FOLLOWUP],
    ),
    ActionDefinition(
        id=ActionId.CREATE_TASK,
        label="Create Task",
        description="Add a task to your inbox linked to this deal",
        icon="check-square",
        category=ActionCategory.RECORD_UPDATE,
        requires_confirmation=True,
        is_long_running=False,
        addresses_categories=[_N.DOCUMENT, _N.FOLLOWUP],
    ),
    ActionDefinition(
        id=ActionId.ADD_NOTE,
        label="Add Note",
        description="Add a structured note to the deal timeline",
        icon="message-square",
        category=ActionCategory.RECORD_UPDATE,
        requires_confirmation=False,
        is_long_running=False,
    ),
    ActionDefinition(
        id=ActionId.SUMMARIZE_EVENT,
        label="Summarize Event",
        description="Create an AI summary card for a timeline event",
        icon="file-text",
        category=ActionCategory.RECORD_UPDATE,
        requires_confirmation=False,
        is_long_running=False,
        required_plan=PlanTier.PRO,
    ),
    ActionDefinition(
        id=ActionId.EXTRACT_FACTS,
        label="Extract Facts",
        description="Pull stated facts from conversations and flag inconsistencies",
        icon="search",
        category=ActionCategory.RECORD_UPDATE,
        requires_confirmation=True,
        is_long_running=True,
        job_type=JobType.EXTRACT_FACTS,
        required_plan=PlanTier.PRO,
    ),
    # --- Analysis ---
    ActionDefinition(
        id=ActionId.RUN_UNDERWRITE_CHECK,
        label="Run Underwrite Check",
        description="Check for missing info, unusual numbers, and suggest defaults",
        icon="calculator",
        category=ActionCategory.ANALYSIS,
        requires_confirmation=False,
        is_long_running=False,
        addresses_categories=[_N.ANALYZE, _N.UNDERWRITE],
        relevant_stages=[_S.ANALYZING],
    ),
    ActionDefinition(
        id=ActionId.UPDATE_ASSUMPTION,
        label="Update Assumption",
        description="Change an underwriting assumption with rationale",
        icon="sliders",
        category=ActionCategory.ANALYSIS,
        requires_confirmation=True,
        is_long_running=False,
        addresses_categories=[_N.UNDERWRITE],
        relevant_stages=[_S.ANALYZING, _S.OFFER_SENT, _S.NEGOTIATING],
    ),
    # --- Offers ---
    ActionDefinition(
        id=ActionId.GENERATE_SELLER_REPORT,
        label="Generate Seller Report",
        description="Create transparent options report for the seller",
        icon="share-2",
        category=ActionCategory.OFFER,
        requires_confirmation=True,
        is_long_running=True,
        job_type=JobType.GENERATE_SELLER_REPORT,
        addresses_categories=[_N.OFFER, _N.DOCUMENT],
        relevant_stages=[_S.ANALYZING, _S.OFFER_SENT, _S.NEGOTIATING],
    ),
    ActionDefinition(
        id=ActionId.GENERATE_OFFER_PACKET,
        label="Generate Offer Packet",
        description="Create offer document with terms and disclosures",
        icon="file-plus",
        category=ActionCategory.OFFER,
        requires_confirmation=True,
        is_long_running=True,
        job_type=JobType.GENERATE_OFFER_PACKET,
        addresses_categories=[_N.OFFER],
        relevant_stages=[_S.ANALYZING],
    ),
    ActionDefinition(
        id=ActionId.DRAFT_COUNTER_TEXT,
        label="Draft Counter",
        description="Draft negotiation response text (copy-only)",
        icon="message-circle",
        category=ActionCategory.OFFER,
        requires_confirmation=False,
        is_long_running=False,
        addresses_categories=[_N.NEGOTIATE],
        relevant_stages=[_S.NEGOTIATING],
        required_plan=PlanTier.PRO,
    ),
    # --- Documents ---
    ActionDefinition(
        id=ActionId.PREPARE_ESIGN_ENVELOPE,
        label="Prepare E-Sign",
        description="Set up e-sign envelope with field mapping",
        icon="pen-tool",
        category=ActionCategory.DOCUMENT,
        requires_confirmation=True,
        is_long_running=True,
        job_type=JobType.PREPARE_ESIGN_ENVELOPE,
        addresses_categories=[_N.DOCUMENT, _N.CLOSE],
        relevant_stages=[_S.UNDER_CONTRACT],
        required_plan=PlanTier.ELITE,
    ),
]

ACTION_CATALOG: Mapping[str, ActionDefinition] = MappingProxyType(
    {d.id.value: d for d in _DEFINITIONS}
)


def get_action(action_id: str) -> Optional[ActionDefinition]:
    return ACTION_CATALOG.get(str(getattr(action_id, "value", action_id)))


def get_all_actions() -> List[ActionDefinition]:
    """Every action, in catalog order."""
    return list(ACTION_CATALOG.values())


def get_actions_by_category(category: ActionCategory) -> List[ActionDefinition]:
    return [a for a in ACTION_CATALOG.values() if a.category == category]


def get_actions_for_stage(stage: DealStage) -> List[ActionDefinition]:
    """Actions applicable at a stage. No declared stages means always applicable."""
    stage = DealStage(stage)
    return [
        a for a in ACTION_CATALOG.values()
        if a.relevant_stages is None or stage in a.relevant_stages
    ]


def get_actions_for_nba_category(category: NextActionCategory) -> List[ActionDefinition]:
    """Actions that address a next-best-action category."""
    category = NextActionCategory(category)
    return [a for a in ACTION_CATALOG.values() if category in a.addresses_categories]


def can_user_execute_action(action_id: str, plan: PlanTier) -> bool:
    """True iff the plan tier meets or exceeds the action's minimum tier."""
    action = get_action(action_id)
    if action is None:
        return False
    return PlanTier(plan).rank >= action.required_plan.rank


def get_recommended_actions(
    stage: DealStage,
    user_plan: PlanTier,
    nba_category: Optional[NextActionCategory] = None,
    missing_info: Optional[List[str]] = None,
) -> List[ActionDefinition]:
    """
    Up to six actions for the current deal context.

    Ordering:
      1. The underwrite check, when missing info is reported and it is a candidate
      2. Actions addressing the recommendation category
      3. Remaining stage-applicable actions, catalog order preserved
    Actions above the user's plan tier are never returned.
    """
    actions = get_actions_for_stage(stage)

    if nba_category is not None:
        category_actions = get_actions_for_nba_category(nba_category)
        if category_actions:
            actions = category_actions + [a for a in actions if a not in category_actions]

    actions = [a for a in actions if can_user_execute_action(a.id, user_plan)]

    if missing_info:
        underwrite = next(
            (a for a in actions if a.id == ActionId.RUN_UNDERWRITE_CHECK), None
        )
        if underwrite is not None:
            actions = [underwrite] + [a for a in actions if a is not underwrite]

    return actions[:MAX_RECOMMENDATIONS]
