"""Deal records — the read-only snapshots handlers reason over."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class DealStage(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    APPOINTMENT_SET = "appointment_set"
    ANALYZING = "analyzing"
    OFFER_SENT = "offer_sent"
    NEGOTIATING = "negotiating"
    UNDER_CONTRACT = "under_contract"
    CLOSED_WON = "closed_won"
    CLOSED_LOST = "closed_lost"


DEAL_STAGE_CONFIG: Dict[DealStage, str] = {
    DealStage.NEW: "New",
    DealStage.CONTACTED: "Contacted",
    DealStage.APPOINTMENT_SET: "Appointment Set",
    DealStage.ANALYZING: "Analyzing",
    DealStage.OFFER_SENT: "Offer Sent",
    DealStage.NEGOTIATING: "Negotiating",
    DealStage.UNDER_CONTRACT: "Under Contract",
    DealStage.CLOSED_WON: "Closed Won",
    DealStage.CLOSED_LOST: "Closed Lost",
}

# Standard forward transitions; the first entry is the suggested default.
_STAGE_GRAPH: Dict[DealStage, List[DealStage]] = {
    DealStage.NEW: [DealStage.CONTACTED, DealStage.CLOSED_LOST],
    DealStage.CONTACTED: [DealStage.APPOINTMENT_SET, DealStage.CLOSED_LOST],
    DealStage.APPOINTMENT_SET: [DealStage.ANALYZING, DealStage.CLOSED_LOST],
    DealStage.ANALYZING: [DealStage.OFFER_SENT, DealStage.CLOSED_LOST],
    DealStage.OFFER_SENT: [
        DealStage.NEGOTIATING,
        DealStage.UNDER_CONTRACT,
        DealStage.CLOSED_LOST,
    ],
    DealStage.NEGOTIATING: [DealStage.UNDER_CONTRACT, DealStage.CLOSED_LOST],
    DealStage.UNDER_CONTRACT: [DealStage.CLOSED_WON, DealStage.CLOSED_LOST],
    DealStage.CLOSED_WON: [],
    DealStage.CLOSED_LOST: [],
}


def get_next_stages(stage: DealStage) -> List[DealStage]:
    """Standard next stages for a deal, in suggestion order."""
    return list(_STAGE_GRAPH.get(DealStage(stage), []))


def stage_label(stage: DealStage) -> str:
    return DEAL_STAGE_CONFIG.get(DealStage(stage), str(stage))


class Deal(BaseModel):
    """A pipeline deal as seen by the assistant."""

    model_config = ConfigDict(frozen=True)

    id: str
    stage: DealStage
    next_action: Optional[str] = None
    next_action_due: Optional[str] = None
    strategy: Optional[str] = None          # e.g., "cash", "creative"
    lead_id: Optional[str] = None
    property_id: Optional[str] = None


class Property(BaseModel):
    """Property snapshot with the underwriting numbers we check."""

    model_config = ConfigDict(frozen=True)

    id: str
    address: Optional[str] = None
    arv: Optional[float] = None             # After repair value
    repair_cost: Optional[float] = None
    purchase_price: Optional[float] = None
