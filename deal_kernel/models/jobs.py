"""
Job model — tracked asynchronous work such as document generation.

State transitions:
  QUEUED -> RUNNING | FAILED | CANCELLED
  RUNNING -> SUCCEEDED | FAILED | CANCELLED
  Terminal states are absorbing.
"""

from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Set

from pydantic import BaseModel, ConfigDict, Field


class JobType(str, Enum):
    GENERATE_SELLER_REPORT = "generate_seller_report"
    ORGANIZE_WALKTHROUGH = "organize_walkthrough"
    EXTRACT_FACTS = "extract_facts"
    GENERATE_OFFER_PACKET = "generate_offer_packet"
    PREPARE_ESIGN_ENVELOPE = "prepare_esign_envelope"


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED)


VALID_TRANSITIONS: Dict[JobStatus, Set[JobStatus]] = {
    # A job can fail before it starts, e.g. when no processor exists for it.
    JobStatus.QUEUED: {JobStatus.RUNNING, JobStatus.FAILED, JobStatus.CANCELLED},
    JobStatus.RUNNING: {JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED},
    JobStatus.SUCCEEDED: set(),
    JobStatus.FAILED: set(),
    JobStatus.CANCELLED: set(),
}


class JobTypeConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    description: str
    estimated_duration_seconds: int
    cancellable: bool = True


JOB_TYPE_CONFIG: Mapping[JobType, JobTypeConfig] = MappingProxyType({
    JobType.GENERATE_SELLER_REPORT: JobTypeConfig(
        label="Seller Report",
        description="Options report comparing cash, creative and listing outcomes",
        estimated_duration_seconds=60,
    ),
    JobType.ORGANIZE_WALKTHROUGH: JobTypeConfig(
        label="Organize Walkthrough",
        description="Turn walkthrough photos and voice memos into issues and scope",
        estimated_duration_seconds=90,
    ),
    JobType.EXTRACT_FACTS: JobTypeConfig(
        label="Extract Facts",
        description="Pull stated facts from conversations and flag inconsistencies",
        estimated_duration_seconds=30,
    ),
    JobType.GENERATE_OFFER_PACKET: JobTypeConfig(
        label="Offer Packet",
        description="Offer document with terms and disclosures",
        estimated_duration_seconds=60,
    ),
    # The envelope is created with the e-sign provider as soon as the job
    # starts, so it cannot be withdrawn from here.
    JobType.PREPARE_ESIGN_ENVELOPE: JobTypeConfig(
        label="E-Sign Envelope",
        description="Envelope with signature field mapping",
        estimated_duration_seconds=45,
        cancellable=False,
    ),
})


class Job(BaseModel):
    """Status record for one asynchronous job, as reported by the job runner."""

    id: str
    deal_id: Optional[str] = None
    job_type: JobType
    status: JobStatus = JobStatus.QUEUED
    progress: int = Field(ge=0, le=100, default=0)
    input_json: Optional[dict] = None
    result_json: Optional[dict] = None
    result_artifact_ids: List[str] = []
    error_message: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class JobSubmission(BaseModel):
    """What a long-running handler asks the job runner to do."""

    job_type: JobType
    deal_id: Optional[str] = None
    input_json: dict = {}


class JobWatchState(BaseModel):
    """Observable state of a job watch."""

    job: Optional[Job] = None
    is_loading: bool = False
    error: Optional[str] = None
