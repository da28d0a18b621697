"""
Job Runner — accepts job submissions and advances them to a terminal state.

The kernel only reads job state through the ``JobRunner`` protocol. The
in-memory runner here executes the registered processors in-process and is
what tests and the HTTP surface use.

State transitions are checked against VALID_TRANSITIONS; terminal states
are absorbing.
"""

from datetime import datetime
from typing import Dict, List, Mapping, Optional, Protocol
from uuid import uuid4

import structlog

from deal_kernel.jobs.processors import DEFAULT_PROCESSORS, JobProcessor
from deal_kernel.models.jobs import (
    VALID_TRANSITIONS,
    Job,
    JobStatus,
    JobSubmission,
    JobType,
)

logger = structlog.get_logger()


class JobNotFoundError(Exception):
    """Raised when a job id is unknown to the runner."""
    pass


class InvalidJobTransition(Exception):
    """Raised when a status change is not allowed from the current state."""
    pass


class _JobCancelled(Exception):
    pass


class JobRunner(Protocol):
    """Interface for the external job runner."""

    async def submit(self, submission: JobSubmission) -> str:
        ...

    async def fetch_job(self, job_id: str) -> Job:
        ...

    async def cancel(self, job_id: str) -> Job:
        ...


class InMemoryJobRunner:
    """
    Runs jobs in-process with the prototype processors.

    ``run`` is driven explicitly (or through ``process_pending``); nothing
    runs in the background on its own.
    """

    def __init__(
        self,
        processors: Optional[Mapping[JobType, JobProcessor]] = None,
        step_delay: float = 0.0,
    ):
        self._jobs: Dict[str, Job] = {}
        self._processors = dict(DEFAULT_PROCESSORS if processors is None else processors)
        self.step_delay = step_delay

    # --- JobRunner protocol ---

    async def submit(self, submission: JobSubmission) -> str:
        job = Job(
            id=f"job_{uuid4().hex[:12]}",
            deal_id=submission.deal_id,
            job_type=submission.job_type,
            status=JobStatus.QUEUED,
            input_json=dict(submission.input_json),
            created_at=datetime.utcnow(),
        )
        self._jobs[job.id] = job
        logger.info("job_submitted", job_id=job.id, job_type=job.job_type.value, deal_id=job.deal_id)
        return job.id

    async def fetch_job(self, job_id: str) -> Job:
        return self.get(job_id)

    async def cancel(self, job_id: str) -> Job:
        job = self._transition(job_id, JobStatus.CANCELLED, completed_at=datetime.utcnow())
        logger.info("job_cancelled", job_id=job_id, job_type=job.job_type.value)
        return job

    # --- Execution ---

    async def run(self, job_id: str) -> Job:
        """Execute a queued job through its processor until it terminates."""
        job = self.get(job_id)
        processor = self._processors.get(job.job_type)
        if processor is None:
            return self._fail(job_id, f"No processor registered for job type: {job.job_type.value}")

        job = self._transition(job_id, JobStatus.RUNNING, started_at=datetime.utcnow())

        def report_progress(percent: int, message: str) -> None:
            current = self.get(job_id)
            if current.status == JobStatus.CANCELLED:
                raise _JobCancelled()
            self._jobs[job_id] = current.model_copy(update={"progress": percent})
            logger.debug("job_progress", job_id=job_id, progress=percent, message=message)

        try:
            output = await processor(job, report_progress, self.step_delay)
        except _JobCancelled:
            return self.get(job_id)
        except Exception as e:
            if self.get(job_id).status == JobStatus.CANCELLED:
                return self.get(job_id)
            return self._fail(job_id, str(e) or "Job processor failed")

        if self.get(job_id).status == JobStatus.CANCELLED:
            return self.get(job_id)

        job = self._transition(
            job_id,
            JobStatus.SUCCEEDED,
            progress=100,
            result_json=output.get("result_json"),
            result_artifact_ids=list(output.get("result_artifact_ids", [])),
            completed_at=datetime.utcnow(),
        )
        logger.info("job_succeeded", job_id=job_id, job_type=job.job_type.value)
        return job

    async def process_pending(self, limit: int = 5) -> List[Job]:
        """
        Run up to ``limit`` queued jobs, oldest first.

        Jobs cancelled while an earlier job in the batch was running are
        skipped and do not count toward the limit.
        """
        queued = sorted(
            (j for j in self._jobs.values() if j.status == JobStatus.QUEUED),
            key=lambda j: j.created_at,
        )
        finished: List[Job] = []
        for job in queued:
            if len(finished) >= limit:
                break
            if self.get(job.id).status != JobStatus.QUEUED:
                logger.debug("job_skipped", job_id=job.id, status=self.get(job.id).status.value)
                continue
            finished.append(await self.run(job.id))
        return finished

    # --- Queries ---

    def get(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def list_jobs(self, deal_id: Optional[str] = None) -> List[Job]:
        jobs = sorted(self._jobs.values(), key=lambda j: j.created_at, reverse=True)
        if deal_id is not None:
            jobs = [j for j in jobs if j.deal_id == deal_id]
        return jobs

    # --- Internal ---

    def _transition(self, job_id: str, status: JobStatus, **fields) -> Job:
        job = self.get(job_id)
        if status not in VALID_TRANSITIONS[job.status]:
            raise InvalidJobTransition(
                f"Job {job_id} cannot move from {job.status.value} to {status.value}"
            )
        updated = job.model_copy(update={"status": status, **fields})
        self._jobs[job_id] = updated
        return updated

    def _fail(self, job_id: str, message: str) -> Job:
        job = self._transition(
            job_id,
            JobStatus.FAILED,
            error_message=message,
            completed_at=datetime.utcnow(),
        )
        logger.warning("job_failed", job_id=job_id, job_type=job.job_type.value, error=message)
        return job
