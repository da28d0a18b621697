"""
Job Orchestrator — tracks a submitted job until it reaches a terminal state.

A JobWatch fetches the job once immediately, then polls on a fixed interval
until it observes succeeded, failed or cancelled. Each watch start gets a
fresh cancellation token; switching the watched id or stopping sets the old
token synchronously, so a fetch that was already in flight may complete but
its result is dropped.

The watch never raises. Fetch failures become ``JobWatchState.error`` and
end polling; the caller re-watches to retry. A listener that raises is
logged and does not stop polling.
"""

import asyncio
from typing import Awaitable, Callable, Optional, Set

import structlog

from deal_kernel.config import get_settings
from deal_kernel.jobs.runner import JobRunner
from deal_kernel.models.jobs import JOB_TYPE_CONFIG, Job, JobSubmission, JobType, JobWatchState

logger = structlog.get_logger()

JobFetcher = Callable[[str], Awaitable[Job]]
StateListener = Callable[[JobWatchState], None]

FETCH_ERROR_FALLBACK = "Failed to fetch job"


class JobWatch:
    """
    Polls one job id at a time.

    ``watch`` must be called from inside a running event loop; it schedules
    the polling task and returns immediately.
    """

    def __init__(
        self,
        fetcher: JobFetcher,
        poll_interval: float = 1.0,
        on_change: Optional[StateListener] = None,
    ):
        self._fetcher = fetcher
        self.poll_interval = poll_interval
        self._on_change = on_change
        self._state = JobWatchState()
        self._job_id: Optional[str] = None
        self._token: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        # Superseded polls still finishing an in-flight fetch
        self._retired_tasks: Set[asyncio.Task] = set()

    @property
    def state(self) -> JobWatchState:
        return self._state

    @property
    def job_id(self) -> Optional[str]:
        return self._job_id

    @property
    def is_polling(self) -> bool:
        return self._task is not None and not self._task.done()

    def watch(self, job_id: Optional[str]) -> None:
        """Start watching ``job_id``, or reset to idle when it is None."""
        self._invalidate()
        self._job_id = job_id

        if job_id is None:
            self._set_state(JobWatchState())
            return

        token = asyncio.Event()
        self._token = token
        self._set_state(JobWatchState(is_loading=True))
        self._task = asyncio.get_running_loop().create_task(self._poll(job_id, token))

    def stop(self) -> None:
        """Stop polling. The last observed job stays visible."""
        self._invalidate()
        if self._state.is_loading:
            self._set_state(self._state.model_copy(update={"is_loading": False}))

    async def wait(self) -> JobWatchState:
        """Wait for the current polling task to finish."""
        if self._task is not None:
            await self._task
        return self._state

    # --- Internal ---

    def _invalidate(self) -> None:
        if self._token is not None:
            self._token.set()
        if self._task is not None and not self._task.done():
            self._retired_tasks.add(self._task)
            self._task.add_done_callback(self._retired_tasks.discard)
        self._token = None
        self._task = None

    async def _poll(self, job_id: str, token: asyncio.Event) -> None:
        log = logger.bind(job_id=job_id)
        while True:
            try:
                job = await self._fetcher(job_id)
            except Exception as e:
                if token.is_set():
                    return
                log.warning("job_watch_fetch_failed", error=str(e))
                self._set_state(JobWatchState(
                    job=None,
                    is_loading=False,
                    error=str(e) or FETCH_ERROR_FALLBACK,
                ))
                return

            if token.is_set():
                log.debug("job_watch_result_discarded", status=job.status.value)
                return

            self._observe(job, log)
            if job.status.is_terminal:
                log.info("job_watch_terminal", status=job.status.value)
                return

            try:
                await asyncio.wait_for(token.wait(), timeout=self.poll_interval)
                return  # Cancelled while waiting
            except asyncio.TimeoutError:
                pass

    def _observe(self, job: Job, log) -> None:
        previous = self._state.job
        if (
            previous is not None
            and previous.id == job.id
            and not job.status.is_terminal
            and job.progress < previous.progress
        ):
            log.warning(
                "job_progress_regressed",
                previous_progress=previous.progress,
                progress=job.progress,
            )
        self._set_state(JobWatchState(job=job, is_loading=False, error=None))

    def _set_state(self, state: JobWatchState) -> None:
        self._state = state
        if self._on_change is None:
            return
        try:
            self._on_change(state)
        except Exception:
            logger.exception("job_watch_listener_failed", job_id=self._job_id)


class JobOrchestrator:
    """Submits jobs to a runner and hands out watches over them."""

    def __init__(self, runner: JobRunner, poll_interval: Optional[float] = None):
        self.runner = runner
        self.poll_interval = (
            poll_interval if poll_interval is not None
            else get_settings().job_poll_interval_seconds
        )

    async def submit(self, submission: JobSubmission) -> str:
        job_id = await self.runner.submit(submission)
        logger.info("job_requested", job_id=job_id, job_type=submission.job_type.value)
        return job_id

    def watch(self, job_id: Optional[str], on_change: Optional[StateListener] = None) -> JobWatch:
        watch = JobWatch(self.runner.fetch_job, self.poll_interval, on_change=on_change)
        watch.watch(job_id)
        return watch

    async def cancel(self, job_id: str) -> Job:
        # Cancellability is a display policy; the orchestrator passes every request on.
        return await self.runner.cancel(job_id)

    @staticmethod
    def is_cancellable(job_type: JobType) -> bool:
        """Whether a UI should offer cancellation for this job type."""
        config = JOB_TYPE_CONFIG.get(JobType(job_type))
        return config.cancellable if config is not None else False
