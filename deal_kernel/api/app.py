"""
Deal Kernel API — FastAPI endpoints.

Exposes the kernel over REST for:
- Action catalog and recommendations
- Action execution against a deal
- PatchSet preview and apply
- Job submission, status, cancellation and execution
- Confidence gate evaluation and the review queue
- Feedback and per-situation thresholds
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, List, Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from deal_kernel.catalog.registry import (
    get_actions_by_category,
    get_actions_for_stage,
    get_all_actions,
    get_recommended_actions,
)
from deal_kernel.config import Settings, get_settings
from deal_kernel.gate.calibration import CalibrationEngine, CalibrationPolicy
from deal_kernel.gate.confidence import ConfidenceGate, SituationStore
from deal_kernel.gate.ledger import DecisionLedger
from deal_kernel.gate.review import ReviewError, ReviewItemNotFound, ReviewQueue
from deal_kernel.handlers.dispatcher import execute_action
from deal_kernel.jobs.orchestrator import JobOrchestrator
from deal_kernel.jobs.runner import InMemoryJobRunner, InvalidJobTransition, JobNotFoundError
from deal_kernel.logging_config import setup_logging
from deal_kernel.models.actions import (
    ActionCategory,
    ActionHandlerInput,
    ContentGenerator,
    JobRequestResult,
    NextActionCategory,
    PatchSetResult,
    PlanTier,
)
from deal_kernel.models.confidence import DraftResponse, EditSeverity
from deal_kernel.models.deal import DealStage
from deal_kernel.models.jobs import JobSubmission
from deal_kernel.models.patchset import PatchSet
from deal_kernel.patchset.applier import PatchSetApplier, PatchSetApplyError
from deal_kernel.records.store import (
    InMemoryRecordRepository,
    RecordNotFoundError,
    RecordRepository,
    load_handler_context,
)


# --- Request/Response Models ---

class ActionExecuteRequest(BaseModel):
    params: dict = {}
    user_id: Optional[str] = None


class DraftSubmitRequest(BaseModel):
    id: Optional[str] = None
    conversation_id: str
    situation: str
    confidence: float = Field(ge=0.0, le=1.0)
    suggested_response: str
    topics: List[str] = []
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class ApproveRequest(BaseModel):
    reviewer: str
    edited_response: Optional[str] = None
    edit_severity: Optional[EditSeverity] = None
    response_time_seconds: Optional[float] = None


class RejectRequest(BaseModel):
    reviewer: str
    reason: Optional[str] = None
    response_time_seconds: Optional[float] = None


class FeedbackRequest(BaseModel):
    situation: str
    draft_id: Optional[str] = None
    helpful: bool


class ThresholdUpdateRequest(BaseModel):
    threshold: int = Field(ge=0, le=100)
    user_id: Optional[str] = None


class AutoSendUpdateRequest(BaseModel):
    enabled: bool


def _to_draft(req: DraftSubmitRequest) -> DraftResponse:
    return DraftResponse(
        id=req.id or f"draft_{uuid4().hex[:12]}",
        conversation_id=req.conversation_id,
        situation=req.situation,
        confidence=req.confidence,
        suggested_response=req.suggested_response,
        topics=req.topics,
        created_at=req.created_at or datetime.utcnow(),
        expires_at=req.expires_at,
    )


# --- Application Factory ---

@asynccontextmanager
async def _lifespan(app: FastAPI):
    cfg = app.state.settings
    setup_logging(json_mode=cfg.log_json, level=cfg.log_level)
    yield


def create_app(
    settings: Optional[Settings] = None,
    repository: Optional[RecordRepository] = None,
    job_runner: Optional[InMemoryJobRunner] = None,
    ledger: Optional[DecisionLedger] = None,
    situations: Optional[SituationStore] = None,
    calibration_policy: Optional[CalibrationPolicy] = None,
    generator: Optional[ContentGenerator] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Deal Kernel API",
        description="Action proposals, job tracking and confidence-gated review",
        version="0.1.0-alpha",
        lifespan=_lifespan,
    )

    # Initialize components
    cfg = settings or get_settings()
    repo = repository if repository is not None else InMemoryRecordRepository()
    runner = job_runner or InMemoryJobRunner()
    dl = ledger or DecisionLedger(db_path=cfg.ledger_db_path)
    ss = situations or SituationStore.from_settings(cfg)
    calibration = CalibrationEngine(
        dl, ss, policy=calibration_policy, min_samples=cfg.min_samples_for_auto_adjust,
    )
    gate = ConfidenceGate(cfg, ss)
    queue = ReviewQueue(gate, calibration, expiry_minutes=cfg.review_expiry_minutes)
    applier = PatchSetApplier(repo)
    orchestrator = JobOrchestrator(runner, poll_interval=cfg.job_poll_interval_seconds)

    # Proposed PatchSets awaiting confirmation, by id
    proposals: Dict[str, PatchSet] = {}
    # Operation indices already committed by a partially failed apply
    apply_progress: Dict[str, List[int]] = {}

    # Store components on app state for access in endpoints
    app.state.settings = cfg
    app.state.repository = repo
    app.state.job_runner = runner
    app.state.ledger = dl
    app.state.situations = ss
    app.state.gate = gate
    app.state.review_queue = queue
    app.state.orchestrator = orchestrator
    app.state.proposals = proposals

    # === ACTION CATALOG ===

    @app.get("/actions")
    def list_actions(
        category: Optional[ActionCategory] = None,
        stage: Optional[DealStage] = None,
    ):
        """Catalog entries, optionally filtered by category and stage."""
        actions = get_all_actions()
        if category is not None:
            actions = [a for a in actions if a in get_actions_by_category(category)]
        if stage is not None:
            actions = [a for a in actions if a in get_actions_for_stage(stage)]
        return [a.model_dump(mode="json") for a in actions]

    @app.get("/actions/recommended")
    def recommended_actions(
        stage: DealStage,
        plan: PlanTier = PlanTier.STARTER,
        nba_category: Optional[NextActionCategory] = None,
        missing_info: Optional[List[str]] = Query(default=None),
    ):
        """Up to six actions for a deal in the given stage."""
        actions = get_recommended_actions(stage, plan, nba_category, missing_info)
        return [a.model_dump(mode="json") for a in actions]

    # === DEALS & ACTIONS ===

    @app.get("/deals/{deal_id}")
    def get_deal(deal_id: str):
        """Deal snapshot with its property, as handlers see it."""
        try:
            context = load_handler_context(repo, deal_id)
        except RecordNotFoundError:
            raise HTTPException(404, "Deal not found")
        return {
            "deal": context.deal.model_dump(mode="json"),
            "property": context.property.model_dump(mode="json") if context.property else None,
        }

    @app.post("/deals/{deal_id}/actions/{action_id}")
    async def run_action(deal_id: str, action_id: str, req: ActionExecuteRequest):
        """
        Execute an action. PatchSets are held for confirmation; job
        requests are submitted to the runner straight away.
        """
        try:
            context = load_handler_context(repo, deal_id, req.user_id, generator)
        except RecordNotFoundError:
            raise HTTPException(404, "Deal not found")

        result = execute_action(
            ActionHandlerInput(action_id=action_id, deal_id=deal_id, params=req.params),
            context,
        )
        response = {"result": result.model_dump(mode="json")}

        if isinstance(result, PatchSetResult):
            proposals[result.patch_set.patch_set_id] = result.patch_set
        elif isinstance(result, JobRequestResult):
            response["job_id"] = await orchestrator.submit(result.job)
        return response

    # === PATCH SETS ===

    @app.get("/patch-sets/{patch_set_id}")
    def get_patch_set(patch_set_id: str):
        """A proposed (or applied) PatchSet."""
        patch_set = proposals.get(patch_set_id)
        if patch_set is None:
            raise HTTPException(404, "PatchSet not found")
        return patch_set.model_dump(mode="json")

    @app.post("/patch-sets/{patch_set_id}/apply")
    def apply_patch_set(patch_set_id: str):
        """Human confirmed: commit the PatchSet."""
        patch_set = proposals.get(patch_set_id)
        if patch_set is None:
            raise HTTPException(404, "PatchSet not found")
        try:
            applied, report = applier.apply(
                patch_set, completed_ops=apply_progress.get(patch_set_id)
            )
        except PatchSetApplyError as e:
            raise HTTPException(409, str(e))
        if report.success:
            apply_progress.pop(patch_set_id, None)
        else:
            apply_progress[patch_set_id] = report.applied_op_indices
        proposals[patch_set_id] = applied
        return {
            "patch_set": applied.model_dump(mode="json"),
            "result": report.model_dump(mode="json"),
        }

    @app.get("/deals/{deal_id}/timeline")
    def get_timeline(deal_id: str):
        """Timeline entries created for a deal."""
        if not hasattr(repo, "get_timeline"):
            raise HTTPException(501, "Repository does not expose a timeline")
        return repo.get_timeline(deal_id)

    # === JOBS ===

    @app.post("/jobs")
    async def submit_job(submission: JobSubmission):
        """Queue a job directly."""
        job_id = await orchestrator.submit(submission)
        return {"job_id": job_id}

    @app.get("/jobs")
    def list_jobs(deal_id: Optional[str] = None):
        return [j.model_dump(mode="json") for j in runner.list_jobs(deal_id)]

    @app.get("/jobs/{job_id}")
    async def get_job(job_id: str):
        try:
            job = await runner.fetch_job(job_id)
        except JobNotFoundError:
            raise HTTPException(404, "Job not found")
        return {
            "job": job.model_dump(mode="json"),
            "cancellable": orchestrator.is_cancellable(job.job_type),
        }

    @app.post("/jobs/{job_id}/cancel")
    async def cancel_job(job_id: str):
        try:
            job = await orchestrator.cancel(job_id)
        except JobNotFoundError:
            raise HTTPException(404, "Job not found")
        except InvalidJobTransition as e:
            raise HTTPException(409, str(e))
        return job.model_dump(mode="json")

    @app.post("/jobs/{job_id}/run")
    async def run_job(job_id: str):
        """Execute a queued job now (for testing and single-process setups)."""
        try:
            job = await runner.run(job_id)
        except JobNotFoundError:
            raise HTTPException(404, "Job not found")
        except InvalidJobTransition as e:
            raise HTTPException(409, str(e))
        return job.model_dump(mode="json")

    # === CONFIDENCE GATE ===

    @app.post("/gate/evaluate")
    def evaluate_draft(req: DraftSubmitRequest):
        """Dry-run the gate without queueing or recording anything."""
        decision = gate.evaluate(_to_draft(req))
        return decision.model_dump(mode="json")

    @app.post("/review/submit")
    def submit_draft(req: DraftSubmitRequest):
        """Gate a draft: auto-send it or place it in the review queue."""
        decision, item = queue.submit(_to_draft(req))
        return {
            "decision": decision.model_dump(mode="json"),
            "review_item": item.model_dump(mode="json") if item else None,
        }

    @app.get("/review/pending")
    def pending_reviews():
        return [i.model_dump(mode="json") for i in queue.pending()]

    @app.post("/review/{item_id}/approve")
    def approve_review(item_id: str, req: ApproveRequest):
        try:
            item = queue.approve(
                item_id,
                req.reviewer,
                edited_response=req.edited_response,
                edit_severity=req.edit_severity,
                response_time_seconds=req.response_time_seconds,
            )
        except ReviewItemNotFound:
            raise HTTPException(404, "Review item not found")
        except ReviewError as e:
            raise HTTPException(409, str(e))
        return item.model_dump(mode="json")

    @app.post("/review/{item_id}/reject")
    def reject_review(item_id: str, req: RejectRequest):
        try:
            item = queue.reject(
                item_id,
                req.reviewer,
                reason=req.reason,
                response_time_seconds=req.response_time_seconds,
            )
        except ReviewItemNotFound:
            raise HTTPException(404, "Review item not found")
        except ReviewError as e:
            raise HTTPException(409, str(e))
        return item.model_dump(mode="json")

    @app.post("/feedback")
    def record_feedback(req: FeedbackRequest):
        """Thumbs up / down on a sent response."""
        event = queue.record_feedback(req.situation, req.draft_id, req.helpful)
        return event.model_dump(mode="json")

    # === SITUATIONS ===

    @app.get("/situations/{situation}")
    def get_situation(situation: str):
        return ss.get_or_default(situation).model_dump(mode="json")

    @app.put("/situations/{situation}/threshold")
    def update_threshold(situation: str, req: ThresholdUpdateRequest):
        record = queue.set_threshold(situation, req.threshold, user_id=req.user_id)
        return record.model_dump(mode="json")

    @app.put("/situations/{situation}/auto-send")
    def update_auto_send(situation: str, req: AutoSendUpdateRequest):
        return ss.set_auto_send(situation, req.enabled).model_dump(mode="json")

    # === LEDGER ===

    @app.get("/ledger")
    def get_ledger(situation: Optional[str] = None, limit: int = 50):
        events = dl.query_by_situation(situation) if situation else dl.query_recent(limit)
        return [e.model_dump(mode="json") for e in events]

    @app.get("/ledger/verify")
    def verify_ledger():
        return {"integrity_valid": dl.verify_chain_integrity(), "total_events": dl.count()}

    return app


# Default application instance
app = create_app()
