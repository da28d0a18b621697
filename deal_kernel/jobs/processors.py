"""
Job processors — the work behind each long-running job type.

These are prototype processors: they walk through their progress steps and
return canned results shaped like the real services' output. Production
deployments register processors that call the document, e-sign and AI
services instead.

A processor reports progress through the callback it is given and returns a
dict with ``result_json`` and optionally ``result_artifact_ids``. Raising
marks the job failed with the exception message.
"""

import asyncio
from datetime import datetime
from types import MappingProxyType
from typing import Awaitable, Callable, List, Mapping, Tuple
from uuid import uuid4

from deal_kernel.models.jobs import Job, JobType

ProgressCallback = Callable[[int, str], None]
JobProcessor = Callable[[Job, ProgressCallback, float], Awaitable[dict]]


async def _run_steps(
    progress: ProgressCallback, steps: List[Tuple[int, str]], step_delay: float
) -> None:
    for percent, message in steps:
        progress(percent, message)
        await asyncio.sleep(step_delay)


async def process_generate_seller_report(
    job: Job, progress: ProgressCallback, step_delay: float = 0.0
) -> dict:
    await _run_steps(progress, [
        (10, "Analyzing property data"),
        (30, "Calculating offer scenarios"),
        (60, "Generating comparison charts"),
        (90, "Finalizing report"),
    ], step_delay)

    report_url = f"https://reports.example.com/seller-report-{job.id}.pdf"
    share_token = f"share_{uuid4().hex[:16]}"
    return {
        "result_json": {
            "report_url": report_url,
            "share_token": share_token,
            "share_link": f"https://app.example.com/reports/{share_token}",
            "scenarios": ["cash", "seller_finance", "subject_to"],
            "generated_at": datetime.utcnow().isoformat(),
        },
        "result_artifact_ids": [report_url],
    }


async def process_organize_walkthrough(
    job: Job, progress: ProgressCallback, step_delay: float = 0.0
) -> dict:
    await _run_steps(progress, [
        (20, "Transcribing voice memos"),
        (50, "Analyzing photos for issues"),
        (80, "Organizing findings"),
    ], step_delay)

    return {
        "result_json": {
            "issues": [
                "Roof shows signs of wear - estimate 5-7 years remaining life",
                "Kitchen cabinets need replacement",
                "HVAC system appears old (20+ years)",
                "Foundation has minor cracks - should be inspected",
            ],
            "questions": [
                "When was the roof last replaced?",
                "Are there any known plumbing issues?",
                "Is the electrical panel up to code?",
            ],
            "scope_bullets": [
                "Full kitchen remodel - $25k-30k",
                "Roof replacement - $15k-18k",
                "HVAC replacement - $8k-10k",
                "Foundation repair - $3k-5k (pending inspection)",
                "Interior paint throughout - $5k",
            ],
            "estimated_total": 56000,
            "confidence": "medium",
        },
    }


async def process_extract_facts(
    job: Job, progress: ProgressCallback, step_delay: float = 0.0
) -> dict:
    await _run_steps(progress, [
        (30, "Analyzing conversation history"),
        (70, "Identifying key facts"),
    ], step_delay)

    return {
        "result_json": {
            "event_ids": list((job.input_json or {}).get("event_ids", [])),
            "seller_motivation": [
                "Need to move by end of month (stated 3x)",
                "Behind on mortgage payments",
                "Inherited property, doesn't want to manage",
            ],
            "property_details": [
                "Built in 1985",
                "Last renovated in 2010 (kitchen only)",
                "Has 2-car garage",
            ],
            "constraints": [
                "Wants to close in 30 days or less",
                "Won't do any repairs",
            ],
            "inconsistencies": [
                "Said property worth $250k, but comps show $220k-$230k",
            ],
        },
    }


async def process_generate_offer_packet(
    job: Job, progress: ProgressCallback, step_delay: float = 0.0
) -> dict:
    await _run_steps(progress, [
        (20, "Preparing offer terms"),
        (50, "Generating legal documents"),
        (80, "Creating final packet"),
    ], step_delay)

    packet_url = f"https://docs.example.com/offer-packet-{job.id}.pdf"
    params = job.input_json or {}
    return {
        "result_json": {
            "packet_url": packet_url,
            "offer_type": params.get("offer_type"),
            "offer_amount": params.get("offer_amount"),
            "documents_included": [
                "Purchase Agreement",
                "Seller Disclosure",
                "Financing Terms Sheet",
                "Inspection Contingency",
            ],
            "ready_for_signature": False,  # Needs human review first
            "generated_at": datetime.utcnow().isoformat(),
        },
        "result_artifact_ids": [packet_url],
    }


async def process_prepare_esign_envelope(
    job: Job, progress: ProgressCallback, step_delay: float = 0.0
) -> dict:
    await _run_steps(progress, [
        (25, "Mapping signature fields"),
        (50, "Creating envelope"),
        (75, "Adding recipients"),
    ], step_delay)

    envelope_id = f"env_{uuid4().hex[:12]}"
    return {
        "result_json": {
            "envelope_id": envelope_id,
            "document_type": (job.input_json or {}).get("document_type"),
            "recipients": ["seller", "buyer"],
            "status": "ready_to_send",
            "signing_url": f"https://esign.example.com/sign/{envelope_id}",
        },
    }


DEFAULT_PROCESSORS: Mapping[JobType, JobProcessor] = MappingProxyType({
    JobType.GENERATE_SELLER_REPORT: process_generate_seller_report,
    JobType.ORGANIZE_WALKTHROUGH: process_organize_walkthrough,
    JobType.EXTRACT_FACTS: process_extract_facts,
    JobType.GENERATE_OFFER_PACKET: process_generate_offer_packet,
    JobType.PREPARE_ESIGN_ENVELOPE: process_prepare_esign_envelope,
})
