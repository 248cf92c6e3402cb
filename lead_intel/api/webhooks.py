"""Webhook API Routes - Entry points for recording notifications and manual triggers."""

import logging
from typing import Dict, Any
from fastapi import APIRouter, BackgroundTasks, HTTPException, Request

from lead_intel.core.database import call_repository
from lead_intel.models import (
    CallStatusResponse,
    RecordingWebhookPayload,
    TriggerResponse,
)
from lead_intel.services.pipeline import call_pipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhooks"])


# ===========================================
# Recording Webhook - Pipeline Entry Point
# ===========================================

@router.post(
    "/recording",
    response_model=TriggerResponse,
    status_code=202,
    summary="Process Recording-Ready Notification"
)
async def recording_webhook(
    request: Request,
    background_tasks: BackgroundTasks
) -> TriggerResponse:
    """
    Handle incoming recording webhook.

    Stores the recording locator, then returns 202 Accepted while
    transcription and lead extraction run in the background.
    """
    try:
        raw_data = await request.json()

        # Handle nested body structure
        if "body" in raw_data and isinstance(raw_data["body"], dict):
            raw_data = raw_data["body"]

        if not raw_data.get("call_id") or not raw_data.get("recording_url"):
            raise HTTPException(
                status_code=400,
                detail="Missing required fields: call_id, recording_url"
            )

        payload = RecordingWebhookPayload(**raw_data)
        logger.info(f"Received recording webhook for call {payload.call_id}")

        stored = await call_repository.set_recording_url(payload.call_id, payload.recording_url)
        if not stored:
            raise HTTPException(status_code=404, detail=f"Call not found: {payload.call_id}")

        background_tasks.add_task(_process_call_background, payload.call_id)

        return TriggerResponse(
            status="accepted",
            call_id=payload.call_id,
            message="Recording received - processing in background"
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Recording webhook error: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to process: {str(e)}")


async def _process_call_background(call_id: str):
    """Background task for the full pipeline."""
    try:
        await call_pipeline.process_call(call_id)
    except Exception as e:
        logger.error(f"Background processing failed for call {call_id}: {e}")


async def _transcribe_background(call_id: str):
    try:
        await call_pipeline.transcribe(call_id)
    except Exception as e:
        logger.error(f"Background transcription failed for call {call_id}: {e}")


async def _extract_background(call_id: str):
    try:
        await call_pipeline.extract(call_id)
    except Exception as e:
        logger.error(f"Background lead extraction failed for call {call_id}: {e}")


# ===========================================
# Manual Triggers
# ===========================================

pipeline_router = APIRouter(prefix="/pipeline", tags=["pipeline"])

STAGE_TASKS = {
    "process": (_process_call_background, "Full pipeline"),
    "transcribe": (_transcribe_background, "Transcription"),
    "extract": (_extract_background, "Lead extraction"),
}


@pipeline_router.post(
    "/calls/{call_id}/{action}",
    response_model=TriggerResponse,
    status_code=202,
    summary="Trigger a Pipeline Stage"
)
async def trigger_stage(
    call_id: str,
    action: str,
    background_tasks: BackgroundTasks
) -> TriggerResponse:
    """
    Schedule processing for a call.

    The stage claim decides whether any work happens, so triggering a call
    that is already processing or completed is accepted and ignored.
    """
    if action not in STAGE_TASKS:
        raise HTTPException(status_code=404, detail=f"Unknown action: {action}")

    task, label = STAGE_TASKS[action]
    logger.info(f"{label} triggered for call {call_id}")
    background_tasks.add_task(task, call_id)

    return TriggerResponse(
        status="accepted",
        call_id=call_id,
        message=f"{label} scheduled"
    )


# ===========================================
# Status Endpoint
# ===========================================

@pipeline_router.get(
    "/calls/{call_id}/status",
    response_model=CallStatusResponse,
    summary="Get Call Processing Status"
)
async def get_call_status(call_id: str) -> CallStatusResponse:
    """Get the current per-stage status of a call."""
    try:
        call = await call_repository.get_call(call_id)

        if not call:
            raise HTTPException(status_code=404, detail=f"Call not found: {call_id}")

        return CallStatusResponse(
            call_id=call.id,
            transcript_status=call.transcript_status,
            transcript_error=call.transcript_error,
            lead_extraction_status=call.lead_extraction_status,
            lead_extraction_error=call.lead_extraction_error,
            has_individual_analysis=call.lead_individual_analysis is not None,
            has_complete_analysis=call.lead_complete_analysis is not None
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Status check error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


# ===========================================
# Test Endpoints
# ===========================================

test_router = APIRouter(prefix="/test", tags=["testing"])


@test_router.get("/health")
async def health_check() -> Dict[str, Any]:
    """Health check endpoint."""
    database_ok = await call_repository.health_check()
    return {
        "status": "healthy" if database_ok else "degraded",
        "service": "lead-intel-pipeline",
        "database": database_ok
    }
