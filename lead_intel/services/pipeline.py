"""Call Pipeline - transcription followed by lead extraction."""

import logging
from typing import Optional

from lead_intel.models import ProcessingStatus
from lead_intel.services.transcription_worker import TranscriptionWorker, transcription_worker
from lead_intel.services.lead_extraction import (
    LeadExtractionOrchestrator,
    lead_extraction_orchestrator,
)

logger = logging.getLogger(__name__)


class CallPipeline:
    """
    Main orchestration for a recorded call.

    Runs the transcription worker, then the extraction orchestrator for the
    same call. Extraction is always attempted: its claim only succeeds once
    the transcript is completed, so a failed or skipped transcription makes
    it a no-op.
    """

    def __init__(
        self,
        transcriber: Optional[TranscriptionWorker] = None,
        extractor: Optional[LeadExtractionOrchestrator] = None
    ):
        self.transcriber = transcriber or transcription_worker
        self.extractor = extractor or lead_extraction_orchestrator

    async def process_call(self, call_id: str) -> None:
        """Process Flow: recording -> transcript -> lead intelligence."""
        transcript_status = await self.transcriber.transcribe(call_id)
        logger.info(f"Transcription for call {call_id}: {_describe(transcript_status)}")

        extraction_status = await self.extractor.extract(call_id)
        logger.info(f"Lead extraction for call {call_id}: {_describe(extraction_status)}")

    async def transcribe(self, call_id: str) -> Optional[ProcessingStatus]:
        return await self.transcriber.transcribe(call_id)

    async def extract(self, call_id: str) -> Optional[ProcessingStatus]:
        return await self.extractor.extract(call_id)


def _describe(status: Optional[ProcessingStatus]) -> str:
    return status.value if status else "skipped"


# Singleton instance
call_pipeline = CallPipeline()
