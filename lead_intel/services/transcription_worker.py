"""Transcription Worker - recording URL to persisted transcript."""

import asyncio
import logging
from typing import Optional

from lead_intel.core.config import get_settings
from lead_intel.core.database import CallRepository, call_repository
from lead_intel.core.errors import RecordingNotAvailableError
from lead_intel.core.retry import RetryConfig, execute_with_retry
from lead_intel.integrations.transcription import TranscriptionService, transcription_service
from lead_intel.models import PipelineStage, ProcessingStatus, StageOutcome

logger = logging.getLogger(__name__)

STAGE = PipelineStage.TRANSCRIPT

# 6 attempts, 2s doubling, capped at 20s. Only "not downloadable yet" is retried.
RECORDING_RETRY_CONFIG = RetryConfig(
    max_retries=5,
    base_delay=2.0,
    max_delay=20.0,
    backoff_multiplier=2.0,
    retryable_errors=lambda error: isinstance(error, RecordingNotAvailableError),
)


class TranscriptionWorker:
    """
    Claims a call's transcript stage, waits for the recording locator,
    transcribes it and records the outcome on the call row.

    Failures are persisted, never raised: callers observe the result only
    through transcript_status. Re-invoking is always safe because the claim
    only matches calls that are not already processing or completed.
    """

    def __init__(
        self,
        repository: Optional[CallRepository] = None,
        transcriber: Optional[TranscriptionService] = None,
        settings=None,
        retry_config: RetryConfig = RECORDING_RETRY_CONFIG
    ):
        self.repository = repository or call_repository
        self.transcriber = transcriber or transcription_service
        self._settings = settings
        self.retry_config = retry_config

    @property
    def settings(self):
        """Lazy load settings."""
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    async def wait_for_recording_url(self, call_id: str) -> Optional[str]:
        """
        Poll the call row until the recording webhook has stored a locator.

        Returns:
            The recording URL, or None once RECORDING_WAIT_TIMEOUT elapses
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.RECORDING_WAIT_TIMEOUT

        while True:
            call = await self.repository.get_call(call_id)
            if call and call.recording_url:
                return call.recording_url

            remaining = deadline - loop.time()
            if remaining <= 0:
                return None

            logger.debug(f"Recording URL not yet available for call {call_id}; polling")
            await asyncio.sleep(min(self.settings.RECORDING_POLL_INTERVAL, remaining))

    async def transcribe(self, call_id: str) -> Optional[ProcessingStatus]:
        """
        Transcribe a call's recording.

        Args:
            call_id: Call record ID

        Returns:
            The terminal status written, or None if the call could not be claimed
        """
        if not await self.repository.claim_for_processing(call_id, STAGE):
            return None

        logger.info(f"Transcription started for call {call_id}")

        try:
            return await self._process(call_id)
        except Exception as e:
            logger.exception(f"Transcription crashed for call {call_id}: {e}")
            await self._record_failure(call_id, f"Transcription failed: {e}")
            return ProcessingStatus.FAILED

    async def _process(self, call_id: str) -> ProcessingStatus:
        recording_url = await self.wait_for_recording_url(call_id)

        if not recording_url:
            wait = self.settings.RECORDING_WAIT_TIMEOUT
            await self._record_failure(call_id, f"Recording URL missing after {wait:g}s")
            return ProcessingStatus.FAILED

        result = await execute_with_retry(
            lambda: self.transcriber.transcribe_recording(recording_url),
            self.retry_config,
            label=f"Transcription for call {call_id}"
        )

        if not result.success:
            await self._record_failure(call_id, str(result.error))
            return ProcessingStatus.FAILED

        written = await self.repository.write_stage_result(
            call_id,
            STAGE,
            StageOutcome.completed(transcript_text=result.value)
        )
        if not written:
            await self._record_failure(call_id, "Failed to persist transcript")
            return ProcessingStatus.FAILED

        logger.info(
            f"Transcription completed for call {call_id} "
            f"({len(result.value)} chars, {result.attempts} attempt(s), {result.elapsed:.1f}s)"
        )
        return ProcessingStatus.COMPLETED

    async def _record_failure(self, call_id: str, error: str) -> None:
        logger.warning(f"Transcription failed for call {call_id}: {error}")
        written = await self.repository.write_stage_result(call_id, STAGE, StageOutcome.failed(error))
        if not written:
            logger.error(f"Could not record transcription failure for call {call_id}; row left in processing")


# Singleton instance
transcription_worker = TranscriptionWorker()
