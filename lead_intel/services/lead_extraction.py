"""Extraction Orchestrator - dual (individual + complete) lead analysis per call."""

import logging
from typing import List, Optional

from lead_intel.core.config import get_settings
from lead_intel.core.database import CallRepository, call_repository
from lead_intel.integrations.openai_extraction import (
    StructuredExtractionClient,
    extraction_client,
)
from lead_intel.models import (
    CallRecord,
    LeadAnalysis,
    PipelineStage,
    PriorCall,
    ProcessingStatus,
    PromptOverrides,
    StageOutcome,
)

logger = logging.getLogger(__name__)

STAGE = PipelineStage.LEAD_EXTRACTION


class LeadExtractionOrchestrator:
    """
    Runs lead-quality extraction for a transcribed call.

    Produces the per-call (individual) analysis and the contact-level
    (complete) analysis over up to HISTORY_LIMIT earlier calls with the same
    (user, phone), and persists both together with the terminal status.
    Persistence is all-or-nothing: if any step fails, neither analysis is
    stored and the stage is marked failed.
    """

    def __init__(
        self,
        repository: Optional[CallRepository] = None,
        client: Optional[StructuredExtractionClient] = None,
        settings=None
    ):
        self.repository = repository or call_repository
        self.client = client or extraction_client
        self._settings = settings

    @property
    def settings(self):
        """Lazy load settings."""
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    async def extract(self, call_id: str) -> Optional[ProcessingStatus]:
        """
        Run lead extraction for a call.

        A no-op (returns None) unless the transcript stage is completed and
        no other worker holds the extraction stage.

        Args:
            call_id: Call record ID

        Returns:
            The terminal status written, or None if the call could not be claimed
        """
        if not await self.repository.claim_for_processing(call_id, STAGE):
            return None

        logger.info(f"Lead extraction started for call {call_id}")

        try:
            await self._process(call_id)
            return ProcessingStatus.COMPLETED
        except Exception as e:
            logger.error(f"Lead extraction failed for call {call_id}: {e}")
            written = await self.repository.write_stage_result(
                call_id,
                STAGE,
                StageOutcome.failed(str(e) or e.__class__.__name__)
            )
            if not written:
                logger.error(f"Could not record lead extraction failure for call {call_id}; row left in processing")
            return ProcessingStatus.FAILED

    async def _process(self, call_id: str) -> None:
        call = await self.repository.get_call(call_id)
        if call is None or not call.can_extract():
            raise ValueError(f"Transcript not available for call {call_id}")

        overrides = await self.repository.find_user_prompt_overrides(call.user_id)

        individual = await self.client.extract_individual(
            call.transcript_text,
            call_id,
            overrides.individual_prompt_id
        )

        prior_calls = await self._find_prior_calls(call)
        complete = await self.build_complete_analysis(call, individual, prior_calls, overrides)

        written = await self.repository.write_stage_result(
            call_id,
            STAGE,
            StageOutcome.completed(
                lead_individual_analysis=individual.to_record(),
                lead_complete_analysis=complete.to_record()
            )
        )
        if not written:
            raise RuntimeError("Failed to persist lead analysis")

        logger.info(
            f"Lead extraction completed for call {call_id} "
            f"({len(prior_calls)} previous calls, tag={complete.lead_status_tag})"
        )

    async def _find_prior_calls(self, call: CallRecord) -> List[PriorCall]:
        if not call.user_id or not call.phone_number:
            logger.info(f"Call {call.id} has no user/phone - treating as first call")
            return []

        return await self.repository.find_recent_prior_calls(
            call.user_id,
            call.phone_number,
            call.id,
            limit=self.settings.HISTORY_LIMIT
        )

    async def build_complete_analysis(
        self,
        call: CallRecord,
        individual: LeadAnalysis,
        prior_calls: List[PriorCall],
        overrides: Optional[PromptOverrides] = None
    ) -> LeadAnalysis:
        """
        Build the contact-level analysis.

        With no earlier calls the individual analysis is reused. Otherwise the
        extraction service is called again with the call history, oldest
        first. The smart notification is always emptied: it is surfaced only
        through the per-call analysis.
        """
        if not prior_calls:
            logger.info(f"No previous calls for {call.id} - reusing individual analysis")
            return individual.without_smart_notification()

        # Each prior call keeps its transcript and analysis under one call number.
        chronological = [p for p in reversed(prior_calls) if p.transcript_text]
        previous_transcripts = [p.transcript_text for p in chronological]
        previous_analyses = [p.lead_individual_analysis for p in chronological]

        complete = await self.client.extract_complete(
            call.transcript_text,
            previous_transcripts,
            previous_analyses,
            call.id,
            (overrides or PromptOverrides()).complete_prompt_id
        )
        return complete.without_smart_notification()


# Singleton instance
lead_extraction_orchestrator = LeadExtractionOrchestrator()
