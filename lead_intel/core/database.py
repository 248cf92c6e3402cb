"""Supabase-backed call store for the processing pipeline."""

import logging
from typing import Optional, Dict, Any, List
from datetime import datetime, timezone
from supabase import create_client, Client
from supabase.lib.client_options import ClientOptions

from lead_intel.core.config import get_settings
from lead_intel.models import (
    CallRecord,
    PriorCall,
    PromptOverrides,
    StageOutcome,
    PipelineStage,
    ProcessingStatus,
    CLAIMABLE_STATUSES,
)

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CallRepository:
    """
    Read/write surface the pipeline uses on call records.

    Every method issues exactly one PostgREST statement. The conditional
    update in claim_for_processing is the only mutual-exclusion mechanism:
    the database row acts as the lock.
    """

    PRIOR_CALL_COLUMNS = "id, transcript_text, lead_individual_analysis, created_at"

    def __init__(self, client: Optional[Client] = None):
        """Initialize with an optional pre-built Supabase client."""
        self._client = client
        self._settings = None

    @property
    def settings(self):
        """Lazy load settings."""
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def client(self) -> Client:
        """Lazy initialization of Supabase client."""
        if self._client is None:
            if not self.settings.SUPABASE_URL or not self.settings.SUPABASE_KEY:
                raise ValueError("Supabase credentials not configured")

            self._client = create_client(
                self.settings.SUPABASE_URL,
                self.settings.SUPABASE_KEY,
                options=ClientOptions(
                    postgrest_client_timeout=30,
                    storage_client_timeout=30
                )
            )
            logger.info("Supabase client initialized")
        return self._client

    @property
    def calls(self):
        return self.client.table(self.settings.CALLS_TABLE)

    # ===========================================
    # Claim
    # ===========================================

    async def claim_for_processing(self, call_id: str, stage: PipelineStage) -> bool:
        """
        Atomically move a call's stage into processing.

        Matches only when the stage is unset, none or failed (and, for lead
        extraction, when the transcript is completed and non-empty).

        Returns:
            True if this caller now owns the stage, False if another worker
            does or the preconditions are not met
        """
        prefix = stage.value
        status_column = f"{prefix}_status"
        now = _now()
        claimable = ",".join(s.value for s in CLAIMABLE_STATUSES)

        try:
            query = (
                self.calls
                .update({
                    status_column: ProcessingStatus.PROCESSING.value,
                    f"{prefix}_error": None,
                    f"{prefix}_started_at": now,
                    f"{prefix}_updated_at": now,
                    "updated_at": now,
                })
                .eq("id", call_id)
                .or_(f"{status_column}.is.null,{status_column}.in.({claimable})")
            )

            if stage == PipelineStage.LEAD_EXTRACTION:
                query = (
                    query
                    .eq("transcript_status", ProcessingStatus.COMPLETED.value)
                    .not_.is_("transcript_text", "null")
                    .neq("transcript_text", "")
                )

            response = query.execute()

            if response.data:
                logger.info(f"Claimed {prefix} for call {call_id}")
                return True

            logger.info(f"Call {call_id} not claimable for {prefix} - skipping")
            return False

        except Exception as e:
            logger.error(f"Failed to claim {prefix} for call {call_id}: {e}")
            return False

    # ===========================================
    # Read Operations
    # ===========================================

    async def get_call(self, call_id: str) -> Optional[CallRecord]:
        """Fetch call record by ID."""
        try:
            response = (
                self.calls
                .select("*")
                .eq("id", call_id)
                .limit(1)
                .execute()
            )

            if response.data:
                return CallRecord(**response.data[0])

            logger.warning(f"Call not found: {call_id}")
            return None

        except Exception as e:
            logger.error(f"Failed to get call {call_id}: {e}")
            return None

    async def find_recent_prior_calls(
        self,
        user_id: str,
        phone_number: str,
        exclude_id: str,
        limit: int = 5
    ) -> List[PriorCall]:
        """
        Fetch the most recent earlier calls for the same (user, phone), newest first.

        Errors propagate: silently returning no history would make a repeat
        contact look like a first call.
        """
        response = (
            self.calls
            .select(self.PRIOR_CALL_COLUMNS)
            .eq("user_id", user_id)
            .eq("phone_number", phone_number)
            .neq("id", exclude_id)
            .eq("transcript_status", ProcessingStatus.COMPLETED.value)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )

        return [PriorCall(**row) for row in (response.data or [])]

    async def find_user_prompt_overrides(self, user_id: Optional[str]) -> PromptOverrides:
        """Fetch a user's custom prompt template ids; empty overrides on any failure."""
        if not user_id:
            return PromptOverrides()

        try:
            response = (
                self.client.table(self.settings.USERS_TABLE)
                .select("openai_individual_prompt_id, openai_complete_prompt_id")
                .eq("id", user_id)
                .limit(1)
                .execute()
            )

            if response.data:
                row = response.data[0]
                return PromptOverrides(
                    individual_prompt_id=row.get("openai_individual_prompt_id"),
                    complete_prompt_id=row.get("openai_complete_prompt_id"),
                )
            return PromptOverrides()

        except Exception as e:
            logger.warning(f"Failed to load prompt overrides for user {user_id}: {e}")
            return PromptOverrides()

    # ===========================================
    # Update Operations
    # ===========================================

    async def write_stage_result(
        self,
        call_id: str,
        stage: PipelineStage,
        outcome: StageOutcome
    ) -> bool:
        """Write a stage's terminal status, error and payload in one update."""
        prefix = stage.value
        now = _now()
        updates: Dict[str, Any] = {
            f"{prefix}_status": outcome.status.value,
            f"{prefix}_error": outcome.error,
            f"{prefix}_updated_at": now,
            "updated_at": now,
        }
        if outcome.status == ProcessingStatus.COMPLETED:
            updates[f"{prefix}_completed_at"] = now
        updates.update(outcome.payload)

        try:
            response = self.calls.update(updates).eq("id", call_id).execute()

            if response.data:
                logger.info(f"Updated call {call_id}: {prefix} -> {outcome.status.value}")
                return True

            logger.warning(f"Update returned no data for {call_id}")
            return False

        except Exception as e:
            logger.error(f"Failed to write {prefix} result for call {call_id}: {e}")
            return False

    async def set_recording_url(self, call_id: str, recording_url: str) -> bool:
        """Store the recording locator delivered by the telephony webhook."""
        try:
            response = (
                self.calls
                .update({"recording_url": recording_url, "updated_at": _now()})
                .eq("id", call_id)
                .execute()
            )
            return bool(response.data)

        except Exception as e:
            logger.error(f"Failed to set recording URL for call {call_id}: {e}")
            return False

    # ===========================================
    # Health Check
    # ===========================================

    async def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            self.calls.select("id").limit(1).execute()
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False


# Singleton instance
call_repository = CallRepository()
