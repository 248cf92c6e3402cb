"""Call record models - persisted per-call pipeline state."""

from typing import Any, Dict, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator

from lead_intel.models.enums import ProcessingStatus
from lead_intel.models.analysis import LeadAnalysis


class CallRecord(BaseModel):
    """Database record for a recorded call."""
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str = Field(..., description="Call record ID")
    user_id: Optional[str] = Field(None, description="Owning user")
    phone_number: Optional[str] = Field(None, description="Contact phone number")
    recording_url: Optional[str] = Field(None, description="Recording locator, set by webhook")

    # Transcription stage
    transcript_text: Optional[str] = Field(None, description="Transcript text")
    transcript_status: ProcessingStatus = Field(ProcessingStatus.NONE)
    transcript_error: Optional[str] = None
    transcript_started_at: Optional[datetime] = None
    transcript_completed_at: Optional[datetime] = None
    transcript_updated_at: Optional[datetime] = None

    # Lead extraction stage
    lead_extraction_status: ProcessingStatus = Field(ProcessingStatus.NONE)
    lead_extraction_error: Optional[str] = None
    lead_extraction_started_at: Optional[datetime] = None
    lead_extraction_completed_at: Optional[datetime] = None
    lead_extraction_updated_at: Optional[datetime] = None
    lead_individual_analysis: Optional[LeadAnalysis] = None
    lead_complete_analysis: Optional[LeadAnalysis] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("transcript_status", "lead_extraction_status", mode="before")
    @classmethod
    def _null_status_is_none(cls, value: Any) -> Any:
        return ProcessingStatus.NONE if value is None else value

    def has_transcript(self) -> bool:
        """Whether non-empty transcript text is stored."""
        return bool(self.transcript_text and self.transcript_text.strip())

    def can_extract(self) -> bool:
        """Whether lead extraction is allowed to start for this record."""
        return (
            self.transcript_status == ProcessingStatus.COMPLETED
            and self.has_transcript()
        )


class PriorCall(BaseModel):
    """An earlier call with the same contact, used as historical context."""
    model_config = ConfigDict(extra="ignore")

    id: str
    transcript_text: Optional[str] = None
    lead_individual_analysis: Optional[LeadAnalysis] = None
    created_at: Optional[datetime] = None


class PromptOverrides(BaseModel):
    """Per-user prompt template overrides."""
    individual_prompt_id: Optional[str] = None
    complete_prompt_id: Optional[str] = None


class StageOutcome(BaseModel):
    """Terminal result of a pipeline stage, written in a single update."""
    status: ProcessingStatus
    error: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def completed(cls, **payload: Any) -> "StageOutcome":
        return cls(status=ProcessingStatus.COMPLETED, payload=payload)

    @classmethod
    def failed(cls, error: str) -> "StageOutcome":
        return cls(status=ProcessingStatus.FAILED, error=error)


class RecordingWebhookPayload(BaseModel):
    """Incoming recording-ready notification."""
    call_id: str = Field(..., description="Call record ID")
    recording_url: str = Field(..., description="Where the audio can be downloaded")
    recording_duration_seconds: Optional[int] = Field(None, description="Recording length")


class TriggerResponse(BaseModel):
    """Response for trigger endpoints."""
    status: str
    call_id: str
    message: str


class CallStatusResponse(BaseModel):
    """Per-stage status for a call."""
    call_id: str
    transcript_status: ProcessingStatus
    transcript_error: Optional[str] = None
    lead_extraction_status: ProcessingStatus
    lead_extraction_error: Optional[str] = None
    has_individual_analysis: bool = False
    has_complete_analysis: bool = False
