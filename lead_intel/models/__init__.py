"""Models package - All Pydantic models organized by domain."""

from lead_intel.models.enums import (
    ProcessingStatus,
    PipelineStage,
    CLAIMABLE_STATUSES,
)
from lead_intel.models.analysis import LeadAnalysis, AnalysisReasoning, AnalysisExtraction
from lead_intel.models.call import (
    CallRecord,
    PriorCall,
    PromptOverrides,
    StageOutcome,
    RecordingWebhookPayload,
    TriggerResponse,
    CallStatusResponse,
)

__all__ = [
    # Enums
    "ProcessingStatus",
    "PipelineStage",
    "CLAIMABLE_STATUSES",
    # Analysis models
    "LeadAnalysis",
    "AnalysisReasoning",
    "AnalysisExtraction",
    # Call models
    "CallRecord",
    "PriorCall",
    "PromptOverrides",
    "StageOutcome",
    # API models
    "RecordingWebhookPayload",
    "TriggerResponse",
    "CallStatusResponse",
]
