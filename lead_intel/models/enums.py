"""Enumeration types for the call pipeline."""

from enum import Enum


class ProcessingStatus(str, Enum):
    """Per-stage processing state stored on each call record."""
    NONE = "none"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PipelineStage(str, Enum):
    """Pipeline stages. The value is the column prefix on the call record."""
    TRANSCRIPT = "transcript"
    LEAD_EXTRACTION = "lead_extraction"


CLAIMABLE_STATUSES = (ProcessingStatus.NONE, ProcessingStatus.FAILED)
