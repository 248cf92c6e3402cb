"""Integrations module - External service connectors."""

from lead_intel.integrations.transcription import TranscriptionService, transcription_service
from lead_intel.integrations.openai_extraction import (
    StructuredExtractionClient,
    ExtractionContext,
    extraction_client,
)

__all__ = [
    "TranscriptionService",
    "transcription_service",
    "StructuredExtractionClient",
    "ExtractionContext",
    "extraction_client",
]
