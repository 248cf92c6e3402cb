"""Lead analysis models - structured output of the extraction service."""

from typing import Optional, Union
from pydantic import BaseModel, ConfigDict, Field


CTAFlag = Union[bool, str, None]


class AnalysisReasoning(BaseModel):
    """Short free-text justification per scoring dimension."""
    model_config = ConfigDict(extra="allow")

    intent: Optional[str] = None
    urgency: Optional[str] = None
    budget: Optional[str] = None
    fit: Optional[str] = None
    engagement: Optional[str] = None
    cta_behavior: Optional[str] = None


class AnalysisExtraction(BaseModel):
    """Contact details pulled out of the conversation."""
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    email_address: Optional[str] = None
    company_name: Optional[str] = None
    smartnotification: Optional[str] = Field(
        None,
        description="4-5 word cross-call summary, surfaced only through notifications"
    )
    requirements: Optional[str] = None
    custom_cta: Optional[str] = None
    in_detail_summary: Optional[str] = None


class LeadAnalysis(BaseModel):
    """
    Lead-quality analysis for a call.

    The same shape is used for the per-call (individual) result and for the
    contact-level (complete) rollup across recent calls.
    """
    model_config = ConfigDict(extra="allow")

    intent_level: Optional[str] = None
    intent_score: Optional[float] = None
    urgency_level: Optional[str] = None
    urgency_score: Optional[float] = None
    budget_constraint: Optional[str] = None
    budget_score: Optional[float] = None
    fit_alignment: Optional[str] = None
    fit_score: Optional[float] = None
    engagement_health: Optional[str] = None
    engagement_score: Optional[float] = None

    cta_pricing_clicked: CTAFlag = None
    cta_demo_clicked: CTAFlag = None
    cta_followup_clicked: CTAFlag = None
    cta_sample_clicked: CTAFlag = None
    cta_website_clicked: CTAFlag = None
    cta_escalated_to_human: CTAFlag = None

    total_score: Optional[float] = Field(None, description="Sum of the five dimension scores")
    lead_status_tag: Optional[str] = Field(None, description="Hot / Warm / Cold")
    demo_book_datetime: Optional[str] = None
    transcript_summary: Optional[str] = None

    reasoning: AnalysisReasoning = Field(default_factory=AnalysisReasoning)
    extraction: AnalysisExtraction = Field(default_factory=AnalysisExtraction)

    def without_smart_notification(self) -> "LeadAnalysis":
        """Copy of this analysis with the smart-notification field emptied."""
        extraction = self.extraction.model_copy(update={"smartnotification": ""})
        return self.model_copy(update={"extraction": extraction}, deep=True)

    def to_record(self) -> dict:
        """JSON-ready dict for persistence."""
        return self.model_dump(mode="json")

