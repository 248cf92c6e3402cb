"""Pytest fixtures and configuration for Lead Intelligence Pipeline tests."""

import asyncio
import os
import pytest
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Generator, List, Optional
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

# Set test environment variables before importing app
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-key")
os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ.setdefault("OPENAI_INDIVIDUAL_PROMPT_ID", "pmpt_individual_default")
os.environ.setdefault("OPENAI_COMPLETE_PROMPT_ID", "pmpt_complete_default")
os.environ.setdefault("DEBUG", "true")

from lead_intel.core.config import Settings
from lead_intel.models import (
    CallRecord,
    LeadAnalysis,
    PipelineStage,
    PriorCall,
    ProcessingStatus,
    PromptOverrides,
    StageOutcome,
    CLAIMABLE_STATUSES,
)


# ===========================================
# In-Memory Call Store
# ===========================================

class InMemoryCallRepository:
    """
    Same surface as CallRepository, backed by a dict.

    The claim yields to the event loop once, then checks and sets the stage
    status without any further suspension point, so concurrent claims
    interleave the way separate workers would but only one can win.
    """

    def __init__(self, records: Optional[List[CallRecord]] = None):
        self.rows: Dict[str, CallRecord] = {record.id: record for record in (records or [])}
        self.overrides: Dict[str, PromptOverrides] = {}
        self.writes: List[tuple] = []
        self.claims: List[tuple] = []

    def add(self, record: CallRecord) -> CallRecord:
        self.rows[record.id] = record
        return record

    def _update(self, call_id: str, updates: Dict[str, Any]) -> None:
        row = self.rows[call_id].model_dump()
        row.update(updates)
        self.rows[call_id] = CallRecord(**row)

    async def claim_for_processing(self, call_id: str, stage: PipelineStage) -> bool:
        await asyncio.sleep(0)

        record = self.rows.get(call_id)
        if record is None:
            return False

        status = getattr(record, f"{stage.value}_status")
        if status not in CLAIMABLE_STATUSES:
            return False
        if stage == PipelineStage.LEAD_EXTRACTION and not record.can_extract():
            return False

        now = datetime.now(timezone.utc)
        self._update(call_id, {
            f"{stage.value}_status": ProcessingStatus.PROCESSING,
            f"{stage.value}_error": None,
            f"{stage.value}_started_at": now,
            f"{stage.value}_updated_at": now,
        })
        self.claims.append((call_id, stage))
        return True

    async def get_call(self, call_id: str) -> Optional[CallRecord]:
        record = self.rows.get(call_id)
        return record.model_copy(deep=True) if record else None

    async def find_recent_prior_calls(
        self,
        user_id: str,
        phone_number: str,
        exclude_id: str,
        limit: int = 5
    ) -> List[PriorCall]:
        matches = [
            record for record in self.rows.values()
            if record.user_id == user_id
            and record.phone_number == phone_number
            and record.id != exclude_id
            and record.transcript_status == ProcessingStatus.COMPLETED
        ]
        matches.sort(key=lambda record: record.created_at, reverse=True)
        return [
            PriorCall(
                id=record.id,
                transcript_text=record.transcript_text,
                lead_individual_analysis=record.lead_individual_analysis,
                created_at=record.created_at,
            )
            for record in matches[:limit]
        ]

    async def find_user_prompt_overrides(self, user_id: Optional[str]) -> PromptOverrides:
        return self.overrides.get(user_id, PromptOverrides())

    async def write_stage_result(
        self,
        call_id: str,
        stage: PipelineStage,
        outcome: StageOutcome
    ) -> bool:
        if call_id not in self.rows:
            return False

        now = datetime.now(timezone.utc)
        updates: Dict[str, Any] = {
            f"{stage.value}_status": outcome.status,
            f"{stage.value}_error": outcome.error,
            f"{stage.value}_updated_at": now,
        }
        if outcome.status == ProcessingStatus.COMPLETED:
            updates[f"{stage.value}_completed_at"] = now
        updates.update(outcome.payload)

        self._update(call_id, updates)
        self.writes.append((call_id, stage, outcome.status))
        return True

    async def set_recording_url(self, call_id: str, recording_url: str) -> bool:
        if call_id not in self.rows:
            return False
        self._update(call_id, {"recording_url": recording_url})
        return True

    async def health_check(self) -> bool:
        return True


# ===========================================
# Sample Data Fixtures
# ===========================================

@pytest.fixture
def sample_transcript() -> str:
    """Sample call transcript for testing analysis."""
    return """
Agent: Hi, this is Priya from Acme Solar. Am I speaking with Rahul?
Customer: Yes, this is Rahul.
Agent: Thanks for your time, Rahul. You had asked about rooftop solar for your factory. Is that still a priority?
Customer: Yes, our electricity bills have doubled this year. We want something installed before summer.
Agent: Understood. Do you have a budget range in mind?
Customer: Around 15 to 20 lakh. Can you send me the pricing sheet?
Agent: Of course. Would you like a site survey and demo? How about tomorrow at 11am?
Customer: Kal 11 baje works. Send the details to rahul@example.com.
Agent: Perfect, I'll send the invite and pricing right away.
    """


@pytest.fixture
def sample_analysis_payload() -> Dict[str, Any]:
    """Sample structured analysis as returned by the extraction service."""
    return {
        "intent_level": "High",
        "intent_score": 9,
        "urgency_level": "High",
        "urgency_score": 8,
        "budget_constraint": "Moderate",
        "budget_score": 7,
        "fit_alignment": "Strong",
        "fit_score": 8,
        "engagement_health": "Healthy",
        "engagement_score": 8,
        "cta_pricing_clicked": "Yes",
        "cta_demo_clicked": "Yes",
        "cta_followup_clicked": "No",
        "cta_sample_clicked": "No",
        "cta_website_clicked": "No",
        "cta_escalated_to_human": "No",
        "total_score": 40,
        "lead_status_tag": "Hot",
        "demo_book_datetime": "2026-10-17T11:00:00Z",
        "transcript_summary": "Factory owner wants rooftop solar before summer; demo booked.",
        "reasoning": {
            "intent": "Explicitly asked for pricing",
            "urgency": "Wants installation before summer",
            "budget": "Stated 15-20 lakh",
            "fit": "Industrial rooftop",
            "engagement": "Responsive throughout",
            "cta_behavior": "Requested pricing and demo"
        },
        "extraction": {
            "name": "Rahul",
            "email_address": "rahul@example.com",
            "company_name": None,
            "smartnotification": "Hot lead, demo booked",
            "requirements": "Rooftop solar for factory",
            "custom_cta": "Send pricing sheet",
            "in_detail_summary": "Discussed bills, budget and a site survey."
        }
    }


@pytest.fixture
def sample_analysis(sample_analysis_payload) -> LeadAnalysis:
    """Sample analysis as a model."""
    return LeadAnalysis.model_validate(sample_analysis_payload)


@pytest.fixture
def transcribed_call(sample_transcript) -> CallRecord:
    """Call whose transcript is complete and whose lead extraction has not run."""
    return CallRecord(
        id="call_current",
        user_id="user_1",
        phone_number="+919876543210",
        recording_url="https://recordings.test/call_current.mp3",
        transcript_text=sample_transcript,
        transcript_status=ProcessingStatus.COMPLETED,
        lead_extraction_status=None,
        created_at=datetime(2026, 10, 16, 9, 30, tzinfo=timezone.utc),
    )


@pytest.fixture
def make_prior_calls(sample_analysis):
    """Factory for earlier, fully processed calls with the same contact."""
    def _make(count: int, base: Optional[datetime] = None) -> List[CallRecord]:
        base = base or datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)
        return [
            CallRecord(
                id=f"call_prior_{index}",
                user_id="user_1",
                phone_number="+919876543210",
                transcript_text=f"Transcript of prior call {index}",
                transcript_status=ProcessingStatus.COMPLETED,
                lead_extraction_status=ProcessingStatus.COMPLETED,
                lead_individual_analysis=sample_analysis,
                created_at=base + timedelta(days=index),
            )
            for index in range(1, count + 1)
        ]
    return _make


# ===========================================
# Settings / Repository Fixtures
# ===========================================

@pytest.fixture
def fast_settings() -> Settings:
    """Settings with short waits so polling tests finish quickly."""
    return Settings(
        OPENAI_API_KEY="sk-test",
        OPENAI_BASE_URL="https://openai.test/v1",
        OPENAI_MODEL=None,
        RECORDING_WAIT_TIMEOUT=0.05,
        RECORDING_POLL_INTERVAL=0.01,
        HISTORY_LIMIT=5,
    )


@pytest.fixture
def repository() -> InMemoryCallRepository:
    """Empty in-memory call store."""
    return InMemoryCallRepository()


# ===========================================
# Client Fixtures
# ===========================================

@pytest.fixture
def mock_repository():
    """Mock the call store used by the API routes."""
    with patch("lead_intel.api.webhooks.call_repository") as mock:
        mock.set_recording_url = AsyncMock(return_value=True)
        mock.get_call = AsyncMock(return_value=None)
        mock.health_check = AsyncMock(return_value=True)
        yield mock


@pytest.fixture
def mock_pipeline():
    """Mock the pipeline so background tasks do no real work."""
    with patch("lead_intel.api.webhooks.call_pipeline") as mock:
        mock.process_call = AsyncMock(return_value=None)
        mock.transcribe = AsyncMock(return_value=ProcessingStatus.COMPLETED)
        mock.extract = AsyncMock(return_value=ProcessingStatus.COMPLETED)
        yield mock


@pytest.fixture
def client(mock_repository, mock_pipeline) -> Generator[TestClient, None, None]:
    """Test client with the store and pipeline mocked."""
    from lead_intel.main import app
    with TestClient(app) as test_client:
        yield test_client


# ===========================================
# Pytest Configuration
# ===========================================

def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
