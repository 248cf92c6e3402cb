"""OpenAI Responses API integration for structured lead extraction."""

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import httpx
from pydantic import BaseModel, Field, ValidationError

from lead_intel.core.config import get_settings, get_effective_prompt_id
from lead_intel.core.diagnostics import capture_failure
from lead_intel.core.errors import (
    ConfigurationError,
    OperationTimeoutError,
    PermanentUpstreamError,
    PromptNotFoundError,
    ResponseParseError,
    TransientUpstreamError,
)
from lead_intel.core.retry import RetryConfig, execute_with_retry
from lead_intel.models import LeadAnalysis

logger = logging.getLogger(__name__)

TRANSIENT_STATUSES = (429, 500, 502, 503, 504)
RETRYABLE_STATUSES = (429, 500, 503)


def is_retryable_extraction_failure(error: BaseException) -> bool:
    """Rate limits, 500/503 and timeouts are retried; everything else is final."""
    if isinstance(error, OperationTimeoutError):
        return True
    return isinstance(error, TransientUpstreamError) and error.status_code in RETRYABLE_STATUSES


EXTRACTION_RETRY_CONFIG = RetryConfig(
    max_retries=3,
    base_delay=1.0,
    max_delay=8.0,
    backoff_multiplier=2.0,
    retryable_errors=is_retryable_extraction_failure,
)

RAW_JSON_INSTRUCTION = (
    "Return ONLY valid JSON. Do not include markdown, code fences, or commentary. "
    "If a field is unknown, use null. Ensure the JSON matches the expected schema."
)

RELATIVE_DATE_INSTRUCTION = (
    "Use this date and time information to calculate relative meeting times when "
    "analyzing the transcript. For example, if someone says \"kal\" (tomorrow) or "
    "\"parso\" (day after tomorrow), calculate the actual date based on the current "
    "date provided above."
)

CODE_FENCE = re.compile(r"```(?:json)?[ \t]*\n?", re.IGNORECASE)


class ExtractionContext(BaseModel):
    """
    Earlier calls with the same contact, oldest first.

    The lists are aligned by index: previous_analyses[i] belongs to the call
    whose transcript is previous_transcripts[i], and is None when that call
    has no stored analysis.
    """
    previous_transcripts: List[str] = Field(default_factory=list)
    previous_analyses: List[Optional[LeadAnalysis]] = Field(default_factory=list)

    def analysis_for(self, index: int) -> Optional[LeadAnalysis]:
        if index < len(self.previous_analyses):
            return self.previous_analyses[index]
        return None


def format_current_datetime(now: Optional[datetime] = None) -> str:
    """Human-readable timestamp, e.g. 'Friday, October 16, 2026 at 09:30:00 AM UTC'."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%A, %B %d, %Y at %I:%M:%S %p %Z").strip()


def build_context_header(now: Optional[datetime] = None) -> str:
    """Instruction block giving the model today's date for relative dates."""
    return f"Current Date and Time: {format_current_datetime(now)}\n\n{RELATIVE_DATE_INSTRUCTION}"


def _summarize(analysis: Optional[LeadAnalysis]) -> str:
    if analysis is None:
        return "No analysis available for this call."
    return json.dumps(analysis.model_dump(mode="json", exclude_none=True))


def strip_code_fences(text: str) -> str:
    """Remove markdown code-fence wrapping around a JSON payload."""
    return CODE_FENCE.sub("", text).strip()


def extract_output_text(payload: Dict[str, Any]) -> Optional[str]:
    """
    Locate the model's text answer in a Responses API payload.

    Looks for the first output item of type "message" (skipping reasoning
    traces) and its first text-bearing content block, falling back to the
    flat "output_text" field.
    """
    output = payload.get("output") or []
    message = next(
        (item for item in output if isinstance(item, dict) and item.get("type") == "message"),
        None
    )

    if message:
        for block in message.get("content") or []:
            if isinstance(block, dict) and block.get("type") in ("output_text", "text") and block.get("text"):
                return block["text"]

    alternative = payload.get("output_text")
    if isinstance(alternative, str) and alternative.strip():
        return alternative
    return None


def parse_response(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Parse the JSON object the model returned.

    Raises:
        ResponseParseError: when no text is present or it is not a JSON object
    """
    response_id = payload.get("id")

    try:
        text = extract_output_text(payload)
        if text is None:
            raise ValueError("No text content in OpenAI response")

        parsed = json.loads(strip_code_fences(text))
        if not isinstance(parsed, dict):
            raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
        return parsed

    except ValueError as e:
        logger.error(f"Failed to parse OpenAI response {response_id}: {e}")
        error = ResponseParseError(f"Failed to parse OpenAI response as JSON: {e}")
        capture_failure(
            error,
            "openai_response_parse_failed",
            tags={"response_id": response_id, "external_api": "openai"},
            context={"response_preview": json.dumps(payload, default=str)[:500]}
        )
        raise error


class StructuredExtractionClient:
    """
    Client for prompt-based JSON extraction over the OpenAI Responses API.

    Handles transient-failure retries, the prompt-not-found fallback to a
    default model, and response-shape normalization.
    """

    def __init__(
        self,
        retry_config: RetryConfig = EXTRACTION_RETRY_CONFIG,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """Initialize client with lazy-loaded settings."""
        self._settings = None
        self.retry_config = retry_config
        self._transport = transport

    @property
    def settings(self):
        """Lazy load settings."""
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    # ===========================================
    # Request Building
    # ===========================================

    def build_individual_request(
        self,
        prompt_id: str,
        transcript: str,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Request body for a single-call analysis."""
        content = (
            f"{build_context_header(now)}\n\n"
            "Analyze the following call transcript and return the results in JSON format:\n\n"
            f"{transcript}"
        )
        return {
            "prompt": {"id": prompt_id},
            "input": [{"role": "user", "content": content}],
        }

    def build_complete_request(
        self,
        prompt_id: str,
        transcript: str,
        context: ExtractionContext,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Request body for the contact-level analysis across prior calls."""
        previous = context.previous_transcripts
        sections = [
            build_context_header(now),
            "Analyze the complete call history and return the results in JSON format.",
        ]

        if previous:
            history = "\n".join(
                f"=== CALL {index} TRANSCRIPT ===\n{text}\n"
                for index, text in enumerate(previous, start=1)
            )
            sections.append(f"PREVIOUS CALL TRANSCRIPTS ({len(previous)} calls):\n{history}")
        else:
            sections.append("No previous calls.")

        if any(analysis is not None for analysis in context.previous_analyses):
            summaries = "\n".join(
                f"=== CALL {index + 1} ANALYSIS ===\n{_summarize(context.analysis_for(index))}"
                for index in range(len(previous))
            )
            sections.append(f"PREVIOUS CALL ANALYSES ({len(previous)} calls):\n{summaries}")

        sections.append(
            f"=== CURRENT CALL (Call {len(previous) + 1}) TRANSCRIPT ===\n{transcript}"
        )

        return {
            "prompt": {"id": prompt_id},
            "input": [{"role": "user", "content": "\n\n".join(sections)}],
        }

    # ===========================================
    # HTTP
    # ===========================================

    async def _post_responses(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Single Responses API call; failures are raised as classified errors."""
        if not self.settings.OPENAI_API_KEY:
            raise ConfigurationError("OPENAI_API_KEY environment variable is required")

        headers = {
            "Authorization": f"Bearer {self.settings.OPENAI_API_KEY}",
            "Content-Type": "application/json"
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.settings.OPENAI_TIMEOUT,
                transport=self._transport
            ) as client:
                response = await client.post(
                    f"{self.settings.OPENAI_BASE_URL}/responses",
                    json=body,
                    headers=headers
                )
        except httpx.TimeoutException:
            raise OperationTimeoutError("OpenAI Responses API", self.settings.OPENAI_TIMEOUT)
        except httpx.TransportError as e:
            raise TransientUpstreamError(f"OpenAI Responses API connection error: {e}")

        if response.is_success:
            data = response.json()
            logger.info(f"OpenAI Response API call successful: {data.get('id')} usage={data.get('usage')}")
            return data

        api_message = self._error_message(response)
        status = response.status_code

        prompt_id = (body.get("prompt") or {}).get("id")
        if (
            status == 404
            and prompt_id
            and "Prompt with id" in api_message
            and "not found" in api_message
        ):
            raise PromptNotFoundError(prompt_id, api_message)

        message = f"OpenAI API call failed: status {status} {api_message}".strip()
        if status in TRANSIENT_STATUSES:
            raise TransientUpstreamError(message, status_code=status)
        raise PermanentUpstreamError(message, status_code=status)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            error = response.json().get("error") or {}
            if isinstance(error, dict):
                return str(error.get("message") or "")
            return str(error)
        except ValueError:
            return response.text[:500]

    async def call_responses_api(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """
        Call the Responses API with retry and template fallback.

        Args:
            request: Request body carrying a prompt template id

        Returns:
            Raw Responses API payload
        """
        prompt_id = (request.get("prompt") or {}).get("id", "")
        logger.info(f"Calling OpenAI Response API with prompt {prompt_id[:20]}")

        result = await execute_with_retry(
            lambda: self._post_responses(request),
            self.retry_config,
            label="OpenAI Responses API"
        )

        if result.success:
            return result.value

        error = result.error
        if isinstance(error, PromptNotFoundError):
            return await self._call_with_fallback_model(request, error)

        self._capture_api_failure(error, result.attempts)
        raise error

    async def _call_with_fallback_model(
        self,
        request: Dict[str, Any],
        error: PromptNotFoundError
    ) -> Dict[str, Any]:
        """Resend a request without a template, forcing raw-JSON output."""
        fallback_model = self.settings.OPENAI_MODEL
        if not fallback_model:
            config_error = ConfigurationError(
                f"OpenAI prompt template not found ({error.prompt_id}). "
                "Set valid OPENAI_INDIVIDUAL_PROMPT_ID/OPENAI_COMPLETE_PROMPT_ID "
                "(or user prompt IDs), or set OPENAI_MODEL to enable fallback."
            )
            self._capture_api_failure(config_error, 1)
            raise config_error

        logger.warning(
            f"OpenAI prompt template {error.prompt_id} not found; "
            f"falling back to model {fallback_model}"
        )

        fallback = {key: value for key, value in request.items() if key != "prompt"}
        fallback["model"] = fallback_model
        fallback["input"] = [
            {"role": "system", "content": RAW_JSON_INSTRUCTION},
            *request.get("input", []),
        ]

        try:
            return await self._post_responses(fallback)
        except Exception as e:
            self._capture_api_failure(e, 1)
            raise

    def _capture_api_failure(self, error: BaseException, attempts: int) -> None:
        logger.error(f"OpenAI Response API call failed after {attempts} attempt(s): {error}")
        capture_failure(
            error,
            "openai_api_failure",
            tags={
                "status_code": getattr(error, "status_code", None),
                "external_api": "openai",
                "retries_exhausted": attempts > self.retry_config.max_retries,
            },
            context={"attempts": attempts, "max_retries": self.retry_config.max_retries}
        )

    # ===========================================
    # Extraction
    # ===========================================

    async def extract(
        self,
        prompt_id: str,
        transcript: str,
        context: Optional[ExtractionContext] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> LeadAnalysis:
        """
        Run one structured extraction.

        Args:
            prompt_id: Resolved prompt template id
            transcript: Current call transcript
            context: Prior calls for the contact-level analysis
            metadata: Optional request metadata (call id, user id)

        Returns:
            Parsed LeadAnalysis
        """
        if context is None:
            request = self.build_individual_request(prompt_id, transcript)
        else:
            request = self.build_complete_request(prompt_id, transcript, context)

        if metadata:
            request["metadata"] = {key: str(value) for key, value in metadata.items()}

        payload = await self.call_responses_api(request)
        parsed = parse_response(payload)

        try:
            return LeadAnalysis.model_validate(parsed)
        except ValidationError as e:
            error = ResponseParseError(f"OpenAI response did not match the analysis schema: {e}")
            capture_failure(error, "openai_response_parse_failed", tags={"response_id": payload.get("id")})
            raise error

    async def extract_individual(
        self,
        transcript: str,
        call_id: str,
        user_prompt_id: Optional[str] = None
    ) -> LeadAnalysis:
        """Per-call analysis using the user's template or the system default."""
        prompt_id = get_effective_prompt_id(user_prompt_id, "individual")
        logger.info(
            f"Extracting individual call data for {call_id} "
            f"({len(transcript)} chars, user prompt: {bool(user_prompt_id)})"
        )

        analysis = await self.extract(prompt_id, transcript, metadata={"call_id": call_id})

        logger.info(
            f"Individual call data extracted for {call_id}: "
            f"score={analysis.total_score} tag={analysis.lead_status_tag}"
        )
        return analysis

    async def extract_complete(
        self,
        transcript: str,
        previous_transcripts: List[str],
        previous_analyses: List[Optional[LeadAnalysis]],
        call_id: str,
        user_prompt_id: Optional[str] = None
    ) -> LeadAnalysis:
        """Contact-level analysis across the current and previous calls."""
        prompt_id = get_effective_prompt_id(user_prompt_id, "complete")
        logger.info(
            f"Extracting complete analysis for {call_id} "
            f"({len(previous_transcripts)} previous transcripts, "
            f"{sum(1 for a in previous_analyses if a is not None)} previous analyses)"
        )

        context = ExtractionContext(
            previous_transcripts=previous_transcripts,
            previous_analyses=previous_analyses
        )
        analysis = await self.extract(prompt_id, transcript, context, metadata={"call_id": call_id})

        logger.info(
            f"Complete analysis extracted for {call_id}: "
            f"score={analysis.total_score} tag={analysis.lead_status_tag}"
        )
        return analysis

    async def test_connection(self) -> bool:
        """Test OpenAI API connection."""
        try:
            await self.call_responses_api({
                "prompt": {"id": self.settings.OPENAI_INDIVIDUAL_PROMPT_ID},
                "input": [{"role": "user", "content": "Test connection"}],
            })
            return True
        except Exception as e:
            logger.error(f"OpenAI connection test failed: {e}")
            return False


# Singleton instance
extraction_client = StructuredExtractionClient()
