"""Speech-to-text integration: recording download + Whisper transcription."""

import logging
from typing import Optional, Tuple
from urllib.parse import urlparse
import httpx

from lead_intel.core.config import get_settings
from lead_intel.core.errors import (
    ConfigurationError,
    OperationTimeoutError,
    PermanentUpstreamError,
    PipelineError,
    RecordingNotAvailableError,
    TransientUpstreamError,
)

logger = logging.getLogger(__name__)

NOT_YET_AVAILABLE_STATUSES = (403, 404)
TRANSIENT_STATUSES = (429, 500, 502, 503, 504)
RECORDING_NOT_FOUND_MARKER = "Recording not found"


def classify_http_failure(operation: str, status_code: int, body: str) -> PipelineError:
    """
    Turn a failed HTTP response into a tagged pipeline error.

    403/404 and an explicit "Recording not found" body mean the recording has
    not propagated yet, not that it is permanently gone.
    """
    message = f"{operation} failed: status {status_code} {body[:200]}".strip()

    if status_code in NOT_YET_AVAILABLE_STATUSES or RECORDING_NOT_FOUND_MARKER in body:
        return RecordingNotAvailableError(message, status_code=status_code)
    if status_code in TRANSIENT_STATUSES:
        return TransientUpstreamError(message, status_code=status_code)
    return PermanentUpstreamError(message, status_code=status_code)


class TranscriptionService:
    """
    Service for turning a recording URL into transcript text.

    Downloads the audio, then sends it to the OpenAI transcription endpoint.
    All failures are raised as classified PipelineError subclasses.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        """Initialize service with settings."""
        self._settings = None
        self._transport = transport

    @property
    def settings(self):
        """Lazy load settings."""
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.TRANSCRIPTION_TIMEOUT,
            follow_redirects=True,
            transport=self._transport
        )

    def _recording_auth(self) -> Optional[Tuple[str, str]]:
        if self.settings.RECORDING_AUTH_ID and self.settings.RECORDING_AUTH_TOKEN:
            return (self.settings.RECORDING_AUTH_ID, self.settings.RECORDING_AUTH_TOKEN)
        return None

    async def download_recording(self, recording_url: str) -> Tuple[bytes, str]:
        """
        Download recording audio.

        Returns:
            (audio bytes, content type)
        """
        try:
            async with self._client() as client:
                response = await client.get(recording_url, auth=self._recording_auth())
        except httpx.TimeoutException:
            raise OperationTimeoutError("Recording download", self.settings.TRANSCRIPTION_TIMEOUT)
        except httpx.TransportError as e:
            raise TransientUpstreamError(f"Recording download failed: {e}")

        if response.status_code != 200:
            raise classify_http_failure("Recording download", response.status_code, response.text)

        if not response.content:
            raise RecordingNotAvailableError(f"{RECORDING_NOT_FOUND_MARKER}: empty body")

        content_type = response.headers.get("content-type", "audio/mpeg").split(";")[0]
        logger.info(f"Downloaded recording ({len(response.content)} bytes, {content_type})")
        return response.content, content_type

    async def transcribe_audio(self, audio: bytes, filename: str, content_type: str) -> str:
        """Send audio bytes to the transcription endpoint and return the text."""
        if not self.settings.OPENAI_API_KEY:
            raise ConfigurationError("OPENAI_API_KEY environment variable is required")

        headers = {"Authorization": f"Bearer {self.settings.OPENAI_API_KEY}"}

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.settings.OPENAI_BASE_URL}/audio/transcriptions",
                    headers=headers,
                    data={"model": self.settings.TRANSCRIPTION_MODEL, "response_format": "json"},
                    files={"file": (filename, audio, content_type)}
                )
        except httpx.TimeoutException:
            raise OperationTimeoutError("Transcription request", self.settings.TRANSCRIPTION_TIMEOUT)
        except httpx.TransportError as e:
            raise TransientUpstreamError(f"Transcription request failed: {e}")

        if response.status_code != 200:
            error = classify_http_failure("Transcription", response.status_code, response.text)
            # A 404 here is the API, not the recording.
            if isinstance(error, RecordingNotAvailableError):
                raise PermanentUpstreamError(error.message, status_code=response.status_code)
            raise error

        text = (response.json().get("text") or "").strip()
        if not text:
            raise PermanentUpstreamError("Transcription returned empty text")

        return text

    async def transcribe_recording(self, recording_url: str) -> str:
        """
        Download and transcribe a recording.

        Args:
            recording_url: Recording locator delivered by the telephony webhook

        Returns:
            Transcript text
        """
        audio, content_type = await self.download_recording(recording_url)
        filename = urlparse(recording_url).path.rsplit("/", 1)[-1] or "recording.mp3"
        text = await self.transcribe_audio(audio, filename, content_type)
        logger.info(f"Transcribed recording ({len(text)} chars)")
        return text


# Singleton instance
transcription_service = TranscriptionService()
