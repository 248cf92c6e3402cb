"""Error taxonomy for the processing pipeline.

Upstream failures are classified once, where the raw collaborator error is
first observed, into one of these tagged exceptions. Retry decisions are made
on the tag and status code rather than on free-form text.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Classification tag carried by every pipeline error."""
    CONFIGURATION = "configuration"
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    NOT_YET_AVAILABLE = "not_yet_available"
    PARSE = "parse"
    TIMEOUT = "timeout"


class PipelineError(Exception):
    """Base class for classified pipeline failures."""

    kind: ErrorKind = ErrorKind.PERMANENT

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)

    @property
    def code(self) -> str:
        """Token matched by retry predicates."""
        if self.status_code is not None:
            return str(self.status_code)
        return self.kind.value


class ConfigurationError(PipelineError):
    """Missing credential, model or template. Never retried."""
    kind = ErrorKind.CONFIGURATION


class TransientUpstreamError(PipelineError):
    """Rate limits, 5xx responses and network hiccups."""
    kind = ErrorKind.TRANSIENT


class PermanentUpstreamError(PipelineError):
    """Upstream rejected the request in a way a retry will not fix."""
    kind = ErrorKind.PERMANENT


class PromptNotFoundError(PermanentUpstreamError):
    """The configured prompt template does not exist for this API key."""

    def __init__(self, prompt_id: str, message: Optional[str] = None):
        self.prompt_id = prompt_id
        super().__init__(
            message or f"Prompt with id '{prompt_id}' not found",
            status_code=404
        )


class ResponseParseError(PermanentUpstreamError):
    """The model answered but the payload is not the expected JSON."""
    kind = ErrorKind.PARSE


class RecordingNotAvailableError(PipelineError):
    """Recording locator or bytes are not present yet."""
    kind = ErrorKind.NOT_YET_AVAILABLE


class OperationTimeoutError(PipelineError):
    """An awaited operation exceeded its time budget."""
    kind = ErrorKind.TIMEOUT

    def __init__(self, label: str, timeout: float):
        self.label = label
        self.timeout = timeout
        super().__init__(f"{label} timed out after {timeout:g}s")


def error_code(error: BaseException) -> Optional[str]:
    """Return the classification token for an error, if it has one."""
    if isinstance(error, PipelineError):
        return error.code

    code = getattr(error, "code", None) or getattr(error, "errno", None)
    if code is not None:
        return str(code)
    return None
