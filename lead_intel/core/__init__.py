"""Core module - Configuration, database, retry and error handling."""

from lead_intel.core.config import get_settings, Settings, get_effective_prompt_id
from lead_intel.core.database import CallRepository, call_repository
from lead_intel.core.retry import (
    RetryConfig,
    RetryResult,
    DEFAULT_RETRY_CONFIG,
    execute_with_retry,
    with_timeout,
)

__all__ = [
    "get_settings",
    "Settings",
    "get_effective_prompt_id",
    "CallRepository",
    "call_repository",
    "RetryConfig",
    "RetryResult",
    "DEFAULT_RETRY_CONFIG",
    "execute_with_retry",
    "with_timeout",
]
