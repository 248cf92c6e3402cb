"""Error tracking via Sentry."""

import logging
from typing import Any, Dict, Optional

import sentry_sdk

from lead_intel.core.config import get_settings

logger = logging.getLogger(__name__)


def init_error_tracking() -> bool:
    """Initialize Sentry when a DSN is configured."""
    settings = get_settings()
    if not settings.SENTRY_DSN:
        logger.info("Sentry DSN not configured - error tracking disabled")
        return False

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment="development" if settings.DEBUG else "production",
        traces_sample_rate=0.0,
    )
    logger.info("Sentry error tracking initialized")
    return True


def capture_failure(
    error: BaseException,
    error_type: str,
    tags: Optional[Dict[str, Any]] = None,
    context: Optional[Dict[str, Any]] = None
) -> None:
    """
    Report a final, non-recovered failure to the error tracker.

    Only call this once retries are exhausted; intermediate attempts are
    logged, not captured.
    """
    with sentry_sdk.new_scope() as scope:
        scope.set_level("error")
        scope.set_tag("error_type", error_type)
        for key, value in (tags or {}).items():
            scope.set_tag(key, "" if value is None else str(value))
        if context:
            scope.set_context(error_type, context)
        sentry_sdk.capture_exception(error)
