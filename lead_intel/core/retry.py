"""Exponential backoff retry engine and timeout wrapper."""

import asyncio
import errno
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Collection, Generic, Optional, TypeVar, Union

from lead_intel.core.errors import OperationTimeoutError, error_code

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryPredicate = Callable[[BaseException], bool]
RetryableErrors = Union[None, Collection[str], RetryPredicate]

JITTER_RATIO = 0.1
TIMEOUT_TOKENS = ("timeout", "timed out", "etimedout")


@dataclass(frozen=True)
class RetryConfig:
    """Backoff settings for a single retried operation. Delays are in seconds."""
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    retryable_errors: RetryableErrors = None


@dataclass
class RetryResult(Generic[T]):
    """Outcome of execute_with_retry."""
    success: bool
    value: Optional[T] = None
    error: Optional[BaseException] = None
    attempts: int = 0
    elapsed: float = 0.0


DEFAULT_RETRY_CONFIG = RetryConfig()


def compute_backoff_delay(attempt: int, config: RetryConfig) -> float:
    """Raw (un-jittered) delay after the given 1-based failed attempt."""
    exponent = max(attempt - 1, 0)
    return min(config.max_delay, config.base_delay * (config.backoff_multiplier ** exponent))


def apply_jitter(delay: float) -> float:
    """Spread a delay by +/-10% so concurrent retries do not line up."""
    jitter = delay * JITTER_RATIO * (2 * random.random() - 1)
    return max(0.0, delay + jitter)


def _error_tokens(error: BaseException) -> list:
    tokens = []
    code = error_code(error)
    if code:
        tokens.append(code.lower())
    err_no = getattr(error, "errno", None)
    if isinstance(err_no, int) and err_no in errno.errorcode:
        tokens.append(errno.errorcode[err_no].lower())
    return tokens


def is_retryable(error: BaseException, retryable_errors: RetryableErrors) -> bool:
    """
    Decide whether a failed attempt should be retried.

    Args:
        error: The exception raised by the attempt
        retryable_errors: None (retry everything), a predicate, or a set of
            tokens matched against the error code, errno name or message

    Returns:
        True when another attempt is allowed
    """
    if retryable_errors is None:
        return True

    if callable(retryable_errors):
        return bool(retryable_errors(error))

    allowed = [str(token).lower() for token in retryable_errors]
    message = str(error).lower()

    # Timed-out operations retry only when a timeout token is configured.
    if "timed out" in message:
        return any(t in token for token in allowed for t in TIMEOUT_TOKENS)

    codes = _error_tokens(error)
    for token in allowed:
        if token in codes or token in message:
            return True
    return False


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
    label: str = "operation"
) -> RetryResult[T]:
    """
    Run an async operation with exponential backoff.

    The operation is attempted up to ``config.max_retries + 1`` times. Failures
    are never raised; they are reported through the returned RetryResult.

    Args:
        operation: Zero-argument coroutine factory
        config: Backoff settings
        label: Name used in log lines

    Returns:
        RetryResult with the value or the last error
    """
    started = time.monotonic()
    max_attempts = config.max_retries + 1
    last_error: Optional[BaseException] = None
    attempt = 0

    while attempt < max_attempts:
        attempt += 1
        try:
            value = await operation()
            if attempt > 1:
                logger.info(f"{label} succeeded on attempt {attempt}/{max_attempts}")
            return RetryResult(
                success=True,
                value=value,
                attempts=attempt,
                elapsed=time.monotonic() - started
            )
        except Exception as e:
            last_error = e

            if not is_retryable(e, config.retryable_errors):
                logger.warning(f"{label} failed with non-retryable error: {e}")
                break

            if attempt >= max_attempts:
                logger.warning(f"{label} failed after {attempt} attempts: {e}")
                break

            delay = apply_jitter(compute_backoff_delay(attempt, config))
            logger.info(
                f"{label} attempt {attempt}/{max_attempts} failed ({e}); "
                f"retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)

    return RetryResult(
        success=False,
        error=last_error,
        attempts=attempt,
        elapsed=time.monotonic() - started
    )


async def with_timeout(
    operation: Callable[[], Awaitable[T]],
    timeout: float,
    label: str = "operation"
) -> Any:
    """
    Await an operation, failing with OperationTimeoutError after ``timeout`` seconds.

    The timeout error is subject to the caller's retry predicate like any
    other failure; include a "timeout" token to retry it.
    """
    try:
        return await asyncio.wait_for(operation(), timeout=timeout)
    except asyncio.TimeoutError:
        raise OperationTimeoutError(label, timeout)
