"""Rate-limit retry policy with exponential backoff for vendor calls.

Only throttling signals (HTTP 429 by default) are retried here. Every other
failure is handed back immediately so the fallback orchestrator can decide
what to do with it.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass
class RetryConfig:
    """Configuration for rate-limit retry behavior."""

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    jitter: bool = True

    # Status codes treated as "rate limited"
    retry_status_codes: tuple[int, ...] = field(default_factory=lambda: (429,))


@dataclass
class RateLimitInfo:
    """Error envelope produced by the retry policy."""

    status: int
    message: str
    retry_after_ms: Optional[int] = None
    is_rate_limited: bool = False
    error: Optional[BaseException] = None


@dataclass
class RetryOutcome(Generic[T]):
    """Result of a retried operation: either data or the last error."""

    attempts: int
    total_delay_ms: int
    data: Optional[T] = None
    error: Optional[RateLimitInfo] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def calculate_backoff_delay(
    attempt: int,
    config: RetryConfig,
    retry_after_ms: Optional[int] = None,
) -> float:
    """Calculate delay in seconds before the next attempt.

    Args:
        attempt: Retry number (1-indexed)
        config: Retry configuration
        retry_after_ms: Server-provided Retry-After, if any

    Returns:
        Delay in seconds, capped at ``config.max_delay``
    """
    if retry_after_ms is not None:
        return min(retry_after_ms / 1000, config.max_delay)

    delay = config.initial_delay * (config.backoff_factor ** (attempt - 1))
    delay = min(delay, config.max_delay)

    if config.jitter:
        # Add jitter: up to 25% of the delay on top
        delay += random.uniform(0, delay * 0.25)

    return min(delay, config.max_delay)


def parse_retry_after(value: Optional[str]) -> Optional[int]:
    """Parse a Retry-After header (seconds or HTTP date) into milliseconds."""
    if not value:
        return None

    value = value.strip()
    if value.isdigit():
        return int(value) * 1000

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None

    delay_ms = int((retry_at.timestamp() - time.time()) * 1000)
    return delay_ms if delay_ms > 0 else None


def extract_error_info(error: BaseException) -> tuple[int, Optional[int], str]:
    """Pull (status, retry_after_ms, message) out of an arbitrary exception."""
    status = getattr(error, "status_code", None)
    if status is None:
        status = getattr(error, "status", None)
    if status is None:
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None)

    retry_after_ms = getattr(error, "retry_after_ms", None)
    message = str(error) or type(error).__name__

    return (status if isinstance(status, int) else 0), retry_after_ms, message


def is_rate_limit_status(status: int, config: RetryConfig) -> bool:
    """Check whether a status code signals throttling."""
    return status in config.retry_status_codes


def create_rate_limit_info(error: BaseException, config: RetryConfig) -> RateLimitInfo:
    """Wrap an exception in a RateLimitInfo envelope."""
    status, retry_after_ms, message = extract_error_info(error)
    return RateLimitInfo(
        status=status,
        message=message,
        retry_after_ms=retry_after_ms,
        is_rate_limited=is_rate_limit_status(status, config),
        error=error,
    )


def get_rate_limit_message(info: RateLimitInfo) -> str:
    """User-facing wording for a retry failure."""
    if info.status == 429:
        if info.retry_after_ms:
            seconds = -(-info.retry_after_ms // 1000)
            return f"Rate limit exceeded. Please wait {seconds} seconds before trying again."
        return "Rate limit exceeded. Please wait a moment before trying again."

    return info.message or "An unexpected error occurred."


class RateLimitRetry:
    """Retries a single async operation while the vendor keeps throttling."""

    def __init__(self, config: RetryConfig, sleep: Optional[SleepFunc] = None):
        """Initialize retry policy.

        Args:
            config: Retry configuration
            sleep: Awaitable sleep, injectable so tests skip real delays
        """
        self.config = config
        self._sleep = sleep or asyncio.sleep

    async def execute(
        self,
        func: Callable[[], Awaitable[T]],
        on_retry: Optional[Callable[[int, int, RateLimitInfo], None]] = None,
    ) -> RetryOutcome[T]:
        """Run ``func`` until it succeeds, fails for a non-throttling
        reason, or the retry budget runs out.

        Args:
            func: Zero-argument coroutine function making the vendor call
            on_retry: Observer called before each wait with
                (attempt_number, delay_ms, rate_limit_info)

        Returns:
            RetryOutcome with either ``data`` or ``error`` set
        """
        config = self.config
        total_delay = 0.0

        def _wait(retry_state: RetryCallState) -> float:
            error = retry_state.outcome.exception()
            _, retry_after_ms, _ = extract_error_info(error)
            return calculate_backoff_delay(
                retry_state.attempt_number, config, retry_after_ms
            )

        def _before_sleep(retry_state: RetryCallState) -> None:
            nonlocal total_delay
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            total_delay += delay
            info = create_rate_limit_info(retry_state.outcome.exception(), config)
            delay_ms = int(delay * 1000)

            logger.info(
                f"Rate limited, retry attempt {retry_state.attempt_number}/"
                f"{config.max_retries} in {delay_ms}ms (status={info.status})"
            )
            if on_retry:
                on_retry(retry_state.attempt_number, delay_ms, info)

        attempts = 0
        try:
            async for attempt_state in AsyncRetrying(
                stop=stop_after_attempt(config.max_retries + 1),
                wait=_wait,
                retry=retry_if_exception(
                    lambda e: is_rate_limit_status(extract_error_info(e)[0], config)
                ),
                before_sleep=_before_sleep,
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt_state:
                    attempts = attempt_state.retry_state.attempt_number
                    data = await func()
        except Exception as e:
            info = create_rate_limit_info(e, config)
            if info.is_rate_limited:
                logger.warning(
                    f"All {config.max_retries} retries exhausted. Last error: {e}"
                )
            return RetryOutcome(
                attempts=attempts,
                total_delay_ms=int(total_delay * 1000),
                error=info,
            )

        if attempts > 1:
            logger.info(
                f"Request succeeded after {attempts} attempts "
                f"(total delay {int(total_delay * 1000)}ms)"
            )

        return RetryOutcome(
            attempts=attempts,
            total_delay_ms=int(total_delay * 1000),
            data=data,
        )


async def with_rate_limit_retry(
    func: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[int, int, RateLimitInfo], None]] = None,
    sleep: Optional[SleepFunc] = None,
) -> RetryOutcome[T]:
    """Functional shortcut for ``RateLimitRetry(config).execute(func)``."""
    return await RateLimitRetry(config or RetryConfig(), sleep=sleep).execute(
        func, on_retry=on_retry
    )
