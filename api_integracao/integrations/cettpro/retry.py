"""
Retry with exponential backoff for partner calls.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Tuple, Type

from api_integracao.integrations.cettpro.errors import (
    AuthenticationError,
    PartnerTransportError,
    RateLimitError,
    UpstreamServerError,
    partner_logger,
)


DEFAULT_RETRYABLE_ERRORS: Tuple[Type[Exception], ...] = (
    PartnerTransportError,
    RateLimitError,
    UpstreamServerError,
    AuthenticationError,
)


class RetryConfig:
    """Configuration for retry attempts."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter

    @classmethod
    def from_settings(cls, settings) -> "RetryConfig":
        return cls(
            max_attempts=settings.SYNC_MAX_RETRY_ATTEMPTS,
            base_delay=settings.SYNC_RETRY_BASE_DELAY,
            max_delay=settings.SYNC_RETRY_MAX_DELAY,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff delay before the retry following ``attempt`` (0-based)."""
        delay = min(
            self.base_delay * (self.exponential_base ** attempt),
            self.max_delay
        )
        if self.jitter:
            delay *= (0.5 + random.random())
        return delay


async def retry_on_error(
    func: Callable[..., Awaitable[Any]],
    retry_config: RetryConfig,
    retryable_errors: Tuple[Type[Exception], ...] = DEFAULT_RETRYABLE_ERRORS,
    *args,
    **kwargs
) -> Any:
    """
    Retry coroutine execution on specific errors.

    Args:
        func: Coroutine function to retry
        retry_config: Retry configuration
        retryable_errors: Tuple of error types that should trigger retry
        *args: Arguments for function
        **kwargs: Keyword arguments for function

    Returns:
        Function result

    Raises:
        The last retryable error once attempts are exhausted, or any
        non-retryable error immediately.
    """
    attempts = max(1, retry_config.max_attempts)

    for attempt in range(attempts):
        try:
            return await func(*args, **kwargs)
        except retryable_errors as e:
            if attempt == attempts - 1:
                raise

            delay = retry_config.delay_for(attempt)

            # Never retry sooner than the partner asked us to
            if isinstance(e, RateLimitError) and e.retry_after:
                delay = max(delay, e.retry_after)

            partner_logger.info(
                f"Retrying operation after error (attempt {attempt + 1}/{attempts}): {e}"
            )

            await asyncio.sleep(delay)
