"""
Exponential backoff with jitter for DynamoDB calls.

Stripe calls are not wrapped here; the Stripe SDK retries its own network
errors (``max_network_retries``).
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter_factor: float = 0.3  # up to 30% extra
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,)


DYNAMODB_RETRY_CONFIG = RetryConfig(max_retries=3, base_delay=0.1, max_delay=2.0, jitter_factor=0.2)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Backoff for a zero-based attempt number, capped, plus random jitter."""
    delay = min(config.base_delay * config.exponential_base**attempt, config.max_delay)
    return delay + random.uniform(0, delay * config.jitter_factor)


def retry_call(
    func: Callable[..., T],
    *args,
    config: Optional[RetryConfig] = None,
    should_retry: Optional[Callable[[Exception], bool]] = None,
    **kwargs,
) -> T:
    """
    Call func, retrying retryable failures with backoff.

    Args:
        func: Callable to invoke with *args/**kwargs
        config: Retry configuration (defaults to RetryConfig())
        should_retry: Narrows which retryable exceptions are retried;
            anything it rejects is raised immediately

    Raises:
        The last exception once retries are exhausted
    """
    config = config or RetryConfig()
    name = getattr(func, "__name__", repr(func))
    attempts = config.max_retries + 1

    attempt = 0
    while True:
        try:
            return func(*args, **kwargs)
        except config.retryable_exceptions as e:
            if should_retry is not None and not should_retry(e):
                raise
            if attempt + 1 >= attempts:
                logger.error(
                    f"{name} failed after {attempts} attempts: {e}",
                    extra={"function": name, "attempts": attempts, "error_type": type(e).__name__},
                )
                raise

            delay = calculate_delay(attempt, config)
            logger.warning(
                f"{name} attempt {attempt + 1}/{attempts} failed, retrying in {delay:.2f}s: {e}",
                extra={"function": name, "attempt": attempt + 1, "delay_seconds": delay},
            )
            time.sleep(delay)
            attempt += 1
