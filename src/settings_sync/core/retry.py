"""
Fixed-delay retry for HTTP calls to the settings server.

The server is polled every minute anyway, so a flat delay between attempts
is enough; there is no exponential backoff.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

import requests

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        retries: Retries after the first attempt (0 disables retrying)
        delay: Seconds to wait between attempts
    """
    retries: int = 10
    delay: float = 3.0


def call_with_retry(
    func: Callable[[], T],
    config: RetryConfig,
    retry_on: tuple[type[BaseException], ...] = (requests.RequestException,),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``func`` until it succeeds or retries run out.

    Args:
        func: Zero-argument callable performing one attempt
        config: Retry configuration
        retry_on: Exception types that trigger another attempt
        sleep: Sleep function (injected by tests)

    Returns:
        The value returned by the first successful attempt

    Raises:
        The last exception raised by ``func`` once retries are exhausted.
    """
    attempt = 0
    while True:
        try:
            return func()
        except retry_on as exc:
            if attempt >= config.retries:
                logger.warning(
                    "Giving up after %d attempts: %s", attempt + 1, exc
                )
                raise
            attempt += 1
            logger.debug(
                "Attempt %d failed (%s), retrying in %.1fs",
                attempt,
                exc,
                config.delay,
            )
            sleep(config.delay)
