"""Retry policies for persistence calls."""

import logging

from tenacity import before_sleep_log, retry, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)


def create_custom_retry(
    max_attempts: int = 5,
    min_wait: float = 2,
    max_wait: float = 32,
    multiplier: float = 1,
):
    """Exponential backoff decorator that re-raises the last error."""
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=multiplier, min=min_wait, max=max_wait),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


# Database may still be coming up when the service starts
service_startup_retry = create_custom_retry()
