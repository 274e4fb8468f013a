"""Retrying request helper for the live interval source.

Retried: 429, 5xx gateway/server statuses, timeouts and connection failures,
with exponential backoff and jitter. Everything else is handed back to the
caller, including 4xx cursor rejections.
"""

import logging

import httpx
import structlog
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from shared.config import settings

logger = structlog.get_logger()

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


class TransientHTTPError(Exception):
    """A response whose status says the request may succeed on retry."""

    def __init__(self, response: httpx.Response):
        self.status_code = response.status_code
        self.retry_after = response.headers.get("Retry-After")
        super().__init__(f"HTTP {response.status_code}: {response.text[:200]}")


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, (TransientHTTPError, httpx.TimeoutException, httpx.NetworkError))


@retry(
    retry=retry_if_exception(is_retryable),
    wait=wait_exponential_jitter(initial=1, max=settings.retry_max_wait_seconds, jitter=2),
    stop=stop_after_attempt(settings.retry_max_attempts),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def fetch_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    **kwargs,
) -> httpx.Response:
    response = await client.request(method, url, **kwargs)
    if response.status_code in RETRYABLE_STATUSES:
        raise TransientHTTPError(response)
    return response
