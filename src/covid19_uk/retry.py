from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass

from covid19_uk.client import CovidClient, flatten, walk_pages
from covid19_uk.errors import HttpStatusError, NetworkError, TooManyRequestsError
from covid19_uk.models import Page, Query, ResponseRecord
from covid19_uk.transport import CancelToken

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    retries: int = 3
    backoff_factor: float = 1.2


def backoff_times(config: RetryConfig) -> Iterable[float]:
    delay = config.backoff_factor
    for _ in range(config.retries):
        yield delay
        delay *= config.backoff_factor


def is_retryable(exc: Exception) -> bool:
    if isinstance(exc, NetworkError):
        return not exc.cancelled
    if isinstance(exc, TooManyRequestsError):
        return True
    if isinstance(exc, HttpStatusError):
        return exc.status_code >= 500
    return False


class RetryingClient:
    """Opt-in wrapper that retries transient failures of a CovidClient, page by page."""

    def __init__(
        self,
        client: CovidClient,
        retry: RetryConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.retry = retry or RetryConfig()
        self._sleep = sleep

    def fetch(self, query: Query, cancel: CancelToken | None = None) -> Page:
        url = self.client.request_url(query)
        return self.fetch_url(url, query, cancel)

    def fetch_url(self, url: str, query: Query, cancel: CancelToken | None = None) -> Page:
        for delay in backoff_times(self.retry):
            try:
                return self.client.fetch_url(url, query, cancel)
            except (NetworkError, HttpStatusError) as exc:
                if not is_retryable(exc):
                    raise
                if isinstance(exc, TooManyRequestsError) and exc.retry_after is not None:
                    delay = exc.retry_after
                    logger.warning("API rate limited; sleeping %s", delay)
                else:
                    logger.warning("Request for %s failed (%s); retrying in %s", url, exc, delay)
            if cancel is not None:
                cancel.raise_if_cancelled(url)
            self._sleep(delay)
        # Final attempt lets the last error propagate.
        return self.client.fetch_url(url, query, cancel)

    def iter_pages(self, query: Query, cancel: CancelToken | None = None) -> Iterator[Page]:
        url = self.client.request_url(query)
        return walk_pages(self.fetch_url, url, query, cancel)

    def fetch_paginated(
        self, query: Query, cancel: CancelToken | None = None
    ) -> Iterator[ResponseRecord]:
        return flatten(self.iter_pages(query, cancel))
