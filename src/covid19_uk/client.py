from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Iterator
from typing import Protocol

from covid19_uk.config import ClientConfig
from covid19_uk.decode import decode_page, parse_body
from covid19_uk.errors import DecodeError, HttpStatusError, TooManyRequestsError
from covid19_uk.models import Page, Query, ResponseRecord
from covid19_uk.query import build_url, validate_query
from covid19_uk.transport import CancelToken, HttpTransport, TransportResponse

logger = logging.getLogger(__name__)

PageFetcher = Callable[[str, Query, CancelToken | None], Page]


class Transport(Protocol):
    def get(self, url: str, cancel: CancelToken | None = None) -> TransportResponse: ...


class CovidClient:
    """
    Client for the coronavirus.data.gov.uk ``/v1/data`` endpoint.

    Every call is a single round trip and keeps no state on the client, so one
    instance can be shared between threads. The transport owns the connection
    pool; ``close`` releases it.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: Transport | None = None,
        config: ClientConfig | None = None,
    ) -> None:
        if config is None:
            config = ClientConfig.from_env(base_url=base_url, timeout=timeout)
        else:
            overrides = {"base_url": base_url, "timeout": timeout}
            config = dataclasses.replace(
                config, **{k: v for k, v in overrides.items() if v is not None}
            )
        self.config = config
        self.transport = transport or HttpTransport(
            timeout=self.config.timeout, headers={"User-Agent": self.config.user_agent}
        )

    def request_url(self, query: Query, page: int = 1) -> str:
        validate_query(query)
        return build_url(self.config.base_url, query, page)

    def fetch(self, query: Query, cancel: CancelToken | None = None) -> Page:
        url = self.request_url(query)
        return self.fetch_url(url, query, cancel)

    def fetch_url(self, url: str, query: Query, cancel: CancelToken | None = None) -> Page:
        """Fetch one page by absolute URL (e.g. a ``next_url`` cursor)."""
        response = self.transport.get(url, cancel=cancel)
        if cancel is not None:
            cancel.raise_if_cancelled(url)
        check_status(response)
        if response.status_code == 204:
            logger.debug("No data for %s", url)
            return Page(current_url=url)

        page = decode_page(parse_body(response.body), query.metrics, base_url=response.url)
        if page.next_url is not None and page.next_url in (url, response.url):
            raise DecodeError("cursor points at the current page", path="pagination.next")
        return restrict_to_range(page, query)

    def iter_pages(self, query: Query, cancel: CancelToken | None = None) -> Iterator[Page]:
        url = self.request_url(query)
        return walk_pages(self.fetch_url, url, query, cancel)

    def fetch_paginated(
        self, query: Query, cancel: CancelToken | None = None
    ) -> Iterator[ResponseRecord]:
        """Lazily yield records from every page, requesting each page on demand."""
        return flatten(self.iter_pages(query, cancel))

    def close(self) -> None:
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> CovidClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def check_status(response: TransportResponse) -> None:
    status = response.status_code
    if 200 <= status < 300:
        return
    if status == 429:
        raise TooManyRequestsError(
            response.text, url=response.url, retry_after=_retry_after(response)
        )
    raise HttpStatusError(status, response.text, url=response.url)


def restrict_to_range(page: Page, query: Query) -> Page:
    # The filters grammar only supports date equality, so ranges are applied here.
    if query.single_day is not None or (query.date_from is None and query.date_to is None):
        return page
    kept = tuple(r for r in page.records if query.in_range(r.date))
    if len(kept) != len(page.records):
        logger.debug(
            "Dropped %d records outside %s..%s", len(page.records) - len(kept),
            query.date_from, query.date_to,
        )
    return dataclasses.replace(page, records=kept)


def walk_pages(
    fetch_url: PageFetcher, url: str | None, query: Query, cancel: CancelToken | None = None
) -> Iterator[Page]:
    while url is not None:
        if cancel is not None:
            cancel.raise_if_cancelled(url)
        page = fetch_url(url, query, cancel)
        yield page
        url = page.next_url
        if url is not None:
            logger.debug("Following pagination cursor %s", url)


def flatten(pages: Iterator[Page]) -> Iterator[ResponseRecord]:
    for page in pages:
        yield from page


def _retry_after(response: TransportResponse) -> float | None:
    for key, value in response.headers.items():
        if key.lower() == "retry-after":
            try:
                return float(value)
            except ValueError:
                return None
    return None
