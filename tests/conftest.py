from __future__ import annotations

import json
from pathlib import Path

import pytest

from covid19_uk.client import CovidClient
from covid19_uk.models import AreaType, Metric, Query
from covid19_uk.transport import TransportResponse

FIXTURES = Path(__file__).parent / "fixtures"
BASE_URL = "https://api.example.test/v1/data"


def load_fixture(name: str) -> dict:
    with (FIXTURES / name).open("r", encoding="utf-8") as f:
        return json.load(f)


class FakeTransport:
    """Serves queued responses in order and records every requested URL."""

    def __init__(self, responses=()) -> None:
        self.responses = list(responses)
        self.calls: list[str] = []

    def queue(self, status_code: int = 200, payload=None, body: bytes | None = None, headers=None):
        if body is None:
            body = json.dumps(payload).encode("utf-8") if payload is not None else b""
        self.responses.append((status_code, body, headers or {}))
        return self

    def get(self, url: str, cancel=None) -> TransportResponse:
        self.calls.append(url)
        if cancel is not None:
            cancel.raise_if_cancelled(url)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        status_code, body, headers = item
        return TransportResponse(status_code=status_code, body=body, url=url, headers=headers)


class FakeResponse:
    def __init__(self, status_code=200, chunks=(b"{}",), url=BASE_URL, headers=None) -> None:
        self.status_code = status_code
        self.chunks = list(chunks)
        self.url = url
        self.headers = headers or {"Content-Type": "application/json"}
        self.closed = False

    def iter_content(self, chunk_size=1):
        yield from self.chunks

    def close(self) -> None:
        self.closed = True


class FakeSession:
    def __init__(self, result) -> None:
        self.result = result
        self.calls: list[dict] = []
        self.closed = False

    def get(self, url, **kwargs):
        self.calls.append({"url": url, **kwargs})
        if isinstance(self.result, Exception):
            raise self.result
        return self.result

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def client(transport: FakeTransport) -> CovidClient:
    return CovidClient(base_url=BASE_URL, transport=transport)


@pytest.fixture
def england_query() -> Query:
    return Query(
        area_type=AreaType.NATION,
        area_name="England",
        metrics=(Metric.NEW_CASES_BY_SPECIMEN_DATE, Metric.CUM_CASES_BY_PUBLISH_DATE),
    )
