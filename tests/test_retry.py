import pytest
from conftest import BASE_URL, FakeTransport, load_fixture

from covid19_uk.client import CovidClient
from covid19_uk.errors import HttpStatusError, InvalidQuery, NetworkError
from covid19_uk.models import AreaType, Metric, Query
from covid19_uk.retry import RetryConfig, RetryingClient, backoff_times


def _retrying(transport: FakeTransport, retries: int = 3):
    sleeps: list[float] = []
    client = RetryingClient(
        CovidClient(base_url=BASE_URL, transport=transport),
        RetryConfig(retries=retries, backoff_factor=2.0),
        sleep=sleeps.append,
    )
    return client, sleeps


def test_backoff_times_grow_geometrically():
    assert list(backoff_times(RetryConfig(retries=3, backoff_factor=2.0))) == [2.0, 4.0, 8.0]


def test_server_errors_are_retried_until_success(england_query):
    transport = FakeTransport()
    transport.queue(status_code=503, body=b"busy").queue(status_code=502, body=b"busy")
    transport.queue(payload=load_fixture("nation_page.json"))
    client, sleeps = _retrying(transport)

    page = client.fetch(england_query)

    assert len(page) == 3
    assert sleeps == [2.0, 4.0]
    assert len(transport.calls) == 3


def test_retry_after_header_overrides_backoff(england_query):
    transport = FakeTransport()
    transport.queue(status_code=429, body=b"", headers={"Retry-After": "11"})
    transport.queue(payload=load_fixture("nation_page.json"))
    client, sleeps = _retrying(transport)

    client.fetch(england_query)

    assert sleeps == [11.0]


def test_client_errors_are_not_retried(england_query):
    transport = FakeTransport().queue(status_code=400, body=b"bad filter")
    client, sleeps = _retrying(transport)

    with pytest.raises(HttpStatusError):
        client.fetch(england_query)
    assert sleeps == []
    assert len(transport.calls) == 1


def test_cancellation_is_not_retried(england_query):
    transport = FakeTransport([NetworkError("Request cancelled", cancelled=True)])
    client, sleeps = _retrying(transport)

    with pytest.raises(NetworkError):
        client.fetch(england_query)
    assert sleeps == []


def test_last_error_propagates_after_retries(england_query):
    transport = FakeTransport([NetworkError("refused") for _ in range(3)])
    client, sleeps = _retrying(transport, retries=2)

    with pytest.raises(NetworkError, match="refused"):
        client.fetch(england_query)
    assert sleeps == [2.0, 4.0]
    assert len(transport.calls) == 3


def test_pages_are_retried_individually(england_query):
    transport = FakeTransport()
    transport.queue(payload=load_fixture("page_1.json"))
    transport.queue(status_code=500, body=b"oops")
    transport.queue(payload=load_fixture("page_2.json"))
    transport.queue(payload=load_fixture("page_3.json"))
    client, sleeps = _retrying(transport)

    records = list(client.fetch_paginated(england_query))

    assert len(records) == 6
    assert sleeps == [2.0]
    assert transport.calls[1] == transport.calls[2]


def test_invalid_query_is_raised_without_requests():
    transport = FakeTransport()
    client, _ = _retrying(transport)
    query = Query(area_type=AreaType.REGION, area_code="E92000001", metrics=[Metric.NEW_ADMISSIONS])

    with pytest.raises(InvalidQuery):
        client.iter_pages(query)
    assert transport.calls == []
