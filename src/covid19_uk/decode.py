from __future__ import annotations

import json
from datetime import date
from typing import Any
from urllib.parse import urljoin

from covid19_uk.errors import DecodeError
from covid19_uk.models import AreaType, Metric, Page, ResponseRecord


def parse_body(body: bytes | str) -> Any:
    try:
        return json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DecodeError(f"Response body is not valid JSON: {exc}") from exc


def decode_page(payload: Any, metrics: tuple[Metric, ...], base_url: str) -> Page:
    """Turn a decoded ``/v1/data`` payload into a Page, keeping server order."""
    if not isinstance(payload, dict):
        raise DecodeError(f"expected an object, got {type(payload).__name__}", path="$")
    if "data" not in payload:
        raise DecodeError("missing required field", path="data")
    raw_records = payload["data"]
    if not isinstance(raw_records, list):
        raise DecodeError(f"expected an array, got {type(raw_records).__name__}", path="data")

    records = tuple(
        decode_record(item, metrics, path=f"data[{idx}]") for idx, item in enumerate(raw_records)
    )

    length = _optional_int(payload, "length")
    pagination = payload.get("pagination") or {}
    if not isinstance(pagination, dict):
        raise DecodeError("expected an object", path="pagination")

    return Page(
        records=records,
        length=len(records) if length is None else length,
        max_page_limit=_optional_int(payload, "maxPageLimit"),
        current_url=_cursor(pagination, "current", base_url),
        next_url=_cursor(pagination, "next", base_url),
        previous_url=_cursor(pagination, "previous", base_url),
        first_url=_cursor(pagination, "first", base_url),
        last_url=_cursor(pagination, "last", base_url),
    )


def decode_record(item: Any, metrics: tuple[Metric, ...], path: str = "record") -> ResponseRecord:
    if not isinstance(item, dict):
        raise DecodeError(f"expected an object, got {type(item).__name__}", path=path)

    raw_date = item.get("date")
    if raw_date is None:
        raise DecodeError("missing required field", path=f"{path}.date")
    if not isinstance(raw_date, str):
        raise DecodeError(f"expected a string, got {type(raw_date).__name__}", path=f"{path}.date")
    try:
        day = date.fromisoformat(raw_date)
    except ValueError as exc:
        raise DecodeError(f"invalid date {raw_date!r}", path=f"{path}.date") from exc

    raw_area_type = item.get("areaType")
    area_type = None
    if raw_area_type is not None:
        try:
            area_type = AreaType(raw_area_type)
        except ValueError as exc:
            raise DecodeError(
                f"unknown area type {raw_area_type!r}", path=f"{path}.areaType"
            ) from exc

    values: dict[str, Any] = {}
    for metric in metrics:
        # Absent and null both mean the metric is unavailable for this day.
        raw = item.get(metric.value)
        if raw is not None and (isinstance(raw, bool) or not isinstance(raw, (int, float))):
            raise DecodeError(
                f"expected a number or null, got {type(raw).__name__}",
                path=f"{path}.{metric.value}",
            )
        values[metric.attribute] = raw

    return ResponseRecord(
        date=day,
        area_type=area_type,
        area_name=_optional_str(item, "areaName", path),
        area_code=_optional_str(item, "areaCode", path),
        requested=metrics,
        **values,
    )


def _optional_int(payload: dict, key: str) -> int | None:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError(f"expected an integer, got {type(value).__name__}", path=key)
    return value


def _optional_str(item: dict, key: str, path: str) -> str | None:
    value = item.get(key)
    if value is not None and not isinstance(value, str):
        raise DecodeError(f"expected a string, got {type(value).__name__}", path=f"{path}.{key}")
    return value


def _cursor(pagination: dict, key: str, base_url: str) -> str | None:
    value = pagination.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise DecodeError(
            f"expected a string or null, got {type(value).__name__}", path=f"pagination.{key}"
        )
    # The API returns cursors relative to its host, e.g. "/v1/data?...&page=2".
    return urljoin(base_url, value)
