from __future__ import annotations

import json
import logging
import re

import requests

from covid19_uk.errors import InvalidQuery
from covid19_uk.models import AreaType, Query

logger = logging.getLogger(__name__)


# GSS code prefixes published by ONS for each geography level.
AREA_CODE_PREFIXES: dict[AreaType, frozenset[str]] = {
    AreaType.OVERVIEW: frozenset({"K02"}),
    AreaType.NATION: frozenset({"E92", "N92", "S92", "W92"}),
    AreaType.REGION: frozenset({"E12"}),
    AreaType.NHS_REGION: frozenset({"E40"}),
    AreaType.UTLA: frozenset({"E06", "E08", "E09", "E10", "N09", "S12", "W06"}),
    AreaType.LTLA: frozenset({"E06", "E07", "E08", "E09", "N09", "S12", "W06"}),
    AreaType.MSOA: frozenset({"E02", "W02"}),
}

AREA_CODE_PATTERN = re.compile(r"^[A-Z]\d{8}$")
# Characters with meaning inside the filters parameter.
_FILTER_RESERVED = (";", "=")

IDENTITY_FIELDS = ("date", "areaType", "areaName", "areaCode")


def validate_query(query: Query) -> None:
    """Raise InvalidQuery for anything that should never reach the network."""
    if query.area_code is not None:
        _validate_area_code(query.area_type, query.area_code)
    if query.area_name is not None:
        name = query.area_name.strip()
        if not name:
            raise InvalidQuery("area_name must not be blank")
        if any(ch in name for ch in _FILTER_RESERVED):
            raise InvalidQuery(f"area_name contains a reserved character: {query.area_name!r}")
    if query.area_type is not AreaType.OVERVIEW and not (query.area_name or query.area_code):
        raise InvalidQuery(f"{query.area_type.value} queries need an area_name or area_code")

    if query.date_from and query.date_to and query.date_from > query.date_to:
        raise InvalidQuery(f"date_from {query.date_from} is after date_to {query.date_to}")

    if not query.metrics:
        raise InvalidQuery("at least one metric must be requested")
    seen = set()
    for metric in query.metrics:
        if metric in seen:
            raise InvalidQuery(f"metric requested twice: {metric.value}")
        seen.add(metric)
    if query.latest_by is not None and query.latest_by not in seen:
        raise InvalidQuery(f"latest_by {query.latest_by.value} must be one of the requested metrics")


def _validate_area_code(area_type: AreaType, code: str) -> None:
    if not AREA_CODE_PATTERN.match(code):
        raise InvalidQuery(f"Malformed area code: {code!r}")
    allowed = AREA_CODE_PREFIXES[area_type]
    if code[:3] not in allowed:
        raise InvalidQuery(
            f"Area code {code} does not identify a {area_type.value} "
            f"(expected prefix {', '.join(sorted(allowed))})"
        )


def build_filters(query: Query) -> str:
    parts = [f"areaType={query.area_type.value}"]
    if query.area_name:
        parts.append(f"areaName={query.area_name.strip().lower()}")
    if query.area_code:
        parts.append(f"areaCode={query.area_code}")
    day = query.single_day
    if day is not None:
        parts.append(f"date={day.isoformat()}")
    return ";".join(parts)


def build_structure(query: Query) -> str:
    fields = list(IDENTITY_FIELDS) + [m.value for m in query.metrics]
    return json.dumps({name: name for name in fields}, separators=(",", ":"))


def build_params(query: Query, page: int = 1) -> dict[str, str]:
    params = {
        "filters": build_filters(query),
        "structure": build_structure(query),
        "format": "json",
        "page": str(page),
    }
    if query.latest_by is not None:
        params["latestBy"] = query.latest_by.value
    return params


def build_url(base_url: str, query: Query, page: int = 1) -> str:
    """Encode the query onto base_url exactly as it will be sent."""
    if page < 1:
        raise InvalidQuery(f"page must be >= 1, got {page}")
    prepared = requests.Request("GET", base_url, params=build_params(query, page)).prepare()
    logger.debug("Built request URL %s", prepared.url)
    return prepared.url
