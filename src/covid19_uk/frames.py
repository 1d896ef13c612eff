from __future__ import annotations

from collections.abc import Iterable

import pandas as pd

from covid19_uk.models import Metric, ResponseRecord

IDENTITY_COLUMNS = ["date", "areaType", "areaName", "areaCode"]


def records_to_frame(
    records: Iterable[ResponseRecord], metrics: Iterable[Metric] | None = None
) -> pd.DataFrame:
    """
    Tabulate records, one row per record in the order given.

    Metric columns use pandas nullable dtypes so an unreported value stays
    ``<NA>`` rather than turning into 0 or a float NaN.
    """
    records = list(records)
    if metrics is None:
        metrics = records[0].requested if records else ()
    metrics = [Metric(m) for m in metrics]

    frame = pd.DataFrame(
        {
            "date": pd.to_datetime([r.date for r in records]),
            "areaType": [r.area_type.value if r.area_type else None for r in records],
            "areaName": [r.area_name for r in records],
            "areaCode": [r.area_code for r in records],
        },
        columns=IDENTITY_COLUMNS,
    )
    for metric in metrics:
        values = [getattr(r, metric.attribute) for r in records]
        frame[metric.value] = pd.array(values, dtype=_nullable_dtype(values))
    return frame


def _nullable_dtype(values: list) -> str:
    for value in values:
        if isinstance(value, float) and not value.is_integer():
            return "Float64"
    return "Int64"
