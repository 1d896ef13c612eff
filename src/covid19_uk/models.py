from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from covid19_uk.errors import InvalidQuery

Number = int | float


class AreaType(str, Enum):
    OVERVIEW = "overview"
    NATION = "nation"
    REGION = "region"
    NHS_REGION = "nhsRegion"
    UTLA = "utla"
    LTLA = "ltla"
    MSOA = "msoa"


class Metric(str, Enum):
    NEW_CASES_BY_PUBLISH_DATE = "newCasesByPublishDate"
    CUM_CASES_BY_PUBLISH_DATE = "cumCasesByPublishDate"
    NEW_CASES_BY_SPECIMEN_DATE = "newCasesBySpecimenDate"
    CUM_CASES_BY_SPECIMEN_DATE = "cumCasesBySpecimenDate"
    NEW_PILLAR_ONE_TESTS_BY_PUBLISH_DATE = "newPillarOneTestsByPublishDate"
    CUM_PILLAR_ONE_TESTS_BY_PUBLISH_DATE = "cumPillarOneTestsByPublishDate"
    NEW_PILLAR_TWO_TESTS_BY_PUBLISH_DATE = "newPillarTwoTestsByPublishDate"
    CUM_PILLAR_TWO_TESTS_BY_PUBLISH_DATE = "cumPillarTwoTestsByPublishDate"
    NEW_PILLAR_THREE_TESTS_BY_PUBLISH_DATE = "newPillarThreeTestsByPublishDate"
    CUM_PILLAR_THREE_TESTS_BY_PUBLISH_DATE = "cumPillarThreeTestsByPublishDate"
    NEW_PILLAR_FOUR_TESTS_BY_PUBLISH_DATE = "newPillarFourTestsByPublishDate"
    CUM_PILLAR_FOUR_TESTS_BY_PUBLISH_DATE = "cumPillarFourTestsByPublishDate"
    NEW_TESTS_BY_PUBLISH_DATE = "newTestsByPublishDate"
    CUM_TESTS_BY_PUBLISH_DATE = "cumTestsByPublishDate"
    NEW_ADMISSIONS = "newAdmissions"
    CUM_ADMISSIONS = "cumAdmissions"
    HOSPITAL_CASES = "hospitalCases"
    COVID_OCCUPIED_MV_BEDS = "covidOccupiedMVBeds"
    PLANNED_CAPACITY_BY_PUBLISH_DATE = "plannedCapacityByPublishDate"
    NEW_DEATHS_28_DAYS_BY_PUBLISH_DATE = "newDeaths28DaysByPublishDate"
    CUM_DEATHS_28_DAYS_BY_PUBLISH_DATE = "cumDeaths28DaysByPublishDate"

    @property
    def attribute(self) -> str:
        """Name of the matching field on ResponseRecord."""
        return self.name.lower()


@dataclass(frozen=True)
class Query:
    area_type: AreaType
    metrics: tuple[Metric, ...]
    area_name: str | None = None
    area_code: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    latest_by: Metric | None = None

    def __post_init__(self) -> None:
        # Accept plain strings and lists from callers; store enums and a tuple.
        object.__setattr__(self, "area_type", _coerce(AreaType, self.area_type, "area type"))
        if isinstance(self.metrics, (str, Metric)):
            metrics = (self.metrics,)
        else:
            metrics = tuple(self.metrics)
        object.__setattr__(
            self, "metrics", tuple(_coerce(Metric, m, "metric") for m in metrics)
        )
        if self.latest_by is not None:
            object.__setattr__(self, "latest_by", _coerce(Metric, self.latest_by, "metric"))
        for name in ("date_from", "date_to"):
            object.__setattr__(self, name, _coerce_date(getattr(self, name), name))

    @property
    def single_day(self) -> date | None:
        if self.date_from is not None and self.date_from == self.date_to:
            return self.date_from
        return None

    def in_range(self, day: date) -> bool:
        if self.date_from is not None and day < self.date_from:
            return False
        if self.date_to is not None and day > self.date_to:
            return False
        return True


@dataclass(frozen=True)
class ResponseRecord:
    date: date
    area_type: AreaType | None = None
    area_name: str | None = None
    area_code: str | None = None
    requested: tuple[Metric, ...] = ()
    new_cases_by_publish_date: Number | None = None
    cum_cases_by_publish_date: Number | None = None
    new_cases_by_specimen_date: Number | None = None
    cum_cases_by_specimen_date: Number | None = None
    new_pillar_one_tests_by_publish_date: Number | None = None
    cum_pillar_one_tests_by_publish_date: Number | None = None
    new_pillar_two_tests_by_publish_date: Number | None = None
    cum_pillar_two_tests_by_publish_date: Number | None = None
    new_pillar_three_tests_by_publish_date: Number | None = None
    cum_pillar_three_tests_by_publish_date: Number | None = None
    new_pillar_four_tests_by_publish_date: Number | None = None
    cum_pillar_four_tests_by_publish_date: Number | None = None
    new_tests_by_publish_date: Number | None = None
    cum_tests_by_publish_date: Number | None = None
    new_admissions: Number | None = None
    cum_admissions: Number | None = None
    hospital_cases: Number | None = None
    covid_occupied_mv_beds: Number | None = None
    planned_capacity_by_publish_date: Number | None = None
    new_deaths_28_days_by_publish_date: Number | None = None
    cum_deaths_28_days_by_publish_date: Number | None = None

    def value(self, metric: Metric | str) -> Number | None:
        """Return a requested metric; None means the API reported no value."""
        metric = Metric(metric)
        if metric not in self.requested:
            raise KeyError(f"{metric.value} was not requested for this record")
        return getattr(self, metric.attribute)

    def values(self) -> dict[str, Number | None]:
        return {m.value: getattr(self, m.attribute) for m in self.requested}


@dataclass(frozen=True)
class Page(Sequence[ResponseRecord]):
    records: tuple[ResponseRecord, ...] = ()
    length: int = 0
    max_page_limit: int | None = None
    current_url: str | None = None
    next_url: str | None = None
    previous_url: str | None = None
    first_url: str | None = None
    last_url: str | None = None

    def __getitem__(self, index):
        return self.records[index]

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[ResponseRecord]:
        return iter(self.records)

    @property
    def has_next(self) -> bool:
        return self.next_url is not None


def _coerce(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise InvalidQuery(f"Unknown {label}: {value!r}") from exc


def _coerce_date(value, label: str) -> date | None:
    if value is None:
        return None
    # datetime subclasses date, so it has to be checked first
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError as exc:
            raise InvalidQuery(f"{label} is not an ISO date: {value!r}") from exc
    raise InvalidQuery(f"{label} must be a date, got {type(value).__name__}")
