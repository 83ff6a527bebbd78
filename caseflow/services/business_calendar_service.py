from __future__ import annotations

import math
from collections.abc import Collection
from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta, tzinfo

from caseflow.domain.models import SlaPolicy
from caseflow.errors import SlaConfigurationError
from caseflow.services.clock import coerce_aware_utc, resolve_timezone


@dataclass(slots=True, frozen=True)
class DueDates:
    due_at: datetime
    response_due_at: datetime | None = None


def business_weekday(value: datetime) -> int:
    """Weekday with Sunday as 0, matching serialized ``businessDays`` values."""
    return (value.weekday() + 1) % 7


def _minute_of_day(value: datetime | time) -> float:
    return value.hour * 60 + value.minute + value.second / 60 + value.microsecond / 60_000_000


def _next_day_start(cursor: datetime, start: time) -> datetime:
    return datetime.combine(cursor.date() + timedelta(days=1), start, tzinfo=cursor.tzinfo)


def validate_business_calendar(
    *,
    business_hours_start: time,
    business_hours_end: time,
    business_days: Collection[int],
) -> None:
    if not any(0 <= day <= 6 for day in business_days):
        raise SlaConfigurationError("Business-hours calendar has no business days configured")
    if _minute_of_day(business_hours_start) >= _minute_of_day(business_hours_end):
        raise SlaConfigurationError(
            f"Business hours start {business_hours_start:%H:%M} must be before end {business_hours_end:%H:%M}"
        )


def _validate_budget(hours: float) -> float:
    budget = float(hours)
    if math.isnan(budget) or math.isinf(budget) or budget < 0:
        raise SlaConfigurationError(f"Invalid SLA hour budget: {hours!r}")
    return budget


def add_business_hours(
    start_at: datetime,
    hours: float,
    *,
    business_hours_start: time,
    business_hours_end: time,
    business_days: Collection[int],
    tz: tzinfo = UTC,
) -> datetime:
    validate_business_calendar(
        business_hours_start=business_hours_start,
        business_hours_end=business_hours_end,
        business_days=business_days,
    )
    remaining_minutes = _validate_budget(hours) * 60
    start_minutes = _minute_of_day(business_hours_start)
    end_minutes = _minute_of_day(business_hours_end)

    start_utc = coerce_aware_utc(start_at, field_name="start_at")
    assert start_utc is not None
    cursor = start_utc.astimezone(tz)

    while True:
        if business_weekday(cursor) not in business_days:
            cursor = _next_day_start(cursor, business_hours_start)
            continue

        current_minutes = _minute_of_day(cursor)
        if current_minutes < start_minutes:
            cursor = datetime.combine(cursor.date(), business_hours_start, tzinfo=cursor.tzinfo)
            current_minutes = start_minutes

        if current_minutes >= end_minutes:
            cursor = _next_day_start(cursor, business_hours_start)
            continue

        minutes_left_today = end_minutes - max(current_minutes, start_minutes)
        if remaining_minutes <= minutes_left_today:
            return (cursor + timedelta(minutes=remaining_minutes)).astimezone(UTC)

        remaining_minutes -= minutes_left_today
        cursor = _next_day_start(cursor, business_hours_start)


def _offset(created_at: datetime, hours: float, policy: SlaPolicy, tz: tzinfo) -> datetime:
    if not policy.business_hours_only:
        return created_at + timedelta(hours=_validate_budget(hours))
    return add_business_hours(
        created_at,
        hours,
        business_hours_start=policy.business_hours_start,
        business_hours_end=policy.business_hours_end,
        business_days=policy.business_days,
        tz=tz,
    )


def compute_due_dates(
    created_at: datetime,
    policy: SlaPolicy,
    *,
    timezone_name: str | None = None,
) -> DueDates:
    created_utc = coerce_aware_utc(created_at, field_name="created_at")
    assert created_utc is not None
    tz = resolve_timezone(timezone_name)

    response_due_at = None
    if policy.response_hours is not None:
        response_due_at = _offset(created_utc, policy.response_hours, policy, tz)
    return DueDates(
        due_at=_offset(created_utc, policy.resolution_hours, policy, tz),
        response_due_at=response_due_at,
    )
