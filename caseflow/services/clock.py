from __future__ import annotations

from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from caseflow.config import settings


def utc_now() -> datetime:
    return datetime.now(UTC)


def coerce_aware_utc(
    value: datetime | None,
    *,
    field_name: str,
    fallback_notes: list[str] | None = None,
) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        if fallback_notes is not None:
            fallback_notes.append(f"{field_name}_assumed_utc")
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def resolve_timezone(timezone_name: str | None = None) -> ZoneInfo:
    candidate = (timezone_name or settings.tz or "").strip()
    if not candidate:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(candidate)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")
