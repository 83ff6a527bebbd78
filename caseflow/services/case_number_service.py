from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from caseflow.services.clock import utc_now

CASE_NUMBER_PREFIX = "CS"
CASE_SEQUENCE_MIN_DIGITS = 4

_CASE_NUMBER_PATTERN = re.compile(r"CS-([0-9]{4})-([0-9]{4,})")


@dataclass(slots=True, frozen=True)
class CaseNumber:
    year: int
    sequence: int


def format_case_number(year: int, sequence: int) -> str:
    return f"{CASE_NUMBER_PREFIX}-{year:04d}-{sequence:0{CASE_SEQUENCE_MIN_DIGITS}d}"


def parse_case_number(value: str | None) -> CaseNumber | None:
    if value is None:
        return None
    match = _CASE_NUMBER_PATTERN.fullmatch(str(value).strip())
    if match is None:
        return None
    return CaseNumber(year=int(match.group(1)), sequence=int(match.group(2)))


def is_valid_case_number(value: str | None) -> bool:
    return parse_case_number(value) is not None


def max_case_sequence(existing_numbers: Iterable[str | None], *, year: int) -> int:
    year_prefix = f"{CASE_NUMBER_PREFIX}-{year:04d}-"
    highest = 0
    for raw in existing_numbers:
        if not raw or not str(raw).strip().startswith(year_prefix):
            continue
        parsed = parse_case_number(raw)
        if parsed is None or parsed.year != year:
            continue
        highest = max(highest, parsed.sequence)
    return highest


def resolve_case_year(*, year: int | None = None, now: datetime | None = None) -> int:
    if year is not None:
        return int(year)
    return (now or utc_now()).year


def next_case_number(
    existing_numbers: Iterable[str | None],
    *,
    year: int | None = None,
    now: datetime | None = None,
) -> str:
    target_year = resolve_case_year(year=year, now=now)
    return format_case_number(target_year, max_case_sequence(existing_numbers, year=target_year) + 1)
