from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from caseflow.config import settings
from caseflow.infra.redis_client import redis_client
from caseflow.services.case_number_service import (
    format_case_number,
    max_case_sequence,
    resolve_case_year,
)

logger = logging.getLogger(__name__)


def case_sequence_key(year: int) -> str:
    return f"{settings.case_sequence_key_prefix}:{year:04d}"


async def _issue_sequence(*, year: int, committed_floor: int) -> int:
    key = case_sequence_key(year)
    await redis_client.set(key, committed_floor, nx=True)
    issued = int(await redis_client.incr(key))
    if issued <= committed_floor:
        # counter fell behind the committed set (flushed or restored store)
        issued = int(await redis_client.incrby(key, committed_floor - issued + 1))
    return issued


async def allocate_case_number(
    existing_numbers: Iterable[str | None],
    *,
    year: int | None = None,
    now: datetime | None = None,
) -> str:
    target_year = resolve_case_year(year=year, now=now)
    committed_floor = max_case_sequence(existing_numbers, year=target_year)
    fallback = format_case_number(target_year, committed_floor + 1)

    if not settings.case_sequence_enabled:
        return fallback

    try:
        issued = await _issue_sequence(year=target_year, committed_floor=committed_floor)
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "case_sequence_allocate_failed year=%s floor=%s error=%s",
            target_year,
            committed_floor,
            exc,
        )
        return fallback
    return format_case_number(target_year, issued)
