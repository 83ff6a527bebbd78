from __future__ import annotations

import json
import logging
import math
from collections.abc import Callable, Iterable, Mapping
from datetime import time
from typing import Any

from caseflow.config import settings
from caseflow.domain.enums import CasePriority, CaseType
from caseflow.domain.models import WILDCARD, EscalationRule, SlaPolicy
from caseflow.errors import SlaConfigurationError

logger = logging.getLogger(__name__)


def is_wildcard(value: str | None) -> bool:
    if value is None:
        return True
    normalized = str(value).strip().lower()
    return not normalized or normalized == WILDCARD


def _matches(filter_value: str | None, actual: str) -> bool:
    return not is_wildcard(filter_value) and str(filter_value).strip().lower() == actual


def find_policy(
    case_type: CaseType | str,
    priority: CasePriority | str,
    policies: Iterable[SlaPolicy],
) -> SlaPolicy | None:
    normalized_type = str(case_type).strip().lower()
    normalized_priority = str(priority).strip().lower()
    active = [policy for policy in policies if policy.is_active]

    tiers: tuple[Callable[[SlaPolicy], bool], ...] = (
        lambda p: _matches(p.applies_to_type, normalized_type)
        and _matches(p.applies_to_priority, normalized_priority),
        lambda p: _matches(p.applies_to_type, normalized_type) and is_wildcard(p.applies_to_priority),
        lambda p: is_wildcard(p.applies_to_type) and _matches(p.applies_to_priority, normalized_priority),
        lambda p: is_wildcard(p.applies_to_type) and is_wildcard(p.applies_to_priority),
    )
    for tier in tiers:
        for policy in active:
            if tier(policy):
                return policy
    return None


def _pick(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _load_json(raw: Any) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        if not raw.strip():
            return None
        return json.loads(raw)
    return raw


def parse_hhmm(raw: str | time | None, *, default: time) -> time:
    if raw is None:
        return default
    if isinstance(raw, time):
        return raw
    parts = str(raw).strip().split(":")
    if len(parts) != 2:
        return default
    try:
        hour, minute = int(parts[0]), int(parts[1])
    except ValueError:
        return default
    if 0 <= hour <= 23 and 0 <= minute <= 59:
        return time(hour, minute)
    return default


def parse_business_days(raw: Any, *, default: frozenset[int] | None = None) -> frozenset[int]:
    fallback = settings.parsed_default_business_days() if default is None else default
    try:
        loaded = _load_json(raw)
    except json.JSONDecodeError:
        logger.warning("sla_business_days_unparseable raw=%r", raw)
        return fallback
    if loaded is None:
        return fallback
    if not isinstance(loaded, (list, tuple, set, frozenset)):
        logger.warning("sla_business_days_unparseable raw=%r", raw)
        return fallback

    days: set[int] = set()
    for item in loaded:
        try:
            day = int(item)
        except (TypeError, ValueError):
            continue
        if 0 <= day <= 6:
            days.add(day)
    return frozenset(days)


def _coerce_escalation_rule(raw: Mapping[str, Any]) -> EscalationRule:
    level = int(_pick(raw, "level"))
    if level < 1:
        raise ValueError("level must be positive")
    hours_before_due = float(_pick(raw, "hoursBeforeDue", "hours_before_due"))
    raw_roles = _pick(raw, "notifyRoles", "notify_roles") or ()
    if isinstance(raw_roles, str):
        raw_roles = [raw_roles]
    notify_roles = tuple(str(role).strip() for role in raw_roles if str(role).strip())
    action = _pick(raw, "action")
    return EscalationRule(
        level=level,
        hours_before_due=hours_before_due,
        notify_roles=notify_roles,
        action=str(action) if action is not None else None,
    )


def parse_escalation_rules(raw: Any) -> tuple[EscalationRule, ...]:
    try:
        loaded = _load_json(raw)
    except json.JSONDecodeError:
        logger.warning("sla_escalation_rules_unparseable raw=%r", raw)
        return ()
    if loaded is None:
        return ()
    if not isinstance(loaded, list):
        logger.warning("sla_escalation_rules_unparseable raw=%r", raw)
        return ()

    rules: list[EscalationRule] = []
    for index, item in enumerate(loaded):
        if not isinstance(item, Mapping):
            logger.warning("sla_escalation_rule_skipped index=%s reason=not_a_mapping", index)
            continue
        try:
            rules.append(_coerce_escalation_rule(item))
        except (TypeError, ValueError) as exc:
            logger.warning("sla_escalation_rule_skipped index=%s reason=%s", index, exc)
    return tuple(rules)


def _parse_optional_hours(raw: Any) -> float | None:
    if raw is None or raw == "":
        return None
    try:
        hours = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(hours) or hours < 0:
        return None
    return hours


def _parse_bool(raw: Any, *, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    normalized = str(raw).strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_filter(raw: Any) -> str | None:
    if raw is None:
        return None
    normalized = str(raw).strip().lower()
    if not normalized or normalized == WILDCARD:
        return None
    return normalized


def parse_sla_policy(raw: Mapping[str, Any]) -> SlaPolicy:
    policy_id = str(_pick(raw, "id") or "").strip()
    name = str(_pick(raw, "name") or "").strip() or policy_id
    resolution_hours = _parse_optional_hours(_pick(raw, "resolutionHours", "resolution_hours"))
    if resolution_hours is None or resolution_hours <= 0:
        raise SlaConfigurationError(f"SLA policy {name or '?'} has no positive resolution budget")

    default_start = parse_hhmm(settings.sla_default_business_hours_start, default=time(9, 0))
    default_end = parse_hhmm(settings.sla_default_business_hours_end, default=time(18, 0))

    return SlaPolicy(
        id=policy_id or name,
        name=name,
        resolution_hours=resolution_hours,
        applies_to_type=_parse_filter(_pick(raw, "appliesToType", "applies_to_type")),
        applies_to_priority=_parse_filter(_pick(raw, "appliesToPriority", "applies_to_priority")),
        response_hours=_parse_optional_hours(_pick(raw, "responseHours", "response_hours")),
        business_hours_only=_parse_bool(
            _pick(raw, "businessHoursOnly", "business_hours_only"),
            default=False,
        ),
        business_hours_start=parse_hhmm(
            _pick(raw, "businessHoursStart", "business_hours_start"),
            default=default_start,
        ),
        business_hours_end=parse_hhmm(
            _pick(raw, "businessHoursEnd", "business_hours_end"),
            default=default_end,
        ),
        business_days=parse_business_days(
            _pick(raw, "businessDaysJson", "businessDays", "business_days"),
        ),
        escalation_rules=parse_escalation_rules(
            _pick(raw, "escalationJson", "escalationRules", "escalation_rules"),
        ),
        is_active=_parse_bool(_pick(raw, "isActive", "is_active"), default=True),
    )


def parse_sla_policies(raw_policies: Iterable[Any]) -> list[SlaPolicy]:
    policies: list[SlaPolicy] = []
    for index, raw in enumerate(raw_policies):
        if not isinstance(raw, Mapping):
            logger.warning("sla_policy_skipped index=%s reason=not_a_mapping", index)
            continue
        try:
            policies.append(parse_sla_policy(raw))
        except SlaConfigurationError as exc:
            logger.warning("sla_policy_skipped index=%s reason=%s", index, exc)
    return policies
