from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

from caseflow.domain.enums import BreachType, CaseStatus
from caseflow.domain.models import CaseRecord, SlaPolicy, is_terminal_status
from caseflow.services.clock import coerce_aware_utc, utc_now

logger = logging.getLogger(__name__)

_UNIT_LABELS = {
    "en": {"minute": "m", "hour": "h", "day": "d", "overdue": "overdue by {value}"},
    "ru": {"minute": "м", "hour": "ч", "day": "д", "overdue": "просрочено на {value}"},
}


@dataclass(slots=True, frozen=True)
class BreachCheck:
    is_breached: bool
    hours_overdue: float
    breach_type: BreachType | None


@dataclass(slots=True, frozen=True)
class EscalationDecision:
    level: int
    should_escalate: bool
    notify_roles: tuple[str, ...]
    action: str | None = None


@dataclass(slots=True, frozen=True)
class CaseSlaUpdate:
    case_id: str
    case_number: str
    breach: BreachCheck
    sla_breached: bool
    sla_breached_at: datetime | None
    escalation: EscalationDecision
    last_escalation_at: datetime | None
    fallback_notes: tuple[str, ...]
    changed: bool


_NOT_BREACHED = BreachCheck(is_breached=False, hours_overdue=0.0, breach_type=None)


def _hours_between(later: datetime, earlier: datetime) -> float:
    return round((later - earlier).total_seconds() / 3600, 2)


def check_breach(case: CaseRecord, *, now: datetime | None = None) -> BreachCheck:
    if is_terminal_status(case.status):
        return _NOT_BREACHED

    current_time = coerce_aware_utc(now or utc_now(), field_name="now")
    assert current_time is not None
    response_due_at = coerce_aware_utc(case.response_due_at, field_name="response_due_at")
    due_at = coerce_aware_utc(case.due_at, field_name="due_at")

    if case.status == CaseStatus.OPEN and response_due_at is not None and current_time > response_due_at:
        return BreachCheck(
            is_breached=True,
            hours_overdue=_hours_between(current_time, response_due_at),
            breach_type=BreachType.RESPONSE,
        )
    if due_at is not None and current_time > due_at:
        return BreachCheck(
            is_breached=True,
            hours_overdue=_hours_between(current_time, due_at),
            breach_type=BreachType.RESOLUTION,
        )
    return _NOT_BREACHED


def escalation_level(
    case: CaseRecord,
    policy: SlaPolicy | None,
    *,
    now: datetime | None = None,
) -> EscalationDecision:
    current_level = max(int(case.escalation_level or 0), 0)
    unchanged = EscalationDecision(level=current_level, should_escalate=False, notify_roles=())

    if policy is None or not policy.escalation_rules or case.due_at is None:
        return unchanged
    if is_terminal_status(case.status):
        return unchanged

    current_time = coerce_aware_utc(now or utc_now(), field_name="now")
    due_at = coerce_aware_utc(case.due_at, field_name="due_at")
    assert current_time is not None and due_at is not None
    hours_until_due = (due_at - current_time).total_seconds() / 3600

    for rule in sorted(policy.escalation_rules, key=lambda item: item.level, reverse=True):
        if rule.level > current_level and hours_until_due <= rule.hours_before_due:
            return EscalationDecision(
                level=rule.level,
                should_escalate=True,
                notify_roles=rule.notify_roles,
                action=rule.action,
            )
    return unchanged


def format_time_remaining(
    due_at: datetime | None,
    *,
    now: datetime | None = None,
    locale: str = "en",
) -> str:
    if due_at is None:
        return "-"
    labels = _UNIT_LABELS.get(locale.strip().lower(), _UNIT_LABELS["en"])
    current_time = coerce_aware_utc(now or utc_now(), field_name="now")
    target = coerce_aware_utc(due_at, field_name="due_at")
    assert current_time is not None and target is not None

    remaining_seconds = (target - current_time).total_seconds()
    total_minutes = int(abs(remaining_seconds) // 60)
    days, rest = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rest, 60)

    if days:
        value = f"{days}{labels['day']} {hours}{labels['hour']}"
    elif hours:
        value = f"{hours}{labels['hour']} {minutes}{labels['minute']}"
    else:
        value = f"{minutes}{labels['minute']}"

    if remaining_seconds < 0:
        return labels["overdue"].format(value=value)
    return value


def evaluate_case_sla(
    case: CaseRecord,
    policy: SlaPolicy | None,
    *,
    now: datetime | None = None,
) -> CaseSlaUpdate:
    fallback_notes: list[str] = []
    current_time = coerce_aware_utc(now or utc_now(), field_name="now", fallback_notes=fallback_notes)
    assert current_time is not None
    if case.due_at is not None and case.due_at.tzinfo is None:
        fallback_notes.append("due_at_assumed_utc")
    if case.sla_policy_id is not None and policy is None:
        fallback_notes.append("policy_not_found")

    if is_terminal_status(case.status):
        frozen = EscalationDecision(level=case.escalation_level, should_escalate=False, notify_roles=())
        return CaseSlaUpdate(
            case_id=case.id,
            case_number=case.case_number,
            breach=_NOT_BREACHED,
            sla_breached=case.sla_breached,
            sla_breached_at=case.sla_breached_at,
            escalation=frozen,
            last_escalation_at=case.last_escalation_at,
            fallback_notes=tuple(fallback_notes),
            changed=False,
        )

    breach = check_breach(case, now=current_time)
    sla_breached = case.sla_breached or breach.is_breached
    sla_breached_at = case.sla_breached_at
    if sla_breached and not case.sla_breached:
        sla_breached_at = current_time

    escalation = escalation_level(case, policy, now=current_time)
    last_escalation_at = current_time if escalation.should_escalate else case.last_escalation_at

    return CaseSlaUpdate(
        case_id=case.id,
        case_number=case.case_number,
        breach=breach,
        sla_breached=sla_breached,
        sla_breached_at=sla_breached_at,
        escalation=escalation,
        last_escalation_at=last_escalation_at,
        fallback_notes=tuple(fallback_notes),
        changed=sla_breached != case.sla_breached or escalation.should_escalate,
    )


def sweep_open_cases(
    cases: Iterable[CaseRecord],
    policies: Iterable[SlaPolicy],
    *,
    now: datetime | None = None,
) -> list[CaseSlaUpdate]:
    current_time = coerce_aware_utc(now or utc_now(), field_name="now")
    assert current_time is not None
    policies_by_id = {policy.id: policy for policy in policies}

    evaluated = 0
    updates: list[tuple[datetime, str, CaseSlaUpdate]] = []
    for case in cases:
        if is_terminal_status(case.status):
            continue
        evaluated += 1
        policy = policies_by_id.get(case.sla_policy_id) if case.sla_policy_id else None
        update = evaluate_case_sla(case, policy, now=current_time)
        if not update.changed:
            continue
        order_key = coerce_aware_utc(case.due_at, field_name="due_at") or datetime.max.replace(tzinfo=UTC)
        updates.append((order_key, case.id, update))

    updates.sort(key=lambda item: (item[0], item[1]))
    result = [item[2] for item in updates]
    if result:
        logger.info(
            "sla_sweep_completed evaluated=%s changed=%s escalated=%s",
            evaluated,
            len(result),
            sum(1 for item in result if item.escalation.should_escalate),
        )
    return result


def _format_dt(value: datetime | None) -> str:
    normalized = coerce_aware_utc(value, field_name="value")
    if normalized is None:
        return "-"
    return normalized.strftime("%Y-%m-%d %H:%M:%S UTC")


def render_escalation_summary(case: CaseRecord, update: CaseSlaUpdate) -> str:
    lines = [f"SLA update for {case.case_number}"]
    if update.breach.is_breached and update.breach.breach_type is not None:
        lines.append(
            f"Breach: {update.breach.breach_type.value}, overdue {update.breach.hours_overdue:g}h"
        )
    if update.escalation.should_escalate:
        roles = ", ".join(update.escalation.notify_roles) or "-"
        lines.append(f"Escalated: level {case.escalation_level} -> {update.escalation.level}")
        lines.append(f"Notify: {roles}")
        if update.escalation.action:
            lines.append(f"Action: {update.escalation.action}")
    lines.append(f"Due: {_format_dt(case.due_at)}")
    return "\n".join(lines)
