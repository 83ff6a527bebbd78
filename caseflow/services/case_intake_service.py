from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from caseflow.domain.enums import CasePriority, CaseStatus, CaseType, RoutingTargetType
from caseflow.domain.models import (
    Assignee,
    CaseRecord,
    RoutingRule,
    SlaPolicy,
    TriageInput,
    TriageResult,
)
from caseflow.services.assignment_service import auto_assign
from caseflow.services.business_calendar_service import compute_due_dates
from caseflow.services.case_number_service import next_case_number
from caseflow.services.clock import coerce_aware_utc, utc_now
from caseflow.services.routing_service import RoutingResult, route_case
from caseflow.services.sla_policy_service import find_policy
from caseflow.services.triage_service import DEFAULT_TRIAGE_RULES, TriageKeywordRule, classify_case

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CaseDraft:
    id: str
    title: str
    source_type: str
    description: str | None = None
    source_id: str | None = None
    subject_type: str | None = None
    case_type: CaseType | None = None
    priority: CasePriority | None = None
    scope_type: str | None = None
    tags: frozenset[str] = frozenset()


@dataclass(slots=True, frozen=True)
class CaseIntakeResult:
    case: CaseRecord
    triage: TriageResult | None
    routing: RoutingResult
    policy: SlaPolicy | None
    assignee: Assignee | None
    timeline: tuple[str, ...]


def _format_dt(value: datetime | None) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M UTC")


def _triage_summary(triage: TriageResult) -> str:
    return (
        f"Triage: {triage.suggested_type.value}/{triage.suggested_priority.value} "
        f"-> {triage.suggested_role} (confidence {triage.confidence:.2f}): "
        + "; ".join(triage.reasoning)
    )


def _routing_summary(routing: RoutingResult) -> str:
    target = f"{routing.target_type.value} {routing.target_id} ({routing.target_name})"
    if routing.matched_rule_name:
        return f"Routed to {target} by rule '{routing.matched_rule_name}'"
    return f"Routed to {target} by default table"


def _resolve_assignee(routing: RoutingResult, users: list[Assignee]) -> tuple[Assignee | None, str | None]:
    if routing.target_type == RoutingTargetType.ROLE:
        assignee = auto_assign(routing.target_id, users)
        return assignee, assignee.id if assignee is not None else None
    if routing.target_type == RoutingTargetType.USER:
        for user in users:
            if user.id == routing.target_id:
                return user, user.id
        return None, routing.target_id
    return None, None


def open_case(
    draft: CaseDraft,
    *,
    existing_numbers: Iterable[str | None],
    policies: Iterable[SlaPolicy],
    routing_rules: Iterable[RoutingRule] | None = None,
    users: Iterable[Assignee] = (),
    triage_rules: Iterable[TriageKeywordRule] = DEFAULT_TRIAGE_RULES,
    case_number: str | None = None,
    now: datetime | None = None,
    timezone_name: str | None = None,
) -> CaseIntakeResult:
    created_at = coerce_aware_utc(now or utc_now(), field_name="now")
    assert created_at is not None
    number = case_number or next_case_number(existing_numbers, now=created_at)
    timeline: list[str] = [f"Case {number} opened from {draft.source_type or '-'}"]

    triage: TriageResult | None = None
    case_type = draft.case_type
    priority = draft.priority
    if case_type is None or priority is None:
        triage = classify_case(
            TriageInput(
                title=draft.title,
                description=draft.description,
                source_type=draft.source_type,
                source_id=draft.source_id,
                subject_type=draft.subject_type,
            ),
            triage_rules,
        )
        case_type = case_type or triage.suggested_type
        priority = priority or triage.suggested_priority
        timeline.append(_triage_summary(triage))

    case = CaseRecord(
        id=draft.id,
        case_number=number,
        case_type=CaseType(case_type),
        priority=CasePriority(priority),
        status=CaseStatus.OPEN,
        created_at=created_at,
        title=draft.title,
        source_type=(draft.source_type or "").strip().lower(),
        source_id=draft.source_id,
        scope_type=draft.scope_type,
        tags=frozenset(draft.tags),
    )

    routing = route_case(case, routing_rules)
    timeline.append(_routing_summary(routing))

    user_list = list(users)
    assignee, assigned_to_user_id = _resolve_assignee(routing, user_list)
    case.assigned_to_user_id = assigned_to_user_id
    if assignee is not None:
        timeline.append(f"Assigned to {assignee.name} ({assignee.current_case_count} open case(s))")
    elif routing.target_type == RoutingTargetType.ROLE:
        timeline.append(f"No active assignee available for role {routing.target_id}")

    policy = find_policy(case.case_type, case.priority, policies)
    if policy is None:
        timeline.append(f"No SLA policy configured for {case.case_type.value}/{case.priority.value}")
    else:
        due_dates = compute_due_dates(created_at, policy, timezone_name=timezone_name)
        case.sla_policy_id = policy.id
        case.response_due_at = due_dates.response_due_at
        case.due_at = due_dates.due_at
        timeline.append(
            f"SLA policy '{policy.name}' applied: response due {_format_dt(due_dates.response_due_at)}, "
            f"resolution due {_format_dt(due_dates.due_at)}"
        )

    logger.info(
        "case_opened case_number=%s type=%s priority=%s target=%s:%s policy=%s",
        case.case_number,
        case.case_type.value,
        case.priority.value,
        routing.target_type.value,
        routing.target_id,
        case.sla_policy_id,
    )
    return CaseIntakeResult(
        case=case,
        triage=triage,
        routing=routing,
        policy=policy,
        assignee=assignee,
        timeline=tuple(timeline),
    )
