from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time

from caseflow.domain.enums import (
    TERMINAL_CASE_STATUSES,
    CasePriority,
    CaseStatus,
    CaseType,
    RoutingOperator,
    RoutingTargetType,
)

DEFAULT_BUSINESS_HOURS_START = time(9, 0)
DEFAULT_BUSINESS_HOURS_END = time(18, 0)
DEFAULT_BUSINESS_DAYS = frozenset({1, 2, 3, 4, 5})
WILDCARD = "all"


@dataclass(slots=True)
class CaseRecord:
    id: str
    case_number: str
    case_type: CaseType
    priority: CasePriority
    status: CaseStatus
    created_at: datetime
    title: str = ""
    source_type: str = "internal"
    source_id: str | None = None
    scope_type: str | None = None
    tags: frozenset[str] = frozenset()
    sla_policy_id: str | None = None
    response_due_at: datetime | None = None
    due_at: datetime | None = None
    sla_breached: bool = False
    sla_breached_at: datetime | None = None
    escalation_level: int = 0
    last_escalation_at: datetime | None = None
    assigned_to_user_id: str | None = None


@dataclass(slots=True, frozen=True)
class EscalationRule:
    level: int
    hours_before_due: float
    notify_roles: tuple[str, ...] = ()
    action: str | None = None


@dataclass(slots=True, frozen=True)
class SlaPolicy:
    id: str
    name: str
    resolution_hours: float
    applies_to_type: str | None = None
    applies_to_priority: str | None = None
    response_hours: float | None = None
    business_hours_only: bool = False
    business_hours_start: time = DEFAULT_BUSINESS_HOURS_START
    business_hours_end: time = DEFAULT_BUSINESS_HOURS_END
    business_days: frozenset[int] = DEFAULT_BUSINESS_DAYS
    escalation_rules: tuple[EscalationRule, ...] = ()
    is_active: bool = True


@dataclass(slots=True, frozen=True)
class RoutingCondition:
    field: str
    operator: RoutingOperator
    value: str | tuple[str, ...]


@dataclass(slots=True, frozen=True)
class RoutingTarget:
    type: RoutingTargetType
    id: str
    name: str


@dataclass(slots=True, frozen=True)
class RoutingRule:
    id: str
    name: str
    target: RoutingTarget
    conditions: tuple[RoutingCondition, ...] = ()
    priority: int = 0
    is_active: bool = True


@dataclass(slots=True, frozen=True)
class TriageInput:
    title: str
    source_type: str
    description: str | None = None
    source_id: str | None = None
    subject_type: str | None = None


@dataclass(slots=True, frozen=True)
class TriageResult:
    suggested_type: CaseType
    suggested_priority: CasePriority
    suggested_role: str
    confidence: float
    reasoning: tuple[str, ...]


@dataclass(slots=True, frozen=True)
class CaseTemplate:
    id: str
    name: str
    default_type: CaseType
    default_priority: CasePriority = CasePriority.MEDIUM
    category: str | None = None
    default_routing_role: str | None = None
    is_active: bool = True


@dataclass(slots=True, frozen=True)
class Assignee:
    id: str
    name: str
    role: str
    active: bool = True
    skills: frozenset[str] = field(default_factory=frozenset)
    current_case_count: int = 0


def is_terminal_status(status: CaseStatus | str) -> bool:
    return str(status).strip().lower() in TERMINAL_CASE_STATUSES
