from __future__ import annotations

from enum import StrEnum


class CaseType(StrEnum):
    REQUEST = "request"
    INCIDENT = "incident"
    CHANGE = "change"
    PROBLEM = "problem"


class CasePriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class CaseStatus(StrEnum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    AWAITING_CLIENT = "awaiting_client"
    RESOLVED = "resolved"
    CLOSED = "closed"


TERMINAL_CASE_STATUSES = frozenset({CaseStatus.RESOLVED, CaseStatus.CLOSED})


class BreachType(StrEnum):
    RESPONSE = "response"
    RESOLUTION = "resolution"


class RoutingTargetType(StrEnum):
    ROLE = "role"
    USER = "user"
    TEAM = "team"


class RoutingOperator(StrEnum):
    EQUALS = "equals"
    IN = "in"
    CONTAINS = "contains"


class RoutingField(StrEnum):
    CASE_TYPE = "caseType"
    PRIORITY = "priority"
    SOURCE_TYPE = "sourceType"
    SCOPE_TYPE = "scopeType"
    TAGS = "tags"


class TriageDimension(StrEnum):
    TYPE = "type"
    PRIORITY = "priority"
