from __future__ import annotations

import json
from datetime import time

import pytest

from caseflow.domain.models import EscalationRule, SlaPolicy
from caseflow.errors import SlaConfigurationError
from caseflow.services.sla_policy_service import (
    find_policy,
    parse_business_days,
    parse_escalation_rules,
    parse_hhmm,
    parse_sla_policies,
    parse_sla_policy,
)


def _policy(policy_id: str, applies_to_type: str | None, applies_to_priority: str | None, **kwargs) -> SlaPolicy:
    return SlaPolicy(
        id=policy_id,
        name=policy_id,
        resolution_hours=kwargs.pop("resolution_hours", 24),
        applies_to_type=applies_to_type,
        applies_to_priority=applies_to_priority,
        **kwargs,
    )


def _policies() -> list[SlaPolicy]:
    return [
        _policy("default", "all", None),
        _policy("any-critical", None, "critical"),
        _policy("incidents", "incident", "all"),
        _policy("incident-critical", "incident", "critical"),
        _policy("incident-critical-2", "incident", "critical"),
    ]


def test_find_policy_prefers_exact_type_and_priority() -> None:
    assert find_policy("incident", "critical", _policies()).id == "incident-critical"


def test_find_policy_specificity_order() -> None:
    policies = _policies()

    assert find_policy("incident", "low", policies).id == "incidents"
    assert find_policy("change", "critical", policies).id == "any-critical"
    assert find_policy("change", "low", policies).id == "default"


def test_find_policy_skips_inactive_and_returns_none_without_default() -> None:
    policies = [
        _policy("incident-critical", "incident", "critical", is_active=False),
        _policy("changes", "change", None),
    ]

    assert find_policy("incident", "critical", policies) is None
    assert find_policy("request", "low", []) is None


def test_parse_sla_policy_from_serialized_record() -> None:
    policy = parse_sla_policy(
        {
            "id": "p1",
            "name": "Incident critical",
            "appliesToType": "incident",
            "appliesToPriority": "ALL",
            "responseHours": 1,
            "resolutionHours": "8",
            "businessHoursOnly": True,
            "businessHoursStart": "08:30",
            "businessHoursEnd": "17:00",
            "businessDaysJson": "[1, 2, 3, 4, 5, 6]",
            "escalationJson": json.dumps(
                [
                    {"level": 1, "hoursBeforeDue": 4, "notifyRoles": ["team_lead"]},
                    {"level": 2, "hoursBeforeDue": 1, "notifyRoles": ["head_of_ops", "cro"], "action": "page"},
                ]
            ),
        }
    )

    assert policy.applies_to_type == "incident"
    assert policy.applies_to_priority is None
    assert policy.response_hours == 1.0
    assert policy.resolution_hours == 8.0
    assert policy.business_hours_only is True
    assert policy.business_hours_start == time(8, 30)
    assert policy.business_hours_end == time(17, 0)
    assert policy.business_days == frozenset({1, 2, 3, 4, 5, 6})
    assert policy.escalation_rules == (
        EscalationRule(level=1, hours_before_due=4.0, notify_roles=("team_lead",)),
        EscalationRule(level=2, hours_before_due=1.0, notify_roles=("head_of_ops", "cro"), action="page"),
    )


def test_parse_sla_policy_applies_documented_defaults() -> None:
    policy = parse_sla_policy(
        {
            "id": "p2",
            "name": "Fallback",
            "resolutionHours": 48,
            "businessHoursOnly": "maybe",
            "businessHoursStart": "25:00",
            "businessDaysJson": "not json",
            "escalationJson": "{broken",
        }
    )

    assert policy.business_hours_only is False
    assert policy.business_hours_start == time(9, 0)
    assert policy.business_hours_end == time(18, 0)
    assert policy.business_days == frozenset({1, 2, 3, 4, 5})
    assert policy.escalation_rules == ()
    assert policy.response_hours is None


def test_parse_sla_policy_requires_resolution_budget() -> None:
    with pytest.raises(SlaConfigurationError):
        parse_sla_policy({"id": "p3", "name": "Broken"})
    with pytest.raises(SlaConfigurationError):
        parse_sla_policy({"id": "p3", "name": "Broken", "resolutionHours": 0})


def test_parse_sla_policy_rejects_non_finite_budgets() -> None:
    with pytest.raises(SlaConfigurationError):
        parse_sla_policy({"id": "p4", "resolutionHours": "nan"})
    with pytest.raises(SlaConfigurationError):
        parse_sla_policy({"id": "p4", "resolutionHours": "inf"})

    policy = parse_sla_policy({"id": "p4", "resolutionHours": 8, "responseHours": "nan"})

    assert policy.resolution_hours == 8
    assert policy.response_hours is None


def test_parse_sla_policies_skips_invalid_records() -> None:
    policies = parse_sla_policies(
        [
            {"id": "ok", "name": "OK", "resolutionHours": 4},
            {"id": "bad", "name": "Bad"},
            "id-broken",
            None,
        ]
    )

    assert [policy.id for policy in policies] == ["ok"]


def test_parse_business_days_keeps_explicit_empty_calendar() -> None:
    assert parse_business_days("[]") == frozenset()
    assert parse_business_days([0, 6, 7, "x"]) == frozenset({0, 6})
    assert parse_business_days(None) == frozenset({1, 2, 3, 4, 5})


def test_parse_escalation_rules_skips_malformed_entries() -> None:
    rules = parse_escalation_rules(
        [
            {"level": 0, "hoursBeforeDue": 2},
            {"level": 1},
            "junk",
            {"level": "2", "hours_before_due": "0.5", "notify_roles": "manager"},
        ]
    )

    assert rules == (EscalationRule(level=2, hours_before_due=0.5, notify_roles=("manager",)),)


def test_parse_hhmm() -> None:
    default = time(9, 0)

    assert parse_hhmm("07:45", default=default) == time(7, 45)
    assert parse_hhmm("7", default=default) == default
    assert parse_hhmm("aa:bb", default=default) == default
    assert parse_hhmm(None, default=default) == default
