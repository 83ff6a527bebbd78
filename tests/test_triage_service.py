from __future__ import annotations

import json

from caseflow.domain.enums import CasePriority, CaseType, TriageDimension
from caseflow.domain.models import CaseTemplate, TriageInput
from caseflow.services import triage_service
from caseflow.services.triage_service import (
    classify_case,
    load_triage_rules,
    suggest_routing_role,
    suggest_templates,
)


def test_sync_source_is_incident_with_high_priority_for_data_ops() -> None:
    result = classify_case(TriageInput(title="Nightly positions feed", source_type="sync"))

    assert result.suggested_type == CaseType.INCIDENT
    assert result.suggested_priority == CasePriority.HIGH
    assert result.suggested_role == "data_ops"
    assert result.confidence == 0.9
    assert result.reasoning[0] == "Source 'sync' reports data issues: classified as incident"


def test_dq_source_wins_over_change_keywords() -> None:
    result = classify_case(TriageInput(title="Please update the mapping", source_type="dq"))

    assert result.suggested_type == CaseType.INCIDENT
    assert result.suggested_priority == CasePriority.MEDIUM
    assert result.suggested_role == "data_ops"
    assert result.confidence == 0.8


def test_incident_keyword_takes_precedence_over_change_keyword() -> None:
    result = classify_case(
        TriageInput(title="Update failed", description="The upgrade shows an error", source_type="email")
    )

    assert result.suggested_type == CaseType.INCIDENT
    assert result.suggested_role == "support"
    assert "Keyword 'error' indicates incident" in result.reasoning


def test_russian_keywords_are_recognized() -> None:
    result = classify_case(
        TriageInput(title="Срочно: не работает выгрузка отчетов", source_type="portal")
    )

    assert result.suggested_type == CaseType.INCIDENT
    assert result.suggested_priority == CasePriority.CRITICAL
    assert result.confidence == 0.9


def test_change_and_problem_classification() -> None:
    change = classify_case(TriageInput(title="Modify the fee schedule", source_type="email"))
    problem = classify_case(
        TriageInput(title="Investigate recurring gaps", description=None, source_type="internal")
    )

    assert change.suggested_type == CaseType.CHANGE
    assert change.suggested_role == "compliance"
    assert change.confidence == 0.7
    assert problem.suggested_type == CaseType.PROBLEM
    assert problem.suggested_role == "engineering"


def test_default_request_routes_by_source() -> None:
    billing = classify_case(TriageInput(title="Invoice copy for March", source_type="billing"))
    portal = classify_case(TriageInput(title="Access for my assistant", source_type="Portal"))
    other = classify_case(TriageInput(title="General question", source_type="api"))

    assert billing.suggested_type == CaseType.REQUEST
    assert billing.suggested_role == "finance"
    assert portal.suggested_role == "rm"
    assert portal.reasoning[1] == "Portal requests default to medium priority"
    assert other.suggested_role == "operations"
    assert other.suggested_priority == CasePriority.MEDIUM
    assert other.confidence == 0.6


def test_high_priority_keyword() -> None:
    result = classify_case(TriageInput(title="Important: statement for the board", source_type="email"))

    assert result.suggested_priority == CasePriority.HIGH
    assert result.confidence == 0.7


def test_confidence_is_capped_and_deterministic() -> None:
    triage_input = TriageInput(
        title="URGENT outage", description="critical error, system down", source_type="sync"
    )

    first = classify_case(triage_input)
    second = classify_case(triage_input)

    assert first == second
    assert first.confidence == 0.95
    assert 0.6 <= first.confidence <= 0.95


def test_suggest_routing_role_mapping() -> None:
    assert suggest_routing_role(CaseType.INCIDENT, "dq") == "data_ops"
    assert suggest_routing_role(CaseType.INCIDENT, "portal") == "support"
    assert suggest_routing_role(CaseType.CHANGE, "billing") == "compliance"
    assert suggest_routing_role("request", None) == "operations"


def test_load_triage_rules_from_serialized_table() -> None:
    raw = json.dumps(
        [
            {"dimension": "type", "signal": "incident", "pattern": "Stuck", "weight": 0.15},
            {"dimension": "priority", "signal": "critical", "pattern": "regulator", "weight": 0.15},
            {"dimension": "type", "signal": "request", "pattern": "please", "weight": 0.1},
            {"dimension": "mood", "signal": "incident", "pattern": "sad", "weight": 0.1},
            {"dimension": "type", "signal": "change", "pattern": "", "weight": 0.1},
            {"dimension": "type", "signal": "change", "pattern": "swap", "weight": -1},
            "not-a-rule",
        ]
    )

    rules = load_triage_rules(raw)

    assert [(rule.dimension, rule.pattern) for rule in rules] == [
        (TriageDimension.TYPE, "stuck"),
        (TriageDimension.PRIORITY, "regulator"),
    ]
    result = classify_case(TriageInput(title="Trade stuck, regulator asking", source_type="email"), rules)
    assert result.suggested_type == CaseType.INCIDENT
    assert result.suggested_priority == CasePriority.CRITICAL


def test_load_triage_rules_keeps_signal_precedence_regardless_of_order() -> None:
    rules = load_triage_rules(
        [
            {"dimension": "type", "signal": "problem", "pattern": "gap", "weight": 0.1},
            {"dimension": "type", "signal": "incident", "pattern": "gap", "weight": 0.15},
        ]
    )

    result = classify_case(TriageInput(title="NAV gap", source_type="email"), rules)

    assert result.suggested_type == CaseType.INCIDENT


def test_load_triage_rules_falls_back_on_garbage() -> None:
    assert load_triage_rules("{not json") == triage_service.DEFAULT_TRIAGE_RULES
    assert load_triage_rules(None) == triage_service.DEFAULT_TRIAGE_RULES


def _template(template_id: str, name: str, default_type: CaseType, **kwargs) -> CaseTemplate:
    return CaseTemplate(id=template_id, name=name, default_type=default_type, **kwargs)


def test_suggest_templates_scores_shared_words_and_structural_bonuses() -> None:
    templates = [
        _template("t1", "Missing price data", CaseType.INCIDENT),
        _template("t2", "Invoice dispute", CaseType.REQUEST, category="billing"),
        _template("t3", "Address change", CaseType.CHANGE),
        _template("t4", "Price data feed", CaseType.INCIDENT, is_active=False),
    ]
    triage_input = TriageInput(title="Missing price data for bonds", source_type="dq")

    suggestions = suggest_templates(triage_input, templates)

    assert [item.template.id for item in suggestions] == ["t1"]
    assert suggestions[0].score == 50
    assert suggestions[0].reasons == (
        "Shared words: data, missing, price",
        "Data quality source matches incident template",
    )


def test_suggest_templates_orders_by_score_and_limits() -> None:
    templates = [
        _template(f"t{index}", f"Invoice copy {index}", CaseType.REQUEST, category="billing")
        for index in range(7)
    ]
    templates.append(_template("top", "Invoice copy request", CaseType.REQUEST, category="billing"))
    triage_input = TriageInput(title="Invoice copy request", source_type="billing")

    suggestions = suggest_templates(triage_input, templates)

    assert len(suggestions) == 5
    assert suggestions[0].template.id == "top"
    assert suggestions[0].score == 50
    assert [item.template.id for item in suggestions[1:]] == ["t0", "t1", "t2", "t3"]


def test_suggest_templates_excludes_zero_scores() -> None:
    templates = [_template("t1", "Onboarding checklist", CaseType.REQUEST)]

    assert suggest_templates(TriageInput(title="Hello", source_type="email"), templates) == []
