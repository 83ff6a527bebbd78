from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from caseflow.domain.enums import CaseType, RoutingField, RoutingOperator, RoutingTargetType
from caseflow.domain.models import CaseRecord, RoutingCondition, RoutingRule, RoutingTarget

logger = logging.getLogger(__name__)

CUSTOM_RULE_CONFIDENCE = 0.9
DEFAULT_TABLE_CONFIDENCE = 0.7
FALLBACK_ROLE = "operations"

DEFAULT_ROUTING_TABLE: dict[str, dict[str, str]] = {
    CaseType.INCIDENT: {
        "sync": "data_ops",
        "dq": "data_ops",
        "default": "support",
    },
    CaseType.CHANGE: {
        "default": "compliance",
    },
    CaseType.PROBLEM: {
        "default": "engineering",
    },
    CaseType.REQUEST: {
        "billing": "finance",
        "portal": "rm",
        "default": "operations",
    },
}

ROLE_LABELS: dict[str, str] = {
    "data_ops": "Data Operations",
    "support": "Support",
    "compliance": "Compliance",
    "engineering": "Engineering",
    "finance": "Finance",
    "rm": "Relationship Management",
    "operations": "Operations",
}

_FIELD_ALIASES: dict[str, RoutingField] = {
    "casetype": RoutingField.CASE_TYPE,
    "case_type": RoutingField.CASE_TYPE,
    "type": RoutingField.CASE_TYPE,
    "priority": RoutingField.PRIORITY,
    "sourcetype": RoutingField.SOURCE_TYPE,
    "source_type": RoutingField.SOURCE_TYPE,
    "source": RoutingField.SOURCE_TYPE,
    "scopetype": RoutingField.SCOPE_TYPE,
    "scope_type": RoutingField.SCOPE_TYPE,
    "tags": RoutingField.TAGS,
}


@dataclass(slots=True, frozen=True)
class RoutingResult:
    target_type: RoutingTargetType
    target_id: str
    target_name: str
    confidence: float
    matched_rule_name: str | None = None


def role_label(role: str) -> str:
    return ROLE_LABELS.get(role, role)


def normalize_routing_field(raw: str | RoutingField | None) -> RoutingField | None:
    if raw is None:
        return None
    if isinstance(raw, RoutingField):
        return raw
    return _FIELD_ALIASES.get(str(raw).strip().lower())


def _case_field_value(case: CaseRecord, field: RoutingField) -> str | tuple[str, ...] | None:
    if field == RoutingField.CASE_TYPE:
        return str(case.case_type)
    if field == RoutingField.PRIORITY:
        return str(case.priority)
    if field == RoutingField.SOURCE_TYPE:
        return case.source_type
    if field == RoutingField.SCOPE_TYPE:
        return case.scope_type
    return tuple(sorted(case.tags))


def evaluate_condition(case: CaseRecord, condition: RoutingCondition) -> bool:
    field = normalize_routing_field(condition.field)
    if field is None:
        return False
    actual = _case_field_value(case, field)
    if actual is None:
        return False
    expected = condition.value

    if condition.operator == RoutingOperator.EQUALS:
        if isinstance(actual, tuple):
            return isinstance(expected, tuple) and sorted(actual) == sorted(expected)
        return actual == expected

    if condition.operator == RoutingOperator.IN:
        if not isinstance(expected, tuple):
            return False
        if isinstance(actual, tuple):
            return any(item in expected for item in actual)
        return actual in expected

    if condition.operator == RoutingOperator.CONTAINS:
        if isinstance(actual, tuple):
            if isinstance(expected, tuple):
                return any(item in expected for item in actual)
            return any(item == expected for item in actual)
        if isinstance(expected, tuple):
            return False
        return expected in actual

    return False


def rule_matches(case: CaseRecord, rule: RoutingRule) -> bool:
    return all(evaluate_condition(case, condition) for condition in rule.conditions)


def resolve_default_role(case_type: CaseType | str, source_type: str | None) -> str:
    source = (source_type or "").strip().lower()
    type_table = DEFAULT_ROUTING_TABLE.get(str(case_type).strip().lower())
    if type_table is not None:
        role = type_table.get(source) or type_table.get("default")
        if role:
            return role

    request_table = DEFAULT_ROUTING_TABLE[CaseType.REQUEST]
    return request_table.get(source) or request_table.get("default") or FALLBACK_ROLE


def route_case(case: CaseRecord, custom_rules: Iterable[RoutingRule] | None = None) -> RoutingResult:
    if custom_rules is not None:
        matched = [rule for rule in custom_rules if rule.is_active and rule_matches(case, rule)]
        if matched:
            matched.sort(key=lambda rule: rule.priority, reverse=True)
            winner = matched[0]
            return RoutingResult(
                target_type=winner.target.type,
                target_id=winner.target.id,
                target_name=winner.target.name,
                confidence=CUSTOM_RULE_CONFIDENCE,
                matched_rule_name=winner.name,
            )

    role = resolve_default_role(case.case_type, case.source_type)
    return RoutingResult(
        target_type=RoutingTargetType.ROLE,
        target_id=role,
        target_name=role_label(role),
        confidence=DEFAULT_TABLE_CONFIDENCE,
    )


def _coerce_condition_value(raw: Any) -> str | tuple[str, ...]:
    if isinstance(raw, (list, tuple, set, frozenset)):
        return tuple(str(item) for item in raw)
    if raw is None:
        raise ValueError("missing_value")
    return str(raw)


def _coerce_condition(raw: Mapping[str, Any]) -> RoutingCondition:
    field = normalize_routing_field(raw.get("field"))
    if field is None:
        raise ValueError("unknown_field")
    try:
        operator = RoutingOperator(str(raw.get("operator", "")).strip().lower())
    except ValueError as exc:
        raise ValueError("unknown_operator") from exc
    return RoutingCondition(field=field, operator=operator, value=_coerce_condition_value(raw.get("value")))


def _coerce_target(raw: Mapping[str, Any]) -> RoutingTarget:
    raw_type = raw.get("targetType", raw.get("target_type"))
    try:
        target_type = RoutingTargetType(str(raw_type or "").strip().lower())
    except ValueError as exc:
        raise ValueError("unknown_target_type") from exc
    target_id = str(raw.get("targetId", raw.get("target_id")) or "").strip()
    if not target_id:
        raise ValueError("missing_target_id")
    target_name = str(raw.get("targetName", raw.get("target_name")) or "").strip() or target_id
    return RoutingTarget(type=target_type, id=target_id, name=target_name)


def _load_json_list(raw: Any, *, field_name: str) -> list[Any]:
    if raw is None:
        return []
    if isinstance(raw, str):
        if not raw.strip():
            return []
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{field_name}_unparseable") from exc
    if not isinstance(raw, list):
        raise ValueError(f"{field_name}_not_a_list")
    return raw


def parse_routing_rule(raw: Mapping[str, Any]) -> RoutingRule:
    rule_id = str(raw.get("id") or "").strip()
    name = str(raw.get("name") or "").strip() or rule_id
    if not name:
        raise ValueError("missing_name")

    raw_conditions = raw.get("conditionsJson", raw.get("conditions"))
    conditions: list[RoutingCondition] = []
    for item in _load_json_list(raw_conditions, field_name="conditions"):
        if not isinstance(item, Mapping):
            raise ValueError("condition_not_a_mapping")
        conditions.append(_coerce_condition(item))

    try:
        priority = int(raw.get("priority") or 0)
    except (TypeError, ValueError) as exc:
        raise ValueError("invalid_priority") from exc

    is_active = raw.get("isActive", raw.get("is_active", True))
    return RoutingRule(
        id=rule_id or name,
        name=name,
        target=_coerce_target(raw),
        conditions=tuple(conditions),
        priority=priority,
        is_active=bool(is_active),
    )


def parse_routing_rules(raw_rules: Iterable[Mapping[str, Any]]) -> list[RoutingRule]:
    rules: list[RoutingRule] = []
    for index, raw in enumerate(raw_rules):
        if not isinstance(raw, Mapping):
            logger.warning("routing_rule_skipped index=%s rule=%s reason=not_a_mapping", index, None)
            continue
        try:
            rules.append(parse_routing_rule(raw))
        except ValueError as exc:
            logger.warning("routing_rule_skipped index=%s rule=%s reason=%s", index, raw.get("name"), exc)
    return rules
