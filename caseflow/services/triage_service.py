from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from caseflow.config import settings
from caseflow.domain.enums import CasePriority, CaseType, TriageDimension
from caseflow.domain.models import CaseTemplate, TriageInput, TriageResult

logger = logging.getLogger(__name__)

CONFIDENCE_BASELINE = 0.6
CONFIDENCE_CAP = 0.95

SOURCE_SIGNAL_WEIGHT = 0.20
STRUCTURAL_PRIORITY_WEIGHT = 0.10

TEMPLATE_WORD_SCORE = 10
TEMPLATE_STRUCTURAL_BONUS = 20
TEMPLATE_MIN_WORD_LENGTH = 4

_DATA_SOURCES = frozenset({"dq", "sync"})

_TYPE_PRECEDENCE: tuple[CaseType, ...] = (CaseType.INCIDENT, CaseType.CHANGE, CaseType.PROBLEM)
_PRIORITY_PRECEDENCE: tuple[CasePriority, ...] = (CasePriority.CRITICAL, CasePriority.HIGH)


@dataclass(slots=True, frozen=True)
class TriageKeywordRule:
    dimension: TriageDimension
    signal: str
    pattern: str
    weight: float


@dataclass(slots=True, frozen=True)
class TemplateSuggestion:
    template: CaseTemplate
    score: int
    reasons: tuple[str, ...]


def _keyword_rules(
    dimension: TriageDimension,
    signal: str,
    weight: float,
    patterns: Iterable[str],
) -> tuple[TriageKeywordRule, ...]:
    return tuple(
        TriageKeywordRule(dimension=dimension, signal=signal, pattern=pattern, weight=weight)
        for pattern in patterns
    )


DEFAULT_TRIAGE_RULES: tuple[TriageKeywordRule, ...] = (
    *_keyword_rules(
        TriageDimension.TYPE,
        CaseType.INCIDENT,
        0.15,
        (
            "error",
            "fail",
            "down",
            "outage",
            "broken",
            "crash",
            "exception",
            "сбой",
            "ошибк",
            "не работает",
            "упал",
            "недоступ",
        ),
    ),
    *_keyword_rules(
        TriageDimension.TYPE,
        CaseType.CHANGE,
        0.10,
        (
            "change",
            "update",
            "modify",
            "upgrade",
            "migrat",
            "rename",
            "изменит",
            "изменени",
            "обновит",
            "обновлени",
            "замен",
        ),
    ),
    *_keyword_rules(
        TriageDimension.TYPE,
        CaseType.PROBLEM,
        0.10,
        (
            "investigat",
            "root cause",
            "recurring",
            "repeated",
            "intermittent",
            "расследова",
            "причин",
            "повторя",
            "периодическ",
        ),
    ),
    *_keyword_rules(
        TriageDimension.PRIORITY,
        CasePriority.CRITICAL,
        0.15,
        (
            "critical",
            "urgent",
            "emergency",
            "asap",
            "blocker",
            "срочно",
            "критич",
            "авари",
        ),
    ),
    *_keyword_rules(
        TriageDimension.PRIORITY,
        CasePriority.HIGH,
        0.10,
        (
            "important",
            "high priority",
            "escalat",
            "deadline",
            "важно",
            "высокий приоритет",
            "дедлайн",
        ),
    ),
)


def _normalize_source(raw: str | None) -> str:
    if raw is None:
        return ""
    return str(raw).strip().lower()


def _triage_text(triage_input: TriageInput) -> str:
    parts = [triage_input.title or "", triage_input.description or ""]
    return " ".join(part for part in parts if part).lower()


def _first_keyword_match(
    text: str,
    rules: Iterable[TriageKeywordRule],
    *,
    dimension: TriageDimension,
    precedence: tuple[str, ...],
) -> TriageKeywordRule | None:
    candidates = [rule for rule in rules if rule.dimension == dimension]
    for signal in precedence:
        for rule in candidates:
            if rule.signal == signal and rule.pattern and rule.pattern in text:
                return rule
    return None


def suggest_routing_role(case_type: CaseType | str, source_type: str | None) -> str:
    source = _normalize_source(source_type)
    if case_type == CaseType.INCIDENT:
        return "data_ops" if source in _DATA_SOURCES else "support"
    if case_type == CaseType.CHANGE:
        return "compliance"
    if case_type == CaseType.PROBLEM:
        return "engineering"
    if source == "billing":
        return "finance"
    if source == "portal":
        return "rm"
    return "operations"


def classify_case(
    triage_input: TriageInput,
    rules: Iterable[TriageKeywordRule] = DEFAULT_TRIAGE_RULES,
) -> TriageResult:
    rule_list = tuple(rules)
    text = _triage_text(triage_input)
    source = _normalize_source(triage_input.source_type)
    confidence = CONFIDENCE_BASELINE
    reasoning: list[str] = []

    if source in _DATA_SOURCES:
        case_type = CaseType.INCIDENT
        confidence += SOURCE_SIGNAL_WEIGHT
        reasoning.append(f"Source '{source}' reports data issues: classified as incident")
    else:
        type_match = _first_keyword_match(
            text,
            rule_list,
            dimension=TriageDimension.TYPE,
            precedence=_TYPE_PRECEDENCE,
        )
        if type_match is not None:
            case_type = CaseType(type_match.signal)
            confidence += type_match.weight
            reasoning.append(f"Keyword '{type_match.pattern}' indicates {case_type.value}")
        else:
            case_type = CaseType.REQUEST
            reasoning.append("No type keywords matched: defaulted to request")

    priority_match = _first_keyword_match(
        text,
        rule_list,
        dimension=TriageDimension.PRIORITY,
        precedence=_PRIORITY_PRECEDENCE,
    )
    if priority_match is not None:
        priority = CasePriority(priority_match.signal)
        confidence += priority_match.weight
        reasoning.append(f"Keyword '{priority_match.pattern}' indicates {priority.value} priority")
    elif case_type == CaseType.INCIDENT and source == "sync":
        priority = CasePriority.HIGH
        confidence += STRUCTURAL_PRIORITY_WEIGHT
        reasoning.append("Sync incidents are treated as high priority")
    elif case_type == CaseType.REQUEST and source == "portal":
        priority = CasePriority.MEDIUM
        reasoning.append("Portal requests default to medium priority")
    else:
        priority = CasePriority.MEDIUM
        reasoning.append("No priority signals matched: defaulted to medium")

    role = suggest_routing_role(case_type, source)
    reasoning.append(f"Suggested routing role: {role}")

    bounded = min(max(confidence, CONFIDENCE_BASELINE), CONFIDENCE_CAP)
    return TriageResult(
        suggested_type=case_type,
        suggested_priority=priority,
        suggested_role=role,
        confidence=round(bounded, 2),
        reasoning=tuple(reasoning),
    )


def _words(text: str) -> set[str]:
    return set(re.findall(r"\w+", text.lower()))


def suggest_templates(
    triage_input: TriageInput,
    templates: Iterable[CaseTemplate],
    *,
    limit: int | None = None,
) -> list[TemplateSuggestion]:
    max_items = settings.template_suggestion_limit if limit is None else limit
    input_words = _words(_triage_text(triage_input))
    source = _normalize_source(triage_input.source_type)

    scored: list[TemplateSuggestion] = []
    for template in templates:
        if not template.is_active:
            continue
        score = 0
        reasons: list[str] = []
        shared = sorted(
            word
            for word in _words(template.name)
            if len(word) >= TEMPLATE_MIN_WORD_LENGTH and word in input_words
        )
        if shared:
            score += TEMPLATE_WORD_SCORE * len(shared)
            reasons.append(f"Shared words: {', '.join(shared)}")
        if source == "dq" and template.default_type == CaseType.INCIDENT:
            score += TEMPLATE_STRUCTURAL_BONUS
            reasons.append("Data quality source matches incident template")
        if source == "billing" and (template.category or "").strip().lower() == "billing":
            score += TEMPLATE_STRUCTURAL_BONUS
            reasons.append("Billing source matches billing template")
        if score > 0:
            scored.append(TemplateSuggestion(template=template, score=score, reasons=tuple(reasons)))

    scored.sort(key=lambda item: item.score, reverse=True)
    return scored[: max(max_items, 0)]


def _coerce_rule(raw: Mapping[str, Any]) -> TriageKeywordRule:
    try:
        dimension = TriageDimension(str(raw.get("dimension", "")).strip().lower())
    except ValueError as exc:
        raise ValueError("unknown_dimension") from exc

    signal = str(raw.get("signal", "")).strip().lower()
    precedence = _TYPE_PRECEDENCE if dimension == TriageDimension.TYPE else _PRIORITY_PRECEDENCE
    if signal not in precedence:
        raise ValueError("unknown_signal")

    pattern = str(raw.get("pattern", "")).strip().lower()
    if not pattern:
        raise ValueError("empty_pattern")

    try:
        weight = float(raw.get("weight", 0.0))
    except (TypeError, ValueError) as exc:
        raise ValueError("invalid_weight") from exc
    if weight < 0:
        raise ValueError("negative_weight")

    return TriageKeywordRule(dimension=dimension, signal=signal, pattern=pattern, weight=weight)


def load_triage_rules(raw: str | Iterable[Mapping[str, Any]] | None) -> tuple[TriageKeywordRule, ...]:
    if raw is None:
        return DEFAULT_TRIAGE_RULES
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("triage_rules_unparseable error=%s", exc)
            return DEFAULT_TRIAGE_RULES
        if not isinstance(raw, list):
            logger.warning("triage_rules_unparseable error=expected_list")
            return DEFAULT_TRIAGE_RULES

    rules: list[TriageKeywordRule] = []
    for index, item in enumerate(raw):
        if not isinstance(item, Mapping):
            logger.warning("triage_rule_skipped index=%s reason=not_a_mapping", index)
            continue
        try:
            rules.append(_coerce_rule(item))
        except ValueError as exc:
            logger.warning("triage_rule_skipped index=%s reason=%s", index, exc)
    return tuple(rules)
