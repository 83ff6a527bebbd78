from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from caseflow.config import settings
from caseflow.domain.enums import CasePriority, CaseType
from caseflow.domain.models import Assignee

SKILLS_BY_CASE_TYPE: dict[str, frozenset[str]] = {
    CaseType.INCIDENT: frozenset({"incident_management", "data_quality", "troubleshooting", "support"}),
    CaseType.CHANGE: frozenset({"change_management", "compliance", "data_governance"}),
    CaseType.PROBLEM: frozenset({"root_cause_analysis", "engineering", "data_quality"}),
    CaseType.REQUEST: frozenset({"client_service", "operations", "billing"}),
}


@dataclass(slots=True, frozen=True)
class ReassignmentSuggestion:
    user: Assignee
    matched_skills: tuple[str, ...]
    reason: str


def _normalize_role(raw: str | None) -> str:
    return (raw or "").strip().lower()


def available_assignees(role: str, users: Iterable[Assignee]) -> list[Assignee]:
    normalized_role = _normalize_role(role)
    return [user for user in users if user.active and _normalize_role(user.role) == normalized_role]


def auto_assign(role: str, users: Iterable[Assignee]) -> Assignee | None:
    candidates = available_assignees(role, users)
    if not candidates:
        return None
    # min() keeps the first candidate on ties
    return min(candidates, key=lambda user: max(user.current_case_count, 0))


def suggest_reassignment(
    current_assignee_id: str | None,
    case_type: CaseType | str,
    priority: CasePriority | str,
    users: Iterable[Assignee],
    *,
    limit: int | None = None,
) -> list[ReassignmentSuggestion]:
    max_items = settings.reassignment_suggestion_limit if limit is None else limit
    wanted_skills = SKILLS_BY_CASE_TYPE.get(str(case_type).strip().lower(), frozenset())
    if not wanted_skills or max_items <= 0:
        return []

    suggestions: list[ReassignmentSuggestion] = []
    for user in users:
        if not user.active or user.id == current_assignee_id:
            continue
        matched = tuple(sorted(wanted_skills & {skill.strip().lower() for skill in user.skills}))
        if not matched:
            continue
        reason = (
            f"Skills {', '.join(matched)} fit {case_type} ({priority}); "
            f"{user.current_case_count} open case(s)"
        )
        suggestions.append(ReassignmentSuggestion(user=user, matched_skills=matched, reason=reason))

    suggestions.sort(key=lambda item: (-len(item.matched_skills), item.user.current_case_count))
    return suggestions[:max_items]
