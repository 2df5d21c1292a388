from __future__ import annotations

from ..errors import InvalidTransitionError
from .models import AdminActionType, CaseStatus, VerificationCase

# action -> (allowed source statuses, target status)
TRANSITIONS: dict[AdminActionType, tuple[frozenset[CaseStatus], CaseStatus]] = {
    AdminActionType.VERIFY: (frozenset({CaseStatus.PENDING}), CaseStatus.VERIFIED),
    AdminActionType.BAN: (frozenset({CaseStatus.PENDING}), CaseStatus.BANNED),
    AdminActionType.REOPEN: (frozenset({CaseStatus.VERIFIED, CaseStatus.BANNED}), CaseStatus.PENDING),
}


def can_transition(status: CaseStatus, action: AdminActionType) -> bool:
    rule = TRANSITIONS.get(action)
    return rule is not None and status in rule[0]


def plan_transition(case: VerificationCase, action: AdminActionType) -> CaseStatus:
    """Return the status `action` would move `case` to, or raise InvalidTransitionError."""
    rule = TRANSITIONS.get(action)
    if rule is None:
        raise InvalidTransitionError(case.id, case.status.value, action.value, f"{action.value} does not change case status")
    sources, target = rule
    if case.status not in sources:
        raise InvalidTransitionError(case.id, case.status.value, action.value)
    return target


def available_actions(status: CaseStatus) -> list[AdminActionType]:
    return [action for action, (sources, _) in TRANSITIONS.items() if status in sources]
