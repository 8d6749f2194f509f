"""Stage transition guard.

A pure decision table over (stage, action, role, ownership). Nothing here reads or
writes the database; callers evaluate before touching any row and raise the returned
denial.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from dealflow.domain.deals.enums import DealAction, DealStage
from dealflow.shared.enums import Role
from dealflow.shared.exceptions import AppError, Forbidden, InvalidStage


@dataclass(frozen=True)
class Ownership:
    actor_id: str
    creator_id: str | None = None
    assigned_estimator_id: str | None = None


@dataclass(frozen=True)
class GuardDecision:
    allowed: bool
    action: DealAction
    resulting_stage: DealStage | None = None
    denial: AppError | None = field(default=None, compare=False)

    def raise_for_denial(self) -> "GuardDecision":
        if not self.allowed:
            raise self.denial or Forbidden()
        return self


OwnershipRule = Callable[[Role, Ownership], bool]


def _any_owner(role: Role, ownership: Ownership) -> bool:
    return True


def _creator_if_intake(role: Role, ownership: Ownership) -> bool:
    if role is Role.USER:
        return ownership.creator_id == ownership.actor_id
    return True


def _assignee_if_estimator(role: Role, ownership: Ownership) -> bool:
    if role is Role.ESTIMATOR:
        assigned = ownership.assigned_estimator_id
        return assigned is None or assigned == ownership.actor_id
    return True


@dataclass(frozen=True)
class _Rule:
    stages: frozenset[DealStage | None]
    roles: frozenset[Role]
    # None: stays in the current stage (reads, line-item edits).
    result: DealStage | None
    ownership: OwnershipRule = _any_owner


_PRICING = frozenset({Role.ESTIMATOR, Role.ADMIN, Role.OWNER})
_INTERNAL = frozenset({Role.USER, Role.ESTIMATOR, Role.ADMIN, Role.OWNER})

_RULES: dict[DealAction, _Rule] = {
    DealAction.CREATE_DEAL: _Rule(frozenset({None}), _INTERNAL, DealStage.OPEN),
    DealAction.SEND_TO_ESTIMATING: _Rule(
        frozenset({DealStage.OPEN}), _INTERNAL, DealStage.IN_ESTIMATING, _creator_if_intake
    ),
    DealAction.EDIT_LINE_ITEMS: _Rule(
        frozenset({DealStage.IN_ESTIMATING}), _PRICING, DealStage.IN_ESTIMATING, _assignee_if_estimator
    ),
    DealAction.SUBMIT: _Rule(frozenset({DealStage.IN_ESTIMATING}), _PRICING, DealStage.SUBMITTED, _assignee_if_estimator),
    DealAction.APPROVE: _Rule(frozenset({DealStage.SUBMITTED}), _PRICING, DealStage.DISPATCHED),
    # Outcome (WON/LOST) is supplied by the caller as the target.
    DealAction.CLOSE: _Rule(frozenset({DealStage.DISPATCHED}), _PRICING, None),
    DealAction.VIEW_WORKSPACE: _Rule(frozenset(DealStage), _INTERNAL, None),
    DealAction.VIEW_ESTIMATE: _Rule(
        frozenset({DealStage.DISPATCHED, DealStage.WON, DealStage.LOST}), _INTERNAL | {Role.DISPATCH}, None
    ),
    DealAction.VIEW_DISPATCHED: _Rule(frozenset({DealStage.DISPATCHED}), frozenset({Role.DISPATCH}), None),
}

_missing = set(DealAction) - set(_RULES)
if _missing:
    raise RuntimeError(f"Stage guard has no rule for: {sorted(a.value for a in _missing)}")

_CLOSE_TARGETS = frozenset({DealStage.WON, DealStage.LOST})


def _deny(action: DealAction, error: AppError) -> GuardDecision:
    return GuardDecision(allowed=False, action=action, denial=error)


def evaluate(
    stage: DealStage | None,
    action: DealAction,
    role: Role | None,
    ownership: Ownership,
    *,
    target: DealStage | None = None,
) -> GuardDecision:
    """Decide whether ``role`` may perform ``action`` on a deal currently in ``stage``.

    Role problems (unknown role, role not in the table, ownership mismatch) deny with
    ``Forbidden``; a permitted role acting in the wrong stage denies with ``InvalidStage``.
    ADMIN and OWNER are never subject to ownership rules.
    """
    rule = _RULES[action]

    if role is None:
        return _deny(action, Forbidden("Unrecognised role"))
    if role not in rule.roles:
        return _deny(action, Forbidden(f"Role {role.value} may not perform {action.value}"))
    if stage not in rule.stages:
        label = stage.value if stage is not None else "NEW"
        return _deny(action, InvalidStage(f"{action.value} is not allowed in stage {label}"))
    if not rule.ownership(role, ownership):
        return _deny(action, Forbidden(f"{action.value} is restricted to the deal's owner"))

    resulting = rule.result
    if action is DealAction.CLOSE:
        if target not in _CLOSE_TARGETS:
            return _deny(action, InvalidStage("Close outcome must be WON or LOST"))
        resulting = target
    return GuardDecision(allowed=True, action=action, resulting_stage=resulting)


def require(
    stage: DealStage | None,
    action: DealAction,
    role: Role | None,
    ownership: Ownership,
    *,
    target: DealStage | None = None,
) -> DealStage | None:
    """Evaluate and raise the denial; returns the resulting stage when allowed."""
    return evaluate(stage, action, role, ownership, target=target).raise_for_denial().resulting_stage
