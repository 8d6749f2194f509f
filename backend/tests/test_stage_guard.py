from __future__ import annotations

import itertools

import pytest

from dealflow.domain.deals.enums import DealAction, DealStage
from dealflow.domain.deals.services.guard import Ownership, evaluate, require
from dealflow.shared.enums import Role
from dealflow.shared.exceptions import Forbidden, InvalidStage

PRICING = {Role.ESTIMATOR, Role.ADMIN, Role.OWNER}
INTERNAL = {Role.USER, Role.ESTIMATOR, Role.ADMIN, Role.OWNER}

# (stages, roles, resulting stage) per action, written out independently of the guard module.
TABLE = {
    DealAction.CREATE_DEAL: ({None}, INTERNAL, DealStage.OPEN),
    DealAction.SEND_TO_ESTIMATING: ({DealStage.OPEN}, INTERNAL, DealStage.IN_ESTIMATING),
    DealAction.EDIT_LINE_ITEMS: ({DealStage.IN_ESTIMATING}, PRICING, DealStage.IN_ESTIMATING),
    DealAction.SUBMIT: ({DealStage.IN_ESTIMATING}, PRICING, DealStage.SUBMITTED),
    DealAction.APPROVE: ({DealStage.SUBMITTED}, PRICING, DealStage.DISPATCHED),
    DealAction.CLOSE: ({DealStage.DISPATCHED}, PRICING, DealStage.WON),
    DealAction.VIEW_WORKSPACE: (set(DealStage), INTERNAL, None),
    DealAction.VIEW_ESTIMATE: ({DealStage.DISPATCHED, DealStage.WON, DealStage.LOST}, INTERNAL | {Role.DISPATCH}, None),
    DealAction.VIEW_DISPATCHED: ({DealStage.DISPATCHED}, {Role.DISPATCH}, None),
}

# Actor is both creator and assignee, so ownership never decides the outcome here.
OWNED = Ownership(actor_id="a-1", creator_id="a-1", assigned_estimator_id="a-1")


def test_table_covers_every_action():
    assert set(TABLE) == set(DealAction)


@pytest.mark.parametrize(
    "stage,action,role",
    list(itertools.product([None, *DealStage], list(DealAction), [None, *Role])),
)
def test_every_stage_action_role_triple(stage, action, role):
    stages, roles, resulting = TABLE[action]
    decision = evaluate(stage, action, role, OWNED, target=DealStage.WON)

    if stage in stages and role in roles:
        assert decision.allowed
        assert decision.denial is None
        assert decision.resulting_stage == resulting
    elif role is None or role not in roles:
        assert not decision.allowed
        assert type(decision.denial) is Forbidden
    else:
        assert not decision.allowed
        assert type(decision.denial) is InvalidStage


def test_unknown_role_string_is_denied():
    assert Role.parse("SUPERUSER") is None
    assert Role.parse(None) is None
    assert Role.parse(" estimator ") is Role.ESTIMATOR

    decision = evaluate(DealStage.SUBMITTED, DealAction.APPROVE, Role.parse("SUPERUSER"), OWNED)
    assert not decision.allowed
    assert isinstance(decision.denial, Forbidden)


def test_intake_role_may_only_send_its_own_deal():
    other = Ownership(actor_id="user-2", creator_id="user-1")
    decision = evaluate(DealStage.OPEN, DealAction.SEND_TO_ESTIMATING, Role.USER, other)
    assert isinstance(decision.denial, Forbidden)

    mine = Ownership(actor_id="user-1", creator_id="user-1")
    assert evaluate(DealStage.OPEN, DealAction.SEND_TO_ESTIMATING, Role.USER, mine).allowed

    # Pricing and admin roles are not bound to the creator.
    assert evaluate(DealStage.OPEN, DealAction.SEND_TO_ESTIMATING, Role.ESTIMATOR, other).allowed


@pytest.mark.parametrize("action", [DealAction.EDIT_LINE_ITEMS, DealAction.SUBMIT])
def test_estimator_must_be_unassigned_or_the_assignee(action):
    assigned_elsewhere = Ownership(actor_id="est-2", assigned_estimator_id="est-1")
    unassigned = Ownership(actor_id="est-2", assigned_estimator_id=None)

    assert isinstance(evaluate(DealStage.IN_ESTIMATING, action, Role.ESTIMATOR, assigned_elsewhere).denial, Forbidden)
    assert evaluate(DealStage.IN_ESTIMATING, action, Role.ESTIMATOR, unassigned).allowed
    assert evaluate(DealStage.IN_ESTIMATING, action, Role.ADMIN, assigned_elsewhere).allowed
    assert evaluate(DealStage.IN_ESTIMATING, action, Role.OWNER, assigned_elsewhere).allowed


def test_wrong_stage_is_reported_before_ownership():
    assigned_elsewhere = Ownership(actor_id="est-2", assigned_estimator_id="est-1")
    decision = evaluate(DealStage.SUBMITTED, DealAction.EDIT_LINE_ITEMS, Role.ESTIMATOR, assigned_elsewhere)
    assert isinstance(decision.denial, InvalidStage)


def test_close_requires_a_terminal_outcome():
    assert evaluate(DealStage.DISPATCHED, DealAction.CLOSE, Role.ADMIN, OWNED, target=DealStage.LOST).resulting_stage == DealStage.LOST
    decision = evaluate(DealStage.DISPATCHED, DealAction.CLOSE, Role.ADMIN, OWNED, target=DealStage.OPEN)
    assert isinstance(decision.denial, InvalidStage)


@pytest.mark.parametrize("stage", [DealStage.WON, DealStage.LOST])
@pytest.mark.parametrize(
    "action",
    [DealAction.SEND_TO_ESTIMATING, DealAction.EDIT_LINE_ITEMS, DealAction.SUBMIT, DealAction.APPROVE, DealAction.CLOSE],
)
def test_terminal_stages_reject_every_mutation(stage, action):
    decision = evaluate(stage, action, Role.OWNER, OWNED, target=DealStage.WON)
    assert isinstance(decision.denial, InvalidStage)


def test_dispatch_role_never_mutates():
    for stage, action in itertools.product(DealStage, DealAction):
        if action in (DealAction.VIEW_ESTIMATE, DealAction.VIEW_DISPATCHED):
            continue
        assert not evaluate(stage, action, Role.DISPATCH, OWNED, target=DealStage.WON).allowed


def test_require_raises_the_denial():
    with pytest.raises(Forbidden):
        require(DealStage.SUBMITTED, DealAction.APPROVE, Role.USER, OWNED)
    with pytest.raises(InvalidStage):
        require(DealStage.IN_ESTIMATING, DealAction.APPROVE, Role.ADMIN, OWNED)
    assert require(DealStage.SUBMITTED, DealAction.APPROVE, Role.ADMIN, OWNED) == DealStage.DISPATCHED
