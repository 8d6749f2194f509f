from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from dealflow.core.db.activity_log import append_activity, list_activities
from dealflow.core.db.models import Activity
from dealflow.core.middleware.audit import get_logger
from dealflow.core.security.auth import Actor
from dealflow.domain.deals.enums import ActivityType, DealAction, DealStage
from dealflow.domain.deals.models.deals import Deal, DealLineItem, DealVersion
from dealflow.domain.deals.schemas.deals import CloseRequest, DealCreate, SendToEstimatingRequest, SubmitRequest
from dealflow.domain.deals.services import guard, versions
from dealflow.domain.deals.services.queries import count_line_items, get_deal, list_line_items_for_version
from dealflow.shared.enums import Role
from dealflow.shared.exceptions import ValidationError
from dealflow.shared.utils import utcnow

logger = get_logger(__name__)


@dataclass(frozen=True)
class Transition:
    deal: Deal
    from_stage: DealStage
    activity: Activity


@dataclass(frozen=True)
class Workspace:
    deal: Deal
    version: DealVersion | None
    line_items: list[DealLineItem]

    @property
    def editable(self) -> bool:
        return self.version is not None and not self.version.locked and self.deal.stage == DealStage.IN_ESTIMATING


def _ownership(actor: Actor, deal: Deal) -> guard.Ownership:
    return guard.Ownership(
        actor_id=actor.actor_id,
        creator_id=deal.creator_id,
        assigned_estimator_id=deal.assigned_estimator_id,
    )


def list_deals(
    db: Session,
    *,
    actor: Actor,
    stage: DealStage | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Deal]:
    # Stage-independent read permission; DISPATCH uses the dispatch listing instead.
    guard.require(DealStage.OPEN, DealAction.VIEW_WORKSPACE, actor.role, guard.Ownership(actor_id=actor.actor_id))
    stmt = select(Deal).where(Deal.tenant_id == actor.tenant_id)
    if stage:
        stmt = stmt.where(Deal.stage == stage)
    stmt = stmt.order_by(Deal.created_at.desc(), Deal.id).offset(offset).limit(limit)
    return list(db.execute(stmt).scalars().all())


def read_deal(db: Session, *, actor: Actor, deal_id: uuid.UUID) -> Deal:
    deal = get_deal(db, actor=actor, deal_id=deal_id)
    guard.require(deal.stage, DealAction.VIEW_WORKSPACE, actor.role, _ownership(actor, deal))
    return deal


def create_deal(db: Session, *, actor: Actor, data: DealCreate) -> Deal:
    guard.require(None, DealAction.CREATE_DEAL, actor.role, guard.Ownership(actor_id=actor.actor_id))

    name = data.name.strip()
    if not name:
        raise ValidationError("name must not be blank")

    deal = Deal(
        tenant_id=actor.tenant_id,
        contact_id=data.contact_id,
        name=name,
        description=data.description,
        stage=DealStage.OPEN,
        creator_id=actor.actor_id,
        delivery_enabled=False,
        created_by=actor.actor_id,
        updated_by=actor.actor_id,
    )
    db.add(deal)
    db.flush()

    append_activity(
        db,
        tenant_id=deal.tenant_id,
        deal_id=deal.id,
        contact_id=deal.contact_id,
        actor_id=actor.actor_id,
        type=ActivityType.DEAL_CREATED,
        subject=f"Deal created: {deal.name}",
        meta={"stage": deal.stage},
    )
    db.commit()
    db.refresh(deal)
    logger.info("deal.created", deal_id=str(deal.id))
    return deal


def send_to_estimating(db: Session, *, actor: Actor, deal_id: uuid.UUID, data: SendToEstimatingRequest) -> Transition:
    deal = get_deal(db, actor=actor, deal_id=deal_id)
    from_stage = deal.stage
    to_stage = guard.require(from_stage, DealAction.SEND_TO_ESTIMATING, actor.role, _ownership(actor, deal))

    assigned = data.assigned_to_id
    if not assigned and actor.role is Role.ESTIMATOR:
        assigned = actor.actor_id

    now = utcnow()
    deal.stage = to_stage
    deal.assigned_estimator_id = assigned or deal.assigned_estimator_id
    deal.estimating_started_at = now
    deal.estimating_started_by = actor.actor_id
    deal.updated_by = actor.actor_id
    db.flush()

    activity = append_activity(
        db,
        tenant_id=deal.tenant_id,
        deal_id=deal.id,
        contact_id=deal.contact_id,
        actor_id=actor.actor_id,
        type=ActivityType.DEAL_SENT_TO_ESTIMATING,
        subject="Deal sent to estimating",
        body=data.notes,
        meta={
            "from_stage": from_stage,
            "to_stage": to_stage,
            "assigned_estimator_id": deal.assigned_estimator_id,
        },
        occurred_at=now,
    )
    versions.create_initial_version(db, deal=deal, actor_id=actor.actor_id)
    db.commit()
    db.refresh(deal)
    logger.info("deal.sent_to_estimating", deal_id=str(deal.id), assigned_estimator_id=deal.assigned_estimator_id)
    return Transition(deal=deal, from_stage=from_stage, activity=activity)


def submit(db: Session, *, actor: Actor, deal_id: uuid.UUID, data: SubmitRequest) -> Transition:
    deal = get_deal(db, actor=actor, deal_id=deal_id)
    from_stage = deal.stage
    to_stage = guard.require(from_stage, DealAction.SUBMIT, actor.role, _ownership(actor, deal))

    version = versions.get_current_version(db, deal=deal)
    if version is None:
        raise ValidationError("Deal has no editable version")
    item_count = count_line_items(db, version=version)
    if item_count == 0:
        raise ValidationError("Cannot submit a version without line items")

    deal.stage = to_stage
    deal.updated_by = actor.actor_id
    db.flush()

    activity = append_activity(
        db,
        tenant_id=deal.tenant_id,
        deal_id=deal.id,
        contact_id=deal.contact_id,
        actor_id=actor.actor_id,
        type=ActivityType.DEAL_SUBMITTED,
        subject=f"Version {version.version_number} submitted for approval",
        body=data.notes,
        meta={
            "from_stage": from_stage,
            "to_stage": to_stage,
            "version_id": version.id,
            "version_number": version.version_number,
            "line_item_count": item_count,
            "subtotal": version.subtotal,
            "total": version.total,
        },
    )
    db.commit()
    db.refresh(deal)
    logger.info("deal.submitted", deal_id=str(deal.id), version_id=str(version.id))
    return Transition(deal=deal, from_stage=from_stage, activity=activity)


def close(db: Session, *, actor: Actor, deal_id: uuid.UUID, data: CloseRequest) -> Transition:
    deal = get_deal(db, actor=actor, deal_id=deal_id)
    from_stage = deal.stage
    to_stage = guard.require(
        from_stage,
        DealAction.CLOSE,
        actor.role,
        _ownership(actor, deal),
        target=DealStage(data.outcome.value),
    )

    now = utcnow()
    deal.stage = to_stage
    deal.closed_at = now
    deal.updated_by = actor.actor_id
    db.flush()

    activity = append_activity(
        db,
        tenant_id=deal.tenant_id,
        deal_id=deal.id,
        contact_id=deal.contact_id,
        actor_id=actor.actor_id,
        type=ActivityType.DEAL_STAGE_CHANGED,
        subject=f"Deal closed as {to_stage.value}",
        body=data.notes,
        meta={"from_stage": from_stage, "to_stage": to_stage},
        occurred_at=now,
    )
    db.commit()
    db.refresh(deal)
    logger.info("deal.closed", deal_id=str(deal.id), outcome=to_stage.value)
    return Transition(deal=deal, from_stage=from_stage, activity=activity)


def get_workspace(db: Session, *, actor: Actor, deal_id: uuid.UUID) -> Workspace:
    deal = read_deal(db, actor=actor, deal_id=deal_id)
    version = versions.get_current_version(db, deal=deal) or versions.latest_version(db, deal=deal)
    items = list_line_items_for_version(db, version=version) if version is not None else []
    return Workspace(deal=deal, version=version, line_items=items)


def get_activities(db: Session, *, actor: Actor, deal_id: uuid.UUID, limit: int = 200) -> list[Activity]:
    deal = read_deal(db, actor=actor, deal_id=deal_id)
    return list_activities(db, tenant_id=deal.tenant_id, deal_id=deal.id, limit=limit)
