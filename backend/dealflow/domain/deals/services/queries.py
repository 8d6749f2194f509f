from __future__ import annotations

import uuid

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from dealflow.core.security.auth import Actor
from dealflow.domain.deals.models.deals import Deal, DealLineItem, DealVersion
from dealflow.shared.exceptions import NotFound


def get_deal(db: Session, *, actor: Actor, deal_id: uuid.UUID) -> Deal:
    """Tenant-scoped load; another tenant's deal reads as missing."""
    deal = db.execute(select(Deal).where(Deal.tenant_id == actor.tenant_id, Deal.id == deal_id)).scalar_one_or_none()
    if deal is None:
        raise NotFound("Deal not found")
    return deal


def list_line_items_for_version(db: Session, *, version: DealVersion) -> list[DealLineItem]:
    stmt = (
        select(DealLineItem)
        .where(DealLineItem.version_id == version.id)
        .order_by(DealLineItem.sort_order.asc(), DealLineItem.created_at.asc(), DealLineItem.id.asc())
    )
    return list(db.execute(stmt).scalars().all())


def count_line_items(db: Session, *, version: DealVersion) -> int:
    stmt = select(func.count()).select_from(DealLineItem).where(DealLineItem.version_id == version.id)
    return int(db.execute(stmt).scalar_one())
