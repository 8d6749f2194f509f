from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from dealflow.core.db.session import get_db
from dealflow.core.security.auth import Actor
from dealflow.core.security.dependencies import get_actor
from dealflow.domain.deals.schemas.deals import DealOut, DispatchDealOut, DocumentRef, EstimateLineItemOut, VersionOut
from dealflow.domain.deals.services import views


router = APIRouter(prefix="/dispatch/deals", tags=["Dispatch"])


def _out(view: views.DispatchView) -> DispatchDealOut:
    return DispatchDealOut(
        deal=DealOut.model_validate(view.deal),
        version=VersionOut.model_validate(view.version),
        line_items=[EstimateLineItemOut.model_validate(i) for i in view.line_items],
        document=DocumentRef.model_validate(view.document),
        handoff_id=view.handoff.id,
    )


@router.get("", response_model=list[DispatchDealOut])
def list_dispatched_deals(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return [_out(v) for v in views.list_dispatched(db, actor=actor, limit=limit, offset=offset)]


@router.get("/{deal_id}", response_model=DispatchDealOut)
def get_dispatched_deal(
    deal_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return _out(views.get_dispatched(db, actor=actor, deal_id=deal_id))
