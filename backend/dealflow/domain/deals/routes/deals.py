from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from dealflow.core.db.session import get_db
from dealflow.core.security.auth import Actor
from dealflow.core.security.dependencies import get_actor
from dealflow.domain.deals.enums import DealStage
from dealflow.domain.deals.schemas.deals import (
    ActivityOut,
    CloseRequest,
    DealCreate,
    DealOut,
    LineItemOut,
    SendToEstimatingRequest,
    SubmitRequest,
    TransitionOut,
    VersionOut,
    WorkspaceOut,
)
from dealflow.domain.deals.services import lifecycle


router = APIRouter(prefix="/deals", tags=["Deals"])


def _transition_out(result: lifecycle.Transition) -> TransitionOut:
    return TransitionOut(
        deal_id=result.deal.id,
        from_stage=result.from_stage,
        stage=result.deal.stage,
        activity_id=result.activity.id,
    )


@router.post("", response_model=DealOut, status_code=status.HTTP_201_CREATED)
def create_deal(
    payload: DealCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return lifecycle.create_deal(db, actor=actor, data=payload)


@router.get("", response_model=list[DealOut])
def list_deals(
    stage: DealStage | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return lifecycle.list_deals(db, actor=actor, stage=stage, limit=limit, offset=offset)


@router.get("/{deal_id}", response_model=DealOut)
def get_deal(
    deal_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return lifecycle.read_deal(db, actor=actor, deal_id=deal_id)


@router.get("/{deal_id}/estimating", response_model=WorkspaceOut)
def get_estimating_workspace(
    deal_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    ws = lifecycle.get_workspace(db, actor=actor, deal_id=deal_id)
    return WorkspaceOut(
        deal=DealOut.model_validate(ws.deal),
        version=VersionOut.model_validate(ws.version) if ws.version is not None else None,
        line_items=[LineItemOut.model_validate(i) for i in ws.line_items],
        editable=ws.editable,
    )


@router.get("/{deal_id}/activities", response_model=list[ActivityOut])
def list_deal_activities(
    deal_id: uuid.UUID,
    limit: int = Query(default=200, ge=1, le=1000),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return lifecycle.get_activities(db, actor=actor, deal_id=deal_id, limit=limit)


@router.post("/{deal_id}/send-to-estimating", response_model=TransitionOut)
def send_to_estimating(
    deal_id: uuid.UUID,
    payload: SendToEstimatingRequest | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    result = lifecycle.send_to_estimating(db, actor=actor, deal_id=deal_id, data=payload or SendToEstimatingRequest())
    return _transition_out(result)


@router.post("/{deal_id}/submit", response_model=TransitionOut)
def submit_deal(
    deal_id: uuid.UUID,
    payload: SubmitRequest | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    result = lifecycle.submit(db, actor=actor, deal_id=deal_id, data=payload or SubmitRequest())
    return _transition_out(result)


@router.post("/{deal_id}/close", response_model=TransitionOut)
def close_deal(
    deal_id: uuid.UUID,
    payload: CloseRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    result = lifecycle.close(db, actor=actor, deal_id=deal_id, data=payload)
    return _transition_out(result)
