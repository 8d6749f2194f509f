from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from dealflow.core.db.session import get_db
from dealflow.core.security.auth import Actor
from dealflow.core.security.dependencies import get_actor
from dealflow.domain.deals.schemas.deals import (
    LineItemCreate,
    LineItemDeleteOut,
    LineItemMutationOut,
    LineItemOut,
    LineItemUpdate,
    TotalsOut,
)
from dealflow.domain.deals.services import ledger


router = APIRouter(prefix="/deals/{deal_id}/versions/{version_id}/line-items", tags=["Line Items"])


def _totals_out(totals: ledger.Totals) -> TotalsOut:
    return TotalsOut(subtotal=totals.subtotal, taxes=totals.taxes, total=totals.total)


@router.get("", response_model=list[LineItemOut])
def list_line_items(
    deal_id: uuid.UUID,
    version_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return ledger.list_line_items(db, actor=actor, deal_id=deal_id, version_id=version_id)


@router.post("", response_model=LineItemMutationOut, status_code=status.HTTP_201_CREATED)
def add_line_item(
    deal_id: uuid.UUID,
    version_id: uuid.UUID,
    payload: LineItemCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    item, totals = ledger.add_line_item(db, actor=actor, deal_id=deal_id, version_id=version_id, data=payload)
    return LineItemMutationOut(line_item=LineItemOut.model_validate(item), version_totals=_totals_out(totals))


@router.patch("/{item_id}", response_model=LineItemMutationOut)
def update_line_item(
    deal_id: uuid.UUID,
    version_id: uuid.UUID,
    item_id: uuid.UUID,
    payload: LineItemUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    item, totals = ledger.update_line_item(
        db,
        actor=actor,
        deal_id=deal_id,
        version_id=version_id,
        item_id=item_id,
        patch=payload,
    )
    return LineItemMutationOut(line_item=LineItemOut.model_validate(item), version_totals=_totals_out(totals))


@router.delete("/{item_id}", response_model=LineItemDeleteOut)
def delete_line_item(
    deal_id: uuid.UUID,
    version_id: uuid.UUID,
    item_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    totals = ledger.delete_line_item(db, actor=actor, deal_id=deal_id, version_id=version_id, item_id=item_id)
    return LineItemDeleteOut(deleted=True, version_totals=_totals_out(totals))
