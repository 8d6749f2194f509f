from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from dealflow.core.db.session import get_db
from dealflow.core.security.auth import Actor
from dealflow.core.security.dependencies import get_actor
from dealflow.domain.deals.schemas.deals import (
    ApprovalOut,
    ApproveRequest,
    DocumentRef,
    EstimateLineItemOut,
    EstimateOut,
    VersionOut,
)
from dealflow.domain.deals.services import views
from dealflow.domain.deals.services.approval import approve_deal
from dealflow.domain.deals.services.rendering import DocumentRenderer, get_renderer
from dealflow.services.blob_storage import BlobStore, get_blob_store


router = APIRouter(prefix="/deals/{deal_id}", tags=["Approval"])


@router.post("/approve", response_model=ApprovalOut)
def approve(
    deal_id: uuid.UUID,
    payload: ApproveRequest | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    renderer: DocumentRenderer = Depends(get_renderer),
    blob_store: BlobStore = Depends(get_blob_store),
):
    result = approve_deal(
        db,
        actor=actor,
        deal_id=deal_id,
        renderer=renderer,
        blob_store=blob_store,
        notes=payload.notes if payload else None,
    )
    return ApprovalOut(
        deal_id=result.deal_id,
        version_id=result.version_id,
        version_number=result.version_number,
        document_id=result.document_id,
        handoff_id=result.handoff_id,
        activities_created=result.activities_created,
    )


@router.get("/estimate", response_model=EstimateOut)
def get_estimate(
    deal_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    view = views.get_estimate(db, actor=actor, deal_id=deal_id)
    return EstimateOut(
        deal_id=view.deal.id,
        name=view.deal.name,
        stage=view.deal.stage,
        read_only=True,
        version=VersionOut.model_validate(view.version),
        line_items=[EstimateLineItemOut.model_validate(i) for i in view.line_items],
        document=DocumentRef.model_validate(view.document) if view.document is not None else None,
    )


@router.get("/documents/{document_id}/download")
def download_document(
    deal_id: uuid.UUID,
    document_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    blob_store: BlobStore = Depends(get_blob_store),
):
    document, data = views.download_document(
        db,
        actor=actor,
        deal_id=deal_id,
        document_id=document_id,
        blob_store=blob_store,
    )
    return Response(
        content=data,
        media_type=document.content_type,
        headers={
            "Content-Disposition": f'attachment; filename="proposal-{deal_id}.{document.content_type.rsplit("/", 1)[-1]}"',
            "X-Content-SHA256": document.sha256,
        },
    )
