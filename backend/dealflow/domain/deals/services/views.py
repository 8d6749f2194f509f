from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from dealflow.core.security.auth import Actor
from dealflow.domain.deals.enums import DealAction, DealStage
from dealflow.domain.deals.models.deals import Deal, DealLineItem, DealVersion
from dealflow.domain.deals.models.documents import DealDocument, DispatchHandoff
from dealflow.domain.deals.services import guard, versions
from dealflow.domain.deals.services.queries import get_deal, list_line_items_for_version
from dealflow.domain.deals.services.rendering import is_customer_visible
from dealflow.services.blob_storage import BlobStore
from dealflow.shared.exceptions import DeliveryNotEnabled, NotFound


@dataclass(frozen=True)
class EstimateView:
    deal: Deal
    version: DealVersion
    line_items: list[DealLineItem]
    document: DealDocument | None


@dataclass(frozen=True)
class DispatchView:
    deal: Deal
    version: DealVersion
    line_items: list[DealLineItem]
    document: DealDocument
    handoff: DispatchHandoff


def _document_for_version(db: Session, *, version: DealVersion) -> DealDocument | None:
    return db.execute(select(DealDocument).where(DealDocument.version_id == version.id)).scalar_one_or_none()


def _delivered(db: Session, *, actor: Actor, deal_id: uuid.UUID) -> tuple[Deal, DealVersion]:
    deal = get_deal(db, actor=actor, deal_id=deal_id)
    if not deal.delivery_enabled:
        # Undelivered deals answer DELIVERY_NOT_ENABLED for every role.
        raise DeliveryNotEnabled()
    guard.require(deal.stage, DealAction.VIEW_ESTIMATE, actor.role, guard.Ownership(actor_id=actor.actor_id))
    version = versions.latest_locked_version(db, deal=deal)
    if version is None:
        raise DeliveryNotEnabled()
    return deal, version


def get_estimate(db: Session, *, actor: Actor, deal_id: uuid.UUID) -> EstimateView:
    """Read-only delivery view: customer-visible items of the latest locked version."""
    deal, version = _delivered(db, actor=actor, deal_id=deal_id)
    items = [i for i in list_line_items_for_version(db, version=version) if is_customer_visible(i)]
    return EstimateView(deal=deal, version=version, line_items=items, document=_document_for_version(db, version=version))


def download_document(
    db: Session,
    *,
    actor: Actor,
    deal_id: uuid.UUID,
    document_id: uuid.UUID,
    blob_store: BlobStore,
) -> tuple[DealDocument, bytes]:
    deal, _ = _delivered(db, actor=actor, deal_id=deal_id)
    document = db.execute(
        select(DealDocument).where(
            DealDocument.id == document_id,
            DealDocument.deal_id == deal.id,
            DealDocument.tenant_id == actor.tenant_id,
        )
    ).scalar_one_or_none()
    if document is None:
        raise NotFound("Document not found")
    return document, blob_store.get(document.storage_key)


def _dispatch_view(db: Session, deal: Deal) -> DispatchView:
    handoff = db.execute(select(DispatchHandoff).where(DispatchHandoff.deal_id == deal.id)).scalar_one_or_none()
    if handoff is None:
        raise NotFound("Dispatch handoff not found")
    version = db.get(DealVersion, handoff.version_id)
    document = db.get(DealDocument, handoff.document_id)
    if version is None or document is None:
        raise NotFound("Dispatch handoff is incomplete")
    items = [i for i in list_line_items_for_version(db, version=version) if is_customer_visible(i)]
    return DispatchView(deal=deal, version=version, line_items=items, document=document, handoff=handoff)


def list_dispatched(db: Session, *, actor: Actor, limit: int = 100, offset: int = 0) -> list[DispatchView]:
    guard.require(DealStage.DISPATCHED, DealAction.VIEW_DISPATCHED, actor.role, guard.Ownership(actor_id=actor.actor_id))
    stmt = (
        select(Deal)
        .where(Deal.tenant_id == actor.tenant_id, Deal.stage == DealStage.DISPATCHED)
        .order_by(Deal.dispatched_at.desc(), Deal.id)
        .offset(offset)
        .limit(limit)
    )
    return [_dispatch_view(db, deal) for deal in db.execute(stmt).scalars().all()]


def get_dispatched(db: Session, *, actor: Actor, deal_id: uuid.UUID) -> DispatchView:
    # Role first, so non-dispatch roles learn nothing about which deals exist.
    guard.require(DealStage.DISPATCHED, DealAction.VIEW_DISPATCHED, actor.role, guard.Ownership(actor_id=actor.actor_id))
    deal = get_deal(db, actor=actor, deal_id=deal_id)
    if deal.stage != DealStage.DISPATCHED:
        raise NotFound("Deal not found")
    return _dispatch_view(db, deal)
