"""Atomic approval of a submitted deal.

The request runs in three phases on one session:

1. prepare: tenant-scoped read, role and precondition checks, frozen snapshot of the
   current version. The read transaction is released before anything slow happens.
2. external effects: render the snapshot and write the bytes to the blob store. No
   database transaction is open and nothing has been written yet.
3. commit: one transaction re-checks the preconditions, locks the version, records the
   document and the dispatch handoff, moves the deal to DISPATCHED and appends one
   activity per milestone.

If phase 3 fails before its commit the transaction is rolled back and the uploaded blob
is deleted, so the deal still reads as SUBMITTED with an unlocked version and no document
or handoff.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dealflow.core.db.activity_log import append_activity
from dealflow.core.middleware.audit import get_logger
from dealflow.core.security.auth import Actor
from dealflow.domain.deals.enums import APPROVAL_MILESTONES, ActivityType, DealAction, DealStage
from dealflow.domain.deals.models.deals import Deal, DealVersion
from dealflow.domain.deals.models.documents import DealDocument, DispatchHandoff
from dealflow.domain.deals.services import guard, versions
from dealflow.domain.deals.services.queries import get_deal, list_line_items_for_version
from dealflow.domain.deals.services.rendering import DocumentRenderer, VersionSnapshot, build_snapshot, fingerprint_items
from dealflow.services.blob_storage import BlobStore, BlobWriteResult
from dealflow.shared.exceptions import AppError, ApprovalFailed, Conflict, InvalidStage, ValidationError
from dealflow.shared.utils import utcnow

logger = get_logger(__name__)


@dataclass(frozen=True)
class ApprovalResult:
    deal_id: uuid.UUID
    version_id: uuid.UUID
    version_number: int
    document_id: uuid.UUID
    handoff_id: uuid.UUID
    activities_created: int


def _prepare(db: Session, *, actor: Actor, deal_id: uuid.UUID) -> VersionSnapshot:
    try:
        deal = get_deal(db, actor=actor, deal_id=deal_id)
        decision = guard.evaluate(
            deal.stage,
            DealAction.APPROVE,
            actor.role,
            guard.Ownership(actor_id=actor.actor_id, creator_id=deal.creator_id),
        )
        if not decision.allowed:
            if isinstance(decision.denial, InvalidStage):
                # Already approved elsewhere, or never submitted.
                raise Conflict(f"Deal is {deal.stage.value}; only SUBMITTED deals can be approved")
            decision.raise_for_denial()

        version = versions.get_current_version(db, deal=deal)
        if version is None:
            raise Conflict("Deal has no unlocked version to approve")
        items = list_line_items_for_version(db, version=version)
        if not items:
            raise ValidationError("Cannot approve a version without line items")
        return build_snapshot(deal, version, items)
    finally:
        # Release the read transaction; no DB transaction spans the external calls.
        db.rollback()


def _render_and_store(
    snapshot: VersionSnapshot,
    *,
    renderer: DocumentRenderer,
    blob_store: BlobStore,
) -> BlobWriteResult:
    try:
        data = renderer.render(snapshot)
        blob_name = (
            f"{snapshot.tenant_id}/deals/{snapshot.deal_id}/"
            f"v{snapshot.version_number}/{uuid.uuid4()}.{renderer.extension}"
        )
        return blob_store.put(
            data,
            blob_name=blob_name,
            content_type=renderer.content_type,
            metadata={
                "deal_id": str(snapshot.deal_id),
                "version_id": str(snapshot.version_id),
                "fingerprint": snapshot.fingerprint,
            },
        )
    except Exception as exc:
        logger.error(
            "deal.approval.render_failed",
            deal_id=str(snapshot.deal_id),
            version_id=str(snapshot.version_id),
            error_type=type(exc).__name__,
        )
        raise ApprovalFailed() from exc


def _commit(
    db: Session,
    *,
    actor: Actor,
    snapshot: VersionSnapshot,
    written: BlobWriteResult,
    content_type: str,
    notes: str | None,
) -> ApprovalResult:
    deal = get_deal(db, actor=actor, deal_id=snapshot.deal_id)
    if deal.stage != DealStage.SUBMITTED:
        raise Conflict(f"Deal is {deal.stage.value}; it was changed by another request")

    version = db.get(DealVersion, snapshot.version_id)
    if version is None or version.locked:
        raise Conflict("Version was locked by another request")
    if fingerprint_items(list_line_items_for_version(db, version=version)) != snapshot.fingerprint:
        raise Conflict("Line items changed while the approval was in progress")

    now = utcnow()
    versions.lock(db, version=version, actor_id=actor.actor_id)

    document = DealDocument(
        tenant_id=deal.tenant_id,
        deal_id=deal.id,
        version_id=version.id,
        storage_key=written.key,
        content_type=content_type,
        sha256=written.sha256,
        size_bytes=written.size_bytes,
        generated_at=now,
        generated_by=actor.actor_id,
    )
    db.add(document)
    db.flush()

    handoff = DispatchHandoff(
        tenant_id=deal.tenant_id,
        deal_id=deal.id,
        version_id=version.id,
        document_id=document.id,
        created_by=actor.actor_id,
    )
    db.add(handoff)
    db.flush()

    logger.info(
        "deal.stage.transition",
        deal_id=str(deal.id),
        from_stage=DealStage.SUBMITTED.value,
        via_stage=DealStage.APPROVED.value,
        to_stage=DealStage.DISPATCHED.value,
    )
    moved = db.execute(
        update(Deal)
        .where(Deal.id == deal.id, Deal.stage == DealStage.SUBMITTED)
        .values(
            stage=DealStage.DISPATCHED,
            approver_id=actor.actor_id,
            approved_at=now,
            dispatched_at=now,
            dispatched_by=actor.actor_id,
            delivery_enabled=True,
            updated_at=now,
            updated_by=actor.actor_id,
        )
        .execution_options(synchronize_session=False)
    )
    if moved.rowcount != 1:
        raise Conflict("Deal was approved by another request")

    base = {"version_id": version.id, "version_number": version.version_number}
    milestones = {
        ActivityType.DEAL_APPROVED: (f"Version {version.version_number} approved", {**base, "stage": DealStage.APPROVED}),
        ActivityType.DOCUMENT_GENERATED: (
            "Proposal document generated",
            {**base, "document_id": document.id, "sha256": written.sha256, "size_bytes": written.size_bytes},
        ),
        ActivityType.DISPATCH_HANDOFF_CREATED: (
            "Dispatch handoff created",
            {**base, "handoff_id": handoff.id, "document_id": document.id},
        ),
        ActivityType.DEAL_DISPATCHED: (
            "Deal dispatched",
            {**base, "from_stage": DealStage.SUBMITTED, "to_stage": DealStage.DISPATCHED},
        ),
        ActivityType.USER_DELIVERY_ENABLED: ("Estimate delivery enabled", {**base, "delivery_enabled": True}),
    }
    created = 0
    for activity_type in APPROVAL_MILESTONES:
        subject, meta = milestones[activity_type]
        append_activity(
            db,
            tenant_id=deal.tenant_id,
            deal_id=deal.id,
            contact_id=deal.contact_id,
            actor_id=actor.actor_id,
            type=activity_type,
            subject=subject,
            body=notes if activity_type is ActivityType.DEAL_APPROVED else None,
            meta=meta,
            occurred_at=now,
        )
        created += 1

    db.flush()
    return ApprovalResult(
        deal_id=deal.id,
        version_id=version.id,
        version_number=version.version_number,
        document_id=document.id,
        handoff_id=handoff.id,
        activities_created=created,
    )


def _compensate(blob_store: BlobStore, written: BlobWriteResult, *, deal_id: uuid.UUID) -> None:
    try:
        blob_store.delete(written.key)
    except Exception as exc:
        # Never mask the original failure; an orphaned blob is unreferenced by any row.
        logger.error(
            "deal.approval.compensation_failed",
            deal_id=str(deal_id),
            storage_key=written.key,
            error_type=type(exc).__name__,
        )


def approve_deal(
    db: Session,
    *,
    actor: Actor,
    deal_id: uuid.UUID,
    renderer: DocumentRenderer,
    blob_store: BlobStore,
    notes: str | None = None,
) -> ApprovalResult:
    snapshot = _prepare(db, actor=actor, deal_id=deal_id)

    written = _render_and_store(snapshot, renderer=renderer, blob_store=blob_store)
    logger.info(
        "deal.approval.rendered",
        deal_id=str(snapshot.deal_id),
        version_id=str(snapshot.version_id),
        storage_key=written.key,
        size_bytes=written.size_bytes,
    )

    try:
        result = _commit(
            db,
            actor=actor,
            snapshot=snapshot,
            written=written,
            content_type=renderer.content_type,
            notes=notes,
        )
        # Last statement guarded by compensation; a committed approval is never undone.
        db.commit()
    except Exception as exc:
        db.rollback()
        _compensate(blob_store, written, deal_id=snapshot.deal_id)
        logger.warning(
            "deal.approval.rolled_back",
            deal_id=str(snapshot.deal_id),
            version_id=str(snapshot.version_id),
            error_type=type(exc).__name__,
        )
        if isinstance(exc, IntegrityError):
            raise Conflict("Deal was approved by another request") from exc
        if isinstance(exc, AppError):
            raise
        raise ApprovalFailed() from exc

    logger.info(
        "deal.approval.committed",
        deal_id=str(result.deal_id),
        version_id=str(result.version_id),
        document_id=str(result.document_id),
        handoff_id=str(result.handoff_id),
    )
    return result
