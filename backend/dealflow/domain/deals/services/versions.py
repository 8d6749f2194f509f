from __future__ import annotations

import uuid

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from dealflow.core.db.activity_log import append_activity
from dealflow.domain.deals.enums import ActivityType
from dealflow.domain.deals.models.deals import Deal, DealVersion
from dealflow.shared.exceptions import Conflict, NotFound, VersionLocked
from dealflow.shared.utils import utcnow


def create_initial_version(db: Session, *, deal: Deal, actor_id: str) -> DealVersion:
    """Create version 1 as the deal's current (unlocked) version."""
    existing = db.execute(select(func.count()).select_from(DealVersion).where(DealVersion.deal_id == deal.id)).scalar_one()
    if existing:
        raise Conflict("Deal already has a version")

    version = DealVersion(deal_id=deal.id, version_number=1, locked=False, created_by=actor_id, updated_by=actor_id)
    db.add(version)
    db.flush()

    append_activity(
        db,
        tenant_id=deal.tenant_id,
        deal_id=deal.id,
        contact_id=deal.contact_id,
        actor_id=actor_id,
        type=ActivityType.DEAL_VERSION_CREATED,
        subject=f"Version {version.version_number} created",
        meta={"version_id": version.id, "version_number": version.version_number},
    )
    return version


def get_current_version(db: Session, *, deal: Deal) -> DealVersion | None:
    stmt = (
        select(DealVersion)
        .where(DealVersion.deal_id == deal.id, DealVersion.locked.is_(False))
        .order_by(DealVersion.version_number.desc())
    )
    return db.execute(stmt).scalars().first()


def get_version(db: Session, *, deal: Deal, version_id: uuid.UUID) -> DealVersion:
    version = db.execute(
        select(DealVersion).where(DealVersion.id == version_id, DealVersion.deal_id == deal.id)
    ).scalar_one_or_none()
    if version is None:
        raise NotFound("Version not found")
    return version


def latest_locked_version(db: Session, *, deal: Deal) -> DealVersion | None:
    stmt = (
        select(DealVersion)
        .where(DealVersion.deal_id == deal.id, DealVersion.locked.is_(True))
        .order_by(DealVersion.version_number.desc())
    )
    return db.execute(stmt).scalars().first()


def latest_version(db: Session, *, deal: Deal) -> DealVersion | None:
    stmt = select(DealVersion).where(DealVersion.deal_id == deal.id).order_by(DealVersion.version_number.desc())
    return db.execute(stmt).scalars().first()


def assert_editable(version: DealVersion) -> DealVersion:
    if version.locked:
        raise VersionLocked()
    return version


def lock(db: Session, *, version: DealVersion, actor_id: str) -> DealVersion:
    """One-way lock. Locking twice is an upstream error, not a no-op.

    The flip is a compare-and-set on ``locked = false`` so that, of two transactions
    racing on the same version, only one sees a matched row.
    """
    if version.locked:
        raise VersionLocked("Version is already locked")

    now = utcnow()
    result = db.execute(
        update(DealVersion)
        .where(DealVersion.id == version.id, DealVersion.locked.is_(False))
        .values(locked=True, approved_at=now, approved_by=actor_id, updated_at=now, updated_by=actor_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise Conflict("Version was locked by another request")
    db.refresh(version)
    return version
