from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from dealflow.core.db.base import Base, IdMixin, TenantScopedMixin


class DealDocument(Base, IdMixin, TenantScopedMixin):
    """Rendered proposal for a locked version. Written once per approval, immutable."""

    __tablename__ = "deal_documents"

    deal_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("deals.id"), nullable=False, index=True)
    version_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("deal_versions.id"), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(800), nullable=False)
    content_type: Mapped[str] = mapped_column(String(100), nullable=False)
    sha256: Mapped[str] = mapped_column(String(64), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    generated_by: Mapped[str] = mapped_column(String(128), nullable=False)

    __table_args__ = (
        UniqueConstraint("version_id", name="uq_deal_documents_version"),
    )


class DispatchHandoff(Base, IdMixin, TenantScopedMixin):
    """Signals the execution side that a deal's locked version is ready to schedule."""

    __tablename__ = "dispatch_handoffs"

    deal_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("deals.id"), nullable=False, index=True)
    version_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("deal_versions.id"), nullable=False)
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("deal_documents.id"),
        nullable=False,
    )
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("deal_id", name="uq_dispatch_handoffs_deal"),
    )
