from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from dealflow.core.db.base import AuditMetaMixin, Base, IdMixin, TenantScopedMixin
from dealflow.domain.deals.enums import DealStage, LineItemCategory

MONEY = Numeric(14, 2)
QUANTITY = Numeric(14, 4)


class Deal(Base, IdMixin, TenantScopedMixin, AuditMetaMixin):
    """
    One commercial opportunity of a tenant.
    Deals are never deleted; once WON or LOST they are frozen.
    """

    __tablename__ = "deals"

    contact_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    stage: Mapped[DealStage] = mapped_column(
        Enum(DealStage, name="deal_stage_enum", native_enum=False, length=32),
        default=DealStage.OPEN,
        nullable=False,
        index=True,
    )

    creator_id: Mapped[str] = mapped_column(String(128), nullable=False)
    assigned_estimator_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    estimating_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    estimating_started_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    approver_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    dispatched_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    delivery_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0.00"), nullable=False)
    taxes: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0.00"), nullable=False)
    total: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0.00"), nullable=False)

    __table_args__ = (
        Index("ix_deals_tenant_stage", "tenant_id", "stage"),
    )


class DealVersion(Base, IdMixin, AuditMetaMixin):
    """Pricing snapshot of a deal. At most one unlocked version per deal."""

    __tablename__ = "deal_versions"

    deal_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("deals.id"), nullable=False, index=True)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0.00"), nullable=False)
    taxes: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0.00"), nullable=False)
    total: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0.00"), nullable=False)

    __table_args__ = (
        UniqueConstraint("deal_id", "version_number", name="uq_deal_versions_deal_number"),
        Index(
            "uq_deal_versions_one_unlocked",
            "deal_id",
            unique=True,
            postgresql_where=text("locked = false"),
            sqlite_where=text("locked = 0"),
        ),
    )


class DealLineItem(Base, IdMixin, AuditMetaMixin):
    __tablename__ = "deal_line_items"

    deal_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("deals.id"), nullable=False, index=True)
    version_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("deal_versions.id"),
        nullable=False,
        index=True,
    )

    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    unit: Mapped[str] = mapped_column(String(32), nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)
    # Always server-computed from quantity and unit_cost.
    line_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False)

    category: Mapped[LineItemCategory] = mapped_column(
        Enum(LineItemCategory, name="line_item_category_enum", native_enum=False, length=32),
        nullable=False,
    )
    phase: Mapped[str | None] = mapped_column(String(64), nullable=True)
    discipline: Mapped[str | None] = mapped_column(String(64), nullable=True)
    customer_visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    internal_only: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_deal_line_items_quantity_positive"),
        CheckConstraint("unit_cost >= 0", name="ck_deal_line_items_unit_cost_non_negative"),
    )
