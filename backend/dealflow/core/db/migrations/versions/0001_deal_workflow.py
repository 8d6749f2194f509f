"""deal workflow schema

Revision ID: 0001_deal_workflow
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_deal_workflow"
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        sa.Column("updated_by", sa.String(length=128), nullable=True),
    ]


def _money(name: str) -> sa.Column:
    return sa.Column(name, sa.Numeric(14, 2), nullable=False, server_default="0")


def upgrade() -> None:
    op.create_table(
        "deals",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("contact_id", sa.Uuid(), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("stage", sa.String(length=32), nullable=False),
        sa.Column("creator_id", sa.String(length=128), nullable=False),
        sa.Column("assigned_estimator_id", sa.String(length=128), nullable=True),
        sa.Column("estimating_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("estimating_started_by", sa.String(length=128), nullable=True),
        sa.Column("approver_id", sa.String(length=128), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dispatched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dispatched_by", sa.String(length=128), nullable=True),
        sa.Column("delivery_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        _money("subtotal"),
        _money("taxes"),
        _money("total"),
        *_audit_columns(),
    )
    op.create_index("ix_deals_id", "deals", ["id"])
    op.create_index("ix_deals_tenant_id", "deals", ["tenant_id"])
    op.create_index("ix_deals_contact_id", "deals", ["contact_id"])
    op.create_index("ix_deals_stage", "deals", ["stage"])
    op.create_index("ix_deals_assigned_estimator_id", "deals", ["assigned_estimator_id"])
    op.create_index("ix_deals_tenant_stage", "deals", ["tenant_id", "stage"])

    op.create_table(
        "deal_versions",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("deal_id", sa.Uuid(), sa.ForeignKey("deals.id"), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("locked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.String(length=128), nullable=True),
        _money("subtotal"),
        _money("taxes"),
        _money("total"),
        *_audit_columns(),
        sa.UniqueConstraint("deal_id", "version_number", name="uq_deal_versions_deal_number"),
    )
    op.create_index("ix_deal_versions_id", "deal_versions", ["id"])
    op.create_index("ix_deal_versions_deal_id", "deal_versions", ["deal_id"])
    # One editable version per deal.
    op.create_index(
        "uq_deal_versions_one_unlocked",
        "deal_versions",
        ["deal_id"],
        unique=True,
        postgresql_where=sa.text("locked = false"),
        sqlite_where=sa.text("locked = 0"),
    )

    op.create_table(
        "deal_line_items",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("deal_id", sa.Uuid(), sa.ForeignKey("deals.id"), nullable=False),
        sa.Column("version_id", sa.Uuid(), sa.ForeignKey("deal_versions.id"), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=False),
        sa.Column("quantity", sa.Numeric(14, 4), nullable=False),
        sa.Column("unit", sa.String(length=32), nullable=False),
        sa.Column("unit_cost", sa.Numeric(14, 4), nullable=False),
        sa.Column("line_total", sa.Numeric(14, 2), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("phase", sa.String(length=64), nullable=True),
        sa.Column("discipline", sa.String(length=64), nullable=True),
        sa.Column("customer_visible", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("internal_only", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        *_audit_columns(),
        sa.CheckConstraint("quantity > 0", name="ck_deal_line_items_quantity_positive"),
        sa.CheckConstraint("unit_cost >= 0", name="ck_deal_line_items_unit_cost_non_negative"),
    )
    op.create_index("ix_deal_line_items_id", "deal_line_items", ["id"])
    op.create_index("ix_deal_line_items_deal_id", "deal_line_items", ["deal_id"])
    op.create_index("ix_deal_line_items_version_id", "deal_line_items", ["version_id"])

    op.create_table(
        "deal_documents",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("deal_id", sa.Uuid(), sa.ForeignKey("deals.id"), nullable=False),
        sa.Column("version_id", sa.Uuid(), sa.ForeignKey("deal_versions.id"), nullable=False),
        sa.Column("storage_key", sa.String(length=800), nullable=False),
        sa.Column("content_type", sa.String(length=100), nullable=False),
        sa.Column("sha256", sa.String(length=64), nullable=False),
        sa.Column("size_bytes", sa.BigInteger(), nullable=False),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("generated_by", sa.String(length=128), nullable=False),
        sa.UniqueConstraint("version_id", name="uq_deal_documents_version"),
    )
    op.create_index("ix_deal_documents_id", "deal_documents", ["id"])
    op.create_index("ix_deal_documents_tenant_id", "deal_documents", ["tenant_id"])
    op.create_index("ix_deal_documents_deal_id", "deal_documents", ["deal_id"])

    op.create_table(
        "dispatch_handoffs",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("deal_id", sa.Uuid(), sa.ForeignKey("deals.id"), nullable=False),
        sa.Column("version_id", sa.Uuid(), sa.ForeignKey("deal_versions.id"), nullable=False),
        sa.Column("document_id", sa.Uuid(), sa.ForeignKey("deal_documents.id"), nullable=False),
        sa.Column("created_by", sa.String(length=128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("deal_id", name="uq_dispatch_handoffs_deal"),
    )
    op.create_index("ix_dispatch_handoffs_id", "dispatch_handoffs", ["id"])
    op.create_index("ix_dispatch_handoffs_tenant_id", "dispatch_handoffs", ["tenant_id"])
    op.create_index("ix_dispatch_handoffs_deal_id", "dispatch_handoffs", ["deal_id"])

    op.create_table(
        "activities",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("deal_id", sa.Uuid(), nullable=True),
        sa.Column("contact_id", sa.Uuid(), nullable=True),
        sa.Column("actor_id", sa.String(length=128), nullable=False),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("subject", sa.String(length=300), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("request_id", sa.String(length=64), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_activities_id", "activities", ["id"])
    op.create_index("ix_activities_tenant_id", "activities", ["tenant_id"])
    op.create_index("ix_activities_deal_id", "activities", ["deal_id"])
    op.create_index("ix_activities_contact_id", "activities", ["contact_id"])
    op.create_index("ix_activities_actor_id", "activities", ["actor_id"])
    op.create_index("ix_activities_type", "activities", ["type"])
    op.create_index("ix_activities_request_id", "activities", ["request_id"])
    op.create_index("ix_activities_occurred_at", "activities", ["occurred_at"])
    op.create_index("ix_activities_tenant_deal_occurred", "activities", ["tenant_id", "deal_id", "occurred_at"])


def downgrade() -> None:
    op.drop_table("activities")
    op.drop_table("dispatch_handoffs")
    op.drop_table("deal_documents")
    op.drop_table("deal_line_items")
    op.drop_table("deal_versions")
    op.drop_table("deals")
