from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal
from typing import Any

from pydantic import Field

from dealflow.domain.deals.enums import CloseOutcome, DealStage, LineItemCategory
from dealflow.shared.schemas import CamelModel


class DealCreate(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    contact_id: uuid.UUID | None = None
    description: str | None = None


class DealOut(CamelModel):
    id: uuid.UUID
    tenant_id: str
    contact_id: uuid.UUID | None
    name: str
    description: str | None
    stage: DealStage

    creator_id: str
    assigned_estimator_id: str | None
    estimating_started_at: dt.datetime | None
    approver_id: str | None
    approved_at: dt.datetime | None
    dispatched_at: dt.datetime | None
    delivery_enabled: bool
    closed_at: dt.datetime | None

    subtotal: Decimal
    taxes: Decimal
    total: Decimal

    created_at: dt.datetime
    updated_at: dt.datetime


class SendToEstimatingRequest(CamelModel):
    assigned_to_id: str | None = None
    notes: str | None = None


class SubmitRequest(CamelModel):
    notes: str | None = None


class CloseRequest(CamelModel):
    outcome: CloseOutcome
    notes: str | None = None


class TransitionOut(CamelModel):
    deal_id: uuid.UUID
    from_stage: DealStage
    stage: DealStage
    activity_id: uuid.UUID


class TotalsOut(CamelModel):
    subtotal: Decimal
    taxes: Decimal
    total: Decimal


class VersionOut(CamelModel):
    id: uuid.UUID
    deal_id: uuid.UUID
    version_number: int
    locked: bool
    approved_at: dt.datetime | None
    approved_by: str | None
    subtotal: Decimal
    taxes: Decimal
    total: Decimal


class LineItemCreate(CamelModel):
    # Numeric and category checks happen in the ledger so they surface as VALIDATION_ERROR.
    description: str
    quantity: Decimal
    unit: str
    unit_cost: Decimal
    category: str
    phase: str | None = None
    discipline: str | None = None
    customer_visible: bool = True
    internal_only: bool = False
    sort_order: int | None = None
    # Accepted for client convenience; never persisted.
    line_total: Decimal | None = None


class LineItemUpdate(CamelModel):
    description: str | None = None
    quantity: Decimal | None = None
    unit: str | None = None
    unit_cost: Decimal | None = None
    category: str | None = None
    phase: str | None = None
    discipline: str | None = None
    customer_visible: bool | None = None
    internal_only: bool | None = None
    sort_order: int | None = None
    line_total: Decimal | None = None


class LineItemOut(CamelModel):
    id: uuid.UUID
    deal_id: uuid.UUID
    version_id: uuid.UUID
    description: str
    quantity: Decimal
    unit: str
    unit_cost: Decimal
    line_total: Decimal
    category: LineItemCategory
    phase: str | None
    discipline: str | None
    customer_visible: bool
    internal_only: bool
    sort_order: int


class LineItemMutationOut(CamelModel):
    line_item: LineItemOut
    version_totals: TotalsOut


class LineItemDeleteOut(CamelModel):
    deleted: bool
    version_totals: TotalsOut


class ApproveRequest(CamelModel):
    notes: str | None = None


class ApprovalOut(CamelModel):
    deal_id: uuid.UUID
    version_id: uuid.UUID
    version_number: int
    document_id: uuid.UUID
    handoff_id: uuid.UUID
    activities_created: int


class ActivityOut(CamelModel):
    id: uuid.UUID
    deal_id: uuid.UUID | None
    contact_id: uuid.UUID | None
    actor_id: str
    type: str
    subject: str
    body: str | None
    meta: dict[str, Any] | None
    occurred_at: dt.datetime


class WorkspaceOut(CamelModel):
    deal: DealOut
    version: VersionOut | None
    line_items: list[LineItemOut]
    editable: bool


class EstimateLineItemOut(CamelModel):
    id: uuid.UUID
    description: str
    quantity: Decimal
    unit: str
    unit_cost: Decimal
    line_total: Decimal
    category: LineItemCategory
    phase: str | None
    discipline: str | None
    sort_order: int


class DocumentRef(CamelModel):
    id: uuid.UUID
    content_type: str
    sha256: str
    size_bytes: int
    generated_at: dt.datetime


class EstimateOut(CamelModel):
    deal_id: uuid.UUID
    name: str
    stage: DealStage
    read_only: bool = True
    version: VersionOut
    line_items: list[EstimateLineItemOut]
    document: DocumentRef | None


class DispatchDealOut(CamelModel):
    deal: DealOut
    version: VersionOut
    line_items: list[EstimateLineItemOut]
    document: DocumentRef
    handoff_id: uuid.UUID
