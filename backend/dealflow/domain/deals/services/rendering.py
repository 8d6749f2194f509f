from __future__ import annotations

import hashlib
import json
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Protocol

from dealflow.domain.deals.models.deals import Deal, DealLineItem, DealVersion


@dataclass(frozen=True)
class SnapshotLineItem:
    id: uuid.UUID
    description: str
    quantity: Decimal
    unit: str
    unit_cost: Decimal
    line_total: Decimal
    category: str
    phase: str | None
    discipline: str | None
    sort_order: int


@dataclass(frozen=True)
class VersionSnapshot:
    """Frozen, customer-facing view of one version, taken before any external call."""

    tenant_id: str
    deal_id: uuid.UUID
    deal_name: str
    contact_id: uuid.UUID | None
    version_id: uuid.UUID
    version_number: int
    items: tuple[SnapshotLineItem, ...]
    subtotal: Decimal
    taxes: Decimal
    total: Decimal
    # Digest over every item of the version, visible or not.
    fingerprint: str


def is_customer_visible(item: DealLineItem) -> bool:
    return bool(item.customer_visible) and not bool(item.internal_only)


def fingerprint_items(items: Iterable[DealLineItem]) -> str:
    rows = sorted(
        (
            str(i.id),
            i.description,
            str(i.quantity),
            i.unit,
            str(i.unit_cost),
            str(i.line_total),
            getattr(i.category, "value", str(i.category)),
            i.phase or "",
            i.discipline or "",
            bool(i.customer_visible),
            bool(i.internal_only),
            int(i.sort_order),
        )
        for i in items
    )
    return hashlib.sha256(json.dumps(rows, separators=(",", ":")).encode("utf-8")).hexdigest()


def build_snapshot(deal: Deal, version: DealVersion, items: list[DealLineItem]) -> VersionSnapshot:
    visible = tuple(
        SnapshotLineItem(
            id=i.id,
            description=i.description,
            quantity=Decimal(i.quantity),
            unit=i.unit,
            unit_cost=Decimal(i.unit_cost),
            line_total=Decimal(i.line_total),
            category=getattr(i.category, "value", str(i.category)),
            phase=i.phase,
            discipline=i.discipline,
            sort_order=i.sort_order,
        )
        for i in items
        if is_customer_visible(i)
    )
    return VersionSnapshot(
        tenant_id=deal.tenant_id,
        deal_id=deal.id,
        deal_name=deal.name,
        contact_id=deal.contact_id,
        version_id=version.id,
        version_number=version.version_number,
        items=visible,
        subtotal=Decimal(version.subtotal),
        taxes=Decimal(version.taxes),
        total=Decimal(version.total),
        fingerprint=fingerprint_items(items),
    )


class DocumentRenderer(Protocol):
    content_type: str
    extension: str

    def render(self, snapshot: VersionSnapshot) -> bytes: ...


class JsonProposalRenderer:
    """Deterministic JSON proposal manifest; the same snapshot always yields the same bytes."""

    content_type = "application/json"
    extension = "json"

    def render(self, snapshot: VersionSnapshot) -> bytes:
        payload = {
            "schema": "deal-proposal/v1",
            "deal": {
                "id": str(snapshot.deal_id),
                "name": snapshot.deal_name,
                "contact_id": str(snapshot.contact_id) if snapshot.contact_id else None,
            },
            "version": {"id": str(snapshot.version_id), "number": snapshot.version_number},
            "line_items": [
                {
                    "id": str(i.id),
                    "description": i.description,
                    "quantity": str(i.quantity),
                    "unit": i.unit,
                    "unit_cost": str(i.unit_cost),
                    "line_total": str(i.line_total),
                    "category": i.category,
                    "phase": i.phase,
                    "discipline": i.discipline,
                }
                for i in sorted(snapshot.items, key=lambda x: (x.sort_order, str(x.id)))
            ],
            "totals": {
                "subtotal": str(snapshot.subtotal),
                "taxes": str(snapshot.taxes),
                "total": str(snapshot.total),
            },
            "fingerprint": snapshot.fingerprint,
        }
        return json.dumps(payload, sort_keys=True, ensure_ascii=False, indent=2).encode("utf-8")


def get_renderer() -> DocumentRenderer:
    return JsonProposalRenderer()
