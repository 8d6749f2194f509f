from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

from sqlalchemy.orm import Session

from dealflow.core.config import settings
from dealflow.core.db.activity_log import append_activity
from dealflow.core.middleware.audit import get_logger
from dealflow.core.security.auth import Actor
from dealflow.domain.deals.enums import ActivityType, DealAction, LineItemCategory
from dealflow.domain.deals.models.deals import Deal, DealLineItem, DealVersion
from dealflow.domain.deals.schemas.deals import LineItemCreate, LineItemUpdate
from dealflow.domain.deals.services import guard, versions
from dealflow.domain.deals.services.queries import get_deal, list_line_items_for_version
from dealflow.shared.exceptions import NotFound, ValidationError
from dealflow.shared.utils import quantize_money, to_decimal

logger = get_logger(__name__)

ZERO = Decimal("0")
# Scale and bounds of the Numeric(14, 4) input columns and Numeric(14, 2) money columns.
INPUT_QUANT = Decimal("0.0001")
INPUT_LIMIT = Decimal("1E10")
MONEY_LIMIT = Decimal("1E12")


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    taxes: Decimal
    total: Decimal


def compute_line_total(quantity: Decimal, unit_cost: Decimal) -> Decimal:
    return quantize_money(quantity * unit_cost)


def recompute_totals(line_items: Iterable[DealLineItem], tax_rate: Decimal = ZERO) -> Totals:
    """Aggregate a version's items. Pure: reads ``line_total`` only, writes nothing."""
    subtotal = quantize_money(sum((to_decimal(item.line_total) for item in line_items), ZERO))
    taxes = quantize_money(subtotal * to_decimal(tax_rate))
    return Totals(subtotal=subtotal, taxes=taxes, total=quantize_money(subtotal + taxes))


def _checked_line_total(quantity: Decimal, unit_cost: Decimal) -> Decimal:
    line_total = compute_line_total(quantity, unit_cost)
    if line_total >= MONEY_LIMIT:
        raise ValidationError(f"lineTotal must be less than {MONEY_LIMIT:,.0f}")
    return line_total


def _decimal_field(name: str, value: object) -> Decimal:
    try:
        out = to_decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{name} must be a number")
    if not out.is_finite():
        raise ValidationError(f"{name} must be a finite number")
    # Stored at four decimal places; validate and price the value that is persisted.
    if abs(out) < INPUT_LIMIT:
        out = out.quantize(INPUT_QUANT, rounding=ROUND_HALF_UP)
    if abs(out) >= INPUT_LIMIT:
        raise ValidationError(f"{name} must be less than {INPUT_LIMIT:,.0f}")
    return out


def _validated_quantity(value: object) -> Decimal:
    out = _decimal_field("quantity", value)
    if out <= ZERO:
        raise ValidationError("quantity must be greater than zero")
    return out


def _validated_unit_cost(value: object) -> Decimal:
    out = _decimal_field("unitCost", value)
    if out < ZERO:
        raise ValidationError("unitCost must not be negative")
    return out


def _validated_category(value: object) -> LineItemCategory:
    try:
        return LineItemCategory(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(c.value for c in LineItemCategory)
        raise ValidationError(f"Unknown category {value!r}; expected one of {allowed}")


def _validated_text(name: str, value: object, max_length: int) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValidationError(f"{name} must not be blank")
    if len(text) > max_length:
        raise ValidationError(f"{name} must be at most {max_length} characters")
    return text


def _load_editable(db: Session, *, actor: Actor, deal_id: uuid.UUID, version_id: uuid.UUID) -> tuple[Deal, DealVersion]:
    deal = get_deal(db, actor=actor, deal_id=deal_id)
    version = versions.get_version(db, deal=deal, version_id=version_id)
    # Lock state is checked before the role so a locked version rejects every caller alike.
    versions.assert_editable(version)
    guard.require(
        deal.stage,
        DealAction.EDIT_LINE_ITEMS,
        actor.role,
        guard.Ownership(actor_id=actor.actor_id, assigned_estimator_id=deal.assigned_estimator_id),
    )
    return deal, version


def _get_item(db: Session, *, version: DealVersion, item_id: uuid.UUID) -> DealLineItem:
    item = db.get(DealLineItem, item_id)
    if item is None or item.version_id != version.id:
        raise NotFound("Line item not found")
    return item


def _apply_totals(db: Session, *, deal: Deal, version: DealVersion, actor: Actor) -> Totals:
    db.flush()
    totals = recompute_totals(list_line_items_for_version(db, version=version), settings.DEAL_TAX_RATE)
    if totals.total >= MONEY_LIMIT:
        raise ValidationError(f"Version total must be less than {MONEY_LIMIT:,.0f}")
    for target in (version, deal):
        target.subtotal = totals.subtotal
        target.taxes = totals.taxes
        target.total = totals.total
        target.updated_by = actor.actor_id
    db.flush()
    return totals


def _item_meta(item: DealLineItem, totals: Totals) -> dict:
    return {
        "version_id": item.version_id,
        "line_item_id": item.id,
        "description": item.description,
        "quantity": item.quantity,
        "unit_cost": item.unit_cost,
        "line_total": item.line_total,
        "category": item.category,
        "version_subtotal": totals.subtotal,
    }


def list_line_items(db: Session, *, actor: Actor, deal_id: uuid.UUID, version_id: uuid.UUID) -> list[DealLineItem]:
    deal = get_deal(db, actor=actor, deal_id=deal_id)
    guard.require(deal.stage, DealAction.VIEW_WORKSPACE, actor.role, guard.Ownership(actor_id=actor.actor_id))
    version = versions.get_version(db, deal=deal, version_id=version_id)
    return list_line_items_for_version(db, version=version)


def add_line_item(
    db: Session,
    *,
    actor: Actor,
    deal_id: uuid.UUID,
    version_id: uuid.UUID,
    data: LineItemCreate,
) -> tuple[DealLineItem, Totals]:
    deal, version = _load_editable(db, actor=actor, deal_id=deal_id, version_id=version_id)

    quantity = _validated_quantity(data.quantity)
    unit_cost = _validated_unit_cost(data.unit_cost)
    sort_order = data.sort_order
    if sort_order is None:
        sort_order = len(list_line_items_for_version(db, version=version))

    item = DealLineItem(
        deal_id=deal.id,
        version_id=version.id,
        description=_validated_text("description", data.description, 500),
        quantity=quantity,
        unit=_validated_text("unit", data.unit, 32),
        unit_cost=unit_cost,
        line_total=_checked_line_total(quantity, unit_cost),
        category=_validated_category(data.category),
        phase=data.phase,
        discipline=data.discipline,
        customer_visible=data.customer_visible,
        internal_only=data.internal_only,
        sort_order=sort_order,
        created_by=actor.actor_id,
        updated_by=actor.actor_id,
    )
    db.add(item)
    totals = _apply_totals(db, deal=deal, version=version, actor=actor)

    append_activity(
        db,
        tenant_id=deal.tenant_id,
        deal_id=deal.id,
        contact_id=deal.contact_id,
        actor_id=actor.actor_id,
        type=ActivityType.LINE_ITEM_ADDED,
        subject=f"Line item added: {item.description}",
        meta=_item_meta(item, totals),
    )
    db.commit()
    db.refresh(item)
    logger.info("deal.line_item.added", deal_id=str(deal.id), line_item_id=str(item.id), subtotal=str(totals.subtotal))
    return item, totals


def update_line_item(
    db: Session,
    *,
    actor: Actor,
    deal_id: uuid.UUID,
    version_id: uuid.UUID,
    item_id: uuid.UUID,
    patch: LineItemUpdate,
) -> tuple[DealLineItem, Totals]:
    deal, version = _load_editable(db, actor=actor, deal_id=deal_id, version_id=version_id)
    item = _get_item(db, version=version, item_id=item_id)

    fields = patch.model_dump(exclude_unset=True)
    fields.pop("line_total", None)
    changed: list[str] = []

    if "description" in fields:
        item.description = _validated_text("description", fields["description"], 500)
        changed.append("description")
    if "unit" in fields:
        item.unit = _validated_text("unit", fields["unit"], 32)
        changed.append("unit")
    if "quantity" in fields:
        item.quantity = _validated_quantity(fields["quantity"])
        changed.append("quantity")
    if "unit_cost" in fields:
        item.unit_cost = _validated_unit_cost(fields["unit_cost"])
        changed.append("unit_cost")
    if "category" in fields:
        item.category = _validated_category(fields["category"])
        changed.append("category")
    for key in ("phase", "discipline"):
        if key in fields:
            setattr(item, key, fields[key])
            changed.append(key)
    for key in ("customer_visible", "internal_only", "sort_order"):
        if key in fields and fields[key] is not None:
            setattr(item, key, fields[key])
            changed.append(key)

    # Recomputed on every update, from persisted inputs.
    item.line_total = _checked_line_total(to_decimal(item.quantity), to_decimal(item.unit_cost))
    item.updated_by = actor.actor_id
    totals = _apply_totals(db, deal=deal, version=version, actor=actor)

    meta = _item_meta(item, totals)
    meta["changed"] = changed
    append_activity(
        db,
        tenant_id=deal.tenant_id,
        deal_id=deal.id,
        contact_id=deal.contact_id,
        actor_id=actor.actor_id,
        type=ActivityType.LINE_ITEM_UPDATED,
        subject=f"Line item updated: {item.description}",
        meta=meta,
    )
    db.commit()
    db.refresh(item)
    logger.info("deal.line_item.updated", deal_id=str(deal.id), line_item_id=str(item.id), subtotal=str(totals.subtotal))
    return item, totals


def delete_line_item(
    db: Session,
    *,
    actor: Actor,
    deal_id: uuid.UUID,
    version_id: uuid.UUID,
    item_id: uuid.UUID,
) -> Totals:
    deal, version = _load_editable(db, actor=actor, deal_id=deal_id, version_id=version_id)
    item = _get_item(db, version=version, item_id=item_id)

    db.delete(item)
    totals = _apply_totals(db, deal=deal, version=version, actor=actor)

    append_activity(
        db,
        tenant_id=deal.tenant_id,
        deal_id=deal.id,
        contact_id=deal.contact_id,
        actor_id=actor.actor_id,
        type=ActivityType.LINE_ITEM_DELETED,
        subject=f"Line item deleted: {item.description}",
        meta=_item_meta(item, totals),
    )
    db.commit()
    logger.info("deal.line_item.deleted", deal_id=str(deal.id), line_item_id=str(item_id), subtotal=str(totals.subtotal))
    return totals
