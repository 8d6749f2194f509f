from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from dealflow.core.db.models import Activity
from dealflow.core.middleware.audit import get_actor_id, get_request_id
from dealflow.shared.utils import utcnow


def _json_safe(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        # Money stays exact in the log.
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(v) for v in value]
    return str(value)


def append_activity(
    db: Session,
    *,
    tenant_id: str,
    type: str | Enum,
    subject: str,
    actor_id: str | None = None,
    deal_id: uuid.UUID | None = None,
    contact_id: uuid.UUID | None = None,
    body: str | None = None,
    meta: dict[str, Any] | None = None,
    occurred_at: dt.datetime | None = None,
) -> Activity:
    """Append one log entry to the caller's open transaction.

    There is deliberately no update or delete counterpart; the row commits or rolls back
    together with the state change it documents.
    """
    entry = Activity(
        tenant_id=tenant_id,
        deal_id=deal_id,
        contact_id=contact_id,
        actor_id=actor_id or get_actor_id() or "unknown",
        type=type.value if isinstance(type, Enum) else str(type),
        subject=subject[:300],
        body=body,
        meta=_json_safe(meta),
        request_id=get_request_id(),
        occurred_at=occurred_at or utcnow(),
    )
    db.add(entry)
    db.flush()
    return entry


def list_activities(
    db: Session,
    *,
    tenant_id: str,
    deal_id: uuid.UUID,
    types: list[str] | None = None,
    limit: int = 200,
) -> list[Activity]:
    stmt = select(Activity).where(Activity.tenant_id == tenant_id, Activity.deal_id == deal_id)
    if types:
        stmt = stmt.where(Activity.type.in_(types))
    stmt = stmt.order_by(Activity.occurred_at.asc(), Activity.created_at.asc()).limit(limit)
    return list(db.execute(stmt).scalars().all())
