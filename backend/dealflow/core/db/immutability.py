"""ORM-level write barriers for the deal workflow.

Listeners fire during ``Session.flush`` before any SQL is emitted, so a forbidden write
aborts the flush and leaves the database untouched:

  Activity, DealDocument, DispatchHandoff   never updated or deleted
  DealVersion                               frozen once it was locked
  DealLineItem                              no insert/update/delete while its version is locked
  Deal                                      frozen once it reached WON or LOST; never deleted

The workflow's own compare-and-set statements (version lock, stage flip) are Core-level
UPDATEs and do not pass through these listeners.
"""

from __future__ import annotations

from sqlalchemy import event, select
from sqlalchemy.orm.attributes import get_history

from dealflow.core.middleware.audit import get_logger
from dealflow.shared.exceptions import ImmutableRecordError

logger = get_logger(__name__)


def _blocked(entity_type: str, target, operation: str, reason: str) -> ImmutableRecordError:
    logger.error(
        "immutability.violation_blocked",
        entity_type=entity_type,
        entity_id=str(getattr(target, "id", None)),
        operation=operation,
    )
    return ImmutableRecordError(reason)


def _previous_value(target, attr: str):
    hist = get_history(target, attr)
    if hist.deleted:
        return hist.deleted[0]
    if hist.unchanged:
        return hist.unchanged[0]
    return getattr(target, attr)


def _append_only_update(mapper, connection, target):
    name = type(target).__name__
    raise _blocked(name, target, "UPDATE", f"{name} records are append-only")


def _append_only_delete(mapper, connection, target):
    name = type(target).__name__
    raise _blocked(name, target, "DELETE", f"{name} records are append-only")


def _check_version_update(mapper, connection, target):
    if _previous_value(target, "locked"):
        raise _blocked("DealVersion", target, "UPDATE", "Version is locked and cannot be modified")


def _check_version_delete(mapper, connection, target):
    raise _blocked("DealVersion", target, "DELETE", "Versions cannot be deleted")


def _version_is_locked(connection, version_id) -> bool:
    from dealflow.domain.deals.models.deals import DealVersion

    locked = connection.execute(select(DealVersion.locked).where(DealVersion.id == version_id)).scalar()
    return bool(locked)


def _check_line_item_write(operation: str):
    def _listener(mapper, connection, target):
        version_ids = {target.version_id}
        if operation == "UPDATE":
            version_ids.add(_previous_value(target, "version_id"))
        for version_id in version_ids:
            if version_id is not None and _version_is_locked(connection, version_id):
                raise _blocked("DealLineItem", target, operation, "Line items of a locked version cannot change")

    return _listener


def _check_deal_update(mapper, connection, target):
    from dealflow.domain.deals.enums import TERMINAL_STAGES

    previous = _previous_value(target, "stage")
    if previous in TERMINAL_STAGES:
        raise _blocked("Deal", target, "UPDATE", "Deal is closed and cannot be modified")


def _check_deal_delete(mapper, connection, target):
    raise _blocked("Deal", target, "DELETE", "Deals are never deleted")


def _listeners():
    from dealflow.core.db.models import Activity
    from dealflow.domain.deals.models.deals import Deal, DealLineItem, DealVersion
    from dealflow.domain.deals.models.documents import DealDocument, DispatchHandoff

    out = []
    for model in (Activity, DealDocument, DispatchHandoff):
        out.append((model, "before_update", _append_only_update))
        out.append((model, "before_delete", _append_only_delete))
    out.append((DealVersion, "before_update", _check_version_update))
    out.append((DealVersion, "before_delete", _check_version_delete))
    out.append((DealLineItem, "before_insert", _LINE_ITEM_INSERT))
    out.append((DealLineItem, "before_update", _LINE_ITEM_UPDATE))
    out.append((DealLineItem, "before_delete", _LINE_ITEM_DELETE))
    out.append((Deal, "before_update", _check_deal_update))
    out.append((Deal, "before_delete", _check_deal_delete))
    return out


_LINE_ITEM_INSERT = _check_line_item_write("INSERT")
_LINE_ITEM_UPDATE = _check_line_item_write("UPDATE")
_LINE_ITEM_DELETE = _check_line_item_write("DELETE")


def register_immutability_listeners() -> None:
    """Install the listeners once per process; repeated calls are no-ops."""
    for model, name, fn in _listeners():
        if not event.contains(model, name, fn):
            event.listen(model, name, fn)
