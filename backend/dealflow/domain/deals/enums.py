from __future__ import annotations

from enum import Enum


class DealStage(str, Enum):
    OPEN = "OPEN"
    IN_ESTIMATING = "IN_ESTIMATING"
    SUBMITTED = "SUBMITTED"
    # Only ever held inside the approval transaction; never persisted at rest.
    APPROVED = "APPROVED"
    DISPATCHED = "DISPATCHED"
    WON = "WON"
    LOST = "LOST"


TERMINAL_STAGES: frozenset[DealStage] = frozenset({DealStage.WON, DealStage.LOST})


class LineItemCategory(str, Enum):
    LABOR = "LABOR"
    EQUIPMENT = "EQUIPMENT"
    MATERIALS = "MATERIALS"
    SUBCONTRACTOR = "SUBCONTRACTOR"
    DISCIPLINE_SPECIFIC = "DISCIPLINE_SPECIFIC"
    MISC = "MISC"


class DealAction(str, Enum):
    CREATE_DEAL = "CREATE_DEAL"
    SEND_TO_ESTIMATING = "SEND_TO_ESTIMATING"
    EDIT_LINE_ITEMS = "EDIT_LINE_ITEMS"
    SUBMIT = "SUBMIT"
    APPROVE = "APPROVE"
    CLOSE = "CLOSE"
    VIEW_WORKSPACE = "VIEW_WORKSPACE"
    VIEW_ESTIMATE = "VIEW_ESTIMATE"
    VIEW_DISPATCHED = "VIEW_DISPATCHED"


class CloseOutcome(str, Enum):
    WON = "WON"
    LOST = "LOST"


class ActivityType(str, Enum):
    DEAL_CREATED = "DEAL_CREATED"
    DEAL_SENT_TO_ESTIMATING = "DEAL_SENT_TO_ESTIMATING"
    DEAL_VERSION_CREATED = "DEAL_VERSION_CREATED"
    LINE_ITEM_ADDED = "LINE_ITEM_ADDED"
    LINE_ITEM_UPDATED = "LINE_ITEM_UPDATED"
    LINE_ITEM_DELETED = "LINE_ITEM_DELETED"
    DEAL_SUBMITTED = "DEAL_SUBMITTED"
    DEAL_APPROVED = "DEAL_APPROVED"
    DOCUMENT_GENERATED = "DOCUMENT_GENERATED"
    DISPATCH_HANDOFF_CREATED = "DISPATCH_HANDOFF_CREATED"
    DEAL_DISPATCHED = "DEAL_DISPATCHED"
    USER_DELIVERY_ENABLED = "USER_DELIVERY_ENABLED"
    DEAL_STAGE_CHANGED = "DEAL_STAGE_CHANGED"


APPROVAL_MILESTONES: tuple[ActivityType, ...] = (
    ActivityType.DEAL_APPROVED,
    ActivityType.DOCUMENT_GENERATED,
    ActivityType.DISPATCH_HANDOFF_CREATED,
    ActivityType.DEAL_DISPATCHED,
    ActivityType.USER_DELIVERY_ENABLED,
)
