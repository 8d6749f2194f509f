from __future__ import annotations

import structlog
from structlog import contextvars


def set_request_id(request_id: str) -> None:
    contextvars.bind_contextvars(request_id=request_id)


def set_actor(actor_id: str, role: str | None, tenant_id: str) -> None:
    contextvars.bind_contextvars(actor_id=actor_id, actor_role=role, tenant_id=tenant_id)


def clear_request_context() -> None:
    contextvars.clear_contextvars()


def get_request_id() -> str | None:
    v = contextvars.get_contextvars().get("request_id")
    return str(v) if v is not None else None


def get_actor_id() -> str | None:
    v = contextvars.get_contextvars().get("actor_id")
    return str(v) if v is not None else None


def get_logger(name: str | None = None):
    return structlog.get_logger(name)
