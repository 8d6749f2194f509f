from __future__ import annotations

from fastapi import Request

from dealflow.core.middleware.audit import get_logger, set_actor
from dealflow.core.security.auth import Actor, actor_from_request
from dealflow.shared.exceptions import Unauthorized

logger = get_logger(__name__)


def get_actor(request: Request) -> Actor:
    try:
        actor = actor_from_request(request)
    except (NotImplementedError, PermissionError):
        raise Unauthorized()
    except Exception as exc:
        # Malformed dev header or a token that failed verification.
        logger.info("auth.actor_rejected", error_type=type(exc).__name__)
        raise Unauthorized()

    set_actor(actor.actor_id, actor.role.value if actor.role else None, actor.tenant_id)
    return actor
