from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import jwt
from jwt import PyJWKClient
from starlette.requests import Request

from dealflow.core.config import settings
from dealflow.shared.enums import Env, Role


@dataclass(frozen=True)
class Actor:
    actor_id: str
    role: Role | None
    tenant_id: str

    @property
    def id(self) -> str:
        return self.actor_id


def _parse_dev_actor_header(raw: str) -> Actor:
    """
    DEV ONLY: X-DEV-ACTOR header payload as JSON.

    Example:
      {"actor_id":"dev-user","role":"ESTIMATOR","tenant_id":"acme"}
    """
    payload = json.loads(raw)
    actor_id = str(payload["actor_id"])
    tenant_id = str(payload["tenant_id"])
    return Actor(actor_id=actor_id, role=Role.parse(payload.get("role")), tenant_id=tenant_id)


def _get_bearer_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization")
    if not auth:
        return None
    if not auth.lower().startswith("bearer "):
        return None
    return auth.split(" ", 1)[1].strip()


def _verify_jwt(token: str) -> dict[str, Any]:
    """Verify the bearer token signature against the configured JWKS."""
    if not settings.oidc_jwks_url:
        raise NotImplementedError("OIDC JWKS URL is not configured")
    jwk_client = PyJWKClient(str(settings.oidc_jwks_url))
    signing_key = jwk_client.get_signing_key_from_jwt(token)

    audiences = None
    if settings.oidc_audience:
        parsed = [value.strip() for value in str(settings.oidc_audience).replace(";", ",").split(",") if value.strip()]
        if len(parsed) == 1:
            audiences = parsed[0]
        elif parsed:
            audiences = parsed

    options = {"verify_aud": bool(audiences), "verify_iss": bool(settings.oidc_issuer)}
    return jwt.decode(
        token,
        signing_key.key,
        algorithms=["RS256"],
        audience=audiences,
        issuer=settings.oidc_issuer,
        options=options,
    )


def _claim_role(claims: dict[str, Any]) -> Role | None:
    if claims.get("role"):
        return Role.parse(claims["role"])
    roles = claims.get("roles") or []
    return Role.parse(roles[0]) if roles else None


def actor_from_claims(claims: dict[str, Any]) -> Actor:
    actor_id = claims.get("oid") or claims.get("sub")
    tenant_id = claims.get("tenant_id") or claims.get("tid")
    if not actor_id or not tenant_id:
        raise PermissionError("Token is missing subject or tenant claims")
    return Actor(actor_id=str(actor_id), role=_claim_role(claims), tenant_id=str(tenant_id))


def actor_from_request(request: Request) -> Actor:
    # DEV shortcut (never honoured in prod)
    if settings.env != Env.prod:
        raw = request.headers.get(settings.dev_actor_header)
        if raw:
            return _parse_dev_actor_header(raw)

    token = _get_bearer_token(request)
    if not token:
        raise PermissionError("Missing bearer token")

    return actor_from_claims(_verify_jwt(token))
