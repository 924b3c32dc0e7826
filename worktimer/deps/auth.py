"""Caller authentication.

Two dependencies are offered:

* ``require_identity`` for timer and logging endpoints, which need to know
  *who* is working. The identity is an owner email taken from a bearer token,
  or from the ``X-Owner-Email`` header when the caller holds the API key (or
  when no API key is configured at all).
* ``require_api_access`` for administrative endpoints that only need a valid
  credential.

Both record the caller on ``request.state.principal`` for request logging.
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass

from fastapi import Header, HTTPException, Request, status
from fastapi.security.utils import get_authorization_scheme_param

from ..core.config import settings
from ..core.security import OwnerClaims, TokenError, TokenKind, decode_token
from ..middlewares import principal_ctx_var


@dataclass(frozen=True)
class AuthContext:
    subject: str
    scheme: str

    @property
    def identity(self) -> str:
        """The owner email timers resolve to an owner record."""
        return self.subject


def _reject(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _remember(request: Request, context: AuthContext, label: str) -> AuthContext:
    principal_ctx_var.set(label)
    request.state.principal = label
    return context


def _bearer_claims(authorization: str | None) -> OwnerClaims | None:
    if not authorization:
        return None
    scheme, credentials = get_authorization_scheme_param(authorization)
    if scheme.lower() != "bearer" or not credentials:
        return None
    try:
        return decode_token(credentials, expected=TokenKind.ACCESS)
    except TokenError as exc:
        raise _reject(str(exc)) from exc


def _api_key_state(x_api_key: str | None) -> str:
    """``"open"`` when no key is configured, else ``"valid"``, ``"invalid"`` or ``"missing"``."""
    configured = (settings.API_KEY or "").strip()
    if not configured:
        return "open"
    provided = (x_api_key or "").strip()
    if not provided:
        return "missing"
    return "valid" if hmac.compare_digest(configured, provided) else "invalid"


async def require_identity(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    x_owner_email: str | None = Header(default=None, alias="X-Owner-Email"),
) -> AuthContext:
    claims = _bearer_claims(authorization)
    if claims is not None:
        request.state.token_claims = claims
        context = AuthContext(subject=claims.owner_email, scheme="jwt")
        return _remember(request, context, f"jwt:{claims.owner_email}")

    key_state = _api_key_state(x_api_key)
    if key_state == "invalid":
        raise _reject("Invalid API key")
    if key_state == "missing":
        raise _reject("Authorization required")

    email = (x_owner_email or "").strip()
    if not email:
        raise _reject("X-Owner-Email header required")
    scheme = "api_key" if key_state == "valid" else "open"
    return _remember(request, AuthContext(subject=email, scheme=scheme), f"{scheme}:{email}")


async def require_api_access(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> AuthContext:
    claims = _bearer_claims(authorization)
    if claims is not None:
        context = AuthContext(subject=claims.owner_email, scheme="jwt")
        return _remember(request, context, f"jwt:{claims.owner_email}")

    key_state = _api_key_state(x_api_key)
    if key_state == "open":
        return _remember(request, AuthContext(subject="anonymous", scheme="open"), "anonymous")
    if key_state == "valid":
        return _remember(request, AuthContext(subject="api-key", scheme="api_key"), "api-key")
    raise _reject("Invalid API key" if key_state == "invalid" else "Authorization required")
