from __future__ import annotations

import hmac

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..core.config import settings
from ..core.errors import OwnerNotFound
from ..core.security import TokenError, issue_token_pair, refresh_access_token
from ..crud.owners import get_owner_by_email
from ..db.session import get_db
from ..deps.auth import AuthContext, require_identity
from ..schemas.auth import RefreshRequest, TokenRequest, TokenResponse, WhoAmI

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post("/token", response_model=TokenResponse, summary="Issue owner tokens for an API key holder")
async def exchange_token(
    payload: TokenRequest,
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    db: Session = Depends(get_db),
):
    configured_key = (settings.API_KEY or "").strip()
    if not configured_key:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="API key authentication is disabled")
    provided = (payload.api_key or x_api_key or "").strip()
    if not provided or not hmac.compare_digest(provided, configured_key):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")

    # Tokens are only issued for owners that can actually start timers.
    owner = await run_in_threadpool(get_owner_by_email, db, payload.email)
    if owner is None:
        raise OwnerNotFound(details={"identity": payload.email})
    return issue_token_pair(owner.email).model_dump()


@router.post("/refresh", response_model=TokenResponse, summary="Refresh access token")
async def refresh_token(payload: RefreshRequest):
    try:
        pair = refresh_access_token(payload.refresh_token)
    except TokenError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    return pair.model_dump()


@router.get("/whoami", response_model=WhoAmI, summary="Resolve the caller to an owner")
async def whoami(auth: AuthContext = Depends(require_identity), db: Session = Depends(get_db)):
    owner = await run_in_threadpool(get_owner_by_email, db, auth.identity)
    return WhoAmI(
        identity=auth.identity,
        scheme=auth.scheme,
        owner_id=owner.id if owner else None,
        owner_name=owner.name if owner else None,
    )
