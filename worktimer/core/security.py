"""Owner tokens.

Access and refresh tokens are HS256 JWTs (python-jose) whose subject is the
owner's email, folded to lower case so a token always maps to one owner row.
Decoding problems surface as :class:`TokenError`, a ``ValueError``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum

from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel, ValidationError

from .config import settings

ALGORITHM = "HS256"
AUDIENCE = "worktimer-clients"
ISSUER = "worktimer"


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenError(ValueError):
    pass


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    owner_email: str


class OwnerClaims(BaseModel):
    sub: str
    typ: TokenKind
    exp: datetime
    iat: datetime
    aud: str
    iss: str

    @property
    def owner_email(self) -> str:
        return self.sub


def _lifetime(kind: TokenKind) -> timedelta:
    if kind is TokenKind.ACCESS:
        return timedelta(minutes=settings.JWT_ACCESS_TTL_MIN)
    return timedelta(days=settings.JWT_REFRESH_TTL_DAYS)


def encode_owner_token(owner_email: str, kind: TokenKind) -> str:
    issued = datetime.now(tz=timezone.utc)
    claims = {
        "sub": owner_email.strip().casefold(),
        "typ": kind.value,
        "iat": int(issued.timestamp()),
        "exp": int((issued + _lifetime(kind)).timestamp()),
        "aud": AUDIENCE,
        "iss": ISSUER,
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=ALGORITHM)


def issue_token_pair(owner_email: str) -> TokenPair:
    email = owner_email.strip().casefold()
    return TokenPair(
        access_token=encode_owner_token(email, TokenKind.ACCESS),
        refresh_token=encode_owner_token(email, TokenKind.REFRESH),
        expires_in=int(_lifetime(TokenKind.ACCESS).total_seconds()),
        owner_email=email,
    )


def decode_token(token: str, *, expected: TokenKind | None = None) -> OwnerClaims:
    try:
        raw = jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM], audience=AUDIENCE, issuer=ISSUER)
    except ExpiredSignatureError as exc:
        raise TokenError("Token expired") from exc
    except JWTError as exc:
        raise TokenError("Invalid token") from exc
    try:
        claims = OwnerClaims.model_validate(raw)
    except ValidationError as exc:
        raise TokenError("Invalid token payload") from exc
    if expected is not None and claims.typ is not expected:
        raise TokenError(f"{expected.value.capitalize()} token required")
    return claims


def refresh_access_token(refresh_token: str) -> TokenPair:
    claims = decode_token(refresh_token, expected=TokenKind.REFRESH)
    return issue_token_pair(claims.owner_email)
