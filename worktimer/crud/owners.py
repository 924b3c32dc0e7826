from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..models.owner import Owner
from ..services.timecalc import to_iso, utcnow


def _normalize_email(value: str | None) -> str:
    return (value or "").strip().casefold()


def list_owners(db: Session, limit: int = 200, offset: int = 0):
    stmt = select(Owner).order_by(Owner.email).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


def get_owner_by_email(db: Session, email: str | None, *, active_only: bool = True) -> Owner | None:
    normalized = _normalize_email(email)
    if not normalized:
        return None
    stmt = select(Owner).where(func.lower(Owner.email) == normalized)
    if active_only:
        stmt = stmt.where(Owner.active == 1)
    return db.execute(stmt).scalars().first()


def create_owner(db: Session, payload: dict) -> Owner:
    email = _normalize_email(payload.get("email"))
    if not email or "@" not in email:
        raise ValueError("a valid email is required")
    if get_owner_by_email(db, email, active_only=False):
        raise ValueError(f"owner '{email}' already exists")
    owner = Owner(
        email=email,
        name=(payload.get("name") or "").strip() or None,
        active=1 if payload.get("active", True) else 0,
        created_at=to_iso(utcnow()),
    )
    db.add(owner)
    db.commit()
    db.refresh(owner)
    return owner


def set_owner_active(db: Session, owner: Owner, active: bool) -> Owner:
    owner.active = 1 if active else 0
    db.commit()
    db.refresh(owner)
    return owner
