from __future__ import annotations

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from ..core.entity_kinds import EntityKind, normalize_entity_kind
from ..models.activity import ActivityEntry
from ..services.timecalc import to_iso, utcnow


def record_activity(db: Session, payload: dict) -> ActivityEntry:
    for field in ("action_type", "entity_type", "entity_id", "description"):
        if payload.get(field) in (None, ""):
            raise ValueError(f"{field} is required")
    entry = ActivityEntry(
        owner_id=payload.get("owner_id"),
        action_type=payload["action_type"],
        entity_type=normalize_entity_kind(payload["entity_type"]).value,
        entity_id=int(payload["entity_id"]),
        entity_name=payload.get("entity_name") or None,
        description=payload["description"],
        comment=payload.get("comment") or None,
        created_at=to_iso(utcnow()),
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def list_activity(
    db: Session,
    entity_type: EntityKind | str | None = None,
    entity_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
):
    stmt = select(ActivityEntry)
    if entity_type is not None:
        stmt = stmt.where(ActivityEntry.entity_type == normalize_entity_kind(entity_type).value)
    if entity_id is not None:
        stmt = stmt.where(ActivityEntry.entity_id == entity_id)
    stmt = stmt.order_by(desc(ActivityEntry.created_at), desc(ActivityEntry.id)).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()
