from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.entity_kinds import EntityKind, normalize_entity_kind
from ..models.time_entry import TimeEntry
from ..services.timecalc import to_iso, utcnow

MANUAL_START = time(9, 0)


def _as_iso(value: datetime | str | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_iso(value)
    cleaned = value.strip()
    return cleaned or None


def _clean_comment(value: str | None) -> str | None:
    # Empty comments are stored as NULL, never as "".
    if value is None:
        return None
    return value if value.strip() else None


def get_entry(db: Session, entry_id: int) -> TimeEntry | None:
    return db.get(TimeEntry, entry_id)


def find_open_entry(db: Session, entity_id: int, entity_kind: EntityKind | str) -> TimeEntry | None:
    kind = normalize_entity_kind(entity_kind)
    stmt = (
        select(TimeEntry)
        .where(
            TimeEntry.entity_id == entity_id,
            TimeEntry.entity_kind == kind.value,
            TimeEntry.end_time.is_(None),
        )
        .order_by(desc(TimeEntry.start_time))
        .limit(1)
    )
    return db.execute(stmt).scalars().first()


def list_entries(
    db: Session,
    entity_kind: EntityKind | str | None = None,
    entity_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
):
    stmt = select(TimeEntry)
    if entity_kind is not None:
        stmt = stmt.where(TimeEntry.entity_kind == normalize_entity_kind(entity_kind).value)
    if entity_id is not None:
        stmt = stmt.where(TimeEntry.entity_id == entity_id)
    stmt = stmt.order_by(desc(TimeEntry.start_time)).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


def list_running_entries(db: Session, limit: int = 100, offset: int = 0):
    stmt = (
        select(TimeEntry)
        .where(TimeEntry.end_time.is_(None))
        .order_by(desc(TimeEntry.start_time))
        .limit(limit)
        .offset(offset)
    )
    return db.execute(stmt).scalars().all()


def count_entries(db: Session, entity_kind: EntityKind | str, entity_id: int) -> int:
    stmt = select(func.count(TimeEntry.id)).where(
        TimeEntry.entity_kind == normalize_entity_kind(entity_kind).value,
        TimeEntry.entity_id == entity_id,
    )
    return int(db.execute(stmt).scalar_one())


def create_entry(db: Session, payload: dict) -> TimeEntry:
    for field in ("entity_id", "entity_kind", "owner_id", "start_time"):
        if payload.get(field) in (None, ""):
            raise ValueError(f"{field} is required")
    duration = payload.get("duration_minutes")
    if duration is not None and int(duration) < 0:
        raise ValueError("duration_minutes must not be negative")
    entry = TimeEntry(
        entity_id=int(payload["entity_id"]),
        entity_kind=normalize_entity_kind(payload["entity_kind"]).value,
        owner_id=int(payload["owner_id"]),
        start_time=_as_iso(payload["start_time"]),
        end_time=_as_iso(payload.get("end_time")),
        duration_minutes=int(duration) if duration is not None else None,
        comment=_clean_comment(payload.get("comment")),
        created_at=to_iso(utcnow()),
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def finalize_entry(
    db: Session,
    entry_id: int,
    end_time: datetime | str,
    duration_minutes: int,
    comment: str | None = None,
) -> TimeEntry | None:
    """Close an entry. Returns ``None`` when the entry no longer exists.

    No version check is made: finalizing twice keeps the last write.
    """
    entry = db.get(TimeEntry, entry_id)
    if entry is None:
        return None
    entry.end_time = _as_iso(end_time)
    entry.duration_minutes = max(int(duration_minutes), 0)
    entry.comment = _clean_comment(comment)
    db.commit()
    db.refresh(entry)
    return entry


def log_manual_entry(db: Session, payload: dict, tz: str | None = None) -> TimeEntry:
    """Record already-finished work: ``hours`` starting at 09:00 on ``date``."""
    hours = payload.get("hours")
    try:
        hours_value = float(hours)
    except (TypeError, ValueError) as exc:
        raise ValueError("hours must be a number") from exc
    if not math.isfinite(hours_value) or hours_value <= 0:
        raise ValueError("hours must be greater than zero")
    comment = (payload.get("comment") or "").strip()
    if not comment:
        raise ValueError("comment is required")
    day = payload.get("date")
    if isinstance(day, str):
        day = date.fromisoformat(day)
    if not isinstance(day, date):
        raise ValueError("date is required")

    start = datetime.combine(day, MANUAL_START, tzinfo=ZoneInfo(tz or settings.TZ))
    end = start + timedelta(hours=hours_value)
    return create_entry(
        db,
        {
            "entity_id": payload.get("entity_id"),
            "entity_kind": payload.get("entity_kind") or EntityKind.TASK,
            "owner_id": payload.get("owner_id"),
            "start_time": start,
            "end_time": end,
            "duration_minutes": math.floor(hours_value * 60),
            "comment": comment,
        },
    )


def delete_entry(db: Session, entry: TimeEntry) -> None:
    db.delete(entry)
    db.commit()
