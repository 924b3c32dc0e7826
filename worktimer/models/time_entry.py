"""SQLAlchemy model for timed work sessions against tasks and subtasks."""

from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Index, Integer, Text, text

from ..db.session import Base


class TimeEntry(Base):
    """One timed session. ``end_time`` stays NULL while the session is open."""

    __tablename__ = "time_entries"
    __allow_unmapped__ = True

    id = Column(Integer, primary_key=True, index=True)
    entity_id = Column(Integer, nullable=False)
    entity_kind = Column(Text, nullable=False)
    owner_id = Column(Integer, ForeignKey("owners.id"), nullable=False, index=True)
    # UTC ISO-8601 strings with a trailing ``Z``; lexical order equals time order.
    start_time = Column(Text, nullable=False)
    end_time = Column(Text, nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    comment = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)

    __table_args__ = (
        Index("ix_time_entries_entity", "entity_kind", "entity_id", "start_time"),
        # At most one open entry per entity.
        Index(
            "ux_time_entries_open",
            "entity_kind",
            "entity_id",
            unique=True,
            sqlite_where=text("end_time IS NULL"),
            postgresql_where=text("end_time IS NULL"),
        ),
    )

    @property
    def is_open(self) -> bool:
        return self.end_time is None


__all__ = ["TimeEntry"]
